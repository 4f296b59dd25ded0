"""ShadowMount: storage-scanning install daemon for unpacked homebrew bundles.

Core design goals:
- Bundles stay where they were dropped; only metadata and the icon are copied
- Mount + copy + registration behave as one unit with rollback
- Per-title state survives restarts; retries are bounded
- A repeating poll loop converges without duplicate side effects
- Centralized logging
"""

__all__ = []
