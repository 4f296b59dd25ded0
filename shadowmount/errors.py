from __future__ import annotations


class ShadowMountError(Exception):
    """Base class for daemon errors."""


class DiscoveryError(ShadowMountError):
    """A scan root could not be enumerated."""


class MetadataError(ShadowMountError):
    """A candidate has no usable manifest."""


class MountError(ShadowMountError):
    pass


class CopyError(ShadowMountError):
    pass


class RegistrationError(ShadowMountError):
    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"Registration rejected (0x{status & 0xFFFFFFFF:x})")
        self.status = status


class LockContention(ShadowMountError):
    """Another daemon instance holds the process lock."""
