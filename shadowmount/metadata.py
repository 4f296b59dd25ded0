"""Bundle manifest reading.

The manifest lives at ``<bundle>/sce_sys/param.json``. Only a few scalar
fields are needed, so lookups walk the parsed document for a key instead of
binding to a schema:

- id: ``titleId``, then ``title_id``
- name: ``titleName`` inside the ``en-US`` section, then the first
  ``titleName`` anywhere, then the id itself
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence, Tuple

from .errors import MetadataError
from .lib.env import MANIFEST_REL

logger = logging.getLogger(__name__)

MAX_MANIFEST_BYTES = 5 * 1024 * 1024
ID_KEYS: Tuple[str, ...] = ("titleId", "title_id")
NAME_KEY = "titleName"
LOCALE_SECTION = "en-US"
DRM_KEY = "applicationDrmType"
DRM_SAFE_VALUE = "standard"

_DRM_RE = re.compile(r'("%s"\s*:\s*")([^"]*)(")' % DRM_KEY)
# The id becomes a directory name under the mount and install roots.
_TITLE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,32}$")


def iter_key(doc: Any, key: str) -> Iterator[Any]:
    """Yield every value stored under ``key``, depth-first in document order."""

    if isinstance(doc, Mapping):
        for k, v in doc.items():
            if k == key:
                yield v
            yield from iter_key(v, key)
    elif isinstance(doc, list):
        for item in doc:
            yield from iter_key(item, key)


def find_string(doc: Any, key: str) -> Optional[str]:
    for value in iter_key(doc, key):
        if isinstance(value, str):
            return value
    return None


def name_from_locale(doc: Mapping[str, Any], title_id: str) -> Optional[str]:
    for section in iter_key(doc, LOCALE_SECTION):
        if isinstance(section, Mapping):
            name = find_string(section, NAME_KEY)
            if name:
                return name
    return None


def name_from_default(doc: Mapping[str, Any], title_id: str) -> Optional[str]:
    return find_string(doc, NAME_KEY) or None


def name_from_id(doc: Mapping[str, Any], title_id: str) -> Optional[str]:
    return title_id


NAME_LOOKUPS: Sequence[Callable[[Mapping[str, Any], str], Optional[str]]] = (
    name_from_locale,
    name_from_default,
    name_from_id,
)


def resolve_title_id(doc: Mapping[str, Any]) -> str:
    for key in ID_KEYS:
        value = find_string(doc, key)
        if value and value.strip():
            title_id = value.strip()
            if not _TITLE_ID_RE.match(title_id):
                raise MetadataError(f"unusable title id {title_id!r}")
            return title_id
    raise MetadataError("manifest has no title id")


def resolve_title_name(doc: Mapping[str, Any], title_id: str) -> str:
    for lookup in NAME_LOOKUPS:
        name = lookup(doc, title_id)
        if name and name.strip():
            return name.strip()
    return title_id


def repair_drm_type(manifest: Path) -> bool:
    """Rewrite ``applicationDrmType`` to ``standard`` in place.

    Returns True if the file was changed. The rest of the file is kept
    byte-for-byte. Raises OSError on I/O problems.
    """

    raw = manifest.read_bytes()
    if not raw or len(raw) > MAX_MANIFEST_BYTES:
        return False
    text = raw.decode("utf-8", errors="surrogateescape")
    m = _DRM_RE.search(text)
    if not m or m.group(2) == DRM_SAFE_VALUE:
        return False
    fixed = text[: m.start(2)] + DRM_SAFE_VALUE + text[m.end(2) :]
    manifest.write_bytes(fixed.encode("utf-8", errors="surrogateescape"))
    return True


def load_manifest(manifest: Path) -> Mapping[str, Any]:
    try:
        size = manifest.stat().st_size
    except OSError as e:
        raise MetadataError(f"manifest missing: {manifest}") from e
    if size == 0:
        raise MetadataError(f"manifest empty: {manifest}")
    if size > MAX_MANIFEST_BYTES:
        raise MetadataError(f"manifest too large: {manifest}")
    try:
        doc = json.loads(manifest.read_text(encoding="utf-8", errors="replace"))
    except (OSError, ValueError) as e:
        raise MetadataError(f"manifest unreadable: {manifest}: {e}") from e
    if not isinstance(doc, dict):
        raise MetadataError(f"manifest is not an object: {manifest}")
    return doc


@dataclass
class MetadataExtractor:
    fix_drm_type: bool = True

    def read(self, path: str | Path) -> Tuple[str, str]:
        """Return ``(title_id, title_name)`` or raise MetadataError."""

        manifest = Path(path) / MANIFEST_REL
        if self.fix_drm_type:
            try:
                if os.path.isfile(manifest) and repair_drm_type(manifest):
                    logger.info("Patched %s in %s", DRM_KEY, manifest)
            except OSError as e:
                logger.debug("DRM type repair skipped for %s: %s", manifest, e)

        doc = load_manifest(manifest)
        title_id = resolve_title_id(doc)
        return title_id, resolve_title_name(doc, title_id)

    def extract(self, path: str | Path) -> Optional[Tuple[str, str]]:
        """Return ``(title_id, title_name)``, or None when no usable manifest exists."""

        try:
            return self.read(path)
        except MetadataError as e:
            logger.debug("No metadata for %s: %s", path, e)
            return None
        except OSError as e:
            logger.warning("Unreadable bundle %s: %s", path, e)
            return None
