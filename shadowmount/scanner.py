from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .errors import DiscoveryError
from .metadata import MetadataExtractor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    path: str
    title_id: str
    title_name: str
    discovered_at: float = field(default_factory=time.time, compare=False)


def load_custom_paths(path: Path) -> List[str]:
    """One directory per line; blank lines and ``#`` comments are ignored."""

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("Unable to read custom scan paths %s: %s", path, e)
        return []
    out: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            out.append(line)
    return out


def merge_roots(*groups: Iterable[str]) -> List[str]:
    seen = set()
    roots: List[str] = []
    for group in groups:
        for root in group:
            key = os.path.normpath(root)
            if key not in seen:
                seen.add(key)
                roots.append(key)
    return roots


def list_entries(root: str) -> List[str]:
    """Visible immediate child directories of ``root``, sorted by name."""

    try:
        with os.scandir(root) as it:
            names = sorted(e.name for e in it if not e.name.startswith(".") and e.is_dir())
    except OSError as e:
        raise DiscoveryError(f"cannot list {root}: {e}") from e
    return [os.path.join(root, n) for n in names]


@dataclass
class PathScanner:
    extractor: MetadataExtractor
    builtin_roots: Sequence[str]
    custom_paths_file: Optional[Path] = None
    reload_each_cycle: bool = True
    _custom_cache: Optional[List[str]] = field(default=None, init=False, repr=False)

    def roots(self) -> List[str]:
        custom: List[str] = []
        if self.custom_paths_file is not None:
            if self.reload_each_cycle or self._custom_cache is None:
                self._custom_cache = load_custom_paths(self.custom_paths_file)
            custom = self._custom_cache
        return merge_roots(self.builtin_roots, custom)

    def scan(self, roots: Optional[Sequence[str]] = None) -> List[Candidate]:
        candidates: List[Candidate] = []
        for root in roots if roots is not None else self.roots():
            try:
                entries = list_entries(root)
            except DiscoveryError as e:
                logger.debug("Skipping root: %s", e)
                continue
            for entry in entries:
                info = self.extractor.extract(entry)
                if info is None:
                    continue
                title_id, title_name = info
                candidates.append(Candidate(path=entry, title_id=title_id, title_name=title_name))
        return candidates
