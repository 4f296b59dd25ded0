from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    return os.path.normpath(os.path.abspath(path))


@dataclass
class DedupEntry:
    path: str
    title_id: str
    title_name: str
    valid: bool = True


class DedupCache:
    """Bounded set of candidate paths already handled.

    An entry lives as long as its directory does; ``sweep`` drops entries
    whose path is gone. When the cache is full, ``record`` rejects the new
    path and the candidate is retried on a later cycle.
    """

    def __init__(self, capacity: int = 512, exists: Callable[[str], bool] = os.path.exists) -> None:
        if capacity <= 0:
            raise ValueError("dedup capacity must be positive")
        self.capacity = capacity
        self._exists = exists
        self._entries: Dict[str, DedupEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return self.seen(path)

    def seen(self, path: str) -> bool:
        entry = self._entries.get(normalize_path(path))
        return bool(entry and entry.valid)

    def get(self, path: str) -> Optional[DedupEntry]:
        return self._entries.get(normalize_path(path))

    def has_capacity(self) -> bool:
        return len(self._entries) < self.capacity

    def record(self, path: str, title_id: str, title_name: str) -> bool:
        key = normalize_path(path)
        if key in self._entries:
            self._entries[key] = DedupEntry(key, title_id, title_name)
            return True
        if not self.has_capacity():
            logger.warning("Dedup cache full (%d); deferring %s", self.capacity, key)
            return False
        self._entries[key] = DedupEntry(key, title_id, title_name)
        return True

    def sweep(self) -> List[DedupEntry]:
        """Invalidate and drop entries whose directory no longer exists."""

        removed: List[DedupEntry] = []
        for key, entry in list(self._entries.items()):
            if not self._exists(key):
                entry.valid = False
                removed.append(entry)
                del self._entries[key]
        for entry in removed:
            logger.info("Forgetting %s (%s): path removed", entry.title_id, entry.path)
        return removed
