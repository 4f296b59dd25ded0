from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol, Tuple

from .lib.env import META_DIR

logger = logging.getLogger(__name__)


class StabilityGate(Protocol):
    def is_stable(self, path: str) -> bool:
        ...


def dir_size(path: str, max_depth: int = 3) -> int:
    """Total size in bytes of regular files under ``path``, at most ``max_depth`` levels deep."""

    total = 0
    stack = [(path, 0)]
    while stack:
        current, depth = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    try:
                        if entry.is_symlink():
                            continue
                        if entry.is_file():
                            total += entry.stat().st_size
                        elif entry.is_dir() and depth + 1 < max_depth:
                            stack.append((entry.path, depth + 1))
                    except OSError:
                        continue
        except OSError:
            continue
    return total


@dataclass
class FastStabilityGate:
    """Timestamp heuristic: old enough root (and ``sce_sys``) means stable.

    An unstable answer costs a short sleep so the next cycle sees fresher
    timestamps.
    """

    threshold_s: float = 10.0
    wait_s: float = 2.0
    clock: Callable[[], float] = time.time
    sleep: Callable[[float], None] = time.sleep

    def is_stable(self, path: str) -> bool:
        now = self.clock()
        try:
            age = now - os.stat(path).st_mtime
        except OSError:
            return False

        if age > self.threshold_s:
            sys_dir = Path(path) / META_DIR
            try:
                sys_age = now - sys_dir.stat().st_mtime
            except OSError:
                return True
            if sys_age > self.threshold_s:
                return True
            age = sys_age

        logger.info("  [WAIT] %s modified %.0fs ago. Waiting...", path, age)
        self.sleep(self.wait_s)
        return False


@dataclass
class ThoroughStabilityGate:
    """Size-sampling heuristic: two equal nonzero samples in a row mean stable."""

    interval_s: float = 2.0
    max_rounds: int = 100
    max_depth: int = 3
    sleep: Callable[[float], None] = time.sleep
    size_of: Callable[[str, int], int] = field(default=dir_size)

    def sample_round(self, path: str, baseline: int) -> Tuple[bool, int]:
        """Wait one interval and resample; returns ``(stable, new_baseline)``."""

        self.sleep(self.interval_s)
        current = self.size_of(path, self.max_depth)
        if current == baseline and current > 0:
            return True, current
        logger.debug("  [SIZE] %s %d -> %d", path, baseline, current)
        return False, current

    def is_stable(self, path: str) -> bool:
        baseline = self.size_of(path, self.max_depth)
        for _ in range(self.max_rounds):
            stable, baseline = self.sample_round(path, baseline)
            if stable:
                return True
        logger.info("  [WAIT] %s still changing after %d rounds", path, self.max_rounds)
        return False


def build_gate(strategy: str, settings: dict) -> StabilityGate:
    if strategy == "thorough":
        return ThoroughStabilityGate(
            interval_s=settings["sample_interval_s"],
            max_rounds=settings["max_rounds"],
            max_depth=settings["max_depth"],
        )
    if strategy == "fast":
        return FastStabilityGate(threshold_s=settings["mtime_threshold_s"], wait_s=settings["fast_wait_s"])
    raise ValueError(f"Unknown stability strategy: {strategy}")
