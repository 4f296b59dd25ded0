from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from .command import DEFAULT_TIMEOUT_S, render_argv, run_cmd

logger = logging.getLogger(__name__)

STATUS_OK = 0
# Returned by the install service when the title directory is already known.
STATUS_ALREADY_REGISTERED = 0x80990002

DEFAULT_REGISTER_ARGV = ["appinstutil", "install-title-dir", "{title_id}", "{install_root}"]


class Registrar(Protocol):
    def register(self, title_id: str, install_root: str) -> int:
        ...


def parse_status(stdout: str, returncode: int) -> int:
    """Status printed by the register tool (``0x...`` or decimal), else its exit code."""

    text = (stdout or "").strip().splitlines()
    if text:
        try:
            return int(text[-1].strip(), 0)
        except ValueError:
            pass
    return returncode


@dataclass
class CommandRegistrar:
    argv: Sequence[str] = field(default_factory=lambda: list(DEFAULT_REGISTER_ARGV))
    settle_s: float = 0.2
    timeout_s: float = DEFAULT_TIMEOUT_S
    dry_run: bool = False

    def register(self, title_id: str, install_root: str) -> int:
        argv = render_argv(self.argv, title_id=title_id, install_root=install_root)
        r = run_cmd(argv, check=False, timeout_s=self.timeout_s, dry_run=self.dry_run)
        if self.settle_s > 0 and not self.dry_run:
            time.sleep(self.settle_s)
        status = parse_status(r.stdout, r.returncode)
        logger.debug("register %s -> 0x%x", title_id, status & 0xFFFFFFFF)
        return status
