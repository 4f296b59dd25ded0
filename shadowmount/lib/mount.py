from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from ..errors import MountError
from .command import DEFAULT_TIMEOUT_S, render_argv, run_cmd

logger = logging.getLogger(__name__)

DEFAULT_PREPARE_ARGV = ["mount", "-u", "-w", "/system_ex"]
DEFAULT_MOUNT_ARGV = ["mount", "-t", "nullfs", "-o", "ro", "{src}", "{dst}"]
DEFAULT_UNMOUNT_ARGV = ["umount", "-f", "{dst}"]


class Mounter(Protocol):
    """Mount primitive used by the install steps."""

    def prepare(self) -> None:
        ...

    def mount_readonly(self, src: str, dst: str) -> None:
        ...

    def unmount(self, dst: str) -> None:
        ...


@dataclass
class CommandMounter:
    """Drives the system mount tools through configurable argv templates.

    ``prepare`` and ``unmount`` are best-effort: failures are logged and
    swallowed because a stale or missing mount is the normal case.
    """

    prepare_argv: Optional[Sequence[str]] = field(default_factory=lambda: list(DEFAULT_PREPARE_ARGV))
    mount_argv: Sequence[str] = field(default_factory=lambda: list(DEFAULT_MOUNT_ARGV))
    unmount_argv: Sequence[str] = field(default_factory=lambda: list(DEFAULT_UNMOUNT_ARGV))
    timeout_s: float = DEFAULT_TIMEOUT_S
    dry_run: bool = False

    def prepare(self) -> None:
        if not self.prepare_argv:
            return
        r = run_cmd(list(self.prepare_argv), check=False, timeout_s=self.timeout_s, dry_run=self.dry_run)
        if r.returncode != 0:
            logger.debug("prepare returned %s (ignored)", r.returncode)

    def mount_readonly(self, src: str, dst: str) -> None:
        argv = render_argv(self.mount_argv, src=src, dst=dst)
        try:
            run_cmd(argv, timeout_s=self.timeout_s, dry_run=self.dry_run)
        except (RuntimeError, OSError) as e:
            raise MountError(f"mount {src} -> {dst} failed: {e}") from e

    def unmount(self, dst: str) -> None:
        argv = render_argv(self.unmount_argv, dst=dst)
        try:
            run_cmd(argv, check=False, timeout_s=self.timeout_s, dry_run=self.dry_run)
        except OSError as e:
            logger.debug("unmount %s failed (ignored): %s", dst, e)


def mounter_from_commands(commands: dict, *, timeout_s: float = DEFAULT_TIMEOUT_S, dry_run: bool = False) -> CommandMounter:
    prepare: Optional[List[str]] = commands.get("prepare", DEFAULT_PREPARE_ARGV)
    return CommandMounter(
        prepare_argv=list(prepare) if prepare else None,
        mount_argv=list(commands.get("mount") or DEFAULT_MOUNT_ARGV),
        unmount_argv=list(commands.get("unmount") or DEFAULT_UNMOUNT_ARGV),
        timeout_s=timeout_s,
        dry_run=dry_run,
    )
