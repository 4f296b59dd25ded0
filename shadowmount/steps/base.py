from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from ..lib.appinst import Registrar
from ..lib.env import AppLayout
from ..lib.mount import Mounter
from ..scanner import Candidate


@dataclass
class InstallCtx:
    """Shared state of one install attempt, passed through every step."""

    candidate: Candidate
    layout: AppLayout
    mounter: Mounter
    registrar: Registrar
    force_reinstall: bool = False
    dry_run: bool = False
    created_mount_point: bool = False
    created_install_dir: bool = False
    status: Optional[int] = None

    @property
    def title_id(self) -> str:
        return self.candidate.title_id


class InstallStep(Protocol):
    """One step of an install; ``rollback`` undoes a completed ``run``.

    A step that fails must clean up its own partial work before raising.
    """

    step_id: str

    def run(self, ctx: InstallCtx) -> None:
        ...

    def rollback(self, ctx: InstallCtx) -> None:
        ...
