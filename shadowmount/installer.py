from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .errors import CopyError, MountError, RegistrationError
from .lib.appinst import STATUS_ALREADY_REGISTERED, Registrar
from .lib.env import AppLayout
from .lib.mount import Mounter
from .lib.notify import Notifier
from .scanner import Candidate
from .steps import CopyAssetsStep, InstallCtx, InstallStep, MountStep, RegisterStep, WriteLinkStep

logger = logging.getLogger(__name__)


class InstallOutcome(str, enum.Enum):
    INSTALLED = "installed"
    RESTORED = "restored"
    FAILED = "failed"


class FailureReason(str, enum.Enum):
    MOUNT_FAILED = "mount_failed"
    COPY_FAILED = "copy_failed"
    REGISTER_FAILED = "register_failed"


@dataclass(frozen=True)
class InstallResult:
    outcome: InstallOutcome
    reason: Optional[FailureReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is not InstallOutcome.FAILED

    def describe(self) -> str:
        if self.ok:
            return self.outcome.value
        return f"{self.reason.value if self.reason else 'failed'}: {self.detail}"


_REASONS = (
    (MountError, FailureReason.MOUNT_FAILED),
    (CopyError, FailureReason.COPY_FAILED),
    (RegistrationError, FailureReason.REGISTER_FAILED),
)


def build_steps() -> List[InstallStep]:
    return [MountStep(), CopyAssetsStep(), WriteLinkStep(), RegisterStep()]


class MountInstaller:
    """Mount + selective copy + registration, rolled back as a unit on failure.

    Steps run in order. When one raises, every step that already completed is
    rolled back in reverse order, so a failed attempt leaves neither a mount
    nor a half-populated install directory behind.
    """

    def __init__(
        self,
        layout: AppLayout,
        mounter: Mounter,
        registrar: Registrar,
        *,
        notifier: Optional[Notifier] = None,
        notify_on_remount: bool = False,
        on_mounted: Optional[Callable[[str], None]] = None,
        steps: Optional[Sequence[InstallStep]] = None,
        dry_run: bool = False,
    ) -> None:
        self.layout = layout
        self.mounter = mounter
        self.registrar = registrar
        self.notifier = notifier
        self.notify_on_remount = notify_on_remount
        self.on_mounted = on_mounted
        self.steps = list(steps) if steps is not None else build_steps()
        self.dry_run = dry_run

    def install(self, candidate: Candidate, force_reinstall: bool = False) -> InstallResult:
        ctx = InstallCtx(
            candidate=candidate,
            layout=self.layout,
            mounter=self.mounter,
            registrar=self.registrar,
            force_reinstall=force_reinstall,
            dry_run=self.dry_run,
        )
        done: List[InstallStep] = []
        try:
            for step in self.steps:
                step.run(ctx)
                done.append(step)
                if step.step_id == MountStep.step_id and self.on_mounted is not None:
                    self.on_mounted(candidate.title_id)
        except (MountError, CopyError, RegistrationError) as e:
            self._rollback(ctx, done)
            reason = next(r for cls, r in _REASONS if isinstance(e, cls))
            logger.error("  [%s] %s: %s", reason.name, candidate.title_id, e)
            return InstallResult(InstallOutcome.FAILED, reason=reason, detail=str(e))
        except Exception:
            self._rollback(ctx, done)
            raise

        if ctx.status == STATUS_ALREADY_REGISTERED:
            if self.notify_on_remount and self.notifier is not None:
                self.notifier.toast(candidate.title_id, candidate.title_name, "Restored")
            return InstallResult(InstallOutcome.RESTORED)

        if self.notifier is not None:
            self.notifier.toast(candidate.title_id, candidate.title_name, "Installed")
            self.notifier.banner(f"Installed: {candidate.title_name}")
        return InstallResult(InstallOutcome.INSTALLED)

    def _rollback(self, ctx: InstallCtx, done: Sequence[InstallStep]) -> None:
        for step in reversed(done):
            logger.info("  [ROLLBACK] %s %s", ctx.title_id, step.step_id)
            try:
                step.rollback(ctx)
            except Exception:
                # Keep unwinding the remaining steps.
                logger.exception("Rollback of %s failed for %s", step.step_id, ctx.title_id)
