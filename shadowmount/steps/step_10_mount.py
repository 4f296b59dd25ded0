from __future__ import annotations

import logging
import os

from ..errors import MountError
from .base import InstallCtx

logger = logging.getLogger(__name__)


class MountStep:
    step_id = "10_mount"

    def run(self, ctx: InstallCtx) -> None:
        dst = ctx.layout.mount_point(ctx.title_id)
        ctx.created_mount_point = not dst.exists()
        try:
            if not ctx.dry_run:
                dst.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MountError(f"cannot create mount point {dst}: {e}") from e

        ctx.mounter.prepare()
        # Clear whatever a previous run left mounted there.
        ctx.mounter.unmount(str(dst))
        try:
            ctx.mounter.mount_readonly(ctx.candidate.path, str(dst))
        except MountError:
            self._remove_mount_point(ctx)
            raise
        logger.info("  [MOUNT] %s -> %s", ctx.candidate.path, dst)

    def rollback(self, ctx: InstallCtx) -> None:
        ctx.mounter.unmount(str(ctx.layout.mount_point(ctx.title_id)))
        self._remove_mount_point(ctx)

    @staticmethod
    def _remove_mount_point(ctx: InstallCtx) -> None:
        if not ctx.created_mount_point or ctx.dry_run:
            return
        dst = ctx.layout.mount_point(ctx.title_id)
        try:
            os.rmdir(dst)
        except OSError as e:
            # Non-empty means something is still mounted there; leave it.
            logger.warning("Unable to remove mount point %s: %s", dst, e)
        ctx.created_mount_point = False
