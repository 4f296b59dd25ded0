from __future__ import annotations

import logging

from ..errors import CopyError
from ..lib.assets import remove_tree
from .base import InstallCtx

logger = logging.getLogger(__name__)


class WriteLinkStep:
    """Record the source path so a later run can remount without copying."""

    step_id = "30_write_link"

    def run(self, ctx: InstallCtx) -> None:
        marker = ctx.layout.link_marker(ctx.title_id)
        if ctx.dry_run:
            logger.info("Would write %s", marker)
            return
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(ctx.candidate.path, encoding="utf-8")
        except OSError as e:
            remove_tree(marker)
            raise CopyError(f"cannot write link marker {marker}: {e}") from e

    def rollback(self, ctx: InstallCtx) -> None:
        remove_tree(ctx.layout.link_marker(ctx.title_id), dry_run=ctx.dry_run)
