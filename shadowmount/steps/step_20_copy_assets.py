from __future__ import annotations

import logging
from pathlib import Path

from ..errors import CopyError
from ..lib.assets import copy_file, copy_tree, remove_tree, swap_in
from ..lib.env import ICON_REL, META_DIR
from .base import InstallCtx

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".partial"


class CopyAssetsStep:
    """Copy ``sce_sys`` and the icon into the install dir; the bulk data stays on the mount.

    Assets are written next to their final names and swapped in only once
    everything is copied, so a failed forced reinstall leaves the previous
    assets untouched.
    """

    step_id = "20_copy_assets"

    def run(self, ctx: InstallCtx) -> None:
        if not ctx.force_reinstall and ctx.layout.assets_present(ctx.title_id):
            logger.info("  [SPEED] Skipping file copy (Assets already exist)")
            return

        install_dir = ctx.layout.install_dir(ctx.title_id)
        src = Path(ctx.candidate.path)
        icon = src / ICON_REL
        meta_dst = install_dir / META_DIR
        icon_dst = install_dir / icon.name
        staged = [
            (install_dir / f".{META_DIR}{STAGING_SUFFIX}", meta_dst),
            (install_dir / f".{icon.name}{STAGING_SUFFIX}", icon_dst),
        ]
        ctx.created_install_dir = not install_dir.exists()
        try:
            if not ctx.dry_run:
                install_dir.mkdir(parents=True, exist_ok=True)
            for partial, _ in staged:
                remove_tree(partial, dry_run=ctx.dry_run)
            n = copy_tree(src / META_DIR, staged[0][0], dry_run=ctx.dry_run)
            if icon.is_file():
                copy_file(icon, staged[1][0], dry_run=ctx.dry_run)
            else:
                logger.warning("  [COPY] %s has no %s", ctx.title_id, ICON_REL)
                staged.pop()
            if not ctx.dry_run:
                for partial, final in staged:
                    swap_in(partial, final)
        except OSError as e:
            for partial, _ in staged:
                remove_tree(partial, dry_run=ctx.dry_run)
            self.rollback(ctx)
            raise CopyError(f"asset copy for {ctx.title_id} failed: {e}") from e

        logger.info("  [COPY] %d files -> %s", n, install_dir)

    def rollback(self, ctx: InstallCtx) -> None:
        if ctx.created_install_dir:
            remove_tree(ctx.layout.install_dir(ctx.title_id), dry_run=ctx.dry_run)
            ctx.created_install_dir = False
