from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def copy_tree(src: str | Path, dst: str | Path, *, dry_run: bool = False) -> int:
    """Copy a directory tree, returning the number of files written."""

    s = Path(src)
    d = Path(dst)
    if not s.is_dir():
        raise FileNotFoundError(str(s))

    if dry_run:
        logger.info("Would copy tree %s -> %s", s, d)
        return 0

    copied = 0
    d.mkdir(parents=True, exist_ok=True)
    for item in sorted(s.rglob("*")):
        out = d / item.relative_to(s)
        if item.is_dir():
            out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(item, out)
            copied += 1
    return copied


def copy_file(src: str | Path, dst: str | Path, *, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would copy file %s -> %s", src, dst)
        return
    Path(dst).parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst)


def remove_tree(path: str | Path, *, dry_run: bool = False) -> None:
    """Best-effort recursive removal used by rollback."""

    p = Path(path)
    if dry_run:
        logger.info("Would remove %s", p)
        return
    if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p, ignore_errors=True)
    else:
        try:
            p.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Unable to remove %s: %s", p, e)


def swap_in(staged: str | Path, dst: str | Path) -> None:
    """Replace ``dst`` with ``staged`` (file or tree); the old ``dst`` survives a failed swap."""

    s = Path(staged)
    d = Path(dst)
    if not d.exists():
        os.replace(s, d)
        return
    old = d.with_name(f".{d.name}.old")
    remove_tree(old)
    os.replace(d, old)
    try:
        os.replace(s, d)
    except OSError:
        os.replace(old, d)
        raise
    remove_tree(old)
