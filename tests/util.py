"""Test helpers: bundle factory, fake mount/registration adapters, filesystem snapshots."""
from __future__ import annotations

import json
import os
import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional

from shadowmount.errors import MountError
from shadowmount.lib.appinst import STATUS_OK


class FakeMounter:
    """Copies the source into the mount point to stand in for a read-only nullfs mount."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.mounted: Dict[str, str] = {}
        self.calls: List[tuple] = []

    def prepare(self) -> None:
        self.calls.append(("prepare",))

    def mount_readonly(self, src: str, dst: str) -> None:
        self.calls.append(("mount", src, dst))
        if self.fail:
            raise MountError(f"nmount {dst}: Operation not permitted")
        shutil.copytree(src, dst, dirs_exist_ok=True)
        self.mounted[dst] = src

    def unmount(self, dst: str) -> None:
        self.calls.append(("unmount", dst))
        if self.mounted.pop(dst, None) is not None:
            for child in Path(dst).iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()

    @property
    def mount_count(self) -> int:
        return sum(1 for c in self.calls if c[0] == "mount")


class FakeRegistrar:
    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses) or [STATUS_OK]
        self.calls: List[tuple] = []

    def register(self, title_id: str, install_root: str) -> int:
        self.calls.append((title_id, install_root))
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class AlwaysStable:
    def __init__(self, stable: bool = True) -> None:
        self.stable = stable
        self.checked: List[str] = []

    def is_stable(self, path: str) -> bool:
        self.checked.append(path)
        return self.stable


def write_bundle(
    root: Path,
    dirname: str,
    title_id: Optional[str] = "PPSA01234",
    *,
    name: Optional[str] = "Test Game",
    locale_name: Optional[str] = None,
    drm_type: Optional[str] = None,
    icon: bool = True,
    raw: Optional[str] = None,
    age_s: Optional[float] = None,
) -> Path:
    bundle = root / dirname
    sce_sys = bundle / "sce_sys"
    sce_sys.mkdir(parents=True, exist_ok=True)
    if raw is None:
        doc: Dict[str, object] = {}
        if drm_type is not None:
            doc["applicationDrmType"] = drm_type
        if locale_name is not None:
            doc["localizedParameters"] = {"defaultLanguage": "en-US", "en-US": {"titleName": locale_name}}
        if title_id is not None:
            doc["titleId"] = title_id
        if name is not None:
            doc["titleName"] = name
        raw = json.dumps(doc, indent=2)
    (sce_sys / "param.json").write_text(raw, encoding="utf-8")
    if icon:
        (sce_sys / "icon0.png").write_bytes(b"\x89PNG fake icon")
    (bundle / "eboot.bin").write_bytes(b"\x00" * 64)
    if age_s is not None:
        past = time.time() - age_s
        for p in (sce_sys, bundle):
            os.utime(p, (past, past))
    return bundle


def snapshot(root: Path) -> Dict[str, bytes]:
    """Relative path -> content (b"<dir>" for directories) for filesystem diffs."""

    out: Dict[str, bytes] = {}
    if not root.exists():
        return out
    for p in sorted(root.rglob("*")):
        out[str(p.relative_to(root))] = b"<dir>" if p.is_dir() else p.read_bytes()
    return out


