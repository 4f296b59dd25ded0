from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

META_DIR = "sce_sys"
MANIFEST_REL = f"{META_DIR}/param.json"
ICON_REL = f"{META_DIR}/icon0.png"
LINK_MARKER_NAME = "mount.lnk"


@dataclass(frozen=True)
class Paths:
    data_dir: str = "/data/shadowmount"
    mount_root: str = "/system_ex/app"
    install_root: str = "/user/app"
    legacy_kill_file: str = "/data/shadowmount.kill"


PATHS = Paths()


def _component(title_id: str) -> str:
    if not title_id or title_id in {".", ".."} or "/" in title_id or "\\" in title_id:
        raise ValueError(f"title id {title_id!r} is not a single path component")
    return title_id


@dataclass(frozen=True)
class AppLayout:
    """Where the platform expects mounted data and installed assets for a title."""

    mount_root: Path
    install_root: Path

    @classmethod
    def from_paths(cls, mount_root: str | Path, install_root: str | Path) -> "AppLayout":
        return cls(mount_root=Path(mount_root), install_root=Path(install_root))

    def mount_point(self, title_id: str) -> Path:
        return self.mount_root / _component(title_id)

    def install_dir(self, title_id: str) -> Path:
        return self.install_root / _component(title_id)

    def link_marker(self, title_id: str) -> Path:
        return self.install_dir(title_id) / LINK_MARKER_NAME

    def is_installed(self, title_id: str) -> bool:
        return self.install_dir(title_id).exists()

    def is_data_mounted(self, title_id: str) -> bool:
        return (self.mount_point(title_id) / MANIFEST_REL).exists()

    def assets_present(self, title_id: str) -> bool:
        return (self.install_dir(title_id) / MANIFEST_REL).exists()

    def linked_source(self, title_id: str) -> str | None:
        """Source path recorded by the last successful install, if any."""

        try:
            return self.link_marker(title_id).read_text(encoding="utf-8").strip() or None
        except OSError:
            return None
