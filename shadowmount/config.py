from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .lib.env import PATHS

BUILTIN_SCAN_PATHS: List[str] = (
    ["/data/homebrew", "/data/etaHEN/games"]
    + [f"/mnt/usb{i}/homebrew" for i in range(8)]
    + [f"/mnt/usb{i}/etaHEN/games" for i in range(8)]
    + [f"/mnt/usb{i}" for i in range(8)]
    + ["/mnt/ext0", "/mnt/ext1"]
)


@dataclass(frozen=True)
class DaemonConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def data_dir(self) -> Path:
        return Path(self._section("paths").get("data_dir") or PATHS.data_dir)

    @property
    def mount_root(self) -> str:
        return str(self._section("paths").get("mount_root") or PATHS.mount_root)

    @property
    def install_root(self) -> str:
        return str(self._section("paths").get("install_root") or PATHS.install_root)

    @property
    def log_path(self) -> Path:
        return Path(self._section("paths").get("log") or self.data_dir / "debug.log")

    @property
    def lock_path(self) -> Path:
        return self.data_dir / "daemon.lock"

    @property
    def toast_path(self) -> Path:
        return self.data_dir / "notify.txt"

    @property
    def state_dir(self) -> Path:
        return self.data_dir / "state"

    @property
    def repair_dir(self) -> Path:
        return self.data_dir / "repair"

    @property
    def force_reinstall_path(self) -> Path:
        return self.data_dir / "FORCE_REINSTALL"

    @property
    def kill_paths(self) -> List[Path]:
        configured = self._section("paths").get("kill_files")
        if configured:
            return [Path(p) for p in configured]
        return [self.data_dir / "STOP", Path(PATHS.legacy_kill_file)]

    @property
    def scan_paths(self) -> List[str]:
        paths = self._section("scan").get("paths")
        return list(paths) if paths is not None else list(BUILTIN_SCAN_PATHS)

    @property
    def custom_paths_file(self) -> Path:
        return Path(self._section("scan").get("custom_paths_file") or self.data_dir / "scan_paths.txt")

    @property
    def custom_paths_reload(self) -> str:
        mode = str(self._section("scan").get("custom_paths_reload") or "cycle")
        if mode not in {"cycle", "startup"}:
            raise ValueError(f"scan.custom_paths_reload must be cycle|startup, got {mode!r}")
        return mode

    @property
    def dedup_capacity(self) -> int:
        return int(self._section("scan").get("dedup_capacity") or 512)

    @property
    def poll_interval_s(self) -> float:
        return float(self.raw.get("poll_interval_s", 3.0))

    @property
    def max_retries(self) -> int:
        return int(self.raw.get("max_retries", 3))

    @property
    def stability_strategy(self) -> str:
        strategy = str(self._section("stability").get("strategy") or "fast")
        if strategy not in {"fast", "thorough"}:
            raise ValueError(f"stability.strategy must be fast|thorough, got {strategy!r}")
        return strategy

    @property
    def stability(self) -> Dict[str, Any]:
        s = self._section("stability")
        return {
            "mtime_threshold_s": float(s.get("mtime_threshold_s", 10.0)),
            "fast_wait_s": float(s.get("fast_wait_s", 2.0)),
            "sample_interval_s": float(s.get("sample_interval_s", 2.0)),
            "max_rounds": int(s.get("max_rounds", 100)),
            "max_depth": int(s.get("max_depth", 3)),
        }

    @property
    def notify_on_remount(self) -> bool:
        return bool(self._section("install").get("notify_on_remount", False))

    @property
    def repair_drm_type(self) -> bool:
        return bool(self._section("install").get("repair_drm_type", True))

    @property
    def register_settle_s(self) -> float:
        return float(self._section("install").get("register_settle_s", 0.2))

    @property
    def commands(self) -> Dict[str, Any]:
        return dict(self._section("commands"))

    @property
    def command_timeout_s(self) -> float:
        return float(self.commands.get("timeout_s", 30.0))

    @property
    def banner_argv(self) -> Optional[List[str]]:
        argv = self.commands.get("banner")
        return list(argv) if argv else None

    @property
    def repair_mode(self) -> str:
        mode = str(self._section("repair").get("mode") or "file")
        if mode not in {"file", "prompt"}:
            raise ValueError(f"repair.mode must be file|prompt, got {mode!r}")
        return mode

    @property
    def state_format(self) -> str:
        fmt = str(self._section("state").get("format") or "json")
        if fmt not in {"json", "yaml"}:
            raise ValueError(f"state.format must be json|yaml, got {fmt!r}")
        return fmt

    @property
    def dry_run(self) -> bool:
        return bool(self.raw.get("dry_run", False))

    def with_overrides(self, **overrides: Any) -> "DaemonConfig":
        """Return a copy with CLI overrides applied (``None`` values are ignored)."""

        raw = {k: (dict(v) if isinstance(v, dict) else v) for k, v in self.raw.items()}
        for key, value in overrides.items():
            if value is None:
                continue
            section, _, name = key.rpartition(".")
            target = raw.setdefault(section, {}) if section else raw
            target[name] = value
        return DaemonConfig(raw=raw)


def load_daemon_config(path: Optional[str]) -> DaemonConfig:
    """Load YAML config; a missing file means all defaults."""

    if not path:
        return DaemonConfig()
    p = Path(path)
    if not p.exists():
        return DaemonConfig()

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("daemon config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the daemon config") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{p} must contain a mapping/object")

    return DaemonConfig(raw=raw)
