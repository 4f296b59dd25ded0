from __future__ import annotations

import fcntl
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .config import DaemonConfig
from .dedup import DedupCache
from .errors import LockContention
from .installer import MountInstaller
from .journal import Journals
from .lib.appinst import CommandRegistrar, DEFAULT_REGISTER_ARGV, Registrar
from .lib.env import AppLayout
from .lib.mount import Mounter, mounter_from_commands
from .lib.notify import Notifier
from .metadata import MetadataExtractor
from .pipeline import CycleResult, Pipeline
from .repair import ConsoleRepairDesk, FileRepairDesk, RepairChannel
from .retry import RetryCoordinator
from .scanner import PathScanner
from .stability import build_gate
from .state_store import StateStore

logger = logging.getLogger(__name__)

STOP_POLL_S = 0.5


class ProcessLock:
    """Advisory ``flock`` held for the lifetime of the daemon."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o666)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise LockContention(f"{self.path} is held by another instance") from e
        except OSError:
            os.close(fd)
            raise
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None


class Daemon:
    """Poll loop: startup summary, then scan every ``poll_interval_s`` until stopped."""

    def __init__(
        self,
        cfg: DaemonConfig,
        pipeline: Pipeline,
        *,
        notifier: Optional[Notifier] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.cfg = cfg
        self.pipeline = pipeline
        self.notifier = notifier
        self.stop_event = stop_event or threading.Event()
        self.cycles = 0
        self._force_seen = False

    def request_stop(self, *_args) -> None:
        self.stop_event.set()

    def _banner(self, message: str) -> None:
        if self.notifier is not None:
            self.notifier.banner(message)

    def check_kill_sentinel(self) -> bool:
        """Honor (and remove) a kill sentinel; returns True if one was found."""

        for p in self.cfg.kill_paths:
            if p.exists():
                logger.info("Kill sentinel %s found; shutting down", p)
                try:
                    p.unlink()
                except OSError as e:
                    logger.warning("Unable to remove %s: %s", p, e)
                self.stop_event.set()
                return True
        return False

    def force_requested(self) -> bool:
        """True for the first cycle after the force sentinel appears.

        The sentinel is left in place; removing and re-creating it requests
        another forced pass.
        """

        present = self.cfg.force_reinstall_path.exists()
        fresh = present and not self._force_seen
        self._force_seen = present
        return fresh

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True as soon as a stop is requested."""

        deadline = time.monotonic() + seconds
        while not self.stop_event.is_set():
            if self.check_kill_sentinel():
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.stop_event.wait(min(STOP_POLL_S, remaining))
        return True

    def cycle(self) -> CycleResult:
        force = self.force_requested()
        if force:
            logger.info("Force reinstall requested via %s", self.cfg.force_reinstall_path)
        result = self.pipeline.run_cycle(force_reinstall=force)
        self.cycles += 1
        if result.attempted or result.deferred:
            logger.info(
                "Cycle %d: installed=%d restored=%d failed=%d deferred=%d",
                self.cycles,
                len(result.installed),
                len(result.restored),
                len(result.failed),
                len(result.deferred),
            )
        return result

    def _guarded_cycle(self) -> None:
        try:
            self.cycle()
        except Exception:
            logger.exception("Cycle %d failed", self.cycles + 1)

    def startup(self) -> None:
        try:
            new_games = self.pipeline.count_new(self.pipeline.scanner.scan())
        except Exception:
            logger.exception("Startup scan failed")
            new_games = 0
        if new_games == 0:
            self._banner("ShadowMount: Library Ready.")
            return
        self._banner(f"ShadowMount: Found {new_games} Games. Executing...")
        self._guarded_cycle()
        self._banner("Library Synchronized.")

    def serve(self, *, once: bool = False) -> None:
        logger.info("SHADOWMOUNT START")
        self.startup()
        if once:
            return
        while not self.stop_event.is_set():
            if self.wait(self.cfg.poll_interval_s):
                break
            self._guarded_cycle()

    def shutdown(self) -> None:
        logger.info("Persisting title state and exiting")
        self.pipeline.coordinator.flush()


def build_daemon(
    cfg: DaemonConfig,
    *,
    mounter: Optional[Mounter] = None,
    registrar: Optional[Registrar] = None,
    ask: Callable[[str], str] = input,
) -> Daemon:
    """Wire every component from configuration; adapters may be injected."""

    layout = AppLayout.from_paths(cfg.mount_root, cfg.install_root)
    notifier = Notifier(toast_path=cfg.toast_path, banner_argv=cfg.banner_argv, dry_run=cfg.dry_run)
    journals = Journals.under(cfg.data_dir)
    channel = RepairChannel()
    if cfg.repair_mode == "prompt":
        desk = ConsoleRepairDesk(channel, ask=ask)
    else:
        desk = FileRepairDesk(cfg.repair_dir, channel, notifier=notifier)

    coordinator = RetryCoordinator(
        StateStore(cfg.state_dir, fmt=cfg.state_format),
        max_retries=cfg.max_retries,
        journals=journals,
        repair_desk=desk,
    )

    commands = cfg.commands
    installer = MountInstaller(
        layout,
        mounter or mounter_from_commands(commands, timeout_s=cfg.command_timeout_s, dry_run=cfg.dry_run),
        registrar
        or CommandRegistrar(
            argv=list(commands.get("register") or DEFAULT_REGISTER_ARGV),
            settle_s=cfg.register_settle_s,
            timeout_s=cfg.command_timeout_s,
            dry_run=cfg.dry_run,
        ),
        notifier=notifier,
        notify_on_remount=cfg.notify_on_remount,
        on_mounted=coordinator.mark_mounted,
        dry_run=cfg.dry_run,
    )

    scanner = PathScanner(
        extractor=MetadataExtractor(fix_drm_type=cfg.repair_drm_type and not cfg.dry_run),
        builtin_roots=cfg.scan_paths,
        custom_paths_file=cfg.custom_paths_file,
        reload_each_cycle=cfg.custom_paths_reload == "cycle",
    )

    pipeline = Pipeline(
        scanner=scanner,
        dedup=DedupCache(cfg.dedup_capacity),
        gate=build_gate(cfg.stability_strategy, cfg.stability),
        installer=installer,
        coordinator=coordinator,
        layout=layout,
        channel=channel,
        repair_desk=desk,
        notifier=notifier,
        notify_on_remount=cfg.notify_on_remount,
    )
    return Daemon(cfg, pipeline, notifier=notifier)
