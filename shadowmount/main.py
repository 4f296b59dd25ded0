from __future__ import annotations

import argparse
import logging
import signal
from typing import Callable, Optional

from .config import DaemonConfig, load_daemon_config
from .daemon import ProcessLock, build_daemon
from .errors import LockContention
from .lib.appinst import Registrar
from .lib.env import PATHS
from .lib.mount import Mounter
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = f"{PATHS.data_dir}/config.yaml"

EXIT_OK = 0
EXIT_LOCK_FAILED = 1


def _install_signal_handlers(handler: Callable) -> None:
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            signal.signal(sig, handler)
        except ValueError:
            # Not in the main thread (embedded use); stop via the kill sentinel instead.
            logger.debug("Cannot install handler for %s", sig)


def run(
    cfg: DaemonConfig,
    *,
    once: bool = False,
    verbose: bool = False,
    mounter: Optional[Mounter] = None,
    registrar: Optional[Registrar] = None,
    ask: Callable[[str], str] = input,
) -> int:
    """Run the daemon until stopped; returns the process exit code."""

    lock = ProcessLock(cfg.lock_path)
    try:
        lock.acquire()
    except LockContention:
        return EXIT_OK
    except OSError as e:
        logger.error("Unable to acquire %s: %s", cfg.lock_path, e)
        return EXIT_LOCK_FAILED

    daemon = None
    try:
        configure_logging(str(cfg.log_path), verbose=verbose)
        daemon = build_daemon(cfg, mounter=mounter, registrar=registrar, ask=ask)
        _install_signal_handlers(daemon.request_stop)
        daemon.serve(once=once)
    finally:
        if daemon is not None:
            daemon.shutdown()
        lock.release()
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="shadowmount")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to daemon config (yaml)")
    p.add_argument("--data-dir", default=None, help="Directory for state, logs, lock and sentinels")
    p.add_argument("--log", default=None, help="Path to the debug log")
    p.add_argument("--once", action="store_true", help="Run the startup cycle and exit")
    p.add_argument("--interactive", action="store_true", help="Prompt on the console for repair decisions")
    p.add_argument("--verbose", action="store_true", help="Debug-level logging")
    p.add_argument("--dry-run", action="store_true", help="Log mounts, copies and registrations without doing them")

    args = p.parse_args(argv)

    cfg = load_daemon_config(args.config).with_overrides(
        **{
            "paths.data_dir": args.data_dir,
            "paths.log": args.log,
            "repair.mode": "prompt" if args.interactive else None,
            "dry_run": True if args.dry_run else None,
        }
    )
    return run(cfg, once=bool(args.once), verbose=bool(args.verbose))


if __name__ == "__main__":
    raise SystemExit(main())
