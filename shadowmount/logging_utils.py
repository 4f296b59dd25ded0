from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = f"{PATHS.data_dir}/debug.log"
FALLBACK_LOG_NAME = "shadowmount-debug.log"

_FORMAT = logging.Formatter(
    fmt="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)


def _open_log(candidates: list[Path]) -> tuple[Optional[logging.Handler], Optional[str]]:
    for path in candidates:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path, mode="a", encoding="utf-8"), str(path)
        except OSError:
            continue
    return None, None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    *,
    verbose: bool = False,
    console: bool = True,
) -> Optional[str]:
    """Set up the daemon's debug log and console output.

    The debug log always records everything at DEBUG so every install
    decision can be reconstructed afterwards; ``verbose`` only changes what
    reaches the console. When the data dir is not writable the log goes to
    ``shadowmount-debug.log`` in the working directory, and with no writable
    location at all the daemon runs console-only.

    Calling it again only adjusts the console level. Returns the log file in
    use, or None.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    console_level = logging.DEBUG if verbose else logging.INFO

    if getattr(root, "_shadowmount_configured", False):
        stream = getattr(root, "_shadowmount_console", None)
        if stream is not None:
            stream.setLevel(console_level)
        return getattr(root, "_shadowmount_log_path", None)

    requested = Path(log_path)
    file_handler, chosen = _open_log([requested, Path.cwd() / FALLBACK_LOG_NAME])
    if file_handler is not None:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_FORMAT)
        root.addHandler(file_handler)

    stream: Optional[logging.Handler] = None
    if console:
        stream = logging.StreamHandler()
        stream.setLevel(console_level)
        stream.setFormatter(_FORMAT)
        root.addHandler(stream)

    setattr(root, "_shadowmount_configured", True)
    setattr(root, "_shadowmount_log_path", chosen)
    setattr(root, "_shadowmount_console", stream)

    log = logging.getLogger(__name__)
    if chosen is None:
        log.warning("No writable log location (tried %s); logging to console only", requested)
    elif chosen != str(requested):
        log.warning("Cannot write %s; logging to %s instead", requested, chosen)
    else:
        log.debug("Logging to %s", chosen)
    return chosen
