from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
# Exit status reported for a command that was killed on timeout (as timeout(1) does).
TIMEOUT_RETURNCODE = 124


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False


def render_argv(template: Sequence[str], **values: str) -> list[str]:
    """Fill ``{name}`` placeholders in a configured argv template."""

    return [str(part).format(**values) for part in template]


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    timeout_s: float | None = DEFAULT_TIMEOUT_S,
    dry_run: bool = False,
) -> CmdResult:
    """Run a platform tool (mount, umount, register, banner).

    A hung tool must not stall the poll loop: after ``timeout_s`` the child is
    killed and the result carries ``TIMEOUT_RETURNCODE``. With ``check`` any
    non-zero status raises RuntimeError.
    """

    argv_list = list(argv)
    shown = " ".join(shlex.quote(a) for a in argv_list)
    if dry_run:
        logger.info("DRY-RUN %s", shown)
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    logger.debug("CMD %s", shown)
    try:
        p = subprocess.run(argv_list, text=True, capture_output=True, timeout=timeout_s)
        result = CmdResult(argv_list, p.returncode, p.stdout or "", p.stderr or "")
    except subprocess.TimeoutExpired as e:
        logger.warning("Timed out after %ss: %s", timeout_s, shown)
        result = CmdResult(
            argv_list,
            TIMEOUT_RETURNCODE,
            _text(e.stdout),
            _text(e.stderr),
            timed_out=True,
        )

    if result.returncode != 0:
        logger.debug("rc=%s %s: %s", result.returncode, argv_list[0], result.stderr.strip())

    if check and result.returncode != 0:
        reason = "timed out" if result.timed_out else f"exit {result.returncode}"
        raise RuntimeError(f"{shown} failed ({reason}): {result.stderr.strip()}")
    return result


def _text(out: str | bytes | None) -> str:
    if out is None:
        return ""
    return out.decode("utf-8", errors="replace") if isinstance(out, bytes) else out
