from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .command import render_argv, run_cmd

logger = logging.getLogger(__name__)


@dataclass
class Notifier:
    """Notification side-channel.

    - ``toast`` overwrites a single ``{title_id}|{title_name}|{message}`` line
      that an external presentation layer picks up.
    - ``banner`` sends a short native notification through a configured
      command; without one it is only logged.
    """

    toast_path: Path
    banner_argv: Optional[Sequence[str]] = None
    dry_run: bool = False

    def toast(self, title_id: str, title_name: str, message: str) -> None:
        line = f"{title_id}|{title_name}|{message}"
        if self.dry_run:
            logger.info("Would write toast %s", line)
            return
        try:
            self.toast_path.parent.mkdir(parents=True, exist_ok=True)
            self.toast_path.write_text(line, encoding="utf-8")
        except OSError as e:
            logger.warning("Unable to write toast file %s: %s", self.toast_path, e)

    def banner(self, message: str) -> None:
        logger.info("NOTIFY: %s", message)
        if not self.banner_argv:
            return
        try:
            run_cmd(render_argv(self.banner_argv, message=message), check=False, dry_run=self.dry_run)
        except OSError as e:
            logger.warning("Banner delivery failed: %s", e)
