from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def safe_name(title_id: str) -> str:
    """Filesystem-safe file stem for a title id."""

    return _UNSAFE.sub("_", title_id) or "_"


@dataclass(frozen=True)
class JsonlLog:
    """Append-only JSON-lines log."""

    path: Path

    def log(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("ts", time.time())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event, sort_keys=True) + "\n")
        except OSError as e:
            # Journals are auxiliary; the debug log still has the event.
            logger.warning("Unable to append to %s: %s", self.path, e)


def journal_event(
    *,
    action: str,
    title_id: str,
    ok: bool = True,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    e: Dict[str, Any] = {"action": action, "title_id": title_id, "ok": ok}
    if details:
        e["details"] = details
    if error:
        e["error"] = error
    return e


@dataclass(frozen=True)
class Journals:
    """Telemetry log of attempts/retries/decisions plus one journal per title."""

    telemetry: JsonlLog
    titles_dir: Path

    @classmethod
    def under(cls, data_dir: Path) -> "Journals":
        return cls(telemetry=JsonlLog(data_dir / "telemetry.jsonl"), titles_dir=data_dir / "journal")

    def for_title(self, title_id: str) -> JsonlLog:
        return JsonlLog(self.titles_dir / f"{safe_name(title_id)}.jsonl")

    def record(self, event: Dict[str, Any], *, telemetry: bool = False) -> None:
        self.for_title(str(event.get("title_id") or "_")).log(event)
        if telemetry:
            self.telemetry.log(event)
