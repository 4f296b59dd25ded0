from __future__ import annotations

import enum
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .journal import safe_name

logger = logging.getLogger(__name__)


class TitleState(enum.IntEnum):
    PENDING = 0
    INSTALLING = 1
    MOUNTED = 2
    DONE = 3
    ERROR = 4


IN_FLIGHT = frozenset({TitleState.INSTALLING, TitleState.MOUNTED})


@dataclass
class TitleRecord:
    title_id: str
    state: TitleState = TitleState.PENDING
    retry_count: int = 0
    updated_at: float = field(default_factory=time.time)
    source_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title_id": self.title_id,
            "state": int(self.state),
            "state_name": self.state.name,
            "retry_count": self.retry_count,
            "updated_at": self.updated_at,
            "source_path": self.source_path,
        }

    @classmethod
    def from_dict(cls, title_id: str, data: Dict[str, Any]) -> "TitleRecord":
        return cls(
            title_id=title_id,
            state=TitleState(int(data.get("state", 0))),
            retry_count=max(0, int(data.get("retry_count", 0))),
            updated_at=float(data.get("updated_at") or time.time()),
            source_path=data.get("source_path") or None,
        )


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _yaml():
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "YAML state requested but PyYAML is not available. Use JSON state or install PyYAML."
        ) from e
    return yaml


def load_state(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    text = path.read_text(encoding="utf-8")
    if _detect_format(path) in {"yaml", "yml"}:
        data = _yaml().safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")
    return data


def save_state(path: Path, state: Dict[str, Any]) -> None:
    """Write ``state`` atomically (temp file + rename)."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if _detect_format(path) in {"yaml", "yml"}:
        text = _yaml().safe_dump(state, sort_keys=False)
    else:
        text = json.dumps(state, indent=2, sort_keys=True) + "\n"
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


class StateStore:
    """One durable record per title id, stored as ``<state_dir>/<id>.<fmt>``."""

    def __init__(self, state_dir: Path, fmt: str = "json") -> None:
        self.state_dir = Path(state_dir)
        self.fmt = fmt

    def path_for(self, title_id: str) -> Path:
        return self.state_dir / f"{safe_name(title_id)}.{self.fmt}"

    def load(self, title_id: str) -> TitleRecord:
        p = self.path_for(title_id)
        try:
            data = load_state(p)
            if not data:
                return TitleRecord(title_id=title_id)
            return TitleRecord.from_dict(title_id, data)
        except RuntimeError:
            raise
        except Exception as e:
            # Unreadable, unparsable (json or yaml) or out-of-range record.
            logger.warning("Corrupt state for %s (%s); starting from PENDING", title_id, e)
            return TitleRecord(title_id=title_id)

    def save(self, record: TitleRecord) -> None:
        record.updated_at = time.time()
        save_state(self.path_for(record.title_id), record.to_dict())

    def delete(self, title_id: str) -> None:
        try:
            self.path_for(title_id).unlink()
        except FileNotFoundError:
            pass
