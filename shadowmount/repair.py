"""User repair decisions for titles that exhausted their retries.

A title in ERROR waits for one of two decisions, delivered through a
``RepairChannel`` queue:

- ``retry``: back to PENDING with a fresh retry budget
- ``skip``: the title record is dropped and the bundle is left alone

Decisions come from files dropped in the repair directory
(``<id>.retry`` / ``<id>.skip``) or, in interactive mode, from a console
prompt that blocks until answered.
"""

from __future__ import annotations

import enum
import logging
import queue
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .journal import safe_name
from .lib.notify import Notifier

logger = logging.getLogger(__name__)


class RepairDecision(str, enum.Enum):
    RETRY = "retry"
    SKIP = "skip"


@dataclass(frozen=True)
class RepairRequest:
    title_id: str
    title_name: str
    source_path: str
    reason: str


class RepairChannel:
    def __init__(self) -> None:
        self._decisions: "queue.Queue[Tuple[str, RepairDecision]]" = queue.Queue()

    def submit(self, title_id: str, decision: RepairDecision) -> None:
        logger.info("Repair decision for %s: %s", title_id, decision.value)
        self._decisions.put((title_id, decision))

    def drain(self) -> List[Tuple[str, RepairDecision]]:
        out: List[Tuple[str, RepairDecision]] = []
        while True:
            try:
                out.append(self._decisions.get_nowait())
            except queue.Empty:
                return out


class FileRepairDesk:
    """Publishes requests as ``<id>.pending`` files and collects answer files."""

    def __init__(self, repair_dir: Path, channel: RepairChannel, notifier: Optional[Notifier] = None) -> None:
        self.repair_dir = Path(repair_dir)
        self.channel = channel
        self.notifier = notifier
        self._ids: dict = {}

    def request(self, req: RepairRequest) -> None:
        stem = safe_name(req.title_id)
        self._ids[stem] = req.title_id
        self.repair_dir.mkdir(parents=True, exist_ok=True)
        (self.repair_dir / f"{stem}.pending").write_text(
            f"{req.title_id}|{req.title_name}|{req.source_path}|{req.reason}\n"
            f"Create {stem}.retry or {stem}.skip in this directory to decide.\n",
            encoding="utf-8",
        )
        logger.warning("%s needs a repair decision: %s", req.title_id, req.reason)
        if self.notifier is not None:
            self.notifier.banner(f"Install failed: {req.title_name}. Repair needed.")

    def collect(self) -> None:
        if not self.repair_dir.is_dir():
            return
        for decision in RepairDecision:
            for answer in sorted(self.repair_dir.glob(f"*.{decision.value}")):
                stem = answer.stem
                title_id = self._ids.pop(stem, stem)
                for leftover in (answer, self.repair_dir / f"{stem}.pending"):
                    try:
                        leftover.unlink()
                    except FileNotFoundError:
                        pass
                self.channel.submit(title_id, decision)


class ConsoleRepairDesk:
    """Blocking prompt; the whole loop waits on the answer."""

    def __init__(self, channel: RepairChannel, ask: Callable[[str], str] = input) -> None:
        self.channel = channel
        self._ask = ask

    def request(self, req: RepairRequest) -> None:
        prompt = f"{req.title_name} ({req.title_id}) failed: {req.reason}. [r]etry or [s]kip? "
        while True:
            try:
                answer = self._ask(prompt).strip().lower()
            except EOFError:
                logger.warning("No console for repair of %s; leaving it in ERROR", req.title_id)
                return
            decision = _parse_answer(answer)
            if decision is not None:
                self.channel.submit(req.title_id, decision)
                return

    def collect(self) -> None:
        return None


def _parse_answer(answer: str) -> Optional[RepairDecision]:
    if answer in {"r", "retry"}:
        return RepairDecision.RETRY
    if answer in {"s", "skip"}:
        return RepairDecision.SKIP
    return None
