from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, Set

from .journal import Journals, journal_event
from .repair import RepairDecision, RepairRequest
from .scanner import Candidate
from .state_store import IN_FLIGHT, StateStore, TitleRecord, TitleState

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


class RepairDesk(Protocol):
    def request(self, req: RepairRequest) -> None:
        ...

    def collect(self) -> None:
        ...


class RetryCoordinator:
    """Per-title state machine.

    PENDING -> INSTALLING -> (MOUNTED) -> DONE on success. A failure goes
    back to PENDING with one more retry counted, or to ERROR once
    ``max_retries`` consecutive failures have been seen. ERROR is only left
    through a user decision: RETRY (PENDING, counter reset) or SKIP (record
    removed).
    """

    def __init__(
        self,
        store: StateStore,
        *,
        max_retries: int = MAX_RETRIES,
        journals: Optional[Journals] = None,
        repair_desk: Optional[RepairDesk] = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.store = store
        self.max_retries = max_retries
        self.journals = journals
        self.repair_desk = repair_desk
        self._records: Dict[str, TitleRecord] = {}
        self._repair_requested: Set[str] = set()

    @property
    def records(self) -> Dict[str, TitleRecord]:
        return dict(self._records)

    def _journal(self, action: str, record: TitleRecord, *, telemetry: bool = False, **details) -> None:
        if self.journals is None:
            return
        details.setdefault("state", record.state.name)
        details.setdefault("retry_count", record.retry_count)
        ok = details.pop("ok", True)
        error = details.pop("error", None)
        self.journals.record(
            journal_event(action=action, title_id=record.title_id, ok=ok, details=details, error=error),
            telemetry=telemetry,
        )

    def _transition(self, record: TitleRecord, state: TitleState) -> None:
        logger.debug("%s: %s -> %s", record.title_id, record.state.name, state.name)
        record.state = state
        self.store.save(record)

    def get(self, title_id: str) -> TitleRecord:
        """Record for ``title_id``, loaded from disk on first use in this run."""

        record = self._records.get(title_id)
        if record is not None:
            return record
        record = self.store.load(title_id)
        if record.state in IN_FLIGHT:
            logger.warning("%s was interrupted while %s; back to PENDING", title_id, record.state.name)
            self._transition(record, TitleState.PENDING)
        self._records[title_id] = record
        return record

    def is_in_flight(self, title_id: str) -> bool:
        return self.get(title_id).state in IN_FLIGHT

    def awaiting_repair(self, title_id: str) -> bool:
        return self.get(title_id).state is TitleState.ERROR

    def begin(self, candidate: Candidate) -> TitleRecord:
        record = self.get(candidate.title_id)
        if record.state in IN_FLIGHT:
            raise ValueError(f"{candidate.title_id} already has an install in flight")
        if record.state is TitleState.ERROR:
            raise ValueError(f"{candidate.title_id} is waiting for a repair decision")
        record.source_path = candidate.path
        self._transition(record, TitleState.INSTALLING)
        self._journal("attempt", record, telemetry=True, path=candidate.path)
        return record

    def mark_mounted(self, title_id: str) -> None:
        record = self.get(title_id)
        if record.state is TitleState.INSTALLING:
            self._transition(record, TitleState.MOUNTED)
            self._journal("mounted", record)

    def succeed(self, candidate: Candidate, outcome: str) -> TitleRecord:
        record = self.get(candidate.title_id)
        record.retry_count = 0
        record.source_path = candidate.path
        self._transition(record, TitleState.DONE)
        self._repair_requested.discard(candidate.title_id)
        self._journal("installed", record, telemetry=True, outcome=outcome, path=candidate.path)
        return record

    def fail(self, candidate: Candidate, reason: str) -> TitleState:
        record = self.get(candidate.title_id)
        record.retry_count += 1
        if record.retry_count >= self.max_retries:
            self._transition(record, TitleState.ERROR)
            logger.error(
                "%s failed %d times (%s); waiting for a repair decision",
                candidate.title_id,
                record.retry_count,
                reason,
            )
            self._journal("escalated", record, telemetry=True, ok=False, error=reason)
            self.request_repair(candidate, reason)
        else:
            self._transition(record, TitleState.PENDING)
            logger.warning(
                "%s failed (%s); retry %d/%d next cycle",
                candidate.title_id,
                reason,
                record.retry_count,
                self.max_retries,
            )
            self._journal("retry", record, telemetry=True, ok=False, error=reason)
        return record.state

    def mark_done(self, candidate: Candidate) -> None:
        """Title found already registered and mounted."""

        record = self.get(candidate.title_id)
        if record.state is TitleState.DONE and record.source_path == candidate.path:
            return
        record.source_path = candidate.path
        record.retry_count = 0
        self._transition(record, TitleState.DONE)
        self._journal("already_mounted", record, path=candidate.path)

    def request_repair(self, candidate: Candidate, reason: str = "install failed") -> None:
        if candidate.title_id in self._repair_requested or self.repair_desk is None:
            return
        self._repair_requested.add(candidate.title_id)
        self.repair_desk.request(
            RepairRequest(
                title_id=candidate.title_id,
                title_name=candidate.title_name,
                source_path=candidate.path,
                reason=reason,
            )
        )

    def apply(self, title_id: str, decision: RepairDecision) -> Optional[str]:
        """Apply a user decision; returns the skipped source path for SKIP."""

        record = self.get(title_id)
        if record.state is not TitleState.ERROR:
            logger.info("Ignoring %s for %s in state %s", decision.value, title_id, record.state.name)
            return None
        self._repair_requested.discard(title_id)
        if decision is RepairDecision.RETRY:
            record.retry_count = 0
            self._transition(record, TitleState.PENDING)
            self._journal("user_retry", record, telemetry=True)
            return None

        self._journal("user_skip", record, telemetry=True)
        self.store.delete(title_id)
        del self._records[title_id]
        return record.source_path

    def flush(self) -> None:
        for record in self._records.values():
            try:
                self.store.save(record)
            except OSError as e:
                logger.error("Unable to persist %s: %s", record.title_id, e)
