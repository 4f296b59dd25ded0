from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .dedup import DedupCache, normalize_path
from .installer import InstallOutcome, MountInstaller
from .lib.env import AppLayout
from .lib.notify import Notifier
from .repair import RepairChannel
from .retry import RepairDesk, RetryCoordinator
from .scanner import Candidate, PathScanner
from .stability import StabilityGate
from .state_store import TitleState

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    installed: List[str] = field(default_factory=list)
    restored: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.installed) + len(self.restored) + len(self.failed)


class Pipeline:
    """One poll cycle: sweep, drain decisions, scan, gate, install, record."""

    def __init__(
        self,
        *,
        scanner: PathScanner,
        dedup: DedupCache,
        gate: StabilityGate,
        installer: MountInstaller,
        coordinator: RetryCoordinator,
        layout: AppLayout,
        channel: Optional[RepairChannel] = None,
        repair_desk: Optional[RepairDesk] = None,
        notifier: Optional[Notifier] = None,
        notify_on_remount: bool = False,
    ) -> None:
        self.scanner = scanner
        self.dedup = dedup
        self.gate = gate
        self.installer = installer
        self.coordinator = coordinator
        self.layout = layout
        self.channel = channel
        self.repair_desk = repair_desk
        self.notifier = notifier
        self.notify_on_remount = notify_on_remount
        # Candidates that failed the stability gate, keyed by normalized path.
        self.deferred: Dict[str, Candidate] = {}

    def sweep(self) -> None:
        self.dedup.sweep()
        for key in [k for k in self.deferred if not os.path.exists(k)]:
            logger.info("Dropping deferred %s: path removed", self.deferred.pop(key).title_id)

    def apply_decisions(self) -> None:
        if self.repair_desk is not None:
            self.repair_desk.collect()
        if self.channel is None:
            return
        for title_id, decision in self.channel.drain():
            skipped_path = self.coordinator.apply(title_id, decision)
            if skipped_path:
                # Parked until the bundle is removed from storage.
                self.dedup.record(skipped_path, title_id, title_id)

    def _is_settled(self, candidate: Candidate) -> bool:
        return self.layout.is_installed(candidate.title_id) and self.layout.is_data_mounted(candidate.title_id)

    def _source_moved(self, candidate: Candidate) -> bool:
        record = self.coordinator.get(candidate.title_id)
        previous = record.source_path if record.state is TitleState.DONE else None
        # No usable record (state lost or reset): fall back to the link marker.
        previous = previous or self.layout.linked_source(candidate.title_id)
        return bool(
            previous
            and normalize_path(previous) != normalize_path(candidate.path)
            and not os.path.exists(previous)
        )

    def count_new(self, candidates: Sequence[Candidate]) -> int:
        return sum(1 for c in candidates if not self.dedup.seen(c.path) and not self._is_settled(c))

    def run_cycle(self, *, force_reinstall: bool = False, candidates: Optional[Sequence[Candidate]] = None) -> CycleResult:
        self.sweep()
        self.apply_decisions()
        result = CycleResult()
        if candidates is None:
            try:
                candidates = self.scanner.scan()
            except Exception:
                logger.exception("Scan failed; retrying next cycle")
                return result
        for candidate in candidates:
            try:
                self._process(candidate, force_reinstall, result)
            except Exception as e:
                logger.exception("Unexpected error processing %s", candidate.path)
                if self.coordinator.is_in_flight(candidate.title_id):
                    self.coordinator.fail(candidate, f"unexpected error: {e}")
                result.failed.append(candidate.title_id)
        return result

    def _process(self, candidate: Candidate, force: bool, result: CycleResult) -> None:
        title_id = candidate.title_id
        if self.dedup.seen(candidate.path) and not force:
            return

        if self.coordinator.is_in_flight(title_id):
            result.skipped.append(title_id)
            return
        if self.coordinator.awaiting_repair(title_id):
            self.coordinator.request_repair(candidate)
            result.skipped.append(title_id)
            return

        installed = self.layout.is_installed(title_id)
        if installed and self.layout.is_data_mounted(title_id) and not force and not self._source_moved(candidate):
            if self.dedup.record(candidate.path, title_id, candidate.title_name):
                self.coordinator.mark_done(candidate)
            result.skipped.append(title_id)
            return

        if not self.dedup.seen(candidate.path) and not self.dedup.has_capacity():
            logger.warning("Dedup cache full; %s waits for a free slot", candidate.path)
            result.deferred.append(title_id)
            return

        if installed and not force:
            logger.info("  [ACTION] Remounting: %s", candidate.title_name)
            if self.notify_on_remount and self.notifier is not None:
                self.notifier.banner(f"Remounting: {candidate.title_name}...")
        else:
            logger.info("  [ACTION] Installing: %s", candidate.title_name)
            key = normalize_path(candidate.path)
            if key not in self.deferred and self.notifier is not None:
                self.notifier.banner(f"Installing: {candidate.title_name}...")
            if not self.gate.is_stable(candidate.path):
                self.deferred[key] = candidate
                result.deferred.append(title_id)
                return
            self.deferred.pop(key, None)

        self.coordinator.begin(candidate)
        outcome = self.installer.install(candidate, force_reinstall=force)
        if outcome.ok:
            self.coordinator.succeed(candidate, outcome.outcome.value)
            self.dedup.record(candidate.path, title_id, candidate.title_name)
            (result.installed if outcome.outcome is InstallOutcome.INSTALLED else result.restored).append(title_id)
        else:
            self.coordinator.fail(candidate, outcome.describe())
            result.failed.append(title_id)
