from __future__ import annotations

import json

import pytest

from shadowmount.journal import Journals
from shadowmount.repair import RepairDecision
from shadowmount.retry import RetryCoordinator
from shadowmount.scanner import Candidate
from shadowmount.state_store import StateStore, TitleRecord, TitleState


class RecordingDesk:
    def __init__(self) -> None:
        self.requests = []

    def request(self, req) -> None:
        self.requests.append(req)

    def collect(self) -> None:
        return None


@pytest.fixture
def desk():
    return RecordingDesk()


@pytest.fixture
def coordinator(tmp_path, desk):
    return RetryCoordinator(StateStore(tmp_path / "state"), journals=Journals.under(tmp_path), repair_desk=desk)


CAND = Candidate(path="/mnt/usb0/homebrew/game", title_id="PPSA01234", title_name="Game")


def test_success_path(coordinator, tmp_path):
    coordinator.begin(CAND)
    assert coordinator.get(CAND.title_id).state is TitleState.INSTALLING
    coordinator.mark_mounted(CAND.title_id)
    assert coordinator.get(CAND.title_id).state is TitleState.MOUNTED
    coordinator.succeed(CAND, "installed")

    stored = StateStore(tmp_path / "state").load(CAND.title_id)
    assert stored.state is TitleState.DONE
    assert stored.source_path == CAND.path


def test_failures_retry_then_escalate(coordinator, desk):
    for expected in (1, 2):
        coordinator.begin(CAND)
        assert coordinator.fail(CAND, "register_failed") is TitleState.PENDING
        assert coordinator.get(CAND.title_id).retry_count == expected
    assert desk.requests == []

    coordinator.begin(CAND)
    assert coordinator.fail(CAND, "register_failed") is TitleState.ERROR
    assert len(desk.requests) == 1
    assert desk.requests[0].reason == "register_failed"

    with pytest.raises(ValueError):
        coordinator.begin(CAND)
    coordinator.request_repair(CAND)
    assert len(desk.requests) == 1


def test_success_resets_retry_count(coordinator):
    coordinator.begin(CAND)
    coordinator.fail(CAND, "mount_failed")
    coordinator.begin(CAND)
    coordinator.succeed(CAND, "installed")
    assert coordinator.get(CAND.title_id).retry_count == 0


def test_user_retry_resets_budget(coordinator):
    for _ in range(3):
        coordinator.begin(CAND)
        coordinator.fail(CAND, "copy_failed")
    assert coordinator.apply(CAND.title_id, RepairDecision.RETRY) is None
    rec = coordinator.get(CAND.title_id)
    assert rec.state is TitleState.PENDING
    assert rec.retry_count == 0


def test_user_skip_removes_record(coordinator, tmp_path):
    for _ in range(3):
        coordinator.begin(CAND)
        coordinator.fail(CAND, "copy_failed")
    assert coordinator.apply(CAND.title_id, RepairDecision.SKIP) == CAND.path
    assert not StateStore(tmp_path / "state").path_for(CAND.title_id).exists()
    assert CAND.title_id not in coordinator.records


def test_decisions_outside_error_are_ignored(coordinator):
    coordinator.begin(CAND)
    coordinator.succeed(CAND, "installed")
    assert coordinator.apply(CAND.title_id, RepairDecision.SKIP) is None
    assert coordinator.get(CAND.title_id).state is TitleState.DONE


def test_interrupted_attempt_is_reset_on_load(tmp_path):
    store = StateStore(tmp_path / "state")
    store.save(TitleRecord(CAND.title_id, TitleState.INSTALLING, retry_count=1))
    coordinator = RetryCoordinator(store)
    rec = coordinator.get(CAND.title_id)
    assert rec.state is TitleState.PENDING
    assert rec.retry_count == 1
    assert not coordinator.is_in_flight(CAND.title_id)


def test_journals_record_attempts_and_decisions(coordinator, tmp_path):
    for _ in range(3):
        coordinator.begin(CAND)
        coordinator.fail(CAND, "mount_failed")
    coordinator.apply(CAND.title_id, RepairDecision.RETRY)

    telemetry = [json.loads(l) for l in (tmp_path / "telemetry.jsonl").read_text().splitlines()]
    actions = [e["action"] for e in telemetry]
    assert actions == ["attempt", "retry", "attempt", "retry", "attempt", "escalated", "user_retry"]
    assert (tmp_path / "journal" / "PPSA01234.jsonl").exists()


def test_max_retries_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        RetryCoordinator(StateStore(tmp_path), max_retries=0)
