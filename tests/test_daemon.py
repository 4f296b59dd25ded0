from __future__ import annotations

import json

import pytest

from shadowmount.config import DaemonConfig
from shadowmount.daemon import ProcessLock, build_daemon
from shadowmount.errors import LockContention
from shadowmount.main import EXIT_LOCK_FAILED, EXIT_OK, main, run

from .util import FakeMounter, FakeRegistrar, write_bundle


@pytest.fixture
def cfg(tmp_path, layout, games_root):
    data = tmp_path / "data"
    return DaemonConfig(
        {
            "paths": {
                "data_dir": str(data),
                "mount_root": str(layout.mount_root),
                "install_root": str(layout.install_root),
                "kill_files": [str(data / "STOP")],
            },
            "scan": {"paths": [str(games_root)]},
            "poll_interval_s": 0.05,
            "install": {"register_settle_s": 0},
        }
    )


def test_lock_is_exclusive(tmp_path):
    first = ProcessLock(tmp_path / "daemon.lock")
    second = ProcessLock(tmp_path / "daemon.lock")
    first.acquire()
    with pytest.raises(LockContention):
        second.acquire()
    first.release()
    second.acquire()
    assert second.held
    second.release()


def test_peer_running_exits_zero_without_side_effects(cfg, reset_root_logger):
    peer = ProcessLock(cfg.lock_path)
    peer.acquire()
    try:
        assert run(cfg, once=True, mounter=FakeMounter(), registrar=FakeRegistrar()) == EXIT_OK
    finally:
        peer.release()
    assert not cfg.log_path.exists()
    assert not cfg.state_dir.exists()


def test_lock_failure_exits_one(tmp_path, reset_root_logger):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    cfg = DaemonConfig({"paths": {"data_dir": str(blocker)}})
    assert run(cfg, once=True) == EXIT_LOCK_FAILED


def test_single_run_installs_and_persists(cfg, games_root, layout, reset_root_logger):
    write_bundle(games_root, "game", "PPSA01234", name="My Game", age_s=60)
    registrar = FakeRegistrar()

    assert run(cfg, once=True, mounter=FakeMounter(), registrar=registrar) == EXIT_OK

    assert registrar.calls == [("PPSA01234", str(layout.install_root) + "/")]
    record = json.loads((cfg.state_dir / "PPSA01234.json").read_text())
    assert record["state_name"] == "DONE"
    assert cfg.toast_path.read_text() == "PPSA01234|My Game|Installed"
    assert cfg.log_path.exists()
    assert (cfg.data_dir / "telemetry.jsonl").exists()


def test_kill_sentinel_stops_the_loop(cfg, reset_root_logger):
    daemon = build_daemon(cfg, mounter=FakeMounter(), registrar=FakeRegistrar())
    stop = cfg.data_dir / "STOP"
    stop.parent.mkdir(parents=True, exist_ok=True)
    stop.write_text("DIE")

    daemon.serve()

    assert daemon.stop_event.is_set()
    assert daemon.cycles == 0
    assert not stop.exists()


def test_stop_request_interrupts_wait(cfg):
    daemon = build_daemon(cfg, mounter=FakeMounter(), registrar=FakeRegistrar())
    daemon.request_stop()
    assert daemon.wait(60) is True


def test_wait_returns_false_when_interval_elapses(cfg):
    daemon = build_daemon(cfg, mounter=FakeMounter(), registrar=FakeRegistrar())
    assert daemon.wait(0.01) is False


def test_force_sentinel_reinstalls(cfg, games_root, layout):
    write_bundle(games_root, "game", "PPSA01234", age_s=60)
    mounter = FakeMounter()
    build_daemon(cfg, mounter=mounter, registrar=FakeRegistrar()).cycle()

    cfg.force_reinstall_path.write_text("")
    result = build_daemon(cfg, mounter=mounter, registrar=FakeRegistrar()).cycle()

    assert result.installed == ["PPSA01234"]
    assert cfg.force_reinstall_path.exists()


def test_main_once_with_empty_library(tmp_path, reset_root_logger):
    config = tmp_path / "config.yaml"
    config.write_text("scan:\n  paths: []\n  custom_paths_file: %s\n" % (tmp_path / "none.txt"), encoding="utf-8")
    data = tmp_path / "data"

    assert main(["--config", str(config), "--data-dir", str(data), "--once"]) == EXIT_OK
    assert (data / "debug.log").exists()


def test_force_sentinel_created_mid_run_forces_one_cycle(cfg, games_root):
    write_bundle(games_root, "game", "PPSA01234", age_s=60)
    mounter = FakeMounter()
    daemon = build_daemon(cfg, mounter=mounter, registrar=FakeRegistrar())
    assert daemon.cycle().installed == ["PPSA01234"]
    assert daemon.cycle().attempted == 0

    cfg.force_reinstall_path.write_text("")
    forced = daemon.cycle()
    quiet = daemon.cycle()

    assert forced.installed == ["PPSA01234"]
    assert quiet.attempted == 0
    assert mounter.mount_count == 2

    cfg.force_reinstall_path.unlink()
    daemon.cycle()
    cfg.force_reinstall_path.write_text("")
    assert daemon.cycle().installed == ["PPSA01234"]


def test_failing_cycle_does_not_stop_the_loop(cfg, monkeypatch):
    daemon = build_daemon(cfg, mounter=FakeMounter(), registrar=FakeRegistrar())
    calls = []

    def broken(**kwargs):
        calls.append(kwargs)
        if len(calls) >= 2:
            daemon.request_stop()
        raise RuntimeError("state dir vanished")

    monkeypatch.setattr(daemon.pipeline, "run_cycle", broken)
    daemon.serve()

    assert len(calls) == 2
