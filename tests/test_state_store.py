from __future__ import annotations

import json

from shadowmount.state_store import StateStore, TitleRecord, TitleState


def test_missing_record_defaults_to_pending(tmp_path):
    rec = StateStore(tmp_path).load("PPSA01234")
    assert rec.state is TitleState.PENDING
    assert rec.retry_count == 0
    assert rec.source_path is None


def test_save_and_reload(tmp_path):
    store = StateStore(tmp_path)
    store.save(TitleRecord("PPSA01234", TitleState.DONE, retry_count=2, source_path="/mnt/usb0/homebrew/game"))

    data = json.loads((tmp_path / "PPSA01234.json").read_text())
    assert data["state"] == 3
    assert data["state_name"] == "DONE"

    rec = StateStore(tmp_path).load("PPSA01234")
    assert rec.state is TitleState.DONE
    assert rec.retry_count == 2
    assert rec.source_path == "/mnt/usb0/homebrew/game"


def test_corrupt_record_defaults_to_pending(tmp_path):
    (tmp_path / "PPSA01234.json").write_text("{\"state\": ", encoding="utf-8")
    (tmp_path / "PPSA05678.json").write_text(json.dumps({"state": 42}), encoding="utf-8")
    store = StateStore(tmp_path)
    assert store.load("PPSA01234").state is TitleState.PENDING
    assert store.load("PPSA05678").state is TitleState.PENDING


def test_yaml_format(tmp_path):
    store = StateStore(tmp_path, fmt="yaml")
    store.save(TitleRecord("CUSA00001", TitleState.ERROR, retry_count=3))
    assert (tmp_path / "CUSA00001.yaml").exists()
    rec = store.load("CUSA00001")
    assert rec.state is TitleState.ERROR
    assert rec.retry_count == 3


def test_delete_is_idempotent(tmp_path):
    store = StateStore(tmp_path)
    store.save(TitleRecord("A"))
    store.save(TitleRecord("B"))
    store.delete("A")
    store.delete("missing")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["B.json"]


def test_title_id_is_sanitized_for_filenames(tmp_path):
    store = StateStore(tmp_path)
    assert store.path_for("../evil").parent == tmp_path
