from __future__ import annotations

import json

import pytest

from shadowmount import metadata
from shadowmount.errors import MetadataError
from shadowmount.metadata import (
    MetadataExtractor,
    name_from_default,
    name_from_id,
    name_from_locale,
    repair_drm_type,
)

from .util import write_bundle


def test_extracts_id_and_locale_name(games_root):
    b = write_bundle(games_root, "game", "PPSA01234", name="Default Name", locale_name="English Name")
    assert MetadataExtractor().extract(b) == ("PPSA01234", "English Name")


def test_falls_back_to_secondary_id_key(games_root):
    raw = json.dumps({"title_id": "CUSA07777", "titleName": "Old Style"})
    b = write_bundle(games_root, "game", raw=raw)
    assert MetadataExtractor().extract(b) == ("CUSA07777", "Old Style")


def test_primary_id_key_wins(games_root):
    raw = json.dumps({"title_id": "CUSA00002", "titleId": "CUSA00001"})
    b = write_bundle(games_root, "game", raw=raw)
    assert MetadataExtractor().extract(b)[0] == "CUSA00001"


def test_name_defaults_to_id(games_root):
    b = write_bundle(games_root, "game", "CUSA00001", name=None)
    assert MetadataExtractor().extract(b) == ("CUSA00001", "CUSA00001")


def test_default_name_without_locale(games_root):
    b = write_bundle(games_root, "game", "PPSA00010", name="Plain")
    assert MetadataExtractor().extract(b) == ("PPSA00010", "Plain")


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "{not json",
        json.dumps({"titleName": "No Id"}),
        json.dumps(["PPSA01234"]),
        json.dumps({"titleId": ""}),
    ],
)
def test_unusable_manifest_is_not_found(games_root, raw):
    b = write_bundle(games_root, "game", raw=raw)
    assert MetadataExtractor().extract(b) is None


def test_missing_manifest_is_not_found(games_root):
    (games_root / "empty").mkdir()
    assert MetadataExtractor().extract(games_root / "empty") is None
    with pytest.raises(MetadataError):
        MetadataExtractor().read(games_root / "empty")


def test_name_lookup_chain_is_independently_testable():
    doc = {"titleId": "X", "titleName": "Default", "localizedParameters": {"en-US": {"titleName": "Locale"}}}
    assert name_from_locale(doc, "X") == "Locale"
    assert name_from_default({"titleName": "Default"}, "X") == "Default"
    assert name_from_locale({"titleName": "Default"}, "X") is None
    assert name_from_id({}, "X") == "X"


def test_drm_type_is_repaired_in_place(games_root):
    b = write_bundle(games_root, "game", "PPSA01234", drm_type="upgradable")
    manifest = b / "sce_sys" / "param.json"
    before = manifest.read_text()

    assert MetadataExtractor().extract(b)[0] == "PPSA01234"

    after = manifest.read_text()
    assert '"applicationDrmType": "standard"' in after
    assert after.replace("standard", "upgradable", 1) == before
    assert repair_drm_type(manifest) is False


def test_drm_repair_can_be_disabled(games_root):
    b = write_bundle(games_root, "game", "PPSA01234", drm_type="upgradable")
    MetadataExtractor(fix_drm_type=False).extract(b)
    assert "upgradable" in (b / "sce_sys" / "param.json").read_text()


def test_drm_repair_failure_does_not_block_extraction(games_root, monkeypatch):
    def boom(_path):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(metadata, "repair_drm_type", boom)
    b = write_bundle(games_root, "game", "PPSA01234", drm_type="upgradable")
    assert MetadataExtractor().extract(b) == ("PPSA01234", "Test Game")


@pytest.mark.parametrize("title_id", ["../../escaped", "..", ".", "PPSA/01234", "PPSA 01234", "X" * 33])
def test_ids_that_are_not_a_single_directory_name_are_rejected(games_root, title_id):
    b = write_bundle(games_root, "game", title_id)
    assert MetadataExtractor().extract(b) is None
    with pytest.raises(MetadataError):
        MetadataExtractor().read(b)


def test_unreadable_manifest_is_not_found(games_root, monkeypatch):
    b = write_bundle(games_root, "game", "PPSA01234")

    def denied(_manifest):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(metadata, "load_manifest", denied)
    assert MetadataExtractor().extract(b) is None
