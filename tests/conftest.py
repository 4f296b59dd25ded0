"""Shared fixtures for the shadowmount tests."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from shadowmount.lib.env import AppLayout

from .util import FakeMounter, FakeRegistrar


@pytest.fixture
def layout(tmp_path: Path) -> AppLayout:
    mount_root = tmp_path / "system_ex" / "app"
    install_root = tmp_path / "user" / "app"
    mount_root.mkdir(parents=True)
    install_root.mkdir(parents=True)
    return AppLayout.from_paths(mount_root, install_root)


@pytest.fixture
def games_root(tmp_path: Path) -> Path:
    root = tmp_path / "usb0" / "homebrew"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def mounter() -> FakeMounter:
    return FakeMounter()


@pytest.fixture
def registrar() -> FakeRegistrar:
    return FakeRegistrar()


@pytest.fixture
def reset_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    root.setLevel(level)
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            h.close()
    for attr in ("_shadowmount_configured", "_shadowmount_log_path", "_shadowmount_console"):
        if hasattr(root, attr):
            delattr(root, attr)
