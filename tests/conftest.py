"""Pytest fixtures for sqldialog tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

_TEST_CONFIG_DIR = Path(tempfile.mkdtemp(prefix="sqldialog-test-config-"))
os.environ.setdefault("SQLDIALOG_CONFIG_DIR", str(_TEST_CONFIG_DIR))


@pytest.fixture(autouse=True)
def _in_memory_credentials():
    """Keep secrets out of the OS keyring and isolate them per test."""
    from sqldialog.domains.connections.app.credentials import (
        InMemoryCredentialsService,
        reset_credentials_service,
        set_credentials_service,
    )

    set_credentials_service(InMemoryCredentialsService())
    yield
    reset_credentials_service()


@pytest.fixture(autouse=True)
def _reset_connection_store():
    from sqldialog.domains.connections.store.connections import JSONConnectionStore

    JSONConnectionStore.reset_instance()
    yield
    JSONConnectionStore.reset_instance()


@pytest.fixture
def config_dir(tmp_path, monkeypatch) -> Path:
    """A fresh config directory for stores that read it."""
    monkeypatch.setenv("SQLDIALOG_CONFIG_DIR", str(tmp_path))
    monkeypatch.delenv("SQLDIALOG_SETTINGS_PATH", raising=False)
    return tmp_path
