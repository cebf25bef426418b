"""Common test fixtures for the TypeWriter notes core."""

import tempfile
from pathlib import Path

import pytest

from typewriter.config import config
from typewriter.observability import MetricsCollector
from typewriter.rpc.boundary import NotesRpc
from typewriter.storage.engine import StorageEngine
from typewriter.storage.note_store import NoteStore


@pytest.fixture
def data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def test_config(data_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "data_dir", data_dir)
    monkeypatch.setattr(config, "debounce_ms", 50)
    yield config


@pytest.fixture
def engine(test_config):
    """Create an initialized storage engine in the temp data dir."""
    engine = StorageEngine(test_config.get_database_path())
    engine.initialize()
    yield engine
    engine.close()


@pytest.fixture
def store(engine):
    """Create a note store over the test engine."""
    return NoteStore(engine)


@pytest.fixture
def collector():
    """In-memory metrics collector."""
    return MetricsCollector()


@pytest.fixture
def rpc(test_config, collector):
    """Create a boundary over an unopened engine in the temp data dir."""
    boundary = NotesRpc(
        StorageEngine(test_config.get_database_path()), collector=collector
    )
    yield boundary
    boundary.close()


@pytest.fixture
def ready_rpc(rpc):
    """Boundary that has already been initialized."""
    assert rpc.initialize() == {"success": True}
    return rpc
