"""
Pytest configuration and fixtures.

This module provides:
1. Environment isolation for settings-driven code
2. Memory and filesystem snapshot stores
3. Registries wired to those stores
"""

import os

import pytest

from dumbometrics import (
    FileSnapshotStore,
    MemorySnapshotStore,
    MetricsRegistry,
    PersistenceFailure,
)

# Environment variables read by config.settings
_ENV_PREFIXES = ("DUMBOMETRICS_", "METRICS_", "LOG_")


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "http: starts a real HTTP server on a local ephemeral port"
    )


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Drop configuration variables inherited from the calling shell."""
    for key in list(os.environ):
        if key.upper().startswith(_ENV_PREFIXES) or key.upper() == "ENV":
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def memory_store():
    return MemorySnapshotStore()


@pytest.fixture
def file_store(tmp_path):
    return FileSnapshotStore(tmp_path / "cache", lock_timeout=2.0)


@pytest.fixture
def registry(memory_store):
    """Registry with the "test" namespace over an in-memory store."""
    return MetricsRegistry(memory_store, namespace="test")


@pytest.fixture
def file_registry(file_store):
    return MetricsRegistry(file_store, namespace="test")


class FailingStore(MemorySnapshotStore):
    """Store whose writes fail once fail_writes is set."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def save(self, snapshot):
        if self.fail_writes:
            raise PersistenceFailure("disk full")
        super().save(snapshot)


@pytest.fixture
def failing_store():
    return FailingStore()
