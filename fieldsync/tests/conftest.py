"""
fieldsync/tests/conftest.py - Shared pytest fixtures for the fieldsync suite.

Fixtures:
    store         Fresh InMemoryRecordStore per test.
    flaky_store   Factory for an in-memory store whose record writes start
                  failing after a configurable number of successful writes.
    pg_dsn        PostgreSQL DSN from FIELDSYNC_TEST_DSN (integration only).
"""

import os

import pytest

from fieldsync.storage.memory import InMemoryRecordStore


# ── Pytest configuration hooks ────────────────────────────────────────────────

def pytest_configure(config):
    """Register the integration marker."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that need a live PostgreSQL server (deselected by default, "
        "pass --run-integration or -m integration to enable)",
    )


def pytest_addoption(parser):
    """Add --run-integration CLI flag to enable integration tests."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a live PostgreSQL server.",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed or -m integration is used."""
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        return

    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration test -- pass --run-integration or -m integration to run"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ── Stores ────────────────────────────────────────────────────────────────────

class FlakyRecordStore(InMemoryRecordStore):
    """
    In-memory store that raises on record writes once `fail_after` writes
    have succeeded. fail_after=None never fails.
    """

    def __init__(self, fail_after=None):
        super().__init__()
        self.fail_after = fail_after
        self.writes = 0

    def _tick(self):
        self.writes += 1
        if self.fail_after is not None and self.writes > self.fail_after:
            raise RuntimeError("disk full")

    def insert_record(self, project_id, record):
        self._tick()
        super().insert_record(project_id, record)

    def update_record_fields(self, project_id, record_id, fields):
        self._tick()
        super().update_record_fields(project_id, record_id, fields)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def flaky_store():
    """Return the FlakyRecordStore class so tests choose fail_after."""
    return FlakyRecordStore


@pytest.fixture(scope="session")
def pg_dsn():
    """PostgreSQL DSN from FIELDSYNC_TEST_DSN; skips when unset."""
    dsn = os.environ.get("FIELDSYNC_TEST_DSN")
    if not dsn:
        pytest.skip("FIELDSYNC_TEST_DSN not set")
    return dsn
