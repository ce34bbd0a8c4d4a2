"""
Pytest fixtures for the procurement reconciliation test suite.

Provides:
- Structured logging configured once per test session
- ``captured_logs`` for asserting on JSON log records
- Deterministic clock, in-memory and SQLite-backed document stores
- Change propagator and a fully wired ReconciliationSession
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Generator

import pytest

from procurement_config import get_active_config
from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_services.document_store import InMemoryDocumentStore, SqlDocumentStore
from procurement_services.event_bus import ChangePropagator
from procurement_services.keysets import KeySet
from procurement_services.session import ReconciliationSession
from tests.builders import TENANT


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procurement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, session):
            session.import_all()
            logs = captured_logs()
            assert any(r["message"] == "import_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def tenant_id() -> str:
    return TENANT


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def propagator() -> ChangePropagator:
    return ChangePropagator()


@pytest.fixture
def tombstones() -> KeySet:
    return KeySet("tombstones")


@pytest.fixture
def processed() -> KeySet:
    return KeySet("processed")


@pytest.fixture
def sql_store() -> Generator[SqlDocumentStore, None, None]:
    """SQLite-backed store on a fresh in-memory database."""
    reset_engine()
    init_engine_from_url("sqlite://")
    create_tables()
    yield SqlDocumentStore(get_session)
    drop_tables()
    reset_engine()


@pytest.fixture
def session(store, propagator, deterministic_clock, config) -> Generator[ReconciliationSession, None, None]:
    """A session over ``store`` that has not been started yet."""
    reconciliation = ReconciliationSession(
        store,
        tenant_id=TENANT,
        config=config,
        propagator=propagator,
        clock=deterministic_clock,
    )
    yield reconciliation
    reconciliation.close()

