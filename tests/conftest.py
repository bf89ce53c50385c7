"""
Pytest fixtures for the radiopharm core test suite.

Provides:
- An in-memory SQLite engine with all tables, shared for the session
- Per-test connection with an outer transaction rolled back at teardown;
  ``session`` and ``session_factory`` both join it through savepoints
- Fixtures wrapping the in-memory collaborator fakes from ``tests.fakes``
- Coordinator fixtures wired to the per-test session factory

Sessions from ``session`` and from ``session_factory`` share one
connection.  Use one or the other within a test, never interleaved.
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from radiopharm_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from radiopharm_kernel.domain.approval import WorkflowDefinition
from radiopharm_kernel.domain.clock import DeterministicClock
from radiopharm_kernel.domain.status import Role
from radiopharm_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from radiopharm_kernel.services.auditor_service import AuditorService
from radiopharm_kernel.services.workflow_definition_service import (
    WorkflowDefinitionService,
)
from radiopharm_services.approval_workflow import ApprovalWorkflowEngine
from radiopharm_services.status_change import StatusChangeService
from tests.fakes import (
    ADMIN_ID,
    REQUESTER_ID,
    FakeEntityRepository,
    FakeNotifier,
    FakeUserDirectory,
)


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
    Capture radiopharm_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, approval_engine):
            approval_engine.trigger_workflow(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("radiopharm_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """In-memory SQLite engine with every core table created once."""
    engine = init_engine_from_url("sqlite://")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def connection(db_engine):
    """A connection whose outer transaction is rolled back after the test."""
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    try:
        trans.rollback()
    finally:
        conn.close()


@pytest.fixture
def session_factory(connection) -> sessionmaker:
    """Session factory joined to the per-test transaction.

    A ``commit()`` inside a session from this factory releases a savepoint;
    nothing reaches the database past the test.
    """
    return sessionmaker(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine for tests that need real concurrent connections."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'core.db'}", sqlite_busy_timeout=10.0)
    create_tables(engine)
    yield engine
    reset_engine()


@pytest.fixture
def file_session_factory(file_engine) -> sessionmaker:
    return sessionmaker(bind=file_engine, expire_on_commit=False)


# =============================================================================
# Clock and kernel services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def auditor_service(session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def workflow_definition_service(session, auditor_service):
    return WorkflowDefinitionService(session, auditor_service)


# =============================================================================
# Collaborator fakes
# =============================================================================


@pytest.fixture
def directory() -> FakeUserDirectory:
    """One or more users per role; ``qc-3`` is inactive."""
    return (
        FakeUserDirectory()
        .add(ADMIN_ID, Role.ADMIN)
        .add("sales-1", Role.SALES)
        .add("cs-1", Role.CUSTOMER_SERVICE)
        .add("cs-2", Role.CUSTOMER_SERVICE)
        .add("planner-1", Role.PRODUCTION_PLANNER)
        .add("pm-1", Role.PRODUCTION_MANAGER)
        .add("qc-1", Role.QC_ANALYST)
        .add("qc-2", Role.QC_ANALYST)
        .add("qc-3", Role.QC_ANALYST, active=False)
        .add("qp-1", Role.QUALIFIED_PERSON)
        .add("logistics-1", Role.LOGISTICS)
        .add("dispensing-1", Role.DISPENSING)
        .add(REQUESTER_ID, Role.CUSTOMER)
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def repository() -> FakeEntityRepository:
    return FakeEntityRepository()


# =============================================================================
# Workflow definitions
# =============================================================================


@pytest.fixture
def register_workflow(session_factory, deterministic_clock):
    """Register a definition in its own (savepoint) transaction."""

    def _register(definition: WorkflowDefinition) -> WorkflowDefinition:
        with session_scope(session_factory) as sess:
            service = WorkflowDefinitionService(
                sess, AuditorService(sess, deterministic_clock),
            )
            return service.register(definition)

    return _register


# =============================================================================
# Coordinators
# =============================================================================


@pytest.fixture
def approval_engine(session_factory, directory, notifier, deterministic_clock):
    return ApprovalWorkflowEngine(
        directory,
        notifier,
        session_factory=session_factory,
        clock=deterministic_clock,
        max_workers=4,
    )


@pytest.fixture
def status_service(session_factory, repository, directory, notifier, deterministic_clock):
    return StatusChangeService(
        repository,
        directory,
        notifier,
        session_factory=session_factory,
        clock=deterministic_clock,
        max_workers=4,
    )
