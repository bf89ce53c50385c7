"""
Tests for building the coordinators from configuration.

Tests cover:
- database URL and busy timeout come from the settings
- the configured workflows are synced and drive status-change triggers
- the notification pool size comes from the settings
- planning through the runtime applies the configured default overage
- a configuration without a database is rejected
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

import radiopharm_services.runtime as runtime_module
from radiopharm_config import get_active_config
from radiopharm_config.schema import RuntimeSettings
from radiopharm_engines.planning import PlanningRequest, ProductTiming
from radiopharm_kernel.db.engine import reset_engine
from radiopharm_kernel.domain.status import OrderStatus
from radiopharm_services.notification_dispatcher import NotificationDispatcher
from radiopharm_services.runtime import build_core_runtime
from tests.fakes import REQUESTER_ID


@pytest.fixture
def configured(tmp_path):
    settings = RuntimeSettings(
        notification_max_workers=3,
        default_overage_percent=25.0,
        database_url=f"sqlite:///{tmp_path / 'runtime.db'}",
        sqlite_busy_timeout=5.0,
    )
    yield replace(get_active_config(), settings=settings)
    reset_engine()


@pytest.fixture
def recorded(monkeypatch):
    """Record the arguments the runtime passes to the engine and dispatcher."""
    calls = {}
    original_init = runtime_module.init_engine_from_url

    def init_engine(url, **kwargs):
        calls["engine"] = (url, kwargs)
        return original_init(url, **kwargs)

    class RecordingDispatcher(NotificationDispatcher):
        def __init__(self, notifier, max_workers):
            calls["max_workers"] = max_workers
            super().__init__(notifier, max_workers)

    monkeypatch.setattr(runtime_module, "init_engine_from_url", init_engine)
    monkeypatch.setattr(runtime_module, "NotificationDispatcher", RecordingDispatcher)
    return calls


class TestBuildCoreRuntime:

    def test_settings_reach_engine_and_dispatcher(
        self, configured, recorded, repository, directory, notifier,
    ):
        build_core_runtime(repository, directory, notifier, config=configured)

        url, kwargs = recorded["engine"]
        assert url == configured.database_url
        assert kwargs == {"sqlite_busy_timeout": 5.0}
        assert recorded["max_workers"] == 3

    def test_configured_workflows_drive_triggers(
        self, configured, repository, directory, notifier, deterministic_clock,
    ):
        runtime = build_core_runtime(
            repository, directory, notifier, config=configured, clock=deterministic_clock,
        )
        repository.add_order("ORD-1", OrderStatus.DRAFT)

        result = runtime.status_changes.change_order_status(
            "ORD-1", OrderStatus.SUBMITTED, REQUESTER_ID,
        )

        assert result.approval.request.workflow_name == "Order Acceptance"
        assert result.dispatch.delivered == 2
        assert notifier.recipients() == {"cs-1", "cs-2"}
        assert [r.request_id for r in runtime.approvals.pending_approvals_for("cs-1")] == [
            result.approval.request.request_id,
        ]

    def test_rebuilding_keeps_synced_definitions(
        self, configured, repository, directory, notifier, captured_logs,
    ):
        build_core_runtime(repository, directory, notifier, config=configured)
        build_core_runtime(repository, directory, notifier, config=configured)

        ready = [r for r in captured_logs() if r["message"] == "core_runtime_ready"]
        assert [r["active_workflow_count"] for r in ready] == [2, 2]
        assert ready[-1]["checksum"] == configured.checksum

    def test_planning_uses_configured_overage(
        self, configured, repository, directory, notifier,
    ):
        runtime = build_core_runtime(repository, directory, notifier, config=configured)
        delivery = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)
        product = ProductTiming(
            half_life_minutes=109.8,
            shelf_life_minutes=600,
            synthesis_minutes=45,
            qc_minutes=30,
            packaging_minutes=15,
        )

        plan = runtime.plan_production(PlanningRequest(
            requested_activity=10.0,
            delivery_time=delivery,
            travel_time_minutes=60,
            product=product,
        ))

        assert plan.overage_percent == 25.0
        assert plan.schedule.synthesis_start == delivery - timedelta(minutes=150)

    def test_missing_database_url_rejected(self, repository, directory, notifier):
        config = replace(get_active_config(), settings=RuntimeSettings(database_url=None))
        with pytest.raises(ValueError, match="database_url"):
            build_core_runtime(repository, directory, notifier, config=config)
