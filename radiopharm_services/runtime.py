"""
radiopharm_services.runtime -- Build the core's coordinators from configuration.

Responsibility:
    The production entrypoint.  Loads the active configuration, opens the
    database it names, syncs the configured approval workflows and wires
    the coordinators with the configured notification pool size.  Planning
    calls made through the runtime use the configured default overage.

Architecture position:
    Services layer.  The only module that combines ``radiopharm_config``
    with the kernel's database layer; the kernel never imports config.

Invariants enforced:
    - ``database_url``, ``sqlite_busy_timeout``, ``notification_max_workers``
      and ``default_overage_percent`` are read from ``RuntimeSettings``;
      no coordinator built here falls back to its own default.
    - Both coordinators share one dispatcher and one session factory.

Failure modes:
    - ValueError when the configuration names no database.
    - FileNotFoundError / ValueError from ``get_active_config``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from radiopharm_config import CoreConfiguration, get_active_config
from radiopharm_engines.planning import PlanningRequest, ProductionPlan, plan_production
from radiopharm_kernel.db.engine import create_tables, init_engine_from_url
from radiopharm_kernel.domain.clock import Clock, SystemClock
from radiopharm_kernel.domain.interfaces import EntityRepository, Notifier, UserDirectory
from radiopharm_kernel.logging_config import get_logger
from radiopharm_services.approval_workflow import ApprovalWorkflowEngine
from radiopharm_services.notification_dispatcher import NotificationDispatcher
from radiopharm_services.status_change import StatusChangeService

logger = get_logger("services.runtime")


@dataclass(frozen=True)
class CoreRuntime:
    """The configured coordinators for one process."""

    config: CoreConfiguration
    session_factory: sessionmaker[Session]
    approvals: ApprovalWorkflowEngine
    status_changes: StatusChangeService

    def plan_production(self, request: PlanningRequest) -> ProductionPlan:
        """Plan with the configured default overage unless the product sets one."""
        return plan_production(
            request=request,
            default_overage_percent=self.config.default_overage_percent,
        )


def build_core_runtime(
    repository: EntityRepository,
    directory: UserDirectory,
    notifier: Notifier,
    *,
    config: CoreConfiguration | None = None,
    config_dir: Path | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> CoreRuntime:
    """Build the coordinators from configuration (single entrypoint for production).

    Args:
        repository: Order and batch status storage.
        directory: User and role lookups.
        notifier: Delivery channel for post-commit notifications.
        config: An already loaded configuration; loaded from
            ``config_dir`` (or the default set) when omitted.
        config_dir: Configuration set directory passed to
            ``get_active_config``.
        clock: Optional clock; default SystemClock.
        create_schema: Create missing core tables before syncing workflows.
    """
    config = config or get_active_config(config_dir)
    settings = config.settings
    if not settings.database_url:
        raise ValueError(f"Configuration {config.config_id} names no database_url")

    engine = init_engine_from_url(
        settings.database_url,
        sqlite_busy_timeout=settings.sqlite_busy_timeout,
    )
    if create_schema:
        create_tables(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    clock = clock or SystemClock()
    dispatcher = NotificationDispatcher(notifier, settings.notification_max_workers)
    approvals = ApprovalWorkflowEngine(
        directory, session_factory=session_factory, dispatcher=dispatcher, clock=clock,
    )
    status_changes = StatusChangeService(
        repository, directory, session_factory=session_factory, dispatcher=dispatcher, clock=clock,
    )
    active = approvals.sync_definitions(config.workflows)

    logger.info(
        "core_runtime_ready",
        extra={
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "active_workflow_count": len(active),
            "notification_max_workers": settings.notification_max_workers,
            "default_overage_percent": settings.default_overage_percent,
        },
    )
    return CoreRuntime(
        config=config,
        session_factory=session_factory,
        approvals=approvals,
        status_changes=status_changes,
    )
