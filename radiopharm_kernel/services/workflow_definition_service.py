"""
radiopharm_kernel.services.workflow_definition_service -- Workflow definitions.

Responsibility:
    Registers, deactivates and lists approval workflow definitions, and
    brings the stored definitions in line with the configured set.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    Flush-only: the caller owns commit and rollback.

Invariants enforced:
    - Steps are contiguous from 1 in the order given.
    - At most one active definition per (entity kind, trigger status):
      checked here for a typed error, and backed by a partial unique index.
    - Definitions are never edited in place; a changed definition is a new
      row and the old one is deactivated.

Failure modes:
    - WorkflowDefinitionError for non-contiguous steps or a second active
      definition on the same trigger.
    - WorkflowDefinitionError when deactivating an unknown definition.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from radiopharm_kernel.domain.approval import WorkflowDefinition
from radiopharm_kernel.domain.interfaces import AuditLog
from radiopharm_kernel.domain.status import EntityKind
from radiopharm_kernel.exceptions import WorkflowDefinitionError
from radiopharm_kernel.logging_config import get_logger
from radiopharm_kernel.models.audit_event import AuditAction
from radiopharm_kernel.models.workflow import WorkflowDefinitionModel

logger = get_logger("services.workflow_definitions")

SYSTEM_ACTOR = "system"


def _signature(definition: WorkflowDefinition) -> tuple:
    """Fields that make two definitions the same workflow."""
    return (
        definition.name,
        EntityKind(definition.entity_kind).value,
        getattr(definition.trigger_status, "value", definition.trigger_status),
        tuple(
            (s.step_order, s.step_name, s.approver_role.value) for s in definition.steps
        ),
    )


class WorkflowDefinitionService:
    """Stores workflow definitions.

    Contract:
        ``list_active`` returns DTOs; callers never see ORM rows.
    """

    def __init__(self, session: Session, auditor: AuditLog | None = None) -> None:
        self._session = session
        self._auditor = auditor

    def register(
        self,
        definition: WorkflowDefinition,
        actor_id: str = SYSTEM_ACTOR,
    ) -> WorkflowDefinition:
        """Store a new definition and return it with its assigned id."""
        orders = [s.step_order for s in definition.steps]
        if orders != list(range(1, len(orders) + 1)):
            raise WorkflowDefinitionError(
                definition.name,
                f"step orders must be contiguous from 1, got {orders}",
            )

        trigger = getattr(definition.trigger_status, "value", definition.trigger_status)
        if definition.is_active:
            clash = self._active_model_for(definition.entity_kind, trigger)
            if clash is not None:
                raise WorkflowDefinitionError(
                    definition.name,
                    f"workflow '{clash.name}' is already active for "
                    f"{EntityKind(definition.entity_kind).value}/{trigger}",
                )

        model = WorkflowDefinitionModel.from_dto(definition)
        model.trigger_status = trigger
        self._session.add(model)
        self._session.flush()

        if self._auditor is not None:
            self._auditor.record_change(
                entity_type="WorkflowDefinition",
                entity_id=str(model.id),
                action=AuditAction.WORKFLOW_REGISTERED,
                actor_id=actor_id,
                before=None,
                after={
                    "name": model.name,
                    "entity_kind": model.entity_kind,
                    "trigger_status": model.trigger_status,
                    "steps": [s.approver_role for s in model.steps],
                },
            )

        logger.info(
            "workflow_registered",
            extra={
                "workflow_id": str(model.id),
                "workflow_name": model.name,
                "entity_kind": model.entity_kind,
                "trigger_status": model.trigger_status,
                "step_count": len(model.steps),
            },
        )
        return model.to_dto()

    def deactivate(self, workflow_id: UUID, actor_id: str = SYSTEM_ACTOR) -> WorkflowDefinition:
        model = self._session.get(WorkflowDefinitionModel, workflow_id)
        if model is None:
            raise WorkflowDefinitionError(str(workflow_id), "no such workflow")
        if model.is_active:
            model.is_active = False
            self._session.flush()
            if self._auditor is not None:
                self._auditor.record_change(
                    entity_type="WorkflowDefinition",
                    entity_id=str(model.id),
                    action=AuditAction.WORKFLOW_DEACTIVATED,
                    actor_id=actor_id,
                    before={"is_active": True},
                    after={"is_active": False},
                )
            logger.info(
                "workflow_deactivated",
                extra={"workflow_id": str(model.id), "workflow_name": model.name},
            )
        return model.to_dto()

    def get(self, workflow_id: UUID) -> WorkflowDefinition | None:
        model = self._session.get(WorkflowDefinitionModel, workflow_id)
        return model.to_dto() if model is not None else None

    def list_active(
        self,
        entity_kind: EntityKind | None = None,
        trigger_status: str | None = None,
    ) -> list[WorkflowDefinition]:
        """Active definitions, optionally narrowed to one trigger."""
        stmt = select(WorkflowDefinitionModel).where(
            WorkflowDefinitionModel.is_active.is_(True),
        )
        if entity_kind is not None:
            stmt = stmt.where(
                WorkflowDefinitionModel.entity_kind == EntityKind(entity_kind).value,
            )
        if trigger_status is not None:
            stmt = stmt.where(
                WorkflowDefinitionModel.trigger_status
                == getattr(trigger_status, "value", trigger_status),
            )
        stmt = stmt.order_by(WorkflowDefinitionModel.name)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def sync_from_config(
        self,
        definitions: tuple[WorkflowDefinition, ...] | list[WorkflowDefinition],
        actor_id: str = SYSTEM_ACTOR,
    ) -> list[WorkflowDefinition]:
        """Make the active set match ``definitions``.

        Unchanged definitions are kept, changed ones are replaced (old row
        deactivated, new row registered) and active rows missing from the
        configuration are deactivated.

        Returns:
            The active definitions after the sync.
        """
        wanted = {_signature(d): d for d in definitions if d.is_active}
        current = self.list_active()

        kept: set[tuple] = set()
        for existing in current:
            sig = _signature(existing)
            if sig in wanted and sig not in kept:
                kept.add(sig)
            else:
                self.deactivate(existing.workflow_id, actor_id)

        for sig, definition in wanted.items():
            if sig not in kept:
                self.register(definition, actor_id)

        active = self.list_active()
        logger.info(
            "workflow_definitions_synced",
            extra={
                "configured": len(wanted),
                "kept": len(kept),
                "active": len(active),
            },
        )
        return active

    def _active_model_for(
        self,
        entity_kind: EntityKind,
        trigger_status: str | None,
    ) -> WorkflowDefinitionModel | None:
        stmt = select(WorkflowDefinitionModel).where(
            WorkflowDefinitionModel.is_active.is_(True),
            WorkflowDefinitionModel.entity_kind == EntityKind(entity_kind).value,
        )
        if trigger_status is None:
            stmt = stmt.where(WorkflowDefinitionModel.trigger_status.is_(None))
        else:
            stmt = stmt.where(WorkflowDefinitionModel.trigger_status == trigger_status)
        return self._session.execute(stmt).scalars().first()
