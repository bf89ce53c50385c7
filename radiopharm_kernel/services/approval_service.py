"""
radiopharm_kernel.services.approval_service -- Approval request persistence.

Responsibility:
    Persists the lifecycle of approval requests: creation at step 1,
    race-safe recording of a step decision, and the read queries for
    pending work and history.  Which step comes next, and who may decide,
    is computed by the pure approval engine and passed in.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    Flush-only: the caller owns commit and rollback.

Invariants enforced:
    - One action per (request, step): UNIQUE(request_id, step_order), and
      the action row is written before the request is mutated.
    - Compare-and-swap on the observed step: the request UPDATE only
      matches ``status = 'pending' AND current_step_order = :observed``.
    - ``current_step_order`` only grows while pending; terminal requests
      are never modified.
    - Query results are newest first with the request id as tie-breaker,
      so requests created at the same instant keep a fixed order.

Failure modes:
    - ApprovalNotFoundError if request_id not found.
    - ApprovalConflictError if the request is no longer pending at the
      observed step, or if a concurrent decision already took the step
      (IntegrityError or zero-row UPDATE).

Audit relevance:
    Every creation and decision writes an AuditEvent with the request's
    before/after state.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from radiopharm_kernel.domain.approval import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalRequest,
    ApprovalResolution,
    ApprovalStatus,
    Priority,
    WorkflowDefinition,
    WorkflowStep,
)
from radiopharm_kernel.domain.clock import Clock, SystemClock
from radiopharm_kernel.domain.interfaces import AuditLog
from radiopharm_kernel.domain.status import EntityKind, Role
from radiopharm_kernel.exceptions import (
    ApprovalConflictError,
    ApprovalNotFoundError,
)
from radiopharm_kernel.logging_config import get_logger
from radiopharm_kernel.models.approval import (
    ApprovalActionModel,
    ApprovalRequestModel,
)
from radiopharm_kernel.models.audit_event import AuditAction
from radiopharm_kernel.models.workflow import WorkflowStepModel

logger = get_logger("services.approval")

DEFAULT_LIST_LIMIT = 100

_AUDIT_ACTIONS = {
    ApprovalResolution.ADVANCED: AuditAction.APPROVAL_STEP_APPROVED,
    ApprovalResolution.APPROVED: AuditAction.APPROVAL_GRANTED,
    ApprovalResolution.REJECTED: AuditAction.APPROVAL_REJECTED,
}


def _request_state(model: ApprovalRequestModel) -> dict:
    return {
        "status": model.status,
        "current_step_order": model.current_step_order,
        "completed_at": model.completed_at,
    }


class ApprovalService:
    """Persists approval requests and their step actions.

    Contract:
        Callers pass the observed request snapshot with each decision; the
        service refuses to apply a decision to any other state.

    Non-goals:
        - Does NOT decide authorization or the next step (pure engine).
        - Does NOT send notifications (coordinator, after commit).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditLog,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def create_request(
        self,
        definition: WorkflowDefinition,
        entity_kind: EntityKind,
        entity_id: str,
        requested_by: str,
        priority: Priority = Priority.NORMAL,
        notes: str | None = None,
    ) -> ApprovalRequest:
        """Create a PENDING request positioned at step 1 of ``definition``."""
        model = ApprovalRequestModel(
            id=uuid4(),
            workflow_id=definition.workflow_id,
            workflow_name=definition.name,
            entity_kind=EntityKind(entity_kind).value,
            entity_id=str(entity_id),
            requested_by=str(requested_by),
            current_step_order=1,
            status=ApprovalStatus.PENDING.value,
            priority=Priority(priority).value,
            notes=notes,
            created_at=self._clock.now(),
        )
        self._session.add(model)
        self._session.flush()

        self._auditor.record_change(
            entity_type="ApprovalRequest",
            entity_id=str(model.id),
            action=AuditAction.APPROVAL_REQUESTED,
            actor_id=str(requested_by),
            before=None,
            after={
                "workflow_name": definition.name,
                "entity_kind": model.entity_kind,
                "entity_id": model.entity_id,
                "priority": model.priority,
                **_request_state(model),
            },
        )

        logger.info(
            "approval_request_created",
            extra={
                "request_id": str(model.id),
                "workflow_name": definition.name,
                "entity_kind": model.entity_kind,
                "entity_id": model.entity_id,
                "priority": model.priority,
            },
        )
        return model.to_dto()

    def record_decision(
        self,
        observed: ApprovalRequest,
        step: WorkflowStep,
        actor_id: str,
        actor_role: Role,
        decision: ApprovalDecision,
        resolution: ApprovalResolution,
        comments: str | None = None,
        signature: str | None = None,
    ) -> tuple[ApprovalRequest, ApprovalAction]:
        """Record ``decision`` on ``step`` and move the request per ``resolution``.

        Preconditions:
            - ``observed`` is the request as read in this transaction.
            - ``step.step_order == observed.current_step_order``.

        Raises:
            ApprovalConflictError: another decision already took this step,
                or the request left the observed state.
        """
        if (
            observed.status != ApprovalStatus.PENDING
            or step.step_order != observed.current_step_order
        ):
            raise ApprovalConflictError(
                str(observed.request_id),
                observed.status.value,
                observed.current_step_order,
                step.step_order,
            )

        now = self._clock.now()
        action_model = ApprovalActionModel(
            id=uuid4(),
            request_id=observed.request_id,
            step_order=step.step_order,
            step_name=step.step_name,
            actor_id=str(actor_id),
            actor_role=Role(actor_role).value,
            decision=ApprovalDecision(decision).value,
            comments=comments,
            signature=signature,
            decided_at=now,
        )

        # The action row goes first; a second decider on this step fails here.
        try:
            with self._session.begin_nested():
                self._session.add(action_model)
        except IntegrityError as exc:
            logger.warning(
                "approval_decision_conflict",
                extra={
                    "request_id": str(observed.request_id),
                    "step_order": step.step_order,
                    "actor_id": str(actor_id),
                    "reason": "duplicate_step_action",
                },
            )
            raise ApprovalConflictError(
                str(observed.request_id),
                observed.status.value,
                observed.current_step_order,
                step.step_order,
            ) from exc

        values: dict = {}
        if resolution == ApprovalResolution.ADVANCED:
            values["current_step_order"] = observed.current_step_order + 1
        elif resolution == ApprovalResolution.APPROVED:
            values["status"] = ApprovalStatus.APPROVED.value
            values["completed_at"] = now
        else:
            values["status"] = ApprovalStatus.REJECTED.value
            values["completed_at"] = now

        result = self._session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.id == observed.request_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                ApprovalRequestModel.current_step_order == observed.current_step_order,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._load_request_model(observed.request_id)
            self._session.refresh(current)
            logger.warning(
                "approval_decision_conflict",
                extra={
                    "request_id": str(observed.request_id),
                    "step_order": step.step_order,
                    "actor_id": str(actor_id),
                    "reason": "stale_step",
                },
            )
            raise ApprovalConflictError(
                str(observed.request_id),
                current.status,
                current.current_step_order,
                step.step_order,
            )

        model = self._load_request_model(observed.request_id)
        self._session.refresh(model)

        self._auditor.record_change(
            entity_type="ApprovalRequest",
            entity_id=str(observed.request_id),
            action=_AUDIT_ACTIONS[resolution],
            actor_id=str(actor_id),
            before={
                "status": observed.status.value,
                "current_step_order": observed.current_step_order,
                "completed_at": observed.completed_at,
            },
            after={
                **_request_state(model),
                "decision": ApprovalDecision(decision).value,
                "step_name": step.step_name,
                "actor_role": Role(actor_role).value,
            },
        )

        logger.info(
            "approval_decision_recorded",
            extra={
                "request_id": str(observed.request_id),
                "step_order": step.step_order,
                "actor_id": str(actor_id),
                "decision": ApprovalDecision(decision).value,
                "resolution": resolution.value,
                "new_status": model.status,
                "current_step_order": model.current_step_order,
            },
        )

        return model.to_dto(), action_model.to_dto()

    # Queries

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        """Get approval request by ID, actions oldest first."""
        return self._load_request_model(request_id).to_dto()

    def pending_for_role(self, role: Role) -> list[ApprovalRequest]:
        """PENDING requests whose *current* step is approved by ``role``, newest first."""
        models = self._session.execute(
            select(ApprovalRequestModel)
            .join(
                WorkflowStepModel,
                (WorkflowStepModel.workflow_id == ApprovalRequestModel.workflow_id)
                & (WorkflowStepModel.step_order == ApprovalRequestModel.current_step_order),
            )
            .where(
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                WorkflowStepModel.approver_role == Role(role).value,
            )
            .order_by(ApprovalRequestModel.created_at.desc(), ApprovalRequestModel.id.desc())
        ).scalars().all()
        return [m.to_dto() for m in models]

    def history_for(self, entity_kind: EntityKind, entity_id: str) -> list[ApprovalRequest]:
        """All requests for an entity, newest first; each request's actions oldest first."""
        models = self._session.execute(
            select(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.entity_kind == EntityKind(entity_kind).value,
                ApprovalRequestModel.entity_id == str(entity_id),
            )
            .order_by(ApprovalRequestModel.created_at.desc(), ApprovalRequestModel.id.desc())
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_requests(
        self,
        status: ApprovalStatus | str | None = None,
        entity_kind: EntityKind | str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[ApprovalRequest]:
        """Requests filtered by status and entity kind, newest first, at most ``limit``."""
        query = select(ApprovalRequestModel)
        if status is not None:
            query = query.where(ApprovalRequestModel.status == ApprovalStatus(status).value)
        if entity_kind is not None:
            query = query.where(
                ApprovalRequestModel.entity_kind == EntityKind(entity_kind).value,
            )
        models = self._session.execute(
            query.order_by(ApprovalRequestModel.created_at.desc(), ApprovalRequestModel.id.desc())
            .limit(limit)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def _load_request_model(self, request_id: UUID) -> ApprovalRequestModel:
        """Load request model by id, raise if not found."""
        model = self._session.get(ApprovalRequestModel, request_id)
        if model is None:
            raise ApprovalNotFoundError(str(request_id))
        return model
