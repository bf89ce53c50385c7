"""
radiopharm_services.approval_workflow -- Approval Workflow Engine.

Responsibility:
    Runs multi-step approval workflows for orders and batches: opens a
    request when a configured trigger status is reached, applies approver
    decisions step by step, and answers "what is waiting for me" and
    "what happened to this entity".  Thin coordinator -- delegates rule
    evaluation to the pure approval engine, persistence to ApprovalService,
    role lookups to the UserDirectory and delivery to the
    NotificationDispatcher.

Architecture position:
    Services layer.  May import from radiopharm_engines/ (pure engines)
    and radiopharm_kernel/ (domain, services, db).

Invariants enforced:
    - Commit, then notify: notifications are computed inside the
      transaction and dispatched only after it committed.  A rolled back
      transaction sends nothing.
    - Only the holder of the *current* step's role may decide; unknown
      users are forbidden.
    - One winning decision per step (compare-and-swap in ApprovalService).
    - A rejection ends the request; later steps are never notified.

Failure modes:
    - ApprovalNotFoundError, ApprovalForbiddenError, ApprovalConflictError
      from ``process_approval``.
    - WorkflowDefinitionError when more than one active definition matches
      a trigger, or a request's definition has disappeared.

Audit relevance:
    Every request creation and decision is written to the audit trail by
    ApprovalService in the same transaction as the state change.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from radiopharm_engines.approval import (
    approver_notifications,
    completion_notification,
    is_authorized,
    rejection_notification,
    resolve_decision,
    select_workflow,
    step_for,
)
from radiopharm_kernel.db.engine import session_scope
from radiopharm_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalResolution,
    ApprovalStatus,
    Notification,
    Priority,
    WorkflowDefinition,
    WorkflowStep,
)
from radiopharm_kernel.domain.clock import Clock, SystemClock
from radiopharm_kernel.domain.interfaces import Notifier, UserDirectory
from radiopharm_kernel.domain.status import EntityKind
from radiopharm_kernel.exceptions import (
    ApprovalConflictError,
    ApprovalForbiddenError,
    WorkflowDefinitionError,
)
from radiopharm_kernel.logging_config import LogContext, get_logger
from radiopharm_kernel.services.approval_service import (
    DEFAULT_LIST_LIMIT,
    ApprovalService,
)
from radiopharm_kernel.services.auditor_service import AuditorService
from radiopharm_kernel.services.workflow_definition_service import (
    WorkflowDefinitionService,
)
from radiopharm_services.notification_dispatcher import (
    DEFAULT_MAX_WORKERS,
    NotificationDispatcher,
)

logger = get_logger("services.approval_workflow")


class ApprovalWorkflowSession:
    """The approval workflow steps, bound to one open transaction.

    Used by ``ApprovalWorkflowEngine`` and by ``StatusChangeService`` so a
    status change and the request it triggers commit together.

    Non-goals:
        - Does NOT commit and does NOT deliver notifications; the returned
          ``ApprovalOutcome`` carries them for the owner of the transaction.
    """

    def __init__(
        self,
        session: Session,
        directory: UserDirectory,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._directory = directory
        self._clock = clock or SystemClock()
        self._auditor = AuditorService(session, self._clock)
        self._definitions = WorkflowDefinitionService(session, self._auditor)
        self._approvals = ApprovalService(session, self._auditor, self._clock)

    @property
    def approvals(self) -> ApprovalService:
        return self._approvals

    def trigger(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        trigger_status: str | None,
        requested_by: str,
        priority: Priority = Priority.NORMAL,
        notes: str | None = None,
    ) -> ApprovalOutcome | None:
        """Open a request if an active workflow matches; None otherwise."""
        kind = EntityKind(entity_kind)
        trigger = getattr(trigger_status, "value", trigger_status)
        definition = select_workflow(
            definitions=self._definitions.list_active(kind, trigger),
            entity_kind=kind,
            trigger_status=trigger,
        )
        if definition is None:
            logger.debug(
                "approval_workflow_not_configured",
                extra={
                    "entity_kind": kind.value,
                    "entity_id": str(entity_id),
                    "trigger_status": trigger,
                },
            )
            return None

        request = self._approvals.create_request(
            definition, kind, entity_id, requested_by, Priority(priority), notes,
        )
        first = step_for(definition, 1)
        return ApprovalOutcome(
            request=request,
            resolution=ApprovalResolution.CREATED,
            notifications=self._approver_notices(request, first),
            next_step=first,
        )

    def decide(
        self,
        request_id: UUID,
        actor_id: str,
        decision: ApprovalDecision,
        comments: str | None = None,
        signature: str | None = None,
        expected_step_order: int | None = None,
    ) -> ApprovalOutcome:
        """Apply ``actor_id``'s decision to the request's current step."""
        request = self._approvals.get_request(request_id)
        if request.status != ApprovalStatus.PENDING or (
            expected_step_order is not None
            and expected_step_order != request.current_step_order
        ):
            logger.info(
                "approval_decision_conflict",
                extra={
                    "request_id": str(request_id),
                    "actor_id": str(actor_id),
                    "status": request.status.value,
                    "step_order": request.current_step_order,
                    "expected_step_order": expected_step_order,
                    "reason": "not_pending_at_expected_step",
                },
            )
            raise ApprovalConflictError(
                str(request_id),
                request.status.value,
                request.current_step_order,
                expected_step_order,
            )

        definition = self._definition_for(request)
        step = step_for(definition, request.current_step_order)
        if step is None:
            raise WorkflowDefinitionError(
                definition.name,
                f"has no step {request.current_step_order} for request {request_id}",
            )

        actor_role = self._directory.role_of(actor_id)
        if not is_authorized(actor_role, step):
            logger.warning(
                "approval_forbidden",
                extra={
                    "request_id": str(request_id),
                    "actor_id": str(actor_id),
                    "actor_role": getattr(actor_role, "value", actor_role),
                    "required_role": step.approver_role.value,
                    "step_order": step.step_order,
                },
            )
            raise ApprovalForbiddenError(
                str(request_id),
                str(actor_id),
                getattr(actor_role, "value", actor_role),
                step.approver_role.value,
                step.step_order,
            )

        resolution, following = resolve_decision(
            definition=definition,
            current_step_order=request.current_step_order,
            decision=ApprovalDecision(decision),
        )
        updated, action = self._approvals.record_decision(
            request,
            step,
            actor_id,
            actor_role,
            ApprovalDecision(decision),
            resolution,
            comments=comments,
            signature=signature,
        )

        if resolution == ApprovalResolution.REJECTED:
            notifications: tuple[Notification, ...] = (
                rejection_notification(updated, comments),
            )
        elif resolution == ApprovalResolution.ADVANCED:
            notifications = self._approver_notices(updated, following)
        else:
            notifications = (completion_notification(updated),)

        return ApprovalOutcome(
            request=updated,
            resolution=resolution,
            notifications=notifications,
            action=action,
            next_step=following,
        )

    def _definition_for(self, request: ApprovalRequest) -> WorkflowDefinition:
        definition = self._definitions.get(request.workflow_id)
        if definition is None:
            raise WorkflowDefinitionError(
                request.workflow_name,
                f"definition {request.workflow_id} of request {request.request_id} not found",
            )
        return definition

    def _approver_notices(
        self,
        request: ApprovalRequest,
        step: WorkflowStep | None,
    ) -> tuple[Notification, ...]:
        if step is None:
            return ()
        return approver_notifications(
            request, step, self._directory.active_users_with_role(step.approver_role),
        )


class ApprovalWorkflowEngine:
    """Public entry point for approval workflows.

    Contract:
        Every operation runs in its own transaction (``session_scope``) and
        dispatches notifications only after that transaction committed.

    Guarantees:
        - ``trigger_workflow`` returns None when no active workflow with
          steps matches the trigger.
        - ``process_approval`` raises NotFound, Conflict or Forbidden as
          distinct types and leaves the request untouched when it does.
        - Returned outcomes carry the ``DispatchReport`` of their own
          delivery, so one instance can be shared between threads.

    Non-goals:
        - Does NOT change order or batch status (StatusChangeService).
    """

    def __init__(
        self,
        directory: UserDirectory,
        notifier: Notifier | None = None,
        *,
        session_factory: sessionmaker[Session] | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if dispatcher is None and notifier is None:
            raise ValueError("ApprovalWorkflowEngine needs a notifier or a dispatcher")
        self._directory = directory
        self._session_factory = session_factory
        self._dispatcher = dispatcher or NotificationDispatcher(notifier, max_workers)
        self._clock = clock or SystemClock()

    def sync_definitions(
        self,
        definitions: Iterable[WorkflowDefinition],
        actor_id: str = "system",
    ) -> list[WorkflowDefinition]:
        """Bring the stored workflow definitions in line with configuration."""
        with session_scope(self._session_factory) as session:
            service = WorkflowDefinitionService(session, AuditorService(session, self._clock))
            return service.sync_from_config(tuple(definitions), actor_id)

    def trigger_workflow(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        trigger_status: str | None,
        requested_by: str,
        priority: Priority = Priority.NORMAL,
        notes: str | None = None,
    ) -> ApprovalOutcome | None:
        with LogContext.bind(
            actor_id=str(requested_by),
            entity_kind=EntityKind(entity_kind).value,
            entity_id=str(entity_id),
        ):
            with session_scope(self._session_factory) as session:
                outcome = ApprovalWorkflowSession(
                    session, self._directory, self._clock,
                ).trigger(entity_kind, entity_id, trigger_status, requested_by, priority, notes)
            if outcome is None:
                return None
            return self._deliver(outcome)

    def process_approval(
        self,
        request_id: UUID,
        actor_id: str,
        decision: ApprovalDecision,
        comments: str | None = None,
        signature: str | None = None,
        expected_step_order: int | None = None,
    ) -> ApprovalOutcome:
        with LogContext.bind(actor_id=str(actor_id), request_id=str(request_id)):
            with session_scope(self._session_factory) as session:
                outcome = ApprovalWorkflowSession(
                    session, self._directory, self._clock,
                ).decide(
                    request_id,
                    actor_id,
                    decision,
                    comments=comments,
                    signature=signature,
                    expected_step_order=expected_step_order,
                )
            return self._deliver(outcome)

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        with session_scope(self._session_factory) as session:
            return ApprovalService(session, AuditorService(session, self._clock)).get_request(
                request_id,
            )

    def pending_approvals_for(self, user_id: str) -> list[ApprovalRequest]:
        """PENDING requests whose current step is approved by the user's role."""
        role = self._directory.role_of(user_id)
        if role is None:
            return []
        with session_scope(self._session_factory) as session:
            return ApprovalService(
                session, AuditorService(session, self._clock),
            ).pending_for_role(role)

    def approval_history_for(
        self,
        entity_kind: EntityKind,
        entity_id: str,
    ) -> list[ApprovalRequest]:
        with session_scope(self._session_factory) as session:
            return ApprovalService(
                session, AuditorService(session, self._clock),
            ).history_for(entity_kind, entity_id)

    def list_requests(
        self,
        status: ApprovalStatus | str | None = None,
        entity_kind: EntityKind | str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[ApprovalRequest]:
        with session_scope(self._session_factory) as session:
            return ApprovalService(
                session, AuditorService(session, self._clock),
            ).list_requests(status=status, entity_kind=entity_kind, limit=limit)

    def _deliver(self, outcome: ApprovalOutcome) -> ApprovalOutcome:
        return replace(outcome, dispatch=self._dispatcher.dispatch(outcome.notifications))
