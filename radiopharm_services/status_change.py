"""
radiopharm_services.status_change -- Order and batch status changes.

Responsibility:
    Moves an order or a batch to a new status: validates the move against
    the transition tables, applies the role and dispatch gates for
    batches, stores the new status through the EntityRepository, records
    the change in the audit trail, carries a batch's progress over to the
    orders it fulfils, and opens an approval request when the new status
    is a configured workflow trigger.

Architecture position:
    Services layer.  Combines radiopharm_engines.transitions with the
    kernel auditor and the approval workflow steps.

Invariants enforced:
    - Assertive validation: an illegal move raises before anything is
      written.
    - A batch in an exception status never moves into a dispensing or
      dispatch status.
    - Cascaded order moves are themselves legal transitions; an order that
      cannot legally follow, or already has the projected status, is left
      alone.
    - Audit and approval rows are written before the repository status;
      the repository write is the final step inside the transaction.
    - Commit, then notify.

Failure modes:
    - EntityNotFoundError when the repository does not know the entity.
    - IllegalTransitionError, DispatchBlockedError, RoleNotPermittedError.

Audit relevance:
    Each applied move, cascaded ones included, writes an AuditEvent with
    the before and after status.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from sqlalchemy.orm import Session, sessionmaker

from radiopharm_engines.transitions import (
    assert_transition,
    can_dispense,
    can_role_move_batch_to,
    can_transition,
    projected_order_status,
)
from radiopharm_kernel.db.engine import session_scope
from radiopharm_kernel.domain.approval import ApprovalOutcome, DispatchReport
from radiopharm_kernel.domain.clock import Clock, SystemClock
from radiopharm_kernel.domain.interfaces import (
    EntityRepository,
    Notifier,
    UserDirectory,
)
from radiopharm_kernel.domain.status import (
    DISPENSE_TARGET_STATUSES,
    BatchStatus,
    EntityKind,
    OrderStatus,
)
from radiopharm_kernel.exceptions import (
    DispatchBlockedError,
    EntityNotFoundError,
    RoleNotPermittedError,
)
from radiopharm_kernel.logging_config import LogContext, get_logger
from radiopharm_kernel.models.audit_event import AuditAction
from radiopharm_kernel.services.auditor_service import AuditorService
from radiopharm_services.approval_workflow import ApprovalWorkflowSession
from radiopharm_services.notification_dispatcher import (
    DEFAULT_MAX_WORKERS,
    NotificationDispatcher,
)

logger = get_logger("services.status_change")

_AUDIT_ACTIONS = {
    EntityKind.ORDER: AuditAction.ORDER_STATUS_CHANGED,
    EntityKind.BATCH: AuditAction.BATCH_STATUS_CHANGED,
}


def _entity_context(change: StatusChange):
    # Cascaded orders log under their own id, not the batch's.
    return LogContext.bind(entity_kind=change.entity_kind.value, entity_id=change.entity_id)


@dataclass(frozen=True)
class StatusChange:
    """One applied move."""

    entity_kind: EntityKind
    entity_id: str
    previous_status: str
    new_status: str
    cascaded_from_batch: str | None = None


@dataclass(frozen=True)
class StatusChangeResult:
    """What a status change did, including cascaded moves and approvals opened."""

    change: StatusChange
    cascaded: tuple[StatusChange, ...] = ()
    approvals: tuple[ApprovalOutcome, ...] = field(default_factory=tuple)
    dispatch: DispatchReport | None = None

    @property
    def approval(self) -> ApprovalOutcome | None:
        """The approval opened for the changed entity itself, if any."""
        for outcome in self.approvals:
            if (
                outcome.request.entity_kind == self.change.entity_kind
                and outcome.request.entity_id == self.change.entity_id
            ):
                return outcome
        return None


class StatusChangeService:
    """Coordinates status changes for orders and batches.

    Contract:
        The audit rows, any approval request and the repository write
        belong to one ``session_scope``.  The repository write is the last
        step before commit, so a failure while auditing, cascading or
        opening approvals leaves the stored status untouched.
        Notifications go out after the commit.

    Non-goals:
        - Does NOT own order or batch storage; the EntityRepository does.
        - Does NOT gate order moves by role.
    """

    def __init__(
        self,
        repository: EntityRepository,
        directory: UserDirectory,
        notifier: Notifier | None = None,
        *,
        session_factory: sessionmaker[Session] | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if dispatcher is None and notifier is None:
            raise ValueError("StatusChangeService needs a notifier or a dispatcher")
        self._repository = repository
        self._directory = directory
        self._session_factory = session_factory
        self._dispatcher = dispatcher or NotificationDispatcher(notifier, max_workers)
        self._clock = clock or SystemClock()

    def change_order_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        actor_id: str,
        reason: str | None = None,
    ) -> StatusChangeResult:
        current = self._current_status(EntityKind.ORDER, order_id)
        assert_transition(EntityKind.ORDER, current, new_status)
        target = OrderStatus(new_status).value

        with LogContext.bind(
            actor_id=str(actor_id), entity_kind=EntityKind.ORDER.value, entity_id=str(order_id),
        ):
            with session_scope(self._session_factory) as session:
                auditor = AuditorService(session, self._clock)
                workflow = ApprovalWorkflowSession(session, self._directory, self._clock)
                change = self._record(
                    auditor, EntityKind.ORDER, order_id, current, target, actor_id, reason,
                )
                approvals = self._trigger(workflow, change, actor_id)
                self._write_statuses((change,))
            return self._finish(StatusChangeResult(change=change, approvals=approvals))

    def change_batch_status(
        self,
        batch_id: str,
        new_status: BatchStatus | str,
        actor_id: str,
        reason: str | None = None,
    ) -> StatusChangeResult:
        current = self._current_status(EntityKind.BATCH, batch_id)
        try:
            target = BatchStatus(new_status)
        except ValueError:
            # Unknown status: raises IllegalTransitionError with the legal moves.
            assert_transition(EntityKind.BATCH, current, new_status)
            raise

        role = self._directory.role_of(actor_id)
        if not can_role_move_batch_to(role, target):
            raise RoleNotPermittedError(
                str(actor_id), getattr(role, "value", role), target.value,
            )
        if target in DISPENSE_TARGET_STATUSES and not can_dispense(current):
            raise DispatchBlockedError(str(batch_id), current, target.value)
        assert_transition(EntityKind.BATCH, current, target.value)

        with LogContext.bind(
            actor_id=str(actor_id), entity_kind=EntityKind.BATCH.value, entity_id=str(batch_id),
        ):
            with session_scope(self._session_factory) as session:
                auditor = AuditorService(session, self._clock)
                workflow = ApprovalWorkflowSession(session, self._directory, self._clock)
                change = self._record(
                    auditor, EntityKind.BATCH, batch_id, current, target.value, actor_id, reason,
                )
                cascaded = self._cascade(auditor, batch_id, target, actor_id)

                approvals = self._trigger(workflow, change, actor_id)
                for order_change in cascaded:
                    approvals += self._trigger(workflow, order_change, actor_id)
                self._write_statuses((change, *cascaded))
            return self._finish(
                StatusChangeResult(change=change, cascaded=cascaded, approvals=approvals),
            )

    # ------------------------------------------------------------------

    def _current_status(self, kind: EntityKind, entity_id: str) -> str:
        current = self._repository.get_status(kind, entity_id)
        if current is None:
            raise EntityNotFoundError(kind.value, str(entity_id))
        return getattr(current, "value", current)

    def _record(
        self,
        auditor: AuditorService,
        kind: EntityKind,
        entity_id: str,
        current: str,
        target: str,
        actor_id: str,
        reason: str | None,
        cascaded_from: str | None = None,
    ) -> StatusChange:
        after: dict = {"status": target}
        if reason:
            after["reason"] = reason
        if cascaded_from is not None:
            after["cascaded_from_batch"] = cascaded_from
        with LogContext.bind(entity_kind=kind.value, entity_id=str(entity_id)):
            auditor.record_change(
                entity_type=kind.value,
                entity_id=str(entity_id),
                action=_AUDIT_ACTIONS[kind],
                actor_id=str(actor_id),
                before={"status": current},
                after=after,
            )
        return StatusChange(kind, str(entity_id), current, target, cascaded_from)

    def _write_statuses(self, changes: tuple[StatusChange, ...]) -> None:
        """Store the new statuses; runs after every other write of the transaction."""
        for change in changes:
            self._repository.apply_status(change.entity_kind, change.entity_id, change.new_status)
            with _entity_context(change):
                logger.info(
                    "status_change_applied",
                    extra={
                        "from_status": change.previous_status,
                        "to_status": change.new_status,
                        "cascaded_from_batch": change.cascaded_from_batch,
                    },
                )

    def _cascade(
        self,
        auditor: AuditorService,
        batch_id: str,
        batch_status: BatchStatus,
        actor_id: str,
    ) -> tuple[StatusChange, ...]:
        projected = projected_order_status(batch_status)
        if projected is None:
            return ()

        changes: list[StatusChange] = []
        for order_id in self._repository.orders_for_batch(batch_id):
            current = self._repository.get_status(EntityKind.ORDER, order_id)
            current = getattr(current, "value", current)
            if current is None or current == projected.value or not can_transition(
                EntityKind.ORDER, current, projected.value,
            ):
                logger.info(
                    "order_cascade_skipped",
                    extra={
                        "batch_id": str(batch_id),
                        "order_id": str(order_id),
                        "order_status": current,
                        "projected_status": projected.value,
                    },
                )
                continue
            changes.append(
                self._record(
                    auditor,
                    EntityKind.ORDER,
                    order_id,
                    current,
                    projected.value,
                    actor_id,
                    reason=None,
                    cascaded_from=str(batch_id),
                )
            )
        return tuple(changes)

    def _trigger(
        self,
        workflow: ApprovalWorkflowSession,
        change: StatusChange,
        actor_id: str,
    ) -> tuple[ApprovalOutcome, ...]:
        with _entity_context(change):
            outcome = workflow.trigger(
                change.entity_kind, change.entity_id, change.new_status, actor_id,
            )
        return (outcome,) if outcome is not None else ()

    def _finish(self, result: StatusChangeResult) -> StatusChangeResult:
        notifications = tuple(n for outcome in result.approvals for n in outcome.notifications)
        return replace(result, dispatch=self._dispatcher.dispatch(notifications))
