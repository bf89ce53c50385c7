"""
radiopharm_engines.approval -- Pure approval workflow step logic.

Responsibility:
    Choose the workflow a status change triggers, locate the current and
    next steps, decide whether an actor may act on a step, resolve a
    decision into the request's next state, and build the notifications
    each outcome produces.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import radiopharm_kernel/domain/ types, exceptions and the
    engine tracer.

Invariants enforced:
    - At most one active definition matches an (entity kind, trigger
      status) pair; more than one is a configuration error.
    - Only the holder of the *current* step's role may decide.  Unknown
      actors (no role) are never authorized.
    - A rejection at any step ends the request; later steps are never
      reached and their approvers are never notified.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - Returns None from ``select_workflow`` when nothing matches or the
      match has no steps (a normal outcome, not an error).
    - WorkflowDefinitionError when several active definitions match.
"""

from __future__ import annotations

from typing import Iterable

from radiopharm_engines.tracer import traced_engine
from radiopharm_kernel.domain.approval import (
    APPROVAL_REQUEST_KIND,
    ApprovalDecision,
    ApprovalRequest,
    ApprovalResolution,
    Notification,
    WorkflowDefinition,
    WorkflowStep,
)
from radiopharm_kernel.domain.status import EntityKind, Role
from radiopharm_kernel.exceptions import WorkflowDefinitionError


def _status_value(status: str | None) -> str | None:
    return getattr(status, "value", status)


@traced_engine("approval", "1.0", fingerprint_fields=("entity_kind", "trigger_status"))
def select_workflow(
    definitions: Iterable[WorkflowDefinition],
    entity_kind: EntityKind,
    trigger_status: str | None,
) -> WorkflowDefinition | None:
    """Return the single active definition for the trigger, or None.

    A matching definition without steps counts as no match.
    """
    kind = EntityKind(entity_kind)
    wanted = _status_value(trigger_status)
    matches = [
        d for d in definitions
        if d.is_active
        and d.entity_kind == kind
        and _status_value(d.trigger_status) == wanted
    ]
    if len(matches) > 1:
        raise WorkflowDefinitionError(
            matches[0].name,
            f"{len(matches)} active workflows match {kind.value}/{wanted}: "
            + ", ".join(sorted(d.name for d in matches)),
        )
    if not matches or not matches[0].steps:
        return None
    return matches[0]


def step_for(definition: WorkflowDefinition, step_order: int) -> WorkflowStep | None:
    for step in definition.steps:
        if step.step_order == step_order:
            return step
    return None


def next_step(definition: WorkflowDefinition, step_order: int) -> WorkflowStep | None:
    return step_for(definition, step_order + 1)


def is_authorized(actor_role: Role | None, step: WorkflowStep) -> bool:
    """True iff ``actor_role`` is the step's approver role."""
    if actor_role is None:
        return False
    return Role(actor_role) == step.approver_role


@traced_engine(
    "approval", "1.0",
    fingerprint_fields=("definition", "current_step_order", "decision"),
)
def resolve_decision(
    definition: WorkflowDefinition,
    current_step_order: int,
    decision: ApprovalDecision,
) -> tuple[ApprovalResolution, WorkflowStep | None]:
    """Map a decision on the current step to the request's next state.

    Returns:
        ``(REJECTED, None)``, ``(ADVANCED, next_step)`` or ``(APPROVED, None)``.
    """
    if ApprovalDecision(decision) == ApprovalDecision.REJECTED:
        return ApprovalResolution.REJECTED, None
    following = next_step(definition, current_step_order)
    if following is not None:
        return ApprovalResolution.ADVANCED, following
    return ApprovalResolution.APPROVED, None


# =========================================================================
# Notification content
# =========================================================================


def approver_notifications(
    request: ApprovalRequest,
    step: WorkflowStep,
    approver_ids: Iterable[str],
) -> tuple[Notification, ...]:
    """One "Approval Required" notice per approver of ``step``."""
    kind = EntityKind(request.entity_kind).value
    return tuple(
        Notification(
            recipient_id=approver_id,
            title=f"Approval Required: {step.step_name}",
            message=(
                f"{kind} {request.entity_id} requires your approval. "
                f"Requested by {request.requested_by}."
            ),
            related_entity_id=str(request.request_id),
            related_entity_kind=APPROVAL_REQUEST_KIND,
        )
        for approver_id in dict.fromkeys(approver_ids)
    )


def rejection_notification(
    request: ApprovalRequest,
    comments: str | None,
) -> Notification:
    kind = EntityKind(request.entity_kind).value
    message = f"Your {kind} approval request was rejected."
    if comments:
        message = f"{message} {comments}"
    return Notification(
        recipient_id=request.requested_by,
        title="Approval Rejected",
        message=message,
        related_entity_id=request.entity_id,
        related_entity_kind=kind,
    )


def completion_notification(request: ApprovalRequest) -> Notification:
    kind = EntityKind(request.entity_kind).value
    return Notification(
        recipient_id=request.requested_by,
        title="Approval Completed",
        message=f"Your {kind} has been fully approved.",
        related_entity_id=request.entity_id,
        related_entity_kind=kind,
    )
