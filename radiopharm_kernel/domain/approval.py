"""
Approval domain types (``radiopharm_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the multi-step approval workflow: workflow
definitions and their ordered steps, request and action snapshots,
notifications addressed to users, and the outcome of a lifecycle
operation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.  May import only from
``domain/status``.

Invariants enforced
-------------------
* Lifecycle: ``PENDING(k) -> PENDING(k+1) -> ... -> APPROVED`` or
  ``PENDING(k) -> REJECTED``.  ``APPROVAL_TRANSITIONS`` lists the only
  status changes; terminal statuses have no outgoing edges.
* ``WorkflowDefinition.steps`` is ordered by ``step_order`` starting at 1.
* ``ApprovalAction`` is a snapshot of an append-only record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from radiopharm_kernel.domain.status import EntityKind, Role


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_TRANSITIONS: Mapping[ApprovalStatus, frozenset[ApprovalStatus]] = MappingProxyType({
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.PENDING,
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
})

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class ApprovalDecision(str, Enum):
    """Decision types that an approver can make."""

    APPROVED = "approved"
    REJECTED = "rejected"


class Priority(str, Enum):
    """Urgency attached to an approval request."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ApprovalResolution(str, Enum):
    """What a lifecycle operation did to the request."""

    CREATED = "created"
    ADVANCED = "advanced"
    APPROVED = "approved"
    REJECTED = "rejected"


# =========================================================================
# Workflow Definitions
# =========================================================================


@dataclass(frozen=True)
class WorkflowStep:
    """One step of a workflow: who must decide, and in which position."""

    step_order: int
    step_name: str
    approver_role: Role


@dataclass(frozen=True)
class WorkflowDefinition:
    """A named chain of approval steps bound to an (entity kind, status) trigger.

    Contract: frozen; ``steps`` sorted by ``step_order`` starting at 1.
    Non-goals: does not decide whether the trigger fired -- the caller does.
    """

    name: str
    entity_kind: EntityKind
    trigger_status: str | None
    steps: tuple[WorkflowStep, ...] = ()
    is_active: bool = True
    workflow_id: UUID | None = None
    description: str = ""

    @property
    def step_count(self) -> int:
        return len(self.steps)


# =========================================================================
# Request and Action Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalAction:
    """Record of a single step decision. Immutable."""

    action_id: UUID
    request_id: UUID
    step_order: int
    step_name: str
    actor_id: str
    actor_role: Role
    decision: ApprovalDecision
    comments: str | None = None
    signature: str | None = None
    decided_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request and its actions (oldest first)."""

    request_id: UUID
    workflow_id: UUID
    workflow_name: str
    entity_kind: EntityKind
    entity_id: str
    requested_by: str
    current_step_order: int
    status: ApprovalStatus = ApprovalStatus.PENDING
    priority: Priority = Priority.NORMAL
    notes: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    actions: tuple[ApprovalAction, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES


# =========================================================================
# Notifications and Outcomes
# =========================================================================


# Related kind for approver notices, which point at the request itself.
APPROVAL_REQUEST_KIND = "ApprovalRequest"


@dataclass(frozen=True)
class Notification:
    """A message for one user, delivered after the owning transaction commits.

    ``related_entity_kind`` is an ``EntityKind`` value, or
    ``APPROVAL_REQUEST_KIND`` when the notice points at a request.
    """

    recipient_id: str
    title: str
    message: str
    related_entity_id: str
    related_entity_kind: str


@dataclass(frozen=True)
class DispatchReport:
    """How the post-commit delivery of a batch of notifications went."""

    delivered: int = 0
    failed: tuple[Notification, ...] = field(default_factory=tuple)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of creating or deciding an approval request.

    ``notifications`` are computed inside the transaction but must only be
    delivered once it has committed.  ``dispatch`` is filled in by the
    coordinator after delivery; it stays None inside the transaction.
    """

    request: ApprovalRequest
    resolution: ApprovalResolution
    notifications: tuple[Notification, ...] = field(default_factory=tuple)
    action: ApprovalAction | None = None
    next_step: WorkflowStep | None = None
    dispatch: DispatchReport | None = None
