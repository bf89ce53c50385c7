"""
Module: radiopharm_kernel.models.approval
Responsibility: ORM persistence for approval requests and their step actions.

Architecture position: Kernel > Models.  May import from db/base.py and
the approval status table in domain/approval.py.

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; the service
      moves status and step with a conditional UPDATE; the ORM refuses to
      flush a status move missing from APPROVAL_TRANSITIONS, so a
      terminal request cannot change at all.
    - Decision uniqueness: UNIQUE(request_id, step_order) -- exactly one
      action per step, even under concurrent deciders.
    - Actions are append-only (ORM listeners reject UPDATE and DELETE).

Failure modes:
    - IntegrityError on a second action for the same step.
    - ImmutabilityViolationError on action UPDATE/DELETE, or on a change
      to a terminal request.

Audit relevance:
    Approval requests and actions form the release-governance trail.  Every
    creation and decision is also written to audit_events by the service.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from radiopharm_kernel.db.base import Base, UTCDateTime, UUIDString
from radiopharm_kernel.domain.approval import APPROVAL_TRANSITIONS, ApprovalStatus
from radiopharm_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from radiopharm_kernel.domain.approval import ApprovalAction, ApprovalRequest
    from radiopharm_kernel.models.workflow import WorkflowDefinitionModel


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        ``current_step_order`` only grows while pending and is frozen once
        the request is approved or rejected.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "current_step_order >= 1",
            name="ck_approval_requests_step_positive",
        ),
        Index(
            "ix_approval_requests_entity",
            "entity_kind", "entity_id", "created_at",
        ),
        Index(
            "ix_approval_requests_status",
            "status", "current_step_order",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    workflow_name: Mapped[str] = mapped_column(String(200), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    current_step_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    workflow: Mapped["WorkflowDefinitionModel"] = relationship(
        "WorkflowDefinitionModel",
        lazy="selectin",
    )
    actions: Mapped[list["ApprovalActionModel"]] = relationship(
        "ApprovalActionModel",
        back_populates="request",
        order_by="ApprovalActionModel.step_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.id} {self.workflow_name} "
            f"{self.entity_kind}:{self.entity_id} "
            f"status={self.status} step={self.current_step_order}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from radiopharm_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            ApprovalStatus,
            Priority,
        )
        from radiopharm_kernel.domain.status import EntityKind

        return ApprovalRequestDTO(
            request_id=self.id,
            workflow_id=self.workflow_id,
            workflow_name=self.workflow_name,
            entity_kind=EntityKind(self.entity_kind),
            entity_id=self.entity_id,
            requested_by=self.requested_by,
            current_step_order=self.current_step_order,
            status=ApprovalStatus(self.status),
            priority=Priority(self.priority),
            notes=self.notes,
            created_at=self.created_at,
            completed_at=self.completed_at,
            actions=tuple(a.to_dto() for a in self.actions),
        )


class ApprovalActionModel(Base):
    """Persistent step decision. Append-only.

    Guarantees:
        - UNIQUE(request_id, step_order): one decision per step.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        Index("ix_approval_actions_request_id", "request_id"),
        UniqueConstraint(
            "request_id", "step_order",
            name="uq_approval_actions_step",
        ),
        CheckConstraint(
            "decision IN ('approved', 'rejected')",
            name="ck_approval_actions_valid_decision",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.id"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )

    request: Mapped["ApprovalRequestModel"] = relationship(
        "ApprovalRequestModel",
        back_populates="actions",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction {self.id} request={self.request_id} "
            f"step={self.step_order} decision={self.decision}>"
        )

    def to_dto(self) -> ApprovalAction:
        """Convert ORM model to frozen domain DTO."""
        from radiopharm_kernel.domain.approval import (
            ApprovalAction as ApprovalActionDTO,
            ApprovalDecision,
        )
        from radiopharm_kernel.domain.status import Role

        return ApprovalActionDTO(
            action_id=self.id,
            request_id=self.request_id,
            step_order=self.step_order,
            step_name=self.step_name,
            actor_id=self.actor_id,
            actor_role=Role(self.actor_role),
            decision=ApprovalDecision(self.decision),
            comments=self.comments,
            signature=self.signature,
            decided_at=self.decided_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalRequestModel, "before_update")
def enforce_request_status_transitions(mapper, connection, target):
    """Allow only the status moves in APPROVAL_TRANSITIONS.

    A terminal request has no outgoing moves, so any change to it is refused.
    """
    history = inspect(target).attrs.status.history
    previous = ApprovalStatus(history.deleted[0] if history.deleted else target.status)
    if ApprovalStatus(target.status) not in APPROVAL_TRANSITIONS[previous]:
        raise ImmutabilityViolationError(
            entity_type="ApprovalRequest",
            entity_id=str(target.id),
            reason=f"Approval request is {previous.value} -- cannot move to {target.status}",
        )


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot delete",
    )
