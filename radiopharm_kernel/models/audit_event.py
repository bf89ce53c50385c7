"""
Module: radiopharm_kernel.models.audit_event
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - payload_hash = SHA-256 of the canonical JSON of (before, after),
      computed by AuditorService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    AuditEvent IS the audit trail.  Every approval request creation, step
    decision, workflow registration and entity status change produces one.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from radiopharm_kernel.db.base import Base, UTCDateTime
from radiopharm_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Approval lifecycle
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_STEP_APPROVED = "approval_step_approved"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REJECTED = "approval_rejected"

    # Workflow definitions
    WORKFLOW_REGISTERED = "workflow_registered"
    WORKFLOW_DEACTIVATED = "workflow_deactivated"

    # Entity status
    ORDER_STATUS_CHANGED = "order_status_changed"
    BATCH_STATUS_CHANGED = "batch_status_changed"


class AuditEvent(Base):
    """
    Audit event with before/after snapshots.

    Contract:
        AuditEvent rows are append-only, never updated or deleted.

    Non-goals:
        - This model does NOT compute payload_hash; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Type of entity being audited (e.g., "ApprovalRequest", "ORDER", "BATCH")
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # Who performed the action
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit events."""
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot modify",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit events."""
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot delete",
    )
