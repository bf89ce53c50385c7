"""
AuditorService -- append-only audit trail of state changes.

Responsibility:
    Creates immutable audit events with before/after snapshots for every
    significant state change in the core: approval request creation, step
    decisions, workflow registration and entity status changes.  Provides
    trace queries and payload tamper checks for review.

Architecture position:
    Kernel > Services -- imperative shell, called by ApprovalService,
    WorkflowDefinitionService and the StatusChangeService coordinator.
    Implements the ``AuditLog`` protocol.

Invariants enforced:
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).
    - ``payload_hash`` is the SHA-256 of the canonical JSON of
      ``{"before": ..., "after": ...}``.

Failure modes:
    - TypeError if a before/after value cannot be serialized to JSON.

Audit relevance:
    This IS the audit service.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from radiopharm_kernel.domain.clock import Clock, SystemClock
from radiopharm_kernel.logging_config import get_logger
from radiopharm_kernel.models.audit_event import AuditAction, AuditEvent
from radiopharm_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    action: str
    occurred_at: datetime
    actor_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for an entity.

    Contains all audit events in chronological order.
    """

    entity_type: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for recording and reading audit events.

    Contract:
        ``record_change`` creates one append-only ``AuditEvent`` row in the
        caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()

    def record_change(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction | str,
        actor_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> AuditEvent:
        """
        Record a state change.

        Postconditions:
            - A new ``AuditEvent`` row is flushed to the session.
        """
        action_value = action.value if isinstance(action, AuditAction) else action
        before_json = to_json_safe(before)
        after_json = to_json_safe(after)

        audit_event = AuditEvent(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action_value,
            actor_id=str(actor_id),
            occurred_at=self._clock.now(),
            before=before_json,
            after=after_json,
            payload_hash=hash_payload({"before": before_json, "after": after_json}),
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_recorded",
            extra={
                "audit_entity_type": entity_type,
                "audit_entity_id": str(entity_id),
                "audit_action": action_value,
                "actor_id": str(actor_id),
            },
        )
        return audit_event

    def verify_payload(self, audit_event: AuditEvent) -> bool:
        """True iff the stored before/after still hash to ``payload_hash``."""
        expected = hash_payload({"before": audit_event.before, "after": audit_event.after})
        if expected != audit_event.payload_hash:
            logger.critical(
                "audit_payload_mismatch",
                extra={
                    "audit_event_id": str(audit_event.id),
                    "expected_hash": expected,
                    "stored_hash": audit_event.payload_hash,
                },
            )
            return False
        return True

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: str) -> AuditTrace:
        """
        Get the complete audit trace for an entity, oldest first.
        """
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.occurred_at)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                action=event.action,
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                before=event.before,
                after=event.after,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=entries,
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events, most recent first.
        """
        result = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.occurred_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
