"""
Pure domain layer.

This module contains value objects, enums and static tables
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from radiopharm_kernel.domain.approval import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalResolution,
    ApprovalStatus,
    DispatchReport,
    Notification,
    Priority,
    WorkflowDefinition,
    WorkflowStep,
)
from radiopharm_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from radiopharm_kernel.domain.interfaces import (
    AuditLog,
    EntityRepository,
    Notifier,
    UserDirectory,
)
from radiopharm_kernel.domain.status import (
    BATCH_TO_ORDER_STATUS,
    BATCH_TRANSITIONS,
    ORDER_TRANSITIONS,
    BatchStatus,
    EntityKind,
    OrderStatus,
    Role,
)

__all__ = [
    # Status machines
    "EntityKind",
    "OrderStatus",
    "BatchStatus",
    "Role",
    "ORDER_TRANSITIONS",
    "BATCH_TRANSITIONS",
    "BATCH_TO_ORDER_STATUS",
    # Approval
    "ApprovalAction",
    "ApprovalDecision",
    "ApprovalOutcome",
    "ApprovalRequest",
    "ApprovalResolution",
    "ApprovalStatus",
    "DispatchReport",
    "Notification",
    "Priority",
    "WorkflowDefinition",
    "WorkflowStep",
    # Collaborators
    "AuditLog",
    "EntityRepository",
    "Notifier",
    "UserDirectory",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
]
