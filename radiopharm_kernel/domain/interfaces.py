"""
Collaborator protocols (``radiopharm_kernel.domain.interfaces``).

Responsibility
--------------
The narrow seams between this core and the enclosing application: where
order/batch status is stored, how a message reaches a user, who holds which
role, and where audit records go.  Implementations live outside the kernel
(or, for ``AuditLog``, in ``services.auditor_service``).

Architecture position
---------------------
**Kernel domain layer** -- structural typing only.  ZERO I/O.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from radiopharm_kernel.domain.status import EntityKind, Role


class EntityRepository(Protocol):
    """Persistence of order and batch status, owned by the caller."""

    def get_status(self, kind: EntityKind, entity_id: str) -> str | None:
        """Return the entity's current status value, or None if unknown."""
        ...

    def apply_status(self, kind: EntityKind, entity_id: str, new_status: str) -> None:
        """Store a new status for the entity."""
        ...

    def orders_for_batch(self, batch_id: str) -> Iterable[str]:
        """Return the ids of orders fulfilled by the batch."""
        ...


class Notifier(Protocol):
    """Notification transport (email, SMS, in-app).  May raise on failure."""

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        related_entity_id: str,
        related_entity_kind: str,
    ) -> None:
        ...


class UserDirectory(Protocol):
    """Role lookups for actors and approver fan-out."""

    def role_of(self, user_id: str) -> Role | None:
        """Return the user's role, or None for an unknown or inactive user."""
        ...

    def active_users_with_role(self, role: Role) -> Iterable[str]:
        """Return ids of active users holding ``role``."""
        ...


class AuditLog(Protocol):
    """Append-only record of state changes."""

    def record_change(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        actor_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> Any:
        ...
