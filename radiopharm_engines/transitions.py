"""
radiopharm_engines.transitions -- Order and batch status transition validator.

Responsibility:
    Lookups over the static transition tables in
    ``radiopharm_kernel.domain.status``: advisory and assertive legality
    checks, reachable statuses, terminal detection, batch classification,
    the batch-to-order projection and role gating of batch moves.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import radiopharm_kernel.domain, radiopharm_kernel.exceptions
    and the engine tracer.

Invariants enforced:
    - A move is legal iff the target is in ``table[kind][current]``.  A
      status missing from its table (impossible for the closed enums, but
      possible for raw strings) has no legal moves.
    - Statuses are accepted as enum members or their string values; an
      unknown string is never legal.

Failure modes:
    - ``assert_transition`` raises IllegalTransitionError carrying the
      allowed targets; ``can_transition`` returns False instead.
"""

from __future__ import annotations

from typing import Mapping

from radiopharm_engines.tracer import traced_engine
from radiopharm_kernel.domain.status import (
    BATCH_ROLE_TARGETS,
    BATCH_TO_ORDER_STATUS,
    BATCH_TRANSITIONS,
    DISPATCH_BLOCKED_STATUSES,
    DISPENSABLE_STATUSES,
    EXCEPTION_STATUSES,
    ORDER_TRANSITIONS,
    BatchStatus,
    EntityKind,
    OrderStatus,
    Role,
)
from radiopharm_kernel.exceptions import IllegalTransitionError

_TABLES: dict[EntityKind, Mapping] = {
    EntityKind.ORDER: ORDER_TRANSITIONS,
    EntityKind.BATCH: BATCH_TRANSITIONS,
}

_ENUMS: dict[EntityKind, type] = {
    EntityKind.ORDER: OrderStatus,
    EntityKind.BATCH: BatchStatus,
}


def _coerce(kind: EntityKind, status: str | OrderStatus | BatchStatus):
    """Return the enum member for ``status`` or None if it is not one of ``kind``'s."""
    enum_cls = _ENUMS[EntityKind(kind)]
    if isinstance(status, enum_cls):
        return status
    try:
        return enum_cls(status)
    except ValueError:
        return None


def next_statuses(kind: EntityKind, current: str) -> frozenset:
    """Statuses reachable in one move from ``current``."""
    member = _coerce(kind, current)
    if member is None:
        return frozenset()
    return _TABLES[EntityKind(kind)].get(member, frozenset())


def can_transition(kind: EntityKind, current: str, target: str) -> bool:
    """Advisory check: True iff ``current -> target`` is in the table."""
    member = _coerce(kind, target)
    if member is None:
        return False
    return member in next_statuses(kind, current)


@traced_engine("transitions", "1.0", fingerprint_fields=("kind", "current", "target"))
def assert_transition(kind: EntityKind, current: str, target: str) -> None:
    """Assertive check: raise IllegalTransitionError unless the move is legal."""
    if can_transition(kind, current, target):
        return
    allowed = tuple(sorted(s.value for s in next_statuses(kind, current)))
    raise IllegalTransitionError(
        entity_kind=EntityKind(kind).value,
        current_status=getattr(current, "value", current),
        requested_status=getattr(target, "value", target),
        allowed_statuses=allowed,
    )


def is_terminal(kind: EntityKind, status: str) -> bool:
    """True iff ``status`` is a known status with no outgoing moves."""
    if _coerce(kind, status) is None:
        return False
    return not next_statuses(kind, status)


def _batch(status: str) -> BatchStatus | None:
    return _coerce(EntityKind.BATCH, status)


def is_exception_status(status: str) -> bool:
    return _batch(status) in EXCEPTION_STATUSES


def can_dispense(status: str) -> bool:
    return _batch(status) in DISPENSABLE_STATUSES


def is_blocked_from_dispatch(status: str) -> bool:
    return _batch(status) in DISPATCH_BLOCKED_STATUSES


def projected_order_status(batch_status: str) -> OrderStatus | None:
    """Order status implied by a batch status, or None when orders are unaffected."""
    member = _batch(batch_status)
    if member is None:
        return None
    return BATCH_TO_ORDER_STATUS.get(member)


def can_role_move_batch_to(role: Role | str | None, target: str) -> bool:
    """True iff ``role`` may move a batch to ``target``.  Unknown roles may not."""
    if role is None:
        return False
    try:
        role = Role(role)
    except ValueError:
        return False
    member = _batch(target)
    if member is None:
        return False
    return member in BATCH_ROLE_TARGETS.get(role, frozenset())
