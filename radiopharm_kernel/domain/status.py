"""
Status state machines (``radiopharm_kernel.domain.status``).

Responsibility
--------------
Closed status vocabularies for orders and production batches, the static
transition tables that define every legal move, the batch status
classification sets, the batch-to-order status projection, and the
role-to-target table that gates who may move a batch where.

Architecture position
---------------------
**Kernel domain layer** -- pure constants.  ZERO I/O.  No imports from
``db/``, ``services/`` or outer layers.  The lookups over these tables live
in ``radiopharm_engines.transitions``.

Invariants enforced
-------------------
* Every table is a read-only ``MappingProxyType`` of ``frozenset`` values.
* ``ORDER_TRANSITIONS`` and ``BATCH_TRANSITIONS`` are total over their enum:
  every status is a key, and an empty set marks a terminal status.
* ``BATCH_TO_ORDER_STATUS`` is partial: batch statuses that are not keys
  leave the linked orders untouched.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class EntityKind(str, Enum):
    """Kinds of entity that carry a status and may trigger workflows."""

    ORDER = "ORDER"
    BATCH = "BATCH"


class OrderStatus(str, Enum):
    """Customer order lifecycle."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    VALIDATED = "VALIDATED"
    SCHEDULED = "SCHEDULED"
    IN_PRODUCTION = "IN_PRODUCTION"
    QC_PENDING = "QC_PENDING"
    RELEASED = "RELEASED"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    FAILED_QC = "FAILED_QC"
    REWORK = "REWORK"


class BatchStatus(str, Enum):
    """Production batch lifecycle, from planning through dispatch."""

    PLANNED = "PLANNED"
    SCHEDULED = "SCHEDULED"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCTION_COMPLETE = "PRODUCTION_COMPLETE"
    QC_PENDING = "QC_PENDING"
    QC_IN_PROGRESS = "QC_IN_PROGRESS"
    QC_PASSED = "QC_PASSED"
    QP_REVIEW = "QP_REVIEW"
    RELEASED = "RELEASED"
    DISPENSING_IN_PROGRESS = "DISPENSING_IN_PROGRESS"
    DISPENSED = "DISPENSED"
    PACKED = "PACKED"
    DISPATCHED = "DISPATCHED"
    CLOSED = "CLOSED"
    ON_HOLD = "ON_HOLD"
    REJECTED = "REJECTED"
    FAILED_QC = "FAILED_QC"
    CANCELLED = "CANCELLED"
    DEVIATION_OPEN = "DEVIATION_OPEN"


class Role(str, Enum):
    """Closed set of user roles.  Values are the display names used in config."""

    ADMIN = "Admin"
    SALES = "Sales"
    PRODUCTION_PLANNER = "Production Planner"
    PRODUCTION_MANAGER = "Production Manager"
    QC_ANALYST = "QC Analyst"
    QUALIFIED_PERSON = "Qualified Person"
    LOGISTICS = "Logistics"
    DISPENSING = "Dispensing"
    CUSTOMER_SERVICE = "Customer Service"
    CUSTOMER = "Customer"


# =========================================================================
# Transition tables
# =========================================================================

_O = OrderStatus

ORDER_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType({
    _O.DRAFT: frozenset({_O.SUBMITTED, _O.CANCELLED}),
    _O.SUBMITTED: frozenset({_O.VALIDATED, _O.REJECTED, _O.CANCELLED}),
    _O.VALIDATED: frozenset({_O.SCHEDULED, _O.CANCELLED}),
    _O.SCHEDULED: frozenset({_O.IN_PRODUCTION, _O.CANCELLED}),
    _O.IN_PRODUCTION: frozenset({_O.QC_PENDING, _O.CANCELLED}),
    _O.QC_PENDING: frozenset({_O.RELEASED, _O.FAILED_QC}),
    _O.RELEASED: frozenset({_O.DISPATCHED}),
    _O.DISPATCHED: frozenset({_O.DELIVERED}),
    _O.DELIVERED: frozenset(),
    _O.CANCELLED: frozenset(),
    _O.REJECTED: frozenset({_O.DRAFT}),
    _O.FAILED_QC: frozenset({_O.REWORK, _O.CANCELLED}),
    _O.REWORK: frozenset({_O.IN_PRODUCTION, _O.CANCELLED}),
})

_B = BatchStatus

BATCH_TRANSITIONS: Mapping[BatchStatus, frozenset[BatchStatus]] = MappingProxyType({
    _B.PLANNED: frozenset({_B.SCHEDULED, _B.IN_PRODUCTION, _B.ON_HOLD, _B.CANCELLED}),
    _B.SCHEDULED: frozenset({_B.IN_PRODUCTION, _B.ON_HOLD, _B.CANCELLED}),
    _B.IN_PRODUCTION: frozenset({
        _B.PRODUCTION_COMPLETE, _B.ON_HOLD, _B.DEVIATION_OPEN, _B.CANCELLED,
    }),
    _B.PRODUCTION_COMPLETE: frozenset({_B.QC_PENDING, _B.ON_HOLD, _B.DEVIATION_OPEN}),
    _B.QC_PENDING: frozenset({_B.QC_IN_PROGRESS, _B.ON_HOLD}),
    _B.QC_IN_PROGRESS: frozenset({
        _B.QC_PASSED, _B.FAILED_QC, _B.ON_HOLD, _B.DEVIATION_OPEN,
    }),
    _B.QC_PASSED: frozenset({_B.QP_REVIEW, _B.ON_HOLD}),
    _B.QP_REVIEW: frozenset({_B.RELEASED, _B.REJECTED, _B.ON_HOLD}),
    _B.RELEASED: frozenset({_B.DISPENSING_IN_PROGRESS, _B.ON_HOLD}),
    _B.DISPENSING_IN_PROGRESS: frozenset({_B.DISPENSED, _B.ON_HOLD, _B.DEVIATION_OPEN}),
    _B.DISPENSED: frozenset({_B.PACKED}),
    _B.PACKED: frozenset({_B.DISPATCHED}),
    _B.DISPATCHED: frozenset({_B.CLOSED}),
    _B.CLOSED: frozenset(),
    _B.ON_HOLD: frozenset({
        _B.PLANNED, _B.IN_PRODUCTION, _B.QC_PENDING, _B.QP_REVIEW, _B.CANCELLED,
    }),
    _B.DEVIATION_OPEN: frozenset({_B.ON_HOLD, _B.QC_PENDING, _B.REJECTED, _B.CANCELLED}),
    _B.FAILED_QC: frozenset({_B.CANCELLED, _B.DEVIATION_OPEN}),
    _B.REJECTED: frozenset(),
    _B.CANCELLED: frozenset(),
})


# =========================================================================
# Batch classification
# =========================================================================

# Statuses that take a batch out of the normal flow.
EXCEPTION_STATUSES: frozenset[BatchStatus] = frozenset({
    _B.ON_HOLD,
    _B.REJECTED,
    _B.FAILED_QC,
    _B.CANCELLED,
    _B.DEVIATION_OPEN,
})

DISPATCH_BLOCKED_STATUSES: frozenset[BatchStatus] = EXCEPTION_STATUSES

# Statuses from which dispensing work may proceed.
DISPENSABLE_STATUSES: frozenset[BatchStatus] = frozenset({
    _B.RELEASED,
    _B.DISPENSING_IN_PROGRESS,
    _B.DISPENSED,
    _B.PACKED,
})

# Targets that require a dispensable current status.
DISPENSE_TARGET_STATUSES: frozenset[BatchStatus] = frozenset({
    _B.DISPENSING_IN_PROGRESS,
    _B.DISPENSED,
    _B.PACKED,
    _B.DISPATCHED,
})


# =========================================================================
# Batch -> order projection
# =========================================================================

BATCH_TO_ORDER_STATUS: Mapping[BatchStatus, OrderStatus] = MappingProxyType({
    _B.IN_PRODUCTION: _O.IN_PRODUCTION,
    _B.QC_PENDING: _O.QC_PENDING,
    _B.FAILED_QC: _O.FAILED_QC,
    _B.RELEASED: _O.RELEASED,
    _B.DISPATCHED: _O.DISPATCHED,
})


# =========================================================================
# Role gating for batch moves
# =========================================================================

BATCH_ROLE_TARGETS: Mapping[Role, frozenset[BatchStatus]] = MappingProxyType({
    Role.ADMIN: frozenset(BatchStatus),
    Role.PRODUCTION_MANAGER: frozenset({
        _B.IN_PRODUCTION, _B.PRODUCTION_COMPLETE, _B.ON_HOLD, _B.DEVIATION_OPEN,
    }),
    Role.QC_ANALYST: frozenset({
        _B.QC_PENDING, _B.QC_IN_PROGRESS, _B.QC_PASSED, _B.FAILED_QC, _B.QP_REVIEW,
    }),
    Role.QUALIFIED_PERSON: frozenset({_B.RELEASED, _B.REJECTED, _B.ON_HOLD}),
    Role.LOGISTICS: frozenset({_B.DISPATCHED, _B.CLOSED}),
    Role.DISPENSING: frozenset({_B.DISPENSING_IN_PROGRESS, _B.DISPENSED, _B.PACKED}),
})

del _O, _B
