"""
Module: radiopharm_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    radiopharm_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import radiopharm_kernel/domain and radiopharm_kernel/exceptions.
    MUST NOT import radiopharm_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Instants are passed
      in; callers (services) own the clock.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from radiopharm_engines.decay import decayed_activity, backward_schedule
    from radiopharm_engines.transitions import can_transition, assert_transition
    from radiopharm_engines.approval import select_workflow, resolve_decision
    from radiopharm_engines.planning import plan_production
"""

from radiopharm_engines.approval import (
    approver_notifications,
    completion_notification,
    is_authorized,
    next_step,
    rejection_notification,
    resolve_decision,
    select_workflow,
    step_for,
)
from radiopharm_engines.decay import (
    BackwardSchedule,
    activity_at_time,
    backward_schedule,
    decay_constant,
    decayed_activity,
    elapsed_minutes,
    is_within_shelf_life,
    production_activity_with_overage,
    required_initial_activity,
)
from radiopharm_engines.planning import (
    PlanningRequest,
    ProductionPlan,
    ProductTiming,
    TransitActivity,
    activity_in_transit,
    plan_production,
)
from radiopharm_engines.transitions import (
    assert_transition,
    can_dispense,
    can_role_move_batch_to,
    can_transition,
    is_blocked_from_dispatch,
    is_exception_status,
    is_terminal,
    next_statuses,
    projected_order_status,
)

__all__ = [
    # Decay
    "BackwardSchedule",
    "activity_at_time",
    "backward_schedule",
    "decay_constant",
    "decayed_activity",
    "elapsed_minutes",
    "is_within_shelf_life",
    "production_activity_with_overage",
    "required_initial_activity",
    # Transitions
    "assert_transition",
    "can_dispense",
    "can_role_move_batch_to",
    "can_transition",
    "is_blocked_from_dispatch",
    "is_exception_status",
    "is_terminal",
    "next_statuses",
    "projected_order_status",
    # Approval
    "approver_notifications",
    "completion_notification",
    "is_authorized",
    "next_step",
    "rejection_notification",
    "resolve_decision",
    "select_workflow",
    "step_for",
    # Planning
    "PlanningRequest",
    "ProductionPlan",
    "ProductTiming",
    "TransitActivity",
    "activity_in_transit",
    "plan_production",
]
