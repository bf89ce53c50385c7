"""
Typed exception hierarchy for the radiopharm kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of this core (route handlers, schedulers, UI adapters) must tell
apart "unknown request", "not your turn" and "already decided" without
parsing message strings.  Every error therefore:

  1. Has its own class (catch by type, not by message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (survives logging and serialization)

Example:

    try:
        engine.process_approval(request_id, actor_id, ApprovalDecision.APPROVED)
    except ApprovalForbiddenError as e:
        return api_error(403, code=e.code, required_role=e.required_role)
    except ApprovalConflictError as e:
        return api_error(409, code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RadiopharmError (base)
    |
    +-- DecayError
    |   +-- InvalidParameterError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |   +-- DispatchBlockedError
    |   +-- RoleNotPermittedError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalForbiddenError
    |   +-- ApprovalConflictError
    |
    +-- WorkflowDefinitionError
    |
    +-- PlanningError
    |   +-- OrderNotFeasibleError
    |
    +-- EntityNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|-------------------------------------
Decay         | INVALID_PARAMETER        | Non-positive half-life, bad times
--------------|--------------------------|-------------------------------------
Transition    | ILLEGAL_TRANSITION       | Move absent from transition table
              | DISPATCH_BLOCKED         | Blocked/unreleased batch to dispatch
              | ROLE_NOT_PERMITTED       | Role may not move batch to target
--------------|--------------------------|-------------------------------------
Approval      | APPROVAL_NOT_FOUND       | Unknown approval request
              | APPROVAL_FORBIDDEN       | Actor role is not the live step's
              | APPROVAL_CONFLICT        | Already resolved / lost the race
--------------|--------------------------|-------------------------------------
Configuration | WORKFLOW_DEFINITION      | Invalid or ambiguous workflow config
--------------|--------------------------|-------------------------------------
Planning      | ORDER_TIME_NOT_FEASIBLE  | Delivery exceeds shelf life
--------------|--------------------------|-------------------------------------
Entity        | ENTITY_NOT_FOUND         | Repository has no such order/batch
--------------|--------------------------|-------------------------------------
Immutability  | IMMUTABILITY_VIOLATION   | UPDATE/DELETE of an append-only row

===============================================================================
"""

from __future__ import annotations

from typing import Any


class RadiopharmError(Exception):
    """
    Base exception for all radiopharm kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RADIOPHARM_ERROR"


# Decay-related exceptions


class DecayError(RadiopharmError):
    """Base exception for decay-mathematics errors."""

    code: str = "DECAY_ERROR"


class InvalidParameterError(DecayError):
    """A decay or scheduling input is outside its valid domain."""

    code: str = "INVALID_PARAMETER"

    def __init__(self, parameter: str, value: Any, reason: str):
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {parameter}={value!r}: {reason}")


# Transition-related exceptions


class TransitionError(RadiopharmError):
    """Base exception for status-transition errors."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """The requested status move is absent from the transition table."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_kind: str,
        current_status: str,
        requested_status: str,
        allowed_statuses: tuple[str, ...] = (),
    ):
        self.entity_kind = entity_kind
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_statuses = allowed_statuses
        super().__init__(
            f"Invalid {entity_kind} status transition from {current_status} "
            f"to {requested_status}"
        )


class DispatchBlockedError(TransitionError):
    """A batch cannot enter a dispensing or dispatch status from its current status."""

    code: str = "DISPATCH_BLOCKED"

    def __init__(self, batch_id: str, current_status: str, requested_status: str):
        self.batch_id = batch_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Batch {batch_id} is {current_status} and cannot proceed to "
            f"{requested_status}"
        )


class RoleNotPermittedError(TransitionError):
    """The actor's role may not move a batch to the requested status."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, actor_id: str, role: str | None, requested_status: str):
        self.actor_id = actor_id
        self.role = role
        self.requested_status = requested_status
        super().__init__(
            f"Role {role} of actor {actor_id} may not move batches to "
            f"{requested_status}"
        )


# Approval-related exceptions


class ApprovalError(RadiopharmError):
    """Base exception for approval workflow errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval request with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class ApprovalForbiddenError(ApprovalError):
    """The actor does not hold the approver role of the current step."""

    code: str = "APPROVAL_FORBIDDEN"

    def __init__(
        self,
        request_id: str,
        actor_id: str,
        actor_role: str | None,
        required_role: str,
        step_order: int,
    ):
        self.request_id = request_id
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.required_role = required_role
        self.step_order = step_order
        super().__init__(
            f"Actor {actor_id} (role {actor_role}) is not authorized for step "
            f"{step_order} of approval request {request_id}; requires {required_role}"
        )


class ApprovalConflictError(ApprovalError):
    """
    The decision cannot be applied to the request's current state.

    Raised when the request is already resolved, when the caller observed a
    different step than the live one, and when a concurrent decision on the
    same step committed first.  All three are the same outcome for a caller:
    someone else already decided.
    """

    code: str = "APPROVAL_CONFLICT"

    def __init__(
        self,
        request_id: str,
        current_status: str,
        current_step_order: int | None = None,
        observed_step_order: int | None = None,
    ):
        self.request_id = request_id
        self.current_status = current_status
        self.current_step_order = current_step_order
        self.observed_step_order = observed_step_order
        super().__init__(
            f"Approval request {request_id} cannot accept this decision: "
            f"status={current_status}, step={current_step_order}, "
            f"observed_step={observed_step_order}"
        )


# Configuration exceptions


class WorkflowDefinitionError(RadiopharmError):
    """A workflow definition is invalid or ambiguous."""

    code: str = "WORKFLOW_DEFINITION"

    def __init__(self, workflow_name: str, reason: str):
        self.workflow_name = workflow_name
        self.reason = reason
        super().__init__(f"Workflow definition '{workflow_name}' is invalid: {reason}")


# Planning exceptions


class PlanningError(RadiopharmError):
    """Base exception for production planning errors."""

    code: str = "PLANNING_ERROR"


class OrderNotFeasibleError(PlanningError):
    """Delivery time exceeds product shelf life from the latest production start."""

    code: str = "ORDER_TIME_NOT_FEASIBLE"

    def __init__(
        self,
        shelf_life_minutes: float,
        estimated_production_time: Any,
        delivery_time: Any,
    ):
        self.shelf_life_minutes = shelf_life_minutes
        self.estimated_production_time = estimated_production_time
        self.delivery_time = delivery_time
        super().__init__(
            "Order not feasible: delivery time exceeds product shelf life "
            f"({shelf_life_minutes} min from {estimated_production_time} "
            f"to {delivery_time})"
        )


# Entity exceptions


class EntityNotFoundError(RadiopharmError):
    """The entity repository has no record of the tracked entity."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(f"{entity_kind} not found: {entity_id}")


# Immutability-related exceptions


class ImmutabilityError(RadiopharmError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
