"""
Tests for the order and batch transition validator.

Tests cover:
- can_transition / assert_transition over every (from, to) pair of both tables
- terminal statuses, unknown statuses
- batch classification: exception, dispensable, dispatch-blocked
- batch -> order status projection
- role gating of batch moves
"""

import itertools

import pytest

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
from radiopharm_kernel.domain.status import (
    BATCH_ROLE_TARGETS,
    BATCH_TRANSITIONS,
    DISPENSABLE_STATUSES,
    EXCEPTION_STATUSES,
    ORDER_TRANSITIONS,
    BatchStatus,
    EntityKind,
    OrderStatus,
    Role,
)
from radiopharm_kernel.exceptions import IllegalTransitionError

ORDER_PAIRS = list(itertools.product(OrderStatus, OrderStatus))
BATCH_PAIRS = list(itertools.product(BatchStatus, BatchStatus))


class TestTablesAreTotal:
    """Every status has an entry, and every entry targets known statuses."""

    def test_every_order_status_has_a_row(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    def test_every_batch_status_has_a_row(self):
        assert set(BATCH_TRANSITIONS) == set(BatchStatus)

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            ORDER_TRANSITIONS[OrderStatus.DELIVERED] = frozenset({OrderStatus.DRAFT})

    def test_no_self_transitions(self):
        for status, targets in ORDER_TRANSITIONS.items():
            assert status not in targets
        for status, targets in BATCH_TRANSITIONS.items():
            assert status not in targets


class TestOrderTransitions:

    @pytest.mark.parametrize("current,target", ORDER_PAIRS, ids=lambda s: s.value)
    def test_matches_table(self, current, target):
        expected = target in ORDER_TRANSITIONS[current]
        assert can_transition(EntityKind.ORDER, current, target) is expected
        assert can_transition(EntityKind.ORDER, current.value, target.value) is expected
        if expected:
            assert_transition(EntityKind.ORDER, current, target)
        else:
            with pytest.raises(IllegalTransitionError):
                assert_transition(EntityKind.ORDER, current, target)

    def test_draft_to_submitted(self):
        assert can_transition(EntityKind.ORDER, "DRAFT", "SUBMITTED")

    def test_delivered_is_terminal(self):
        assert is_terminal(EntityKind.ORDER, OrderStatus.DELIVERED)
        assert next_statuses(EntityKind.ORDER, "DELIVERED") == frozenset()

    def test_rejected_can_return_to_draft(self):
        assert not is_terminal(EntityKind.ORDER, "REJECTED")
        assert can_transition(EntityKind.ORDER, "REJECTED", "DRAFT")

    def test_illegal_transition_error_lists_allowed(self):
        with pytest.raises(IllegalTransitionError) as exc_info:
            assert_transition(EntityKind.ORDER, "DRAFT", "DELIVERED")
        err = exc_info.value
        assert err.code == "ILLEGAL_TRANSITION"
        assert err.entity_kind == "ORDER"
        assert err.current_status == "DRAFT"
        assert err.requested_status == "DELIVERED"
        assert err.allowed_statuses == ("CANCELLED", "SUBMITTED")


class TestBatchTransitions:

    @pytest.mark.parametrize("current,target", BATCH_PAIRS, ids=lambda s: s.value)
    def test_matches_table(self, current, target):
        expected = target in BATCH_TRANSITIONS[current]
        assert can_transition(EntityKind.BATCH, current.value, target.value) is expected

    def test_on_hold_can_return_to_planned(self):
        assert can_transition(EntityKind.BATCH, BatchStatus.ON_HOLD, BatchStatus.PLANNED)

    @pytest.mark.parametrize("status", ["CLOSED", "REJECTED", "CANCELLED"])
    def test_terminal_batch_statuses(self, status):
        assert is_terminal(EntityKind.BATCH, status)

    def test_released_to_dispensing(self):
        assert can_transition(EntityKind.BATCH, "RELEASED", "DISPENSING_IN_PROGRESS")


class TestUnknownStatuses:
    """Unknown values are never legal and never terminal."""

    def test_unknown_current(self):
        assert not can_transition(EntityKind.ORDER, "LOST", "SUBMITTED")
        assert next_statuses(EntityKind.ORDER, "LOST") == frozenset()
        assert not is_terminal(EntityKind.ORDER, "LOST")

    def test_unknown_target(self):
        assert not can_transition(EntityKind.ORDER, "DRAFT", "teleported")

    def test_statuses_are_per_kind(self):
        # PLANNED is a batch status only
        assert not can_transition(EntityKind.ORDER, "REJECTED", "PLANNED")

    def test_assert_with_unknown_target_names_it(self):
        with pytest.raises(IllegalTransitionError) as exc_info:
            assert_transition(EntityKind.BATCH, "PLANNED", "MELTED")
        assert exc_info.value.requested_status == "MELTED"


class TestBatchClassification:

    @pytest.mark.parametrize("status", list(BatchStatus), ids=lambda s: s.value)
    def test_classification_matches_sets(self, status):
        assert is_exception_status(status) is (status in EXCEPTION_STATUSES)
        assert is_blocked_from_dispatch(status) is (status in EXCEPTION_STATUSES)
        assert can_dispense(status) is (status in DISPENSABLE_STATUSES)

    def test_exception_statuses_never_dispensable(self):
        assert not (EXCEPTION_STATUSES & DISPENSABLE_STATUSES)

    def test_string_values_accepted(self):
        assert is_exception_status("ON_HOLD")
        assert can_dispense("RELEASED")
        assert not can_dispense("QC_PASSED")

    def test_unknown_status_is_not_classified(self):
        assert not is_exception_status("LOST")
        assert not can_dispense("LOST")


class TestOrderProjection:

    @pytest.mark.parametrize(
        "batch_status,order_status",
        [
            (BatchStatus.IN_PRODUCTION, OrderStatus.IN_PRODUCTION),
            (BatchStatus.QC_PENDING, OrderStatus.QC_PENDING),
            (BatchStatus.FAILED_QC, OrderStatus.FAILED_QC),
            (BatchStatus.RELEASED, OrderStatus.RELEASED),
            (BatchStatus.DISPATCHED, OrderStatus.DISPATCHED),
        ],
    )
    def test_projected(self, batch_status, order_status):
        assert projected_order_status(batch_status) is order_status

    @pytest.mark.parametrize("status", ["PLANNED", "QC_PASSED", "ON_HOLD", "CLOSED", "LOST"])
    def test_not_projected(self, status):
        assert projected_order_status(status) is None


class TestRoleGating:

    def test_admin_may_move_anywhere(self):
        assert all(can_role_move_batch_to(Role.ADMIN, s) for s in BatchStatus)

    def test_qc_analyst_may_pass_qc(self):
        assert can_role_move_batch_to(Role.QC_ANALYST, BatchStatus.QC_PASSED)

    def test_qc_analyst_may_not_release(self):
        assert not can_role_move_batch_to(Role.QC_ANALYST, BatchStatus.RELEASED)

    def test_qualified_person_releases(self):
        assert can_role_move_batch_to("Qualified Person", "RELEASED")

    def test_roles_without_entry_may_not_move(self):
        assert Role.CUSTOMER not in BATCH_ROLE_TARGETS
        assert not can_role_move_batch_to(Role.CUSTOMER, BatchStatus.PLANNED)

    @pytest.mark.parametrize("role", [None, "Janitor"])
    def test_unknown_role_may_not_move(self, role):
        assert not can_role_move_batch_to(role, BatchStatus.ON_HOLD)

    def test_unknown_target_rejected(self):
        assert not can_role_move_batch_to(Role.ADMIN, "MELTED")


class TestTransitionTrace:

    def test_assertive_check_is_traced(self, captured_logs):
        assert_transition(kind=EntityKind.ORDER, current="DRAFT", target="SUBMITTED")
        with pytest.raises(IllegalTransitionError):
            assert_transition(kind=EntityKind.ORDER, current="DRAFT", target="DELIVERED")

        traces = [r for r in captured_logs() if r["message"] == "RADIOPHARM_ENGINE_TRACE"]
        assert [t["engine_name"] for t in traces] == ["transitions", "transitions"]
        assert [t["outcome"] for t in traces] == ["ok", "ILLEGAL_TRANSITION"]
        assert traces[0]["input_fingerprint"] != traces[1]["input_fingerprint"]
