"""
Tests for ApprovalWorkflowEngine (services layer coordinator).

Tests cover:
- trigger_workflow: no matching workflow, request creation, approver notices
- process_approval: advance, completion, rejection, and the three failure
  types (not found, forbidden, conflict) leaving the request untouched
- inactive and unknown users
- notifications only after commit; delivery failures do not undo decisions
- pending_approvals_for and approval_history_for
- sync_definitions from configuration
"""

from uuid import uuid4

import pytest

from radiopharm_config import get_active_config
from radiopharm_kernel.domain.approval import (
    APPROVAL_REQUEST_KIND,
    ApprovalDecision,
    ApprovalResolution,
    ApprovalStatus,
)
from radiopharm_kernel.domain.status import EntityKind, Role
from radiopharm_kernel.exceptions import (
    ApprovalConflictError,
    ApprovalForbiddenError,
    ApprovalNotFoundError,
)
from radiopharm_services.approval_workflow import (
    ApprovalWorkflowEngine,
    ApprovalWorkflowSession,
)
from tests.fakes import REQUESTER_ID, FakeNotifier, make_workflow

APPROVED = ApprovalDecision.APPROVED
REJECTED = ApprovalDecision.REJECTED


def submit_order(engine, order_id="ORD-1001"):
    return engine.trigger_workflow(EntityKind.ORDER, order_id, "SUBMITTED", REQUESTER_ID)


class TestTriggerWorkflow:

    def test_no_configured_workflow_returns_none(self, approval_engine, notifier):
        assert submit_order(approval_engine) is None
        assert notifier.sent == []

    def test_inactive_workflow_is_not_triggered(self, approval_engine, register_workflow):
        register_workflow(make_workflow(is_active=False))
        assert submit_order(approval_engine) is None

    def test_other_trigger_status_is_not_triggered(self, approval_engine, register_workflow):
        register_workflow(make_workflow())
        assert approval_engine.trigger_workflow(
            EntityKind.ORDER, "ORD-1", "VALIDATED", REQUESTER_ID,
        ) is None

    def test_creates_request_and_notifies_first_step(
        self, approval_engine, register_workflow, notifier,
    ):
        register_workflow(make_workflow())
        outcome = submit_order(approval_engine)

        assert outcome.resolution is ApprovalResolution.CREATED
        assert outcome.request.status is ApprovalStatus.PENDING
        assert outcome.request.current_step_order == 1
        assert outcome.next_step.approver_role is Role.CUSTOMER_SERVICE

        assert notifier.recipients() == {"cs-1", "cs-2"}
        notice = notifier.sent[0]
        assert notice["title"] == "Approval Required: Customer Service Review"
        assert notice["related_entity_id"] == str(outcome.request.request_id)
        assert notice["related_entity_kind"] == APPROVAL_REQUEST_KIND
        assert outcome.dispatch.delivered == 2

    def test_inactive_users_are_not_notified(self, approval_engine, register_workflow, notifier):
        register_workflow(make_workflow(
            name="Batch Release", entity_kind=EntityKind.BATCH, trigger_status="QC_PASSED",
            roles=(Role.QC_ANALYST,),
        ))
        approval_engine.trigger_workflow(EntityKind.BATCH, "B-1", "QC_PASSED", "qc-1")
        assert notifier.recipients() == {"qc-1", "qc-2"}

    def test_logs_carry_actor_and_entity(self, approval_engine, register_workflow, captured_logs):
        register_workflow(make_workflow())
        submit_order(approval_engine, "ORD-77")
        created = [r for r in captured_logs() if r["message"] == "approval_request_created"]
        assert created[0]["actor_id"] == REQUESTER_ID
        assert created[0]["entity_id"] == "ORD-77"


class TestProcessApproval:

    def test_two_step_approval(self, approval_engine, register_workflow, notifier):
        register_workflow(make_workflow())
        request = submit_order(approval_engine).request
        notifier.clear()

        outcome = approval_engine.process_approval(request.request_id, "cs-1", APPROVED)
        assert outcome.resolution is ApprovalResolution.ADVANCED
        assert outcome.request.current_step_order == 2
        assert outcome.action.actor_role is Role.CUSTOMER_SERVICE
        assert notifier.recipients() == {"planner-1"}

        notifier.clear()
        outcome = approval_engine.process_approval(
            request.request_id, "planner-1", APPROVED, comments="Cyclotron slot free",
        )
        assert outcome.resolution is ApprovalResolution.APPROVED
        assert outcome.request.status is ApprovalStatus.APPROVED
        assert outcome.next_step is None
        assert [a.step_order for a in outcome.request.actions] == [1, 2]
        assert notifier.recipients() == {REQUESTER_ID}
        assert notifier.sent[0]["title"] == "Approval Completed"
        assert notifier.sent[0]["related_entity_id"] == "ORD-1001"

    def test_single_step_then_conflict(self, approval_engine, register_workflow):
        register_workflow(make_workflow(roles=(Role.CUSTOMER_SERVICE,)))
        request = submit_order(approval_engine).request

        outcome = approval_engine.process_approval(request.request_id, "cs-1", APPROVED)
        assert outcome.request.status is ApprovalStatus.APPROVED

        with pytest.raises(ApprovalConflictError) as exc_info:
            approval_engine.process_approval(request.request_id, "cs-2", APPROVED)
        assert exc_info.value.current_status == "approved"
        assert len(approval_engine.get_request(request.request_id).actions) == 1

    def test_previous_step_role_is_forbidden(self, approval_engine, register_workflow, notifier):
        register_workflow(make_workflow())
        request = submit_order(approval_engine).request
        approval_engine.process_approval(request.request_id, "cs-1", APPROVED)
        notifier.clear()

        with pytest.raises(ApprovalForbiddenError) as exc_info:
            approval_engine.process_approval(request.request_id, "cs-2", APPROVED)
        err = exc_info.value
        assert err.code == "APPROVAL_FORBIDDEN"
        assert err.actor_role == "Customer Service"
        assert err.required_role == "Production Planner"
        assert err.step_order == 2

        current = approval_engine.get_request(request.request_id)
        assert current.current_step_order == 2
        assert len(current.actions) == 1
        assert notifier.sent == []

    def test_rejection_stops_the_chain(self, approval_engine, register_workflow, notifier):
        register_workflow(make_workflow(
            roles=(Role.CUSTOMER_SERVICE, Role.PRODUCTION_PLANNER, Role.QUALIFIED_PERSON),
        ))
        request = submit_order(approval_engine).request
        approval_engine.process_approval(request.request_id, "cs-1", APPROVED)
        notifier.clear()

        outcome = approval_engine.process_approval(
            request.request_id, "planner-1", REJECTED, comments="No cyclotron capacity.",
        )
        assert outcome.resolution is ApprovalResolution.REJECTED
        assert outcome.request.status is ApprovalStatus.REJECTED
        assert outcome.request.completed_at is not None
        assert notifier.recipients() == {REQUESTER_ID}
        assert notifier.sent[0]["message"] == (
            "Your ORDER approval request was rejected. No cyclotron capacity."
        )

        with pytest.raises(ApprovalConflictError):
            approval_engine.process_approval(request.request_id, "qp-1", APPROVED)
        assert "qp-1" not in notifier.recipients()

    def test_expected_step_mismatch_conflicts(self, approval_engine, register_workflow, captured_logs):
        register_workflow(make_workflow())
        request = submit_order(approval_engine).request

        with pytest.raises(ApprovalConflictError) as exc_info:
            approval_engine.process_approval(
                request.request_id, "cs-1", APPROVED, expected_step_order=2,
            )
        assert exc_info.value.current_step_order == 1
        assert exc_info.value.observed_step_order == 2
        reasons = [
            r["reason"] for r in captured_logs() if r["message"] == "approval_decision_conflict"
        ]
        assert reasons == ["not_pending_at_expected_step"]

    @pytest.mark.parametrize("actor_id", ["nobody", "qc-3"])
    def test_unknown_and_inactive_users_are_forbidden(
        self, approval_engine, register_workflow, actor_id,
    ):
        register_workflow(make_workflow(
            name="Batch Release", entity_kind=EntityKind.BATCH, trigger_status="QC_PASSED",
            roles=(Role.QC_ANALYST,),
        ))
        request = approval_engine.trigger_workflow(
            EntityKind.BATCH, "B-1", "QC_PASSED", "qc-1",
        ).request
        with pytest.raises(ApprovalForbiddenError) as exc_info:
            approval_engine.process_approval(request.request_id, actor_id, APPROVED)
        assert exc_info.value.actor_role is None

    def test_admin_is_not_an_approver(self, approval_engine, register_workflow):
        register_workflow(make_workflow())
        request = submit_order(approval_engine).request
        with pytest.raises(ApprovalForbiddenError):
            approval_engine.process_approval(request.request_id, "admin-1", APPROVED)

    def test_unknown_request(self, approval_engine):
        with pytest.raises(ApprovalNotFoundError):
            approval_engine.process_approval(uuid4(), "cs-1", APPROVED)


class TestNotificationDelivery:

    def test_nothing_sent_when_transaction_rolls_back(
        self, approval_engine, register_workflow, notifier, monkeypatch,
    ):
        register_workflow(make_workflow())
        original = ApprovalWorkflowSession.trigger

        def trigger_then_fail(self, *args, **kwargs):
            outcome = original(self, *args, **kwargs)
            assert outcome.notifications
            raise RuntimeError("storage lost after request creation")

        monkeypatch.setattr(ApprovalWorkflowSession, "trigger", trigger_then_fail)
        with pytest.raises(RuntimeError):
            submit_order(approval_engine)

        assert notifier.sent == []
        assert approval_engine.approval_history_for(EntityKind.ORDER, "ORD-1001") == []

    def test_delivery_failure_keeps_the_decision(
        self, session_factory, directory, deterministic_clock, register_workflow,
    ):
        failing = FakeNotifier(failing={"cs-1"})
        engine = ApprovalWorkflowEngine(
            directory, failing, session_factory=session_factory, clock=deterministic_clock,
        )
        register_workflow(make_workflow())
        outcome = submit_order(engine)

        assert outcome.dispatch.delivered == 1
        assert outcome.dispatch.failed_count == 1
        assert outcome.dispatch.failed[0].recipient_id == "cs-1"
        assert failing.recipients() == {"cs-2"}
        assert engine.get_request(outcome.request.request_id).status is ApprovalStatus.PENDING

    def test_requires_a_notifier_or_dispatcher(self, directory):
        with pytest.raises(ValueError):
            ApprovalWorkflowEngine(directory)


class TestQueries:

    def test_pending_follows_the_current_step(self, approval_engine, register_workflow):
        register_workflow(make_workflow())
        request = submit_order(approval_engine).request

        assert [r.request_id for r in approval_engine.pending_approvals_for("cs-2")] == [
            request.request_id,
        ]
        assert approval_engine.pending_approvals_for("planner-1") == []

        approval_engine.process_approval(request.request_id, "cs-1", APPROVED)
        assert approval_engine.pending_approvals_for("cs-2") == []
        assert len(approval_engine.pending_approvals_for("planner-1")) == 1

    def test_pending_for_unknown_user_is_empty(self, approval_engine, register_workflow):
        register_workflow(make_workflow())
        submit_order(approval_engine)
        assert approval_engine.pending_approvals_for("nobody") == []

    def test_history_newest_first(
        self, approval_engine, register_workflow, deterministic_clock,
    ):
        register_workflow(make_workflow())
        first = submit_order(approval_engine).request
        approval_engine.process_approval(first.request_id, "cs-1", REJECTED)
        deterministic_clock.advance(3600)
        second = submit_order(approval_engine).request

        history = approval_engine.approval_history_for(EntityKind.ORDER, "ORD-1001")
        assert [r.request_id for r in history] == [second.request_id, first.request_id]
        assert [r.status for r in history] == [ApprovalStatus.PENDING, ApprovalStatus.REJECTED]

    def test_list_requests_by_status(
        self, approval_engine, register_workflow, deterministic_clock,
    ):
        register_workflow(make_workflow())
        rejected = submit_order(approval_engine, "ORD-1").request
        approval_engine.process_approval(rejected.request_id, "cs-1", REJECTED)
        deterministic_clock.advance(60)
        pending = submit_order(approval_engine, "ORD-2").request

        listed = approval_engine.list_requests(status=ApprovalStatus.PENDING)
        assert [r.request_id for r in listed] == [pending.request_id]
        assert len(approval_engine.list_requests(entity_kind=EntityKind.ORDER)) == 2
        assert approval_engine.list_requests(entity_kind=EntityKind.BATCH) == []


class TestSyncDefinitions:

    def test_default_configuration_drives_triggers(self, approval_engine, notifier):
        config = get_active_config()
        active = approval_engine.sync_definitions(config.active_workflows())
        assert {d.name for d in active} == {"Order Acceptance", "Batch Release"}

        outcome = approval_engine.trigger_workflow(
            EntityKind.BATCH, "B-9", "QC_PASSED", "qc-1",
        )
        assert outcome.next_step.step_name == "QC Review"
        assert notifier.recipients() == {"qc-1", "qc-2"}

    def test_sync_is_idempotent(self, approval_engine):
        definitions = get_active_config().active_workflows()
        first = approval_engine.sync_definitions(definitions)
        second = approval_engine.sync_definitions(definitions)
        assert {d.workflow_id for d in first} == {d.workflow_id for d in second}
