"""ORM models for the radiopharm kernel."""

from radiopharm_kernel.models.approval import ApprovalActionModel, ApprovalRequestModel
from radiopharm_kernel.models.audit_event import AuditAction, AuditEvent
from radiopharm_kernel.models.workflow import WorkflowDefinitionModel, WorkflowStepModel

__all__ = [
    "ApprovalActionModel",
    "ApprovalRequestModel",
    "AuditAction",
    "AuditEvent",
    "WorkflowDefinitionModel",
    "WorkflowStepModel",
]
