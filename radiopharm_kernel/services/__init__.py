"""Services for the radiopharm kernel (write side)."""

from radiopharm_kernel.services.approval_service import ApprovalService
from radiopharm_kernel.services.auditor_service import AuditorService
from radiopharm_kernel.services.workflow_definition_service import (
    WorkflowDefinitionService,
)

__all__ = [
    "ApprovalService",
    "AuditorService",
    "WorkflowDefinitionService",
]
