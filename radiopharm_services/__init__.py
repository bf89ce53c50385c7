"""
radiopharm_services -- Coordinators over engines and kernel services.

Each coordinator owns its transaction through ``session_scope`` and
delivers notifications only after the transaction committed.
"""

from radiopharm_services.approval_workflow import (
    ApprovalWorkflowEngine,
    ApprovalWorkflowSession,
)
from radiopharm_services.notification_dispatcher import (
    DispatchReport,
    NotificationDispatcher,
)
from radiopharm_services.runtime import CoreRuntime, build_core_runtime
from radiopharm_services.status_change import (
    StatusChange,
    StatusChangeResult,
    StatusChangeService,
)

__all__ = [
    "ApprovalWorkflowEngine",
    "ApprovalWorkflowSession",
    "CoreRuntime",
    "DispatchReport",
    "NotificationDispatcher",
    "StatusChange",
    "StatusChangeResult",
    "StatusChangeService",
    "build_core_runtime",
]
