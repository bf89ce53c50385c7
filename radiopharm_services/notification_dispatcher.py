"""
radiopharm_services.notification_dispatcher -- Post-commit notification fan-out.

Responsibility:
    Delivers the notifications computed inside a committed transaction,
    one task per recipient on a thread pool, and reports how many were
    delivered.

Architecture position:
    Services layer.  Wraps a caller-supplied ``Notifier``; never touches
    the database.

Invariants enforced:
    - Best effort: a failing delivery is logged and counted.  It is never
      retried and never propagates to the caller.
    - Called only after commit; nothing here can undo a state change.
    - Each delivery runs in a copy of the caller's context, so failure
      logs carry the caller's actor and entity.

Failure modes:
    - None raised.  Failures show up as ``DispatchReport.failed`` and as
      ``notification_delivery_failed`` log entries.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from typing import Iterable

from radiopharm_kernel.domain.approval import DispatchReport, Notification
from radiopharm_kernel.domain.interfaces import Notifier
from radiopharm_kernel.logging_config import get_logger

logger = get_logger("services.notification_dispatcher")

DEFAULT_MAX_WORKERS = 8


class NotificationDispatcher:
    """Fans notifications out to a ``Notifier`` concurrently.

    Contract:
        ``dispatch`` returns once every delivery attempt has finished.

    Non-goals:
        - Does NOT retry or persist undelivered notifications.
        - Does NOT order deliveries between recipients.
    """

    def __init__(self, notifier: Notifier, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._notifier = notifier
        self._max_workers = max_workers

    def dispatch(self, notifications: Iterable[Notification]) -> DispatchReport:
        batch = tuple(notifications)
        if not batch:
            return DispatchReport()

        workers = min(self._max_workers, len(batch))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="radiopharm-notify",
        ) as pool:
            contexts = [copy_context() for _ in batch]
            results = list(pool.map(
                lambda ctx, n: ctx.run(self._deliver, n), contexts, batch,
            ))

        failed = tuple(n for n, ok in zip(batch, results) if not ok)
        report = DispatchReport(delivered=len(batch) - len(failed), failed=failed)
        logger.info(
            "notifications_dispatched",
            extra={"delivered": report.delivered, "failed": report.failed_count},
        )
        return report

    def _deliver(self, notification: Notification) -> bool:
        try:
            self._notifier.notify(
                notification.recipient_id,
                notification.title,
                notification.message,
                notification.related_entity_id,
                notification.related_entity_kind,
            )
        except Exception as exc:
            logger.warning(
                "notification_delivery_failed",
                extra={
                    "recipient_id": notification.recipient_id,
                    "title": notification.title,
                    "related_entity_id": notification.related_entity_id,
                    "related_entity_kind": notification.related_entity_kind,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return False
        return True
