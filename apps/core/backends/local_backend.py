"""
Local Task Backend - runs tasks in-process, synchronously.

Used for development and tests: no broker, queue or worker needed. Task
failures propagate to the caller.

TASK_HANDLERS is also the dispatch table of the SQS consumer
(lambda_handlers.sqs_task_handler), so every task name TaskService sends
needs a handler registered below.
"""

import uuid
import logging
from typing import Any, Callable, Dict
from uuid import UUID
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)

TASK_HANDLERS: Dict[str, Callable[..., Any]] = {}


def register_handler(task_name: str):
    def decorator(func):
        TASK_HANDLERS[task_name] = func
        return func
    return decorator


def run_task(task_name: str, payload: Dict[str, Any]) -> Any:
    """Run a registered task; raises LookupError for unknown names."""
    handler = TASK_HANDLERS.get(task_name)
    if handler is None:
        raise LookupError(f"No handler registered for task: {task_name}")
    return handler(**payload)


class LocalTaskService(TaskServiceInterface):

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        task_id = str(uuid.uuid4())
        if delay_seconds > 0:
            logger.debug(f"[LOCAL] Running {task_name} now; delay_seconds={delay_seconds} ignored")

        if task_name not in TASK_HANDLERS:
            logger.warning(f"[LOCAL] No handler registered for task: {task_name}")
            return task_id

        try:
            result = run_task(task_name, payload)
        except Exception as e:
            logger.exception(f"[LOCAL] Task {task_name} (id={task_id}) failed: {e}")
            raise
        logger.info(f"[LOCAL] Task {task_name} (id={task_id}) completed: {result}")
        return task_id


# =============================================================================
# Task handlers
# =============================================================================

@register_handler("generate_review_report")
def handle_generate_review_report(report_id: str):
    """Render and store the review report PDF."""
    from apps.reports import report_service

    report = report_service.store_report_pdf(UUID(report_id))
    if report is None:
        return f"Report {report_id} not found. Skipping."
    return f"Generated report: {report.file_url}"


@register_handler("send_notification_email")
def handle_send_notification_email(notification_id: str):
    """Send the e-mail copy of a notification."""
    from apps.notifications import services

    sent = services.deliver_notification_email(UUID(notification_id))
    return f"E-mail {'sent' if sent else 'skipped'} for notification {notification_id}"


@register_handler("process_cap_escalations")
def handle_process_cap_escalations(org_id: str = None):
    """Detect CAP deadline events and notify recipients."""
    from apps.findings import cap_deadline_service

    summary = cap_deadline_service.process_escalations(
        org_id=UUID(org_id) if org_id else None
    )
    return f"Processed {summary['events']} escalation events ({summary['notified']} notified)"


@register_handler("process_sync_queue")
def handle_process_sync_queue(user_id: str = None):
    """Process due offline sync entries."""
    from apps.fieldwork.sync_engine import sync_engine

    result = sync_engine.process_queue(user_id=UUID(user_id) if user_id else None)
    return f"Synced {result.processed}, failed {result.failed}, conflicts {result.conflicts}"
