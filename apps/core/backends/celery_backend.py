"""
Celery Task Backend - Async execution via Celery + Redis.

Serves as a fallback option if Lambda doesn't meet requirements.

Usage:
    Set TASK_BACKEND=celery in your .env file.
    Requires Redis and Celery worker running.
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


# Task name -> (Celery task path, payload keys passed positionally)
CELERY_TASKS = {
    "generate_review_report": ("apps.reports.tasks.generate_review_report_task", ["report_id"]),
    "send_notification_email": ("apps.notifications.tasks.send_notification_email_task", ["notification_id"]),
    "process_cap_escalations": ("apps.findings.tasks.process_cap_escalations", ["org_id"]),
    "process_sync_queue": ("apps.fieldwork.tasks.process_sync_queue", ["user_id"]),
}


def _get_celery_task(task_name: str):
    """Get the Celery task function for a task name."""
    entry = CELERY_TASKS.get(task_name)
    if not entry:
        raise ValueError(f"No Celery task mapped for: {task_name}")

    from celery import current_app
    return current_app.tasks.get(entry[0])


class CeleryTaskService(TaskServiceInterface):
    """Execute tasks via Celery + Redis."""

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via Celery."""
        task_id = str(uuid.uuid4())

        logger.info(f"[CELERY] Queueing task {task_name} (id={task_id})")

        task = _get_celery_task(task_name)

        if task is None:
            logger.error(f"[CELERY] Task not found: {task_name}")
            raise ValueError(f"Celery task not found: {task_name}")

        args = [payload.get(key) for key in CELERY_TASKS[task_name][1]]

        if delay_seconds > 0:
            task.apply_async(args=args, countdown=delay_seconds, task_id=task_id)
        else:
            task.apply_async(args=args, task_id=task_id)

        return task_id
