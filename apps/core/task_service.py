"""
TaskService - background work behind one facade.

Services call TaskService.<task>() and never know where the work runs. The
TASK_BACKEND setting picks the backend:

    local   - run in-process, synchronously (development and tests)
    celery  - Celery workers over Redis
    lambda  - SQS messages consumed by lambda_handlers.sqs_task_handler

Usage:
    from apps.core.task_service import TaskService

    TaskService.generate_review_report(report_id=report.id)
    TaskService.process_sync_queue(user_id=user.id)

Every task name must have a handler in apps.core.backends.local_backend
(also used by the SQS consumer) and an entry in CELERY_TASKS.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

BACKENDS = {
    'local': 'apps.core.backends.local_backend.LocalTaskService',
    'celery': 'apps.core.backends.celery_backend.CeleryTaskService',
    'lambda': 'apps.core.backends.lambda_backend.LambdaTaskService',
}


class TaskServiceInterface(ABC):

    @abstractmethod
    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """
        Queue a task.

        Args:
            task_name: Registered task identifier
            payload: JSON-serializable keyword arguments for the handler
            delay_seconds: Earliest start, relative to now

        Returns:
            Task ID for tracking
        """


def get_backend() -> TaskServiceInterface:
    name = getattr(settings, 'TASK_BACKEND', 'local')
    try:
        backend_path = BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown TASK_BACKEND: {name}")
    return import_string(backend_path)()


def _optional_id(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value else None


class TaskService:
    """One static method per task type."""

    @staticmethod
    def generate_review_report(report_id: UUID) -> str:
        """Render and store a review report PDF."""
        logger.info(f"Queueing generate_review_report for report {report_id}")
        return get_backend().send_task("generate_review_report", {"report_id": str(report_id)})

    @staticmethod
    def send_notification_email(notification_id: UUID) -> str:
        """Deliver the e-mail copy of an in-app notification."""
        logger.info(f"Queueing send_notification_email for notification {notification_id}")
        return get_backend().send_task("send_notification_email", {"notification_id": str(notification_id)})

    @staticmethod
    def process_cap_escalations(org_id: Optional[UUID] = None) -> str:
        """CAP deadline warnings and overdue escalations, for one organization or all."""
        logger.info(f"Queueing process_cap_escalations (org={org_id or 'all'})")
        return get_backend().send_task("process_cap_escalations", {"org_id": _optional_id(org_id)})

    @staticmethod
    def process_sync_queue(user_id: Optional[UUID] = None, delay_seconds: int = 0) -> str:
        """
        Apply pending offline sync entries.

        Sent after a device uploads a batch; the periodic sweep picks up
        entries still waiting for their backoff.
        """
        logger.info(f"Queueing process_sync_queue (user={user_id or 'all'})")
        return get_backend().send_task(
            "process_sync_queue",
            {"user_id": _optional_id(user_id)},
            delay_seconds=delay_seconds,
        )
