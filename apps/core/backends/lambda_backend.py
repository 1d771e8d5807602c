"""
Lambda Task Backend - Async execution via AWS SQS + Lambda.

Task messages go to SQS, which triggers the consumer Lambda
(lambda_handlers.sqs_task_handler). Report rendering needs the WeasyPrint
system libraries, so it is routed to its own queue and Lambda image when
REPORT_QUEUE_URL is configured.

Usage:
    Set TASK_BACKEND=lambda in your .env file.

Settings:
    TASK_QUEUE_URL: SQS queue URL for task messages
    REPORT_QUEUE_URL: Optional queue for report rendering
    AWS_REGION: AWS region (default: eu-west-1)
"""

import json
import uuid
import logging
from typing import Any, Dict, Optional

from django.conf import settings

from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)

# SQS rejects larger delays
MAX_DELAY_SECONDS = 900

# Tasks that run on the report rendering Lambda
REPORT_TASKS = {"generate_review_report"}


class LambdaTaskService(TaskServiceInterface):
    """Send task messages to SQS for the consumer Lambdas."""

    def __init__(self):
        self._sqs_client = None
        self._task_queue_url = getattr(settings, 'TASK_QUEUE_URL', '')
        self._report_queue_url = getattr(settings, 'REPORT_QUEUE_URL', '')

        if not self._task_queue_url:
            logger.warning("[LAMBDA] TASK_QUEUE_URL not set. Lambda backend will fail on send_task.")

    @property
    def sqs_client(self):
        if self._sqs_client is None:
            import boto3
            self._sqs_client = boto3.client('sqs', region_name=getattr(settings, 'AWS_REGION', 'eu-west-1'))
        return self._sqs_client

    def queue_url_for(self, task_name: str) -> Optional[str]:
        if task_name in REPORT_TASKS and self._report_queue_url:
            return self._report_queue_url
        return self._task_queue_url or None

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via SQS."""
        queue_url = self.queue_url_for(task_name)
        if not queue_url:
            raise RuntimeError(f"No SQS queue configured for task {task_name}. Set TASK_QUEUE_URL.")

        task_id = str(uuid.uuid4())
        body = json.dumps({
            "task_id": task_id,
            "task_name": task_name,
            "payload": payload,
        })

        if delay_seconds > MAX_DELAY_SECONDS:
            logger.warning(
                f"[LAMBDA] delay_seconds={delay_seconds} for {task_name} capped at {MAX_DELAY_SECONDS}"
            )

        try:
            response = self.sqs_client.send_message(
                QueueUrl=queue_url,
                MessageBody=body,
                DelaySeconds=min(max(delay_seconds, 0), MAX_DELAY_SECONDS),
                MessageAttributes={
                    'TaskName': {'DataType': 'String', 'StringValue': task_name},
                    'TaskId': {'DataType': 'String', 'StringValue': task_id},
                },
            )
        except Exception as e:
            logger.exception(f"[LAMBDA] Failed to send task {task_name}: {e}")
            raise

        logger.info(f"[LAMBDA] Task {task_name} queued (id={task_id}, message={response['MessageId']})")
        return task_id
