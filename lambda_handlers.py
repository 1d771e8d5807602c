"""
Lambda Handlers - Entry points for AWS Lambda functions.

This module provides Lambda handlers for:
1. SQS Task Processing - Consumes messages from the task and report queues
2. Django API (via Mangum) - HTTP requests through API Gateway
3. Scheduled Events - EventBridge triggers replacing Celery beat

The handlers use Django's setup to access models and services.
"""

import os
import json
import logging

# Configure Django before importing any models
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

import django
django.setup()

from mangum import Mangum

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _ok(body: dict) -> dict:
    return {'statusCode': 200, 'body': json.dumps(body)}


def sqs_task_handler(event, context):
    """
    AWS Lambda handler for SQS task messages.

    Event structure:
    {
        "Records": [
            {
                "body": "{\"task_id\": \"...\", \"task_name\": \"...\", \"payload\": {...}}"
            }
        ]
    }

    A failing task re-raises so SQS redelivers the batch and eventually
    moves it to the dead-letter queue.
    """
    from apps.core.backends.local_backend import TASK_HANDLERS, run_task

    processed = 0
    unknown = 0

    for record in event.get('Records', []):
        message = json.loads(record['body'])
        task_id = message.get('task_id', 'unknown')
        task_name = message['task_name']
        payload = message.get('payload') or {}

        if task_name not in TASK_HANDLERS:
            logger.error(f"No handler for task: {task_name} (id={task_id})")
            unknown += 1
            continue

        logger.info(f"Processing task {task_name} (id={task_id})")
        try:
            result = run_task(task_name, payload)
        except Exception as e:
            logger.exception(f"Task {task_name} (id={task_id}) failed: {e}")
            raise
        logger.info(f"Task {task_name} completed: {result}")
        processed += 1

    return _ok({'processed': processed, 'unknown': unknown})


def scheduled_cap_escalations(event, context):
    """
    EventBridge scheduled handler: CAP deadline warnings and overdue escalations.

    Schedule: Daily at 06:00
    """
    from apps.findings import cap_deadline_service

    logger.info("Running scheduled cap_escalations")
    summary = cap_deadline_service.process_escalations()
    return _ok(summary)


def scheduled_process_sync_queue(event, context):
    """
    EventBridge scheduled handler: retry offline sync entries whose backoff has elapsed.

    Schedule: Every 5 minutes
    """
    from apps.fieldwork.sync_engine import sync_engine

    result = sync_engine.process_queue()
    logger.info(
        f"Sync sweep: processed={result.processed} failed={result.failed} "
        f"conflicts={result.conflicts} retried={result.retried}"
    )
    return _ok({
        'processed': result.processed,
        'failed': result.failed,
        'conflicts': result.conflicts,
        'retried': result.retried,
    })


def scheduled_clear_sync_entries(event, context):
    """
    EventBridge scheduled handler: remove sync entries that used up their retries.

    Schedule: Daily at 02:30
    """
    from apps.fieldwork.sync_engine import sync_engine

    count = sync_engine.clear_completed()
    logger.info(f"Cleared {count} exhausted sync entries")
    return _ok({'cleared_count': count})


# =============================================================================
# Django API Handler (Mangum)
# =============================================================================

_asgi_handler = None


def api_handler(event, context):
    """
    AWS Lambda handler for HTTP requests via API Gateway.

    Uses Mangum to wrap Django's ASGI application.
    """
    global _asgi_handler

    if _asgi_handler is None:
        from config.asgi import application
        _asgi_handler = Mangum(application, lifespan="off")

    return _asgi_handler(event, context)
