"""Celery tasks for Fieldwork app."""
import logging
from uuid import UUID
from celery import shared_task
from .sync_engine import sync_engine

logger = logging.getLogger(__name__)


@shared_task
def process_sync_queue(user_id=None):
    """Apply due offline sync entries, for one user or for everyone."""
    result = sync_engine.process_queue(user_id=UUID(str(user_id)) if user_id else None)
    return {
        'processed': result.processed,
        'failed': result.failed,
        'conflicts': result.conflicts,
        'retried': result.retried,
    }


@shared_task
def clear_completed_sync_entries():
    """Daily cleanup of entries that used up their retries."""
    count = sync_engine.clear_completed()
    logger.info(f"Cleared {count} exhausted sync entries")
    return count
