"""Celery tasks for Findings app."""
import logging
from uuid import UUID
from celery import shared_task
from . import cap_deadline_service

logger = logging.getLogger(__name__)


@shared_task
def process_cap_escalations(org_id=None):
    """Daily CAP deadline sweep: flag overdue milestones and notify owners."""
    summary = cap_deadline_service.process_escalations(org_id=UUID(str(org_id)) if org_id else None)
    logger.info(f"CAP escalations: {summary['events']} events, {summary['notified']} notified")
    return summary
