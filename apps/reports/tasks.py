"""Celery tasks for Reports app."""
import logging
from uuid import UUID
from celery import shared_task
from . import report_service

logger = logging.getLogger(__name__)


@shared_task
def generate_review_report_task(report_id):
    """Render a review report to PDF and store it."""
    try:
        report = report_service.store_report_pdf(UUID(str(report_id)))
    except Exception:
        logger.exception(f"PDF generation failed for report {report_id}")
        raise
    if report is None:
        return None
    return report.file_url
