"""Celery tasks for Notifications app."""
import logging
from celery import shared_task
from . import services

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_email_task(self, notification_id):
    """
    Send the e-mail copy of an in-app notification.

    SMTP/provider failures are retried; the notification row keeps
    email_sent_at empty until delivery succeeds.
    """
    try:
        sent = services.deliver_notification_email(notification_id)
    except Exception as exc:
        logger.warning(f"E-mail for notification {notification_id} failed, retrying: {exc}")
        raise self.retry(exc=exc)
    return f"E-mail {'sent' if sent else 'skipped'} for notification {notification_id}"
