"""
Celery configuration for AAPRP project.
"""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Celery Beat Schedule
app.conf.beat_schedule = {
    'process-cap-escalations': {
        'task': 'apps.findings.tasks.process_cap_escalations',
        'schedule': crontab(hour='6', minute='0'),  # Daily, before the working day
    },
    'process-sync-queue': {
        'task': 'apps.fieldwork.tasks.process_sync_queue',
        'schedule': crontab(minute='*/5'),
    },
    'clear-completed-sync-entries': {
        'task': 'apps.fieldwork.tasks.clear_completed_sync_entries',
        'schedule': crontab(hour='2', minute='30'),
    },
}
