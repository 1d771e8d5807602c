import uuid
from django.conf import settings
from django.db import models
from django.utils import timezone


class SyncStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SYNCED = 'synced', 'Synced'
    FAILED = 'failed', 'Failed'
    CONFLICT = 'conflict', 'Conflict'


class SyncEntityType(models.TextChoices):
    CHECKLIST_ITEM = 'checklistItem', 'Checklist item'
    DRAFT_FINDING = 'draftFinding', 'Draft finding'


class SyncAction(models.TextChoices):
    CREATE = 'CREATE', 'Create'
    UPDATE = 'UPDATE', 'Update'
    DELETE = 'DELETE', 'Delete'


def default_max_retries():
    return getattr(settings, 'SYNC_MAX_RETRIES', 3)


class SyncQueueEntry(models.Model):
    """
    One operation recorded offline by a field device, waiting to be
    applied to the server. Entries are removed once applied.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey('identity.User', on_delete=models.CASCADE, related_name='sync_entries')
    review = models.ForeignKey('reviews.Review', on_delete=models.CASCADE, related_name='sync_entries')

    entity_type = models.CharField(max_length=20, choices=SyncEntityType.choices)
    entity_id = models.CharField(max_length=64, help_text="Server id, or the device's client id for new records")
    action = models.CharField(max_length=10, choices=SyncAction.choices)
    payload = models.JSONField(default=dict, blank=True)

    sync_status = models.CharField(max_length=10, choices=SyncStatus.choices, default=SyncStatus.PENDING, db_index=True)
    retry_count = models.PositiveSmallIntegerField(default=0)
    max_retries = models.PositiveSmallIntegerField(default=default_max_retries)
    last_attempt = models.DateTimeField(null=True, blank=True)
    next_attempt_at = models.DateTimeField(default=timezone.now, db_index=True)
    error = models.TextField(blank=True)
    server_data = models.JSONField(null=True, blank=True, help_text="Server copy of the record on conflict")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
        verbose_name_plural = 'sync queue entries'

    def __str__(self):
        return f"{self.entity_type} {self.action} {self.entity_id} ({self.sync_status})"

    @property
    def is_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class SyncCheckpoint(models.Model):
    """Last successful sync of a user's queue."""
    user = models.OneToOneField('identity.User', on_delete=models.CASCADE, related_name='sync_checkpoint')
    last_sync_at = models.DateTimeField()
    synced_count = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.user} @ {self.last_sync_at}"
