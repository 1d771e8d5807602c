import uuid
from django.db import models


class NotificationType(models.TextChoices):
    REVIEW_REQUESTED = 'REVIEW_REQUESTED', 'Review requested'
    REVIEW_APPROVED = 'REVIEW_APPROVED', 'Review approved'
    REVIEW_REJECTED = 'REVIEW_REJECTED', 'Review rejected'
    TEAM_ASSIGNED = 'TEAM_ASSIGNED', 'Team assigned'
    TEAM_INVITATION = 'TEAM_INVITATION', 'Team invitation'
    TEAM_INVITATION_RESPONSE = 'TEAM_INVITATION_RESPONSE', 'Team invitation response'
    REVIEW_STATUS_CHANGED = 'REVIEW_STATUS_CHANGED', 'Review status changed'
    REVIEW_SCHEDULED = 'REVIEW_SCHEDULED', 'Review scheduled'
    REVIEW_STARTED = 'REVIEW_STARTED', 'Review started'
    REVIEW_COMPLETED = 'REVIEW_COMPLETED', 'Review completed'
    FINDING_CREATED = 'FINDING_CREATED', 'Finding created'
    FINDING_UPDATED = 'FINDING_UPDATED', 'Finding updated'
    CAP_REQUIRED = 'CAP_REQUIRED', 'CAP required'
    CAP_SUBMITTED = 'CAP_SUBMITTED', 'CAP submitted'
    CAP_ACCEPTED = 'CAP_ACCEPTED', 'CAP accepted'
    CAP_REJECTED = 'CAP_REJECTED', 'CAP rejected'
    CAP_DEADLINE_APPROACHING = 'CAP_DEADLINE_APPROACHING', 'CAP deadline approaching'
    CAP_OVERDUE = 'CAP_OVERDUE', 'CAP overdue'
    CAP_VERIFIED = 'CAP_VERIFIED', 'CAP verified'
    CAP_CLOSED = 'CAP_CLOSED', 'CAP closed'
    ASSESSMENT_SUBMITTED = 'ASSESSMENT_SUBMITTED', 'Assessment submitted'
    REPORT_DRAFT_READY = 'REPORT_DRAFT_READY', 'Report draft ready'
    REPORT_SUBMITTED = 'REPORT_SUBMITTED', 'Report submitted'
    REPORT_APPROVED = 'REPORT_APPROVED', 'Report approved'
    JOIN_REQUEST_RECEIVED = 'JOIN_REQUEST_RECEIVED', 'Join request received'
    JOIN_REQUEST_DECIDED = 'JOIN_REQUEST_DECIDED', 'Join request decided'
    SYNC_CONFLICT = 'SYNC_CONFLICT', 'Offline sync conflict'
    SYSTEM_ANNOUNCEMENT = 'SYSTEM_ANNOUNCEMENT', 'System announcement'
    REMINDER = 'REMINDER', 'Reminder'


class NotificationPriority(models.TextChoices):
    LOW = 'LOW', 'Low'
    NORMAL = 'NORMAL', 'Normal'
    HIGH = 'HIGH', 'High'
    URGENT = 'URGENT', 'Urgent'


class Notification(models.Model):
    """
    In-app notification. Content is stored in both languages and
    rendered in the reader's locale.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey('identity.User', on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=40, choices=NotificationType.choices)
    priority = models.CharField(
        max_length=10,
        choices=NotificationPriority.choices,
        default=NotificationPriority.NORMAL
    )

    title_en = models.CharField(max_length=255)
    title_fr = models.CharField(max_length=255)
    message_en = models.TextField()
    message_fr = models.TextField()
    action_label_en = models.CharField(max_length=100, blank=True)
    action_label_fr = models.CharField(max_length=100, blank=True)

    # What the notification is about (e.g. "Review", <uuid>)
    entity_type = models.CharField(max_length=50, blank=True)
    entity_id = models.CharField(max_length=64, blank=True)
    action_url = models.CharField(max_length=500, blank=True)
    data = models.JSONField(default=dict, blank=True)

    read_at = models.DateTimeField(null=True, blank=True)
    email_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'read_at']),
        ]

    def __str__(self):
        return f"{self.type} -> {self.user_id}"

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
