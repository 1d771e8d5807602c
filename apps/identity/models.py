import uuid
from django.db import models
from django.contrib.auth.models import AbstractUser


class UserRole(models.TextChoices):
    # Programme level
    SUPER_ADMIN = 'SUPER_ADMIN', 'Super Administrator'
    SYSTEM_ADMIN = 'SYSTEM_ADMIN', 'System Administrator'
    STEERING_COMMITTEE = 'STEERING_COMMITTEE', 'Steering Committee'
    PROGRAMME_COORDINATOR = 'PROGRAMME_COORDINATOR', 'Programme Coordinator'
    # Review teams
    LEAD_REVIEWER = 'LEAD_REVIEWER', 'Lead Reviewer'
    PEER_REVIEWER = 'PEER_REVIEWER', 'Peer Reviewer'
    OBSERVER = 'OBSERVER', 'Observer'
    # Participating organizations
    ANSP_ADMIN = 'ANSP_ADMIN', 'ANSP Administrator'
    SAFETY_MANAGER = 'SAFETY_MANAGER', 'Safety Manager'
    QUALITY_MANAGER = 'QUALITY_MANAGER', 'Quality Manager'
    STAFF = 'STAFF', 'Staff'


class Locale(models.TextChoices):
    EN = 'en', 'English'
    FR = 'fr', 'Français'


class User(AbstractUser):
    """
    Custom User model with organization relationship for multi-tenancy.

    Programme staff (coordinators, steering committee) may have no
    organization; participant roles always belong to one.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Store org_id as UUID field (no FK to maintain app independence)
    org_id = models.UUIDField(null=True, blank=True, db_index=True)
    role = models.CharField(
        max_length=30,
        choices=UserRole.choices,
        default=UserRole.STAFF
    )
    phone = models.CharField(max_length=20, blank=True)
    title = models.CharField(max_length=100, blank=True, help_text="Job title, e.g. Head of ATM Safety")
    locale = models.CharField(max_length=2, choices=Locale.choices, default=Locale.EN)
    email_notifications = models.BooleanField(default=True)

    class Meta:
        ordering = ['username']

    def __str__(self):
        return self.get_full_name() or self.email or self.username
