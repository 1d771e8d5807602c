import uuid
from django.db import models


class ReviewType(models.TextChoices):
    FULL = 'FULL', 'Full Review'
    FOCUSED = 'FOCUSED', 'Focused Review'
    FOLLOW_UP = 'FOLLOW_UP', 'Follow-up Review'
    SURVEILLANCE = 'SURVEILLANCE', 'Surveillance'


class ReviewLocationType(models.TextChoices):
    ON_SITE = 'ON_SITE', 'On-site'
    REMOTE = 'REMOTE', 'Remote'
    HYBRID = 'HYBRID', 'Hybrid'


class LanguagePreference(models.TextChoices):
    EN = 'EN', 'English'
    FR = 'FR', 'French'
    BOTH = 'BOTH', 'Bilingual'


class ReviewStatus(models.TextChoices):
    REQUESTED = 'REQUESTED', 'Requested'
    APPROVED = 'APPROVED', 'Approved'
    PLANNING = 'PLANNING', 'Planning'
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    REPORT_DRAFTING = 'REPORT_DRAFTING', 'Report Drafting'
    REPORT_REVIEW = 'REPORT_REVIEW', 'Report Review'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class ReviewPhase(models.TextChoices):
    PLANNING = 'PLANNING', 'Planning'
    PREPARATION = 'PREPARATION', 'Preparation'
    ON_SITE = 'ON_SITE', 'On-site'
    REPORTING = 'REPORTING', 'Reporting'
    FOLLOW_UP = 'FOLLOW_UP', 'Follow-up'
    CLOSED = 'CLOSED', 'Closed'


class TeamRole(models.TextChoices):
    LEAD_REVIEWER = 'LEAD_REVIEWER', 'Lead Reviewer'
    REVIEWER = 'REVIEWER', 'Reviewer'
    TECHNICAL_EXPERT = 'TECHNICAL_EXPERT', 'Technical Expert'
    OBSERVER = 'OBSERVER', 'Observer'
    TRAINEE = 'TRAINEE', 'Trainee'


class InvitationStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    INVITED = 'INVITED', 'Invited'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    DECLINED = 'DECLINED', 'Declined'
    WITHDRAWN = 'WITHDRAWN', 'Withdrawn'


class FieldworkPhase(models.TextChoices):
    PRE_VISIT = 'PRE_VISIT', 'Pre-visit'
    ON_SITE = 'ON_SITE', 'On-site'
    POST_VISIT = 'POST_VISIT', 'Post-visit'


class Review(models.Model):
    """
    A peer review of one host organization by a team drawn from other
    member organizations.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference_number = models.CharField(max_length=30, unique=True, help_text="PR-{YEAR}-{SEQ}")
    host_org_id = models.UUIDField(db_index=True)

    review_type = models.CharField(max_length=20, choices=ReviewType.choices, default=ReviewType.FULL)
    location_type = models.CharField(max_length=10, choices=ReviewLocationType.choices, default=ReviewLocationType.ON_SITE)
    language_preference = models.CharField(
        max_length=4, choices=LanguagePreference.choices, default=LanguagePreference.BOTH
    )
    status = models.CharField(max_length=20, choices=ReviewStatus.choices, default=ReviewStatus.REQUESTED, db_index=True)
    phase = models.CharField(max_length=20, choices=ReviewPhase.choices, default=ReviewPhase.PLANNING)

    # Timeline
    requested_start_date = models.DateField(null=True, blank=True)
    requested_end_date = models.DateField(null=True, blank=True)
    planned_start_date = models.DateField(null=True, blank=True)
    planned_end_date = models.DateField(null=True, blank=True)
    actual_start_date = models.DateField(null=True, blank=True)
    actual_end_date = models.DateField(null=True, blank=True)

    # Scope
    areas_in_scope = models.JSONField(default=list, blank=True, help_text="Audit areas / SMS components")
    assessments = models.ManyToManyField('assessments.Assessment', blank=True, related_name='reviews')
    objectives = models.TextField(blank=True)
    special_requirements = models.TextField(blank=True)

    # Host contact
    primary_contact_name = models.CharField(max_length=200, blank=True)
    primary_contact_email = models.EmailField(blank=True)
    primary_contact_phone = models.CharField(max_length=50, blank=True)

    requested_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='requested_reviews'
    )
    cancellation_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.reference_number


class ReviewTeamMember(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    review = models.ForeignKey(Review, on_delete=models.CASCADE, related_name='team_members')
    user = models.ForeignKey('identity.User', on_delete=models.CASCADE, related_name='review_memberships')
    role = models.CharField(max_length=20, choices=TeamRole.choices, default=TeamRole.REVIEWER)
    invitation_status = models.CharField(
        max_length=10, choices=InvitationStatus.choices, default=InvitationStatus.PENDING
    )
    assigned_areas = models.JSONField(default=list, blank=True)
    invited_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    decline_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['review', 'user'], name='unique_review_team_member'),
        ]

    def __str__(self):
        return f"{self.user} ({self.role}) on {self.review}"

    @property
    def is_confirmed(self) -> bool:
        return self.invitation_status == InvitationStatus.CONFIRMED


class FieldworkChecklistItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    review = models.ForeignKey(Review, on_delete=models.CASCADE, related_name='checklist_items')
    phase = models.CharField(max_length=12, choices=FieldworkPhase.choices)
    item_code = models.CharField(max_length=50)
    sort_order = models.PositiveSmallIntegerField(default=0)
    label_en = models.CharField(max_length=255)
    label_fr = models.CharField(max_length=255)

    is_completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['sort_order']
        constraints = [
            models.UniqueConstraint(fields=['review', 'item_code'], name='unique_checklist_item_code'),
        ]

    def __str__(self):
        return f"{self.review} {self.item_code}"
