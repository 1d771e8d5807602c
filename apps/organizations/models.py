import uuid
from django.db import models


class AfricanRegion(models.TextChoices):
    WACAF = 'WACAF', 'Western and Central Africa'
    ESAF = 'ESAF', 'Eastern and Southern Africa'
    NORTHERN = 'NORTHERN', 'Northern Africa'


class MembershipStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACTIVE = 'ACTIVE', 'Active'
    SUSPENDED = 'SUSPENDED', 'Suspended'
    INACTIVE = 'INACTIVE', 'Inactive'


class ParticipationStatus(models.TextChoices):
    """Where the organization stands in the peer review programme itself."""
    REGISTERED = 'REGISTERED', 'Registered'
    APPLIED = 'APPLIED', 'Applied'
    UNDER_REVIEW = 'UNDER_REVIEW', 'Under review'
    APPROVED = 'APPROVED', 'Approved'
    ACTIVE = 'ACTIVE', 'Active'
    SUSPENDED = 'SUSPENDED', 'Suspended'
    REJECTED = 'REJECTED', 'Rejected'


class RegionalTeam(models.Model):
    """
    A regional peer support team. Member organizations review each other
    within their team.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    team_number = models.PositiveSmallIntegerField(unique=True)
    code = models.CharField(max_length=20, unique=True)
    name_en = models.CharField(max_length=255)
    name_fr = models.CharField(max_length=255)
    description_en = models.TextField(blank=True)
    description_fr = models.TextField(blank=True)
    lead_org_id = models.UUIDField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['team_number']

    def __str__(self):
        return f"Team {self.team_number} - {self.name_en}"


class Organization(models.Model):
    """
    Represents a tenant: an Air Navigation Service Provider taking part in
    the programme. All operational data is isolated per organization.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name_en = models.CharField(max_length=255)
    name_fr = models.CharField(max_length=255)
    organization_code = models.CharField(
        max_length=20, unique=True, null=True, blank=True,
        help_text="Short code used in reference numbers (e.g. ASECNA)"
    )
    icao_code = models.CharField(max_length=4, blank=True)
    country = models.CharField(max_length=100)
    region = models.CharField(max_length=20, choices=AfricanRegion.choices)
    membership_status = models.CharField(
        max_length=20,
        choices=MembershipStatus.choices,
        default=MembershipStatus.PENDING
    )
    participation_status = models.CharField(
        max_length=20,
        choices=ParticipationStatus.choices,
        default=ParticipationStatus.REGISTERED
    )
    regional_team = models.ForeignKey(
        RegionalTeam,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='organizations'
    )
    joined_programme_at = models.DateTimeField(null=True, blank=True)
    contact_email = models.EmailField(blank=True)
    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible metadata (e.g., preferred review language)"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name_en']

    def __str__(self):
        return self.name_en


class JoinRequestStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    COORDINATOR_REVIEW = 'COORDINATOR_REVIEW', 'Coordinator review'
    SC_REVIEW = 'SC_REVIEW', 'Steering Committee review'
    APPROVED = 'APPROVED', 'Approved'
    REJECTED = 'REJECTED', 'Rejected'
    MORE_INFO = 'MORE_INFO', 'More information requested'
    WITHDRAWN = 'WITHDRAWN', 'Withdrawn'


# Statuses in which an application is still open
OPEN_JOIN_REQUEST_STATUSES = [
    JoinRequestStatus.PENDING,
    JoinRequestStatus.COORDINATOR_REVIEW,
    JoinRequestStatus.SC_REVIEW,
    JoinRequestStatus.MORE_INFO,
]


class Recommendation(models.TextChoices):
    APPROVE = 'APPROVE', 'Approve'
    REJECT = 'REJECT', 'Reject'
    MORE_INFO = 'MORE_INFO', 'More information'


class SCDecision(models.TextChoices):
    APPROVED = 'APPROVED', 'Approved'
    REJECTED = 'REJECTED', 'Rejected'
    MORE_INFO = 'MORE_INFO', 'More information'


class JoinRequest(models.Model):
    """
    An organization's application to join the peer review programme.

    Flow: PENDING -> (coordinator review) -> SC_REVIEW -> APPROVED / REJECTED / MORE_INFO.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='join_requests')

    # Applicant
    contact_name = models.CharField(max_length=255)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=30, blank=True)
    contact_job_title = models.CharField(max_length=255)
    current_sms_maturity = models.CharField(max_length=1, blank=True)
    motivation_statement = models.TextField()
    proposed_reviewer_count = models.PositiveSmallIntegerField(default=2)
    preferred_team = models.PositiveSmallIntegerField(null=True, blank=True)
    preferred_language = models.CharField(max_length=4, default='en')
    additional_notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=20,
        choices=JoinRequestStatus.choices,
        default=JoinRequestStatus.PENDING
    )

    # Coordinator review
    coordinator_notes = models.TextField(blank=True)
    coordinator_recommendation = models.CharField(max_length=10, choices=Recommendation.choices, blank=True)
    coordinator_recommended_team = models.PositiveSmallIntegerField(null=True, blank=True)
    coordinator_reviewed_at = models.DateTimeField(null=True, blank=True)
    coordinator_reviewed_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )

    # Steering Committee decision
    sc_decision = models.CharField(max_length=10, choices=SCDecision.choices, blank=True)
    sc_decision_notes = models.TextField(blank=True)
    sc_assigned_team = models.PositiveSmallIntegerField(null=True, blank=True)
    sc_decision_at = models.DateTimeField(null=True, blank=True)
    sc_decision_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    rejection_reason = models.TextField(blank=True)
    additional_info_request = models.TextField(blank=True)

    created_user_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Join request {self.organization} ({self.status})"
