import uuid
from django.db import models


class FindingType(models.TextChoices):
    NON_CONFORMITY = 'NON_CONFORMITY', 'Non-conformity'
    OBSERVATION = 'OBSERVATION', 'Observation'
    RECOMMENDATION = 'RECOMMENDATION', 'Recommendation'
    GOOD_PRACTICE = 'GOOD_PRACTICE', 'Good Practice'
    CONCERN = 'CONCERN', 'Concern'


class FindingSeverity(models.TextChoices):
    CRITICAL = 'CRITICAL', 'Critical'
    MAJOR = 'MAJOR', 'Major'
    MINOR = 'MINOR', 'Minor'
    OBSERVATION = 'OBSERVATION', 'Observation'


class FindingStatus(models.TextChoices):
    OPEN = 'OPEN', 'Open'
    CAP_REQUIRED = 'CAP_REQUIRED', 'CAP Required'
    CAP_SUBMITTED = 'CAP_SUBMITTED', 'CAP Submitted'
    CAP_ACCEPTED = 'CAP_ACCEPTED', 'CAP Accepted'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    VERIFICATION = 'VERIFICATION', 'Verification'
    CLOSED = 'CLOSED', 'Closed'
    DEFERRED = 'DEFERRED', 'Deferred'


class CAPStatus(models.TextChoices):
    DRAFT = 'DRAFT', 'Draft'
    SUBMITTED = 'SUBMITTED', 'Submitted'
    UNDER_REVIEW = 'UNDER_REVIEW', 'Under Review'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    REJECTED = 'REJECTED', 'Rejected'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    VERIFIED = 'VERIFIED', 'Verified'
    CLOSED = 'CLOSED', 'Closed'


class MilestoneStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    OVERDUE = 'OVERDUE', 'Overdue'
    CANCELLED = 'CANCELLED', 'Cancelled'


class Finding(models.Model):
    """
    An observation recorded by the review team against the host
    organization. Non-conformities usually require a corrective action plan.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference_number = models.CharField(max_length=50, unique=True, help_text="FND-{ORGCODE}-{YEAR}-{SEQ}")
    review = models.ForeignKey('reviews.Review', on_delete=models.CASCADE, related_name='findings')
    org_id = models.UUIDField(db_index=True, help_text="Host organization")

    finding_type = models.CharField(max_length=20, choices=FindingType.choices)
    severity = models.CharField(max_length=12, choices=FindingSeverity.choices)
    status = models.CharField(max_length=15, choices=FindingStatus.choices, default=FindingStatus.OPEN, db_index=True)

    title_en = models.CharField(max_length=255)
    title_fr = models.CharField(max_length=255, blank=True)
    description_en = models.TextField()
    description_fr = models.TextField(blank=True)
    evidence_en = models.TextField(blank=True)
    evidence_fr = models.TextField(blank=True)

    icao_reference = models.CharField(max_length=100, blank=True)
    audit_area = models.CharField(max_length=10, blank=True)
    critical_element = models.CharField(max_length=10, blank=True)

    cap_required = models.BooleanField(default=False)
    target_close_date = models.DateField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    # Offline-created findings carry the device id so replays are idempotent
    client_id = models.CharField(max_length=64, null=True, blank=True, unique=True)
    created_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='findings_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.reference_number


class CorrectiveActionPlan(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    finding = models.OneToOneField(Finding, on_delete=models.CASCADE, related_name='cap')

    root_cause_en = models.TextField()
    root_cause_fr = models.TextField(blank=True)
    corrective_action_en = models.TextField()
    corrective_action_fr = models.TextField(blank=True)
    preventive_action_en = models.TextField(blank=True)
    preventive_action_fr = models.TextField(blank=True)

    responsible_person = models.CharField(max_length=200)
    responsible_role = models.CharField(max_length=200, blank=True)
    assigned_to = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_caps'
    )
    due_date = models.DateField()
    status = models.CharField(max_length=15, choices=CAPStatus.choices, default=CAPStatus.DRAFT, db_index=True)

    submitted_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    accepted_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    verification_notes = models.TextField(blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='caps_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date']

    def __str__(self):
        return f"CAP for {self.finding}"


class CAPMilestone(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cap = models.ForeignKey(CorrectiveActionPlan, on_delete=models.CASCADE, related_name='milestones')
    title_en = models.CharField(max_length=255)
    title_fr = models.CharField(max_length=255, blank=True)
    target_date = models.DateField()
    status = models.CharField(max_length=12, choices=MilestoneStatus.choices, default=MilestoneStatus.PENDING)
    completed_at = models.DateTimeField(null=True, blank=True)
    sort_order = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['target_date', 'sort_order']

    def __str__(self):
        return self.title_en
