import uuid
from django.db import models


class SelectionStatus(models.TextChoices):
    NOMINATED = 'NOMINATED', 'Nominated'
    UNDER_REVIEW = 'UNDER_REVIEW', 'Under Review'
    SELECTED = 'SELECTED', 'Selected'
    INACTIVE = 'INACTIVE', 'Inactive'
    WITHDRAWN = 'WITHDRAWN', 'Withdrawn'
    REJECTED = 'REJECTED', 'Rejected'


class ExpertiseArea(models.TextChoices):
    ATS = 'ATS', 'Air Traffic Services'
    AIM_AIS = 'AIM_AIS', 'Aeronautical Information Management'
    FPD = 'FPD', 'Flight Procedure Design'
    MAP = 'MAP', 'Aeronautical Charts'
    MET = 'MET', 'Aeronautical Meteorology'
    CNS = 'CNS', 'Communication, Navigation and Surveillance'
    PANS_OPS = 'PANS_OPS', 'PANS-OPS'
    SAR = 'SAR', 'Search and Rescue'
    SMS_POLICY = 'SMS_POLICY', 'SMS Policy and Objectives'
    SMS_RISK = 'SMS_RISK', 'Safety Risk Management'
    SMS_ASSURANCE = 'SMS_ASSURANCE', 'Safety Assurance'
    SMS_PROMOTION = 'SMS_PROMOTION', 'Safety Promotion'
    AERODROME = 'AERODROME', 'Aerodrome Operations'
    RFF = 'RFF', 'Rescue and Fire Fighting'
    ENGINEERING = 'ENGINEERING', 'Engineering'
    QMS = 'QMS', 'Quality Management'
    TRAINING = 'TRAINING', 'Training'
    HUMAN_FACTORS = 'HUMAN_FACTORS', 'Human Factors'


class ProficiencyLevel(models.TextChoices):
    BASIC = 'BASIC', 'Basic'
    COMPETENT = 'COMPETENT', 'Competent'
    PROFICIENT = 'PROFICIENT', 'Proficient'
    EXPERT = 'EXPERT', 'Expert'


class Language(models.TextChoices):
    EN = 'EN', 'English'
    FR = 'FR', 'French'
    AR = 'AR', 'Arabic'
    PT = 'PT', 'Portuguese'
    ES = 'ES', 'Spanish'


class LanguageProficiency(models.TextChoices):
    BASIC = 'BASIC', 'Basic'
    INTERMEDIATE = 'INTERMEDIATE', 'Intermediate'
    ADVANCED = 'ADVANCED', 'Advanced'
    NATIVE = 'NATIVE', 'Native'


class AvailabilityType(models.TextChoices):
    AVAILABLE = 'AVAILABLE', 'Available'
    TENTATIVE = 'TENTATIVE', 'Tentative'
    UNAVAILABLE = 'UNAVAILABLE', 'Unavailable'
    ON_ASSIGNMENT = 'ON_ASSIGNMENT', 'On Assignment'


class COIType(models.TextChoices):
    HOME_ORGANIZATION = 'HOME_ORGANIZATION', 'Home Organization'
    FAMILY_RELATIONSHIP = 'FAMILY_RELATIONSHIP', 'Family Relationship'
    FORMER_EMPLOYEE = 'FORMER_EMPLOYEE', 'Former Employee'
    BUSINESS_INTEREST = 'BUSINESS_INTEREST', 'Business Interest'
    RECENT_REVIEW = 'RECENT_REVIEW', 'Recent Review'
    OTHER = 'OTHER', 'Other'


class COISeverity(models.TextChoices):
    HARD_BLOCK = 'HARD_BLOCK', 'Hard Block'
    SOFT_WARNING = 'SOFT_WARNING', 'Soft Warning'


class ReviewerProfile(models.Model):
    """
    Peer reviewer record attached to a LEAD_REVIEWER or PEER_REVIEWER user.
    The home organization is the user's own organization.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField('identity.User', on_delete=models.CASCADE, related_name='reviewer_profile')

    selection_status = models.CharField(
        max_length=15, choices=SelectionStatus.choices, default=SelectionStatus.NOMINATED, db_index=True
    )
    is_lead_qualified = models.BooleanField(default=False)
    is_available = models.BooleanField(default=True)
    years_experience = models.PositiveSmallIntegerField(default=0)
    reviews_completed = models.PositiveSmallIntegerField(default=0)
    reviews_as_lead = models.PositiveSmallIntegerField(default=0)
    current_position = models.CharField(max_length=200, blank=True)
    biography = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['user__last_name', 'user__first_name']

    def __str__(self):
        return f"Reviewer {self.user}"

    @property
    def home_org_id(self):
        return self.user.org_id


class ReviewerExpertise(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.ForeignKey(ReviewerProfile, on_delete=models.CASCADE, related_name='expertise')
    area = models.CharField(max_length=20, choices=ExpertiseArea.choices)
    proficiency_level = models.CharField(
        max_length=12, choices=ProficiencyLevel.choices, default=ProficiencyLevel.COMPETENT
    )
    years_experience = models.PositiveSmallIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['profile', 'area'], name='unique_reviewer_expertise'),
        ]

    def __str__(self):
        return f"{self.profile.user} {self.area} ({self.proficiency_level})"


class ReviewerLanguage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.ForeignKey(ReviewerProfile, on_delete=models.CASCADE, related_name='languages')
    language = models.CharField(max_length=2, choices=Language.choices)
    proficiency = models.CharField(
        max_length=12, choices=LanguageProficiency.choices, default=LanguageProficiency.INTERMEDIATE
    )
    can_conduct_interviews = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['profile', 'language'], name='unique_reviewer_language'),
        ]

    def __str__(self):
        return f"{self.profile.user} {self.language} ({self.proficiency})"


class ReviewerAvailability(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.ForeignKey(ReviewerProfile, on_delete=models.CASCADE, related_name='availability')
    start_date = models.DateField()
    end_date = models.DateField()
    availability_type = models.CharField(
        max_length=15, choices=AvailabilityType.choices, default=AvailabilityType.AVAILABLE
    )
    notes = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['start_date']
        verbose_name_plural = 'reviewer availability'

    def __str__(self):
        return f"{self.profile.user} {self.availability_type} {self.start_date} - {self.end_date}"


class ReviewerCOI(models.Model):
    """A declared or auto-detected conflict of interest with one organization."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.ForeignKey(ReviewerProfile, on_delete=models.CASCADE, related_name='conflicts')
    org_id = models.UUIDField(db_index=True)
    coi_type = models.CharField(max_length=20, choices=COIType.choices)
    severity = models.CharField(max_length=12, choices=COISeverity.choices)
    reason_en = models.CharField(max_length=255, blank=True)
    reason_fr = models.CharField(max_length=255, blank=True)
    is_auto_detected = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    declared_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.profile.user} {self.coi_type} with {self.org_id}"


class COIOverride(models.Model):
    """
    Approval to assign a reviewer despite soft conflicts with an
    organization, for one review or for all reviews when `review` is empty.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.ForeignKey(ReviewerProfile, on_delete=models.CASCADE, related_name='coi_overrides')
    org_id = models.UUIDField(db_index=True)
    review = models.ForeignKey(
        'reviews.Review', on_delete=models.CASCADE, null=True, blank=True, related_name='coi_overrides'
    )
    justification = models.TextField()
    approved_by = models.ForeignKey('identity.User', on_delete=models.PROTECT, related_name='+')
    approved_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_revoked = models.BooleanField(default=False)
    revoked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-approved_at']

    def __str__(self):
        return f"Override for {self.profile.user} with {self.org_id}"
