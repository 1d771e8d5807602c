import uuid
from django.db import models


class QuestionnaireType(models.TextChoices):
    ANS_USOAP_CMA = 'ANS_USOAP_CMA', 'ANS protocol questions (ICAO USOAP CMA)'
    SMS_CANSO_SOE = 'SMS_CANSO_SOE', 'SMS maturity (CANSO Standard of Excellence)'


class AuditArea(models.TextChoices):
    LEG = 'LEG', 'Primary Aviation Legislation'
    ORG = 'ORG', 'Civil Aviation Organization'
    PEL = 'PEL', 'Personnel Licensing and Training'
    OPS = 'OPS', 'Aircraft Operations'
    AIR = 'AIR', 'Airworthiness of Aircraft'
    AIG = 'AIG', 'Aircraft Accident and Incident Investigation'
    ANS = 'ANS', 'Air Navigation Services'
    AGA = 'AGA', 'Aerodromes and Ground Aids'
    SSP = 'SSP', 'State Safety Programme'


class CriticalElement(models.TextChoices):
    CE_1 = 'CE_1', 'Primary Aviation Legislation'
    CE_2 = 'CE_2', 'Specific Operating Regulations'
    CE_3 = 'CE_3', 'State Civil Aviation System'
    CE_4 = 'CE_4', 'Technical Personnel Qualification'
    CE_5 = 'CE_5', 'Technical Guidance and Tools'
    CE_6 = 'CE_6', 'Licensing and Certification Obligations'
    CE_7 = 'CE_7', 'Surveillance Obligations'
    CE_8 = 'CE_8', 'Resolution of Safety Issues'


class SMSComponent(models.TextChoices):
    SAFETY_POLICY_OBJECTIVES = 'SAFETY_POLICY_OBJECTIVES', 'Safety Policy and Objectives'
    SAFETY_RISK_MANAGEMENT = 'SAFETY_RISK_MANAGEMENT', 'Safety Risk Management'
    SAFETY_ASSURANCE = 'SAFETY_ASSURANCE', 'Safety Assurance'
    SAFETY_PROMOTION = 'SAFETY_PROMOTION', 'Safety Promotion'


class StudyArea(models.TextChoices):
    SA_1_1 = 'SA_1_1', 'Management Commitment'
    SA_1_2 = 'SA_1_2', 'Safety Accountabilities'
    SA_1_3 = 'SA_1_3', 'Appointment of Key Safety Personnel'
    SA_1_4 = 'SA_1_4', 'Coordination of Emergency Response Planning'
    SA_1_5 = 'SA_1_5', 'SMS Documentation'
    SA_2_1 = 'SA_2_1', 'Hazard Identification'
    SA_2_2 = 'SA_2_2', 'Risk Assessment and Mitigation'
    SA_3_1 = 'SA_3_1', 'Safety Performance Monitoring and Measurement'
    SA_3_2 = 'SA_3_2', 'Management of Change'
    SA_3_3 = 'SA_3_3', 'Continuous Improvement of the SMS'
    SA_4_1 = 'SA_4_1', 'Training and Education'
    SA_4_2 = 'SA_4_2', 'Safety Communication'


class AssessmentType(models.TextChoices):
    SELF_ASSESSMENT = 'SELF_ASSESSMENT', 'Self-assessment'
    PEER_REVIEW = 'PEER_REVIEW', 'Peer review'
    GAP_ANALYSIS = 'GAP_ANALYSIS', 'Gap analysis'
    FOLLOW_UP = 'FOLLOW_UP', 'Follow-up'


class AssessmentStatus(models.TextChoices):
    DRAFT = 'DRAFT', 'Draft'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    SUBMITTED = 'SUBMITTED', 'Submitted'
    UNDER_REVIEW = 'UNDER_REVIEW', 'Under review'
    COMPLETED = 'COMPLETED', 'Completed'
    ARCHIVED = 'ARCHIVED', 'Archived'


class ResponseValue(models.TextChoices):
    SATISFACTORY = 'SATISFACTORY', 'Satisfactory'
    NOT_SATISFACTORY = 'NOT_SATISFACTORY', 'Not satisfactory'
    NOT_APPLICABLE = 'NOT_APPLICABLE', 'Not applicable'
    NOT_REVIEWED = 'NOT_REVIEWED', 'Not reviewed'


class MaturityLevel(models.TextChoices):
    A = 'A', 'Level A - Initial/Ad-hoc'
    B = 'B', 'Level B - Defined/Documented'
    C = 'C', 'Level C - Implemented/Measured'
    D = 'D', 'Level D - Managed/Controlled'
    E = 'E', 'Level E - Optimizing/Leading'


class Questionnaire(models.Model):
    """A versioned question bank (ANS protocol questions or SMS maturity)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=50)
    version = models.CharField(max_length=20)
    type = models.CharField(max_length=20, choices=QuestionnaireType.choices)
    title_en = models.CharField(max_length=255)
    title_fr = models.CharField(max_length=255)
    description_en = models.TextField(blank=True)
    description_fr = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['type', '-version']
        unique_together = [('code', 'version')]

    def __str__(self):
        return f"{self.code} v{self.version}"


class Question(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    questionnaire = models.ForeignKey(Questionnaire, on_delete=models.CASCADE, related_name='questions')
    number = models.CharField(max_length=30, help_text="PQ number or SMS question reference")
    text_en = models.TextField()
    text_fr = models.TextField()
    guidance_en = models.TextField(blank=True)
    guidance_fr = models.TextField(blank=True)

    # ANS classification
    audit_area = models.CharField(max_length=5, choices=AuditArea.choices, blank=True)
    critical_element = models.CharField(max_length=5, choices=CriticalElement.choices, blank=True)
    is_priority_pq = models.BooleanField(default=False)

    # SMS classification
    sms_component = models.CharField(max_length=30, choices=SMSComponent.choices, blank=True)
    study_area = models.CharField(max_length=10, choices=StudyArea.choices, blank=True)

    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'number']

    def __str__(self):
        return self.number


class Assessment(models.Model):
    """
    A questionnaire-based assessment of one organization.
    Scores are filled in on submission.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    questionnaire = models.ForeignKey(Questionnaire, on_delete=models.PROTECT, related_name='assessments')
    assessment_type = models.CharField(
        max_length=20, choices=AssessmentType.choices, default=AssessmentType.SELF_ASSESSMENT
    )
    status = models.CharField(max_length=20, choices=AssessmentStatus.choices, default=AssessmentStatus.DRAFT)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    selected_audit_areas = models.JSONField(
        default=list, blank=True,
        help_text="ANS only: restrict the scope to these audit areas (empty = all)"
    )
    due_date = models.DateField(null=True, blank=True)

    # Scores
    progress = models.PositiveSmallIntegerField(default=0)
    ei_score = models.FloatField(null=True, blank=True)
    maturity_level = models.CharField(max_length=1, choices=MaturityLevel.choices, blank=True)
    overall_score = models.FloatField(null=True, blank=True)
    category_scores = models.JSONField(default=dict, blank=True)

    created_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, related_name='created_assessments'
    )
    started_at = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class AssessmentResponse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    assessment = models.ForeignKey(Assessment, on_delete=models.CASCADE, related_name='responses')
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name='responses')
    response_value = models.CharField(max_length=20, choices=ResponseValue.choices, blank=True)
    maturity_level = models.CharField(max_length=1, choices=MaturityLevel.choices, blank=True)
    comment = models.TextField(blank=True)
    evidence_description = models.TextField(blank=True)
    evidence_urls = models.JSONField(default=list, blank=True)
    responded_by = models.ForeignKey('identity.User', on_delete=models.SET_NULL, null=True, related_name='+')
    responded_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('assessment', 'question')]

    @property
    def has_evidence(self) -> bool:
        return bool(self.evidence_urls or self.evidence_description.strip())
