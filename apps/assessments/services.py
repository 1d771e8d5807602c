"""
Core services for Assessments app.
Handles assessment lifecycle, responses, progress, submission and scoring.
"""
import logging
from dataclasses import asdict
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User, UserRole
from apps.identity.permissions import Permissions, ADMIN_ROLES, get_user_permissions
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType
from apps.notifications.services import send_notification, get_programme_recipients
from apps.organizations.models import Organization
from .constants import EDITABLE_STATUSES, is_status_transition_allowed, get_ei_score_category
from .dtos import ScoredResponse, SubmissionValidation, AssessmentDTO
from .models import (
    Questionnaire, Question, Assessment, AssessmentResponse, AssessmentStatus,
    QuestionnaireType, ResponseValue, MaturityLevel, AuditArea,
)
from .schemas import AssessmentIn, ResponseIn
from . import scoring

logger = logging.getLogger(__name__)

# An organization may only have one of these per questionnaire and type
ACTIVE_STATUSES = [
    AssessmentStatus.DRAFT,
    AssessmentStatus.IN_PROGRESS,
    AssessmentStatus.SUBMITTED,
    AssessmentStatus.UNDER_REVIEW,
]

# Moves reserved for programme staff (review and sign-off)
REVIEW_TRANSITIONS = [AssessmentStatus.UNDER_REVIEW, AssessmentStatus.COMPLETED]

# Organization roles that may create, submit and archive their assessments
ASSESSMENT_MANAGER_ROLES = [UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER, UserRole.QUALITY_MANAGER]


# =============================================================================
# DTO Helpers
# =============================================================================

def get_assessment_dto(assessment_id: UUID) -> Optional[AssessmentDTO]:
    try:
        a = Assessment.objects.select_related('questionnaire').get(id=assessment_id)
    except Assessment.DoesNotExist:
        return None
    return AssessmentDTO(
        id=a.id,
        org_id=a.org_id,
        questionnaire_type=a.questionnaire.type,
        status=a.status,
        title=a.title,
        ei_score=a.ei_score,
        maturity_level=a.maturity_level or None,
        overall_score=a.overall_score,
        category_scores=a.category_scores or {},
    )


def get_latest_completed_assessment(org_id: UUID, questionnaire_type: str) -> Optional[AssessmentDTO]:
    latest = Assessment.objects.filter(
        org_id=org_id,
        questionnaire__type=questionnaire_type,
        status__in=[AssessmentStatus.SUBMITTED, AssessmentStatus.UNDER_REVIEW, AssessmentStatus.COMPLETED],
    ).order_by('-submitted_at').values_list('id', flat=True).first()
    return get_assessment_dto(latest) if latest else None


def to_scored_response(response: AssessmentResponse) -> ScoredResponse:
    question = response.question
    return ScoredResponse(
        response_value=response.response_value or None,
        maturity_level=response.maturity_level or None,
        audit_area=question.audit_area,
        critical_element=question.critical_element,
        sms_component=question.sms_component,
        study_area=question.study_area,
        is_priority_pq=question.is_priority_pq,
        has_evidence=response.has_evidence,
    )


# =============================================================================
# Access
# =============================================================================

def _assigned_org_ids(user: User) -> List[UUID]:
    """Organizations hosting a review the user is on the team of."""
    from apps.reviews.models import ReviewTeamMember

    return list(
        ReviewTeamMember.objects.filter(user=user).values_list('review__host_org_id', flat=True).distinct()
    )


def visible_assessments(user: User):
    perms = get_user_permissions(user)
    qs = Assessment.objects.select_related('questionnaire')
    if Permissions.ASSESSMENTS_ALL in perms:
        return qs
    scope = Q(pk__in=[])
    if Permissions.ASSESSMENTS_OWN in perms and user.org_id:
        scope |= Q(org_id=user.org_id)
    if Permissions.ASSESSMENTS_ASSIGNED in perms:
        scope |= Q(org_id__in=_assigned_org_ids(user))
    return qs.filter(scope)


def can_edit_assessment(user: User, assessment: Assessment) -> bool:
    perms = get_user_permissions(user)
    if Permissions.ASSESSMENTS_ALL in perms and user.role != UserRole.OBSERVER:
        return True
    return Permissions.ASSESSMENTS_OWN in perms and user.org_id == assessment.org_id


def can_manage_assessment(user: User, org_id: UUID) -> bool:
    """Create, submit, delete and archive rights for `org_id`'s assessments."""
    if user.is_superuser or user.role in ADMIN_ROLES:
        return True
    return user.role in ASSESSMENT_MANAGER_ROLES and user.org_id == org_id


def can_transition_to(user: User, assessment: Assessment, target: str) -> bool:
    if target in REVIEW_TRANSITIONS:
        return user.is_superuser or user.role in ADMIN_ROLES
    return can_manage_assessment(user, assessment.org_id)


# =============================================================================
# Questionnaires
# =============================================================================

def list_questionnaires(questionnaire_type: Optional[str] = None, active_only: bool = True) -> List[Questionnaire]:
    qs = Questionnaire.objects.all()
    if questionnaire_type:
        qs = qs.filter(type=questionnaire_type)
    if active_only:
        qs = qs.filter(is_active=True)
    return list(qs)


def questions_in_scope(assessment: Assessment):
    """Questions the assessment must answer (ANS scope may be narrowed to some audit areas)."""
    qs = Question.objects.filter(questionnaire_id=assessment.questionnaire_id)
    if assessment.questionnaire.type == QuestionnaireType.ANS_USOAP_CMA and assessment.selected_audit_areas:
        qs = qs.filter(audit_area__in=assessment.selected_audit_areas)
    return qs


# =============================================================================
# Lifecycle
# =============================================================================

def create_assessment(org_id: UUID, payload: AssessmentIn, created_by: User) -> Assessment:
    try:
        org = Organization.objects.get(id=org_id)
    except Organization.DoesNotExist:
        raise ValueError("Organization not found")
    if not org.is_active:
        raise ValueError("Cannot create assessment for inactive organization")

    try:
        questionnaire = Questionnaire.objects.get(id=payload.questionnaire_id)
    except Questionnaire.DoesNotExist:
        raise ValueError("Questionnaire not found")
    if not questionnaire.is_active:
        raise ValueError("Cannot create assessment for inactive questionnaire")

    invalid_areas = set(payload.selected_audit_areas) - set(AuditArea.values)
    if invalid_areas:
        raise ValueError(f"Unknown audit areas: {', '.join(sorted(invalid_areas))}")

    if Assessment.objects.filter(
        org_id=org_id,
        questionnaire=questionnaire,
        assessment_type=payload.assessment_type,
        status__in=ACTIVE_STATUSES,
    ).exists():
        raise ValueError(
            "An active assessment of this type already exists for this questionnaire. "
            "Please complete or archive it before creating a new one."
        )

    assessment = Assessment.objects.create(
        org_id=org_id,
        questionnaire=questionnaire,
        assessment_type=payload.assessment_type,
        title=payload.title,
        description=payload.description,
        selected_audit_areas=payload.selected_audit_areas,
        due_date=payload.due_date,
        created_by=created_by,
    )
    log_action(
        org_id=org_id,
        action=AuditAction.CREATE_ASSESSMENT,
        target_type="Assessment",
        target_id=assessment.id,
        target_label=assessment.title,
        performed_by=created_by,
        context={"questionnaire": str(questionnaire), "type": assessment.assessment_type},
    )
    return assessment


def delete_assessment(assessment: Assessment) -> None:
    if assessment.status != AssessmentStatus.DRAFT:
        raise ValueError("Only draft assessments can be deleted. Use archive for submitted assessments.")
    assessment.delete()


def _validate_answer(questionnaire_type: str, payload: ResponseIn) -> None:
    if questionnaire_type == QuestionnaireType.ANS_USOAP_CMA:
        if payload.response_value and payload.response_value not in ResponseValue.values:
            raise ValueError(f"Invalid response value: {payload.response_value}")
        if payload.maturity_level:
            raise ValueError("ANS questions take a response value, not a maturity level")
    else:
        if payload.maturity_level and payload.maturity_level not in MaturityLevel.values:
            raise ValueError(f"Invalid maturity level: {payload.maturity_level}")
        if payload.response_value:
            raise ValueError("SMS questions take a maturity level, not a response value")


def save_response(assessment: Assessment, payload: ResponseIn, user: User) -> AssessmentResponse:
    """
    Create or update the answer to one question. The first answer starts
    the assessment (DRAFT -> IN_PROGRESS).
    """
    if assessment.status not in EDITABLE_STATUSES:
        raise ValueError("Assessment is not editable")

    if not Question.objects.filter(id=payload.question_id, questionnaire_id=assessment.questionnaire_id).exists():
        raise ValueError("Question not found in this questionnaire")
    _validate_answer(assessment.questionnaire.type, payload)

    with transaction.atomic():
        response, _created = AssessmentResponse.objects.update_or_create(
            assessment=assessment,
            question_id=payload.question_id,
            defaults={
                'response_value': payload.response_value or "",
                'maturity_level': payload.maturity_level or "",
                'comment': payload.comment,
                'evidence_description': payload.evidence_description,
                'evidence_urls': payload.evidence_urls,
                'responded_by': user,
            },
        )

        if assessment.status == AssessmentStatus.DRAFT:
            assessment.status = AssessmentStatus.IN_PROGRESS
            assessment.started_at = timezone.now()
        assessment.progress = get_progress(assessment)['percentage']
        assessment.save()

    return response


def get_progress(assessment: Assessment) -> Dict:
    """Answered / total / with-evidence counts, overall and per category."""
    questionnaire_type = assessment.questionnaire.type
    is_ans = questionnaire_type == QuestionnaireType.ANS_USOAP_CMA
    questions = list(questions_in_scope(assessment))
    responses = {
        r.question_id: r
        for r in AssessmentResponse.objects.filter(assessment=assessment).select_related('question')
    }

    answered = 0
    with_evidence = 0
    by_category: Dict[str, Dict[str, int]] = {}
    for question in questions:
        category = (question.audit_area if is_ans else question.sms_component) or "OTHER"
        bucket = by_category.setdefault(category, {'total': 0, 'answered': 0})
        bucket['total'] += 1

        response = responses.get(question.id)
        if not response:
            continue
        if scoring.is_answered(to_scored_response(response), questionnaire_type):
            answered += 1
            bucket['answered'] += 1
        if response.has_evidence:
            with_evidence += 1

    total = len(questions)
    return {
        'total_questions': total,
        'answered': answered,
        'with_evidence': with_evidence,
        'percentage': round(answered / total * 100) if total else 0,
        'by_category': by_category,
    }


def _scored_responses(assessment: Assessment) -> List[ScoredResponse]:
    in_scope = questions_in_scope(assessment).values('id')
    return [
        to_scored_response(r)
        for r in AssessmentResponse.objects.filter(
            assessment=assessment, question_id__in=in_scope
        ).select_related('question')
    ]


def validate_assessment(assessment: Assessment) -> SubmissionValidation:
    return scoring.validate_submission(
        _scored_responses(assessment),
        questions_in_scope(assessment).count(),
        assessment.questionnaire.type,
    )


def calculate_scores(assessment: Assessment) -> Dict:
    """Scores of the current answers; nothing is saved."""
    questionnaire_type = assessment.questionnaire.type
    responses = _scored_responses(assessment)
    category_scores = scoring.calculate_category_scores(responses, questionnaire_type)

    if questionnaire_type == QuestionnaireType.ANS_USOAP_CMA:
        result = scoring.calculate_ei_score(responses)
        return {
            'questionnaire_type': questionnaire_type,
            'ei_score': result.overall_ei,
            'ei_category': get_ei_score_category(result.overall_ei),
            'maturity_level': None,
            'overall_score': result.overall_ei,
            'category_scores': category_scores,
            'details': asdict(result),
        }

    result = scoring.calculate_sms_maturity(responses)
    return {
        'questionnaire_type': questionnaire_type,
        'ei_score': None,
        'ei_category': None,
        'maturity_level': result.overall_level,
        'overall_score': float(result.overall_percentage),
        'category_scores': category_scores,
        'details': asdict(result),
    }


def _store_scores(assessment: Assessment, scores: Dict) -> None:
    assessment.ei_score = scores['ei_score']
    assessment.maturity_level = scores['maturity_level'] or ""
    assessment.overall_score = scores['overall_score']
    assessment.category_scores = scores['category_scores']


def recalculate_scores(assessment: Assessment) -> Assessment:
    _store_scores(assessment, calculate_scores(assessment))
    assessment.save(update_fields=['ei_score', 'maturity_level', 'overall_score', 'category_scores', 'updated_at'])
    return assessment


def submit_assessment(assessment: Assessment, user: User, submission_notes: str = "") -> Tuple[Assessment, List[str]]:
    """
    Validate, score and submit. Returns the assessment and any non-blocking
    warnings; raises ValueError listing the blocking problems.
    """
    if not is_status_transition_allowed(assessment.status, AssessmentStatus.SUBMITTED):
        raise ValueError(f'Cannot submit assessment with status "{assessment.status}"')

    validation = validate_assessment(assessment)
    if not validation.is_valid:
        raise ValueError("Assessment cannot be submitted:\n" + "\n".join(validation.errors))

    scores = calculate_scores(assessment)
    with transaction.atomic():
        _store_scores(assessment, scores)
        assessment.status = AssessmentStatus.SUBMITTED
        assessment.submitted_at = timezone.now()
        assessment.progress = 100
        assessment.save()

    log_action(
        org_id=assessment.org_id,
        action=AuditAction.SUBMIT_ASSESSMENT,
        target_type="Assessment",
        target_id=assessment.id,
        target_label=assessment.title,
        performed_by=user,
        context={
            "overall_score": assessment.overall_score,
            "ei_score": assessment.ei_score,
            "maturity_level": assessment.maturity_level,
            "submission_notes": submission_notes,
        },
    )
    send_notification(
        get_programme_recipients([UserRole.PROGRAMME_COORDINATOR]),
        NotificationPayload(
            type=NotificationType.ASSESSMENT_SUBMITTED,
            title_en="Assessment submitted",
            title_fr="Évaluation soumise",
            message_en=f'"{assessment.title}" was submitted with a score of {assessment.overall_score}.',
            message_fr=f'« {assessment.title} » a été soumise avec un score de {assessment.overall_score}.',
            entity_type="Assessment",
            entity_id=str(assessment.id),
            action_url=f"/assessments/{assessment.id}",
        ),
    )
    logger.info(f"Assessment {assessment.id} submitted by {user.id} with score {assessment.overall_score}")
    return assessment, validation.warnings


def transition_assessment(assessment: Assessment, target: str, user: User, comment: str = "") -> Assessment:
    """Move an assessment along the status table. Submission goes through submit_assessment."""
    if target == AssessmentStatus.SUBMITTED and assessment.status == AssessmentStatus.IN_PROGRESS:
        raise ValueError("Use submit to submit an assessment")
    if not is_status_transition_allowed(assessment.status, target):
        raise ValueError(f"Cannot move assessment from {assessment.status} to {target}")

    previous = assessment.status
    assessment.status = target
    if target == AssessmentStatus.COMPLETED:
        assessment.completed_at = timezone.now()
    assessment.save()

    log_action(
        org_id=assessment.org_id,
        action=AuditAction.ASSESSMENT_STATUS_CHANGE,
        target_type="Assessment",
        target_id=assessment.id,
        target_label=assessment.title,
        performed_by=user,
        context={"from": previous, "to": target, "comment": comment},
    )
    return assessment
