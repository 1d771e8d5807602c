from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth, require_permission
from apps.identity.permissions import Permissions, ADMIN_ROLES, is_programme_user
from .constants import EDITABLE_STATUSES, get_status_array
from .models import Questionnaire, Assessment, AssessmentResponse
from .schemas import (
    QuestionnaireOut, QuestionnaireDetailOut, AssessmentOut, ResponseOut,
    AssessmentIn, AssessmentUpdateIn, ResponseIn, SubmitIn, TransitionIn,
    ProgressOut, SubmitOut, ValidationOut, ScoresOut, StatusOut,
)
from . import services

router = Router(tags=["Assessments"])


def _get_visible(request: HttpRequest, assessment_id: UUID):
    user = require_permission(request, Permissions.ASSESSMENTS)
    assessment = get_object_or_404(services.visible_assessments(user), id=assessment_id)
    return user, assessment


def _get_editable(request: HttpRequest, assessment_id: UUID):
    user, assessment = _get_visible(request, assessment_id)
    if not services.can_edit_assessment(user, assessment):
        raise HttpError(403, "Permission denied: Cannot edit this assessment")
    return user, assessment


def _get_managed(request: HttpRequest, assessment_id: UUID):
    user, assessment = _get_visible(request, assessment_id)
    if not services.can_manage_assessment(user, assessment.org_id):
        raise HttpError(403, "Permission denied: Cannot manage this assessment")
    return user, assessment


# =============================================================================
# Reference data
# =============================================================================

@router.get("/questionnaires", response=List[QuestionnaireOut], auth=None)
def list_questionnaires(request: HttpRequest, type: Optional[str] = None):
    require_permission(request, Permissions.QUESTIONNAIRES)
    return services.list_questionnaires(questionnaire_type=type)


@router.get("/questionnaires/{questionnaire_id}", response=QuestionnaireDetailOut, auth=None)
def get_questionnaire(request: HttpRequest, questionnaire_id: UUID):
    require_permission(request, Permissions.QUESTIONNAIRES)
    questionnaire = get_object_or_404(Questionnaire, id=questionnaire_id)
    return {'questionnaire': questionnaire, 'questions': list(questionnaire.questions.all())}


@router.get("/statuses", response=List[StatusOut], auth=None)
def list_statuses(request: HttpRequest, locale: Optional[str] = None):
    user = require_auth(request)
    return get_status_array(locale or user.locale)


# =============================================================================
# Assessments
# =============================================================================

@router.get("", response=List[AssessmentOut], auth=None)
def list_assessments(
    request: HttpRequest,
    status: Optional[str] = None,
    org_id: Optional[UUID] = None,
    type: Optional[str] = None,
):
    user = require_permission(request, Permissions.ASSESSMENTS)
    qs = services.visible_assessments(user)
    if status:
        qs = qs.filter(status=status)
    if org_id:
        qs = qs.filter(org_id=org_id)
    if type:
        qs = qs.filter(questionnaire__type=type)
    return qs


@router.post("", response={201: AssessmentOut}, auth=None)
def create_assessment(request: HttpRequest, payload: AssessmentIn):
    user = require_permission(request, Permissions.ASSESSMENTS)
    org_id = payload.org_id if (payload.org_id and is_programme_user(user)) else user.org_id
    if not org_id:
        raise HttpError(400, "An organization is required")
    if not services.can_manage_assessment(user, org_id):
        raise HttpError(403, "Permission denied: Cannot create assessments for this organization")
    try:
        return 201, services.create_assessment(org_id, payload, created_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/{assessment_id}", response=AssessmentOut, auth=None)
def get_assessment(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_visible(request, assessment_id)
    return assessment


@router.patch("/{assessment_id}", response=AssessmentOut, auth=None)
def update_assessment(request: HttpRequest, assessment_id: UUID, payload: AssessmentUpdateIn):
    _user, assessment = _get_managed(request, assessment_id)
    if assessment.status not in EDITABLE_STATUSES:
        raise HttpError(400, "Assessment is not editable")
    for field, value in payload.dict(exclude_unset=True).items():
        setattr(assessment, field, value)
    assessment.save()
    return assessment


@router.delete("/{assessment_id}", response={204: None}, auth=None)
def delete_assessment(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_managed(request, assessment_id)
    try:
        services.delete_assessment(assessment)
    except ValueError as e:
        raise HttpError(400, str(e))
    return 204, None


# =============================================================================
# Responses & progress
# =============================================================================

@router.get("/{assessment_id}/responses", response=List[ResponseOut], auth=None)
def list_responses(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_visible(request, assessment_id)
    return AssessmentResponse.objects.filter(assessment=assessment).select_related('question')


@router.put("/{assessment_id}/responses", response=ResponseOut, auth=None)
def save_response(request: HttpRequest, assessment_id: UUID, payload: ResponseIn):
    user, assessment = _get_editable(request, assessment_id)
    try:
        return services.save_response(assessment, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/{assessment_id}/progress", response=ProgressOut, auth=None)
def get_progress(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_visible(request, assessment_id)
    return services.get_progress(assessment)


@router.get("/{assessment_id}/validation", response=ValidationOut, auth=None)
def validate_assessment(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_visible(request, assessment_id)
    return services.validate_assessment(assessment)


@router.get("/{assessment_id}/scores", response=ScoresOut, auth=None)
def get_scores(request: HttpRequest, assessment_id: UUID):
    _user, assessment = _get_visible(request, assessment_id)
    return services.calculate_scores(assessment)


@router.post("/{assessment_id}/recalculate", response=AssessmentOut, auth=None)
def recalculate_scores(request: HttpRequest, assessment_id: UUID):
    user = require_permission(request, Permissions.ASSESSMENTS_ALL)
    if not (user.is_superuser or user.role in ADMIN_ROLES):
        raise HttpError(403, "Permission denied: Cannot recalculate scores")
    assessment = get_object_or_404(Assessment.objects.select_related('questionnaire'), id=assessment_id)
    return services.recalculate_scores(assessment)


# =============================================================================
# Workflow
# =============================================================================

@router.post("/{assessment_id}/submit", response=SubmitOut, auth=None)
def submit_assessment(request: HttpRequest, assessment_id: UUID, payload: SubmitIn):
    user, assessment = _get_managed(request, assessment_id)
    try:
        assessment, warnings = services.submit_assessment(assessment, user, payload.submission_notes)
    except ValueError as e:
        raise HttpError(400, str(e))
    return {'assessment': assessment, 'warnings': warnings}


@router.post("/{assessment_id}/transition", response=AssessmentOut, auth=None)
def transition_assessment(request: HttpRequest, assessment_id: UUID, payload: TransitionIn):
    user, assessment = _get_visible(request, assessment_id)
    if not services.can_transition_to(user, assessment, payload.status):
        raise HttpError(403, f"Permission denied: Cannot move assessment to {payload.status}")
    try:
        return services.transition_assessment(assessment, payload.status, user, payload.comment)
    except ValueError as e:
        raise HttpError(400, str(e))
