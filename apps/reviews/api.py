from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth, require_permission
from apps.identity.permissions import Permissions
from .constants import STATUS_LABELS, STATUS_PROGRESS
from .models import ReviewTeamMember, FieldworkChecklistItem
from .schemas import (
    ReviewOut, ReviewDetailOut, TeamMemberOut, ReviewRequestIn, ScheduleIn, TeamMemberIn,
    InvitationResponseIn, ReviewTransitionIn, ChecklistItemUpdateIn, ChecklistItemOut, ChecklistOut,
    TransitionCheckOut, AvailableTransitionOut, TransitionResultOut, StatusFlowOut,
)
from . import services, state_machine

router = Router(tags=["Reviews"])


def _get_visible(request: HttpRequest, review_id: UUID):
    user = require_permission(request, Permissions.PEER_REVIEWS)
    review = get_object_or_404(services.visible_reviews(user), id=review_id)
    return user, review


def _get_scheduled(request: HttpRequest, review_id: UUID):
    user, review = _get_visible(request, review_id)
    if not services.can_schedule_review(user):
        raise HttpError(403, "Permission denied: Cannot plan this review")
    return user, review


# =============================================================================
# Reviews
# =============================================================================

@router.get("", response=List[ReviewOut], auth=None)
def list_reviews(request: HttpRequest, status: Optional[str] = None, host_org_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.PEER_REVIEWS)
    return services.list_reviews_for_user(user, status=status, host_org_id=host_org_id)


@router.post("", response={201: ReviewOut}, auth=None)
def request_review(request: HttpRequest, payload: ReviewRequestIn):
    user = require_auth(request)
    try:
        return 201, services.request_review(payload, user)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/status-flow", response=List[StatusFlowOut], auth=None)
def status_flow(request: HttpRequest, locale: Optional[str] = None):
    user = require_auth(request)
    return state_machine.get_status_flow(locale or user.locale)


@router.get("/{review_id}", response=ReviewDetailOut, auth=None)
def get_review(request: HttpRequest, review_id: UUID, locale: Optional[str] = None):
    user, review = _get_visible(request, review_id)
    return {
        'review': review,
        'team': list(review.team_members.all()),
        'assessment_ids': list(review.assessments.values_list('id', flat=True)),
        'progress_percentage': STATUS_PROGRESS[review.status],
        'status_label': STATUS_LABELS[review.status].get(locale or user.locale),
    }


@router.patch("/{review_id}/schedule", response=ReviewOut, auth=None)
def update_schedule(request: HttpRequest, review_id: UUID, payload: ScheduleIn):
    user, review = _get_scheduled(request, review_id)
    try:
        return services.update_schedule(review, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


# =============================================================================
# Team
# =============================================================================

@router.get("/{review_id}/team", response=List[TeamMemberOut], auth=None)
def list_team(request: HttpRequest, review_id: UUID):
    _user, review = _get_visible(request, review_id)
    return review.team_members.all()


@router.post("/{review_id}/team", response={201: TeamMemberOut}, auth=None)
def assign_team_member(request: HttpRequest, review_id: UUID, payload: TeamMemberIn):
    user, review = _get_scheduled(request, review_id)
    try:
        return 201, services.assign_team_member(
            review, payload.user_id, payload.role, performed_by=user, assigned_areas=payload.assigned_areas,
        )
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/{review_id}/team/respond", response=TeamMemberOut, auth=None)
def respond_to_invitation(request: HttpRequest, review_id: UUID, payload: InvitationResponseIn):
    user = require_auth(request)
    member = get_object_or_404(ReviewTeamMember.objects.select_related('review', 'user'), review_id=review_id, user=user)
    try:
        return services.respond_to_invitation(member, payload.accept, payload.decline_reason)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{review_id}/team/{member_id}", response={204: None}, auth=None)
def remove_team_member(request: HttpRequest, review_id: UUID, member_id: UUID):
    user, review = _get_scheduled(request, review_id)
    member = get_object_or_404(ReviewTeamMember, id=member_id, review=review)
    try:
        services.remove_team_member(member, performed_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))
    return 204, None


# =============================================================================
# Status workflow
# =============================================================================

@router.get("/{review_id}/transitions", response=List[AvailableTransitionOut], auth=None)
def available_transitions(request: HttpRequest, review_id: UUID):
    user, review = _get_visible(request, review_id)
    return state_machine.get_available_transitions(review, user)


@router.get("/{review_id}/transitions/{status}", response=TransitionCheckOut, auth=None)
def check_transition(request: HttpRequest, review_id: UUID, status: str):
    user, review = _get_visible(request, review_id)
    return state_machine.can_transition(review, status, user)


@router.post("/{review_id}/transition", response=TransitionResultOut, auth=None)
def transition_review(request: HttpRequest, review_id: UUID, payload: ReviewTransitionIn):
    user, review = _get_visible(request, review_id)
    result = state_machine.execute_transition(
        review, payload.status, user,
        reason=payload.reason, notes=payload.notes, effective_date=payload.effective_date,
    )
    if not result.success:
        raise HttpError(400, "\n".join(result.errors))
    return {'review': result.review, 'previous_status': result.previous_status, 'warnings': result.warnings}


# =============================================================================
# Fieldwork checklist
# =============================================================================

@router.get("/{review_id}/checklist", response=ChecklistOut, auth=None)
def get_checklist(request: HttpRequest, review_id: UUID):
    _user, review = _get_visible(request, review_id)
    return services.get_checklist_summary(review)


@router.patch("/{review_id}/checklist/{item_id}", response=ChecklistItemOut, auth=None)
def update_checklist_item(request: HttpRequest, review_id: UUID, item_id: UUID, payload: ChecklistItemUpdateIn):
    user, review = _get_visible(request, review_id)
    if not (services.is_team_member(review, user, confirmed_only=True) or services.can_schedule_review(user)):
        raise HttpError(403, "Permission denied: Only the review team can update the checklist")
    item = get_object_or_404(FieldworkChecklistItem.objects.select_related('review'), id=item_id, review=review)
    try:
        return services.update_checklist_item(item, user, payload.is_completed, payload.notes)
    except ValueError as e:
        raise HttpError(400, str(e))
