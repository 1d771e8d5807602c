from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth, require_permission
from apps.identity.permissions import Permissions
from apps.reviews import services as review_services
from .models import ReviewerProfile, ReviewerAvailability, ReviewerCOI, COIOverride
from .schemas import (
    ProfileOut, ProfileDetailOut, ProfileUpdateIn, LeadQualificationIn, ExpertiseIn, ExpertiseOut,
    LanguageIn, LanguageOut, AvailabilityIn, AvailabilityOut, COIDeclareIn, COIOut, OverrideIn, OverrideOut,
    COICheckOut, TeamCOICheckOut, MatchQueryIn, MatchResultOut, TeamSuggestionOut,
)
from . import coi, services

router = Router(tags=["Reviewers"])


def _get_visible(request: HttpRequest, profile_id: UUID):
    user = require_permission(request, Permissions.REVIEWERS)
    profile = get_object_or_404(services.visible_profiles(user), id=profile_id)
    return user, profile


def _get_editable(request: HttpRequest, profile_id: UUID):
    user, profile = _get_visible(request, profile_id)
    if not services.can_edit_profile(user, profile):
        raise HttpError(403, "Permission denied: Cannot edit this reviewer profile")
    return user, profile


def _get_approver(request: HttpRequest):
    user = require_auth(request)
    if not services.can_approve(user):
        raise HttpError(403, f"Permission denied: {Permissions.REVIEWERS_APPROVE}")
    return user


def _get_plannable_review(request: HttpRequest, review_id: UUID):
    user = require_permission(request, Permissions.PEER_REVIEWS)
    review = get_object_or_404(review_services.visible_reviews(user), id=review_id)
    if not review_services.can_schedule_review(user):
        raise HttpError(403, "Permission denied: Cannot plan this review")
    return user, review


def _detail(profile: ReviewerProfile) -> dict:
    return {
        'profile': profile,
        'expertise': list(profile.expertise.all()),
        'languages': list(profile.languages.all()),
        'availability': list(profile.availability.all()),
        'conflicts': list(profile.conflicts.filter(is_active=True)),
    }


# =============================================================================
# Profiles
# =============================================================================

@router.get("", response=List[ProfileOut], auth=None)
def list_profiles(
    request: HttpRequest,
    selection_status: Optional[str] = None,
    lead_qualified: Optional[bool] = None,
    available: Optional[bool] = None,
):
    user = require_permission(request, Permissions.REVIEWERS)
    profiles = services.visible_profiles(user)
    if selection_status:
        profiles = profiles.filter(selection_status=selection_status)
    if lead_qualified is not None:
        profiles = profiles.filter(is_lead_qualified=lead_qualified)
    if available is not None:
        profiles = profiles.filter(is_available=available)
    return profiles


@router.get("/me", response=ProfileDetailOut, auth=None)
def my_profile(request: HttpRequest):
    user = require_auth(request)
    profile = get_object_or_404(ReviewerProfile, user=user)
    return _detail(profile)


@router.get("/{profile_id}", response=ProfileDetailOut, auth=None)
def get_profile(request: HttpRequest, profile_id: UUID):
    _user, profile = _get_visible(request, profile_id)
    return _detail(profile)


@router.patch("/{profile_id}", response=ProfileOut, auth=None)
def update_profile(request: HttpRequest, profile_id: UUID, payload: ProfileUpdateIn):
    user, profile = _get_editable(request, profile_id)
    try:
        return services.update_profile(profile, payload, user)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/{profile_id}/lead-qualification", response=ProfileOut, auth=None)
def set_lead_qualification(request: HttpRequest, profile_id: UUID, payload: LeadQualificationIn):
    user = _get_approver(request)
    profile = get_object_or_404(ReviewerProfile.objects.select_related('user'), id=profile_id)
    try:
        return services.set_lead_qualification(profile, payload.qualified, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.put("/{profile_id}/expertise", response=List[ExpertiseOut], auth=None)
def set_expertise(request: HttpRequest, profile_id: UUID, payload: List[ExpertiseIn]):
    user, profile = _get_editable(request, profile_id)
    try:
        return services.set_expertise(profile, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.put("/{profile_id}/languages", response=List[LanguageOut], auth=None)
def set_languages(request: HttpRequest, profile_id: UUID, payload: List[LanguageIn]):
    user, profile = _get_editable(request, profile_id)
    try:
        return services.set_languages(profile, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/{profile_id}/availability", response={201: AvailabilityOut}, auth=None)
def add_availability(request: HttpRequest, profile_id: UUID, payload: AvailabilityIn):
    _user, profile = _get_editable(request, profile_id)
    try:
        return 201, services.add_availability(profile, payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{profile_id}/availability/{slot_id}", response={204: None}, auth=None)
def delete_availability(request: HttpRequest, profile_id: UUID, slot_id: UUID):
    _user, profile = _get_editable(request, profile_id)
    get_object_or_404(ReviewerAvailability, id=slot_id, profile=profile).delete()
    return 204, None


# =============================================================================
# Conflicts of interest
# =============================================================================

@router.post("/{profile_id}/conflicts", response={201: COIOut}, auth=None)
def declare_conflict(request: HttpRequest, profile_id: UUID, payload: COIDeclareIn):
    user, profile = _get_editable(request, profile_id)
    try:
        return 201, coi.declare_conflict(
            profile, payload.org_id, payload.coi_type, declared_by=user,
            reason_en=payload.reason_en, reason_fr=payload.reason_fr,
            start_date=payload.start_date, end_date=payload.end_date,
        )
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{profile_id}/conflicts/{coi_id}", response={204: None}, auth=None)
def withdraw_conflict(request: HttpRequest, profile_id: UUID, coi_id: UUID):
    user, profile = _get_editable(request, profile_id)
    conflict = get_object_or_404(ReviewerCOI, id=coi_id, profile=profile, is_active=True)
    try:
        coi.withdraw_conflict(conflict, user)
    except ValueError as e:
        raise HttpError(400, str(e))
    return 204, None


@router.get("/{profile_id}/coi-check", response=COICheckOut, auth=None)
def check_coi(request: HttpRequest, profile_id: UUID, org_id: UUID, review_id: Optional[UUID] = None):
    user, profile = _get_visible(request, profile_id)
    review = get_object_or_404(review_services.visible_reviews(user), id=review_id) if review_id else None
    return coi.check_reviewer_coi(profile.user, org_id, review)


@router.post("/{profile_id}/overrides", response={201: OverrideOut}, auth=None)
def grant_override(request: HttpRequest, profile_id: UUID, payload: OverrideIn):
    user = _get_approver(request)
    profile = get_object_or_404(ReviewerProfile.objects.select_related('user'), id=profile_id)
    review = get_object_or_404(review_services.visible_reviews(user), id=payload.review_id) if payload.review_id else None
    if review is not None and review.host_org_id != payload.org_id:
        raise HttpError(400, "Review is not hosted by this organization")
    try:
        return 201, coi.grant_override(
            profile, payload.org_id, payload.justification, approved_by=user,
            review=review, expires_at=payload.expires_at,
        )
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/overrides/{override_id}/revoke", response=OverrideOut, auth=None)
def revoke_override(request: HttpRequest, override_id: UUID):
    user = _get_approver(request)
    override = get_object_or_404(COIOverride, id=override_id)
    try:
        return coi.revoke_override(override, user)
    except ValueError as e:
        raise HttpError(400, str(e))


# =============================================================================
# Matching
# =============================================================================

@router.post("/reviews/{review_id}/matches", response=List[MatchResultOut], auth=None)
def match_reviewers(request: HttpRequest, review_id: UUID, payload: MatchQueryIn):
    _user, review = _get_plannable_review(request, review_id)
    try:
        return services.match_reviewers_for_review(review, **payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/reviews/{review_id}/suggested-team", response=TeamSuggestionOut, auth=None)
def suggest_team(request: HttpRequest, review_id: UUID, payload: MatchQueryIn):
    _user, review = _get_plannable_review(request, review_id)
    try:
        return services.suggest_team(review, **payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/reviews/{review_id}/team-coi", response=TeamCOICheckOut, auth=None)
def team_coi(request: HttpRequest, review_id: UUID):
    _user, review = _get_plannable_review(request, review_id)
    users = [member.user for member in review_services.active_team(review)]
    return coi.check_team_coi(users, review.host_org_id, review)
