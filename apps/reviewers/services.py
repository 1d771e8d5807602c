"""
Core services for Reviewers app.
Handles reviewer profiles, their expertise, languages and availability,
and matching reviewers to a peer review.
"""
import logging
from typing import List, Optional

from django.db import transaction
from django.db.models import QuerySet

from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User
from apps.identity.permissions import Permissions, get_user_permissions
from apps.organizations.models import Organization
from apps.reviews.models import Review, LanguagePreference
from apps.reviews.services import active_team
from .constants import MIN_REVIEWS_FOR_LEAD, IDEAL_TEAM_SIZE
from .dtos import (
    ReviewerCandidate, ExpertiseInput, LanguageInput, AvailabilitySlot, DeclaredConflict,
    MatchingCriteria, MatchResult, TeamBuildResult,
)
from .matching import find_matching_reviewers, build_optimal_team
from .models import (
    ReviewerProfile, ReviewerExpertise, ReviewerLanguage, ReviewerAvailability,
    SelectionStatus, ExpertiseArea, Language,
)
from .schemas import ProfileUpdateIn, ExpertiseIn, LanguageIn, AvailabilityIn

logger = logging.getLogger(__name__)

REVIEW_LANGUAGES = {
    LanguagePreference.EN: [Language.EN],
    LanguagePreference.FR: [Language.FR],
    LanguagePreference.BOTH: [Language.EN, Language.FR],
}


# =============================================================================
# Access
# =============================================================================

def visible_profiles(user: User) -> QuerySet:
    profiles = ReviewerProfile.objects.select_related('user')
    if user.is_superuser or Permissions.REVIEWERS_ALL in get_user_permissions(user):
        return profiles
    return profiles.filter(user=user)


def can_edit_profile(user: User, profile: ReviewerProfile) -> bool:
    permissions = get_user_permissions(user)
    if user.is_superuser or Permissions.REVIEWERS_EDIT_ANY in permissions:
        return True
    return profile.user_id == user.id and Permissions.REVIEWERS_EDIT in permissions


def can_approve(user: User) -> bool:
    return user.is_superuser or Permissions.REVIEWERS_APPROVE in get_user_permissions(user)


def _log_profile_change(profile: ReviewerProfile, user: User, context: dict) -> None:
    log_action(
        org_id=profile.user.org_id or profile.user_id,
        action=AuditAction.UPDATE_REVIEWER_PROFILE,
        target_type="ReviewerProfile",
        target_id=profile.id,
        target_label=str(profile.user),
        performed_by=user,
        context=context,
    )


# =============================================================================
# Profile
# =============================================================================

# Only programme approvers may change these
APPROVAL_FIELDS = {'selection_status'}


def update_profile(profile: ReviewerProfile, payload: ProfileUpdateIn, user: User) -> ReviewerProfile:
    changes = payload.dict(exclude_unset=True)
    if changes.keys() & APPROVAL_FIELDS and not can_approve(user):
        raise PermissionError("Only programme coordinators can change reviewer selection")
    if 'selection_status' in changes and changes['selection_status'] not in SelectionStatus.values:
        raise ValueError("Unknown selection status")

    for field, value in changes.items():
        setattr(profile, field, value)
    profile.save()
    _log_profile_change(profile, user, {field: str(value) for field, value in changes.items()})
    return profile


def set_lead_qualification(profile: ReviewerProfile, qualified: bool, user: User) -> ReviewerProfile:
    """Lead qualification needs a selected reviewer with enough completed reviews."""
    if not can_approve(user):
        raise PermissionError("Only programme coordinators can qualify lead reviewers")
    if qualified:
        if profile.selection_status != SelectionStatus.SELECTED:
            raise ValueError("Only selected reviewers can be lead qualified")
        if profile.reviews_completed < MIN_REVIEWS_FOR_LEAD:
            raise ValueError(f"Lead reviewers need at least {MIN_REVIEWS_FOR_LEAD} completed reviews")

    profile.is_lead_qualified = qualified
    profile.save(update_fields=['is_lead_qualified', 'updated_at'])
    _log_profile_change(profile, user, {"is_lead_qualified": qualified})
    logger.info(f"Reviewer {profile.user_id} lead qualification set to {qualified} by {user.id}")
    return profile


def set_expertise(profile: ReviewerProfile, items: List[ExpertiseIn], user: User) -> List[ReviewerExpertise]:
    areas = [item.area for item in items]
    if len(areas) != len(set(areas)):
        raise ValueError("Each expertise area can only be listed once")
    unknown = [area for area in areas if area not in ExpertiseArea.values]
    if unknown:
        raise ValueError(f"Unknown expertise areas: {', '.join(unknown)}")

    with transaction.atomic():
        profile.expertise.all().delete()
        expertise = [
            ReviewerExpertise.objects.create(
                profile=profile,
                area=item.area,
                proficiency_level=item.proficiency_level,
                years_experience=item.years_experience,
            )
            for item in items
        ]
    _log_profile_change(profile, user, {"expertise": areas})
    return expertise


def set_languages(profile: ReviewerProfile, items: List[LanguageIn], user: User) -> List[ReviewerLanguage]:
    codes = [item.language for item in items]
    if len(codes) != len(set(codes)):
        raise ValueError("Each language can only be listed once")
    unknown = [code for code in codes if code not in Language.values]
    if unknown:
        raise ValueError(f"Unknown languages: {', '.join(unknown)}")

    with transaction.atomic():
        profile.languages.all().delete()
        languages = [
            ReviewerLanguage.objects.create(
                profile=profile,
                language=item.language,
                proficiency=item.proficiency,
                can_conduct_interviews=item.can_conduct_interviews,
            )
            for item in items
        ]
    _log_profile_change(profile, user, {"languages": codes})
    return languages


def add_availability(profile: ReviewerProfile, payload: AvailabilityIn) -> ReviewerAvailability:
    if payload.end_date < payload.start_date:
        raise ValueError("Availability end date cannot be before the start date")
    return ReviewerAvailability.objects.create(
        profile=profile,
        start_date=payload.start_date,
        end_date=payload.end_date,
        availability_type=payload.availability_type,
        notes=payload.notes,
    )


# =============================================================================
# Matching
# =============================================================================

def build_candidate(profile: ReviewerProfile, organizations: Optional[dict] = None) -> ReviewerCandidate:
    user = profile.user
    org_name = ""
    if user.org_id:
        org = (organizations or {}).get(user.org_id) or Organization.objects.filter(id=user.org_id).first()
        org_name = org.name_en if org else ""
    return ReviewerCandidate(
        profile_id=profile.id,
        user_id=user.id,
        full_name=user.get_full_name() or user.username,
        home_org_id=user.org_id,
        organization=org_name,
        is_lead_qualified=profile.is_lead_qualified,
        years_experience=profile.years_experience,
        reviews_completed=profile.reviews_completed,
        expertise=[ExpertiseInput(e.area, e.proficiency_level, e.years_experience) for e in profile.expertise.all()],
        languages=[
            LanguageInput(lang.language, lang.proficiency, lang.can_conduct_interviews)
            for lang in profile.languages.all()
        ],
        availability=[
            AvailabilitySlot(a.start_date, a.end_date, a.availability_type, a.notes)
            for a in profile.availability.all()
        ],
        conflicts=[
            DeclaredConflict(c.org_id, c.coi_type)
            for c in profile.conflicts.all()
            if c.is_active
        ],
    )


def candidate_pool() -> List[ReviewerCandidate]:
    """Selected, available reviewers with an active account."""
    profiles = list(
        ReviewerProfile.objects.filter(
            selection_status=SelectionStatus.SELECTED, is_available=True, user__is_active=True,
        )
        .select_related('user')
        .prefetch_related('expertise', 'languages', 'availability', 'conflicts')
    )
    org_ids = {p.user.org_id for p in profiles if p.user.org_id}
    organizations = {org.id: org for org in Organization.objects.filter(id__in=org_ids)}
    return [build_candidate(profile, organizations) for profile in profiles]


def criteria_for_review(review: Review, team_size: int = IDEAL_TEAM_SIZE, **overrides) -> MatchingCriteria:
    """
    Matching criteria taken from the review: its host, planned dates (or
    the requested ones), the areas in scope that are expertise areas and
    the languages of its language preference. Reviewers already on the
    team are excluded.
    """
    start = review.planned_start_date or review.requested_start_date
    end = review.planned_end_date or review.requested_end_date
    if not (start and end):
        raise ValueError("Review needs planned or requested dates before matching reviewers")

    on_team = list(
        ReviewerProfile.objects.filter(user__in=active_team(review).values('user')).values_list('id', flat=True)
    )
    criteria = MatchingCriteria(
        target_org_id=review.host_org_id,
        start_date=start,
        end_date=end,
        required_expertise=[area for area in review.areas_in_scope or [] if area in ExpertiseArea.values],
        required_languages=list(REVIEW_LANGUAGES.get(review.language_preference, [])),
        team_size=team_size,
        exclude=on_team,
    )
    for field, value in overrides.items():
        if value is not None:
            setattr(criteria, field, value)
    return criteria


def match_reviewers_for_review(review: Review, **overrides) -> List[MatchResult]:
    criteria = criteria_for_review(review, **overrides)
    return find_matching_reviewers(criteria, candidate_pool())


def suggest_team(review: Review, team_size: int = IDEAL_TEAM_SIZE, **overrides) -> TeamBuildResult:
    criteria = criteria_for_review(review, team_size=team_size, **overrides)
    results = find_matching_reviewers(criteria, candidate_pool())
    return build_optimal_team(criteria, results)
