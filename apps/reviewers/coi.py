"""
Conflict-of-interest checks for reviewer assignment.

Hard blocks (home organization, family) always prevent assignment. Soft
warnings (former employee, business interest, a recent review of the
same organization, anything else declared) prevent it until a
coordinator records an override.
"""
import logging
from datetime import timedelta
from typing import Iterable, List, Optional
from uuid import UUID

from django.db.models import Q
from django.utils import timezone

from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User
from apps.reviews.models import ReviewStatus, ReviewTeamMember, InvitationStatus
from .constants import COI_TYPE_CONFIG, DECLARABLE_COI_TYPES, RECENT_REVIEW_COOLDOWN_YEARS
from .dtos import COIConflict, COIOverrideInfo, COICheckResult, ReviewerEligibility, TeamCOICheckResult
from .models import ReviewerProfile, ReviewerCOI, COIOverride, COIType

logger = logging.getLogger(__name__)

# Review statuses that count as having reviewed the host organization
REVIEWED_STATUSES = [ReviewStatus.REPORT_DRAFTING, ReviewStatus.REPORT_REVIEW, ReviewStatus.COMPLETED]


def _auto_conflict(coi_type: str, start_date=None) -> COIConflict:
    config = COI_TYPE_CONFIG[coi_type]
    return COIConflict(
        coi_type=coi_type,
        severity=config.default_severity,
        reason_en=config.reason.en,
        reason_fr=config.reason.fr,
        is_auto_detected=True,
        start_date=start_date,
    )


def _recent_review_conflict(user: User, org_id: UUID, review=None) -> Optional[COIConflict]:
    since = timezone.now().date() - timedelta(days=365 * RECENT_REVIEW_COOLDOWN_YEARS)
    memberships = ReviewTeamMember.objects.filter(
        user=user,
        review__host_org_id=org_id,
        review__status__in=REVIEWED_STATUSES,
        review__actual_end_date__gte=since,
    ).exclude(invitation_status__in=[InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN])
    if review is not None:
        memberships = memberships.exclude(review=review)
    latest = memberships.order_by('-review__actual_end_date').values_list('review__actual_end_date', flat=True).first()
    return _auto_conflict(COIType.RECENT_REVIEW, latest) if latest else None


def _active_override(profile: ReviewerProfile, org_id: UUID, review=None) -> Optional[COIOverride]:
    overrides = profile.coi_overrides.filter(org_id=org_id, is_revoked=False).filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=timezone.now())
    )
    if review is not None:
        overrides = overrides.filter(Q(review__isnull=True) | Q(review=review))
    else:
        overrides = overrides.filter(review__isnull=True)
    return overrides.first()


def check_reviewer_coi(user: User, org_id: UUID, review=None) -> COICheckResult:
    """
    Every conflict `user` has with organization `org_id`, plus the
    override that applies to them, if any. Passing `review` lets
    review-specific overrides count and ignores the review itself when
    looking for recent reviews.
    """
    result = COICheckResult(user_id=user.id, org_id=org_id)

    if user.org_id and user.org_id == org_id:
        result.conflicts.append(_auto_conflict(COIType.HOME_ORGANIZATION))
    recent = _recent_review_conflict(user, org_id, review)
    if recent:
        result.conflicts.append(recent)

    profile = ReviewerProfile.objects.filter(user=user).first()
    if profile is None:
        return result

    today = timezone.now().date()
    declared = profile.conflicts.filter(org_id=org_id, is_active=True).filter(
        Q(end_date__isnull=True) | Q(end_date__gte=today)
    )
    for coi in declared:
        result.conflicts.append(COIConflict(
            coi_type=coi.coi_type,
            severity=coi.severity,
            reason_en=coi.reason_en,
            reason_fr=coi.reason_fr,
            is_auto_detected=coi.is_auto_detected,
            coi_id=coi.id,
            start_date=coi.start_date,
        ))

    override = _active_override(profile, org_id, review)
    if override:
        result.active_override = COIOverrideInfo(
            id=override.id,
            justification=override.justification,
            approved_by_id=override.approved_by_id,
            approved_at=override.approved_at,
            expires_at=override.expires_at,
        )
    return result


def _eligibility_status(check: COICheckResult) -> str:
    if check.has_hard_block:
        return "blocked"
    if check.can_proceed_with_override:
        return "override_active"
    if check.has_soft_warning:
        return "warning"
    return "eligible"


def check_team_coi(users: Iterable[User], org_id: UUID, review=None) -> TeamCOICheckResult:
    reviewers: List[ReviewerEligibility] = []
    for user in users:
        check = check_reviewer_coi(user, org_id, review)
        reviewers.append(ReviewerEligibility(
            user_id=user.id,
            reviewer_name=user.get_full_name() or user.email,
            status=_eligibility_status(check),
            check=check,
        ))

    summary = {status: 0 for status in ("eligible", "warning", "override_active", "blocked")}
    for reviewer in reviewers:
        summary[reviewer.status] += 1
    return TeamCOICheckResult(
        org_id=org_id,
        reviewers=reviewers,
        summary=summary,
        blocked_user_ids=[r.user_id for r in reviewers if r.status == "blocked"],
        warning_user_ids=[r.user_id for r in reviewers if r.status == "warning"],
    )


def ensure_assignable(user: User, org_id: UUID, review=None) -> COICheckResult:
    """Raise ValueError unless `user` may be assigned to review `org_id`."""
    check = check_reviewer_coi(user, org_id, review)
    if check.has_hard_block:
        raise ValueError(f"Conflict of interest: {check.hard_blocks[0].reason_en}")
    if not check.can_assign:
        raise ValueError(f"Conflict of interest requires an approved override: {check.soft_warnings[0].reason_en}")
    return check


# =============================================================================
# Declarations and overrides
# =============================================================================

def declare_conflict(
    profile: ReviewerProfile,
    org_id: UUID,
    coi_type: str,
    declared_by: User,
    reason_en: str = "",
    reason_fr: str = "",
    start_date=None,
    end_date=None,
) -> ReviewerCOI:
    if coi_type not in DECLARABLE_COI_TYPES:
        raise ValueError(f"Conflict type {coi_type} cannot be declared")
    if start_date and end_date and end_date < start_date:
        raise ValueError("Conflict end date cannot be before the start date")

    config = COI_TYPE_CONFIG[coi_type]
    coi = ReviewerCOI.objects.create(
        profile=profile,
        org_id=org_id,
        coi_type=coi_type,
        severity=config.default_severity,
        reason_en=reason_en or config.reason.en,
        reason_fr=reason_fr or config.reason.fr,
        start_date=start_date,
        end_date=end_date,
        declared_by=declared_by,
    )
    log_action(
        org_id=org_id,
        action=AuditAction.DECLARE_COI,
        target_type="ReviewerProfile",
        target_id=profile.id,
        target_label=str(profile.user),
        performed_by=declared_by,
        context={"coi_type": coi_type, "severity": coi.severity},
    )
    logger.info(f"{coi_type} conflict declared for reviewer {profile.user_id} with org {org_id}")
    return coi


def withdraw_conflict(coi: ReviewerCOI, performed_by: User) -> ReviewerCOI:
    if coi.is_auto_detected:
        raise ValueError("Auto-detected conflicts cannot be withdrawn")
    coi.is_active = False
    coi.save(update_fields=['is_active'])
    log_action(
        org_id=coi.org_id,
        action=AuditAction.DECLARE_COI,
        target_type="ReviewerProfile",
        target_id=coi.profile_id,
        target_label=str(coi.profile.user),
        performed_by=performed_by,
        context={"coi_type": coi.coi_type, "withdrawn": True},
    )
    return coi


def grant_override(
    profile: ReviewerProfile,
    org_id: UUID,
    justification: str,
    approved_by: User,
    review=None,
    expires_at=None,
) -> COIOverride:
    """
    Allow assignment despite soft conflicts. Hard blocks cannot be
    overridden, and there must be something to override.
    """
    if not justification.strip():
        raise ValueError("An override requires a justification")
    if expires_at and expires_at <= timezone.now():
        raise ValueError("Override expiry must be in the future")

    check = check_reviewer_coi(profile.user, org_id, review)
    if check.has_hard_block:
        raise ValueError("Hard conflicts of interest cannot be overridden")
    if not check.has_soft_warning:
        raise ValueError("Reviewer has no conflict of interest with this organization")

    override = COIOverride.objects.create(
        profile=profile,
        org_id=org_id,
        review=review,
        justification=justification.strip(),
        approved_by=approved_by,
        expires_at=expires_at,
    )
    log_action(
        org_id=org_id,
        action=AuditAction.GRANT_COI_OVERRIDE,
        target_type="ReviewerProfile",
        target_id=profile.id,
        target_label=str(profile.user),
        performed_by=approved_by,
        context={
            "review_id": str(review.id) if review else None,
            "conflicts": [c.coi_type for c in check.soft_warnings],
        },
    )
    logger.info(f"COI override granted for reviewer {profile.user_id} with org {org_id}")
    return override


def revoke_override(override: COIOverride, performed_by: User) -> COIOverride:
    if override.is_revoked:
        raise ValueError("Override is already revoked")
    override.is_revoked = True
    override.revoked_at = timezone.now()
    override.save(update_fields=['is_revoked', 'revoked_at'])
    log_action(
        org_id=override.org_id,
        action=AuditAction.REVOKE_COI_OVERRIDE,
        target_type="ReviewerProfile",
        target_id=override.profile_id,
        target_label=str(override.profile.user),
        performed_by=performed_by,
        context={"override_id": str(override.id)},
    )
    return override
