"""
Core services for Reviews app.
Handles review requests, scheduling, team composition and the fieldwork checklist.
Status changes go through state_machine.execute_transition.
"""
import logging
from typing import Dict, List, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.core.references import next_sequence, create_with_reference
from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User, UserRole
from apps.identity.permissions import (
    Permissions, ADMIN_ROLES, REVIEWER_ROLES, get_user_permissions, is_programme_user,
)
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType, NotificationPriority
from apps.notifications.services import send_notification, get_programme_recipients, get_review_team_recipients
from apps.organizations.models import Organization
from apps.reviewers.coi import ensure_assignable
from apps.reviewers.models import ReviewerProfile
from .constants import ACTIVE_REVIEW_STATUSES, CLOSED_REVIEW_STATUSES, DEFAULT_CHECKLIST, CHECKLIST_PREREQUISITES
from .dtos import ReviewDTO
from .models import Review, ReviewStatus, ReviewTeamMember, TeamRole, InvitationStatus, FieldworkChecklistItem
from .schemas import ReviewRequestIn, ScheduleIn
from . import state_machine

logger = logging.getLogger(__name__)

REVIEW_MANAGER_ROLES = ADMIN_ROLES + [UserRole.STEERING_COMMITTEE]

REVIEW_REQUESTER_ROLES = REVIEW_MANAGER_ROLES + [UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER]

# The team can only change before fieldwork starts
TEAM_EDITABLE_STATUSES = [ReviewStatus.APPROVED, ReviewStatus.PLANNING, ReviewStatus.SCHEDULED]

INACTIVE_INVITATIONS = [InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN]


# =============================================================================
# DTO Helpers
# =============================================================================

def get_review_dto(review_id: UUID) -> Optional[ReviewDTO]:
    try:
        r = Review.objects.get(id=review_id)
    except Review.DoesNotExist:
        return None
    return ReviewDTO(
        id=r.id,
        reference_number=r.reference_number,
        host_org_id=r.host_org_id,
        status=r.status,
        review_type=r.review_type,
        planned_start_date=r.planned_start_date,
        planned_end_date=r.planned_end_date,
        actual_start_date=r.actual_start_date,
        actual_end_date=r.actual_end_date,
    )


def generate_reference_number(year: Optional[int] = None) -> str:
    """Next PR-{YEAR}-{SEQ} reference, sequence restarting every year."""
    year = year or timezone.now().year
    return next_sequence(Review, f"PR-{year}-")


# =============================================================================
# Access
# =============================================================================

def visible_reviews(user: User) -> QuerySet:
    """Reviews the user may read: all, their organization's, or those they are assigned to."""
    permissions = get_user_permissions(user)
    if user.is_superuser or Permissions.PEER_REVIEWS_ALL in permissions:
        return Review.objects.all()

    scope = Q(pk__in=[])
    if Permissions.PEER_REVIEWS_OWN in permissions and user.org_id:
        scope |= Q(host_org_id=user.org_id)
    if Permissions.PEER_REVIEWS_ASSIGNED in permissions:
        scope |= Q(id__in=ReviewTeamMember.objects.filter(user=user).exclude(
            invitation_status__in=INACTIVE_INVITATIONS
        ).values('review_id'))
    return Review.objects.filter(scope)


def list_reviews_for_user(user: User, status: Optional[str] = None, host_org_id: Optional[UUID] = None) -> QuerySet:
    qs = visible_reviews(user)
    if status:
        qs = qs.filter(status=status)
    if host_org_id:
        qs = qs.filter(host_org_id=host_org_id)
    return qs


def can_access_review(user: User, review: Review) -> bool:
    return visible_reviews(user).filter(id=review.id).exists()


def is_team_member(review: Review, user: User, confirmed_only: bool = False) -> bool:
    members = review.team_members.filter(user=user).exclude(invitation_status__in=INACTIVE_INVITATIONS)
    if confirmed_only:
        members = members.filter(invitation_status=InvitationStatus.CONFIRMED)
    return members.exists()


def can_schedule_review(user: User) -> bool:
    return user.is_superuser or Permissions.PEER_REVIEWS_SCHEDULE in get_user_permissions(user)


# =============================================================================
# Requests & scheduling
# =============================================================================

def _check_dates(start, end, label: str) -> None:
    if start and end and end < start:
        raise ValueError(f"{label} end date cannot be before the start date")


def request_review(payload: ReviewRequestIn, user: User) -> Review:
    """
    Request a peer review for the host organization.

    Raises PermissionError for roles that cannot request reviews and
    ValueError for business-rule violations.
    """
    if not (user.is_superuser or user.role in REVIEW_REQUESTER_ROLES):
        raise PermissionError("Your role cannot request peer reviews")

    host_org_id = payload.host_org_id if (payload.host_org_id and is_programme_user(user)) else user.org_id
    if not host_org_id:
        raise ValueError("A host organization is required")
    org = Organization.objects.filter(id=host_org_id).first()
    if org is None:
        raise ValueError("Organization not found")
    if not org.is_active:
        raise ValueError("Cannot request a review for an inactive organization")

    active = Review.objects.filter(host_org_id=host_org_id, status__in=ACTIVE_REVIEW_STATUSES).first()
    if active:
        raise ValueError(f"Organization already has an active review ({active.reference_number})")

    _check_dates(payload.requested_start_date, payload.requested_end_date, "Requested")

    from apps.assessments.models import Assessment, AssessmentStatus

    assessments = list(Assessment.objects.filter(id__in=payload.assessment_ids, org_id=host_org_id))
    if len(assessments) != len(set(payload.assessment_ids)):
        raise ValueError("One or more assessments were not found for this organization")
    not_submitted = [a.title for a in assessments if a.status != AssessmentStatus.SUBMITTED]
    if not_submitted:
        raise ValueError(f"Assessments must be submitted before review: {', '.join(not_submitted)}")

    with transaction.atomic():
        review = create_with_reference(
            Review,
            generate_reference_number,
            host_org_id=host_org_id,
            review_type=payload.review_type,
            location_type=payload.location_type,
            language_preference=payload.language_preference,
            requested_start_date=payload.requested_start_date,
            requested_end_date=payload.requested_end_date,
            areas_in_scope=payload.areas_in_scope,
            objectives=payload.objectives,
            special_requirements=payload.special_requirements,
            primary_contact_name=payload.primary_contact_name,
            primary_contact_email=payload.primary_contact_email,
            primary_contact_phone=payload.primary_contact_phone,
            requested_by=user,
        )
        review.assessments.set(assessments)

    log_action(
        org_id=host_org_id,
        action=AuditAction.REQUEST_REVIEW,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=user,
        context={"review_type": review.review_type, "assessment_ids": [str(a.id) for a in assessments]},
    )
    send_notification(
        get_programme_recipients([UserRole.PROGRAMME_COORDINATOR, UserRole.STEERING_COMMITTEE]),
        NotificationPayload(
            type=NotificationType.REVIEW_REQUESTED,
            title_en="Peer review requested",
            title_fr="Revue par les pairs demandée",
            message_en=f"{org.name_en} requested peer review {review.reference_number}.",
            message_fr=f"{org.name_fr} a demandé la revue par les pairs {review.reference_number}.",
            entity_type="Review",
            entity_id=str(review.id),
            action_url=f"/reviews/{review.id}",
        ),
    )
    logger.info(f"Review {review.reference_number} requested for org {host_org_id} by {user.id}")
    return review


def update_schedule(review: Review, payload: ScheduleIn, user: User) -> Review:
    if review.status in CLOSED_REVIEW_STATUSES:
        raise ValueError("Cannot reschedule a closed review")

    changes = payload.dict(exclude_unset=True)
    for field, value in changes.items():
        setattr(review, field, value)
    _check_dates(review.planned_start_date, review.planned_end_date, "Planned")
    _check_dates(review.actual_start_date, review.actual_end_date, "Actual")
    review.save()

    log_action(
        org_id=review.host_org_id,
        action=AuditAction.UPDATE_REVIEW_SCHEDULE,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=user,
        context={field: value.isoformat() if value else None for field, value in changes.items()},
    )

    if review.planned_start_date and changes.keys() & {'planned_start_date', 'planned_end_date'}:
        dates = f"{review.planned_start_date.isoformat()} - {review.planned_end_date.isoformat() if review.planned_end_date else '?'}"
        send_notification(
            get_review_team_recipients(review.id),
            NotificationPayload(
                type=NotificationType.REVIEW_SCHEDULED,
                title_en=f"Review {review.reference_number} dates updated",
                title_fr=f"Dates de la revue {review.reference_number} mises à jour",
                message_en=f"Planned dates: {dates}.",
                message_fr=f"Dates prévues : {dates}.",
                entity_type="Review",
                entity_id=str(review.id),
                action_url=f"/reviews/{review.id}",
            ),
        )
    return review


# =============================================================================
# Team
# =============================================================================

def active_team(review: Review) -> QuerySet:
    return review.team_members.exclude(invitation_status__in=INACTIVE_INVITATIONS).select_related('user')


def assign_team_member(
    review: Review,
    user_id: UUID,
    role: str,
    performed_by: User,
    assigned_areas: Optional[List[str]] = None,
) -> ReviewTeamMember:
    """
    Invite a reviewer onto the team. The first assignment on an approved
    review moves it into PLANNING.

    Reviewers with a hard conflict of interest with the host are refused,
    as are those with a soft conflict and no override. Lead Reviewers
    must be lead qualified on their reviewer profile.
    """
    if role not in TeamRole.values:
        raise ValueError(f"Unknown team role: {role}")
    if review.status not in TEAM_EDITABLE_STATUSES:
        raise ValueError(f"Team cannot be changed while the review is {review.status}")

    member_user = User.objects.filter(id=user_id, is_active=True).first()
    if member_user is None:
        raise ValueError("User not found")
    if member_user.role not in REVIEWER_ROLES:
        raise ValueError("User is not a reviewer")
    if member_user.org_id and member_user.org_id == review.host_org_id:
        raise ValueError("Reviewer cannot review their own organization")
    if review.team_members.filter(user=member_user).exists():
        raise ValueError("Reviewer is already assigned to this review")
    coi_check = ensure_assignable(member_user, review.host_org_id, review)
    if role == TeamRole.LEAD_REVIEWER:
        profile = ReviewerProfile.objects.filter(user=member_user).first()
        if profile is None or not profile.is_lead_qualified:
            raise ValueError("Reviewer is not qualified as Lead Reviewer")
        if active_team(review).filter(role=TeamRole.LEAD_REVIEWER).exists():
            raise ValueError("Review already has a Lead Reviewer")

    with transaction.atomic():
        member = ReviewTeamMember.objects.create(
            review=review,
            user=member_user,
            role=role,
            assigned_areas=assigned_areas or [],
            invitation_status=InvitationStatus.INVITED,
            invited_at=timezone.now(),
        )

        if review.status == ReviewStatus.APPROVED:
            result = state_machine.execute_transition(
                review, ReviewStatus.PLANNING, performed_by, notes="Team assignment initiated"
            )
            if not result.success:
                logger.warning(f"Review {review.reference_number} stayed APPROVED: {result.errors}")

    log_action(
        org_id=review.host_org_id,
        action=AuditAction.ASSIGN_TEAM_MEMBER,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=performed_by,
        context={
            "user_id": str(member_user.id),
            "role": role,
            "coi_override_id": str(coi_check.active_override.id) if coi_check.active_override else None,
        },
    )
    send_notification(
        [member_user],
        NotificationPayload(
            type=NotificationType.TEAM_INVITATION,
            title_en=f"Invitation to review {review.reference_number}",
            title_fr=f"Invitation à la revue {review.reference_number}",
            message_en=f"You have been invited to join peer review {review.reference_number} as {TeamRole(role).label}.",
            message_fr=f"Vous êtes invité(e) à rejoindre la revue par les pairs {review.reference_number}.",
            entity_type="Review",
            entity_id=str(review.id),
            action_url=f"/reviews/{review.id}",
            action_label_en="Respond",
            action_label_fr="Répondre",
            priority=NotificationPriority.HIGH,
        ),
    )
    logger.info(f"User {member_user.id} invited to review {review.reference_number} as {role}")
    return member


def respond_to_invitation(member: ReviewTeamMember, accept: bool, decline_reason: str = "") -> ReviewTeamMember:
    if member.invitation_status not in (InvitationStatus.PENDING, InvitationStatus.INVITED):
        raise ValueError("Invitation has already been answered")

    now = timezone.now()
    if accept:
        member.invitation_status = InvitationStatus.CONFIRMED
        member.confirmed_at = now
    else:
        member.invitation_status = InvitationStatus.DECLINED
        member.declined_at = now
        member.decline_reason = decline_reason
    member.save()

    review = member.review
    log_action(
        org_id=review.host_org_id,
        action=AuditAction.RESPOND_TEAM_INVITATION,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=member.user,
        context={"status": member.invitation_status, "decline_reason": decline_reason},
    )
    answer_en, answer_fr = ("accepted", "accepté") if accept else ("declined", "décliné")
    send_notification(
        get_programme_recipients([UserRole.PROGRAMME_COORDINATOR]),
        NotificationPayload(
            type=NotificationType.TEAM_INVITATION_RESPONSE,
            title_en=f"Invitation {answer_en}",
            title_fr=f"Invitation {answer_fr}e",
            message_en=f"{member.user} {answer_en} the invitation to review {review.reference_number}.",
            message_fr=f"{member.user} a {answer_fr} l'invitation à la revue {review.reference_number}.",
            entity_type="Review",
            entity_id=str(review.id),
            action_url=f"/reviews/{review.id}",
            data={"accepted": accept, "decline_reason": decline_reason},
        ),
    )
    return member


def remove_team_member(member: ReviewTeamMember, performed_by: User) -> None:
    review = member.review
    if review.status not in TEAM_EDITABLE_STATUSES:
        raise ValueError(f"Team cannot be changed while the review is {review.status}")

    context = {"user_id": str(member.user_id), "role": member.role}
    member.delete()
    log_action(
        org_id=review.host_org_id,
        action=AuditAction.REMOVE_TEAM_MEMBER,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=performed_by,
        context=context,
    )


# =============================================================================
# Fieldwork checklist
# =============================================================================

def initialize_checklist(review: Review) -> List[FieldworkChecklistItem]:
    """Create the default checklist items that are missing. Safe to call repeatedly."""
    existing = set(review.checklist_items.values_list('item_code', flat=True))
    FieldworkChecklistItem.objects.bulk_create([
        FieldworkChecklistItem(
            review=review,
            phase=phase,
            item_code=code,
            sort_order=index,
            label_en=label.en,
            label_fr=label.fr,
        )
        for index, (phase, code, label) in enumerate(DEFAULT_CHECKLIST)
        if code not in existing
    ])
    return list(review.checklist_items.all())


def update_checklist_item(
    item: FieldworkChecklistItem,
    user: User,
    is_completed: bool,
    notes: Optional[str] = None,
) -> FieldworkChecklistItem:
    if item.review.status in CLOSED_REVIEW_STATUSES:
        raise ValueError("Checklist of a closed review cannot be changed")

    if is_completed and not item.is_completed:
        required = CHECKLIST_PREREQUISITES.get(item.item_code, [])
        missing = list(
            item.review.checklist_items.filter(item_code__in=required, is_completed=False)
            .values_list('item_code', flat=True)
        )
        if missing:
            raise ValueError(f"Complete these items first: {', '.join(missing)}")
        item.completed_at = timezone.now()
        item.completed_by = user
    elif not is_completed:
        item.completed_at = None
        item.completed_by = None

    item.is_completed = is_completed
    if notes is not None:
        item.notes = notes
    item.save()
    return item


def get_checklist_summary(review: Review) -> Dict:
    items = initialize_checklist(review)
    completed = sum(1 for i in items if i.is_completed)
    by_phase: Dict[str, Dict[str, int]] = {}
    for item in items:
        phase = by_phase.setdefault(item.phase, {'total': 0, 'completed': 0})
        phase['total'] += 1
        phase['completed'] += int(item.is_completed)
    return {
        'items': items,
        'total': len(items),
        'completed': completed,
        'percentage': round(completed / len(items) * 100) if items else 0,
        'by_phase': by_phase,
    }
