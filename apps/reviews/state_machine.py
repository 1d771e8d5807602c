"""
Review status state machine.

Every status change must match an entry in TRANSITIONS. Each entry names
the roles allowed to perform it and a validator that inspects the review
and returns blocking errors plus non-blocking warnings.

Usage:
    from apps.reviews import state_machine

    check = state_machine.can_transition(review, ReviewStatus.SCHEDULED, request.user)
    result = state_machine.execute_transition(review, ReviewStatus.SCHEDULED, request.user)
"""
import logging
from datetime import date
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from django.db import transaction

from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User, UserRole
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType
from apps.notifications.services import (
    send_notification, get_organization_recipients, get_review_team_recipients,
)
from .constants import STATUS_LABELS, STATUS_DESCRIPTIONS, STATUS_ORDER, STATUS_PHASE
from .dtos import TransitionValidation, TransitionCondition, TransitionCheck, AvailableTransition, TransitionResult
from .models import Review, ReviewStatus, TeamRole, InvitationStatus

logger = logging.getLogger(__name__)

MIN_TEAM_SIZE = 2
RECOMMENDED_TEAM_SIZE = 3

_ADMINS = [UserRole.SUPER_ADMIN, UserRole.SYSTEM_ADMIN]
_DECIDERS = _ADMINS + [UserRole.STEERING_COMMITTEE, UserRole.PROGRAMME_COORDINATOR]
_PLANNERS = _ADMINS + [UserRole.PROGRAMME_COORDINATOR]
_FIELD = _PLANNERS + [UserRole.LEAD_REVIEWER]


@dataclass(frozen=True)
class StatusTransition:
    from_status: str
    to_status: str
    required_conditions: List[str]
    allowed_roles: List[str]
    validate: Callable[[Review], TransitionValidation] = field(default=lambda review: TransitionValidation(True))


# =============================================================================
# Validators
# =============================================================================

def _active_members(review: Review) -> list:
    return list(
        review.team_members.exclude(
            invitation_status__in=[InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN]
        )
    )


def _validate_schedule(review: Review) -> TransitionValidation:
    result = TransitionValidation(valid=True)
    members = _active_members(review)

    if not any(m.role == TeamRole.LEAD_REVIEWER for m in members):
        result.errors.append("Lead Reviewer must be assigned")
    if len(members) < MIN_TEAM_SIZE:
        result.errors.append(f"Minimum {MIN_TEAM_SIZE} team members required")
    if not review.planned_start_date:
        result.errors.append("Planned start date must be set")
    if not review.planned_end_date:
        result.errors.append("Planned end date must be set")

    if len(members) < RECOMMENDED_TEAM_SIZE:
        result.warnings.append(f"Recommended team size is {RECOMMENDED_TEAM_SIZE}+ reviewers")
    unconfirmed = sum(1 for m in members if not m.is_confirmed)
    if unconfirmed:
        result.warnings.append(f"{unconfirmed} team members have not confirmed")

    result.valid = not result.errors
    return result


def _validate_start(review: Review) -> TransitionValidation:
    result = TransitionValidation(valid=True)
    members = _active_members(review)

    if not review.actual_start_date:
        result.errors.append("Actual start date must be set")

    lead = next((m for m in members if m.role == TeamRole.LEAD_REVIEWER), None)
    if lead is None:
        result.errors.append("Lead Reviewer must be assigned")
    elif not lead.is_confirmed:
        result.errors.append("Lead Reviewer must confirm participation")

    if sum(1 for m in members if m.is_confirmed) < MIN_TEAM_SIZE:
        result.errors.append(f"At least {MIN_TEAM_SIZE} team members must confirm participation")

    result.valid = not result.errors
    return result


def _validate_fieldwork_end(review: Review) -> TransitionValidation:
    from apps.findings.models import Finding

    result = TransitionValidation(valid=True)
    if not review.actual_end_date:
        result.errors.append("Actual end date must be set")
    if not Finding.objects.filter(review=review).exists():
        result.warnings.append("No findings have been entered yet")
    result.valid = not result.errors
    return result


def _validate_report_submission(review: Review) -> TransitionValidation:
    from apps.findings.models import Finding, FindingType
    from apps.reports.models import ReviewReport

    result = TransitionValidation(valid=True)
    findings = Finding.objects.filter(review=review)
    if not findings.exists():
        result.errors.append("At least one finding must be entered")

    missing_caps = findings.filter(
        finding_type=FindingType.NON_CONFORMITY, cap_required=True, cap__isnull=True,
    ).count()
    if missing_caps:
        result.warnings.append(f"{missing_caps} non-conformities are missing CAPs")

    if not ReviewReport.objects.filter(review=review).exists():
        result.warnings.append("Draft report has not been generated")

    result.valid = not result.errors
    return result


def _validate_completion(review: Review) -> TransitionValidation:
    from apps.findings.models import Finding, FindingType, FindingSeverity, CAPStatus
    from apps.reports.models import ReviewReport, ReportStatus

    result = TransitionValidation(valid=True)
    report = ReviewReport.objects.filter(review=review).first()
    if report is None:
        result.errors.append("Report must be generated")
    elif report.status not in (ReportStatus.FINAL, ReportStatus.PUBLISHED):
        result.warnings.append("Report has not been finalized")

    serious = Finding.objects.filter(
        review=review,
        finding_type=FindingType.NON_CONFORMITY,
        severity__in=[FindingSeverity.CRITICAL, FindingSeverity.MAJOR],
        cap_required=True,
    )
    missing = serious.filter(cap__isnull=True).count()
    if missing:
        result.errors.append(f"{missing} critical/major findings are missing CAPs")
    drafts = serious.filter(cap__status=CAPStatus.DRAFT).count()
    if drafts:
        result.errors.append(f"{drafts} CAPs are still in draft status")

    result.valid = not result.errors
    return result


# =============================================================================
# Transition table
# =============================================================================

TRANSITIONS: List[StatusTransition] = [
    StatusTransition(
        ReviewStatus.REQUESTED, ReviewStatus.APPROVED,
        ["Steering Committee or Coordinator approval"], _DECIDERS,
    ),
    StatusTransition(
        ReviewStatus.REQUESTED, ReviewStatus.CANCELLED,
        ["Rejection reason provided"], _DECIDERS,
    ),
    StatusTransition(
        ReviewStatus.APPROVED, ReviewStatus.PLANNING,
        ["Team assignment initiated"], _PLANNERS,
    ),
    StatusTransition(
        ReviewStatus.PLANNING, ReviewStatus.SCHEDULED,
        ["Lead Reviewer assigned", "Minimum 2 team members", "Planned start date set", "Planned end date set"],
        _PLANNERS, _validate_schedule,
    ),
    StatusTransition(
        ReviewStatus.SCHEDULED, ReviewStatus.IN_PROGRESS,
        ["Actual start date set", "Lead Reviewer confirmed", "At least 2 confirmed team members"],
        _FIELD, _validate_start,
    ),
    StatusTransition(
        ReviewStatus.IN_PROGRESS, ReviewStatus.REPORT_DRAFTING,
        ["Fieldwork completed", "Actual end date set"],
        _FIELD, _validate_fieldwork_end,
    ),
    StatusTransition(
        ReviewStatus.REPORT_DRAFTING, ReviewStatus.REPORT_REVIEW,
        ["At least one finding entered", "Draft report available"],
        _FIELD, _validate_report_submission,
    ),
    StatusTransition(
        ReviewStatus.REPORT_REVIEW, ReviewStatus.COMPLETED,
        ["Report finalized", "All critical CAPs submitted"],
        _DECIDERS, _validate_completion,
    ),
] + [
    StatusTransition(status, ReviewStatus.CANCELLED, ["Cancellation reason provided"], _DECIDERS)
    for status in (ReviewStatus.APPROVED, ReviewStatus.PLANNING, ReviewStatus.SCHEDULED)
]


def _find(from_status: str, to_status: str) -> Optional[StatusTransition]:
    return next((t for t in TRANSITIONS if t.from_status == from_status and t.to_status == to_status), None)


def get_valid_transitions_from(status: str) -> List[str]:
    return [t.to_status for t in TRANSITIONS if t.from_status == status]


def _is_confirmed_lead(review: Review, user: User) -> bool:
    return review.team_members.filter(
        user=user, role=TeamRole.LEAD_REVIEWER, invitation_status=InvitationStatus.CONFIRMED
    ).exists()


def _role_allowed(transition: StatusTransition, review: Review, user: User) -> bool:
    if user.role not in transition.allowed_roles:
        return False
    if user.role == UserRole.LEAD_REVIEWER:
        return _is_confirmed_lead(review, user)
    return True


# Error fragments that mark a required condition as unmet
_CONDITION_ERRORS = {
    "Lead Reviewer assigned": ("Lead Reviewer must be assigned",),
    "Minimum 2 team members": ("Minimum 2 team members required",),
    "Planned start date set": ("Planned start date must be set",),
    "Planned end date set": ("Planned end date must be set",),
    "Actual start date set": ("Actual start date must be set",),
    "Lead Reviewer confirmed": ("Lead Reviewer must",),
    "At least 2 confirmed team members": ("team members must confirm participation",),
    "Actual end date set": ("Actual end date must be set",),
    "At least one finding entered": ("At least one finding must be entered",),
    "Report finalized": ("Report must be generated",),
    "All critical CAPs submitted": ("findings are missing CAPs", "CAPs are still in draft status"),
}


def _conditions(transition: StatusTransition, validation: TransitionValidation) -> List[TransitionCondition]:
    conditions = []
    for label in transition.required_conditions:
        fragments = _CONDITION_ERRORS.get(label, ())
        met = not any(fragment in error for error in validation.errors for fragment in fragments)
        conditions.append(TransitionCondition(label=label, met=met))
    return conditions


def can_transition(review: Review, target: str, user: User) -> TransitionCheck:
    transition = _find(review.status, target)
    if transition is None:
        valid = ", ".join(get_valid_transitions_from(review.status)) or "none"
        return TransitionCheck(
            allowed=False,
            errors=[
                f"Invalid transition: {review.status} → {target}",
                f"Valid transitions from {review.status}: {valid}",
            ],
        )

    if not _role_allowed(transition, review, user):
        return TransitionCheck(
            allowed=False,
            errors=[
                f"Your role ({user.role}) cannot perform this transition",
                f"Required roles: {', '.join(transition.allowed_roles)}",
            ],
        )

    validation = transition.validate(review)
    return TransitionCheck(
        allowed=validation.valid,
        errors=validation.errors,
        warnings=validation.warnings,
        conditions=_conditions(transition, validation),
    )


def get_available_transitions(review: Review, user: User) -> List[AvailableTransition]:
    """Transitions from the current status that `user` may attempt, with their conditions."""
    available = []
    for transition in TRANSITIONS:
        if transition.from_status != review.status or not _role_allowed(transition, review, user):
            continue
        validation = transition.validate(review)
        available.append(AvailableTransition(
            target_status=transition.to_status,
            can_transition=validation.valid,
            conditions=_conditions(transition, validation),
            warnings=validation.warnings,
        ))
    return available


_STATUS_NOTIFICATIONS = {
    ReviewStatus.APPROVED: NotificationType.REVIEW_APPROVED,
    ReviewStatus.SCHEDULED: NotificationType.REVIEW_SCHEDULED,
    ReviewStatus.IN_PROGRESS: NotificationType.REVIEW_STARTED,
    ReviewStatus.COMPLETED: NotificationType.REVIEW_COMPLETED,
}


def _notify_status_change(review: Review, previous: str) -> None:
    notification_type = _STATUS_NOTIFICATIONS.get(review.status, NotificationType.REVIEW_STATUS_CHANGED)
    if review.status == ReviewStatus.CANCELLED and previous == ReviewStatus.REQUESTED:
        notification_type = NotificationType.REVIEW_REJECTED

    label = STATUS_LABELS[review.status]
    recipients = get_organization_recipients(
        review.host_org_id, roles=[UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER, UserRole.QUALITY_MANAGER]
    ) + get_review_team_recipients(review.id)
    send_notification(
        recipients,
        NotificationPayload(
            type=notification_type,
            title_en=f"Review {review.reference_number}: {label.en}",
            title_fr=f"Revue {review.reference_number} : {label.fr}",
            message_en=f"Peer review {review.reference_number} is now {label.en.lower()}.",
            message_fr=f"La revue par les pairs {review.reference_number} est maintenant : {label.fr.lower()}.",
            entity_type="Review",
            entity_id=str(review.id),
            action_url=f"/reviews/{review.id}",
            data={"from": previous, "to": review.status},
        ),
    )


_DATE_STAMPS = {
    ReviewStatus.IN_PROGRESS: 'actual_start_date',
    ReviewStatus.REPORT_DRAFTING: 'actual_end_date',
}


def execute_transition(
    review: Review,
    target: str,
    user: User,
    reason: str = "",
    notes: str = "",
    effective_date: Optional[date] = None,
) -> TransitionResult:
    """
    Validate and apply a status change. Records the cancellation reason,
    writes the audit entry and notifies the host organization and the team.

    `effective_date` fills the actual start or end date of fieldwork when
    the review has none yet. It is applied before validation, so
    `can_transition` and `execute_transition` agree on a review whose
    date is still missing.
    """
    stamped = _DATE_STAMPS.get(target) if effective_date and review.status != target else None
    if stamped and getattr(review, stamped) is None:
        setattr(review, stamped, effective_date)
    else:
        stamped = None

    check = can_transition(review, target, user)
    if not check.allowed:
        if stamped:
            setattr(review, stamped, None)
        return TransitionResult(success=False, errors=check.errors, warnings=check.warnings)

    previous = review.status
    with transaction.atomic():
        review.status = target
        review.phase = STATUS_PHASE[target]
        if target == ReviewStatus.CANCELLED and reason:
            review.cancellation_reason = reason
        review.save()

    log_action(
        org_id=review.host_org_id,
        action=AuditAction.REVIEW_STATUS_CHANGE,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=user,
        context={"from": previous, "to": target, "reason": reason, "notes": notes},
    )
    _notify_status_change(review, previous)
    logger.info(f"Review {review.reference_number} moved {previous} -> {target} by {user.id}")

    return TransitionResult(success=True, review=review, previous_status=previous, warnings=check.warnings)


def get_status_flow(locale: Optional[str] = None) -> List[dict]:
    return [
        {
            'status': status,
            'label': STATUS_LABELS[status].get(locale),
            'description': STATUS_DESCRIPTIONS[status].get(locale),
            'next_statuses': get_valid_transitions_from(status),
        }
        for status in STATUS_ORDER
    ]
