from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.core.task_service import TaskService
from apps.identity.decorators import require_auth, require_permission
from apps.identity.permissions import Permissions, ADMIN_ROLES, get_user_permissions, is_programme_user
from apps.reviews.services import visible_reviews
from .constants import get_allowed_next_statuses
from .models import CAPMilestone
from .schemas import (
    FindingOut, CAPOut, MilestoneOut,
    FindingIn, FindingUpdateIn, FindingStatusIn, CAPIn, CAPUpdateIn, CAPTransitionIn,
    MilestoneIn, MilestoneStatusIn,
    FindingDetailOut, CAPDetailOut, CAPDeadlineOut, CAPStatisticsOut, TaskQueuedOut,
)
from . import cap_deadline_service, services

router = Router(tags=["Findings"])


def _get_finding(request: HttpRequest, finding_id: UUID):
    user = require_permission(request, Permissions.FINDINGS)
    finding = get_object_or_404(services.visible_findings(user), id=finding_id)
    return user, finding


def _get_cap(request: HttpRequest, cap_id: UUID):
    user = require_permission(request, Permissions.CAPS)
    cap = get_object_or_404(services.visible_caps(user), id=cap_id)
    return user, cap


def _scoped_org(user, org_id: Optional[UUID]) -> Optional[UUID]:
    """Programme users may look across organizations; everyone else sees their own."""
    return org_id if is_programme_user(user) else user.org_id


def _cap_detail(user, cap):
    tracked = cap_deadline_service.with_deadline_info(cap)
    return {
        'cap': cap,
        'milestones': list(cap.milestones.all()),
        'deadline_info': tracked.deadline_info,
        'milestone_progress': tracked.milestone_progress,
        'allowed_statuses': [
            s for s in get_allowed_next_statuses(cap.status) if services.can_transition_cap(user, cap, s)
        ],
    }


# =============================================================================
# Corrective action plans
# =============================================================================

@router.get("/caps", response=List[CAPOut], auth=None)
def list_caps(request: HttpRequest, status: Optional[str] = None, org_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.CAPS)
    qs = services.visible_caps(user)
    if status:
        qs = qs.filter(status=status)
    if org_id:
        qs = qs.filter(finding__org_id=org_id)
    return qs


@router.get("/caps/deadlines", response=List[CAPDeadlineOut], auth=None)
def list_cap_deadlines(
    request: HttpRequest,
    org_id: Optional[UUID] = None,
    overdue_only: bool = False,
    include_completed: bool = False,
):
    user = require_permission(request, Permissions.CAPS)
    return cap_deadline_service.get_caps_with_deadline_info(
        org_id=_scoped_org(user, org_id),
        include_completed=include_completed,
        overdue_only=overdue_only,
    )


@router.get("/caps/statistics", response=CAPStatisticsOut, auth=None)
def cap_statistics(request: HttpRequest, org_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.CAPS)
    return cap_deadline_service.get_cap_statistics(org_id=_scoped_org(user, org_id))


@router.post("/caps/escalations", response={202: TaskQueuedOut}, auth=None)
def trigger_escalations(request: HttpRequest, org_id: Optional[UUID] = None):
    user = require_auth(request)
    if not (user.is_superuser or user.role in ADMIN_ROLES):
        raise HttpError(403, "Permission denied: Only programme administrators can run escalations")
    return 202, {'task_id': TaskService.process_cap_escalations(org_id=org_id)}


@router.get("/caps/{cap_id}", response=CAPDetailOut, auth=None)
def get_cap(request: HttpRequest, cap_id: UUID):
    user, cap = _get_cap(request, cap_id)
    return _cap_detail(user, cap)


@router.patch("/caps/{cap_id}", response=CAPOut, auth=None)
def update_cap(request: HttpRequest, cap_id: UUID, payload: CAPUpdateIn):
    user, cap = _get_cap(request, cap_id)
    if not services.can_manage_cap(user, cap.finding):
        raise HttpError(403, "Permission denied: Cannot edit this CAP")
    try:
        return services.update_cap(cap, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/caps/{cap_id}/transition", response=CAPDetailOut, auth=None)
def transition_cap(request: HttpRequest, cap_id: UUID, payload: CAPTransitionIn):
    user, cap = _get_cap(request, cap_id)
    if not services.can_transition_cap(user, cap, payload.status):
        raise HttpError(403, f"Permission denied: Cannot move CAP to {payload.status}")
    try:
        cap = services.transition_cap(cap, payload.status, user, notes=payload.notes, reason=payload.reason)
    except ValueError as e:
        raise HttpError(400, str(e))
    return _cap_detail(user, cap)


@router.post("/caps/{cap_id}/milestones", response={201: MilestoneOut}, auth=None)
def add_milestone(request: HttpRequest, cap_id: UUID, payload: MilestoneIn):
    user, cap = _get_cap(request, cap_id)
    if not services.can_manage_cap(user, cap.finding):
        raise HttpError(403, "Permission denied: Cannot edit this CAP")
    try:
        return 201, services.add_milestone(cap, payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.patch("/caps/{cap_id}/milestones/{milestone_id}", response=MilestoneOut, auth=None)
def update_milestone(request: HttpRequest, cap_id: UUID, milestone_id: UUID, payload: MilestoneStatusIn):
    user, cap = _get_cap(request, cap_id)
    if not services.can_manage_cap(user, cap.finding):
        raise HttpError(403, "Permission denied: Cannot edit this CAP")
    milestone = get_object_or_404(CAPMilestone, id=milestone_id, cap=cap)
    try:
        return services.update_milestone_status(milestone, payload.status)
    except ValueError as e:
        raise HttpError(400, str(e))


# =============================================================================
# Findings
# =============================================================================

@router.get("", response=List[FindingOut], auth=None)
def list_findings(
    request: HttpRequest,
    review_id: Optional[UUID] = None,
    status: Optional[str] = None,
    severity: Optional[str] = None,
):
    user = require_permission(request, Permissions.FINDINGS)
    qs = services.visible_findings(user)
    if review_id:
        qs = qs.filter(review_id=review_id)
    if status:
        qs = qs.filter(status=status)
    if severity:
        qs = qs.filter(severity=severity)
    return qs


@router.post("", response={201: FindingOut}, auth=None)
def create_finding(request: HttpRequest, payload: FindingIn):
    user = require_permission(request, Permissions.FINDINGS_CREATE)
    review = get_object_or_404(visible_reviews(user), id=payload.review_id)
    if not services.can_record_findings(user, review):
        raise HttpError(403, "Permission denied: Only confirmed team members can record findings")
    try:
        return 201, services.create_finding(review, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/{finding_id}", response=FindingDetailOut, auth=None)
def get_finding(request: HttpRequest, finding_id: UUID):
    user, finding = _get_finding(request, finding_id)
    return {
        'finding': finding,
        'cap': getattr(finding, 'cap', None),
        'allowed_statuses': services.allowed_finding_statuses(user, finding),
    }


@router.patch("/{finding_id}", response=FindingOut, auth=None)
def update_finding(request: HttpRequest, finding_id: UUID, payload: FindingUpdateIn):
    user, finding = _get_finding(request, finding_id)
    if not services.can_edit_finding(user, finding):
        raise HttpError(403, "Permission denied: Cannot edit this finding")
    try:
        return services.update_finding(finding, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/{finding_id}/status", response=FindingOut, auth=None)
def update_finding_status(request: HttpRequest, finding_id: UUID, payload: FindingStatusIn):
    user, finding = _get_finding(request, finding_id)
    try:
        return services.update_finding_status(finding, payload.status, user, comment=payload.comment)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/{finding_id}/cap", response={201: CAPOut}, auth=None)
def create_cap(request: HttpRequest, finding_id: UUID, payload: CAPIn):
    user, finding = _get_finding(request, finding_id)
    if Permissions.CAPS_CREATE not in get_user_permissions(user) or not services.can_manage_cap(user, finding):
        raise HttpError(403, "You can only create CAPs for your organization's findings")
    try:
        return 201, services.create_cap(finding, payload, user)
    except ValueError as e:
        raise HttpError(400, str(e))
