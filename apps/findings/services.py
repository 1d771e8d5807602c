"""
Core services for Findings app.
Handles findings, corrective action plans and their milestones.
"""
import logging
from typing import List, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.core.references import next_sequence, create_with_reference
from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User, UserRole
from apps.identity.permissions import Permissions, ADMIN_ROLES, get_user_permissions
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType, NotificationPriority
from apps.notifications.services import (
    send_notification, get_organization_recipients, get_programme_recipients, get_review_team_recipients,
)
from apps.organizations.services import get_organization_code
from apps.reviews.models import Review, ReviewStatus, ReviewTeamMember, InvitationStatus
from .constants import (
    FINDING_STATUS_TRANSITIONS, FINDING_STATUS_FOR_CAP, SEVERITY_LABELS,
    is_valid_cap_transition, is_valid_finding_transition, requires_cap_by_default, get_suggested_due_date,
)
from .models import (
    Finding, FindingType, FindingStatus, FindingSeverity, CorrectiveActionPlan, CAPStatus, CAPMilestone, MilestoneStatus,
)
from .schemas import FindingIn, FindingUpdateIn, CAPIn, CAPUpdateIn, MilestoneIn

logger = logging.getLogger(__name__)

# Findings are recorded from fieldwork until the report is signed off
FINDING_ENTRY_STATUSES = [ReviewStatus.IN_PROGRESS, ReviewStatus.REPORT_DRAFTING, ReviewStatus.REPORT_REVIEW]

# Host organization roles that own corrective action plans
CAP_OWNER_ROLES = [UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER, UserRole.QUALITY_MANAGER]
HOST_MANAGER_ROLES = CAP_OWNER_ROLES

CAP_REVIEW_ROLES = ADMIN_ROLES + [UserRole.STEERING_COMMITTEE, UserRole.LEAD_REVIEWER]
CAP_VERIFY_ROLES = CAP_REVIEW_ROLES + [UserRole.PEER_REVIEWER]

# Finding statuses each side of the review may set
HOST_FINDING_STATUSES = [FindingStatus.CAP_SUBMITTED, FindingStatus.IN_PROGRESS]
TEAM_FINDING_STATUSES = [
    FindingStatus.CAP_REQUIRED, FindingStatus.CAP_ACCEPTED, FindingStatus.VERIFICATION,
    FindingStatus.CLOSED, FindingStatus.DEFERRED,
]

EDITABLE_CAP_STATUSES = [CAPStatus.DRAFT, CAPStatus.REJECTED]

# The CAP requirement may still change while the finding is in these statuses
UNSTARTED_FINDING_STATUSES = [FindingStatus.OPEN, FindingStatus.CAP_REQUIRED]

REQUIRED_FINDING_FIELDS = {'finding_type', 'severity', 'title_en', 'description_en', 'cap_required'}
REQUIRED_CAP_FIELDS = {'root_cause_en', 'corrective_action_en', 'responsible_person', 'due_date'}


# =============================================================================
# Access
# =============================================================================

def _assigned_review_ids(user: User) -> QuerySet:
    return ReviewTeamMember.objects.filter(user=user).exclude(
        invitation_status__in=[InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN]
    ).values('review_id')


def _is_admin(user: User) -> bool:
    return user.is_superuser or user.role in ADMIN_ROLES


def _is_team_member(user: User, review_id: UUID) -> bool:
    return _assigned_review_ids(user).filter(review_id=review_id).exists()


def visible_findings(user: User) -> QuerySet:
    permissions = get_user_permissions(user)
    if user.is_superuser or Permissions.FINDINGS_ALL in permissions:
        return Finding.objects.all()
    scope = Q(pk__in=[])
    if Permissions.FINDINGS_OWN in permissions and user.org_id:
        scope |= Q(org_id=user.org_id)
    if Permissions.FINDINGS_ASSIGNED in permissions:
        scope |= Q(review_id__in=_assigned_review_ids(user))
    return Finding.objects.filter(scope)


def visible_caps(user: User) -> QuerySet:
    permissions = get_user_permissions(user)
    qs = CorrectiveActionPlan.objects.select_related('finding')
    if user.is_superuser or Permissions.CAPS_ALL in permissions:
        return qs
    scope = Q(pk__in=[])
    if Permissions.CAPS_OWN in permissions and user.org_id:
        scope |= Q(finding__org_id=user.org_id)
    if Permissions.CAPS_ASSIGNED in permissions:
        scope |= Q(finding__review_id__in=_assigned_review_ids(user))
    return qs.filter(scope)


def can_record_findings(user: User, review: Review) -> bool:
    if _is_admin(user):
        return True
    if Permissions.FINDINGS_CREATE not in get_user_permissions(user):
        return False
    return review.team_members.filter(user=user, invitation_status=InvitationStatus.CONFIRMED).exists()


def can_manage_cap(user: User, finding: Finding) -> bool:
    """Host organization managers own the plan."""
    if user.is_superuser or user.role == UserRole.SUPER_ADMIN:
        return True
    return user.role in CAP_OWNER_ROLES and user.org_id == finding.org_id


def _can_review_cap(user: User, cap: CorrectiveActionPlan, roles: List[str]) -> bool:
    if user.is_superuser:
        return True
    if user.role not in roles:
        return False
    if user.role in (UserRole.LEAD_REVIEWER, UserRole.PEER_REVIEWER):
        return _is_team_member(user, cap.finding.review_id)
    return True


def can_transition_cap(user: User, cap: CorrectiveActionPlan, target: str) -> bool:
    current = cap.status
    if target in (CAPStatus.SUBMITTED, CAPStatus.COMPLETED):
        return can_manage_cap(user, cap.finding)
    if target == CAPStatus.DRAFT:
        if current == CAPStatus.REJECTED:
            return can_manage_cap(user, cap.finding)
        return _can_review_cap(user, cap, CAP_REVIEW_ROLES)
    if target == CAPStatus.IN_PROGRESS:
        if current == CAPStatus.COMPLETED:
            return _can_review_cap(user, cap, CAP_VERIFY_ROLES)
        return can_manage_cap(user, cap.finding)
    if target == CAPStatus.VERIFIED:
        return _can_review_cap(user, cap, CAP_VERIFY_ROLES)
    return _can_review_cap(user, cap, CAP_REVIEW_ROLES)


def _host_recipients(finding: Finding, extra: Optional[List] = None) -> List:
    return get_organization_recipients(finding.org_id, roles=HOST_MANAGER_ROLES) + (extra or [])


# =============================================================================
# Findings
# =============================================================================

def generate_finding_reference(org_id: UUID, year: Optional[int] = None) -> str:
    """Next FND-{ORGCODE}-{YEAR}-{SEQ} reference for the organization."""
    year = year or timezone.now().year
    return next_sequence(Finding, f"FND-{get_organization_code(org_id) or 'UNK'}-{year}-")


def create_finding(review: Review, payload: FindingIn, user: User, client_id: Optional[str] = None) -> Finding:
    if review.status not in FINDING_ENTRY_STATUSES:
        raise ValueError(f"Findings cannot be recorded while the review is {review.status}")
    if payload.finding_type not in FindingType.values or payload.severity not in FindingSeverity.values:
        raise ValueError("Unknown finding type or severity")

    cap_required = payload.cap_required
    if cap_required is None:
        cap_required = requires_cap_by_default(payload.finding_type, payload.severity)

    with transaction.atomic():
        finding = create_with_reference(
            Finding,
            lambda: generate_finding_reference(review.host_org_id),
            review=review,
            org_id=review.host_org_id,
            finding_type=payload.finding_type,
            severity=payload.severity,
            status=FindingStatus.CAP_REQUIRED if cap_required else FindingStatus.OPEN,
            title_en=payload.title_en,
            title_fr=payload.title_fr,
            description_en=payload.description_en,
            description_fr=payload.description_fr,
            evidence_en=payload.evidence_en,
            evidence_fr=payload.evidence_fr,
            icao_reference=payload.icao_reference,
            audit_area=payload.audit_area,
            critical_element=payload.critical_element,
            cap_required=cap_required,
            target_close_date=payload.target_close_date or get_suggested_due_date(payload.severity),
            client_id=client_id,
            created_by=user,
        )

    log_action(
        org_id=finding.org_id,
        action=AuditAction.CREATE_FINDING,
        target_type="Finding",
        target_id=finding.id,
        target_label=finding.reference_number,
        performed_by=user,
        context={"review_id": str(review.id), "severity": finding.severity, "cap_required": cap_required},
    )
    severity = SEVERITY_LABELS[finding.severity]
    send_notification(
        _host_recipients(finding),
        NotificationPayload(
            type=NotificationType.CAP_REQUIRED if cap_required else NotificationType.FINDING_CREATED,
            title_en=f"New finding {finding.reference_number}",
            title_fr=f"Nouvelle constatation {finding.reference_number}",
            message_en=f"{severity.en} finding \"{finding.title_en}\" was recorded during review {review.reference_number}."
                       + (" A corrective action plan is required." if cap_required else ""),
            message_fr=f"Constatation {severity.fr.lower()} « {finding.title_fr or finding.title_en} » enregistrée lors de la revue {review.reference_number}."
                       + (" Un plan d'actions correctives est requis." if cap_required else ""),
            entity_type="Finding",
            entity_id=str(finding.id),
            action_url=f"/findings/{finding.id}",
            priority=NotificationPriority.HIGH if finding.severity == FindingSeverity.CRITICAL else NotificationPriority.NORMAL,
        ),
    )
    logger.info(f"Finding {finding.reference_number} recorded on review {review.reference_number} by {user.id}")
    return finding



def _reject_cleared(changes: dict, required: set) -> None:
    cleared = sorted(field for field in required if field in changes and changes[field] in (None, ""))
    if cleared:
        raise ValueError(f"These fields cannot be empty: {', '.join(cleared)}")


def update_finding(finding: Finding, payload: FindingUpdateIn, user: User) -> Finding:
    """
    Edit a finding. A change of type or severity re-derives the CAP
    requirement unless `cap_required` is given, and the status follows
    the requirement while no plan has been started.
    """
    if finding.status == FindingStatus.CLOSED:
        raise ValueError("Closed findings cannot be edited")

    changes = payload.dict(exclude_unset=True)
    _reject_cleared(changes, REQUIRED_FINDING_FIELDS)
    finding_type = changes.get('finding_type', finding.finding_type)
    severity = changes.get('severity', finding.severity)
    if finding_type not in FindingType.values or severity not in FindingSeverity.values:
        raise ValueError("Unknown finding type or severity")

    if 'cap_required' not in changes and changes.keys() & {'finding_type', 'severity'}:
        changes['cap_required'] = requires_cap_by_default(finding_type, severity)
    cap_required = changes.get('cap_required', finding.cap_required)
    if not cap_required and CorrectiveActionPlan.objects.filter(finding=finding).exists():
        raise ValueError("A CAP already exists for this finding")

    for field, value in changes.items():
        setattr(finding, field, value)
    if finding.status in UNSTARTED_FINDING_STATUSES:
        finding.status = FindingStatus.CAP_REQUIRED if cap_required else FindingStatus.OPEN
    finding.save()

    log_action(
        org_id=finding.org_id,
        action=AuditAction.UPDATE_FINDING,
        target_type="Finding",
        target_id=finding.id,
        target_label=finding.reference_number,
        performed_by=user,
        context={"fields": sorted(changes)},
    )
    send_notification(
        _host_recipients(finding),
        NotificationPayload(
            type=NotificationType.FINDING_UPDATED,
            title_en=f"Finding {finding.reference_number} updated",
            title_fr=f"Constatation {finding.reference_number} mise à jour",
            message_en=f"The review team updated finding \"{finding.title_en}\".",
            message_fr=f"L'équipe de revue a mis à jour la constatation « {finding.title_fr or finding.title_en} ».",
            entity_type="Finding",
            entity_id=str(finding.id),
            action_url=f"/findings/{finding.id}",
        ),
        skip_email=True,
    )
    return finding


def can_edit_finding(user: User, finding: Finding) -> bool:
    return _is_admin(user) or (
        Permissions.FINDINGS_CREATE in get_user_permissions(user) and _is_team_member(user, finding.review_id)
    )


def allowed_finding_statuses(user: User, finding: Finding) -> List[str]:
    targets = FINDING_STATUS_TRANSITIONS.get(finding.status, [])
    if _is_admin(user):
        return list(targets)
    allowed = []
    if user.org_id == finding.org_id:
        allowed += HOST_FINDING_STATUSES
    elif _is_team_member(user, finding.review_id):
        allowed += TEAM_FINDING_STATUSES
    return [t for t in targets if t in allowed]


def update_finding_status(finding: Finding, target: str, user: User, comment: str = "") -> Finding:
    """
    Move a finding along its workflow. The host organization may only
    report CAP submission and implementation; the review team decides the rest.
    """
    if not _is_admin(user):
        if user.org_id == finding.org_id:
            if target not in HOST_FINDING_STATUSES:
                raise PermissionError("Organization members can only submit CAP or mark findings as in progress")
        elif _is_team_member(user, finding.review_id):
            if target not in TEAM_FINDING_STATUSES:
                raise PermissionError("Review team can only accept CAP, verify, or close findings")
        else:
            raise PermissionError("You do not have permission to update this finding's status")

    if not is_valid_finding_transition(finding.status, target):
        raise ValueError(f"Invalid status transition from {finding.status} to {target}")
    if finding.status == target:
        return finding

    previous = finding.status
    finding.status = target
    if target == FindingStatus.CLOSED:
        finding.closed_at = timezone.now()
    finding.save()

    log_action(
        org_id=finding.org_id,
        action=AuditAction.CLOSE_FINDING if target == FindingStatus.CLOSED else AuditAction.UPDATE_FINDING,
        target_type="Finding",
        target_id=finding.id,
        target_label=finding.reference_number,
        performed_by=user,
        context={"from": previous, "to": target, "comment": comment},
    )
    return finding


def close_finding(finding: Finding, user: User, comment: str = "") -> Finding:
    return update_finding_status(finding, FindingStatus.CLOSED, user, comment)


# =============================================================================
# Corrective action plans
# =============================================================================

def create_cap(finding: Finding, payload: CAPIn, user: User) -> CorrectiveActionPlan:
    if CorrectiveActionPlan.objects.filter(finding=finding).exists():
        raise ValueError("A CAP already exists for this finding")
    if not finding.cap_required:
        raise ValueError("This finding does not require a CAP")

    assigned_to = None
    if payload.assigned_to_id:
        assigned_to = User.objects.filter(id=payload.assigned_to_id, org_id=finding.org_id, is_active=True).first()
        if assigned_to is None:
            raise ValueError("Assignee must be an active member of the host organization")

    cap = CorrectiveActionPlan.objects.create(
        finding=finding,
        root_cause_en=payload.root_cause_en,
        root_cause_fr=payload.root_cause_fr,
        corrective_action_en=payload.corrective_action_en,
        corrective_action_fr=payload.corrective_action_fr,
        preventive_action_en=payload.preventive_action_en,
        preventive_action_fr=payload.preventive_action_fr,
        responsible_person=payload.responsible_person,
        responsible_role=payload.responsible_role,
        assigned_to=assigned_to,
        due_date=payload.due_date or finding.target_close_date or get_suggested_due_date(finding.severity),
        created_by=user,
    )
    log_action(
        org_id=finding.org_id,
        action=AuditAction.CREATE_CAP,
        target_type="CorrectiveActionPlan",
        target_id=cap.id,
        target_label=finding.reference_number,
        performed_by=user,
        context={"due_date": cap.due_date.isoformat()},
    )
    logger.info(f"CAP {cap.id} drafted for finding {finding.reference_number}")
    return cap


def update_cap(cap: CorrectiveActionPlan, payload: CAPUpdateIn, user: User) -> CorrectiveActionPlan:
    if cap.status not in EDITABLE_CAP_STATUSES:
        raise ValueError("Only draft or rejected CAPs can be edited")
    changes = payload.dict(exclude_unset=True)
    _reject_cleared(changes, REQUIRED_CAP_FIELDS)
    for field, value in changes.items():
        setattr(cap, field, value)
    cap.save()
    return cap


def _notify_cap(cap: CorrectiveActionPlan, user: User) -> None:
    finding = cap.finding
    ref = finding.reference_number
    common = dict(entity_type="CAP", entity_id=str(cap.id), action_url=f"/caps/{cap.id}",
                  action_label_en="View CAP", action_label_fr="Voir le PAC")
    owners = _host_recipients(finding, [cap.assigned_to_id])

    if cap.status == CAPStatus.SUBMITTED:
        recipients = get_programme_recipients([UserRole.PROGRAMME_COORDINATOR]) + get_review_team_recipients(
            finding.review_id, confirmed_only=True
        )
        payload = NotificationPayload(
            type=NotificationType.CAP_SUBMITTED,
            title_en="CAP submitted for review", title_fr="PAC soumis pour examen",
            message_en=f"The corrective action plan for {ref} was submitted.",
            message_fr=f"Le plan d'actions correctives pour {ref} a été soumis.",
            **common,
        )
    elif cap.status == CAPStatus.ACCEPTED:
        recipients = owners
        payload = NotificationPayload(
            type=NotificationType.CAP_ACCEPTED,
            title_en="CAP accepted", title_fr="PAC accepté",
            message_en=f"The corrective action plan for {ref} was accepted. Implementation can start.",
            message_fr=f"Le plan d'actions correctives pour {ref} a été accepté. La mise en œuvre peut commencer.",
            **common,
        )
    elif cap.status == CAPStatus.REJECTED:
        recipients = owners
        payload = NotificationPayload(
            type=NotificationType.CAP_REJECTED,
            title_en="CAP rejected", title_fr="PAC rejeté",
            message_en=f"The corrective action plan for {ref} was rejected: {cap.rejection_reason}",
            message_fr=f"Le plan d'actions correctives pour {ref} a été rejeté : {cap.rejection_reason}",
            priority=NotificationPriority.HIGH,
            **common,
        )
    elif cap.status == CAPStatus.VERIFIED:
        recipients = owners
        payload = NotificationPayload(
            type=NotificationType.CAP_VERIFIED,
            title_en="CAP implementation verified", title_fr="Mise en œuvre du PAC vérifiée",
            message_en=f"Implementation of the corrective action plan for {ref} was verified.",
            message_fr=f"La mise en œuvre du plan d'actions correctives pour {ref} a été vérifiée.",
            **common,
        )
    elif cap.status == CAPStatus.CLOSED:
        recipients = owners
        payload = NotificationPayload(
            type=NotificationType.CAP_CLOSED,
            title_en="CAP closed", title_fr="PAC clôturé",
            message_en=f"The corrective action plan for {ref} is closed.",
            message_fr=f"Le plan d'actions correctives pour {ref} est clôturé.",
            **common,
        )
    else:
        return
    send_notification([r for r in recipients if getattr(r, 'id', r) != user.id], payload)


def transition_cap(
    cap: CorrectiveActionPlan,
    target: str,
    user: User,
    notes: str = "",
    reason: str = "",
) -> CorrectiveActionPlan:
    """
    Move a CAP along CAP_STATUS_TRANSITIONS, stamping the matching
    timestamp and keeping the parent finding's status in step.
    """
    if not is_valid_cap_transition(cap.status, target):
        raise ValueError(f"Cannot move CAP from {cap.status} to {target}")
    if cap.status == target:
        return cap
    if target == CAPStatus.REJECTED and not reason:
        raise ValueError("A rejection reason is required")

    previous = cap.status
    now = timezone.now()
    cap.status = target
    if target == CAPStatus.SUBMITTED:
        cap.submitted_at = now
    elif target == CAPStatus.ACCEPTED:
        cap.accepted_at = now
        cap.accepted_by = user
    elif target == CAPStatus.REJECTED:
        cap.rejected_at = now
        cap.rejection_reason = reason
    elif target == CAPStatus.COMPLETED:
        cap.completed_at = now
    elif target == CAPStatus.VERIFIED:
        cap.verified_at = now
        cap.verified_by = user
        cap.verification_notes = notes
    elif target == CAPStatus.IN_PROGRESS and previous == CAPStatus.COMPLETED:
        cap.verification_notes = f"VERIFICATION FAILED: {reason or notes}"
    elif target == CAPStatus.CLOSED:
        cap.closed_at = now

    finding = cap.finding
    with transaction.atomic():
        cap.save()
        finding_status = FINDING_STATUS_FOR_CAP.get(target)
        if finding_status and finding.status != finding_status:
            finding.status = finding_status
            if finding_status == FindingStatus.CLOSED:
                finding.closed_at = now
            finding.save(update_fields=['status', 'closed_at', 'updated_at'])

    log_action(
        org_id=finding.org_id,
        action=AuditAction.CAP_STATUS_CHANGE,
        target_type="CorrectiveActionPlan",
        target_id=cap.id,
        target_label=finding.reference_number,
        performed_by=user,
        context={"from": previous, "to": target, "notes": notes, "reason": reason},
    )
    _notify_cap(cap, user)
    logger.info(f"CAP {cap.id} moved {previous} -> {target} by {user.id}")
    return cap


# =============================================================================
# Milestones
# =============================================================================

def add_milestone(cap: CorrectiveActionPlan, payload: MilestoneIn) -> CAPMilestone:
    if cap.status in (CAPStatus.VERIFIED, CAPStatus.CLOSED):
        raise ValueError("Milestones cannot be added to a verified or closed CAP")
    return CAPMilestone.objects.create(
        cap=cap,
        title_en=payload.title_en,
        title_fr=payload.title_fr,
        target_date=payload.target_date,
        sort_order=payload.sort_order,
    )


def update_milestone_status(milestone: CAPMilestone, status: str) -> CAPMilestone:
    if status not in MilestoneStatus.values:
        raise ValueError(f"Unknown milestone status: {status}")
    milestone.status = status
    milestone.completed_at = timezone.now() if status == MilestoneStatus.COMPLETED else None
    milestone.save()
    return milestone
