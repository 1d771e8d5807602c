"""
CAP deadline tracking and escalation.

Escalation rules, evaluated once a day by the periodic task:
    7 days before the due date, 1 day before, on the due date, every day
    after it, and for each milestone past its target date.

A notification for the same CAP (or milestone) and type is sent at most
once per 24 hours.
"""
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from apps.identity.models import User, UserRole
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import Notification, NotificationType, NotificationPriority
from apps.notifications.services import send_notification
from apps.organizations.models import Organization
from .dtos import DeadlineInfo, MilestoneProgress, CAPWithDeadlineInfo, EscalationEvent
from .models import CorrectiveActionPlan, CAPMilestone, CAPStatus, MilestoneStatus

logger = logging.getLogger(__name__)

WARNING_THRESHOLD_DAYS = getattr(settings, 'CAP_WARNING_DAYS', 7)
CRITICAL_THRESHOLD_DAYS = getattr(settings, 'CAP_CRITICAL_DAYS', 1)

# Verified and closed plans no longer have a deadline to chase
TRACKABLE_STATUSES = [
    CAPStatus.DRAFT,
    CAPStatus.SUBMITTED,
    CAPStatus.UNDER_REVIEW,
    CAPStatus.ACCEPTED,
    CAPStatus.REJECTED,
    CAPStatus.IN_PROGRESS,
    CAPStatus.COMPLETED,
]

STATUS_PROGRESS = {
    CAPStatus.DRAFT: 10,
    CAPStatus.SUBMITTED: 20,
    CAPStatus.UNDER_REVIEW: 25,
    CAPStatus.REJECTED: 15,
    CAPStatus.ACCEPTED: 30,
    CAPStatus.IN_PROGRESS: 50,
    CAPStatus.COMPLETED: 80,
    CAPStatus.VERIFIED: 95,
    CAPStatus.CLOSED: 100,
}

# Milestones that still count against the plan
OPEN_MILESTONE_STATUSES = [MilestoneStatus.PENDING, MilestoneStatus.IN_PROGRESS, MilestoneStatus.OVERDUE]

FOCAL_POINT_ROLES = [UserRole.SAFETY_MANAGER, UserRole.ANSP_ADMIN]

EVENT_7_DAYS = "7_DAYS_BEFORE"
EVENT_1_DAY = "1_DAY_BEFORE"
EVENT_DUE_TODAY = "DUE_TODAY"
EVENT_OVERDUE = "OVERDUE"
EVENT_MILESTONE_OVERDUE = "MILESTONE_OVERDUE"

DEDUP_WINDOW = timedelta(hours=24)


def _today() -> date:
    return timezone.localdate()


# =============================================================================
# Calculations
# =============================================================================

def get_status_progress_percentage(status: str) -> int:
    return STATUS_PROGRESS.get(status, 0)


def calculate_deadline_info(
    due_date: date,
    status: str,
    milestones_completed: int = 0,
    milestones_total: int = 0,
    today: Optional[date] = None,
) -> DeadlineInfo:
    today = today or _today()
    days_remaining = (due_date - today).days
    is_overdue = days_remaining < 0
    is_due_today = days_remaining == 0
    is_due_soon = 0 < days_remaining <= WARNING_THRESHOLD_DAYS

    if is_overdue:
        urgency = "overdue"
    elif is_due_today or 0 < days_remaining <= CRITICAL_THRESHOLD_DAYS:
        urgency = "critical"
    elif is_due_soon:
        urgency = "warning"
    else:
        urgency = "normal"

    if milestones_total > 0:
        percentage = round(milestones_completed / milestones_total * 100)
    else:
        percentage = get_status_progress_percentage(status)

    return DeadlineInfo(
        due_date=due_date,
        days_remaining=days_remaining,
        is_overdue=is_overdue,
        is_due_today=is_due_today,
        is_due_soon=is_due_soon,
        urgency_level=urgency,
        percentage_complete=percentage,
    )


def calculate_milestone_progress(milestones: Iterable[CAPMilestone], today: Optional[date] = None) -> MilestoneProgress:
    today = today or _today()
    milestones = list(milestones)
    return MilestoneProgress(
        total=len(milestones),
        completed=sum(1 for m in milestones if m.status == MilestoneStatus.COMPLETED),
        overdue=sum(
            1 for m in milestones
            if m.status not in (MilestoneStatus.COMPLETED, MilestoneStatus.CANCELLED) and m.target_date < today
        ),
        upcoming=sum(1 for m in milestones if m.status == MilestoneStatus.PENDING and m.target_date >= today),
        in_progress=sum(1 for m in milestones if m.status == MilestoneStatus.IN_PROGRESS),
    )


def with_deadline_info(cap: CorrectiveActionPlan, today: Optional[date] = None) -> CAPWithDeadlineInfo:
    progress = calculate_milestone_progress(cap.milestones.all(), today)
    return CAPWithDeadlineInfo(
        cap=cap,
        deadline_info=calculate_deadline_info(cap.due_date, cap.status, progress.completed, progress.total, today),
        milestone_progress=progress,
    )


# =============================================================================
# Queries
# =============================================================================

def _caps(org_id: Optional[UUID] = None) -> QuerySet:
    qs = CorrectiveActionPlan.objects.select_related('finding', 'assigned_to').prefetch_related('milestones')
    if org_id:
        qs = qs.filter(finding__org_id=org_id)
    return qs.order_by('due_date')


def get_caps_with_deadline_info(
    org_id: Optional[UUID] = None,
    include_completed: bool = False,
    overdue_only: bool = False,
) -> List[CAPWithDeadlineInfo]:
    qs = _caps(org_id)
    if not include_completed:
        qs = qs.filter(status__in=TRACKABLE_STATUSES)
    results = [with_deadline_info(cap) for cap in qs]
    if overdue_only:
        results = [r for r in results if r.deadline_info.is_overdue]
    return results


def get_caps_due_within_days(days: int, org_id: Optional[UUID] = None) -> List[CAPWithDeadlineInfo]:
    today = _today()
    qs = _caps(org_id).filter(
        status__in=TRACKABLE_STATUSES, due_date__gte=today, due_date__lte=today + timedelta(days=days)
    )
    return [with_deadline_info(cap, today) for cap in qs]


def get_overdue_milestones(org_id: Optional[UUID] = None) -> QuerySet:
    qs = CAPMilestone.objects.filter(
        status__in=OPEN_MILESTONE_STATUSES,
        target_date__lt=_today(),
        cap__status__in=TRACKABLE_STATUSES,
    ).select_related('cap__finding')
    if org_id:
        qs = qs.filter(cap__finding__org_id=org_id)
    return qs.order_by('target_date')


def update_milestone_statuses(org_id: Optional[UUID] = None) -> int:
    """Flag past-due milestones as OVERDUE. Returns the number updated."""
    return CAPMilestone.objects.filter(
        id__in=get_overdue_milestones(org_id).values('id'),
        status__in=[MilestoneStatus.PENDING, MilestoneStatus.IN_PROGRESS],
    ).update(
        status=MilestoneStatus.OVERDUE
    )


def get_cap_statistics(org_id: Optional[UUID] = None) -> Dict:
    today = _today()
    by_status = {status: 0 for status in CAPStatus.values}
    overdue = due_soon = closed = on_time = total_days = 0
    caps = list(_caps(org_id))

    for cap in caps:
        by_status[cap.status] += 1
        if cap.status in TRACKABLE_STATUSES:
            days = (cap.due_date - today).days
            if days < 0:
                overdue += 1
            elif days <= WARNING_THRESHOLD_DAYS:
                due_soon += 1
        closed_at = cap.closed_at or cap.verified_at
        if closed_at:
            closed += 1
            total_days += (closed_at - cap.created_at).days
            if closed_at.date() <= cap.due_date:
                on_time += 1

    return {
        'total': len(caps),
        'by_status': by_status,
        'overdue': overdue,
        'due_soon': due_soon,
        'average_days_to_close': round(total_days / closed) if closed else None,
        'on_time_completion_rate': round(on_time / closed * 100) if closed else None,
    }


# =============================================================================
# Escalation
# =============================================================================

def _focal_point_ids(org_id: UUID) -> List[UUID]:
    return list(
        User.objects.filter(org_id=org_id, role__in=FOCAL_POINT_ROLES, is_active=True).values_list('id', flat=True)
    )


def _event_type(days_until_due: int) -> Optional[str]:
    if days_until_due < 0:
        return EVENT_OVERDUE
    if days_until_due == 0:
        return EVENT_DUE_TODAY
    if days_until_due == CRITICAL_THRESHOLD_DAYS:
        return EVENT_1_DAY
    if days_until_due == WARNING_THRESHOLD_DAYS:
        return EVENT_7_DAYS
    return None


def detect_escalation_events(org_id: Optional[UUID] = None, today: Optional[date] = None) -> List[EscalationEvent]:
    today = today or _today()
    organizations: Dict[UUID, Organization] = {}

    def org_names(oid: UUID):
        if oid not in organizations:
            organizations[oid] = Organization.objects.filter(id=oid).first()
        org = organizations[oid]
        return (org.name_en, org.name_fr) if org else ("", "")

    events = []
    caps = CorrectiveActionPlan.objects.filter(status__in=TRACKABLE_STATUSES).select_related('finding')
    if org_id:
        caps = caps.filter(finding__org_id=org_id)

    for cap in caps:
        event_type = _event_type((cap.due_date - today).days)
        if event_type is None:
            continue
        finding = cap.finding
        recipients = ([cap.assigned_to_id] if cap.assigned_to_id else []) + _focal_point_ids(finding.org_id)
        name_en, name_fr = org_names(finding.org_id)
        events.append(EscalationEvent(
            type=event_type,
            cap_id=cap.id,
            finding_reference=finding.reference_number,
            finding_title_en=finding.title_en,
            finding_title_fr=finding.title_fr,
            severity=finding.severity,
            organization_name_en=name_en,
            organization_name_fr=name_fr,
            recipient_ids=list(dict.fromkeys(recipients)),
            days_overdue=(today - cap.due_date).days if event_type == EVENT_OVERDUE else None,
        ))

    for milestone in get_overdue_milestones(org_id):
        finding = milestone.cap.finding
        name_en, name_fr = org_names(finding.org_id)
        events.append(EscalationEvent(
            type=EVENT_MILESTONE_OVERDUE,
            cap_id=milestone.cap_id,
            milestone_id=milestone.id,
            finding_reference=finding.reference_number,
            finding_title_en=finding.title_en,
            finding_title_fr=finding.title_fr,
            severity=finding.severity,
            organization_name_en=name_en,
            organization_name_fr=name_fr,
            recipient_ids=_focal_point_ids(finding.org_id),
            days_overdue=(today - milestone.target_date).days,
        ))

    return events


def _payload_for(event: EscalationEvent) -> NotificationPayload:
    ref = event.finding_reference
    if event.type == EVENT_MILESTONE_OVERDUE:
        return NotificationPayload(
            type=NotificationType.CAP_OVERDUE,
            title_en="CAP milestone overdue",
            title_fr="Jalon du PAC en retard",
            message_en=f"A milestone of the corrective action plan for {ref} is {event.days_overdue} day(s) overdue.",
            message_fr=f"Un jalon du plan d'actions correctives pour {ref} est en retard de {event.days_overdue} jour(s).",
            entity_type="CAPMilestone",
            entity_id=str(event.milestone_id),
            action_url=f"/caps/{event.cap_id}",
            action_label_en="View CAP",
            action_label_fr="Voir le PAC",
            priority=NotificationPriority.HIGH,
            data={"event": event.type, "cap_id": str(event.cap_id)},
        )
    if event.type == EVENT_OVERDUE:
        return NotificationPayload(
            type=NotificationType.CAP_OVERDUE,
            title_en="CAP overdue",
            title_fr="PAC en retard",
            message_en=f"The corrective action plan for {ref} is {event.days_overdue} day(s) overdue.",
            message_fr=f"Le plan d'actions correctives pour {ref} est en retard de {event.days_overdue} jour(s).",
            entity_type="CAP",
            entity_id=str(event.cap_id),
            action_url=f"/caps/{event.cap_id}",
            action_label_en="View CAP",
            action_label_fr="Voir le PAC",
            priority=NotificationPriority.URGENT,
            data={"event": event.type},
        )

    if event.type == EVENT_DUE_TODAY:
        when_en, when_fr = "today", "aujourd'hui"
    elif event.type == EVENT_1_DAY:
        when_en, when_fr = f"in {CRITICAL_THRESHOLD_DAYS} day(s)", f"dans {CRITICAL_THRESHOLD_DAYS} jour(s)"
    else:
        when_en, when_fr = f"in {WARNING_THRESHOLD_DAYS} days", f"dans {WARNING_THRESHOLD_DAYS} jours"
    return NotificationPayload(
        type=NotificationType.CAP_DEADLINE_APPROACHING,
        title_en="CAP deadline approaching",
        title_fr="Échéance du PAC approchant",
        message_en=f"The corrective action plan for {ref} is due {when_en}. Please ensure timely completion.",
        message_fr=f"Le plan d'actions correctives pour {ref} est dû {when_fr}. Veuillez assurer son achèvement à temps.",
        entity_type="CAP",
        entity_id=str(event.cap_id),
        action_url=f"/caps/{event.cap_id}",
        action_label_en="View CAP",
        action_label_fr="Voir le PAC",
        priority=NotificationPriority.HIGH if event.type != EVENT_7_DAYS else NotificationPriority.NORMAL,
        data={"event": event.type},
    )


def _recently_notified(payload: NotificationPayload) -> bool:
    return Notification.objects.filter(
        type=payload.type,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        created_at__gte=timezone.now() - DEDUP_WINDOW,
    ).exists()


def process_escalations(org_id: Optional[UUID] = None) -> Dict[str, int]:
    """
    Flag overdue milestones, detect escalation events and notify.

    Returns counts of detected events and of events that produced a
    notification.
    """
    update_milestone_statuses(org_id)
    events = detect_escalation_events(org_id)
    notified = 0
    for event in events:
        if not event.recipient_ids:
            continue
        payload = _payload_for(event)
        if _recently_notified(payload):
            continue
        result = send_notification(event.recipient_ids, payload)
        if result.in_app_count:
            notified += 1

    logger.info(f"CAP escalation sweep (org={org_id or 'all'}): {len(events)} events, {notified} notified")
    return {'events': len(events), 'notified': notified}
