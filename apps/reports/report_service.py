"""
Review report service.

A report is aggregated from the review data when generation is requested;
the PDF is rendered from reports/review_report.html with WeasyPrint by a
background task and stored in the default storage (S3 in production).
"""
import hashlib
import json
import logging
from io import BytesIO
from typing import Dict, Optional
from uuid import UUID

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.template.loader import render_to_string
from django.utils import timezone

from apps.core.bilingual import normalize_locale
from apps.core.task_service import TaskService
from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User, UserRole
from apps.identity.permissions import ADMIN_ROLES
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType, NotificationPriority
from apps.notifications.services import (
    send_notification, get_organization_recipients, get_programme_recipients, get_review_team_recipients,
)
from apps.reviews.models import Review, ReviewStatus, ReviewTeamMember, TeamRole, InvitationStatus
from .aggregate import aggregate_report_data
from .constants import (
    REPORT_STATUS_TRANSITIONS, REPORT_VIEW_ALL_ROLES, REPORT_ORG_VIEW_ROLES, REPORT_PUBLISH_ROLES,
)
from .models import ReviewReport, ReportStatus
from .schemas import ReportSectionsIn

logger = logging.getLogger(__name__)

# Reports are drafted once fieldwork ends
REPORTABLE_REVIEW_STATUSES = [ReviewStatus.REPORT_DRAFTING, ReviewStatus.REPORT_REVIEW]

EDITABLE_REPORT_STATUSES = [ReportStatus.DRAFT, ReportStatus.UNDER_REVIEW]


def _get_weasyprint():
    """Imported lazily: WeasyPrint pulls in native libraries the API workers do not need."""
    from weasyprint import HTML
    return HTML


# =============================================================================
# Access
# =============================================================================

def visible_reports(user: User) -> QuerySet:
    """Programme staff read all reports; teams and host managers read their review's report."""
    if user.is_superuser or user.role in REPORT_VIEW_ALL_ROLES:
        return ReviewReport.objects.select_related('review')

    scope = Q(review_id__in=ReviewTeamMember.objects.filter(user=user).exclude(
        invitation_status__in=[InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN]
    ).values('review_id'))
    if user.role in REPORT_ORG_VIEW_ROLES and user.org_id:
        scope |= Q(review__host_org_id=user.org_id)
    return ReviewReport.objects.select_related('review').filter(scope)


def _is_review_lead(review: Review, user: User) -> bool:
    return ReviewTeamMember.objects.filter(
        review=review, user=user, role=TeamRole.LEAD_REVIEWER, invitation_status=InvitationStatus.CONFIRMED,
    ).exists()


def can_edit_report(user: User, review: Review) -> bool:
    if user.is_superuser or user.role in ADMIN_ROLES:
        return True
    return user.role == UserRole.LEAD_REVIEWER and _is_review_lead(review, user)


def can_transition_report(user: User, report: ReviewReport, target: str) -> bool:
    if target == ReportStatus.PUBLISHED:
        return user.is_superuser or user.role in REPORT_PUBLISH_ROLES
    return can_edit_report(user, report.review)


def get_allowed_report_statuses(user: User, report: ReviewReport):
    return [
        s for s in REPORT_STATUS_TRANSITIONS.get(report.status, [])
        if can_transition_report(user, report, s)
    ]


# =============================================================================
# Generation
# =============================================================================

def _content_hash(content: Dict) -> str:
    encoded = json.dumps(content, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()


def request_report_generation(review: Review, user: User, locale: Optional[str] = None) -> ReviewReport:
    """
    Aggregate the review data into the report row (created on first call)
    and queue the PDF rendering. Finalized reports are frozen.
    """
    if not can_edit_report(user, review):
        raise PermissionError("Only programme administrators or the review's lead reviewer can generate the report")
    if review.status not in REPORTABLE_REVIEW_STATUSES:
        raise ValueError(f"Reports can only be generated once fieldwork is complete (review is {review.status})")

    with transaction.atomic():
        report, created = ReviewReport.objects.get_or_create(review=review)
        # Row lock so concurrent generations never reuse a version number
        report = ReviewReport.objects.select_for_update().get(pk=report.pk)
        if report.status not in EDITABLE_REPORT_STATUSES:
            raise ValueError("A finalized report cannot be regenerated")

        locale = normalize_locale(locale or report.locale or user.locale)
        content = aggregate_report_data(review, locale, generated_by=user)
        now = timezone.now()

        report.locale = locale
        report.content = content
        report.generated_at = now
        report.generated_by = user
        report.version += 1
        report.version_history = report.version_history + [{
            'version': report.version,
            'generated_at': now.isoformat(),
            'generated_by': str(user.id),
            'status': report.status,
            'overall_ei': content['ans_assessment'].get('overall_ei'),
            'overall_maturity': content['sms_assessment'].get('overall_level'),
            'content_hash': _content_hash(content),
        }]
        report.save()

    log_action(
        org_id=review.host_org_id,
        action=AuditAction.GENERATE_REPORT,
        target_type="ReviewReport",
        target_id=report.id,
        performed_by=user,
        target_label=report.reference,
        context={'version': report.version, 'locale': locale, 'created': created},
    )

    task_id = TaskService.generate_review_report(report.id)
    logger.info(f"Report v{report.version} for {review.reference_number} queued as {task_id}")
    return report


def generate_report_pdf(report: ReviewReport) -> bytes:
    """Render the report document to PDF bytes."""
    HTML = _get_weasyprint()

    locale = report.locale
    context = {
        'report': report,
        'content': report.content,
        'labels': report.content.get('labels', {}),
        'executive_summary': report.executive_summary_fr if locale == 'fr' and report.executive_summary_fr
        else report.executive_summary_en,
        'conclusion': report.conclusion_fr if locale == 'fr' and report.conclusion_fr else report.conclusion_en,
        'status': report.status,
        'is_draft': report.status in EDITABLE_REPORT_STATUSES,
    }
    html_content = render_to_string('reports/review_report.html', context)

    pdf_file = BytesIO()
    HTML(string=html_content).write_pdf(pdf_file)
    pdf_file.seek(0)
    return pdf_file.read()


def _report_file_name(report: ReviewReport) -> str:
    suffix = "draft" if report.status in EDITABLE_REPORT_STATUSES else report.status.lower()
    return f"reports/{report.review.host_org_id}/{report.reference}-v{report.version}-{suffix}.pdf"


def store_report_pdf(report_id: UUID) -> Optional[ReviewReport]:
    """
    Render and store the PDF of a report, then tell the review team.
    Returns None when the report no longer exists.
    """
    report = ReviewReport.objects.select_related('review', 'generated_by').filter(id=report_id).first()
    if report is None:
        logger.warning(f"Report {report_id} not found, skipping PDF generation")
        return None

    pdf = generate_report_pdf(report)
    saved_name = default_storage.save(_report_file_name(report), ContentFile(pdf))
    report.file_name = saved_name
    report.file_url = default_storage.url(saved_name)
    report.save(update_fields=['file_name', 'file_url', 'updated_at'])
    logger.info(f"Stored report {report.reference} ({len(pdf)} bytes) at {saved_name}")

    if report.status in EDITABLE_REPORT_STATUSES:
        review = report.review
        send_notification(
            get_review_team_recipients(review.id, confirmed_only=True) + [report.generated_by],
            NotificationPayload(
                type=NotificationType.REPORT_DRAFT_READY,
                title_en="Draft report ready", title_fr="Projet de rapport disponible",
                message_en=f"Version {report.version} of the report for review {review.reference_number} is ready.",
                message_fr=f"La version {report.version} du rapport de la revue {review.reference_number} est disponible.",
                entity_type="ReviewReport", entity_id=str(report.id),
                action_url=f"/reviews/{review.id}/report",
                action_label_en="Open report", action_label_fr="Ouvrir le rapport",
            ),
        )
    return report


# =============================================================================
# Editing and status
# =============================================================================

def update_report_sections(report: ReviewReport, payload: ReportSectionsIn, user: User) -> ReviewReport:
    if not can_edit_report(user, report.review):
        raise PermissionError("You do not have permission to edit this report")
    if report.status not in EDITABLE_REPORT_STATUSES:
        raise ValueError("Cannot edit a finalized report")

    for field, value in payload.dict(exclude_unset=True).items():
        setattr(report, field, value)
    report.save()
    return report


def _notify_status(report: ReviewReport, user: User) -> None:
    review = report.review
    ref = review.reference_number
    common = dict(entity_type="ReviewReport", entity_id=str(report.id), action_url=f"/reviews/{review.id}/report",
                  action_label_en="Open report", action_label_fr="Ouvrir le rapport")

    if report.status == ReportStatus.UNDER_REVIEW:
        recipients = get_programme_recipients([UserRole.PROGRAMME_COORDINATOR])
        payload = NotificationPayload(
            type=NotificationType.REPORT_SUBMITTED,
            title_en="Report submitted for review", title_fr="Rapport soumis pour examen",
            message_en=f"The report for review {ref} was submitted for review.",
            message_fr=f"Le rapport de la revue {ref} a été soumis pour examen.",
            **common,
        )
    elif report.status == ReportStatus.PUBLISHED:
        recipients = get_organization_recipients(
            review.host_org_id, [UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER, UserRole.QUALITY_MANAGER]
        ) + get_review_team_recipients(review.id, confirmed_only=True)
        payload = NotificationPayload(
            type=NotificationType.REPORT_APPROVED,
            title_en="Peer review report published", title_fr="Rapport de revue par les pairs publié",
            message_en=f"The final report for review {ref} has been approved and published.",
            message_fr=f"Le rapport final de la revue {ref} a été approuvé et publié.",
            priority=NotificationPriority.HIGH,
            **common,
        )
    else:
        return

    send_notification([r for r in recipients if r.id != user.id], payload)


def transition_report(report: ReviewReport, target: str, user: User) -> ReviewReport:
    if target not in ReportStatus.values:
        raise ValueError(f"Invalid report status: {target}")
    if target not in REPORT_STATUS_TRANSITIONS.get(report.status, []):
        raise ValueError(f"Invalid status transition from {report.status} to {target}")
    if not can_transition_report(user, report, target):
        raise PermissionError("You do not have permission to change the report status")
    if target == ReportStatus.UNDER_REVIEW and report.generated_at is None:
        raise ValueError("Generate the report before submitting it for review")

    previous = report.status
    now = timezone.now()
    report.status = target
    if target == ReportStatus.UNDER_REVIEW:
        report.submitted_at = now
    elif target == ReportStatus.FINAL:
        report.finalized_at = now
        report.finalized_by = user
    elif target == ReportStatus.PUBLISHED:
        report.published_at = now
    report.save()

    log_action(
        org_id=report.review.host_org_id,
        action=AuditAction.PUBLISH_REPORT if target == ReportStatus.PUBLISHED else AuditAction.REPORT_STATUS_CHANGE,
        target_type="ReviewReport",
        target_id=report.id,
        performed_by=user,
        target_label=report.reference,
        context={'from': previous, 'to': target},
    )

    # The stored PDF carries the draft watermark until it is re-rendered
    if target == ReportStatus.FINAL:
        TaskService.generate_review_report(report.id)

    _notify_status(report, user)
    logger.info(f"Report {report.reference} moved {previous} -> {target} by {user.id}")
    return report


def finalize_report(report: ReviewReport, user: User) -> ReviewReport:
    return transition_report(report, ReportStatus.FINAL, user)


def publish_report(report: ReviewReport, user: User) -> ReviewReport:
    return transition_report(report, ReportStatus.PUBLISHED, user)


def get_report_statistics(user: User) -> Dict:
    counts = {
        row['status']: row['n']
        for row in visible_reports(user).order_by().values('status').annotate(n=Count('id'))
    }
    by_status = {status: counts.get(status, 0) for status in ReportStatus.values}
    return {'total': sum(by_status.values()), 'by_status': by_status}
