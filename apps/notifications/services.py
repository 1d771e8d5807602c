"""
Notification service.

Creates in-app notifications for a set of recipients and queues the
e-mail copy (rendered in each recipient's locale) through TaskService.

Fan-out never raises: failures are collected in SendNotificationResult.errors
and logged, so a notification problem cannot abort the business operation
that triggered it.
"""
import logging
from typing import Iterable, List, Optional
from uuid import UUID

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.template.loader import render_to_string
from django.utils import timezone

from apps.core.bilingual import normalize_locale, pick
from apps.core.task_service import TaskService
from apps.identity.models import User
from apps.identity.permissions import ADMIN_ROLES
from .models import Notification, NotificationPriority
from .dtos import NotificationPayload, SendNotificationResult, NotificationOut

logger = logging.getLogger(__name__)

DEFAULT_ACTION_LABEL = {'en': "View details", 'fr': "Voir les détails"}


# =============================================================================
# Recipient resolution
# =============================================================================

def _resolve_recipients(recipients: Iterable) -> List[User]:
    """Accept User instances and/or ids; return active, de-duplicated users."""
    ids = []
    for recipient in recipients:
        if recipient is None:
            continue
        user_id = getattr(recipient, 'id', recipient)
        if user_id not in ids:
            ids.append(user_id)
    if not ids:
        return []
    return list(User.objects.filter(id__in=ids, is_active=True))


def get_organization_recipients(org_id: UUID, roles: Optional[Iterable[str]] = None) -> List[User]:
    qs = User.objects.filter(org_id=org_id, is_active=True)
    if roles:
        qs = qs.filter(role__in=list(roles))
    return list(qs)


def get_programme_recipients(roles: Optional[Iterable[str]] = None) -> List[User]:
    """Programme staff (coordinators and admins by default)."""
    return list(User.objects.filter(role__in=list(roles or ADMIN_ROLES), is_active=True))


def get_review_team_recipients(review_id: UUID, confirmed_only: bool = False) -> List[User]:
    from apps.reviews.models import ReviewTeamMember, InvitationStatus

    members = ReviewTeamMember.objects.filter(review_id=review_id).exclude(
        invitation_status__in=[InvitationStatus.DECLINED, InvitationStatus.WITHDRAWN]
    )
    if confirmed_only:
        members = members.filter(invitation_status=InvitationStatus.CONFIRMED)
    return list(User.objects.filter(id__in=members.values('user_id'), is_active=True))


# =============================================================================
# Sending
# =============================================================================

def send_notification(
    recipients: Iterable,
    payload: NotificationPayload,
    skip_email: bool = False,
) -> SendNotificationResult:
    """
    Create one in-app notification per recipient and queue e-mails for
    recipients who opted in.
    """
    result = SendNotificationResult()
    users = _resolve_recipients(recipients)
    if not users:
        return result

    try:
        # Savepoint so a failed insert does not poison the caller's transaction
        with transaction.atomic():
            created = Notification.objects.bulk_create([
                Notification(
                    user=user,
                    type=payload.type,
                    priority=payload.priority or NotificationPriority.NORMAL,
                    title_en=payload.title_en,
                    title_fr=payload.title_fr,
                    message_en=payload.message_en,
                    message_fr=payload.message_fr,
                    action_label_en=payload.action_label_en,
                    action_label_fr=payload.action_label_fr,
                    entity_type=payload.entity_type,
                    entity_id=str(payload.entity_id or ""),
                    action_url=payload.action_url,
                    data=payload.data or {},
                )
                for user in users
            ])
        result.in_app_count = len(created)
    except Exception as e:
        logger.exception(f"Failed to create {payload.type} notifications")
        result.errors.append(f"Failed to create notifications: {e}")
        return result

    if skip_email:
        return result

    by_user = {user.id: user for user in users}
    for notification in created:
        user = by_user[notification.user_id]
        if not (user.email_notifications and user.email):
            continue
        try:
            _queue_email(notification.id)
            result.email_count += 1
        except Exception as e:
            logger.exception(f"Failed to queue e-mail for notification {notification.id}")
            result.errors.append(f"Failed to queue e-mail to {user.email}: {e}")

    logger.info(
        f"Notification {payload.type}: {result.in_app_count} in-app, "
        f"{result.email_count} e-mail, {len(result.errors)} errors"
    )
    return result


def _queue_email(notification_id: UUID) -> None:
    # Workers must see the committed notification row
    transaction.on_commit(lambda: TaskService.send_notification_email(notification_id))


def _absolute_url(action_url: str) -> str:
    if not action_url or action_url.startswith('http'):
        return action_url
    return f"{settings.APP_BASE_URL.rstrip('/')}/{action_url.lstrip('/')}"


def render_email(notification: Notification, locale: Optional[str] = None) -> dict:
    """Subject, plain-text and HTML bodies for a notification in `locale`."""
    loc = normalize_locale(locale or notification.user.locale)
    content = localized(notification, loc)
    context = {
        'locale': loc,
        'recipient_name': notification.user.get_full_name() or notification.user.username,
        'title': content['title'],
        'message': content['message'],
        'action_label': content['action_label'] or DEFAULT_ACTION_LABEL[loc],
        'action_url': _absolute_url(notification.action_url),
        'priority': notification.priority,
        'is_urgent': notification.priority in (NotificationPriority.HIGH, NotificationPriority.URGENT),
    }
    return {
        'subject': content['title'],
        'text': render_to_string('notifications/email.txt', context),
        'html': render_to_string('notifications/email.html', context),
    }


def deliver_notification_email(notification_id: UUID) -> bool:
    """
    Send the e-mail copy of a notification. Idempotent: a notification whose
    e-mail was already sent is skipped.
    """
    try:
        notification = Notification.objects.select_related('user').get(id=notification_id)
    except Notification.DoesNotExist:
        logger.warning(f"Notification {notification_id} not found; e-mail skipped")
        return False

    user = notification.user
    if notification.email_sent_at or not user.email or not user.email_notifications:
        return False

    email = render_email(notification)
    send_mail(
        subject=email['subject'],
        message=email['text'],
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[user.email],
        html_message=email['html'],
    )

    notification.email_sent_at = timezone.now()
    notification.save(update_fields=['email_sent_at'])
    return True


def send_direct_email(to_email: str, subject: str, template: str, context: dict) -> bool:
    """
    E-mail someone who has no account yet (e.g. a join-request applicant).
    Failures are logged, not raised.
    """
    try:
        send_mail(
            subject=subject,
            message=render_to_string(template, context),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[to_email],
        )
        return True
    except Exception:
        logger.exception(f"Failed to send '{subject}' to {to_email}")
        return False


# =============================================================================
# Reading
# =============================================================================

def localized(notification: Notification, locale: Optional[str]) -> dict:
    return {
        'title': pick(notification.title_en, notification.title_fr, locale),
        'message': pick(notification.message_en, notification.message_fr, locale),
        'action_label': pick(notification.action_label_en, notification.action_label_fr, locale),
    }


def to_notification_out(notification: Notification, locale: Optional[str]) -> NotificationOut:
    content = localized(notification, locale)
    return NotificationOut(
        id=notification.id,
        type=notification.type,
        priority=notification.priority,
        title=content['title'],
        message=content['message'],
        action_label=content['action_label'],
        entity_type=notification.entity_type,
        entity_id=notification.entity_id,
        action_url=notification.action_url,
        data=notification.data,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
    )


def list_notifications(user: User, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    qs = Notification.objects.filter(user=user)
    if unread_only:
        qs = qs.filter(read_at__isnull=True)
    return list(qs[:max(1, min(limit, 200))])


def unread_count(user: User) -> int:
    return Notification.objects.filter(user=user, read_at__isnull=True).count()


def mark_as_read(user: User, notification_id: UUID) -> bool:
    updated = Notification.objects.filter(
        id=notification_id, user=user, read_at__isnull=True
    ).update(read_at=timezone.now())
    return updated > 0


def mark_all_as_read(user: User) -> int:
    return Notification.objects.filter(user=user, read_at__isnull=True).update(read_at=timezone.now())
