"""
Offline fieldwork sync engine.

Devices record checklist ticks and draft findings while offline and push
them as queue entries. Entries are applied per user in the order they
were recorded. A handler registered for the entity type applies one
entry; it signals a stale write with SyncConflictError, and any other
error puts the entry back with an exponential backoff (5s, 15s, 45s).
"""
import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from apps.governance.audit_service import log_action, AuditAction
from apps.identity.models import User
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType, NotificationPriority
from apps.notifications.services import send_notification
from apps.reviews.models import Review
from apps.reviews.services import is_team_member
from .dtos import SyncResult, SyncEngineStatus
from .models import SyncQueueEntry, SyncCheckpoint, SyncStatus, SyncAction

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 5
BACKOFF_MULTIPLIER = 3
COMPLETED_TTL = timedelta(hours=24)

SyncHandler = Callable[[SyncQueueEntry], Optional[dict]]


class SyncConflictError(Exception):
    """Raised by a handler when the server copy is newer than the device's."""

    def __init__(self, message: str = "Conflict", server_data: Optional[dict] = None):
        super().__init__(message)
        self.server_data = server_data


class SyncRetryableError(Exception):
    """Raised by a handler for a transient failure."""


def backoff_delay(retry_count: int) -> timedelta:
    return timedelta(seconds=BACKOFF_BASE_SECONDS * BACKOFF_MULTIPLIER ** retry_count)


class SyncEngine:
    def __init__(self):
        self._handlers: Dict[str, SyncHandler] = {}
        self._guard = threading.Lock()
        self._processing = False

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def register_handler(self, entity_type: str, handler: SyncHandler) -> None:
        self._handlers[entity_type] = handler

    def has_handler(self, entity_type: str) -> bool:
        return entity_type in self._handlers

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        user: User,
        review: Review,
        entity_type: str,
        entity_id: str,
        action: str,
        payload: Optional[dict] = None,
        max_retries: Optional[int] = None,
    ) -> UUID:
        """Record an operation for later processing. Returns the entry id."""
        if not is_team_member(review, user):
            raise PermissionError("You are not a member of this review team")
        if action not in SyncAction.values:
            raise ValueError(f"Unknown sync action: {action}")

        fields = {}
        if max_retries is not None:
            fields['max_retries'] = max_retries
        entry = SyncQueueEntry.objects.create(
            user=user,
            review=review,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            payload=payload or {},
            **fields,
        )
        logger.info(f"Queued {entity_type} {action} {entity_id} for user {user.id} ({entry.id})")
        return entry.id

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def _due_entries(self, user_id: Optional[UUID]) -> QuerySet:
        qs = SyncQueueEntry.objects.filter(
            sync_status=SyncStatus.PENDING,
            retry_count__lt=F('max_retries'),
            next_attempt_at__lte=timezone.now(),
        )
        if user_id:
            qs = qs.filter(user_id=user_id)
        return qs.order_by('created_at')

    def process_queue(self, user_id: Optional[UUID] = None) -> SyncResult:
        """
        Apply every due entry (one user's, or everyone's) in FIFO order.
        A call made while another run is in progress does nothing.
        """
        with self._guard:
            if self._processing:
                logger.info("Sync queue already being processed, skipping")
                return SyncResult(skipped=True)
            self._processing = True

        result = SyncResult()
        try:
            for entry_id in list(self._due_entries(user_id).values_list('id', flat=True)):
                self._process_entry(entry_id, result)
        finally:
            with self._guard:
                self._processing = False

        logger.info(
            f"Sync run (user={user_id or 'all'}): {result.processed} synced, {result.retried} retried, "
            f"{result.failed} failed, {result.conflicts} conflicts"
        )
        return result

    def _process_entry(self, entry_id: UUID, result: SyncResult) -> None:
        with transaction.atomic():
            entry = (
                SyncQueueEntry.objects.select_for_update(skip_locked=True)
                .select_related('user', 'review')
                .filter(id=entry_id, sync_status=SyncStatus.PENDING)
                .first()
            )
            if entry is None:
                return  # taken by another worker

            handler = self._handlers.get(entry.entity_type)
            if handler is None:
                self._mark_failed(entry, f'No handler for entity type "{entry.entity_type}"')
                result.failed += 1
                return

            try:
                # Savepoint: a failing handler leaves no partial writes
                with transaction.atomic():
                    handler(entry)
            except SyncConflictError as e:
                self._mark_conflict(entry, str(e), e.server_data)
                result.conflicts += 1
            except Exception as e:
                if self._mark_retry(entry, str(e) or e.__class__.__name__):
                    result.retried += 1
                else:
                    result.failed += 1
            else:
                entry.delete()
                self._stamp_checkpoint(entry.user_id)
                result.processed += 1

    def _mark_failed(self, entry: SyncQueueEntry, error: str) -> None:
        entry.retry_count = entry.max_retries
        entry.last_attempt = timezone.now()
        entry.error = error
        entry.sync_status = SyncStatus.FAILED
        entry.save()
        logger.warning(f"Sync entry {entry.id} failed: {error}")

    def _mark_conflict(self, entry: SyncQueueEntry, error: str, server_data: Optional[dict]) -> None:
        entry.retry_count = entry.max_retries
        entry.last_attempt = timezone.now()
        entry.error = error
        entry.server_data = server_data
        entry.sync_status = SyncStatus.CONFLICT
        entry.save()

        review = entry.review
        log_action(
            org_id=review.host_org_id,
            action=AuditAction.SYNC_CONFLICT,
            target_type="SyncQueueEntry",
            target_id=entry.id,
            performed_by=entry.user,
            target_label=f"{entry.entity_type} {entry.entity_id}",
            context={'review_id': str(review.id), 'action': entry.action, 'error': error},
        )
        send_notification(
            [entry.user],
            NotificationPayload(
                type=NotificationType.SYNC_CONFLICT,
                title_en="Offline change not applied",
                title_fr="Modification hors ligne non appliquée",
                message_en=f"A change made offline on review {review.reference_number} conflicts with a newer "
                           f"version on the server. Choose which version to keep.",
                message_fr=f"Une modification faite hors ligne sur la revue {review.reference_number} est en "
                           f"conflit avec une version plus récente sur le serveur. Choisissez la version à conserver.",
                entity_type="SyncQueueEntry",
                entity_id=str(entry.id),
                action_url=f"/reviews/{review.id}/fieldwork",
                priority=NotificationPriority.HIGH,
            ),
            skip_email=True,
        )
        logger.warning(f"Sync conflict on {entry.entity_type} {entry.entity_id} for user {entry.user_id}")

    def _mark_retry(self, entry: SyncQueueEntry, error: str) -> bool:
        """Count a failed attempt. Returns False once the entry has used its retries."""
        now = timezone.now()
        entry.next_attempt_at = now + backoff_delay(entry.retry_count)
        entry.retry_count += 1
        entry.last_attempt = now
        entry.error = error
        entry.sync_status = SyncStatus.FAILED if entry.is_exhausted else SyncStatus.PENDING
        entry.save()
        logger.warning(f"Sync entry {entry.id} attempt {entry.retry_count}/{entry.max_retries} failed: {error}")
        return not entry.is_exhausted

    def _stamp_checkpoint(self, user_id: UUID) -> None:
        checkpoint, _ = SyncCheckpoint.objects.get_or_create(
            user_id=user_id, defaults={'last_sync_at': timezone.now()}
        )
        checkpoint.last_sync_at = timezone.now()
        checkpoint.synced_count = F('synced_count') + 1
        checkpoint.save(update_fields=['last_sync_at', 'synced_count'])

    # -------------------------------------------------------------------------
    # Status / maintenance
    # -------------------------------------------------------------------------

    def get_sync_status(self, user: User) -> SyncEngineStatus:
        entries = SyncQueueEntry.objects.filter(user=user)
        checkpoint = SyncCheckpoint.objects.filter(user=user).first()
        return SyncEngineStatus(
            pending=entries.filter(sync_status=SyncStatus.PENDING).count(),
            failed=entries.filter(sync_status=SyncStatus.FAILED).count(),
            conflicts=entries.filter(sync_status=SyncStatus.CONFLICT).count(),
            last_sync_at=checkpoint.last_sync_at if checkpoint else None,
        )

    def retry_failed(self, user: User) -> int:
        """Give failed entries a fresh retry budget. Conflicts are resolved separately."""
        count = SyncQueueEntry.objects.filter(user=user, sync_status=SyncStatus.FAILED).update(
            sync_status=SyncStatus.PENDING,
            retry_count=0,
            error="",
            last_attempt=None,
            next_attempt_at=timezone.now(),
        )
        if count:
            logger.info(f"Reset {count} failed sync entries for user {user.id}")
        return count

    def resolve_conflict(self, entry: SyncQueueEntry, keep: str) -> Optional[SyncQueueEntry]:
        """
        keep="server" drops the device's change; keep="client" queues it
        again, stamped as newer than the server copy.
        """
        if entry.sync_status != SyncStatus.CONFLICT:
            raise ValueError("Only conflicting entries can be resolved")
        if keep == "server":
            entry.delete()
            return None
        if keep != "client":
            raise ValueError('keep must be "server" or "client"')

        now = timezone.now()
        entry.payload = {**entry.payload, 'clientUpdatedAt': now.isoformat()}
        entry.sync_status = SyncStatus.PENDING
        entry.retry_count = 0
        entry.error = ""
        entry.server_data = None
        entry.next_attempt_at = now
        entry.save()
        return entry

    def clear_completed(self, user: Optional[User] = None) -> int:
        """Drop entries that used up their retries more than a day ago."""
        qs = SyncQueueEntry.objects.filter(
            retry_count__gte=F('max_retries'),
            last_attempt__isnull=False,
            last_attempt__lt=timezone.now() - COMPLETED_TTL,
        )
        if user is not None:
            qs = qs.filter(user=user)
        count, _ = qs.delete()
        return count


sync_engine = SyncEngine()

from . import handlers  # noqa: E402,F401  registers the built-in handlers
