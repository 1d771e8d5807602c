"""
Built-in sync handlers: checklist updates and draft findings.
"""
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.findings.models import Finding, FindingType, FindingSeverity
from apps.findings.schemas import FindingIn
from apps.findings.services import create_finding
from apps.reviews.models import FieldworkChecklistItem
from apps.reviews.services import update_checklist_item
from .models import SyncQueueEntry, SyncEntityType, SyncAction
from .sync_engine import sync_engine, SyncConflictError

logger = logging.getLogger(__name__)


def _parse_client_time(value) -> Optional[datetime]:
    if not value:
        return None
    parsed = parse_datetime(str(value))
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _checklist_snapshot(item: FieldworkChecklistItem) -> dict:
    return {
        'id': str(item.id),
        'isCompleted': item.is_completed,
        'completedAt': item.completed_at.isoformat() if item.completed_at else None,
        'notes': item.notes,
        'updatedAt': item.updated_at.isoformat(),
    }


def sync_checklist_item(entry: SyncQueueEntry) -> dict:
    """Apply a checklist tick; the server copy wins when it changed after the device's edit."""
    if entry.action != SyncAction.UPDATE:
        raise ValueError(f"Checklist items only accept UPDATE, got {entry.action}")

    item = FieldworkChecklistItem.objects.filter(id=entry.entity_id, review_id=entry.review_id).first()
    if item is None:
        raise ValueError("Checklist item not found")

    payload = entry.payload
    client_updated_at = _parse_client_time(payload.get('clientUpdatedAt'))
    if client_updated_at is None:
        raise ValueError("clientUpdatedAt is required")
    if item.updated_at > client_updated_at:
        raise SyncConflictError("The checklist item was changed on the server", _checklist_snapshot(item))

    item = update_checklist_item(
        item, entry.user, is_completed=bool(payload.get('isCompleted')), notes=payload.get('notes'),
    )
    return _checklist_snapshot(item)


def sync_draft_finding(entry: SyncQueueEntry) -> dict:
    """Create a finding drafted offline. Replays of the same draft return the existing finding."""
    if entry.action != SyncAction.CREATE:
        raise ValueError(f"Draft findings only accept CREATE, got {entry.action}")

    client_id = entry.entity_id
    existing = Finding.objects.filter(client_id=client_id).first()
    if existing is not None:
        return {'status': 'already_synced', 'finding_id': str(existing.id), 'reference_number': existing.reference_number}

    payload = entry.payload
    evidence = ""
    if payload.get('gpsLatitude') is not None and payload.get('gpsLongitude') is not None:
        evidence = f"GPS: {payload['gpsLatitude']}, {payload['gpsLongitude']}"

    finding = create_finding(
        entry.review,
        FindingIn(
            review_id=entry.review_id,
            finding_type=payload.get('findingType') or FindingType.OBSERVATION,
            severity=payload.get('severity') or FindingSeverity.OBSERVATION,
            title_en=payload.get('title', ''),
            title_fr=payload.get('titleFr', ''),
            description_en=payload.get('description', ''),
            description_fr=payload.get('descriptionFr', ''),
            evidence_en=evidence,
            audit_area=payload.get('areaCode') or '',
        ),
        entry.user,
        client_id=client_id,
    )
    logger.info(f"Draft finding {client_id} synced as {finding.reference_number}")
    return {'status': 'synced', 'finding_id': str(finding.id), 'reference_number': finding.reference_number}


sync_engine.register_handler(SyncEntityType.CHECKLIST_ITEM, sync_checklist_item)
sync_engine.register_handler(SyncEntityType.DRAFT_FINDING, sync_draft_finding)
