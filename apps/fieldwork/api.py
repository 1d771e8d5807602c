from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth
from apps.reviews.services import visible_reviews
from .models import SyncQueueEntry
from .schemas import (
    SyncEntryOut, SyncBatchIn, ConflictResolutionIn,
    SyncQueuedOut, SyncResultOut, SyncStatusOut, CountOut, OfflineDataOut,
)
from .sync_engine import sync_engine
from . import services

router = Router(tags=["Fieldwork"])


@router.post("/queue", response={202: SyncQueuedOut}, auth=None)
def push_operations(request: HttpRequest, payload: SyncBatchIn):
    """Queue operations recorded offline; processing starts in the background."""
    user = require_auth(request)
    review = get_object_or_404(visible_reviews(user), id=payload.review_id)
    try:
        entry_ids = services.queue_operations(review, user, [op.dict() for op in payload.operations])
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))
    return 202, {'entry_ids': entry_ids}


@router.get("/queue", response=List[SyncEntryOut], auth=None)
def list_queue(request: HttpRequest, status: Optional[str] = None):
    user = require_auth(request)
    return services.list_queue(user, status)


@router.post("/sync", response=SyncResultOut, auth=None)
def sync_now(request: HttpRequest):
    """Process the caller's due entries immediately."""
    user = require_auth(request)
    return sync_engine.process_queue(user_id=user.id)


@router.get("/status", response=SyncStatusOut, auth=None)
def sync_status(request: HttpRequest):
    user = require_auth(request)
    return sync_engine.get_sync_status(user)


@router.post("/retry", response=CountOut, auth=None)
def retry_failed(request: HttpRequest):
    user = require_auth(request)
    return {'count': sync_engine.retry_failed(user)}


@router.post("/queue/{entry_id}/resolve", response={200: SyncEntryOut, 204: None}, auth=None)
def resolve_conflict(request: HttpRequest, entry_id: UUID, payload: ConflictResolutionIn):
    user = require_auth(request)
    entry = get_object_or_404(SyncQueueEntry, id=entry_id, user=user)
    try:
        entry = sync_engine.resolve_conflict(entry, payload.keep)
    except ValueError as e:
        raise HttpError(400, str(e))
    if entry is None:
        return 204, None
    return entry


@router.delete("/completed", response=CountOut, auth=None)
def clear_completed(request: HttpRequest):
    user = require_auth(request)
    return {'count': sync_engine.clear_completed(user)}


@router.get("/reviews/{review_id}/offline-data", response=OfflineDataOut, auth=None)
def offline_data(request: HttpRequest, review_id: UUID):
    user = require_auth(request)
    review = get_object_or_404(visible_reviews(user), id=review_id)
    try:
        return services.get_review_offline_data(review, user)
    except PermissionError as e:
        raise HttpError(403, str(e))
