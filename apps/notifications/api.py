from typing import List, Optional
from uuid import UUID
from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_auth
from .dtos import NotificationOut, UnreadCountOut, MarkReadOut
from . import services

router = Router(tags=["Notifications"])


@router.get("", response=List[NotificationOut], auth=None)
def list_notifications(
    request: HttpRequest,
    unread: bool = False,
    locale: Optional[str] = None,
    limit: int = 50,
):
    """Current user's notifications, newest first, in the requested (or preferred) locale."""
    user = require_auth(request)
    locale = locale or user.locale
    return [
        services.to_notification_out(n, locale)
        for n in services.list_notifications(user, unread_only=unread, limit=limit)
    ]


@router.get("/unread-count", response=UnreadCountOut, auth=None)
def get_unread_count(request: HttpRequest):
    user = require_auth(request)
    return {"count": services.unread_count(user)}


@router.post("/{notification_id}/read", response=MarkReadOut, auth=None)
def mark_read(request: HttpRequest, notification_id: UUID):
    user = require_auth(request)
    if not services.mark_as_read(user, notification_id):
        raise HttpError(404, "Notification not found or already read")
    return {"updated": 1}


@router.post("/read-all", response=MarkReadOut, auth=None)
def mark_all_read(request: HttpRequest):
    user = require_auth(request)
    return {"updated": services.mark_all_as_read(user)}
