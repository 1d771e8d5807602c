"""DTOs and schemas for Notifications app."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from ninja import Schema

from .models import NotificationPriority


@dataclass(frozen=True)
class NotificationPayload:
    """Bilingual content and metadata of one notification fan-out."""
    type: str
    title_en: str
    title_fr: str
    message_en: str
    message_fr: str
    entity_type: str = ""
    entity_id: str = ""
    action_url: str = ""
    action_label_en: str = ""
    action_label_fr: str = ""
    priority: str = NotificationPriority.NORMAL
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SendNotificationResult:
    in_app_count: int = 0
    email_count: int = 0
    errors: List[str] = field(default_factory=list)


class NotificationOut(Schema):
    id: UUID
    type: str
    priority: str
    title: str
    message: str
    action_label: str
    entity_type: str
    entity_id: str
    action_url: str
    data: Dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class UnreadCountOut(Schema):
    count: int


class MarkReadOut(Schema):
    updated: int
