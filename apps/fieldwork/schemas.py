"""
API Schemas for Fieldwork app.
"""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema, Field
from ninja.orm import create_schema

from .models import SyncQueueEntry

SyncEntryOut = create_schema(SyncQueueEntry)


class SyncOperationIn(Schema):
    entity_type: str
    entity_id: str = Field(..., min_length=1, max_length=64)
    action: str
    payload: Dict = {}


class SyncBatchIn(Schema):
    review_id: UUID
    operations: List[SyncOperationIn] = Field(..., min_length=1)


class ConflictResolutionIn(Schema):
    keep: str  # server | client


class SyncQueuedOut(Schema):
    entry_ids: List[UUID]


class SyncResultOut(Schema):
    processed: int
    failed: int
    conflicts: int
    retried: int
    skipped: bool


class SyncStatusOut(Schema):
    pending: int
    failed: int
    conflicts: int
    last_sync_at: Optional[datetime] = None


class CountOut(Schema):
    count: int


class OfflineDataOut(Schema):
    review: Dict
    checklist_items: List[Dict]
    findings: List[Dict]
    team_members: List[Dict]
    generated_at: datetime
