"""DTOs for Fieldwork app - offline sync queue."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class SyncResult:
    processed: int = 0
    failed: int = 0
    conflicts: int = 0
    retried: int = 0
    skipped: bool = False  # another run held the engine


@dataclass(frozen=True)
class SyncEngineStatus:
    pending: int
    failed: int
    conflicts: int
    last_sync_at: Optional[datetime]
