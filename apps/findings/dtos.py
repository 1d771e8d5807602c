"""DTOs for Findings app - deadline tracking and escalation."""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from uuid import UUID


@dataclass(frozen=True)
class DeadlineInfo:
    due_date: date
    days_remaining: int
    is_overdue: bool
    is_due_today: bool
    is_due_soon: bool
    urgency_level: str  # overdue | critical | warning | normal
    percentage_complete: int


@dataclass(frozen=True)
class MilestoneProgress:
    total: int = 0
    completed: int = 0
    overdue: int = 0
    upcoming: int = 0
    in_progress: int = 0


@dataclass
class CAPWithDeadlineInfo:
    cap: object
    deadline_info: DeadlineInfo
    milestone_progress: MilestoneProgress


@dataclass
class EscalationEvent:
    type: str  # 7_DAYS_BEFORE | 1_DAY_BEFORE | DUE_TODAY | OVERDUE | MILESTONE_OVERDUE
    cap_id: UUID
    finding_reference: str
    finding_title_en: str
    finding_title_fr: str
    severity: str
    organization_name_en: str
    organization_name_fr: str
    recipient_ids: List[UUID] = field(default_factory=list)
    milestone_id: Optional[UUID] = None
    days_overdue: Optional[int] = None
