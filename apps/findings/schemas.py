"""
API Schemas for Findings app.
"""
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema, Field
from ninja.orm import create_schema

from .models import Finding, CorrectiveActionPlan, CAPMilestone

FindingOut = create_schema(Finding)
CAPOut = create_schema(CorrectiveActionPlan)
MilestoneOut = create_schema(CAPMilestone)


# =============================================================================
# Request Schemas
# =============================================================================

class FindingIn(Schema):
    review_id: UUID
    finding_type: str
    severity: str
    title_en: str = Field(..., min_length=3, max_length=255)
    title_fr: str = ""
    description_en: str = Field(..., min_length=3)
    description_fr: str = ""
    evidence_en: str = ""
    evidence_fr: str = ""
    icao_reference: str = ""
    audit_area: str = ""
    critical_element: str = ""
    cap_required: Optional[bool] = None  # defaults from type and severity
    target_close_date: Optional[date] = None


class FindingUpdateIn(Schema):
    finding_type: Optional[str] = None
    severity: Optional[str] = None
    title_en: Optional[str] = None
    title_fr: Optional[str] = None
    description_en: Optional[str] = None
    description_fr: Optional[str] = None
    evidence_en: Optional[str] = None
    evidence_fr: Optional[str] = None
    icao_reference: Optional[str] = None
    audit_area: Optional[str] = None
    critical_element: Optional[str] = None
    cap_required: Optional[bool] = None
    target_close_date: Optional[date] = None


class FindingStatusIn(Schema):
    status: str
    comment: str = ""


class CAPIn(Schema):
    root_cause_en: str = Field(..., min_length=10)
    root_cause_fr: str = ""
    corrective_action_en: str = Field(..., min_length=10)
    corrective_action_fr: str = ""
    preventive_action_en: str = ""
    preventive_action_fr: str = ""
    responsible_person: str = Field(..., min_length=2, max_length=200)
    responsible_role: str = ""
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[date] = None  # defaults from severity


class CAPUpdateIn(Schema):
    root_cause_en: Optional[str] = None
    root_cause_fr: Optional[str] = None
    corrective_action_en: Optional[str] = None
    corrective_action_fr: Optional[str] = None
    preventive_action_en: Optional[str] = None
    preventive_action_fr: Optional[str] = None
    responsible_person: Optional[str] = None
    responsible_role: Optional[str] = None
    due_date: Optional[date] = None


class CAPTransitionIn(Schema):
    status: str
    notes: str = ""
    reason: str = ""


class MilestoneIn(Schema):
    title_en: str = Field(..., min_length=2, max_length=255)
    title_fr: str = ""
    target_date: date
    sort_order: int = 0


class MilestoneStatusIn(Schema):
    status: str


# =============================================================================
# Response Schemas
# =============================================================================

class FindingDetailOut(Schema):
    finding: FindingOut
    cap: Optional[CAPOut] = None
    allowed_statuses: List[str]


class DeadlineInfoOut(Schema):
    due_date: date
    days_remaining: int
    is_overdue: bool
    is_due_today: bool
    is_due_soon: bool
    urgency_level: str
    percentage_complete: int


class MilestoneProgressOut(Schema):
    total: int
    completed: int
    overdue: int
    upcoming: int
    in_progress: int


class CAPDetailOut(Schema):
    cap: CAPOut
    milestones: List[MilestoneOut]
    deadline_info: DeadlineInfoOut
    milestone_progress: MilestoneProgressOut
    allowed_statuses: List[str]


class CAPDeadlineOut(Schema):
    cap: CAPOut
    deadline_info: DeadlineInfoOut
    milestone_progress: MilestoneProgressOut


class CAPStatisticsOut(Schema):
    total: int
    by_status: Dict[str, int]
    overdue: int
    due_soon: int
    average_days_to_close: Optional[int] = None
    on_time_completion_rate: Optional[int] = None


class TaskQueuedOut(Schema):
    task_id: str
