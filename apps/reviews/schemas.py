"""
API Schemas for Reviews app.
"""
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema, Field
from ninja.orm import create_schema

from .models import (
    Review, ReviewTeamMember, FieldworkChecklistItem,
    ReviewType, ReviewLocationType, LanguagePreference, TeamRole,
)

ReviewOut = create_schema(Review, exclude=['assessments'])
TeamMemberOut = create_schema(ReviewTeamMember)
ChecklistItemOut = create_schema(FieldworkChecklistItem, exclude=['review'])


# =============================================================================
# Request Schemas
# =============================================================================

class ReviewRequestIn(Schema):
    host_org_id: Optional[UUID] = None  # programme users only; defaults to own organization
    review_type: str = ReviewType.FULL
    location_type: str = ReviewLocationType.ON_SITE
    language_preference: str = LanguagePreference.BOTH
    requested_start_date: Optional[date] = None
    requested_end_date: Optional[date] = None
    areas_in_scope: List[str] = []
    assessment_ids: List[UUID] = []
    objectives: str = ""
    special_requirements: str = ""
    primary_contact_name: str = ""
    primary_contact_email: str = ""
    primary_contact_phone: str = ""


class ScheduleIn(Schema):
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None


class TeamMemberIn(Schema):
    user_id: UUID
    role: str = TeamRole.REVIEWER
    assigned_areas: List[str] = []


class InvitationResponseIn(Schema):
    accept: bool
    decline_reason: str = Field("", max_length=2000)


class ReviewTransitionIn(Schema):
    status: str
    reason: str = ""
    notes: str = ""
    effective_date: Optional[date] = None  # actual start or end of fieldwork


class ChecklistItemUpdateIn(Schema):
    is_completed: bool
    notes: Optional[str] = None


# =============================================================================
# Response Schemas
# =============================================================================

class ReviewDetailOut(Schema):
    review: ReviewOut
    team: List[TeamMemberOut]
    assessment_ids: List[UUID]
    progress_percentage: int
    status_label: str


class ConditionOut(Schema):
    label: str
    met: bool


class TransitionCheckOut(Schema):
    allowed: bool
    errors: List[str]
    warnings: List[str]
    conditions: List[ConditionOut]


class AvailableTransitionOut(Schema):
    target_status: str
    can_transition: bool
    conditions: List[ConditionOut]
    warnings: List[str]


class TransitionResultOut(Schema):
    review: ReviewOut
    previous_status: str
    warnings: List[str]


class StatusFlowOut(Schema):
    status: str
    label: str
    description: str
    next_statuses: List[str]


class PhaseProgressOut(Schema):
    total: int
    completed: int


class ChecklistOut(Schema):
    items: List[ChecklistItemOut]
    total: int
    completed: int
    percentage: int
    by_phase: Dict[str, PhaseProgressOut]
