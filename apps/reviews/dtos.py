"""DTOs for Reviews app - state machine results and cross-app views."""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from uuid import UUID


@dataclass
class TransitionValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransitionCondition:
    label: str
    met: bool


@dataclass
class TransitionCheck:
    allowed: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    conditions: List[TransitionCondition] = field(default_factory=list)


@dataclass
class AvailableTransition:
    target_status: str
    can_transition: bool
    conditions: List[TransitionCondition] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TransitionResult:
    success: bool
    review: Optional[object] = None
    previous_status: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReviewDTO:
    """Review summary shared with findings, reports and fieldwork."""
    id: UUID
    reference_number: str
    host_org_id: UUID
    status: str
    review_type: str
    planned_start_date: Optional[date]
    planned_end_date: Optional[date]
    actual_start_date: Optional[date]
    actual_end_date: Optional[date]
