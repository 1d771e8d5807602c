"""DTOs for Analytics app - regional team statistics."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import UUID


@dataclass
class OrganizationStats:
    id: UUID
    name: str
    organization_code: Optional[str]
    country: str
    is_lead: bool
    reviewer_count: int
    reviews_hosted: int
    reviews_participated: int


@dataclass
class TeamStatistics:
    team_id: UUID
    team_name: str
    team_name_fr: str
    team_number: int
    team_code: str
    lead_organization_id: Optional[UUID]
    lead_organization_name: Optional[str]

    # Composition
    organization_count: int
    reviewer_count: int
    lead_qualified_count: int
    available_reviewer_count: int

    # Review activity
    reviews_completed: int
    reviews_in_progress: int
    reviews_scheduled: int
    reviews_planning: int
    total_reviews: int

    # Findings
    total_findings: int
    open_findings: int
    closed_findings: int
    findings_by_severity: Dict[str, int]

    # CAP performance
    total_caps: int
    open_caps: int
    closed_caps: int
    overdue_caps: int
    cap_closure_rate: float
    avg_cap_closure_days: Optional[int]

    avg_review_duration_days: Optional[int]
    participation_score: str  # A+ | A | B+ | B | C | D

    organizations: List[OrganizationStats] = field(default_factory=list)


@dataclass
class TeamComparison:
    teams: List[TeamStatistics]
    summary: Dict[str, float]


@dataclass(frozen=True)
class LeaderboardEntry:
    team_id: UUID
    team_name: str
    team_number: int
    participation_score: str
    cap_closure_rate: float
    reviews_completed: int
    reviewer_count: int
