"""
API Schemas for Analytics app.
"""
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema


class OrganizationStatsOut(Schema):
    id: UUID
    name: str
    organization_code: Optional[str] = None
    country: str
    is_lead: bool
    reviewer_count: int
    reviews_hosted: int
    reviews_participated: int


class TeamStatisticsOut(Schema):
    team_id: UUID
    team_name: str
    team_name_fr: str
    team_number: int
    team_code: str
    lead_organization_id: Optional[UUID] = None
    lead_organization_name: Optional[str] = None

    organization_count: int
    reviewer_count: int
    lead_qualified_count: int
    available_reviewer_count: int

    reviews_completed: int
    reviews_in_progress: int
    reviews_scheduled: int
    reviews_planning: int
    total_reviews: int

    total_findings: int
    open_findings: int
    closed_findings: int
    findings_by_severity: Dict[str, int]

    total_caps: int
    open_caps: int
    closed_caps: int
    overdue_caps: int
    cap_closure_rate: float
    avg_cap_closure_days: Optional[int] = None

    avg_review_duration_days: Optional[int] = None
    participation_score: str

    organizations: List[OrganizationStatsOut]


class TeamComparisonOut(Schema):
    teams: List[TeamStatisticsOut]
    summary: Dict[str, float]


class LeaderboardEntryOut(Schema):
    team_id: UUID
    team_name: str
    team_number: int
    participation_score: str
    cap_closure_rate: float
    reviews_completed: int
    reviewer_count: int


class CompareTeamsIn(Schema):
    team_ids: List[UUID]
