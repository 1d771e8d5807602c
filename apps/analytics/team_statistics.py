"""
Team statistics service.

Metrics for each regional team, computed over its member organizations:
composition, review activity, findings, CAP performance and an overall
participation grade.
"""
import logging
import math
from collections import Counter
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple, Union
from uuid import UUID

from django.utils import timezone

from apps.findings.models import Finding, FindingSeverity, FindingStatus, CorrectiveActionPlan, CAPStatus
from apps.identity.models import User
from apps.identity.permissions import REVIEWER_ROLES
from apps.organizations.models import Organization, RegionalTeam
from apps.reviewers.models import SelectionStatus
from apps.reviews.models import Review, ReviewStatus, ReviewTeamMember, InvitationStatus
from .dtos import OrganizationStats, TeamStatistics, TeamComparison, LeaderboardEntry

logger = logging.getLogger(__name__)

CLOSED_CAP_STATUSES = [CAPStatus.CLOSED, CAPStatus.VERIFIED]
INACTIVE_FINDING_STATUSES = [FindingStatus.CLOSED, FindingStatus.DEFERRED]
PLANNING_REVIEW_STATUSES = [ReviewStatus.PLANNING, ReviewStatus.APPROVED]

TARGET_REVIEWERS_PER_ORG = 3

# Lowest score for each grade, best first
SCORE_GRADES = [(90, "A+"), (80, "A"), (70, "B+"), (60, "B"), (50, "C")]
GRADE_ORDER = {"A+": 0, "A": 1, "B+": 2, "B": 3, "C": 4, "D": 5}

Moment = Union[date, datetime]


# =============================================================================
# Helpers
# =============================================================================

def calculate_avg_days(pairs: Iterable[Tuple[Optional[Moment], Optional[Moment]]]) -> Optional[int]:
    """Mean length in days of (start, end) pairs, rounded; None when no pair is complete."""
    spans = [(end - start).total_seconds() / 86400 for start, end in pairs if start and end]
    if not spans:
        return None
    return math.floor(sum(spans) / len(spans) + 0.5)


def calculate_participation_score(
    reviews_completed: int,
    total_reviews: int,
    cap_closure_rate: float,
    reviewer_count: int,
    organization_count: int,
) -> str:
    """
    Weighted grade: 40% review completion, 40% CAP closure rate and 20%
    reviewer density against a target of three reviewers per organization.
    """
    completion = reviews_completed / total_reviews * 100 if total_reviews else 0
    density = 0
    if organization_count:
        density = min(reviewer_count / (organization_count * TARGET_REVIEWERS_PER_ORG) * 100, 100)

    total = completion * 0.4 + cap_closure_rate * 0.4 + density * 0.2
    for threshold, grade in SCORE_GRADES:
        if total >= threshold:
            return grade
    return "D"


def is_available_reviewer(reviewer: dict) -> bool:
    """An active user whose reviewer profile is selected and marked available."""
    return bool(
        reviewer['is_active']
        and reviewer['reviewer_profile__is_available']
        and reviewer['reviewer_profile__selection_status'] == SelectionStatus.SELECTED
    )


# =============================================================================
# Statistics
# =============================================================================

def get_team_statistics(team_id: UUID) -> TeamStatistics:
    team = RegionalTeam.objects.get(id=team_id)
    orgs = list(team.organizations.order_by('name_en'))
    org_ids = [o.id for o in orgs]

    reviewers = list(
        User.objects.filter(org_id__in=org_ids, role__in=REVIEWER_ROLES).values(
            'org_id', 'is_active', 'reviewer_profile__is_lead_qualified', 'reviewer_profile__is_available',
            'reviewer_profile__selection_status',
        )
    )
    reviews = list(
        Review.objects.filter(host_org_id__in=org_ids)
        .values('host_org_id', 'status', 'actual_start_date', 'actual_end_date')
    )
    findings = list(Finding.objects.filter(org_id__in=org_ids).values('severity', 'status'))
    caps = list(
        CorrectiveActionPlan.objects.filter(finding__org_id__in=org_ids)
        .values('status', 'due_date', 'created_at', 'closed_at')
    )
    participations = Counter(
        ReviewTeamMember.objects.filter(user__org_id__in=org_ids, invitation_status=InvitationStatus.CONFIRMED)
        .values_list('user__org_id', flat=True)
    )

    # Reviews
    review_status = Counter(r['status'] for r in reviews)
    reviews_completed = review_status[ReviewStatus.COMPLETED]
    avg_review_duration = calculate_avg_days(
        (r['actual_start_date'], r['actual_end_date']) for r in reviews if r['status'] == ReviewStatus.COMPLETED
    )

    # Findings
    severity = Counter(f['severity'] for f in findings)

    # CAPs
    today = timezone.localdate()
    closed_caps = [c for c in caps if c['status'] in CLOSED_CAP_STATUSES]
    overdue_caps = sum(1 for c in caps if c['status'] not in CLOSED_CAP_STATUSES and c['due_date'] < today)
    closure_rate = len(closed_caps) / len(caps) * 100 if caps else 0

    reviewer_count = len(reviewers)
    lead_org = next((o for o in orgs if o.id == team.lead_org_id), None)
    if lead_org is None and team.lead_org_id:
        lead_org = Organization.objects.filter(id=team.lead_org_id).first()

    hosted = Counter(r['host_org_id'] for r in reviews)
    reviewers_per_org = Counter(r['org_id'] for r in reviewers)

    return TeamStatistics(
        team_id=team.id,
        team_name=team.name_en,
        team_name_fr=team.name_fr,
        team_number=team.team_number,
        team_code=team.code,
        lead_organization_id=team.lead_org_id,
        lead_organization_name=lead_org.name_en if lead_org else None,
        organization_count=len(orgs),
        reviewer_count=reviewer_count,
        lead_qualified_count=sum(1 for r in reviewers if r['reviewer_profile__is_lead_qualified']),
        available_reviewer_count=sum(1 for r in reviewers if is_available_reviewer(r)),
        reviews_completed=reviews_completed,
        reviews_in_progress=review_status[ReviewStatus.IN_PROGRESS],
        reviews_scheduled=review_status[ReviewStatus.SCHEDULED],
        reviews_planning=sum(review_status[s] for s in PLANNING_REVIEW_STATUSES),
        total_reviews=len(reviews),
        total_findings=len(findings),
        open_findings=sum(1 for f in findings if f['status'] not in INACTIVE_FINDING_STATUSES),
        closed_findings=sum(1 for f in findings if f['status'] == FindingStatus.CLOSED),
        findings_by_severity={
            'critical': severity[FindingSeverity.CRITICAL],
            'major': severity[FindingSeverity.MAJOR],
            'minor': severity[FindingSeverity.MINOR],
            'observation': severity[FindingSeverity.OBSERVATION],
        },
        total_caps=len(caps),
        open_caps=len(caps) - len(closed_caps),
        closed_caps=len(closed_caps),
        overdue_caps=overdue_caps,
        cap_closure_rate=round(closure_rate, 1),
        avg_cap_closure_days=calculate_avg_days((c['created_at'], c['closed_at']) for c in closed_caps),
        avg_review_duration_days=avg_review_duration,
        participation_score=calculate_participation_score(
            reviews_completed, len(reviews), closure_rate, reviewer_count, len(orgs),
        ),
        organizations=[
            OrganizationStats(
                id=org.id,
                name=org.name_en,
                organization_code=org.organization_code,
                country=org.country,
                is_lead=org.id == team.lead_org_id,
                reviewer_count=reviewers_per_org[org.id],
                reviews_hosted=hosted[org.id],
                reviews_participated=participations[org.id],
            )
            for org in orgs
        ],
    )


def get_all_teams_statistics() -> List[TeamStatistics]:
    stats = [
        get_team_statistics(team_id)
        for team_id in RegionalTeam.objects.filter(is_active=True).order_by('team_number').values_list('id', flat=True)
    ]
    logger.info(f"Computed statistics for {len(stats)} regional teams")
    return stats


def get_team_statistics_for_organization(org_id: UUID) -> Optional[TeamStatistics]:
    team_id = Organization.objects.filter(id=org_id).values_list('regional_team_id', flat=True).first()
    if not team_id:
        return None
    return get_team_statistics(team_id)


def get_team_statistics_by_number(team_number: int) -> Optional[TeamStatistics]:
    team_id = RegionalTeam.objects.filter(team_number=team_number).values_list('id', flat=True).first()
    if not team_id:
        return None
    return get_team_statistics(team_id)


def compare_teams(team_ids: List[UUID]) -> TeamComparison:
    teams = [get_team_statistics(team_id) for team_id in team_ids]
    avg_closure = round(sum(t.cap_closure_rate for t in teams) / len(teams), 1) if teams else 0
    return TeamComparison(
        teams=teams,
        summary={
            'total_organizations': sum(t.organization_count for t in teams),
            'total_reviewers': sum(t.reviewer_count for t in teams),
            'total_reviews': sum(t.total_reviews for t in teams),
            'total_findings': sum(t.total_findings for t in teams),
            'avg_cap_closure_rate': avg_closure,
        },
    )


def get_team_leaderboard() -> List[LeaderboardEntry]:
    """Teams ranked by participation grade, then by CAP closure rate."""
    entries = [
        LeaderboardEntry(
            team_id=t.team_id,
            team_name=t.team_name,
            team_number=t.team_number,
            participation_score=t.participation_score,
            cap_closure_rate=t.cap_closure_rate,
            reviews_completed=t.reviews_completed,
            reviewer_count=t.reviewer_count,
        )
        for t in get_all_teams_statistics()
    ]
    return sorted(entries, key=lambda e: (GRADE_ORDER[e.participation_score], -e.cap_closure_rate))
