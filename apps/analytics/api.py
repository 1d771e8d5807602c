from typing import List
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_any_permission
from apps.identity.models import User
from apps.identity.permissions import Permissions, get_user_permissions
from apps.organizations.models import RegionalTeam
from .schemas import TeamStatisticsOut, TeamComparisonOut, LeaderboardEntryOut, CompareTeamsIn
from . import team_statistics

router = Router(tags=["Analytics"])

# Programme-wide views
_ALL_TEAMS = (Permissions.ANALYTICS, Permissions.TEAMS_ALL)
# Any team view, limited to the caller's own team
_OWN_TEAM = (Permissions.TEAMS, Permissions.TEAMS_DETAILS, Permissions.TEAMS_ALL)


def _can_see_all_teams(user: User) -> bool:
    granted = get_user_permissions(user)
    return user.is_superuser or any(p in granted for p in _ALL_TEAMS)


def _team_stats_for(user: User, team: RegionalTeam):
    if not _can_see_all_teams(user) and not team.organizations.filter(id=user.org_id).exists():
        raise HttpError(403, "You can only view your own regional team")
    return team_statistics.get_team_statistics(team.id)


@router.get("/teams", response=List[TeamStatisticsOut], auth=None)
def list_team_statistics(request: HttpRequest):
    require_any_permission(request, *_ALL_TEAMS)
    return team_statistics.get_all_teams_statistics()


@router.get("/teams/leaderboard", response=List[LeaderboardEntryOut], auth=None)
def team_leaderboard(request: HttpRequest):
    require_any_permission(request, *_ALL_TEAMS)
    return team_statistics.get_team_leaderboard()


@router.post("/teams/compare", response=TeamComparisonOut, auth=None)
def compare_teams(request: HttpRequest, payload: CompareTeamsIn):
    require_any_permission(request, *_ALL_TEAMS)
    found = set(RegionalTeam.objects.filter(id__in=payload.team_ids).values_list('id', flat=True))
    missing = [str(t) for t in payload.team_ids if t not in found]
    if missing:
        raise HttpError(404, f"Teams not found: {', '.join(missing)}")
    return team_statistics.compare_teams(payload.team_ids)


@router.get("/teams/mine", response=TeamStatisticsOut, auth=None)
def my_team_statistics(request: HttpRequest):
    user = require_any_permission(request, *_OWN_TEAM)
    stats = team_statistics.get_team_statistics_for_organization(user.org_id) if user.org_id else None
    if stats is None:
        raise HttpError(404, "Your organization is not assigned to a regional team")
    return stats


@router.get("/teams/number/{team_number}", response=TeamStatisticsOut, auth=None)
def team_statistics_by_number(request: HttpRequest, team_number: int):
    user = require_any_permission(request, *_OWN_TEAM)
    team = get_object_or_404(RegionalTeam, team_number=team_number)
    return _team_stats_for(user, team)


@router.get("/teams/{team_id}", response=TeamStatisticsOut, auth=None)
def team_statistics_detail(request: HttpRequest, team_id: UUID):
    user = require_any_permission(request, *_OWN_TEAM)
    team = get_object_or_404(RegionalTeam, id=team_id)
    return _team_stats_for(user, team)
