"""
Reviewer matching.

Ranks candidate reviewers for a review and assembles a team. A reviewer
is ineligible with a hard conflict of interest, under half of the
required expertise, without a usable required language, or available
for under half of the review days. Soft conflicts only add a warning.

Every function here is pure and works on ReviewerCandidate values; the
services module builds them from the database.
"""
from typing import List, Optional, Set, Tuple
from uuid import UUID

from .constants import (
    COI_TYPE_CONFIG, HARD_COI_TYPES, MIN_TEAM_SIZE, MAX_TEAM_SIZE,
    MIN_EXPERTISE_COVERAGE, MIN_AVAILABILITY_COVERAGE, AVAILABLE_COVERAGE,
)
from .dtos import (
    ReviewerCandidate, MatchingCriteria, MatchResult, COIStatus, AvailabilityStatus,
    CoverageReport, TeamBuildResult, ExpertiseScore, LanguageScore,
)
from .models import COIType
from .scoring import score_expertise, score_language, score_availability, score_experience, calculate_total_score

# Value a candidate adds to the team beyond their own score
NEW_EXPERTISE_VALUE = 10
NEW_LANGUAGE_VALUE = 8
LEAD_VALUE = 15
OWN_SCORE_WEIGHT = 0.7
TEAM_VALUE_WEIGHT = 0.3

INELIGIBILITY_REASONS = {
    COIType.HOME_ORGANIZATION: ("Works at target organization", "Travaille pour l'organisation cible"),
    COIType.FAMILY_RELATIONSHIP: (
        "Has family member at target organization", "A un membre de la famille dans l'organisation cible",
    ),
}
DEFAULT_COI_REASON = ("Conflict of interest with target organization", "Conflit d'intérêts avec l'organisation cible")


# =============================================================================
# Conflicts of interest
# =============================================================================

def check_coi_status(candidate: ReviewerCandidate, target_org_id: UUID) -> COIStatus:
    if candidate.home_org_id and candidate.home_org_id == target_org_id:
        return COIStatus(
            has_conflict=True, severity="HARD", coi_type=COIType.HOME_ORGANIZATION, reason="Home organization",
        )

    for conflict in candidate.conflicts:
        if conflict.org_id != target_org_id:
            continue
        hard = conflict.coi_type in HARD_COI_TYPES
        config = COI_TYPE_CONFIG.get(conflict.coi_type)
        return COIStatus(
            has_conflict=True,
            severity="HARD" if hard else "SOFT",
            coi_type=conflict.coi_type,
            reason=config.reason.en if config else "Conflict of interest",
            is_waivable=not hard,
        )
    return COIStatus(has_conflict=False)


# =============================================================================
# Scoring one reviewer
# =============================================================================

def _eligibility(
    coi: COIStatus,
    expertise: ExpertiseScore,
    language: LanguageScore,
    availability: AvailabilityStatus,
) -> Tuple[bool, str, str]:
    if coi.has_conflict and coi.severity == "HARD":
        en, fr = INELIGIBILITY_REASONS.get(coi.coi_type, DEFAULT_COI_REASON)
        return False, en, fr

    required_count = len(expertise.matched_required) + len(expertise.missing_required)
    if required_count and len(expertise.matched_required) / required_count < MIN_EXPERTISE_COVERAGE:
        return False, "Insufficient expertise match", "Expertise insuffisante"

    if not language.can_conduct_review and language.missing_languages:
        return (
            False,
            "Cannot conduct review in required languages",
            "Ne peut pas effectuer la revue dans les langues requises",
        )

    if availability.coverage < MIN_AVAILABILITY_COVERAGE:
        return False, "Unavailable during review period", "Indisponible pendant la période de revue"

    return True, "", ""


def calculate_match_score(candidate: ReviewerCandidate, criteria: MatchingCriteria) -> MatchResult:
    expertise = score_expertise(candidate.expertise, criteria.required_expertise, criteria.preferred_expertise)
    language = score_language(candidate.languages, criteria.required_languages)
    availability = score_availability(candidate.availability, criteria.start_date, criteria.end_date)
    experience = score_experience(candidate.years_experience, candidate.reviews_completed)
    total = calculate_total_score(expertise, language, availability, experience)
    coi = check_coi_status(candidate, criteria.target_org_id)

    availability_status = AvailabilityStatus(
        is_available=availability.coverage >= AVAILABLE_COVERAGE,
        available_days=availability.available_days,
        total_days=availability.total_days,
        coverage=availability.coverage,
        conflicts=availability.conflicts,
    )

    warnings = []
    if coi.has_conflict:
        warnings.append(f"{'Hard' if coi.severity == 'HARD' else 'Soft'} COI: {coi.reason}")
    if expertise.missing_required:
        warnings.append(f"Missing expertise: {', '.join(expertise.missing_required)}")
    if language.missing_languages:
        warnings.append(f"Missing languages: {', '.join(language.missing_languages)}")
    if not availability_status.is_available:
        warnings.append(f"Low availability: {round(availability.coverage * 100)}%")
    if not language.can_conduct_review:
        warnings.append("Cannot conduct review in required languages")

    eligible, reason_en, reason_fr = _eligibility(coi, expertise, language, availability_status)
    return MatchResult(
        candidate=candidate,
        score=total.total_score,
        max_score=total.max_possible_score,
        percentage=total.percentage,
        breakdown=total,
        expertise=expertise,
        language=language,
        availability=availability,
        experience=experience,
        coi_status=coi,
        availability_status=availability_status,
        warnings=warnings,
        is_eligible=eligible,
        ineligibility_reason=reason_en,
        ineligibility_reason_fr=reason_fr,
    )


def find_matching_reviewers(criteria: MatchingCriteria, candidates: List[ReviewerCandidate]) -> List[MatchResult]:
    """
    Score every candidate, eligible ones first and then by score. Excluded
    profiles and reviewers from the target organization are left out.
    """
    excluded = set(criteria.exclude)
    results = [
        calculate_match_score(candidate, criteria)
        for candidate in candidates
        if candidate.profile_id not in excluded and candidate.home_org_id != criteria.target_org_id
    ]
    results.sort(key=lambda r: (not r.is_eligible, -r.score))
    return results


def can_assign_reviewer(candidate: ReviewerCandidate, criteria: MatchingCriteria) -> Tuple[bool, List[str]]:
    result = calculate_match_score(candidate, criteria)
    if result.is_eligible:
        return True, []
    return False, result.warnings


def filter_by_min_score(results: List[MatchResult], min_score: float) -> List[MatchResult]:
    return [r for r in results if r.score >= min_score]


def filter_eligible_only(results: List[MatchResult]) -> List[MatchResult]:
    return [r for r in results if r.is_eligible]


def get_top_candidates(results: List[MatchResult], limit: int) -> List[MatchResult]:
    return results[:limit]


# =============================================================================
# Team building
# =============================================================================

def _covered(team: List[MatchResult]) -> Tuple[Set[str], Set[str], bool]:
    expertise: Set[str] = set()
    languages: Set[str] = set()
    for member in team:
        expertise.update(member.expertise.matched_required)
        languages.update(member.language.matched_languages)
    return expertise, languages, any(m.is_lead_qualified for m in team)


def _select_next_member(team: List[MatchResult], candidates: List[MatchResult]) -> Optional[MatchResult]:
    if not candidates:
        return None
    expertise, languages, has_lead = _covered(team)

    def combined(candidate: MatchResult) -> float:
        added = NEW_EXPERTISE_VALUE * len(set(candidate.expertise.matched_required) - expertise)
        added += NEW_LANGUAGE_VALUE * len(set(candidate.language.matched_languages) - languages)
        if not has_lead and candidate.is_lead_qualified:
            added += LEAD_VALUE
        return candidate.score * OWN_SCORE_WEIGHT + added * TEAM_VALUE_WEIGHT

    return max(candidates, key=combined)


def generate_coverage_report(
    team: List[MatchResult],
    required_expertise: List[str],
    required_languages: List[str],
) -> CoverageReport:
    expertise, languages, has_lead = _covered(team)
    for member in team:
        expertise.update(member.expertise.matched_preferred)

    expertise_missing = [e for e in required_expertise if e not in expertise]
    languages_missing = [lang for lang in required_languages if lang not in languages]
    expertise_coverage = (
        (len(required_expertise) - len(expertise_missing)) / len(required_expertise) if required_expertise else 1
    )
    language_coverage = (
        (len(required_languages) - len(languages_missing)) / len(required_languages) if required_languages else 1
    )

    balance = "GOOD"
    if expertise_coverage < 0.8 or language_coverage < 1 or not has_lead:
        balance = "FAIR"
    if expertise_coverage < 0.5 or language_coverage < 0.5:
        balance = "POOR"

    return CoverageReport(
        expertise_covered=sorted(expertise),
        expertise_missing=expertise_missing,
        expertise_coverage=round(expertise_coverage, 2),
        languages_covered=sorted(languages),
        languages_missing=languages_missing,
        language_coverage=round(language_coverage, 2),
        has_lead_qualified=has_lead,
        team_balance=balance,
    )


def _is_viable(team: List[MatchResult], coverage: CoverageReport, team_size: int) -> bool:
    return (
        len(team) >= MIN_TEAM_SIZE
        and len(team) >= team_size * 0.8
        and coverage.expertise_coverage >= 0.5
        and coverage.language_coverage >= 0.5
    )


def build_optimal_team(criteria: MatchingCriteria, candidates: List[MatchResult]) -> TeamBuildResult:
    """
    Greedy team assembly: required profiles first, then at each step the
    eligible candidate whose own score and new coverage (expertise,
    languages, a lead when the team has none) add the most.
    """
    team_size = min(max(criteria.team_size, MIN_TEAM_SIZE), MAX_TEAM_SIZE)
    warnings: List[str] = []

    must_include = set(criteria.must_include)
    team = [c for c in candidates if c.profile_id in must_include]
    for member in team:
        if not member.is_eligible:
            warnings.append(f"Required reviewer {member.candidate.full_name} has eligibility issues")

    in_team = {m.profile_id for m in team}
    pool = [c for c in candidates if c.is_eligible and c.profile_id not in in_team]
    while len(team) < team_size and pool:
        member = _select_next_member(team, pool)
        team.append(member)
        pool.remove(member)

    coverage = generate_coverage_report(team, criteria.required_expertise, criteria.required_languages)
    if len(team) < team_size:
        warnings.append(f"Could only find {len(team)} of {team_size} required team members")
    if not coverage.has_lead_qualified:
        warnings.append("Team has no lead-qualified reviewer")
    if coverage.expertise_missing:
        warnings.append(f"Missing expertise coverage: {', '.join(coverage.expertise_missing)}")
    if coverage.languages_missing:
        warnings.append(f"Missing language coverage: {', '.join(coverage.languages_missing)}")

    total = sum(m.score for m in team)
    return TeamBuildResult(
        team=team,
        coverage=coverage,
        total_score=round(total, 1),
        average_score=round(total / len(team), 1) if team else 0,
        warnings=warnings,
        is_viable=_is_viable(team, coverage, team_size),
    )
