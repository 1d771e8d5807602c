"""
Reviewer match scoring.

Four components add up to a score out of 100:
- expertise (40): 30 points spread over the required areas and a 10 point
  bonus over the preferred ones, each weighted by proficiency
- language (25): spread over the required languages; 60% for speaking
  it, up to 25% for proficiency, 15% for conducting interviews
- availability (25): share of the review days the reviewer is available,
  tentative days counting half
- experience (10): years in aviation and reviews completed, 5 points each

Every function here is pure.
"""
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from .constants import (
    EXPERTISE_MAX_SCORE, EXPERTISE_REQUIRED_POINTS, EXPERTISE_PREFERRED_POINTS,
    LANGUAGE_MAX_SCORE, AVAILABILITY_MAX_SCORE, EXPERIENCE_MAX_SCORE, MAX_MATCH_SCORE,
    PROFICIENCY_MULTIPLIERS, LANGUAGE_PROFICIENCY_BONUS, REVIEW_LANGUAGE_LEVELS, AVAILABILITY_WEIGHTS,
    MIN_YEARS_EXPERIENCE, REVIEWS_BONUS_THRESHOLD,
)
from .dtos import (
    ExpertiseInput, LanguageInput, AvailabilitySlot,
    ExpertiseScore, LanguageScore, AvailabilityScore, ExperienceScore, TotalScore,
)
from .models import AvailabilityType


def _round(value: float, places: int = 1) -> float:
    # Half-up, not banker's rounding
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


# =============================================================================
# Expertise
# =============================================================================

def score_expertise(
    reviewer_expertise: Iterable[ExpertiseInput],
    required: List[str],
    preferred: Optional[List[str]] = None,
) -> ExpertiseScore:
    if not required:
        return ExpertiseScore(score=EXPERTISE_MAX_SCORE, max_score=EXPERTISE_MAX_SCORE)

    levels: Dict[str, str] = {e.area: e.proficiency_level for e in reviewer_expertise}
    result = ExpertiseScore(score=0, max_score=EXPERTISE_MAX_SCORE)

    required_score = 0.0
    per_area = EXPERTISE_REQUIRED_POINTS / len(required)
    for area in required:
        if area in levels:
            result.matched_required.append(area)
            required_score += per_area * PROFICIENCY_MULTIPLIERS.get(levels[area], 1.0)
        else:
            result.missing_required.append(area)
    required_score = min(required_score, EXPERTISE_REQUIRED_POINTS)

    preferred_score = 0.0
    if preferred:
        per_area = EXPERTISE_PREFERRED_POINTS / len(preferred)
        for area in preferred:
            if area in required or area not in levels:
                continue
            result.matched_preferred.append(area)
            preferred_score += per_area * PROFICIENCY_MULTIPLIERS.get(levels[area], 1.0)
    preferred_score = min(preferred_score, EXPERTISE_PREFERRED_POINTS)

    result.score = _round(min(required_score + preferred_score, EXPERTISE_MAX_SCORE))
    return result


# =============================================================================
# Language
# =============================================================================

def can_conduct_review_in(proficiency: str) -> bool:
    return proficiency in REVIEW_LANGUAGE_LEVELS


def score_language(reviewer_languages: Iterable[LanguageInput], required: List[str]) -> LanguageScore:
    if not required:
        return LanguageScore(score=LANGUAGE_MAX_SCORE, max_score=LANGUAGE_MAX_SCORE)

    spoken = {lang.language: lang for lang in reviewer_languages}
    result = LanguageScore(score=0, max_score=LANGUAGE_MAX_SCORE)
    per_language = LANGUAGE_MAX_SCORE / len(required)

    total = 0.0
    for code in required:
        lang = spoken.get(code)
        if lang is None:
            result.missing_languages.append(code)
            result.can_conduct_review = False
            continue
        result.matched_languages.append(code)
        total += per_language * 0.6
        total += per_language * 0.25 * LANGUAGE_PROFICIENCY_BONUS.get(lang.proficiency, 0.5)
        if lang.can_conduct_interviews:
            total += per_language * 0.15
        if not can_conduct_review_in(lang.proficiency):
            result.can_conduct_review = False

    result.score = _round(min(total, LANGUAGE_MAX_SCORE))
    return result


# =============================================================================
# Availability
# =============================================================================

def _days(start: date, end: date) -> List[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def score_availability(slots: Iterable[AvailabilitySlot], start: date, end: date) -> AvailabilityScore:
    """
    Days without any slot count as unavailable. When slots overlap, the
    one listed last wins for the days they share.
    """
    total_days = abs((end - start).days) + 1
    if end < start:
        return AvailabilityScore(
            score=0, max_score=AVAILABILITY_MAX_SCORE, available_days=0, total_days=total_days, coverage=0,
        )

    day_status = {day: AvailabilityType.UNAVAILABLE for day in _days(start, end)}
    conflicts: List[str] = []
    for slot in slots:
        if slot.end_date < start or slot.start_date > end:
            continue
        for day in _days(max(slot.start_date, start), min(slot.end_date, end)):
            day_status[day] = slot.availability_type
        if slot.availability_type == AvailabilityType.ON_ASSIGNMENT and slot.notes and slot.notes not in conflicts:
            conflicts.append(slot.notes)

    available = sum(AVAILABILITY_WEIGHTS.get(status, 0) for status in day_status.values())
    coverage = available / total_days
    return AvailabilityScore(
        score=min(_round(coverage * AVAILABILITY_MAX_SCORE), AVAILABILITY_MAX_SCORE),
        max_score=AVAILABILITY_MAX_SCORE,
        available_days=_round(available),
        total_days=total_days,
        coverage=_round(coverage, 2),
        conflicts=conflicts,
    )


# =============================================================================
# Experience
# =============================================================================

def score_experience(years_experience: int, reviews_completed: int) -> ExperienceScore:
    # 5 years = 1 point, 10 years = 3 points, 15+ years = 5 points
    if years_experience >= 15:
        years_bonus = 5.0
    elif years_experience >= 10:
        years_bonus = 3.0
    elif years_experience >= MIN_YEARS_EXPERIENCE:
        years_bonus = 1 + (years_experience - 5) / 5 * 2
    else:
        years_bonus = 0.0

    # 2 reviews = 1 point, 5 reviews = 3 points, 10+ reviews = 5 points
    if reviews_completed >= 10:
        reviews_bonus = 5.0
    elif reviews_completed >= 5:
        reviews_bonus = 3.0
    elif reviews_completed >= REVIEWS_BONUS_THRESHOLD:
        reviews_bonus = 1 + (reviews_completed - 2) / 3 * 2
    else:
        reviews_bonus = reviews_completed * 0.5

    years_bonus = min(years_bonus, 5)
    reviews_bonus = min(reviews_bonus, 5)
    return ExperienceScore(
        score=min(_round(years_bonus + reviews_bonus), EXPERIENCE_MAX_SCORE),
        max_score=EXPERIENCE_MAX_SCORE,
        years_bonus=_round(years_bonus),
        reviews_bonus=_round(reviews_bonus),
    )


def calculate_total_score(
    expertise: ExpertiseScore,
    language: LanguageScore,
    availability: AvailabilityScore,
    experience: ExperienceScore,
) -> TotalScore:
    total = expertise.score + language.score + availability.score + experience.score
    return TotalScore(
        expertise_score=expertise.score,
        language_score=language.score,
        availability_score=availability.score,
        experience_score=experience.score,
        total_score=_round(total),
        max_possible_score=MAX_MATCH_SCORE,
        percentage=int(_round(total / MAX_MATCH_SCORE * 100, 0)),
    )
