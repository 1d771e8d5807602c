"""
Reviewer matching weights and conflict-of-interest rules.

Match scores are out of 100: expertise 40, language 25, availability 25
and experience 10.
"""
from typing import Dict, NamedTuple

from apps.core.bilingual import BilingualLabel
from .models import COIType, COISeverity, ProficiencyLevel, LanguageProficiency, AvailabilityType

L = BilingualLabel

EXPERTISE_MAX_SCORE = 40
EXPERTISE_REQUIRED_POINTS = 30
EXPERTISE_PREFERRED_POINTS = 10
LANGUAGE_MAX_SCORE = 25
AVAILABILITY_MAX_SCORE = 25
EXPERIENCE_MAX_SCORE = 10
MAX_MATCH_SCORE = EXPERTISE_MAX_SCORE + LANGUAGE_MAX_SCORE + AVAILABILITY_MAX_SCORE + EXPERIENCE_MAX_SCORE

PROFICIENCY_MULTIPLIERS: Dict[str, float] = {
    ProficiencyLevel.BASIC: 0.6,
    ProficiencyLevel.COMPETENT: 0.8,
    ProficiencyLevel.PROFICIENT: 1.0,
    ProficiencyLevel.EXPERT: 1.2,
}

LANGUAGE_PROFICIENCY_BONUS: Dict[str, float] = {
    LanguageProficiency.BASIC: 0.25,
    LanguageProficiency.INTERMEDIATE: 0.5,
    LanguageProficiency.ADVANCED: 0.8,
    LanguageProficiency.NATIVE: 1.0,
}

# Lowest proficiency a reviewer may conduct a review in
REVIEW_LANGUAGE_LEVELS = [
    LanguageProficiency.INTERMEDIATE, LanguageProficiency.ADVANCED, LanguageProficiency.NATIVE,
]

# Share of a day each availability type contributes
AVAILABILITY_WEIGHTS: Dict[str, float] = {
    AvailabilityType.AVAILABLE: 1.0,
    AvailabilityType.TENTATIVE: 0.5,
}

MIN_YEARS_EXPERIENCE = 5
REVIEWS_BONUS_THRESHOLD = 2

# Eligibility floors used by matching
MIN_EXPERTISE_COVERAGE = 0.5
MIN_AVAILABILITY_COVERAGE = 0.5
AVAILABLE_COVERAGE = 0.8

MIN_TEAM_SIZE = 2
IDEAL_TEAM_SIZE = 4
MAX_TEAM_SIZE = 6

MIN_REVIEWS_FOR_LEAD = 3

# Reviewing an organization blocks softly for this long afterwards
RECENT_REVIEW_COOLDOWN_YEARS = 2


class COITypeConfig(NamedTuple):
    label: L
    default_severity: str
    is_auto_detected: bool
    reason: L


COI_TYPE_CONFIG: Dict[str, COITypeConfig] = {
    COIType.HOME_ORGANIZATION: COITypeConfig(
        L("Home Organization", "Organisation d'appartenance"), COISeverity.HARD_BLOCK, True,
        L("Reviewer's current employer", "Employeur actuel de l'évaluateur"),
    ),
    COIType.FAMILY_RELATIONSHIP: COITypeConfig(
        L("Family Relationship", "Lien familial"), COISeverity.HARD_BLOCK, False,
        L("Has family member at target organization", "A un membre de la famille dans l'organisation cible"),
    ),
    COIType.FORMER_EMPLOYEE: COITypeConfig(
        L("Former Employee", "Ancien employé"), COISeverity.SOFT_WARNING, False,
        L("Former employee of target organization", "Ancien employé de l'organisation cible"),
    ),
    COIType.BUSINESS_INTEREST: COITypeConfig(
        L("Business Interest", "Intérêt commercial"), COISeverity.SOFT_WARNING, False,
        L("Business interest", "Intérêt commercial"),
    ),
    COIType.RECENT_REVIEW: COITypeConfig(
        L("Recent Review", "Revue récente"), COISeverity.SOFT_WARNING, True,
        L(
            f"Reviewed this organization within the last {RECENT_REVIEW_COOLDOWN_YEARS} years",
            f"A évalué cette organisation au cours des {RECENT_REVIEW_COOLDOWN_YEARS} dernières années",
        ),
    ),
    COIType.OTHER: COITypeConfig(
        L("Other", "Autre"), COISeverity.SOFT_WARNING, False,
        L("Other declared conflict", "Autre conflit déclaré"),
    ),
}

HARD_COI_TYPES = [t for t, config in COI_TYPE_CONFIG.items() if config.default_severity == COISeverity.HARD_BLOCK]
DECLARABLE_COI_TYPES = [t for t, config in COI_TYPE_CONFIG.items() if not config.is_auto_detected]
