"""
API Schemas for Reviewers app.
"""
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema, Field
from ninja.orm import create_schema

from .models import (
    ReviewerProfile, ReviewerExpertise, ReviewerLanguage, ReviewerAvailability, ReviewerCOI, COIOverride,
    ProficiencyLevel, LanguageProficiency, AvailabilityType,
)

ProfileOut = create_schema(ReviewerProfile)
ExpertiseOut = create_schema(ReviewerExpertise, exclude=['profile'])
LanguageOut = create_schema(ReviewerLanguage, exclude=['profile'])
AvailabilityOut = create_schema(ReviewerAvailability, exclude=['profile'])
COIOut = create_schema(ReviewerCOI)
OverrideOut = create_schema(COIOverride)


# =============================================================================
# Request Schemas
# =============================================================================

class ProfileUpdateIn(Schema):
    selection_status: Optional[str] = None  # coordinators only
    is_available: Optional[bool] = None
    years_experience: Optional[int] = Field(None, ge=0, le=60)
    current_position: Optional[str] = Field(None, max_length=200)
    biography: Optional[str] = None


class LeadQualificationIn(Schema):
    qualified: bool


class ExpertiseIn(Schema):
    area: str
    proficiency_level: str = ProficiencyLevel.COMPETENT
    years_experience: int = Field(0, ge=0, le=60)


class LanguageIn(Schema):
    language: str
    proficiency: str = LanguageProficiency.INTERMEDIATE
    can_conduct_interviews: bool = False


class AvailabilityIn(Schema):
    start_date: date
    end_date: date
    availability_type: str = AvailabilityType.AVAILABLE
    notes: str = Field("", max_length=255)


class COIDeclareIn(Schema):
    org_id: UUID
    coi_type: str
    reason_en: str = Field("", max_length=255)
    reason_fr: str = Field("", max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class OverrideIn(Schema):
    org_id: UUID
    review_id: Optional[UUID] = None
    justification: str = Field(..., min_length=10)
    expires_at: Optional[datetime] = None


class MatchQueryIn(Schema):
    required_expertise: Optional[List[str]] = None
    preferred_expertise: Optional[List[str]] = None
    required_languages: Optional[List[str]] = None
    team_size: int = Field(4, ge=2, le=6)
    must_include: Optional[List[UUID]] = None


# =============================================================================
# Response Schemas
# =============================================================================

class ProfileDetailOut(Schema):
    profile: ProfileOut
    expertise: List[ExpertiseOut]
    languages: List[LanguageOut]
    availability: List[AvailabilityOut]
    conflicts: List[COIOut]


class ScoreBreakdownOut(Schema):
    expertise_score: float
    language_score: float
    availability_score: float
    experience_score: float
    total_score: float
    max_possible_score: float
    percentage: int


class MatchResultOut(Schema):
    profile_id: UUID
    user_id: UUID
    full_name: str
    organization: str
    is_lead_qualified: bool
    score: float
    percentage: int
    breakdown: ScoreBreakdownOut
    matched_expertise: List[str]
    missing_expertise: List[str]
    matched_languages: List[str]
    availability_coverage: float
    coi_severity: Optional[str] = None
    warnings: List[str]
    is_eligible: bool
    ineligibility_reason: str = ""
    ineligibility_reason_fr: str = ""

    @staticmethod
    def resolve_user_id(obj):
        return obj.candidate.user_id

    @staticmethod
    def resolve_full_name(obj):
        return obj.candidate.full_name

    @staticmethod
    def resolve_organization(obj):
        return obj.candidate.organization

    @staticmethod
    def resolve_matched_expertise(obj):
        return obj.expertise.matched_required + obj.expertise.matched_preferred

    @staticmethod
    def resolve_missing_expertise(obj):
        return obj.expertise.missing_required

    @staticmethod
    def resolve_matched_languages(obj):
        return obj.language.matched_languages

    @staticmethod
    def resolve_availability_coverage(obj):
        return obj.availability_status.coverage

    @staticmethod
    def resolve_coi_severity(obj):
        return obj.coi_status.severity


class CoverageOut(Schema):
    expertise_covered: List[str]
    expertise_missing: List[str]
    expertise_coverage: float
    languages_covered: List[str]
    languages_missing: List[str]
    language_coverage: float
    has_lead_qualified: bool
    team_balance: str


class TeamSuggestionOut(Schema):
    team: List[MatchResultOut]
    coverage: CoverageOut
    total_score: float
    average_score: float
    warnings: List[str]
    is_viable: bool


class COIConflictOut(Schema):
    coi_type: str
    severity: str
    reason_en: str
    reason_fr: str
    is_auto_detected: bool
    coi_id: Optional[UUID] = None
    start_date: Optional[date] = None


class COICheckOut(Schema):
    user_id: UUID
    org_id: UUID
    conflicts: List[COIConflictOut]
    has_hard_block: bool
    has_soft_warning: bool
    has_override: bool
    can_assign: bool

    @staticmethod
    def resolve_has_override(obj):
        return obj.active_override is not None


class ReviewerEligibilityOut(Schema):
    user_id: UUID
    reviewer_name: str
    status: str
    conflicts: List[COIConflictOut]

    @staticmethod
    def resolve_conflicts(obj):
        return obj.check.conflicts


class TeamCOICheckOut(Schema):
    org_id: UUID
    reviewers: List[ReviewerEligibilityOut]
    summary: Dict[str, int]
    can_proceed: bool
