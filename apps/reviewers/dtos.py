"""DTOs for Reviewers app - scoring inputs, match results and COI checks."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID


# =============================================================================
# Scoring inputs
# =============================================================================

@dataclass(frozen=True)
class ExpertiseInput:
    area: str
    proficiency_level: str
    years_experience: int = 0


@dataclass(frozen=True)
class LanguageInput:
    language: str
    proficiency: str
    can_conduct_interviews: bool = False


@dataclass(frozen=True)
class AvailabilitySlot:
    start_date: date
    end_date: date
    availability_type: str
    notes: str = ""


@dataclass(frozen=True)
class DeclaredConflict:
    org_id: UUID
    coi_type: str


@dataclass
class ReviewerCandidate:
    """
    Everything matching needs to know about one reviewer. Matching
    functions only see these, so they stay independent of the ORM.
    """
    profile_id: UUID
    user_id: UUID
    full_name: str
    home_org_id: Optional[UUID]
    organization: str = ""
    is_lead_qualified: bool = False
    years_experience: int = 0
    reviews_completed: int = 0
    expertise: List[ExpertiseInput] = field(default_factory=list)
    languages: List[LanguageInput] = field(default_factory=list)
    availability: List[AvailabilitySlot] = field(default_factory=list)
    conflicts: List[DeclaredConflict] = field(default_factory=list)


# =============================================================================
# Scores
# =============================================================================

@dataclass
class ExpertiseScore:
    score: float
    max_score: float
    matched_required: List[str] = field(default_factory=list)
    matched_preferred: List[str] = field(default_factory=list)
    missing_required: List[str] = field(default_factory=list)


@dataclass
class LanguageScore:
    score: float
    max_score: float
    matched_languages: List[str] = field(default_factory=list)
    missing_languages: List[str] = field(default_factory=list)
    can_conduct_review: bool = True


@dataclass
class AvailabilityScore:
    score: float
    max_score: float
    available_days: float
    total_days: int
    coverage: float
    conflicts: List[str] = field(default_factory=list)


@dataclass
class ExperienceScore:
    score: float
    max_score: float
    years_bonus: float
    reviews_bonus: float


@dataclass
class TotalScore:
    expertise_score: float
    language_score: float
    availability_score: float
    experience_score: float
    total_score: float
    max_possible_score: float
    percentage: int


# =============================================================================
# Matching
# =============================================================================

@dataclass
class MatchingCriteria:
    target_org_id: UUID
    start_date: date
    end_date: date
    required_expertise: List[str] = field(default_factory=list)
    preferred_expertise: List[str] = field(default_factory=list)
    required_languages: List[str] = field(default_factory=list)
    team_size: int = 4
    must_include: List[UUID] = field(default_factory=list)
    exclude: List[UUID] = field(default_factory=list)


@dataclass
class COIStatus:
    has_conflict: bool
    severity: Optional[str] = None  # HARD, SOFT or None
    coi_type: Optional[str] = None
    reason: str = ""
    is_waivable: bool = False


@dataclass
class AvailabilityStatus:
    is_available: bool
    available_days: float
    total_days: int
    coverage: float
    conflicts: List[str] = field(default_factory=list)


@dataclass
class MatchResult:
    candidate: ReviewerCandidate
    score: float
    max_score: float
    percentage: int
    breakdown: TotalScore
    expertise: ExpertiseScore
    language: LanguageScore
    availability: AvailabilityScore
    experience: ExperienceScore
    coi_status: COIStatus
    availability_status: AvailabilityStatus
    warnings: List[str] = field(default_factory=list)
    is_eligible: bool = True
    ineligibility_reason: str = ""
    ineligibility_reason_fr: str = ""

    @property
    def profile_id(self) -> UUID:
        return self.candidate.profile_id

    @property
    def is_lead_qualified(self) -> bool:
        return self.candidate.is_lead_qualified


@dataclass
class CoverageReport:
    expertise_covered: List[str]
    expertise_missing: List[str]
    expertise_coverage: float
    languages_covered: List[str]
    languages_missing: List[str]
    language_coverage: float
    has_lead_qualified: bool
    team_balance: str  # GOOD, FAIR or POOR


@dataclass
class TeamBuildResult:
    team: List[MatchResult]
    coverage: CoverageReport
    total_score: float
    average_score: float
    warnings: List[str] = field(default_factory=list)
    is_viable: bool = False


# =============================================================================
# Conflict of interest checks
# =============================================================================

@dataclass
class COIConflict:
    coi_type: str
    severity: str
    reason_en: str
    reason_fr: str
    is_auto_detected: bool
    coi_id: Optional[UUID] = None
    start_date: Optional[date] = None


@dataclass
class COIOverrideInfo:
    id: UUID
    justification: str
    approved_by_id: UUID
    approved_at: datetime
    expires_at: Optional[datetime]


@dataclass
class COICheckResult:
    user_id: UUID
    org_id: UUID
    conflicts: List[COIConflict] = field(default_factory=list)
    active_override: Optional[COIOverrideInfo] = None

    @property
    def hard_blocks(self) -> List[COIConflict]:
        return [c for c in self.conflicts if c.severity == "HARD_BLOCK"]

    @property
    def soft_warnings(self) -> List[COIConflict]:
        return [c for c in self.conflicts if c.severity == "SOFT_WARNING"]

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_hard_block(self) -> bool:
        return bool(self.hard_blocks)

    @property
    def has_soft_warning(self) -> bool:
        return bool(self.soft_warnings)

    @property
    def can_proceed_with_override(self) -> bool:
        return not self.has_hard_block and self.has_soft_warning and self.active_override is not None

    @property
    def can_assign(self) -> bool:
        return not self.has_conflict or self.can_proceed_with_override


@dataclass
class ReviewerEligibility:
    user_id: UUID
    reviewer_name: str
    status: str  # eligible, warning, override_active or blocked
    check: COICheckResult


@dataclass
class TeamCOICheckResult:
    org_id: UUID
    reviewers: List[ReviewerEligibility]
    summary: Dict[str, int]
    blocked_user_ids: List[UUID] = field(default_factory=list)
    warning_user_ids: List[UUID] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return not self.blocked_user_ids
