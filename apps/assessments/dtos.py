"""DTOs for Assessments app - scoring results and cross-app views."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import UUID


@dataclass(frozen=True)
class ScoredResponse:
    """
    One answer with the classification of its question. Scoring functions
    only see these, so they stay independent of the ORM.
    """
    response_value: Optional[str] = None
    maturity_level: Optional[str] = None
    audit_area: str = ""
    critical_element: str = ""
    sms_component: str = ""
    study_area: str = ""
    is_priority_pq: bool = False
    has_evidence: bool = False


@dataclass
class EIBreakdown:
    ei: float = 0.0
    satisfactory: int = 0
    not_satisfactory: int = 0
    not_applicable: int = 0
    total: int = 0


@dataclass
class EIScoreResult:
    overall_ei: float
    total_applicable: int
    satisfactory_count: int
    not_satisfactory_count: int
    not_applicable_count: int
    not_reviewed_count: int
    audit_area_scores: Dict[str, EIBreakdown]
    critical_element_scores: Dict[str, EIBreakdown]
    priority_pq_score: Optional[float] = None


@dataclass
class ComponentScore:
    level: str
    score: float
    weight: float
    weighted_score: float
    question_count: int


@dataclass
class StudyAreaScore:
    level: str
    score: float
    question_count: int


@dataclass
class SMSMaturityResult:
    overall_level: Optional[str]
    overall_score: float
    overall_percentage: int
    component_levels: Dict[str, ComponentScore]
    study_area_levels: Dict[str, StudyAreaScore]
    maturity_distribution: Dict[str, int]
    gap_areas: List[str]


@dataclass(frozen=True)
class ScoreComparison:
    delta: float
    percentage_change: float
    trend: str


@dataclass
class SubmissionValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AssessmentDTO:
    """Assessment summary shared with reviews and reports."""
    id: UUID
    org_id: UUID
    questionnaire_type: str
    status: str
    title: str
    ei_score: Optional[float]
    maturity_level: Optional[str]
    overall_score: Optional[float]
    category_scores: Dict[str, float]
