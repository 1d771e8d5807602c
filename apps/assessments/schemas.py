"""
API Schemas for Assessments app.
"""
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID
from ninja import Schema, Field
from ninja.orm import create_schema

from .models import Questionnaire, Question, Assessment, AssessmentResponse, AssessmentType

QuestionnaireOut = create_schema(Questionnaire)
QuestionOut = create_schema(Question, exclude=['questionnaire'])
AssessmentOut = create_schema(Assessment)
ResponseOut = create_schema(AssessmentResponse)


class QuestionnaireDetailOut(Schema):
    questionnaire: QuestionnaireOut
    questions: List[QuestionOut]


# =============================================================================
# Request Schemas
# =============================================================================

class AssessmentIn(Schema):
    questionnaire_id: UUID
    org_id: Optional[UUID] = None  # programme users only; defaults to own organization
    assessment_type: str = AssessmentType.SELF_ASSESSMENT
    title: str = Field(..., min_length=3, max_length=255)
    description: str = ""
    selected_audit_areas: List[str] = []
    due_date: Optional[date] = None


class AssessmentUpdateIn(Schema):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None


class ResponseIn(Schema):
    question_id: UUID
    response_value: Optional[str] = None
    maturity_level: Optional[str] = None
    comment: str = ""
    evidence_description: str = ""
    evidence_urls: List[str] = []


class SubmitIn(Schema):
    submission_notes: str = Field("", max_length=2000)


class TransitionIn(Schema):
    status: str
    comment: str = ""


# =============================================================================
# Response Schemas
# =============================================================================

class CategoryProgressOut(Schema):
    total: int
    answered: int


class ProgressOut(Schema):
    total_questions: int
    answered: int
    with_evidence: int
    percentage: int
    by_category: Dict[str, CategoryProgressOut]


class SubmitOut(Schema):
    assessment: AssessmentOut
    warnings: List[str]


class ValidationOut(Schema):
    is_valid: bool
    errors: List[str]
    warnings: List[str]


class ScoresOut(Schema):
    questionnaire_type: str
    ei_score: Optional[float] = None
    ei_category: Optional[str] = None
    maturity_level: Optional[str] = None
    overall_score: Optional[float] = None
    category_scores: Dict[str, float]
    details: Dict[str, Any]


class StatusOut(Schema):
    code: str
    label: str
    description: str
    allowed_transitions: List[str]
    sort_order: int
