"""
Score calculation for assessments.

- EI (Effective Implementation), ICAO USOAP CMA methodology:
  EI = Satisfactory / (Satisfactory + Not Satisfactory) x 100.
  Not Applicable and Not Reviewed answers are excluded.
- SMS maturity, CANSO Standard of Excellence methodology:
  each answer is a level A(1)..E(5); a component score is the mean of its
  answers, the overall score is the weighted mean of the components and
  the overall level is the lowest component level.

Every function here is pure and works on ScoredResponse values.
"""
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from .constants import (
    SMS_COMPONENT_WEIGHTS, SMS_MATURITY_LEVELS, SUBMISSION_REQUIREMENTS,
    get_maturity_level_from_score,
)
from .dtos import (
    ScoredResponse, EIBreakdown, EIScoreResult, ComponentScore, StudyAreaScore,
    SMSMaturityResult, ScoreComparison, SubmissionValidation,
)
from .models import ResponseValue, MaturityLevel, QuestionnaireType

LEVEL_ORDER = [MaturityLevel.A, MaturityLevel.B, MaturityLevel.C, MaturityLevel.D, MaturityLevel.E]
DEFAULT_COMPONENT_WEIGHT = 0.25
STABLE_TREND_BAND = 1


def _round(value: float, places: int = 2) -> float:
    # Half-up, not banker's rounding
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_simple_ei_score(satisfactory: int, not_satisfactory: int) -> float:
    total = satisfactory + not_satisfactory
    if total == 0:
        return 0.0
    return _round(satisfactory / total * 100)


# =============================================================================
# EI score (ANS)
# =============================================================================

def _tally(breakdown: EIBreakdown, value: Optional[str]) -> None:
    breakdown.total += 1
    if value == ResponseValue.SATISFACTORY:
        breakdown.satisfactory += 1
    elif value == ResponseValue.NOT_SATISFACTORY:
        breakdown.not_satisfactory += 1
    elif value == ResponseValue.NOT_APPLICABLE:
        breakdown.not_applicable += 1


def calculate_ei_score(responses: Iterable[ScoredResponse]) -> EIScoreResult:
    responses = list(responses)
    counts = defaultdict(int)
    by_area: Dict[str, EIBreakdown] = {}
    by_element: Dict[str, EIBreakdown] = {}

    for response in responses:
        value = response.response_value
        if value in (ResponseValue.SATISFACTORY, ResponseValue.NOT_SATISFACTORY, ResponseValue.NOT_APPLICABLE):
            counts[value] += 1
        else:
            # Unanswered counts as not reviewed
            counts[ResponseValue.NOT_REVIEWED] += 1

        if response.audit_area:
            _tally(by_area.setdefault(response.audit_area, EIBreakdown()), value)
        if response.critical_element:
            _tally(by_element.setdefault(response.critical_element, EIBreakdown()), value)

    for breakdown in list(by_area.values()) + list(by_element.values()):
        breakdown.ei = calculate_simple_ei_score(breakdown.satisfactory, breakdown.not_satisfactory)

    priority_pq_score = None
    priority = [r for r in responses if r.is_priority_pq]
    if priority:
        priority_pq_score = calculate_simple_ei_score(
            sum(1 for r in priority if r.response_value == ResponseValue.SATISFACTORY),
            sum(1 for r in priority if r.response_value == ResponseValue.NOT_SATISFACTORY),
        )

    satisfactory = counts[ResponseValue.SATISFACTORY]
    not_satisfactory = counts[ResponseValue.NOT_SATISFACTORY]
    return EIScoreResult(
        overall_ei=calculate_simple_ei_score(satisfactory, not_satisfactory),
        total_applicable=satisfactory + not_satisfactory,
        satisfactory_count=satisfactory,
        not_satisfactory_count=not_satisfactory,
        not_applicable_count=counts[ResponseValue.NOT_APPLICABLE],
        not_reviewed_count=counts[ResponseValue.NOT_REVIEWED],
        audit_area_scores=by_area,
        critical_element_scores=by_element,
        priority_pq_score=priority_pq_score,
    )


# =============================================================================
# SMS maturity (CANSO SoE)
# =============================================================================

def maturity_level_to_score(level: str) -> int:
    return SMS_MATURITY_LEVELS[level].score_value


def get_lowest_maturity_level(levels: Iterable[Optional[str]]) -> Optional[str]:
    present = {level for level in levels if level}
    for level in LEVEL_ORDER:
        if level in present:
            return level
    return None


def _mean_level_score(responses: List[ScoredResponse]) -> float:
    scores = [maturity_level_to_score(r.maturity_level) for r in responses if r.maturity_level]
    return sum(scores) / len(scores) if scores else 0.0


def calculate_sms_maturity(responses: Iterable[ScoredResponse]) -> SMSMaturityResult:
    distribution = {level: 0 for level in LEVEL_ORDER}
    distribution['unanswered'] = 0
    by_component: Dict[str, List[ScoredResponse]] = defaultdict(list)
    by_study_area: Dict[str, List[ScoredResponse]] = defaultdict(list)

    for response in responses:
        distribution[response.maturity_level or 'unanswered'] += 1
        if response.sms_component:
            by_component[response.sms_component].append(response)
        if response.study_area:
            by_study_area[response.study_area].append(response)

    components: Dict[str, ComponentScore] = {}
    for component, items in by_component.items():
        mean = _mean_level_score(items)
        weight = SMS_COMPONENT_WEIGHTS.get(component, DEFAULT_COMPONENT_WEIGHT)
        components[component] = ComponentScore(
            level=get_maturity_level_from_score(mean),
            score=_round(mean),
            weight=weight,
            weighted_score=_round(mean * weight),
            question_count=len(items),
        )

    study_areas = {
        area: StudyAreaScore(
            level=get_maturity_level_from_score(_mean_level_score(items)),
            score=_round(_mean_level_score(items)),
            question_count=len(items),
        )
        for area, items in by_study_area.items()
    }

    total_weight = sum(c.weight for c in components.values())
    weighted_sum = sum(c.weighted_score for c in components.values())
    overall_score = _round(weighted_sum / total_weight) if total_weight else 0.0

    return SMSMaturityResult(
        overall_level=get_lowest_maturity_level(
            c.level for c in components.values() if c.question_count > 0
        ),
        overall_score=overall_score,
        overall_percentage=int(_round(overall_score / 5 * 100, 0)),
        component_levels=components,
        study_area_levels=study_areas,
        maturity_distribution=distribution,
        gap_areas=[code for code, c in components.items() if c.level in (MaturityLevel.A, MaturityLevel.B)],
    )


# =============================================================================
# Category scores and comparisons
# =============================================================================

def calculate_category_scores(responses: Iterable[ScoredResponse], questionnaire_type: str) -> Dict[str, float]:
    """
    Percentage per category: EI per audit area for ANS, mean maturity
    (as a percentage of level E) per component for SMS.
    """
    is_ans = questionnaire_type == QuestionnaireType.ANS_USOAP_CMA
    groups: Dict[str, List[ScoredResponse]] = defaultdict(list)
    for response in responses:
        category = response.audit_area if is_ans else response.sms_component
        if category:
            groups[category].append(response)

    scores = {}
    for category, items in groups.items():
        if is_ans:
            scores[category] = calculate_simple_ei_score(
                sum(1 for r in items if r.response_value == ResponseValue.SATISFACTORY),
                sum(1 for r in items if r.response_value == ResponseValue.NOT_SATISFACTORY),
            )
        else:
            scores[category] = _round(_mean_level_score(items) / 5 * 100)
    return scores


def compare_scores(current: float, previous: float) -> ScoreComparison:
    delta = _round(current - previous)
    if previous > 0:
        percentage_change = _round(delta / previous * 100)
    else:
        percentage_change = 100.0 if delta > 0 else 0.0

    if abs(delta) < STABLE_TREND_BAND:
        trend = "STABLE"
    elif delta > 0:
        trend = "IMPROVING"
    else:
        trend = "DECLINING"
    return ScoreComparison(delta=delta, percentage_change=percentage_change, trend=trend)


def identify_improvement_areas(
    current: Dict[str, float],
    previous: Dict[str, float],
    threshold: float = 5,
) -> Dict[str, List[str]]:
    result = {'improved': [], 'declined': [], 'unchanged': []}
    for category in sorted(set(current) | set(previous)):
        delta = current.get(category, 0) - previous.get(category, 0)
        if delta >= threshold:
            result['improved'].append(category)
        elif delta <= -threshold:
            result['declined'].append(category)
        else:
            result['unchanged'].append(category)
    return result


# =============================================================================
# Submission validation
# =============================================================================

def is_answered(response: ScoredResponse, questionnaire_type: str) -> bool:
    if questionnaire_type == QuestionnaireType.ANS_USOAP_CMA:
        return bool(response.response_value) and response.response_value != ResponseValue.NOT_REVIEWED
    return bool(response.maturity_level)


def validate_submission(
    responses: Iterable[ScoredResponse],
    total_questions: int,
    questionnaire_type: str,
) -> SubmissionValidation:
    """
    Check an assessment against SUBMISSION_REQUIREMENTS. Missing answers and
    Not Reviewed answers are errors; thin evidence is only a warning.
    """
    responses = list(responses)
    requirement = SUBMISSION_REQUIREMENTS[questionnaire_type]
    result = SubmissionValidation(is_valid=True)

    if total_questions <= 0:
        result.errors.append("The questionnaire has no questions in scope.")
        result.is_valid = False
        return result

    answered = sum(1 for r in responses if is_answered(r, questionnaire_type))
    answered_pct = answered / total_questions * 100
    if answered_pct < requirement.min_answered_percentage:
        result.errors.append(
            f"Only {answered} of {total_questions} questions answered ({round(answered_pct)}%). "
            f"All questions must be answered."
        )

    if questionnaire_type == QuestionnaireType.ANS_USOAP_CMA:
        not_reviewed = sum(1 for r in responses if r.response_value == ResponseValue.NOT_REVIEWED)
        if not_reviewed > requirement.max_not_reviewed:
            result.errors.append(
                f'{not_reviewed} questions are marked as "Not Reviewed". All questions must be assessed.'
            )

    with_evidence = sum(1 for r in responses if r.has_evidence)
    evidence_pct = with_evidence / total_questions * 100
    if evidence_pct < requirement.min_evidence_percentage:
        result.warnings.append(
            f"Only {round(evidence_pct)}% of questions have evidence. "
            f"Recommended: at least {requirement.min_evidence_percentage}%."
        )

    result.is_valid = not result.errors
    return result
