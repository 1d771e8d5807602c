"""
Report data aggregation.

Gathers a review's organization, team, linked assessments, findings and
CAPs into the JSON document stored on ReviewReport.content. The document
is already localized: the PDF template and API clients render it as is.
"""
import logging
from collections import Counter
from typing import Dict, List, Optional

from django.utils import timezone

from apps.assessments.constants import AUDIT_AREAS, CRITICAL_ELEMENTS, SMS_COMPONENTS, SMS_STUDY_AREAS
from apps.assessments.models import Assessment, AssessmentStatus, QuestionnaireType
from apps.assessments.scoring import calculate_ei_score, calculate_sms_maturity, compare_scores
from apps.assessments.services import to_scored_response
from apps.core.bilingual import normalize_locale, localized_field, format_date, format_date_range
from apps.findings.constants import TYPE_LABELS, SEVERITY_LABELS, CAP_STATUS_LABELS, SERIOUS_SEVERITIES
from apps.findings.models import Finding, FindingType, CAPStatus
from apps.identity.models import User
from apps.organizations.models import Organization
from apps.reviews.models import Review, TeamRole, InvitationStatus
from .constants import (
    CLASSIFICATION, REVIEW_TYPE_LABELS, TEAM_ROLE_LABELS, SECTION_LABELS,
    DEFAULT_OBJECTIVES, FULL_SCOPE, SCHEDULE_PHASES, GOOD_PRACTICE_APPLICABILITY,
    EI_STRONG_THRESHOLD, EI_WEAK_THRESHOLD,
)

logger = logging.getLogger(__name__)

CONTENT_VERSION = "1.0"

# CAPs past these statuses no longer count as overdue
COMPLETED_CAP_STATUSES = [CAPStatus.COMPLETED, CAPStatus.VERIFIED, CAPStatus.CLOSED]

SCORED_ASSESSMENT_STATUSES = [AssessmentStatus.SUBMITTED, AssessmentStatus.UNDER_REVIEW, AssessmentStatus.COMPLETED]


def _label(labels: Dict, code: str, locale: str) -> str:
    label = labels.get(code)
    return label.get(locale) if label else code


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _linked_assessment(review: Review, questionnaire_type: str) -> Optional[Assessment]:
    return review.assessments.filter(
        questionnaire__type=questionnaire_type
    ).order_by('-submitted_at', '-created_at').first()


def _previous_assessment(assessment: Assessment) -> Optional[Assessment]:
    """The organization's last scored assessment of the same kind before this one."""
    qs = Assessment.objects.filter(
        org_id=assessment.org_id,
        questionnaire__type=assessment.questionnaire.type,
        status__in=SCORED_ASSESSMENT_STATUSES,
    ).exclude(id=assessment.id)
    if assessment.submitted_at:
        qs = qs.filter(submitted_at__lt=assessment.submitted_at)
    return qs.order_by('-submitted_at').first()


# =============================================================================
# Sections
# =============================================================================

def build_metadata(review: Review, org: Optional[Organization], generated_by: Optional[User]) -> Dict:
    team = org.regional_team if org else None
    return {
        'report_reference': f"AAPRP-RPT-{review.reference_number}",
        'review_reference': review.reference_number,
        'review_type': review.review_type,
        'host_organization': {
            'id': str(review.host_org_id),
            'name_en': org.name_en if org else "",
            'name_fr': org.name_fr if org else "",
            'code': (org.organization_code or "") if org else "",
            'country': org.country if org else "",
            'region': org.region if org else "",
            'regional_team': f"Team {team.team_number}" if team else "",
        },
        'review_period': {
            'planned_start': _iso(review.planned_start_date),
            'planned_end': _iso(review.planned_end_date),
            'actual_start': _iso(review.actual_start_date),
            'actual_end': _iso(review.actual_end_date),
        },
        'generated_by': {
            'id': str(generated_by.id),
            'name': str(generated_by),
            'role': generated_by.role,
        } if generated_by else None,
    }


def build_cover_page(review: Review, org: Optional[Organization], locale: str) -> Dict:
    start = review.actual_start_date or review.planned_start_date
    end = review.actual_end_date or review.planned_end_date
    return {
        'title': SECTION_LABELS['title'].get(locale),
        'subtitle': localized_field(org, 'name', locale) if org else "",
        'review_type': _label(REVIEW_TYPE_LABELS, review.review_type, locale),
        'report_number': f"AAPRP-RPT-{review.reference_number}",
        'classification': CLASSIFICATION,
        'date': format_date(timezone.localdate(), locale),
        'review_dates': format_date_range(start, end, locale) or SECTION_LABELS['to_be_determined'].get(locale),
    }


def build_introduction(review: Review, org: Optional[Organization], locale: str) -> Dict:
    name = localized_field(org, 'name', locale) if org else ""
    code = (org.organization_code or "") if org else ""
    country = org.country if org else ""
    if locale == 'fr':
        background = (
            f"Ce rapport présente les résultats de la revue par les pairs de l'AAPRP menée pour {name} "
            f"({code}), {country}. La revue a été réalisée dans le cadre du Programme Africain de Revue "
            f"par les Pairs des ANSP, conformément aux normes de l'OACI et aux directives de CANSO."
        )
    else:
        background = (
            f"This report presents the findings of the AAPRP peer review conducted for {name} "
            f"({code}), {country}. The review was carried out under the African ANSP Peer Review "
            f"Programme in accordance with ICAO standards and CANSO guidelines."
        )

    objectives = [line.strip() for line in review.objectives.splitlines() if line.strip()]
    if not objectives:
        objectives = [o.get(locale) for o in DEFAULT_OBJECTIVES]

    if review.areas_in_scope:
        scope = [
            f"{code} - {AUDIT_AREAS[code].get(locale)}" if code in AUDIT_AREAS else code
            for code in review.areas_in_scope
        ]
    else:
        scope = [FULL_SCOPE.get(locale)]

    start = review.actual_start_date or review.planned_start_date
    end = review.actual_end_date or review.planned_end_date
    schedule = []
    if start:
        preparation, on_site, reporting = SCHEDULE_PHASES
        schedule = [
            {'phase': preparation.get(locale), 'date_range': format_date(review.planned_start_date or start, locale)},
            {'phase': on_site.get(locale), 'date_range': format_date_range(start, end, locale)},
            {'phase': reporting.get(locale), 'date_range': format_date(end, locale)
             or SECTION_LABELS['to_be_determined'].get(locale)},
        ]

    return {
        'background': background,
        'objectives': objectives,
        'scope': scope,
        'activity_schedule': schedule,
    }


def _member_info(member, locale: str, orgs: Dict) -> Dict:
    org = orgs.get(member.user.org_id)
    return {
        'name': str(member.user),
        'role': member.role,
        'role_label': _label(TEAM_ROLE_LABELS, member.role, locale),
        'organization': localized_field(org, 'name', locale) if org else "",
        'country': org.country if org else "",
    }


def build_team_composition(review: Review, locale: str) -> Dict:
    members = list(
        review.team_members.filter(invitation_status=InvitationStatus.CONFIRMED).select_related('user')
    )
    orgs = Organization.objects.in_bulk({m.user.org_id for m in members if m.user.org_id})

    lead = next((m for m in members if m.role == TeamRole.LEAD_REVIEWER), None)
    return {
        'team_lead': _member_info(lead, locale, orgs) if lead else None,
        'members': [
            _member_info(m, locale, orgs) for m in members
            if m.role not in (TeamRole.LEAD_REVIEWER, TeamRole.OBSERVER)
        ],
        'observers': [_member_info(m, locale, orgs) for m in members if m.role == TeamRole.OBSERVER],
    }


def _ans_narrative(overall_ei: float, areas: List[Dict], locale: str) -> str:
    strong = [a['name'] for a in areas if a['ei_score'] >= EI_STRONG_THRESHOLD]
    weak = [a['name'] for a in areas if a['ei_score'] < EI_WEAK_THRESHOLD]

    if locale == 'fr':
        parts = [f"Le score global de mise en œuvre effective (EI) est de {overall_ei:.1f}%."]
        if strong:
            parts.append(f"De bonnes performances ont été observées dans les domaines suivants : {', '.join(strong)}.")
        if weak:
            parts.append(
                f"Les domaines nécessitant une attention particulière comprennent {', '.join(weak)}, "
                f"qui ont obtenu un score inférieur au seuil de {EI_WEAK_THRESHOLD}%."
            )
        elif areas:
            parts.append("Tous les domaines d'audit atteignent ou dépassent le seuil minimum de mise en œuvre.")
        return " ".join(parts)

    parts = [f"The overall Effective Implementation (EI) score is {overall_ei:.1f}%."]
    if strong:
        parts.append(f"Strong performance was noted in {', '.join(strong)}.")
    if weak:
        parts.append(
            f"Areas requiring attention include {', '.join(weak)}, "
            f"which scored below the {EI_WEAK_THRESHOLD}% threshold."
        )
    elif areas:
        parts.append("All audit areas meet or exceed the minimum implementation threshold.")
    return " ".join(parts)


def build_ans_assessment(review: Review, locale: str) -> Dict:
    assessment = _linked_assessment(review, QuestionnaireType.ANS_USOAP_CMA)
    if assessment is None:
        return {'available': False}

    responses = assessment.responses.select_related('question')
    result = calculate_ei_score(to_scored_response(r) for r in responses)

    areas = [
        {
            'code': code,
            'name': _label(AUDIT_AREAS, code, locale),
            'ei_score': breakdown.ei,
            'total_pqs': breakdown.total,
            'satisfactory': breakdown.satisfactory,
            'not_satisfactory': breakdown.not_satisfactory,
            'not_applicable': breakdown.not_applicable,
        }
        for code, breakdown in sorted(result.audit_area_scores.items())
    ]
    elements = [
        {
            'code': code.replace('_', '-'),
            'name': _label(CRITICAL_ELEMENTS, code, locale),
            'ei_score': breakdown.ei,
        }
        for code, breakdown in sorted(result.critical_element_scores.items())
    ]

    previous = _previous_assessment(assessment)
    previous_ei = previous.ei_score if previous else None
    comparison = compare_scores(result.overall_ei, previous_ei) if previous_ei is not None else None

    return {
        'available': True,
        'assessment_id': str(assessment.id),
        'overall_ei': result.overall_ei,
        'previous_ei': previous_ei,
        'ei_delta': comparison.delta if comparison else None,
        'trend': comparison.trend if comparison else None,
        'satisfactory': result.satisfactory_count,
        'not_satisfactory': result.not_satisfactory_count,
        'not_applicable': result.not_applicable_count,
        'by_area': areas,
        'by_critical_element': elements,
        'narrative': _ans_narrative(result.overall_ei, areas, locale),
    }


def build_sms_assessment(review: Review, locale: str) -> Dict:
    assessment = _linked_assessment(review, QuestionnaireType.SMS_CANSO_SOE)
    if assessment is None:
        return {'available': False}

    responses = assessment.responses.select_related('question')
    result = calculate_sms_maturity(to_scored_response(r) for r in responses)

    components = []
    for code, config in SMS_COMPONENTS.items():
        score = result.component_levels.get(code)
        if score is None:
            continue
        components.append({
            'code': code,
            'name': config.label.get(locale),
            'maturity_level': score.level,
            'score': score.score,
            'study_areas': [
                {
                    'code': area.replace('_', '.'),
                    'name': _label(SMS_STUDY_AREAS, area, locale),
                    'maturity_level': result.study_area_levels[area].level,
                    'score': result.study_area_levels[area].score,
                }
                for area in config.study_areas if area in result.study_area_levels
            ],
        })

    previous = _previous_assessment(assessment)
    level = result.overall_level or "-"
    if locale == 'fr':
        narrative = f"La maturité globale du SGS est au niveau {level} avec un score de {result.overall_percentage}%."
    else:
        narrative = f"The overall SMS maturity is Level {level} with a score of {result.overall_percentage}%."
    gaps = [SMS_COMPONENTS[g].label.get(locale) for g in result.gap_areas if g in SMS_COMPONENTS]
    if gaps:
        narrative += (
            f" {', '.join(gaps)} nécessite(nt) une amélioration ciblée." if locale == 'fr'
            else f" {', '.join(gaps)} require(s) focused improvement."
        )

    return {
        'available': True,
        'assessment_id': str(assessment.id),
        'overall_level': result.overall_level,
        'overall_score': result.overall_score,
        'overall_percentage': result.overall_percentage,
        'previous_level': (previous.maturity_level or None) if previous else None,
        'by_component': components,
        'narrative': narrative,
    }


def build_findings_summary(findings: List[Finding], locale: str) -> Dict:
    by_type = Counter(f.finding_type for f in findings)
    by_severity = Counter(f.severity for f in findings)
    by_area = Counter(f.audit_area or "GENERAL" for f in findings)
    return {
        'total': len(findings),
        'by_type': [
            {'code': code, 'label': label.get(locale), 'count': by_type[code]}
            for code, label in TYPE_LABELS.items() if by_type[code]
        ],
        'by_severity': [
            {'code': code, 'label': label.get(locale), 'count': by_severity[code]}
            for code, label in SEVERITY_LABELS.items() if by_severity[code]
        ],
        'by_area': dict(sorted(by_area.items())),
        'by_status': dict(Counter(f.status for f in findings)),
        'critical_and_major': sum(1 for f in findings if f.severity in SERIOUS_SEVERITIES),
        'cap_required': sum(1 for f in findings if f.cap_required),
    }


def _cap_of(finding: Finding):
    return getattr(finding, 'cap', None)


def build_findings_detail(findings: List[Finding], locale: str) -> List[Dict]:
    detail = []
    for f in findings:
        cap = _cap_of(f)
        detail.append({
            'reference': f.reference_number,
            'title': localized_field(f, 'title', locale),
            'description': localized_field(f, 'description', locale),
            'evidence': localized_field(f, 'evidence', locale),
            'type': f.finding_type,
            'type_label': _label(TYPE_LABELS, f.finding_type, locale),
            'severity': f.severity,
            'severity_label': _label(SEVERITY_LABELS, f.severity, locale),
            'area': _label(AUDIT_AREAS, f.audit_area, locale) if f.audit_area else "",
            'critical_element': f.critical_element.replace('_', '-'),
            'icao_reference': f.icao_reference,
            'status': f.status,
            'cap_required': f.cap_required,
            'cap_status': cap.status if cap else None,
        })
    return detail


def build_corrective_actions(findings: List[Finding], locale: str) -> Dict:
    today = timezone.localdate()
    caps = []
    for f in findings:
        cap = _cap_of(f)
        if cap is None:
            continue
        overdue = cap.due_date < today and cap.status not in COMPLETED_CAP_STATUSES
        caps.append({
            'finding_reference': f.reference_number,
            'root_cause': localized_field(cap, 'root_cause', locale),
            'corrective_action': localized_field(cap, 'corrective_action', locale),
            'responsible_person': cap.responsible_person,
            'due_date': format_date(cap.due_date, locale),
            'status': cap.status,
            'status_label': _label(CAP_STATUS_LABELS, cap.status, locale),
            'is_overdue': overdue,
        })

    by_status = Counter(c['status'] for c in caps)
    completed = sum(by_status[s] for s in COMPLETED_CAP_STATUSES)
    return {
        'total': len(caps),
        'by_status': [
            {'code': code, 'label': label.get(locale), 'count': by_status[code]}
            for code, label in CAP_STATUS_LABELS.items() if by_status[code]
        ],
        'overdue': sum(1 for c in caps if c['is_overdue']),
        'completion_rate': round(completed / len(caps) * 100) if caps else 0,
        'caps': caps,
    }


def build_good_practices(findings: List[Finding], locale: str) -> List[Dict]:
    return [
        {
            'reference': f.reference_number,
            'title': localized_field(f, 'title', locale),
            'description': localized_field(f, 'description', locale),
            'area': _label(AUDIT_AREAS, f.audit_area, locale) if f.audit_area else "",
            'applicability': GOOD_PRACTICE_APPLICABILITY.get(locale),
        }
        for f in findings if f.finding_type == FindingType.GOOD_PRACTICE
    ]


# =============================================================================
# Entry point
# =============================================================================

def aggregate_report_data(review: Review, locale: Optional[str] = None, generated_by: Optional[User] = None) -> Dict:
    """Assemble the full localized report document for a review."""
    locale = normalize_locale(locale)
    org = Organization.objects.select_related('regional_team').filter(id=review.host_org_id).first()
    findings = list(
        review.findings.select_related('cap').order_by('created_at')
    )

    content = {
        'version': CONTENT_VERSION,
        'generated_at': timezone.now().isoformat(),
        'locale': locale,
        'labels': {key: label.get(locale) for key, label in SECTION_LABELS.items()},
        'metadata': build_metadata(review, org, generated_by),
        'cover_page': build_cover_page(review, org, locale),
        'introduction': build_introduction(review, org, locale),
        'team_composition': build_team_composition(review, locale),
        'ans_assessment': build_ans_assessment(review, locale),
        'sms_assessment': build_sms_assessment(review, locale),
        'findings_summary': build_findings_summary(findings, locale),
        'findings_detail': build_findings_detail(findings, locale),
        'corrective_actions': build_corrective_actions(findings, locale),
        'good_practices': build_good_practices(findings, locale),
    }
    logger.debug(f"Aggregated report data for review {review.reference_number} ({len(findings)} findings)")
    return content
