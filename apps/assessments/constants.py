"""
Bilingual reference data for assessments: statuses and their allowed
transitions, response scales, USOAP audit areas / critical elements and
CANSO SoE components / study areas, plus scoring thresholds.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from apps.core.bilingual import BilingualLabel
from .models import (
    AssessmentStatus, AssessmentType, ResponseValue, MaturityLevel,
    AuditArea, CriticalElement, SMSComponent, StudyArea, QuestionnaireType,
)

L = BilingualLabel


@dataclass(frozen=True)
class StatusConfig:
    label: BilingualLabel
    description: BilingualLabel
    allowed_transitions: List[str]
    sort_order: int


ASSESSMENT_STATUSES: Dict[str, StatusConfig] = {
    AssessmentStatus.DRAFT: StatusConfig(
        label=L("Draft", "Brouillon"),
        description=L("Assessment is being prepared and can be edited",
                      "L'évaluation est en cours de préparation et peut être modifiée"),
        allowed_transitions=[AssessmentStatus.IN_PROGRESS, AssessmentStatus.ARCHIVED],
        sort_order=1,
    ),
    AssessmentStatus.IN_PROGRESS: StatusConfig(
        label=L("In Progress", "En cours"),
        description=L("Assessment is actively being completed",
                      "L'évaluation est en cours de réalisation"),
        allowed_transitions=[AssessmentStatus.SUBMITTED, AssessmentStatus.DRAFT],
        sort_order=2,
    ),
    AssessmentStatus.SUBMITTED: StatusConfig(
        label=L("Submitted", "Soumis"),
        description=L("Assessment has been submitted for review",
                      "L'évaluation a été soumise pour examen"),
        allowed_transitions=[AssessmentStatus.UNDER_REVIEW, AssessmentStatus.IN_PROGRESS],
        sort_order=3,
    ),
    AssessmentStatus.UNDER_REVIEW: StatusConfig(
        label=L("Under Review", "En cours d'examen"),
        description=L("Assessment is being reviewed by peers or auditors",
                      "L'évaluation est examinée par des pairs ou des auditeurs"),
        allowed_transitions=[AssessmentStatus.COMPLETED, AssessmentStatus.SUBMITTED],
        sort_order=4,
    ),
    AssessmentStatus.COMPLETED: StatusConfig(
        label=L("Completed", "Terminé"),
        description=L("Assessment has been finalized and approved",
                      "L'évaluation a été finalisée et approuvée"),
        allowed_transitions=[AssessmentStatus.ARCHIVED],
        sort_order=5,
    ),
    AssessmentStatus.ARCHIVED: StatusConfig(
        label=L("Archived", "Archivé"),
        description=L("Assessment has been archived for historical reference",
                      "L'évaluation a été archivée pour référence historique"),
        allowed_transitions=[],
        sort_order=6,
    ),
}

# Responses may only change while the assessment is open
EDITABLE_STATUSES = [AssessmentStatus.DRAFT, AssessmentStatus.IN_PROGRESS]

ASSESSMENT_TYPES: Dict[str, BilingualLabel] = {
    AssessmentType.SELF_ASSESSMENT: L("Self-Assessment", "Auto-évaluation"),
    AssessmentType.PEER_REVIEW: L("Peer Review", "Examen par les pairs"),
    AssessmentType.GAP_ANALYSIS: L("Gap Analysis", "Analyse des écarts"),
    AssessmentType.FOLLOW_UP: L("Follow-up", "Suivi"),
}

ANS_RESPONSE_VALUES: Dict[str, BilingualLabel] = {
    ResponseValue.SATISFACTORY: L("Satisfactory", "Satisfaisant"),
    ResponseValue.NOT_SATISFACTORY: L("Not Satisfactory", "Non satisfaisant"),
    ResponseValue.NOT_APPLICABLE: L("Not Applicable", "Non applicable"),
    ResponseValue.NOT_REVIEWED: L("Not Reviewed", "Non examiné"),
}


@dataclass(frozen=True)
class MaturityConfig:
    label: BilingualLabel
    score_value: int
    score_range: Tuple[int, int]


SMS_MATURITY_LEVELS: Dict[str, MaturityConfig] = {
    MaturityLevel.A: MaturityConfig(L("Level A - Initial/Ad-hoc", "Niveau A - Initial/Ad hoc"), 1, (0, 20)),
    MaturityLevel.B: MaturityConfig(L("Level B - Defined/Documented", "Niveau B - Défini/Documenté"), 2, (21, 40)),
    MaturityLevel.C: MaturityConfig(L("Level C - Implemented/Measured", "Niveau C - Mis en œuvre/Mesuré"), 3, (41, 60)),
    MaturityLevel.D: MaturityConfig(L("Level D - Managed/Controlled", "Niveau D - Géré/Contrôlé"), 4, (61, 80)),
    MaturityLevel.E: MaturityConfig(L("Level E - Optimizing/Leading", "Niveau E - Optimisé/Leader"), 5, (81, 100)),
}

AUDIT_AREAS: Dict[str, BilingualLabel] = {
    AuditArea.LEG: L("Primary Aviation Legislation", "Législation aéronautique de base"),
    AuditArea.ORG: L("Civil Aviation Organization", "Organisation de l'aviation civile"),
    AuditArea.PEL: L("Personnel Licensing and Training", "Licences du personnel et formation"),
    AuditArea.OPS: L("Aircraft Operations", "Exploitation des aéronefs"),
    AuditArea.AIR: L("Airworthiness of Aircraft", "Navigabilité des aéronefs"),
    AuditArea.AIG: L("Aircraft Accident and Incident Investigation",
                     "Enquêtes sur les accidents et incidents d'aéronefs"),
    AuditArea.ANS: L("Air Navigation Services", "Services de navigation aérienne"),
    AuditArea.AGA: L("Aerodromes and Ground Aids", "Aérodromes et aides au sol"),
    AuditArea.SSP: L("State Safety Programme", "Programme national de sécurité"),
}

CRITICAL_ELEMENTS: Dict[str, BilingualLabel] = {
    CriticalElement.CE_1: L("Primary Aviation Legislation", "Législation aéronautique de base"),
    CriticalElement.CE_2: L("Specific Operating Regulations", "Règlements d'exploitation spécifiques"),
    CriticalElement.CE_3: L("State Civil Aviation System and Safety Oversight Functions",
                            "Système d'aviation civile de l'État"),
    CriticalElement.CE_4: L("Technical Personnel Qualification and Training",
                            "Qualification du personnel technique"),
    CriticalElement.CE_5: L("Technical Guidance, Tools and Provision of Safety-critical Information",
                            "Orientations techniques et informations critiques"),
    CriticalElement.CE_6: L("Licensing, Certification, Authorization and Approval Obligations",
                            "Licences, certification et autorisation"),
    CriticalElement.CE_7: L("Surveillance Obligations", "Obligations de surveillance"),
    CriticalElement.CE_8: L("Resolution of Safety Issues", "Résolution des problèmes de sécurité"),
}


@dataclass(frozen=True)
class ComponentConfig:
    label: BilingualLabel
    weight: float
    study_areas: List[str] = field(default_factory=list)


SMS_COMPONENTS: Dict[str, ComponentConfig] = {
    SMSComponent.SAFETY_POLICY_OBJECTIVES: ComponentConfig(
        L("Safety Policy and Objectives", "Politique et objectifs de sécurité"), 0.25,
        [StudyArea.SA_1_1, StudyArea.SA_1_2, StudyArea.SA_1_3, StudyArea.SA_1_4, StudyArea.SA_1_5],
    ),
    SMSComponent.SAFETY_RISK_MANAGEMENT: ComponentConfig(
        L("Safety Risk Management", "Gestion des risques de sécurité"), 0.30,
        [StudyArea.SA_2_1, StudyArea.SA_2_2],
    ),
    SMSComponent.SAFETY_ASSURANCE: ComponentConfig(
        L("Safety Assurance", "Assurance de la sécurité"), 0.25,
        [StudyArea.SA_3_1, StudyArea.SA_3_2, StudyArea.SA_3_3],
    ),
    SMSComponent.SAFETY_PROMOTION: ComponentConfig(
        L("Safety Promotion", "Promotion de la sécurité"), 0.20,
        [StudyArea.SA_4_1, StudyArea.SA_4_2],
    ),
}

SMS_COMPONENT_WEIGHTS: Dict[str, float] = {code: cfg.weight for code, cfg in SMS_COMPONENTS.items()}

SMS_STUDY_AREAS: Dict[str, BilingualLabel] = {
    StudyArea.SA_1_1: L("Management Commitment", "Engagement de la direction"),
    StudyArea.SA_1_2: L("Safety Accountabilities", "Responsabilités en matière de sécurité"),
    StudyArea.SA_1_3: L("Appointment of Key Safety Personnel", "Nomination du personnel clé de sécurité"),
    StudyArea.SA_1_4: L("Coordination of Emergency Response Planning",
                        "Coordination de la planification des interventions d'urgence"),
    StudyArea.SA_1_5: L("SMS Documentation", "Documentation du SGS"),
    StudyArea.SA_2_1: L("Hazard Identification", "Identification des dangers"),
    StudyArea.SA_2_2: L("Risk Assessment and Mitigation", "Évaluation et atténuation des risques"),
    StudyArea.SA_3_1: L("Safety Performance Monitoring and Measurement",
                        "Surveillance et mesure des performances de sécurité"),
    StudyArea.SA_3_2: L("Management of Change", "Gestion du changement"),
    StudyArea.SA_3_3: L("Continuous Improvement of the SMS", "Amélioration continue du SGS"),
    StudyArea.SA_4_1: L("Training and Education", "Formation et éducation"),
    StudyArea.SA_4_2: L("Safety Communication", "Communication sur la sécurité"),
}

# Lower bound (inclusive) of each EI band, best first
EI_SCORE_THRESHOLDS: List[Tuple[str, int, BilingualLabel]] = [
    ("EXCELLENT", 90, L("Excellent", "Excellent")),
    ("GOOD", 75, L("Good", "Bon")),
    ("SATISFACTORY", 60, L("Satisfactory", "Satisfaisant")),
    ("NEEDS_IMPROVEMENT", 40, L("Needs Improvement", "À améliorer")),
    ("CRITICAL", 0, L("Critical", "Critique")),
]


@dataclass(frozen=True)
class SubmissionRequirement:
    min_answered_percentage: int
    min_evidence_percentage: int
    max_not_reviewed: int


SUBMISSION_REQUIREMENTS: Dict[str, SubmissionRequirement] = {
    QuestionnaireType.ANS_USOAP_CMA: SubmissionRequirement(100, 80, 0),
    QuestionnaireType.SMS_CANSO_SOE: SubmissionRequirement(100, 75, 0),
}


def is_status_transition_allowed(current: str, target: str) -> bool:
    config = ASSESSMENT_STATUSES.get(current)
    return bool(config) and target in config.allowed_transitions


def get_status_array(locale: Optional[str] = None) -> List[dict]:
    """Statuses in workflow order, labelled for `locale`."""
    ordered = sorted(ASSESSMENT_STATUSES.items(), key=lambda item: item[1].sort_order)
    return [
        {
            'code': code,
            'label': config.label.get(locale),
            'description': config.description.get(locale),
            'allowed_transitions': list(config.allowed_transitions),
            'sort_order': config.sort_order,
        }
        for code, config in ordered
    ]


def get_maturity_level_from_score(score: float) -> str:
    """Map a 1-5 mean score onto a maturity level."""
    if score >= 4.5:
        return MaturityLevel.E
    if score >= 3.5:
        return MaturityLevel.D
    if score >= 2.5:
        return MaturityLevel.C
    if score >= 1.5:
        return MaturityLevel.B
    return MaturityLevel.A


def get_ei_score_category(ei_score: float) -> str:
    for category, minimum, _label in EI_SCORE_THRESHOLDS:
        if ei_score >= minimum:
            return category
    return "CRITICAL"
