"""Report statuses, who may move them, and the bilingual text used in reports."""
from typing import Dict, List

from apps.core.bilingual import BilingualLabel
from apps.identity.models import UserRole
from apps.identity.permissions import ADMIN_ROLES
from apps.reviews.models import ReviewType, TeamRole
from .models import ReportStatus

L = BilingualLabel

REPORT_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    ReportStatus.DRAFT: [ReportStatus.UNDER_REVIEW],
    ReportStatus.UNDER_REVIEW: [ReportStatus.DRAFT, ReportStatus.FINAL],
    ReportStatus.FINAL: [ReportStatus.PUBLISHED],
    ReportStatus.PUBLISHED: [],
}

REPORT_STATUS_LABELS: Dict[str, BilingualLabel] = {
    ReportStatus.DRAFT: L("Draft", "Brouillon"),
    ReportStatus.UNDER_REVIEW: L("Under Review", "En cours d'examen"),
    ReportStatus.FINAL: L("Final", "Définitif"),
    ReportStatus.PUBLISHED: L("Published", "Publié"),
}

# Programme-wide readers
REPORT_VIEW_ALL_ROLES = ADMIN_ROLES + [UserRole.STEERING_COMMITTEE]

# Host organization roles that read their own review's report
REPORT_ORG_VIEW_ROLES = [UserRole.ANSP_ADMIN, UserRole.SAFETY_MANAGER, UserRole.QUALITY_MANAGER]

# Lead reviewers additionally have to lead the review in question
REPORT_EDIT_ROLES = ADMIN_ROLES + [UserRole.LEAD_REVIEWER]

REPORT_PUBLISH_ROLES = ADMIN_ROLES + [UserRole.STEERING_COMMITTEE]

CLASSIFICATION = "CONFIDENTIAL"

REVIEW_TYPE_LABELS: Dict[str, BilingualLabel] = {
    ReviewType.FULL: L("Full Review", "Revue complète"),
    ReviewType.FOCUSED: L("Focused Review", "Revue ciblée"),
    ReviewType.FOLLOW_UP: L("Follow-up Review", "Revue de suivi"),
    ReviewType.SURVEILLANCE: L("Surveillance", "Surveillance"),
}

TEAM_ROLE_LABELS: Dict[str, BilingualLabel] = {
    TeamRole.LEAD_REVIEWER: L("Lead Reviewer", "Réviseur principal"),
    TeamRole.REVIEWER: L("Reviewer", "Réviseur"),
    TeamRole.TECHNICAL_EXPERT: L("Technical Expert", "Expert technique"),
    TeamRole.OBSERVER: L("Observer", "Observateur"),
    TeamRole.TRAINEE: L("Trainee", "Stagiaire"),
}

SECTION_LABELS: Dict[str, BilingualLabel] = {
    'title': L("Peer Review Report", "Rapport de revue par les pairs"),
    'contents': L("Contents", "Sommaire"),
    'executive_summary': L("Executive Summary", "Résumé analytique"),
    'introduction': L("Introduction", "Introduction"),
    'objectives': L("Objectives", "Objectifs"),
    'scope': L("Scope", "Portée"),
    'schedule': L("Activity Schedule", "Calendrier des activités"),
    'team': L("Review Team", "Équipe de revue"),
    'ans': L("ANS Assessment", "Évaluation ANS"),
    'sms': L("SMS Assessment", "Évaluation du SGS"),
    'findings_summary': L("Summary of Findings", "Synthèse des constatations"),
    'findings_detail': L("Findings", "Constatations"),
    'corrective_actions': L("Corrective Action Plans", "Plans d'actions correctives"),
    'good_practices': L("Good Practices", "Bonnes pratiques"),
    'conclusion': L("Conclusion", "Conclusion"),
    'review_period': L("Review period", "Période de revue"),
    'reference': L("Reference", "Référence"),
    'name': L("Name", "Nom"),
    'role': L("Role", "Rôle"),
    'organization': L("Organization", "Organisation"),
    'area': L("Area", "Domaine"),
    'type': L("Type", "Type"),
    'severity': L("Severity", "Gravité"),
    'status': L("Status", "Statut"),
    'due_date': L("Due date", "Échéance"),
    'evidence': L("Evidence", "Éléments probants"),
    'total': L("Total", "Total"),
    'overdue': L("Overdue", "En retard"),
    'not_available': L("No assessment data available.", "Aucune donnée d'évaluation disponible."),
    'none_recorded': L("None recorded.", "Aucune."),
    'overall_ei': L("Overall Effective Implementation", "Mise en œuvre effective globale"),
    'maturity': L("Overall maturity", "Maturité globale"),
    'completion_rate': L("Completion rate", "Taux d'achèvement"),
    'generated_on': L("Generated on", "Généré le"),
    'to_be_determined': L("To be determined", "À déterminer"),
}

DEFAULT_OBJECTIVES: List[BilingualLabel] = [
    L("Assess the level of effective implementation of ICAO standards",
      "Évaluer le niveau de mise en œuvre effective des normes de l'OACI"),
    L("Evaluate the maturity of the Safety Management System",
      "Évaluer la maturité du Système de Gestion de la Sécurité"),
    L("Identify good practices and areas for improvement",
      "Identifier les bonnes pratiques et les domaines d'amélioration"),
]

FULL_SCOPE = L("Full scope review", "Revue de portée complète")

SCHEDULE_PHASES: List[BilingualLabel] = [
    L("Preparation", "Préparation"),
    L("On-site Review", "Revue sur site"),
    L("Reporting", "Rédaction du rapport"),
]

GOOD_PRACTICE_APPLICABILITY = L(
    "Applicable to similar ANSP environments",
    "Applicable aux environnements ANSP similaires",
)

# EI narrative bands
EI_STRONG_THRESHOLD = 80
EI_WEAK_THRESHOLD = 60
