"""Review phases, progress and the default fieldwork checklist."""
from typing import Dict, List, Tuple

from apps.core.bilingual import BilingualLabel
from .models import ReviewStatus, ReviewPhase, FieldworkPhase

L = BilingualLabel

STATUS_LABELS: Dict[str, BilingualLabel] = {
    ReviewStatus.REQUESTED: L("Requested", "Demandée"),
    ReviewStatus.APPROVED: L("Approved", "Approuvée"),
    ReviewStatus.PLANNING: L("Planning", "Planification"),
    ReviewStatus.SCHEDULED: L("Scheduled", "Programmée"),
    ReviewStatus.IN_PROGRESS: L("In Progress", "En cours"),
    ReviewStatus.REPORT_DRAFTING: L("Report Drafting", "Rédaction du rapport"),
    ReviewStatus.REPORT_REVIEW: L("Report Review", "Examen du rapport"),
    ReviewStatus.COMPLETED: L("Completed", "Terminée"),
    ReviewStatus.CANCELLED: L("Cancelled", "Annulée"),
}

STATUS_DESCRIPTIONS: Dict[str, BilingualLabel] = {
    ReviewStatus.REQUESTED: L("Review has been requested by host organization",
                              "La revue a été demandée par l'organisation hôte"),
    ReviewStatus.APPROVED: L("Request approved, ready for team planning",
                             "Demande approuvée, prête pour la constitution de l'équipe"),
    ReviewStatus.PLANNING: L("Team assignment in progress", "Constitution de l'équipe en cours"),
    ReviewStatus.SCHEDULED: L("Team assigned, dates confirmed", "Équipe constituée, dates confirmées"),
    ReviewStatus.IN_PROGRESS: L("On-site review underway", "Revue sur site en cours"),
    ReviewStatus.REPORT_DRAFTING: L("Fieldwork complete, drafting report",
                                    "Travail de terrain terminé, rédaction du rapport"),
    ReviewStatus.REPORT_REVIEW: L("Draft report under review", "Projet de rapport en cours d'examen"),
    ReviewStatus.COMPLETED: L("Review finalized and closed", "Revue finalisée et clôturée"),
    ReviewStatus.CANCELLED: L("Review cancelled", "Revue annulée"),
}

# Workflow order used by status flow listings
STATUS_ORDER: List[str] = [
    ReviewStatus.REQUESTED,
    ReviewStatus.APPROVED,
    ReviewStatus.PLANNING,
    ReviewStatus.SCHEDULED,
    ReviewStatus.IN_PROGRESS,
    ReviewStatus.REPORT_DRAFTING,
    ReviewStatus.REPORT_REVIEW,
    ReviewStatus.COMPLETED,
    ReviewStatus.CANCELLED,
]

STATUS_PHASE: Dict[str, str] = {
    ReviewStatus.REQUESTED: ReviewPhase.PLANNING,
    ReviewStatus.APPROVED: ReviewPhase.PLANNING,
    ReviewStatus.PLANNING: ReviewPhase.PLANNING,
    ReviewStatus.SCHEDULED: ReviewPhase.PREPARATION,
    ReviewStatus.IN_PROGRESS: ReviewPhase.ON_SITE,
    ReviewStatus.REPORT_DRAFTING: ReviewPhase.REPORTING,
    ReviewStatus.REPORT_REVIEW: ReviewPhase.REPORTING,
    ReviewStatus.COMPLETED: ReviewPhase.FOLLOW_UP,
    ReviewStatus.CANCELLED: ReviewPhase.CLOSED,
}

STATUS_PROGRESS: Dict[str, int] = {
    ReviewStatus.REQUESTED: 5,
    ReviewStatus.APPROVED: 10,
    ReviewStatus.PLANNING: 20,
    ReviewStatus.SCHEDULED: 30,
    ReviewStatus.IN_PROGRESS: 50,
    ReviewStatus.REPORT_DRAFTING: 70,
    ReviewStatus.REPORT_REVIEW: 85,
    ReviewStatus.COMPLETED: 100,
    ReviewStatus.CANCELLED: 0,
}

# Reviews a host may only have one of at a time
ACTIVE_REVIEW_STATUSES = [
    ReviewStatus.REQUESTED,
    ReviewStatus.APPROVED,
    ReviewStatus.PLANNING,
    ReviewStatus.SCHEDULED,
    ReviewStatus.IN_PROGRESS,
]

CLOSED_REVIEW_STATUSES = [ReviewStatus.COMPLETED, ReviewStatus.CANCELLED]

# (phase, item_code, label) in display order
DEFAULT_CHECKLIST: List[Tuple[str, str, BilingualLabel]] = [
    (FieldworkPhase.PRE_VISIT, "PRE_DOC_REQUEST_SENT",
     L("Document request sent to host organization", "Demande de documents envoyée à l'organisation hôte")),
    (FieldworkPhase.PRE_VISIT, "PRE_DOCS_RECEIVED",
     L("Pre-visit documents received and reviewed", "Documents pré-visite reçus et examinés")),
    (FieldworkPhase.PRE_VISIT, "PRE_COORDINATION_MEETING",
     L("Pre-visit coordination meeting held with team", "Réunion de coordination pré-visite tenue avec l'équipe")),
    (FieldworkPhase.PRE_VISIT, "PRE_PLAN_APPROVED",
     L("Review plan approved by team", "Plan de revue approuvé par l'équipe")),
    (FieldworkPhase.ON_SITE, "SITE_OPENING_MEETING",
     L("Opening meeting conducted with host", "Réunion d'ouverture tenue avec l'hôte")),
    (FieldworkPhase.ON_SITE, "SITE_INTERVIEWS",
     L("Staff interviews completed", "Entretiens avec le personnel terminés")),
    (FieldworkPhase.ON_SITE, "SITE_FACILITIES",
     L("Facilities inspection completed", "Inspection des installations terminée")),
    (FieldworkPhase.ON_SITE, "SITE_DOC_REVIEW",
     L("Document review completed", "Examen des documents terminé")),
    (FieldworkPhase.ON_SITE, "SITE_FINDINGS_DISCUSSED",
     L("Preliminary findings discussed with host", "Constatations préliminaires discutées avec l'hôte")),
    (FieldworkPhase.ON_SITE, "SITE_CLOSING_MEETING",
     L("Closing meeting conducted", "Réunion de clôture tenue")),
    (FieldworkPhase.POST_VISIT, "POST_FINDINGS_ENTERED",
     L("All findings entered in system", "Toutes les constatations saisies dans le système")),
    (FieldworkPhase.POST_VISIT, "POST_EVIDENCE_UPLOADED",
     L("Supporting evidence uploaded", "Preuves à l'appui téléchargées")),
    (FieldworkPhase.POST_VISIT, "POST_DRAFT_REPORT",
     L("Draft report prepared", "Projet de rapport préparé")),
    (FieldworkPhase.POST_VISIT, "POST_HOST_FEEDBACK",
     L("Host feedback received on draft findings", "Commentaires de l'hôte reçus sur les constatations")),
]

# The closing meeting can only be ticked once the other on-site items are done
CHECKLIST_PREREQUISITES: Dict[str, List[str]] = {
    "SITE_CLOSING_MEETING": [
        "SITE_OPENING_MEETING",
        "SITE_INTERVIEWS",
        "SITE_FACILITIES",
        "SITE_DOC_REVIEW",
        "SITE_FINDINGS_DISCUSSED",
    ],
}
