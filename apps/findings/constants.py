"""Finding and CAP workflow tables and bilingual labels."""
from datetime import date, timedelta
from typing import Dict, List, Optional

from apps.core.bilingual import BilingualLabel
from .models import FindingType, FindingSeverity, FindingStatus, CAPStatus

L = BilingualLabel

FINDING_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    FindingStatus.OPEN: [FindingStatus.CAP_REQUIRED, FindingStatus.CLOSED, FindingStatus.DEFERRED],
    FindingStatus.CAP_REQUIRED: [FindingStatus.CAP_SUBMITTED, FindingStatus.DEFERRED],
    FindingStatus.CAP_SUBMITTED: [FindingStatus.CAP_ACCEPTED, FindingStatus.CAP_REQUIRED],
    FindingStatus.CAP_ACCEPTED: [FindingStatus.IN_PROGRESS],
    FindingStatus.IN_PROGRESS: [FindingStatus.VERIFICATION, FindingStatus.DEFERRED],
    FindingStatus.VERIFICATION: [FindingStatus.CLOSED, FindingStatus.IN_PROGRESS],
    FindingStatus.CLOSED: [],
    FindingStatus.DEFERRED: [FindingStatus.OPEN, FindingStatus.CAP_REQUIRED],
}

CAP_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    CAPStatus.DRAFT: [CAPStatus.SUBMITTED],
    CAPStatus.SUBMITTED: [CAPStatus.UNDER_REVIEW, CAPStatus.DRAFT],
    CAPStatus.UNDER_REVIEW: [CAPStatus.ACCEPTED, CAPStatus.REJECTED],
    CAPStatus.REJECTED: [CAPStatus.DRAFT],
    CAPStatus.ACCEPTED: [CAPStatus.IN_PROGRESS],
    CAPStatus.IN_PROGRESS: [CAPStatus.COMPLETED],
    CAPStatus.COMPLETED: [CAPStatus.VERIFIED, CAPStatus.IN_PROGRESS],
    CAPStatus.VERIFIED: [CAPStatus.CLOSED],
    CAPStatus.CLOSED: [],
}

# Finding status that follows each CAP status; None leaves the finding alone
FINDING_STATUS_FOR_CAP: Dict[str, Optional[str]] = {
    CAPStatus.DRAFT: FindingStatus.CAP_REQUIRED,
    CAPStatus.SUBMITTED: FindingStatus.CAP_SUBMITTED,
    CAPStatus.UNDER_REVIEW: None,
    CAPStatus.ACCEPTED: FindingStatus.CAP_ACCEPTED,
    CAPStatus.REJECTED: FindingStatus.CAP_REQUIRED,
    CAPStatus.IN_PROGRESS: FindingStatus.IN_PROGRESS,
    CAPStatus.COMPLETED: None,
    CAPStatus.VERIFIED: FindingStatus.VERIFICATION,
    CAPStatus.CLOSED: FindingStatus.CLOSED,
}

# Days allowed to close a finding, by severity
SUGGESTED_CLOSE_DAYS: Dict[str, int] = {
    FindingSeverity.CRITICAL: 30,
    FindingSeverity.MAJOR: 60,
    FindingSeverity.MINOR: 90,
    FindingSeverity.OBSERVATION: 180,
}

SERIOUS_SEVERITIES = [FindingSeverity.CRITICAL, FindingSeverity.MAJOR]

TYPE_LABELS: Dict[str, BilingualLabel] = {
    FindingType.NON_CONFORMITY: L("Non-conformity", "Non-conformité"),
    FindingType.OBSERVATION: L("Observation", "Observation"),
    FindingType.RECOMMENDATION: L("Recommendation", "Recommandation"),
    FindingType.GOOD_PRACTICE: L("Good Practice", "Bonne pratique"),
    FindingType.CONCERN: L("Concern", "Préoccupation"),
}

SEVERITY_LABELS: Dict[str, BilingualLabel] = {
    FindingSeverity.CRITICAL: L("Critical", "Critique"),
    FindingSeverity.MAJOR: L("Major", "Majeure"),
    FindingSeverity.MINOR: L("Minor", "Mineure"),
    FindingSeverity.OBSERVATION: L("Observation", "Observation"),
}

CAP_STATUS_LABELS: Dict[str, BilingualLabel] = {
    CAPStatus.DRAFT: L("Draft", "Brouillon"),
    CAPStatus.SUBMITTED: L("Submitted", "Soumis"),
    CAPStatus.UNDER_REVIEW: L("Under Review", "En cours d'examen"),
    CAPStatus.ACCEPTED: L("Accepted", "Accepté"),
    CAPStatus.REJECTED: L("Rejected", "Rejeté"),
    CAPStatus.IN_PROGRESS: L("In Progress", "En cours"),
    CAPStatus.COMPLETED: L("Completed", "Terminé"),
    CAPStatus.VERIFIED: L("Verified", "Vérifié"),
    CAPStatus.CLOSED: L("Closed", "Clôturé"),
}


def is_valid_cap_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in CAP_STATUS_TRANSITIONS.get(current, [])


def get_allowed_next_statuses(current: str) -> List[str]:
    return list(CAP_STATUS_TRANSITIONS.get(current, []))


def is_valid_finding_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in FINDING_STATUS_TRANSITIONS.get(current, [])


def requires_cap_by_default(finding_type: str, severity: str) -> bool:
    return finding_type == FindingType.NON_CONFORMITY and severity in SERIOUS_SEVERITIES


def get_suggested_due_date(severity: str, today: Optional[date] = None) -> date:
    return (today or date.today()) + timedelta(days=SUGGESTED_CLOSE_DAYS.get(severity, 90))
