from typing import Dict, Iterable, List
from .models import UserRole, User


class Permissions:
    """Feature permission strings checked by the API layer."""
    DASHBOARD = "dashboard"
    DASHBOARD_GLOBAL = "dashboard.global"
    ANALYTICS = "analytics"

    QUESTIONNAIRES = "questionnaires"
    QUESTIONNAIRES_MANAGE = "questionnaires.manage"

    ASSESSMENTS = "assessments"
    ASSESSMENTS_ALL = "assessments.all"
    ASSESSMENTS_OWN = "assessments.own"
    ASSESSMENTS_ASSIGNED = "assessments.assigned"

    PEER_REVIEWS = "peerReviews"
    PEER_REVIEWS_ALL = "peerReviews.all"
    PEER_REVIEWS_OWN = "peerReviews.own"
    PEER_REVIEWS_ASSIGNED = "peerReviews.assigned"
    PEER_REVIEWS_SCHEDULE = "peerReviews.schedule"

    FINDINGS = "findings"
    FINDINGS_ALL = "findings.all"
    FINDINGS_OWN = "findings.own"
    FINDINGS_ASSIGNED = "findings.assigned"
    FINDINGS_CREATE = "findings.create"

    CAPS = "caps"
    CAPS_ALL = "caps.all"
    CAPS_OWN = "caps.own"
    CAPS_ASSIGNED = "caps.assigned"
    CAPS_CREATE = "caps.create"

    REVIEWERS = "reviewers"
    REVIEWERS_ALL = "reviewers.all"
    REVIEWERS_OWN = "reviewers.own"
    REVIEWERS_EDIT = "reviewers.edit"
    REVIEWERS_EDIT_ANY = "reviewers.editAny"
    REVIEWERS_APPROVE = "reviewers.approve"

    TEAMS = "teams"
    TEAMS_ALL = "teams.all"
    TEAMS_DETAILS = "teams.details"

    ORGANIZATIONS = "organizations"
    ORGANIZATIONS_ALL = "organizations.all"
    ORGANIZATIONS_DETAILS = "organizations.details"
    ORGANIZATIONS_EDIT_OWN = "organizations.editOwn"
    ORGANIZATIONS_EDIT_ANY = "organizations.editAny"

    JOIN_REQUESTS = "joinRequests"
    JOIN_REQUESTS_COORDINATOR_REVIEW = "joinRequests.coordinatorReview"
    JOIN_REQUESTS_SC_DECISION = "joinRequests.scDecision"

    TRAINING = "training"
    TRAINING_MANAGE = "training.manage"

    SETTINGS = "settings"
    SETTINGS_SYSTEM = "settings.system"
    SETTINGS_USERS = "settings.users"
    SETTINGS_USERS_OWN = "settings.usersOwn"

    BEST_PRACTICES = "bestPractices"
    LESSONS = "lessons"

    ADMIN = "admin"
    ADMIN_USERS = "admin.users"
    ADMIN_ROLES = "admin.roles"
    ADMIN_SETTINGS = "admin.settings"
    ADMIN_SESSIONS = "admin.sessions"
    ADMIN_LOGS = "admin.logs"


P = Permissions

# Programme coordination shares most of its surface with the platform admins
_COORDINATION = [
    P.DASHBOARD, P.DASHBOARD_GLOBAL, P.ANALYTICS, P.BEST_PRACTICES, P.LESSONS,
    P.QUESTIONNAIRES, P.QUESTIONNAIRES_MANAGE,
    P.ASSESSMENTS, P.ASSESSMENTS_ALL, P.ASSESSMENTS_OWN,
    P.PEER_REVIEWS, P.PEER_REVIEWS_ALL, P.PEER_REVIEWS_OWN, P.PEER_REVIEWS_SCHEDULE,
    P.FINDINGS, P.FINDINGS_ALL, P.FINDINGS_OWN, P.FINDINGS_CREATE,
    P.CAPS, P.CAPS_ALL, P.CAPS_OWN, P.CAPS_CREATE,
    P.REVIEWERS, P.REVIEWERS_ALL, P.REVIEWERS_OWN, P.REVIEWERS_EDIT,
    P.REVIEWERS_EDIT_ANY, P.REVIEWERS_APPROVE,
    P.TEAMS, P.TEAMS_ALL,
    P.ORGANIZATIONS, P.ORGANIZATIONS_ALL, P.ORGANIZATIONS_DETAILS,
    P.ORGANIZATIONS_EDIT_OWN, P.ORGANIZATIONS_EDIT_ANY,
    P.JOIN_REQUESTS, P.JOIN_REQUESTS_COORDINATOR_REVIEW,
    P.TRAINING, P.TRAINING_MANAGE,
    P.SETTINGS, P.SETTINGS_USERS,
]

_REVIEWER = [
    P.DASHBOARD, P.BEST_PRACTICES, P.LESSONS, P.QUESTIONNAIRES,
    P.ASSESSMENTS, P.ASSESSMENTS_ASSIGNED,
    P.PEER_REVIEWS, P.PEER_REVIEWS_ASSIGNED,
    P.FINDINGS, P.FINDINGS_ASSIGNED, P.FINDINGS_CREATE,
    P.CAPS, P.CAPS_ASSIGNED,
    P.REVIEWERS, P.REVIEWERS_ALL,
    P.TEAMS, P.TRAINING, P.SETTINGS,
]

_ORG_MANAGER = [
    P.DASHBOARD, P.BEST_PRACTICES, P.LESSONS, P.QUESTIONNAIRES,
    P.ASSESSMENTS, P.ASSESSMENTS_OWN,
    P.FINDINGS, P.FINDINGS_OWN,
    P.CAPS, P.CAPS_OWN, P.CAPS_CREATE,
    P.TEAMS_DETAILS, P.TRAINING, P.SETTINGS,
]

_PLATFORM_ADMIN = _COORDINATION + [
    P.SETTINGS_SYSTEM,
    P.ADMIN, P.ADMIN_USERS, P.ADMIN_ROLES, P.ADMIN_SETTINGS, P.ADMIN_SESSIONS, P.ADMIN_LOGS,
]


# Static Role -> Permission Mapping
ROLE_PERMISSIONS: Dict[str, List[str]] = {
    # Super admins are the only platform role that can also take steering committee decisions
    UserRole.SUPER_ADMIN: _PLATFORM_ADMIN + [P.JOIN_REQUESTS_SC_DECISION],
    UserRole.SYSTEM_ADMIN: list(_PLATFORM_ADMIN),
    UserRole.PROGRAMME_COORDINATOR: _COORDINATION + [P.ADMIN, P.ADMIN_ROLES, P.ADMIN_LOGS],
    UserRole.STEERING_COMMITTEE: [
        P.DASHBOARD, P.DASHBOARD_GLOBAL, P.ANALYTICS, P.BEST_PRACTICES, P.LESSONS,
        P.ASSESSMENTS, P.ASSESSMENTS_ALL,
        P.PEER_REVIEWS, P.PEER_REVIEWS_ALL,
        P.FINDINGS, P.FINDINGS_ALL,
        P.CAPS, P.CAPS_ALL,
        P.REVIEWERS, P.REVIEWERS_ALL, P.REVIEWERS_APPROVE,
        P.TEAMS, P.TEAMS_ALL,
        P.ORGANIZATIONS, P.ORGANIZATIONS_ALL, P.ORGANIZATIONS_DETAILS,
        P.JOIN_REQUESTS, P.JOIN_REQUESTS_SC_DECISION,
        P.SETTINGS,
        P.ADMIN, P.ADMIN_ROLES, P.ADMIN_LOGS,
    ],
    UserRole.LEAD_REVIEWER: _REVIEWER + [P.REVIEWERS_OWN, P.REVIEWERS_EDIT],
    UserRole.PEER_REVIEWER: list(_REVIEWER),
    UserRole.OBSERVER: [
        P.DASHBOARD, P.DASHBOARD_GLOBAL, P.BEST_PRACTICES, P.LESSONS,
        P.ASSESSMENTS, P.ASSESSMENTS_ALL,
        P.PEER_REVIEWS, P.PEER_REVIEWS_ALL,
        P.FINDINGS, P.FINDINGS_ALL,
        P.CAPS, P.CAPS_ALL,
        P.REVIEWERS, P.REVIEWERS_ALL,
        P.TEAMS, P.TEAMS_ALL,
        P.SETTINGS,
    ],
    UserRole.ANSP_ADMIN: _ORG_MANAGER + [
        P.PEER_REVIEWS, P.PEER_REVIEWS_OWN,
        P.REVIEWERS, P.REVIEWERS_ALL, P.REVIEWERS_OWN, P.REVIEWERS_EDIT,
        P.ORGANIZATIONS_DETAILS, P.ORGANIZATIONS_EDIT_OWN,
        P.SETTINGS_USERS_OWN,
    ],
    UserRole.SAFETY_MANAGER: list(_ORG_MANAGER),
    UserRole.QUALITY_MANAGER: list(_ORG_MANAGER),
    UserRole.STAFF: [
        P.DASHBOARD, P.BEST_PRACTICES, P.LESSONS, P.QUESTIONNAIRES,
        P.ASSESSMENTS, P.ASSESSMENTS_OWN,
        P.TEAMS_DETAILS, P.TRAINING, P.SETTINGS,
    ],
}


# Roles with elevated, programme-wide administration rights
ADMIN_ROLES = [
    UserRole.SUPER_ADMIN,
    UserRole.SYSTEM_ADMIN,
    UserRole.PROGRAMME_COORDINATOR,
]

# ANSP staff
PARTICIPANT_ROLES = [
    UserRole.ANSP_ADMIN,
    UserRole.SAFETY_MANAGER,
    UserRole.QUALITY_MANAGER,
    UserRole.STAFF,
]

REVIEWER_ROLES = [
    UserRole.LEAD_REVIEWER,
    UserRole.PEER_REVIEWER,
]

# Roles whose data access is not bound to a single organization
PROGRAMME_ROLES = ADMIN_ROLES + [
    UserRole.STEERING_COMMITTEE,
    UserRole.OBSERVER,
]


def get_role_permissions(role: str) -> List[str]:
    return ROLE_PERMISSIONS.get(role, [])


def has_feature(role: str, feature: str) -> bool:
    return feature in ROLE_PERMISSIONS.get(role, [])


def has_any_feature(role: str, features: Iterable[str]) -> bool:
    return any(has_feature(role, feature) for feature in features)


def get_user_permissions(user: User) -> List[str]:
    """
    Returns a list of permission strings for the given user based on their role.
    """
    if not user or not user.is_active:
        return []

    return ROLE_PERMISSIONS.get(user.role, [])


def is_programme_user(user: User) -> bool:
    """True for users who may see every organization's data."""
    return bool(user and (user.is_superuser or user.role in PROGRAMME_ROLES))
