"""
Services for Organizations app.
This is the public API for other apps to interact with organizations.
"""
import logging
import secrets
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.bilingual import pick
from apps.governance.audit_service import log_action, AuditAction
from apps.identity.dtos import UserCreate
from apps.identity.models import User, UserRole
from apps.identity.permissions import Permissions, get_user_permissions, is_programme_user
from apps.identity.services import create_user
from apps.notifications.dtos import NotificationPayload
from apps.notifications.models import NotificationType, NotificationPriority
from apps.notifications.services import (
    send_notification, send_direct_email, get_programme_recipients,
)
from .models import (
    Organization, RegionalTeam, JoinRequest, JoinRequestStatus, OPEN_JOIN_REQUEST_STATUSES,
    ParticipationStatus, MembershipStatus, SCDecision,
)
from .dtos import (
    OnboardingRequest, OnboardingResponse, OrganizationOut, OrganizationUpdate,
    JoinRequestIn, CoordinatorReviewIn, SCDecisionIn,
)

logger = logging.getLogger(__name__)


# Allowed join request moves
JOIN_REQUEST_TRANSITIONS = {
    JoinRequestStatus.PENDING: [JoinRequestStatus.SC_REVIEW, JoinRequestStatus.WITHDRAWN],
    JoinRequestStatus.COORDINATOR_REVIEW: [JoinRequestStatus.SC_REVIEW, JoinRequestStatus.WITHDRAWN],
    JoinRequestStatus.MORE_INFO: [JoinRequestStatus.SC_REVIEW, JoinRequestStatus.WITHDRAWN],
    JoinRequestStatus.SC_REVIEW: [
        JoinRequestStatus.APPROVED,
        JoinRequestStatus.REJECTED,
        JoinRequestStatus.MORE_INFO,
        JoinRequestStatus.WITHDRAWN,
    ],
    JoinRequestStatus.APPROVED: [],
    JoinRequestStatus.REJECTED: [],
    JoinRequestStatus.WITHDRAWN: [],
}


def can_transition_join_request(current: str, target: str) -> bool:
    return target in JOIN_REQUEST_TRANSITIONS.get(current, [])


# =============================================================================
# Organizations
# =============================================================================

def get_organization_dto(org_id) -> OrganizationOut | None:
    """
    Get an organization by ID and return as DTO.
    This is the only way other apps should access organization data.
    """
    try:
        org = Organization.objects.get(id=org_id)
        return OrganizationOut.from_orm(org)
    except Organization.DoesNotExist:
        return None


def get_organization_code(org_id) -> Optional[str]:
    return Organization.objects.filter(id=org_id).values_list('organization_code', flat=True).first()


def get_organization_name(org_id, locale: str = 'en') -> str:
    org = Organization.objects.filter(id=org_id).only('name_en', 'name_fr').first()
    if not org:
        return ""
    return pick(org.name_en, org.name_fr, locale)


def list_organizations(user: User) -> List[Organization]:
    """Programme users see every organization; everyone else only their own."""
    if is_programme_user(user):
        return list(Organization.objects.select_related('regional_team'))
    if user.org_id:
        return list(Organization.objects.filter(id=user.org_id))
    return []


def can_edit_organization(user: User, org_id: UUID) -> bool:
    perms = get_user_permissions(user)
    if Permissions.ORGANIZATIONS_EDIT_ANY in perms:
        return True
    return Permissions.ORGANIZATIONS_EDIT_OWN in perms and user.org_id == org_id


def update_organization(org: Organization, payload: OrganizationUpdate, performed_by: User) -> Organization:
    changes = payload.dict(exclude_unset=True)
    for attr, value in changes.items():
        setattr(org, attr, value)
    org.save()
    log_action(
        org_id=org.id,
        action=AuditAction.UPDATE_ORGANIZATION,
        target_type="Organization",
        target_id=org.id,
        target_label=org.name_en,
        performed_by=performed_by,
        context={"fields": sorted(changes.keys())},
    )
    return org


def list_regional_teams(active_only: bool = True) -> List[RegionalTeam]:
    qs = RegionalTeam.objects.annotate(member_count=Count('organizations'))
    if active_only:
        qs = qs.filter(is_active=True)
    return list(qs)


def onboard_organization(payload: OnboardingRequest, performed_by: Optional[User] = None) -> OnboardingResponse:
    with transaction.atomic():
        # 1. Create Organization
        org_data = payload.organization.dict()
        org = Organization.objects.create(**org_data)

        # 2. Create Admin User
        user_payload = payload.admin_user
        # Enforce ANSP_ADMIN role
        user_payload.role = UserRole.ANSP_ADMIN

        user_dto = create_user(org_id=org.id, payload=user_payload)

        log_action(
            org_id=org.id,
            action=AuditAction.CREATE_ORGANIZATION,
            target_type="Organization",
            target_id=org.id,
            target_label=org.name_en,
            performed_by=performed_by,
            context={"admin_user": user_dto.username},
        )

        return OnboardingResponse(
            organization=OrganizationOut.from_orm(org),
            admin_user=user_dto
        )


# =============================================================================
# Join requests
# =============================================================================

def _join_request_url(join_request: JoinRequest) -> str:
    return f"/join-requests/{join_request.id}"


def submit_join_request(payload: JoinRequestIn) -> JoinRequest:
    """
    Public entry point of the programme application.

    Raises ValueError when the organization is unknown, already an active
    participant, or already has an application in progress.
    """
    try:
        org = Organization.objects.get(id=payload.organization_id)
    except Organization.DoesNotExist:
        raise ValueError("Organization not found")

    if org.participation_status == ParticipationStatus.ACTIVE:
        raise ValueError("Organization is already an active programme participant")
    if JoinRequest.objects.filter(organization=org, status__in=OPEN_JOIN_REQUEST_STATUSES).exists():
        raise ValueError("Organization already has a pending join request")

    data = payload.dict(exclude={'organization_id'})
    data['current_sms_maturity'] = data.get('current_sms_maturity') or ""

    with transaction.atomic():
        join_request = JoinRequest.objects.create(organization=org, **data)
        org.participation_status = ParticipationStatus.APPLIED
        org.save(update_fields=['participation_status', 'updated_at'])

    log_action(
        org_id=org.id,
        action=AuditAction.SUBMIT_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=org.name_en,
        performed_by=None,
        context={"contact_email": join_request.contact_email},
    )

    send_direct_email(
        join_request.contact_email,
        subject=_applicant_subject(join_request, "Application received", "Candidature reçue"),
        template='organizations/emails/join_request_received.txt',
        context={'join_request': join_request, 'organization': org, 'locale': _applicant_locale(join_request)},
    )
    send_notification(
        get_programme_recipients([UserRole.PROGRAMME_COORDINATOR]),
        NotificationPayload(
            type=NotificationType.JOIN_REQUEST_RECEIVED,
            title_en="New programme application",
            title_fr="Nouvelle candidature au programme",
            message_en=f"{org.name_en} has applied to join the peer review programme.",
            message_fr=f"{org.name_fr} a demandé à rejoindre le programme d'examen par les pairs.",
            entity_type="JoinRequest",
            entity_id=str(join_request.id),
            action_url=_join_request_url(join_request),
        ),
    )

    logger.info(f"Join request {join_request.id} submitted for {org.name_en}")
    return join_request


def coordinator_review(join_request: JoinRequest, reviewer: User, payload: CoordinatorReviewIn) -> JoinRequest:
    """Coordinator screening; always hands the request over to the Steering Committee."""
    if not can_transition_join_request(join_request.status, JoinRequestStatus.SC_REVIEW):
        raise ValueError(f"Cannot review a join request in status {join_request.status}")

    with transaction.atomic():
        join_request.status = JoinRequestStatus.SC_REVIEW
        join_request.coordinator_notes = payload.notes
        join_request.coordinator_recommendation = payload.recommendation
        join_request.coordinator_recommended_team = payload.recommended_team
        join_request.coordinator_reviewed_at = timezone.now()
        join_request.coordinator_reviewed_by = reviewer
        join_request.save()

        org = join_request.organization
        org.participation_status = ParticipationStatus.UNDER_REVIEW
        org.save(update_fields=['participation_status', 'updated_at'])

    log_action(
        org_id=org.id,
        action=AuditAction.COORDINATOR_REVIEW_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=org.name_en,
        performed_by=reviewer,
        context={"recommendation": payload.recommendation, "recommended_team": payload.recommended_team},
    )

    send_notification(
        get_programme_recipients([UserRole.STEERING_COMMITTEE]),
        NotificationPayload(
            type=NotificationType.JOIN_REQUEST_RECEIVED,
            title_en="Programme application awaiting decision",
            title_fr="Candidature en attente de décision",
            message_en=f"The coordinator recommends {payload.recommendation} for {org.name_en}.",
            message_fr=f"Le coordinateur recommande {payload.recommendation} pour {org.name_fr}.",
            entity_type="JoinRequest",
            entity_id=str(join_request.id),
            action_url=_join_request_url(join_request),
            priority=NotificationPriority.HIGH,
        ),
    )
    return join_request


def steering_committee_decision(join_request: JoinRequest, decider: User, payload: SCDecisionIn) -> JoinRequest:
    if join_request.status != JoinRequestStatus.SC_REVIEW:
        raise ValueError("Join request is not awaiting a Steering Committee decision")

    if payload.decision == SCDecision.APPROVED:
        return _approve_join_request(join_request, decider, payload)
    if payload.decision == SCDecision.REJECTED:
        return _reject_join_request(join_request, decider, payload)
    return _request_more_info(join_request, decider, payload)


def _record_decision(join_request: JoinRequest, decider: User, payload: SCDecisionIn, status: str) -> None:
    join_request.status = status
    join_request.sc_decision = payload.decision
    join_request.sc_decision_notes = payload.notes
    join_request.sc_decision_at = timezone.now()
    join_request.sc_decision_by = decider


def _approve_join_request(join_request: JoinRequest, decider: User, payload: SCDecisionIn) -> JoinRequest:
    if not payload.assigned_team:
        raise ValueError("A regional team must be assigned when approving")
    try:
        team = RegionalTeam.objects.get(team_number=payload.assigned_team)
    except RegionalTeam.DoesNotExist:
        raise ValueError(f"Regional team {payload.assigned_team} does not exist")

    org = join_request.organization
    temporary_password = None
    with transaction.atomic():
        _record_decision(join_request, decider, payload, JoinRequestStatus.APPROVED)
        join_request.sc_assigned_team = team.team_number

        org.participation_status = ParticipationStatus.ACTIVE
        org.membership_status = MembershipStatus.ACTIVE
        org.regional_team = team
        org.joined_programme_at = timezone.now()
        org.save()

        admin_user, temporary_password = _create_applicant_admin(join_request)
        if admin_user:
            join_request.created_user_id = admin_user.id
        join_request.save()

    log_action(
        org_id=org.id,
        action=AuditAction.APPROVE_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=org.name_en,
        performed_by=decider,
        context={"team": team.team_number, "admin_user_created": bool(temporary_password)},
    )

    send_direct_email(
        join_request.contact_email,
        subject=_applicant_subject(join_request, "Welcome to the peer review programme",
                                   "Bienvenue dans le programme d'examen par les pairs"),
        template='organizations/emails/join_request_approved.txt',
        context={
            'join_request': join_request,
            'organization': org,
            'team': team,
            'username': join_request.contact_email,
            'temporary_password': temporary_password,
            'login_url': f"{settings.APP_BASE_URL.rstrip('/')}/login",
            'locale': _applicant_locale(join_request),
        },
    )
    logger.info(f"Join request {join_request.id} approved; {org.name_en} joined team {team.team_number}")
    return join_request


def _create_applicant_admin(join_request: JoinRequest):
    """Create the organization's first ANSP_ADMIN account. Returns (user, password)."""
    email = join_request.contact_email
    if User.objects.filter(Q(username=email) | Q(email=email)).exists():
        logger.info(f"User {email} already exists; no new admin account created")
        return None, None

    first_name, _, last_name = join_request.contact_name.partition(" ")
    temporary_password = secrets.token_urlsafe(12)
    user_dto = create_user(
        org_id=join_request.organization_id,
        payload=UserCreate(
            username=email,
            email=email,
            password=temporary_password,
            first_name=first_name,
            last_name=last_name or first_name,
            role=UserRole.ANSP_ADMIN,
            phone=join_request.contact_phone,
            title=join_request.contact_job_title,
            locale='fr' if join_request.preferred_language == 'fr' else 'en',
        ),
    )
    return User.objects.get(id=user_dto.id), temporary_password


def _reject_join_request(join_request: JoinRequest, decider: User, payload: SCDecisionIn) -> JoinRequest:
    if not payload.rejection_reason:
        raise ValueError("A rejection reason is required")

    org = join_request.organization
    with transaction.atomic():
        _record_decision(join_request, decider, payload, JoinRequestStatus.REJECTED)
        join_request.rejection_reason = payload.rejection_reason
        join_request.save()
        org.participation_status = ParticipationStatus.REJECTED
        org.save(update_fields=['participation_status', 'updated_at'])

    log_action(
        org_id=org.id,
        action=AuditAction.REJECT_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=org.name_en,
        performed_by=decider,
        context={"reason": payload.rejection_reason},
    )
    send_direct_email(
        join_request.contact_email,
        subject=_applicant_subject(join_request, "Programme application outcome", "Résultat de votre candidature"),
        template='organizations/emails/join_request_rejected.txt',
        context={'join_request': join_request, 'organization': org, 'locale': _applicant_locale(join_request)},
    )
    return join_request


def _request_more_info(join_request: JoinRequest, decider: User, payload: SCDecisionIn) -> JoinRequest:
    if not payload.additional_info_request:
        raise ValueError("Describe the additional information needed")

    _record_decision(join_request, decider, payload, JoinRequestStatus.MORE_INFO)
    join_request.additional_info_request = payload.additional_info_request
    join_request.save()

    log_action(
        org_id=join_request.organization_id,
        action=AuditAction.COORDINATOR_REVIEW_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=join_request.organization.name_en,
        performed_by=decider,
        context={"decision": SCDecision.MORE_INFO},
    )
    send_direct_email(
        join_request.contact_email,
        subject=_applicant_subject(join_request, "Additional information requested",
                                   "Informations complémentaires demandées"),
        template='organizations/emails/join_request_more_info.txt',
        context={
            'join_request': join_request,
            'organization': join_request.organization,
            'locale': _applicant_locale(join_request),
        },
    )
    return join_request


def withdraw_join_request(join_request: JoinRequest, performed_by: Optional[User] = None) -> JoinRequest:
    if not can_transition_join_request(join_request.status, JoinRequestStatus.WITHDRAWN):
        raise ValueError(f"Cannot withdraw a join request in status {join_request.status}")

    with transaction.atomic():
        join_request.status = JoinRequestStatus.WITHDRAWN
        join_request.save(update_fields=['status', 'updated_at'])
        org = join_request.organization
        org.participation_status = ParticipationStatus.REGISTERED
        org.save(update_fields=['participation_status', 'updated_at'])

    log_action(
        org_id=org.id,
        action=AuditAction.WITHDRAW_JOIN_REQUEST,
        target_type="JoinRequest",
        target_id=join_request.id,
        target_label=org.name_en,
        performed_by=performed_by,
    )
    return join_request


def list_join_requests(status: Optional[str] = None) -> List[JoinRequest]:
    qs = JoinRequest.objects.select_related('organization')
    if status:
        qs = qs.filter(status=status)
    return list(qs)


def get_join_request_stats() -> dict:
    return JoinRequest.objects.aggregate(
        total=Count('id'),
        pending=Count('id', filter=Q(status__in=OPEN_JOIN_REQUEST_STATUSES)),
        approved=Count('id', filter=Q(status=JoinRequestStatus.APPROVED)),
        rejected=Count('id', filter=Q(status=JoinRequestStatus.REJECTED)),
    )


def get_eligible_organizations() -> List[Organization]:
    """Registered organizations that have not applied yet."""
    return list(Organization.objects.filter(
        participation_status=ParticipationStatus.REGISTERED, is_active=True
    ))


def get_participation_status(org_id: UUID) -> dict:
    org = Organization.objects.select_related('regional_team').get(id=org_id)
    latest = org.join_requests.order_by('-created_at').first()
    return {
        'organization_id': org.id,
        'participation_status': org.participation_status,
        'regional_team': org.regional_team.team_number if org.regional_team else None,
        'latest_request_id': latest.id if latest else None,
        'latest_request_status': latest.status if latest else None,
        'latest_request_at': latest.created_at if latest else None,
    }


def _applicant_locale(join_request: JoinRequest) -> str:
    return 'fr' if join_request.preferred_language == 'fr' else 'en'


def _applicant_subject(join_request: JoinRequest, en: str, fr: str) -> str:
    if join_request.preferred_language == 'both':
        return f"{en} / {fr}"
    return pick(en, fr, _applicant_locale(join_request))
