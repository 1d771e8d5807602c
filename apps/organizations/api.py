from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth, require_permission, has_permission
from apps.identity.permissions import Permissions, get_user_permissions, is_programme_user
from .models import Organization, JoinRequest
from .dtos import (
    OrganizationOut, OrganizationIn, OrganizationUpdate, OnboardingRequest, OnboardingResponse,
    RegionalTeamOut, JoinRequestIn, JoinRequestOut, CoordinatorReviewIn, SCDecisionIn,
    JoinRequestStatusOut, JoinRequestStatsOut, EligibleOrganizationOut,
)
from . import services

router = Router(tags=["Organizations"])


@router.post("/onboard", response=OnboardingResponse, auth=None)
def create_onboard(request: HttpRequest, payload: OnboardingRequest):
    """
    Register a new Organization.

    This creates:
    1. A new Organization tenant.
    2. Its initial ANSP administrator.

    Restricted to users who may edit any organization.
    """
    user = require_permission(request, Permissions.ORGANIZATIONS_EDIT_ANY)
    try:
        return services.onboard_organization(payload, performed_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("", response=OrganizationOut, auth=None)
@has_permission(Permissions.ORGANIZATIONS_EDIT_ANY)
def create_organization(request: HttpRequest, payload: OrganizationIn):
    return Organization.objects.create(**payload.dict())


@router.get("", response=List[OrganizationOut], auth=None)
def list_organizations(request: HttpRequest):
    user = require_auth(request)
    return services.list_organizations(user)


@router.get("/teams", response=List[RegionalTeamOut], auth=None)
def list_teams(request: HttpRequest):
    require_auth(request)
    return services.list_regional_teams()


# =============================================================================
# Join requests
# =============================================================================

@router.post("/join-requests", response={201: JoinRequestOut}, auth=None)
def submit_join_request(request: HttpRequest, payload: JoinRequestIn):
    """**Public Endpoint**: apply to join the peer review programme."""
    try:
        return 201, services.submit_join_request(payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/join-requests", response=List[JoinRequestOut], auth=None)
@has_permission(Permissions.JOIN_REQUESTS)
def list_join_requests(request: HttpRequest, status: Optional[str] = None):
    return services.list_join_requests(status=status)


@router.get("/join-requests/stats", response=JoinRequestStatsOut, auth=None)
@has_permission(Permissions.JOIN_REQUESTS)
def join_request_stats(request: HttpRequest):
    return services.get_join_request_stats()


@router.get("/join-requests/eligible", response=List[EligibleOrganizationOut], auth=None)
def eligible_organizations(request: HttpRequest):
    """**Public Endpoint**: organizations that may still apply."""
    return services.get_eligible_organizations()


@router.get("/join-requests/{request_id}", response=JoinRequestOut, auth=None)
def get_join_request(request: HttpRequest, request_id: UUID):
    user = require_auth(request)
    join_request = get_object_or_404(JoinRequest, id=request_id)
    if Permissions.JOIN_REQUESTS not in get_user_permissions(user) and user.org_id != join_request.organization_id:
        raise HttpError(403, "Permission denied: Cannot view this join request")
    return join_request


@router.post("/join-requests/{request_id}/coordinator-review", response=JoinRequestOut, auth=None)
def coordinator_review(request: HttpRequest, request_id: UUID, payload: CoordinatorReviewIn):
    user = require_permission(request, Permissions.JOIN_REQUESTS_COORDINATOR_REVIEW)
    join_request = get_object_or_404(JoinRequest.objects.select_related('organization'), id=request_id)
    try:
        return services.coordinator_review(join_request, user, payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/join-requests/{request_id}/sc-decision", response=JoinRequestOut, auth=None)
def sc_decision(request: HttpRequest, request_id: UUID, payload: SCDecisionIn):
    user = require_permission(request, Permissions.JOIN_REQUESTS_SC_DECISION)
    join_request = get_object_or_404(JoinRequest.objects.select_related('organization'), id=request_id)
    try:
        return services.steering_committee_decision(join_request, user, payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/join-requests/{request_id}/withdraw", response=JoinRequestOut, auth=None)
def withdraw_join_request(request: HttpRequest, request_id: UUID):
    user = require_auth(request)
    join_request = get_object_or_404(JoinRequest.objects.select_related('organization'), id=request_id)
    perms = get_user_permissions(user)
    own_request = Permissions.ORGANIZATIONS_EDIT_OWN in perms and user.org_id == join_request.organization_id
    if not own_request and Permissions.JOIN_REQUESTS_COORDINATOR_REVIEW not in perms:
        raise HttpError(403, "Permission denied: Cannot withdraw this join request")
    try:
        return services.withdraw_join_request(join_request, performed_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))


# =============================================================================
# Single organization
# =============================================================================

def _check_can_view(user, org_id: UUID) -> None:
    # Enforce strict tenant isolation
    if not is_programme_user(user) and user.org_id != org_id:
        raise HttpError(403, "Permission denied: Cannot view other organizations")


@router.get("/{org_id}", response=OrganizationOut, auth=None)
def get_organization(request: HttpRequest, org_id: UUID):
    user = require_auth(request)
    _check_can_view(user, org_id)
    return get_object_or_404(Organization, id=org_id)


@router.get("/{org_id}/participation", response=JoinRequestStatusOut, auth=None)
def get_participation(request: HttpRequest, org_id: UUID):
    user = require_auth(request)
    _check_can_view(user, org_id)
    get_object_or_404(Organization, id=org_id)
    return services.get_participation_status(org_id)


@router.patch("/{org_id}", response=OrganizationOut, auth=None)
def update_organization(request: HttpRequest, org_id: UUID, payload: OrganizationUpdate):
    user = require_auth(request)
    if not services.can_edit_organization(user, org_id):
        raise HttpError(403, "Permission denied: Cannot update this organization")

    org = get_object_or_404(Organization, id=org_id)
    return services.update_organization(org, payload, performed_by=user)
