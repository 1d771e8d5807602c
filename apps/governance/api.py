from typing import List, Optional
from uuid import UUID
from datetime import date
from django.shortcuts import get_object_or_404
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_permission
from apps.identity.permissions import Permissions, is_programme_user
from .models import AuditLog
from .dtos import AuditLogOut
from . import services

router = Router(tags=["Governance"])


def _scope_org(request, user, org_id: Optional[UUID]) -> Optional[UUID]:
    """
    Programme users may look across organizations, narrowed by the query or
    by the tenant header; everyone else is pinned to their own.
    """
    if is_programme_user(user):
        return org_id or getattr(request, 'org_id', None)
    if not user.org_id:
        raise HttpError(400, "User has no organisation context")
    return user.org_id


# =============================================================================
# Audit Log Endpoints
# =============================================================================

@router.get("/audit-logs", response=List[AuditLogOut], auth=None)
def list_audit_logs(
    request,
    org_id: Optional[UUID] = None,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
):
    """
    List audit log entries.
    Requires admin.logs permission.
    Supports filtering by organization, action name, target and date range.
    """
    user = require_permission(request, Permissions.ADMIN_LOGS)

    return services.list_audit_logs(
        org_id=_scope_org(request, user, org_id),
        action=action,
        target_type=target_type,
        target_id=target_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


@router.get("/audit-logs/{log_id}", response=AuditLogOut, auth=None)
def get_audit_log(request, log_id: UUID):
    """
    Retrieve a single audit log entry by ID.
    Requires admin.logs permission.
    """
    user = require_permission(request, Permissions.ADMIN_LOGS)

    qs = AuditLog.objects.select_related("performed_by")
    org_id = _scope_org(request, user, None)
    if org_id:
        qs = qs.filter(org_id=org_id)

    return services.serialize_log(get_object_or_404(qs, id=log_id))


@router.get("/history/{target_type}/{target_id}", response=List[AuditLogOut], auth=None)
def get_entity_history(request, target_type: str, target_id: UUID):
    """Chronological history of one object (review, finding, CAP, ...)."""
    user = require_permission(request, Permissions.ADMIN_LOGS)
    history = services.get_entity_history(target_type, target_id)
    if not is_programme_user(user):
        history = [entry for entry in history if entry.org_id == user.org_id]
    return history
