"""Services for Governance app."""
from datetime import date
from typing import List, Optional
from uuid import UUID

from .models import AuditLog
from .dtos import AuditLogOut

MAX_AUDIT_LOG_LIMIT = 500


def serialize_log(log: AuditLog) -> AuditLogOut:
    """Convert an AuditLog model instance to its output schema."""
    performed_by_name = None
    if log.performed_by is not None:
        performed_by_name = log.performed_by.get_full_name() or log.performed_by.email or log.performed_by.username

    return AuditLogOut(
        id=log.id,
        org_id=log.org_id,
        action=log.action,
        target_type=log.target_type,
        target_id=log.target_id,
        target_label=log.target_label,
        performed_by_id=log.performed_by_id,
        performed_by_name=performed_by_name,
        performed_at=log.performed_at,
        context=log.context,
    )


def list_audit_logs(
    org_id: Optional[UUID] = None,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
) -> List[AuditLogOut]:
    """
    Filtered audit trail, newest first. `org_id=None` means every organization.
    """
    qs = AuditLog.objects.select_related("performed_by")

    if org_id:
        qs = qs.filter(org_id=org_id)
    if action:
        qs = qs.filter(action=action)
    if target_type:
        qs = qs.filter(target_type=target_type)
    if target_id:
        qs = qs.filter(target_id=target_id)
    if start_date:
        qs = qs.filter(performed_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(performed_at__date__lte=end_date)

    qs = qs[:max(1, min(limit, MAX_AUDIT_LOG_LIMIT))]

    return [serialize_log(log) for log in qs]


def get_entity_history(target_type: str, target_id: UUID) -> List[AuditLogOut]:
    """Full history of one object (e.g. every status change of a review), oldest first."""
    qs = AuditLog.objects.select_related("performed_by").filter(
        target_type=target_type, target_id=target_id
    ).order_by("performed_at")
    return [serialize_log(log) for log in qs]
