"""
Centralized audit logging service.

Use log_action() to record any programme decision or critical mutation.
It will never raise, so a logging failure will never break the calling
request.

Usage:
    from apps.governance.audit_service import log_action, AuditAction

    log_action(
        org_id=review.host_org_id,
        action=AuditAction.REVIEW_STATUS_CHANGE,
        target_type="Review",
        target_id=review.id,
        target_label=review.reference_number,
        performed_by=request.user,
        context={"from": "PLANNING", "to": "SCHEDULED"},
    )
"""
import logging
from uuid import UUID
from typing import Optional

from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """
    Canonical string constants for audit log actions.
    Prevents scattered string literals and typos across apps.
    """
    # ── Identity ──────────────────────────────────────────────────────
    LOGIN = "LOGIN"

    # ── Organizations & onboarding ────────────────────────────────────
    CREATE_ORGANIZATION = "CREATE_ORGANIZATION"
    UPDATE_ORGANIZATION = "UPDATE_ORGANIZATION"
    SUBMIT_JOIN_REQUEST = "SUBMIT_JOIN_REQUEST"
    COORDINATOR_REVIEW_JOIN_REQUEST = "COORDINATOR_REVIEW_JOIN_REQUEST"
    APPROVE_JOIN_REQUEST = "APPROVE_JOIN_REQUEST"
    REJECT_JOIN_REQUEST = "REJECT_JOIN_REQUEST"
    WITHDRAW_JOIN_REQUEST = "WITHDRAW_JOIN_REQUEST"

    # ── Assessments ───────────────────────────────────────────────────
    CREATE_ASSESSMENT = "CREATE_ASSESSMENT"
    SUBMIT_ASSESSMENT = "SUBMIT_ASSESSMENT"
    ASSESSMENT_STATUS_CHANGE = "ASSESSMENT_STATUS_CHANGE"

    # ── Peer reviews ──────────────────────────────────────────────────
    REQUEST_REVIEW = "REQUEST_REVIEW"
    REVIEW_STATUS_CHANGE = "REVIEW_STATUS_CHANGE"
    UPDATE_REVIEW_SCHEDULE = "UPDATE_REVIEW_SCHEDULE"
    ASSIGN_TEAM_MEMBER = "ASSIGN_TEAM_MEMBER"
    REMOVE_TEAM_MEMBER = "REMOVE_TEAM_MEMBER"
    RESPOND_TEAM_INVITATION = "RESPOND_TEAM_INVITATION"

    # ── Reviewers ─────────────────────────────────────────────────────
    UPDATE_REVIEWER_PROFILE = "UPDATE_REVIEWER_PROFILE"
    DECLARE_COI = "DECLARE_COI"
    GRANT_COI_OVERRIDE = "GRANT_COI_OVERRIDE"
    REVOKE_COI_OVERRIDE = "REVOKE_COI_OVERRIDE"

    # ── Findings & CAPs ───────────────────────────────────────────────
    CREATE_FINDING = "CREATE_FINDING"
    UPDATE_FINDING = "UPDATE_FINDING"
    CLOSE_FINDING = "CLOSE_FINDING"
    CREATE_CAP = "CREATE_CAP"
    CAP_STATUS_CHANGE = "CAP_STATUS_CHANGE"

    # ── Reports ───────────────────────────────────────────────────────
    GENERATE_REPORT = "GENERATE_REPORT"
    REPORT_STATUS_CHANGE = "REPORT_STATUS_CHANGE"
    PUBLISH_REPORT = "PUBLISH_REPORT"

    # ── Fieldwork ─────────────────────────────────────────────────────
    SYNC_CONFLICT = "SYNC_CONFLICT"


def log_action(
    *,
    org_id: UUID,
    action: str,
    target_type: str,
    target_id: UUID,
    performed_by,
    target_label: str = "",
    context: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Create an AuditLog entry for a critical action.

    Never raises: any DB or serialization error is logged and swallowed so
    audit logging never degrades the user-facing request.

    Args:
        org_id:        Organisation UUID for multi-tenant isolation.
        action:        Action constant from AuditAction (e.g. "CREATE_FINDING").
        target_type:   Human-readable type of the object acted on (e.g. "Finding").
        target_id:     Primary key of the object acted on.
        performed_by:  Django User instance or None (system jobs).
        target_label:  Optional human-readable description of the object.
        context:       Optional dict of additional metadata to store as JSON.

    Returns:
        The created AuditLog instance, or None if creation failed.
    """
    try:
        # Savepoint keeps a failed insert from poisoning the caller's transaction
        with transaction.atomic():
            return AuditLog.objects.create(
                org_id=org_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_label=(target_label or "")[:255],
                performed_by=performed_by,
                context=context or {},
            )
    except Exception:
        logger.exception(f"Failed to write audit log {action} for {target_type} {target_id}")
        return None
