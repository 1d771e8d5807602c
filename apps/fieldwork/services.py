"""
Fieldwork services: queueing device operations and the offline bundle a
device downloads before going on site.
"""
import logging
from typing import Dict, List, Optional

from django.utils import timezone

from apps.core.task_service import TaskService
from apps.identity.models import User
from apps.organizations.models import Organization
from apps.reviews.models import Review
from apps.reviews.services import is_team_member, active_team, initialize_checklist
from .models import SyncQueueEntry, SyncEntityType
from .sync_engine import sync_engine

logger = logging.getLogger(__name__)


def queue_operations(review: Review, user: User, operations: List[Dict]) -> List:
    """
    Queue a batch pushed by a device and schedule processing of the
    user's queue. Unknown entity types are rejected before anything is queued.
    """
    unknown = sorted({op['entity_type'] for op in operations} - set(SyncEntityType.values))
    if unknown:
        raise ValueError(f"Unknown entity types: {', '.join(unknown)}")

    entry_ids = [
        sync_engine.enqueue(
            user, review, op['entity_type'], op['entity_id'], op['action'], op.get('payload') or {},
        )
        for op in operations
    ]
    if entry_ids:
        TaskService.process_sync_queue(user_id=user.id)
    return entry_ids


def list_queue(user: User, status: Optional[str] = None):
    qs = SyncQueueEntry.objects.filter(user=user).select_related('review')
    if status:
        qs = qs.filter(sync_status=status)
    return qs


def get_review_offline_data(review: Review, user: User) -> Dict:
    """Everything a device needs to work on a review without a connection."""
    if not is_team_member(review, user):
        raise PermissionError("You are not a member of this review team")

    org = Organization.objects.filter(id=review.host_org_id).first()
    checklist = initialize_checklist(review)
    findings = review.findings.order_by('-created_at').values(
        'id', 'reference_number', 'title_en', 'title_fr', 'finding_type', 'severity', 'status', 'client_id',
    )
    team = active_team(review)

    logger.info(f"Offline bundle for {review.reference_number} prepared for user {user.id}")
    return {
        'review': {
            'id': review.id,
            'reference_number': review.reference_number,
            'status': review.status,
            'phase': review.phase,
            'review_type': review.review_type,
            'host_organization': {
                'id': org.id,
                'name_en': org.name_en,
                'name_fr': org.name_fr,
                'organization_code': org.organization_code,
            } if org else None,
            'areas_in_scope': review.areas_in_scope,
            'planned_start_date': review.planned_start_date,
            'planned_end_date': review.planned_end_date,
        },
        'checklist_items': [
            {
                'id': item.id,
                'phase': item.phase,
                'item_code': item.item_code,
                'sort_order': item.sort_order,
                'label_en': item.label_en,
                'label_fr': item.label_fr,
                'is_completed': item.is_completed,
                'completed_at': item.completed_at,
                'notes': item.notes,
                'updated_at': item.updated_at,
            }
            for item in checklist
        ],
        'findings': list(findings),
        'team_members': [
            {
                'id': member.id,
                'user_id': member.user_id,
                'name': str(member.user),
                'role': member.role,
                'assigned_areas': member.assigned_areas,
            }
            for member in team
        ],
        'generated_at': timezone.now(),
    }
