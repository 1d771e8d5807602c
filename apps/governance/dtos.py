from ninja import Schema
from uuid import UUID
from datetime import datetime
from typing import Optional, Any


class AuditLogOut(Schema):
    id: UUID
    org_id: UUID
    action: str
    target_type: str
    target_id: UUID
    target_label: str
    performed_by_id: Optional[UUID] = None
    performed_by_name: Optional[str] = None
    performed_at: datetime
    context: Any
