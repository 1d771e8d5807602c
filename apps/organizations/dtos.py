from datetime import datetime
from ninja import Schema, Field
from ninja.orm import create_schema
from uuid import UUID
from typing import Optional, Dict, Any
from .models import Organization, RegionalTeam, JoinRequest

OrganizationOut = create_schema(Organization, exclude=['created_at', 'updated_at'])
RegionalTeamOut = create_schema(RegionalTeam, exclude=['created_at'])
JoinRequestOut = create_schema(JoinRequest)


class OrganizationIn(Schema):
    name_en: str
    name_fr: str
    organization_code: Optional[str] = None
    icao_code: str = ""
    country: str
    region: str
    membership_status: str = "PENDING"
    regional_team_id: Optional[UUID] = None
    contact_email: str = ""
    settings: Dict[str, Any] = {}
    is_active: bool = True


class OrganizationUpdate(Schema):
    """Fields an organization may edit about itself."""
    name_en: Optional[str] = None
    name_fr: Optional[str] = None
    icao_code: Optional[str] = None
    contact_email: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


from apps.identity.dtos import UserCreate, UserDTO


class OnboardingRequest(Schema):
    organization: OrganizationIn
    admin_user: UserCreate


class OnboardingResponse(Schema):
    organization: OrganizationOut
    admin_user: UserDTO


class JoinRequestIn(Schema):
    organization_id: UUID
    contact_name: str = Field(..., min_length=2)
    contact_email: str
    contact_phone: str = ""
    contact_job_title: str = Field(..., min_length=2)
    current_sms_maturity: Optional[str] = Field(None, pattern="^[A-E]$")
    motivation_statement: str = Field(..., min_length=100)
    proposed_reviewer_count: int = Field(2, ge=2, le=10)
    preferred_team: Optional[int] = Field(None, ge=1, le=5)
    preferred_language: str = Field("en", pattern="^(en|fr|both)$")
    additional_notes: str = ""


class CoordinatorReviewIn(Schema):
    notes: str = Field(..., min_length=10)
    recommendation: str = Field(..., pattern="^(APPROVE|REJECT|MORE_INFO)$")
    recommended_team: Optional[int] = Field(None, ge=1, le=5)


class SCDecisionIn(Schema):
    decision: str = Field(..., pattern="^(APPROVED|REJECTED|MORE_INFO)$")
    notes: str = ""
    assigned_team: Optional[int] = Field(None, ge=1, le=5)
    rejection_reason: str = ""
    additional_info_request: str = ""


class JoinRequestStatusOut(Schema):
    organization_id: UUID
    participation_status: str
    regional_team: Optional[int] = None
    latest_request_id: Optional[UUID] = None
    latest_request_status: Optional[str] = None
    latest_request_at: Optional[datetime] = None


class JoinRequestStatsOut(Schema):
    total: int
    pending: int
    approved: int
    rejected: int


class EligibleOrganizationOut(Schema):
    id: UUID
    name_en: str
    name_fr: str
    icao_code: str
    country: str
