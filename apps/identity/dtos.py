"""DTOs for Identity app."""
from dataclasses import dataclass
from uuid import UUID
from typing import Optional, List

from ninja import Schema
from .models import UserRole, Locale


@dataclass(frozen=True)
class UserDTO:
    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    role: str
    org_id: Optional[UUID]
    locale: str
    email_notifications: bool
    is_active: bool
    permissions: List[str]


class UserCreate(Schema):
    username: str
    email: str
    password: str
    first_name: str
    last_name: str
    role: str = UserRole.STAFF
    org_id: Optional[UUID] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    locale: str = Locale.EN


class UserUpdate(Schema):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    locale: Optional[str] = None
    email_notifications: Optional[bool] = None
    is_active: Optional[bool] = None


class ProfileUpdate(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    locale: Optional[str] = None
    email_notifications: Optional[bool] = None
