"""Services for Identity app."""
import logging
from typing import Optional
from uuid import UUID

from .models import User, UserRole, Locale
from .dtos import UserDTO, UserCreate
from .permissions import (
    Permissions, PARTICIPANT_ROLES, PROGRAMME_ROLES, get_user_permissions,
)

logger = logging.getLogger(__name__)

# Only platform administrators may hand out these roles
PROTECTED_ROLES = [UserRole.SUPER_ADMIN, UserRole.SYSTEM_ADMIN]


def to_user_dto(user: User) -> UserDTO:
    return UserDTO(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        org_id=user.org_id,
        locale=user.locale,
        email_notifications=user.email_notifications,
        is_active=user.is_active,
        permissions=get_user_permissions(user),
    )


def get_user_dto(user_id) -> UserDTO | None:
    try:
        return to_user_dto(User.objects.get(id=user_id))
    except User.DoesNotExist:
        return None


def _validate_role_assignment(role: str, org_id: Optional[UUID]) -> None:
    if role not in UserRole.values:
        raise ValueError(f"Unknown role: {role}")
    if role in PARTICIPANT_ROLES and not org_id:
        raise ValueError(f"Role {role} requires an organization")


def can_manage_user(actor: User, org_id: Optional[UUID], role: Optional[str] = None) -> bool:
    """
    Whether `actor` may create/edit a user in `org_id` with `role`.

    - admin.users: anyone, any role
    - settings.users (coordinators): any organization, no platform admin roles
    - settings.usersOwn (ANSP admins): own organization, participant roles only
    """
    perms = get_user_permissions(actor)
    if Permissions.ADMIN_USERS in perms:
        return True
    if Permissions.SETTINGS_USERS in perms:
        return role not in PROTECTED_ROLES
    if Permissions.SETTINGS_USERS_OWN in perms:
        if not actor.org_id or org_id != actor.org_id:
            return False
        return role is None or role in PARTICIPANT_ROLES
    return False


def create_user(org_id, payload: UserCreate) -> UserDTO:
    _validate_role_assignment(payload.role, org_id)
    if User.objects.filter(username=payload.username).exists():
        raise ValueError(f"Username '{payload.username}' is already taken")

    user = User.objects.create_user(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        phone=payload.phone or "",
        title=payload.title or "",
        locale=payload.locale if payload.locale in Locale.values else Locale.EN,
        org_id=org_id,
        is_active=True
    )
    logger.info(f"Created user {user.username} ({user.role}) in org {org_id}")
    return to_user_dto(user)


def list_users(org_id=None, role: Optional[str] = None) -> list[UserDTO]:
    users = User.objects.all()
    if org_id:
        users = users.filter(org_id=org_id)
    if role:
        users = users.filter(role=role)
    return [to_user_dto(u) for u in users]


def update_user(user_id, data: dict) -> UserDTO | None:
    try:
        user = User.objects.get(id=user_id)
    except User.DoesNotExist:
        return None

    new_role = data.get('role')
    if new_role:
        _validate_role_assignment(new_role, user.org_id)
    if data.get('locale') and data['locale'] not in Locale.values:
        raise ValueError(f"Unsupported locale: {data['locale']}")

    for key, value in data.items():
        if value is not None:
            setattr(user, key, value)

    user.save()
    return to_user_dto(user)


def soft_delete_user(user_id) -> bool:
    updated = User.objects.filter(id=user_id).update(is_active=False)
    return updated > 0


def get_users_by_roles(roles, org_id=None):
    """Active users holding any of `roles`, optionally limited to one organization."""
    qs = User.objects.filter(is_active=True, role__in=list(roles))
    if org_id:
        qs = qs.filter(org_id=org_id)
    return qs


def get_programme_staff(roles=None):
    return get_users_by_roles(roles or PROGRAMME_ROLES)
