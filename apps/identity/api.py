"""
Identity API: cookie-based JWT login, profile and user administration.

Organization administrators manage the users of their own ANSP; programme
administrators manage users across the programme.
"""
import os
from typing import List, Optional
from uuid import UUID
from ninja import Router, Schema
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from ninja.errors import HttpError
from django.contrib.auth import authenticate
from django.contrib.auth.signals import user_logged_in

from .models import User
from .dtos import UserDTO, UserCreate, UserUpdate, ProfileUpdate
from .decorators import require_auth, require_any_permission
from .services import (
    get_user_dto, create_user, list_users, update_user, soft_delete_user, can_manage_user,
)
from .permissions import Permissions, get_user_permissions, is_programme_user
from .jwt_auth import (
    ACCESS_COOKIE,
    REFRESH, REFRESH_COOKIE, REFRESH_COOKIE_PATH,
    create_token_pair,
    create_access_token,
    decode_token,
    get_access_token_cookie_settings,
    get_refresh_token_cookie_settings,
)

router = Router(tags=["Identity"])

USER_ADMIN_PERMISSIONS = (
    Permissions.ADMIN_USERS,
    Permissions.SETTINGS_USERS,
    Permissions.SETTINGS_USERS_OWN,
)


class LoginSchema(Schema):
    username: str
    password: str


class TokenResponse(Schema):
    success: bool
    user: Optional[UserDTO] = None
    message: Optional[str] = None


class PermissionsResponse(Schema):
    role: str
    permissions: List[str]


def _secure_cookies() -> bool:
    # Lambda deployments always sit behind HTTPS
    return bool(os.getenv('AWS_LAMBDA_FUNCTION_NAME')) or not settings.DEBUG


def _auth_response(user: User, access_token: str, refresh_token: Optional[str] = None) -> HttpResponse:
    body = TokenResponse(success=True, user=get_user_dto(user.id))
    response = HttpResponse(body.model_dump_json(), content_type='application/json')
    secure = _secure_cookies()
    response.set_cookie(ACCESS_COOKIE, access_token, **get_access_token_cookie_settings(secure))
    if refresh_token:
        response.set_cookie(REFRESH_COOKIE, refresh_token, **get_refresh_token_cookie_settings(secure))
    return response


# =============================================================================
# Authentication
# =============================================================================

@router.post("/login", response=TokenResponse, auth=None)
def login_user(request: HttpRequest, payload: LoginSchema):
    """Authenticate and set the access and refresh token cookies."""
    user = authenticate(request, username=payload.username, password=payload.password)
    # authenticate() already refuses inactive accounts
    if user is None:
        raise HttpError(401, "Invalid username or password")

    # No django.contrib.auth.login() here, so the LOGIN audit hook needs the signal
    user_logged_in.send(sender=user.__class__, request=request, user=user)

    return _auth_response(user, *create_token_pair(user))


@router.post("/logout", response=TokenResponse, auth=None)
def logout_user(request: HttpRequest):
    body = TokenResponse(success=True, message="Logged out")
    response = HttpResponse(body.model_dump_json(), content_type='application/json')
    response.delete_cookie(ACCESS_COOKIE, path='/')
    response.delete_cookie(REFRESH_COOKIE, path=REFRESH_COOKIE_PATH)
    return response


@router.post("/refresh", response=TokenResponse, auth=None)
def refresh_token(request: HttpRequest):
    """Issue a new access token from the refresh token cookie."""
    token = request.COOKIES.get(REFRESH_COOKIE)
    if not token:
        raise HttpError(401, "No refresh token")

    payload = decode_token(token, expected_type=REFRESH)
    if not payload:
        raise HttpError(401, "Invalid refresh token")

    try:
        user = User.objects.get(id=UUID(payload['sub']), is_active=True)
    except (KeyError, ValueError, User.DoesNotExist):
        raise HttpError(401, "Invalid refresh token")

    return _auth_response(user, create_access_token(user.id, user.org_id, user.role, user.locale))


@router.get("/me", response=UserDTO, auth=None)
def get_me(request: HttpRequest):
    """
    Get current authenticated user's profile.
    """
    user = require_auth(request)
    return get_user_dto(user.id)


@router.patch("/me", response=UserDTO, auth=None)
def update_me(request: HttpRequest, payload: ProfileUpdate):
    """Update own profile (name, locale, notification preferences)."""
    user = require_auth(request)
    try:
        return update_user(user.id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/me/permissions", response=PermissionsResponse, auth=None)
def get_my_permissions(request: HttpRequest):
    """Feature permissions of the current user, for client-side navigation."""
    user = require_auth(request)
    return {"role": user.role, "permissions": get_user_permissions(user)}


# =============================================================================
# User Management Endpoints
# =============================================================================

@router.post("/users", response=UserDTO, auth=None)
def create_org_user(request: HttpRequest, payload: UserCreate):
    """
    Create a new user.

    ANSP administrators create users in their own organization; programme
    administrators may target any organization via `org_id`.
    """
    user = require_any_permission(request, *USER_ADMIN_PERMISSIONS)

    org_id = payload.org_id if is_programme_user(user) else user.org_id
    if not can_manage_user(user, org_id, payload.role):
        raise HttpError(403, "Permission denied")

    try:
        return create_user(org_id, payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/users", response=List[UserDTO], auth=None)
def list_org_users(request: HttpRequest, org_id: Optional[UUID] = None, role: Optional[str] = None):
    """
    List users.

    Programme users may list any organization (or all); everyone else sees
    their own organization only.
    """
    user = require_any_permission(request, *USER_ADMIN_PERMISSIONS)

    if not is_programme_user(user):
        org_id = user.org_id

    return list_users(org_id, role)


@router.put("/users/{user_id}", response=UserDTO, auth=None)
def update_org_user(request: HttpRequest, user_id: UUID, payload: UserUpdate):
    """
    Update a user.
    """
    user = require_any_permission(request, *USER_ADMIN_PERMISSIONS)

    target_user = get_user_dto(user_id)
    if not target_user or not can_manage_user(user, target_user.org_id):
        raise HttpError(404, "User not found")
    if payload.role and not can_manage_user(user, target_user.org_id, payload.role):
        raise HttpError(403, "Permission denied")

    try:
        updated = update_user(user_id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    if not updated:
        raise HttpError(404, "User not found")

    return updated


@router.delete("/users/{user_id}", response={204: None}, auth=None)
def delete_org_user(request: HttpRequest, user_id: UUID):
    """
    Soft delete (deactivate) a user.
    """
    user = require_any_permission(request, *USER_ADMIN_PERMISSIONS)

    target_user = get_user_dto(user_id)
    if not target_user or not can_manage_user(user, target_user.org_id):
        raise HttpError(404, "User not found")
    if target_user.id == user.id:
        raise HttpError(400, "You cannot deactivate your own account")

    if not soft_delete_user(user_id):
        raise HttpError(404, "User not found")

    return 204, None
