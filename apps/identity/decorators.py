from functools import wraps
from typing import Callable, Optional
from ninja.errors import HttpError
from django.http import HttpRequest
from .models import User
from .permissions import get_user_permissions
from .jwt_auth import ACCESS_COOKIE, get_user_id_from_token


def get_current_user(request: HttpRequest) -> Optional[User]:
    """
    Resolve the calling user.

    A Django session (admin, tests using force_login) wins; otherwise the
    JWT access token cookie is validated.
    """
    session_user = getattr(request, 'user', None)
    if session_user is not None and session_user.is_authenticated:
        return session_user if session_user.is_active else None

    access_token = request.COOKIES.get(ACCESS_COOKIE)
    if not access_token:
        return None

    user_id = get_user_id_from_token(access_token)
    if not user_id:
        return None

    try:
        return User.objects.get(id=user_id, is_active=True)
    except User.DoesNotExist:
        return None


def require_auth(request: HttpRequest) -> User:
    """
    Require authentication. Raises 401 if not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HttpError(401, "Authentication required")
    return user


def require_permission(request: HttpRequest, permission: str) -> User:
    """Require a specific feature permission. Returns the user."""
    user = require_auth(request)
    if permission not in get_user_permissions(user):
        raise HttpError(403, f"Permission denied: {permission}")
    return user


def require_any_permission(request: HttpRequest, *permissions: str) -> User:
    user = require_auth(request)
    granted = get_user_permissions(user)
    if not any(p in granted for p in permissions):
        raise HttpError(403, "Permission denied")
    return user


def has_permission(required_perm: str):
    """
    Decorator to enforce a specific permission on a Django Ninja endpoint.

    Usage:
        @router.get("/some-path")
        @has_permission(Permissions.SOME_PERM)
        def my_view(request):
            ...
    """
    def decorator(view_func: Callable):
        @wraps(view_func)
        def wrapper(request: HttpRequest, *args, **kwargs):
            require_permission(request, required_perm)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
