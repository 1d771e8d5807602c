"""
JWT tokens for stateless authentication on AWS Lambda.

Access tokens are short-lived and carry the user's role, organization and
locale so edge services can route and localize without a database read.
The API itself always re-reads the user because roles change mid-session.
Refresh tokens only carry the subject and are only accepted by the refresh
endpoint.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import UUID

import jwt
from django.conf import settings

JWT_ALGORITHM = 'HS256'

ACCESS = 'access'
REFRESH = 'refresh'

ACCESS_COOKIE = 'access_token'
REFRESH_COOKIE = 'refresh_token'
# The refresh token is only sent to the identity endpoints
REFRESH_COOKIE_PATH = '/api/identity/'


def _secret() -> str:
    return getattr(settings, 'JWT_SECRET', None) or settings.SECRET_KEY


def access_lifetime() -> timedelta:
    return timedelta(minutes=getattr(settings, 'JWT_ACCESS_TOKEN_MINUTES', 15))


def refresh_lifetime() -> timedelta:
    return timedelta(days=getattr(settings, 'JWT_REFRESH_TOKEN_DAYS', 7))


def _encode(subject: UUID, token_type: str, lifetime: timedelta, **claims) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        'sub': str(subject),
        'type': token_type,
        'iat': issued,
        'exp': issued + lifetime,
        **claims,
    }
    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)


def create_access_token(user_id: UUID, org_id: Optional[UUID], role: str = "", locale: str = "en") -> str:
    """org_id is None for programme-level users (coordinators, steering committee)."""
    return _encode(
        user_id, ACCESS, access_lifetime(),
        org_id=str(org_id) if org_id else None, role=role, locale=locale,
    )


def create_refresh_token(user_id: UUID) -> str:
    return _encode(user_id, REFRESH, refresh_lifetime())


def create_token_pair(user) -> Tuple[str, str]:
    """Returns (access_token, refresh_token)."""
    return (
        create_access_token(user.id, user.org_id, user.role, user.locale),
        create_refresh_token(user.id),
    )


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """Validated payload, or None when the token is invalid, expired or of another type."""
    try:
        payload = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if expected_type and payload.get('type') != expected_type:
        return None
    return payload


def _uuid_claim(payload: Optional[dict], claim: str) -> Optional[UUID]:
    if not payload or not payload.get(claim):
        return None
    try:
        return UUID(payload[claim])
    except ValueError:
        return None


def get_user_id_from_token(token: str) -> Optional[UUID]:
    """Subject of a valid access token. Refresh tokens are rejected."""
    return _uuid_claim(decode_token(token, expected_type=ACCESS), 'sub')


def get_org_id_from_token(token: str) -> Optional[UUID]:
    return _uuid_claim(decode_token(token, expected_type=ACCESS), 'org_id')


# =============================================================================
# Cookies
# =============================================================================

def _cookie_settings(secure: bool, max_age: timedelta, path: str = '/') -> dict:
    return {
        'httponly': True,
        'secure': secure,
        'samesite': 'Lax',
        'path': path,
        'max_age': int(max_age.total_seconds()),
    }


def get_access_token_cookie_settings(secure: bool = False) -> dict:
    return _cookie_settings(secure, access_lifetime())


def get_refresh_token_cookie_settings(secure: bool = False) -> dict:
    return _cookie_settings(secure, refresh_lifetime(), path=REFRESH_COOKIE_PATH)
