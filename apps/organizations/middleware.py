"""
Tenant binding.

Every request carries `request.org_id`, the organization it acts for:
- ANSP users and reviewers are pinned to their own organization.
- Programme users (admins, coordinators, steering committee, observers)
  act across organizations (`None`) unless they pick one with the
  X-Organization-ID header.

Users are resolved from the session or from the JWT access cookie, so
tenant binding is the same for browsers and API clients.
"""
import logging
import uuid
from typing import Optional

from django.core.exceptions import PermissionDenied
from django.utils.deprecation import MiddlewareMixin

from apps.identity.decorators import get_current_user
from apps.identity.permissions import is_programme_user

logger = logging.getLogger(__name__)

ORG_HEADER = 'X-Organization-ID'


def _header_org_id(request) -> Optional[uuid.UUID]:
    value = request.headers.get(ORG_HEADER)
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {ORG_HEADER} header: {value}")
        return None


class TenantMiddleware(MiddlewareMixin):

    def process_request(self, request):
        request.org_id = None
        request.programme_context = False

        user = request.tenant_user = get_current_user(request)
        if user is None:
            return

        if is_programme_user(user):
            request.programme_context = True
            request.org_id = _header_org_id(request)
        else:
            request.org_id = user.org_id

    def process_view(self, request, view_func, view_args, view_kwargs):
        """A URL `org_id` must be the caller's own organization outside programme context."""
        url_org_id = view_kwargs.get('org_id')
        if not url_org_id or request.programme_context:
            return None

        user = getattr(request, 'tenant_user', None)
        if user is None:
            # Authentication is enforced by the view
            return None

        if str(url_org_id) != str(request.org_id):
            logger.warning(f"Tenant violation: user {user.id} tried to access organization {url_org_id}")
            raise PermissionDenied("You do not have access to this organization.")
        return None
