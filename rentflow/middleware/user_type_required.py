"""
Account-type decorators for route protection.

The caller is identified by the ``X-User-Id`` header set by the upstream
authentication gateway. Usage:

    @bp.route("/api/v1/admin/role-requests/<request_id>/review", methods=["POST"])
    @require_user_type(UserType.ADMIN)
    def review(request_id):
        ...

When no caller id is present and API_AUTH_ENABLED is not "true", the
decorator passes through (local development and tests).
"""

import functools
import logging

from flask import current_app, g, request

from rentflow.models import db
from rentflow.models.profile import UserProfile
from rentflow.utils.errors import E, api_error
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


def current_user_id() -> str | None:
    """Caller id from the gateway header, or None."""
    return (request.headers.get(USER_ID_HEADER) or "").strip() or None


def auth_enforced() -> bool:
    """True when every request must carry the gateway user header."""
    return str(current_app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"


def require_user_type(*allowed):
    """Decorator: the caller's profile ``user_type`` must be one of ``allowed``."""
    allowed_values = {getattr(a, "value", a) for a in allowed}

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = current_user_id()
            if user_id is None:
                if auth_enforced():
                    return api_error(E.UNAUTHENTICATED, translate("authentication_required"))
                return f(*args, **kwargs)

            profile = db.session.get(UserProfile, user_id)
            user_type = profile.user_type.value if profile and profile.user_type else None
            if user_type not in allowed_values:
                logger.warning(
                    "User %s denied on %s: user_type=%s not in %s",
                    user_id, f.__name__, user_type, sorted(allowed_values),
                    extra={"user_id": user_id},
                )
                return api_error(E.FORBIDDEN, translate("permission_denied"))

            g.current_profile = profile
            return f(*args, **kwargs)
        return decorated
    return decorator
