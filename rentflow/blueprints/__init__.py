"""
Rental Marketplace Workflow Service
Blueprint registry and shared request helpers.
"""

from flask import jsonify, request

from rentflow.middleware.user_type_required import auth_enforced, current_user_id
from rentflow.utils.errors import E, api_error, error_response
from rentflow.utils.messages import translate


def pagination_args(default_limit=100, max_limit=500):
    """Read limit/offset query params.

    Query params:
        limit  : max items (default ``default_limit``, capped at ``max_limit``)
        offset : starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def caller_id(data=None, field="user_id"):
    """Caller id from the gateway header, else from ``data[field]``.

    With ``API_AUTH_ENABLED`` only the header counts.
    """
    header_id = current_user_id()
    if header_id or auth_enforced():
        return header_id
    return str((data or {}).get(field) or "").strip() or None


def missing_caller(field="user_id"):
    if auth_enforced():
        return api_error(E.UNAUTHENTICATED, translate("authentication_required"))
    return api_error(E.VALIDATION_REQUIRED, translate("field_required", field=field))


def respond(result, status=200):
    """Turn a service ``(data, err)`` pair into a JSON response."""
    data, err = result
    if err:
        return error_response(err)
    return jsonify(data), status
