"""Standardised error payloads.

Services build error dicts with ``service_error`` (or let
``service_boundary`` convert a raised exception); blueprints turn them
into responses with ``error_response`` or build one directly with
``api_error``.

Usage
-----
    from rentflow.utils.errors import E, api_error, service_error

    return None, service_error(E.DUPLICATE_REQUEST, "duplicate_request")
    return api_error(E.VALIDATION_REQUIRED, "status is required")
"""

from __future__ import annotations

import functools
import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from rentflow.core.exceptions import (
    ConflictError,
    DocumentUploadError,
    DuplicateRequestError,
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from rentflow.models import db
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"
    PREREQUISITES_UNMET = "ERR_PREREQUISITES_UNMET"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    DUPLICATE_REQUEST = "ERR_DUPLICATE_REQUEST"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"

    # Permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Upstream storage – HTTP 502
    UPLOAD_FAILED = "ERR_UPLOAD_FAILED"

    # Server – HTTP 500 / 503
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"
    FEATURE_DISABLED = "ERR_FEATURE_DISABLED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.PREREQUISITES_UNMET: 422,
    E.NOT_FOUND: 404,
    E.DUPLICATE_REQUEST: 409,
    E.CONFLICT_DUPLICATE: 409,
    E.INVALID_TRANSITION: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.UPLOAD_FAILED: 502,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.FEATURE_DISABLED: 503,
}


def status_for(code: str) -> int:
    return _DEFAULT_STATUS.get(code, 400)


def service_error(
    code: str,
    message_key: str,
    /,
    *,
    status: int | None = None,
    details: dict | None = None,
    locale: str | None = None,
    **params,
) -> dict:
    """Build the error half of a service ``(None, error)`` return.

    ``message_key`` is looked up in the localized catalogue; ``params``
    are interpolated into it.
    """
    err = {
        "error": translate(message_key, locale=locale, **params),
        "code": code,
        "status": status or status_for(code),
    }
    if details:
        err["details"] = details
    return err


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for the UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or status_for(code)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def _document_label(document_type: str) -> str:
    label = translate(f"document.{document_type}")
    return document_type if label.startswith("document.") else label


def error_from_exception(exc: Exception, operation: str) -> dict:
    """Roll back, log, and map ``exc`` to a service error dict.

    Expected business failures log at INFO/WARNING; anything else is an
    internal error logged with its traceback and never shown to the user.
    """
    db.session.rollback()
    if isinstance(exc, NotFoundError):
        logger.info("%s: %s", operation, exc)
        return service_error(E.NOT_FOUND, "not_found", resource=exc.resource)
    if isinstance(exc, DuplicateRequestError):
        logger.info("%s: %s", operation, exc, extra={"user_id": exc.user_id})
        return service_error(E.DUPLICATE_REQUEST, "duplicate_request")
    if isinstance(exc, ConflictError):
        logger.info("%s: %s", operation, exc)
        return service_error(E.CONFLICT_DUPLICATE, "conflict")
    if isinstance(exc, TransitionError):
        logger.warning("%s: %s", operation, exc,
                       extra={"entity_type": exc.entity, "from_status": exc.current, "to_status": exc.target})
        return service_error(E.INVALID_TRANSITION, "invalid_transition", current=exc.current, target=exc.target)
    if isinstance(exc, ValidationError):
        logger.info("%s: %s", operation, exc)
        err = service_error(E.VALIDATION_RULE, "validation_error", details=exc.details)
        err["error"] = str(exc)
        return err
    if isinstance(exc, DocumentUploadError):
        logger.error("%s: %s", operation, exc)
        return service_error(E.UPLOAD_FAILED, "upload_failed", document_type=_document_label(exc.document_type))
    if isinstance(exc, PermissionDenied):
        logger.warning("%s: %s", operation, exc)
        return service_error(E.FORBIDDEN, "permission_denied")
    if isinstance(exc, SQLAlchemyError):
        logger.error("%s: database error", operation, exc_info=exc)
        return service_error(E.DATABASE, "internal_error")
    logger.error("%s: unexpected error", operation, exc_info=exc)
    return service_error(E.INTERNAL, "internal_error")


def service_boundary(func):
    """Convert exceptions raised inside a public service function.

    The wrapped function returns ``(data, None)`` itself; anything it raises
    comes back as ``(None, error_dict)`` via ``error_from_exception``.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            return None, error_from_exception(exc, func.__name__)

    return wrapper


def error_response(err: dict):
    """Turn a service error dict into a Flask response tuple."""
    return api_error(
        err.get("code", E.INTERNAL),
        err.get("error", ""),
        status=err.get("status"),
        details=err.get("details"),
    )
