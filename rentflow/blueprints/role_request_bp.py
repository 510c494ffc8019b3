"""
Rental Marketplace Workflow Service
Role Request Blueprint.

Endpoints:
    GET   /api/v1/prerequisites/<user_id>
    GET   /api/v1/users/<user_id>/role-permissions
    POST  /api/v1/role-requests/validate-step
    POST  /api/v1/role-requests/validate
    POST  /api/v1/role-requests/summary
    POST  /api/v1/role-requests                      (multipart)
    GET   /api/v1/role-requests/<request_id>
    POST  /api/v1/role-requests/<request_id>/cancel
    GET   /api/v1/users/<user_id>/role-requests

    GET   /api/v1/admin/role-requests
    GET   /api/v1/admin/role-requests/statistics
    POST  /api/v1/admin/role-requests/<request_id>/start-review
    POST  /api/v1/admin/role-requests/<request_id>/review
"""

import json
import logging

from flask import Blueprint, jsonify, request

from rentflow.blueprints import caller_id, missing_caller, pagination_args, respond
from rentflow.models import db
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import UserType
from rentflow.middleware.user_type_required import require_user_type
from rentflow.services import role_transformation_service as svc
from rentflow.services.form_validation import (
    DOCUMENT_FIELDS,
    document_label,
    generate_summary,
    validate_complete_submission,
    validate_document_file,
    validate_form_data,
)
from rentflow.services.prerequisite_service import check_user_permissions, validate_prerequisites
from rentflow.utils.errors import E, api_error
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

role_request_bp = Blueprint("role_request", __name__, url_prefix="/api/v1")


# ── Prerequisites & form ──────────────────────────────────────────────────────


@role_request_bp.route("/prerequisites/<user_id>", methods=["GET"])
def get_prerequisites(user_id):
    return jsonify(validate_prerequisites(user_id)), 200


@role_request_bp.route("/users/<user_id>/role-permissions", methods=["GET"])
def get_role_permissions(user_id):
    return jsonify(check_user_permissions(user_id)), 200


@role_request_bp.route("/role-requests/validate-step", methods=["POST"])
def validate_step():
    data = request.get_json(silent=True) or {}
    try:
        step = int(data.get("step"))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_REQUIRED, translate("field_required", field="step"))
    return jsonify(validate_form_data(data.get("form") or {}, step)), 200


@role_request_bp.route("/role-requests/validate", methods=["POST"])
def validate_submission():
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return jsonify(validate_complete_submission(data.get("form") or {}, user_id)), 200


@role_request_bp.route("/role-requests/summary", methods=["POST"])
def summary():
    data = request.get_json(silent=True) or {}
    return jsonify({"lines": generate_summary(data.get("form") or {})}), 200


# ── Submission & user views ───────────────────────────────────────────────────


def _form_fields():
    """Form fields from a ``form`` JSON part, or from plain multipart fields."""
    raw = request.form.get("form")
    if raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
    return {k: v for k, v in request.form.items() if k not in ("form", "user_id", "current_role", "to_role")}


@role_request_bp.route("/role-requests", methods=["POST"])
def submit_request():
    """Submit a role-change request with its documents (multipart/form-data)."""
    user_id = caller_id(request.form)
    if not user_id:
        return missing_caller()

    form = _form_fields()
    documents, file_errors = [], []
    for field in DOCUMENT_FIELDS:
        upload = request.files.get(field)
        if upload is None or not upload.filename:
            continue
        data = upload.read()
        meta = {"filename": upload.filename, "content_type": upload.mimetype, "size": len(data)}
        file_errors.extend(validate_document_file(meta, document_label(field))["errors"])
        documents.append({"type": field, "data": data, **meta})
        form[field] = meta
    if file_errors:
        return api_error(E.VALIDATION_INVALID, file_errors[0], details={"errors": file_errors})

    current_role = request.form.get("current_role")
    if not current_role:
        profile = db.session.get(UserProfile, user_id)
        current_role = profile.user_type.value if profile else UserType.TENANT.value
    to_role = request.form.get("to_role") or UserType.OWNER.value

    return respond(
        svc.submit_transformation_request(user_id, current_role, form, documents, to_role=to_role),
        status=201,
    )


@role_request_bp.route("/role-requests/<request_id>", methods=["GET"])
def get_request(request_id):
    return respond(svc.get_transformation_status(request_id))


@role_request_bp.route("/role-requests/<request_id>/cancel", methods=["POST"])
def cancel_request(request_id):
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return respond(svc.cancel_transformation_request(request_id, user_id))


@role_request_bp.route("/users/<user_id>/role-requests", methods=["GET"])
def user_history(user_id):
    target_role = request.args.get("target_role", UserType.OWNER.value)
    return respond(svc.get_user_transformation_history(user_id, target_role))


# ── Admin review ──────────────────────────────────────────────────────────────


@role_request_bp.route("/admin/role-requests", methods=["GET"])
@require_user_type(UserType.ADMIN)
def list_requests():
    limit, offset = pagination_args()
    return respond(svc.list_role_requests(request.args.get("status"), limit=limit, offset=offset))


@role_request_bp.route("/admin/role-requests/statistics", methods=["GET"])
@require_user_type(UserType.ADMIN)
def statistics():
    days = request.args.get("days", 30, type=int)
    return respond(svc.get_transformation_statistics(days))


@role_request_bp.route("/admin/role-requests/<request_id>/start-review", methods=["POST"])
@require_user_type(UserType.ADMIN)
def start_review(request_id):
    data = request.get_json(silent=True) or {}
    reviewer_id = caller_id(data, "reviewer_id")
    if not reviewer_id:
        return missing_caller("reviewer_id")
    return respond(svc.start_role_request_review(request_id, reviewer_id))


@role_request_bp.route("/admin/role-requests/<request_id>/review", methods=["POST"])
@require_user_type(UserType.ADMIN)
def review(request_id):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, translate("field_required", field="status"))
    reviewer_id = caller_id(data, "reviewer_id")
    if not reviewer_id:
        return missing_caller("reviewer_id")
    return respond(svc.review_role_request(request_id, data["status"], reviewer_id, notes=data.get("notes")))
