"""
Rental Marketplace Workflow Service
Alert & Operations Blueprint.

Provides:
    - Caller's alerts (direct and role-targeted) and dismissal
    - Feature flag inspection and overrides (admin)
    - Scheduled job management: list, trigger, toggle (admin)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from rentflow.blueprints import caller_id, missing_caller, pagination_args, respond
from rentflow.middleware.user_type_required import require_user_type
from rentflow.models import db
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import UserType
from rentflow.services.alert_service import AlertService
from rentflow.services.context import get_workflow_context
from rentflow.services.scheduler_service import SchedulerService, get_registered_jobs
from rentflow.utils.errors import E, api_error
from rentflow.utils.helpers import parse_bool
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

alert_bp = Blueprint("alert", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  ALERTS
# ═══════════════════════════════════════════════════════════════════════════


@alert_bp.route("/alerts", methods=["GET"])
def list_alerts():
    user_id = caller_id(request.args)
    if not user_id:
        return missing_caller()
    profile = db.session.get(UserProfile, user_id)
    role = profile.user_type if profile else None
    limit, offset = pagination_args(default_limit=50, max_limit=200)
    items, total = AlertService.list_for_user(
        user_id,
        role=role,
        include_dismissed=parse_bool(request.args.get("include_dismissed")),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": total}), 200


@alert_bp.route("/alerts/<int:alert_id>/dismiss", methods=["POST"])
def dismiss_alert(alert_id):
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return respond(AlertService.dismiss(alert_id, user_id))


# ═══════════════════════════════════════════════════════════════════════════
#  FEATURE FLAGS
# ═══════════════════════════════════════════════════════════════════════════


@alert_bp.route("/admin/feature-flags", methods=["GET"])
@require_user_type(UserType.ADMIN)
def list_flags():
    return jsonify(get_workflow_context().flags.all()), 200


@alert_bp.route("/admin/feature-flags/<key>", methods=["PUT"])
@require_user_type(UserType.ADMIN)
def set_flag(key):
    data = request.get_json(silent=True) or {}
    if "enabled" not in data:
        return api_error(E.VALIDATION_REQUIRED, translate("field_required", field="enabled"))
    flags = get_workflow_context().flags
    flags.set(key, parse_bool(data["enabled"]))
    return jsonify({"key": key, "enabled": flags.is_enabled(key)}), 200


@alert_bp.route("/admin/feature-flags/<key>", methods=["DELETE"])
@require_user_type(UserType.ADMIN)
def reset_flag(key):
    """Drop the override; the flag falls back to its default."""
    flags = get_workflow_context().flags
    flags.reset(key)
    return jsonify({"key": key, "enabled": flags.is_enabled(key)}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════


@alert_bp.route("/admin/jobs", methods=["GET"])
@require_user_type(UserType.ADMIN)
def list_jobs():
    return jsonify(SchedulerService.list_jobs()), 200


@alert_bp.route("/admin/jobs/<job_name>/run", methods=["POST"])
@require_user_type(UserType.ADMIN)
def run_job(job_name):
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, translate("not_found", resource=job_name))
    force = parse_bool((request.get_json(silent=True) or {}).get("force"))
    return jsonify(SchedulerService.run_job(job_name, force=force)), 200


@alert_bp.route("/admin/jobs/<job_name>", methods=["PUT"])
@require_user_type(UserType.ADMIN)
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    if "is_enabled" not in data:
        return api_error(E.VALIDATION_REQUIRED, translate("field_required", field="is_enabled"))
    record = SchedulerService.toggle_job(job_name, parse_bool(data["is_enabled"]))
    if record is None:
        return api_error(E.NOT_FOUND, translate("not_found", resource=job_name))
    return jsonify(record), 200
