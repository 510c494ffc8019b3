"""
Rental Marketplace Workflow Service
Review Queue Blueprint.

Admin work queue, processing deadline configuration and a manual trigger
for the deadline sweep.
"""

from flask import Blueprint, jsonify, request

from rentflow.blueprints import caller_id, respond
from rentflow.middleware.user_type_required import require_user_type
from rentflow.models.workflow_status import UserType
from rentflow.services import review_queue_service as svc
from rentflow.services.scheduler_service import SchedulerService

review_queue_bp = Blueprint("review_queue", __name__, url_prefix="/api/v1/admin")


@review_queue_bp.route("/review-queue", methods=["GET"])
@require_user_type(UserType.ADMIN)
def queue():
    return respond(svc.list_review_queue())


@review_queue_bp.route("/processing-config", methods=["GET"])
@require_user_type(UserType.ADMIN)
def get_config():
    return respond(svc.get_processing_config())


@review_queue_bp.route("/processing-config", methods=["PUT"])
@require_user_type(UserType.ADMIN)
def update_config():
    data = request.get_json(silent=True) or {}
    return respond(svc.update_processing_config(
        deadline_hours=data.get("deadline_hours"),
        auto_action_enabled=data.get("auto_action_enabled"),
        auto_action=data.get("auto_action"),
        updated_by=caller_id(data, "updated_by"),
    ))


@review_queue_bp.route("/review-queue/sweep", methods=["POST"])
@require_user_type(UserType.ADMIN)
def sweep():
    """Run the deadline sweep now, recorded like a scheduled run."""
    return jsonify(SchedulerService.run_job("review_deadline_sweep", force=True)), 200
