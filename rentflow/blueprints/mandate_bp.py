"""
Rental Marketplace Workflow Service
Mandate Blueprint.

Every route acts for the caller (``X-User-Id`` or ``user_id`` in the body).
"""

from flask import Blueprint, request

from rentflow.blueprints import caller_id, missing_caller, respond
from rentflow.middleware.user_type_required import require_user_type
from rentflow.models.workflow_status import UserType
from rentflow.services import mandate_service as svc

mandate_bp = Blueprint("mandate", __name__, url_prefix="/api/v1/mandates")


@mandate_bp.route("", methods=["POST"])
@require_user_type(UserType.OWNER)
def create():
    data = request.get_json(silent=True) or {}
    owner_id = caller_id(data, "owner_id")
    if not owner_id:
        return missing_caller("owner_id")
    return respond(svc.create_mandate(owner_id, data), status=201)


@mandate_bp.route("", methods=["GET"])
def list_for_caller():
    user_id = caller_id(request.args)
    if not user_id:
        return missing_caller()
    return respond(svc.list_mandates(user_id))


@mandate_bp.route("/<mandate_id>", methods=["GET"])
def get_one(mandate_id):
    user_id = caller_id(request.args)
    if not user_id:
        return missing_caller()
    return respond(svc.get_mandate(mandate_id, user_id))


@mandate_bp.route("/<mandate_id>/accept", methods=["POST"])
@require_user_type(UserType.AGENCY)
def accept(mandate_id):
    data = request.get_json(silent=True) or {}
    agency_id = caller_id(data, "agency_id")
    if not agency_id:
        return missing_caller("agency_id")
    return respond(svc.accept_mandate(mandate_id, agency_id))


@mandate_bp.route("/<mandate_id>/refuse", methods=["POST"])
@require_user_type(UserType.AGENCY)
def refuse(mandate_id):
    data = request.get_json(silent=True) or {}
    agency_id = caller_id(data, "agency_id")
    if not agency_id:
        return missing_caller("agency_id")
    return respond(svc.refuse_mandate(mandate_id, agency_id, reason=data.get("reason")))


@mandate_bp.route("/<mandate_id>/suspend", methods=["POST"])
def suspend(mandate_id):
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return respond(svc.suspend_mandate(mandate_id, user_id, reason=data.get("reason")))


@mandate_bp.route("/<mandate_id>/resume", methods=["POST"])
def resume(mandate_id):
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return respond(svc.resume_mandate(mandate_id, user_id))


@mandate_bp.route("/<mandate_id>/terminate", methods=["POST"])
def terminate(mandate_id):
    data = request.get_json(silent=True) or {}
    user_id = caller_id(data)
    if not user_id:
        return missing_caller()
    return respond(svc.terminate_mandate(mandate_id, user_id, reason=data.get("reason")))


@mandate_bp.route("/<mandate_id>/permissions", methods=["PUT"])
@require_user_type(UserType.OWNER)
def update_permissions(mandate_id):
    data = request.get_json(silent=True) or {}
    owner_id = caller_id(data, "owner_id")
    if not owner_id:
        return missing_caller("owner_id")
    return respond(svc.update_mandate_permissions(mandate_id, owner_id, data.get("permissions")))
