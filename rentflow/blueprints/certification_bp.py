"""
Rental Marketplace Workflow Service
Certification Blueprint.

Landlord-facing submission and history plus the admin review surface for
lease certifications.
"""

import logging

from flask import Blueprint, Response, request, send_file

from rentflow.blueprints import caller_id, missing_caller, pagination_args, respond
from rentflow.middleware.user_type_required import require_user_type
from rentflow.models.workflow_status import UserType
from rentflow.services import certification_service as svc
from rentflow.utils.errors import E, api_error, error_response
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

certification_bp = Blueprint("certification", __name__, url_prefix="/api/v1")

_FILTER_ARGS = ("status", "reviewer_id", "lease_id", "date_from", "date_to")


def _filters():
    return {k: request.args.get(k) for k in _FILTER_ARGS if request.args.get(k)}


# ═══════════════════════════════════════════════════════════════════════════
#  Lease parties
# ═══════════════════════════════════════════════════════════════════════════


@certification_bp.route("/leases/<lease_id>/certification-check", methods=["GET"])
def pre_validate(lease_id):
    return respond(svc.pre_validate_lease(lease_id))


@certification_bp.route("/leases/<lease_id>/certifications", methods=["POST"])
@require_user_type(UserType.OWNER, UserType.AGENCY)
def submit(lease_id):
    data = request.get_json(silent=True) or {}
    documents = data.get("documents") or []
    if not isinstance(documents, list):
        return api_error(E.VALIDATION_INVALID, translate("invalid_value"), details={"documents": "must be a list"})
    return respond(
        svc.submit_certification(
            lease_id,
            documents=documents,
            requester_notes=data.get("requester_notes"),
            requester_id=caller_id(data, "requester_id"),
        ),
        status=201,
    )


@certification_bp.route("/leases/<lease_id>/certifications", methods=["GET"])
def by_lease(lease_id):
    return respond(svc.get_certifications_by_lease(lease_id))


@certification_bp.route("/users/<user_id>/certifications", methods=["GET"])
def user_history(user_id):
    return respond(svc.get_user_certification_history(user_id))


@certification_bp.route("/certifications/<certification_id>", methods=["GET"])
def get_one(certification_id):
    return respond(svc.get_certification(certification_id))


@certification_bp.route("/certifications/<certification_id>/history", methods=["GET"])
def history(certification_id):
    return respond(svc.get_certification_history(certification_id))


# ═══════════════════════════════════════════════════════════════════════════
#  Admin review
# ═══════════════════════════════════════════════════════════════════════════


@certification_bp.route("/admin/certifications", methods=["GET"])
@require_user_type(UserType.ADMIN)
def list_all():
    limit, offset = pagination_args()
    return respond(svc.get_all_certifications(_filters(), limit=limit, offset=offset))


@certification_bp.route("/admin/certifications/pending", methods=["GET"])
@require_user_type(UserType.ADMIN)
def pending():
    return respond(svc.get_pending_certifications())


@certification_bp.route("/admin/certifications/stats", methods=["GET"])
@require_user_type(UserType.ADMIN)
def stats():
    return respond(svc.get_certification_stats(request.args.get("start"), request.args.get("end")))


@certification_bp.route("/admin/certifications/export", methods=["GET"])
@require_user_type(UserType.ADMIN)
def export():
    fmt = request.args.get("format", "csv")
    data, err = svc.export_certifications(_filters(), fmt)
    if err:
        return error_response(err)
    fmt = fmt.lower()
    if fmt == "csv":
        return Response(
            data,
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=certifications.csv"},
        )
    if fmt == "xlsx":
        return send_file(
            data,
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name="certifications.xlsx",
        )
    return respond((data, None))


@certification_bp.route("/admin/certifications/<certification_id>/start-review", methods=["POST"])
@require_user_type(UserType.ADMIN)
def start_review(certification_id):
    data = request.get_json(silent=True) or {}
    reviewer_id = caller_id(data, "reviewer_id")
    if not reviewer_id:
        return missing_caller("reviewer_id")
    return respond(svc.start_certification_review(certification_id, reviewer_id))


@certification_bp.route("/admin/certifications/<certification_id>/review", methods=["POST"])
@require_user_type(UserType.ADMIN)
def review(certification_id):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, translate("field_required", field="status"))
    reviewer_id = caller_id(data, "reviewer_id")
    if not reviewer_id:
        return missing_caller("reviewer_id")
    return respond(svc.review_certification(certification_id, data["status"], reviewer_id, notes=data.get("notes")))


@certification_bp.route("/admin/certifications/<certification_id>/revoke", methods=["POST"])
@require_user_type(UserType.ADMIN)
def revoke(certification_id):
    data = request.get_json(silent=True) or {}
    reviewer_id = caller_id(data, "reviewer_id")
    if not reviewer_id:
        return missing_caller("reviewer_id")
    return respond(svc.revoke_certification(certification_id, reviewer_id, reason=data.get("reason")))


@certification_bp.route("/admin/certifications/<certification_id>/expire", methods=["POST"])
@require_user_type(UserType.ADMIN)
def expire(certification_id):
    data = request.get_json(silent=True) or {}
    return respond(svc.expire_certification(certification_id, actor_id=caller_id(data, "actor_id")))


@certification_bp.route("/admin/certifications/<certification_id>/metadata", methods=["PATCH"])
@require_user_type(UserType.ADMIN)
def update_metadata(certification_id):
    data = request.get_json(silent=True) or {}
    return respond(svc.update_certification_metadata(
        certification_id, data.get("metadata"), actor_id=caller_id(data, "actor_id"),
    ))
