"""
Rental Marketplace Workflow Service
Role Transformation Service.

Orchestrates a user's request to change account type (tenant -> owner,
tenant -> agency) and its admin review.

Submission is a four-step saga:
    1. duplicate pre-check (friendly error; the partial unique index on
       (user_id, to_role) for open requests is the real guarantee), then
       the profile prerequisites and the complete form are checked
    2. upload every document; any failure aborts before a row exists
    3. insert the ``pending`` request and commit
    4. emit one admin alert (best-effort, after the commit)

If step 2 or 3 fails after some documents were stored, those uploads are
deleted again when the ``cleanup_orphaned_uploads`` flag is on.

Every public function returns ``(data, None)`` or ``(None, error_dict)``.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from rentflow.core.exceptions import (
    DocumentUploadError,
    DuplicateRequestError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from rentflow.models import as_utc, db
from rentflow.models.profile import UserProfile
from rentflow.models.role_request import RoleChangeRequest
from rentflow.models.workflow_status import (
    OPEN_ROLE_REQUEST_STATUSES,
    RoleRequestStatus,
    UserType,
    parse_status,
    status_values,
)
from rentflow.services.alert_service import AlertService
from rentflow.services.context import WorkflowContext, get_workflow_context
from rentflow.services.document_storage import build_document_key
from rentflow.services.form_validation import format_data_for_submission, validate_complete_submission
from rentflow.services.prerequisite_service import validate_prerequisites
from rentflow.services.transitions import apply_transition, log_transition
from rentflow.utils.errors import E, error_from_exception, service_boundary, service_error
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

ENTITY = "role_change_request"
SYSTEM_REVIEWER = "system"

# Roles a request may target
REQUESTABLE_ROLES = frozenset({UserType.OWNER, UserType.AGENCY})
REVIEW_DECISIONS = frozenset({RoleRequestStatus.APPROVED, RoleRequestStatus.REJECTED})


# ── Private helpers ────────────────────────────────────────────────────────────


def _parse_role(value):
    role = parse_status(UserType, value)
    if role is None:
        raise ValidationError(translate("invalid_role", role=value))
    return role


def _upload_documents(ctx: WorkflowContext, user_id, documents) -> tuple[dict, list]:
    """Store each document; returns (type -> url, stored keys).

    On failure the keys stored so far are attached to the exception as
    ``stored_keys`` so the caller can compensate.
    """
    types = [doc.get("type") or "document" for doc in documents or [] if doc.get("data")]
    repeated = sorted({t for t in types if types.count(t) > 1})
    if repeated:
        raise ValidationError(translate("document_type_repeated", document_type=repeated[0]),
                              details={"document_types": repeated})

    urls, stored = {}, []
    for doc in documents or []:
        data = doc.get("data")
        if not data:
            continue
        document_type = doc.get("type") or "document"
        key = build_document_key(user_id, document_type, doc.get("filename", ""), ctx.now())
        try:
            urls[document_type] = ctx.storage.upload(
                key, data, doc.get("content_type") or "application/octet-stream", document_type=document_type,
            )
        except DocumentUploadError as exc:
            exc.stored_keys = list(stored)
            raise
        stored.append(key)
    return urls, stored


def _compensate_uploads(ctx: WorkflowContext, keys, reason):
    """Delete uploads left behind by a failed submission."""
    if not keys:
        return
    if not ctx.flags.is_enabled("cleanup_orphaned_uploads"):
        logger.warning("Leaving %d orphaned upload(s) after %s (cleanup disabled)", len(keys), reason)
        return
    for key in keys:
        try:
            ctx.storage.delete(key)
        except DocumentUploadError:
            logger.exception("Compensating delete failed for %s", key)
    logger.info("Removed %d orphaned upload(s) after %s", len(keys), reason)


def _person(user_id):
    if not user_id:
        return None
    profile = db.session.get(UserProfile, user_id)
    if profile is None:
        return {"id": user_id}
    return {"id": profile.id, "full_name": profile.full_name, "email": profile.email}


# ── Queries ────────────────────────────────────────────────────────────────────


def has_pending_request(user_id, target_role=UserType.OWNER) -> bool:
    """True when ``user_id`` has a pending or under-review request for ``target_role``."""
    role = parse_status(UserType, target_role)
    if role is None:
        return False
    row = db.session.execute(
        select(RoleChangeRequest.id).where(
            RoleChangeRequest.user_id == user_id,
            RoleChangeRequest.to_role == role,
            RoleChangeRequest.status.in_(OPEN_ROLE_REQUEST_STATUSES),
        ).limit(1)
    ).first()
    return row is not None


@service_boundary
def get_transformation_status(request_id):
    req = db.session.get(RoleChangeRequest, request_id)
    if req is None:
        raise NotFoundError("RoleChangeRequest", request_id)
    data = req.to_dict()
    data["user"] = _person(req.user_id)
    data["reviewer"] = _person(req.reviewed_by) if req.reviewed_by != SYSTEM_REVIEWER else {"id": SYSTEM_REVIEWER}
    return data, None


@service_boundary
def get_user_transformation_history(user_id, target_role=UserType.OWNER):
    """All of a user's requests for ``target_role``, newest first."""
    role = _parse_role(target_role)
    rows = db.session.execute(
        select(RoleChangeRequest)
        .where(RoleChangeRequest.user_id == user_id, RoleChangeRequest.to_role == role)
        .order_by(RoleChangeRequest.requested_at.desc(), RoleChangeRequest.created_at.desc())
    ).scalars().all()
    return [r.to_dict() for r in rows], None


@service_boundary
def list_role_requests(status=None, limit=100, offset=0):
    """Admin listing, oldest open request first."""
    stmt = select(RoleChangeRequest)
    if status:
        parsed = parse_status(RoleRequestStatus, status)
        if parsed is None:
            raise ValidationError(translate("invalid_status", status=status),
                                  details={"valid": status_values(RoleRequestStatus)})
        stmt = stmt.where(RoleChangeRequest.status == parsed)
    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.session.execute(
        stmt.order_by(RoleChangeRequest.requested_at.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return {"items": [r.to_dict() for r in rows], "total": total}, None


@service_boundary
def get_transformation_statistics(days=30, now=None):
    """Counts per status, approval rate and mean review time over the last ``days``."""
    now = now or get_workflow_context().now()
    since = now - timedelta(days=max(int(days), 1))
    rows = db.session.execute(
        select(RoleChangeRequest).where(RoleChangeRequest.requested_at >= since)
    ).scalars().all()

    by_status = {s: 0 for s in status_values(RoleRequestStatus)}
    durations = []
    for r in rows:
        by_status[r.status.value] += 1
        if r.reviewed_at and r.requested_at:
            durations.append((as_utc(r.reviewed_at) - as_utc(r.requested_at)).total_seconds() / 3600)

    decided = by_status["approved"] + by_status["rejected"]
    return {
        "period_days": int(days),
        "total": len(rows),
        "by_status": by_status,
        "approval_rate": round(100 * by_status["approved"] / decided, 1) if decided else 0.0,
        "avg_processing_hours": round(sum(durations) / len(durations), 1) if durations else None,
    }, None


# ── Submission ─────────────────────────────────────────────────────────────────


def submit_transformation_request(
    user_id,
    current_role,
    form_data,
    documents,
    ctx: WorkflowContext | None = None,
    to_role=UserType.OWNER,
):
    """Submit a role-change request.

    Args:
        user_id:      Requesting profile id.
        current_role: The caller's current account type (``from_role``).
        form_data:    Owner-upgrade form fields (see form_validation).
        documents:    ``[{"type", "filename", "content_type", "data": bytes}]``.
        ctx:          Storage, flags and clock; defaults to the app's context.
        to_role:      Target account type (owner by default).

    Returns:
        ({"request_id", "request", "alert_id"}, None) on success.
        (None, {"error", "code", "status"}) on failure.
    """
    ctx = ctx or get_workflow_context()
    stored_keys: list[str] = []
    try:
        return _submit(ctx, user_id, current_role, form_data, documents, to_role, stored_keys)
    except DocumentUploadError as exc:
        _compensate_uploads(ctx, getattr(exc, "stored_keys", stored_keys), "upload failure")
        return None, error_from_exception(exc, "submit_transformation_request")
    except Exception as exc:
        db.session.rollback()
        _compensate_uploads(ctx, stored_keys, type(exc).__name__)
        return None, error_from_exception(exc, "submit_transformation_request")


def _submit(ctx, user_id, current_role, form_data, documents, to_role, stored_keys):
    if not ctx.flags.is_enabled("role_requests_open"):
        return None, service_error(E.FEATURE_DISABLED, "role_requests_closed")

    from_role = _parse_role(current_role)
    target = _parse_role(to_role)
    if target not in REQUESTABLE_ROLES or target == from_role:
        raise ValidationError(translate("invalid_role", role=target.value))

    profile = db.session.get(UserProfile, user_id) if user_id else None
    if profile is None:
        raise NotFoundError("UserProfile", user_id)

    # 1. duplicate pre-check
    if has_pending_request(user_id, target):
        raise DuplicateRequestError(user_id, target.value)

    prerequisites = validate_prerequisites(user_id)
    if not prerequisites["can_upgrade"]:
        return None, service_error(E.PREREQUISITES_UNMET, "prerequisites_unmet",
                                   details={"missing": prerequisites["missing_requirements"]})

    checked = validate_complete_submission(form_data or {}, user_id, target, check_duplicate=False)
    if not checked["is_valid"]:
        raise ValidationError(checked["errors"][0], details={"errors": checked["errors"]})

    # 2. uploads
    urls, keys = _upload_documents(ctx, user_id, documents)
    stored_keys.extend(keys)

    # 3. persist
    now = ctx.now()
    snapshot = format_data_for_submission(form_data)
    snapshot["documents"] = urls
    snapshot["submitted_at"] = now.isoformat()
    req = RoleChangeRequest(
        user_id=user_id,
        from_role=from_role,
        to_role=target,
        status=RoleRequestStatus.PENDING,
        request_data=snapshot,
        documents=urls,
        requested_at=now,
    )
    db.session.add(req)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        # Lost the race against a concurrent submission
        raise DuplicateRequestError(user_id, target.value) from exc
    stored_keys.clear()
    log_transition(ENTITY, req.id, None, req.status, actor_id=user_id, message="Request submitted")

    # 4. admin alert (best-effort)
    alert = AlertService.notify_role_request_submitted(req)
    return {"request_id": req.id, "request": req.to_dict(), "alert_id": alert.id if alert else None}, None


# ── Cancellation & review ─────────────────────────────────────────────────────


@service_boundary
def cancel_transformation_request(request_id, user_id):
    """User cancel; only the owner of an open request may cancel it.

    Cancelling a request that is already cancelled, approved or rejected
    fails with an invalid-transition error.
    """
    before = db.session.get(RoleChangeRequest, request_id)
    if before is None or before.user_id != user_id:
        raise NotFoundError("RoleChangeRequest", request_id)
    from_status = before.status
    req = apply_transition(
        RoleChangeRequest, request_id, RoleRequestStatus.CANCELLED,
        entity=ENTITY, extra_where=(RoleChangeRequest.user_id == user_id,),
    )
    db.session.commit()
    log_transition(ENTITY, req.id, from_status, req.status, actor_id=user_id, message="Request cancelled")
    return req.to_dict(), None


@service_boundary
def start_role_request_review(request_id, reviewer_id):
    before = db.session.get(RoleChangeRequest, request_id)
    if before is None:
        raise NotFoundError("RoleChangeRequest", request_id)
    from_status = before.status
    req = apply_transition(
        RoleChangeRequest, request_id, RoleRequestStatus.UNDER_REVIEW,
        {"reviewed_by": reviewer_id}, entity=ENTITY,
    )
    db.session.commit()
    log_transition(ENTITY, req.id, from_status, req.status, actor_id=reviewer_id, message="Review started")
    return req.to_dict(), None


@service_boundary
def review_role_request(request_id, status, reviewer_id, notes=None, now=None, sources=None):
    """Approve or reject an open request.

    ``sources`` narrows the statuses the decision may start from.

    Approval switches the requester's ``user_type`` to ``to_role`` in the
    same transaction. One alert goes to the requester afterwards.
    """
    decision = parse_status(RoleRequestStatus, status)
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(translate("invalid_status", status=status),
                              details={"valid": sorted(s.value for s in REVIEW_DECISIONS)})
    if not reviewer_id:
        raise PermissionDenied()

    before = db.session.get(RoleChangeRequest, request_id)
    if before is None:
        raise NotFoundError("RoleChangeRequest", request_id)
    from_status = before.status

    now = now or get_workflow_context().now()
    values = {"reviewed_by": reviewer_id, "reviewed_at": now, "admin_notes": notes}
    if decision == RoleRequestStatus.APPROVED:
        values["approved_at"] = now
    req = apply_transition(RoleChangeRequest, request_id, decision, values, entity=ENTITY, sources=sources)

    if decision == RoleRequestStatus.APPROVED:
        profile = db.session.get(UserProfile, req.user_id)
        if profile is None:
            raise NotFoundError("UserProfile", req.user_id)
        profile.user_type = req.to_role
    db.session.commit()
    log_transition(ENTITY, req.id, from_status, req.status, actor_id=reviewer_id, message="Request reviewed")

    AlertService.notify_role_request_reviewed(req)
    return req.to_dict(), None
