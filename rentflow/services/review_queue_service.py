"""
Rental Marketplace Workflow Service
Review Queue Service.

Admin work queue across both review workflows (lease certifications and
role-change requests), the processing deadline that marks items late, and
the optional auto-action applied once that deadline has passed.

Config rows (see models.processing):
    application_processing_deadline_hours  {"value": 48, "unit": "hours"}
    auto_action_after_deadline             {"enabled": false, "action": "none"}
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app, has_app_context
from sqlalchemy import select

from rentflow.core.exceptions import ValidationError
from rentflow.models import as_utc, db
from rentflow.models.certification import Certification
from rentflow.models.processing import AUTO_ACTION_KEY, AUTO_ACTIONS, DEADLINE_HOURS_KEY, ProcessingConfig
from rentflow.models.role_request import RoleChangeRequest
from rentflow.models.workflow_status import (
    OPEN_CERTIFICATION_STATUSES,
    OPEN_ROLE_REQUEST_STATUSES,
    CertificationStatus,
    RoleRequestStatus,
)
from rentflow.services import certification_service, role_transformation_service
from rentflow.services.context import get_workflow_context
from rentflow.utils.errors import E, service_boundary
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

SYSTEM_REVIEWER = role_transformation_service.SYSTEM_REVIEWER

_FALLBACK_DEADLINE = 48
_FALLBACK_BOUNDS = (24, 168)


# ── Config ─────────────────────────────────────────────────────────────────────


def _deadline_bounds() -> tuple[int, int, int]:
    if has_app_context():
        cfg = current_app.config
        return (
            cfg.get("DEFAULT_DEADLINE_HOURS", _FALLBACK_DEADLINE),
            cfg.get("MIN_DEADLINE_HOURS", _FALLBACK_BOUNDS[0]),
            cfg.get("MAX_DEADLINE_HOURS", _FALLBACK_BOUNDS[1]),
        )
    return _FALLBACK_DEADLINE, *_FALLBACK_BOUNDS


def clamp_deadline_hours(value) -> int:
    """Bound ``value`` to the allowed window; unparseable input gets the default."""
    default, low, high = _deadline_bounds()
    try:
        hours = int(value)
    except (TypeError, ValueError):
        hours = default
    return max(low, min(high, hours))


def _config_row(key):
    return db.session.execute(select(ProcessingConfig).where(ProcessingConfig.key == key)).scalar_one_or_none()


def _read_config() -> dict:
    deadline_row = _config_row(DEADLINE_HOURS_KEY)
    auto_row = _config_row(AUTO_ACTION_KEY)
    default_hours = _deadline_bounds()[0]
    hours = clamp_deadline_hours((deadline_row.value or {}).get("value", default_hours)) if deadline_row else default_hours
    auto = (auto_row.value or {}) if auto_row else {}
    action = auto.get("action", "none")
    return {
        "deadline_hours": hours,
        "auto_action_enabled": bool(auto.get("enabled", False)),
        "auto_action": action if action in AUTO_ACTIONS else "none",
        "updated_at": max(
            (r.updated_at for r in (deadline_row, auto_row) if r is not None and r.updated_at),
            default=None,
            key=as_utc,
        ),
    }


def _upsert(key, value, description, updated_by):
    row = _config_row(key)
    if row is None:
        row = ProcessingConfig(key=key, description=description)
        db.session.add(row)
    row.value = value
    row.updated_by = updated_by
    return row


@service_boundary
def get_processing_config():
    config = _read_config()
    config["updated_at"] = config["updated_at"].isoformat() if config["updated_at"] else None
    return config, None


@service_boundary
def update_processing_config(deadline_hours=None, auto_action_enabled=None, auto_action=None, updated_by=None):
    """Store the review deadline and auto-action settings.

    Hours are clamped to the allowed window rather than rejected; an unknown
    action is a validation error.
    """
    current = _read_config()
    hours = clamp_deadline_hours(deadline_hours) if deadline_hours is not None else current["deadline_hours"]
    enabled = current["auto_action_enabled"] if auto_action_enabled is None else bool(auto_action_enabled)
    action = current["auto_action"] if auto_action is None else str(auto_action).strip().lower()
    if action not in AUTO_ACTIONS:
        raise ValidationError(translate("auto_action_invalid"), details={"valid": sorted(AUTO_ACTIONS)})

    _upsert(DEADLINE_HOURS_KEY, {"value": hours, "unit": "hours"},
            "Hours before an open review is marked late", updated_by)
    _upsert(AUTO_ACTION_KEY, {"enabled": enabled, "action": action},
            "Decision applied to pending reviews once the deadline has passed", updated_by)
    db.session.commit()
    logger.info("Processing config updated: %dh, auto=%s/%s", hours, enabled, action,
                extra={"user_id": updated_by, "entity_type": "processing_config"})
    return get_processing_config()


# ── Queue ──────────────────────────────────────────────────────────────────────


def _queue_item(kind, obj, title, now, deadline):
    requested_at = as_utc(obj.requested_at)
    due = requested_at + deadline
    return {
        "kind": kind,
        "id": obj.id,
        "status": obj.status.value,
        "title": title,
        "requested_at": requested_at.isoformat(),
        "deadline_at": due.isoformat(),
        "age_hours": round((now - requested_at).total_seconds() / 3600, 1),
        "is_late": now > due,
    }


@service_boundary
def list_review_queue(now=None):
    """Open certifications and role requests, oldest first, each flagged ``is_late``."""
    now = now or get_workflow_context().now()
    config = _read_config()
    deadline = timedelta(hours=config["deadline_hours"])

    certs = db.session.execute(
        select(Certification).where(Certification.status.in_(OPEN_CERTIFICATION_STATUSES))
    ).unique().scalars().all()
    requests = db.session.execute(
        select(RoleChangeRequest).where(RoleChangeRequest.status.in_(OPEN_ROLE_REQUEST_STATUSES))
    ).scalars().all()

    items = [_queue_item("certification", c, c.certification_number, now, deadline) for c in certs]
    items += [_queue_item("role_request", r, r.to_role.value, now, deadline) for r in requests]
    items.sort(key=lambda i: i["requested_at"])
    return {
        "items": items,
        "total": len(items),
        "late_count": sum(1 for i in items if i["is_late"]),
        "deadline_hours": config["deadline_hours"],
    }, None


# ── Auto-action sweep ──────────────────────────────────────────────────────────


def _sweep(ids, review, action, now, note, counts, pending):
    for entity_id in ids:
        _, err = review(entity_id, action, SYSTEM_REVIEWER, notes=note, now=now, sources=(pending,))
        if err is None:
            counts["processed"] += 1
        elif err["code"] in (E.INVALID_TRANSITION, E.NOT_FOUND):
            # A reviewer picked it up or decided it first
            counts["skipped"] += 1
        else:
            counts["errors"] += 1


def run_deadline_sweep(now=None) -> dict:
    """Apply the configured auto-action to pending items past the deadline.

    Uses the same transition path as a human review but only from
    ``pending``, so an item a reviewer starts or decides concurrently is
    simply skipped.
    """
    now = now or get_workflow_context().now()
    config = _read_config()
    result = {"processed": 0, "skipped": 0, "errors": 0, "action": config["auto_action"]}
    if not config["auto_action_enabled"] or config["auto_action"] == "none":
        result["disabled"] = True
        return result

    hours = config["deadline_hours"]
    cutoff = now - timedelta(hours=hours)
    note = translate("auto_action_note", hours=hours)

    cert_ids = db.session.execute(
        select(Certification.id).where(
            Certification.status == CertificationStatus.PENDING,
            Certification.requested_at < cutoff,
        ).order_by(Certification.requested_at.asc())
    ).scalars().all()
    request_ids = db.session.execute(
        select(RoleChangeRequest.id).where(
            RoleChangeRequest.status == RoleRequestStatus.PENDING,
            RoleChangeRequest.requested_at < cutoff,
        ).order_by(RoleChangeRequest.requested_at.asc())
    ).scalars().all()

    action = config["auto_action"]
    _sweep(cert_ids, certification_service.review_certification, action, now, note, result,
           CertificationStatus.PENDING)
    _sweep(request_ids, role_transformation_service.review_role_request, action, now, note, result,
           RoleRequestStatus.PENDING)
    logger.info("Deadline sweep: %d processed, %d skipped, %d errors", result["processed"],
                result["skipped"], result["errors"], extra={"job_name": "review_deadline_sweep"})
    return result
