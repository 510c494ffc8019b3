"""
Rental Marketplace Workflow Service
Mandate Service.

Owner -> agency delegation. The owner invites an agency (``pending``), the
agency accepts or refuses, either party may suspend, resume or terminate.

Expiry is derived from ``end_date`` when mandates are read; the stored
status stays ``active``/``suspended`` until the optional expiry sweep
materializes ``expired``. Derived values are for display: anything that
grants access must use the stored status.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from flask import current_app, has_app_context
from sqlalchemy import or_, select

from rentflow.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from rentflow.models import db
from rentflow.models.mandate import (
    BILLING_FREQUENCIES,
    DEFAULT_MANDATE_PERMISSIONS,
    MANDATE_PERMISSION_KEYS,
    MANDATE_TYPES,
    AgencyMandate,
)
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import MandateStatus, UserType
from rentflow.services.alert_service import AlertService
from rentflow.services.context import get_workflow_context
from rentflow.services.transitions import apply_transition, log_transition
from rentflow.utils.errors import service_boundary
from rentflow.utils.helpers import parse_date
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

ENTITY = "agency_mandate"
DEFAULT_REFUSAL_REASON = "refused_by_agency"


def _expiring_window() -> int:
    if has_app_context():
        return current_app.config.get("MANDATE_EXPIRING_SOON_DAYS", 30)
    return 30


def _get_or_404(mandate_id) -> AgencyMandate:
    mandate = db.session.get(AgencyMandate, mandate_id)
    if mandate is None:
        raise NotFoundError("AgencyMandate", mandate_id)
    return mandate


def _decimal(value, field):
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(translate("mandate_fee_invalid"), details={field: value})


def _validate_permissions(permissions, base=None) -> dict:
    if not isinstance(permissions, dict):
        raise ValidationError(translate("invalid_value"), details={"permissions": "must be an object"})
    unknown = [k for k in permissions if k not in MANDATE_PERMISSION_KEYS]
    if unknown:
        raise ValidationError(translate("permission_key_invalid", key=unknown[0]), details={"unknown": unknown})
    merged = dict(base if base is not None else DEFAULT_MANDATE_PERMISSIONS)
    merged.update({k: bool(v) for k, v in permissions.items()})
    return merged


def _validate_new_mandate(owner_id, data) -> dict:
    agency_id = data.get("agency_id")
    if not agency_id:
        raise ValidationError(translate("field_required", field="agency_id"))
    if agency_id == owner_id:
        raise ValidationError(translate("mandate_self"))
    agency = db.session.get(UserProfile, agency_id)
    if agency is None or agency.user_type != UserType.AGENCY:
        raise ValidationError(translate("mandate_agency_invalid"))

    mandate_type = data.get("mandate_type") or "location"
    if mandate_type not in MANDATE_TYPES:
        raise ValidationError(translate("mandate_type_invalid"), details={"valid": sorted(MANDATE_TYPES)})
    billing = data.get("billing_frequency") or "mensuel"
    if billing not in BILLING_FREQUENCIES:
        raise ValidationError(translate("billing_frequency_invalid"), details={"valid": sorted(BILLING_FREQUENCIES)})

    rate = _decimal(data.get("commission_rate"), "commission_rate")
    fee = _decimal(data.get("fixed_fee"), "fixed_fee")
    if rate is not None and not Decimal(0) <= rate <= Decimal(100):
        raise ValidationError(translate("mandate_fee_invalid"), details={"commission_rate": str(rate)})
    if fee is not None and fee <= 0:
        raise ValidationError(translate("mandate_fee_invalid"), details={"fixed_fee": str(fee)})
    if rate is None and fee is None:
        raise ValidationError(translate("mandate_fee_invalid"))

    start = parse_date(data.get("start_date")) if data.get("start_date") else get_workflow_context().now().date()
    if start is None:
        raise ValidationError(translate("invalid_value"), details={"start_date": data.get("start_date")})
    end = None
    if data.get("end_date"):
        end = parse_date(data["end_date"])
        if end is None or end <= start:
            raise ValidationError(translate("mandate_dates_invalid"))

    return {
        "agency_id": agency_id,
        "property_id": data.get("property_id") or None,
        "mandate_type": mandate_type,
        "billing_frequency": billing,
        "commission_rate": rate,
        "fixed_fee": fee,
        "start_date": start,
        "end_date": end,
        "permissions": _validate_permissions(data.get("permissions") or {}),
        "notes": data.get("notes"),
    }


def _move(mandate_id, target, values, *, actor_id, message, extra_where=(), sources=None):
    from_status = _get_or_404(mandate_id).status
    mandate = apply_transition(
        AgencyMandate, mandate_id, target, values, entity=ENTITY, extra_where=extra_where, sources=sources,
    )
    db.session.commit()
    log_transition(ENTITY, mandate.id, from_status, mandate.status, actor_id=actor_id, message=message)
    return mandate


def _other_party(mandate, actor_id):
    return mandate.agency_id if actor_id == mandate.owner_id else mandate.owner_id


def _party_guard(mandate_id, actor_id):
    mandate = _get_or_404(mandate_id)
    if not mandate.is_party(actor_id):
        raise PermissionDenied()
    return mandate


# ── Create ─────────────────────────────────────────────────────────────────────


@service_boundary
def create_mandate(owner_id, data):
    """Invite an agency; the mandate starts ``pending`` and the agency gets an alert."""
    if db.session.get(UserProfile, owner_id) is None:
        raise NotFoundError("UserProfile", owner_id)
    fields = _validate_new_mandate(owner_id, data or {})
    mandate = AgencyMandate(owner_id=owner_id, status=MandateStatus.PENDING, **fields)
    db.session.add(mandate)
    db.session.commit()
    log_transition(ENTITY, mandate.id, None, mandate.status, actor_id=owner_id, message="Mandate created")

    AlertService.notify_mandate(mandate, "invitation", mandate.agency_id, mandate_type=mandate.mandate_type)
    return mandate.to_dict(), None


# ── Agency response ────────────────────────────────────────────────────────────


@service_boundary
def accept_mandate(mandate_id, agency_id, now=None):
    now = now or get_workflow_context().now()
    mandate = _move(
        mandate_id, MandateStatus.ACTIVE, {"accepted_at": now},
        actor_id=agency_id, message="Mandate accepted",
        extra_where=(AgencyMandate.agency_id == agency_id,), sources=(MandateStatus.PENDING,),
    )
    AlertService.notify_mandate(mandate, "accepted", mandate.owner_id)
    return mandate.to_dict(), None


@service_boundary
def refuse_mandate(mandate_id, agency_id, reason=None, now=None):
    """Answer an invitation with a refusal; active mandates are ended with terminate."""
    now = now or get_workflow_context().now()
    mandate = _move(
        mandate_id, MandateStatus.TERMINATED,
        {"terminated_at": now, "terminated_by": agency_id, "termination_reason": reason or DEFAULT_REFUSAL_REASON},
        actor_id=agency_id, message="Mandate refused",
        extra_where=(AgencyMandate.agency_id == agency_id,), sources=(MandateStatus.PENDING,),
    )
    AlertService.notify_mandate(mandate, "refused", mandate.owner_id)
    return mandate.to_dict(), None


# ── Party actions ──────────────────────────────────────────────────────────────


@service_boundary
def suspend_mandate(mandate_id, actor_id, reason=None):
    _party_guard(mandate_id, actor_id)
    values = {"notes": reason} if reason else {}
    mandate = _move(mandate_id, MandateStatus.SUSPENDED, values, actor_id=actor_id, message="Mandate suspended")
    AlertService.notify_mandate(mandate, "status", _other_party(mandate, actor_id), status=mandate.status.value)
    return mandate.to_dict(), None


@service_boundary
def resume_mandate(mandate_id, actor_id):
    _party_guard(mandate_id, actor_id)
    mandate = _move(
        mandate_id, MandateStatus.ACTIVE, None,
        actor_id=actor_id, message="Mandate resumed", sources=(MandateStatus.SUSPENDED,),
    )
    AlertService.notify_mandate(mandate, "status", _other_party(mandate, actor_id), status=mandate.status.value)
    return mandate.to_dict(), None


@service_boundary
def terminate_mandate(mandate_id, actor_id, reason=None, now=None):
    """Either party ends a pending, active or suspended mandate."""
    _party_guard(mandate_id, actor_id)
    if not reason:
        raise ValidationError(translate("field_required", field="reason"))
    now = now or get_workflow_context().now()
    mandate = _move(
        mandate_id, MandateStatus.TERMINATED,
        {"terminated_at": now, "terminated_by": actor_id, "termination_reason": reason},
        actor_id=actor_id, message="Mandate terminated",
    )
    AlertService.notify_mandate(mandate, "status", _other_party(mandate, actor_id), status=mandate.status.value)
    return mandate.to_dict(), None


@service_boundary
def update_mandate_permissions(mandate_id, owner_id, permissions):
    """Owner-only; unknown permission keys are rejected, missing ones keep their value."""
    mandate = _get_or_404(mandate_id)
    if mandate.owner_id != owner_id:
        raise PermissionDenied()
    mandate.permissions = _validate_permissions(permissions, base=mandate.permissions or DEFAULT_MANDATE_PERMISSIONS)
    db.session.commit()
    logger.info("Mandate %s permissions updated", mandate.id,
                extra={"entity_type": ENTITY, "entity_id": mandate.id, "user_id": owner_id})
    return mandate.to_dict(), None


# ── Queries ────────────────────────────────────────────────────────────────────


@service_boundary
def get_mandate(mandate_id, user_id, now=None):
    mandate = _party_guard(mandate_id, user_id)
    today = (now or get_workflow_context().now()).date()
    return mandate.to_dict(today=today, window_days=_expiring_window()), None


@service_boundary
def list_mandates(user_id, now=None):
    """Mandates where ``user_id`` is owner or agency, with derived expiry and a summary."""
    today = (now or get_workflow_context().now()).date()
    window = _expiring_window()
    rows = db.session.execute(
        select(AgencyMandate)
        .where(or_(AgencyMandate.owner_id == user_id, AgencyMandate.agency_id == user_id))
        .order_by(AgencyMandate.created_at.desc())
    ).scalars().all()

    items = []
    summary = {s.value: 0 for s in MandateStatus}
    summary["expiring_soon"] = 0
    for m in rows:
        d = m.to_dict(today=today, window_days=window)
        d["role"] = "owner" if m.owner_id == user_id else "agency"
        summary[d["effective_status"]] += 1
        summary["expiring_soon"] += int(d["expiring_soon"])
        items.append(d)
    summary["total"] = len(items)
    return {"items": items, "summary": summary, "as_of": today.isoformat()}, None


# ── Expiry sweep ───────────────────────────────────────────────────────────────


def expire_overdue_mandates(now=None) -> dict:
    """Materialize ``expired`` for active/suspended mandates past ``end_date``.

    Only runs as the ``mandate_expiry_sweep`` job, which is off unless
    MANDATE_EXPIRY_SWEEP_ENABLED is set.
    """
    today = (now or get_workflow_context().now()).date()
    ids = db.session.execute(
        select(AgencyMandate.id).where(
            AgencyMandate.status.in_((MandateStatus.ACTIVE, MandateStatus.SUSPENDED)),
            AgencyMandate.end_date.is_not(None),
            AgencyMandate.end_date < today,
        )
    ).scalars().all()

    result = {"expired": 0, "skipped": 0}
    for mandate_id in ids:
        _, err = _expire_one(mandate_id)
        if err is None:
            result["expired"] += 1
        else:
            result["skipped"] += 1
    logger.info("Mandate expiry sweep: %d expired, %d skipped", result["expired"], result["skipped"],
                extra={"job_name": "mandate_expiry_sweep"})
    return result


@service_boundary
def _expire_one(mandate_id):
    mandate = _move(mandate_id, MandateStatus.EXPIRED, None, actor_id=None, message="Mandate expired")
    for party in (mandate.owner_id, mandate.agency_id):
        AlertService.notify_mandate(mandate, "status", party, status=mandate.status.value)
    return mandate.to_dict(), None
