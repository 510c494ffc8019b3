"""
Rental Marketplace Workflow Service
Certification Service.

Lease certification by the housing authority: a landlord submits a signed
lease, an admin reviews it, and the outcome is mirrored onto the lease row.

    pending ──► under_review ──► approved ──► revoked
       │             │      └──► rejected
       └─────────────┴─────────► expired

Every status change is one conditional UPDATE (see ``transitions``) followed
by an append-only history row in the same commit. Notifications go out after
the commit and never roll it back.
"""

from __future__ import annotations

import csv
import io
import logging
import secrets
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from sqlalchemy import func, or_, select

from rentflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from rentflow.models import as_utc, db, isoformat
from rentflow.models.certification import Certification, CertificationHistory
from rentflow.models.lease import CERTIFIABLE_LEASE_STATUSES, Lease
from rentflow.models.workflow_status import (
    OPEN_CERTIFICATION_STATUSES,
    CertificationStatus,
    LeaseCertificationState,
    parse_status,
    status_values,
)
from rentflow.services.alert_service import AlertService
from rentflow.services.context import get_workflow_context
from rentflow.services.transitions import apply_transition, log_transition
from rentflow.utils.errors import service_boundary
from rentflow.utils.helpers import parse_datetime
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

ENTITY = "certification"
NUMBER_PREFIX = "ANSUT"
EXPORT_FORMATS = ("csv", "json", "xlsx")
REVIEW_DECISIONS = frozenset({CertificationStatus.APPROVED, CertificationStatus.REJECTED})

EXPORT_HEADERS = [
    "certification_number", "lease_id", "status", "requested_at",
    "review_date", "approval_date", "reviewer_notes", "documents",
]

# Certification outcome -> lease.certification_status
_LEASE_STATE = {
    CertificationStatus.PENDING: LeaseCertificationState.PENDING,
    CertificationStatus.UNDER_REVIEW: LeaseCertificationState.IN_REVIEW,
    CertificationStatus.APPROVED: LeaseCertificationState.CERTIFIED,
    CertificationStatus.REJECTED: LeaseCertificationState.REJECTED,
    CertificationStatus.REVOKED: LeaseCertificationState.NOT_REQUESTED,
    CertificationStatus.EXPIRED: LeaseCertificationState.NOT_REQUESTED,
}

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)


# ── Private helpers ────────────────────────────────────────────────────────────


def generate_certification_number(now: datetime) -> str:
    """``ANSUT-YYYYMMDD-XXXXXX`` with a random uppercase hex suffix."""
    return f"{NUMBER_PREFIX}-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def _get_or_404(certification_id) -> Certification:
    cert = db.session.get(Certification, certification_id)
    if cert is None:
        raise NotFoundError("Certification", certification_id)
    return cert


def _record(cert: Certification, action: str, actor_id=None, notes=None):
    db.session.add(CertificationHistory(
        lease_id=cert.lease_id,
        certification_id=cert.id,
        action=action,
        status=cert.status.value,
        actor_id=actor_id,
        notes=notes,
    ))


def _mirror_on_lease(cert: Certification, now, actor_id=None, notes=None):
    lease = db.session.get(Lease, cert.lease_id)
    if lease is None:
        raise NotFoundError("Lease", cert.lease_id)
    lease.certification_status = _LEASE_STATE[cert.status]
    if cert.status == CertificationStatus.APPROVED:
        lease.certified_at = now
        lease.certified_by = actor_id
    elif cert.status in (CertificationStatus.REVOKED, CertificationStatus.EXPIRED):
        lease.certified_at = None
        lease.certified_by = None
    if notes is not None:
        lease.certification_notes = notes
    return lease


def _transition(certification_id, target, values, *, action, actor_id, notes=None, now=None, sources=None):
    """Apply one certification transition plus its lease mirror and history row."""
    from_status = _get_or_404(certification_id).status
    cert = apply_transition(Certification, certification_id, target, values, entity=ENTITY, sources=sources)
    lease = _mirror_on_lease(cert, now, actor_id=actor_id, notes=notes)
    _record(cert, action, actor_id=actor_id, notes=notes)
    db.session.commit()
    log_transition(ENTITY, cert.id, from_status, cert.status, actor_id=actor_id, message=f"Certification {action}")
    return cert, lease


def _apply_filters(stmt, filters: dict | None):
    filters = filters or {}
    if filters.get("status"):
        parsed = parse_status(CertificationStatus, filters["status"])
        if parsed is None:
            raise ValidationError(translate("invalid_status", status=filters["status"]),
                                  details={"valid": status_values(CertificationStatus)})
        stmt = stmt.where(Certification.status == parsed)
    if filters.get("reviewer_id"):
        stmt = stmt.where(Certification.reviewer_id == filters["reviewer_id"])
    if filters.get("lease_id"):
        stmt = stmt.where(Certification.lease_id == filters["lease_id"])
    date_from = _filter_datetime(filters, "date_from")
    if date_from is not None:
        stmt = stmt.where(Certification.requested_at >= date_from)
    date_to = _filter_datetime(filters, "date_to")
    if date_to is not None:
        stmt = stmt.where(Certification.requested_at <= date_to)
    return stmt


def _filter_datetime(filters, key):
    raw = filters.get(key)
    if not raw:
        return None
    value = parse_datetime(raw)
    if value is None:
        raise ValidationError(translate("invalid_value"), details={key: raw})
    return value


def _blocking_reasons(lease: Lease) -> list[str]:
    """Message keys explaining why ``lease`` cannot be submitted; empty when it can."""
    reasons = []
    if lease.status not in CERTIFIABLE_LEASE_STATUSES:
        reasons.append("lease_not_certifiable")
    blocking = OPEN_CERTIFICATION_STATUSES | {CertificationStatus.APPROVED}
    existing = db.session.execute(
        select(Certification.id).where(
            Certification.lease_id == lease.id,
            Certification.status.in_(blocking),
        ).limit(1)
    ).first()
    if existing is not None:
        reasons.append("certification_open")
    return reasons


# ── Submission ─────────────────────────────────────────────────────────────────


@service_boundary
def pre_validate_lease(lease_id):
    """Check that ``lease_id`` may be submitted for certification.

    Returns ({"lease_id", "can_submit", "errors"}, None); a missing lease is
    a not-found error.
    """
    lease = db.session.get(Lease, lease_id)
    if lease is None:
        raise NotFoundError("Lease", lease_id)
    errors = [translate(key) for key in _blocking_reasons(lease)]
    return {"lease_id": lease_id, "can_submit": not errors, "errors": errors}, None


@service_boundary
def submit_certification(lease_id, documents=None, requester_notes=None, requester_id=None, now=None):
    """Open a ``pending`` certification for a signed or active lease."""
    lease = db.session.get(Lease, lease_id)
    if lease is None:
        raise NotFoundError("Lease", lease_id)
    reasons = _blocking_reasons(lease)
    if "certification_open" in reasons:
        raise ConflictError("Certification", "lease_id", lease_id)
    if reasons:
        raise ValidationError(translate(reasons[0]))

    now = now or get_workflow_context().now()
    cert = Certification(
        lease_id=lease_id,
        certification_number=generate_certification_number(now),
        status=CertificationStatus.PENDING,
        requested_by=requester_id,
        requester_notes=requester_notes,
        documents=list(documents or []),
        meta={},
        requested_at=now,
    )
    db.session.add(cert)
    db.session.flush()

    lease.certification_status = LeaseCertificationState.PENDING
    lease.certification_requested_at = now
    _record(cert, "submitted", actor_id=requester_id, notes=requester_notes)
    db.session.commit()
    log_transition(ENTITY, cert.id, None, cert.status, actor_id=requester_id, message="Certification submitted")

    AlertService.notify_certification_submitted(cert)
    return cert.to_dict(include_lease=True), None


# ── Review ─────────────────────────────────────────────────────────────────────


@service_boundary
def start_certification_review(certification_id, reviewer_id, now=None):
    now = now or get_workflow_context().now()
    cert, _ = _transition(
        certification_id, CertificationStatus.UNDER_REVIEW, {"reviewer_id": reviewer_id},
        action="review_started", actor_id=reviewer_id, now=now,
    )
    return cert.to_dict(), None


@service_boundary
def review_certification(certification_id, status, reviewer_id, notes=None, now=None, sources=None):
    """Approve or reject a pending or under-review certification.

    Sets reviewer, notes and dates, mirrors the outcome onto the lease and
    sends one alert to the lease parties. ``sources`` narrows the statuses
    the decision may start from.
    """
    decision = parse_status(CertificationStatus, status)
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(translate("invalid_status", status=status),
                              details={"valid": sorted(s.value for s in REVIEW_DECISIONS)})

    now = now or get_workflow_context().now()
    values = {"reviewer_id": reviewer_id, "reviewer_notes": notes, "review_date": now}
    if decision == CertificationStatus.APPROVED:
        values["approval_date"] = now
    cert, lease = _transition(
        certification_id, decision, values,
        action=decision.value, actor_id=reviewer_id, notes=notes, now=now, sources=sources,
    )
    AlertService.notify_certification_status(cert, lease)
    return cert.to_dict(include_lease=True), None


@service_boundary
def revoke_certification(certification_id, reviewer_id, reason=None, now=None):
    """Withdraw an approved certification; the lease returns to ``not_requested``."""
    now = now or get_workflow_context().now()
    cert, lease = _transition(
        certification_id, CertificationStatus.REVOKED,
        {"revoked_at": now, "reviewer_notes": reason} if reason else {"revoked_at": now},
        action="revoked", actor_id=reviewer_id, notes=reason, now=now,
    )
    AlertService.notify_certification_status(cert, lease)
    return cert.to_dict(include_lease=True), None


@service_boundary
def expire_certification(certification_id, actor_id=None, now=None):
    now = now or get_workflow_context().now()
    cert, lease = _transition(
        certification_id, CertificationStatus.EXPIRED, {"review_date": now},
        action="expired", actor_id=actor_id, now=now,
    )
    AlertService.notify_certification_status(cert, lease)
    return cert.to_dict(), None


@service_boundary
def update_certification_metadata(certification_id, metadata, actor_id=None):
    """Merge ``metadata`` into the certification's free-form metadata."""
    if not isinstance(metadata, dict):
        raise ValidationError(translate("invalid_value"), details={"metadata": "must be an object"})
    cert = _get_or_404(certification_id)
    cert.meta = {**(cert.meta or {}), **metadata}
    _record(cert, "metadata_updated", actor_id=actor_id)
    db.session.commit()
    return cert.to_dict(), None


# ── Queries ────────────────────────────────────────────────────────────────────


@service_boundary
def get_certification(certification_id):
    return _get_or_404(certification_id).to_dict(include_lease=True), None


@service_boundary
def get_all_certifications(filters=None, limit=100, offset=0):
    """Filters: status, reviewer_id, lease_id, date_from, date_to (on requested_at)."""
    stmt = _apply_filters(select(Certification), filters)
    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.session.execute(
        stmt.order_by(Certification.requested_at.desc()).offset(offset).limit(limit)
    ).unique().scalars().all()
    return {"items": [c.to_dict(include_lease=True) for c in rows], "total": total}, None


@service_boundary
def get_pending_certifications():
    """Open certifications, oldest first."""
    rows = db.session.execute(
        select(Certification)
        .where(Certification.status.in_(OPEN_CERTIFICATION_STATUSES))
        .order_by(Certification.requested_at.asc())
    ).unique().scalars().all()
    return [c.to_dict(include_lease=True) for c in rows], None


@service_boundary
def get_certifications_by_lease(lease_id):
    rows = db.session.execute(
        select(Certification)
        .where(Certification.lease_id == lease_id)
        .order_by(Certification.requested_at.desc())
    ).unique().scalars().all()
    return [c.to_dict() for c in rows], None


@service_boundary
def get_user_certification_history(user_id):
    """Certifications of every lease where ``user_id`` is landlord or tenant."""
    rows = db.session.execute(
        select(Certification)
        .join(Lease, Lease.id == Certification.lease_id)
        .where(or_(Lease.landlord_id == user_id, Lease.tenant_id == user_id))
        .order_by(Certification.requested_at.desc())
    ).unique().scalars().all()
    return [c.to_dict(include_lease=True) for c in rows], None


@service_boundary
def get_certification_history(certification_id):
    _get_or_404(certification_id)
    rows = db.session.execute(
        select(CertificationHistory)
        .where(CertificationHistory.certification_id == certification_id)
        .order_by(CertificationHistory.created_at.asc(), CertificationHistory.id.asc())
    ).scalars().all()
    return [h.to_dict() for h in rows], None


@service_boundary
def get_certification_stats(start=None, end=None):
    """Counts per status, approval rate and mean review hours for requests in [start, end]."""
    stmt = _apply_filters(select(Certification), {"date_from": start, "date_to": end})
    rows = db.session.execute(stmt).unique().scalars().all()

    by_status = {s: 0 for s in status_values(CertificationStatus)}
    durations = []
    for c in rows:
        by_status[c.status.value] += 1
        if c.review_date and c.requested_at:
            durations.append((as_utc(c.review_date) - as_utc(c.requested_at)).total_seconds() / 3600)

    decided = by_status["approved"] + by_status["rejected"] + by_status["revoked"]
    approved = by_status["approved"] + by_status["revoked"]
    return {
        "total": len(rows),
        "by_status": by_status,
        "pending": by_status["pending"] + by_status["under_review"],
        "approval_rate": round(100 * approved / decided, 1) if decided else 0.0,
        "avg_review_hours": round(sum(durations) / len(durations), 1) if durations else None,
    }, None


# ── Export ─────────────────────────────────────────────────────────────────────


def _export_row(cert: Certification) -> list:
    return [
        cert.certification_number,
        cert.lease_id,
        cert.status.value,
        isoformat(cert.requested_at) or "",
        isoformat(cert.review_date) or "",
        isoformat(cert.approval_date) or "",
        (cert.reviewer_notes or "").replace("\n", " "),
        ";".join(str(d) for d in cert.documents or []),
    ]


def _export_xlsx(rows) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Certifications"
    for col, header in enumerate(EXPORT_HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
    for cert in rows:
        ws.append(_export_row(cert))
    ws.freeze_panes = "A2"
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


@service_boundary
def export_certifications(filters=None, fmt="csv"):
    """Export filtered certifications.

    Returns a CSV string, a list of dicts (json), or a BytesIO workbook (xlsx).
    """
    fmt = (fmt or "").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(translate("export_format_invalid", fmt=fmt), details={"valid": list(EXPORT_FORMATS)})

    stmt = _apply_filters(select(Certification), filters)
    rows = db.session.execute(stmt.order_by(Certification.requested_at.asc())).unique().scalars().all()

    if fmt == "json":
        return [c.to_dict() for c in rows], None
    if fmt == "xlsx":
        return _export_xlsx(rows), None

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_HEADERS)
    for cert in rows:
        writer.writerow(_export_row(cert))
    return buf.getvalue(), None
