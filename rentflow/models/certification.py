"""
Rental Marketplace Workflow Service
Lease certification models.

Models:
    - Certification: authority validation of a signed lease, reviewed by an
      admin and identified by an ``ANSUT-YYYYMMDD-XXXXXX`` number.
    - CertificationHistory: append-only log of every certification action.
"""

from rentflow.models import _utcnow, _uuid, db, enum_type, isoformat
from rentflow.models.workflow_status import CertificationStatus

HISTORY_ACTIONS = {"submitted", "review_started", "approved", "rejected", "revoked", "expired", "metadata_updated"}


class Certification(db.Model):
    __tablename__ = "ansut_certifications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    lease_id = db.Column(
        db.String(36), db.ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    certification_number = db.Column(db.String(32), unique=True, nullable=False)
    status = db.Column(
        enum_type(CertificationStatus, "certification_status"),
        nullable=False,
        default=CertificationStatus.PENDING,
        index=True,
    )

    requested_by = db.Column(db.String(36), nullable=True)
    requester_notes = db.Column(db.Text, nullable=True)
    documents = db.Column(db.JSON, default=list)
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, default=dict)

    reviewer_id = db.Column(db.String(36), nullable=True)
    reviewer_notes = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    lease = db.relationship("Lease", lazy="joined")

    def to_dict(self, include_lease=False):
        d = {
            "id": self.id,
            "lease_id": self.lease_id,
            "certification_number": self.certification_number,
            "status": self.status.value if self.status else None,
            "requested_by": self.requested_by,
            "requester_notes": self.requester_notes,
            "documents": self.documents or [],
            "metadata": self.meta or {},
            "reviewer_id": self.reviewer_id,
            "reviewer_notes": self.reviewer_notes,
            "requested_at": isoformat(self.requested_at),
            "review_date": isoformat(self.review_date),
            "approval_date": isoformat(self.approval_date),
            "revoked_at": isoformat(self.revoked_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_lease and self.lease is not None:
            d["lease"] = self.lease.to_dict()
        return d

    def __repr__(self):
        return f"<Certification {self.certification_number} [{self.status}]>"


class CertificationHistory(db.Model):
    """Append-only; rows are never updated."""

    __tablename__ = "lease_certification_history"

    id = db.Column(db.Integer, primary_key=True)
    lease_id = db.Column(
        db.String(36), db.ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    certification_id = db.Column(
        db.String(36), db.ForeignKey("ansut_certifications.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    action = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=True)
    actor_id = db.Column(db.String(36), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "lease_id": self.lease_id,
            "certification_id": self.certification_id,
            "action": self.action,
            "status": self.status,
            "actor_id": self.actor_id,
            "notes": self.notes,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<CertificationHistory {self.certification_id} {self.action}>"
