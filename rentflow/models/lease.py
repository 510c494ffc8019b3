"""
Rental Marketplace Workflow Service
Lease model (certification subject).

Only the columns the certification workflow reads or mirrors are modelled;
lease drafting and signature live elsewhere.
"""

from rentflow.models import _utcnow, _uuid, db, enum_type, isoformat
from rentflow.models.workflow_status import LeaseCertificationState

LEASE_STATUSES = {"draft", "pending_signature", "signed", "active", "terminated", "expired"}
CERTIFIABLE_LEASE_STATUSES = {"signed", "active"}


class Lease(db.Model):
    __tablename__ = "leases"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    property_title = db.Column(db.String(300), default="")
    landlord_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    monthly_rent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(30), nullable=False, default="draft")

    certification_status = db.Column(
        enum_type(LeaseCertificationState, "lease_certification_state"),
        nullable=False,
        default=LeaseCertificationState.NOT_REQUESTED,
    )
    certification_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    certified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    certified_by = db.Column(db.String(36), nullable=True)
    certification_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def parties(self) -> list[str]:
        return [p for p in (self.landlord_id, self.tenant_id) if p]

    def to_dict(self):
        return {
            "id": self.id,
            "property_title": self.property_title,
            "landlord_id": self.landlord_id,
            "tenant_id": self.tenant_id,
            "monthly_rent": float(self.monthly_rent) if self.monthly_rent is not None else None,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "status": self.status,
            "certification_status": self.certification_status.value if self.certification_status else None,
            "certification_requested_at": isoformat(self.certification_requested_at),
            "certified_at": isoformat(self.certified_at),
            "certification_notes": self.certification_notes,
        }

    def __repr__(self):
        return f"<Lease {self.id} [{self.status}]>"
