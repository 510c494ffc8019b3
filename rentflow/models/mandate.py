"""
Rental Marketplace Workflow Service
Agency mandate model.

Models:
    - AgencyMandate: delegation of a property's management from an owner to
      an agency. Expiry is derived from ``end_date`` at read time; the stored
      status only becomes ``expired`` when the optional expiry sweep runs.
"""

from datetime import date, timedelta

from rentflow.models import _utcnow, _uuid, db, enum_type, isoformat
from rentflow.models.workflow_status import MandateStatus

MANDATE_TYPES = {"location", "gestion_complete", "vente"}
BILLING_FREQUENCIES = {"mensuel", "trimestriel", "annuel", "par_transaction"}

MANDATE_PERMISSION_KEYS = (
    "can_view_properties",
    "can_edit_properties",
    "can_create_properties",
    "can_delete_properties",
    "can_view_applications",
    "can_manage_applications",
    "can_create_leases",
    "can_view_financials",
    "can_manage_maintenance",
    "can_communicate_tenants",
    "can_manage_documents",
)

DEFAULT_MANDATE_PERMISSIONS = {
    "can_view_properties": True,
    "can_edit_properties": False,
    "can_create_properties": False,
    "can_delete_properties": False,
    "can_view_applications": True,
    "can_manage_applications": False,
    "can_create_leases": False,
    "can_view_financials": False,
    "can_manage_maintenance": False,
    "can_communicate_tenants": True,
    "can_manage_documents": False,
}


class AgencyMandate(db.Model):
    __tablename__ = "agency_mandates"
    __table_args__ = (
        db.CheckConstraint("owner_id <> agency_id", name="ck_mandate_distinct_parties"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    owner_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    agency_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    property_id = db.Column(db.String(36), nullable=True, comment="Null means all of the owner's properties")
    mandate_type = db.Column(db.String(30), nullable=False, default="location")
    status = db.Column(
        enum_type(MandateStatus, "mandate_status"), nullable=False, default=MandateStatus.PENDING, index=True,
    )

    commission_rate = db.Column(db.Numeric(5, 2), nullable=True)
    fixed_fee = db.Column(db.Numeric(12, 2), nullable=True)
    billing_frequency = db.Column(db.String(20), nullable=False, default="mensuel")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)

    permissions = db.Column(db.JSON, default=lambda: dict(DEFAULT_MANDATE_PERMISSIONS))
    notes = db.Column(db.Text, nullable=True)

    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    terminated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    terminated_by = db.Column(db.String(36), nullable=True)
    termination_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def is_party(self, user_id) -> bool:
        return user_id in (self.owner_id, self.agency_id)

    def is_expired(self, today: date) -> bool:
        return self.end_date is not None and self.end_date < today

    def expiring_soon(self, today: date, window_days: int) -> bool:
        if self.status != MandateStatus.ACTIVE or self.end_date is None:
            return False
        return today <= self.end_date <= today + timedelta(days=window_days)

    def effective_status(self, today: date) -> MandateStatus:
        """Stored status with date-based expiry applied; display only."""
        if self.status in (MandateStatus.ACTIVE, MandateStatus.SUSPENDED) and self.is_expired(today):
            return MandateStatus.EXPIRED
        return self.status

    def to_dict(self, today: date | None = None, window_days: int = 30):
        d = {
            "id": self.id,
            "owner_id": self.owner_id,
            "agency_id": self.agency_id,
            "property_id": self.property_id,
            "mandate_type": self.mandate_type,
            "status": self.status.value if self.status else None,
            "commission_rate": float(self.commission_rate) if self.commission_rate is not None else None,
            "fixed_fee": float(self.fixed_fee) if self.fixed_fee is not None else None,
            "billing_frequency": self.billing_frequency,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "permissions": self.permissions or {},
            "notes": self.notes,
            "accepted_at": isoformat(self.accepted_at),
            "terminated_at": isoformat(self.terminated_at),
            "terminated_by": self.terminated_by,
            "termination_reason": self.termination_reason,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if today is not None:
            d["effective_status"] = self.effective_status(today).value
            d["is_expired"] = self.is_expired(today)
            d["expiring_soon"] = self.expiring_soon(today, window_days)
        return d

    def __repr__(self):
        return f"<AgencyMandate {self.id} owner={self.owner_id} agency={self.agency_id} [{self.status}]>"
