"""
Rental Marketplace Workflow Service
Role-change request model.

Models:
    - RoleChangeRequest: a user's application to switch account type
      (tenant -> owner, tenant -> agency), reviewed by an admin.

At most one open (pending / under_review) request may exist per
(user_id, to_role). The partial unique index below makes that a storage
guarantee; the service-level pre-check only produces a friendlier error.
"""

from rentflow.models import _utcnow, _uuid, db, enum_type, isoformat
from rentflow.models.workflow_status import RoleRequestStatus, UserType

_OPEN_WHERE = "status IN ('pending', 'under_review')"


class RoleChangeRequest(db.Model):
    __tablename__ = "role_change_requests"
    __table_args__ = (
        db.Index(
            "uq_role_request_open",
            "user_id",
            "to_role",
            unique=True,
            sqlite_where=db.text(_OPEN_WHERE),
            postgresql_where=db.text(_OPEN_WHERE),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_role = db.Column(enum_type(UserType, "role_request_from_role"), nullable=False)
    to_role = db.Column(enum_type(UserType, "role_request_to_role"), nullable=False)
    status = db.Column(
        enum_type(RoleRequestStatus, "role_request_status"),
        nullable=False,
        default=RoleRequestStatus.PENDING,
        index=True,
    )

    request_data = db.Column(db.JSON, default=dict, comment="Form snapshot incl. documents and submittedAt")
    documents = db.Column(db.JSON, default=dict, comment="document_type -> URL")

    admin_notes = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(36), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "from_role": self.from_role.value if self.from_role else None,
            "to_role": self.to_role.value if self.to_role else None,
            "status": self.status.value if self.status else None,
            "request_data": self.request_data or {},
            "documents": self.documents or {},
            "admin_notes": self.admin_notes,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": isoformat(self.reviewed_at),
            "approved_at": isoformat(self.approved_at),
            "requested_at": isoformat(self.requested_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<RoleChangeRequest {self.id} {self.from_role}->{self.to_role} [{self.status}]>"
