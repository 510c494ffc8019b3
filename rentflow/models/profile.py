"""
Rental Marketplace Workflow Service
User profile model.

Models:
    - UserProfile: account snapshot read by the prerequisite validator and
      updated when a role-change request is approved.
"""

from rentflow.models import _utcnow, _uuid, db, enum_type, isoformat
from rentflow.models.workflow_status import UserType


class UserProfile(db.Model):
    """
    Marketplace account profile.

    Verification flags are written by the identity-verification integrations
    (out of scope here); this service only reads them, except ``user_type``
    which changes when a role-change request is approved.
    """

    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), nullable=True, unique=True)
    full_name = db.Column(db.String(150), nullable=False, default="")
    phone = db.Column(db.String(30), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    user_type = db.Column(enum_type(UserType, "user_type"), nullable=False, default=UserType.TENANT)

    is_verified = db.Column(db.Boolean, default=False, comment="Email address confirmed")
    oneci_verified = db.Column(db.Boolean, default=False, comment="National ID (ONECI) check passed")
    cnam_verified = db.Column(db.Boolean, default=False, comment="Health insurance (CNAM) check passed")
    face_verified = db.Column(db.Boolean, default=False, comment="Selfie / liveness check passed")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "city": self.city,
            "user_type": self.user_type.value if self.user_type else None,
            "is_verified": bool(self.is_verified),
            "oneci_verified": bool(self.oneci_verified),
            "cnam_verified": bool(self.cnam_verified),
            "face_verified": bool(self.face_verified),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<UserProfile {self.id} {self.user_type}>"
