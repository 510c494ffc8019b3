"""
Rental Marketplace Workflow Service
Alert domain model.

Models:
    - Alert: dashboard signal written as a side effect of a workflow
      transition. Targeted either at a role (all admins) or at one user.
      The only read-state is a boolean dismiss.
"""

from rentflow.models import _utcnow, db, isoformat

# ── Constants ────────────────────────────────────────────────────────────────

ALERT_SEVERITIES = {"low", "medium", "high", "critical"}
ALERT_CATEGORIES = {"role_management", "certification", "mandate", "system"}


class Alert(db.Model):
    __tablename__ = "alerts"
    __table_args__ = (
        db.CheckConstraint(
            "target_role IS NOT NULL OR target_user_id IS NOT NULL",
            name="ck_alert_has_target",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    alert_type = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="medium")
    category = db.Column(db.String(30), default="system")

    target_role = db.Column(db.String(20), nullable=True, index=True)
    target_user_id = db.Column(db.String(36), nullable=True, index=True)
    action_required = db.Column(db.Boolean, default=False)
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, default=dict)

    is_dismissed = db.Column(db.Boolean, default=False)
    dismissed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def dismiss(self):
        self.is_dismissed = True
        self.dismissed_at = _utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "category": self.category,
            "target_role": self.target_role,
            "target_user_id": self.target_user_id,
            "action_required": bool(self.action_required),
            "metadata": self.meta or {},
            "is_dismissed": bool(self.is_dismissed),
            "dismissed_at": isoformat(self.dismissed_at),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Alert {self.id}: {self.title[:40]}>"
