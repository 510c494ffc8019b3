"""
Rental Marketplace Workflow Service
Review processing configuration.

Models:
    - ProcessingConfig: key/value JSON rows read by the review queue and the
      deadline sweep.

Keys:
    application_processing_deadline_hours  {"value": 48, "unit": "hours"}
    auto_action_after_deadline             {"enabled": false, "action": "none"}
"""

from rentflow.models import _utcnow, db, isoformat

DEADLINE_HOURS_KEY = "application_processing_deadline_hours"
AUTO_ACTION_KEY = "auto_action_after_deadline"

AUTO_ACTIONS = {"approved", "rejected", "none"}


class ProcessingConfig(db.Model):
    __tablename__ = "processing_config"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.JSON, nullable=False, default=dict)
    description = db.Column(db.String(300), default="")
    updated_by = db.Column(db.String(36), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updated_by": self.updated_by,
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ProcessingConfig {self.key}>"
