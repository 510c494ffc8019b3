"""
Rental Marketplace Workflow Service
Scheduled job registry.

Models:
    - ScheduledJob: one row per registered background job, with its
      enabled flag and the outcome of its last run.
"""

from rentflow.models import _utcnow, db, isoformat


class ScheduledJob(db.Model):
    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="review_deadline_sweep, mandate_expiry_sweep")
    description = db.Column(db.String(500), default="")
    interval_minutes = db.Column(db.Integer, default=60)
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        self.last_run_at = _utcnow()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "interval_minutes": self.interval_minutes,
            "is_enabled": self.is_enabled,
            "last_run_at": isoformat(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} enabled={self.is_enabled}>"
