"""initial_workflow_schema

Create profiles, leases and every workflow table: role change requests,
certifications and their history, agency mandates, alerts, processing
config and scheduled jobs.

Revision ID: 5f1c2a9d7e01
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f1c2a9d7e01"
down_revision = None
branch_labels = None
depends_on = None

USER_TYPES = ("locataire", "proprietaire", "agence", "admin_ansut")
ROLE_REQUEST_STATUSES = ("pending", "under_review", "approved", "rejected", "cancelled")
CERTIFICATION_STATUSES = ("pending", "under_review", "approved", "rejected", "expired", "revoked")
LEASE_CERTIFICATION_STATES = ("not_requested", "pending", "in_review", "certified", "rejected")
MANDATE_STATUSES = ("pending", "active", "suspended", "terminated", "expired")

OPEN_REQUEST_WHERE = "status IN ('pending', 'under_review')"


def _enum(values, name):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=20)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("full_name", sa.String(length=150), nullable=False, server_default=""),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("city", sa.String(length=100), nullable=True),
            sa.Column("user_type", _enum(USER_TYPES, "user_type"), nullable=False, server_default="locataire"),
            sa.Column("is_verified", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("oneci_verified", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("cnam_verified", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("face_verified", sa.Boolean(), nullable=True, server_default=sa.false()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "leases" not in existing_tables:
        op.create_table(
            "leases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("property_title", sa.String(length=300), nullable=True),
            sa.Column("landlord_id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("monthly_rent", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column(
                "certification_status",
                _enum(LEASE_CERTIFICATION_STATES, "lease_certification_state"),
                nullable=False,
                server_default="not_requested",
            ),
            sa.Column("certification_requested_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("certified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("certified_by", sa.String(length=36), nullable=True),
            sa.Column("certification_notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["landlord_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["tenant_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_leases_landlord_id", "leases", ["landlord_id"])
        op.create_index("ix_leases_tenant_id", "leases", ["tenant_id"])

    if "role_change_requests" not in existing_tables:
        op.create_table(
            "role_change_requests",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("from_role", _enum(USER_TYPES, "role_request_from_role"), nullable=False),
            sa.Column("to_role", _enum(USER_TYPES, "role_request_to_role"), nullable=False),
            sa.Column(
                "status", _enum(ROLE_REQUEST_STATUSES, "role_request_status"),
                nullable=False, server_default="pending",
            ),
            sa.Column("request_data", sa.JSON(), nullable=True),
            sa.Column("documents", sa.JSON(), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=36), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_role_change_requests_user_id", "role_change_requests", ["user_id"])
        op.create_index("ix_role_change_requests_status", "role_change_requests", ["status"])
        op.create_index(
            "uq_role_request_open",
            "role_change_requests",
            ["user_id", "to_role"],
            unique=True,
            postgresql_where=sa.text(OPEN_REQUEST_WHERE),
            sqlite_where=sa.text(OPEN_REQUEST_WHERE),
        )

    if "ansut_certifications" not in existing_tables:
        op.create_table(
            "ansut_certifications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("lease_id", sa.String(length=36), nullable=False),
            sa.Column("certification_number", sa.String(length=32), nullable=False),
            sa.Column(
                "status", _enum(CERTIFICATION_STATUSES, "certification_status"),
                nullable=False, server_default="pending",
            ),
            sa.Column("requested_by", sa.String(length=36), nullable=True),
            sa.Column("requester_notes", sa.Text(), nullable=True),
            sa.Column("documents", sa.JSON(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("reviewer_id", sa.String(length=36), nullable=True),
            sa.Column("reviewer_notes", sa.Text(), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("review_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("certification_number"),
        )
        op.create_index("ix_ansut_certifications_lease_id", "ansut_certifications", ["lease_id"])
        op.create_index("ix_ansut_certifications_status", "ansut_certifications", ["status"])

    if "lease_certification_history" not in existing_tables:
        op.create_table(
            "lease_certification_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("lease_id", sa.String(length=36), nullable=False),
            sa.Column("certification_id", sa.String(length=36), nullable=True),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("actor_id", sa.String(length=36), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["certification_id"], ["ansut_certifications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_lease_certification_history_lease_id", "lease_certification_history", ["lease_id"])
        op.create_index(
            "ix_lease_certification_history_certification_id", "lease_certification_history", ["certification_id"],
        )

    if "agency_mandates" not in existing_tables:
        op.create_table(
            "agency_mandates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("owner_id", sa.String(length=36), nullable=False),
            sa.Column("agency_id", sa.String(length=36), nullable=False),
            sa.Column("property_id", sa.String(length=36), nullable=True),
            sa.Column("mandate_type", sa.String(length=30), nullable=False, server_default="location"),
            sa.Column("status", _enum(MANDATE_STATUSES, "mandate_status"), nullable=False, server_default="pending"),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
            sa.Column("fixed_fee", sa.Numeric(12, 2), nullable=True),
            sa.Column("billing_frequency", sa.String(length=20), nullable=False, server_default="mensuel"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("permissions", sa.JSON(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("terminated_by", sa.String(length=36), nullable=True),
            sa.Column("termination_reason", sa.Text(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("owner_id <> agency_id", name="ck_mandate_distinct_parties"),
            sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["agency_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_agency_mandates_owner_id", "agency_mandates", ["owner_id"])
        op.create_index("ix_agency_mandates_agency_id", "agency_mandates", ["agency_id"])
        op.create_index("ix_agency_mandates_status", "agency_mandates", ["status"])

    if "alerts" not in existing_tables:
        op.create_table(
            "alerts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("alert_type", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True, server_default="medium"),
            sa.Column("category", sa.String(length=30), nullable=True, server_default="system"),
            sa.Column("target_role", sa.String(length=20), nullable=True),
            sa.Column("target_user_id", sa.String(length=36), nullable=True),
            sa.Column("action_required", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("is_dismissed", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("target_role IS NOT NULL OR target_user_id IS NOT NULL", name="ck_alert_has_target"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_alerts_alert_type", "alerts", ["alert_type"])
        op.create_index("ix_alerts_target_role", "alerts", ["target_role"])
        op.create_index("ix_alerts_target_user_id", "alerts", ["target_user_id"])

    if "processing_config" not in existing_tables:
        op.create_table(
            "processing_config",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.JSON(), nullable=False),
            sa.Column("description", sa.String(length=300), nullable=True),
            sa.Column("updated_by", sa.String(length=36), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("interval_minutes", sa.Integer(), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("error_count", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("last_error", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in (
        "scheduled_jobs",
        "processing_config",
        "alerts",
        "agency_mandates",
        "lease_certification_history",
        "ansut_certifications",
        "role_change_requests",
        "leases",
        "profiles",
    ):
        if table in existing_tables:
            op.drop_table(table)
