"""SWMS workflow tables

Revision ID: 0001_swms_workflow_tables
Revises:
Create Date: 2026-10-19

Tables:
- users: console administrators (session subjects)
- job_sites, swms_jobs, contractors, swms_submissions
- swms_email_campaigns, swms_email_sends: reminder/notification batches
- notification_audits: append-only record of campaign actions
- swms_audit_log: append-only row-level change log
"""

from alembic import op
import sqlalchemy as sa

from swms_api.db.types import EmailAddress, JSONDocument


# revision identifiers, used by Alembic.
revision = "0001_swms_workflow_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS citext")

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", EmailAddress, nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    op.create_table(
        "job_sites",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("check_in_radius_meters", sa.Integer(), nullable=False, server_default="100"),
        *_timestamps(),
    )

    op.create_table(
        "swms_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "job_site_id",
            sa.Uuid(),
            sa.ForeignKey("job_sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="planned"),
        *_timestamps(),
    )
    op.create_index("idx_swms_jobs_site_status", "swms_jobs", ["job_site_id", "status"])

    op.create_table(
        "contractors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("abn", sa.String(20), nullable=True),
        sa.Column("contact_email", EmailAddress, nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "swms_submissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "swms_job_id",
            sa.Uuid(),
            sa.ForeignKey("swms_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("contractors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("worker_id", sa.Uuid(), nullable=True),
        sa.Column("document_name", sa.String(255), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "reviewed_by",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "idx_swms_submissions_job_status", "swms_submissions", ["swms_job_id", "status"]
    )
    op.create_index("idx_swms_submissions_contractor", "swms_submissions", ["contractor_id"])
    op.create_index(
        "idx_swms_submissions_status_created", "swms_submissions", ["status", "created_at"]
    )

    op.create_table(
        "swms_email_campaigns",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "swms_job_id",
            sa.Uuid(),
            sa.ForeignKey("swms_jobs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("campaign_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_by",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("idx_swms_campaigns_status", "swms_email_campaigns", ["status"])
    op.create_index("idx_swms_campaigns_job", "swms_email_campaigns", ["swms_job_id"])

    op.create_table(
        "swms_email_sends",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "campaign_id",
            sa.Uuid(),
            sa.ForeignKey("swms_email_campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("contractors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email_address", EmailAddress, nullable=False),
        sa.Column("portal_token", sa.String(64), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("idx_swms_sends_campaign", "swms_email_sends", ["campaign_id"])
    op.create_index("idx_swms_sends_contractor", "swms_email_sends", ["contractor_id"])
    op.create_index(
        "idx_swms_sends_portal_token", "swms_email_sends", ["portal_token"], unique=True
    )

    op.create_table(
        "notification_audits",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column("kind", sa.String(100), nullable=False),
        sa.Column("payload", JSONDocument, nullable=True),
        sa.Column("result", sa.String(20), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "idx_notification_audits_kind_created", "notification_audits", ["kind", "created_at"]
    )

    op.create_table(
        "swms_audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("old_values", JSONDocument, nullable=True),
        sa.Column("new_values", JSONDocument, nullable=True),
        sa.Column(
            "changed_by",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("idx_swms_audit_log_changed_at", "swms_audit_log", ["changed_at"])
    op.create_index("idx_swms_audit_log_record", "swms_audit_log", ["record_id"])


def downgrade() -> None:
    op.drop_table("swms_audit_log")
    op.drop_table("notification_audits")
    op.drop_table("swms_email_sends")
    op.drop_table("swms_email_campaigns")
    op.drop_table("swms_submissions")
    op.drop_table("contractors")
    op.drop_table("swms_jobs")
    op.drop_table("job_sites")
    op.drop_table("users")
