"""clearance_workflow_schema

Creates the clearance workflow tables:
  - users                   — acting identities and their authority role
  - document_types          — ordered stage lists copied into new requests
  - clearance_requests      — version-guarded request state
  - request_history         — lifecycle transition log
  - escalation_history      — append-only escalation ledger
  - clearance_certificates  — one issued certificate per completed request
  - notifications, email_logs, scheduled_jobs

Tables created conditionally (IF NOT EXISTS semantics) so the migration is
idempotent against databases that already received them via db.create_all().

Revision ID: 5e1c0a9b7d21
Revises:
Create Date: 2026-10-19 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1c0a9b7d21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column(
                "role", sa.String(length=30), nullable=False,
                comment="student | library_admin | cashier_admin | registrar_admin | super_admin",
            ),
            sa.Column("student_number", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    # ── DocumentType ──────────────────────────────────────────────────────
    if "document_types" not in existing:
        op.create_table(
            "document_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column(
                "required_stages", sa.JSON(), nullable=False,
                comment="Ordered stage names, e.g. ['library', 'cashier', 'registrar']",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    # ── ClearanceRequest ──────────────────────────────────────────────────
    if "clearance_requests" not in existing:
        op.create_table(
            "clearance_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("document_type_id", sa.Integer(), nullable=False),
            sa.Column("requester_id", sa.Integer(), nullable=False),
            sa.Column("purpose", sa.Text(), nullable=True),
            sa.Column("stages", sa.JSON(), nullable=False),
            sa.Column("current_stage_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column(
                "current_status", sa.String(length=20), nullable=False, server_default="pending",
                comment="pending | on_hold | completed",
            ),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("escalated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("escalation_level", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "version", sa.Integer(), nullable=False,
                comment="Optimistic concurrency counter (mapper version_id_col).",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clearance_requests_document_type_id", "clearance_requests", ["document_type_id"])
        op.create_index("ix_clearance_requests_requester_id", "clearance_requests", ["requester_id"])
        op.create_index("ix_clearance_requests_current_status", "clearance_requests", ["current_status"])
        op.create_index("ix_clearance_requests_is_completed", "clearance_requests", ["is_completed"])
        op.create_index("ix_clearance_requests_last_activity_at", "clearance_requests", ["last_activity_at"])
        op.create_index("ix_clearance_requests_escalated", "clearance_requests", ["escalated"])
        op.create_index(
            "ix_clearance_requests_sweep", "clearance_requests",
            ["current_status", "is_completed", "last_activity_at"],
        )

    # ── RequestHistory ────────────────────────────────────────────────────
    if "request_history" not in existing:
        op.create_table(
            "request_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_id", sa.Integer(), nullable=False),
            sa.Column(
                "action", sa.String(length=20), nullable=False,
                comment="submitted | approved | completed | rejected | resubmitted",
            ),
            sa.Column("stage_name", sa.String(length=100), nullable=True),
            sa.Column("previous_status", sa.String(length=20), nullable=True),
            sa.Column("new_status", sa.String(length=20), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True, comment="User who performed the transition"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["clearance_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_request_history_request_id", "request_history", ["request_id"])

    # ── EscalationHistory ─────────────────────────────────────────────────
    if "escalation_history" not in existing:
        op.create_table(
            "escalation_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_id", sa.Integer(), nullable=False,
                      comment="Snapshot of clearance_requests.id; kept after the request is deleted"),
            sa.Column("escalation_level", sa.Integer(), nullable=False),
            sa.Column(
                "escalated_by", sa.String(length=64), nullable=False,
                comment="'system' or admin user id",
            ),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("days_pending", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_escalation_history_request_id", "escalation_history", ["request_id"])
        op.create_index("ix_escalation_history_created_at", "escalation_history", ["created_at"])

    # ── ClearanceCertificate ──────────────────────────────────────────────
    if "clearance_certificates" not in existing:
        op.create_table(
            "clearance_certificates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_id", sa.Integer(), nullable=False),
            sa.Column("certificate_number", sa.String(length=40), nullable=False),
            sa.Column("verification_code", sa.String(length=32), nullable=False),
            sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["clearance_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id"),
            sa.UniqueConstraint("certificate_number"),
        )
        op.create_index(
            "ix_clearance_certificates_verification_code", "clearance_certificates",
            ["verification_code"], unique=True,
        )

    # ── Notification ──────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=True,
                      comment="User id, NULL for the escalation desk"),
            sa.Column("request_id", sa.Integer(), nullable=True, comment="Related clearance request"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
        op.create_index("ix_notifications_request_id", "notifications", ["request_id"])

    # ── EmailLog ──────────────────────────────────────────────────────────
    if "email_logs" not in existing:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=150), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("notification_id", sa.Integer(), nullable=True),
            sa.Column("request_id", sa.Integer(), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
        op.create_index("ix_email_logs_request_id", "email_logs", ["request_id"])

    # ── ScheduledJob ──────────────────────────────────────────────────────
    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())
    for table in (
        "scheduled_jobs",
        "email_logs",
        "notifications",
        "clearance_certificates",
        "escalation_history",
        "request_history",
        "clearance_requests",
        "document_types",
        "users",
    ):
        if table in existing:
            op.drop_table(table)
