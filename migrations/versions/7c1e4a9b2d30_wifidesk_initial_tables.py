"""wifidesk_initial_tables

Creates the WifiDesk tables:
  - wifi_requests        — guest requests keyed by tracking ID
  - request_comments     — append-only comment trail per request
  - escalation_settings  — recipients + pending / in-progress thresholds
  - scheduled_jobs       — background job registry and run history
  - email_logs           — outbound escalation email audit

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-19 09:12:44.518203
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e4a9b2d30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── WifiRequest ───────────────────────────────────────────────────────
    if "wifi_requests" not in existing:
        op.create_table(
            "wifi_requests",
            sa.Column("id", sa.String(length=64), nullable=False, comment="Tracking ID"),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("room_number", sa.String(length=50), nullable=False),
            sa.Column(
                "device_type", sa.String(length=20), nullable=False,
                comment="smartphone | laptop | tablet | other",
            ),
            sa.Column(
                "issue_type", sa.String(length=20), nullable=False,
                comment="connect | slow | disconnect | login | other",
            ),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="pending",
                comment="pending | in-progress | completed | escalated",
            ),
            sa.Column(
                "was_escalated", sa.Boolean(), nullable=False,
                server_default=sa.false(),
                comment="True once the request has ever been escalated",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_wifi_requests_status", "wifi_requests", ["status"])
        op.create_index("ix_wifi_requests_status_created", "wifi_requests", ["status", "created_at"])
        op.create_index("ix_wifi_requests_status_updated", "wifi_requests", ["status", "updated_at"])

    # ── RequestComment ────────────────────────────────────────────────────
    if "request_comments" not in existing:
        op.create_table(
            "request_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_id", sa.String(length=64), nullable=False),
            sa.Column("user_name", sa.String(length=150), nullable=False),
            sa.Column("comment_text", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["wifi_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_request_comments_request_id", "request_comments", ["request_id"])

    # ── EscalationSettings ────────────────────────────────────────────────
    if "escalation_settings" not in existing:
        op.create_table(
            "escalation_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("emails", sa.JSON(), nullable=True,
                      comment="Ordered list of recipient email addresses"),
            sa.Column("pending_threshold", sa.Integer(), nullable=True,
                      comment="Minutes a request may stay pending"),
            sa.Column("progress_threshold", sa.Integer(), nullable=True,
                      comment="Minutes a request may stay in-progress"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

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

    # ── EmailLog ──────────────────────────────────────────────────────────
    if "email_logs" not in existing:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True,
                      comment="queued, sent, failed, skipped"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
        op.create_index("ix_email_logs_request_id", "email_logs", ["request_id"])


def downgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    for table in ("email_logs", "scheduled_jobs", "escalation_settings",
                  "request_comments", "wifi_requests"):
        if table in existing:
            op.drop_table(table)
