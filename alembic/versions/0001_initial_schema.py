"""Initial schema: contacts, appointments, reminders, action tokens, jobs, email logs.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "contacts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        _ts("consent_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("email", name="uq_contacts_email"),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "contact_id",
            sa.Uuid(),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.String(length=50), nullable=True),
        sa.Column("reason_other", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        _ts("requested_at"),
        _ts("scheduled_at", nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("confirmation_token", sa.String(length=128), nullable=False),
        sa.Column("cancellation_token", sa.String(length=128), nullable=False),
        _ts("confirmed_at", nullable=True),
        _ts("cancelled_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("confirmation_token", name="uq_appointments_confirmation_token"),
        sa.UniqueConstraint("cancellation_token", name="uq_appointments_cancellation_token"),
        sa.CheckConstraint(
            "confirmation_token <> cancellation_token", name="ck_appointment_tokens_distinct"
        ),
    )
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_scheduled", "appointments", ["status", "scheduled_at"])

    op.create_table(
        "reminders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.Uuid(),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _ts("due_at"),
        sa.Column("provider_ref", sa.String(length=64), nullable=True),
        _ts("sent_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("appointment_id", name="uq_reminders_appointment_id"),
    )

    op.create_table(
        "action_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=20), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        _ts("expires_at"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("used_at", nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("token", name="uq_action_tokens_token"),
    )
    op.create_index("idx_action_tokens_entity", "action_tokens", ["entity_type", "entity_id"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_type", sa.String(length=50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        _ts("run_at"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("started_at", nullable=True),
        _ts("completed_at", nullable=True),
    )
    op.create_index("idx_jobs_pending", "jobs", ["status", "run_at"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.Uuid(),
            sa.ForeignKey("appointments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("job_id", sa.Uuid(), nullable=True),
        sa.Column("email_type", sa.String(length=50), nullable=False),
        sa.Column("recipient_email", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("sent_by", sa.String(length=20), nullable=False, server_default="system"),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("sent_at", nullable=True),
    )
    op.create_index(
        "idx_email_logs_appointment", "email_logs", ["appointment_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_email_logs_appointment", table_name="email_logs")
    op.drop_table("email_logs")
    op.drop_index("idx_jobs_pending", table_name="jobs")
    op.drop_table("jobs")
    op.drop_index("idx_action_tokens_entity", table_name="action_tokens")
    op.drop_table("action_tokens")
    op.drop_table("reminders")
    op.drop_index("idx_appointments_scheduled", table_name="appointments")
    op.drop_index("idx_appointments_status", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("contacts")
