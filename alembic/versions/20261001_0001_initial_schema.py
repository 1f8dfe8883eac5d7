"""Initial schema

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261001_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("mentee", "mentor", "admin", name="role_enum", native_enum=False)
session_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "pending_reschedule",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
    name="session_status_enum",
    native_enum=False,
)
meeting_status_enum = sa.Enum("pending", "ready", "unavailable", name="meeting_status_enum", native_enum=False)
recording_status_enum = sa.Enum("not_ready", "ready", "failed", name="recording_status_enum", native_enum=False)
reschedule_status_enum = sa.Enum("pending", "approved", "rejected", name="reschedule_status_enum", native_enum=False)
payment_gateway_enum = sa.Enum("stripe", "paymob", name="payment_gateway_enum", native_enum=False)
payment_status_enum = sa.Enum(
    "pending",
    "authorized",
    "captured",
    "refunded",
    "failed",
    name="payment_status_enum",
    native_enum=False,
)
refund_status_enum = sa.Enum(
    "not_required",
    "pending",
    "completed",
    "failed",
    name="refund_status_enum",
    native_enum=False,
)
job_kind_enum = sa.Enum(
    "create_meeting",
    "send_join_link",
    "auto_terminate",
    "no_show_check",
    "release_payment_hold",
    "review_request",
    "release_unpaid_session",
    "reschedule_expiry",
    "recording_ingestion",
    name="job_kind_enum",
    native_enum=False,
)
job_status_enum = sa.Enum("pending", "done", "failed", "cancelled", name="job_status_enum", native_enum=False)
recording_stage_enum = sa.Enum(
    "received",
    "stored",
    "transcribed",
    "completed",
    "failed",
    name="recording_stage_enum",
    native_enum=False,
)
notification_status_enum = sa.Enum("pending", "sent", "failed", name="notification_status_enum", native_enum=False)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "roles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("name", role_enum, nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "users",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "mentor_profiles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=False),
        sa.Column("rate_30_min", sa.Numeric(10, 2), nullable=False),
        sa.Column("rate_60_min", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_approved", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_mentor_profiles_user_id_users",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_mentor_profiles_user_id"),
    )

    # time_slots.session_id and sessions.time_slot_id reference each other;
    # the slot side foreign key is added once both tables exist.
    op.create_table(
        "time_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(["mentor_id"], ["users.id"], name="fk_time_slots_mentor_id_users", ondelete="CASCADE"),
        sa.CheckConstraint("duration_minutes in (30, 60)", name="ck_time_slots_duration_minutes_allowed"),
        sa.CheckConstraint(
            "(is_booked = false and session_id is null) or is_booked = true",
            name="ck_time_slots_unbooked_without_session",
        ),
    )
    op.create_index("ix_time_slots_mentor_id", "time_slots", ["mentor_id"], unique=False)
    op.create_index("ix_time_slots_start_at", "time_slots", ["start_at"], unique=False)
    op.create_index("ix_time_slots_is_booked", "time_slots", ["is_booked"], unique=False)

    op.create_table(
        "sessions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("mentee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("mentor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("time_slot_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("topic", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("scheduled_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("meeting_id", sa.String(length=64), nullable=True),
        sa.Column("join_url", sa.String(length=1024), nullable=True),
        sa.Column("host_url", sa.String(length=2048), nullable=True),
        sa.Column("meeting_password", sa.String(length=64), nullable=True),
        sa.Column("meeting_status", meeting_status_enum, nullable=False),
        sa.Column("recording_status", recording_status_enum, nullable=False),
        sa.Column("recording_storage_key", sa.String(length=512), nullable=True),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("join_link_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["mentee_id"], ["users.id"], name="fk_sessions_mentee_id_users", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["mentor_id"], ["users.id"], name="fk_sessions_mentor_id_users", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["time_slot_id"],
            ["time_slots.id"],
            name="fk_sessions_time_slot_id_time_slots",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["cancelled_by_id"],
            ["users.id"],
            name="fk_sessions_cancelled_by_id_users",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint("meeting_id", name="uq_sessions_meeting_id"),
    )
    op.create_index("ix_sessions_mentee_id", "sessions", ["mentee_id"], unique=False)
    op.create_index("ix_sessions_mentor_id", "sessions", ["mentor_id"], unique=False)
    op.create_index("ix_sessions_time_slot_id", "sessions", ["time_slot_id"], unique=False)
    op.create_index("ix_sessions_scheduled_start_at", "sessions", ["scheduled_start_at"], unique=False)
    op.create_index("ix_sessions_status", "sessions", ["status"], unique=False)
    op.create_index(
        "uq_sessions_live_time_slot_id",
        "sessions",
        ["time_slot_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_foreign_key(
        "fk_time_slots_session_id_sessions",
        "time_slots",
        "sessions",
        ["session_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "reschedule_requests",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requested_by_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("original_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("proposed_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", reschedule_status_enum, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_note", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["sessions.id"],
            name="fk_reschedule_requests_session_id_sessions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["requested_by_id"],
            ["users.id"],
            name="fk_reschedule_requests_requested_by_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["resolved_by_id"],
            ["users.id"],
            name="fk_reschedule_requests_resolved_by_id_users",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_reschedule_requests_session_id", "reschedule_requests", ["session_id"], unique=False)
    op.create_index("ix_reschedule_requests_status", "reschedule_requests", ["status"], unique=False)
    op.create_index(
        "uq_reschedule_requests_pending_session_id",
        "reschedule_requests",
        ["session_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "payments",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("gateway", payment_gateway_enum, nullable=False),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=False),
        sa.Column("client_secret", sa.String(length=512), nullable=True),
        sa.Column("checkout_url", sa.String(length=2048), nullable=True),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("captured_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("commission_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("payout_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("refund_percentage", sa.Integer(), nullable=True),
        sa.Column("refund_status", refund_status_enum, nullable=False),
        sa.Column("refund_reference", sa.String(length=255), nullable=True),
        sa.Column("refund_error", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("release_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["sessions.id"],
            name="fk_payments_session_id_sessions",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("session_id", name="uq_payments_session_id"),
        sa.UniqueConstraint("payment_intent_id", name="uq_payments_payment_intent_id"),
    )
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)

    op.create_table(
        "scheduled_jobs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", job_kind_enum, nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", job_status_enum, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["sessions.id"],
            name="fk_scheduled_jobs_session_id_sessions",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("session_id", "kind", name="uq_scheduled_jobs_session_id_kind"),
    )
    op.create_index("ix_scheduled_jobs_session_id", "scheduled_jobs", ["session_id"], unique=False)
    op.create_index("ix_scheduled_jobs_run_at", "scheduled_jobs", ["run_at"], unique=False)
    op.create_index("ix_scheduled_jobs_status", "scheduled_jobs", ["status"], unique=False)

    op.create_table(
        "recording_ingestions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("meeting_id", sa.String(length=64), nullable=False),
        sa.Column("event_id", sa.String(length=128), nullable=True),
        sa.Column("download_url", sa.String(length=2048), nullable=False),
        sa.Column("download_token", sa.Text(), nullable=True),
        sa.Column("file_type", sa.String(length=16), nullable=False),
        sa.Column("stage", recording_stage_enum, nullable=False),
        sa.Column("storage_key", sa.String(length=512), nullable=True),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["sessions.id"],
            name="fk_recording_ingestions_session_id_sessions",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("session_id", name="uq_recording_ingestions_session_id"),
        sa.UniqueConstraint("meeting_id", name="uq_recording_ingestions_meeting_id"),
    )

    op.create_table(
        "notifications",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", notification_status_enum, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_notifications_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["session_id"], ["sessions.id"], name="fk_notifications_session_id_sessions", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_session_id", "notifications", ["session_id"], unique=False)
    op.create_index("ix_notifications_status", "notifications", ["status"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], name="fk_audit_logs_actor_id_users", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["session_id"], ["sessions.id"], name="fk_audit_logs_session_id_sessions", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_audit_logs_session_id", "audit_logs", ["session_id"], unique=False)
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=64), nullable=False),
        sa.Column("aggregate_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)
    op.create_index("ix_outbox_events_available_at", "outbox_events", ["available_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_outbox_events_available_at", table_name="outbox_events")
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_session_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_notifications_status", table_name="notifications")
    op.drop_index("ix_notifications_session_id", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_table("recording_ingestions")

    op.drop_index("ix_scheduled_jobs_status", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_run_at", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_session_id", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")

    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_table("payments")

    op.drop_index("uq_reschedule_requests_pending_session_id", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_status", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_session_id", table_name="reschedule_requests")
    op.drop_table("reschedule_requests")

    op.drop_constraint("fk_time_slots_session_id_sessions", "time_slots", type_="foreignkey")

    op.drop_index("uq_sessions_live_time_slot_id", table_name="sessions")
    op.drop_index("ix_sessions_status", table_name="sessions")
    op.drop_index("ix_sessions_scheduled_start_at", table_name="sessions")
    op.drop_index("ix_sessions_time_slot_id", table_name="sessions")
    op.drop_index("ix_sessions_mentor_id", table_name="sessions")
    op.drop_index("ix_sessions_mentee_id", table_name="sessions")
    op.drop_table("sessions")

    op.drop_index("ix_time_slots_is_booked", table_name="time_slots")
    op.drop_index("ix_time_slots_start_at", table_name="time_slots")
    op.drop_index("ix_time_slots_mentor_id", table_name="time_slots")
    op.drop_table("time_slots")

    op.drop_table("mentor_profiles")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.drop_table("roles")
