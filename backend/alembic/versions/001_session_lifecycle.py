# backend/alembic/versions/001_session_lifecycle.py
"""Session lifecycle - users, availability, sessions, materials, outbox

Revision ID: 001_session_lifecycle
Revises:
Create Date: 2025-01-06 00:00:00.000000

Creates the tables behind tutoring session scheduling: the user directory
with weekly tutor availability, tutoring sessions with their materials, and
the transactional outbox with its per-recipient delivery log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_session_lifecycle"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_type() -> sa.types.TypeEngine:
    return postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    """Create session lifecycle tables."""
    print("Creating session lifecycle tables...")
    is_postgres = op.get_bind().dialect.name == "postgresql"

    op.create_table(
        "users",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        # Lesson stats
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hours_learning", sa.Float(), nullable=False, server_default="0"),
        sa.Column("hours_teaching", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role IN ('student', 'tutor', 'both', 'admin')", name="ck_users_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "tutor_availability",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("tutor_id", sa.String(26), nullable=False),
        sa.Column("day_of_week", sa.String(10), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tutor_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "day_of_week IN ('monday', 'tuesday', 'wednesday', 'thursday', "
            "'friday', 'saturday', 'sunday')",
            name="ck_tutor_availability_day",
        ),
    )
    op.create_index(
        "idx_tutor_availability_tutor_day", "tutor_availability", ["tutor_id", "day_of_week"]
    )
    if is_postgres:
        # end_time 00:00 means end of day
        op.create_check_constraint(
            "ck_tutor_availability_order",
            "tutor_availability",
            "CASE WHEN end_time = '00:00:00' AND start_time <> '00:00:00' THEN TRUE "
            "ELSE start_time < end_time END",
        )

    op.create_table(
        "tutoring_sessions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("student_id", sa.String(26), nullable=False),
        sa.Column("tutor_id", sa.String(26), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        # Delivery and location
        sa.Column("delivery_type", sa.String(10), nullable=False),
        sa.Column("location_details", sa.Text(), nullable=True),
        sa.Column("meeting_link", sa.String(500), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        # Notes
        sa.Column("student_note", sa.Text(), nullable=True),
        sa.Column("tutor_note", sa.Text(), nullable=True),
        sa.Column("admin_note", sa.Text(), nullable=True),
        # Reminder
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        # Recurrence
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurrence_frequency", sa.String(10), nullable=True),
        sa.Column("recurrence_end_date", sa.Date(), nullable=True),
        sa.Column("parent_session_id", sa.String(26), nullable=True),
        # Cancellation
        sa.Column("cancelled_by_id", sa.String(26), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["tutor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["parent_session_id"], ["tutoring_sessions.id"]),
        sa.CheckConstraint("scheduled_start < scheduled_end", name="ck_sessions_window_order"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'ongoing', 'completed', 'cancelled', 'no-show')",
            name="ck_sessions_status",
        ),
        sa.CheckConstraint(
            "delivery_type IN ('online', 'offline')", name="ck_sessions_delivery_type"
        ),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_sessions_price_non_negative"),
        sa.CheckConstraint(
            "recurrence_frequency IS NULL OR "
            "recurrence_frequency IN ('weekly', 'biweekly', 'monthly')",
            name="ck_sessions_recurrence_frequency",
        ),
    )
    op.create_index("ix_tutoring_sessions_id", "tutoring_sessions", ["id"])
    op.create_index("ix_tutoring_sessions_status", "tutoring_sessions", ["status"])
    op.create_index(
        "idx_sessions_student_start", "tutoring_sessions", ["student_id", "scheduled_start"]
    )
    op.create_index("idx_sessions_tutor_start", "tutoring_sessions", ["tutor_id", "scheduled_start"])
    op.create_index("idx_sessions_status_start", "tutoring_sessions", ["status", "scheduled_start"])
    op.create_index(
        "idx_sessions_window", "tutoring_sessions", ["scheduled_start", "scheduled_end"]
    )
    op.create_index("idx_sessions_parent", "tutoring_sessions", ["parent_session_id"])

    op.create_table(
        "session_materials",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("session_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("material_type", sa.String(20), nullable=False, server_default="other"),
        sa.Column("uploaded_by_id", sa.String(26), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["session_id"], ["tutoring_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"]),
        sa.CheckConstraint(
            "material_type IN ('document', 'image', 'video', 'link', 'other')",
            name="ck_session_materials_type",
        ),
    )
    op.create_index("idx_session_materials_session", "session_materials", ["session_id"])

    op.create_table(
        "event_outbox",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("payload", _json_type(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),
    )
    op.create_index("ix_event_outbox_event_type", "event_outbox", ["event_type"])
    op.create_index("ix_event_outbox_aggregate_id", "event_outbox", ["aggregate_id"])
    op.create_index("ix_event_outbox_status", "event_outbox", ["status"])
    op.create_index("ix_event_outbox_next_attempt_at", "event_outbox", ["next_attempt_at"])

    op.create_table(
        "notification_delivery",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("recipient_id", sa.String(26), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("payload", _json_type(), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_notification_delivery_idempotency"),
    )
    op.create_index(
        "ix_notification_delivery_event_type", "notification_delivery", ["event_type"]
    )
    op.create_index(
        "ix_notification_delivery_recipient_id", "notification_delivery", ["recipient_id"]
    )

    print("Session lifecycle tables created")


def downgrade() -> None:
    """Drop session lifecycle tables."""
    print("Dropping session lifecycle tables...")
    op.drop_table("notification_delivery")
    op.drop_table("event_outbox")
    op.drop_table("session_materials")
    op.drop_table("tutoring_sessions")
    op.drop_table("tutor_availability")
    op.drop_table("users")
