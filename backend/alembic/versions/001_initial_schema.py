"""Initial schema: availability, group cohorts, bookings, payments, booking events.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_INDIVIDUAL = "session_type = 'individual' AND status <> 'cancelled'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Weekly availability
    op.create_table(
        "tutor_availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tutor_id", sa.String(64), nullable=False),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("available", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("from_time", sa.Time(), nullable=True),
        sa.Column("to_time", sa.Time(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tutor_id", "weekday", name="uq_availability_tutor_weekday"),
        sa.CheckConstraint("weekday BETWEEN 0 AND 6", name="check_availability_weekday"),
    )
    op.create_index("ix_tutor_availability_tutor_id", "tutor_availability", ["tutor_id"])

    # Group cohorts
    op.create_table(
        "group_cohorts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tutor_id", sa.String(64), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("session_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("subject", sa.String(120), nullable=False),
        sa.Column("max_size", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("current_size", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        # ONE COHORT PER SLOT: a second concurrent opener fails here and is
        # reported as a lost race instead of creating a parallel cohort.
        sa.UniqueConstraint("tutor_id", "session_date", "session_time", name="uq_cohort_tutor_slot"),
        sa.CheckConstraint("current_size >= 0", name="check_cohort_size_non_negative"),
        sa.CheckConstraint("current_size <= max_size", name="check_cohort_size_lte_max"),
        sa.CheckConstraint("max_size > 0", name="check_cohort_max_positive"),
    )
    op.create_index("ix_group_cohorts_tutor_id", "group_cohorts", ["tutor_id"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tutor_id", sa.String(64), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("session_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("subject", sa.String(120), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_tutor_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("session_type", sa.String(20), nullable=False, server_default=sa.text("'individual'")),
        sa.Column(
            "group_id",
            sa.String(36),
            sa.ForeignKey("group_cohorts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("recurrence_id", sa.String(36), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("dispute_filed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("dispute_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dispute_outcome", sa.String(20), nullable=True),
        sa.Column("dispute_filed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_bank_account_name", sa.String(255), nullable=True),
        sa.Column("dispute_bank_account_number", sa.String(64), nullable=True),
        sa.Column("dispute_bank_code", sa.String(32), nullable=True),
        sa.Column("was_rescheduled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rescheduled_from_date", sa.Date(), nullable=True),
        sa.Column("rescheduled_from_time", sa.Time(), nullable=True),
        sa.Column("reschedule_note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint("session_type IN ('individual', 'group')", name="check_booking_session_type"),
        sa.CheckConstraint(
            "dispute_outcome IS NULL OR dispute_outcome IN ('refunded', 'rejected')",
            name="check_booking_dispute_outcome",
        ),
        sa.CheckConstraint(
            "NOT dispute_resolved OR (dispute_outcome IS NOT NULL AND dispute_resolved_at IS NOT NULL)",
            name="check_booking_dispute_resolution",
        ),
        sa.CheckConstraint("price > 0", name="check_booking_price_positive"),
        sa.CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_tutor_id", "bookings", ["tutor_id"])
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_group_id", "bookings", ["group_id"])
    op.create_index("ix_bookings_recurrence_id", "bookings", ["recurrence_id"])
    # The conflict checker always reads one tutor's calendar over a few dates
    op.create_index("ix_bookings_tutor_date", "bookings", ["tutor_id", "session_date"])
    # PARTIAL UNIQUE INDEX: at most one active individual booking per tutor slot.
    # Cancelled rows drop out of the index so a freed slot can be booked again.
    op.create_index(
        "uq_bookings_active_individual_slot",
        "bookings",
        ["tutor_id", "session_date", "session_time"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_INDIVIDUAL),
        sqlite_where=sa.text(ACTIVE_INDIVIDUAL),
    )

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("recurrence_id", sa.String(36), nullable=True),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("tutor_id", sa.String(64), nullable=False),
        sa.Column("tx_ref", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'ETB'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("gateway_response", sa.JSON(), nullable=True),
        sa.Column("refund_reference", sa.String(100), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'completed', 'failed')", name="check_payment_status"),
        sa.CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_recurrence_id", "payments", ["recurrence_id"])
    op.create_index("ix_payments_tx_ref", "payments", ["tx_ref"], unique=True)

    # Lifecycle log
    op.create_table(
        "booking_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event", sa.String(40), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_events_booking_id", "booking_events", ["booking_id"])


def downgrade() -> None:
    op.drop_table("booking_events")
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("group_cohorts")
    op.drop_table("tutor_availability")
