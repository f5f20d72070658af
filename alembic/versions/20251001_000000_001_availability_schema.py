"""Availability and booking-policy schema.

Revision ID: 001
Revises:
Create Date: 2025-10-01 00:00:00.000000

Adds:
- rooms, practitioners (with default room)
- weekly_schedules, blackout_periods
- appointments, with partial unique indexes on live room and practitioner slots
- system_configuration (single row)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_ROWS = sa.text("state <> 'cancelled'")


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _soft_delete() -> list[sa.Column]:
    return [
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create scheduling tables."""

    # ========================================================================
    # REFERENCE DATA
    # ========================================================================

    op.create_table(
        "rooms",
        _id(),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        *_soft_delete(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_rooms")),
    )
    op.create_index(op.f("ix_rooms_is_deleted"), "rooms", ["is_deleted"])

    op.create_table(
        "practitioners",
        _id(),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("default_room_id", sa.String(36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        *_soft_delete(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_practitioners")),
        sa.ForeignKeyConstraint(
            ["default_room_id"],
            ["rooms.id"],
            name=op.f("fk_practitioners_default_room_id_rooms"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(op.f("ix_practitioners_is_deleted"), "practitioners", ["is_deleted"])

    op.create_table(
        "weekly_schedules",
        _id(),
        sa.Column("practitioner_id", sa.String(36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_until", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_weekly_schedules")),
        sa.ForeignKeyConstraint(
            ["practitioner_id"],
            ["practitioners.id"],
            name=op.f("fk_weekly_schedules_practitioner_id_practitioners"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        op.f("ix_weekly_schedules_practitioner_id"), "weekly_schedules", ["practitioner_id"]
    )

    op.create_table(
        "blackout_periods",
        _id(),
        sa.Column("practitioner_id", sa.String(36), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("annual_recurrence", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_blackout_periods")),
        sa.ForeignKeyConstraint(
            ["practitioner_id"],
            ["practitioners.id"],
            name=op.f("fk_blackout_periods_practitioner_id_practitioners"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        op.f("ix_blackout_periods_practitioner_id"), "blackout_periods", ["practitioner_id"]
    )
    op.create_index(op.f("ix_blackout_periods_start_date"), "blackout_periods", ["start_date"])

    # ========================================================================
    # APPOINTMENTS
    # ========================================================================

    op.create_table(
        "appointments",
        _id(),
        sa.Column("patient_id", sa.String(36), nullable=False),
        sa.Column("practitioner_id", sa.String(36), nullable=False),
        sa.Column("room_id", sa.String(36), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_role", sa.String(20), nullable=True),
        sa.Column("was_no_show", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_appointments")),
        sa.ForeignKeyConstraint(
            ["practitioner_id"],
            ["practitioners.id"],
            name=op.f("fk_appointments_practitioner_id_practitioners"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["room_id"],
            ["rooms.id"],
            name=op.f("fk_appointments_room_id_rooms"),
            ondelete="RESTRICT",
        ),
    )
    op.create_index(op.f("ix_appointments_patient_id"), "appointments", ["patient_id"])
    op.create_index(op.f("ix_appointments_practitioner_id"), "appointments", ["practitioner_id"])
    op.create_index(op.f("ix_appointments_appointment_date"), "appointments", ["appointment_date"])
    op.create_index(op.f("ix_appointments_state"), "appointments", ["state"])

    # The appointment write path relies on these to reject a second live
    # booking of the same slot
    op.create_index(
        "uq_appointments_room_slot",
        "appointments",
        ["room_id", "appointment_date", "start_time"],
        unique=True,
        postgresql_where=LIVE_ROWS,
        sqlite_where=LIVE_ROWS,
    )
    op.create_index(
        "uq_appointments_practitioner_slot",
        "appointments",
        ["practitioner_id", "appointment_date", "start_time"],
        unique=True,
        postgresql_where=LIVE_ROWS,
        sqlite_where=LIVE_ROWS,
    )

    # ========================================================================
    # BOOKING CONFIGURATION
    # ========================================================================

    op.create_table(
        "system_configuration",
        _id(),
        sa.Column("max_active_appointments_per_patient", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("max_appointments_per_patient_per_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("min_lead_hours", sa.Float(), nullable=False, server_default="2"),
        sa.Column("auto_confirm_within_hours", sa.Float(), nullable=False, server_default="24"),
        sa.Column("cooldown_days", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("no_show_cooldown_days", sa.Integer(), nullable=True),
        sa.Column("patient_cancel_cooldown_days", sa.Integer(), nullable=True),
        sa.Column("max_reschedules_per_appointment", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("confirm_from_hours", sa.Float(), nullable=False, server_default="24"),
        sa.Column("confirm_until_hours", sa.Float(), nullable=False, server_default="12"),
        sa.Column("manage_until_hours", sa.Float(), nullable=False, server_default="12"),
        sa.Column("booking_horizon_months", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("daily_cap_period", sa.String(10), nullable=False, server_default="day"),
        sa.Column("contact_phone", sa.String(30), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_system_configuration")),
    )


def downgrade() -> None:
    """Drop scheduling tables."""
    op.drop_table("system_configuration")
    op.drop_index("uq_appointments_practitioner_slot", table_name="appointments")
    op.drop_index("uq_appointments_room_slot", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("blackout_periods")
    op.drop_table("weekly_schedules")
    op.drop_table("practitioners")
    op.drop_table("rooms")
