"""Scheduling reference data and appointment records.

Practitioners, rooms, weekly schedules, blackout periods and the booking
configuration are owned by the clinic's admin screens; the availability
engine only reads them. Appointments are written by the appointment API,
which relies on the partial unique indexes below to serialize concurrent
bookings of the same slot.
"""

from datetime import date, datetime, time

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.availability.models import AppointmentState, CancelledByRole, DailyCapPeriod
from app.db.base import Base, SoftDeleteMixin, TimestampMixin


class Room(Base, TimestampMixin, SoftDeleteMixin):
    """A treatment room (dental chair)."""

    __tablename__ = "rooms"

    label: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    number: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    # Inactive rooms are never offered
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Room {self.label}>"


class Practitioner(Base, TimestampMixin, SoftDeleteMixin):
    """A dentist who takes appointments."""

    __tablename__ = "practitioners"

    display_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    # Room tried first when assigning slots
    default_room_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("rooms.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    default_room: Mapped["Room | None"] = relationship("Room")
    weekly_schedules: Mapped[list["WeeklySchedule"]] = relationship(
        "WeeklySchedule",
        back_populates="practitioner",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Practitioner {self.display_name}>"


class WeeklySchedule(Base, TimestampMixin):
    """Recurring weekly working interval of a practitioner."""

    __tablename__ = "weekly_schedules"

    practitioner_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("practitioners.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 0 = Monday .. 6 = Sunday
    day_of_week: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    end_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    # Effective date range (for temporary schedule changes)
    effective_from: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )
    effective_until: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    # Relationships
    practitioner: Mapped["Practitioner"] = relationship(
        "Practitioner",
        back_populates="weekly_schedules",
    )

    def __repr__(self) -> str:
        return f"<WeeklySchedule {self.day_of_week} {self.start_time}-{self.end_time}>"


class BlackoutPeriod(Base, TimestampMixin):
    """Days on which nothing can be booked.

    A null practitioner means the block applies to the whole clinic.
    """

    __tablename__ = "blackout_periods"

    practitioner_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("practitioners.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    # Only month and day are matched, every year
    annual_recurrence: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        scope = self.practitioner_id or "global"
        return f"<BlackoutPeriod {scope} {self.start_date}..{self.end_date}>"


class Appointment(Base, TimestampMixin):
    """A booked appointment between a patient and a practitioner."""

    __tablename__ = "appointments"
    __table_args__ = (
        # At most one live booking per room slot and per practitioner slot
        Index(
            "uq_appointments_room_slot",
            "room_id",
            "appointment_date",
            "start_time",
            unique=True,
            postgresql_where=text("state <> 'cancelled'"),
            sqlite_where=text("state <> 'cancelled'"),
        ),
        Index(
            "uq_appointments_practitioner_slot",
            "practitioner_id",
            "appointment_date",
            "start_time",
            unique=True,
            postgresql_where=text("state <> 'cancelled'"),
            sqlite_where=text("state <> 'cancelled'"),
        ),
    )

    # Patients live in the registration service
    patient_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )
    practitioner_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("practitioners.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    room_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
    )
    appointment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    state: Mapped[AppointmentState] = mapped_column(
        String(20),
        default=AppointmentState.PENDING,
        nullable=False,
        index=True,
    )
    reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    # Reschedule tracking
    reschedule_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    # Cancellation tracking
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_by_role: Mapped[CancelledByRole | None] = mapped_column(
        String(20),
        nullable=True,
    )
    was_no_show: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.id[:8]}... {self.appointment_date} {self.start_time} state={self.state}>"


class SystemConfiguration(Base, TimestampMixin):
    """Clinic-wide booking configuration (single row)."""

    __tablename__ = "system_configuration"

    max_active_appointments_per_patient: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    max_appointments_per_patient_per_day: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    min_lead_hours: Mapped[float] = mapped_column(Float, default=2, nullable=False)
    auto_confirm_within_hours: Mapped[float] = mapped_column(Float, default=24, nullable=False)
    cooldown_days: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    no_show_cooldown_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    patient_cancel_cooldown_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_reschedules_per_appointment: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    confirm_from_hours: Mapped[float] = mapped_column(Float, default=24, nullable=False)
    confirm_until_hours: Mapped[float] = mapped_column(Float, default=12, nullable=False)
    manage_until_hours: Mapped[float] = mapped_column(Float, default=12, nullable=False)
    booking_horizon_months: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    daily_cap_period: Mapped[DailyCapPeriod] = mapped_column(
        String(10),
        default=DailyCapPeriod.DAY,
        nullable=False,
    )
    # Clinic contact shown when an action must go through the front desk
    contact_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<SystemConfiguration {self.id[:8]}...>"
