"""Domain data model for availability and booking decisions.

These are read snapshots handed to the engine. The engine never mutates
them and never persists anything.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum

from app.availability.errors import InvalidInputError


class AppointmentState(str, Enum):
    """Lifecycle state of an appointment."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REALIZED = "realized"
    CANCELLED = "cancelled"


# States that hold a patient's place in the agenda
ACTIVE_STATES = frozenset({AppointmentState.PENDING, AppointmentState.CONFIRMED})

# States counted on calendar badges
COUNTED_STATES = frozenset({
    AppointmentState.PENDING,
    AppointmentState.CONFIRMED,
    AppointmentState.REALIZED,
})


class BlackoutScope(str, Enum):
    """Whether a blackout applies to the whole clinic or one practitioner."""

    GLOBAL = "global"
    PRACTITIONER = "practitioner"


class CancelledByRole(str, Enum):
    """Who cancelled an appointment."""

    PATIENT = "patient"
    PRACTITIONER = "practitioner"
    ADMIN = "admin"


class DailyCapPeriod(str, Enum):
    """Window over which the per-patient appointment cap is counted."""

    DAY = "day"
    WEEK = "week"


@dataclass(frozen=True)
class WeeklyScheduleEntry:
    """One recurring working interval of a practitioner.

    Attributes:
        weekday: 0 (Monday) .. 6 (Sunday)
        start_minute: Minutes since midnight, inclusive
        end_minute: Minutes since midnight, exclusive
        active: Inactive entries are ignored
    """

    weekday: int
    start_minute: int
    end_minute: int
    active: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.weekday <= 6:
            raise InvalidInputError(f"weekday must be 0..6, got {self.weekday}", field="weekday")
        if not 0 <= self.start_minute < 24 * 60 or not 0 < self.end_minute <= 24 * 60:
            raise InvalidInputError("schedule minutes must fall within one day", field="start_minute")
        if self.end_minute <= self.start_minute:
            raise InvalidInputError(
                f"schedule entry ends ({self.end_minute}) before it starts ({self.start_minute})",
                field="end_minute",
            )


@dataclass(frozen=True)
class BlackoutRule:
    """A date range during which no appointments may be booked.

    With ``annual_recurrence`` only the month-day part of the bounds is used,
    and a start later in the year than the end wraps around year-end.
    """

    scope: BlackoutScope
    start_date: date
    end_date: date
    annual_recurrence: bool = False
    reason: str | None = None
    practitioner_id: str | None = None

    def __post_init__(self) -> None:
        if self.scope == BlackoutScope.PRACTITIONER and not self.practitioner_id:
            raise InvalidInputError(
                "practitioner blackout requires a practitioner_id", field="practitioner_id"
            )
        if not self.annual_recurrence and self.end_date < self.start_date:
            raise InvalidInputError("blackout ends before it starts", field="end_date")


@dataclass(frozen=True)
class Room:
    """A physical room (dental chair)."""

    id: str
    label: str
    active: bool = True


@dataclass(frozen=True)
class ExistingBooking:
    """An appointment already in the agenda."""

    date: date
    time: time
    practitioner_id: str
    room_id: str
    state: AppointmentState
    patient_id: str | None = None


@dataclass(frozen=True)
class PatientAppointment:
    """One of a patient's own appointments, as seen by the booking rules."""

    appointment_id: str
    practitioner_id: str
    date: date
    time: time
    state: AppointmentState
    room_id: str | None = None
    reschedule_count: int = 0

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.time)


@dataclass(frozen=True)
class Cancellation:
    """A cancelled appointment in a patient's recent history."""

    practitioner_id: str
    cancelled_at: datetime | None
    was_no_show: bool = False
    cancelled_by_role: CancelledByRole | None = None
    appointment_date: date | None = None
    appointment_time: time | None = None


@dataclass
class PatientBookingHistory:
    """Read snapshot of a patient's appointments and recent cancellations."""

    patient_id: str
    appointments: list[PatientAppointment] = field(default_factory=list)
    cancellations: list[Cancellation] = field(default_factory=list)

    @property
    def active_appointments(self) -> list[PatientAppointment]:
        """Pending and confirmed appointments."""
        return [a for a in self.appointments if a.state in ACTIVE_STATES]

    def find(self, appointment_id: str) -> PatientAppointment | None:
        for appointment in self.appointments:
            if appointment.appointment_id == appointment_id:
                return appointment
        return None


@dataclass(frozen=True)
class SystemConfig:
    """Clinic-wide booking configuration.

    Attributes:
        max_active_appointments_per_patient: Cap on pending+confirmed appointments
        max_appointments_per_patient_per_day: Cap per day (or week, see daily_cap_period)
        min_lead_hours: Minimum hours between now and the appointment start
        auto_confirm_within_hours: Bookings closer than this start confirmed
        cooldown_days: Wait after a cancellation before rebooking the same practitioner
        max_reschedules_per_appointment: Reschedules allowed per appointment
        confirm_from_hours: Patient confirmation opens this many hours before
        confirm_until_hours: Patient confirmation closes this many hours before
        manage_until_hours: Reschedule/cancel close this many hours before
        booking_horizon_months: How far ahead a booking may be placed
        daily_cap_period: Count the per-patient cap by day or by ISO week
        no_show_cooldown_days: Longer cooldown after a no-show (None = cooldown_days)
        patient_cancel_cooldown_days: Longer cooldown after a patient cancellation
    """

    max_active_appointments_per_patient: int = 3
    max_appointments_per_patient_per_day: int = 1
    min_lead_hours: float = 2
    auto_confirm_within_hours: float = 24
    cooldown_days: int = 3
    max_reschedules_per_appointment: int = 1
    confirm_from_hours: float = 24
    confirm_until_hours: float = 12
    manage_until_hours: float = 12
    booking_horizon_months: int = 3
    daily_cap_period: DailyCapPeriod = DailyCapPeriod.DAY
    no_show_cooldown_days: int | None = None
    patient_cancel_cooldown_days: int | None = None

    def cooldown_for(self, cancellation: Cancellation) -> int:
        """Cooldown length in days for one cancellation."""
        days = self.cooldown_days
        if cancellation.was_no_show and self.no_show_cooldown_days is not None:
            days = max(days, self.no_show_cooldown_days)
        if (
            cancellation.cancelled_by_role == CancelledByRole.PATIENT
            and self.patient_cancel_cooldown_days is not None
        ):
            days = max(days, self.patient_cancel_cooldown_days)
        return days


@dataclass(frozen=True)
class BlockInfo:
    """Answer to "is this day blocked, and why"."""

    blocked: bool
    reason: str | None = None
    scope: BlackoutScope | None = None


NOT_BLOCKED = BlockInfo(blocked=False)


@dataclass(frozen=True)
class DayBadge:
    """Calendar badge for one day. Derived, never persisted."""

    date: date
    booked_count: int
    blocked: bool
    reason: str | None = None


@dataclass(frozen=True)
class SlotOption:
    """A bookable start time bound to exactly one room."""

    time: time
    room_id: str
    room_label: str
    is_default_room: bool


@dataclass(frozen=True)
class PractitionerProfile:
    """The parts of a practitioner the engine needs."""

    id: str
    display_name: str
    default_room_id: str | None = None
    active: bool = True
