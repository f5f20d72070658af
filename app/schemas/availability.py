"""Availability and booking-policy schemas."""

from datetime import date as date_type
from datetime import datetime
from datetime import time as time_type

from pydantic import BaseModel, Field

from app.availability.models import AppointmentState
from app.booking.policy import CallerRole, ViolationKind


class SlotRead(BaseModel):
    """One offerable start time and the room it is bound to."""

    time: time_type
    room_id: str
    room_label: str
    is_default_room: bool

    model_config = {"from_attributes": True}


class DaySlotsResponse(BaseModel):
    """Free slots for a practitioner on one day."""

    practitioner_id: str
    date: date_type
    computed_at: datetime
    working_day: bool
    blocked: bool
    reason: str | None = None
    slots: list[SlotRead]


class DayBadgeRead(BaseModel):
    """Calendar badge for one day."""

    date: date_type
    booked_count: int
    blocked: bool
    reason: str | None = None

    model_config = {"from_attributes": True}


class MonthCalendarResponse(BaseModel):
    """Badges for every day of a month."""

    year: int
    month: int
    practitioner_id: str | None = None
    room_id: str | None = None
    state: AppointmentState | None = None
    working_weekdays: list[int] | None = None
    days: list[DayBadgeRead]


class CalendarRefreshRequest(BaseModel):
    """Month to evict from the calendar cache."""

    year: int = Field(..., ge=1, le=9999)
    month: int = Field(..., ge=1, le=12)


class CalendarRefreshResponse(BaseModel):
    """Outcome of a calendar refresh."""

    year: int
    month: int
    evicted: int


class BookingEvaluateRequest(BaseModel):
    """Candidate booking to check against the booking rules."""

    patient_id: str = Field(..., min_length=1)
    practitioner_id: str = Field(..., min_length=1)
    date: date_type
    time: time_type
    role: CallerRole = CallerRole.PATIENT
    # Appointment being moved, when this is a reschedule
    replacing_appointment_id: str | None = None


class ViolationRead(BaseModel):
    """A refused rule."""

    kind: ViolationKind
    detail: str
    unlock_date: date_type | None = None

    model_config = {"from_attributes": True}


class BookingDecisionResponse(BaseModel):
    """Admission decision for a candidate booking."""

    admitted: bool
    initial_state: AppointmentState
    reasons: list[ViolationRead]


class ManageDecisionResponse(BaseModel):
    """Decision for an action on an existing appointment."""

    appointment_id: str
    action: str
    allowed: bool
    reasons: list[ViolationRead]


class ErrorResponse(BaseModel):
    """Structured error body."""

    detail: str
    field: str | None = None
    source: str | None = None
    retry: bool = False
