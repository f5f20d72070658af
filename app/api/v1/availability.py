"""Availability API endpoints.

Read-only: slots for a day, calendar badges for a month, and booking-policy
decisions. Nothing here creates or changes an appointment.
"""

from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import Availability
from app.availability.models import AppointmentState
from app.booking.policy import CallerRole
from app.schemas.availability import (
    BookingDecisionResponse,
    BookingEvaluateRequest,
    CalendarRefreshRequest,
    CalendarRefreshResponse,
    DayBadgeRead,
    DaySlotsResponse,
    ErrorResponse,
    ManageDecisionResponse,
    MonthCalendarResponse,
    SlotRead,
    ViolationRead,
)
from app.services.availability import ManageAction

router = APIRouter()

ERROR_RESPONSES = {
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


@router.get(
    "/practitioners/{practitioner_id}/slots",
    response_model=DaySlotsResponse,
    responses=ERROR_RESPONSES,
)
async def get_practitioner_slots(
    practitioner_id: str,
    service: Availability,
    day: date = Query(..., alias="date"),
) -> DaySlotsResponse:
    """Free start times for a practitioner on one day, each bound to a room."""
    result = await service.get_day_slots(practitioner_id, day)

    return DaySlotsResponse(
        practitioner_id=result.practitioner_id,
        date=result.date,
        computed_at=result.computed_at,
        working_day=result.working_day,
        blocked=result.blocked,
        reason=result.reason,
        slots=[SlotRead.model_validate(s) for s in result.slots],
    )


@router.get(
    "/calendar",
    response_model=MonthCalendarResponse,
    responses=ERROR_RESPONSES,
)
async def get_month_calendar(
    service: Availability,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    practitioner_id: str | None = None,
    room_id: str | None = None,
    state: AppointmentState | None = None,
) -> MonthCalendarResponse:
    """Booking counts and blocked days for every day of a month."""
    badges = await service.get_month_badges(
        year,
        month,
        practitioner_id=practitioner_id,
        room_id=room_id,
        state=state,
    )

    weekdays = None
    if practitioner_id:
        working = await service.get_working_weekdays(practitioner_id, date(year, month, 1))
        weekdays = sorted(working)

    return MonthCalendarResponse(
        year=year,
        month=month,
        practitioner_id=practitioner_id,
        room_id=room_id,
        state=state,
        working_weekdays=weekdays,
        days=[DayBadgeRead.model_validate(badges[d]) for d in sorted(badges)],
    )


@router.post(
    "/calendar/refresh",
    response_model=CalendarRefreshResponse,
)
async def refresh_month_calendar(
    request: CalendarRefreshRequest,
    service: Availability,
) -> CalendarRefreshResponse:
    """Drop cached badges for a month after a booking or blackout change."""
    evicted = service.invalidate_month(request.year, request.month)
    return CalendarRefreshResponse(year=request.year, month=request.month, evicted=evicted)


@router.post(
    "/booking/evaluate",
    response_model=BookingDecisionResponse,
    responses=ERROR_RESPONSES,
)
async def evaluate_booking(
    request: BookingEvaluateRequest,
    service: Availability,
) -> BookingDecisionResponse:
    """Check a candidate booking against every booking rule.

    A refused booking is a normal 200 response listing each violated rule.
    """
    decision = await service.evaluate_booking(
        patient_id=request.patient_id,
        practitioner_id=request.practitioner_id,
        day=request.date,
        start=request.time,
        role=request.role,
        replacing=request.replacing_appointment_id,
    )

    return BookingDecisionResponse(
        admitted=decision.admitted,
        initial_state=decision.initial_state,
        reasons=[ViolationRead.model_validate(r) for r in decision.reasons],
    )


@router.post(
    "/appointments/{appointment_id}/evaluate",
    response_model=ManageDecisionResponse,
    responses=ERROR_RESPONSES,
)
async def evaluate_appointment_action(
    appointment_id: str,
    service: Availability,
    action: ManageAction = Query(...),
    patient_id: str = Query(..., min_length=1),
    role: CallerRole = CallerRole.PATIENT,
) -> ManageDecisionResponse:
    """Check whether an appointment may be rescheduled, cancelled or confirmed."""
    decision = await service.evaluate_manage(
        patient_id=patient_id,
        appointment_id=appointment_id,
        action=action,
        role=role,
    )

    return ManageDecisionResponse(
        appointment_id=appointment_id,
        action=action.value,
        allowed=decision.allowed,
        reasons=[ViolationRead.model_validate(r) for r in decision.reasons],
    )
