"""Pydantic schemas for request/response validation."""

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

__all__ = [
    "SlotRead",
    "DaySlotsResponse",
    "DayBadgeRead",
    "MonthCalendarResponse",
    "CalendarRefreshRequest",
    "CalendarRefreshResponse",
    "BookingEvaluateRequest",
    "BookingDecisionResponse",
    "ViolationRead",
    "ManageDecisionResponse",
    "ErrorResponse",
]
