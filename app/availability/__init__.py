"""Appointment availability engine.

Pure computation over read snapshots: weekly schedules become start times,
blackouts mark days, free times are bound to rooms, and months are badged
for the calendar. Nothing here performs I/O.
"""

from app.availability.blackout import BlackoutIndex, occurs_on_annual_range
from app.availability.calendar import LunchWindow, base_slots, working_weekdays
from app.availability.errors import (
    AvailabilityError,
    AvailabilityUnknownError,
    InvalidInputError,
    UnknownEntityError,
)
from app.availability.monthly import MonthKey, MonthSummaryCache, aggregate
from app.availability.slots import SlotResolver, occupied_times, order_rooms

__all__ = [
    "AvailabilityError",
    "AvailabilityUnknownError",
    "InvalidInputError",
    "UnknownEntityError",
    "LunchWindow",
    "base_slots",
    "working_weekdays",
    "BlackoutIndex",
    "occurs_on_annual_range",
    "SlotResolver",
    "occupied_times",
    "order_rooms",
    "MonthKey",
    "MonthSummaryCache",
    "aggregate",
]
