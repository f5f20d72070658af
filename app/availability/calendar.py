"""Weekly schedule to concrete start times.

Pure functions: a practitioner's recurring weekly schedule becomes the list
of slot start times for one calendar day, minus the midday exclusion window.
Anything relative to "now" takes ``now`` explicitly.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable

from app.availability.errors import InvalidInputError
from app.availability.models import WeeklyScheduleEntry
from app.utils.time import time_from_minutes


@dataclass(frozen=True)
class LunchWindow:
    """Hours during which no slot may start. ``end_hour`` is exclusive."""

    start_hour: int = 13
    end_hour: int = 15

    def contains(self, t: time) -> bool:
        return self.start_hour <= t.hour < self.end_hour


DEFAULT_LUNCH_WINDOW = LunchWindow()


def entries_for_weekday(
    weekly_schedule: Iterable[WeeklyScheduleEntry],
    weekday: int,
) -> list[WeeklyScheduleEntry]:
    """Active schedule entries for a weekday (Monday = 0)."""
    return [e for e in weekly_schedule if e.active and e.weekday == weekday]


def working_weekdays(weekly_schedule: Iterable[WeeklyScheduleEntry]) -> frozenset[int]:
    """Weekdays with at least one active entry."""
    return frozenset(e.weekday for e in weekly_schedule if e.active)


def lead_cutoff_minute(now: datetime, min_lead_hours: float, slot_duration_minutes: int) -> int:
    """First minute of ``now``'s day at which a slot may still start.

    ``now + min_lead_hours`` is rounded up to the next slot boundary, so a
    partially elapsed slot is never offered.
    """
    minutes_now = now.hour * 60 + now.minute
    earliest = minutes_now + min_lead_hours * 60
    return math.ceil(earliest / slot_duration_minutes) * slot_duration_minutes


def base_slots(
    day: date,
    weekly_schedule: Iterable[WeeklyScheduleEntry],
    slot_duration_minutes: int = 60,
    lunch_window: LunchWindow = DEFAULT_LUNCH_WINDOW,
    *,
    now: datetime | None = None,
    min_lead_hours: float = 0,
) -> list[time]:
    """Bookable start times for ``day`` according to the weekly schedule.

    Every active entry for the weekday is walked in ``slot_duration_minutes``
    steps; a step is emitted only if the whole slot fits inside the entry and
    its hour is outside ``lunch_window``. When ``day`` is ``now``'s date,
    starts earlier than the lead-time cutoff are dropped, so results for
    today are only valid for the instant they were computed.

    Args:
        day: Calendar day to expand
        weekly_schedule: Practitioner's recurring entries
        slot_duration_minutes: Length of one slot
        lunch_window: Midday exclusion window
        now: Clinic-local current time; None skips lead-time trimming
        min_lead_hours: Minimum notice applied to today's slots

    Returns:
        Ascending, de-duplicated start times
    """
    if slot_duration_minutes <= 0:
        raise InvalidInputError("slot duration must be positive", field="slot_duration_minutes")

    starts: set[int] = set()
    for entry in entries_for_weekday(weekly_schedule, day.weekday()):
        t = entry.start_minute
        while t + slot_duration_minutes <= entry.end_minute:
            if not lunch_window.contains(time_from_minutes(t)):
                starts.add(t)
            t += slot_duration_minutes

    if now is not None and day == now.date():
        cutoff = lead_cutoff_minute(now, min_lead_hours, slot_duration_minutes)
        starts = {t for t in starts if t >= cutoff}

    return [time_from_minutes(t) for t in sorted(starts)]
