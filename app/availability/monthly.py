"""Per-month calendar badges and their cache."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Iterable

from app.availability.blackout import BlackoutIndex
from app.availability.models import COUNTED_STATES, AppointmentState, DayBadge, ExistingBooking
from app.utils.time import month_days, shift_month

logger = logging.getLogger(__name__)


def aggregate(
    year: int,
    month: int,
    bookings: Iterable[ExistingBooking],
    blackout_index: BlackoutIndex,
) -> dict[date, DayBadge]:
    """Badge every day of a month with its booking count and blocked flag.

    Pending, confirmed and realized bookings count; cancelled ones do not.
    Bookings outside the month are ignored.
    """
    counts: dict[date, int] = {}
    for booking in bookings:
        if booking.state in COUNTED_STATES:
            counts[booking.date] = counts.get(booking.date, 0) + 1

    badges: dict[date, DayBadge] = {}
    for day in month_days(year, month):
        info = blackout_index.is_blocked(day)
        badges[day] = DayBadge(
            date=day,
            booked_count=counts.get(day, 0),
            blocked=info.blocked,
            reason=info.reason,
        )
    return badges


@dataclass(frozen=True)
class MonthKey:
    """Cache key: a visible month plus the filters that shape its badges."""

    year: int
    month: int
    practitioner_id: str | None = None
    room_id: str | None = None
    state: AppointmentState | None = None

    def shifted(self, delta: int) -> "MonthKey":
        year, month = shift_month(self.year, self.month, delta)
        return MonthKey(year, month, self.practitioner_id, self.room_id, self.state)


MonthLoader = Callable[[MonthKey], Awaitable[dict[date, DayBadge]]]


class MonthSummaryCache:
    """Badges per month key, prefetched as a three-month sliding window.

    Entries are never invalidated automatically; callers evict a month after
    a booking or blackout mutation. Concurrent requests for the same key
    share a single load, and a failed load is not cached.
    """

    def __init__(self, loader: MonthLoader) -> None:
        self._loader = loader
        self._entries: dict[MonthKey, dict[date, DayBadge]] = {}
        self._inflight: dict[MonthKey, asyncio.Task] = {}

    def __contains__(self, key: MonthKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: MonthKey) -> dict[date, DayBadge] | None:
        """Cached badges for a key, without loading."""
        return self._entries.get(key)

    async def load(self, key: MonthKey) -> dict[date, DayBadge]:
        """Cached badges for a key, loading them on a miss."""
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _load(self, key: MonthKey) -> dict[date, DayBadge]:
        task = asyncio.current_task()
        try:
            badges = await self._loader(key)
            # An eviction during the load unregisters this task; its result is stale
            if self._inflight.get(key) is task:
                self._entries[key] = badges
                logger.debug(f"Cached month summary {key.year}-{key.month:02d}")
            return badges
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def ensure_window(self, key: MonthKey) -> dict[date, DayBadge]:
        """Load the previous, current and next month; return the current one.

        Neighbour loads run concurrently with the visible month. A neighbour
        failure is logged and left uncached; only a failure of the visible
        month propagates.
        """
        keys = [key.shifted(-1), key, key.shifted(1)]
        results = await asyncio.gather(*(self.load(k) for k in keys), return_exceptions=True)

        for neighbour, result in zip(keys, results):
            if neighbour != key and isinstance(result, BaseException):
                logger.warning(
                    f"Prefetch of {neighbour.year}-{neighbour.month:02d} failed: {result}"
                )

        current = results[1]
        if isinstance(current, BaseException):
            raise current
        return current

    def evict(self, key: MonthKey) -> bool:
        """Drop one key, cached or loading. Returns True if there was one.

        A load still running for the key keeps serving its current waiters
        but is no longer stored, so the next request reads fresh data.
        """
        cached = self._entries.pop(key, None) is not None
        loading = self._inflight.pop(key, None) is not None
        return cached or loading

    def evict_month(self, year: int, month: int) -> int:
        """Drop every cached or loading key for a month, whatever its filters."""
        stale = {k for k in (*self._entries, *self._inflight) if k.year == year and k.month == month}
        for k in stale:
            self.evict(k)
        return len(stale)

    def clear(self) -> None:
        """Drop everything, e.g. when the filter universe changes."""
        self._entries.clear()
        self._inflight.clear()
