"""Availability orchestration over a snapshot source.

Fetches the read snapshots a question needs (fanned out when the source
allows overlapping reads), then hands them to the pure engine in
``app.availability`` and ``app.booking``. Every read carries a timeout;
a slow or failing read becomes ``AvailabilityUnknownError`` so callers can
offer a retry instead of guessing "available" or "blocked".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable

import httpx
from sqlalchemy.exc import SQLAlchemyError

from app.availability.blackout import BlackoutIndex
from app.availability.calendar import LunchWindow, base_slots, working_weekdays
from app.availability.errors import AvailabilityUnknownError, InvalidInputError, UnknownEntityError
from app.availability.models import AppointmentState, DayBadge, SlotOption
from app.availability.monthly import MonthKey, MonthSummaryCache, aggregate
from app.availability.slots import SlotResolver, occupied_times
from app.booking.policy import (
    BookingDecision,
    BookingPolicyEvaluator,
    CallerRole,
    ManageDecision,
)
from app.core.config import Settings, settings
from app.core.logging import decision_logger
from app.services.snapshots import SnapshotSource
from app.utils.time import add_months, clinic_now, month_bounds

logger = logging.getLogger(__name__)

Call = tuple[str, Callable[[], Awaitable[Any]]]


class ManageAction(str, Enum):
    """Actions on an existing appointment."""

    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    CONFIRM = "confirm"


@dataclass
class DayAvailability:
    """Offerable slots for one practitioner on one day.

    ``computed_at`` matters for today: slots inside the lead time drop out
    as the clock moves, so the result should be refreshed periodically.
    """

    practitioner_id: str
    date: date
    computed_at: datetime
    slots: list[SlotOption] = field(default_factory=list)
    working_day: bool = True
    blocked: bool = False
    reason: str | None = None


class AvailabilityService:
    """Answers availability and booking-policy questions.

    Args:
        source: Where snapshots are read from
        cache: Month badge cache; a private one is created when omitted
        cfg: Application settings
        clock: Returns clinic-local "now"
    """

    def __init__(
        self,
        source: SnapshotSource,
        cache: MonthSummaryCache | None = None,
        cfg: Settings = settings,
        clock: Callable[[], datetime] = clinic_now,
    ):
        self.source = source
        self.settings = cfg
        self.clock = clock
        self.cache = cache or MonthSummaryCache(self.load_month)
        self.lunch_window = LunchWindow(cfg.lunch_start_hour, cfg.lunch_end_hour)
        # Serializes reads on sources that cannot overlap them (the cache
        # prefetches three months at once)
        self._read_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch(self, name: str, call: Callable[[], Awaitable[Any]]) -> Any:
        if not getattr(self.source, "concurrent_reads", False):
            async with self._read_lock:
                return await self._fetch_once(name, call)
        return await self._fetch_once(name, call)

    async def _fetch_once(self, name: str, call: Callable[[], Awaitable[Any]]) -> Any:
        timeout = self.settings.upstream_timeout_seconds
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Read of {name} timed out after {timeout:g}s", extra={"source": name})
            raise AvailabilityUnknownError(name, f"{name} did not answer within {timeout:g}s") from None
        except (httpx.HTTPError, SQLAlchemyError, OSError) as exc:
            logger.warning(f"Read of {name} failed: {exc}", extra={"source": name})
            raise AvailabilityUnknownError(name, f"{name} is unavailable") from exc

    async def _gather(self, *calls: Call) -> list[Any]:
        """Run reads, concurrently when the source allows it.

        With concurrent reads every call is awaited before the first
        failure is raised, so nothing keeps running in the background.
        """
        if not getattr(self.source, "concurrent_reads", False):
            return [await self._fetch(name, call) for name, call in calls]

        results = await asyncio.gather(
            *(self._fetch(name, call) for name, call in calls),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # ------------------------------------------------------------------
    # Day slots
    # ------------------------------------------------------------------

    async def get_day_slots(
        self,
        practitioner_id: str,
        day: date,
        now: datetime | None = None,
    ) -> DayAvailability:
        """Free start times for a practitioner on a day, each bound to a room."""
        now = now or self.clock()
        practitioner = await self._fetch("practitioner", partial(self.source.get_practitioner, practitioner_id))
        result = DayAvailability(practitioner_id=practitioner.id, date=day, computed_at=now)
        if not practitioner.active:
            result.reason = "Practitioner is not taking appointments."
            return result

        schedule, rules, rooms, bookings, config = await self._gather(
            ("schedule", partial(self.source.get_weekly_schedule, practitioner.id, day)),
            ("blackouts", partial(self.source.get_blackout_rules, day, day, practitioner.id)),
            ("rooms", self.source.get_rooms),
            ("bookings", partial(self.source.get_bookings, day, day)),
            ("configuration", self.source.get_config),
        )

        today = now.date()
        if day < today or day > add_months(today, config.booking_horizon_months):
            result.reason = "Date is outside the booking window."
            return result

        info = BlackoutIndex(rules, day, day, practitioner_id=practitioner.id).is_blocked(day)
        if info.blocked:
            result.blocked = True
            result.reason = info.reason
            return result

        result.working_day = day.weekday() in working_weekdays(schedule)
        if not result.working_day:
            return result

        base = base_slots(
            day,
            schedule,
            self.settings.slot_duration_minutes,
            self.lunch_window,
            now=now,
            min_lead_hours=config.min_lead_hours,
        )
        booked_by_room, busy = occupied_times(bookings, day, practitioner.id)
        result.slots = SlotResolver(rooms, practitioner.default_room_id).resolve(
            day, practitioner.id, base, booked_by_room, busy
        )
        logger.debug(
            f"{len(result.slots)} of {len(base)} slots free on {day.isoformat()}",
            extra={"practitioner_id": practitioner.id},
        )
        return result

    async def get_working_weekdays(self, practitioner_id: str, on: date) -> frozenset[int]:
        """Weekdays the practitioner works, for greying out calendar days."""
        schedule = await self._fetch("schedule", partial(self.source.get_weekly_schedule, practitioner_id, on))
        return working_weekdays(schedule)

    # ------------------------------------------------------------------
    # Month badges
    # ------------------------------------------------------------------

    async def load_month(self, key: MonthKey) -> dict[date, DayBadge]:
        """Compute badges for one month key (the cache loader)."""
        first, last = month_bounds(key.year, key.month)
        bookings, rules = await self._gather(
            ("bookings", partial(
                self.source.get_bookings,
                first,
                last,
                practitioner_id=key.practitioner_id,
                room_id=key.room_id,
                state=key.state,
            )),
            ("blackouts", partial(self.source.get_blackout_rules, first, last, key.practitioner_id)),
        )
        index = BlackoutIndex.for_month(rules, key.year, key.month, practitioner_id=key.practitioner_id)
        return aggregate(key.year, key.month, bookings, index)

    async def get_month_badges(
        self,
        year: int,
        month: int,
        practitioner_id: str | None = None,
        room_id: str | None = None,
        state: AppointmentState | None = None,
    ) -> dict[date, DayBadge]:
        """Badges for a visible month; neighbours are prefetched."""
        if not 1 <= month <= 12:
            raise InvalidInputError(f"month must be 1..12, got {month}", field="month")
        if not 1 <= year <= 9999:
            raise InvalidInputError(f"year out of range: {year}", field="year")

        key = MonthKey(year, month, practitioner_id, room_id, state)
        return await self.cache.ensure_window(key)

    def invalidate_month(self, year: int, month: int) -> int:
        """Forget every cached badge set of a month after a mutation."""
        evicted = self.cache.evict_month(year, month)
        logger.info(f"Evicted {evicted} cached summaries for {year}-{month:02d}")
        return evicted

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    async def evaluate_booking(
        self,
        patient_id: str,
        practitioner_id: str,
        day: date,
        start: time,
        role: CallerRole = CallerRole.PATIENT,
        now: datetime | None = None,
        replacing: str | None = None,
    ) -> BookingDecision:
        """Admission decision for a candidate booking."""
        now = now or self.clock()
        practitioner = await self._fetch("practitioner", partial(self.source.get_practitioner, practitioner_id))

        history, config, rules = await self._gather(
            ("patient history", partial(self.source.get_patient_history, patient_id)),
            ("configuration", self.source.get_config),
            ("blackouts", partial(self.source.get_blackout_rules, day, day, practitioner.id)),
        )
        if replacing is not None and history.find(replacing) is None:
            raise UnknownEntityError(f"Appointment {replacing} not found", field="replacing")

        evaluator = BookingPolicyEvaluator(
            BlackoutIndex(rules, day, day, practitioner_id=practitioner.id),
            role=role,
        )
        decision = evaluator.evaluate(
            patient_id,
            practitioner.id,
            day,
            start,
            history,
            config,
            now=now,
            replacing=replacing,
        )

        decision_logger.log(
            action="reschedule_booking" if replacing else "book",
            patient_id=patient_id,
            practitioner_id=practitioner.id,
            admitted=decision.admitted,
            violations=[k.value for k in decision.kinds],
            metadata={
                "date": day.isoformat(),
                "time": start.strftime("%H:%M"),
                "role": role.value,
                "initial_state": decision.initial_state.value,
            },
        )
        return decision

    async def evaluate_manage(
        self,
        patient_id: str,
        appointment_id: str,
        action: ManageAction,
        role: CallerRole = CallerRole.PATIENT,
        now: datetime | None = None,
    ) -> ManageDecision:
        """Whether an existing appointment may be rescheduled, cancelled or confirmed."""
        now = now or self.clock()
        history, config = await self._gather(
            ("patient history", partial(self.source.get_patient_history, patient_id)),
            ("configuration", self.source.get_config),
        )
        appointment = history.find(appointment_id)
        if appointment is None:
            raise UnknownEntityError(f"Appointment {appointment_id} not found", field="appointment_id")

        evaluator = BookingPolicyEvaluator(role=role)
        if action == ManageAction.RESCHEDULE:
            decision = evaluator.evaluate_reschedule(appointment, config, now=now)
        elif action == ManageAction.CANCEL:
            decision = evaluator.evaluate_cancellation(appointment, config, now=now)
        else:
            decision = evaluator.evaluate_confirmation(appointment, config, now=now)

        decision_logger.log(
            action=action.value,
            patient_id=patient_id,
            practitioner_id=appointment.practitioner_id,
            admitted=decision.allowed,
            violations=[k.value for k in decision.kinds],
            metadata={"appointment_id": appointment_id, "role": role.value},
        )
        return decision
