"""Tests for the availability service over the test database."""

import asyncio
import logging
from datetime import date, datetime, time

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.availability.errors import AvailabilityUnknownError, InvalidInputError, UnknownEntityError
from app.availability.models import (
    AppointmentState,
    PatientBookingHistory,
    PractitionerProfile,
    Room,
    SystemConfig,
    WeeklyScheduleEntry,
)
from app.availability.monthly import MonthKey
from app.booking.policy import CallerRole, ViolationKind
from app.core.config import Settings
from app.services.availability import AvailabilityService, ManageAction

from tests.conftest import (
    FIXED_NOW,
    OTHER_PRACTITIONER_ID,
    PATIENT_ID,
    PRACTITIONER_ID,
    ROOM_1,
    ROOM_2,
    make_appointment,
)

TUESDAY = date(2025, 3, 4)
ALL_DAY = [time(h) for h in (9, 10, 11, 12, 15, 16, 17)]


class TestDaySlots:
    """Tests for a practitioner's free slots on one day."""

    @pytest.mark.asyncio
    async def test_free_day_uses_default_room(self, service: AvailabilityService, clinic: dict) -> None:
        result = await service.get_day_slots(PRACTITIONER_ID, TUESDAY)

        assert [s.time for s in result.slots] == ALL_DAY
        assert all(s.room_id == ROOM_1 and s.is_default_room for s in result.slots)
        assert result.computed_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_taken_default_room_offers_alternate(
        self, service: AvailabilityService, async_session: AsyncSession, clinic: dict
    ) -> None:
        async_session.add_all([
            make_appointment(TUESDAY, time(10), practitioner_id=OTHER_PRACTITIONER_ID, room_id=ROOM_1),
            make_appointment(TUESDAY, time(11), room_id=ROOM_2),
            make_appointment(
                TUESDAY, time(12), practitioner_id=OTHER_PRACTITIONER_ID, room_id=ROOM_1,
                state=AppointmentState.CANCELLED,
            ),
        ])
        await async_session.commit()

        result = await service.get_day_slots(PRACTITIONER_ID, TUESDAY)
        by_time = {s.time: s for s in result.slots}

        assert by_time[time(10)].room_id == ROOM_2
        assert by_time[time(10)].is_default_room is False
        # Ana is already booked at 11:00 in another room
        assert time(11) not in by_time
        assert by_time[time(12)].room_id == ROOM_1

    @pytest.mark.asyncio
    async def test_today_respects_lead_time(self, service: AvailabilityService, clinic: dict) -> None:
        result = await service.get_day_slots(PRACTITIONER_ID, FIXED_NOW.date())

        assert result.slots[0].time == time(10)

    @pytest.mark.asyncio
    async def test_blocked_day(self, service: AvailabilityService, clinic_holidays: None) -> None:
        result = await service.get_day_slots(PRACTITIONER_ID, date(2025, 3, 11))

        assert result.blocked is True
        assert result.reason == "Conference"
        assert result.slots == []

    @pytest.mark.asyncio
    async def test_non_working_day(self, service: AvailabilityService, clinic: dict) -> None:
        result = await service.get_day_slots(PRACTITIONER_ID, date(2025, 3, 8))

        assert result.working_day is False
        assert result.slots == []

    @pytest.mark.asyncio
    async def test_past_day_has_no_slots(self, service: AvailabilityService, clinic: dict) -> None:
        result = await service.get_day_slots(PRACTITIONER_ID, date(2025, 2, 28))

        assert result.slots == []
        assert result.reason

    @pytest.mark.asyncio
    async def test_unknown_practitioner(self, service: AvailabilityService, clinic: dict) -> None:
        with pytest.raises(UnknownEntityError):
            await service.get_day_slots("nobody", TUESDAY)

    @pytest.mark.asyncio
    async def test_working_weekdays(self, service: AvailabilityService, clinic: dict) -> None:
        assert await service.get_working_weekdays(OTHER_PRACTITIONER_ID, TUESDAY) == frozenset({1})


class TestMonthBadges:
    """Tests for calendar badges through the month cache."""

    @pytest.mark.asyncio
    async def test_badges_and_prefetch(
        self, service: AvailabilityService, async_session: AsyncSession, clinic_holidays: None
    ) -> None:
        async_session.add_all([
            make_appointment(TUESDAY, time(9)),
            make_appointment(TUESDAY, time(10), state=AppointmentState.REALIZED),
            make_appointment(TUESDAY, time(11), state=AppointmentState.CANCELLED),
            make_appointment(date(2025, 3, 5), time(9), practitioner_id=OTHER_PRACTITIONER_ID),
        ])
        await async_session.commit()

        badges = await service.get_month_badges(2025, 3, practitioner_id=PRACTITIONER_ID)

        assert badges[TUESDAY].booked_count == 2
        assert badges[date(2025, 3, 5)].booked_count == 0
        assert badges[date(2025, 3, 10)].reason == "Clinic refurbishment"
        assert badges[date(2025, 3, 11)].reason == "Conference"
        assert badges[date(2025, 3, 17)].blocked is False
        assert MonthKey(2025, 4, practitioner_id=PRACTITIONER_ID) in service.cache
        assert MonthKey(2025, 2, practitioner_id=PRACTITIONER_ID) in service.cache

    @pytest.mark.asyncio
    async def test_state_filter(
        self, service: AvailabilityService, async_session: AsyncSession, clinic: dict
    ) -> None:
        async_session.add_all([
            make_appointment(TUESDAY, time(9)),
            make_appointment(TUESDAY, time(10), state=AppointmentState.CONFIRMED),
        ])
        await async_session.commit()

        badges = await service.get_month_badges(2025, 3, state=AppointmentState.CONFIRMED)

        assert badges[TUESDAY].booked_count == 1

    @pytest.mark.asyncio
    async def test_refresh_after_mutation(
        self, service: AvailabilityService, async_session: AsyncSession, clinic: dict
    ) -> None:
        assert (await service.get_month_badges(2025, 3))[TUESDAY].booked_count == 0

        async_session.add(make_appointment(TUESDAY, time(9)))
        await async_session.commit()

        # Stale until the month is evicted
        assert (await service.get_month_badges(2025, 3))[TUESDAY].booked_count == 0
        assert service.invalidate_month(2025, 3) == 1
        assert (await service.get_month_badges(2025, 3))[TUESDAY].booked_count == 1

    @pytest.mark.asyncio
    async def test_invalid_month(self, service: AvailabilityService) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            await service.get_month_badges(2025, 13)
        assert exc_info.value.field == "month"


class TestBookingEvaluation:
    """Tests for admission decisions over stored history."""

    @pytest.mark.asyncio
    async def test_exclusivity_from_stored_appointment(
        self, service: AvailabilityService, patient_history: None
    ) -> None:
        decision = await service.evaluate_booking(PATIENT_ID, PRACTITIONER_ID, date(2025, 3, 6), time(10))

        assert decision.kinds == [ViolationKind.PRACTITIONER_EXCLUSIVITY]

    @pytest.mark.asyncio
    async def test_cooldown_from_stored_cancellation(
        self, service: AvailabilityService, patient_history: None
    ) -> None:
        refused = await service.evaluate_booking(PATIENT_ID, OTHER_PRACTITIONER_ID, TUESDAY, time(10))
        admitted = await service.evaluate_booking(PATIENT_ID, OTHER_PRACTITIONER_ID, date(2025, 3, 18), time(10))

        assert refused.kinds == [ViolationKind.COOLDOWN]
        assert refused.reasons[0].unlock_date == date(2025, 3, 5)
        assert admitted.admitted is True

    @pytest.mark.asyncio
    async def test_staff_bypass_cooldown(self, service: AvailabilityService, patient_history: None) -> None:
        decision = await service.evaluate_booking(
            PATIENT_ID, OTHER_PRACTITIONER_ID, TUESDAY, time(10), role=CallerRole.STAFF
        )

        assert decision.admitted is True

    @pytest.mark.asyncio
    async def test_blackout_applies(self, service: AvailabilityService, clinic_holidays: None) -> None:
        decision = await service.evaluate_booking("patient-new", PRACTITIONER_ID, date(2025, 3, 10), time(10))

        assert decision.kinds == [ViolationKind.BLACKOUT]

    @pytest.mark.asyncio
    async def test_decision_is_logged(
        self, service: AvailabilityService, clinic: dict, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="booking.decisions"):
            await service.evaluate_booking("patient-new", PRACTITIONER_ID, TUESDAY, time(10))

        assert "admitted=True" in caplog.text
        assert "patient=patient-new" in caplog.text

    @pytest.mark.asyncio
    async def test_rescheduling_unknown_appointment(self, service: AvailabilityService, patient_history: None) -> None:
        with pytest.raises(UnknownEntityError):
            await service.evaluate_booking(
                PATIENT_ID, PRACTITIONER_ID, TUESDAY, time(10), replacing="appt-missing"
            )

    @pytest.mark.asyncio
    async def test_rescheduling_moves_own_appointment(
        self, service: AvailabilityService, patient_history: None
    ) -> None:
        decision = await service.evaluate_booking(
            PATIENT_ID, PRACTITIONER_ID, date(2025, 3, 6), time(10), replacing="appt-pending"
        )

        assert decision.admitted is True


class TestManageEvaluation:
    """Tests for decisions on existing appointments."""

    @pytest.mark.asyncio
    async def test_reschedule_pending(self, service: AvailabilityService, patient_history: None) -> None:
        decision = await service.evaluate_manage(PATIENT_ID, "appt-pending", ManageAction.RESCHEDULE)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_confirm_too_early(self, service: AvailabilityService, patient_history: None) -> None:
        decision = await service.evaluate_manage(PATIENT_ID, "appt-pending", ManageAction.CONFIRM)

        assert decision.kinds == [ViolationKind.CONFIRM_WINDOW]

    @pytest.mark.asyncio
    async def test_cancelled_appointment_is_unknown(
        self, service: AvailabilityService, patient_history: None
    ) -> None:
        with pytest.raises(UnknownEntityError):
            await service.evaluate_manage(PATIENT_ID, "appt-cancelled", ManageAction.CANCEL)


class FakeSource:
    """In-memory snapshot source with an optional slow or failing read."""

    concurrent_reads = True

    def __init__(self, slow: str | None = None, failing: str | None = None) -> None:
        self.slow = slow
        self.failing = failing
        self.calls: list[str] = []

    async def _read(self, name: str, value):
        self.calls.append(name)
        if name == self.slow:
            await asyncio.sleep(10)
        if name == self.failing:
            raise httpx.ConnectError("connection refused")
        return value

    async def get_practitioner(self, practitioner_id: str) -> PractitionerProfile:
        return await self._read("practitioner", PractitionerProfile(practitioner_id, "Dr. Fake", "r1"))

    async def get_weekly_schedule(self, practitioner_id: str, on: date) -> list[WeeklyScheduleEntry]:
        return await self._read("schedule", [WeeklyScheduleEntry(1, 540, 720)])

    async def get_blackout_rules(self, start, end, practitioner_id=None):
        return await self._read("blackouts", [])

    async def get_rooms(self) -> list[Room]:
        return await self._read("rooms", [Room("r1", "Chair 1")])

    async def get_bookings(self, start, end, practitioner_id=None, room_id=None, state=None):
        return await self._read("bookings", [])

    async def get_patient_history(self, patient_id: str) -> PatientBookingHistory:
        return await self._read("history", PatientBookingHistory(patient_id))

    async def get_config(self) -> SystemConfig:
        return await self._read("configuration", SystemConfig())


def fake_service(source: FakeSource) -> AvailabilityService:
    return AvailabilityService(
        source,
        cfg=Settings(upstream_timeout_seconds=0.05),
        clock=lambda: datetime(2025, 3, 3, 8, 0),
    )


class TestReadFailures:
    """A slow or failing read is reported as unknown availability."""

    @pytest.mark.asyncio
    async def test_fan_out_reads_everything(self) -> None:
        source = FakeSource()

        result = await fake_service(source).get_day_slots("prac-1", TUESDAY)

        assert [s.time for s in result.slots] == [time(9), time(10), time(11)]
        assert set(source.calls) == {"practitioner", "schedule", "blackouts", "rooms", "bookings", "configuration"}

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        with pytest.raises(AvailabilityUnknownError) as exc_info:
            await fake_service(FakeSource(slow="schedule")).get_day_slots("prac-1", TUESDAY)

        assert exc_info.value.source == "schedule"

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        with pytest.raises(AvailabilityUnknownError) as exc_info:
            await fake_service(FakeSource(failing="rooms")).get_day_slots("prac-1", TUESDAY)

        assert exc_info.value.source == "rooms"

    @pytest.mark.asyncio
    async def test_month_failure_is_not_cached(self) -> None:
        source = FakeSource(failing="bookings")
        service = fake_service(source)

        with pytest.raises(AvailabilityUnknownError):
            await service.get_month_badges(2025, 3)
        assert len(service.cache) == 0
