"""Read collaborators feeding the availability engine.

Two implementations of the same read contract:

- ``DatabaseSnapshotSource`` reads the scheduling tables with SQLAlchemy.
- ``UpstreamSnapshotSource`` reads the clinic REST API with httpx and maps
  its loosely shaped payloads through ``app.availability.normalize``.

Both return the engine's dataclasses and never write anything. Transport
failures propagate as-is; ``AvailabilityService`` turns them into
``AvailabilityUnknownError``.
"""

import logging
from datetime import date, time
from typing import Any, Protocol

import httpx
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.availability import normalize
from app.availability.errors import UnknownEntityError
from app.availability.models import (
    AppointmentState,
    BlackoutRule,
    BlackoutScope,
    Cancellation,
    CancelledByRole,
    DailyCapPeriod,
    ExistingBooking,
    PatientAppointment,
    PatientBookingHistory,
    PractitionerProfile,
    Room,
    SystemConfig,
    WeeklyScheduleEntry,
)
from app.core.config import Settings, settings
from app.models.scheduling import (
    Appointment,
    BlackoutPeriod,
    Practitioner,
    Room as RoomRow,
    SystemConfiguration,
    WeeklySchedule,
)
from app.utils.time import minutes_of, to_clinic_local

logger = logging.getLogger(__name__)

# Upper bound on cancellations considered for the cooldown rule
RECENT_CANCELLATIONS_LIMIT = 50


class SnapshotSource(Protocol):
    """Read contract the availability service depends on.

    ``concurrent_reads`` tells the service whether calls may overlap.
    """

    concurrent_reads: bool

    async def get_practitioner(self, practitioner_id: str) -> PractitionerProfile: ...

    async def get_weekly_schedule(self, practitioner_id: str, on: date) -> list[WeeklyScheduleEntry]: ...

    async def get_blackout_rules(
        self, start: date, end: date, practitioner_id: str | None = None
    ) -> list[BlackoutRule]: ...

    async def get_rooms(self) -> list[Room]: ...

    async def get_bookings(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
        room_id: str | None = None,
        state: AppointmentState | None = None,
    ) -> list[ExistingBooking]: ...

    async def get_patient_history(self, patient_id: str) -> PatientBookingHistory: ...

    async def get_config(self) -> SystemConfig: ...


def default_system_config(cfg: Settings = settings) -> SystemConfig:
    """Booking configuration built from the settings fallbacks."""
    return SystemConfig(
        max_active_appointments_per_patient=cfg.default_max_active_appointments,
        max_appointments_per_patient_per_day=cfg.default_max_appointments_per_day,
        min_lead_hours=cfg.default_min_lead_hours,
        auto_confirm_within_hours=cfg.default_auto_confirm_within_hours,
        cooldown_days=cfg.default_cooldown_days,
        max_reschedules_per_appointment=cfg.default_max_reschedules,
        confirm_from_hours=cfg.default_confirm_from_hours,
        confirm_until_hours=cfg.default_confirm_until_hours,
        manage_until_hours=cfg.default_manage_until_hours,
        booking_horizon_months=cfg.booking_horizon_months,
    )


def _end_minute(t: time) -> int:
    # Midnight as an end time means end of day
    return 24 * 60 if t == time(0, 0) else minutes_of(t)


class DatabaseSnapshotSource:
    """Reads scheduling snapshots from the database."""

    # One AsyncSession cannot run statements concurrently
    concurrent_reads = False

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_practitioner(self, practitioner_id: str) -> PractitionerProfile:
        """Get practitioner by ID."""
        result = await self.session.execute(
            select(Practitioner).where(
                Practitioner.id == practitioner_id,
                Practitioner.is_deleted == False,
            )
        )
        row = result.scalar_one_or_none()
        if not row:
            raise UnknownEntityError(f"Practitioner {practitioner_id} not found", field="practitioner_id")
        return PractitionerProfile(
            id=row.id,
            display_name=row.display_name,
            default_room_id=row.default_room_id,
            active=row.is_active,
        )

    async def get_weekly_schedule(self, practitioner_id: str, on: date) -> list[WeeklyScheduleEntry]:
        """Weekly entries in effect on a given date."""
        result = await self.session.execute(
            select(WeeklySchedule).where(
                WeeklySchedule.practitioner_id == practitioner_id,
                or_(WeeklySchedule.effective_from.is_(None), WeeklySchedule.effective_from <= on),
                or_(WeeklySchedule.effective_until.is_(None), WeeklySchedule.effective_until >= on),
            )
        )
        return [
            WeeklyScheduleEntry(
                weekday=row.day_of_week,
                start_minute=minutes_of(row.start_time),
                end_minute=_end_minute(row.end_time),
                active=row.is_active,
            )
            for row in result.scalars().all()
        ]

    async def get_blackout_rules(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
    ) -> list[BlackoutRule]:
        """Global blackouts plus the practitioner's own, overlapping a window."""
        owner = BlackoutPeriod.practitioner_id.is_(None)
        if practitioner_id is not None:
            owner = or_(owner, BlackoutPeriod.practitioner_id == practitioner_id)

        result = await self.session.execute(
            select(BlackoutPeriod)
            .where(
                owner,
                or_(
                    BlackoutPeriod.annual_recurrence == True,
                    and_(BlackoutPeriod.start_date <= end, BlackoutPeriod.end_date >= start),
                ),
            )
            .order_by(BlackoutPeriod.created_at)
        )
        return [
            BlackoutRule(
                scope=BlackoutScope.PRACTITIONER if row.practitioner_id else BlackoutScope.GLOBAL,
                start_date=row.start_date,
                end_date=row.end_date,
                annual_recurrence=row.annual_recurrence,
                reason=row.reason,
                practitioner_id=row.practitioner_id,
            )
            for row in result.scalars().all()
        ]

    async def get_rooms(self) -> list[Room]:
        """All rooms that have not been retired."""
        result = await self.session.execute(
            select(RoomRow).where(RoomRow.is_deleted == False)
        )
        return [
            Room(id=row.id, label=row.label, active=row.is_active)
            for row in result.scalars().all()
        ]

    async def get_bookings(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
        room_id: str | None = None,
        state: AppointmentState | None = None,
    ) -> list[ExistingBooking]:
        """Appointments in a date window, optionally filtered."""
        query = select(Appointment).where(
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        )
        if practitioner_id:
            query = query.where(Appointment.practitioner_id == practitioner_id)
        if room_id:
            query = query.where(Appointment.room_id == room_id)
        if state:
            query = query.where(Appointment.state == state.value)

        result = await self.session.execute(query)
        return [
            ExistingBooking(
                date=row.appointment_date,
                time=row.start_time,
                practitioner_id=row.practitioner_id,
                room_id=row.room_id,
                state=AppointmentState(row.state),
                patient_id=row.patient_id,
            )
            for row in result.scalars().all()
        ]

    async def get_patient_history(self, patient_id: str) -> PatientBookingHistory:
        """A patient's live appointments and most recent cancellations."""
        live = await self.session.execute(
            select(Appointment).where(
                Appointment.patient_id == patient_id,
                Appointment.state != AppointmentState.CANCELLED.value,
            )
        )
        cancelled = await self.session.execute(
            select(Appointment)
            .where(
                Appointment.patient_id == patient_id,
                Appointment.state == AppointmentState.CANCELLED.value,
                Appointment.cancelled_at.is_not(None),
            )
            .order_by(Appointment.cancelled_at.desc())
            .limit(RECENT_CANCELLATIONS_LIMIT)
        )

        history = PatientBookingHistory(patient_id=patient_id)
        for row in live.scalars().all():
            history.appointments.append(
                PatientAppointment(
                    appointment_id=row.id,
                    practitioner_id=row.practitioner_id,
                    date=row.appointment_date,
                    time=row.start_time,
                    state=AppointmentState(row.state),
                    room_id=row.room_id,
                    reschedule_count=row.reschedule_count,
                )
            )
        for row in cancelled.scalars().all():
            history.cancellations.append(
                Cancellation(
                    practitioner_id=row.practitioner_id,
                    cancelled_at=to_clinic_local(row.cancelled_at),
                    was_no_show=row.was_no_show,
                    cancelled_by_role=CancelledByRole(row.cancelled_by_role) if row.cancelled_by_role else None,
                    appointment_date=row.appointment_date,
                    appointment_time=row.start_time,
                )
            )
        return history

    async def get_config(self) -> SystemConfig:
        """Current booking configuration, or the settings defaults."""
        result = await self.session.execute(
            select(SystemConfiguration).order_by(SystemConfiguration.created_at.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        if not row:
            logger.warning("No booking configuration stored, using defaults")
            return default_system_config()

        return SystemConfig(
            max_active_appointments_per_patient=row.max_active_appointments_per_patient,
            max_appointments_per_patient_per_day=row.max_appointments_per_patient_per_day,
            min_lead_hours=row.min_lead_hours,
            auto_confirm_within_hours=row.auto_confirm_within_hours,
            cooldown_days=row.cooldown_days,
            max_reschedules_per_appointment=row.max_reschedules_per_appointment,
            confirm_from_hours=row.confirm_from_hours,
            confirm_until_hours=row.confirm_until_hours,
            manage_until_hours=row.manage_until_hours,
            booking_horizon_months=row.booking_horizon_months,
            daily_cap_period=DailyCapPeriod(row.daily_cap_period),
            no_show_cooldown_days=row.no_show_cooldown_days,
            patient_cancel_cooldown_days=row.patient_cancel_cooldown_days,
        )


class UpstreamSnapshotSource:
    """Reads scheduling snapshots from the clinic REST API."""

    concurrent_reads = True

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "UpstreamSnapshotSource":
        """Create a source with a client pointed at the configured API."""
        client = httpx.AsyncClient(
            base_url=cfg.upstream_base_url,
            timeout=cfg.upstream_timeout_seconds,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def get_practitioner(self, practitioner_id: str) -> PractitionerProfile:
        try:
            data = await self._get(f"practitioners/{practitioner_id}/")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise UnknownEntityError(
                    f"Practitioner {practitioner_id} not found", field="practitioner_id"
                ) from exc
            raise

        name = normalize.first_value(data, "display_name", "name", "user.full_name", default="")
        return PractitionerProfile(
            id=normalize.as_id(normalize.first_value(data, "id", "practitioner_id", default=practitioner_id)),
            display_name=str(name),
            default_room_id=normalize.default_room_id_from_payload(data),
            active=normalize.as_bool(normalize.first_value(data, "active", "is_active"), default=True),
        )

    async def get_weekly_schedule(self, practitioner_id: str, on: date) -> list[WeeklyScheduleEntry]:
        data = await self._get(
            f"practitioners/{practitioner_id}/schedules/",
            params={"valid_on": on.isoformat()},
        )
        return [normalize.schedule_entry_from_payload(row) for row in normalize.results_list(data)]

    async def get_blackout_rules(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
    ) -> list[BlackoutRule]:
        window = {"start": start.isoformat(), "end": end.isoformat()}
        global_data = await self._get("blackouts/", params={**window, "scope": "global"})
        rules = [
            normalize.blackout_rule_from_payload(row, scope=BlackoutScope.GLOBAL)
            for row in normalize.results_list(global_data)
        ]
        if practitioner_id is not None:
            own_data = await self._get(f"practitioners/{practitioner_id}/blackouts/", params=window)
            rules.extend(
                normalize.blackout_rule_from_payload(
                    row, scope=BlackoutScope.PRACTITIONER, practitioner_id=practitioner_id
                )
                for row in normalize.results_list(own_data)
            )
        return rules

    async def get_rooms(self) -> list[Room]:
        data = await self._get("rooms/", params={"page_size": 1000})
        return [normalize.room_from_payload(row) for row in normalize.results_list(data)]

    async def get_bookings(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
        room_id: str | None = None,
        state: AppointmentState | None = None,
    ) -> list[ExistingBooking]:
        params: dict[str, Any] = {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "page_size": 1000,
        }
        if practitioner_id:
            params["practitioner_id"] = practitioner_id
        if room_id:
            params["room_id"] = room_id
        if state:
            params["state"] = state.value
        data = await self._get("appointments/", params=params)
        return [normalize.booking_from_payload(row) for row in normalize.results_list(data)]

    async def get_patient_history(self, patient_id: str) -> PatientBookingHistory:
        data = await self._get(f"patients/{patient_id}/appointments/", params={"page_size": 1000})
        return normalize.patient_history_from_payload(patient_id, normalize.results_list(data))

    async def get_config(self) -> SystemConfig:
        data = await self._get("configuration/")
        return normalize.config_from_payload(data, defaults=default_system_config())
