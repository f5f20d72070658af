"""Boundary mapping from upstream API payloads to the engine's data model.

Upstream payloads name the same concept in several ways (``room_id`` vs a
nested ``room.id``, ``start_time`` vs ``start``, paginated vs bare lists).
Every variant is resolved here so the rest of the engine only sees the
strict dataclasses in ``app.availability.models``. Malformed payloads raise
``InvalidInputError``.
"""

from datetime import date, datetime, time
from typing import Any, Iterable

from app.availability.errors import InvalidInputError
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
    Room,
    SystemConfig,
    WeeklyScheduleEntry,
)
from app.utils.time import minutes_of, parse_date, parse_datetime, parse_time, to_clinic_local


def _get_nested_value(data: Any, path: str) -> Any:
    """Get value from nested dict using dot notation."""
    value = data
    for key in path.split("."):
        if isinstance(value, dict):
            value = value.get(key)
        else:
            return None
    return value


def first_value(payload: dict[str, Any], *paths: str, default: Any = None) -> Any:
    """First non-null value among several candidate paths."""
    for path in paths:
        value = _get_nested_value(payload, path)
        if value is not None and value != "":
            return value
    return default


def _required(payload: dict[str, Any], field: str, *paths: str) -> Any:
    value = first_value(payload, *paths)
    if value is None:
        raise InvalidInputError(f"missing {field} (looked for {', '.join(paths)})", field=field)
    return value


def results_list(data: Any) -> list[Any]:
    """Unwrap a paginated ``{"results": [...]}`` body or a bare list."""
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("results", [])
    if not isinstance(data, list):
        raise InvalidInputError("expected a list payload", field="results")
    return data


def as_id(value: Any) -> str:
    """Ids arrive as ints or strings; the engine compares them as strings."""
    if isinstance(value, dict):
        value = value.get("id")
    if value is None:
        raise InvalidInputError("missing id", field="id")
    return str(value)


def as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"malformed integer: {value!r}", field=field) from None


def as_date(value: Any, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_date(str(value))
    except ValueError:
        raise InvalidInputError(f"malformed date: {value!r}", field=field) from None


def as_time(value: Any, field: str = "time") -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        return parse_time(str(value)).replace(second=0)
    except ValueError:
        raise InvalidInputError(f"malformed time: {value!r}", field=field) from None


def as_datetime(value: Any, field: str = "datetime") -> datetime:
    if isinstance(value, datetime):
        return to_clinic_local(value)
    try:
        return to_clinic_local(parse_datetime(str(value)))
    except ValueError:
        raise InvalidInputError(f"malformed timestamp: {value!r}", field=field) from None


def as_state(value: Any) -> AppointmentState:
    try:
        return AppointmentState(str(value).strip().lower())
    except ValueError:
        raise InvalidInputError(f"unknown appointment state: {value!r}", field="state") from None


def _minutes(payload: dict[str, Any], field: str, minute_key: str, *time_keys: str) -> int:
    raw = first_value(payload, minute_key)
    if raw is not None:
        return as_int(raw, minute_key)
    value = _required(payload, field, *time_keys)
    if str(value).strip() in {"24:00", "24:00:00"}:
        return 24 * 60
    return minutes_of(as_time(value, field=field))


def schedule_entry_from_payload(payload: dict[str, Any]) -> WeeklyScheduleEntry:
    """Map a weekly schedule row; weekdays outside 0..6 wrap around."""
    weekday = as_int(_required(payload, "weekday", "weekday", "day_of_week"), "weekday")
    return WeeklyScheduleEntry(
        weekday=((weekday % 7) + 7) % 7,
        start_minute=_minutes(payload, "start", "start_minute", "start_time", "start"),
        end_minute=_minutes(payload, "end", "end_minute", "end_time", "end"),
        active=as_bool(first_value(payload, "active", "is_active", "valid"), default=True),
    )


def blackout_rule_from_payload(
    payload: dict[str, Any] | str,
    scope: BlackoutScope | None = None,
    practitioner_id: str | None = None,
) -> BlackoutRule:
    """Map a blackout row, or a bare ``"YYYY-MM-DD"`` blocked day.

    Scope comes from the payload when present, otherwise from whether the
    row names a practitioner, otherwise from the caller.
    """
    if isinstance(payload, str):
        day = as_date(payload, field="start_date")
        resolved_scope = scope or (
            BlackoutScope.PRACTITIONER if practitioner_id else BlackoutScope.GLOBAL
        )
        return BlackoutRule(
            scope=resolved_scope,
            start_date=day,
            end_date=day,
            practitioner_id=practitioner_id if resolved_scope == BlackoutScope.PRACTITIONER else None,
        )

    start = as_date(_required(payload, "start_date", "start_date", "start", "date"), "start_date")
    end_raw = first_value(payload, "end_date", "end")
    end = as_date(end_raw, "end_date") if end_raw is not None else start

    owner = first_value(payload, "practitioner_id", "practitioner.id")
    owner_id = str(owner) if owner is not None else practitioner_id

    scope_raw = first_value(payload, "scope")
    if scope_raw is not None:
        try:
            resolved_scope = BlackoutScope(str(scope_raw).lower())
        except ValueError:
            raise InvalidInputError(f"unknown blackout scope: {scope_raw!r}", field="scope") from None
    elif owner is not None:
        resolved_scope = BlackoutScope.PRACTITIONER
    else:
        resolved_scope = scope or BlackoutScope.GLOBAL

    return BlackoutRule(
        scope=resolved_scope,
        start_date=start,
        end_date=end,
        annual_recurrence=as_bool(
            first_value(payload, "annual_recurrence", "recurring_annually", "annual")
        ),
        reason=first_value(payload, "reason", "note"),
        practitioner_id=owner_id if resolved_scope == BlackoutScope.PRACTITIONER else None,
    )


def room_from_payload(payload: dict[str, Any]) -> Room:
    room_id = as_id(_required(payload, "id", "id", "room_id"))
    label = first_value(payload, "label", "name")
    if label is None:
        number = first_value(payload, "number")
        label = f"Room {number if number is not None else room_id}"
    return Room(
        id=room_id,
        label=str(label),
        active=as_bool(first_value(payload, "active", "is_active", "enabled"), default=True),
    )


def default_room_id_from_payload(practitioner: dict[str, Any]) -> str | None:
    """A practitioner's default room, wherever the payload keeps it."""
    value = first_value(
        practitioner,
        "default_room.id",
        "default_room_id",
        "default_room",
        "preferred_room.id",
        "preferred_room_id",
    )
    return as_id(value) if value is not None else None


def booking_from_payload(payload: dict[str, Any]) -> ExistingBooking:
    patient = first_value(payload, "patient_id", "patient.id")
    return ExistingBooking(
        date=as_date(_required(payload, "date", "date", "start"), "date"),
        time=as_time(_required(payload, "time", "time", "start_time"), "time"),
        practitioner_id=as_id(_required(payload, "practitioner_id", "practitioner_id", "practitioner.id")),
        room_id=as_id(_required(payload, "room_id", "room_id", "room.id")),
        state=as_state(_required(payload, "state", "state", "status")),
        patient_id=str(patient) if patient is not None else None,
    )


def appointment_from_payload(payload: dict[str, Any]) -> PatientAppointment:
    """Map one of a patient's appointments.

    The reschedule count may be split over a current and a legacy counter,
    or only flagged as "already rescheduled"; the largest wins.
    """
    count = max(
        as_int(first_value(payload, "reschedule_count", default=0), "reschedule_count"),
        as_int(first_value(payload, "times_rescheduled", default=0), "times_rescheduled"),
        0,
    )
    if as_bool(first_value(payload, "already_rescheduled", "rescheduled")):
        count = max(count, 1)

    room = first_value(payload, "room_id", "room.id")
    return PatientAppointment(
        appointment_id=as_id(_required(payload, "id", "id", "appointment_id")),
        practitioner_id=as_id(_required(payload, "practitioner_id", "practitioner_id", "practitioner.id")),
        date=as_date(_required(payload, "date", "date", "start"), "date"),
        time=as_time(_required(payload, "time", "time", "start_time"), "time"),
        state=as_state(_required(payload, "state", "state", "status")),
        room_id=str(room) if room is not None else None,
        reschedule_count=count,
    )


def cancellation_from_payload(payload: dict[str, Any]) -> Cancellation:
    cancelled_at = first_value(payload, "cancelled_at")
    role = first_value(payload, "cancelled_by_role", "cancelled_by.role")
    try:
        cancelled_by = CancelledByRole(str(role).lower()) if role is not None else None
    except ValueError:
        raise InvalidInputError(f"unknown cancelling role: {role!r}", field="cancelled_by_role") from None

    appointment_date = first_value(payload, "date", "appointment_date")
    appointment_time = first_value(payload, "time", "start_time", "appointment_time")
    return Cancellation(
        practitioner_id=as_id(_required(payload, "practitioner_id", "practitioner_id", "practitioner.id")),
        cancelled_at=as_datetime(cancelled_at, "cancelled_at") if cancelled_at is not None else None,
        was_no_show=as_bool(first_value(payload, "was_no_show", "no_show")),
        cancelled_by_role=cancelled_by,
        appointment_date=as_date(appointment_date) if appointment_date is not None else None,
        appointment_time=as_time(appointment_time) if appointment_time is not None else None,
    )


def patient_history_from_payload(
    patient_id: str,
    appointments: Iterable[dict[str, Any]],
) -> PatientBookingHistory:
    """Split a patient's appointment list into live appointments and cancellations."""
    history = PatientBookingHistory(patient_id=str(patient_id))
    for row in appointments:
        state = as_state(_required(row, "state", "state", "status"))
        if state == AppointmentState.CANCELLED:
            history.cancellations.append(cancellation_from_payload(row))
        else:
            history.appointments.append(appointment_from_payload(row))
    return history


def config_from_payload(payload: dict[str, Any] | None, defaults: SystemConfig | None = None) -> SystemConfig:
    """Map the configuration read API; omitted fields keep their defaults."""
    base = defaults or SystemConfig()
    data = payload or {}

    def pick(name: str, cast: type) -> Any:
        value = data.get(name)
        if value is None:
            return getattr(base, name)
        try:
            return cast(value)
        except (TypeError, ValueError):
            raise InvalidInputError(f"malformed config value for {name}: {value!r}", field=name) from None

    def pick_optional(name: str) -> int | None:
        value = data.get(name, getattr(base, name))
        return as_int(value, name) if value is not None else None

    period = data.get("daily_cap_period", base.daily_cap_period)
    try:
        period = DailyCapPeriod(period)
    except ValueError:
        raise InvalidInputError(f"unknown daily cap period: {period!r}", field="daily_cap_period") from None

    return SystemConfig(
        max_active_appointments_per_patient=pick("max_active_appointments_per_patient", int),
        max_appointments_per_patient_per_day=pick("max_appointments_per_patient_per_day", int),
        min_lead_hours=pick("min_lead_hours", float),
        auto_confirm_within_hours=pick("auto_confirm_within_hours", float),
        cooldown_days=pick("cooldown_days", int),
        max_reschedules_per_appointment=pick("max_reschedules_per_appointment", int),
        confirm_from_hours=pick("confirm_from_hours", float),
        confirm_until_hours=pick("confirm_until_hours", float),
        manage_until_hours=pick("manage_until_hours", float),
        booking_horizon_months=pick("booking_horizon_months", int),
        daily_cap_period=period,
        no_show_cooldown_days=pick_optional("no_show_cooldown_days"),
        patient_cancel_cooldown_days=pick_optional("patient_cancel_cooldown_days"),
    )
