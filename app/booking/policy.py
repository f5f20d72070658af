"""Booking policy enforcement.

Admission control for a candidate booking, plus the sibling rules for
rescheduling, cancelling and confirming an existing appointment.

Every rule is evaluated; none short-circuits, so the caller can show every
violated rule at once. Violations are returned as values, never raised.
Staff act on behalf of patients and bypass the lead-time and cooldown rules
as well as the patient-only manage restrictions.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum

from app.availability.blackout import BlackoutIndex
from app.availability.models import (
    ACTIVE_STATES,
    AppointmentState,
    DailyCapPeriod,
    PatientAppointment,
    PatientBookingHistory,
    SystemConfig,
)
from app.utils.time import add_months, iso_week_bounds


class ViolationKind(str, Enum):
    """Machine-readable reason a booking action is refused."""

    OUT_OF_RANGE = "out_of_range"
    BLACKOUT = "blackout"
    LEAD_TIME = "lead_time"
    DAILY_CAP = "daily_cap"
    ACTIVE_CAP = "active_cap"
    PRACTITIONER_EXCLUSIVITY = "practitioner_exclusivity"
    COOLDOWN = "cooldown"
    RESCHEDULE_LIMIT = "reschedule_limit"
    MANAGE_WINDOW_CLOSED = "manage_window_closed"
    CONFIRMED_LOCKED = "confirmed_locked"
    NOT_ACTIVE = "not_active"
    CONFIRM_WINDOW = "confirm_window"


class CallerRole(str, Enum):
    """Who is asking for the booking action."""

    PATIENT = "patient"
    STAFF = "staff"


# Rules staff are not bound by
STAFF_EXEMPT_RULES = frozenset({
    ViolationKind.LEAD_TIME,
    ViolationKind.COOLDOWN,
    ViolationKind.MANAGE_WINDOW_CLOSED,
    ViolationKind.CONFIRMED_LOCKED,
})


@dataclass
class PolicyViolation:
    """A refused rule.

    Attributes:
        kind: Which rule refused
        detail: Human-readable explanation
        unlock_date: First day the rule stops applying, when known
    """

    kind: ViolationKind
    detail: str
    unlock_date: date | None = None


@dataclass
class BookingDecision:
    """Admission decision for a candidate booking.

    ``initial_state`` is the state the booking would be created in; it is
    computed even when the booking is refused.
    """

    admitted: bool
    reasons: list[PolicyViolation] = field(default_factory=list)
    initial_state: AppointmentState = AppointmentState.PENDING

    @property
    def kinds(self) -> list[ViolationKind]:
        return [r.kind for r in self.reasons]


@dataclass
class ManageDecision:
    """Decision for rescheduling, cancelling or confirming an appointment."""

    allowed: bool
    reasons: list[PolicyViolation] = field(default_factory=list)

    @property
    def kinds(self) -> list[ViolationKind]:
        return [r.kind for r in self.reasons]


def hours_until(starts_at: datetime, now: datetime) -> float:
    """Hours from ``now`` until ``starts_at`` (negative once started)."""
    return (starts_at - now).total_seconds() / 3600


def initial_state_for(starts_at: datetime, now: datetime, config: SystemConfig) -> AppointmentState:
    """Last-minute bookings skip manual confirmation.

    Returns:
        CONFIRMED if the appointment starts within ``auto_confirm_within_hours``,
        PENDING otherwise
    """
    if hours_until(starts_at, now) < config.auto_confirm_within_hours:
        return AppointmentState.CONFIRMED
    return AppointmentState.PENDING


class BookingPolicyEvaluator:
    """Evaluates booking rules for one caller role.

    Args:
        blackout_index: Blocked days for the practitioner; None skips the check
        role: Patient or staff context
    """

    def __init__(
        self,
        blackout_index: BlackoutIndex | None = None,
        role: CallerRole = CallerRole.PATIENT,
    ) -> None:
        self.blackout_index = blackout_index
        self.role = role

    def _keep(self, violations: list[PolicyViolation | None]) -> list[PolicyViolation]:
        kept = [v for v in violations if v is not None]
        if self.role == CallerRole.STAFF:
            kept = [v for v in kept if v.kind not in STAFF_EXEMPT_RULES]
        return kept

    def evaluate(
        self,
        patient_id: str,
        practitioner_id: str,
        day: date,
        start: time,
        history: PatientBookingHistory,
        config: SystemConfig,
        *,
        now: datetime,
        replacing: str | None = None,
    ) -> BookingDecision:
        """Decide whether a patient may book ``practitioner_id`` at ``day`` ``start``.

        Args:
            patient_id: Patient the booking is for
            practitioner_id: Practitioner being booked
            day: Appointment date
            start: Appointment start time
            history: Patient's appointments and recent cancellations
            config: Clinic booking configuration
            now: Clinic-local current time
            replacing: Appointment being rescheduled; it does not count
                against the caps or the exclusivity rule

        Returns:
            BookingDecision with every violated rule and the initial state
        """
        starts_at = datetime.combine(day, start)
        active = [
            a for a in history.active_appointments
            if a.appointment_id != replacing
        ]

        reasons = self._keep([
            self._check_date_range(day, now, config),
            self._check_blackout(day),
            self._check_lead_time(starts_at, now, config),
            self._check_daily_cap(day, active, config),
            self._check_active_cap(active, config),
            self._check_exclusivity(practitioner_id, active),
            self._check_cooldown(practitioner_id, day, history, config),
        ])

        return BookingDecision(
            admitted=not reasons,
            reasons=reasons,
            initial_state=initial_state_for(starts_at, now, config),
        )

    # ------------------------------------------------------------------
    # Admission rules
    # ------------------------------------------------------------------

    def _check_date_range(self, day: date, now: datetime, config: SystemConfig) -> PolicyViolation | None:
        today = now.date()
        horizon = add_months(today, config.booking_horizon_months)
        if day < today:
            return PolicyViolation(
                kind=ViolationKind.OUT_OF_RANGE,
                detail=f"{day.isoformat()} is in the past.",
            )
        if day > horizon:
            return PolicyViolation(
                kind=ViolationKind.OUT_OF_RANGE,
                detail=(
                    f"Bookings can be made at most {config.booking_horizon_months} "
                    f"month(s) ahead (until {horizon.isoformat()})."
                ),
            )
        return None

    def _check_blackout(self, day: date) -> PolicyViolation | None:
        if self.blackout_index is None:
            return None
        info = self.blackout_index.is_blocked(day)
        if not info.blocked:
            return None
        detail = f"{day.isoformat()} is blocked"
        if info.reason:
            detail += f": {info.reason}"
        return PolicyViolation(kind=ViolationKind.BLACKOUT, detail=detail + ".")

    def _check_lead_time(self, starts_at: datetime, now: datetime, config: SystemConfig) -> PolicyViolation | None:
        if hours_until(starts_at, now) >= config.min_lead_hours:
            return None
        return PolicyViolation(
            kind=ViolationKind.LEAD_TIME,
            detail=f"Appointments must be booked at least {config.min_lead_hours:g} hour(s) in advance.",
        )

    def _check_daily_cap(
        self,
        day: date,
        active: list[PatientAppointment],
        config: SystemConfig,
    ) -> PolicyViolation | None:
        if config.daily_cap_period == DailyCapPeriod.WEEK:
            first, last = iso_week_bounds(day)
            period = "week"
        else:
            first = last = day
            period = "day"

        count = sum(1 for a in active if first <= a.date <= last)
        if count < config.max_appointments_per_patient_per_day:
            return None
        return PolicyViolation(
            kind=ViolationKind.DAILY_CAP,
            detail=(
                f"You already have {count} active appointment(s) that {period}; "
                f"the limit is {config.max_appointments_per_patient_per_day}."
            ),
        )

    def _check_active_cap(self, active: list[PatientAppointment], config: SystemConfig) -> PolicyViolation | None:
        if len(active) < config.max_active_appointments_per_patient:
            return None
        return PolicyViolation(
            kind=ViolationKind.ACTIVE_CAP,
            detail=(
                f"You already have {len(active)} active appointment(s); "
                f"the limit is {config.max_active_appointments_per_patient}."
            ),
        )

    def _check_exclusivity(self, practitioner_id: str, active: list[PatientAppointment]) -> PolicyViolation | None:
        if not any(a.practitioner_id == practitioner_id for a in active):
            return None
        return PolicyViolation(
            kind=ViolationKind.PRACTITIONER_EXCLUSIVITY,
            detail="You already have an active appointment with this practitioner.",
        )

    def _check_cooldown(
        self,
        practitioner_id: str,
        day: date,
        history: PatientBookingHistory,
        config: SystemConfig,
    ) -> PolicyViolation | None:
        cancellations = [
            c for c in history.cancellations
            if c.practitioner_id == practitioner_id and c.cancelled_at is not None
        ]
        if not cancellations:
            return None

        latest = max(cancellations, key=lambda c: c.cancelled_at)
        days = config.cooldown_for(latest)
        if days <= 0:
            return None

        unlock = latest.cancelled_at.date() + timedelta(days=days)
        if day >= unlock:
            return None

        cause = "a missed appointment" if latest.was_no_show else "a cancellation"
        return PolicyViolation(
            kind=ViolationKind.COOLDOWN,
            detail=(
                f"After {cause} on {latest.cancelled_at.date().isoformat()} you can book "
                f"with this practitioner again from {unlock.isoformat()}."
            ),
            unlock_date=unlock,
        )

    # ------------------------------------------------------------------
    # Managing an existing appointment
    # ------------------------------------------------------------------

    def _manage_violations(
        self,
        appointment: PatientAppointment,
        config: SystemConfig,
        now: datetime,
        action: str,
    ) -> list[PolicyViolation | None]:
        violations: list[PolicyViolation | None] = []
        if appointment.state not in ACTIVE_STATES:
            violations.append(PolicyViolation(
                kind=ViolationKind.NOT_ACTIVE,
                detail=f"A {appointment.state.value} appointment cannot be {action}.",
            ))
        elif appointment.state == AppointmentState.CONFIRMED:
            violations.append(PolicyViolation(
                kind=ViolationKind.CONFIRMED_LOCKED,
                detail=f"A confirmed appointment cannot be {action} online; please contact the clinic.",
            ))

        if hours_until(appointment.starts_at, now) < config.manage_until_hours:
            violations.append(PolicyViolation(
                kind=ViolationKind.MANAGE_WINDOW_CLOSED,
                detail=(
                    f"Appointments can only be {action} up to "
                    f"{config.manage_until_hours:g} hour(s) before they start."
                ),
            ))
        return violations

    def evaluate_reschedule(
        self,
        appointment: PatientAppointment,
        config: SystemConfig,
        *,
        now: datetime,
    ) -> ManageDecision:
        """Check whether an appointment may be moved.

        Once the reschedule limit is reached only cancellation remains,
        whatever the timing and whoever asks.
        """
        violations = self._manage_violations(appointment, config, now, "rescheduled")
        if appointment.reschedule_count >= config.max_reschedules_per_appointment:
            violations.append(PolicyViolation(
                kind=ViolationKind.RESCHEDULE_LIMIT,
                detail=(
                    f"This appointment has already been rescheduled "
                    f"{appointment.reschedule_count} time(s); only cancellation is possible."
                ),
            ))
        reasons = self._keep(violations)
        return ManageDecision(allowed=not reasons, reasons=reasons)

    def evaluate_cancellation(
        self,
        appointment: PatientAppointment,
        config: SystemConfig,
        *,
        now: datetime,
    ) -> ManageDecision:
        """Check whether an appointment may be cancelled."""
        reasons = self._keep(self._manage_violations(appointment, config, now, "cancelled"))
        return ManageDecision(allowed=not reasons, reasons=reasons)

    def evaluate_confirmation(
        self,
        appointment: PatientAppointment,
        config: SystemConfig,
        *,
        now: datetime,
    ) -> ManageDecision:
        """Check whether a pending appointment may be confirmed now.

        Confirmation opens ``confirm_from_hours`` and closes
        ``confirm_until_hours`` before the appointment.
        """
        reasons: list[PolicyViolation] = []
        if appointment.state != AppointmentState.PENDING:
            reasons.append(PolicyViolation(
                kind=ViolationKind.NOT_ACTIVE,
                detail=f"Only pending appointments can be confirmed (this one is {appointment.state.value}).",
            ))

        hours = hours_until(appointment.starts_at, now)
        if hours > config.confirm_from_hours:
            opens = appointment.starts_at - timedelta(hours=config.confirm_from_hours)
            reasons.append(PolicyViolation(
                kind=ViolationKind.CONFIRM_WINDOW,
                detail=f"Confirmation opens {config.confirm_from_hours:g} hour(s) before the appointment.",
                unlock_date=opens.date(),
            ))
        elif hours < config.confirm_until_hours:
            reasons.append(PolicyViolation(
                kind=ViolationKind.CONFIRM_WINDOW,
                detail="The confirmation window has closed; please contact the clinic.",
            ))
        return ManageDecision(allowed=not reasons, reasons=reasons)
