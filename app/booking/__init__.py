"""Booking module for admission rules and appointment management policy."""

from app.booking.policy import (
    BookingDecision,
    BookingPolicyEvaluator,
    CallerRole,
    ManageDecision,
    PolicyViolation,
    ViolationKind,
)

__all__ = [
    "BookingPolicyEvaluator",
    "BookingDecision",
    "ManageDecision",
    "PolicyViolation",
    "ViolationKind",
    "CallerRole",
]
