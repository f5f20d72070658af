"""Database models for the dental booking service."""

from app.models.scheduling import (
    Appointment,
    BlackoutPeriod,
    Practitioner,
    Room,
    SystemConfiguration,
    WeeklySchedule,
)

__all__ = [
    "Appointment",
    "BlackoutPeriod",
    "Practitioner",
    "Room",
    "SystemConfiguration",
    "WeeklySchedule",
]
