"""Business logic services."""

from app.services.availability import AvailabilityService, DayAvailability, ManageAction
from app.services.snapshots import DatabaseSnapshotSource, SnapshotSource, UpstreamSnapshotSource

__all__ = [
    "AvailabilityService",
    "DayAvailability",
    "ManageAction",
    "DatabaseSnapshotSource",
    "SnapshotSource",
    "UpstreamSnapshotSource",
]
