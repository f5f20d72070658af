"""FastAPI dependency injection utilities."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.availability.models import DayBadge
from app.availability.monthly import MonthKey, MonthSummaryCache
from app.core.config import settings
from app.db.session import AsyncSessionLocal, get_db
from app.services.availability import AvailabilityService
from app.services.snapshots import (
    DatabaseSnapshotSource,
    SnapshotSource,
    UpstreamSnapshotSource,
)

# Process-wide state, created on first use
_upstream_source: UpstreamSnapshotSource | None = None
_month_cache: MonthSummaryCache | None = None


def get_upstream_source() -> UpstreamSnapshotSource:
    """Shared upstream source (one pooled httpx client per process)."""
    global _upstream_source
    if _upstream_source is None:
        _upstream_source = UpstreamSnapshotSource.from_settings(settings)
    return _upstream_source


async def close_upstream_source() -> None:
    """Close the shared upstream client, if one was opened."""
    global _upstream_source
    if _upstream_source is not None:
        await _upstream_source.aclose()
        _upstream_source = None


@asynccontextmanager
async def open_snapshot_source() -> AsyncIterator[SnapshotSource]:
    """Snapshot source outliving any single request."""
    if settings.snapshot_backend == "upstream":
        yield get_upstream_source()
        return
    async with AsyncSessionLocal() as session:
        yield DatabaseSnapshotSource(session)


async def _load_month(key: MonthKey) -> dict[date, DayBadge]:
    async with open_snapshot_source() as source:
        return await AvailabilityService(source).load_month(key)


def get_month_cache() -> MonthSummaryCache:
    """Shared month badge cache."""
    global _month_cache
    if _month_cache is None:
        _month_cache = MonthSummaryCache(_load_month)
    return _month_cache


async def get_snapshot_source(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> SnapshotSource:
    """Snapshot source for the configured backend."""
    if settings.snapshot_backend == "upstream":
        return get_upstream_source()
    return DatabaseSnapshotSource(session)


async def get_availability_service(
    source: Annotated[SnapshotSource, Depends(get_snapshot_source)],
    cache: Annotated[MonthSummaryCache, Depends(get_month_cache)],
) -> AvailabilityService:
    """Availability service bound to this request's snapshot source."""
    return AvailabilityService(source, cache=cache)


# Type aliases for common dependencies
DbSession = Annotated[AsyncSession, Depends(get_db)]
Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
