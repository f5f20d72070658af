"""Database initialization utilities."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.base import Base
from app.db.session import engine
from app.models.scheduling import SystemConfiguration

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def drop_tables() -> None:
    """Drop all database tables (use with caution)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database tables dropped")


async def create_default_configuration(session: AsyncSession) -> SystemConfiguration | None:
    """Create the booking configuration row if none exists.

    Args:
        session: Database session

    Returns:
        Created configuration or None if one already exists
    """
    result = await session.execute(select(SystemConfiguration).limit(1))
    if result.scalar_one_or_none():
        logger.info("Booking configuration already exists, skipping")
        return None

    config = SystemConfiguration(
        max_active_appointments_per_patient=settings.default_max_active_appointments,
        max_appointments_per_patient_per_day=settings.default_max_appointments_per_day,
        min_lead_hours=settings.default_min_lead_hours,
        auto_confirm_within_hours=settings.default_auto_confirm_within_hours,
        cooldown_days=settings.default_cooldown_days,
        max_reschedules_per_appointment=settings.default_max_reschedules,
        confirm_from_hours=settings.default_confirm_from_hours,
        confirm_until_hours=settings.default_confirm_until_hours,
        manage_until_hours=settings.default_manage_until_hours,
        booking_horizon_months=settings.booking_horizon_months,
    )
    session.add(config)
    await session.commit()
    await session.refresh(config)

    logger.info("Created default booking configuration")
    return config


async def init_db(session: AsyncSession) -> None:
    """Initialize database with required data.

    Args:
        session: Database session
    """
    await create_tables()
    await create_default_configuration(session)
    logger.info("Database initialization complete")
