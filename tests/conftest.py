"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Generator
from datetime import date, datetime, time, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_availability_service
from app.availability.models import AppointmentState, CancelledByRole, SystemConfig
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.scheduling import (
    Appointment,
    BlackoutPeriod,
    Practitioner,
    Room,
    SystemConfiguration,
    WeeklySchedule,
)
from app.services.availability import AvailabilityService
from app.services.snapshots import DatabaseSnapshotSource


# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Monday 3 March 2025, 08:00 clinic time
FIXED_NOW = datetime(2025, 3, 3, 8, 0)

PRACTITIONER_ID = "prac-ana"
OTHER_PRACTITIONER_ID = "prac-tomas"
ROOM_1 = "room-1"
ROOM_2 = "room-2"
ROOM_3 = "room-3"
PATIENT_ID = "patient-1"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def service(async_session: AsyncSession) -> AvailabilityService:
    """Availability service over the test database with a frozen clock."""
    return AvailabilityService(
        DatabaseSnapshotSource(async_session),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture(scope="function")
def client(async_session: AsyncSession, service: AvailabilityService) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_availability_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def booking_config() -> SystemConfig:
    """Clinic booking configuration with the usual defaults."""
    return SystemConfig(
        max_active_appointments_per_patient=3,
        max_appointments_per_patient_per_day=1,
        min_lead_hours=2,
        auto_confirm_within_hours=24,
        cooldown_days=3,
        max_reschedules_per_appointment=1,
        confirm_from_hours=24,
        confirm_until_hours=12,
        manage_until_hours=12,
        booking_horizon_months=3,
    )


@pytest.fixture
async def clinic(async_session: AsyncSession) -> dict[str, str]:
    """Create rooms, two practitioners, weekly hours and configuration.

    Ana works Monday to Friday 09:00-18:00 with Room 1 as her default room;
    Tomas works Tuesdays 09:00-12:00 and has no default room.
    """
    rooms = [
        Room(id=ROOM_1, label="Chair 1", number=1),
        Room(id=ROOM_2, label="Chair 2", number=2),
        Room(id=ROOM_3, label="Chair 3", number=3, is_active=False),
    ]
    async_session.add_all(rooms)

    async_session.add_all([
        Practitioner(id=PRACTITIONER_ID, display_name="Dr. Ana Ribeiro", default_room_id=ROOM_1),
        Practitioner(id=OTHER_PRACTITIONER_ID, display_name="Dr. Tomas Leal"),
    ])

    for weekday in range(5):
        async_session.add(
            WeeklySchedule(
                practitioner_id=PRACTITIONER_ID,
                day_of_week=weekday,
                start_time=time(9, 0),
                end_time=time(18, 0),
            )
        )
    async_session.add(
        WeeklySchedule(
            practitioner_id=OTHER_PRACTITIONER_ID,
            day_of_week=1,
            start_time=time(9, 0),
            end_time=time(12, 0),
        )
    )

    async_session.add(SystemConfiguration())
    await async_session.commit()

    return {
        "practitioner_id": PRACTITIONER_ID,
        "other_practitioner_id": OTHER_PRACTITIONER_ID,
        "room_1": ROOM_1,
        "room_2": ROOM_2,
    }


@pytest.fixture
async def clinic_holidays(async_session: AsyncSession, clinic: dict[str, str]) -> None:
    """A clinic-wide closure and one practitioner's leave."""
    async_session.add_all([
        BlackoutPeriod(
            start_date=date(2025, 3, 10),
            end_date=date(2025, 3, 11),
            reason="Clinic refurbishment",
        ),
        BlackoutPeriod(
            practitioner_id=PRACTITIONER_ID,
            start_date=date(2025, 3, 11),
            end_date=date(2025, 3, 12),
            reason="Conference",
        ),
        BlackoutPeriod(
            practitioner_id=OTHER_PRACTITIONER_ID,
            start_date=date(2025, 3, 17),
            end_date=date(2025, 3, 17),
            reason="Training",
        ),
    ])
    await async_session.commit()


def make_appointment(
    day: date,
    start: time,
    *,
    practitioner_id: str = PRACTITIONER_ID,
    room_id: str = ROOM_1,
    patient_id: str = "patient-other",
    state: AppointmentState = AppointmentState.PENDING,
    **kwargs,
) -> Appointment:
    """Build an appointment row with sensible defaults."""
    return Appointment(
        patient_id=patient_id,
        practitioner_id=practitioner_id,
        room_id=room_id,
        appointment_date=day,
        start_time=start,
        state=state.value,
        **kwargs,
    )


@pytest.fixture
async def patient_history(async_session: AsyncSession, clinic: dict[str, str]) -> None:
    """PATIENT_ID holds one pending appointment and cancelled one with Tomas."""
    async_session.add_all([
        make_appointment(
            date(2025, 3, 20),
            time(10, 0),
            patient_id=PATIENT_ID,
            id="appt-pending",
        ),
        make_appointment(
            date(2025, 3, 4),
            time(9, 0),
            practitioner_id=OTHER_PRACTITIONER_ID,
            room_id=ROOM_2,
            patient_id=PATIENT_ID,
            state=AppointmentState.CANCELLED,
            cancelled_at=datetime(2025, 3, 2, 10, 0, tzinfo=timezone.utc),
            cancelled_by_role=CancelledByRole.PATIENT.value,
            id="appt-cancelled",
        ),
    ])
    await async_session.commit()
