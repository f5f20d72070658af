"""Create demo scheduling data (rooms, practitioners, weekly schedules, blackouts)."""

import asyncio
from datetime import date, time
from uuid import uuid4

from sqlalchemy import select

from app.db.init_db import create_default_configuration, create_tables
from app.db.session import AsyncSessionLocal
from app.models.scheduling import BlackoutPeriod, Practitioner, Room, WeeklySchedule


async def create_scheduling_data():
    """Create rooms, two practitioners with weekly hours, and clinic holidays."""
    await create_tables()

    async with AsyncSessionLocal() as session:
        await create_default_configuration(session)

        # Check if rooms already exist
        result = await session.execute(select(Room).limit(1))
        if result.scalar_one_or_none():
            print("Scheduling data already exists, skipping...")
            return

        rooms = [
            Room(id=str(uuid4()), label=f"Chair {n}", number=n, is_active=True)
            for n in (1, 2, 3)
        ]
        session.add_all(rooms)
        print(f"Created {len(rooms)} rooms")

        practitioners = [
            Practitioner(
                id=str(uuid4()),
                display_name="Dr. Ana Ribeiro",
                default_room_id=rooms[0].id,
            ),
            Practitioner(
                id=str(uuid4()),
                display_name="Dr. Tomas Leal",
                default_room_id=rooms[1].id,
            ),
        ]
        session.add_all(practitioners)
        print(f"Created {len(practitioners)} practitioners")

        schedules_created = 0
        for practitioner in practitioners:
            # Monday to Friday, 9:00 - 18:00 (lunch is excluded when slots are built)
            for weekday in range(5):
                session.add(
                    WeeklySchedule(
                        id=str(uuid4()),
                        practitioner_id=practitioner.id,
                        day_of_week=weekday,
                        start_time=time(9, 0),
                        end_time=time(18, 0),
                    )
                )
                schedules_created += 1

        # Saturday mornings for the first practitioner only
        session.add(
            WeeklySchedule(
                id=str(uuid4()),
                practitioner_id=practitioners[0].id,
                day_of_week=5,
                start_time=time(9, 0),
                end_time=time(12, 0),
            )
        )
        schedules_created += 1
        print(f"Created {schedules_created} weekly schedule entries")

        blackouts = [
            BlackoutPeriod(
                id=str(uuid4()),
                start_date=date(2000, 12, 24),
                end_date=date(2000, 1, 2),
                annual_recurrence=True,
                reason="Clinic closed for the holidays",
            ),
            BlackoutPeriod(
                id=str(uuid4()),
                start_date=date(2000, 8, 1),
                end_date=date(2000, 8, 15),
                annual_recurrence=True,
                reason="Summer leave",
                practitioner_id=practitioners[1].id,
            ),
        ]
        session.add_all(blackouts)
        print(f"Created {len(blackouts)} blackout periods")

        await session.commit()

        print("\n=== Summary ===")
        for practitioner in practitioners:
            print(f"Practitioner {practitioner.display_name}: {practitioner.id}")
        print("Scheduling data setup complete!")


if __name__ == "__main__":
    asyncio.run(create_scheduling_data())
