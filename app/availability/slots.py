"""Slot-to-room resolution for one calendar day."""

from collections import defaultdict
from datetime import date, time
from typing import Iterable, Mapping

from app.availability.models import (
    COUNTED_STATES,
    ExistingBooking,
    Room,
    SlotOption,
)


def order_rooms(rooms: Iterable[Room], default_room_id: str | None = None) -> list[Room]:
    """Active rooms in the order they are tried.

    The default room comes first (when active), the rest follow by id.
    """
    active = sorted((r for r in rooms if r.active), key=lambda r: r.id)
    if default_room_id is None:
        return active
    default = [r for r in active if r.id == default_room_id]
    others = [r for r in active if r.id != default_room_id]
    return default + others


def occupied_times(
    bookings: Iterable[ExistingBooking],
    day: date,
    practitioner_id: str | None = None,
) -> tuple[dict[str, set[time]], set[time]]:
    """Split a day's bookings into taken times per room and per practitioner.

    Cancelled bookings free their room.

    Returns:
        Tuple of (booked_by_room, practitioner_busy)
    """
    booked_by_room: dict[str, set[time]] = defaultdict(set)
    practitioner_busy: set[time] = set()
    for booking in bookings:
        if booking.date != day or booking.state not in COUNTED_STATES:
            continue
        booked_by_room[booking.room_id].add(booking.time)
        if practitioner_id is not None and booking.practitioner_id == practitioner_id:
            practitioner_busy.add(booking.time)
    return dict(booked_by_room), practitioner_busy


class SlotResolver:
    """Binds each free start time of a day to one room.

    Rooms are tried default-first, then by id; a time with no free room is
    not offered at all.
    """

    def __init__(self, rooms: Iterable[Room], default_room_id: str | None = None) -> None:
        self.default_room_id = default_room_id
        self.ordered_rooms = order_rooms(rooms, default_room_id)

    def resolve(
        self,
        day: date,
        practitioner_id: str,
        base: Iterable[time],
        booked_by_room: Mapping[str, Iterable[time]],
        practitioner_busy: Iterable[time] = (),
    ) -> list[SlotOption]:
        """Free start times for ``day``, each with its chosen room.

        Args:
            day: Calendar day being resolved
            practitioner_id: Practitioner the slots are for
            base: Candidate start times from the weekly schedule
            booked_by_room: Start times already taken, per room id
            practitioner_busy: Times the practitioner is booked in any room

        Returns:
            Ascending list of slot options; empty when nothing is free
        """
        taken = {room_id: set(times) for room_id, times in booked_by_room.items()}
        busy = set(practitioner_busy)
        options: list[SlotOption] = []

        for t in sorted(set(base)):
            if t in busy:
                continue
            for room in self.ordered_rooms:
                if t in taken.get(room.id, ()):
                    continue
                options.append(
                    SlotOption(
                        time=t,
                        room_id=room.id,
                        room_label=room.label,
                        is_default_room=room.id == self.default_room_id,
                    )
                )
                break

        return options


def resolve(
    day: date,
    practitioner_id: str,
    rooms: Iterable[Room],
    base: Iterable[time],
    booked_by_room: Mapping[str, Iterable[time]],
    default_room_id: str | None = None,
) -> list[SlotOption]:
    """Functional shortcut for ``SlotResolver(rooms, default_room_id).resolve``."""
    resolver = SlotResolver(rooms, default_room_id)
    return resolver.resolve(day, practitioner_id, base, booked_by_room)
