"""Per-room occupancy tracking during a single allocation run."""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from bedalloc.domain.models import Person, PersonType


class RoomOccupancyLedger:
    """Existing plus tentative occupants, keyed by room id.

    Existing occupants come first, tentative ones are appended in assignment
    order, so the established type of a room is always its first entry.
    """

    def __init__(self, occupants_by_room: Mapping[int, Sequence[Person]] | None = None) -> None:
        self._occupants: dict[int, list[Person]] = {
            room_id: list(occupants)
            for room_id, occupants in (occupants_by_room or {}).items()
        }

    def occupants(self, room_id: int) -> tuple[Person, ...]:
        return tuple(self._occupants.get(room_id, ()))

    def occupancy(self, room_id: int) -> int:
        return len(self._occupants.get(room_id, ()))

    def established_type(self, room_id: int) -> Optional[PersonType]:
        occupants = self._occupants.get(room_id)
        if not occupants:
            return None
        return occupants[0].person_type

    def nationalities(self, room_id: int) -> set[Optional[str]]:
        return {occupant.nationality for occupant in self._occupants.get(room_id, ())}

    def record(self, room_id: int, person: Person) -> None:
        self._occupants.setdefault(room_id, []).append(person)
