"""Read-only camp inventory snapshot used by allocation runs."""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from bedalloc.domain.models import (
    BedStatus,
    Camp,
    EligibleBed,
    InventorySnapshot,
    OccupantType,
    Person,
    PersonType,
)
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.errors import CampNotFoundError
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)


class InventoryIndex:
    """Builds Camp -> Floor -> Room -> Bed lookups for one camp."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def build_for_camp_id(self, camp_id: int) -> InventorySnapshot:
        camp = self._repository.get_camp(camp_id)
        if camp is None:
            raise CampNotFoundError(f"Camp not found: {camp_id}")
        return self.build(camp)

    def build(self, camp: Camp) -> InventorySnapshot:
        """Snapshot eligible beds and current occupants of ``camp``.

        A bed is eligible when it is available, or reserved for a technician
        whose approved leave allows a temporary fill that nobody holds yet.
        """
        inventory = self._repository.list_camp_inventory(camp.camp_id)
        if not inventory:
            logger.info("Camp has no inventory | camp_id=%s", camp.camp_id)
            return InventorySnapshot(camp=camp, beds=(), occupants_by_room={}, total_beds=0)

        reserved_for_ids = sorted(
            {
                bed.reserved_for
                for _, _, bed in inventory
                if bed.status is BedStatus.RESERVED and bed.reserved_for is not None
            }
        )
        open_leaves = {
            leave.technician_id: leave
            for leave in self._repository.list_leave_requests(reserved_for_ids)
            if leave.allows_temporary_fill
        }

        occupant_ids: dict[int, list[int]] = defaultdict(list)
        eligible: list[EligibleBed] = []
        for floor, room, bed in inventory:
            if bed.status is BedStatus.OCCUPIED and bed.occupant is not None:
                occupant_ids[room.room_id].append(bed.occupant.person_id)
                continue
            if bed.status is BedStatus.AVAILABLE:
                eligible.append(EligibleBed(bed=bed, room=room, floor=floor))
                continue
            leave = open_leaves.get(bed.reserved_for) if bed.reserved_for is not None else None
            if leave is not None and bed.temporary_occupant_id is None:
                eligible.append(
                    EligibleBed(
                        bed=bed,
                        room=room,
                        floor=floor,
                        is_temporary=True,
                        leave_id=leave.leave_id,
                    )
                )

        people = {
            person.person_id: person
            for person in self._repository.get_persons(
                [person_id for ids in occupant_ids.values() for person_id in ids]
            )
        }
        occupants_by_room: dict[int, tuple[Person, ...]] = {
            room_id: tuple(people[person_id] for person_id in ids if person_id in people)
            for room_id, ids in occupant_ids.items()
        }

        logger.debug(
            "Inventory snapshot built | camp_id=%s | total_beds=%s | eligible=%s | occupied_rooms=%s",
            camp.camp_id,
            len(inventory),
            len(eligible),
            len(occupants_by_room),
        )
        return InventorySnapshot(
            camp=camp,
            beds=tuple(eligible),
            occupants_by_room=occupants_by_room,
            total_beds=len(inventory),
        )


def restrict_to_personnel_type(
    snapshot: InventorySnapshot,
    personnel_type: PersonType,
    room_type_matching: bool = True,
) -> InventorySnapshot:
    """Narrow an induction snapshot to rooms the selected type may use.

    Leave-reserved beds are only offered to technicians in induction runs.
    """
    allowed = {OccupantType.MIXED}
    if not room_type_matching:
        allowed.update({OccupantType.TECHNICIAN_ONLY, OccupantType.EXTERNAL_ONLY})
    elif personnel_type is PersonType.TECHNICIAN:
        allowed.add(OccupantType.TECHNICIAN_ONLY)
    else:
        allowed.add(OccupantType.EXTERNAL_ONLY)

    beds = tuple(
        bed
        for bed in snapshot.beds
        if bed.room.occupant_type in allowed
        and (not bed.is_temporary or personnel_type is PersonType.TECHNICIAN)
    )
    return InventorySnapshot(
        camp=snapshot.camp,
        beds=beds,
        occupants_by_room=snapshot.occupants_by_room,
        total_beds=snapshot.total_beds,
    )
