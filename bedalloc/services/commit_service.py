"""Apply an allocation proposal to storage, or park it on a transfer request."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bedalloc.domain.models import (
    AllocationMode,
    AllocationResult,
    BedStatus,
    CommitFailure,
    CommitFailureKind,
    CommitReport,
    PersonType,
    ProposalEntry,
)
from bedalloc.repository.data_repository import DataRepository, RepositoryError
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)

_REQUIRED_PAIRING_KEYS = ("personnel_id", "personnel_type", "bed_id", "room_id", "floor_id")


@dataclass(frozen=True)
class StoredPairing:
    """One person -> bed pairing as persisted on a transfer request."""

    personnel_id: int
    personnel_type: PersonType
    bed_id: int
    room_id: int
    floor_id: int
    is_temporary: bool = False


def serialize_proposal(result: AllocationResult) -> str:
    return json.dumps(
        [
            {
                "personnel_id": entry.person.person_id,
                "personnel_type": entry.person.person_type.value,
                "bed_id": entry.bed.bed_id,
                "room_id": entry.room.room_id,
                "floor_id": entry.floor.floor_id,
                "is_temporary": entry.is_temporary,
            }
            for entry in result.proposal
        ]
    )


def parse_proposal(raw: Optional[str]) -> list[StoredPairing]:
    """Parse a stored proposal, raising ValueError on malformed payloads."""
    if not raw:
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Stored allocation is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError("Stored allocation must be a JSON list")

    pairings: list[StoredPairing] = []
    seen_beds: set[int] = set()
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValueError(f"Stored allocation entry {index} must be an object")
        missing = [key for key in _REQUIRED_PAIRING_KEYS if item.get(key) is None]
        if missing:
            raise ValueError(f"Stored allocation entry {index} is missing {missing}")
        try:
            pairing = StoredPairing(
                personnel_id=int(item["personnel_id"]),
                personnel_type=PersonType(item["personnel_type"]),
                bed_id=int(item["bed_id"]),
                room_id=int(item["room_id"]),
                floor_id=int(item["floor_id"]),
                is_temporary=bool(item.get("is_temporary", False)),
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Stored allocation entry {index} is invalid: {exc}") from exc
        if pairing.bed_id in seen_beds:
            raise ValueError(f"Stored allocation assigns bed {pairing.bed_id} twice")
        seen_beds.add(pairing.bed_id)
        pairings.append(pairing)
    return pairings


class ProposalCommitter:
    """Writes proposals one pairing at a time; failures never abort the batch."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _occupy(self, entry: ProposalEntry) -> bool:
        person = entry.person
        if entry.is_temporary and entry.bed.leave_id is not None:
            return self._repository.claim_temporary_bed(
                entry.bed.bed_id, entry.bed.leave_id, person.person_id
            )
        is_technician = person.person_type is PersonType.TECHNICIAN
        return self._repository.compare_and_set_bed(
            entry.bed.bed_id,
            expected_status=BedStatus.AVAILABLE,
            new_status=BedStatus.OCCUPIED,
            technician_id=person.person_id if is_technician else None,
            external_personnel_id=None if is_technician else person.person_id,
        )

    def _apply(self, entry: ProposalEntry, camp_id: int) -> Optional[CommitFailure]:
        person_id = entry.person.person_id
        bed_id = entry.bed.bed_id
        try:
            if not self._occupy(entry):
                return CommitFailure(
                    person_id=person_id,
                    bed_id=bed_id,
                    kind=CommitFailureKind.CONFLICT,
                    detail=f"{entry.bed.bed_label} changed since the allocation snapshot",
                )
            self._repository.assign_person_bed(person_id, bed_id, camp_id)
        except RepositoryError as exc:
            return CommitFailure(
                person_id=person_id,
                bed_id=bed_id,
                kind=CommitFailureKind.BACKEND_ERROR,
                detail=str(exc),
            )
        return None

    def commit_direct(self, result: AllocationResult) -> CommitReport:
        """Occupy beds and move personnel, pairing by pairing, in proposal order."""
        succeeded = 0
        failures: list[CommitFailure] = []
        for entry in result.proposal:
            failure = self._apply(entry, result.camp_id)
            if failure is None:
                succeeded += 1
                continue
            failures.append(failure)
            logger.warning(
                "Commit failed | person_id=%s | bed_id=%s | kind=%s | detail=%s",
                failure.person_id,
                failure.bed_id,
                failure.kind.value,
                failure.detail,
            )

        logger.info(
            "Direct commit completed | camp_id=%s | succeeded=%s | failed=%s",
            result.camp_id,
            succeeded,
            len(failures),
        )
        return CommitReport(
            mode=AllocationMode.INDUCTION,
            succeeded=succeeded,
            failures=tuple(failures),
        )

    def commit_proposal(self, result: AllocationResult, transfer_request_id: int) -> CommitReport:
        """Store the proposal on the transfer request without touching beds."""
        payload = serialize_proposal(result)
        self._repository.save_transfer_allocation(
            transfer_request_id,
            payload,
            datetime.now().isoformat(timespec="seconds"),
        )
        logger.info(
            "Proposal stored | transfer_request_id=%s | pairings=%s | unallocated=%s",
            transfer_request_id,
            result.allocated_count,
            result.unallocated_count,
        )
        return CommitReport(
            mode=AllocationMode.TRANSFER,
            succeeded=result.allocated_count,
            transfer_request_id=transfer_request_id,
        )
