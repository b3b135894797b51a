"""Arrival confirmation for dispatched transfer requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bedalloc.domain.models import (
    ARRIVAL_TRANSFER_STATUSES,
    Bed,
    BedStatus,
    PersonType,
    TransferStatus,
)
from bedalloc.repository.data_repository import DataRepository, RepositoryError
from bedalloc.services.commit_service import parse_proposal
from bedalloc.services.errors import ArrivalError, TransferNotFoundError
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ArrivalConfirmation:
    transfer_request_id: int
    person_id: int
    from_bed_id: Optional[int]
    to_bed_id: int
    arrival_date: str
    arrival_time: str
    transfer_status: TransferStatus
    remaining: int


class ArrivalService:
    """Moves one person onto the bed stored for them on a transfer request."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _open_leave_id(self, bed: Bed) -> int:
        leaves = (
            self._repository.list_leave_requests([bed.reserved_for])
            if bed.reserved_for is not None
            else []
        )
        leave = next((item for item in leaves if item.allows_temporary_fill), None)
        if leave is None:
            raise ArrivalError(
                f"Bed {bed.bed_id} is no longer free; re-run allocation for this transfer"
            )
        return leave.leave_id

    def confirm_arrival(
        self,
        transfer_request_id: int,
        person_id: int,
        arrival_date: Optional[str] = None,
        arrival_time: Optional[str] = None,
    ) -> ArrivalConfirmation:
        transfer = self._repository.get_transfer_request(transfer_request_id)
        if transfer is None:
            raise TransferNotFoundError(f"Transfer request not found: {transfer_request_id}")
        if transfer.status not in ARRIVAL_TRANSFER_STATUSES:
            raise ArrivalError(
                f"Transfer request {transfer_request_id} is {transfer.status.value}; "
                "arrivals can only be confirmed after dispatch"
            )
        if person_id not in transfer.personnel_ids:
            raise ArrivalError(
                f"Person {person_id} is not part of transfer request {transfer_request_id}"
            )
        arrived = self._repository.list_arrived_person_ids(transfer_request_id)
        if person_id in arrived:
            raise ArrivalError(f"Arrival already confirmed for person {person_id}")

        try:
            pairings = parse_proposal(transfer.allocated_beds_data)
        except ValueError as exc:
            raise ArrivalError(str(exc)) from exc
        pairing = next((item for item in pairings if item.personnel_id == person_id), None)
        if pairing is None:
            raise ArrivalError(
                f"No bed allocation found for person {person_id}; run allocation first"
            )
        person = self._repository.get_person(person_id)
        if person is None:
            raise ArrivalError(f"Person not found: {person_id}")
        bed = self._repository.get_bed(pairing.bed_id)
        if bed is None:
            raise ArrivalError(f"Allocated bed not found: {pairing.bed_id}")
        leave_id = self._open_leave_id(bed) if pairing.is_temporary else None

        now = datetime.now()
        arrival_date = arrival_date or now.date().isoformat()
        arrival_time = arrival_time or now.strftime("%H:%M")
        is_technician = pairing.personnel_type is PersonType.TECHNICIAN

        try:
            if leave_id is not None:
                claimed = self._repository.claim_temporary_bed(pairing.bed_id, leave_id, person_id)
            else:
                claimed = self._repository.compare_and_set_bed(
                    pairing.bed_id,
                    expected_status=BedStatus.AVAILABLE,
                    new_status=BedStatus.OCCUPIED,
                    technician_id=person_id if is_technician else None,
                    external_personnel_id=None if is_technician else person_id,
                )
            if not claimed:
                raise ArrivalError(
                    f"Bed {pairing.bed_id} is no longer free; re-run allocation for this transfer"
                )
            self._repository.assign_person_bed(
                person_id,
                pairing.bed_id,
                transfer.target_camp_id,
                actual_arrival_date=arrival_date,
                actual_arrival_time=arrival_time,
            )
            self._repository.insert_transfer_log(
                transfer_request_id=transfer_request_id,
                person_id=person_id,
                from_camp_id=transfer.source_camp_id,
                to_camp_id=transfer.target_camp_id,
                from_bed_id=person.bed_id,
                to_bed_id=pairing.bed_id,
                transfer_date=arrival_date,
                transfer_time=arrival_time,
            )
            remaining = len(set(transfer.personnel_ids) - arrived - {person_id})
            status = (
                TransferStatus.COMPLETED if remaining == 0 else TransferStatus.PARTIALLY_ARRIVED
            )
            self._repository.update_transfer_status(transfer_request_id, status)
        except RepositoryError as exc:
            logger.exception(
                "Arrival confirmation failed | transfer_request_id=%s | person_id=%s",
                transfer_request_id,
                person_id,
            )
            raise ArrivalError(str(exc)) from exc

        logger.info(
            "Arrival confirmed | transfer_request_id=%s | person_id=%s | bed_id=%s | status=%s",
            transfer_request_id,
            person_id,
            pairing.bed_id,
            status.value,
        )
        return ArrivalConfirmation(
            transfer_request_id=transfer_request_id,
            person_id=person_id,
            from_bed_id=person.bed_id,
            to_bed_id=pairing.bed_id,
            arrival_date=arrival_date,
            arrival_time=arrival_time,
            transfer_status=status,
            remaining=remaining,
        )
