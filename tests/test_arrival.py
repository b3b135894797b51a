from __future__ import annotations

import sqlite3
from dataclasses import replace

import pytest

from bedalloc.domain.models import (
    AllocationMode,
    AllocationRequest,
    BedAction,
    BedStatus,
    CampType,
    LeaveStatus,
    PersonType,
    TransferStatus,
)
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.services.arrival_service import ArrivalService
from bedalloc.services.errors import ArrivalError, TransferNotFoundError
from bedalloc.utils.config import get_settings


def _build_transfer(tmp_path, filename: str):
    settings = replace(get_settings(), database_path=tmp_path / filename)
    repository = DataRepository(settings)
    repository.initialize_database()

    source = repository.create_camp("Al Quoz", CampType.REGULAR)
    target = repository.create_camp("Sonapur", CampType.REGULAR)
    source_room = repository.create_room(repository.create_floor(source, "1"), "101", capacity=2)
    target_room = repository.create_room(repository.create_floor(target, "1"), "201", capacity=2)
    target_beds = [repository.create_bed(target_room, "1"), repository.create_bed(target_room, "2")]

    person_ids = []
    for index in range(2):
        old_bed = repository.create_bed(source_room, str(index + 1))
        person_id = repository.create_person(
            PersonType.TECHNICIAN,
            f"Technician {index}",
            "male",
            employee_id=f"EMP{index:04d}",
            nationality="Nepal",
            camp_id=source,
            bed_id=old_bed,
        )
        repository.compare_and_set_bed(
            old_bed,
            expected_status=BedStatus.AVAILABLE,
            new_status=BedStatus.OCCUPIED,
            technician_id=person_id,
        )
        person_ids.append(person_id)

    request_id = repository.create_transfer_request(source, target, person_ids)
    BedAllocationService(repository=repository, settings=settings).allocate(
        AllocationRequest(mode=AllocationMode.TRANSFER, transfer_request_id=request_id)
    )
    return repository, settings, request_id, person_ids, target_beds, source, target


def _transfer_logs(repository: DataRepository, request_id: int) -> list[sqlite3.Row]:
    with sqlite3.connect(repository.database_path) as conn:
        conn.row_factory = sqlite3.Row
        return conn.execute(
            "SELECT * FROM TransferLogs WHERE transfer_request_id = ? ORDER BY id;",
            (request_id,),
        ).fetchall()


def test_arrivals_move_people_and_complete_transfer(tmp_path):
    repository, settings, request_id, person_ids, target_beds, source, target = _build_transfer(
        tmp_path, "arrival_flow.db"
    )
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)
    service = ArrivalService(repository=repository, settings=settings)
    old_bed = repository.get_person(person_ids[0]).bed_id

    first = service.confirm_arrival(
        request_id, person_ids[0], arrival_date="2026-02-01", arrival_time="09:15"
    )

    assert first.transfer_status is TransferStatus.PARTIALLY_ARRIVED
    assert first.remaining == 1
    assert first.from_bed_id == old_bed
    assert repository.get_transfer_request(request_id).status is TransferStatus.PARTIALLY_ARRIVED
    bed = repository.get_bed(first.to_bed_id)
    assert bed.status is BedStatus.OCCUPIED
    assert bed.occupant.person_id == person_ids[0]
    person = repository.get_person(person_ids[0])
    assert person.camp_id == target
    assert person.bed_id == first.to_bed_id
    assert person.actual_arrival_date == "2026-02-01"
    assert person.actual_arrival_time == "09:15"

    second = service.confirm_arrival(request_id, person_ids[1])
    assert second.transfer_status is TransferStatus.COMPLETED
    assert second.remaining == 0
    assert {first.to_bed_id, second.to_bed_id} == set(target_beds)

    logs = _transfer_logs(repository, request_id)
    assert [row["person_id"] for row in logs] == person_ids
    assert logs[0]["from_camp_id"] == source
    assert logs[0]["to_camp_id"] == target
    assert logs[0]["from_bed_id"] == old_bed
    assert logs[0]["transfer_time"] == "09:15"


def test_arrival_requires_dispatch(tmp_path):
    repository, settings, request_id, person_ids, *_ = _build_transfer(tmp_path, "arrival_early.db")
    service = ArrivalService(repository=repository, settings=settings)
    with pytest.raises(ArrivalError, match="after dispatch"):
        service.confirm_arrival(request_id, person_ids[0])


def test_arrival_cannot_be_confirmed_twice(tmp_path):
    repository, settings, request_id, person_ids, *_ = _build_transfer(tmp_path, "arrival_twice.db")
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)
    service = ArrivalService(repository=repository, settings=settings)
    service.confirm_arrival(request_id, person_ids[0])
    with pytest.raises(ArrivalError, match="already confirmed"):
        service.confirm_arrival(request_id, person_ids[0])


def test_arrival_for_person_outside_request(tmp_path):
    repository, settings, request_id, *_ = _build_transfer(tmp_path, "arrival_outsider.db")
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)
    service = ArrivalService(repository=repository, settings=settings)
    with pytest.raises(ArrivalError, match="not part of transfer request"):
        service.confirm_arrival(request_id, 999)


def test_arrival_when_bed_was_taken(tmp_path):
    repository, settings, request_id, person_ids, target_beds, *_ = _build_transfer(
        tmp_path, "arrival_taken.db"
    )
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)
    squatter = repository.create_person(PersonType.TECHNICIAN, "Squatter", "male")
    assert repository.compare_and_set_bed(
        target_beds[0],
        expected_status=BedStatus.AVAILABLE,
        new_status=BedStatus.OCCUPIED,
        technician_id=squatter,
    )
    service = ArrivalService(repository=repository, settings=settings)

    with pytest.raises(ArrivalError, match="no longer free"):
        service.confirm_arrival(request_id, person_ids[0])

    confirmation = service.confirm_arrival(request_id, person_ids[1])
    assert confirmation.to_bed_id == target_beds[1]
    assert confirmation.transfer_status is TransferStatus.PARTIALLY_ARRIVED
    assert repository.get_person(person_ids[0]).camp_id != repository.get_person(person_ids[1]).camp_id


def test_unknown_transfer(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "arrival_unknown.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    with pytest.raises(TransferNotFoundError):
        ArrivalService(repository=repository, settings=settings).confirm_arrival(1, 1)


def test_arrival_on_leave_bed_records_stand_in_on_leave(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "arrival_leave.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    source = repository.create_camp("Al Quoz", CampType.REGULAR)
    target = repository.create_camp("Sonapur", CampType.REGULAR)
    room_id = repository.create_room(repository.create_floor(target, "1"), "201", capacity=2)
    on_leave = repository.create_person(PersonType.TECHNICIAN, "On Leave", "male", camp_id=target)
    bed_id = repository.create_bed(room_id, "1", status=BedStatus.RESERVED, reserved_for=on_leave)
    leave_id = repository.create_leave_request(
        on_leave, LeaveStatus.APPROVED, BedAction.TEMPORARY_ALLOCATE
    )
    stand_in = repository.create_person(
        PersonType.TECHNICIAN, "Stand In", "male", nationality="Nepal", camp_id=source
    )
    request_id = repository.create_transfer_request(source, target, [stand_in])
    outcome = BedAllocationService(repository=repository, settings=settings).allocate(
        AllocationRequest(mode=AllocationMode.TRANSFER, transfer_request_id=request_id)
    )
    assert outcome.result.proposal[0].is_temporary is True
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)

    confirmation = ArrivalService(repository=repository, settings=settings).confirm_arrival(
        request_id, stand_in
    )

    assert confirmation.to_bed_id == bed_id
    assert confirmation.transfer_status is TransferStatus.COMPLETED
    bed = repository.get_bed(bed_id)
    assert bed.status is BedStatus.RESERVED
    assert bed.reserved_for == on_leave
    assert bed.temporary_occupant_id == stand_in
    [leave] = repository.list_leave_requests([on_leave])
    assert leave.leave_id == leave_id
    assert leave.temporary_occupant_id == stand_in


def test_arrival_on_leave_bed_after_leave_was_filled(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "arrival_leave_filled.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    source = repository.create_camp("Al Quoz", CampType.REGULAR)
    target = repository.create_camp("Sonapur", CampType.REGULAR)
    room_id = repository.create_room(repository.create_floor(target, "1"), "201", capacity=2)
    on_leave = repository.create_person(PersonType.TECHNICIAN, "On Leave", "male", camp_id=target)
    bed_id = repository.create_bed(room_id, "1", status=BedStatus.RESERVED, reserved_for=on_leave)
    leave_id = repository.create_leave_request(
        on_leave, LeaveStatus.APPROVED, BedAction.TEMPORARY_ALLOCATE
    )
    stand_in = repository.create_person(PersonType.TECHNICIAN, "Stand In", "male", camp_id=source)
    rival = repository.create_person(PersonType.TECHNICIAN, "Rival", "male", camp_id=target)
    request_id = repository.create_transfer_request(source, target, [stand_in])
    BedAllocationService(repository=repository, settings=settings).allocate(
        AllocationRequest(mode=AllocationMode.TRANSFER, transfer_request_id=request_id)
    )
    repository.update_transfer_status(request_id, TransferStatus.DISPATCHED)
    assert repository.claim_temporary_bed(bed_id, leave_id, rival)

    with pytest.raises(ArrivalError, match="no longer free"):
        ArrivalService(repository=repository, settings=settings).confirm_arrival(
            request_id, stand_in
        )
    assert repository.get_bed(bed_id).temporary_occupant_id == rival
    assert repository.get_person(stand_in).camp_id == source
