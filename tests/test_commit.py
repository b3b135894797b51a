from __future__ import annotations

import json
import sqlite3
from dataclasses import replace

import pytest

from bedalloc.domain.models import (
    AllocationMode,
    AllocationRequest,
    BedAction,
    BedStatus,
    CampType,
    CommitFailureKind,
    LeaveStatus,
    OccupantType,
    PersonType,
    TransferStatus,
)
from bedalloc.repository.data_repository import DataRepository, RepositoryError
from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.services.commit_service import ProposalCommitter, parse_proposal
from bedalloc.services.errors import ConflictError
from bedalloc.utils.config import get_settings


def _build_service(tmp_path, filename: str) -> tuple[BedAllocationService, DataRepository]:
    settings = replace(get_settings(), database_path=tmp_path / filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    return BedAllocationService(repository=repository, settings=settings), repository


def _seed_induction_camp(repository: DataRepository, beds: int = 3) -> tuple[int, int, list[int]]:
    camp_id = repository.create_camp("Induction Block", CampType.INDUCTION)
    room_id = repository.create_room(
        repository.create_floor(camp_id, "1"), "101", capacity=beds
    )
    bed_ids = [repository.create_bed(room_id, str(number)) for number in range(1, beds + 1)]
    return camp_id, room_id, bed_ids


def _technicians(repository: DataRepository, camp_id: int, count: int) -> list[int]:
    return [
        repository.create_person(
            PersonType.TECHNICIAN,
            f"Technician {index}",
            "male",
            employee_id=f"EMP{index:04d}",
            nationality="India",
            camp_id=camp_id,
            expected_arrival_date="2026-01-10",
            expected_arrival_time=f"{8 + index:02d}:00",
        )
        for index in range(count)
    ]


def _induction_request(camp_id: int, person_ids) -> AllocationRequest:
    return AllocationRequest(
        mode=AllocationMode.INDUCTION,
        camp_id=camp_id,
        candidate_ids=tuple(person_ids),
        personnel_type=PersonType.TECHNICIAN,
    )


def test_direct_commit_occupies_beds_and_moves_people(tmp_path):
    service, repository = _build_service(tmp_path, "commit_direct.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository)
    person_ids = _technicians(repository, camp_id, 2)

    outcome = service.allocate(_induction_request(camp_id, person_ids))

    assert outcome.report.mode is AllocationMode.INDUCTION
    assert outcome.report.succeeded == 2
    assert outcome.report.failures == ()
    for person_id, bed_id in zip(person_ids, bed_ids):
        bed = repository.get_bed(bed_id)
        assert bed.status is BedStatus.OCCUPIED
        assert bed.occupant.person_id == person_id
        person = repository.get_person(person_id)
        assert person.bed_id == bed_id
        assert person.camp_id == camp_id
    assert repository.get_bed(bed_ids[2]).status is BedStatus.AVAILABLE


def test_preview_has_no_side_effects(tmp_path):
    service, repository = _build_service(tmp_path, "commit_preview.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository)
    person_ids = _technicians(repository, camp_id, 2)

    result = service.preview(_induction_request(camp_id, person_ids))

    assert result.allocated_count == 2
    assert all(repository.get_bed(bed_id).status is BedStatus.AVAILABLE for bed_id in bed_ids)
    assert all(repository.get_person(pid).bed_id is None for pid in person_ids)


def test_external_occupant_written_to_external_column(tmp_path):
    service, repository = _build_service(tmp_path, "commit_external.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository, beds=1)
    person_id = repository.create_person(
        PersonType.EXTERNAL, "Contractor", "male", company_name="ACME", nationality="India"
    )

    outcome = service.allocate(
        AllocationRequest(
            mode=AllocationMode.INDUCTION,
            camp_id=camp_id,
            candidate_ids=(person_id,),
            personnel_type=PersonType.EXTERNAL,
        )
    )

    assert outcome.report.succeeded == 1
    bed = repository.get_bed(bed_ids[0])
    assert bed.occupant.person_type is PersonType.EXTERNAL


def test_temporary_commit_keeps_reservation(tmp_path):
    service, repository = _build_service(tmp_path, "commit_temporary.db")
    camp_id = repository.create_camp("Induction Block", CampType.INDUCTION)
    room_id = repository.create_room(
        repository.create_floor(camp_id, "1"),
        "101",
        capacity=2,
        occupant_type=OccupantType.TECHNICIAN_ONLY,
    )
    on_leave = repository.create_person(PersonType.TECHNICIAN, "On Leave", "male", nationality="India")
    bed_id = repository.create_bed(room_id, "1", status=BedStatus.RESERVED, reserved_for=on_leave)
    leave_id = repository.create_leave_request(
        on_leave, LeaveStatus.APPROVED, BedAction.TEMPORARY_ALLOCATE
    )
    [stand_in] = _technicians(repository, camp_id, 1)

    outcome = service.allocate(_induction_request(camp_id, [stand_in]))

    assert outcome.result.proposal[0].is_temporary is True
    assert outcome.report.succeeded == 1
    bed = repository.get_bed(bed_id)
    assert bed.status is BedStatus.RESERVED
    assert bed.reserved_for == on_leave
    assert bed.temporary_occupant_id == stand_in
    [leave] = repository.list_leave_requests([on_leave])
    assert leave.leave_id == leave_id
    assert leave.temporary_occupant_id == stand_in
    assert repository.get_person(stand_in).bed_id == bed_id


def test_temporary_commit_leaves_bed_untouched_when_leave_is_taken(tmp_path):
    service, repository = _build_service(tmp_path, "commit_temporary_race.db")
    camp_id = repository.create_camp("Induction Block", CampType.INDUCTION)
    room_id = repository.create_room(
        repository.create_floor(camp_id, "1"),
        "101",
        capacity=2,
        occupant_type=OccupantType.TECHNICIAN_ONLY,
    )
    on_leave = repository.create_person(PersonType.TECHNICIAN, "On Leave", "male", nationality="India")
    bed_id = repository.create_bed(room_id, "1", status=BedStatus.RESERVED, reserved_for=on_leave)
    leave_id = repository.create_leave_request(
        on_leave, LeaveStatus.APPROVED, BedAction.TEMPORARY_ALLOCATE
    )
    stand_in, rival = _technicians(repository, camp_id, 2)
    result = service.preview(_induction_request(camp_id, [stand_in]))

    # Another writer records a stand-in on the leave but not yet on the bed.
    with sqlite3.connect(repository.database_path) as conn:
        conn.execute(
            "UPDATE LeaveRequests SET temporary_occupant_id = ? WHERE id = ?;",
            (rival, leave_id),
        )

    report = ProposalCommitter(repository=repository).commit_direct(result)

    assert report.succeeded == 0
    assert report.failures[0].kind is CommitFailureKind.CONFLICT
    assert repository.get_bed(bed_id).temporary_occupant_id is None
    assert repository.get_person(stand_in).bed_id is None


def test_changed_bed_is_reported_as_conflict(tmp_path):
    service, repository = _build_service(tmp_path, "commit_conflict.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository)
    person_ids = _technicians(repository, camp_id, 2)
    intruder = repository.create_person(PersonType.TECHNICIAN, "Intruder", "male")

    result = service.preview(_induction_request(camp_id, person_ids))
    assert repository.compare_and_set_bed(
        bed_ids[0],
        expected_status=BedStatus.AVAILABLE,
        new_status=BedStatus.OCCUPIED,
        technician_id=intruder,
    )

    report = ProposalCommitter(repository=repository).commit_direct(result)

    assert report.succeeded == 1
    assert report.failed == 1
    failure = report.failures[0]
    assert failure.kind is CommitFailureKind.CONFLICT
    assert failure.person_id == person_ids[0]
    assert failure.bed_id == bed_ids[0]
    assert repository.get_bed(bed_ids[0]).occupant.person_id == intruder
    assert repository.get_person(person_ids[0]).bed_id is None
    assert repository.get_person(person_ids[1]).bed_id == bed_ids[1]


def test_backend_error_does_not_abort_remaining_pairings(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path, "commit_backend.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository)
    person_ids = _technicians(repository, camp_id, 3)
    result = service.preview(_induction_request(camp_id, person_ids))

    original = repository.assign_person_bed

    def flaky_assign(person_id, bed_id, camp_id, **kwargs):
        if person_id == person_ids[1]:
            raise RepositoryError("database is locked")
        return original(person_id, bed_id, camp_id, **kwargs)

    monkeypatch.setattr(repository, "assign_person_bed", flaky_assign)
    report = ProposalCommitter(repository=repository).commit_direct(result)

    assert report.succeeded == 2
    assert [(item.person_id, item.kind) for item in report.failures] == [
        (person_ids[1], CommitFailureKind.BACKEND_ERROR)
    ]
    assert "database is locked" in report.failures[0].detail
    assert repository.get_person(person_ids[2]).bed_id == bed_ids[2]


def test_proposal_mode_parks_allocation_on_transfer(tmp_path):
    service, repository = _build_service(tmp_path, "commit_proposal.db")
    source = repository.create_camp("Al Quoz", CampType.REGULAR)
    target = repository.create_camp("Sonapur", CampType.REGULAR)
    room_id = repository.create_room(repository.create_floor(target, "1"), "101", capacity=2)
    bed_ids = [repository.create_bed(room_id, "1"), repository.create_bed(room_id, "2")]
    person_ids = _technicians(repository, source, 2)
    request_id = repository.create_transfer_request(source, target, person_ids)

    outcome = service.allocate(
        AllocationRequest(mode=AllocationMode.TRANSFER, transfer_request_id=request_id)
    )

    assert outcome.report.mode is AllocationMode.TRANSFER
    assert outcome.report.transfer_request_id == request_id
    transfer = repository.get_transfer_request(request_id)
    assert transfer.status is TransferStatus.BEDS_ALLOCATED
    assert transfer.allocation_confirmed_date
    pairings = parse_proposal(transfer.allocated_beds_data)
    assert sorted(item.bed_id for item in pairings) == bed_ids
    assert {item.personnel_id for item in pairings} == set(person_ids)
    assert all(item.personnel_type is PersonType.TECHNICIAN for item in pairings)
    assert all(repository.get_bed(bed_id).status is BedStatus.AVAILABLE for bed_id in bed_ids)
    assert all(repository.get_person(pid).camp_id == source for pid in person_ids)


def test_conflicting_candidate_blocks_commit(tmp_path):
    service, repository = _build_service(tmp_path, "commit_blocked.db")
    camp_id, _, bed_ids = _seed_induction_camp(repository)
    person_ids = _technicians(repository, camp_id, 2)
    other = repository.create_camp("Sonapur", CampType.REGULAR)
    repository.create_transfer_request(
        camp_id, other, [person_ids[1]], status=TransferStatus.BEDS_ALLOCATED
    )

    with pytest.raises(ConflictError):
        service.allocate(_induction_request(camp_id, person_ids))
    assert all(repository.get_bed(bed_id).status is BedStatus.AVAILABLE for bed_id in bed_ids)


def test_parse_proposal_rejects_malformed_payloads() -> None:
    assert parse_proposal(None) == []
    with pytest.raises(ValueError, match="not valid JSON"):
        parse_proposal("{oops")
    with pytest.raises(ValueError, match="JSON list"):
        parse_proposal(json.dumps({"bed_id": 1}))
    with pytest.raises(ValueError, match="missing"):
        parse_proposal(json.dumps([{"personnel_id": 1, "personnel_type": "technician"}]))
    entry = {
        "personnel_id": 1,
        "personnel_type": "technician",
        "bed_id": 5,
        "room_id": 2,
        "floor_id": 1,
    }
    with pytest.raises(ValueError, match="twice"):
        parse_proposal(json.dumps([entry, {**entry, "personnel_id": 2}]))
    with pytest.raises(ValueError, match="invalid"):
        parse_proposal(json.dumps([{**entry, "personnel_type": "visitor"}]))
