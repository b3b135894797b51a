from __future__ import annotations

from dataclasses import replace

import pytest

from bedalloc.domain.models import (
    Camp,
    CampType,
    PersonType,
    TransferRequest,
    TransferStatus,
    Worker,
)
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.conflict_service import ConflictDetector, find_transfer_conflicts
from bedalloc.services.errors import AllocationError, ConflictError
from bedalloc.utils.config import get_settings


def _worker(person_id: int) -> Worker:
    return Worker(
        person_id=person_id,
        full_name=f"Worker {person_id}",
        gender="male",
        employee_id=f"EMP{person_id:04d}",
    )


def _transfer(request_id: int, personnel_ids, status: TransferStatus) -> TransferRequest:
    return TransferRequest(
        request_id=request_id,
        source_camp_id=1,
        target_camp_id=2,
        personnel_ids=tuple(personnel_ids),
        status=status,
    )


CAMPS = {2: Camp(camp_id=2, name="Sonapur", camp_type=CampType.REGULAR)}


def test_active_request_membership_is_a_conflict() -> None:
    conflicts = find_transfer_conflicts(
        [_worker(1), _worker(2)],
        [_transfer(7, [2, 3], TransferStatus.BEDS_ALLOCATED)],
        CAMPS,
    )
    assert len(conflicts) == 1
    assert conflicts[0].person_id == 2
    assert conflicts[0].transfer_request_id == 7
    assert conflicts[0].message == (
        "Worker 2 (EMP0002) already has beds allocated for transfer to Sonapur (Request ID: 7)"
    )


@pytest.mark.parametrize("status", [TransferStatus.COMPLETED, TransferStatus.CANCELLED])
def test_finished_requests_do_not_conflict(status: TransferStatus) -> None:
    assert find_transfer_conflicts([_worker(1)], [_transfer(7, [1], status)], CAMPS) == []


def test_current_request_is_excluded() -> None:
    conflicts = find_transfer_conflicts(
        [_worker(1)],
        [_transfer(7, [1], TransferStatus.PENDING_ALLOCATION)],
        CAMPS,
        current_request_id=7,
    )
    assert conflicts == []


def test_unknown_target_camp_falls_back_to_id() -> None:
    conflicts = find_transfer_conflicts(
        [_worker(1)], [_transfer(7, [1], TransferStatus.DISPATCHED)], {}
    )
    assert "transfer to camp 2" in conflicts[0].message


def test_detector_rejects_whole_batch(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "conflicts.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    source = repository.create_camp("Al Quoz", CampType.REGULAR)
    target = repository.create_camp("Sonapur", CampType.REGULAR)
    free = repository.create_person(PersonType.TECHNICIAN, "Free", "male", employee_id="E1")
    busy = repository.create_person(PersonType.EXTERNAL, "Busy", "male", company_name="ACME")
    request_id = repository.create_transfer_request(
        source, target, [busy], status=TransferStatus.APPROVED_FOR_DISPATCH
    )

    detector = ConflictDetector(repository=repository, settings=settings)
    candidates = repository.get_persons([free, busy])
    with pytest.raises(ConflictError) as exc_info:
        detector.check(candidates)

    assert isinstance(exc_info.value, AllocationError)
    assert [(item.person_id, item.transfer_request_id) for item in exc_info.value.conflicts] == [
        (busy, request_id)
    ]
    assert exc_info.value.conflicts[0].target_camp_name == "Sonapur"

    detector.check(candidates, current_request_id=request_id)
