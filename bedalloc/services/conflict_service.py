"""Pre-flight detection of personnel already committed to another transfer."""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from bedalloc.domain.models import (
    ACTIVE_TRANSFER_STATUSES,
    Camp,
    Person,
    TransferConflict,
    TransferRequest,
)
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.errors import ConflictError
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)


def find_transfer_conflicts(
    candidates: Sequence[Person],
    transfer_requests: Sequence[TransferRequest],
    camps_by_id: Mapping[int, Camp],
    current_request_id: Optional[int] = None,
) -> list[TransferConflict]:
    conflicts: list[TransferConflict] = []
    active_requests = [
        request
        for request in transfer_requests
        if request.status in ACTIVE_TRANSFER_STATUSES
        and request.request_id != current_request_id
    ]
    for person in candidates:
        for request in active_requests:
            if person.person_id not in request.personnel_ids:
                continue
            camp = camps_by_id.get(request.target_camp_id)
            conflicts.append(
                TransferConflict(
                    person_id=person.person_id,
                    person_label=person.label,
                    transfer_request_id=request.request_id,
                    target_camp_id=request.target_camp_id,
                    target_camp_name=camp.name if camp else None,
                )
            )
    return conflicts


class ConflictDetector:
    """Batch-level gate run before any allocation proposal is built."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def check(
        self,
        candidates: Sequence[Person],
        current_request_id: Optional[int] = None,
    ) -> None:
        transfer_requests = self._repository.list_transfer_requests(ACTIVE_TRANSFER_STATUSES)
        camps_by_id = self._repository.list_camps(
            request.target_camp_id for request in transfer_requests
        )
        conflicts = find_transfer_conflicts(
            candidates,
            transfer_requests,
            camps_by_id,
            current_request_id=current_request_id,
        )
        if conflicts:
            logger.warning(
                "Allocation rejected by conflict check | candidates=%s | conflicts=%s",
                len(candidates),
                [(item.person_id, item.transfer_request_id) for item in conflicts],
            )
            raise ConflictError(conflicts)
