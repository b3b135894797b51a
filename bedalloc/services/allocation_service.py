"""Greedy bed allocation: strategy selection, ordering and the assign loop."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from bedalloc.domain.constraints import (
    AllocationPreferences,
    ScoringWeights,
    validate_lower_berth_age,
    validate_preferences,
    validate_scoring_weights,
)
from bedalloc.domain.evaluator import (
    ConstraintPolicy,
    compute_age,
    evaluate_hard_constraints,
    score_bed,
)
from bedalloc.domain.ledger import RoomOccupancyLedger
from bedalloc.domain.models import (
    AllocationMode,
    AllocationRequest,
    AllocationResult,
    AllocationStrategy,
    Camp,
    CampType,
    CommitReport,
    ConstraintExhaustion,
    EligibleBed,
    InventorySnapshot,
    Person,
    ProposalEntry,
    Rejection,
    TransferRequest,
    TransferStatus,
)
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.commit_service import ProposalCommitter
from bedalloc.services.conflict_service import ConflictDetector
from bedalloc.services.errors import (
    AllocationValidationError,
    CampNotFoundError,
    TransferNotFoundError,
)
from bedalloc.services.inventory_index import InventoryIndex, restrict_to_personnel_type
from bedalloc.services.report_service import summarize as summarize_result
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)

_ALLOCATABLE_TRANSFER_STATUSES = frozenset(
    {TransferStatus.PENDING_ALLOCATION, TransferStatus.BEDS_ALLOCATED}
)
_DIGITS = re.compile(r"(\d+)")


@dataclass(frozen=True)
class AllocationOutcome:
    result: AllocationResult
    report: CommitReport


def select_strategy(camp_type: CampType) -> AllocationStrategy:
    if camp_type.is_sequential:
        return AllocationStrategy.SEQUENTIAL
    return AllocationStrategy.SCORED


def natural_sort_key(value: Optional[str]) -> tuple:
    """Sort "2" before "10" and "B2" before "B10"."""
    parts = _DIGITS.split(str(value or ""))
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in parts
        if part
    )


def order_by_arrival(candidates: Sequence[Person]) -> list[Person]:
    return sorted(candidates, key=lambda person: (person.arrival_date, person.arrival_time))


def order_by_grouping(
    candidates: Sequence[Person], preferences: AllocationPreferences
) -> list[Person]:
    """Place likely room-mates next to each other.

    Priority is nationality, then state, language, trade and shift; only the
    enabled preferences take part. The sort is stable.
    """
    keys = []
    if preferences.nationality_grouping:
        keys.append(lambda person: person.nationality or "")
    if preferences.state_grouping:
        keys.append(lambda person: person.state or "")
    if preferences.language_grouping:
        keys.append(lambda person: ",".join(person.languages))
    if preferences.trade_grouping:
        keys.append(lambda person: person.trade or "")
    if preferences.shift_grouping:
        keys.append(lambda person: person.shift.value if person.shift else "")
    if not keys:
        return list(candidates)
    return sorted(candidates, key=lambda person: tuple(key(person) for key in keys))


def order_beds_physically(beds: Sequence[EligibleBed]) -> list[EligibleBed]:
    return sorted(
        beds,
        key=lambda item: (
            natural_sort_key(item.floor.floor_number),
            natural_sort_key(item.room.room_number),
            natural_sort_key(item.bed.bed_number),
        ),
    )


def _unique_candidates(candidates: Sequence[Person]) -> list[Person]:
    seen: set[int] = set()
    unique: list[Person] = []
    for person in candidates:
        if person.person_id in seen:
            continue
        seen.add(person.person_id)
        unique.append(person)
    return unique


def run_allocation(
    request: AllocationRequest,
    snapshot: InventorySnapshot,
    candidates: Sequence[Person],
    *,
    weights: Optional[ScoringWeights] = None,
    lower_berth_age: int = 45,
    today: Optional[date] = None,
) -> AllocationResult:
    """Produce a proposal for ``candidates`` against ``snapshot``.

    Pure with respect to storage. Each assignment is recorded in the run's
    ledger before the next candidate is considered, so later decisions see
    earlier tentative placements.
    """
    preferences = request.preferences
    weights = weights or ScoringWeights()
    today = today or date.today()
    strategy = select_strategy(snapshot.camp.camp_type)
    people = _unique_candidates(candidates)

    capacity_shortfall = max(0, len(people) - snapshot.eligible_bed_count)
    if capacity_shortfall:
        logger.warning(
            "Insufficient eligible beds | camp_id=%s | candidates=%s | eligible_beds=%s",
            snapshot.camp.camp_id,
            len(people),
            snapshot.eligible_bed_count,
        )

    if strategy is AllocationStrategy.SEQUENTIAL:
        ordered_people = order_by_arrival(people)
        ordered_beds = order_beds_physically(snapshot.beds)
        policy = ConstraintPolicy.sequential(lower_berth_age)
    else:
        ordered_people = order_by_grouping(people, preferences)
        ordered_beds = list(snapshot.beds)
        policy = ConstraintPolicy.scored(preferences, lower_berth_age)

    ledger = RoomOccupancyLedger(snapshot.occupants_by_room)
    used_beds: set[int] = set()
    proposal: list[ProposalEntry] = []
    unallocated: list[ConstraintExhaustion] = []

    for person in ordered_people:
        age = compute_age(person.date_of_birth, today)
        rejections: list[Rejection] = []
        beds_checked = 0
        best_bed: Optional[EligibleBed] = None
        best_score: Optional[int] = None

        for bed in ordered_beds:
            if bed.bed_id in used_beds:
                continue
            beds_checked += 1
            rejection = evaluate_hard_constraints(person, bed, ledger, policy, age)
            if rejection is not None:
                rejections.append(rejection)
                continue
            if strategy is AllocationStrategy.SEQUENTIAL:
                best_bed = bed
                break
            score = score_bed(person, bed, ledger, preferences, weights)
            if best_score is None or score > best_score:
                best_score = score
                best_bed = bed

        if best_bed is None:
            if beds_checked == 0:
                rejections.append(
                    Rejection(
                        room_id=None,
                        reason=(
                            f"No available beds to check (all {len(ordered_beds)} "
                            "beds already used)"
                        ),
                    )
                )
            elif not rejections:
                rejections.append(
                    Rejection(room_id=None, reason="No suitable beds found matching criteria")
                )
            exhaustion = ConstraintExhaustion(person=person, rejections=tuple(rejections))
            unallocated.append(exhaustion)
            logger.debug(
                "Candidate unallocated | person_id=%s | reasons=%s",
                person.person_id,
                exhaustion.reasons,
            )
            continue

        proposal.append(ProposalEntry(person=person, bed=best_bed, score=best_score))
        used_beds.add(best_bed.bed_id)
        ledger.record(best_bed.room_id, person)

    logger.info(
        "Allocation run completed | camp_id=%s | strategy=%s | candidates=%s | "
        "eligible_beds=%s | allocated=%s | unallocated=%s",
        snapshot.camp.camp_id,
        strategy.value,
        len(people),
        snapshot.eligible_bed_count,
        len(proposal),
        len(unallocated),
    )
    return AllocationResult(
        camp_id=snapshot.camp.camp_id,
        strategy=strategy,
        proposal=tuple(proposal),
        unallocated=tuple(unallocated),
        eligible_bed_count=snapshot.eligible_bed_count,
        capacity_shortfall=capacity_shortfall,
    )


class BedAllocationService:
    """Orchestrates snapshot -> conflict check -> allocation -> commit."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        inventory_index: Optional[InventoryIndex] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        committer: Optional[ProposalCommitter] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._inventory_index = inventory_index or InventoryIndex(
            repository=self._repository,
            settings=self._settings,
        )
        self._conflict_detector = conflict_detector or ConflictDetector(
            repository=self._repository,
            settings=self._settings,
        )
        self._committer = committer or ProposalCommitter(
            repository=self._repository,
            settings=self._settings,
        )
        self._weights = ScoringWeights.from_settings(self._settings)

    def _validate(self, request: AllocationRequest) -> None:
        try:
            validate_preferences(request.preferences)
            validate_scoring_weights(self._weights)
            validate_lower_berth_age(self._settings.lower_berth_age)
        except ValueError as exc:
            raise AllocationValidationError(str(exc)) from exc

    def _resolve_transfer(self, request: AllocationRequest) -> TransferRequest:
        if request.transfer_request_id is None:
            raise AllocationValidationError("transfer mode requires transfer_request_id")
        transfer = self._repository.get_transfer_request(request.transfer_request_id)
        if transfer is None:
            raise TransferNotFoundError(
                f"Transfer request not found: {request.transfer_request_id}"
            )
        if transfer.status not in _ALLOCATABLE_TRANSFER_STATUSES:
            raise AllocationValidationError(
                f"Transfer request {transfer.request_id} is {transfer.status.value}; "
                "beds can only be allocated before dispatch"
            )
        return transfer

    def _resolve_candidates(
        self,
        request: AllocationRequest,
        transfer: Optional[TransferRequest],
    ) -> list[Person]:
        candidate_ids = list(dict.fromkeys(request.candidate_ids))
        if transfer is not None:
            if candidate_ids:
                outside = [pid for pid in candidate_ids if pid not in transfer.personnel_ids]
                if outside:
                    raise AllocationValidationError(
                        f"Personnel {outside} are not part of transfer request "
                        f"{transfer.request_id}"
                    )
            else:
                candidate_ids = list(transfer.personnel_ids)
        if not candidate_ids:
            raise AllocationValidationError("No personnel selected for allocation")

        candidates = self._repository.get_persons(candidate_ids)
        found = {person.person_id for person in candidates}
        missing = [pid for pid in candidate_ids if pid not in found]
        if missing:
            raise AllocationValidationError(f"Unknown personnel ids: {missing}")
        if request.personnel_type is not None:
            mismatched = [
                person.person_id
                for person in candidates
                if person.person_type is not request.personnel_type
            ]
            if mismatched:
                raise AllocationValidationError(
                    f"Personnel {mismatched} are not of type {request.personnel_type.value}"
                )
        return candidates

    def _resolve_camp(self, camp_id: Optional[int]) -> Camp:
        if camp_id is None:
            raise AllocationValidationError("camp_id is required")
        camp = self._repository.get_camp(camp_id)
        if camp is None:
            raise CampNotFoundError(f"Camp not found: {camp_id}")
        return camp

    def preview(self, request: AllocationRequest) -> AllocationResult:
        """Compute a proposal without touching any bed or person record."""
        self._validate(request)
        transfer = None
        camp_id = request.camp_id
        if request.mode is AllocationMode.TRANSFER:
            transfer = self._resolve_transfer(request)
            camp_id = transfer.target_camp_id
        camp = self._resolve_camp(camp_id)
        candidates = self._resolve_candidates(request, transfer)

        self._conflict_detector.check(
            candidates,
            current_request_id=transfer.request_id if transfer else None,
        )

        snapshot = self._inventory_index.build(camp)
        if request.mode is AllocationMode.INDUCTION and request.personnel_type is not None:
            snapshot = restrict_to_personnel_type(
                snapshot,
                request.personnel_type,
                room_type_matching=request.preferences.room_type_matching,
            )

        return run_allocation(
            request,
            snapshot,
            candidates,
            weights=self._weights,
            lower_berth_age=self._settings.lower_berth_age,
        )

    def allocate(self, request: AllocationRequest) -> AllocationOutcome:
        """Run allocation and commit it according to the request mode."""
        result = self.preview(request)
        if request.mode is AllocationMode.TRANSFER:
            report = self._committer.commit_proposal(result, request.transfer_request_id)
        else:
            report = self._committer.commit_direct(result)
        return AllocationOutcome(result=result, report=report)

    def list_induction_candidates(self, camp_id: int, personnel_type) -> list[Person]:
        camp = self._resolve_camp(camp_id)
        return self._repository.list_induction_candidates(camp.camp_id, personnel_type)

    def summarize(self, result: AllocationResult) -> dict:
        return summarize_result(result, lower_berth_age=self._settings.lower_berth_age)
