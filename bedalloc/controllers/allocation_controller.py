"""HTTP controller layer for bed allocation workflows."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from bedalloc.controllers.dependencies import (
    get_allocation_service,
    get_arrival_service,
    get_inventory_index,
)
from bedalloc.domain.constraints import AllocationPreferences
from bedalloc.domain.models import (
    AllocationMode,
    AllocationRequest,
    AllocationResult,
    CommitReport,
    PersonType,
)
from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.services.arrival_service import ArrivalService
from bedalloc.services.errors import (
    AllocationError,
    AllocationValidationError,
    ArrivalError,
    CampNotFoundError,
    ConflictError,
    TransferNotFoundError,
)
from bedalloc.services.inventory_index import InventoryIndex
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["allocation"])


class PreferencesPayload(BaseModel):
    gender_segregation: bool = True
    nationality_grouping: bool = True
    state_grouping: bool = True
    language_grouping: bool = True
    trade_grouping: bool = True
    shift_grouping: bool = True
    age_based_berth: bool = True
    room_type_matching: bool = True

    def to_domain(self) -> AllocationPreferences:
        return AllocationPreferences(**self.model_dump())


class AllocationRunRequest(BaseModel):
    """Input DTO validated before entering service layer."""

    mode: AllocationMode = AllocationMode.INDUCTION
    camp_id: Optional[int] = Field(default=None, gt=0)
    candidate_ids: list[int] = Field(default_factory=list)
    personnel_type: Optional[PersonType] = None
    transfer_request_id: Optional[int] = Field(default=None, gt=0)
    preferences: PreferencesPayload = Field(default_factory=PreferencesPayload)

    @field_validator("candidate_ids")
    @classmethod
    def validate_candidate_ids(cls, value: list[int]) -> list[int]:
        if any(item <= 0 for item in value):
            raise ValueError("candidate_ids must be positive integers")
        return value

    def to_domain(self) -> AllocationRequest:
        return AllocationRequest(
            mode=self.mode,
            camp_id=self.camp_id,
            candidate_ids=tuple(self.candidate_ids),
            preferences=self.preferences.to_domain(),
            transfer_request_id=self.transfer_request_id,
            personnel_type=self.personnel_type,
        )


class TransferAllocationRequest(BaseModel):
    candidate_ids: list[int] = Field(default_factory=list)
    preferences: PreferencesPayload = Field(default_factory=PreferencesPayload)


class ArrivalRequest(BaseModel):
    person_id: int = Field(gt=0)
    arrival_date: Optional[date] = None
    arrival_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")


class ProposalEntryResponse(BaseModel):
    person_id: int
    person_name: str
    person_type: PersonType
    bed_id: int
    room_id: int
    floor_id: int
    bed_label: str
    is_lower_berth: bool
    is_temporary: bool
    score: Optional[int] = None


class UnallocatedResponse(BaseModel):
    person_id: int
    person_name: str
    person_type: PersonType
    reasons: list[str]


class AllocationPreviewResponse(BaseModel):
    camp_id: int
    strategy: str
    proposal: list[ProposalEntryResponse]
    unallocated: list[UnallocatedResponse]
    summary: dict[str, Any]


class CommitFailureResponse(BaseModel):
    person_id: int
    bed_id: int
    kind: str
    detail: str


class CommitReportResponse(BaseModel):
    mode: AllocationMode
    succeeded: int = Field(ge=0)
    failed: int = Field(ge=0)
    failures: list[CommitFailureResponse]
    transfer_request_id: Optional[int] = None


class AllocationCommitResponse(AllocationPreviewResponse):
    report: CommitReportResponse


class ArrivalResponse(BaseModel):
    transfer_request_id: int
    person_id: int
    from_bed_id: Optional[int] = None
    to_bed_id: int
    arrival_date: str
    arrival_time: str
    transfer_status: str
    remaining: int = Field(ge=0)


class RoomOccupancyResponse(BaseModel):
    room_id: int
    occupants: int = Field(ge=0)


class InventoryResponse(BaseModel):
    camp_id: int
    camp_name: str
    camp_type: str
    total_beds: int = Field(ge=0)
    eligible_beds: int = Field(ge=0)
    temporary_beds: int = Field(ge=0)
    occupied_rooms: list[RoomOccupancyResponse]


class CandidateResponse(BaseModel):
    person_id: int
    full_name: str
    person_type: PersonType
    nationality: Optional[str] = None
    arrival_date: str
    arrival_time: str


def _to_preview_response(service: BedAllocationService, result: AllocationResult) -> dict[str, Any]:
    return {
        "camp_id": result.camp_id,
        "strategy": result.strategy.value,
        "proposal": [
            ProposalEntryResponse(
                person_id=entry.person.person_id,
                person_name=entry.person.full_name,
                person_type=entry.person.person_type,
                bed_id=entry.bed.bed_id,
                room_id=entry.room.room_id,
                floor_id=entry.floor.floor_id,
                bed_label=entry.bed.bed_label,
                is_lower_berth=entry.bed.bed.is_lower_berth,
                is_temporary=entry.is_temporary,
                score=entry.score,
            )
            for entry in result.proposal
        ],
        "unallocated": [
            UnallocatedResponse(
                person_id=item.person.person_id,
                person_name=item.person.full_name,
                person_type=item.person.person_type,
                reasons=item.reasons,
            )
            for item in result.unallocated
        ],
        "summary": service.summarize(result),
    }


def _to_report_response(report: CommitReport) -> CommitReportResponse:
    return CommitReportResponse(
        mode=report.mode,
        succeeded=report.succeeded,
        failed=report.failed,
        failures=[
            CommitFailureResponse(
                person_id=failure.person_id,
                bed_id=failure.bed_id,
                kind=failure.kind.value,
                detail=failure.detail,
            )
            for failure in report.failures
        ],
        transfer_request_id=report.transfer_request_id,
    )


def _to_http_exception(exc: AllocationError) -> HTTPException:
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "conflicts": [
                    {
                        "person_id": item.person_id,
                        "person_label": item.person_label,
                        "transfer_request_id": item.transfer_request_id,
                        "target_camp_id": item.target_camp_id,
                        "target_camp_name": item.target_camp_name,
                    }
                    for item in exc.conflicts
                ],
            },
        )
    if isinstance(exc, (CampNotFoundError, TransferNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ArrivalError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, AllocationValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/allocations/preview",
    response_model=AllocationPreviewResponse,
    status_code=status.HTTP_200_OK,
)
async def preview_allocation(
    payload: AllocationRunRequest,
    service: BedAllocationService = Depends(get_allocation_service),
) -> AllocationPreviewResponse:
    """Compute a proposal; nothing is written."""
    try:
        result = service.preview(payload.to_domain())
        return AllocationPreviewResponse(**_to_preview_response(service, result))
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected allocation preview failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute allocation",
        ) from exc


@router.post(
    "/allocations/commit",
    response_model=AllocationCommitResponse,
    status_code=status.HTTP_200_OK,
)
async def commit_allocation(
    payload: AllocationRunRequest,
    service: BedAllocationService = Depends(get_allocation_service),
) -> AllocationCommitResponse:
    """Run allocation and apply it pairing by pairing."""
    try:
        outcome = service.allocate(payload.to_domain())
        return AllocationCommitResponse(
            **_to_preview_response(service, outcome.result),
            report=_to_report_response(outcome.report),
        )
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected allocation commit failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to commit allocation",
        ) from exc


@router.post(
    "/transfers/{transfer_request_id}/allocate",
    response_model=AllocationCommitResponse,
    status_code=status.HTTP_200_OK,
)
async def allocate_transfer(
    transfer_request_id: int,
    payload: TransferAllocationRequest,
    service: BedAllocationService = Depends(get_allocation_service),
) -> AllocationCommitResponse:
    """Store a proposal on the transfer request; beds change on arrival."""
    request = AllocationRequest(
        mode=AllocationMode.TRANSFER,
        candidate_ids=tuple(payload.candidate_ids),
        preferences=payload.preferences.to_domain(),
        transfer_request_id=transfer_request_id,
    )
    try:
        outcome = service.allocate(request)
        return AllocationCommitResponse(
            **_to_preview_response(service, outcome.result),
            report=_to_report_response(outcome.report),
        )
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected transfer allocation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to allocate transfer",
        ) from exc


@router.post(
    "/transfers/{transfer_request_id}/arrivals",
    response_model=ArrivalResponse,
    status_code=status.HTTP_200_OK,
)
async def confirm_arrival(
    transfer_request_id: int,
    payload: ArrivalRequest,
    service: ArrivalService = Depends(get_arrival_service),
) -> ArrivalResponse:
    try:
        confirmation = service.confirm_arrival(
            transfer_request_id,
            payload.person_id,
            arrival_date=payload.arrival_date.isoformat() if payload.arrival_date else None,
            arrival_time=payload.arrival_time,
        )
        return ArrivalResponse(
            transfer_request_id=confirmation.transfer_request_id,
            person_id=confirmation.person_id,
            from_bed_id=confirmation.from_bed_id,
            to_bed_id=confirmation.to_bed_id,
            arrival_date=confirmation.arrival_date,
            arrival_time=confirmation.arrival_time,
            transfer_status=confirmation.transfer_status.value,
            remaining=confirmation.remaining,
        )
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected arrival confirmation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm arrival",
        ) from exc


@router.get(
    "/camps/{camp_id}/inventory",
    response_model=InventoryResponse,
    status_code=status.HTTP_200_OK,
)
async def camp_inventory(
    camp_id: int,
    inventory_index: InventoryIndex = Depends(get_inventory_index),
) -> InventoryResponse:
    try:
        snapshot = inventory_index.build_for_camp_id(camp_id)
        return InventoryResponse(
            camp_id=snapshot.camp.camp_id,
            camp_name=snapshot.camp.name,
            camp_type=snapshot.camp.camp_type.value,
            total_beds=snapshot.total_beds,
            eligible_beds=snapshot.eligible_bed_count,
            temporary_beds=sum(1 for bed in snapshot.beds if bed.is_temporary),
            occupied_rooms=[
                RoomOccupancyResponse(room_id=room_id, occupants=len(occupants))
                for room_id, occupants in sorted(snapshot.occupants_by_room.items())
            ],
        )
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected inventory snapshot failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load camp inventory",
        ) from exc


@router.get(
    "/camps/{camp_id}/candidates",
    response_model=list[CandidateResponse],
    status_code=status.HTTP_200_OK,
)
async def induction_candidates(
    camp_id: int,
    personnel_type: PersonType = PersonType.TECHNICIAN,
    service: BedAllocationService = Depends(get_allocation_service),
) -> list[CandidateResponse]:
    try:
        people = service.list_induction_candidates(camp_id, personnel_type)
        return [
            CandidateResponse(
                person_id=person.person_id,
                full_name=person.full_name,
                person_type=person.person_type,
                nationality=person.nationality,
                arrival_date=person.arrival_date,
                arrival_time=person.arrival_time,
            )
            for person in people
        ]
    except AllocationError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected candidate listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list candidates",
        ) from exc
