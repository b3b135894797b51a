"""Domain models for camp inventory, personnel and bed allocation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import ClassVar, Optional

from bedalloc.domain.constraints import AllocationPreferences


class PersonType(str, Enum):
    TECHNICIAN = "technician"
    EXTERNAL = "external"


class Shift(str, Enum):
    DAY = "day"
    NIGHT = "night"


class CampType(str, Enum):
    REGULAR = "regular"
    INDUCTION = "induction"
    EXIT = "exit"
    PROJECT = "project"

    @property
    def is_sequential(self) -> bool:
        return self is not CampType.REGULAR


class OccupantType(str, Enum):
    TECHNICIAN_ONLY = "technician_only"
    EXTERNAL_ONLY = "external_only"
    STAFF_ONLY = "staff_only"
    MIXED = "mixed"


class GenderRestriction(str, Enum):
    MALE = "male"
    FEMALE = "female"
    MIXED = "mixed"
    NONE = "none"

    @property
    def is_restricted(self) -> bool:
        return self in (GenderRestriction.MALE, GenderRestriction.FEMALE)


class BedStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class BedAction(str, Enum):
    NONE = "none"
    TEMPORARY_ALLOCATE = "temporary_allocate"


class TransferStatus(str, Enum):
    PENDING_ALLOCATION = "pending_allocation"
    BEDS_ALLOCATED = "beds_allocated"
    APPROVED_FOR_DISPATCH = "approved_for_dispatch"
    DISPATCHED = "dispatched"
    PARTIALLY_ARRIVED = "partially_arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_TRANSFER_STATUSES = frozenset(
    {
        TransferStatus.PENDING_ALLOCATION,
        TransferStatus.BEDS_ALLOCATED,
        TransferStatus.APPROVED_FOR_DISPATCH,
        TransferStatus.DISPATCHED,
        TransferStatus.PARTIALLY_ARRIVED,
    }
)

ARRIVAL_TRANSFER_STATUSES = frozenset(
    {TransferStatus.DISPATCHED, TransferStatus.PARTIALLY_ARRIVED}
)


class AllocationMode(str, Enum):
    """Direct commits beds immediately; transfer stores a proposal."""

    INDUCTION = "induction"
    TRANSFER = "transfer"


class AllocationStrategy(str, Enum):
    SEQUENTIAL = "sequential"
    SCORED = "scored"


class CommitFailureKind(str, Enum):
    CONFLICT = "conflict"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True)
class Person:
    """Common personnel fields; use ``Worker`` or ``ExternalStaff``."""

    person_type: ClassVar[PersonType]

    person_id: int
    full_name: str
    gender: str
    nationality: Optional[str] = None
    state: Optional[str] = None
    languages: tuple[str, ...] = ()
    date_of_birth: Optional[date] = None
    bed_id: Optional[int] = None
    camp_id: Optional[int] = None
    status: str = "active"
    expected_arrival_date: Optional[str] = None
    expected_arrival_time: Optional[str] = None
    actual_arrival_date: Optional[str] = None
    actual_arrival_time: Optional[str] = None

    @property
    def trade(self) -> Optional[str]:
        return None

    @property
    def shift(self) -> Optional[Shift]:
        return None

    @property
    def arrival_date(self) -> str:
        return self.actual_arrival_date or self.expected_arrival_date or ""

    @property
    def arrival_time(self) -> str:
        return self.actual_arrival_time or self.expected_arrival_time or ""

    @property
    def reference(self) -> str:
        return ""

    @property
    def label(self) -> str:
        if self.reference:
            return f"{self.full_name} ({self.reference})"
        return self.full_name


@dataclass(frozen=True)
class Worker(Person):
    person_type: ClassVar[PersonType] = PersonType.TECHNICIAN

    employee_id: Optional[str] = None
    trade_name: Optional[str] = None
    work_shift: Shift = Shift.DAY

    @property
    def trade(self) -> Optional[str]:
        return self.trade_name

    @property
    def shift(self) -> Optional[Shift]:
        return self.work_shift

    @property
    def reference(self) -> str:
        return self.employee_id or ""


@dataclass(frozen=True)
class ExternalStaff(Person):
    person_type: ClassVar[PersonType] = PersonType.EXTERNAL

    company_name: Optional[str] = None

    @property
    def reference(self) -> str:
        return self.company_name or ""


@dataclass(frozen=True)
class Camp:
    camp_id: int
    name: str
    camp_type: CampType
    code: Optional[str] = None


@dataclass(frozen=True)
class Floor:
    floor_id: int
    camp_id: int
    floor_number: str


@dataclass(frozen=True)
class Room:
    room_id: int
    floor_id: int
    room_number: str
    capacity: int
    occupant_type: OccupantType = OccupantType.MIXED
    gender_restriction: GenderRestriction = GenderRestriction.NONE


@dataclass(frozen=True)
class Occupant:
    person_id: int
    person_type: PersonType


@dataclass(frozen=True)
class Bed:
    """A physical bed whose status and occupant fields always agree."""

    bed_id: int
    room_id: int
    bed_number: str
    is_lower_berth: bool
    status: BedStatus = BedStatus.AVAILABLE
    occupant: Optional[Occupant] = None
    reserved_for: Optional[int] = None
    temporary_occupant_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.status is BedStatus.OCCUPIED:
            if self.occupant is None:
                raise ValueError(f"bed {self.bed_id} is occupied without an occupant")
            if self.temporary_occupant_id is not None:
                raise ValueError(
                    f"bed {self.bed_id} is occupied but lists a temporary occupant"
                )
        elif self.status is BedStatus.RESERVED:
            if self.reserved_for is None:
                raise ValueError(f"bed {self.bed_id} is reserved without reserved_for")
            if self.occupant is not None:
                raise ValueError(f"bed {self.bed_id} is reserved but has an occupant")
        elif (
            self.occupant is not None
            or self.reserved_for is not None
            or self.temporary_occupant_id is not None
        ):
            raise ValueError(f"bed {self.bed_id} is available but not empty")


@dataclass(frozen=True)
class LeaveRequest:
    leave_id: int
    technician_id: int
    status: LeaveStatus
    bed_action: BedAction = BedAction.NONE
    temporary_occupant_id: Optional[int] = None

    @property
    def allows_temporary_fill(self) -> bool:
        return (
            self.status is LeaveStatus.APPROVED
            and self.bed_action is BedAction.TEMPORARY_ALLOCATE
            and self.temporary_occupant_id is None
        )


@dataclass(frozen=True)
class TransferRequest:
    request_id: int
    source_camp_id: Optional[int]
    target_camp_id: int
    personnel_ids: tuple[int, ...]
    status: TransferStatus
    allocated_beds_data: Optional[str] = None
    allocation_confirmed_date: Optional[str] = None


@dataclass(frozen=True)
class EligibleBed:
    """A bed open for allocation, enriched with its room and floor."""

    bed: Bed
    room: Room
    floor: Floor
    is_temporary: bool = False
    leave_id: Optional[int] = None

    @property
    def bed_id(self) -> int:
        return self.bed.bed_id

    @property
    def room_id(self) -> int:
        return self.room.room_id

    @property
    def room_label(self) -> str:
        return f"Floor {self.floor.floor_number}, Room {self.room.room_number}"

    @property
    def bed_label(self) -> str:
        return f"{self.room_label}, Bed {self.bed.bed_number}"


@dataclass(frozen=True)
class InventorySnapshot:
    """Read-only view of one camp taken at the start of a run."""

    camp: Camp
    beds: tuple[EligibleBed, ...]
    occupants_by_room: dict[int, tuple[Person, ...]] = field(default_factory=dict)
    total_beds: int = 0

    @property
    def eligible_bed_count(self) -> int:
        return len(self.beds)


@dataclass(frozen=True)
class AllocationRequest:
    """Everything one allocation run needs from its caller."""

    mode: AllocationMode
    camp_id: Optional[int] = None
    candidate_ids: tuple[int, ...] = ()
    preferences: AllocationPreferences = field(default_factory=AllocationPreferences)
    transfer_request_id: Optional[int] = None
    personnel_type: Optional[PersonType] = None


@dataclass(frozen=True)
class Rejection:
    room_id: Optional[int]
    reason: str


@dataclass(frozen=True)
class ProposalEntry:
    person: Person
    bed: EligibleBed
    score: Optional[int] = None

    @property
    def room(self) -> Room:
        return self.bed.room

    @property
    def floor(self) -> Floor:
        return self.bed.floor

    @property
    def is_temporary(self) -> bool:
        return self.bed.is_temporary


@dataclass(frozen=True)
class ConstraintExhaustion:
    """A candidate for whom every eligible bed failed a hard constraint."""

    person: Person
    rejections: tuple[Rejection, ...]

    @property
    def reasons(self) -> list[str]:
        unique: list[str] = []
        for rejection in self.rejections:
            if rejection.reason not in unique:
                unique.append(rejection.reason)
        return unique


@dataclass(frozen=True)
class AllocationResult:
    camp_id: int
    strategy: AllocationStrategy
    proposal: tuple[ProposalEntry, ...]
    unallocated: tuple[ConstraintExhaustion, ...]
    eligible_bed_count: int
    capacity_shortfall: int = 0

    @property
    def allocated_count(self) -> int:
        return len(self.proposal)

    @property
    def unallocated_count(self) -> int:
        return len(self.unallocated)


@dataclass(frozen=True)
class TransferConflict:
    person_id: int
    person_label: str
    transfer_request_id: int
    target_camp_id: int
    target_camp_name: Optional[str]

    @property
    def message(self) -> str:
        camp_name = self.target_camp_name or f"camp {self.target_camp_id}"
        return (
            f"{self.person_label} already has beds allocated for transfer to "
            f"{camp_name} (Request ID: {self.transfer_request_id})"
        )


@dataclass(frozen=True)
class CommitFailure:
    person_id: int
    bed_id: int
    kind: CommitFailureKind
    detail: str


@dataclass(frozen=True)
class CommitReport:
    mode: AllocationMode
    succeeded: int
    failures: tuple[CommitFailure, ...] = ()
    transfer_request_id: Optional[int] = None

    @property
    def failed(self) -> int:
        return len(self.failures)
