"""Hard constraint checks and soft scoring for (person, bed) pairs.

Everything here is pure: the only state consulted is the run's
``RoomOccupancyLedger``, which the allocator owns and updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from bedalloc.domain.constraints import AllocationPreferences, ScoringWeights
from bedalloc.domain.ledger import RoomOccupancyLedger
from bedalloc.domain.models import (
    EligibleBed,
    OccupantType,
    Person,
    PersonType,
    Rejection,
)


@dataclass(frozen=True)
class ConstraintPolicy:
    room_type_matching: bool = True
    gender_segregation: bool = True
    age_based_berth: bool = True
    strict_nationality: bool = False
    lower_berth_age: int = 45

    @classmethod
    def sequential(cls, lower_berth_age: int = 45) -> "ConstraintPolicy":
        return cls(lower_berth_age=lower_berth_age)

    @classmethod
    def scored(
        cls,
        preferences: AllocationPreferences,
        lower_berth_age: int = 45,
    ) -> "ConstraintPolicy":
        return cls(
            room_type_matching=preferences.room_type_matching,
            gender_segregation=preferences.gender_segregation,
            age_based_berth=preferences.age_based_berth,
            strict_nationality=preferences.nationality_grouping,
            lower_berth_age=lower_berth_age,
        )


def compute_age(date_of_birth: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Whole years since ``date_of_birth``; None when unknown."""
    if date_of_birth is None:
        return None
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def check_room_type(
    person: Person,
    bed: EligibleBed,
    ledger: RoomOccupancyLedger,
    *,
    room_type_matching: bool = True,
) -> Optional[str]:
    room = bed.room
    person_type = person.person_type.value
    if room.occupant_type is OccupantType.STAFF_ONLY:
        return f"{bed.room_label}: Staff-only room"
    if room_type_matching:
        if (
            room.occupant_type is OccupantType.TECHNICIAN_ONLY
            and person.person_type is not PersonType.TECHNICIAN
        ):
            return f"{bed.room_label}: Technician-only room (you are {person_type})"
        if (
            room.occupant_type is OccupantType.EXTERNAL_ONLY
            and person.person_type is not PersonType.EXTERNAL
        ):
            return f"{bed.room_label}: External-only room (you are {person_type})"
    if room.occupant_type is OccupantType.MIXED:
        existing = ledger.established_type(room.room_id)
        if existing is not None and existing is not person.person_type:
            return (
                f"{bed.room_label}: Mixed room already has {existing.value} "
                f"(you are {person_type})"
            )
    return None


def check_gender(person: Person, bed: EligibleBed) -> Optional[str]:
    restriction = bed.room.gender_restriction
    if restriction.is_restricted and restriction.value != (person.gender or "").lower():
        return f"{bed.room_label}: {restriction.value} only room (you are {person.gender})"
    return None


def check_berth(bed: EligibleBed, age: Optional[int], lower_berth_age: int) -> Optional[str]:
    if age is not None and age >= lower_berth_age and not bed.bed.is_lower_berth:
        return f"{bed.bed_label}: Upper berth (you need lower berth, age {age})"
    return None


def check_nationality(
    person: Person,
    bed: EligibleBed,
    ledger: RoomOccupancyLedger,
) -> Optional[str]:
    nationalities = ledger.nationalities(bed.room_id)
    if not nationalities or nationalities == {person.nationality}:
        return None
    present = ", ".join(sorted(str(value) for value in nationalities))
    return (
        f"{bed.room_label}: Nationality mismatch (room has {present}, "
        f"you are {person.nationality})"
    )


def evaluate_hard_constraints(
    person: Person,
    bed: EligibleBed,
    ledger: RoomOccupancyLedger,
    policy: ConstraintPolicy,
    age: Optional[int],
) -> Optional[Rejection]:
    """Return the first failed hard constraint, or None when the bed is legal."""
    reason = check_room_type(
        person,
        bed,
        ledger,
        room_type_matching=policy.room_type_matching,
    )
    if reason is None and policy.gender_segregation:
        reason = check_gender(person, bed)
    if reason is None and policy.age_based_berth:
        reason = check_berth(bed, age, policy.lower_berth_age)
    if reason is None and policy.strict_nationality:
        reason = check_nationality(person, bed, ledger)
    if reason is None:
        return None
    return Rejection(room_id=bed.room_id, reason=reason)


def _shares_language(person: Person, other: Person) -> bool:
    return bool(person.languages) and bool(set(person.languages) & set(other.languages))


def score_bed(
    person: Person,
    bed: EligibleBed,
    ledger: RoomOccupancyLedger,
    preferences: AllocationPreferences,
    weights: ScoringWeights,
) -> int:
    """Desirability of an already-legal bed for ``person``."""
    occupants = ledger.occupants(bed.room_id)
    if not occupants:
        return weights.empty_room

    combined = (person, *occupants)
    is_worker = person.person_type is PersonType.TECHNICIAN
    score = 0

    if all(other.nationality == person.nationality for other in combined):
        score += weights.nationality
    if preferences.state_grouping and all(other.state == person.state for other in combined):
        score += weights.state
    if preferences.language_grouping and all(
        _shares_language(person, other) for other in combined
    ):
        score += weights.language
    if (
        preferences.trade_grouping
        and is_worker
        and all(
            other.person_type is PersonType.TECHNICIAN and other.trade == person.trade
            for other in combined
        )
    ):
        score += weights.trade
    if (
        preferences.shift_grouping
        and is_worker
        and all(
            other.person_type is PersonType.TECHNICIAN and other.shift == person.shift
            for other in combined
        )
    ):
        score += weights.shift

    capacity = bed.room.capacity or 1
    score += int(len(occupants) / capacity * weights.utilization_max)
    return score
