"""Operator-facing summaries of an allocation run."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

import pandas as pd

from bedalloc.domain.evaluator import compute_age
from bedalloc.domain.models import AllocationResult


_REJECTION_COLUMNS = ["person_id", "person_name", "person_type", "room_id", "reason"]
_PROPOSAL_COLUMNS = [
    "person_id",
    "person_name",
    "person_type",
    "floor",
    "room",
    "bed",
    "is_lower_berth",
    "is_temporary",
    "score",
]


def rejections_frame(result: AllocationResult) -> pd.DataFrame:
    """One row per distinct (person, reason) for unallocated candidates."""
    rows: list[dict[str, Any]] = []
    for item in result.unallocated:
        seen: set[str] = set()
        for rejection in item.rejections:
            if rejection.reason in seen:
                continue
            seen.add(rejection.reason)
            rows.append(
                {
                    "person_id": item.person.person_id,
                    "person_name": item.person.full_name,
                    "person_type": item.person.person_type.value,
                    "room_id": rejection.room_id,
                    "reason": rejection.reason,
                }
            )
    return pd.DataFrame(rows, columns=_REJECTION_COLUMNS)


def proposal_frame(result: AllocationResult) -> pd.DataFrame:
    rows = [
        {
            "person_id": entry.person.person_id,
            "person_name": entry.person.full_name,
            "person_type": entry.person.person_type.value,
            "floor": entry.floor.floor_number,
            "room": entry.room.room_number,
            "bed": entry.bed.bed.bed_number,
            "is_lower_berth": entry.bed.bed.is_lower_berth,
            "is_temporary": entry.is_temporary,
            "score": entry.score,
        }
        for entry in result.proposal
    ]
    return pd.DataFrame(rows, columns=_PROPOSAL_COLUMNS)


def summarize(
    result: AllocationResult,
    *,
    lower_berth_age: int = 45,
    today: Optional[date] = None,
) -> dict[str, Any]:
    today = today or date.today()
    people = [entry.person for entry in result.proposal] + [
        item.person for item in result.unallocated
    ]
    ages = [compute_age(person.date_of_birth, today) for person in people]
    over_age = sum(1 for age in ages if age is not None and age >= lower_berth_age)

    frame = rejections_frame(result)
    top_reasons: dict[str, int] = {}
    if not frame.empty:
        counts = frame["reason"].value_counts()
        top_reasons = {str(reason): int(count) for reason, count in counts.head(5).items()}

    proposals = proposal_frame(result)
    by_floor: dict[str, int] = {}
    if not proposals.empty:
        by_floor = {
            str(floor): int(count)
            for floor, count in proposals.groupby("floor").size().items()
        }

    return {
        "camp_id": result.camp_id,
        "strategy": result.strategy.value,
        "total_candidates": len(people),
        "allocated": result.allocated_count,
        "unallocated": result.unallocated_count,
        "eligible_beds": result.eligible_bed_count,
        "capacity_shortfall": result.capacity_shortfall,
        "lower_berth_candidates": over_age,
        "lower_berth_assignments": int(proposals["is_lower_berth"].sum()),
        "temporary_allocations": int(proposals["is_temporary"].sum()),
        "allocations_by_floor": by_floor,
        "top_rejection_reasons": top_reasons,
    }
