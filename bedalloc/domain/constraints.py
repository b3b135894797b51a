"""Allocation preferences, scoring weights and their validation rules."""

from __future__ import annotations

from dataclasses import dataclass

from bedalloc.utils.config import Settings


@dataclass(frozen=True)
class AllocationPreferences:
    """Operator toggles for one allocation run.

    The grouping flags drive candidate ordering and soft scoring in the scored
    strategy. ``nationality_grouping`` is strict: a room with occupants only
    accepts a candidate of the same nationality. ``gender_segregation``,
    ``age_based_berth`` and ``room_type_matching`` can only be relaxed for the
    scored strategy; sequential runs always enforce them.
    """

    gender_segregation: bool = True
    nationality_grouping: bool = True
    state_grouping: bool = True
    language_grouping: bool = True
    trade_grouping: bool = True
    shift_grouping: bool = True
    age_based_berth: bool = True
    room_type_matching: bool = True


@dataclass(frozen=True)
class ScoringWeights:
    nationality: int = 1000
    state: int = 800
    language: int = 700
    trade: int = 500
    shift: int = 450
    utilization_max: int = 400
    empty_room: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringWeights":
        return cls(
            nationality=settings.weight_nationality,
            state=settings.weight_state,
            language=settings.weight_language,
            trade=settings.weight_trade,
            shift=settings.weight_shift,
            utilization_max=settings.weight_utilization_max,
            empty_room=settings.weight_empty_room,
        )


def validate_scoring_weights(weights: ScoringWeights) -> None:
    for name in (
        "nationality",
        "state",
        "language",
        "trade",
        "shift",
        "utilization_max",
        "empty_room",
    ):
        if getattr(weights, name) < 0:
            raise ValueError(f"scoring weight '{name}' must be >= 0")


def validate_preferences(preferences: AllocationPreferences) -> None:
    for name, value in vars(preferences).items():
        if not isinstance(value, bool):
            raise ValueError(f"preference '{name}' must be a boolean")


def validate_lower_berth_age(age: int) -> None:
    if age <= 0:
        raise ValueError("lower_berth_age must be > 0")
