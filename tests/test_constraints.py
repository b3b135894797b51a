"""Tests for allocation preference and scoring weight validation."""

from __future__ import annotations

from dataclasses import replace

import pytest

from bedalloc.domain.constraints import (
    AllocationPreferences,
    ScoringWeights,
    validate_lower_berth_age,
    validate_preferences,
    validate_scoring_weights,
)
from bedalloc.utils.config import get_settings


# --- Baseline pass ---

def test_default_preferences_pass() -> None:
    validate_preferences(AllocationPreferences())


def test_default_weights_pass() -> None:
    validate_scoring_weights(ScoringWeights())


def test_default_weights_follow_priority_order() -> None:
    weights = ScoringWeights()
    assert (
        weights.nationality,
        weights.state,
        weights.language,
        weights.trade,
        weights.shift,
        weights.utilization_max,
        weights.empty_room,
    ) == (1000, 800, 700, 500, 450, 400, 100)


# --- preferences ---

def test_non_boolean_preference_raises() -> None:
    with pytest.raises(ValueError, match="state_grouping"):
        validate_preferences(AllocationPreferences(state_grouping="yes"))  # type: ignore[arg-type]


def test_all_preferences_disabled_is_valid() -> None:
    validate_preferences(
        AllocationPreferences(
            gender_segregation=False,
            nationality_grouping=False,
            state_grouping=False,
            language_grouping=False,
            trade_grouping=False,
            shift_grouping=False,
            age_based_berth=False,
            room_type_matching=False,
        )
    )


# --- scoring weights ---

@pytest.mark.parametrize(
    "field_name",
    ["nationality", "state", "language", "trade", "shift", "utilization_max", "empty_room"],
)
def test_negative_weight_raises(field_name: str) -> None:
    with pytest.raises(ValueError, match=field_name):
        validate_scoring_weights(replace(ScoringWeights(), **{field_name: -1}))


def test_zero_weight_is_valid() -> None:
    validate_scoring_weights(ScoringWeights(empty_room=0))


def test_weights_load_from_settings() -> None:
    settings = replace(get_settings(), weight_nationality=5000, weight_empty_room=7)
    weights = ScoringWeights.from_settings(settings)
    assert weights.nationality == 5000
    assert weights.empty_room == 7
    assert weights.state == settings.weight_state


# --- lower berth age ---

def test_lower_berth_age_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_lower_berth_age(0)


def test_lower_berth_age_positive_passes() -> None:
    validate_lower_berth_age(45)
