"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str = "Camp Bed Allocation"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = Path("data/bed_allocation.db")
    seed_demo_data: bool = True

    lower_berth_age: int = 45

    weight_nationality: int = 1000
    weight_state: int = 800
    weight_language: int = 700
    weight_trade: int = 500
    weight_shift: int = 450
    weight_utilization_max: int = 400
    weight_empty_room: int = 100


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from BEDALLOC_* environment variables."""
    defaults = Settings()
    return Settings(
        app_name=os.getenv("BEDALLOC_APP_NAME", defaults.app_name),
        app_version=os.getenv("BEDALLOC_APP_VERSION", defaults.app_version),
        log_level=os.getenv("BEDALLOC_LOG_LEVEL", defaults.log_level),
        database_path=Path(
            os.getenv("BEDALLOC_DATABASE_PATH", str(defaults.database_path))
        ),
        seed_demo_data=_env_bool("BEDALLOC_SEED_DEMO_DATA", defaults.seed_demo_data),
        lower_berth_age=_env_int("BEDALLOC_LOWER_BERTH_AGE", defaults.lower_berth_age),
        weight_nationality=_env_int(
            "BEDALLOC_WEIGHT_NATIONALITY", defaults.weight_nationality
        ),
        weight_state=_env_int("BEDALLOC_WEIGHT_STATE", defaults.weight_state),
        weight_language=_env_int("BEDALLOC_WEIGHT_LANGUAGE", defaults.weight_language),
        weight_trade=_env_int("BEDALLOC_WEIGHT_TRADE", defaults.weight_trade),
        weight_shift=_env_int("BEDALLOC_WEIGHT_SHIFT", defaults.weight_shift),
        weight_utilization_max=_env_int(
            "BEDALLOC_WEIGHT_UTILIZATION_MAX", defaults.weight_utilization_max
        ),
        weight_empty_room=_env_int(
            "BEDALLOC_WEIGHT_EMPTY_ROOM", defaults.weight_empty_room
        ),
    )
