"""Service-level exceptions mapped to HTTP status codes by the controllers."""

from __future__ import annotations

from typing import Sequence

from bedalloc.domain.models import TransferConflict


class AllocationError(Exception):
    """Base class for allocation workflow failures."""


class AllocationValidationError(AllocationError):
    """Raised when an allocation request is malformed."""


class CampNotFoundError(AllocationError):
    """Raised when the target camp does not exist."""


class TransferNotFoundError(AllocationError):
    """Raised when the referenced transfer request does not exist."""


class ArrivalError(AllocationError):
    """Raised when an arrival cannot be confirmed."""


class ConflictError(AllocationError):
    """Raised when a candidate already holds an active competing allocation."""

    def __init__(self, conflicts: Sequence[TransferConflict]) -> None:
        self.conflicts = list(conflicts)
        super().__init__(
            "Duplicate bed allocations detected: "
            + "; ".join(conflict.message for conflict in self.conflicts)
        )
