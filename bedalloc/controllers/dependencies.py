"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.services.arrival_service import ArrivalService
from bedalloc.services.inventory_index import InventoryIndex


def _require_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_allocation_service(request: Request) -> BedAllocationService:
    return _require_state(request, "allocation_service", "Allocation service")


def get_arrival_service(request: Request) -> ArrivalService:
    return _require_state(request, "arrival_service", "Arrival service")


def get_inventory_index(request: Request) -> InventoryIndex:
    return _require_state(request, "inventory_index", "Inventory index")
