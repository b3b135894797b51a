"""
app.py - FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from bedalloc.controllers.allocation_controller import router as allocation_router
from bedalloc.repository.data_repository import DataRepository
from bedalloc.services.allocation_service import BedAllocationService
from bedalloc.services.arrival_service import ArrivalService
from bedalloc.services.commit_service import ProposalCommitter
from bedalloc.services.conflict_service import ConflictDetector
from bedalloc.services.inventory_index import InventoryIndex
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every dependency is traceable from this function.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    repository = DataRepository(settings)

    inventory_index = InventoryIndex(repository=repository, settings=settings)
    conflict_detector = ConflictDetector(repository=repository, settings=settings)
    committer = ProposalCommitter(repository=repository, settings=settings)
    allocation_service = BedAllocationService(
        repository=repository,
        settings=settings,
        inventory_index=inventory_index,
        conflict_detector=conflict_detector,
        committer=committer,
    )
    arrival_service = ArrivalService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(allocation_router)

    app.state.repository = repository
    app.state.inventory_index = inventory_index
    app.state.allocation_service = allocation_service
    app.state.arrival_service = arrival_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent startup sequence. Schema must exist before seeding."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema | path=%s", repository.database_path)
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo camps (skipped if Camps table not empty)")
        repository.seed_demo_data()

    logger.info("Startup complete | app=%s", settings.app_name)


app = create_app()
