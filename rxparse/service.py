"""Service root: builds and owns the long-lived components.

The HTTP app and the evaluation harness both start from here so the job
registry, backend, sample store and orchestrator are wired in one place.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ai.backend import ExtractionBackend, create_backend

from .config import Settings, get_settings
from .datastore import PgVectorSampleStore, SampleStore
from .jobs import JobRegistry
from .pipelines.extraction import ExtractionOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class ParserService:
    """Long-lived components shared by every request."""
    settings: Settings
    registry: JobRegistry
    backend: ExtractionBackend | None
    store: SampleStore
    orchestrator: ExtractionOrchestrator

    @property
    def backend_name(self) -> str | None:
        return self.backend.name if self.backend is not None else None

    async def start(self) -> None:
        """Start background work. Must be called from the running event loop."""
        self.registry.start_reaper(
            self.settings.jobs.sweep_interval_seconds,
            self.settings.jobs.retention_seconds,
        )
        logger.info(f"Parser service started (backend={self.backend_name or 'none'})")

    async def stop(self) -> None:
        await self.orchestrator.shutdown()
        await self.registry.stop_reaper()
        logger.info("Parser service stopped")


def build_service(settings: Settings | None = None) -> ParserService:
    """Wire the production components from configuration."""
    settings = settings or get_settings()

    # Imported here so the engine is only created for a real service
    from .db import AsyncSessionMaker

    registry = JobRegistry()
    backend = create_backend(settings)
    if backend is None:
        logger.warning("No parser backend configured; submissions will be rejected")
    store = PgVectorSampleStore(AsyncSessionMaker)
    orchestrator = ExtractionOrchestrator(registry, backend, store, settings.pipeline)

    return ParserService(
        settings=settings,
        registry=registry,
        backend=backend,
        store=store,
        orchestrator=orchestrator,
    )
