"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from almanac import __version__
from almanac.api.routers import audit, configs, health, jobs, reports, sources
from almanac.config import AlmanacConfig
from almanac.research.orchestrator import Orchestrator


def create_app(orchestrator: Orchestrator | None = None, config: AlmanacConfig | None = None) -> FastAPI:
    """
    Build the app around one orchestrator.

    The orchestrator is started when the app starts (seed defaults, register
    timers) and stopped on shutdown.
    """
    if orchestrator is None:
        orchestrator = Orchestrator(config or AlmanacConfig.load())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await orchestrator.start()
        try:
            yield
        finally:
            await orchestrator.stop()

    app = FastAPI(
        title="Almanac",
        description="Scheduled deep-research jobs, audit ledger and source trust scores",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(audit.router)
    app.include_router(sources.router)
    app.include_router(configs.router)
    app.include_router(reports.router)

    @app.get("/")
    async def root():
        """API root - returns basic info."""
        return {"name": "Almanac", "version": __version__, "docs": "/docs"}

    return app
