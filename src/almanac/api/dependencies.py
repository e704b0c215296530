"""FastAPI dependencies."""

from fastapi import Request

from almanac.research.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """The process-wide orchestrator attached to the app."""
    return request.app.state.orchestrator
