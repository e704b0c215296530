"""Health check endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from almanac.api.dependencies import get_orchestrator
from almanac.research.orchestrator import Orchestrator

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Scheduler and queue liveness with next fire times."""
    next_fire = orchestrator.scheduler.next_fire_times()
    return {
        "status": "ok",
        "scheduled": orchestrator.scheduler.list_active(),
        "processing": orchestrator.queue.processing,
        "nextFireTimes": {
            config_id: when.isoformat() if when else None for config_id, when in next_fire.items()
        },
    }
