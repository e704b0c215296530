"""Job trigger and queue status endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from almanac.api.dependencies import get_orchestrator
from almanac.errors import ConfigNotFoundError
from almanac.research.models import dump
from almanac.research.orchestrator import Orchestrator

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/run/{config_id}", status_code=status.HTTP_202_ACCEPTED)
async def run_config(
    config_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    """Queue one config. Returns before the job runs."""
    try:
        result = orchestrator.run_now(config_id)
    except ConfigNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"queued": True, **dump(result)}


@router.post("/run-all", status_code=status.HTTP_202_ACCEPTED)
async def run_all(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Queue every enabled config."""
    return dump(orchestrator.run_all())


@router.get("/status")
async def queue_status(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Queue snapshot plus the configs with a live timer."""
    return {
        **dump(orchestrator.queue.status()),
        "scheduled": orchestrator.scheduler.list_active(),
    }
