"""Audit ledger endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from almanac.api.dependencies import get_orchestrator
from almanac.research.models import dump
from almanac.research.orchestrator import Orchestrator

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/status")
async def audit_status(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Running entries and entries finalized in the last five minutes."""
    ledger = orchestrator.ledger
    return {
        "running": [dump(e) for e in ledger.list_running()],
        "recentCompleted": [dump(e) for e in ledger.list_recent_terminal()],
    }


@router.get("")
async def list_audit(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
    limit: Annotated[int, Query(ge=1, le=500, description="Max entries")] = 50,
):
    """Recent entries with cost and usage totals."""
    entries = orchestrator.ledger.list_recent(limit)
    return {
        "entries": [dump(e) for e in entries],
        "totals": dump(orchestrator.ledger.totals(entries)),
    }


@router.get("/{entry_id}")
async def get_audit_entry(
    entry_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    entry = orchestrator.ledger.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Audit entry not found")
    return dump(entry)
