"""Research report endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from almanac.api.dependencies import get_orchestrator
from almanac.research.models import dump
from almanac.research.orchestrator import Orchestrator

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/latest")
async def latest_reports(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Most recent report of every config."""
    return [dump(r) for r in orchestrator.reports.latest()]


@router.get("")
async def report_history(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[int, Query(alias="pageSize", ge=1, le=100, description="Page size")] = 10,
    category: Annotated[str | None, Query(description="Filter by category")] = None,
):
    """Paginated report history, newest first."""
    return dump(orchestrator.reports.history(page=page, page_size=page_size, category=category))


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    report = orchestrator.reports.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return dump(report)
