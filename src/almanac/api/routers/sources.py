"""Source feedback and ranking endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from almanac.api.dependencies import get_orchestrator
from almanac.errors import InvalidFeedbackError
from almanac.research.models import CamelModel, dump
from almanac.research.orchestrator import Orchestrator

router = APIRouter(prefix="/sources", tags=["sources"])


class FeedbackRequest(CamelModel):
    """Body of POST /sources/feedback."""

    source_domain: str | None = None
    item_id: str | None = None
    rating: Any = None
    category: str | None = None


@router.post("/feedback")
async def submit_feedback(
    body: FeedbackRequest,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    """Record an upvote (1) or downvote (-1) for a source domain."""
    if not body.source_domain or body.rating is None:
        raise HTTPException(status_code=400, detail="Invalid feedback data")
    try:
        orchestrator.trust.submit_feedback(
            body.source_domain, body.rating, item_id=body.item_id, category=body.category
        )
    except InvalidFeedbackError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True}


@router.get("")
async def list_sources(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
    category: Annotated[str | None, Query(description="Filter by category")] = None,
):
    """Sources ranked by trust score."""
    return [dump(s) for s in orchestrator.trust.top_sources(category=category)]


@router.post("/recalculate")
async def recalculate(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    """Recompute every trust score."""
    updated = orchestrator.trust.recompute_all()
    return {"success": True, "updated": updated}
