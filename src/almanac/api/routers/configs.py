"""Research config CRUD endpoints.

Every write goes through the orchestrator, which re-registers the config's
timer (enable, disable or reschedule).
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, ValidationError

from almanac.api.dependencies import get_orchestrator
from almanac.errors import ConfigNotFoundError, InvalidScheduleError
from almanac.research.models import CamelModel, Category, ResearchConfig, dump
from almanac.research.orchestrator import Orchestrator

router = APIRouter(prefix="/configs", tags=["configs"])


class ConfigCreate(CamelModel):
    """Body of POST /configs."""

    id: str | None = None
    name: str = Field(..., min_length=1)
    description: str = ""
    prompt: str = Field(..., min_length=1)
    category: Category
    topics: list[str] = Field(default_factory=list)
    preferred_sources: list[str] = Field(default_factory=list)
    blocked_sources: list[str] = Field(default_factory=list)
    enabled: bool = True
    schedule: str = "0 6 * * *"


class ConfigUpdate(CamelModel):
    """Body of PUT /configs/{id}; only provided fields change."""

    name: str | None = None
    description: str | None = None
    prompt: str | None = None
    category: Category | None = None
    topics: list[str] | None = None
    preferred_sources: list[str] | None = None
    blocked_sources: list[str] | None = None
    enabled: bool | None = None
    schedule: str | None = None


@router.get("")
async def list_configs(orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)]):
    return [dump(c) for c in orchestrator.configs.list_configs()]


@router.get("/{config_id}")
async def get_config(
    config_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    config = orchestrator.configs.get(config_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Config not found")
    return dump(config)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_config(
    body: ConfigCreate,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    """Create a config and schedule it when enabled."""
    data = body.model_dump()
    data["id"] = data["id"] or str(uuid.uuid4())
    try:
        config = orchestrator.create_config(ResearchConfig(**data))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except InvalidScheduleError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return dump(config)


@router.put("/{config_id}")
async def update_config(
    config_id: str,
    body: ConfigUpdate,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    """Apply a partial update and re-register the timer."""
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    try:
        config = orchestrator.update_config(config_id, changes)
    except ConfigNotFoundError as e:
        raise HTTPException(status_code=404, detail="Config not found") from e
    except (InvalidScheduleError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return dump(config)


@router.delete("/{config_id}")
async def delete_config(
    config_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
):
    try:
        orchestrator.delete_config(config_id)
    except ConfigNotFoundError as e:
        raise HTTPException(status_code=404, detail="Config not found") from e
    return {"success": True}
