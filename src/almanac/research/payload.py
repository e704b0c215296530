"""
Payload parsing - Turn provider output text into report content.

The provider is asked for a JSON object, but frequently wraps it in a
markdown code fence or returns something else entirely. Parsing never
raises to the caller: the result is either a ParsedPayload or a
ParseFailure carrying the raw text and the reason.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import Field, ValidationError, field_validator

from almanac.errors import ParseError
from almanac.research.models import CamelModel

logger = structlog.get_logger()

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
MAX_RELEVANCE = 10.0


class PayloadItem(CamelModel):
    """One item as the provider returns it."""

    title: str = Field(..., min_length=1)
    source: str | None = None
    url: str | None = None
    summary: str | None = None
    relevance_score: float = 0.0
    published_at: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("relevance_score", mode="before")
    @classmethod
    def clamp_relevance(cls, v: Any) -> Any:
        """Keep items scored on another scale; clamp to 0-10."""
        if v is None:
            return 0.0
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return v
        try:
            score = float(v)
        except ValueError:
            return v
        return min(MAX_RELEVANCE, max(0.0, score))

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v


@dataclass
class ParsedPayload:
    """Provider output that parsed into a summary and valid items."""

    summary: str
    items: list[PayloadItem] = field(default_factory=list)
    dropped: int = 0


@dataclass
class ParseFailure:
    """Provider output that could not be parsed."""

    raw_text: str
    reason: str

    @property
    def summary(self) -> str:
        return f"Failed to parse research output: {self.reason}"


ParseResult = ParsedPayload | ParseFailure


def strip_code_fence(text: str) -> str:
    """Return the body of the first markdown code fence, or the text itself."""
    match = _CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _load_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON ({e.msg} at line {e.lineno})") from e
    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_payload(text: str) -> ParseResult:
    """Parse provider output text into a ParsedPayload or a ParseFailure."""
    try:
        data = _load_object(text)
    except ParseError as e:
        logger.warning("Failed to parse research output", reason=str(e))
        return ParseFailure(raw_text=text, reason=str(e))

    summary = data.get("summary")
    if summary is None:
        summary = ""
    elif not isinstance(summary, str):
        summary = str(summary)

    raw_items = data.get("items")
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        reason = f"'items' must be a list, got {type(raw_items).__name__}"
        logger.warning("Failed to parse research output", reason=reason)
        return ParseFailure(raw_text=text, reason=reason)

    items: list[PayloadItem] = []
    dropped = 0
    for index, raw in enumerate(raw_items):
        try:
            items.append(PayloadItem.model_validate(raw))
        except ValidationError as e:
            dropped += 1
            logger.warning(
                "Dropping invalid research item",
                index=index,
                errors=e.error_count(),
            )

    return ParsedPayload(summary=summary, items=items, dropped=dropped)
