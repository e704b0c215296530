"""
Pydantic models for the Almanac research core.

Defines the data structures for:
- Research configs (topic definitions, read from the config store)
- Queue entries and queue snapshots
- Audit entries (one row per job)
- Research reports and items
- Sources and source feedback
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# =============================================================================
# Enums
# =============================================================================


class Category(str, Enum):
    """Research category; selects the framing used in the provider request."""

    PAPERS = "papers"
    NEWS = "news"
    MARKETS = "markets"
    POLITICS = "politics"


class AuditStatus(str, Enum):
    """Status of an audit entry."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AuditStatus.STARTED


class JobState(str, Enum):
    """Lifecycle of one job inside the execution engine."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the HTTP surface."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Domain helpers
# =============================================================================

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")


def normalize_domain(value: str) -> str:
    """Normalize a domain or URL to a bare lowercase host (no scheme, path or www.)."""
    domain = value.strip().lower()
    domain = _SCHEME_RE.sub("", domain)
    domain = domain.split("/", 1)[0].split("?", 1)[0]
    domain = domain.rsplit("@", 1)[-1].split(":", 1)[0]
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.strip(".")


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


# =============================================================================
# Research Config
# =============================================================================


class ResearchConfig(CamelModel):
    """
    A named, schedulable research topic definition.

    Owned by the config store; the orchestration core only reads it.
    """

    id: str = Field(..., description="Unique config identifier")
    name: str = Field(..., description="Human-readable name")
    description: str = Field(default="", description="Brief description")
    prompt: str = Field(..., description="Extra instructions appended to the request")
    category: Category = Field(..., description="Research category")
    topics: list[str] = Field(default_factory=list, description="Ordered topics")
    preferred_sources: list[str] = Field(default_factory=list, description="Domains to prioritize")
    blocked_sources: list[str] = Field(default_factory=list, description="Domains to avoid")
    enabled: bool = Field(default=True, description="Enable/disable without deleting")
    schedule: str = Field(
        default="0 6 * * *",
        description="Cron expression (minute hour day-of-month month day-of-week)",
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate config ID format."""
        if not re.match(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$", v):
            raise ValueError(f"id must be alphanumeric with '-', '_' or '.', got '{v}'")
        return v

    @field_validator("topics")
    @classmethod
    def validate_topics(cls, v: list[str]) -> list[str]:
        return _dedupe(v)

    @field_validator("preferred_sources", "blocked_sources")
    @classmethod
    def validate_sources(cls, v: list[str]) -> list[str]:
        return _dedupe([normalize_domain(d) for d in v])

    @classmethod
    def from_yaml_file(cls, path: Path) -> list[ResearchConfig]:
        """Load one config, or a list of configs, from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict) and "configs" in data:
            data = data["configs"]
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ValueError(f"Expected a config mapping or list in {path}")
        return [cls.model_validate(item) for item in data]


# =============================================================================
# Queue
# =============================================================================


class QueueEntry(CamelModel):
    """A config waiting for the queue worker."""

    config_id: str
    enqueued_at: datetime = Field(default_factory=utc_now)


class EnqueueResult(CamelModel):
    """Outcome of a single enqueue request."""

    position: int
    already_queued: bool


class EnqueueSummary(CamelModel):
    """Outcome of enqueueing several configs."""

    queued: int = 0
    skipped: int = 0


class QueueStatus(CamelModel):
    """Point-in-time snapshot of the job queue."""

    processing: bool
    current_config_id: str | None
    queue_length: int
    queue: list[QueueEntry] = Field(default_factory=list)


# =============================================================================
# Audit
# =============================================================================


class AuditEntry(CamelModel):
    """One row describing a job's lifecycle and cost."""

    id: str
    event_type: str
    config_id: str | None = None
    config_name: str | None = None
    report_id: str | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    web_search_calls: int = 0
    estimated_cost_cents: float = 0.0
    runtime_ms: int = 0
    status: AuditStatus = AuditStatus.STARTED
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class AuditTotals(CamelModel):
    """Aggregated cost/usage over a set of audit entries."""

    cost_cents: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    web_searches: int = 0


# =============================================================================
# Reports
# =============================================================================


class ResearchItem(CamelModel):
    """A single finding inside a report."""

    id: str | None = None
    report_id: str | None = None
    title: str
    source: str | None = None
    url: str | None = None
    summary: str | None = None
    relevance_score: float = 0.0
    published_at: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)


class ResearchReport(CamelModel):
    """A report groups zero or more items produced by one job."""

    id: str | None = None
    config_id: str
    config_name: str
    category: str
    generated_at: datetime | None = None
    summary: str = ""
    items: list[ResearchItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items


class ReportPage(CamelModel):
    """Paginated report listing."""

    data: list[ResearchReport]
    total: int
    page: int
    page_size: int
    total_pages: int


# =============================================================================
# Sources
# =============================================================================


class Source(CamelModel):
    """Reputation row for a content domain."""

    domain: str
    name: str | None = None
    category: str | None = None
    upvotes: int = 0
    downvotes: int = 0
    trust_score: float = 0.5
    last_seen: datetime | None = None
    created_at: datetime | None = None

    @property
    def total_votes(self) -> int:
        return self.upvotes + self.downvotes


class SourceFeedback(CamelModel):
    """Append-only feedback event."""

    id: str
    source_domain: str
    item_id: str | None = None
    rating: int
    created_at: datetime


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialize a model for JSON responses (camelCase keys)."""
    return model.model_dump(mode="json", by_alias=True)
