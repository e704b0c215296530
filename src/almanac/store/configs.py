"""
Config Store - CRUD for research configs.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from almanac.research.models import Category, ResearchConfig, utc_now
from almanac.store.database import Database, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, name, description, prompt, category, topics, preferred_sources, "
    "blocked_sources, enabled, schedule, created_at, updated_at"
)

# Schedules are spaced five minutes apart so the seeded jobs queue in order.
DEFAULT_CONFIGS: list[dict[str, Any]] = [
    {
        "id": "papers-ai-computing",
        "name": "AI/ML Research",
        "description": "Substantive AI/ML research papers and technical whitepapers",
        "prompt": (
            "Prioritize papers introducing new architectures, training methods, "
            "or significant benchmark improvements."
        ),
        "category": Category.PAPERS,
        "topics": [
            "LLMs",
            "transformers",
            "reasoning",
            "agents",
            "multimodal",
            "RLHF",
            "inference optimization",
        ],
        "preferred_sources": [
            "arxiv.org",
            "openreview.net",
            "openai.com",
            "anthropic.com",
            "deepmind.google",
            "ai.meta.com",
            "research.google",
        ],
        "schedule": "0 6 * * *",
    },
    {
        "id": "news-tech",
        "name": "Tech Industry",
        "description": "AI labs, FAANG, and startup ecosystem news",
        "prompt": "Focus on substantive developments, not rumors or speculation.",
        "category": Category.NEWS,
        "topics": ["OpenAI", "Anthropic", "Google", "Meta AI", "xAI", "startups", "developer tools"],
        "preferred_sources": ["techcrunch.com", "theverge.com", "arstechnica.com", "x.com"],
        "schedule": "5 6 * * *",
    },
    {
        "id": "markets-tech",
        "name": "Markets & Finance",
        "description": "Tech equities, Mag 7, and market movers",
        "prompt": "Focus on price action, earnings, and analyst moves for tech/growth names.",
        "category": Category.MARKETS,
        "topics": [
            "NVDA",
            "AAPL",
            "MSFT",
            "GOOGL",
            "AMZN",
            "META",
            "TSLA",
            "semiconductors",
            "S&P tech",
        ],
        "preferred_sources": ["bloomberg.com", "reuters.com", "wsj.com", "seekingalpha.com"],
        "schedule": "10 6 * * *",
    },
    {
        "id": "politics-tech",
        "name": "US Politics",
        "description": "US presidency, Congress, and federal policy",
        "prompt": "Cover major federal developments with awareness of tech implications.",
        "category": Category.POLITICS,
        "topics": [
            "presidency",
            "Congress",
            "Supreme Court",
            "AI regulation",
            "antitrust",
            "trade policy",
        ],
        "preferred_sources": [
            "politico.com",
            "axios.com",
            "thehill.com",
            "reuters.com",
            "apnews.com",
        ],
        "schedule": "15 6 * * *",
    },
]


def _row_to_config(row: sqlite3.Row) -> ResearchConfig:
    return ResearchConfig(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        prompt=row["prompt"],
        category=row["category"],
        topics=json.loads(row["topics"] or "[]"),
        preferred_sources=json.loads(row["preferred_sources"] or "[]"),
        blocked_sources=json.loads(row["blocked_sources"] or "[]"),
        enabled=bool(row["enabled"]),
        schedule=row["schedule"],
        created_at=from_timestamp(row["created_at"]),
        updated_at=from_timestamp(row["updated_at"]),
    )


def _config_params(config: ResearchConfig) -> tuple[Any, ...]:
    return (
        config.id,
        config.name,
        config.description,
        config.prompt,
        config.category.value,
        json.dumps(config.topics),
        json.dumps(config.preferred_sources),
        json.dumps(config.blocked_sources),
        1 if config.enabled else 0,
        config.schedule,
        to_timestamp(config.created_at),
        to_timestamp(config.updated_at),
    )


class ConfigStore:
    """Research configs persisted in the research_configs table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def list_configs(self, enabled_only: bool = False) -> list[ResearchConfig]:
        """All configs ordered by category, then name."""
        query = f"SELECT {_COLUMNS} FROM research_configs"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY category, name"
        rows = self.db.connection.execute(query).fetchall()
        return [_row_to_config(row) for row in rows]

    def get(self, config_id: str) -> ResearchConfig | None:
        row = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM research_configs WHERE id = ?", (config_id,)
        ).fetchone()
        return _row_to_config(row) if row else None

    def exists(self, config_id: str) -> bool:
        row = self.db.connection.execute(
            "SELECT 1 FROM research_configs WHERE id = ?", (config_id,)
        ).fetchone()
        return row is not None

    def create(self, config: ResearchConfig) -> ResearchConfig:
        """Insert a new config. Raises ValueError if the id is taken."""
        now = utc_now()
        config = config.model_copy(update={"created_at": now, "updated_at": now})
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    f"INSERT INTO research_configs ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _config_params(config),
                )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Config already exists: {config.id}") from e
        logger.info("Created research config %s", config.id)
        return config

    def update(self, config_id: str, changes: dict[str, Any]) -> ResearchConfig | None:
        """
        Apply a partial update. Returns None when the config does not exist.

        Changes are re-validated through the model, so a bad category or
        source list raises pydantic's ValidationError.
        """
        existing = self.get(config_id)
        if existing is None:
            return None

        changes = {k: v for k, v in changes.items() if k not in {"id", "created_at"}}
        merged = existing.model_dump()
        merged.update(changes)
        merged["updated_at"] = utc_now()
        updated = ResearchConfig.model_validate(merged)

        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE research_configs
                SET name = ?, description = ?, prompt = ?, category = ?, topics = ?,
                    preferred_sources = ?, blocked_sources = ?, enabled = ?, schedule = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (*_config_params(updated)[1:10], to_timestamp(updated.updated_at), config_id),
            )
        logger.info("Updated research config %s", config_id)
        return updated

    def save(self, config: ResearchConfig) -> ResearchConfig:
        """Insert or replace a config, keeping the original created_at."""
        existing = self.get(config.id)
        if existing is None:
            return self.create(config)
        changes = config.model_dump(exclude={"id", "created_at", "updated_at"})
        updated = self.update(config.id, changes)
        assert updated is not None
        return updated

    def delete(self, config_id: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM research_configs WHERE id = ?", (config_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted research config %s", config_id)
        return deleted

    def seed_defaults(self) -> int:
        """Insert the default configs that are not present yet. Returns the number inserted."""
        now = utc_now()
        inserted = 0
        with self.db.transaction() as conn:
            for data in DEFAULT_CONFIGS:
                config = ResearchConfig(**data, created_at=now, updated_at=now)
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO research_configs ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _config_params(config),
                )
                inserted += cursor.rowcount
        if inserted:
            logger.info("Seeded %d default research configs", inserted)
        return inserted
