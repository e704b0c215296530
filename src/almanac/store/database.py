"""
Almanac Database - SQLite storage shared by every store.

Tables:
- research_configs: schedulable topic definitions
- research_reports / research_items: job output
- audit_log: one row per job (usage, cost, status)
- sources / source_feedback: reputation of content domains

Location: data/almanac.db (see DatabaseConfig)
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA = """
-- Research configs (topic definitions)
CREATE TABLE IF NOT EXISTS research_configs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    prompt TEXT NOT NULL,
    category TEXT NOT NULL CHECK(category IN ('papers', 'news', 'markets', 'politics')),
    topics TEXT NOT NULL,
    preferred_sources TEXT,
    blocked_sources TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    schedule TEXT NOT NULL DEFAULT '0 6 * * *',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Reports keep config_id/config_name as history; configs may be deleted later
CREATE TABLE IF NOT EXISTS research_reports (
    id TEXT PRIMARY KEY,
    config_id TEXT NOT NULL,
    config_name TEXT NOT NULL,
    category TEXT NOT NULL,
    generated_at TEXT NOT NULL,
    summary TEXT
);

CREATE TABLE IF NOT EXISTS research_items (
    id TEXT PRIMARY KEY,
    report_id TEXT NOT NULL,
    title TEXT NOT NULL,
    source TEXT,
    url TEXT,
    summary TEXT,
    relevance_score REAL DEFAULT 0,
    published_at TEXT,
    category TEXT,
    tags TEXT,
    FOREIGN KEY (report_id) REFERENCES research_reports(id) ON DELETE CASCADE
);

-- Audit log (one row per job)
CREATE TABLE IF NOT EXISTS audit_log (
    id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    config_id TEXT,
    config_name TEXT,
    report_id TEXT,
    model TEXT,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    web_search_calls INTEGER DEFAULT 0,
    estimated_cost_cents REAL DEFAULT 0,
    runtime_ms INTEGER DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'started',
    error_message TEXT,
    created_at TEXT NOT NULL,
    completed_at TEXT
);

-- Source reputation
CREATE TABLE IF NOT EXISTS sources (
    id TEXT PRIMARY KEY,
    domain TEXT UNIQUE NOT NULL,
    name TEXT,
    category TEXT,
    trust_score REAL DEFAULT 0.5,
    upvotes INTEGER DEFAULT 0,
    downvotes INTEGER DEFAULT 0,
    last_seen TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS source_feedback (
    id TEXT PRIMARY KEY,
    source_domain TEXT NOT NULL,
    item_id TEXT,
    rating INTEGER NOT NULL CHECK(rating IN (1, -1)),
    created_at TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_reports_generated_at ON research_reports(generated_at DESC);
CREATE INDEX IF NOT EXISTS idx_reports_config_id ON research_reports(config_id);
CREATE INDEX IF NOT EXISTS idx_items_report_id ON research_items(report_id);
CREATE INDEX IF NOT EXISTS idx_audit_created_at ON audit_log(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_audit_status ON audit_log(status);
CREATE INDEX IF NOT EXISTS idx_sources_trust ON sources(trust_score DESC);
CREATE INDEX IF NOT EXISTS idx_source_feedback_domain ON source_feedback(source_domain);
"""


def new_id() -> str:
    """Generate a row id."""
    return str(uuid.uuid4())


def to_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with microseconds; sorts lexically in time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class Database:
    """
    SQLite connection shared by the stores.

    The connection is opened with check_same_thread=False: all access happens
    on the event loop thread, but FastAPI's TestClient and uvicorn may create
    the app on a different thread than the one that opened the database.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self.connection
        conn.executescript(SCHEMA)
        conn.commit()
        logger.debug("Database initialized at %s", self.db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if isinstance(self.db_path, Path):
                self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error."""
        conn = self.connection
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
