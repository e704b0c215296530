"""
Source Store - Reputation rows and the feedback log.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from almanac.research.models import Source, SourceFeedback, utc_now
from almanac.store.database import Database, from_timestamp, new_id, to_timestamp

logger = logging.getLogger(__name__)

_COLUMNS = "domain, name, category, upvotes, downvotes, trust_score, last_seen, created_at"


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        domain=row["domain"],
        name=row["name"],
        category=row["category"],
        upvotes=row["upvotes"] or 0,
        downvotes=row["downvotes"] or 0,
        trust_score=row["trust_score"] if row["trust_score"] is not None else 0.5,
        last_seen=from_timestamp(row["last_seen"]),
        created_at=from_timestamp(row["created_at"]),
    )


class SourceStore:
    """Rows in `sources` and `source_feedback`."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def record_feedback(
        self,
        domain: str,
        rating: int,
        item_id: str | None = None,
        category: str | None = None,
        at: datetime | None = None,
    ) -> SourceFeedback:
        """
        Append a feedback row and upsert the source's vote counts.

        Both writes happen in one transaction. The domain must already be
        normalized and the rating validated.
        """
        at = at or utc_now()
        stamp = to_timestamp(at)
        feedback = SourceFeedback(
            id=new_id(), source_domain=domain, item_id=item_id, rating=rating, created_at=at
        )
        up, down = (1, 0) if rating > 0 else (0, 1)

        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO source_feedback (id, source_domain, item_id, rating, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (feedback.id, domain, item_id, rating, stamp),
            )
            conn.execute(
                """
                INSERT INTO sources (id, domain, category, upvotes, downvotes, last_seen, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(domain) DO UPDATE SET
                    upvotes = upvotes + excluded.upvotes,
                    downvotes = downvotes + excluded.downvotes,
                    category = COALESCE(excluded.category, sources.category),
                    last_seen = excluded.last_seen
                """,
                (new_id(), domain, category, up, down, stamp, stamp),
            )
        return feedback

    def get(self, domain: str) -> Source | None:
        row = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM sources WHERE domain = ?", (domain,)
        ).fetchone()
        return _row_to_source(row) if row else None

    def all(self) -> list[Source]:
        rows = self.db.connection.execute(f"SELECT {_COLUMNS} FROM sources").fetchall()
        return [_row_to_source(row) for row in rows]

    def set_trust_score(self, domain: str, score: float) -> None:
        with self.db.transaction() as conn:
            conn.execute("UPDATE sources SET trust_score = ? WHERE domain = ?", (score, domain))

    def set_trust_scores(self, scores: dict[str, float]) -> None:
        """Write several scores in one transaction."""
        with self.db.transaction() as conn:
            conn.executemany(
                "UPDATE sources SET trust_score = ? WHERE domain = ?",
                [(score, domain) for domain, score in scores.items()],
            )

    def ranked(self, category: str | None = None, limit: int = 50) -> list[Source]:
        """Sources ordered by trust score, then vote count."""
        where = " WHERE category = ?" if category else ""
        params: tuple[object, ...] = (category,) if category else ()
        rows = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM sources{where} "
            "ORDER BY trust_score DESC, (upvotes + downvotes) DESC, domain ASC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [_row_to_source(row) for row in rows]

    def domains_above(self, min_score: float, limit: int) -> list[str]:
        """Domains with at least one vote and a trust score >= min_score."""
        rows = self.db.connection.execute(
            """
            SELECT domain FROM sources
            WHERE trust_score >= ? AND (upvotes + downvotes) > 0
            ORDER BY trust_score DESC, domain ASC
            LIMIT ?
            """,
            (min_score, limit),
        ).fetchall()
        return [row["domain"] for row in rows]

    def feedback_for(self, domain: str) -> list[SourceFeedback]:
        rows = self.db.connection.execute(
            "SELECT id, source_domain, item_id, rating, created_at FROM source_feedback "
            "WHERE source_domain = ? ORDER BY created_at, rowid",
            (domain,),
        ).fetchall()
        return [
            SourceFeedback(
                id=row["id"],
                source_domain=row["source_domain"],
                item_id=row["item_id"],
                rating=row["rating"],
                created_at=from_timestamp(row["created_at"]),
            )
            for row in rows
        ]
