"""
Report Store - Persist research reports and their items.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3

from almanac.research.models import ReportPage, ResearchItem, ResearchReport, utc_now
from almanac.store.database import Database, from_timestamp, new_id, to_timestamp

logger = logging.getLogger(__name__)

_REPORT_COLUMNS = "id, config_id, config_name, category, generated_at, summary"


def _row_to_item(row: sqlite3.Row) -> ResearchItem:
    return ResearchItem(
        id=row["id"],
        report_id=row["report_id"],
        title=row["title"],
        source=row["source"],
        url=row["url"],
        summary=row["summary"],
        relevance_score=row["relevance_score"] or 0.0,
        published_at=row["published_at"],
        category=row["category"],
        tags=json.loads(row["tags"]) if row["tags"] else [],
    )


class ReportStore:
    """Reports and items in research_reports / research_items."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def save(self, report: ResearchReport) -> ResearchReport:
        """Insert a report and its items in one transaction; returns it with ids assigned."""
        report_id = report.id or new_id()
        generated_at = report.generated_at or utc_now()

        saved_items: list[ResearchItem] = []
        with self.db.transaction() as conn:
            conn.execute(
                f"INSERT INTO research_reports ({_REPORT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    report_id,
                    report.config_id,
                    report.config_name,
                    report.category,
                    to_timestamp(generated_at),
                    report.summary,
                ),
            )
            for item in report.items:
                item_id = item.id or new_id()
                category = item.category or report.category
                conn.execute(
                    """
                    INSERT INTO research_items
                    (id, report_id, title, source, url, summary, relevance_score,
                     published_at, category, tags)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item_id,
                        report_id,
                        item.title,
                        item.source,
                        item.url,
                        item.summary,
                        item.relevance_score,
                        item.published_at,
                        category,
                        json.dumps(item.tags),
                    ),
                )
                saved_items.append(
                    item.model_copy(
                        update={"id": item_id, "report_id": report_id, "category": category}
                    )
                )

        logger.info("Saved report %s with %d items", report_id, len(saved_items))
        return report.model_copy(
            update={"id": report_id, "generated_at": generated_at, "items": saved_items}
        )

    def items_for(self, report_id: str) -> list[ResearchItem]:
        """Items of a report, most relevant first."""
        rows = self.db.connection.execute(
            """
            SELECT id, report_id, title, source, url, summary, relevance_score,
                   published_at, category, tags
            FROM research_items
            WHERE report_id = ?
            ORDER BY relevance_score DESC
            """,
            (report_id,),
        ).fetchall()
        return [_row_to_item(row) for row in rows]

    def _row_to_report(self, row: sqlite3.Row) -> ResearchReport:
        return ResearchReport(
            id=row["id"],
            config_id=row["config_id"],
            config_name=row["config_name"],
            category=row["category"],
            generated_at=from_timestamp(row["generated_at"]),
            summary=row["summary"] or "",
            items=self.items_for(row["id"]),
        )

    def get(self, report_id: str) -> ResearchReport | None:
        row = self.db.connection.execute(
            f"SELECT {_REPORT_COLUMNS} FROM research_reports WHERE id = ?", (report_id,)
        ).fetchone()
        return self._row_to_report(row) if row else None

    def latest(self) -> list[ResearchReport]:
        """The most recent report of every config, newest first."""
        rows = self.db.connection.execute(
            """
            SELECT r.id, r.config_id, r.config_name, r.category, r.generated_at, r.summary
            FROM research_reports r
            INNER JOIN (
                SELECT config_id, MAX(generated_at) AS max_date
                FROM research_reports
                GROUP BY config_id
            ) latest ON r.config_id = latest.config_id AND r.generated_at = latest.max_date
            ORDER BY r.generated_at DESC
            """
        ).fetchall()
        return [self._row_to_report(row) for row in rows]

    def history(self, page: int = 1, page_size: int = 10, category: str | None = None) -> ReportPage:
        """Paginated reports, newest first, optionally filtered by category."""
        page = max(page, 1)
        page_size = max(page_size, 1)
        where = " WHERE category = ?" if category else ""
        params: tuple[str, ...] = (category,) if category else ()

        conn = self.db.connection
        total = conn.execute(
            f"SELECT COUNT(*) FROM research_reports{where}", params
        ).fetchone()[0]
        rows = conn.execute(
            f"SELECT {_REPORT_COLUMNS} FROM research_reports{where} "
            "ORDER BY generated_at DESC LIMIT ? OFFSET ?",
            (*params, page_size, (page - 1) * page_size),
        ).fetchall()

        return ReportPage(
            data=[self._row_to_report(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )
