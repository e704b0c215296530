"""
Audit Ledger - One row per research job in the audit_log table.

Entries are created as `started` and finalized exactly once as `completed`
or `failed`. After that only `report_id` may still be written; rows are
never deleted.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from almanac.errors import AuditEntryFinalizedError
from almanac.research.models import AuditEntry, AuditStatus, AuditTotals
from almanac.store.database import Database, from_timestamp, new_id, to_timestamp

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, event_type, config_id, config_name, report_id, model, input_tokens, "
    "output_tokens, web_search_calls, estimated_cost_cents, runtime_ms, status, "
    "error_message, created_at, completed_at"
)

_CREATE_FIELDS = frozenset({"event_type", "config_id", "config_name", "model"})
_UPDATE_FIELDS = frozenset(
    {
        "report_id",
        "model",
        "input_tokens",
        "output_tokens",
        "web_search_calls",
        "estimated_cost_cents",
        "runtime_ms",
        "status",
        "error_message",
        "completed_at",
    }
)
# The one field that may be written after an entry is finalized.
_POST_FINAL_FIELDS = frozenset({"report_id"})

RECENT_WINDOW = timedelta(minutes=5)


def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        event_type=row["event_type"],
        config_id=row["config_id"],
        config_name=row["config_name"],
        report_id=row["report_id"],
        model=row["model"],
        input_tokens=row["input_tokens"] or 0,
        output_tokens=row["output_tokens"] or 0,
        web_search_calls=row["web_search_calls"] or 0,
        estimated_cost_cents=row["estimated_cost_cents"] or 0.0,
        runtime_ms=row["runtime_ms"] or 0,
        status=row["status"],
        error_message=row["error_message"],
        created_at=from_timestamp(row["created_at"]),
        completed_at=from_timestamp(row["completed_at"]),
    )


class AuditLedger:
    """Narrow append/update contract over audit_log."""

    def __init__(self, db: Database, now: Callable[[], datetime] | None = None) -> None:
        self.db = db
        self._now = now or (lambda: datetime.now(UTC))

    def create(self, event_type: str, **fields: Any) -> str:
        """Append a new entry with status `started`. Returns its id."""
        unknown = set(fields) - _CREATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown audit fields: {', '.join(sorted(unknown))}")

        entry_id = new_id()
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO audit_log (id, event_type, config_id, config_name, model, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    event_type,
                    fields.get("config_id"),
                    fields.get("config_name"),
                    fields.get("model"),
                    AuditStatus.STARTED.value,
                    to_timestamp(self._now()),
                ),
            )
        logger.debug("Created audit entry %s (%s)", entry_id, event_type)
        return entry_id

    def update(self, entry_id: str, **fields: Any) -> None:
        """
        Write only the provided fields, in a single statement.

        Setting a terminal status stamps `completed_at` unless one is given.
        Raises AuditEntryFinalizedError when the entry is already terminal and
        anything other than `report_id` is written, KeyError when it does not
        exist.
        """
        if not fields:
            return
        unknown = set(fields) - _UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown audit fields: {', '.join(sorted(unknown))}")

        values: dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, AuditStatus):
                value = value.value
            elif isinstance(value, datetime):
                value = to_timestamp(value)
            values[key] = value

        if "status" in values:
            status = AuditStatus(values["status"])
            if status.is_terminal and "completed_at" not in values:
                values["completed_at"] = to_timestamp(self._now())

        guarded = not set(values) <= _POST_FINAL_FIELDS
        assignments = ", ".join(f"{key} = ?" for key in values)
        query = f"UPDATE audit_log SET {assignments} WHERE id = ?"
        params: list[Any] = [*values.values(), entry_id]
        if guarded:
            query += " AND status = ?"
            params.append(AuditStatus.STARTED.value)

        with self.db.transaction() as conn:
            cursor = conn.execute(query, params)

        if cursor.rowcount == 0:
            if self.get(entry_id) is None:
                raise KeyError(f"Audit entry not found: {entry_id}")
            raise AuditEntryFinalizedError(entry_id, list(values))

    def get(self, entry_id: str) -> AuditEntry | None:
        row = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM audit_log WHERE id = ?", (entry_id,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    def list_running(self) -> list[AuditEntry]:
        """Entries still `started`, newest first."""
        rows = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM audit_log WHERE status = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (AuditStatus.STARTED.value,),
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def list_recent(self, limit: int = 50) -> list[AuditEntry]:
        """Newest entries first."""
        rows = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM audit_log ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def list_recent_terminal(self, since: datetime | None = None) -> list[AuditEntry]:
        """Entries finalized at or after `since` (default: the last five minutes)."""
        if since is None:
            since = self._now() - RECENT_WINDOW
        rows = self.db.connection.execute(
            f"SELECT {_COLUMNS} FROM audit_log "
            "WHERE status != ? AND completed_at >= ? "
            "ORDER BY completed_at DESC, rowid DESC",
            (AuditStatus.STARTED.value, to_timestamp(since)),
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    @staticmethod
    def totals(entries: Iterable[AuditEntry]) -> AuditTotals:
        """Sum cost and usage over entries."""
        totals = AuditTotals()
        for entry in entries:
            totals.cost_cents += entry.estimated_cost_cents
            totals.input_tokens += entry.input_tokens
            totals.output_tokens += entry.output_tokens
            totals.web_searches += entry.web_search_calls
        return totals
