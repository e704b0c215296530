"""
Tests for the audit ledger.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from almanac.errors import AuditEntryFinalizedError
from almanac.research.models import AuditEntry, AuditStatus
from almanac.store.audit import AuditLedger


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 7, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def timed_ledger(db, clock) -> AuditLedger:
    return AuditLedger(db, now=clock)


class TestCreate:
    def test_created_as_started(self, ledger):
        entry_id = ledger.create("research_run", config_id="c1", config_name="C1", model="m")

        entry = ledger.get(entry_id)
        assert entry.status == AuditStatus.STARTED
        assert entry.config_id == "c1"
        assert entry.model == "m"
        assert entry.input_tokens == 0
        assert entry.completed_at is None

    def test_rejects_unknown_fields(self, ledger):
        with pytest.raises(ValueError):
            ledger.create("research_run", status="completed")


class TestUpdate:
    def test_only_provided_fields_change(self, ledger):
        entry_id = ledger.create("research_run", config_id="c1", model="m")
        ledger.update(entry_id, input_tokens=10)
        ledger.update(entry_id, output_tokens=20)

        entry = ledger.get(entry_id)
        assert entry.input_tokens == 10
        assert entry.output_tokens == 20
        assert entry.model == "m"
        assert entry.status == AuditStatus.STARTED

    def test_terminal_status_stamps_completed_at(self, timed_ledger, clock):
        entry_id = timed_ledger.create("research_run")
        clock.advance(minutes=2)
        timed_ledger.update(entry_id, status=AuditStatus.COMPLETED, runtime_ms=120_000)

        entry = timed_ledger.get(entry_id)
        assert entry.status == AuditStatus.COMPLETED
        assert entry.completed_at == clock.now

    def test_error_message_can_be_cleared(self, ledger):
        entry_id = ledger.create("research_run")
        ledger.update(entry_id, error_message="Rate limited - retrying (2/2)...")
        ledger.update(entry_id, error_message=None)
        assert ledger.get(entry_id).error_message is None

    def test_finalized_entry_rejects_writes(self, ledger):
        entry_id = ledger.create("research_run")
        ledger.update(entry_id, status="failed", error_message="boom")

        with pytest.raises(AuditEntryFinalizedError) as exc_info:
            ledger.update(entry_id, status=AuditStatus.COMPLETED)
        assert exc_info.value.entry_id == entry_id

        with pytest.raises(AuditEntryFinalizedError):
            ledger.update(entry_id, error_message="changed")

        entry = ledger.get(entry_id)
        assert entry.status == AuditStatus.FAILED
        assert entry.error_message == "boom"

    def test_report_id_attaches_after_finalization(self, ledger):
        entry_id = ledger.create("research_run")
        ledger.update(entry_id, status=AuditStatus.COMPLETED)

        ledger.update(entry_id, report_id="r1")

        assert ledger.get(entry_id).report_id == "r1"

    def test_unknown_entry(self, ledger):
        with pytest.raises(KeyError):
            ledger.update("missing", input_tokens=1)

    def test_rejects_unknown_fields(self, ledger):
        entry_id = ledger.create("research_run")
        with pytest.raises(ValueError):
            ledger.update(entry_id, created_at=datetime.now(UTC))


class TestQueries:
    def test_list_running_and_recent(self, timed_ledger, clock):
        first = timed_ledger.create("research_run", config_id="a")
        clock.advance(seconds=1)
        second = timed_ledger.create("research_run", config_id="b")
        timed_ledger.update(first, status=AuditStatus.COMPLETED)

        assert [e.id for e in timed_ledger.list_running()] == [second]
        assert [e.id for e in timed_ledger.list_recent(10)] == [second, first]
        assert [e.id for e in timed_ledger.list_recent(1)] == [second]

    def test_list_recent_terminal_window(self, timed_ledger, clock):
        old = timed_ledger.create("research_run")
        timed_ledger.update(old, status=AuditStatus.FAILED)
        clock.advance(minutes=10)
        fresh = timed_ledger.create("research_run")
        timed_ledger.update(fresh, status=AuditStatus.COMPLETED)
        timed_ledger.create("research_run")

        recent = timed_ledger.list_recent_terminal()
        assert [e.id for e in recent] == [fresh]

        everything = timed_ledger.list_recent_terminal(since=clock.now - timedelta(hours=1))
        assert {e.id for e in everything} == {old, fresh}

    def test_totals(self):
        now = datetime.now(UTC)
        entries = [
            AuditEntry(
                id="1",
                event_type="research_run",
                created_at=now,
                input_tokens=100,
                output_tokens=10,
                web_search_calls=2,
                estimated_cost_cents=1.5,
            ),
            AuditEntry(
                id="2",
                event_type="research_run",
                created_at=now,
                input_tokens=50,
                output_tokens=5,
                web_search_calls=1,
                estimated_cost_cents=0.5,
            ),
        ]

        totals = AuditLedger.totals(entries)

        assert totals.cost_cents == pytest.approx(2.0)
        assert totals.input_tokens == 150
        assert totals.output_tokens == 15
        assert totals.web_searches == 3

    def test_totals_empty(self):
        totals = AuditLedger.totals([])
        assert totals.cost_cents == 0
        assert totals.web_searches == 0
