"""
Tests for the report store.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from almanac.research.models import ResearchItem, ResearchReport


def make_report(config_id: str = "c1", category: str = "news", at: datetime | None = None, items=None):
    return ResearchReport(
        config_id=config_id,
        config_name=config_id.upper(),
        category=category,
        generated_at=at,
        summary=f"Summary for {config_id}",
        items=items or [],
    )


class TestSave:
    def test_assigns_ids(self, report_store):
        saved = report_store.save(
            make_report(items=[ResearchItem(title="A", relevance_score=3, tags=["t"])])
        )

        assert saved.id
        assert saved.generated_at is not None
        assert saved.items[0].id
        assert saved.items[0].report_id == saved.id
        assert saved.items[0].category == "news"

    def test_empty_report_round_trip(self, report_store):
        saved = report_store.save(make_report())
        loaded = report_store.get(saved.id)
        assert loaded.items == []
        assert loaded.summary == "Summary for c1"

    def test_items_ordered_by_relevance(self, report_store):
        saved = report_store.save(
            make_report(
                items=[
                    ResearchItem(title="mid", relevance_score=5),
                    ResearchItem(title="top", relevance_score=9.5, tags=["a", "b"]),
                    ResearchItem(title="low", relevance_score=1),
                ]
            )
        )

        loaded = report_store.get(saved.id)
        assert [i.title for i in loaded.items] == ["top", "mid", "low"]
        assert loaded.items[0].tags == ["a", "b"]

    def test_get_missing(self, report_store):
        assert report_store.get("nope") is None


class TestQueries:
    def test_latest_per_config(self, report_store):
        base = datetime(2025, 7, 1, tzinfo=UTC)
        report_store.save(make_report("a", at=base))
        newest_a = report_store.save(make_report("a", at=base + timedelta(days=1)))
        only_b = report_store.save(make_report("b", at=base + timedelta(hours=1)))

        latest = report_store.latest()

        assert [r.id for r in latest] == [newest_a.id, only_b.id]

    def test_history_pagination(self, report_store):
        base = datetime(2025, 7, 1, tzinfo=UTC)
        for i in range(5):
            report_store.save(make_report(f"c{i}", category="news" if i % 2 else "papers", at=base + timedelta(hours=i)))

        page = report_store.history(page=1, page_size=2)
        assert page.total == 5
        assert page.total_pages == 3
        assert [r.config_id for r in page.data] == ["c4", "c3"]

        last = report_store.history(page=3, page_size=2)
        assert [r.config_id for r in last.data] == ["c0"]

        news = report_store.history(category="news")
        assert news.total == 2
        assert {r.config_id for r in news.data} == {"c1", "c3"}
