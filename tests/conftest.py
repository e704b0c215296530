"""Pytest configuration for Almanac (src layout)."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from datetime import date
from pathlib import Path
from typing import Any

import pytest


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[1]
    src_root = project_root / "src"
    sys.path.insert(0, str(src_root))


# =============================================================================
# Provider and clock doubles
# =============================================================================


def provider_payload(
    response_id: str = "resp_1",
    status: str = "completed",
    text: str | None = None,
    input_tokens: int = 0,
    output_tokens: int = 0,
    web_searches: int = 0,
    error: str | None = None,
) -> dict[str, Any]:
    """Responses API body as the provider returns it."""
    output: list[dict[str, Any]] = [
        {"type": "web_search_call", "id": f"ws_{i}", "status": "completed"}
        for i in range(web_searches)
    ]
    if text is not None:
        output.append(
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text}],
            }
        )
    body: dict[str, Any] = {
        "id": response_id,
        "status": status,
        "output": output,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }
    if error is not None:
        body["error"] = {"message": error}
    return body


class StubProvider:
    """
    Scripted provider.

    `submits` and `polls` are consumed in order; an item that is an
    exception is raised instead of returned.
    """

    def __init__(self, submits: list[Any] | None = None, polls: list[Any] | None = None) -> None:
        from almanac.research.provider import ProviderResponse

        self._response_type = ProviderResponse
        self.submits = list(submits or [])
        self.polls = list(polls or [])
        self.requests: list[Any] = []
        self.retrieved: list[str] = []

    def _next(self, script: list[Any]) -> Any:
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return self._response_type.from_json(item)
        return item

    async def submit(self, request: Any) -> Any:
        self.requests.append(request)
        return self._next(self.submits)

    async def retrieve(self, response_id: str) -> Any:
        self.retrieved.append(response_id)
        return self._next(self.polls)

    @property
    def attempts(self) -> int:
        return len(self.requests)


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Any]:
    from almanac.store.database import Database

    database = Database(tmp_path / "almanac.db")
    yield database
    database.close()


@pytest.fixture
def config_store(db):
    from almanac.store.configs import ConfigStore

    return ConfigStore(db)


@pytest.fixture
def report_store(db):
    from almanac.store.reports import ReportStore

    return ReportStore(db)


@pytest.fixture
def ledger(db):
    from almanac.store.audit import AuditLedger

    return AuditLedger(db)


@pytest.fixture
def source_store(db):
    from almanac.store.sources import SourceStore

    return SourceStore(db)


@pytest.fixture
def trust(source_store):
    from almanac.research.trust import TrustScorer

    return TrustScorer(source_store)


@pytest.fixture
def sample_config(config_store):
    from almanac.research.models import ResearchConfig

    return config_store.create(
        ResearchConfig(
            id="c1",
            name="AI Papers",
            prompt="Prefer papers with code.",
            category="papers",
            topics=["LLMs", "agents"],
            preferred_sources=["https://www.arxiv.org/list"],
            blocked_sources=["spam.example"],
            schedule="*/5 * * * *",
        )
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(config_store, report_store, ledger, trust, fake_clock):
    """Factory for an engine wired to the test stores and a scripted provider."""
    from almanac.config import EngineConfig
    from almanac.research.engine import ExecutionEngine

    def _make(provider: StubProvider, **settings: Any) -> ExecutionEngine:
        return ExecutionEngine(
            configs=config_store,
            reports=report_store,
            ledger=ledger,
            provider=provider,
            settings=EngineConfig(**settings),
            trust=trust,
            sleep=fake_clock.sleep,
            clock=fake_clock,
            today=lambda: date(2025, 7, 1),
        )

    return _make
