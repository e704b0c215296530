"""
Orchestrator - Builds and owns the scheduler, queue, engine and stores.

There is exactly one Orchestrator per process. It is constructed once at
start-up and handed to the HTTP app and the CLI; nothing else creates
queues or schedulers.
"""

from __future__ import annotations

from typing import Any

import structlog

from almanac.config import AlmanacConfig
from almanac.errors import ConfigNotFoundError
from almanac.research.cron import CronExpression
from almanac.research.engine import ExecutionEngine
from almanac.research.models import EnqueueResult, EnqueueSummary, ResearchConfig, ResearchReport
from almanac.research.pricing import RateTable
from almanac.research.provider import OpenAIResponsesClient, ResearchProvider
from almanac.research.queue import JobQueue
from almanac.research.scheduler import Scheduler
from almanac.research.trust import TrustScorer
from almanac.store import AuditLedger, ConfigStore, Database, ReportStore, SourceStore

logger = structlog.get_logger()


class Orchestrator:
    """
    Wires the research core together.

    Usage:
        orchestrator = Orchestrator(AlmanacConfig.load())
        await orchestrator.start()
        orchestrator.run_now("news-tech")
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        config: AlmanacConfig | None = None,
        db: Database | None = None,
        provider: ResearchProvider | None = None,
        **engine_overrides: Any,
    ) -> None:
        self.config = config or AlmanacConfig()
        self.db = db or Database(self.config.database.path)

        self.configs = ConfigStore(self.db)
        self.reports = ReportStore(self.db)
        self.ledger = AuditLedger(self.db)
        self.sources = SourceStore(self.db)
        self.trust = TrustScorer(self.sources)

        self.provider = provider or OpenAIResponsesClient(self.config.provider)
        self.engine = ExecutionEngine(
            configs=self.configs,
            reports=self.reports,
            ledger=self.ledger,
            provider=self.provider,
            settings=self.config.engine,
            model=self.config.provider.model,
            rates=RateTable.from_config(self.config.pricing),
            trust=self.trust,
            background=self.config.provider.background,
            **engine_overrides,
        )
        self.queue = JobQueue(self.engine.execute)
        self.scheduler = Scheduler(self.queue, self.configs, timezone=self.config.tzinfo)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, seed_defaults: bool = True) -> None:
        """Seed default configs and register a timer for every enabled config."""
        if self._started:
            return
        if seed_defaults:
            self.configs.seed_defaults()
        self.scheduler.initialize()
        self._started = True
        logger.info("Almanac orchestrator started", scheduled=len(self.scheduler.list_active()))

    async def stop(self) -> None:
        """Cancel timers, drop queued jobs, close the provider and database."""
        self.scheduler.shutdown()
        await self.queue.stop()
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()
        self.db.close()
        self._started = False
        logger.info("Almanac orchestrator stopped")

    # Jobs

    def run_now(self, config_id: str) -> EnqueueResult:
        """Enqueue a config immediately. Raises ConfigNotFoundError for unknown ids."""
        if not self.configs.exists(config_id):
            raise ConfigNotFoundError(config_id)
        return self.queue.enqueue(config_id)

    def run_all(self) -> EnqueueSummary:
        """Enqueue every enabled config."""
        return self.queue.enqueue_all(c.id for c in self.configs.list_configs(enabled_only=True))

    async def run_once(self, config_id: str) -> ResearchReport:
        """Execute one job directly, bypassing the queue (CLI use)."""
        return await self.engine.execute(config_id)

    # Configs; every write re-registers the config's timer

    def create_config(self, config: ResearchConfig) -> ResearchConfig:
        CronExpression.parse(config.schedule)
        created = self.configs.create(config)
        self._sync_schedule(created)
        return created

    def update_config(self, config_id: str, changes: dict[str, Any]) -> ResearchConfig:
        if "schedule" in changes:
            CronExpression.parse(changes["schedule"])
        updated = self.configs.update(config_id, changes)
        if updated is None:
            raise ConfigNotFoundError(config_id)
        self._sync_schedule(updated)
        return updated

    def save_config(self, config: ResearchConfig) -> ResearchConfig:
        """Create or replace a config (YAML import)."""
        CronExpression.parse(config.schedule)
        saved = self.configs.save(config)
        self._sync_schedule(saved)
        return saved

    def delete_config(self, config_id: str) -> None:
        if not self.configs.delete(config_id):
            raise ConfigNotFoundError(config_id)
        self.scheduler.unregister(config_id)

    def _sync_schedule(self, config: ResearchConfig) -> None:
        if self._started:
            self.scheduler.set_enabled(config.id, config.schedule, config.enabled)
