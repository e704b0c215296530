"""
Execution Engine - Run one research job end-to-end.

For a config id:
1. Load the config and open an audit entry
2. Build the provider request (topics, framing, source hints, output schema)
3. Submit, then poll the background operation until it is terminal
4. Extract usage and output text, parse it into report items
5. Finalize the audit entry with usage and cost, persist the report

Rate-limit errors are retried with exponential backoff; every other failure
finalizes the audit entry as failed and yields a degraded report. Only a
missing config is raised to the caller.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

import structlog

from almanac.config import EngineConfig
from almanac.errors import (
    ConfigNotFoundError,
    ProviderError,
    ResearchTimeoutError,
    is_rate_limit_error,
)
from almanac.research.models import AuditStatus, JobState, ResearchConfig, ResearchItem, ResearchReport
from almanac.research.payload import ParseFailure, parse_payload
from almanac.research.pricing import DEFAULT_RATES, RateTable, estimate_cost_cents
from almanac.research.prompts import ResearchRequest, build_request
from almanac.research.provider import ProviderResponse, ResearchProvider
from almanac.research.trust import TrustScorer
from almanac.store.audit import AuditLedger
from almanac.store.configs import ConfigStore
from almanac.store.reports import ReportStore

logger = structlog.get_logger()

DEFAULT_MODEL = "o4-mini-deep-research-2025-06-26"
EVENT_TYPE = "research_run"
NO_OUTPUT_MESSAGE = "No output text in response"


@dataclass
class JobRun:
    """State of the job the engine is currently running."""

    config_id: str
    audit_id: str
    state: JobState = JobState.PENDING
    attempt: int = 0
    response_id: str | None = None


class ExecutionEngine:
    """
    Runs research jobs against a provider.

    Sleep, monotonic clock and today's date are injectable so retries and
    polling can be driven without real waiting.
    """

    def __init__(
        self,
        configs: ConfigStore,
        reports: ReportStore,
        ledger: AuditLedger,
        provider: ResearchProvider,
        settings: EngineConfig | None = None,
        model: str = DEFAULT_MODEL,
        rates: RateTable = DEFAULT_RATES,
        trust: TrustScorer | None = None,
        background: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.configs = configs
        self.reports = reports
        self.ledger = ledger
        self.provider = provider
        self.settings = settings or EngineConfig()
        self.model = model
        self.rates = rates
        self.trust = trust
        self.background = background
        self._sleep = sleep
        self._clock = clock
        self._today = today or (lambda: datetime.now(UTC).date())
        self.current_run: JobRun | None = None

    async def execute(self, config_id: str) -> ResearchReport:
        """
        Run one job and return its (possibly degraded) persisted report.

        Raises ConfigNotFoundError before any audit entry is written when the
        config does not exist.
        """
        config = self.configs.get(config_id)
        if config is None:
            raise ConfigNotFoundError(config_id)

        audit_id = self.ledger.create(
            EVENT_TYPE, config_id=config.id, config_name=config.name, model=self.model
        )
        run = JobRun(config_id=config.id, audit_id=audit_id)
        self.current_run = run
        log = logger.bind(config_id=config.id, audit_id=audit_id)

        try:
            try:
                request = self._build_request(config)
            except Exception as e:
                log.error("Could not build research request", error=str(e))
                return self._fail(config, e, run, self._clock(), log)
            return await self._run_with_retries(config, request, run, log)
        finally:
            self.current_run = None

    def _build_request(self, config: ResearchConfig) -> ResearchRequest:
        trusted: list[str] = []
        if self.trust is not None and self.settings.use_trusted_sources:
            trusted = self.trust.high_trust_domains(
                self.settings.trusted_min_score, self.settings.trusted_limit
            )
        return build_request(
            config,
            model=self.model,
            today=self._today(),
            recency_days=self.settings.recency_days,
            max_items=self.settings.max_items,
            trusted_domains=trusted,
            background=self.background,
        )

    async def _run_with_retries(
        self,
        config: ResearchConfig,
        request: ResearchRequest,
        run: JobRun,
        log: structlog.stdlib.BoundLogger,
    ) -> ResearchReport:
        max_attempts = self.settings.max_retries + 1
        started = self._clock()
        last_error: Exception | None = None

        for attempt in range(max_attempts):
            run.attempt = attempt + 1
            if attempt > 0:
                delay = self.settings.initial_delay_seconds * (2 ** (attempt - 1))
                log.info("Rate limit hit, waiting before retry", delay_seconds=delay, attempt=attempt + 1)
                await self._sleep(delay)
                # Retry message is only shown while waiting
                self.ledger.update(run.audit_id, error_message=None)

            log.info("Starting deep research", model=self.model, attempt=attempt + 1, max_attempts=max_attempts)
            try:
                response = await self._submit_and_wait(request, run, log)
            except Exception as e:
                last_error = e
                run.state = JobState.TIMED_OUT if isinstance(e, ResearchTimeoutError) else JobState.FAILED
                log.warning("Deep research attempt failed", attempt=attempt + 1, error=str(e))
                if is_rate_limit_error(e) and attempt < self.settings.max_retries:
                    self.ledger.update(
                        run.audit_id,
                        error_message=f"Rate limited - retrying ({attempt + 2}/{max_attempts})...",
                    )
                    continue
                break

            return self._complete(config, response, run, started, log)

        return self._fail(config, last_error, run, started, log)

    async def _submit_and_wait(
        self,
        request: ResearchRequest,
        run: JobRun,
        log: structlog.stdlib.BoundLogger,
    ) -> ProviderResponse:
        response = await self.provider.submit(request)
        run.state = JobState.SUBMITTED
        run.response_id = response.id
        log.info("Deep research started", response_id=response.id, status=response.status)

        if response.status == "completed":
            return response
        self._raise_if_failed(response)

        run.state = JobState.POLLING
        poll_started = self._clock()
        while self._clock() - poll_started < self.settings.max_poll_seconds:
            await self._sleep(self.settings.poll_interval_seconds)
            response = await self.provider.retrieve(response.id)
            if response.status == "completed":
                return response
            self._raise_if_failed(response)
            log.debug("Deep research still running", response_id=response.id, status=response.status)

        raise ResearchTimeoutError(
            f"Deep research timed out after {self.settings.max_poll_seconds:g} seconds"
        )

    @staticmethod
    def _raise_if_failed(response: ProviderResponse) -> None:
        if response.status in ("failed", "cancelled"):
            raise ProviderError(
                f"Deep research {response.status}: {response.error_message or 'Unknown error'}"
            )

    def _runtime_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def _complete(
        self,
        config: ResearchConfig,
        response: ProviderResponse,
        run: JobRun,
        started: float,
        log: structlog.stdlib.BoundLogger,
    ) -> ResearchReport:
        runtime_ms = self._runtime_ms(started)
        usage = response.usage
        cost = estimate_cost_cents(usage, self.rates)
        metrics = {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "web_search_calls": usage.web_search_calls,
            "estimated_cost_cents": cost,
            "runtime_ms": runtime_ms,
        }

        text = response.text()
        if not text:
            run.state = JobState.FAILED
            log.error("No output text found in response", response_id=response.id)
            self.ledger.update(
                run.audit_id, status=AuditStatus.FAILED, error_message=NO_OUTPUT_MESSAGE, **metrics
            )
            return self._persist(config, "No response from deep research", [], run)

        result = parse_payload(text)
        if isinstance(result, ParseFailure):
            log.warning("Research output could not be parsed", reason=result.reason, preview=text[:500])
            summary, items = result.summary, []
        else:
            summary = result.summary
            items = [
                ResearchItem(
                    title=item.title,
                    source=item.source,
                    url=item.url,
                    summary=item.summary,
                    relevance_score=item.relevance_score,
                    published_at=item.published_at,
                    category=config.category.value,
                    tags=item.tags,
                )
                for item in result.items
            ]

        run.state = JobState.COMPLETED
        self.ledger.update(run.audit_id, status=AuditStatus.COMPLETED, **metrics)
        log.info(
            "Deep research completed",
            runtime_seconds=round(runtime_ms / 1000, 1),
            web_searches=usage.web_search_calls,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cost_cents=round(cost, 4),
            items=len(items),
        )
        return self._persist(config, summary, items, run)

    def _fail(
        self,
        config: ResearchConfig,
        error: Exception | None,
        run: JobRun,
        started: float,
        log: structlog.stdlib.BoundLogger,
    ) -> ResearchReport:
        message = str(error) if error is not None else "Unknown error"
        self.ledger.update(
            run.audit_id,
            status=AuditStatus.FAILED,
            error_message=message,
            runtime_ms=self._runtime_ms(started),
        )
        log.error("Deep research failed", error=message, attempts=run.attempt)
        return self._persist(config, f"Research failed: {message}", [], run)

    def _persist(
        self,
        config: ResearchConfig,
        summary: str,
        items: list[ResearchItem],
        run: JobRun,
    ) -> ResearchReport:
        report = self.reports.save(
            ResearchReport(
                config_id=config.id,
                config_name=config.name,
                category=config.category.value,
                summary=summary,
                items=items,
            )
        )
        self.ledger.update(run.audit_id, report_id=report.id)
        return report
