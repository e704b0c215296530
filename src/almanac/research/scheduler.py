"""
Research Scheduler - One recurring timer per enabled research config.

Each timer is an asyncio task that sleeps until the next cron fire time and
then enqueues its config id. Firing is fire-and-forget: the scheduler never
waits on job execution and never talks to the provider.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from typing import TYPE_CHECKING

import structlog

from almanac.errors import InvalidScheduleError
from almanac.research.cron import CronExpression

if TYPE_CHECKING:
    from almanac.research.queue import JobQueue
    from almanac.store.configs import ConfigStore

logger = structlog.get_logger()

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


@dataclass
class ScheduledTimer:
    """A live timer for one config."""

    config_id: str
    cron: CronExpression
    task: asyncio.Task[None]
    next_fire_at: datetime | None = None


class Scheduler:
    """
    Owns one recurring timer per enabled config.

    Usage:
        scheduler = Scheduler(queue, config_store)
        scheduler.initialize()
        scheduler.set_enabled("news-tech", "5 6 * * *", True)
    """

    def __init__(
        self,
        queue: JobQueue,
        configs: ConfigStore | None = None,
        timezone: tzinfo = UTC,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock | None = None,
    ) -> None:
        self.queue = queue
        self.configs = configs
        self.timezone = timezone
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        self._timers: dict[str, ScheduledTimer] = {}

    def _now(self) -> datetime:
        return self._clock().astimezone(self.timezone)

    def initialize(self) -> int:
        """
        Register every enabled config from the config store.

        A config with an invalid schedule is logged and skipped. Returns the
        number of timers registered.
        """
        if self.configs is None:
            return 0

        logger.info("Initializing research scheduler")
        for config in self.configs.list_configs(enabled_only=True):
            try:
                self.register(config.id, config.schedule)
            except InvalidScheduleError as e:
                logger.error(
                    "Skipping config with invalid schedule",
                    config_id=config.id,
                    schedule=config.schedule,
                    error=e.reason,
                )

        logger.info("Scheduled research tasks", count=len(self._timers))
        return len(self._timers)

    def register(self, config_id: str, cron_expr: str) -> None:
        """
        Validate and (re)register the timer for a config.

        Raises InvalidScheduleError without touching any existing timer when
        the expression is malformed.
        """
        cron = CronExpression.parse(cron_expr)

        self.unregister(config_id)
        task = asyncio.get_running_loop().create_task(
            self._run_timer(config_id, cron), name=f"almanac-timer-{config_id}"
        )
        self._timers[config_id] = ScheduledTimer(config_id=config_id, cron=cron, task=task)
        logger.info("Scheduled config", config_id=config_id, cron=cron.expr)

    def unregister(self, config_id: str) -> bool:
        """Cancel the timer for a config. Returns False if none was registered."""
        timer = self._timers.pop(config_id, None)
        if timer is None:
            return False
        timer.task.cancel()
        logger.info("Stopped scheduled task", config_id=config_id)
        return True

    def set_enabled(self, config_id: str, cron_expr: str, enabled: bool) -> None:
        """Unregister, then register again when enabled (enable, disable and reschedule)."""
        self.unregister(config_id)
        if enabled:
            self.register(config_id, cron_expr)

    def list_active(self) -> list[str]:
        """Config ids with a live timer, in registration order."""
        return [config_id for config_id, timer in self._timers.items() if not timer.task.done()]

    def next_fire_times(self) -> dict[str, datetime | None]:
        """Next fire time for every registered config."""
        now = self._now()
        return {config_id: timer.cron.next_run(now) for config_id, timer in self._timers.items()}

    def trigger(self, config_id: str) -> None:
        """Timer callback: enqueue and return immediately."""
        logger.info("Scheduled research triggered", config_id=config_id)
        result = self.queue.enqueue(config_id)
        if result.already_queued:
            logger.info(
                "Config already queued, skipping", config_id=config_id, position=result.position
            )

    def shutdown(self) -> None:
        """Cancel every timer."""
        for config_id in list(self._timers):
            self.unregister(config_id)

    async def _run_timer(self, config_id: str, cron: CronExpression) -> None:
        while True:
            now = self._now()
            next_fire = cron.next_run(now)
            if next_fire is None:
                logger.warning("Schedule has no future fire time", config_id=config_id)
                return

            timer = self._timers.get(config_id)
            if timer is not None:
                timer.next_fire_at = next_fire

            delay = (next_fire.astimezone(UTC) - now.astimezone(UTC)).total_seconds()
            await self._sleep(max(delay, 0.0))
            self.trigger(config_id)
