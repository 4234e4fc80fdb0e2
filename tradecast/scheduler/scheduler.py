"""
Tick Scheduler
==============

A single asyncio task that fires a tick every ``tick_seconds``. Each tick
runs the jobs that are due concurrently; a failing job is logged and
never stops the loop.

``tick(now)`` can be awaited directly, which is how tests drive it.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from tradecast.core.logging_config import LogMessages, Loggers
from tradecast.domain.models import utcnow

logger = Loggers.scheduler()

Clock = Callable[[], datetime]
JobFunc = Callable[[datetime], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """A job run on every ``every_ticks``-th tick."""
    name: str
    func: JobFunc
    every_ticks: int = 1

    def is_due(self, tick_number: int) -> bool:
        return self.every_ticks > 0 and tick_number % self.every_ticks == 0


class Scheduler:
    """
    Periodic job runner with explicit start/stop.

    Usage:
        scheduler = Scheduler(jobs, tick_seconds=60)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        jobs: Optional[list[ScheduledJob]] = None,
        tick_seconds: float = 60.0,
        clock: Clock = utcnow,
    ):
        self.jobs: list[ScheduledJob] = list(jobs or [])
        self.tick_seconds = tick_seconds
        self.clock = clock
        self.tick_count = 0

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Run every job due on this tick.

        Args:
            now: Tick time (defaults to the scheduler clock)

        Returns:
            Mapping of job name to its result, or the exception it raised
        """
        now = now or self.clock()
        self.tick_count += 1

        due = [job for job in self.jobs if job.is_due(self.tick_count)]
        if not due:
            return {}

        results = await asyncio.gather(
            *(job.func(now) for job in due),
            return_exceptions=True,
        )

        outcome = {}
        for job, result in zip(due, results):
            if isinstance(result, Exception):
                logger.error(
                    LogMessages.JOB_FAILED,
                    job=job.name,
                    error=str(result),
                    error_type=type(result).__name__,
                    exc_info=result,
                )
            elif isinstance(result, BaseException):
                raise result
            outcome[job.name] = result

        logger.debug("Tick completed", tick=self.tick_count, jobs=[job.name for job in due])
        return outcome

    def start(self) -> asyncio.Task:
        """Start ticking in a background task; the first tick fires immediately."""
        if self.is_running:
            return self._task

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="tradecast-scheduler")
        logger.info(
            LogMessages.SCHEDULER_STARTED,
            tick_seconds=self.tick_seconds,
            jobs=[job.name for job in self.jobs],
        )
        return self._task

    async def stop(self) -> None:
        """Stop future ticks and wait for the one in flight to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info(LogMessages.SCHEDULER_STOPPED, ticks=self.tick_count)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()

        while not self._stop_event.is_set():
            next_tick_at = loop.time() + self.tick_seconds
            try:
                await self.tick()
            except Exception:
                logger.exception("Tick failed")

            delay = max(0.0, next_tick_at - loop.time())
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue
