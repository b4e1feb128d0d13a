"""Background task that runs a callable on a fixed interval."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.stdlib.get_logger()

PeriodicFn = Callable[[], Awaitable[object] | object]


class PeriodicTask:
    """Runs *fn* every *interval_secs* seconds until stopped.

    Errors raised by *fn* are logged and the loop keeps going; the next run
    starts *interval_secs* after the previous one finished.

    Usage::

        task = PeriodicTask("cache_cleanup", cache.cleanup, interval_secs=60)
        await task.start()
        # ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        fn: PeriodicFn,
        interval_secs: float,
        run_immediately: bool = False,
    ) -> None:
        self._name = name
        self._fn = fn
        self._interval_secs = interval_secs
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._runs = 0
        self._errors = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def errors(self) -> int:
        return self._errors

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info("periodic_task_started", task=self._name, interval_secs=self._interval_secs)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("periodic_task_stopped", task=self._name, runs=self._runs)

    async def run_once(self) -> None:
        """Invoke the wrapped callable once, containing any error."""
        try:
            result = self._fn()
            if asyncio.iscoroutine(result):
                await result
            self._runs += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self._errors += 1
            logger.exception("periodic_task_error", task=self._name, errors=self._errors)

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval_secs)
        while self._running:
            await self.run_once()
            await asyncio.sleep(self._interval_secs)
