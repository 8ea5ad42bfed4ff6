"""Long-lived asyncio loop that runs a callable on a fixed interval."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``func`` every ``interval_seconds`` until stopped.

    ``func`` may be a plain function or a coroutine function. A failing run
    is logged with its traceback and the loop carries on with the next
    interval; only cancellation ends the loop.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Awaitable[Any] | Any],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(
            "periodic_task.started",
            extra={"task": self.name, "interval_s": self.interval_seconds},
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic_task.stopped", extra={"task": self.name})

    async def run_once(self) -> None:
        try:
            result = self._func()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("periodic_task.failed", extra={"task": self.name})

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
