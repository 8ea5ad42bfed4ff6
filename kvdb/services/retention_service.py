"""Retention sweeper.

Deletes entries that have not been read or written for longer than the
configured threshold. One sweep runs at startup, then one per interval.
A failed sweep is logged; it never stops the loop or the process.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from kvdb.adapters.storage.tables import keys
from kvdb.services.key_service import storage_error_message, utcnow
from kvdb.utils.periodic import PeriodicTask

logger = logging.getLogger(__name__)


class RetentionSweeper:
    def __init__(
        self,
        engine: AsyncEngine,
        *,
        threshold: timedelta,
        interval_seconds: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._threshold = threshold
        self._clock = clock
        self._task = PeriodicTask("retention-sweeper", interval_seconds, self.sweep)

    @property
    def running(self) -> bool:
        return self._task.running

    async def sweep(self) -> int | None:
        """Delete every entry idle for longer than the threshold.

        Returns:
            Number of deleted entries, or None when the sweep failed.
        """
        cutoff = self._clock() - self._threshold
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(delete(keys).where(keys.c.last_accessed < cutoff))
                removed = result.rowcount
        except SQLAlchemyError as exc:
            logger.error(
                "retention.sweep_failed",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": storage_error_message(exc),
                },
            )
            return None

        logger.info(
            "retention.sweep_completed",
            extra={"removed": removed, "threshold_s": self._threshold.total_seconds()},
        )
        return removed

    async def start(self) -> None:
        """Sweep immediately, then keep sweeping on the configured interval."""
        await self._task.run_once()
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()
