"""Tests for the retention sweeper and the periodic task helper."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from kvdb.core.errors import NotFoundAppError
from kvdb.services.key_service import KeyService
from kvdb.services.retention_service import RetentionSweeper
from kvdb.utils.periodic import PeriodicTask


@pytest.fixture
def sweeper(database, clock) -> RetentionSweeper:
    return RetentionSweeper(
        database.engine,
        threshold=timedelta(days=1),
        interval_seconds=3600,
        clock=clock,
    )


class TestSweep:
    @pytest.mark.asyncio
    async def test_removes_idle_entries_only(self, key_service: KeyService, sweeper, clock) -> None:
        stale = await key_service.create(value="old")
        clock.advance(days=2)
        fresh = await key_service.create(value="new")

        removed = await sweeper.sweep()

        assert removed == 1
        with pytest.raises(NotFoundAppError):
            await key_service.read(stale.name)
        assert await key_service.read(fresh.name) == "new"

    @pytest.mark.asyncio
    async def test_recent_read_keeps_entry(self, key_service: KeyService, sweeper, clock) -> None:
        names = await key_service.create(value="kept")
        clock.advance(hours=20)
        await key_service.read(names.name_readonly)
        clock.advance(hours=20)

        assert await sweeper.sweep() == 0
        assert await key_service.read(names.name) == "kept"

    @pytest.mark.asyncio
    async def test_recent_update_keeps_entry(self, key_service: KeyService, sweeper, clock) -> None:
        names = await key_service.create(value="v1")
        clock.advance(hours=20)
        await key_service.update(names.name, "v2")
        clock.advance(hours=20)

        assert await sweeper.sweep() == 0

    @pytest.mark.asyncio
    async def test_failed_sweep_returns_none(self, database, sweeper) -> None:
        async with database.engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE keys")

        assert await sweeper.sweep() is None

    @pytest.mark.asyncio
    async def test_start_sweeps_immediately(self, key_service: KeyService, sweeper, clock) -> None:
        await key_service.create()
        clock.advance(days=3)

        await sweeper.start()
        try:
            assert sweeper.running
            assert await sweeper.sweep() == 0
        finally:
            await sweeper.stop()

        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_start_survives_non_storage_failure(self, database) -> None:
        sweeper = RetentionSweeper(
            database.engine,
            threshold=timedelta(days=1),
            interval_seconds=3600,
            clock=Mock(side_effect=OSError("connection reset")),
        )

        await sweeper.start()
        try:
            assert sweeper.running
        finally:
            await sweeper.stop()


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_runs_repeatedly(self) -> None:
        func = AsyncMock()
        task = PeriodicTask("test", 0.01, func)

        task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        assert func.await_count >= 2

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_loop(self) -> None:
        calls = []

        def flaky() -> None:
            calls.append(1)
            raise RuntimeError("boom")

        task = PeriodicTask("flaky", 0.01, flaky)
        task.start()
        await asyncio.sleep(0.1)

        assert task.running
        await task.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        task = PeriodicTask("idle", 1, AsyncMock())

        await task.stop()

        assert not task.running

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            PeriodicTask("bad", 0, AsyncMock())
