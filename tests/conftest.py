"""Pytest configuration and fixtures shared across all test modules.

Required settings are seeded in the environment before anything imports
``kvdb.core.config`` (which instantiates the global settings on import).
Storage-backed tests run against a throwaway SQLite file via aiosqlite.
"""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./kvdb-test.db")
os.environ.setdefault("RATE_LIMIT_PER_SECOND", "100")
os.environ.setdefault("RATE_LIMIT_BURST_SIZE", "1000")
os.environ.setdefault("MAX_VALUE_LENGTH", "64")
os.environ.setdefault("MAX_KEY_NAME_LENGTH", "40")

import pytest
import pytest_asyncio

from kvdb.adapters.storage.database import Database
from kvdb.core.config import AppSettings, DatabaseSettings, LogSettings, RateLimitSettings, Settings
from kvdb.services.key_service import KeyService


class FakeClock:
    """Deterministic UTC clock for last_accessed bookkeeping."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def make_settings(tmp_path: Path):
    """Build isolated Settings pointing at a per-test SQLite database."""

    def _make(**app_overrides) -> Settings:
        rate_limit_overrides = app_overrides.pop("rate_limit", {})
        app_values = {"max_value_length": 64, "max_key_name_length": 40}
        app_values.update(app_overrides)
        return Settings(
            database=DatabaseSettings(url=sqlite_url(tmp_path / "kvdb.db")),
            rate_limit=RateLimitSettings(
                **{"per_second": 100, "burst_size": 1000, **rate_limit_overrides}
            ),
            app=AppSettings(**app_values),
            log=LogSettings(level="WARNING"),
        )

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path: Path):
    db = Database(DatabaseSettings(url=sqlite_url(tmp_path / "kvdb.db")))
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def key_service(database: Database, clock: FakeClock) -> KeyService:
    return KeyService(
        database.engine,
        max_value_length=64,
        max_key_name_length=40,
        clock=clock,
    )
