"""Database engine and connection pool management.

Wraps SQLAlchemy's asyncio engine. The engine owns a bounded connection pool
shared by request handlers and background tasks; acquisition beyond the pool
size queues until ``pool_timeout`` expires.

Plain ``postgres://`` / ``postgresql://`` URLs are rewritten to use the
asyncpg driver. asyncpg has no ``sslmode`` keyword, so a libpq-style
``?sslmode=...`` is moved out of the URL and handed to asyncpg as ``ssl``.
SQLite URLs (``sqlite+aiosqlite://``) are accepted for local runs and tests;
pool sizing is skipped for them.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from kvdb.adapters.storage.tables import metadata
from kvdb.core.config import DatabaseSettings

logger = logging.getLogger(__name__)

_ASYNC_SCHEMES = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_url(url: str) -> URL:
    """Parse a connection string and select an asyncio driver.

    Examples:
        >>> to_async_url("postgres://u:p@db:5432/kv").drivername
        'postgresql+asyncpg'
        >>> to_async_url("sqlite+aiosqlite:///./kv.db").drivername
        'sqlite+aiosqlite'
    """
    if "://" not in url:
        raise ValueError("Database URL must include a scheme (e.g. postgres://)")
    parsed = make_url(url)
    return parsed.set(drivername=_ASYNC_SCHEMES.get(parsed.drivername, parsed.drivername))


def pop_ssl_mode(url: URL) -> tuple[URL, str | None]:
    """Remove ``sslmode`` from the URL query and return it separately."""

    mode = url.query.get("sslmode")
    if mode is None:
        return url, None
    if isinstance(mode, tuple):
        mode = mode[-1]
    return url.difference_update_query(["sslmode"]), mode


class Database:
    """Engine lifecycle holder.

    Example:
        >>> db = Database(DatabaseSettings(url="sqlite+aiosqlite:///./kv.db"))
        >>> await db.create_tables()
        >>> async with db.engine.begin() as conn:
        ...     await conn.execute(...)
        >>> await db.close()
    """

    def __init__(self, database_settings: DatabaseSettings) -> None:
        url, ssl_mode = pop_ssl_mode(to_async_url(database_settings.url))

        self.connect_args: dict[str, Any] = {}
        if ssl_mode is not None and url.get_backend_name() == "postgresql":
            # asyncpg accepts libpq mode names (disable, require, verify-full...)
            self.connect_args["ssl"] = ssl_mode

        engine_kwargs: dict[str, Any] = {
            "echo": database_settings.echo,
            "connect_args": self.connect_args,
        }
        if url.get_backend_name() != "sqlite":
            engine_kwargs["pool_size"] = database_settings.pool_size
            engine_kwargs["max_overflow"] = database_settings.max_overflow
            engine_kwargs["pool_timeout"] = database_settings.pool_timeout
            engine_kwargs["pool_pre_ping"] = True

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)

    async def create_tables(self) -> None:
        """Create the key table and its indexes if they are missing."""

        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("database.tables_ready")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("database.closed")
