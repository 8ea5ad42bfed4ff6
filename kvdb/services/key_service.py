"""Key storage service.

Executes create/read/update/delete against the ``keys`` table and enforces
the dual-name model:

- every entry has a read-write ``name`` and a read-only ``roname``;
- reads resolve either name;
- updates and deletes match ``name`` only, so using the read-only name
  behaves exactly like using a name that does not exist.

Existence for writes is decided by the affected row count of the write
itself, with no separate lookup beforehand.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator

from sqlalchemy import DateTime, String, Text, delete, literal, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from kvdb.adapters.storage.tables import keys
from kvdb.core.errors import NotFoundAppError, StorageAppError, ValidationAppError
from kvdb.core.logging import hash_for_log
from kvdb.utils.key_names import byte_length, generate_key_name, is_valid_key_name

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class KeyNames:
    """Names assigned to a newly created entry."""

    name: str
    name_readonly: str


def storage_error_message(exc: SQLAlchemyError) -> str:
    """Return the driver's own error text when available."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as ``StorageAppError``.

    The backend message is passed through unchanged.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "key.storage_error",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StorageAppError(code="storage_error", message=storage_error_message(exc)) from exc


class KeyService:
    """Create, read, update and delete stored values."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        max_value_length: int,
        max_key_name_length: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._max_value_length = max_value_length
        self._max_key_name_length = max_key_name_length
        self._clock = clock

    def _validate_value(self, value: str) -> None:
        length = byte_length(value)
        if length > self._max_value_length:
            raise ValidationAppError(
                code="value_too_long",
                message=f"Value exceeds maximum length of {self._max_value_length} characters",
                details={
                    "field": "value",
                    "max_length": self._max_value_length,
                    "actual_length": length,
                },
            )

    def _validate_name(self, name: str, *, field: str, label: str) -> None:
        if byte_length(name) > self._max_key_name_length or not is_valid_key_name(name):
            raise ValidationAppError(
                code="invalid_key_name",
                message=(
                    f"{label} name is invalid or exceeds maximum length of "
                    f"{self._max_key_name_length} characters"
                ),
                details={"field": field, "max_length": self._max_key_name_length},
            )

    async def create(
        self,
        name: str | None = None,
        name_readonly: str | None = None,
        value: str | None = None,
    ) -> KeyNames:
        """Create an entry, generating any name the caller omitted.

        Args:
            name: Read-write name, or None to generate one.
            name_readonly: Read-only name, or None to generate one.
            value: Initial value (defaults to empty).

        Returns:
            KeyNames with both assigned names.

        Raises:
            ValidationAppError: If the value is too long or a name is invalid.
            StorageAppError: If a name is already taken or the insert fails.
        """
        value = value or ""
        self._validate_value(value)
        if name is not None:
            self._validate_name(name, field="name", label="Key")
        if name_readonly is not None:
            self._validate_name(name_readonly, field="name_readonly", label="Read-only key")
        if name is not None and name == name_readonly:
            raise ValidationAppError(
                code="duplicate_key_names",
                message="Key name and read-only key name must be different",
                details={"field": "name_readonly"},
            )

        names = KeyNames(
            name=name if name is not None else generate_key_name(),
            name_readonly=name_readonly if name_readonly is not None else generate_key_name(),
        )
        candidates = [names.name, names.name_readonly]

        # Both names share one namespace: refuse the row if either collides
        # with any existing name or read-only name.
        collision = (
            select(keys.c.name)
            .where(or_(keys.c.name.in_(candidates), keys.c.roname.in_(candidates)))
            .correlate(None)
            .exists()
        )
        row = select(
            literal(names.name, String),
            literal(names.name_readonly, String),
            literal(value, Text),
            literal(self._clock(), DateTime(timezone=True)),
        ).where(~collision)
        statement = keys.insert().from_select(
            ["name", "roname", "value", "last_accessed"], row
        )

        with translate_storage_errors("create"):
            async with self._engine.begin() as conn:
                inserted = (await conn.execute(statement)).rowcount

        if inserted == 0:
            logger.warning(
                "key.create_conflict",
                extra={
                    "name_hash": hash_for_log(names.name),
                    "roname_hash": hash_for_log(names.name_readonly),
                },
            )
            raise StorageAppError(
                code="key_name_conflict",
                message="Key name or read-only key name is already in use",
            )

        logger.info(
            "key.created",
            extra={
                "name_hash": hash_for_log(names.name),
                "generated_name": name is None,
                "generated_readonly_name": name_readonly is None,
                "value_bytes": byte_length(value),
            },
        )
        return names

    async def read(self, name: str) -> str:
        """Return the value stored under a name or read-only name.

        ``last_accessed`` is refreshed afterwards on a best-effort basis.

        Raises:
            NotFoundAppError: If neither name matches.
            StorageAppError: If the lookup fails.
        """
        matches_name = or_(keys.c.name == name, keys.c.roname == name)

        with translate_storage_errors("read"):
            async with self._engine.connect() as conn:
                result = await conn.execute(select(keys.c.value).where(matches_name))
                row = result.first()

        if row is None:
            raise NotFoundAppError(
                code="key_not_found",
                message=f"Key '{name}' not found",
            )

        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    update(keys).where(matches_name).values(last_accessed=self._clock())
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "key.touch_failed",
                extra={
                    "name_hash": hash_for_log(name),
                    "error_type": type(exc).__name__,
                    "error_msg": storage_error_message(exc),
                },
            )

        return row.value

    async def update(self, name: str, value: str) -> None:
        """Replace the value of the entry whose read-write name is ``name``.

        Raises:
            ValidationAppError: If the value is too long.
            NotFoundAppError: If no entry has this read-write name.
            StorageAppError: If the update fails.
        """
        self._validate_value(value)

        statement = (
            update(keys)
            .where(keys.c.name == name)
            .values(value=value, last_accessed=self._clock())
        )
        with translate_storage_errors("update"):
            async with self._engine.begin() as conn:
                affected = (await conn.execute(statement)).rowcount

        if affected == 0:
            raise self._not_writable(name)

        logger.info(
            "key.updated",
            extra={"name_hash": hash_for_log(name), "value_bytes": byte_length(value)},
        )

    async def delete(self, name: str) -> None:
        """Delete the entry whose read-write name is ``name``.

        Raises:
            NotFoundAppError: If no entry has this read-write name.
            StorageAppError: If the delete fails.
        """
        with translate_storage_errors("delete"):
            async with self._engine.begin() as conn:
                statement = delete(keys).where(keys.c.name == name)
                affected = (await conn.execute(statement)).rowcount

        if affected == 0:
            raise self._not_writable(name)

        logger.info("key.deleted", extra={"name_hash": hash_for_log(name)})

    @staticmethod
    def _not_writable(name: str) -> NotFoundAppError:
        return NotFoundAppError(
            code="key_not_found",
            message=f"Key '{name}' not found or read-only key used",
        )
