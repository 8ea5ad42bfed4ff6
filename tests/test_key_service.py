"""Unit tests for KeyService against a SQLite database."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from kvdb.adapters.storage.tables import keys
from kvdb.core.errors import NotFoundAppError, StorageAppError, ValidationAppError
from kvdb.services.key_service import KeyService


async def _last_accessed(service: KeyService, name: str):
    async with service._engine.connect() as conn:
        result = await conn.execute(select(keys.c.last_accessed).where(keys.c.name == name))
        return result.scalar_one()


class TestCreate:
    @pytest.mark.asyncio
    async def test_generates_both_names_when_omitted(self, key_service: KeyService) -> None:
        names = await key_service.create(value="hello")

        assert names.name
        assert names.name_readonly
        assert names.name != names.name_readonly
        assert await key_service.read(names.name) == "hello"

    @pytest.mark.asyncio
    async def test_generated_names_never_repeat(self, key_service: KeyService) -> None:
        issued: set[str] = set()
        for _ in range(20):
            names = await key_service.create()
            assert names.name not in issued
            assert names.name_readonly not in issued
            issued.update({names.name, names.name_readonly})

        assert len(issued) == 40

    @pytest.mark.asyncio
    async def test_uses_supplied_names(self, key_service: KeyService) -> None:
        names = await key_service.create(name="writer.1", name_readonly="reader-1", value="v")

        assert names.name == "writer.1"
        assert names.name_readonly == "reader-1"

    @pytest.mark.asyncio
    async def test_value_defaults_to_empty(self, key_service: KeyService) -> None:
        names = await key_service.create(name="empty")

        assert await key_service.read(names.name) == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_name", ["", "has space", "slash/name", "semi;colon", "x" * 41])
    async def test_rejects_invalid_name(self, key_service: KeyService, bad_name: str) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await key_service.create(name=bad_name)

        assert exc_info.value.details["field"] == "name"
        assert exc_info.value.message.startswith("Key name")

    @pytest.mark.asyncio
    async def test_rejects_invalid_readonly_name(self, key_service: KeyService) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await key_service.create(name="ok", name_readonly="not ok")

        assert exc_info.value.details["field"] == "name_readonly"
        assert exc_info.value.message.startswith("Read-only key name")

    @pytest.mark.asyncio
    async def test_accepts_name_at_max_length(self, key_service: KeyService) -> None:
        names = await key_service.create(name="n" * 40)

        assert names.name == "n" * 40

    @pytest.mark.asyncio
    async def test_rejects_oversize_value(self, key_service: KeyService) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await key_service.create(value="x" * 65)

        assert exc_info.value.code == "value_too_long"

    @pytest.mark.asyncio
    async def test_value_length_counts_bytes(self, key_service: KeyService) -> None:
        # 33 two-byte characters = 66 bytes
        with pytest.raises(ValidationAppError):
            await key_service.create(value="é" * 33)

    @pytest.mark.asyncio
    async def test_rejects_identical_names(self, key_service: KeyService) -> None:
        with pytest.raises(ValidationAppError):
            await key_service.create(name="same", name_readonly="same")

    @pytest.mark.asyncio
    async def test_duplicate_name_is_storage_error(self, key_service: KeyService) -> None:
        await key_service.create(name="taken", name_readonly="taken-ro")

        with pytest.raises(StorageAppError):
            await key_service.create(name="taken")

    @pytest.mark.asyncio
    async def test_names_share_one_namespace(self, key_service: KeyService) -> None:
        await key_service.create(name="alpha", name_readonly="alpha-ro")

        with pytest.raises(StorageAppError):
            await key_service.create(name="alpha-ro")
        with pytest.raises(StorageAppError):
            await key_service.create(name="beta", name_readonly="alpha")

        assert await key_service.read("alpha-ro") == ""


class TestRead:
    @pytest.mark.asyncio
    async def test_both_names_return_same_value(self, key_service: KeyService) -> None:
        names = await key_service.create(value="shared")

        assert await key_service.read(names.name) == "shared"
        assert await key_service.read(names.name_readonly) == "shared"

    @pytest.mark.asyncio
    async def test_missing_key_is_not_found(self, key_service: KeyService) -> None:
        with pytest.raises(NotFoundAppError):
            await key_service.read("nope")

    @pytest.mark.asyncio
    async def test_read_advances_last_accessed(self, key_service: KeyService, clock) -> None:
        names = await key_service.create(value="v")
        before = await _last_accessed(key_service, names.name)

        clock.advance(hours=1)
        await key_service.read(names.name_readonly)

        after = await _last_accessed(key_service, names.name)
        assert after > before

    @pytest.mark.asyncio
    async def test_touch_failure_does_not_fail_read(self, key_service: KeyService) -> None:
        names = await key_service.create(value="kept")

        failure = OperationalError("UPDATE keys", {}, Exception("db down"))
        with patch("kvdb.services.key_service.update", side_effect=failure):
            assert await key_service.read(names.name) == "kept"


class TestUpdate:
    @pytest.mark.asyncio
    async def test_updates_by_primary_name(self, key_service: KeyService) -> None:
        names = await key_service.create(value="old")

        await key_service.update(names.name, "new")

        assert await key_service.read(names.name_readonly) == "new"

    @pytest.mark.asyncio
    async def test_readonly_name_is_not_found(self, key_service: KeyService) -> None:
        names = await key_service.create(value="old")

        with pytest.raises(NotFoundAppError):
            await key_service.update(names.name_readonly, "hijack")

        assert await key_service.read(names.name) == "old"

    @pytest.mark.asyncio
    async def test_missing_name_is_not_found(self, key_service: KeyService) -> None:
        with pytest.raises(NotFoundAppError):
            await key_service.update("ghost", "v")

    @pytest.mark.asyncio
    async def test_value_at_limit_is_accepted(self, key_service: KeyService) -> None:
        names = await key_service.create()

        await key_service.update(names.name, "x" * 64)
        with pytest.raises(ValidationAppError):
            await key_service.update(names.name, "x" * 65)

        assert await key_service.read(names.name) == "x" * 64


class TestDelete:
    @pytest.mark.asyncio
    async def test_deletes_by_primary_name(self, key_service: KeyService) -> None:
        names = await key_service.create(value="bye")

        await key_service.delete(names.name)

        with pytest.raises(NotFoundAppError):
            await key_service.read(names.name_readonly)

    @pytest.mark.asyncio
    async def test_readonly_name_is_not_found(self, key_service: KeyService) -> None:
        names = await key_service.create(value="stay")

        with pytest.raises(NotFoundAppError):
            await key_service.delete(names.name_readonly)

        assert await key_service.read(names.name) == "stay"

    @pytest.mark.asyncio
    async def test_second_delete_is_not_found(self, key_service: KeyService) -> None:
        names = await key_service.create()
        await key_service.delete(names.name)

        with pytest.raises(NotFoundAppError):
            await key_service.delete(names.name)


class TestStorageFailures:
    @pytest.mark.asyncio
    async def test_storage_message_is_passed_through(self, key_service: KeyService, database) -> None:
        async with database.engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE keys")

        with pytest.raises(StorageAppError) as exc_info:
            await key_service.read("anything")

        assert "no such table" in exc_info.value.message
