"""MappingStore tests against an in-memory SQLite database."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from shortlink.errors import DuplicateMappingError, StoreUnavailableError, TokenNotFoundError
from shortlink.mapping_store import MappingStore


@pytest.mark.asyncio
async def test_add_and_get_mapping(mapping_store: MappingStore) -> None:
    created = await mapping_store.add_new_mapping(1, "https://a.example/x", "b")

    assert created.id == 1
    assert created.url_token == "b"
    assert created.original_url == "https://a.example/x"
    assert created.created_at is not None
    assert created.updated_at is not None

    fetched = await mapping_store.get_mapping_by_token("b")
    assert fetched is not None
    assert fetched.id == 1
    assert fetched.original_url == "https://a.example/x"


@pytest.mark.asyncio
async def test_get_missing_mapping_returns_none(mapping_store: MappingStore) -> None:
    assert await mapping_store.get_mapping_by_token("zzz") is None


@pytest.mark.asyncio
async def test_add_duplicate_id_fails(mapping_store: MappingStore) -> None:
    await mapping_store.add_new_mapping(1, "https://a.example/x", "b")

    with pytest.raises(DuplicateMappingError):
        await mapping_store.add_new_mapping(1, "https://a.example/y", "b")


@pytest.mark.asyncio
async def test_update_original_url(mapping_store: MappingStore) -> None:
    created = await mapping_store.add_new_mapping(1, "https://a.example/old", "b")

    updated = await mapping_store.update_original_url("b", "https://a.example/new")

    assert updated.id == 1
    assert updated.url_token == "b"
    assert updated.original_url == "https://a.example/new"
    assert updated.created_at == created.created_at
    fetched = await mapping_store.get_mapping_by_token("b")
    assert fetched.original_url == "https://a.example/new"


@pytest.mark.asyncio
async def test_update_missing_token_fails(mapping_store: MappingStore) -> None:
    with pytest.raises(TokenNotFoundError, match="No mapping with token zzz found"):
        await mapping_store.update_original_url("zzz", "https://a.example/new")


@pytest.mark.asyncio
async def test_delete_mapping(mapping_store: MappingStore) -> None:
    await mapping_store.add_new_mapping(1, "https://a.example/x", "b")

    await mapping_store.delete_mapping_info("b")

    assert await mapping_store.get_mapping_by_token("b") is None


@pytest.mark.asyncio
async def test_delete_missing_token_fails(mapping_store: MappingStore) -> None:
    with pytest.raises(TokenNotFoundError):
        await mapping_store.delete_mapping_info("zzz")


@pytest.mark.asyncio
async def test_get_last_id(mapping_store: MappingStore) -> None:
    assert await mapping_store.get_last_id() == 0

    await mapping_store.add_new_mapping(5, "https://a.example/5", "f")
    await mapping_store.add_new_mapping(3, "https://a.example/3", "d")

    assert await mapping_store.get_last_id() == 5


@pytest.mark.asyncio
async def test_read_failure_is_not_reported_as_absent() -> None:
    def broken_session():
        raise OperationalError("SELECT", {}, ConnectionRefusedError("db down"))

    store = MappingStore(MagicMock(side_effect=broken_session))

    with pytest.raises(StoreUnavailableError):
        await store.get_mapping_by_token("b")
