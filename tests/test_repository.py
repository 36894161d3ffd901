from __future__ import annotations

import asyncio

import pytest
from msgspec import structs

from confsite.exceptions import DuplicateRecordError
from confsite.models import hash_email
from confsite.repository import InMemoryUserRepository
from tests.support import make_user


@pytest.mark.asyncio
async def test_find_by_email_uses_normalized_hash() -> None:
    user = make_user()
    repository = InMemoryUserRepository([user])
    assert await repository.find_by_email(" JANE.DOE@example.com") == user
    assert await repository.find_by_login("jane.doe") == user
    assert await repository.find_by_email("john@example.com") is None


@pytest.mark.asyncio
async def test_save_replaces_document_and_reindexes_email() -> None:
    user = make_user()
    repository = InMemoryUserRepository([user])
    moved = structs.replace(user, email_hash=hash_email("jane@new.example.com"))
    await repository.save(moved)
    assert await repository.count() == 1
    assert await repository.find_by_email("jane.doe@example.com") is None
    assert await repository.find_by_email("jane@new.example.com") == moved


@pytest.mark.asyncio
async def test_concurrent_saves_resolve_last_writer_wins() -> None:
    repository = InMemoryUserRepository()
    versions = [structs.replace(make_user(), token=f"token-{index}") for index in range(10)]
    await asyncio.gather(*(repository.save(version) for version in versions))
    stored = await repository.find_by_login("jane.doe")
    assert stored is not None
    assert stored.token in {version.token for version in versions}
    assert await repository.count() == 1


@pytest.mark.asyncio
async def test_create_inserts_new_user() -> None:
    repository = InMemoryUserRepository()
    user = make_user()
    assert await repository.create(user) == user
    assert await repository.find_by_email("jane.doe@example.com") == user


@pytest.mark.asyncio
async def test_create_refuses_taken_login() -> None:
    repository = InMemoryUserRepository([make_user()])
    with pytest.raises(DuplicateRecordError) as excinfo:
        await repository.create(make_user("jane@other.example"))
    assert excinfo.value.field == "login"
    assert await repository.find_by_email("jane@other.example") is None


@pytest.mark.asyncio
async def test_create_refuses_taken_email() -> None:
    repository = InMemoryUserRepository([make_user()])
    with pytest.raises(DuplicateRecordError) as excinfo:
        await repository.create(make_user(login="jane"))
    assert excinfo.value.field == "email"
    assert await repository.find_by_login("jane") is None


@pytest.mark.asyncio
async def test_concurrent_creates_keep_a_single_login() -> None:
    repository = InMemoryUserRepository()
    results = await asyncio.gather(
        repository.create(make_user("jo@a.com", login="jo")),
        repository.create(make_user("jo@b.com", login="jo")),
        return_exceptions=True,
    )
    assert sum(isinstance(result, DuplicateRecordError) for result in results) == 1
    assert await repository.count() == 1
