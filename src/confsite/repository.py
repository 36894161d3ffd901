"""Persistence collaborator for user records."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

from .exceptions import DuplicateRecordError
from .models import User, hash_email

logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    """Document-store contract consumed by the login subsystem.

    ``create`` inserts only when neither the login nor the email is stored yet
    and raises :class:`DuplicateRecordError` otherwise. ``save`` replaces the
    document stored under ``user.login``.
    """

    async def find_by_email(self, email: str) -> User | None:  # pragma: no cover - protocol
        ...

    async def find_by_login(self, login: str) -> User | None:  # pragma: no cover - protocol
        ...

    async def create(self, user: User) -> User:  # pragma: no cover - protocol
        ...

    async def save(self, user: User) -> User:  # pragma: no cover - protocol
        ...


class InMemoryUserRepository:
    """Single-process store keyed by login with an email-hash index.

    Each ``save`` replaces the whole document atomically; concurrent saves for
    the same login resolve as last writer wins.
    """

    def __init__(self, users: Iterable[User] | None = None) -> None:
        self._by_login: dict[str, User] = {}
        self._login_by_hash: dict[str, str] = {}
        self._lock = asyncio.Lock()
        for user in users or ():
            self._store(user)

    async def find_by_email(self, email: str) -> User | None:
        login = self._login_by_hash.get(hash_email(email))
        if login is None:
            return None
        return self._by_login.get(login)

    async def find_by_login(self, login: str) -> User | None:
        return self._by_login.get(login)

    async def create(self, user: User) -> User:
        async with self._lock:
            if user.login in self._by_login:
                raise DuplicateRecordError("login", user.login)
            if user.email_hash in self._login_by_hash:
                raise DuplicateRecordError("email", user.email_hash)
            self._store(user)
        logger.debug("Created user %s", user.login)
        return user

    async def save(self, user: User) -> User:
        async with self._lock:
            self._store(user)
        logger.debug("Saved user %s", user.login)
        return user

    async def count(self) -> int:
        return len(self._by_login)

    def _store(self, user: User) -> None:
        previous = self._by_login.get(user.login)
        if previous is not None and previous.email_hash != user.email_hash:
            self._login_by_hash.pop(previous.email_hash, None)
        self._by_login[user.login] = user
        self._login_by_hash[user.email_hash] = user.login


__all__ = ["InMemoryUserRepository", "UserRepository"]
