"""Resolve the verified user behind a session snapshot."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from .models import SessionState, User, utcnow
from .repository import UserRepository

logger = logging.getLogger(__name__)


def token_is_valid(user: User, token: str | None, now: dt.datetime) -> bool:
    """Exact token match against a token whose expiration is strictly after ``now``."""

    if not token or user.token is None or user.token_expiration is None:
        return False
    return user.token == token and user.token_expiration > now


class IdentityResolver:
    """Re-check the session's email and token against the persisted record.

    Runs on every request; a session is never trusted on its own.
    """

    def __init__(
        self,
        repository: UserRepository,
        *,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.repository = repository
        self._clock = clock or utcnow

    async def resolve(self, session: SessionState) -> User | None:
        email = session.email
        if email is None or not session.has_credentials:
            return None
        user = await self.repository.find_by_email(email)
        if user is None:
            logger.debug("Session refers to an unknown email")
            return None
        if not token_is_valid(user, session.token, self._clock()):
            logger.debug("Session token for %s is stale or expired", user.login)
            return None
        return user


__all__ = ["IdentityResolver", "token_is_valid"]
