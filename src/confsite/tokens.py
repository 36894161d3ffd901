"""Issue time-limited login tokens and deliver them out of band."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable
from urllib.parse import quote

from msgspec import structs

from .cipher import CredentialCipher, encode_for_url
from .config import AppConfig
from .exceptions import NotificationError
from .id57 import generate_token
from .models import User, hash_email, normalize_email, utcnow
from .notifications import MessageCatalog, Notifier
from .repository import UserRepository

logger = logging.getLogger(__name__)

TOKEN_TEMPLATE = "email-token"
TOKEN_SUBJECT_KEY = "email-token-subject"


class TokenIssuer:
    """Generate, persist and dispatch a fresh login token for a user."""

    def __init__(
        self,
        config: AppConfig,
        *,
        repository: UserRepository,
        notifier: Notifier,
        cipher: CredentialCipher,
        catalog: MessageCatalog | None = None,
        clock: Callable[[], dt.datetime] | None = None,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.notifier = notifier
        self.cipher = cipher
        self.catalog = catalog or MessageCatalog(default_locale=config.default_language)
        self._clock = clock or utcnow
        self._token_factory = token_factory or generate_token

    @property
    def ttl(self) -> dt.timedelta:
        return dt.timedelta(hours=self.config.token_ttl_hours)

    async def issue_token(self, user: User, email: str, locale: str) -> User:
        """Supersede any previous token of ``user`` and email the new one.

        The record is persisted before dispatch. A dispatch failure raises
        :class:`NotificationError` even though the new token is stored.
        """

        address = normalize_email(email)
        updated = structs.replace(
            user,
            email=self.cipher.encrypt(address),
            email_hash=hash_email(address),
            token=self._token_factory(),
            token_expiration=self._clock() + self.ttl,
        )
        saved = await self.repository.save(updated)
        subject = self.catalog.get(TOKEN_SUBJECT_KEY, locale)
        context = {
            "firstname": saved.firstname,
            "token": saved.token or "",
            "link": self.sign_in_link(address, saved.token or ""),
        }
        try:
            await self.notifier.send(TOKEN_TEMPLATE, subject, address, locale, context)
        except NotificationError:
            raise
        except Exception as exc:
            logger.error("Not possible to send email [%s] to %s", subject, address, exc_info=exc)
            raise NotificationError(subject, address) from exc
        logger.info("Login token sent to user %s", saved.login)
        return saved

    def sign_in_link(self, email: str, token: str) -> str:
        encoded = quote(encode_for_url(email), safe="")
        return self.config.url(f"/signin/{encoded}/{quote(token, safe='')}")


__all__ = ["TOKEN_SUBJECT_KEY", "TOKEN_TEMPLATE", "TokenIssuer"]
