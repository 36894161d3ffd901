from __future__ import annotations

import datetime as dt
from urllib.parse import urlsplit

import pytest

from confsite.cipher import decode_from_url
from confsite.exceptions import NotificationError
from confsite.id57 import ALPHABET
from confsite.repository import InMemoryUserRepository
from confsite.testing import RecordingNotifier
from confsite.tokens import TokenIssuer
from tests.support import EPOCH, FrozenClock, make_cipher, make_config, make_user


def _issuer(repository, notifier, clock=None) -> TokenIssuer:
    return TokenIssuer(
        make_config(),
        repository=repository,
        notifier=notifier,
        cipher=make_cipher(),
        clock=clock or FrozenClock(),
    )


@pytest.mark.asyncio
async def test_issue_token_persists_and_notifies() -> None:
    repository = InMemoryUserRepository([make_user()])
    notifier = RecordingNotifier()
    issuer = _issuer(repository, notifier)

    user = await issuer.issue_token(make_user(), "Jane.Doe@example.com ", "fr")

    stored = await repository.find_by_email("jane.doe@example.com")
    assert stored == user
    assert user.token is not None and len(user.token) == 17
    assert set(user.token) <= set(ALPHABET)
    assert user.token_expiration == EPOCH + dt.timedelta(hours=48)
    assert make_cipher().decrypt(user.email) == "jane.doe@example.com"

    sent = notifier.last
    assert sent.template == "email-token"
    assert sent.subject == "Votre code de connexion"
    assert sent.recipient == "jane.doe@example.com"
    assert sent.locale == "fr"
    assert sent.context["token"] == user.token
    link = urlsplit(sent.context["link"])
    assert link.netloc == "mixitconf.org"
    _, prefix, encoded_email, token = link.path.split("/")
    assert prefix == "signin"
    assert decode_from_url(encoded_email) == "jane.doe@example.com"
    assert token == user.token


@pytest.mark.asyncio
async def test_subject_follows_locale() -> None:
    notifier = RecordingNotifier()
    issuer = _issuer(InMemoryUserRepository(), notifier)
    await issuer.issue_token(make_user(), "jane.doe@example.com", "en")
    assert notifier.last.subject == "Your sign-in code"


@pytest.mark.asyncio
async def test_reissue_supersedes_previous_token() -> None:
    repository = InMemoryUserRepository()
    issuer = _issuer(repository, RecordingNotifier())
    first = await issuer.issue_token(make_user(), "jane.doe@example.com", "fr")
    second = await issuer.issue_token(first, "jane.doe@example.com", "fr")
    assert first.token != second.token
    stored = await repository.find_by_login("jane.doe")
    assert stored is not None and stored.token == second.token


@pytest.mark.asyncio
async def test_notification_failure_keeps_token_but_raises() -> None:
    repository = InMemoryUserRepository()
    issuer = _issuer(repository, RecordingNotifier(fail=True))
    with pytest.raises(NotificationError):
        await issuer.issue_token(make_user(), "jane.doe@example.com", "fr")
    stored = await repository.find_by_login("jane.doe")
    assert stored is not None and stored.token is not None


@pytest.mark.asyncio
async def test_unexpected_notifier_error_is_wrapped(caplog) -> None:
    class BrokenNotifier:
        async def send(self, template, subject, recipient, locale, context=None) -> None:
            raise ConnectionResetError("peer went away")

    issuer = _issuer(InMemoryUserRepository(), BrokenNotifier())
    with caplog.at_level("ERROR", logger="confsite.tokens"):
        with pytest.raises(NotificationError) as excinfo:
            await issuer.issue_token(make_user(), "jane.doe@example.com", "fr")
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    assert "jane.doe@example.com" in caplog.text
