"""Out-of-band notifications (login token emails)."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Mapping, Protocol

from jinja2 import Environment, PackageLoader, select_autoescape

from .config import MailConfig
from .exceptions import NotificationError
from .execution import TaskExecutor

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers a templated message to a recipient."""

    async def send(
        self,
        template: str,
        subject: str,
        recipient: str,
        locale: str,
        context: Mapping[str, str] | None = None,
    ) -> None:  # pragma: no cover - protocol
        ...


DEFAULT_MESSAGES: dict[str, dict[str, str]] = {
    "fr": {"email-token-subject": "Votre code de connexion"},
    "en": {"email-token-subject": "Your sign-in code"},
}


def _language(locale: str) -> str:
    return locale.split("-", 1)[0].lower()


class MessageCatalog:
    """Locale-aware lookup for email subjects."""

    def __init__(
        self,
        messages: Mapping[str, Mapping[str, str]] | None = None,
        *,
        default_locale: str = "fr",
    ) -> None:
        self._messages = {locale: dict(entries) for locale, entries in (messages or DEFAULT_MESSAGES).items()}
        self.default_locale = default_locale

    def get(self, key: str, locale: str) -> str:
        for candidate in (_language(locale), self.default_locale):
            entries = self._messages.get(candidate)
            if entries and key in entries:
                return entries[key]
        return key


def default_environment() -> Environment:
    """Templates shipped in ``confsite/templates``; only ``.html`` files are autoescaped."""

    return Environment(
        loader=PackageLoader("confsite", "templates"),
        autoescape=select_autoescape(["html"]),
        keep_trailing_newline=True,
    )


class EmailTemplates:
    """Render an email as a ``(text, html)`` pair.

    ``email-token`` in ``en`` resolves ``email-token.en.txt`` and
    ``email-token.en.html``, falling back to the default locale's files.
    """

    def __init__(self, environment: Environment | None = None, *, default_locale: str = "fr") -> None:
        self.environment = environment or default_environment()
        self.default_locale = default_locale

    def render(self, name: str, locale: str, context: Mapping[str, Any]) -> tuple[str, str]:
        languages = list(dict.fromkeys((_language(locale), self.default_locale)))
        text = self.environment.select_template([f"{name}.{lang}.txt" for lang in languages])
        html = self.environment.select_template([f"{name}.{lang}.html" for lang in languages])
        return text.render(context), html.render(context)


class SmtpNotifier:
    """Send notifications through SMTP on the executor's thread pool."""

    def __init__(
        self,
        config: MailConfig,
        *,
        executor: TaskExecutor,
        templates: EmailTemplates | None = None,
    ) -> None:
        self.config = config
        self.executor = executor
        self.templates = templates or EmailTemplates()

    async def send(
        self,
        template: str,
        subject: str,
        recipient: str,
        locale: str,
        context: Mapping[str, str] | None = None,
    ) -> None:
        text, html = self.templates.render(template, locale, context or {})
        message = EmailMessage()
        message["From"] = self.config.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        try:
            await self.executor.run(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Not possible to send email [%s] to %s", subject, recipient, exc_info=exc)
            raise NotificationError(subject, recipient) from exc

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout) as client:
            if self.config.use_tls:
                client.starttls()
            if self.config.username and self.config.password:
                client.login(self.config.username, self.config.password)
            client.send_message(message)


__all__ = ["DEFAULT_MESSAGES", "EmailTemplates", "MessageCatalog", "Notifier", "SmtpNotifier", "default_environment"]
