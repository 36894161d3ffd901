"""Passwordless authentication and request gating for a conference website."""

from .application import ConfsiteApp, create_app
from .cipher import CredentialCipher, decode_from_url, encode_for_url
from .config import AppConfig, MailConfig, load_config_from_env
from .exceptions import (
    ConfsiteError,
    DecodeError,
    DuplicateRecordError,
    HTTPError,
    LoginError,
    NotificationError,
    RepositoryError,
)
from .gate import Forward, Redirect, RequestGate
from .handlers import AuthenticationHandlers, attach_authentication
from .identity import IdentityResolver, token_is_valid
from .models import Link, Role, SessionState, User
from .notifications import EmailTemplates, MessageCatalog, Notifier, SmtpNotifier
from .repository import InMemoryUserRepository, UserRepository
from .requests import Request
from .responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from .sessions import SessionStore
from .testing import TestClient
from .tokens import TokenIssuer
from .validation import EmailValidator
from .views import JSONViewRenderer, ViewRenderer

__all__ = [
    "AppConfig",
    "AuthenticationHandlers",
    "ConfsiteApp",
    "ConfsiteError",
    "CredentialCipher",
    "DecodeError",
    "DuplicateRecordError",
    "EmailTemplates",
    "EmailValidator",
    "Forward",
    "HTTPError",
    "IdentityResolver",
    "InMemoryUserRepository",
    "JSONResponse",
    "JSONViewRenderer",
    "Link",
    "LoginError",
    "MailConfig",
    "MessageCatalog",
    "NotificationError",
    "Notifier",
    "PlainTextResponse",
    "Redirect",
    "RedirectResponse",
    "RepositoryError",
    "Request",
    "RequestGate",
    "Response",
    "Role",
    "SessionState",
    "SessionStore",
    "SmtpNotifier",
    "TestClient",
    "TokenIssuer",
    "User",
    "UserRepository",
    "ViewRenderer",
    "attach_authentication",
    "create_app",
    "decode_from_url",
    "encode_for_url",
    "load_config_from_env",
    "token_is_valid",
]
