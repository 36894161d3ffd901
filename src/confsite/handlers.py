"""Login, sign-up, sign-in and logout flows for passwordless email tokens.

A visitor submits an email on ``/login``. Known users receive a fresh token by
email, unknown addresses are offered the sign-up form. The emailed link lands
on ``/signin/{email}/{token}`` which pre-fills the confirmation form; posting
it to ``/signin`` verifies the token and stores the identity in the session.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Callable, Mapping
from urllib.parse import unquote

from msgspec import structs

from .cipher import CredentialCipher, decode_from_url, encode_for_url
from .config import AppConfig
from .exceptions import DecodeError, DuplicateRecordError, LoginError, NotificationError, RepositoryError
from .gate import negotiate_language
from .http import Status
from .models import Role, User, hash_email, normalize_email, utcnow
from .repository import UserRepository
from .requests import Request
from .responses import RedirectResponse, Response
from .tokens import TokenIssuer
from .validation import EmailValidator
from .views import ViewRenderer

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .application import ConfsiteApp

logger = logging.getLogger(__name__)

LOGIN_VIEW = "login"
CONFIRMATION_VIEW = "login-confirmation"
CREATION_VIEW = "login-creation"
ERROR_VIEW = "login-error"

ERROR_EMAIL_REQUIRED = "login.error.text"
ERROR_EMAIL_INVALID = "login.error.creation.mail"
ERROR_SEND_TOKEN = "login.error.sendtoken.text"
ERROR_FIELDS_REQUIRED = "login.error.field.text"
ERROR_EMAIL_TAKEN = "login.error.uniqueemail.text"
ERROR_CREATION = "login.error.creation.text"
ERROR_CREDENTIALS_REQUIRED = "login.error.required.text"
ERROR_BAD_EMAIL = "login.error.bademail.text"
ERROR_BAD_TOKEN = "login.error.badtoken.text"
ERROR_TOKEN_EXPIRED = "login.error.token.text"

CREATE_ATTEMPTS = 5


def _field(form: Mapping[str, str], name: str) -> str:
    return (form.get(name) or "").strip()


def _display_name(value: str) -> str:
    return value.strip().lower().capitalize()


class AuthenticationHandlers:
    """Request handlers for the token login flow.

    Every handler answers with a view, a redirect or the ``login-error`` view
    carrying a message key. Validation failures never reach the repository or
    the notifier.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        repository: UserRepository,
        issuer: TokenIssuer,
        cipher: CredentialCipher,
        renderer: ViewRenderer,
        validator: EmailValidator | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.issuer = issuer
        self.cipher = cipher
        self.renderer = renderer
        self.validator = validator or EmailValidator()
        self._clock = clock or utcnow

    async def login_view(self, request: Request) -> Response:
        return self.renderer.render(LOGIN_VIEW)

    async def login(self, request: Request) -> Response:
        form = await request.form()
        try:
            email = self._valid_email(_field(form, "email"), missing=ERROR_EMAIL_REQUIRED)
            return await self._send_token(email, self.locale_of(request))
        except LoginError as exc:
            return self._error(exc)

    async def sign_up(self, request: Request) -> Response:
        form = await request.form()
        try:
            email = _field(form, "email")
            firstname = _field(form, "firstname")
            lastname = _field(form, "lastname")
            if not (email and firstname and lastname):
                raise LoginError(ERROR_FIELDS_REQUIRED)
            email = self._valid_email(email, missing=ERROR_FIELDS_REQUIRED)
            if await self.repository.find_by_email(email) is not None:
                raise LoginError(ERROR_EMAIL_TAKEN)
            user = User(
                login=email.split("@", 1)[0],
                firstname=_display_name(firstname),
                lastname=_display_name(lastname),
                email=self.cipher.encrypt(email),
                email_hash=hash_email(email),
                role=Role.USER,
                photo_url=self.config.default_avatar,
            )
            created = await self._create(user)
            logger.info("Created user %s", created.login)
            return await self._send_token(email, self.locale_of(request))
        except LoginError as exc:
            return self._error(exc)

    async def sign_in_via_url(self, request: Request, email: str, token: str) -> Response:
        """Pre-fill the confirmation form from an emailed sign-in link."""

        try:
            decoded = decode_from_url(unquote(email))
        except DecodeError:
            logger.debug("Sign-in link carries an undecodable email")
            return self._error(LoginError(ERROR_BAD_TOKEN))
        return self.renderer.render(CONFIRMATION_VIEW, {"email": decoded, "token": unquote(token)})

    async def sign_in(self, request: Request) -> Response:
        form = await request.form()
        try:
            raw_email = _field(form, "email")
            token = _field(form, "token")
            if not raw_email or not token:
                raise LoginError(ERROR_CREDENTIALS_REQUIRED)
            email = normalize_email(self._plain_email(raw_email))
            user = await self.repository.find_by_email(email)
            if user is None:
                raise LoginError(ERROR_BAD_EMAIL)
            if user.token != token:
                raise LoginError(ERROR_BAD_TOKEN)
            remaining = user.token_valid_until(self._clock())
            if remaining is None:
                raise LoginError(ERROR_TOKEN_EXPIRED)
        except LoginError as exc:
            return self._error(exc)

        logger.info("User %s signed in", user.login)
        session = request.session.signed_in(user, email=email, token=token)
        return (
            RedirectResponse(self.config.url("/"), status=int(Status.SEE_OTHER))
            .with_cookie(
                self.config.xsrf_cookie,
                encode_for_url(f"{email}:{token}"),
                max_age=int(remaining.total_seconds()),
                secure=self.config.cookie_secure,
            )
            .with_session(session)
        )

    async def logout(self, request: Request) -> Response:
        if request.session.has_credentials:
            logger.info("User %s signed out", request.session.login)
        return (
            RedirectResponse(self.config.url("/"), status=int(Status.TEMPORARY_REDIRECT))
            .with_cookie(self.config.xsrf_cookie, "", max_age=0, secure=self.config.cookie_secure)
            .with_session(request.session.signed_out())
        )

    # ------------------------------------------------------------------ helpers
    def locale_of(self, request: Request) -> str:
        """Language for outgoing emails.

        An ``/en/`` path wins. Otherwise the browser's Accept-Language picks
        between the site languages, then the default language applies.
        """

        language = request.header("content-language") or self.config.default_language
        if language != self.config.default_language:
            return language
        preferred = negotiate_language(request.header("accept-language"))
        if preferred in (self.config.default_language, self.config.alternate_language):
            return preferred
        return language

    def _valid_email(self, email: str, *, missing: str) -> str:
        if not email:
            logger.debug("Login form submitted without an email")
            raise LoginError(missing)
        if not self.validator.is_valid(email):
            logger.debug("Rejected malformed email")
            raise LoginError(ERROR_EMAIL_INVALID)
        return normalize_email(email)

    def _plain_email(self, value: str) -> str:
        if "@" in value:
            return value
        try:
            return self.cipher.decrypt(value)
        except DecodeError as exc:
            logger.debug("Sign-in form carries an undecryptable email")
            raise LoginError(ERROR_BAD_EMAIL) from exc

    async def _available_login(self, base: str) -> str:
        candidate = base
        suffix = 1
        while await self.repository.find_by_login(candidate) is not None:
            candidate = f"{base}{suffix}"
            suffix += 1
        return candidate

    async def _create(self, user: User) -> User:
        """Insert ``user`` under the first free login derived from ``user.login``.

        A login taken between the lookup and the insert moves on to the next
        suffix; an email taken in the meantime is reported as a duplicate sign-up.
        """

        base = user.login
        for _ in range(CREATE_ATTEMPTS):
            candidate = structs.replace(user, login=await self._available_login(base))
            try:
                return await self.repository.create(candidate)
            except DuplicateRecordError as exc:
                if exc.field == "email":
                    raise LoginError(ERROR_EMAIL_TAKEN) from exc
                logger.debug("Login %s was taken concurrently, retrying", candidate.login)
            except RepositoryError as exc:
                logger.error("Unable to create user %s", candidate.login, exc_info=exc)
                raise LoginError(ERROR_CREATION) from exc
        logger.error("No free login found for %s after %d attempts", base, CREATE_ATTEMPTS)
        raise LoginError(ERROR_CREATION)

    async def _send_token(self, email: str, locale: str) -> Response:
        user = await self.repository.find_by_email(email)
        if user is None:
            return self.renderer.render(CREATION_VIEW, {"email": email})
        try:
            await self.issuer.issue_token(user, email, locale)
        except NotificationError as exc:
            raise LoginError(ERROR_SEND_TOKEN) from exc
        except RepositoryError as exc:
            logger.error("Unable to store a login token for %s", user.login, exc_info=exc)
            raise LoginError(ERROR_SEND_TOKEN) from exc
        return self.renderer.render(CONFIRMATION_VIEW, {"email": email})

    def _error(self, exc: LoginError) -> Response:
        return self.renderer.render(ERROR_VIEW, {"description": exc.key})


def attach_authentication(app: "ConfsiteApp", handlers: AuthenticationHandlers) -> None:
    """Register the login flow routes on ``app``."""

    @app.get("/login", name="login")
    async def login_view(request: Request) -> Response:
        return await handlers.login_view(request)

    @app.post("/login", name="login_submit")
    async def login(request: Request) -> Response:
        return await handlers.login(request)

    @app.get("/logout", name="logout")
    async def logout(request: Request) -> Response:
        return await handlers.logout(request)

    @app.post("/signup", name="signup")
    async def sign_up(request: Request) -> Response:
        return await handlers.sign_up(request)

    @app.get("/signin/{email}/{token}", name="signin_link")
    async def sign_in_via_url(request: Request, email: str, token: str) -> Response:
        return await handlers.sign_in_via_url(request, email, token)

    @app.post("/signin", name="signin")
    async def sign_in(request: Request) -> Response:
        return await handlers.sign_in(request)


__all__ = ["AuthenticationHandlers", "attach_authentication"]
