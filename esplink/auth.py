"""Session authentication against the device web login.

The device serves a classic HTML login form. A successful POST answers with
a redirect and/or a ``Set-Cookie`` header; the cookie is then replayed on
every API call.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .endpoints import DeviceOperation, endpoint
from .errors import (
    AuthError,
    CredentialsRejected,
    LoginPageUnreachable,
    NoSessionCookie,
    TransportError,
)
from .transport.bound import BoundHttpTransport
from .transport.exchange import HttpExchange, build_form_body, same_origin

_LOGGER = logging.getLogger(__name__)

CSRF_FIELD = "_token"

_SESSION_MARKERS = ("session_id=", "PHPSESSID=", "sessionid=", "SESSION=")


class AuthState(Enum):
    """Login handshake progress."""

    UNAUTHENTICATED = "unauthenticated"
    AWAITING_LOGIN_PAGE = "awaiting_login_page"
    AWAITING_LOGIN_SUBMIT = "awaiting_login_submit"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthenticatedSession:
    """Session cookie bound to the base URL it was issued by.

    ``cookie`` is None when the device accepted the login with a bare
    redirect and set no cookie.
    """

    base_url: str
    cookie: str | None

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def headers_for(self, url: str) -> dict[str, str]:
        """Cookie header for ``url``; empty for any other origin."""
        if not self.cookie or not same_origin(url, self.base_url):
            return {}
        return {"Cookie": self.cookie}


# -----------------------------------------------------------------------------
# CSRF token matchers
# -----------------------------------------------------------------------------


class TokenMatcher(Protocol):
    """Strategy that pulls an anti-forgery token out of login page HTML."""

    name: str

    def try_extract(self, html: str) -> str | None: ...


@dataclass(frozen=True)
class RegexTokenMatcher:
    """Token matcher backed by a regex whose first group is the token."""

    name: str
    pattern: re.Pattern[str]

    def try_extract(self, html: str) -> str | None:
        match = self.pattern.search(html)
        return match.group(1) if match else None


DEFAULT_TOKEN_MATCHERS: tuple[TokenMatcher, ...] = (
    RegexTokenMatcher(
        "input-name-value",
        re.compile(r"""<input[^>]*name=["']_token["'][^>]*value=["']([^"']+)["']"""),
    ),
    RegexTokenMatcher(
        "input-value-name",
        re.compile(r"""<input[^>]*value=["']([^"']+)["'][^>]*name=["']_token["']"""),
    ),
    RegexTokenMatcher(
        "csrf-key-value",
        re.compile(r"""csrf[_-]?token["']?\s*[:=]\s*["']([^"']+)["']""", re.IGNORECASE),
    ),
    RegexTokenMatcher(
        "meta-csrf-token",
        re.compile(r"""<meta[^>]*name=["']csrf-token["'][^>]*content=["']([^"']+)["']"""),
    ),
)


def extract_csrf_token(
    html: str, matchers: Sequence[TokenMatcher] = DEFAULT_TOKEN_MATCHERS
) -> str | None:
    """Return the first token found by ``matchers`` in priority order."""
    for matcher in matchers:
        token = matcher.try_extract(html)
        if token is not None:
            _LOGGER.debug("CSRF token matched by %s", matcher.name)
            return token
    return None


# -----------------------------------------------------------------------------
# Login form and response classification
# -----------------------------------------------------------------------------


def login_form_fields(
    username: str, password: str, csrf_token: str | None = None
) -> list[tuple[str, str]]:
    """Login form fields: username, password and optional ``_token``."""
    fields = [("username", username), ("password", password)]
    if csrf_token is not None:
        fields.append((CSRF_FIELD, csrf_token))
    return fields


def build_login_form(username: str, password: str, csrf_token: str | None = None) -> str:
    """URL-encoded login body."""
    return build_form_body(login_form_fields(username, password, csrf_token))


def _preview(cookie: str) -> str:
    return f"{cookie[:30]}..." if len(cookie) > 30 else cookie


def _cookie_pair(value: str) -> str | None:
    pair = value.split(";", 1)[0].strip()
    if not pair.partition("=")[0].strip():
        return None
    return pair


def extract_session_cookie(set_cookie: Sequence[str]) -> str | None:
    """Pick the session cookie among ``Set-Cookie`` values.

    Session-looking cookies win, otherwise the first entry with a cookie
    name. The result is the ``name=value`` part before the first ``;``.
    Entries without a name (``;``, ``=x``) are ignored.
    """
    candidates = []
    for value in set_cookie:
        pair = _cookie_pair(value)
        if pair is not None:
            candidates.append(pair)
    for pair in candidates:
        if any(marker in pair for marker in _SESSION_MARKERS) or "session" in pair.lower():
            return pair
    if candidates:
        return candidates[0]
    return None


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login POST.

    ``weak`` marks a login accepted only because of a redirect, with no
    cookie to show for it.
    """

    cookie: str | None
    weak: bool = False


def check_login_success(exchange: HttpExchange) -> LoginResult:
    """Classify the login POST response.

    Raises:
        CredentialsRejected: The login form came back, or 401/403.
        NoSessionCookie: A 200 without a usable cookie or form.
        AuthError: Any other status.
    """
    set_cookie = exchange.header_values("set-cookie")

    if exchange.status == 302:
        cookie = extract_session_cookie(set_cookie)
        if cookie is None:
            # Accepted for compatibility with devices that set no cookie;
            # this can hide a rejected login that redirects back to /login.
            _LOGGER.warning("302 redirect but no session cookie found - proceeding anyway")
            return LoginResult(cookie=None, weak=True)
        _LOGGER.info("Got redirect - session cookie extracted: %s", _preview(cookie))
        return LoginResult(cookie=cookie)

    if exchange.status == 200:
        if set_cookie:
            cookie = extract_session_cookie(set_cookie)
            if cookie is None:
                raise NoSessionCookie("Set-Cookie present but empty")
            _LOGGER.info("Got session cookie on 200 response: %s", _preview(cookie))
            return LoginResult(cookie=cookie)
        if "<form" in exchange.body or "login" in exchange.body:
            raise CredentialsRejected("Got login form again - credentials rejected")
        raise NoSessionCookie("Login returned 200 without a session cookie")

    if exchange.status in (401, 403):
        raise CredentialsRejected(f"Login rejected with status {exchange.status}")
    raise AuthError(f"Unexpected login status {exchange.status}")


# -----------------------------------------------------------------------------
# Authenticator
# -----------------------------------------------------------------------------


class SessionAuthenticator:
    """Run the login handshake over the bound transport.

    Usage:
        auth = SessionAuthenticator(transport, "http://192.168.4.1", "admin", "1234")
        session = await auth.login()
    """

    def __init__(
        self,
        transport: BoundHttpTransport,
        base_url: str,
        username: str,
        password: str,
        *,
        matchers: Sequence[TokenMatcher] = DEFAULT_TOKEN_MATCHERS,
    ) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._matchers = tuple(matchers)
        self._state = AuthState.UNAUTHENTICATED
        self._session: AuthenticatedSession | None = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> AuthenticatedSession | None:
        return self._session

    def reset(self) -> None:
        """Forget any session and return to UNAUTHENTICATED."""
        self._state = AuthState.UNAUTHENTICATED
        self._session = None

    def _fail(self, err: AuthError) -> AuthError:
        self._state = AuthState.FAILED
        self._session = None
        return err

    async def login(self) -> AuthenticatedSession:
        """Fetch the login page, submit credentials and capture the cookie.

        Raises:
            LoginPageUnreachable: The login page did not answer 200.
            CredentialsRejected: The device rejected the credentials.
            NoSessionCookie: The device accepted but set no usable cookie.
            AuthError: The submit failed at transport level or with an
                unexpected status.
        """
        self._session = None
        self._state = AuthState.AWAITING_LOGIN_PAGE
        page_url = f"{self._base_url}{endpoint(DeviceOperation.LOGIN_PAGE).path}"
        try:
            page = await self._transport.get(page_url)
        except TransportError as err:
            raise self._fail(LoginPageUnreachable(f"Login page unreachable: {err.cause}")) from err
        if page.status != 200:
            raise self._fail(LoginPageUnreachable(f"Login page unreachable: status {page.status}"))

        token = extract_csrf_token(page.body, self._matchers)
        if token is not None:
            _LOGGER.debug("Found CSRF token: %s...", token[:10])

        self._state = AuthState.AWAITING_LOGIN_SUBMIT
        submit_url = f"{self._base_url}{endpoint(DeviceOperation.LOGIN_SUBMIT).path}"
        fields = login_form_fields(self._username, self._password, token)
        try:
            response = await self._transport.post_form(
                submit_url, fields, follow_redirects=False
            )
        except TransportError as err:
            raise self._fail(AuthError(f"Login submit failed: {err.cause}")) from err

        _LOGGER.debug("Login response: %s", response.status)
        try:
            result = check_login_success(response)
        except AuthError as err:
            self._fail(err)
            raise

        self._session = AuthenticatedSession(base_url=self._base_url, cookie=result.cookie)
        self._state = AuthState.AUTHENTICATED
        return self._session
