"""Pooled high-level HTTP client for authenticated device calls."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from ..network.platform import process_default_network
from .exchange import HttpExchange, collect_headers, normalize_error, same_origin

_LOGGER = logging.getLogger(__name__)

# Returns (base_url, cookie) of the current session, or None
SessionCookieProvider = Callable[[], tuple[str, str | None] | None]


class PooledHttpTransport:
    """Long-lived ``aiohttp.ClientSession`` with session-cookie injection.

    The cookie is added by a client middleware, and only for requests whose
    origin matches the base URL the cookie was issued for. Sockets follow the
    process-wide network binding when one is active; otherwise the OS picks
    the route, which is why callers pair this client with a bound fallback.
    """

    def __init__(
        self,
        cookie_provider: SessionCookieProvider,
        *,
        request_timeout: float = 10.0,
        connect_timeout: float = 5.0,
    ) -> None:
        self._cookie_provider = cookie_provider
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            network = process_default_network()
            connector = aiohttp.TCPConnector(
                socket_factory=network.socket_factory if network is not None else None,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(
                    total=self._request_timeout,
                    connect=self._connect_timeout,
                ),
                cookie_jar=aiohttp.DummyCookieJar(),
                middlewares=(self._inject_session_cookie,),
            )
        return self._session

    async def _inject_session_cookie(
        self,
        req: aiohttp.ClientRequest,
        handler: aiohttp.ClientHandlerType,
    ) -> aiohttp.ClientResponse:
        current = self._cookie_provider()
        if current is not None:
            base_url, cookie = current
            if cookie and same_origin(str(req.url), base_url):
                req.headers["Cookie"] = cookie
        return await handler(req)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        follow_redirects: bool = True,
    ) -> HttpExchange:
        """Execute a request on the pooled session.

        Raises:
            TransportTimeout: If the request timed out.
            TransportConnectionError: If the connection failed.
            TransportMalformed: If the response could not be read.
        """
        method = method.upper()
        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                headers=dict(headers or {}),
                json=json,
                allow_redirects=follow_redirects,
            ) as resp:
                body = await resp.text(errors="replace")
                return HttpExchange(
                    method=method,
                    url=url,
                    status=resp.status,
                    body=body,
                    headers=collect_headers(resp.headers.items()),
                    request_headers=dict(headers or {}),
                )
        except (TimeoutError, aiohttp.ClientError, OSError, UnicodeDecodeError) as err:
            raise normalize_error(err, f"{method} {url}") from err

    async def close(self) -> None:
        """Close the pooled session."""
        if self._session is not None:
            await self._session.close()
            self._session = None
