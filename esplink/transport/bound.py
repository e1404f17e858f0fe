"""HTTP transport pinned to the bound access-point network."""

from __future__ import annotations

import asyncio
import json as jsonlib
import logging
import socket
from collections.abc import Mapping, Sequence
from typing import Any

import aiohttp

from ..errors import TransportConnectionError, TransportNotBound
from ..network.binder import NetworkBinder
from ..network.platform import BoundNetwork
from .exchange import (
    FORM_CONTENT_TYPE,
    FormFields,
    HttpExchange,
    ProbeResult,
    build_form_body,
    collect_headers,
    normalize_error,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_PROBE_TIMEOUT = 0.6


class BoundHttpTransport:
    """Raw HTTP transport whose every socket comes from the bound network.

    Each request uses a fresh, non-pooled connector so no connection can
    outlive the network it was opened on.
    """

    def __init__(
        self,
        binder: NetworkBinder,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self._binder = binder
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout
        self._probe_timeout = probe_timeout

    def _require_network(self) -> BoundNetwork:
        network = self._binder.network
        if network is None:
            raise TransportNotBound("Device network not bound")
        return network

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        form: FormFields | None = None,
        multipart: FormFields | None = None,
        follow_redirects: bool = True,
    ) -> HttpExchange:
        """Execute a request through the bound network.

        At most one of ``json``, ``form`` and ``multipart`` may be given.

        Raises:
            TransportNotBound: If no network is bound.
            TransportTimeout: If the request timed out.
            TransportConnectionError: If the connection failed or the network
                was lost mid-flight.
            TransportMalformed: If the response could not be read.
        """
        if sum(part is not None for part in (json, form, multipart)) > 1:
            raise ValueError("Only one of json, form or multipart may be given")
        network = self._require_network()

        method = method.upper()
        request_headers = dict(headers or {})
        data: Any = None
        request_body: str | None = None
        if json is not None:
            request_body = jsonlib.dumps(json)
            data = request_body
            request_headers.setdefault("Content-Type", "application/json; charset=utf-8")
        elif form is not None:
            request_body = build_form_body(form)
            data = request_body
            request_headers.setdefault("Content-Type", FORM_CONTENT_TYPE)
        elif multipart is not None:
            pairs = list(multipart.items()) if isinstance(multipart, Mapping) else list(multipart)
            data = aiohttp.FormData(default_to_multipart=True)
            for name, value in pairs:
                data.add_field(name, value)
            request_body = build_form_body(pairs)

        _LOGGER.debug("[%s] %s %s", network.interface or network.handle, method, url)
        session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                socket_factory=network.socket_factory,
                force_close=True,
            ),
            timeout=aiohttp.ClientTimeout(
                total=self._request_timeout,
                connect=self._connect_timeout,
            ),
            cookie_jar=aiohttp.DummyCookieJar(),
        )
        try:
            async with session.request(
                method,
                url,
                headers=request_headers,
                data=data,
                allow_redirects=follow_redirects,
            ) as resp:
                body = await resp.text(errors="replace")
                status = resp.status
                response_headers = collect_headers(resp.headers.items())
        except (TimeoutError, aiohttp.ClientError, OSError, UnicodeDecodeError) as err:
            raise normalize_error(err, f"{method} {url}") from err
        finally:
            await session.close()

        if not network.valid:
            raise TransportConnectionError(
                f"{method} {url} failed",
                cause="Bound network lost during request",
            )

        return HttpExchange(
            method=method,
            url=url,
            status=status,
            body=body,
            headers=response_headers,
            request_headers=request_headers,
            request_body=request_body,
        )

    async def get(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> HttpExchange:
        return await self.request("GET", url, headers=headers)

    async def post_json(
        self,
        url: str,
        body: Any,
        headers: Mapping[str, str] | None = None,
    ) -> HttpExchange:
        return await self.request("POST", url, headers=headers, json=body)

    async def post_form(
        self,
        url: str,
        fields: FormFields,
        headers: Mapping[str, str] | None = None,
        *,
        follow_redirects: bool = False,
    ) -> HttpExchange:
        """POST URL-encoded form data; redirects are not followed by default."""
        return await self.request(
            "POST", url, headers=headers, form=fields, follow_redirects=follow_redirects
        )

    async def post_multipart(
        self,
        url: str,
        fields: FormFields,
        headers: Mapping[str, str] | None = None,
        *,
        follow_redirects: bool = False,
    ) -> HttpExchange:
        """POST multipart form data; redirects are not followed by default."""
        return await self.request(
            "POST",
            url,
            headers=headers,
            multipart=fields,
            follow_redirects=follow_redirects,
        )

    # -------------------------------------------------------------------------
    # Raw TCP probes
    # -------------------------------------------------------------------------

    async def probe(
        self, host: str, port: int, timeout: float | None = None
    ) -> ProbeResult:
        """Open and close a TCP connection through the bound network."""
        network = self._binder.network
        if network is None:
            return ProbeResult(ok=False, error="NO_NETWORK")

        loop = asyncio.get_running_loop()
        timeout = self._probe_timeout if timeout is None else timeout
        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
            addr_info = infos[0]
            sock = network.socket_factory(addr_info)
            try:
                sock.setblocking(False)
                await asyncio.wait_for(loop.sock_connect(sock, addr_info[4]), timeout)
            finally:
                sock.close()
        except (OSError, ValueError, OverflowError, TimeoutError, IndexError) as err:
            # ValueError covers hosts the resolver cannot encode (UnicodeError)
            return ProbeResult(ok=False, error=f"{type(err).__name__}: {err}")
        return ProbeResult(ok=True)

    async def raw_connect(
        self, host: str, port: int, timeout: float | None = None
    ) -> bool:
        """Reachability probe; every failure collapses to False."""
        result = await self.probe(host, port, timeout)
        if not result.ok:
            _LOGGER.debug("Probe %s:%s failed: %s", host, port, result.error)
        return result.ok

    async def scan_ports(
        self,
        host: str,
        ports: Sequence[int],
        timeout: float | None = None,
    ) -> list[int]:
        """Return the ports on ``host`` that accepted a connection, in input order."""
        results = await asyncio.gather(
            *(self.raw_connect(host, port, timeout) for port in ports)
        )
        return [port for port, ok in zip(ports, results) if ok]
