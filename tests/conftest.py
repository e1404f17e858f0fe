"""Pytest configuration and fixtures for esplink tests."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from multidict import CIMultiDict

from esplink.network.platform import (
    CAP_NOT_RESTRICTED,
    CAP_TRUSTED,
    TRANSPORT_WIFI,
    BoundNetwork,
    CapabilitySet,
    LinkInfo,
    NetworkCallback,
    NetworkPlatform,
    NetworkRequest,
)
from esplink.transport.exchange import HttpExchange, collect_headers


class FakeNetworkPlatform(NetworkPlatform):
    """In-memory platform that answers network requests on the next loop turn.

    Args:
        network: Network reported as available
        respond: Report availability (False leaves the request pending)
        reject: Report unavailable instead of available
    """

    def __init__(
        self,
        network: BoundNetwork | None = None,
        *,
        respond: bool = True,
        reject: bool = False,
    ) -> None:
        self.network = network or BoundNetwork(handle="fake-ap", gateway="192.168.4.1")
        self.respond = respond
        self.reject = reject
        self.requests: list[NetworkRequest] = []
        self.callbacks: list[NetworkCallback] = []
        self.unregistered: list[NetworkCallback] = []
        self.process_binds: list[BoundNetwork | None] = []

    def request_network(
        self,
        request: NetworkRequest,
        callback: NetworkCallback,
        timeout: float,
    ) -> None:
        self.requests.append(request)
        self.callbacks.append(callback)
        if not self.network.valid:
            self.network = BoundNetwork(
                handle=self.network.handle,
                interface=self.network.interface,
                addresses=self.network.addresses,
                gateway=self.network.gateway,
            )
        loop = asyncio.get_running_loop()
        if self.reject:
            loop.call_soon(callback.on_unavailable)
        elif self.respond:
            loop.call_soon(callback.on_available, self.network)

    def unregister_network_callback(self, callback: NetworkCallback) -> None:
        self.unregistered.append(callback)

    def bind_process_to_network(self, network: BoundNetwork | None) -> bool:
        self.process_binds.append(network)
        return super().bind_process_to_network(network)

    async def get_capabilities(self, network: BoundNetwork) -> CapabilitySet | None:
        return CapabilitySet(
            transports=frozenset({TRANSPORT_WIFI}),
            flags=frozenset({CAP_TRUSTED, CAP_NOT_RESTRICTED}),
        )

    async def get_link_properties(self, network: BoundNetwork) -> LinkInfo | None:
        return LinkInfo(
            interface="wlan0",
            addresses=("192.168.4.2",),
            routes=("192.168.4.0/24",),
            dns=("192.168.4.1",),
        )


@pytest.fixture
def fake_platform() -> Iterator[FakeNetworkPlatform]:
    """Create a fake platform and release any process binding afterwards."""
    platform = FakeNetworkPlatform()
    yield platform
    NetworkPlatform.bind_process_to_network(platform, None)


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


@pytest.fixture
def patched_client_session(mock_session: MagicMock) -> Iterator[MagicMock]:
    """Make every aiohttp.ClientSession/TCPConnector built by the code a mock."""
    with (
        patch("aiohttp.ClientSession", return_value=mock_session) as session_cls,
        patch("aiohttp.TCPConnector") as connector_cls,
    ):
        session_cls.connector_cls = connector_cls
        yield session_cls


def create_mock_response(
    status: int = 200,
    json_data: dict[str, Any] | None = None,
    text_data: str | None = None,
    headers: list[tuple[str, str]] | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call
        headers: Response header pairs (repeats allowed)

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status
    response.headers = CIMultiDict(headers or [])

    if json_data is not None:
        response.json.return_value = json_data
    response.text.return_value = text_data if text_data is not None else ""

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def make_exchange(
    status: int = 200,
    body: str = "",
    headers: list[tuple[str, str]] | None = None,
    *,
    method: str = "GET",
    url: str = "http://192.168.4.1/",
) -> HttpExchange:
    """Build a completed HttpExchange."""
    return HttpExchange(
        method=method,
        url=url,
        status=status,
        body=body,
        headers=collect_headers(headers or []),
    )


@pytest.fixture
async def listening_port() -> AsyncIterator[int]:
    """A loopback TCP port that accepts connections."""

    async def _handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(_handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port
    finally:
        server.close()
        await server.wait_closed()


@pytest.fixture
def closed_port() -> Iterator[int]:
    """A loopback TCP port that refuses connections (bound, not listening)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()
