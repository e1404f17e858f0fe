"""Tests for BoundHttpTransport requests and TCP probes."""

from __future__ import annotations

from unittest.mock import MagicMock

import aiohttp
import pytest

from esplink.errors import (
    TransportConnectionError,
    TransportMalformed,
    TransportNotBound,
    TransportTimeout,
)
from esplink.network.binder import NetworkBinder
from esplink.transport import BoundHttpTransport, parse_form_body

from .conftest import FakeNetworkPlatform, create_mock_response


async def _bound_transport(platform: FakeNetworkPlatform) -> BoundHttpTransport:
    binder = NetworkBinder(platform, settle_delay=0)
    await binder.request_network("ESP32-TEST", "12345678")
    return BoundHttpTransport(binder, probe_timeout=0.5)


class TestRequest:
    """Tests for BoundHttpTransport.request()."""

    async def test_not_bound(self, fake_platform: FakeNetworkPlatform) -> None:
        """Test requests fail fast without a bound network."""
        transport = BoundHttpTransport(NetworkBinder(fake_platform))

        with pytest.raises(TransportNotBound):
            await transport.get("http://192.168.4.1/")

    async def test_get_collects_headers(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test repeated response headers are all preserved."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(
            200,
            text_data="<html></html>",
            headers=[
                ("Set-Cookie", "a=1; Path=/"),
                ("Set-Cookie", "PHPSESSID=xyz; Path=/"),
                ("Content-Type", "text/html"),
            ],
        )

        exchange = await transport.get("http://192.168.4.1/login")

        assert exchange.status == 200
        assert exchange.body == "<html></html>"
        assert exchange.header_values("set-cookie") == ("a=1; Path=/", "PHPSESSID=xyz; Path=/")
        assert exchange.header("content-type") == "text/html"
        mock_session.close.assert_awaited_once()

    async def test_exchange_headers_read_only(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test a returned exchange cannot have its headers rewritten."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(
            200, headers=[("Set-Cookie", "PHPSESSID=xyz")]
        )
        sent = {"X-Test": "1"}

        exchange = await transport.get("http://192.168.4.1/", headers=sent)
        sent["X-Test"] = "2"

        with pytest.raises(TypeError):
            exchange.headers["set-cookie"] = ("forged=1",)  # type: ignore[index]
        with pytest.raises(TypeError):
            exchange.request_headers["Cookie"] = "forged=1"  # type: ignore[index]
        assert exchange.header_values("set-cookie") == ("PHPSESSID=xyz",)
        assert exchange.request_headers["X-Test"] == "1"

    async def test_socket_factory_from_bound_network(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test the connector is built on the bound network's sockets."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(200)

        await transport.get("http://192.168.4.1/")

        kwargs = patched_client_session.connector_cls.call_args.kwargs
        assert kwargs["socket_factory"] == fake_platform.network.socket_factory
        assert kwargs["force_close"] is True

    async def test_post_form(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test form posts are URL-encoded and do not follow redirects."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(
            302, headers=[("Location", "/dashboard")]
        )

        exchange = await transport.post_form(
            "http://192.168.4.1/login",
            [("username", "admin"), ("password", "p&ss word")],
        )

        args, kwargs = mock_session.request.call_args
        assert args == ("POST", "http://192.168.4.1/login")
        assert kwargs["allow_redirects"] is False
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert parse_form_body(kwargs["data"]) == [
            ("username", "admin"),
            ("password", "p&ss word"),
        ]
        assert exchange.status == 302
        assert exchange.request_body == kwargs["data"]

    async def test_post_json(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test JSON posts carry a JSON content type."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(
            200, text_data='{"success": true}'
        )

        exchange = await transport.post_json("http://192.168.4.1/api/restart", {})

        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["data"] == "{}"
        assert kwargs["headers"]["Content-Type"].startswith("application/json")
        assert exchange.json() == {"success": True}

    async def test_post_multipart(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test multipart posts send FormData."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.return_value = create_mock_response(200)

        await transport.post_multipart(
            "http://192.168.4.1/login", {"username": "admin", "password": "1234"}
        )

        kwargs = mock_session.request.call_args.kwargs
        assert isinstance(kwargs["data"], aiohttp.FormData)
        assert kwargs["allow_redirects"] is False

    async def test_one_body_kind_only(self, fake_platform: FakeNetworkPlatform) -> None:
        """Test mixing body kinds is rejected."""
        transport = await _bound_transport(fake_platform)

        with pytest.raises(ValueError):
            await transport.request("POST", "http://192.168.4.1/", json={}, form={})


class TestRequestErrors:
    """Tests for error normalization in BoundHttpTransport."""

    async def test_timeout(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test timeouts raise TransportTimeout."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.side_effect = TimeoutError()

        with pytest.raises(TransportTimeout) as exc_info:
            await transport.get("http://192.168.4.1/")

        assert "TimeoutError" in exc_info.value.cause
        mock_session.close.assert_awaited_once()

    async def test_connection_error(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test client connection errors raise TransportConnectionError."""
        transport = await _bound_transport(fake_platform)
        mock_session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(TransportConnectionError, match="GET http://192.168.4.1/"):
            await transport.get("http://192.168.4.1/")

    async def test_malformed_payload(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test unreadable bodies raise TransportMalformed."""
        transport = await _bound_transport(fake_platform)
        response = create_mock_response(200)
        response.text.side_effect = aiohttp.ClientPayloadError("truncated")
        mock_session.request.return_value = response

        with pytest.raises(TransportMalformed):
            await transport.get("http://192.168.4.1/")

    async def test_network_lost_mid_flight(
        self,
        fake_platform: FakeNetworkPlatform,
        mock_session: MagicMock,
        patched_client_session: MagicMock,
    ) -> None:
        """Test loss of the bound network during a request is a connection error."""
        transport = await _bound_transport(fake_platform)
        network = fake_platform.network

        async def _text(**kwargs: str) -> str:
            network.invalidate()
            return "partial"

        response = create_mock_response(200)
        response.text.side_effect = _text
        mock_session.request.return_value = response

        with pytest.raises(TransportConnectionError) as exc_info:
            await transport.get("http://192.168.4.1/")

        assert "lost" in exc_info.value.cause


class TestProbes:
    """Tests for raw TCP probes over loopback."""

    async def test_probe_without_network(self, fake_platform: FakeNetworkPlatform) -> None:
        """Test probes report NO_NETWORK when unbound."""
        transport = BoundHttpTransport(NetworkBinder(fake_platform))

        result = await transport.probe("127.0.0.1", 80)

        assert not result.ok
        assert result.error == "NO_NETWORK"
        assert await transport.raw_connect("127.0.0.1", 80) is False

    async def test_raw_connect_open_port(
        self, fake_platform: FakeNetworkPlatform, listening_port: int
    ) -> None:
        """Test a listening port is reachable."""
        transport = await _bound_transport(fake_platform)

        assert await transport.raw_connect("127.0.0.1", listening_port) is True

    async def test_raw_connect_closed_port(
        self, fake_platform: FakeNetworkPlatform, closed_port: int
    ) -> None:
        """Test a refused connection collapses to False."""
        transport = await _bound_transport(fake_platform)

        result = await transport.probe("127.0.0.1", closed_port)

        assert not result.ok
        assert result.error
        assert await transport.raw_connect("127.0.0.1", closed_port) is False

    async def test_scan_ports(
        self,
        fake_platform: FakeNetworkPlatform,
        listening_port: int,
        closed_port: int,
    ) -> None:
        """Test scanning returns only open ports, in input order."""
        transport = await _bound_transport(fake_platform)

        open_ports = await transport.scan_ports(
            "127.0.0.1", [closed_port, listening_port, closed_port]
        )

        assert open_ports == [listening_port]

    async def test_scan_ports_empty(self, fake_platform: FakeNetworkPlatform) -> None:
        """Test an empty port list scans nothing."""
        transport = await _bound_transport(fake_platform)

        assert await transport.scan_ports("127.0.0.1", []) == []

    async def test_unencodable_host(self, fake_platform: FakeNetworkPlatform) -> None:
        """Test a host the resolver cannot encode is reported, not raised."""
        transport = await _bound_transport(fake_platform)
        host = "a" * 70 + ".local"

        result = await transport.probe(host, 80)

        assert not result.ok
        assert result.error is not None
        assert result.error.startswith("UnicodeError")
        assert await transport.raw_connect(host, 80) is False
        assert await transport.scan_ports(host, [80, 8080]) == []
