"""High-level link manager for a device access point.

This module provides the canonical entry point for talking to a device. It
handles:
- Binding to the device access point and the settle delay
- Reachability probing
- Web login and session cookie lifetime
- Dual-path API requests (pooled client with bound fallback)
- Teardown of the process-wide network binding
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from .api import DeviceApiClient
from .auth import AuthenticatedSession, SessionAuthenticator
from .config import DEFAULT_DEVICE_IP, LinkSettings
from .diagnostics import collect_diagnostics
from .errors import (
    AuthError,
    BindError,
    TransportConnectionError,
    TransportError,
    TransportNotBound,
)
from .network.binder import NetworkBinder
from .network.platform import BoundNetwork, NetworkPlatform
from .transport.bound import BoundHttpTransport
from .transport.exchange import Transport
from .transport.fallback import FallbackTransport
from .transport.pooled import PooledHttpTransport

_LOGGER = logging.getLogger(__name__)


class DeviceLink:
    """Own the bound network, transports and session of one device.

    Usage:
        link = DeviceLink(load_settings(), NmcliPlatform())
        if await link.connect_and_login():
            status = await link.api.get_system_status()
        await link.disconnect()
    """

    def __init__(
        self,
        settings: LinkSettings,
        platform: NetworkPlatform,
        *,
        transport: BoundHttpTransport | None = None,
        primary: Transport | None = None,
    ) -> None:
        """Initialize link.

        Args:
            settings: Connection settings
            platform: Host connectivity service
            transport: Bound transport override (tests)
            primary: Primary API transport override (tests)
        """
        self.settings = settings
        self.binder = NetworkBinder(
            platform,
            bind_timeout=settings.bind_timeout,
            settle_delay=settings.settle_delay,
        )
        self.transport = transport or BoundHttpTransport(
            self.binder,
            request_timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            probe_timeout=settings.probe_timeout,
        )
        self._pooled: PooledHttpTransport | None = None
        if primary is None:
            self._pooled = PooledHttpTransport(
                self._session_cookie,
                request_timeout=settings.request_timeout,
                connect_timeout=settings.connect_timeout,
            )
            primary = self._pooled
        self.api = DeviceApiClient(
            FallbackTransport(primary, self.transport),
            lambda: self._session if self.is_connected else None,
        )

        self._base_url: str | None = None
        self._authenticator: SessionAuthenticator | None = None
        self._session: AuthenticatedSession | None = None
        self._connection_state = "disconnected"
        self._connection_state_callback: Callable[[str], None] | None = None

    async def __aenter__(self) -> DeviceLink:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Public API: state
    # -------------------------------------------------------------------------

    @property
    def connection_state(self) -> str:
        """Get current connection state."""
        return self._connection_state

    @property
    def is_bound(self) -> bool:
        return self.binder.is_bound

    @property
    def is_connected(self) -> bool:
        """Check if the link is bound and authenticated."""
        return self._session is not None and self.binder.is_bound

    @property
    def session(self) -> AuthenticatedSession | None:
        return self._session

    @property
    def base_url(self) -> str | None:
        return self._base_url

    def on_connection_state_changed(self, callback: Callable[[str], None]) -> None:
        """Register callback for connection state changes.

        Callback receives state: "binding", "bound", "authenticating",
        "connected", "failed", "disconnected"
        """
        self._connection_state_callback = callback

    def _set_state(self, state: str) -> None:
        if state == self._connection_state:
            return
        self._connection_state = state
        _LOGGER.debug("[%s] Connection state: %s", self.settings.ssid, state)
        if self._connection_state_callback is not None:
            self._connection_state_callback(state)

    def _session_cookie(self) -> tuple[str, str | None] | None:
        session = self._session
        if session is None:
            return None
        return session.base_url, session.cookie

    def _device_host(self, network: BoundNetwork | None = None) -> str:
        if self.settings.device_ip:
            return self.settings.device_ip
        if network is not None and network.gateway:
            return network.gateway
        return DEFAULT_DEVICE_IP

    # -------------------------------------------------------------------------
    # Public API: lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> BoundNetwork:
        """Bind to the device network and check the device answers.

        Raises:
            BindError: If the network could not be bound.
            TransportConnectionError: If the device HTTP port is unreachable.
        """
        ssid = self.settings.ssid
        self._session = None
        self._set_state("binding")
        try:
            network = await self.binder.request_network(
                ssid,
                self.settings.wifi_password,
                bind_whole_process=self.settings.bind_whole_process,
            )
        except BindError:
            self._set_state("failed")
            raise

        host = self._device_host(network)
        port = self.settings.port
        self._base_url = f"http://{host}" if port == 80 else f"http://{host}:{port}"

        _LOGGER.info("[%s] Testing socket connectivity to %s:%s", ssid, host, port)
        try:
            reachable = await self.transport.raw_connect(host, port)
        except Exception:
            await self._abandon_binding()
            raise
        if not reachable:
            _LOGGER.warning("[%s] Cannot reach device at %s:%s", ssid, host, port)
            await self._abandon_binding()
            raise TransportConnectionError(
                f"Device {host}:{port} unreachable",
                cause=f"TCP connect to {host}:{port} failed",
            )

        self._set_state("bound")
        return network

    async def _abandon_binding(self) -> None:
        await self.binder.unbind()
        self._base_url = None
        self._set_state("failed")

    async def login(self) -> AuthenticatedSession:
        """Log in over the bound network. Usable again to retry a failed login.

        Raises:
            AuthError: If authentication failed.
            TransportNotBound: If ``connect()`` has not succeeded.
        """
        if self._base_url is None or not self.binder.is_bound:
            raise TransportNotBound("Device network not bound")

        self._session = None
        if self._pooled is not None:
            # Fresh pool so no connection predates the new cookie
            await self._pooled.close()
        self._set_state("authenticating")
        self._authenticator = SessionAuthenticator(
            self.transport,
            self._base_url,
            self.settings.username,
            self.settings.password,
        )
        try:
            session = await self._authenticator.login()
        except AuthError:
            self._set_state("failed")
            raise
        self._session = session
        self._set_state("connected")
        _LOGGER.info("[%s] Connected and logged in to %s", self.settings.ssid, self._base_url)
        return session

    async def connect_and_login(self) -> bool:
        """Bind, probe and log in. Never raises.

        Returns:
            True if the link is connected and authenticated, False otherwise
        """
        try:
            await self.connect()
        except (BindError, TransportError) as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.settings.ssid, err)
            return False
        try:
            await self.login()
        except (AuthError, TransportError) as err:
            _LOGGER.warning("[%s] Login failed: %s", self.settings.ssid, err)
            return False
        return True

    async def disconnect(self) -> None:
        """Drop the session, close clients and release the network."""
        self._session = None
        self._base_url = None
        if self._authenticator is not None:
            self._authenticator.reset()
            self._authenticator = None
        if self._pooled is not None:
            await self._pooled.close()
        await self.binder.unbind()
        self._set_state("disconnected")

    async def diagnostics(self) -> dict[str, Any]:
        """Link info, capabilities and open ports of the device."""
        return await collect_diagnostics(
            self.binder,
            self.transport,
            self._device_host(self.binder.network),
            self.settings.scan_ports,
        )
