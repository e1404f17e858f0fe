"""Network binder: owns the single bound network of the process."""

from __future__ import annotations

import asyncio
import logging

from ..errors import BindTimeout, BindUnavailable, EspLinkError
from .platform import (
    BoundNetwork,
    CapabilitySet,
    LinkInfo,
    NetworkCallback,
    NetworkPlatform,
    NetworkRequest,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_BIND_TIMEOUT = 10.0
DEFAULT_SETTLE_DELAY = 1.0


class _BindCallback(NetworkCallback):
    """Marshal platform events onto the binder's event loop."""

    def __init__(
        self,
        binder: NetworkBinder,
        loop: asyncio.AbstractEventLoop,
        future: asyncio.Future[BoundNetwork],
        bind_whole_process: bool,
    ) -> None:
        self._binder = binder
        self._loop = loop
        self._future = future
        self._bind_whole_process = bind_whole_process

    def on_available(self, network: BoundNetwork) -> None:
        self._loop.call_soon_threadsafe(self._available, network)

    def on_unavailable(self) -> None:
        self._loop.call_soon_threadsafe(self._unavailable)

    def on_lost(self, network: BoundNetwork) -> None:
        self._loop.call_soon_threadsafe(self._binder._network_lost, network)

    def _available(self, network: BoundNetwork) -> None:
        if self._future.done() or self._binder._callback is not self:
            return
        self._binder._network_available(network, self._bind_whole_process)
        self._future.set_result(network)

    def _unavailable(self) -> None:
        if not self._future.done() and self._binder._callback is self:
            self._future.set_exception(BindUnavailable("Network unavailable"))


class NetworkBinder:
    """Request, hold and release the device access-point network.

    At most one network is bound and at most one request is pending. A new
    request unregisters the previous one before registering itself.
    """

    def __init__(
        self,
        platform: NetworkPlatform,
        *,
        bind_timeout: float = DEFAULT_BIND_TIMEOUT,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ) -> None:
        self._platform = platform
        self._bind_timeout = bind_timeout
        self._settle_delay = settle_delay

        self._network: BoundNetwork | None = None
        self._callback: _BindCallback | None = None
        self._pending: asyncio.Future[BoundNetwork] | None = None
        self._process_bound = False

    @property
    def network(self) -> BoundNetwork | None:
        """The live bound network, or None."""
        if self._network is not None and not self._network.valid:
            return None
        return self._network

    @property
    def is_bound(self) -> bool:
        return self.network is not None

    async def request_network(
        self,
        ssid: str,
        password: str | None = None,
        *,
        bind_whole_process: bool = False,
    ) -> BoundNetwork:
        """Associate with ``ssid`` and wait until it is usable.

        Raises:
            BindUnavailable: If the platform rejected the request or a newer
                request superseded this one.
            BindTimeout: If the network did not appear within the timeout.
        """
        self._release_callback(superseded=True)
        self._drop_network()

        loop = asyncio.get_running_loop()
        future: asyncio.Future[BoundNetwork] = loop.create_future()
        callback = _BindCallback(self, loop, future, bind_whole_process)
        self._callback = callback
        self._pending = future

        request = NetworkRequest(ssid=ssid, password=password or None)
        _LOGGER.info("[%s] Requesting network (bind process: %s)", ssid, bind_whole_process)
        try:
            self._platform.request_network(request, callback, self._bind_timeout)
        except EspLinkError:
            self._release_callback()
            raise

        try:
            network = await asyncio.wait_for(future, timeout=self._bind_timeout)
        except TimeoutError as err:
            self._release_callback()
            raise BindTimeout(
                f"Network {ssid} not available after {self._bind_timeout:g}s"
            ) from err
        except BindUnavailable:
            if self._pending is future:
                self._release_callback()
            _LOGGER.warning("[%s] Network request rejected", ssid)
            raise
        finally:
            if self._pending is future:
                self._pending = None

        _LOGGER.info(
            "[%s] Network available on %s, settling for %.1fs",
            ssid,
            network.interface or network.handle,
            self._settle_delay,
        )
        await asyncio.sleep(self._settle_delay)
        if not network.valid:
            raise BindUnavailable(f"Network {ssid} lost while settling")
        return network

    async def unbind(self) -> None:
        """Release the bound network. Safe to call at any time.

        Returns once the platform has finished tearing the association down.
        """
        self._release_callback(superseded=True)
        self._drop_network()
        await self._platform.drain()

    async def current_capabilities(self) -> CapabilitySet:
        """Capabilities of the bound network; empty when unbound or on error."""
        network = self.network
        if network is None:
            return CapabilitySet()
        try:
            caps = await self._platform.get_capabilities(network)
        except (EspLinkError, OSError) as err:
            _LOGGER.debug("Capability query failed: %s", err)
            return CapabilitySet()
        return caps or CapabilitySet()

    async def current_link_info(self) -> LinkInfo:
        """Link properties of the bound network; empty when unbound or on error."""
        network = self.network
        if network is None:
            return LinkInfo()
        try:
            info = await self._platform.get_link_properties(network)
        except (EspLinkError, OSError) as err:
            _LOGGER.debug("Link info query failed: %s", err)
            return LinkInfo()
        return info or LinkInfo()

    # -------------------------------------------------------------------------
    # Callback plumbing
    # -------------------------------------------------------------------------

    def _network_available(self, network: BoundNetwork, bind_whole_process: bool) -> None:
        self._network = network
        if bind_whole_process:
            self._process_bound = self._platform.bind_process_to_network(network)

    def _network_lost(self, network: BoundNetwork) -> None:
        network.invalidate()
        if self._network is network:
            _LOGGER.warning("Bound network %s lost", network.handle)
            self._drop_network()

    def _release_callback(self, *, superseded: bool = False) -> None:
        pending = self._pending
        if pending is not None and not pending.done() and superseded:
            pending.set_exception(BindUnavailable("Network request superseded"))
        self._pending = None

        callback = self._callback
        self._callback = None
        if callback is not None:
            try:
                self._platform.unregister_network_callback(callback)
            except (EspLinkError, OSError) as err:
                _LOGGER.debug("Unregistering network callback failed: %s", err)

    def _drop_network(self) -> None:
        if self._process_bound:
            self._platform.bind_process_to_network(None)
            self._process_bound = False
        if self._network is not None:
            self._network.invalidate()
            self._network = None
