"""Platform seam for OS-level network association.

Everything that touches the host's connectivity service goes through a
``NetworkPlatform``. The binder and transports only see ``BoundNetwork``
handles and their socket factories, so they can be exercised against a fake
platform.
"""

from __future__ import annotations

import errno
import logging
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

_LOGGER = logging.getLogger(__name__)

TRANSPORT_WIFI = "WIFI"

CAP_INTERNET = "INTERNET"
CAP_VALIDATED = "VALIDATED"
CAP_TRUSTED = "TRUSTED"
CAP_NOT_RESTRICTED = "NOT_RESTRICTED"

AddrInfo = tuple[Any, ...]


@dataclass(frozen=True)
class NetworkRequest:
    """Association request handed to the platform.

    ``internet_required`` is always False for device access points: the AP
    has no upstream and the OS must not reject it for that.
    """

    ssid: str
    password: str | None = None
    transport: str = TRANSPORT_WIFI
    internet_required: bool = False


@dataclass(frozen=True)
class CapabilitySet:
    """Transport types and capability flags of a network."""

    transports: frozenset[str] = frozenset()
    flags: frozenset[str] = frozenset()

    @property
    def has_internet(self) -> bool:
        return CAP_INTERNET in self.flags

    @property
    def is_validated(self) -> bool:
        return CAP_VALIDATED in self.flags

    @property
    def is_trusted(self) -> bool:
        return CAP_TRUSTED in self.flags

    def __bool__(self) -> bool:
        return bool(self.transports or self.flags)

    def as_list(self) -> list[str]:
        """Flatten to the ordered list reported by diagnostics."""
        return sorted(self.transports) + sorted(self.flags)


@dataclass(frozen=True)
class LinkInfo:
    """Interface, addresses, routes and DNS servers of a network."""

    interface: str = ""
    addresses: tuple[str, ...] = ()
    routes: tuple[str, ...] = ()
    dns: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "ifName": self.interface,
            "addresses": list(self.addresses),
            "routes": list(self.routes),
            "dns": list(self.dns),
        }


@dataclass(eq=False)
class BoundNetwork:
    """Opaque handle to an OS-level network association.

    Sockets produced by ``socket_factory`` are pinned to the network's
    interface. Once invalidated, the handle refuses to produce sockets.
    """

    handle: str
    interface: str | None = None
    addresses: tuple[str, ...] = ()
    gateway: str | None = None
    _valid: bool = field(default=True, repr=False)

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def socket_factory(self, addr_info: AddrInfo) -> socket.socket:
        """Create a socket for ``addr_info`` constrained to this network.

        Signature matches aiohttp's ``TCPConnector(socket_factory=...)``.
        """
        if not self._valid:
            raise OSError(errno.ENETUNREACH, f"Network {self.handle} is no longer available")
        family, type_, proto = addr_info[0], addr_info[1], addr_info[2]
        sock = socket.socket(family=family, type=type_, proto=proto)
        try:
            self._pin(sock, family)
        except OSError:
            sock.close()
            raise
        return sock

    def _pin(self, sock: socket.socket, family: int) -> None:
        if self.interface and hasattr(socket, "SO_BINDTODEVICE"):
            try:
                sock.setsockopt(
                    socket.SOL_SOCKET,
                    socket.SO_BINDTODEVICE,
                    self.interface.encode(),
                )
                return
            except PermissionError:
                _LOGGER.debug(
                    "[%s] SO_BINDTODEVICE not permitted, binding source address",
                    self.interface,
                )
        source = self._source_address(family)
        if source is not None:
            sock.bind((source, 0))

    def _source_address(self, family: int) -> str | None:
        for address in self.addresses:
            is_v6 = ":" in address
            if (family == socket.AF_INET6) == is_v6:
                return address
        return None


class NetworkCallback:
    """Receives asynchronous availability events from the platform."""

    def on_available(self, network: BoundNetwork) -> None:
        """The requested network is associated and usable."""

    def on_unavailable(self) -> None:
        """The request was rejected or timed out."""

    def on_lost(self, network: BoundNetwork) -> None:
        """A previously available network went away."""


_process_lock = threading.Lock()
_process_network: BoundNetwork | None = None


def process_default_network() -> BoundNetwork | None:
    """Return the network the whole process is bound to, if any."""
    with _process_lock:
        if _process_network is not None and not _process_network.valid:
            return None
        return _process_network


class NetworkPlatform(ABC):
    """Host connectivity service consumed by the binder."""

    @abstractmethod
    def request_network(
        self,
        request: NetworkRequest,
        callback: NetworkCallback,
        timeout: float,
    ) -> None:
        """Start associating; report through ``callback`` asynchronously."""

    @abstractmethod
    def unregister_network_callback(self, callback: NetworkCallback) -> None:
        """Cancel a pending or active request. Must be idempotent."""

    @abstractmethod
    async def get_capabilities(self, network: BoundNetwork) -> CapabilitySet | None:
        """Return capabilities of ``network``."""

    @abstractmethod
    async def get_link_properties(self, network: BoundNetwork) -> LinkInfo | None:
        """Return link properties of ``network``."""

    async def drain(self) -> None:
        """Wait for teardown started by ``unregister_network_callback``."""

    def bind_process_to_network(self, network: BoundNetwork | None) -> bool:
        """Route all process traffic through ``network`` (None releases).

        Clients created by this package after the call pick the process
        network up through ``process_default_network()``.
        """
        global _process_network
        with _process_lock:
            _process_network = network
        if network is None:
            _LOGGER.debug("Process network binding released")
        else:
            _LOGGER.info("Process bound to network %s", network.handle)
        return True
