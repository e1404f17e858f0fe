"""NetworkManager (nmcli) implementation of the network platform."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Sequence

from ..errors import PlatformCommandError
from .platform import (
    CAP_INTERNET,
    CAP_NOT_RESTRICTED,
    CAP_TRUSTED,
    CAP_VALIDATED,
    TRANSPORT_WIFI,
    BoundNetwork,
    CapabilitySet,
    LinkInfo,
    NetworkCallback,
    NetworkPlatform,
    NetworkRequest,
)

_LOGGER = logging.getLogger(__name__)

PROFILE_PREFIX = "esplink-"

# nmcli -t escapes ':' and '\' in field values
_FIELD_SPLIT_RE = re.compile(r"(?<!\\):")


def _unescape(value: str) -> str:
    return value.replace("\\:", ":").replace("\\\\", "\\")


def _parse_show(output: str) -> dict[str, list[str]]:
    """Parse ``nmcli -t device show`` into field -> values (indexed keys merged)."""
    fields: dict[str, list[str]] = {}
    for line in output.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = re.sub(r"\[\d+\]$", "", key.strip())
        value = value.strip()
        if value and value != "--":
            fields.setdefault(key, []).append(value)
    return fields


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class NmcliPlatform(NetworkPlatform):
    """Associate with access points through NetworkManager.

    Each request creates a temporary connection profile that never becomes
    the default route, so the device AP's lack of internet does not disturb
    the host's other connections.
    """

    def __init__(
        self,
        interface: str | None = None,
        *,
        command_timeout: float = 30.0,
        poll_interval: float = 2.0,
    ) -> None:
        self._interface = interface
        self._command_timeout = command_timeout
        self._poll_interval = poll_interval
        self._tasks: dict[NetworkCallback, asyncio.Task[None]] = {}
        self._watchers: dict[NetworkCallback, asyncio.Task[None]] = {}
        self._profiles: dict[NetworkCallback, str] = {}
        self._cleanups: set[asyncio.Task[None]] = set()

    # ------------------------------- helpers -------------------------------

    async def _run(self, args: Sequence[str]) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as err:
            raise PlatformCommandError("nmcli command unavailable") from err
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._command_timeout
            )
        except TimeoutError as err:
            await _kill(proc)
            raise PlatformCommandError("nmcli command timed out") from err
        except asyncio.CancelledError:
            await _kill(proc)
            raise
        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() or stdout.decode(
                errors="replace"
            ).strip()
            raise PlatformCommandError(message or f"nmcli exited with {proc.returncode}")
        return stdout.decode(errors="replace")

    async def _detect_interface(self) -> str:
        if self._interface:
            return self._interface
        output = await self._run(["nmcli", "-t", "-f", "DEVICE,TYPE,STATE", "device"])
        for line in output.splitlines():
            parts = _FIELD_SPLIT_RE.split(line)
            if len(parts) < 3:
                continue
            device, dev_type, state = (_unescape(p).strip() for p in parts[:3])
            if dev_type == "wifi" and state != "unavailable":
                self._interface = device
                return device
        raise PlatformCommandError("No Wi-Fi interface detected")

    async def _device_fields(self, interface: str) -> dict[str, list[str]]:
        output = await self._run(["nmcli", "-t", "device", "show", interface])
        return _parse_show(output)

    # ------------------------------ platform -------------------------------

    def request_network(
        self,
        request: NetworkRequest,
        callback: NetworkCallback,
        timeout: float,
    ) -> None:
        self.unregister_network_callback(callback)
        self._tasks[callback] = asyncio.get_running_loop().create_task(
            self._associate(request, callback, timeout)
        )

    def unregister_network_callback(self, callback: NetworkCallback) -> None:
        for tasks in (self._tasks, self._watchers):
            task = tasks.pop(callback, None)
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        profile = self._profiles.pop(callback, None)
        if profile is not None:
            task = asyncio.get_running_loop().create_task(self._delete_profile(profile))
            self._cleanups.add(task)
            task.add_done_callback(self._cleanups.discard)

    async def drain(self) -> None:
        """Wait until every removed profile has been deleted."""
        while self._cleanups:
            await asyncio.gather(*self._cleanups, return_exceptions=True)

    async def _associate(
        self,
        request: NetworkRequest,
        callback: NetworkCallback,
        timeout: float,
    ) -> None:
        try:
            network = await asyncio.wait_for(
                self._connect(request, callback), timeout=timeout
            )
        except (TimeoutError, PlatformCommandError) as err:
            _LOGGER.warning("[%s] Association failed: %s", request.ssid, err)
            callback.on_unavailable()
            return
        callback.on_available(network)
        self._watchers[callback] = asyncio.get_running_loop().create_task(
            self._watch(network, callback)
        )

    async def _connect(
        self, request: NetworkRequest, callback: NetworkCallback
    ) -> BoundNetwork:
        interface = await self._detect_interface()
        profile = f"{PROFILE_PREFIX}{uuid.uuid4().hex[:8]}"
        args = [
            "nmcli", "connection", "add",
            "type", "wifi",
            "con-name", profile,
            "ifname", interface,
            "ssid", request.ssid,
            "connection.autoconnect", "no",
        ]
        if not request.internet_required:
            args += ["ipv4.never-default", "yes", "ipv6.never-default", "yes"]
        if request.password:
            args += ["wifi-sec.key-mgmt", "wpa-psk", "wifi-sec.psk", request.password]
        # recorded first so a cancelled add still gets cleaned up
        self._profiles[callback] = profile
        await self._run(args)

        await self._run(["nmcli", "connection", "up", profile])

        fields = await self._device_fields(interface)
        addresses = tuple(a.split("/", 1)[0] for a in fields.get("IP4.ADDRESS", []))
        gateway = next(iter(fields.get("IP4.GATEWAY", [])), None)
        _LOGGER.debug(
            "[%s] Up on %s addresses=%s gateway=%s",
            request.ssid,
            interface,
            addresses,
            gateway,
        )
        return BoundNetwork(
            handle=f"{interface}/{profile}",
            interface=interface,
            addresses=addresses,
            gateway=gateway,
        )

    async def _watch(self, network: BoundNetwork, callback: NetworkCallback) -> None:
        while network.valid:
            await asyncio.sleep(self._poll_interval)
            try:
                fields = await self._device_fields(network.interface or "")
            except PlatformCommandError as err:
                _LOGGER.debug("[%s] Device poll failed: %s", network.interface, err)
                continue
            state = next(iter(fields.get("GENERAL.STATE", [])), "")
            if not state.startswith("100"):
                _LOGGER.warning("[%s] Device left connected state: %s", network.interface, state)
                callback.on_lost(network)
                return

    async def _delete_profile(self, profile: str) -> None:
        for args in (
            ["nmcli", "connection", "down", profile],
            ["nmcli", "connection", "delete", profile],
        ):
            try:
                await self._run(args)
            except PlatformCommandError as err:
                _LOGGER.debug("Profile cleanup %s failed: %s", " ".join(args[1:]), err)

    async def get_capabilities(self, network: BoundNetwork) -> CapabilitySet | None:
        if not network.interface:
            return None
        fields = await self._device_fields(network.interface)
        transports: set[str] = set()
        flags: set[str] = set()
        if "wifi" in fields.get("GENERAL.TYPE", []):
            transports.add(TRANSPORT_WIFI)
        state = next(iter(fields.get("GENERAL.STATE", [])), "")
        if state.startswith("100"):
            flags.update((CAP_TRUSTED, CAP_NOT_RESTRICTED))
        connectivity = next(iter(fields.get("GENERAL.IP4-CONNECTIVITY", [])), "")
        if "full" in connectivity:
            flags.update((CAP_INTERNET, CAP_VALIDATED))
        return CapabilitySet(transports=frozenset(transports), flags=frozenset(flags))

    async def get_link_properties(self, network: BoundNetwork) -> LinkInfo | None:
        if not network.interface:
            return None
        fields = await self._device_fields(network.interface)
        return LinkInfo(
            interface=network.interface,
            addresses=tuple(a.split("/", 1)[0] for a in fields.get("IP4.ADDRESS", [])),
            routes=tuple(fields.get("IP4.ROUTE", [])),
            dns=tuple(fields.get("IP4.DNS", [])),
        )
