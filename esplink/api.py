"""Authenticated device API client.

Every public operation returns ``None``/``False`` on failure instead of
raising; the specific reason is logged and kept on ``last_error``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .auth import AuthenticatedSession
from .endpoints import DeviceOperation, endpoint
from .errors import (
    ApiError,
    ApiHttpError,
    ApiNotConnected,
    ApiParseError,
    TransportError,
)
from .transport.exchange import Transport

_LOGGER = logging.getLogger(__name__)

SessionProvider = Callable[[], AuthenticatedSession | None]


class DeviceApiClient:
    """One method per device operation, routed through ``transport``.

    ``transport`` is normally a FallbackTransport of the pooled client over
    the bound transport. ``session_provider`` returns the current
    authenticated session, or None when not logged in.
    """

    def __init__(self, transport: Transport, session_provider: SessionProvider) -> None:
        self._transport = transport
        self._session_provider = session_provider
        self.last_error: ApiError | TransportError | None = None

    async def _request_json(
        self, operation: DeviceOperation, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        session = self._session_provider()
        if session is None:
            raise ApiNotConnected("Not connected to device")

        ep = endpoint(operation)
        url = session.url(ep.path)
        payload = body
        if ep.method == "POST" and payload is None:
            payload = {}

        exchange = await self._transport.request(
            ep.method,
            url,
            headers=session.headers_for(url),
            json=payload,
        )
        if exchange.status != 200:
            raise ApiHttpError(
                exchange.status,
                f"API {ep.path} failed: {exchange.status} {exchange.body[:200]}",
            )
        try:
            data = exchange.json()
        except ValueError as err:
            raise ApiParseError(f"JSON parse error for {ep.path}: {err}") from err
        if not isinstance(data, dict):
            raise ApiParseError(f"API {ep.path} returned non-map JSON: {data!r}")
        return data

    async def _call(
        self, operation: DeviceOperation, body: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        try:
            data = await self._request_json(operation, body)
        except ApiNotConnected as err:
            self.last_error = err
            _LOGGER.warning("%s: %s", operation.value, err)
            return None
        except (ApiError, TransportError) as err:
            self.last_error = err
            cause = err.cause if isinstance(err, TransportError) else str(err)
            _LOGGER.error("API %s failed: %s", operation.value, cause)
            return None
        self.last_error = None
        _LOGGER.debug("API %s success", operation.value)
        return data

    async def _call_success(
        self, operation: DeviceOperation, body: dict[str, Any] | None = None
    ) -> bool:
        data = await self._call(operation, body)
        return data is not None and data.get("success") is True

    # -------------------------------------------------------------------------
    # Status and sensors
    # -------------------------------------------------------------------------

    async def get_system_status(self) -> dict[str, Any] | None:
        """Fetch /api/system-status."""
        return await self._call(DeviceOperation.SYSTEM_STATUS)

    async def get_sensor_data(self) -> dict[str, Any] | None:
        return await self._call(DeviceOperation.SENSOR_DATA)

    async def get_sensors(self) -> dict[str, Any] | None:
        """Fetch the configured sensor list."""
        return await self._call(DeviceOperation.SENSORS_GET)

    async def save_sensors(self, sensors: list[dict[str, Any]]) -> bool:
        return await self._call_success(DeviceOperation.SENSORS_SAVE, {"sensors": sensors})

    async def publish_sensor(self, index: int) -> bool:
        """Publish one sensor's reading over MQTT."""
        return await self._call_success(DeviceOperation.SENSOR_PUBLISH, {"index": index})

    async def toggle_sensor(self, index: int) -> bool:
        """Enable or disable the sensor at ``index``."""
        return await self._call_success(DeviceOperation.SENSOR_TOGGLE, {"index": index})

    async def publish_all_sensors(self) -> bool:
        return await self._call_success(DeviceOperation.SENSORS_PUBLISH_ALL)

    # -------------------------------------------------------------------------
    # MQTT
    # -------------------------------------------------------------------------

    async def get_mqtt_status(self) -> dict[str, Any] | None:
        return await self._call(DeviceOperation.MQTT_GET)

    async def update_mqtt_config(
        self,
        *,
        server_primary: str,
        topic: str,
        server_secondary: str | None = None,
        server_third: str | None = None,
        port: int = 1883,
        username: str | None = None,
        password: str | None = None,
        client_id: str | None = None,
    ) -> bool:
        """Update broker settings; unset optional fields are sent empty."""
        body = {
            "server_primary": server_primary,
            "server_secondary": server_secondary or "",
            "server_third": server_third or "",
            "port": port,
            "topic": topic,
            "username": username or "",
            "password": password or "",
            "client_id": client_id or "",
        }
        return await self._call_success(DeviceOperation.MQTT_UPDATE, body)

    async def publish_mqtt(self, topic: str, message: str) -> bool:
        return await self._call_success(
            DeviceOperation.MQTT_PUBLISH, {"topic": topic, "message": message}
        )

    # -------------------------------------------------------------------------
    # GPIO
    # -------------------------------------------------------------------------

    async def get_gpio_config(self) -> dict[str, Any] | None:
        return await self._call(DeviceOperation.GPIO_GET)

    async def update_gpio_config(self, config: dict[str, Any]) -> bool:
        return await self._call_success(DeviceOperation.GPIO_UPDATE, config)

    async def trigger_gpio(self, pin: str) -> bool:
        """Pulse output ``pin``."""
        return await self._call_success(DeviceOperation.GPIO_TRIGGER, {"pin": pin})

    # -------------------------------------------------------------------------
    # Network and system
    # -------------------------------------------------------------------------

    async def get_network_config(self) -> dict[str, Any] | None:
        return await self._call(DeviceOperation.NETWORK_GET)

    async def update_network_config(self, config: dict[str, Any]) -> bool:
        return await self._call_success(DeviceOperation.NETWORK_UPDATE, config)

    async def update_password(self, current_password: str, new_password: str) -> bool:
        return await self._call_success(
            DeviceOperation.PASSWORD_UPDATE,
            {"currentPassword": current_password, "newPassword": new_password},
        )

    async def restart(self) -> bool:
        """Reboot the device. The link drops shortly after success."""
        return await self._call_success(DeviceOperation.RESTART)

    async def factory_reset(self) -> bool:
        return await self._call_success(DeviceOperation.FACTORY_RESET)

