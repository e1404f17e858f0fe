"""Device HTTP endpoint catalog."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Final


@dataclass(frozen=True)
class Endpoint:
    """HTTP method and path of a device operation."""

    method: str
    path: str


class DeviceOperation(Enum):
    """Logical operations exposed by the device web API."""

    LOGIN_PAGE = "login_page"
    LOGIN_SUBMIT = "login_submit"
    SYSTEM_STATUS = "system_status"
    SENSOR_DATA = "sensor_data"
    MQTT_GET = "mqtt_get"
    MQTT_UPDATE = "mqtt_update"
    MQTT_PUBLISH = "mqtt_publish"
    GPIO_GET = "gpio_get"
    GPIO_UPDATE = "gpio_update"
    GPIO_TRIGGER = "gpio_trigger"
    NETWORK_GET = "network_get"
    NETWORK_UPDATE = "network_update"
    PASSWORD_UPDATE = "password_update"
    SENSORS_GET = "sensors_get"
    SENSORS_SAVE = "sensors_save"
    SENSOR_PUBLISH = "sensor_publish"
    SENSOR_TOGGLE = "sensor_toggle"
    SENSORS_PUBLISH_ALL = "sensors_publish_all"
    RESTART = "restart"
    FACTORY_RESET = "factory_reset"


ENDPOINTS: Final = MappingProxyType(
    {
        DeviceOperation.LOGIN_PAGE: Endpoint("GET", "/login"),
        DeviceOperation.LOGIN_SUBMIT: Endpoint("POST", "/login"),
        DeviceOperation.SYSTEM_STATUS: Endpoint("GET", "/api/system-status"),
        DeviceOperation.SENSOR_DATA: Endpoint("GET", "/api/get-sensor"),
        DeviceOperation.MQTT_GET: Endpoint("GET", "/api/get-mqtt"),
        DeviceOperation.MQTT_UPDATE: Endpoint("POST", "/api/update-mqtt"),
        DeviceOperation.MQTT_PUBLISH: Endpoint("POST", "/api/publish-mqtt"),
        DeviceOperation.GPIO_GET: Endpoint("GET", "/api/get-gpio"),
        DeviceOperation.GPIO_UPDATE: Endpoint("POST", "/api/update-gpio"),
        DeviceOperation.GPIO_TRIGGER: Endpoint("POST", "/api/trigger-gpio"),
        DeviceOperation.NETWORK_GET: Endpoint("GET", "/api/get-network"),
        DeviceOperation.NETWORK_UPDATE: Endpoint("POST", "/api/update-network"),
        DeviceOperation.PASSWORD_UPDATE: Endpoint("POST", "/api/update-password"),
        DeviceOperation.SENSORS_GET: Endpoint("GET", "/api/get-sensors"),
        DeviceOperation.SENSORS_SAVE: Endpoint("POST", "/api/save-sensors"),
        DeviceOperation.SENSOR_PUBLISH: Endpoint("POST", "/api/publish-sensor"),
        DeviceOperation.SENSOR_TOGGLE: Endpoint("POST", "/api/toggle-sensor"),
        DeviceOperation.SENSORS_PUBLISH_ALL: Endpoint("POST", "/api/publish-all-sensors"),
        DeviceOperation.RESTART: Endpoint("POST", "/api/restart"),
        DeviceOperation.FACTORY_RESET: Endpoint("POST", "/api/factory-reset"),
    }
)


def endpoint(operation: DeviceOperation) -> Endpoint:
    """Look up the endpoint of ``operation``."""
    return ENDPOINTS[operation]
