"""Home Assistant side of the hub and its child devices."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from homeassistant.helpers import device_registry as dr
from homeassistant.helpers.dispatcher import async_dispatcher_send

from .const import (
    DOMAIN,
    PROPERTY_FIRMWARE_VERSION,
    PROPERTY_HARDWARE_VERSION,
    PROPERTY_MAC,
    PROPERTY_MODEL,
    PROPERTY_SERIAL_NUMBER,
    SIGNAL_DEVICE_UPDATED,
)
from .models import DeviceStatus, StatusDetail

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .models import TapoChildDevice

_LOGGER = logging.getLogger(__name__)

DiscoveryCallback = Callable[[list["TapoChildDevice"]], None]


class TapoDeviceHost:
    """Holds the status, properties and channel values of one child device.

    Every change is announced on the dispatcher signal of the device.
    """

    def __init__(self, hass: HomeAssistant, child: TapoChildDevice) -> None:
        """Initialize the host with the identity found during discovery."""
        self._hass = hass
        self._child = child
        self._status = DeviceStatus.UNKNOWN
        self._detail = StatusDetail.NONE
        self._message = ""
        self._properties: dict[str, str] = {
            PROPERTY_MAC: child.mac,
            PROPERTY_MODEL: child.model,
        }
        self._states: dict[str, Any] = {}

    @property
    def child(self) -> TapoChildDevice:
        """Return the discovered child."""
        return self._child

    @property
    def status(self) -> DeviceStatus:
        """Return the current status."""
        return self._status

    @property
    def detail(self) -> StatusDetail:
        """Return the reason of the current status."""
        return self._detail

    @property
    def message(self) -> str:
        """Return the message attached to the current status."""
        return self._message

    @property
    def properties(self) -> Mapping[str, str]:
        """Return the identity properties."""
        return self._properties

    def get_state(self, channel: str) -> Any:
        """Return the last value published on a channel, None if never set."""
        return self._states.get(channel)

    def update_status(
        self,
        status: DeviceStatus,
        detail: StatusDetail = StatusDetail.NONE,
        message: str = "",
    ) -> None:
        """Store a status change and notify entities."""
        if (status, detail, message) != (self._status, self._detail, self._message):
            _LOGGER.debug(
                "(%s) status %s (%s) %s",
                self._child.device_id,
                status,
                detail,
                message,
            )
        self._status = status
        self._detail = detail
        self._message = message
        self._notify()

    def publish_state(self, channel: str, value: Any) -> None:
        """Store a channel value and notify entities."""
        self._states[channel] = value
        self._notify()

    def update_properties(self, properties: Mapping[str, str]) -> None:
        """Store properties and push them to the device registry."""
        self._properties.update(properties)
        registry = dr.async_get(self._hass)
        device = registry.async_get_device(
            identifiers={(DOMAIN, self._child.device_id)}
        )
        if device is None:
            return
        registry.async_update_device(
            device.id,
            model=self._properties.get(PROPERTY_MODEL) or None,
            sw_version=self._properties.get(PROPERTY_FIRMWARE_VERSION) or None,
            hw_version=self._properties.get(PROPERTY_HARDWARE_VERSION) or None,
            serial_number=self._properties.get(PROPERTY_SERIAL_NUMBER) or None,
        )

    @property
    def signal(self) -> str:
        """Return the dispatcher signal sent on every change."""
        return SIGNAL_DEVICE_UPDATED.format(self._child.device_id)

    def _notify(self) -> None:
        async_dispatcher_send(self._hass, self.signal)


class TapoHubHost:
    """Holds the hub status and forwards discovered children to the platform."""

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        """Initialize the host for a config entry."""
        self._hass = hass
        self._entry_id = entry_id
        self._status = DeviceStatus.UNKNOWN
        self._detail = StatusDetail.NONE
        self._message = ""
        self._discovery_callbacks: list[DiscoveryCallback] = []

    @property
    def status(self) -> DeviceStatus:
        """Return the current hub status."""
        return self._status

    @property
    def detail(self) -> StatusDetail:
        """Return the reason of the current hub status."""
        return self._detail

    @property
    def message(self) -> str:
        """Return the message attached to the current hub status."""
        return self._message

    def update_status(
        self,
        status: DeviceStatus,
        detail: StatusDetail = StatusDetail.NONE,
        message: str = "",
    ) -> None:
        """Store a hub status change."""
        if status != self._status:
            _LOGGER.info(
                "Hub of entry %s is %s %s", self._entry_id, status, message
            )
        self._status = status
        self._detail = detail
        self._message = message

    def register_discovery_callback(
        self, callback: DiscoveryCallback
    ) -> Callable[[], None]:
        """Register a callback for discovered children.

        Returns:
            A function that unregisters the callback.

        """
        self._discovery_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._discovery_callbacks:
                self._discovery_callbacks.remove(callback)

        return unregister

    def devices_discovered(self, children: list[TapoChildDevice]) -> None:
        """Hand discovered children to every registered callback."""
        for callback in list(self._discovery_callbacks):
            try:
                callback(children)
            except Exception:
                _LOGGER.exception(
                    "Error in discovery callback for entry %s", self._entry_id
                )
