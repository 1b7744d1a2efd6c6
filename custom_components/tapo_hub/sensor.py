"""Sensor entities for the child devices of a Tapo hub.

Each child discovered by the hub gets three sensors: the kind of its last
event, the event detail (rotation direction) and the event timestamp.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.const import CONF_HOST
from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect

from .const import (
    CHANNEL_EVENT,
    CHANNEL_EVENT_DETAIL,
    CHANNEL_EVENT_TIMESTAMP,
    CONF_POLLING_INTERVAL,
    DEFAULT_POLLING_INTERVAL,
    DOMAIN,
    MANUFACTURER,
)
from .device import TapoHubDevice
from .host import TapoDeviceHost
from .models import DeviceStatus, EventDetail, EventKind, TapoDeviceConfig
from .scheduler import PollingScheduler

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .hub import TapoHubBridge
    from .models import TapoChildDevice

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Create sensors for every child the hub discovers."""
    entry_data = hass.data[DOMAIN][entry.entry_id]
    hub: TapoHubBridge = entry_data["hub"]
    devices: dict[str, TapoHubDevice] = entry_data["devices"]
    device_config = TapoDeviceConfig(
        polling_interval=int(
            entry.data.get(CONF_POLLING_INTERVAL, DEFAULT_POLLING_INTERVAL)
        )
    )

    @callback
    def async_add_children(children: list[TapoChildDevice]) -> None:
        entities: list[TapoHubSensorEntity] = []
        for child in children:
            if child.device_id in devices:
                continue

            _LOGGER.info(
                "Adding child %s (%s) of entry %s",
                child.device_id,
                child.model,
                entry.entry_id,
            )
            host = TapoDeviceHost(hass, child)
            device = TapoHubDevice(
                child.device_id,
                child.device_id,
                device_config,
                hub,
                host,
                PollingScheduler(hass, child.device_id),
            )
            devices[child.device_id] = device
            via_device = entry.data[CONF_HOST]
            entities.extend(
                [
                    TapoHubEventSensor(host, via_device),
                    TapoHubEventDetailSensor(host, via_device),
                    TapoHubEventTimestampSensor(host, via_device),
                ]
            )
            entry.async_create_background_task(
                hass,
                device.async_initialize(),
                f"{DOMAIN}_initialize_{child.device_id}",
            )

        if entities:
            async_add_entities(entities)

    entry.async_on_unload(
        entry_data["hub_host"].register_discovery_callback(async_add_children)
    )


class TapoHubSensorEntity(SensorEntity):
    """Base sensor showing one channel of a child device."""

    _attr_has_entity_name = True
    _attr_should_poll = False
    channel: str = ""

    def __init__(self, host: TapoDeviceHost, via_device: str) -> None:
        """Initialize the sensor.

        Args:
            host: Host object of the child device.
            via_device: Identifier of the hub device in the registry.

        """
        self._host = host
        child = host.child
        self._attr_unique_id = f"{child.device_id}_{self.channel}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, child.device_id)},
            manufacturer=MANUFACTURER,
            model=child.model or None,
            name=child.nickname or child.device_id,
            sw_version=child.firmware_version or None,
            via_device=(DOMAIN, via_device),
        )

    @property
    def available(self) -> bool:
        """Return True while the child device is online."""
        return self._host.status == DeviceStatus.ONLINE

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the status detail of the child device."""
        return {
            "status_detail": str(self._host.detail),
            "status_message": self._host.message,
        }

    async def async_added_to_hass(self) -> None:
        """Follow state changes of the child device."""
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass, self._host.signal, self.async_write_ha_state
            )
        )


class TapoHubEventSensor(TapoHubSensorEntity):
    """Kind of the last event (single click, double click, rotation)."""

    channel = CHANNEL_EVENT
    _attr_name = "Last event"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [kind.value for kind in EventKind]

    @property
    def native_value(self) -> str | None:
        """Return the last event kind."""
        value = self._host.get_state(self.channel)
        return None if value is None else str(value)


class TapoHubEventDetailSensor(TapoHubSensorEntity):
    """Direction of the last rotation event."""

    channel = CHANNEL_EVENT_DETAIL
    _attr_name = "Event detail"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [detail.value for detail in EventDetail]

    @property
    def native_value(self) -> str | None:
        """Return the last event detail."""
        value = self._host.get_state(self.channel)
        return None if value is None else str(value)


class TapoHubEventTimestampSensor(TapoHubSensorEntity):
    """Time of the last event."""

    channel = CHANNEL_EVENT_TIMESTAMP
    _attr_name = "Event time"
    _attr_device_class = SensorDeviceClass.TIMESTAMP

    @property
    def native_value(self) -> datetime | None:
        """Return the last event time, None before the first event."""
        value = self._host.get_state(self.channel)
        if not value:
            return None
        return datetime.fromtimestamp(int(value), UTC)
