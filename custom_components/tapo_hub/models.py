"""Data models for Tapo Hub integration."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .const import (
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_POLLING_INTERVAL,
    DEFAULT_RECONNECT_INTERVAL,
    PROPERTY_DEVICE_ID,
    PROPERTY_EVENT,
    PROPERTY_EVENT_ROTATION,
    PROPERTY_TIMESTAMP,
)


class DeviceStatus(StrEnum):
    """Connection status reported to the host."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class StatusDetail(StrEnum):
    """Reason attached to a status change."""

    NONE = "none"
    COMMUNICATION_ERROR = "communication_error"
    CONFIGURATION_ERROR = "configuration_error"


class EventKind(StrEnum):
    """Kind of the last event reported by a child device."""

    UNKNOWN = "unknown"
    SINGLE_CLICK = "singleClick"
    DOUBLE_CLICK = "doubleClick"
    ROTATION = "rotation"

    @classmethod
    def parse(cls, value: Any) -> EventKind:
        """Return the event kind for a raw name, UNKNOWN if unrecognised."""
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


class EventDetail(StrEnum):
    """Detail of a rotation event."""

    NONE = "none"
    CLOCKWISE = "clockwise"
    ANTICLOCKWISE = "anticlockwise"


def unformat_mac(mac: str) -> str:
    """Strip separators from a MAC address and upper-case it.

    Hubs report MAC addresses with and without "-" or ":" separators.
    """
    return mac.replace("-", "").replace(":", "").upper()


def _decode_nickname(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True, slots=True)
class TapoCredentials:
    """Username and password used to log in to the hub."""

    username: str = ""
    password: str = ""

    @property
    def are_set(self) -> bool:
        """Return True if both username and password are non-blank."""
        return bool(self.username.strip()) and bool(self.password.strip())


@dataclass(frozen=True, slots=True)
class TapoHubConfig:
    """Configuration of a hub.

    Attributes:
        ip_address: Address of the hub on the local network.
        reconnect_interval: Minutes between forced logins, 0 disables.
        discovery_interval: Minutes between child discoveries, 0 disables.

    """

    ip_address: str = ""
    reconnect_interval: int = DEFAULT_RECONNECT_INTERVAL
    discovery_interval: int = DEFAULT_DISCOVERY_INTERVAL


@dataclass(frozen=True, slots=True)
class TapoDeviceConfig:
    """Configuration of a child device.

    Attributes:
        polling_interval: Seconds between status polls, 0 disables.

    """

    polling_interval: int = DEFAULT_POLLING_INTERVAL


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Snapshot of the attributes a child device reports about itself."""

    device_id: str = ""
    model: str = ""
    mac: str = ""
    firmware_version: str = ""
    hardware_version: str = ""
    serial: str = ""
    nickname: str = ""
    device_type: str = ""
    rssi: int = 0
    at_low_battery: bool = False

    @property
    def representation_property(self) -> str:
        """Return the property that identifies the device (its MAC)."""
        return self.mac

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DeviceInfo:
        """Create device info from a get_device_info result."""
        return cls(
            device_id=str(data.get(PROPERTY_DEVICE_ID, "")),
            model=str(data.get("model", "")),
            mac=str(data.get("mac", "")),
            firmware_version=str(data.get("fw_ver", "")),
            hardware_version=str(data.get("hw_ver", "")),
            serial=str(data.get("hw_id", "")),
            nickname=_decode_nickname(str(data.get("nickname", ""))),
            device_type=str(data.get("type", "")),
            rssi=_to_int(data.get("rssi")),
            at_low_battery=bool(data.get("at_low_battery", False)),
        )


@dataclass(frozen=True, slots=True)
class EventRecord:
    """Most recent entry of a child device's trigger log."""

    kind: EventKind = EventKind.UNKNOWN
    detail: EventDetail = EventDetail.NONE
    timestamp: int = 0

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> EventRecord:
        """Create an event record from a trigger log entry.

        The detail is only derived when the entry carries a rotation
        parameter: a negative angle is anticlockwise, anything else
        clockwise.
        """
        if PROPERTY_EVENT not in data:
            return cls()

        detail = EventDetail.NONE
        params = data.get("params")
        if isinstance(params, dict) and PROPERTY_EVENT_ROTATION in params:
            degrees = _to_int(params[PROPERTY_EVENT_ROTATION])
            detail = (
                EventDetail.ANTICLOCKWISE if degrees < 0 else EventDetail.CLOCKWISE
            )

        return cls(
            kind=EventKind.parse(data[PROPERTY_EVENT]),
            detail=detail,
            timestamp=_to_int(data.get(PROPERTY_TIMESTAMP)),
        )


@dataclass(frozen=True, slots=True)
class TapoChildDevice:
    """A child device listed by the hub during discovery."""

    device_id: str
    model: str
    mac: str
    nickname: str
    category: str
    firmware_version: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> TapoChildDevice:
        """Create a child description from a child_device_list entry."""
        return cls(
            device_id=str(data.get(PROPERTY_DEVICE_ID, "")),
            model=str(data.get("model", "")),
            mac=str(data.get("mac", "")),
            nickname=_decode_nickname(str(data.get("nickname", ""))),
            category=str(data.get("category", "")),
            firmware_version=str(data.get("fw_ver", "")),
        )
