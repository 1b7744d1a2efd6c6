"""Child devices of a Tapo hub and their connection state machine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Protocol

from .connector import TapoHubConnector
from .const import (
    CHANNEL_EVENT,
    CHANNEL_EVENT_DETAIL,
    CHANNEL_EVENT_TIMESTAMP,
    DEVICE_STARTUP_DELAY,
    PROPERTY_FIRMWARE_VERSION,
    PROPERTY_HARDWARE_VERSION,
    PROPERTY_MAC,
    PROPERTY_MODEL,
    PROPERTY_SERIAL_NUMBER,
)
from .errors import (
    ERR_LOGIN,
    NO_ERROR,
    ErrorCategory,
    TapoConfigurationMismatchError,
    TapoCredentialsNotSetError,
    TapoError,
    TapoErrorState,
    TapoNoBridgeError,
    get_error_message,
)
from .models import DeviceInfo, DeviceStatus, StatusDetail, unformat_mac

if TYPE_CHECKING:
    from .hub import TapoHubBridge
    from .models import EventRecord, TapoDeviceConfig
    from .scheduler import PollingScheduler

_LOGGER = logging.getLogger(__name__)


class DeviceHost(Protocol):
    """What a child device needs from the host framework."""

    @property
    def status(self) -> DeviceStatus:
        """Return the status last reported to the host."""

    @property
    def properties(self) -> Mapping[str, str]:
        """Return the identity properties known to the host."""

    def update_status(
        self,
        status: DeviceStatus,
        detail: StatusDetail = StatusDetail.NONE,
        message: str = "",
    ) -> None:
        """Report a status change."""

    def publish_state(self, channel: str, value: Any) -> None:
        """Publish a channel value."""

    def update_properties(self, properties: Mapping[str, str]) -> None:
        """Update device properties."""


class TapoHubDevice:
    """A child device (button, dial, sensor) reached through a hub.

    The device polls its trigger log on a schedule and keeps its host
    status in line with the outcome of every request:

    - success: ONLINE
    - reauth codes: log in again, no status change
    - communication errors: OFFLINE (communication), session dropped
    - configuration errors: OFFLINE (configuration), no retry
    - anything else: UNKNOWN
    """

    def __init__(
        self,
        uid: str,
        device_id: str | None,
        config: TapoDeviceConfig,
        hub: TapoHubBridge | None,
        host: DeviceHost,
        scheduler: PollingScheduler,
    ) -> None:
        """Initialize the device.

        Args:
            uid: Host identifier used in log messages.
            device_id: Identifier of the child on the hub.
            config: Device configuration.
            hub: Hub the device is attached to.
            host: Host framework callbacks.
            scheduler: Scheduler for the device's jobs.

        """
        self.uid = uid
        self._device_id = device_id
        self._config = config
        self._hub = hub
        self._host = host
        self._scheduler = scheduler
        self._connector: TapoHubConnector | None = None
        self._error = NO_ERROR
        self._device_info = DeviceInfo()
        self._disposed = False

    @property
    def device_id(self) -> str | None:
        """Return the child's device id on the hub."""
        return self._device_id

    @property
    def error(self) -> TapoErrorState:
        """Return the last error."""
        return self._error

    @property
    def device_info(self) -> DeviceInfo:
        """Return the last accepted device info."""
        return self._device_info

    @property
    def connector(self) -> TapoHubConnector | None:
        """Return the connector, None until initialized."""
        return self._connector

    @property
    def disposed(self) -> bool:
        """Return True once the device was disposed."""
        return self._disposed

    async def async_initialize(self) -> None:
        """Check the settings, then start the device in the background."""
        if self._disposed:
            return
        try:
            hub = self._check_settings()
        except TapoError as err:
            _LOGGER.debug("(%s) configuration error: %s", self.uid, err)
            self._error = err.to_state()
            self._host.update_status(
                DeviceStatus.OFFLINE, StatusDetail.CONFIGURATION_ERROR, str(err)
            )
            return

        self._connector = TapoHubConnector(
            hub.session,
            hub.ip_address,
            hub.credentials,
            owner=hub,
            device=self,
            uid=self.uid,
        )
        self._activate()

        # initial state
        await self.async_query_device_info()
        await self.async_query_device_status()

    async def async_dispose(self) -> None:
        """Cancel all jobs and drop the session."""
        self._disposed = True
        self._scheduler.cancel_all()
        if self._connector is not None:
            self._connector.logout()

    def _check_settings(self) -> TapoHubBridge:
        if self._hub is None:
            raise TapoNoBridgeError
        if not self._hub.credentials.are_set:
            raise TapoCredentialsNotSetError
        return self._hub

    def _activate(self) -> None:
        # UNKNOWN until the background job decides the real status
        self._host.update_status(DeviceStatus.UNKNOWN)
        self._scheduler.schedule_once(
            DEVICE_STARTUP_DELAY, self._async_delayed_startup, "startup"
        )

    async def _async_delayed_startup(self) -> None:
        await self.async_connect()
        self._start_polling()

    def _start_polling(self) -> None:
        if self._disposed:
            return
        self._scheduler.schedule_interval(
            timedelta(seconds=self._config.polling_interval),
            self._async_polling_action,
            "polling",
        )

    async def _async_polling_action(self) -> None:
        _LOGGER.debug("(%s) polling", self.uid)
        await self.async_query_device_status()

    async def async_query_device_info(self, force: bool = False) -> None:
        """Query device properties.

        Args:
            force: Ignore the gap to the last query.

        """
        if self._disposed or self._connector is None:
            return
        self._error = NO_ERROR
        await self._connector.async_query_child_info(force)

    async def async_query_device_status(self, force: bool = False) -> None:
        """Query the last event of the device.

        Args:
            force: Ignore the gap to the last query.

        """
        if self._disposed or self._connector is None:
            return
        self._error = NO_ERROR
        await self._connector.async_query_child_status(force)

    async def async_set_error(self, error: TapoErrorState) -> None:
        """Store an error and update the connection state."""
        if self._disposed:
            return
        self._error = error
        await self.async_handle_connection_state()

    async def async_set_device_info(self, device_info: DeviceInfo) -> None:
        """Apply device info if it comes from the expected device.

        A device answering with another identity (for example after an IP
        address was reassigned) is set OFFLINE with a configuration error
        and the info is discarded.
        """
        if self._disposed:
            return

        if not self.is_expected_device(device_info):
            message = (
                f"found type:'{device_info.model}' with mac:"
                f"'{device_info.representation_property}'. Check IP-Address"
            )
            _LOGGER.warning("(%s) %s", self.uid, message)
            self._error = TapoConfigurationMismatchError(message).to_state()
            self._host.update_status(
                DeviceStatus.OFFLINE, StatusDetail.CONFIGURATION_ERROR, message
            )
            return

        self._device_info = device_info
        self._host.update_properties(
            {
                PROPERTY_MAC: device_info.mac,
                PROPERTY_FIRMWARE_VERSION: device_info.firmware_version,
                PROPERTY_HARDWARE_VERSION: device_info.hardware_version,
                PROPERTY_MODEL: device_info.model,
                PROPERTY_SERIAL_NUMBER: device_info.serial,
            }
        )
        await self.async_handle_connection_state()

    def set_event_data(self, event: EventRecord) -> None:
        """Publish the last event of the device."""
        if self._disposed:
            return
        self._host.publish_state(CHANNEL_EVENT, event.kind)
        self._host.publish_state(CHANNEL_EVENT_DETAIL, event.detail)
        self._host.publish_state(CHANNEL_EVENT_TIMESTAMP, event.timestamp)

    def is_expected_device(self, device_info: DeviceInfo) -> bool:
        """Check received device info against the host's identity properties.

        MACs are compared without separators. Without an expected MAC the
        model is compared instead. A host with neither accepts any device,
        and the properties applied from that first info become the identity
        later info is checked against.
        """
        expected_mac = self._host.properties.get(PROPERTY_MAC, "")
        if not expected_mac.strip():
            expected_model = self._host.properties.get(PROPERTY_MODEL, "")
            return not expected_model or expected_model == device_info.model
        return unformat_mac(expected_mac) == unformat_mac(
            device_info.representation_property
        )

    async def async_connect(self) -> bool:
        """Log in to the hub and refresh the device info.

        Returns:
            True if the login succeeded.

        """
        if self._disposed or self._connector is None:
            return False

        self._error = NO_ERROR
        login_success = False
        try:
            login_success = await self._connector.async_login()
            if login_success:
                await self._connector.async_query_child_info()
            else:
                self._host.update_status(
                    DeviceStatus.OFFLINE,
                    StatusDetail.COMMUNICATION_ERROR,
                    self._error.message or get_error_message(ERR_LOGIN),
                )
        except Exception:
            _LOGGER.exception("(%s) unexpected error while connecting", self.uid)
            self._host.update_status(DeviceStatus.UNKNOWN)
        return login_success

    async def async_disconnect(self) -> None:
        """Drop the session so the next query logs in again."""
        if self._connector is not None:
            self._connector.logout()

    async def async_handle_connection_state(self) -> None:
        """Derive the host status from the last error."""
        if self._disposed:
            return

        category = self._error.category
        if category is ErrorCategory.SUCCESS:
            if self._host.status != DeviceStatus.ONLINE:
                self._host.update_status(DeviceStatus.ONLINE)
        elif category is ErrorCategory.REAUTH:
            await self.async_connect()
        elif category is ErrorCategory.COMMUNICATION:
            self._host.update_status(
                DeviceStatus.OFFLINE,
                StatusDetail.COMMUNICATION_ERROR,
                self._error.message,
            )
            await self.async_disconnect()
        elif category is ErrorCategory.CONFIGURATION:
            self._host.update_status(
                DeviceStatus.OFFLINE,
                StatusDetail.CONFIGURATION_ERROR,
                self._error.message,
            )
        else:
            self._host.update_status(
                DeviceStatus.UNKNOWN, StatusDetail.NONE, self._error.message
            )
