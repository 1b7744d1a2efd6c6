"""Tapo hub: login, periodic re-login and child discovery."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Protocol

from .connector import TapoHubConnector
from .const import HUB_STARTUP_DELAY
from .errors import (
    ERR_CONF_CREDENTIALS,
    ERR_CONF_IP,
    ERR_LOGIN,
    NO_ERROR,
    TapoErrorState,
    get_error_message,
)
from .models import DeviceStatus, StatusDetail, TapoChildDevice

if TYPE_CHECKING:
    import httpx

    from .models import TapoCredentials, TapoHubConfig
    from .scheduler import PollingScheduler

_LOGGER = logging.getLogger(__name__)


class HubHost(Protocol):
    """What the hub needs from the host framework."""

    def update_status(
        self,
        status: DeviceStatus,
        detail: StatusDetail = StatusDetail.NONE,
        message: str = "",
    ) -> None:
        """Report a status change."""

    def devices_discovered(self, children: list[TapoChildDevice]) -> None:
        """Hand discovered child devices to the host."""


class TapoHubBridge:
    """A Tapo hub on the local network.

    The hub logs in after a short startup delay, logs in again every
    ``reconnect_interval`` minutes and lists its children every
    ``discovery_interval`` minutes. Child devices share its address,
    credentials and HTTP session but hold their own session with the hub.
    """

    def __init__(
        self,
        uid: str,
        config: TapoHubConfig,
        credentials: TapoCredentials,
        session: httpx.AsyncClient,
        host: HubHost,
        scheduler: PollingScheduler,
    ) -> None:
        """Initialize the hub.

        Args:
            uid: Host identifier used in log messages.
            config: Hub configuration.
            credentials: Account credentials.
            session: HTTP client session shared with child devices.
            host: Host framework callbacks.
            scheduler: Scheduler for the hub's jobs.

        """
        self.uid = uid
        self._config = config
        self._credentials = credentials
        self._session = session
        self._host = host
        self._scheduler = scheduler
        self._connector: TapoHubConnector | None = None
        self._error = NO_ERROR
        self._disposed = False

    @property
    def config(self) -> TapoHubConfig:
        """Return the hub configuration."""
        return self._config

    @property
    def credentials(self) -> TapoCredentials:
        """Return the account credentials."""
        return self._credentials

    @property
    def session(self) -> httpx.AsyncClient:
        """Return the shared HTTP session."""
        return self._session

    @property
    def ip_address(self) -> str:
        """Return the hub address."""
        return self._config.ip_address

    @property
    def error(self) -> TapoErrorState:
        """Return the last error."""
        return self._error

    @property
    def connector(self) -> TapoHubConnector | None:
        """Return the connector, None until initialized."""
        return self._connector

    async def async_initialize(self) -> None:
        """Create the connector and start the hub in the background."""
        if self._disposed:
            return
        if not self._config.ip_address.strip():
            self._error = TapoErrorState.from_code(ERR_CONF_IP)
            self._host.update_status(
                DeviceStatus.OFFLINE,
                StatusDetail.CONFIGURATION_ERROR,
                self._error.message,
            )
            return

        self._connector = TapoHubConnector(
            self._session,
            self._config.ip_address,
            self._credentials,
            owner=self,
            uid=self.uid,
        )
        # UNKNOWN until the background job decides the real status
        self._host.update_status(DeviceStatus.UNKNOWN)
        self._scheduler.schedule_once(
            HUB_STARTUP_DELAY, self._async_delayed_startup, "startup"
        )

    async def async_dispose(self) -> None:
        """Cancel all jobs and drop the session."""
        self._disposed = True
        self._scheduler.cancel_all()
        if self._connector is not None:
            self._connector.logout()

    async def _async_delayed_startup(self) -> None:
        await self.async_login()
        if self._disposed:
            return
        self._scheduler.schedule_interval(
            timedelta(minutes=self._config.reconnect_interval),
            self._async_reconnect_action,
            "reconnect",
        )
        self._scheduler.schedule_interval(
            timedelta(minutes=self._config.discovery_interval),
            self.async_discover_devices,
            "discovery",
            run_immediately=True,
        )

    async def _async_reconnect_action(self) -> None:
        await self.async_login()

    async def async_set_error(self, error: TapoErrorState) -> None:
        """Store an error reported by the connector."""
        self._error = error

    async def async_login(self) -> bool:
        """Log in to the hub and report the result as status.

        Returns:
            True if logged in.

        """
        if self._disposed or self._connector is None:
            return False

        self._error = NO_ERROR
        if not self._credentials.are_set:
            self._error = TapoErrorState.from_code(ERR_CONF_CREDENTIALS)
            self._host.update_status(
                DeviceStatus.OFFLINE,
                StatusDetail.CONFIGURATION_ERROR,
                get_error_message(ERR_CONF_CREDENTIALS),
            )
            return False

        _LOGGER.debug("(%s) login with user %s", self.uid, self._credentials.username)
        if await self._connector.async_login():
            self._host.update_status(DeviceStatus.ONLINE)
            return True

        message = self._error.message or get_error_message(ERR_LOGIN)
        _LOGGER.warning("(%s) login failed: %s", self.uid, message)
        self._host.update_status(
            DeviceStatus.OFFLINE, StatusDetail.COMMUNICATION_ERROR, message
        )
        return False

    async def async_get_device_list(self) -> list[dict[str, Any]]:
        """Log in and return the raw child device list.

        Returns:
            The hub's child_device_list, empty on any failure.

        """
        self._error = NO_ERROR
        if self._connector is None or not await self.async_login():
            return []
        return await self._connector.async_get_device_list()

    async def async_discover_devices(self) -> None:
        """List the hub's children and hand them to the host."""
        _LOGGER.debug("(%s) discovering child devices", self.uid)
        device_list = await self.async_get_device_list()
        if self._disposed:
            return

        children = [
            child
            for child in (TapoChildDevice.from_json(entry) for entry in device_list)
            if child.device_id
        ]
        _LOGGER.debug("(%s) discovered %d child devices", self.uid, len(children))
        if children:
            self._host.devices_discovered(children)
