"""Connector between the hub or a child device and the hub's local API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from . import api
from .channel import TapoSecureChannel
from .const import (
    METHOD_GET_CHILD_DEVICE_LIST,
    METHOD_GET_DEVICE_INFO,
    METHOD_GET_TRIGGER_LOGS,
    PROPERTY_DEVICE_ID,
    QUERY_MIN_GAP_MS,
)
from .errors import NO_ERROR, TapoError, TapoErrorState
from .models import DeviceInfo, EventRecord
from .throttle import QueryGate, monotonic_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from .models import TapoCredentials

_LOGGER = logging.getLogger(__name__)


class ErrorOwner(Protocol):
    """Receives the errors produced by a connector."""

    async def async_set_error(self, error: TapoErrorState) -> None:
        """Store an error and react to it."""


class ChildOwner(ErrorOwner, Protocol):
    """Child device served by a connector."""

    @property
    def device_id(self) -> str | None:
        """Return the child's device id on the hub."""

    async def async_connect(self) -> bool:
        """Log in again."""

    async def async_set_device_info(self, device_info: DeviceInfo) -> None:
        """Accept or reject a device info update."""

    def set_event_data(self, event: EventRecord) -> None:
        """Publish the last event."""

    async def async_handle_connection_state(self) -> None:
        """Re-evaluate the connection state."""


class TapoHubConnector:
    """Sends hub and child requests through a secure channel.

    Every failure is turned into a TapoErrorState, stored as ``last_error``
    and reported to the owner; callers get a safe default back instead of
    an exception. The owner is the child device when there is one, the hub
    otherwise.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        host: str,
        credentials: TapoCredentials,
        owner: ErrorOwner,
        device: ChildOwner | None = None,
        uid: str = "",
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """Initialize the connector.

        Args:
            session: HTTP client session.
            host: Hub address.
            credentials: Account credentials.
            owner: Hub that owns the connector.
            device: Child device served by the connector, if any.
            uid: Identifier used in log messages.
            clock: Millisecond clock, replaceable in tests.

        """
        self._uid = uid or host
        self._channel = TapoSecureChannel(session, host, credentials, self._uid, clock)
        self._gate = QueryGate(QUERY_MIN_GAP_MS, clock)
        self._device = device
        self._owner: ErrorOwner = device if device is not None else owner
        self._last_error = NO_ERROR
        self.device_info = DeviceInfo()

    @property
    def channel(self) -> TapoSecureChannel:
        """Return the secure channel."""
        return self._channel

    @property
    def last_error(self) -> TapoErrorState:
        """Return the outcome of the last operation."""
        return self._last_error

    @property
    def logged_in(self) -> bool:
        """Return True if the channel holds a session."""
        return self._channel.logged_in

    async def async_login(self) -> bool:
        """Log in to the hub.

        Returns:
            True if logged in afterwards, False on any failure.

        """
        self._last_error = NO_ERROR
        try:
            return await self._channel.async_login()
        except TapoError as err:
            _LOGGER.debug("(%s) login failed: %s", self._uid, err)
            await self._async_handle_error(err.to_state())
            return False

    def logout(self) -> None:
        """Drop the session."""
        self._channel.logout()

    async def async_query_child_info(self, force: bool = False) -> None:
        """Query the child's device info and hand it to the device.

        Args:
            force: Ignore the gap to the last query.

        """
        device = self._device
        if device is None:
            _LOGGER.debug("(%s) child info queried without device", self._uid)
            return

        self._last_error = NO_ERROR
        if not self.logged_in:
            _LOGGER.debug(
                "(%s) tried to query device info but not logged in", self._uid
            )
            await device.async_connect()
            return

        if not self._gate.try_pass(force):
            _LOGGER.debug(
                "(%s) info query not sent because of min gap %d ms",
                self._uid,
                self._gate.min_gap_ms,
            )
            return

        device_id = device.device_id or ""
        _LOGGER.debug("(%s) querying info for device_id %s", self._uid, device_id)
        body = await self._async_send(
            api.build_child_request(device_id, METHOD_GET_DEVICE_INFO)
        )
        if body is None:
            return

        child_result = api.extract_child_result(
            await self._async_get_json_from_response(body)
        )
        if PROPERTY_DEVICE_ID in child_result:
            self.device_info = DeviceInfo.from_json(child_result)
            await device.async_set_device_info(self.device_info)
        else:
            self.device_info = DeviceInfo()
            await device.async_handle_connection_state()

    async def async_query_child_status(self, force: bool = False) -> None:
        """Query the child's newest trigger log entry and publish it.

        Args:
            force: Ignore the gap to the last query.

        """
        device = self._device
        if device is None:
            _LOGGER.debug("(%s) child status queried without device", self._uid)
            return

        self._last_error = NO_ERROR
        if not self.logged_in:
            _LOGGER.debug(
                "(%s) tried to query device status but not logged in", self._uid
            )
            await device.async_connect()
            return

        if not self._gate.try_pass(force):
            _LOGGER.debug(
                "(%s) status query not sent because of min gap %d ms",
                self._uid,
                self._gate.min_gap_ms,
            )
            return

        device_id = device.device_id or ""
        _LOGGER.debug(
            "(%s) querying trigger logs for device_id %s", self._uid, device_id
        )
        params = {"page_size": 1, "start_id": 0, "device_id": device_id}
        body = await self._async_send(
            api.build_child_request(device_id, METHOD_GET_TRIGGER_LOGS, params)
        )
        if body is None:
            return

        child_result = api.extract_child_result(
            await self._async_get_json_from_response(body)
        )
        log_entry = api.extract_trigger_log(child_result)
        if log_entry is not None:
            device.set_event_data(EventRecord.from_json(log_entry))
        else:
            await device.async_handle_connection_state()

    async def async_get_device_list(self) -> list[dict[str, Any]]:
        """Return the raw child device list of the hub.

        Returns:
            The child_device_list entries, or an empty list on any error.

        """
        self._last_error = NO_ERROR
        body = await self._async_send(api.build_request(METHOD_GET_CHILD_DEVICE_LIST))
        if body is None:
            return []

        try:
            data = api.parse_response(body)
        except TapoError as err:
            _LOGGER.debug("(%s) unexpected device list response: %s", self._uid, body)
            await self._async_handle_error(err.to_state())
            return []

        error_code = api.get_error_code(data)
        if error_code != 0:
            _LOGGER.debug("(%s) device list request returned %d", self._uid, error_code)
            await self._async_handle_error(TapoErrorState.from_code(error_code))
            return []

        devices = api.extract_child_device_list(data)
        _LOGGER.debug("(%s) hub reported %d child devices", self._uid, len(devices))
        return devices

    async def _async_send(self, payload: dict[str, Any]) -> str | None:
        _LOGGER.debug("(%s) sending payload '%s'", self._uid, payload)
        try:
            return await self._channel.async_request(payload)
        except TapoError as err:
            _LOGGER.debug("(%s) request failed: %s", self._uid, err)
            await self._async_handle_error(err.to_state())
            return None

    async def _async_get_json_from_response(self, body: str) -> dict[str, Any]:
        """Unwrap a response body.

        A successful response yields its result object. A response with an
        error code is reported and returned unchanged, so callers must check
        for the fields they need.
        """
        try:
            data = api.parse_response(body)
        except TapoError as err:
            _LOGGER.debug("(%s) invalid response: %s", self._uid, body)
            await self._async_handle_error(err.to_state())
            return {}

        error_code = api.get_error_code(data)
        if error_code == 0:
            _LOGGER.debug("(%s) received result: %s", self._uid, body)
            return api.unwrap_result(data)

        state = TapoErrorState.from_code(error_code)
        _LOGGER.debug(
            "(%s) device answers with error code %d - %s",
            self._uid,
            error_code,
            state.message,
        )
        await self._async_handle_error(state)
        return data

    async def _async_handle_error(self, error: TapoErrorState) -> None:
        self._last_error = error
        await self._owner.async_set_error(error)
