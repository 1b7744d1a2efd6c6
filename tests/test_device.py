"""Tests for child devices and their connection state machine."""

from collections.abc import Mapping
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.tapo_hub.const import (
    CHANNEL_EVENT,
    CHANNEL_EVENT_DETAIL,
    CHANNEL_EVENT_TIMESTAMP,
    PROPERTY_FIRMWARE_VERSION,
    PROPERTY_MAC,
    PROPERTY_MODEL,
)
from custom_components.tapo_hub.device import TapoHubDevice
from custom_components.tapo_hub.errors import (
    ERR_CONF_CREDENTIALS,
    ERR_CONF_MISMATCH,
    ERR_DEVICE_OFFLINE,
    ERR_HTTP_RESPONSE,
    ERR_LOGIN,
    ERR_LOGIN_FAILED,
    ERR_NO_BRIDGE,
    ERR_SESSION_TIMEOUT,
    TapoErrorState,
    get_error_message,
)
from custom_components.tapo_hub.models import (
    DeviceInfo,
    DeviceStatus,
    EventDetail,
    EventKind,
    EventRecord,
    StatusDetail,
    TapoCredentials,
    TapoDeviceConfig,
)
from custom_components.tapo_hub.scheduler import PollingScheduler
from tests.conftest import (
    CHILD_DEVICE_ID,
    CHILD_MAC,
    CHILD_MODEL,
    HUB_HOST,
    FakeClock,
    FakeHub,
)

UNLISTED_CODE = 4242


class FakeDeviceHost:
    """Records what a device reports to its host."""

    def __init__(self, properties: dict[str, str] | None = None) -> None:
        """Initialize with optional identity properties."""
        self.status = DeviceStatus.UNKNOWN
        self.detail = StatusDetail.NONE
        self.message = ""
        self.properties: dict[str, str] = dict(properties or {})
        self.states: dict[str, Any] = {}
        self.status_updates: list[tuple[DeviceStatus, StatusDetail, str]] = []

    def update_status(
        self,
        status: DeviceStatus,
        detail: StatusDetail = StatusDetail.NONE,
        message: str = "",
    ) -> None:
        """Record a status change."""
        self.status = status
        self.detail = detail
        self.message = message
        self.status_updates.append((status, detail, message))

    def publish_state(self, channel: str, value: Any) -> None:
        """Record a channel value."""
        self.states[channel] = value

    def update_properties(self, properties: Mapping[str, str]) -> None:
        """Record properties."""
        self.properties.update(properties)


@pytest.fixture
def mock_hub(credentials: TapoCredentials) -> Mock:
    """Create a mock hub with valid settings."""
    hub = Mock()
    hub.credentials = credentials
    hub.ip_address = HUB_HOST
    hub.session = Mock(spec=httpx.AsyncClient)
    hub.async_set_error = AsyncMock()
    return hub


@pytest.fixture
def mock_scheduler() -> Mock:
    """Create a mock scheduler."""
    return Mock(spec=PollingScheduler)


@pytest.fixture
def host() -> FakeDeviceHost:
    """Create a host knowing the child's MAC and model."""
    return FakeDeviceHost({PROPERTY_MAC: CHILD_MAC, PROPERTY_MODEL: CHILD_MODEL})


@pytest.fixture
def device(mock_hub: Mock, host: FakeDeviceHost, mock_scheduler: Mock) -> TapoHubDevice:
    """Create a device attached to the mock hub."""
    return TapoHubDevice(
        "button", CHILD_DEVICE_ID, TapoDeviceConfig(), mock_hub, host, mock_scheduler
    )


@pytest.fixture
def mock_connector() -> Mock:
    """Create a mock connector."""
    connector = Mock()
    connector.async_login = AsyncMock(return_value=True)
    connector.async_query_child_info = AsyncMock()
    connector.async_query_child_status = AsyncMock()
    return connector


class TestAsyncInitialize:
    """Tests for async_initialize method."""

    @pytest.mark.asyncio
    async def test_without_hub_is_configuration_error(
        self, host: FakeDeviceHost, mock_scheduler: Mock
    ) -> None:
        """Test that a device without hub goes OFFLINE and does nothing."""
        device = TapoHubDevice(
            "button", CHILD_DEVICE_ID, TapoDeviceConfig(), None, host, mock_scheduler
        )
        await device.async_initialize()

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.CONFIGURATION_ERROR
        assert device.error.code == ERR_NO_BRIDGE
        assert device.connector is None
        mock_scheduler.schedule_once.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_credentials_is_configuration_error(
        self, mock_hub: Mock, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that missing credentials stop the initialization."""
        mock_hub.credentials = TapoCredentials()
        await device.async_initialize()

        assert host.status is DeviceStatus.OFFLINE
        assert host.message == get_error_message(ERR_CONF_CREDENTIALS)
        assert device.error.code == ERR_CONF_CREDENTIALS

    @pytest.mark.asyncio
    async def test_valid_settings_schedule_startup_and_query(
        self,
        host: FakeDeviceHost,
        device: TapoHubDevice,
        mock_scheduler: Mock,
        mock_connector: Mock,
    ) -> None:
        """Test that a valid device reports UNKNOWN and starts in background."""
        with patch(
            "custom_components.tapo_hub.device.TapoHubConnector",
            return_value=mock_connector,
        ):
            await device.async_initialize()

        assert host.status_updates[0] == (DeviceStatus.UNKNOWN, StatusDetail.NONE, "")
        delay, _, name = mock_scheduler.schedule_once.call_args.args
        assert delay == 2.0
        assert name == "startup"
        mock_connector.async_query_child_info.assert_awaited_once_with(False)
        mock_connector.async_query_child_status.assert_awaited_once_with(False)


class TestConnectionState:
    """Tests for async_handle_connection_state method."""

    @pytest.fixture(autouse=True)
    def _patch_connector(self, mock_connector: Mock) -> Any:
        with patch(
            "custom_components.tapo_hub.device.TapoHubConnector",
            return_value=mock_connector,
        ):
            yield

    @pytest.mark.asyncio
    async def test_success_sets_online_once(
        self, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that success reports ONLINE without repeating it."""
        await device.async_initialize()
        await device.async_handle_connection_state()
        await device.async_handle_connection_state()

        online = [u for u in host.status_updates if u[0] is DeviceStatus.ONLINE]
        assert len(online) == 1

    @pytest.mark.asyncio
    async def test_reauth_code_reconnects(
        self, device: TapoHubDevice, mock_connector: Mock
    ) -> None:
        """Test that a session timeout triggers a new login."""
        await device.async_initialize()
        mock_connector.async_login.reset_mock()

        await device.async_set_error(TapoErrorState.from_code(ERR_SESSION_TIMEOUT))

        mock_connector.async_login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_communication_error_goes_offline_and_logs_out(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_connector: Mock
    ) -> None:
        """Test that communication errors drop the session."""
        await device.async_initialize()
        await device.async_set_error(TapoErrorState.from_code(ERR_DEVICE_OFFLINE))

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.COMMUNICATION_ERROR
        assert host.message == get_error_message(ERR_DEVICE_OFFLINE)
        mock_connector.logout.assert_called_once()

    @pytest.mark.asyncio
    async def test_configuration_error_goes_offline(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_connector: Mock
    ) -> None:
        """Test that configuration errors do not retry."""
        await device.async_initialize()
        mock_connector.async_login.reset_mock()
        await device.async_set_error(TapoErrorState.from_code(ERR_LOGIN_FAILED))

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.CONFIGURATION_ERROR
        mock_connector.async_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_code_sets_unknown(
        self, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that unlisted codes report UNKNOWN with the message."""
        await device.async_initialize()
        await device.async_set_error(TapoErrorState.from_code(UNLISTED_CODE))

        assert host.status is DeviceStatus.UNKNOWN
        assert host.message == get_error_message(UNLISTED_CODE)

    @pytest.mark.asyncio
    async def test_failed_login_is_communication_error(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_connector: Mock
    ) -> None:
        """Test that a failed login reports OFFLINE with the login message."""
        await device.async_initialize()
        mock_connector.async_login.return_value = False

        assert await device.async_connect() is False
        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.COMMUNICATION_ERROR
        assert host.message == get_error_message(ERR_LOGIN)

    @pytest.mark.asyncio
    async def test_unexpected_error_while_connecting_sets_unknown(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_connector: Mock
    ) -> None:
        """Test that unexpected exceptions are contained."""
        await device.async_initialize()
        mock_connector.async_login.side_effect = RuntimeError("boom")

        assert await device.async_connect() is False
        assert host.status is DeviceStatus.UNKNOWN


class TestDeviceIdentity:
    """Tests for async_set_device_info and is_expected_device."""

    @pytest.mark.asyncio
    async def test_matching_mac_in_other_format_is_accepted(
        self, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that MACs are compared without separators."""
        info = DeviceInfo(
            device_id=CHILD_DEVICE_ID,
            model=CHILD_MODEL,
            mac="a842a1001122",
            firmware_version="1.2.0",
        )
        await device.async_set_device_info(info)

        assert device.device_info == info
        assert host.properties[PROPERTY_FIRMWARE_VERSION] == "1.2.0"
        assert host.status is DeviceStatus.ONLINE

    @pytest.mark.asyncio
    async def test_other_mac_is_rejected(
        self, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that a device with another MAC is not applied."""
        info = DeviceInfo(model="T110", mac="00-00-00-00-00-01", firmware_version="9")
        await device.async_set_device_info(info)

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.CONFIGURATION_ERROR
        assert host.message == (
            "found type:'T110' with mac:'00-00-00-00-00-01'. Check IP-Address"
        )
        assert device.error.code == ERR_CONF_MISMATCH
        assert device.device_info == DeviceInfo()
        assert PROPERTY_FIRMWARE_VERSION not in host.properties

    def test_model_is_compared_without_mac(
        self, mock_hub: Mock, mock_scheduler: Mock
    ) -> None:
        """Test that the model decides when no MAC is known."""
        host = FakeDeviceHost({PROPERTY_MODEL: CHILD_MODEL})
        device = TapoHubDevice(
            "button", CHILD_DEVICE_ID, TapoDeviceConfig(), mock_hub, host, mock_scheduler
        )
        assert device.is_expected_device(DeviceInfo(model=CHILD_MODEL))
        assert not device.is_expected_device(DeviceInfo(model="T110"))

    def test_any_device_is_accepted_without_identity(
        self, mock_hub: Mock, mock_scheduler: Mock
    ) -> None:
        """Test that a host without identity accepts any device."""
        device = TapoHubDevice(
            "button",
            CHILD_DEVICE_ID,
            TapoDeviceConfig(),
            mock_hub,
            FakeDeviceHost(),
            mock_scheduler,
        )
        assert device.is_expected_device(DeviceInfo(model="T110", mac="01"))

    @pytest.mark.asyncio
    async def test_first_accepted_info_becomes_identity(
        self, mock_hub: Mock, mock_scheduler: Mock
    ) -> None:
        """Test that info accepted without identity pins the device's MAC."""
        host = FakeDeviceHost()
        device = TapoHubDevice(
            "button", CHILD_DEVICE_ID, TapoDeviceConfig(), mock_hub, host, mock_scheduler
        )
        await device.async_set_device_info(DeviceInfo(model=CHILD_MODEL, mac=CHILD_MAC))
        assert host.properties[PROPERTY_MAC] == CHILD_MAC

        await device.async_set_device_info(DeviceInfo(model="T110", mac="01"))

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.CONFIGURATION_ERROR
        assert host.properties[PROPERTY_MODEL] == CHILD_MODEL


class TestEventDataAndDisposal:
    """Tests for set_event_data and async_dispose."""

    def test_set_event_data_publishes_channels(
        self, host: FakeDeviceHost, device: TapoHubDevice
    ) -> None:
        """Test that an event is published on three channels."""
        device.set_event_data(
            EventRecord(EventKind.ROTATION, EventDetail.CLOCKWISE, 1700000000)
        )
        assert host.states == {
            CHANNEL_EVENT: EventKind.ROTATION,
            CHANNEL_EVENT_DETAIL: EventDetail.CLOCKWISE,
            CHANNEL_EVENT_TIMESTAMP: 1700000000,
        }

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent_and_silences_device(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_scheduler: Mock
    ) -> None:
        """Test that a disposed device ignores further input."""
        await device.async_dispose()
        await device.async_dispose()

        assert device.disposed
        assert mock_scheduler.cancel_all.call_count == 2
        device.set_event_data(EventRecord(EventKind.SINGLE_CLICK))
        await device.async_set_error(TapoErrorState.from_code(ERR_DEVICE_OFFLINE))
        assert host.states == {}
        assert host.status_updates == []

    @pytest.mark.asyncio
    async def test_dispose_before_startup_leaves_no_jobs(
        self, mock_hub: Mock, host: FakeDeviceHost, mock_connector: Mock
    ) -> None:
        """Test that disposing before the startup job fired cancels its timer."""
        unsub = Mock()
        scheduler = PollingScheduler(Mock(), "button")
        device = TapoHubDevice(
            "button", CHILD_DEVICE_ID, TapoDeviceConfig(), mock_hub, host, scheduler
        )
        with (
            patch(
                "custom_components.tapo_hub.scheduler.async_call_later",
                return_value=unsub,
            ),
            patch(
                "custom_components.tapo_hub.device.TapoHubConnector",
                return_value=mock_connector,
            ),
        ):
            await device.async_initialize()
            assert len(scheduler.jobs) == 1

            await device.async_dispose()

        assert scheduler.jobs == []
        unsub.assert_called_once()
        assert host.status is DeviceStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_initialize_after_dispose_does_nothing(
        self, host: FakeDeviceHost, device: TapoHubDevice, mock_scheduler: Mock
    ) -> None:
        """Test that a device disposed before its start stays inactive."""
        await device.async_dispose()
        await device.async_initialize()

        assert device.connector is None
        mock_scheduler.schedule_once.assert_not_called()
        assert host.status_updates == []


@pytest.mark.usefixtures("mock_ping")
class TestDeviceWithHub:
    """End-to-end tests against a simulated hub."""

    @pytest.fixture(autouse=True)
    def _patch_clock(self, fake_clock: FakeClock) -> Any:
        with patch(
            "custom_components.tapo_hub.throttle.time.monotonic_ns",
            side_effect=lambda: fake_clock.now * 1_000_000,
        ):
            yield

    @pytest.fixture
    def hub_host(
        self,
        httpx_mock: HTTPXMock,
        fake_hub: FakeHub,
        sample_device_info: dict[str, Any],
        sample_trigger_logs: dict[str, Any],
    ) -> FakeDeviceHost:
        """Serve a button through the simulated hub."""
        fake_hub.child_reply("get_device_info", sample_device_info)
        fake_hub.child_reply("get_trigger_logs", sample_trigger_logs)
        httpx_mock.add_callback(fake_hub, is_reusable=True)
        return FakeDeviceHost(
            {PROPERTY_MAC: "a8:42:a1:00:11:22", PROPERTY_MODEL: CHILD_MODEL}
        )

    @staticmethod
    def _create_device(
        session: httpx.AsyncClient,
        mock_hub: Mock,
        host: FakeDeviceHost,
        mock_scheduler: Mock,
    ) -> TapoHubDevice:
        mock_hub.session = session
        return TapoHubDevice(
            "button",
            CHILD_DEVICE_ID,
            TapoDeviceConfig(),
            mock_hub,
            host,
            mock_scheduler,
        )

    @pytest.mark.asyncio
    async def test_device_goes_online_and_publishes_events(
        self,
        fake_hub: FakeHub,
        fake_clock: FakeClock,
        hub_host: FakeDeviceHost,
        mock_hub: Mock,
        mock_scheduler: Mock,
        sample_trigger_logs: dict[str, Any],
    ) -> None:
        """Test login, identity check, event polling, failure and recovery."""
        host = hub_host
        async with httpx.AsyncClient() as session:
            device = self._create_device(session, mock_hub, host, mock_scheduler)
            await device.async_initialize()

            assert host.status is DeviceStatus.ONLINE
            assert host.properties[PROPERTY_MAC] == CHILD_MAC
            assert fake_hub.methods() == ["login_device", "get_device_info"]

            await device.async_query_device_status(force=True)
            assert host.states[CHANNEL_EVENT] is EventKind.ROTATION
            assert host.states[CHANNEL_EVENT_DETAIL] is EventDetail.ANTICLOCKWISE

            fake_hub.reply("get_trigger_logs", {"error_code": -1003})
            await device.async_query_device_status(force=True)

            assert host.status is DeviceStatus.OFFLINE
            assert host.detail is StatusDetail.COMMUNICATION_ERROR
            assert device.connector is not None
            assert not device.connector.logged_in

            fake_hub.child_reply("get_trigger_logs", sample_trigger_logs)
            fake_clock.advance(6000)
            await device.async_query_device_status()

        assert host.status is DeviceStatus.ONLINE
        assert device.connector.logged_in
        assert fake_hub.handshakes == 2

    @pytest.mark.asyncio
    async def test_undecryptable_reply_drops_session(
        self,
        fake_hub: FakeHub,
        hub_host: FakeDeviceHost,
        mock_hub: Mock,
        mock_scheduler: Mock,
    ) -> None:
        """Test that a payload that does not decrypt takes the device offline."""
        host = hub_host
        async with httpx.AsyncClient() as session:
            device = self._create_device(session, mock_hub, host, mock_scheduler)
            await device.async_initialize()
            assert host.status is DeviceStatus.ONLINE

            fake_hub.corrupt.add("get_trigger_logs")
            await device.async_query_device_status(force=True)

        assert host.status is DeviceStatus.OFFLINE
        assert host.detail is StatusDetail.COMMUNICATION_ERROR
        assert device.error.code == ERR_HTTP_RESPONSE
        assert device.connector is not None
        assert not device.connector.logged_in
        assert CHANNEL_EVENT not in host.states

    @pytest.mark.asyncio
    async def test_session_timeout_logs_in_again(
        self,
        fake_hub: FakeHub,
        fake_clock: FakeClock,
        hub_host: FakeDeviceHost,
        mock_hub: Mock,
        mock_scheduler: Mock,
    ) -> None:
        """Test that a session timeout from the hub leads to a new handshake."""
        host = hub_host
        async with httpx.AsyncClient() as session:
            device = self._create_device(session, mock_hub, host, mock_scheduler)
            await device.async_initialize()
            assert fake_hub.handshakes == 1

            fake_hub.reply("get_trigger_logs", {"error_code": ERR_SESSION_TIMEOUT})
            fake_clock.advance(6000)
            await device.async_query_device_status()

        assert fake_hub.handshakes == 2
        assert fake_hub.methods().count("login_device") == 2
        assert device.connector is not None
        assert device.connector.logged_in
        assert host.status is DeviceStatus.ONLINE
