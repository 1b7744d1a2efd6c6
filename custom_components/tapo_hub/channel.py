"""Secure passthrough session with a Tapo hub."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from . import api
from .cipher import TapoKeyPair
from .const import LOGIN_MIN_GAP_MS, METHOD_LOGIN_DEVICE, PING_TIMEOUT_MS
from .errors import TapoDeviceOfflineError, TapoError, TapoHttpResponseError
from .throttle import QueryGate, monotonic_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from .cipher import TapoCipher
    from .models import TapoCredentials

_LOGGER = logging.getLogger(__name__)


class ChannelState(StrEnum):
    """Login progress of a secure channel."""

    LOGGED_OUT = "logged_out"
    HANDSHAKING = "handshaking"
    TOKEN_PENDING = "token_pending"
    LOGGED_IN = "logged_in"


class TapoSecureChannel:
    """Owns the handshake cookie, session cipher and token for one hub.

    Login attempts are throttled by LOGIN_MIN_GAP_MS: a login requested
    within the gap does nothing and reports the current state.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        host: str,
        credentials: TapoCredentials,
        uid: str = "",
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """Initialize the channel.

        Args:
            session: HTTP client session.
            host: Hub address.
            credentials: Account credentials used for login_device.
            uid: Identifier used in log messages.
            clock: Millisecond clock, replaceable in tests.

        """
        self._session = session
        self._host = host
        self._credentials = credentials
        self._uid = uid or host
        self._login_gate = QueryGate(LOGIN_MIN_GAP_MS, clock)
        self._cookie = ""
        self._token = ""
        self._cipher: TapoCipher | None = None
        self._state = ChannelState.LOGGED_OUT

    @property
    def host(self) -> str:
        """Return the hub address."""
        return self._host

    @property
    def cookie(self) -> str:
        """Return the session cookie."""
        return self._cookie

    @property
    def token(self) -> str:
        """Return the session token."""
        return self._token

    @property
    def state(self) -> ChannelState:
        """Return the login progress."""
        return self._state

    @property
    def logged_in(self) -> bool:
        """Return True if both cookie and token are set."""
        return bool(self._cookie) and bool(self._token)

    @property
    def url(self) -> str:
        """Return the request URL for the current session."""
        return api.create_hub_url(self._host, self._token)

    async def async_login(self) -> bool:
        """Log in to the hub.

        Returns:
            True if the channel is logged in afterwards.

        Raises:
            TapoDeviceOfflineError: If the hub does not answer the ping.
            TapoError: If handshake or token exchange fail.

        """
        if not self._login_gate.try_pass():
            _LOGGER.debug(
                "(%s) login skipped, min gap %d ms not elapsed",
                self._uid,
                LOGIN_MIN_GAP_MS,
            )
            return self.logged_in

        self.logout()

        if not await api.async_ping(self._host, PING_TIMEOUT_MS):
            _LOGGER.debug("(%s) no ping while login '%s'", self._uid, self._host)
            self._login_gate.reset()
            error_msg = "no ping while login"
            raise TapoDeviceOfflineError(error_msg)

        _LOGGER.debug("(%s) sending login to '%s'", self._uid, self._host)
        try:
            cookie = await self._async_handshake()
            if cookie:
                self._cookie = cookie
                self._state = ChannelState.TOKEN_PENDING
                self._token = await self._async_query_token()
            else:
                _LOGGER.debug("(%s) handshake returned no cookie", self._uid)
                self.logout()
        except TapoError:
            self.logout()
            raise

        if self.logged_in:
            self._state = ChannelState.LOGGED_IN
            _LOGGER.debug("(%s) logged in", self._uid)
        return self.logged_in

    def logout(self) -> None:
        """Clear cookie, token and cipher."""
        self._cookie = ""
        self._token = ""
        self._cipher = None
        self._state = ChannelState.LOGGED_OUT

    def encrypt(self, payload: str) -> str:
        """Encrypt a payload with the session cipher.

        Raises:
            TapoHttpResponseError: If there is no session.

        """
        return self._require_cipher().encrypt(payload)

    def decrypt(self, payload: str) -> str:
        """Decrypt a payload with the session cipher.

        Raises:
            TapoHttpResponseError: If there is no session or decryption fails.

        """
        return self._require_cipher().decrypt(payload)

    async def async_request(self, payload: dict[str, Any]) -> str:
        """Send a payload through the secure passthrough channel.

        Returns:
            The decrypted response body, or the outer body if the hub
            reported an error on the envelope.

        """
        return await api.async_secure_passthrough(
            self._session,
            self.url,
            self._require_cipher(),
            payload,
            self._cookie,
        )

    async def _async_handshake(self) -> str:
        self._state = ChannelState.HANDSHAKING
        key_pair = TapoKeyPair()
        encrypted_key, cookie = await api.async_handshake(
            self._session, self._host, key_pair.public_key_pem
        )
        self._cipher = key_pair.decrypt_session_key(encrypted_key)
        return cookie

    async def _async_query_token(self) -> str:
        payload = api.build_request(
            METHOD_LOGIN_DEVICE, api.build_login_params(self._credentials)
        )
        body = await self.async_request(payload)
        result = api.validate_api_status(api.parse_response(body))
        return str(result.get("token", ""))

    def _require_cipher(self) -> TapoCipher:
        if self._cipher is None:
            error_msg = "no session established"
            raise TapoHttpResponseError(error_msg)
        return self._cipher
