"""API helpers for the Tapo hub's local HTTP protocol.

This module builds request payloads, performs the raw HTTP exchanges
(handshake and secure passthrough) and unwraps response envelopes.
Session state lives in :mod:`.channel`.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import hashlib
import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    HTTP_TIMEOUT,
    HUB_API_PATH,
    HUB_HTTP_PORT,
    METHOD_CONTROL_CHILD,
    METHOD_HANDSHAKE,
    METHOD_SECURE_PASSTHROUGH,
    SESSION_COOKIE_NAME,
)
from .errors import (
    ERR_SUCCESS,
    TapoDeviceErrorCode,
    TapoHttpResponseError,
    TapoRequestError,
)

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .cipher import TapoCipher
    from .models import TapoCredentials

_LOGGER = logging.getLogger(__name__)

HTTP_OK = 200


def _request_time_ms() -> int:
    return int(time.time() * 1000)


def build_request(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a top-level request payload.

    Args:
        method: Protocol method name.
        params: Optional method parameters.

    Returns:
        Payload dictionary with method, params and request time.

    """
    payload: dict[str, Any] = {"method": method}
    if params:
        payload["params"] = params
    payload["requestTimeMils"] = _request_time_ms()
    return payload


def build_child_request(
    device_id: str,
    method: str,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a control_child request addressed to a child device.

    Args:
        device_id: Identifier of the child device.
        method: Method executed by the child.
        params: Optional parameters of the child method.

    Returns:
        Payload dictionary wrapping the child request.

    """
    request_data: dict[str, Any] = {"method": method}
    if params:
        request_data["params"] = params

    return {
        "method": METHOD_CONTROL_CHILD,
        "params": {
            "requestData": request_data,
            "device_id": device_id,
        },
        "requestTimeMils": _request_time_ms(),
    }


def build_secure_passthrough(encrypted_request: str) -> dict[str, Any]:
    """Wrap an encrypted request in the securePassthrough envelope."""
    return {
        "method": METHOD_SECURE_PASSTHROUGH,
        "params": {"request": encrypted_request},
    }


def build_login_params(credentials: TapoCredentials) -> dict[str, str]:
    """Encode credentials the way the hub expects them for login_device.

    The username is sent as the base64 of its SHA1 hex digest, the
    password as plain base64.
    """
    username_digest = hashlib.sha1(  # noqa: S324
        credentials.username.encode("utf-8")
    ).hexdigest()
    return {
        "username": base64.b64encode(username_digest.encode("utf-8")).decode("utf-8"),
        "password": base64.b64encode(credentials.password.encode("utf-8")).decode(
            "utf-8"
        ),
    }


def create_hub_url(host: str, token: str | None = None) -> str:
    """Create the URL of the hub API, with the session token once known."""
    url = f"http://{host}{HUB_API_PATH}"
    if token:
        url = f"{url}?token={token}"
    return url


def create_headers(cookie: str | None = None) -> dict[str, str]:
    """Create HTTP headers for hub requests.

    Args:
        cookie: Optional session cookie value from the handshake.

    Returns:
        Dictionary containing HTTP headers.

    """
    headers = {
        "content-type": "application/json",
        "accept": "application/json",
    }
    if cookie:
        headers["Cookie"] = f"{SESSION_COOKIE_NAME}={cookie}"
    return headers


def parse_response(body: str) -> dict[str, Any]:
    """Parse a response body into a JSON object.

    Raises:
        TapoHttpResponseError: If the body is not a JSON object.

    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as err:
        error_msg = f"Invalid JSON response: {err}"
        raise TapoHttpResponseError(error_msg) from err

    if not isinstance(data, dict):
        error_msg = f"Unexpected response type: {type(data).__name__}"
        raise TapoHttpResponseError(error_msg)
    return data


def get_error_code(data: dict[str, Any]) -> int:
    """Return the top-level error code of a response, 0 if absent."""
    try:
        return int(data.get("error_code", ERR_SUCCESS))
    except (TypeError, ValueError):
        return ERR_SUCCESS


def is_api_error(data: dict[str, Any]) -> bool:
    """Check if a response carries a non-zero error code."""
    return get_error_code(data) != ERR_SUCCESS


def unwrap_result(data: dict[str, Any]) -> dict[str, Any]:
    """Return the result object of a successful response.

    Responses without a result object are returned whole.
    """
    result = data.get("result")
    if isinstance(result, dict):
        return result
    return data


def extract_child_result(data: dict[str, Any]) -> dict[str, Any]:
    """Extract responseData.result from an unwrapped control_child response.

    Returns an empty dictionary when the nested result is missing, which is
    the case for error responses.
    """
    response_data = data.get("responseData")
    if not isinstance(response_data, dict):
        return {}
    result = response_data.get("result")
    return result if isinstance(result, dict) else {}


def extract_trigger_log(child_result: dict[str, Any]) -> dict[str, Any] | None:
    """Return the newest trigger log entry of a child result, if any."""
    logs = child_result.get("logs")
    if isinstance(logs, list) and logs and isinstance(logs[0], dict):
        return logs[0]
    return None


def extract_child_device_list(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Extract result.child_device_list from a get_child_device_list response."""
    result = data.get("result")
    if not isinstance(result, dict):
        return []
    devices = result.get("child_device_list", [])
    if not isinstance(devices, list):
        return []
    return [d for d in devices if isinstance(d, dict)]


def validate_http_status(response: httpx.Response) -> None:
    """Raise if the hub did not answer with HTTP 200.

    Raises:
        TapoHttpResponseError: For any other status code.

    """
    if response.status_code != HTTP_OK:
        error_msg = f"Request failed: {response.status_code}"
        raise TapoHttpResponseError(error_msg)


def validate_api_status(data: dict[str, Any]) -> dict[str, Any]:
    """Return the result object, raising on a non-zero error code.

    Raises:
        TapoDeviceErrorCode: If the hub reported an error.

    """
    error_code = get_error_code(data)
    if error_code != ERR_SUCCESS:
        raise TapoDeviceErrorCode(error_code)
    return unwrap_result(data)


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for hub requests.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=HTTP_TIMEOUT)
    # hub calls are all POST requests
    retry = Retry(total=2, backoff_factor=0.5, allowed_methods=frozenset({"POST"}))
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


async def async_ping(host: str, timeout_ms: int, port: int = HUB_HTTP_PORT) -> bool:
    """Check that the hub accepts TCP connections on its HTTP port.

    Args:
        host: Hub address.
        timeout_ms: Maximum time to wait for the connection.
        port: Port to probe.

    Returns:
        True if the connection was established within the timeout.

    """
    try:
        async with asyncio.timeout(timeout_ms / 1000):
            _, writer = await asyncio.open_connection(host, port)
    except (OSError, TimeoutError) as err:
        _LOGGER.debug("Ping to %s:%d failed: %s", host, port, err)
        return False

    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True


async def async_post(
    session: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    cookie: str | None = None,
) -> httpx.Response:
    """POST a JSON payload to the hub.

    Raises:
        TapoRequestError: If the HTTP round trip fails.
        TapoHttpResponseError: If the hub answers with a non-200 status.

    """
    try:
        response = await session.post(url, headers=create_headers(cookie), json=payload)
    except httpx.RequestError as err:
        error_msg = f"Request to {url} failed: {err}"
        raise TapoRequestError(error_msg) from err

    validate_http_status(response)
    return response


async def async_handshake(
    session: httpx.AsyncClient,
    host: str,
    public_key_pem: str,
) -> tuple[str, str]:
    """Exchange the public key for an encrypted session key and cookie.

    Args:
        session: HTTP client session.
        host: Hub address.
        public_key_pem: RSA public key in PEM format.

    Returns:
        Tuple of (encrypted session key, session cookie). The cookie is
        empty if the hub did not set one.

    Raises:
        TapoRequestError: If the HTTP round trip fails.
        TapoHttpResponseError: If the response is malformed.
        TapoDeviceErrorCode: If the hub rejected the handshake.

    """
    payload = build_request(METHOD_HANDSHAKE, {"key": public_key_pem})

    _LOGGER.debug("Sending handshake to %s", host)
    response = await async_post(session, create_hub_url(host), payload)
    result = validate_api_status(parse_response(response.text))

    encrypted_key = result.get("key")
    if not encrypted_key:
        error_msg = "Handshake response without key"
        raise TapoHttpResponseError(error_msg)

    cookie = response.cookies.get(SESSION_COOKIE_NAME) or ""
    return str(encrypted_key), cookie


async def async_secure_passthrough(
    session: httpx.AsyncClient,
    url: str,
    cipher: TapoCipher,
    payload: dict[str, Any],
    cookie: str,
) -> str:
    """Send an encrypted request and return the decrypted response body.

    If the outer envelope carries a non-zero error code there is nothing to
    decrypt and the outer body is returned as is, so the caller can
    classify the error.

    Raises:
        TapoRequestError: If the HTTP round trip fails.
        TapoHttpResponseError: If the response cannot be parsed or decrypted.

    """
    encrypted = cipher.encrypt(json.dumps(payload))
    response = await async_post(
        session, url, build_secure_passthrough(encrypted), cookie
    )
    outer = parse_response(response.text)
    if is_api_error(outer):
        return response.text

    inner = unwrap_result(outer).get("response")
    if not isinstance(inner, str):
        error_msg = "Secure passthrough response without payload"
        raise TapoHttpResponseError(error_msg)
    return cipher.decrypt(inner)
