"""Pytest configuration and fixtures for Tapo Hub tests."""

import base64
import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.padding import PKCS1v15

from custom_components.tapo_hub.cipher import TapoCipher
from custom_components.tapo_hub.models import TapoCredentials

HUB_HOST = "192.168.1.50"
HUB_URL = f"http://{HUB_HOST}/app"
SESSION_KEY = bytes(range(16))
SESSION_IV = bytes(range(16, 32))
SESSION_COOKIE = "session123"
SESSION_TOKEN = "token456"
CHILD_DEVICE_ID = "802E0000CHILD"
CHILD_MAC = "A8-42-A1-00-11-22"
CHILD_MODEL = "S200B"


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = 100_000) -> None:
        """Initialize the clock."""
        self.now = now

    def __call__(self) -> int:
        """Return the current time."""
        return self.now

    def advance(self, ms: int) -> None:
        """Move the clock forward."""
        self.now += ms


class FakeHub:
    """Answers handshake and secure passthrough requests like a Tapo hub.

    Child responses are looked up by the child method name, top-level
    responses by the method name. Every decrypted request is recorded.
    Methods listed in ``corrupt`` are answered with a payload that does
    not decrypt.
    """

    def __init__(self) -> None:
        """Initialize the hub with default replies."""
        self.cipher = TapoCipher(SESSION_KEY, SESSION_IV)
        self.cookie = SESSION_COOKIE
        self.token = SESSION_TOKEN
        self.handshakes = 0
        self.requests: list[dict[str, Any]] = []
        self.corrupt: set[str] = set()
        self.replies: dict[str, dict[str, Any]] = {
            "login_device": {"error_code": 0, "result": {"token": self.token}},
        }

    def reply(self, method: str, response: dict[str, Any]) -> None:
        """Set the decrypted reply for a method."""
        self.replies[method] = response

    def child_reply(self, method: str, result: dict[str, Any]) -> None:
        """Set a successful control_child reply for a child method."""
        self.replies[method] = {
            "error_code": 0,
            "result": {"responseData": {"error_code": 0, "result": result}},
        }

    def methods(self) -> list[str]:
        """Return the method names of the recorded requests."""
        names = []
        for request in self.requests:
            if request["method"] == "control_child":
                names.append(request["params"]["requestData"]["method"])
            else:
                names.append(request["method"])
        return names

    def __call__(self, request: httpx.Request) -> httpx.Response:
        """Handle one HTTP request."""
        body = json.loads(request.content)
        if body["method"] == "handshake":
            self.handshakes += 1
            public_key = serialization.load_pem_public_key(
                body["params"]["key"].encode("utf-8")
            )
            encrypted = public_key.encrypt(SESSION_KEY + SESSION_IV, PKCS1v15())
            return httpx.Response(
                200,
                json={
                    "error_code": 0,
                    "result": {"key": base64.b64encode(encrypted).decode("utf-8")},
                },
                headers=(
                    {"Set-Cookie": f"TP_SESSIONID={self.cookie}"} if self.cookie else {}
                ),
            )

        inner = json.loads(self.cipher.decrypt(body["params"]["request"]))
        self.requests.append(inner)
        method = inner["method"]
        if method == "control_child":
            method = inner["params"]["requestData"]["method"]
        response = self.replies.get(method, {"error_code": -1003})
        if method in self.corrupt:
            payload = base64.b64encode(b"junk!").decode("utf-8")
        else:
            payload = self.cipher.encrypt(json.dumps(response))
        return httpx.Response(
            200, json={"error_code": 0, "result": {"response": payload}}
        )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fixture providing a hand-driven millisecond clock."""
    return FakeClock()


@pytest.fixture
def fake_hub() -> FakeHub:
    """Fixture providing a simulated hub."""
    return FakeHub()


@pytest.fixture
def credentials() -> TapoCredentials:
    """Fixture providing valid account credentials."""
    return TapoCredentials("user@example.com", "secret")


@pytest.fixture
def mock_ping() -> Iterator[AsyncMock]:
    """Fixture making the hub answer every reachability check."""
    with patch(
        "custom_components.tapo_hub.api.async_ping",
        new=AsyncMock(return_value=True),
    ) as ping:
        yield ping


@pytest.fixture
def sample_device_info() -> dict[str, Any]:
    """Fixture providing a get_device_info result of a smart button.

    Returns:
        A dictionary as found in responseData.result.

    """
    return {
        "device_id": CHILD_DEVICE_ID,
        "model": CHILD_MODEL,
        "mac": CHILD_MAC,
        "fw_ver": "1.12.0 Build 230209",
        "hw_ver": "1.0",
        "hw_id": "HWID0001",
        "nickname": base64.b64encode(b"Hallway button").decode("utf-8"),
        "type": "SMART.TAPOSENSOR",
        "rssi": -52,
        "at_low_battery": False,
    }


@pytest.fixture
def sample_trigger_logs() -> dict[str, Any]:
    """Fixture providing a get_trigger_logs result with one rotation.

    Returns:
        A dictionary as found in responseData.result.

    """
    return {
        "start_id": 12,
        "sum": 12,
        "logs": [
            {
                "event": "rotation",
                "id": 12,
                "timestamp": 1700000000,
                "params": {"rotate_deg": -30},
            }
        ],
    }


@pytest.fixture
def sample_child_device_list() -> dict[str, Any]:
    """Fixture providing a get_child_device_list reply.

    Returns:
        A dictionary as returned by the hub.

    """
    return {
        "error_code": 0,
        "result": {
            "child_device_list": [
                {
                    "device_id": CHILD_DEVICE_ID,
                    "model": CHILD_MODEL,
                    "mac": CHILD_MAC,
                    "nickname": base64.b64encode(b"Hallway button").decode("utf-8"),
                    "category": "subg.trigger.button",
                    "fw_ver": "1.12.0 Build 230209",
                },
                {"device_id": "", "model": "S200D"},
            ],
            "start_index": 0,
            "sum": 2,
        },
    }
