"""Error codes, classification and exceptions for the Tapo Hub integration.

Error codes come from two sources: codes reported by the hub in the
``error_code`` field of a response, and local codes (1000 and above) raised
by the integration itself. Every code maps to exactly one category, which
drives the connection state of the hub and its child devices.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

# Success
ERR_SUCCESS = 0

# Codes reported by the hub
ERR_SESSION_TIMEOUT = 9999
ERR_SESSION_PARAM = -1012
ERR_LOGIN_FAILED = -1501
ERR_JSON_DECODE_FAIL = -1003
ERR_AES_DECODE_FAIL = -1005
ERR_INVALID_PUBLIC_KEY = -1010
ERR_HANDSHAKE_FAILED = -40401

# Local codes
ERR_NO_BRIDGE = 1000
ERR_HTTP_RESPONSE = 1001
ERR_LOGIN = 1002
ERR_DEVICE_OFFLINE = 1003
ERR_HTTP_REQUEST = 1004
ERR_CONF_IP = 1100
ERR_CONF_CREDENTIALS = 1111
ERR_CONF_MISMATCH = 1112


class ErrorCategory(StrEnum):
    """How an error code affects the connection state."""

    SUCCESS = "success"
    REAUTH = "reauth"
    COMMUNICATION = "communication"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


SUCCESS_CODES = frozenset({ERR_SUCCESS})
REAUTH_CODES = frozenset({ERR_SESSION_TIMEOUT, ERR_LOGIN, ERR_SESSION_PARAM})
COMMUNICATION_CODES = frozenset(
    {
        ERR_HTTP_RESPONSE,
        ERR_DEVICE_OFFLINE,
        ERR_HTTP_REQUEST,
        ERR_JSON_DECODE_FAIL,
        ERR_AES_DECODE_FAIL,
        ERR_INVALID_PUBLIC_KEY,
        ERR_HANDSHAKE_FAILED,
    }
)
CONFIGURATION_CODES = frozenset(
    {
        ERR_NO_BRIDGE,
        ERR_CONF_IP,
        ERR_CONF_CREDENTIALS,
        ERR_CONF_MISMATCH,
        ERR_LOGIN_FAILED,
    }
)

_CATEGORY_TABLE: tuple[tuple[frozenset[int], ErrorCategory], ...] = (
    (SUCCESS_CODES, ErrorCategory.SUCCESS),
    (REAUTH_CODES, ErrorCategory.REAUTH),
    (COMMUNICATION_CODES, ErrorCategory.COMMUNICATION),
    (CONFIGURATION_CODES, ErrorCategory.CONFIGURATION),
)

_ERROR_MESSAGES = {
    ERR_SUCCESS: "",
    ERR_SESSION_TIMEOUT: "session timed out",
    ERR_SESSION_PARAM: "invalid session parameters",
    ERR_LOGIN_FAILED: "login failed, check credentials",
    ERR_JSON_DECODE_FAIL: "device could not decode request",
    ERR_AES_DECODE_FAIL: "device could not decrypt request",
    ERR_INVALID_PUBLIC_KEY: "device rejected public key",
    ERR_HANDSHAKE_FAILED: "handshake failed",
    ERR_NO_BRIDGE: "no hub configured",
    ERR_HTTP_RESPONSE: "invalid response from device",
    ERR_LOGIN: "login required",
    ERR_DEVICE_OFFLINE: "device is offline",
    ERR_HTTP_REQUEST: "request to device failed",
    ERR_CONF_IP: "ip address not set",
    ERR_CONF_CREDENTIALS: "credentials not set",
    ERR_CONF_MISMATCH: "device does not match configuration",
}


def classify(code: int) -> ErrorCategory:
    """Return the category of an error code.

    Args:
        code: Error code reported by the hub or raised locally.

    Returns:
        The matching category, or UNKNOWN for codes outside every table.

    """
    for codes, category in _CATEGORY_TABLE:
        if code in codes:
            return category
    return ErrorCategory.UNKNOWN


def get_error_message(code: int) -> str:
    """Return a human-readable message for an error code."""
    return _ERROR_MESSAGES.get(code, f"unknown error ({code})")


@dataclass(frozen=True, slots=True)
class TapoErrorState:
    """Outcome of the last operation of a connector."""

    code: int = ERR_SUCCESS
    message: str = ""

    @property
    def has_error(self) -> bool:
        """Return True if the state carries an error code."""
        return self.code != ERR_SUCCESS

    @property
    def category(self) -> ErrorCategory:
        """Return the category of the error code."""
        return classify(self.code)

    @classmethod
    def from_code(cls, code: int, message: str | None = None) -> TapoErrorState:
        """Create a state for a code, falling back to the default message."""
        return cls(code=code, message=message or get_error_message(code))


NO_ERROR = TapoErrorState()


class TapoError(Exception):
    """Base exception for Tapo Hub errors."""

    code: int = ERR_HTTP_RESPONSE

    def __init__(self, message: str | None = None, code: int | None = None) -> None:
        """Initialize with an optional message and code override."""
        if code is not None:
            self.code = code
        super().__init__(message or get_error_message(self.code))

    def to_state(self) -> TapoErrorState:
        """Convert the exception into an error state."""
        return TapoErrorState(code=self.code, message=str(self))


class TapoDeviceOfflineError(TapoError):
    """Exception raised when the hub cannot be reached on the network."""

    code = ERR_DEVICE_OFFLINE


class TapoHttpResponseError(TapoError):
    """Exception raised for malformed or undecryptable responses."""

    code = ERR_HTTP_RESPONSE


class TapoRequestError(TapoError):
    """Exception raised when the HTTP round trip fails."""

    code = ERR_HTTP_REQUEST


class TapoDeviceErrorCode(TapoError):
    """Exception raised when the hub answers with a non-zero error code."""

    def __init__(self, code: int, message: str | None = None) -> None:
        """Initialize with the code reported by the hub."""
        super().__init__(message, code=code)


class TapoNoBridgeError(TapoError):
    """Exception raised when a child device has no hub."""

    code = ERR_NO_BRIDGE


class TapoCredentialsNotSetError(TapoError):
    """Exception raised when username or password is missing."""

    code = ERR_CONF_CREDENTIALS


class TapoConfigurationMismatchError(TapoError):
    """Exception raised when a device reports an unexpected identity."""

    code = ERR_CONF_MISMATCH
