"""Constants for the Tapo Hub integration.

This module contains the constants used throughout the integration,
including protocol methods, timing limits and configuration keys.
"""

DOMAIN = "tapo_hub"
MANUFACTURER = "TP-Link"
SIGNAL_DEVICE_UPDATED = f"{DOMAIN}_{{}}_device_updated"

# HTTP endpoint of the hub's local API
HUB_HTTP_PORT = 80
HUB_API_PATH = "/app"
HTTP_TIMEOUT = 5.0

# Timing limits (milliseconds)
LOGIN_MIN_GAP_MS = 5000
QUERY_MIN_GAP_MS = 2000
PING_TIMEOUT_MS = 2000

# Startup delays (seconds) to let the host finish entity setup
HUB_STARTUP_DELAY = 1.0
DEVICE_STARTUP_DELAY = 2.0

# Defaults for configurable intervals
DEFAULT_RECONNECT_INTERVAL = 1440  # minutes
DEFAULT_DISCOVERY_INTERVAL = 60  # minutes
DEFAULT_POLLING_INTERVAL = 30  # seconds

CONF_RECONNECT_INTERVAL = "reconnect_interval"
CONF_DISCOVERY_INTERVAL = "discovery_interval"
CONF_POLLING_INTERVAL = "polling_interval"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_UNKNOWN = "unknown_error"

# Session cookie set by the hub on handshake
SESSION_COOKIE_NAME = "TP_SESSIONID"

# Protocol methods
METHOD_HANDSHAKE = "handshake"
METHOD_LOGIN_DEVICE = "login_device"
METHOD_SECURE_PASSTHROUGH = "securePassthrough"
METHOD_CONTROL_CHILD = "control_child"
METHOD_GET_DEVICE_INFO = "get_device_info"
METHOD_GET_TRIGGER_LOGS = "get_trigger_logs"
METHOD_GET_CHILD_DEVICE_LIST = "get_child_device_list"

# Response fields
PROPERTY_DEVICE_ID = "device_id"
PROPERTY_EVENT = "event"
PROPERTY_EVENT_ROTATION = "rotate_deg"
PROPERTY_TIMESTAMP = "timestamp"

# Identity properties supplied by the host for each child device
PROPERTY_MAC = "mac"
PROPERTY_MODEL = "model"
PROPERTY_FIRMWARE_VERSION = "firmware_version"
PROPERTY_HARDWARE_VERSION = "hardware_version"
PROPERTY_SERIAL_NUMBER = "serial_number"

# Channels published by child devices
CHANNEL_EVENT = "event"
CHANNEL_EVENT_DETAIL = "event_detail"
CHANNEL_EVENT_TIMESTAMP = "event_timestamp"
