"""
Configuration flow for Tapo Hub integration.

This module handles the setup of a Tapo hub through Home Assistant's config
flow system. The entered credentials are checked by logging in to the hub.
"""

import logging
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.const import CONF_HOST, CONF_PASSWORD, CONF_USERNAME
from homeassistant.helpers.httpx_client import get_async_client

from .channel import TapoSecureChannel
from .const import (
    CONF_DISCOVERY_INTERVAL,
    CONF_POLLING_INTERVAL,
    CONF_RECONNECT_INTERVAL,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_POLLING_INTERVAL,
    DEFAULT_RECONNECT_INTERVAL,
    DOMAIN,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_UNKNOWN,
)
from .errors import ErrorCategory, TapoDeviceErrorCode, TapoError
from .models import TapoCredentials

_LOGGER = logging.getLogger(__name__)

_INTERVAL = vol.All(vol.Coerce(int), vol.Range(min=0))


class TapoHubConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Tapo Hub integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing host, credentials and
                intervals.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            host = user_input[CONF_HOST].strip()
            credentials = TapoCredentials(
                user_input[CONF_USERNAME], user_input[CONF_PASSWORD]
            )

            try:
                channel = TapoSecureChannel(
                    get_async_client(self.hass), host, credentials
                )
                logged_in = await channel.async_login()
            except TapoDeviceErrorCode as err:
                if err.to_state().category is ErrorCategory.CONFIGURATION:
                    _LOGGER.warning(
                        "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                    )
                    errors["base"] = ERROR_INVALID_AUTH
                else:
                    _LOGGER.warning("Hub error (%s): %s", ERROR_CANNOT_CONNECT, err)
                    errors["base"] = ERROR_CANNOT_CONNECT
            except TapoError as err:
                _LOGGER.warning("Connection error (%s): %s", ERROR_CANNOT_CONNECT, err)
                errors["base"] = ERROR_CANNOT_CONNECT
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during login (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                if not logged_in:
                    errors["base"] = ERROR_INVALID_AUTH
                else:
                    _LOGGER.info("Successfully logged in to Tapo hub %s", host)
                    await self.async_set_unique_id(host)
                    self._abort_if_unique_id_configured()

                    return self.async_create_entry(
                        title=f"Tapo Hub ({host})",
                        data={
                            CONF_HOST: host,
                            CONF_USERNAME: credentials.username,
                            CONF_PASSWORD: credentials.password,
                            CONF_RECONNECT_INTERVAL: user_input.get(
                                CONF_RECONNECT_INTERVAL, DEFAULT_RECONNECT_INTERVAL
                            ),
                            CONF_DISCOVERY_INTERVAL: user_input.get(
                                CONF_DISCOVERY_INTERVAL, DEFAULT_DISCOVERY_INTERVAL
                            ),
                            CONF_POLLING_INTERVAL: user_input.get(
                                CONF_POLLING_INTERVAL, DEFAULT_POLLING_INTERVAL
                            ),
                        },
                    )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_HOST): str,
                    vol.Required(CONF_USERNAME): str,
                    vol.Required(CONF_PASSWORD): str,
                    vol.Optional(
                        CONF_RECONNECT_INTERVAL, default=DEFAULT_RECONNECT_INTERVAL
                    ): _INTERVAL,
                    vol.Optional(
                        CONF_DISCOVERY_INTERVAL, default=DEFAULT_DISCOVERY_INTERVAL
                    ): _INTERVAL,
                    vol.Optional(
                        CONF_POLLING_INTERVAL, default=DEFAULT_POLLING_INTERVAL
                    ): _INTERVAL,
                }
            ),
            errors=errors,
        )
