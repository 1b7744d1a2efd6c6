from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_HOST, CONF_PASSWORD, CONF_USERNAME, Platform
from homeassistant.core import HomeAssistant
from homeassistant.helpers import device_registry as dr

from .api import create_session_client
from .const import (
    CONF_DISCOVERY_INTERVAL,
    CONF_RECONNECT_INTERVAL,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_RECONNECT_INTERVAL,
    DOMAIN,
    MANUFACTURER,
)
from .host import TapoHubHost
from .hub import TapoHubBridge
from .models import TapoCredentials, TapoHubConfig
from .scheduler import PollingScheduler

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.SENSOR]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Tapo Hub integration for entry %s", entry.entry_id)

    if CONF_HOST not in entry.data:
        _LOGGER.error("Missing host in configuration for entry %s", entry.entry_id)
        return False

    host = entry.data[CONF_HOST]
    session = create_session_client(hass)
    config = TapoHubConfig(
        ip_address=host,
        reconnect_interval=int(
            entry.data.get(CONF_RECONNECT_INTERVAL, DEFAULT_RECONNECT_INTERVAL)
        ),
        discovery_interval=int(
            entry.data.get(CONF_DISCOVERY_INTERVAL, DEFAULT_DISCOVERY_INTERVAL)
        ),
    )
    credentials = TapoCredentials(
        entry.data.get(CONF_USERNAME, ""), entry.data.get(CONF_PASSWORD, "")
    )
    hub_host = TapoHubHost(hass, entry.entry_id)
    hub = TapoHubBridge(
        entry.entry_id,
        config,
        credentials,
        session,
        hub_host,
        PollingScheduler(hass, f"hub_{entry.entry_id}"),
    )

    dr.async_get(hass).async_get_or_create(
        config_entry_id=entry.entry_id,
        identifiers={(DOMAIN, host)},
        manufacturer=MANUFACTURER,
        name=f"Tapo Hub ({host})",
    )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "hub": hub,
        "hub_host": hub_host,
        "devices": {},
    }

    try:
        await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    except Exception as err:
        _LOGGER.error("Failed to setup platforms for entry %s: %s", entry.entry_id, err)
        hass.data[DOMAIN].pop(entry.entry_id)
        return False

    await hub.async_initialize()
    _LOGGER.info("Successfully setup Tapo Hub integration for entry %s", entry.entry_id)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Tapo Hub integration for entry %s", entry.entry_id)

    try:
        unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
        if unload_ok:
            if DOMAIN in hass.data and entry.entry_id in hass.data[DOMAIN]:
                entry_data = hass.data[DOMAIN].pop(entry.entry_id)
                for device in entry_data["devices"].values():
                    await device.async_dispose()
                await entry_data["hub"].async_dispose()
                _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
            _LOGGER.info(
                "Successfully unloaded Tapo Hub integration for entry %s",
                entry.entry_id,
            )
        else:
            _LOGGER.warning(
                "Failed to unload some platforms for entry %s", entry.entry_id
            )

        return unload_ok
    except Exception as err:
        _LOGGER.error(
            "Error unloading Tapo Hub integration for entry %s: %s",
            entry.entry_id,
            err,
        )
        return False
