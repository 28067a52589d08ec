from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant
from homeassistant.helpers.event import async_track_time_interval

from .api import create_session_client
from .client import TccClient
from .const import (
    CONF_BACKGROUND_REFRESH,
    CONF_REFRESH,
    CONF_USE_PERMANENT_HOLDS,
    DEFAULT_BACKGROUND_REFRESH,
    DEFAULT_REFRESH,
    DOMAIN,
)
from .coordinator import TccCoordinator

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Total Connect Comfort for entry %s", entry.entry_id)

    if CONF_USERNAME not in entry.data or CONF_PASSWORD not in entry.data:
        _LOGGER.error("Missing credentials in configuration for entry %s", entry.entry_id)
        return False

    options = {**entry.data, **entry.options}
    session = create_session_client(hass)
    client = TccClient(
        session,
        entry.data[CONF_USERNAME],
        entry.data[CONF_PASSWORD],
        use_permanent_holds=options.get(CONF_USE_PERMANENT_HOLDS, False),
    )
    coordinator = TccCoordinator(
        hass,
        client,
        entry,
        refresh=options.get(CONF_REFRESH, DEFAULT_REFRESH),
        background_refresh=options.get(
            CONF_BACKGROUND_REFRESH, DEFAULT_BACKGROUND_REFRESH
        ),
    )

    try:
        await coordinator.async_config_entry_first_refresh()
    except Exception:
        await client.async_close()
        raise

    if coordinator.background_interval is not None:
        entry.async_on_unload(
            async_track_time_interval(
                hass,
                coordinator.async_background_refresh,
                coordinator.background_interval,
            )
        )
        _LOGGER.debug(
            "Background refresh every %s for entry %s",
            coordinator.background_interval,
            entry.entry_id,
        )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "client": client,
        "coordinator": coordinator,
    }
    _LOGGER.info(
        "Successfully setup Total Connect Comfort for entry %s: %d thermostats",
        entry.entry_id,
        len(coordinator.data or {}),
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Total Connect Comfort for entry %s", entry.entry_id)

    data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if data is None:
        _LOGGER.debug("No data stored for entry %s", entry.entry_id)
        return True

    await data["client"].async_close()
    _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
