"""Coordinator for the Total Connect Comfort integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import DEFAULT_BACKGROUND_REFRESH, DEFAULT_REFRESH, DOMAIN, MIN_REFRESH
from .exceptions import TccApiAuthError, TccApiClientError, TccError
from .models import TccThermostat

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .client import TccClient
    from .models import TccDesiredState

_LOGGER = logging.getLogger(__name__)


def resolve_refresh(refresh: int | None) -> int:
    """Return the poll interval in seconds, never below the minimum."""
    if not refresh:
        return DEFAULT_REFRESH
    return max(int(refresh), MIN_REFRESH)


def resolve_background_refresh(refresh: int, background: int | None) -> int | None:
    """Return the background refresh interval, or None when it is disabled.

    A value of 0, or one that is not shorter than the poll interval, turns
    the background refresh off.
    """
    if background is None:
        background = DEFAULT_BACKGROUND_REFRESH
    if background <= 0:
        return None
    background = max(int(background), MIN_REFRESH)
    if background >= refresh:
        return None
    return background


class TccCoordinator(DataUpdateCoordinator[dict[str, TccThermostat]]):
    """Coordinator that polls every thermostat on a TCC account."""

    def __init__(
        self,
        hass: HomeAssistant,
        client: TccClient,
        config_entry: ConfigEntry | None = None,
        refresh: int = DEFAULT_REFRESH,
        background_refresh: int | None = DEFAULT_BACKGROUND_REFRESH,
    ) -> None:
        """Initialize the coordinator."""
        refresh = resolve_refresh(refresh)
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=timedelta(seconds=refresh),
        )
        self.client = client
        self.config_entry = config_entry
        background = resolve_background_refresh(refresh, background_refresh)
        self.background_interval = (
            timedelta(seconds=background) if background is not None else None
        )
        self.data = {}

    async def _async_update_data(self) -> dict[str, TccThermostat]:
        """Poll all thermostats through the client queue."""
        try:
            thermostats = await self.client.async_poll_thermostat()
        except TccApiAuthError as err:
            error_msg = f"Authentication error while polling thermostats: {err}"
            raise UpdateFailed(error_msg) from err
        except TccApiClientError as err:
            error_msg = f"API error while polling thermostats: {err}"
            raise UpdateFailed(error_msg) from err
        except TccError as err:
            error_msg = f"Error while polling thermostats: {err}"
            raise UpdateFailed(error_msg) from err

        _LOGGER.debug("Polled status for %d thermostats", len(thermostats))
        return thermostats

    async def async_change_thermostat(self, desired: TccDesiredState) -> TccThermostat:
        """Apply a change and publish the resulting record.

        Raises:
            TccError: If the change could not be sent or confirmed.

        """
        thermostat = await self.client.async_change_thermostat(desired)
        data = dict(self.data or {})
        data[str(desired.thermostat_id)] = thermostat
        self.async_set_updated_data(data)
        return thermostat

    async def async_background_refresh(self, _now: object = None) -> None:
        """Refresh each known thermostat individually between full polls."""
        if not self.data:
            _LOGGER.debug("No thermostats known yet, skipping background refresh")
            return

        data = dict(self.data)
        refreshed = 0
        for thermostat_id in list(data):
            try:
                data[thermostat_id] = await self.client.async_get_thermostat_snapshot(
                    thermostat_id
                )
            except TccError as err:
                _LOGGER.debug(
                    "Background refresh of thermostat %s failed: %s",
                    thermostat_id,
                    err,
                )
            else:
                refreshed += 1

        if refreshed:
            self.async_set_updated_data(data)
        _LOGGER.debug(
            "Background refresh updated %d of %d thermostats", refreshed, len(data)
        )
