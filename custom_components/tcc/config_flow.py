"""
Configuration flow for the Total Connect Comfort integration.

This module handles the setup of a TCC account through Home Assistant's
config flow system. Credentials are checked with a real login before the
entry is created.
"""

import logging
from typing import Any

import httpx
import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.helpers.httpx_client import get_async_client

from .client import TccClient
from .const import (
    CONF_BACKGROUND_REFRESH,
    CONF_REFRESH,
    CONF_USE_PERMANENT_HOLDS,
    DEFAULT_BACKGROUND_REFRESH,
    DEFAULT_REFRESH,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
    MIN_REFRESH,
)
from .exceptions import TccApiAuthError, TccApiClientError, TccApiTransportError

_LOGGER = logging.getLogger(__name__)

DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_USERNAME): str,
        vol.Required(CONF_PASSWORD): str,
        vol.Optional(CONF_USE_PERMANENT_HOLDS, default=False): bool,
        vol.Optional(CONF_REFRESH, default=DEFAULT_REFRESH): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_REFRESH)
        ),
        vol.Optional(
            CONF_BACKGROUND_REFRESH, default=DEFAULT_BACKGROUND_REFRESH
        ): vol.All(
            vol.Coerce(int),
            vol.Any(0, vol.Range(min=MIN_REFRESH)),
        ),
    }
)


def _transport_error_code(err: TccApiTransportError) -> str:
    if isinstance(err.__cause__, httpx.TimeoutException):
        return ERROR_TIMEOUT
    return ERROR_CANNOT_CONNECT


class TccConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for the Total Connect Comfort integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing the account credentials
                and refresh settings.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            password = user_input[CONF_PASSWORD]
            client = TccClient(get_async_client(self.hass), username, password)

            try:
                await client.async_login()
                _LOGGER.info("Successfully authenticated with TCC")

            except TccApiAuthError as err:
                _LOGGER.warning(
                    "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                )
                errors["base"] = ERROR_INVALID_AUTH
            except TccApiTransportError as err:
                error_code = _transport_error_code(err)
                _LOGGER.exception("Connection error (%s)", error_code)
                errors["base"] = error_code
            except TccApiClientError:
                _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
                errors["base"] = ERROR_API_ERROR
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during authentication (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                await self.async_set_unique_id(username.lower())
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Total Connect Comfort ({username})",
                    data={
                        CONF_USERNAME: username,
                        CONF_PASSWORD: password,
                        CONF_USE_PERMANENT_HOLDS: user_input.get(
                            CONF_USE_PERMANENT_HOLDS, False
                        ),
                        CONF_REFRESH: user_input.get(CONF_REFRESH, DEFAULT_REFRESH),
                        CONF_BACKGROUND_REFRESH: user_input.get(
                            CONF_BACKGROUND_REFRESH, DEFAULT_BACKGROUND_REFRESH
                        ),
                    },
                )
            finally:
                await client.async_close()

        return self.async_show_form(
            step_id="user",
            data_schema=DATA_SCHEMA,
            errors=errors,
        )
