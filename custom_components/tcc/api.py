"""SOAP transport for the Total Connect Comfort MobileV2 service.

This module provides functions to talk to the TCC service: building the
HTTP headers, encoding and decoding SOAP envelopes, validating responses
and one coroutine per SOAP action.
"""

import logging
import re
from typing import Any
from xml.parsers.expat import ExpatError

import httpx
import xmltodict
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from . import message
from .const import (
    ACTION_CHANGE_THERMOSTAT,
    ACTION_GET_COMM_TASK_STATE,
    ACTION_GET_LOCATIONS,
    ACTION_GET_THERMOSTAT,
    ACTION_LOGIN,
    BASE_URL,
    REQUEST_TIMEOUT,
    RESULT_SUCCESS,
    SOAP_ENVELOPE_NAMESPACE,
    SOAP_NAMESPACE,
    USER_AGENT,
    XSD_NAMESPACE,
    XSI_NAMESPACE,
)
from .exceptions import TccApiAuthError, TccApiProtocolError, TccApiTransportError
from .models import TccDesiredState, TccThermostat

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK_MIN = 200
HTTP_OK_MAX = 299
HTTP_UNAUTHORIZED = 401

_RESPONSE_NAMESPACES = {
    SOAP_ENVELOPE_NAMESPACE: None,
    SOAP_NAMESPACE: None,
    XSI_NAMESPACE: None,
    XSD_NAMESPACE: None,
}
_FORCE_LIST = ("LocationInfo", "ThermostatInfo")

# Free-text fields that can look numeric
_TEXT_FIELDS = frozenset(
    {"UserDefinedDeviceName", "ModelTypeName", "SessionID", "Name", "MacID"}
)

_INT_PATTERN = re.compile(r"^-?\d+$")
_FLOAT_PATTERN = re.compile(r"^-?\d+\.\d+$")


def soap_action(action: str) -> str:
    """Return the SOAPAction header value for an action name."""
    return f"{SOAP_NAMESPACE}{action}"


def create_headers(action: str) -> dict[str, str]:
    """Create HTTP headers for a TCC SOAP request.

    Args:
        action: SOAP action name, e.g. "GetLocations".

    Returns:
        Dictionary containing HTTP headers for the request.

    """
    return {
        "user-agent": USER_AGENT,
        "content-type": "text/xml; charset=utf-8",
        "accept": "*/*",
        "accept-language": "en-ca",
        "SOAPAction": soap_action(action),
    }


def is_http_error(status: int) -> bool:
    """Check if an HTTP status code falls outside the 2xx range."""
    return not HTTP_OK_MIN <= status <= HTTP_OK_MAX


def is_auth_error(status: int) -> bool:
    """Check if an HTTP status code indicates an authentication error."""
    return status == HTTP_UNAUTHORIZED


def is_success(result: dict[str, Any]) -> bool:
    """Check if a SOAP result reports success."""
    return result.get("Result") == RESULT_SUCCESS


def encode_message(body: dict[str, Any]) -> str:
    """Serialize a request body into a complete SOAP XML document."""
    return xmltodict.unparse(message.soap_envelope(body), full_document=True)


def _coerce_value(
    _path: list[Any], key: str, value: Any
) -> tuple[str, Any]:
    """Convert XML text into bools and numbers, and nil elements into None."""
    if isinstance(value, dict) and value.get("@nil") in ("true", True):
        return key, None
    if not isinstance(value, str) or key in _TEXT_FIELDS:
        return key, value
    if value in ("true", "false"):
        return key, value == "true"
    if _INT_PATTERN.match(value):
        return key, int(value)
    if _FLOAT_PATTERN.match(value):
        return key, float(value)
    return key, value


def decode_response(text: str) -> dict[str, Any]:
    """Parse a SOAP XML response into a dictionary.

    Namespace prefixes are dropped, so the envelope reads as
    ``{"Envelope": {"Body": ...}}``.

    Raises:
        TccApiProtocolError: If the body is not well-formed XML.

    """
    try:
        return xmltodict.parse(
            text,
            process_namespaces=True,
            namespaces=_RESPONSE_NAMESPACES,
            force_list=_FORCE_LIST,
            postprocessor=_coerce_value,
        )
    except ExpatError as err:
        error_msg = f"Malformed SOAP response: {err}"
        raise TccApiProtocolError(error_msg) from err


def extract_result(data: dict[str, Any], action: str) -> dict[str, Any]:
    """Return the ``<Action>Result`` element of a decoded response.

    Raises:
        TccApiProtocolError: If the envelope does not contain the result.

    """
    try:
        result = data["Envelope"]["Body"][f"{action}Response"][f"{action}Result"]
    except (KeyError, TypeError) as err:
        error_msg = f"{action} response is missing its result"
        raise TccApiProtocolError(error_msg) from err

    if not isinstance(result, dict):
        error_msg = f"{action} response has an empty result"
        raise TccApiProtocolError(error_msg)
    return result


def _validate_http_status(response: httpx.Response, action: str) -> None:
    if not is_http_error(response.status_code):
        return

    if is_auth_error(response.status_code):
        auth_error = f"{action} rejected: authentication error"
        raise TccApiAuthError(auth_error)

    transport_error = f"{action} request failed: {response.status_code}"
    raise TccApiTransportError(transport_error)


def parse_response(response: httpx.Response, action: str) -> dict[str, Any]:
    """Check the HTTP status and return the decoded action result."""
    _validate_http_status(response, action)
    return extract_result(decode_response(response.text), action)


def validate_response(response: httpx.Response, action: str) -> dict[str, Any]:
    """Validate an HTTP response and return the successful action result.

    Args:
        response: HTTP response object to validate.
        action: SOAP action the response belongs to.

    Returns:
        The ``<Action>Result`` dictionary.

    Raises:
        TccApiAuthError: If the service answered 401.
        TccApiTransportError: If the status code is not 2xx.
        TccApiProtocolError: If the body is malformed or Result is not Success.

    """
    result = parse_response(response, action)
    if not is_success(result):
        error_msg = f"{action} failed: {result.get('Result')}"
        raise TccApiProtocolError(error_msg)
    return result


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the TCC service.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=REQUEST_TIMEOUT)
    # Every SOAP call is a POST; the change request carries absolute values
    retry = Retry(total=2, backoff_factor=0.5, allowed_methods=["POST"])
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


async def async_soap_request(
    session: httpx.AsyncClient,
    action: str,
    body: dict[str, Any],
) -> httpx.Response:
    """Post a SOAP request and return the raw HTTP response.

    Raises:
        TccApiTransportError: If the request could not be completed.

    """
    try:
        return await session.post(
            BASE_URL,
            headers=create_headers(action),
            content=encode_message(body),
        )
    except httpx.HTTPError as err:
        error_msg = f"{action} request failed: {err}"
        raise TccApiTransportError(error_msg) from err


async def async_authenticate(
    session: httpx.AsyncClient,
    username: str,
    password: str,
) -> str:
    """Log in to the TCC service.

    Args:
        session: HTTP client session.
        username: Account user name.
        password: Account password.

    Returns:
        The session identifier.

    Raises:
        TccApiAuthError: If the service rejects the credentials.
        TccApiTransportError: If the request fails.
        TccApiProtocolError: If the response is malformed.

    """
    _LOGGER.debug("Authenticating with TCC as %s", username)
    body = message.authenticate_user_login_message(username, password)
    response = await async_soap_request(session, ACTION_LOGIN, body)
    result = parse_response(response, ACTION_LOGIN)

    session_id = result.get("SessionID")
    if not is_success(result) or not session_id:
        error_msg = f"Login failed: {result.get('Result')}"
        raise TccApiAuthError(error_msg)

    _LOGGER.debug("Successfully authenticated with TCC")
    return str(session_id)


async def async_get_locations(
    session: httpx.AsyncClient,
    session_id: str | None,
) -> dict[str, Any]:
    """Fetch all locations with their thermostats.

    Returns:
        The ``Locations`` element of the GetLocations result.

    Raises:
        TccApiProtocolError: If the call fails or returns no locations.
        TccApiTransportError: If the request fails.

    """
    body = message.get_locations_message(session_id)
    response = await async_soap_request(session, ACTION_GET_LOCATIONS, body)
    result = validate_response(response, ACTION_GET_LOCATIONS)

    locations = result.get("Locations")
    if not isinstance(locations, dict) or not locations.get("LocationInfo"):
        error_msg = "GetLocations returned no locations"
        raise TccApiProtocolError(error_msg)

    _LOGGER.debug("Retrieved %d locations from TCC", len(locations["LocationInfo"]))
    return locations


async def async_change_thermostat(
    session: httpx.AsyncClient,
    session_id: str | None,
    desired: TccDesiredState,
    thermostat: TccThermostat,
    use_permanent_holds: bool,
) -> int | str:
    """Send a ChangeThermostatUI request.

    Returns:
        The CommTaskID used to confirm the change.

    Raises:
        TccInvalidInputError: If the cached record has no raw device data.
        TccApiProtocolError: If the change is not accepted.
        TccApiTransportError: If the request fails.

    """
    body = message.change_thermostat_message(
        session_id, desired, thermostat, use_permanent_holds
    )
    _LOGGER.debug(
        "Sending change to thermostat %s: %s",
        desired.thermostat_id,
        body[ACTION_CHANGE_THERMOSTAT],
    )
    response = await async_soap_request(session, ACTION_CHANGE_THERMOSTAT, body)
    result = validate_response(response, ACTION_CHANGE_THERMOSTAT)

    comm_task_id = result.get("CommTaskID")
    if comm_task_id is None:
        error_msg = "ChangeThermostatUI returned no CommTaskID"
        raise TccApiProtocolError(error_msg)
    return comm_task_id


async def async_get_comm_task_state(
    session: httpx.AsyncClient,
    session_id: str | None,
    comm_task_id: int | str,
) -> dict[str, Any]:
    """Confirm an accepted change through its CommTaskID."""
    body = message.get_comm_task_state_message(session_id, comm_task_id)
    response = await async_soap_request(session, ACTION_GET_COMM_TASK_STATE, body)
    result = validate_response(response, ACTION_GET_COMM_TASK_STATE)
    _LOGGER.debug("CommTask %s state: %s", comm_task_id, result.get("State"))
    return result


async def async_get_thermostat(
    session: httpx.AsyncClient,
    session_id: str | None,
    thermostat_id: int | str,
) -> dict[str, Any]:
    """Fetch the raw state of a single thermostat."""
    body = message.get_thermostat_message(session_id, thermostat_id)
    response = await async_soap_request(session, ACTION_GET_THERMOSTAT, body)
    result = validate_response(response, ACTION_GET_THERMOSTAT)

    thermostat = result.get("Thermostat")
    if not isinstance(thermostat, dict):
        error_msg = f"GetThermostat returned no data for {thermostat_id}"
        raise TccApiProtocolError(error_msg)
    return thermostat
