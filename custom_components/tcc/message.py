"""SOAP message builders and thermostat state mapping for TCC.

This module is free of I/O. It builds the request bodies sent to the
MobileV2 SOAP service, converts vendor thermostat payloads into
TccThermostat records and translates between the vendor's six switch
positions and the four logical heating/cooling modes.
"""

import copy
import logging
import math
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from .const import (
    APPLICATION_ID,
    APPLICATION_VERSION,
    AUTO_SWITCH_POSITIONS,
    CAPABILITY_FLAGS,
    CURRENT_STATE_VALUES,
    DISPLAYED_UNITS_CELSIUS,
    EQUIPMENT_STATUS_MAP,
    HEAT_SWITCH_POSITIONS,
    HOLD_PERMANENT,
    HOLD_TEMPORARY,
    HUMIDITY_MAX,
    HUMIDITY_MIN,
    HUMIDITY_SENSOR_ABSENT,
    SOAP_ENVELOPE_NAMESPACE,
    SOAP_NAMESPACE,
    SWITCH_POSITION_MAP,
    TARGET_STATE_MAP,
    TARGET_STATE_VALUES,
    TEMPERATURE_SANITY_MAX,
    TEMPERATURE_SANITY_MIN,
    UI_LANGUAGE,
    XSD_NAMESPACE,
    XSI_NAMESPACE,
    HeatingCoolingState,
    SwitchPosition,
)
from .exceptions import TccInvalidInputError, TccValidationError
from .models import TccDesiredState, TccThermostat

_LOGGER = logging.getLogger(__name__)

_TEMPERATURE_FIELDS = (
    "current_temperature",
    "target_temperature",
    "heating_threshold_temperature",
    "cooling_threshold_temperature",
    "outside_temperature",
)
_HUMIDITY_FIELDS = ("inside_humidity", "outside_humidity")
_REQUIRED_FIELDS = ("thermostat_id", "name")

_MISSING = object()


def soap_envelope(body: dict[str, Any]) -> dict[str, Any]:
    """Wrap a request body in the SOAP envelope expected by MobileV2."""
    return {
        "soap:Envelope": {
            "@xmlns:xsi": XSI_NAMESPACE,
            "@xmlns:xsd": XSD_NAMESPACE,
            "@xmlns:soap": SOAP_ENVELOPE_NAMESPACE,
            "@xmlns": SOAP_NAMESPACE,
            "soap:Body": body,
        }
    }


def _require_session(session_id: str | None) -> str:
    if not session_id:
        msg = "A session id is required to build this request"
        raise TccInvalidInputError(msg)
    return session_id


def authenticate_user_login_message(username: str, password: str) -> dict[str, Any]:
    """Build the AuthenticateUserLogin body."""
    return {
        "AuthenticateUserLogin": {
            "username": username,
            "password": password,
            "applicationID": APPLICATION_ID,
            "applicationVersion": APPLICATION_VERSION,
            "uiLanguage": UI_LANGUAGE,
        }
    }


def get_locations_message(session_id: str | None) -> dict[str, Any]:
    """Build the GetLocations body."""
    return {"GetLocations": {"sessionID": _require_session(session_id)}}


def get_comm_task_state_message(
    session_id: str | None, comm_task_id: int | str
) -> dict[str, Any]:
    """Build the GetCommTaskState body."""
    return {
        "GetCommTaskState": {
            "sessionID": _require_session(session_id),
            "commTaskID": comm_task_id,
        }
    }


def get_thermostat_message(
    session_id: str | None, thermostat_id: int | str
) -> dict[str, Any]:
    """Build the GetThermostat body."""
    return {
        "GetThermostat": {
            "sessionID": _require_session(session_id),
            "thermostatID": thermostat_id,
        }
    }


def change_thermostat_message(
    session_id: str | None,
    desired: TccDesiredState,
    thermostat: TccThermostat,
    use_permanent_holds: bool,
) -> dict[str, Any]:
    """Build the ChangeThermostatUI body for a desired state.

    The switch position is resolved first and handed to the setpoint
    calculations, so a setpoint is only written when it applies to the
    mode the thermostat will be in after the change. The cached record is
    never modified.

    Args:
        session_id: Active session identifier.
        desired: Requested changes.
        thermostat: Cached record for the thermostat being changed.
        use_permanent_holds: Send permanent instead of temporary holds.

    Returns:
        The ChangeThermostatUI body, ready for soap_envelope().

    Raises:
        TccInvalidInputError: If the session id or the raw UI data is missing.

    """
    session_id = _require_session(session_id)
    raw_ui = (thermostat.device or {}).get("UI") if thermostat else None
    if not isinstance(raw_ui, Mapping):
        msg = "Cached thermostat has no raw device UI data"
        raise TccInvalidInputError(msg)

    ui = copy.deepcopy(dict(raw_ui))
    switch = system_switch(desired, thermostat)
    hold_status = HOLD_PERMANENT if use_permanent_holds else HOLD_TEMPORARY

    return {
        "ChangeThermostatUI": {
            "sessionID": session_id,
            "thermostatID": desired.thermostat_id,
            "changeSystemSwitch": 1,
            "systemSwitch": switch,
            "changeHeatSetpoint": 1,
            "heatSetpoint": heat_setpoint(desired, ui, switch),
            "changeCoolSetpoint": 1,
            "coolSetpoint": cool_setpoint(desired, ui, switch),
            "changeHeatNextPeriod": 1,
            "heatNextPeriod": ui.get("HeatNextPeriod"),
            "changeCoolNextPeriod": 1,
            "coolNextPeriod": ui.get("CoolNextPeriod"),
            "changeStatusHeat": 1,
            "statusHeat": hold_status,
            "changeStatusCool": 1,
            "statusCool": hold_status,
        }
    }


def to_celsius(value: float | None, units: str | None) -> float | None:
    """Convert a vendor temperature to Celsius, one decimal for Fahrenheit."""
    if value is None:
        return None
    if units == DISPLAYED_UNITS_CELSIUS:
        return float(value)
    return round((float(value) - 32) * 5 / 9, 1)


def to_thermostat(value: float | None, units: str | None) -> float | int | None:
    """Convert a Celsius temperature to the thermostat's displayed units."""
    if value is None:
        return None
    if units == DISPLAYED_UNITS_CELSIUS:
        return value
    return math.floor(value * 9 / 5 + 32 + 0.5)


def _as_heat_mode(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if value in HEAT_SWITCH_POSITIONS:
        return int(value)
    return None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _ui(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    ui = raw.get("UI")
    return ui if isinstance(ui, Mapping) else {}


def target_temperature(raw: Mapping[str, Any]) -> float | None:
    """Pick the setpoint matching the current switch position."""
    ui = _ui(raw)
    switch = ui.get("SystemSwitchPosition")
    if switch in (
        SwitchPosition.OFF,
        SwitchPosition.EMERGENCY_HEAT,
        SwitchPosition.HEAT,
        SwitchPosition.AUTO_HEAT,
    ):
        return ui.get("HeatSetpoint")
    if switch in (SwitchPosition.COOL, SwitchPosition.AUTO_COOL):
        return ui.get("CoolSetpoint")
    # Unknown position, fall back to what the display shows
    return ui.get("DispTemperature")


def current_state(raw: Mapping[str, Any]) -> int:
    """Map the vendor equipment status to Off/Heat/Cool."""
    status = raw.get("EquipmentStatus")
    return int(EQUIPMENT_STATUS_MAP.get(status, HeatingCoolingState.OFF))


def target_state(raw: Mapping[str, Any]) -> int:
    """Map the vendor switch position to Off/Heat/Cool/Auto."""
    switch = _ui(raw).get("SystemSwitchPosition")
    if isinstance(switch, bool):
        return int(HeatingCoolingState.OFF)
    return int(TARGET_STATE_MAP.get(switch, HeatingCoolingState.OFF))


def state_valid_values(raw: Mapping[str, Any]) -> list[int]:
    """Return the target states the device allows, in ascending order."""
    ui = _ui(raw)
    return [int(state) for flag, state in CAPABILITY_FLAGS if ui.get(flag) is True]


def normalize(raw: Mapping[str, Any]) -> TccThermostat:
    """Convert a vendor thermostat payload into a TccThermostat."""
    ui = _ui(raw)
    units = ui.get("DisplayedUnits")

    return TccThermostat(
        thermostat_id=raw.get("ThermostatID"),
        name=raw.get("UserDefinedDeviceName"),
        model=raw.get("ModelTypeName"),
        current_temperature=to_celsius(ui.get("DispTemperature"), units),
        target_temperature=to_celsius(target_temperature(raw), units),
        heating_threshold_temperature=to_celsius(ui.get("HeatSetpoint"), units),
        cooling_threshold_temperature=to_celsius(ui.get("CoolSetpoint"), units),
        outside_temperature=to_celsius(ui.get("OutdoorTemp"), units),
        current_heating_cooling_state=current_state(raw),
        target_heating_cooling_state=target_state(raw),
        target_heating_cooling_state_valid_values=state_valid_values(raw),
        target_temperature_heat_min_value=to_celsius(
            ui.get("HeatLowerSetptLimit"), units
        ),
        target_temperature_heat_max_value=to_celsius(
            ui.get("HeatUpperSetptLimit"), units
        ),
        target_temperature_cool_min_value=to_celsius(
            ui.get("CoolLowerSetptLimit"), units
        ),
        target_temperature_cool_max_value=to_celsius(
            ui.get("CoolUpperSetptLimit"), units
        ),
        inside_humidity=ui.get("IndoorHumidity"),
        outside_humidity=ui.get("OutdoorHumidity"),
        device=dict(raw),
        last_physical_heat_mode=_as_heat_mode(ui.get("SystemSwitchPosition")),
    )


def normalize_locations(locations: Mapping[str, Any]) -> dict[str, TccThermostat]:
    """Flatten a GetLocations result into records keyed by thermostat id.

    Both LocationInfo and ThermostatInfo may be a single item or a list.
    """
    thermostats: dict[str, TccThermostat] = {}
    for location in _as_list(locations.get("LocationInfo")):
        container = location.get("Thermostats") or {}
        for raw in _as_list(container.get("ThermostatInfo")):
            record = normalize(raw)
            thermostats[str(record.thermostat_id)] = record
    return thermostats


def _current_switch(thermostat: TccThermostat) -> Any:
    return _ui(thermostat.device or {}).get("SystemSwitchPosition")


def resolve_heat_mode(
    desired: TccDesiredState, thermostat: TccThermostat | None
) -> int | None:
    """Return the physical heat variant to restore, if one is known.

    The cached record wins over a value remembered by the accessory layer.
    """
    if thermostat is not None:
        heat_mode = _as_heat_mode(thermostat.last_physical_heat_mode)
        if heat_mode is not None:
            return heat_mode
    return _as_heat_mode(desired.last_physical_heat_mode)


def system_switch(desired: TccDesiredState, thermostat: TccThermostat) -> Any:
    """Resolve the switch position to send for a desired target mode."""
    mode = desired.target_heating_cooling
    if isinstance(mode, bool) or mode is None:
        return _current_switch(thermostat)
    if mode == HeatingCoolingState.HEAT:
        heat_mode = resolve_heat_mode(desired, thermostat)
        return SwitchPosition.HEAT.value if heat_mode is None else heat_mode
    if mode in SWITCH_POSITION_MAP:
        return SWITCH_POSITION_MAP[mode].value
    return _current_switch(thermostat)


def heat_setpoint(
    desired: TccDesiredState, ui: Mapping[str, Any], switch: Any
) -> float | int | None:
    """Return the heat setpoint to send, echoing the current one if unchanged."""
    current = ui.get("HeatSetpoint")
    if switch in HEAT_SWITCH_POSITIONS:
        requested = desired.target_temperature
    elif switch in AUTO_SWITCH_POSITIONS:
        requested = desired.heating_threshold_temperature
    else:
        return current
    if requested is None:
        return current
    return to_thermostat(requested, ui.get("DisplayedUnits"))


def cool_setpoint(
    desired: TccDesiredState, ui: Mapping[str, Any], switch: Any
) -> float | int | None:
    """Return the cool setpoint to send, echoing the current one if unchanged."""
    current = ui.get("CoolSetpoint")
    if switch == SwitchPosition.COOL:
        requested = desired.target_temperature
        if requested is None:
            requested = desired.cooling_threshold_temperature
    elif switch in AUTO_SWITCH_POSITIONS:
        requested = desired.cooling_threshold_temperature
    else:
        return current
    if requested is None:
        return current
    return to_thermostat(requested, ui.get("DisplayedUnits"))


def carry_forward_heat_mode(
    record: TccThermostat, previous: TccThermostat | None
) -> TccThermostat:
    """Keep the remembered heat variant when the new snapshot has none."""
    if record.last_physical_heat_mode is not None or previous is None:
        return record
    if previous.last_physical_heat_mode is None:
        return record
    return replace(record, last_physical_heat_mode=previous.last_physical_heat_mode)


def optimistic_thermostat(
    cached: TccThermostat, desired: TccDesiredState
) -> TccThermostat:
    """Build the record expected after an accepted change.

    Used when the service confirmed a change but the follow-up fetch
    failed. The accepted switch position and setpoints are also written
    into a copy of the raw UI, so the next change request starts from the
    accepted state.
    """
    changes: dict[str, Any] = {}
    raw_ui = (cached.device or {}).get("UI")
    if isinstance(raw_ui, Mapping):
        ui = copy.deepcopy(dict(raw_ui))
        switch = system_switch(desired, cached)
        heat = heat_setpoint(desired, ui, switch)
        cool = cool_setpoint(desired, ui, switch)
        ui["SystemSwitchPosition"] = switch
        ui["HeatSetpoint"] = heat
        ui["CoolSetpoint"] = cool
        device = copy.deepcopy(dict(cached.device))
        device["UI"] = ui
        changes["device"] = device
    if desired.target_temperature is not None:
        changes["target_temperature"] = desired.target_temperature
    if desired.heating_threshold_temperature is not None:
        changes["heating_threshold_temperature"] = desired.heating_threshold_temperature
    if desired.cooling_threshold_temperature is not None:
        changes["cooling_threshold_temperature"] = desired.cooling_threshold_temperature
    if desired.target_heating_cooling is not None:
        changes["target_heating_cooling_state"] = desired.target_heating_cooling
        if desired.target_heating_cooling == HeatingCoolingState.HEAT:
            heat_mode = resolve_heat_mode(desired, cached)
            if heat_mode is not None:
                changes["last_physical_heat_mode"] = heat_mode
    return replace(cached, **changes)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_thermostat(record: TccThermostat | None, context: str = "") -> bool:
    """Check a normalized record before it is handed to the accessory layer.

    Missing identity or name and out-of-range state codes are errors.
    Temperature and humidity readings outside plausible bands only log a
    warning, since the hardware is known to report transient garbage.

    Args:
        record: Normalized thermostat to check.
        context: Short label included in messages, e.g. the calling operation.

    Returns:
        True when the record passed the hard checks.

    Raises:
        TccValidationError: If a required field or state code is invalid.

    """
    label = f" ({context})" if context else ""
    if not isinstance(record, TccThermostat):
        msg = f"Invalid thermostat data{label}"
        raise TccValidationError(msg)

    for field_name in _REQUIRED_FIELDS:
        value = getattr(record, field_name)
        if value is None or value == "":
            msg = f"Thermostat data{label} missing required field '{field_name}'"
            raise TccValidationError(msg)

    if record.current_heating_cooling_state not in CURRENT_STATE_VALUES:
        msg = (
            f"Invalid current_heating_cooling_state"
            f" {record.current_heating_cooling_state!r}{label}"
        )
        raise TccValidationError(msg)
    if record.target_heating_cooling_state not in TARGET_STATE_VALUES:
        msg = (
            f"Invalid target_heating_cooling_state"
            f" {record.target_heating_cooling_state!r}{label}"
        )
        raise TccValidationError(msg)

    for field_name in _TEMPERATURE_FIELDS:
        value = getattr(record, field_name)
        if value is None:
            continue
        if not _is_number(value) or not (
            TEMPERATURE_SANITY_MIN <= value <= TEMPERATURE_SANITY_MAX
        ):
            _LOGGER.warning(
                "Thermostat %s%s reports suspicious %s: %s",
                record.thermostat_id,
                label,
                field_name,
                value,
            )

    for field_name in _HUMIDITY_FIELDS:
        value = getattr(record, field_name)
        if value is None or value == HUMIDITY_SENSOR_ABSENT:
            continue
        if not _is_number(value) or not (HUMIDITY_MIN <= value <= HUMIDITY_MAX):
            _LOGGER.warning(
                "Thermostat %s%s reports suspicious %s: %s",
                record.thermostat_id,
                label,
                field_name,
                value,
            )

    return True


def diff(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
    """Return the part of ``new`` that differs from ``old``.

    Nested mappings are compared key by key; any other value is compared
    as a whole. Keys dropped from ``new`` are reported as None.
    """
    result: dict[str, Any] = {}
    keys = [*old, *(key for key in new if key not in old)]
    for key in keys:
        old_value = old.get(key, _MISSING)
        new_value = new.get(key, _MISSING)
        if isinstance(old_value, Mapping) and isinstance(new_value, Mapping):
            change = diff(old_value, new_value)
            if change:
                result[key] = change
        elif old_value != new_value:
            result[key] = None if new_value is _MISSING else new_value
    return result
