"""Constants for the Total Connect Comfort integration.

This module contains the constants used throughout the integration,
including the SOAP endpoint, action names, configuration keys and the
thermostat mode enumerations.
"""

from enum import IntEnum

DOMAIN = "tcc"

BASE_URL = "https://tccna.honeywell.com/ws/MobileV2.asmx"
SOAP_NAMESPACE = "http://services.alarmnet.com/Services/MobileV2/"
SOAP_ENVELOPE_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema"

USER_AGENT = "TCCStageC/1092 CFNetwork/1125.2 Darwin/19.4.0"

APPLICATION_ID = "357568d9-38ff-4fda-bfe2-46b0fa1dd864"
APPLICATION_VERSION = "2"
UI_LANGUAGE = "Default"

ACTION_LOGIN = "AuthenticateUserLogin"
ACTION_GET_LOCATIONS = "GetLocations"
ACTION_CHANGE_THERMOSTAT = "ChangeThermostatUI"
ACTION_GET_COMM_TASK_STATE = "GetCommTaskState"
ACTION_GET_THERMOSTAT = "GetThermostat"

RESULT_SUCCESS = "Success"

REQUEST_TIMEOUT = 10.0
LOCATIONS_MAX_ATTEMPTS = 2

DEFAULT_REFRESH = 600  # Lower values trip the vendor rate limiter
DEFAULT_BACKGROUND_REFRESH = 180
MIN_REFRESH = 60

CONF_USE_PERMANENT_HOLDS = "use_permanent_holds"
CONF_REFRESH = "refresh"
CONF_BACKGROUND_REFRESH = "background_refresh"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"

# Hold status codes sent with every change
HOLD_TEMPORARY = 1
HOLD_PERMANENT = 2

DISPLAYED_UNITS_CELSIUS = "C"

HUMIDITY_SENSOR_ABSENT = 128
HUMIDITY_MIN = 0
HUMIDITY_MAX = 100
TEMPERATURE_SANITY_MIN = -40.0
TEMPERATURE_SANITY_MAX = 60.0


class SwitchPosition(IntEnum):
    """Vendor system switch positions."""

    EMERGENCY_HEAT = 0
    HEAT = 1
    OFF = 2
    COOL = 3
    AUTO_HEAT = 4
    AUTO_COOL = 5


class HeatingCoolingState(IntEnum):
    """Logical modes exposed to the accessory layer.

    Current state uses OFF, HEAT and COOL only; target state uses all four.
    """

    OFF = 0
    HEAT = 1
    COOL = 2
    AUTO = 3


HEAT_SWITCH_POSITIONS = frozenset({SwitchPosition.EMERGENCY_HEAT, SwitchPosition.HEAT})
AUTO_SWITCH_POSITIONS = frozenset({SwitchPosition.AUTO_HEAT, SwitchPosition.AUTO_COOL})

CURRENT_STATE_VALUES = frozenset(
    {HeatingCoolingState.OFF, HeatingCoolingState.HEAT, HeatingCoolingState.COOL}
)
TARGET_STATE_VALUES = frozenset(HeatingCoolingState)

EQUIPMENT_STATUS_MAP = {
    "Off": HeatingCoolingState.OFF,
    "Heating": HeatingCoolingState.HEAT,
    "Cooling": HeatingCoolingState.COOL,
}
TARGET_STATE_MAP = {
    SwitchPosition.OFF: HeatingCoolingState.OFF,
    SwitchPosition.EMERGENCY_HEAT: HeatingCoolingState.HEAT,
    SwitchPosition.HEAT: HeatingCoolingState.HEAT,
    SwitchPosition.COOL: HeatingCoolingState.COOL,
    SwitchPosition.AUTO_HEAT: HeatingCoolingState.AUTO,
    SwitchPosition.AUTO_COOL: HeatingCoolingState.AUTO,
}
# Heat is resolved separately from the remembered physical heat mode
SWITCH_POSITION_MAP = {
    HeatingCoolingState.OFF: SwitchPosition.OFF,
    HeatingCoolingState.COOL: SwitchPosition.COOL,
    HeatingCoolingState.AUTO: SwitchPosition.AUTO_HEAT,
}
CAPABILITY_FLAGS = (
    ("CanSetSwitchOff", HeatingCoolingState.OFF),
    ("CanSetSwitchHeat", HeatingCoolingState.HEAT),
    ("CanSetSwitchCool", HeatingCoolingState.COOL),
    ("CanSetSwitchAuto", HeatingCoolingState.AUTO),
)
