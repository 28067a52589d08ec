"""Pytest configuration and fixtures for Total Connect Comfort tests."""

from typing import Any

import pytest
import xmltodict

from custom_components.tcc.const import SOAP_ENVELOPE_NAMESPACE, SOAP_NAMESPACE

THERMOSTAT_ID = 1001
SESSION_ID = "6D2C6B3A-0F43-4F4B-9E7B-7C3A0E2B6F11"


def create_raw_thermostat(
    thermostat_id: int = THERMOSTAT_ID,
    *,
    name: str = "Hallway",
    equipment_status: str = "Heating",
    **ui_overrides: Any,
) -> dict[str, Any]:
    """Create a decoded vendor thermostat payload.

    Args:
        thermostat_id: Vendor ThermostatID.
        name: UserDefinedDeviceName.
        equipment_status: Top-level EquipmentStatus.
        **ui_overrides: Fields replaced in the UI block.

    Returns:
        A dictionary shaped like a decoded ThermostatInfo element.

    """
    ui = {
        "DisplayedUnits": "F",
        "DispTemperature": 70,
        "HeatSetpoint": 68,
        "CoolSetpoint": 76,
        "SystemSwitchPosition": 1,
        "OutdoorTemp": 41,
        "IndoorHumidity": 45,
        "OutdoorHumidity": 128,
        "HeatLowerSetptLimit": 40,
        "HeatUpperSetptLimit": 90,
        "CoolLowerSetptLimit": 50,
        "CoolUpperSetptLimit": 99,
        "HeatNextPeriod": 88,
        "CoolNextPeriod": 88,
        "CanSetSwitchOff": True,
        "CanSetSwitchHeat": True,
        "CanSetSwitchCool": True,
        "CanSetSwitchAuto": False,
    }
    ui.update(ui_overrides)
    return {
        "ThermostatID": thermostat_id,
        "UserDefinedDeviceName": name,
        "ModelTypeName": "FocusPRO 6000",
        "EquipmentStatus": equipment_status,
        "UI": ui,
    }


def create_soap_response(action: str, result: dict[str, Any]) -> str:
    """Wrap an action result in a SOAP response document.

    Args:
        action: SOAP action name, e.g. "GetLocations".
        result: Content of the ``<Action>Result`` element.

    Returns:
        The XML text the service would answer with.

    """
    return xmltodict.unparse(
        {
            "soap:Envelope": {
                "@xmlns:soap": SOAP_ENVELOPE_NAMESPACE,
                "soap:Body": {
                    f"{action}Response": {
                        "@xmlns": SOAP_NAMESPACE,
                        f"{action}Result": result,
                    }
                },
            }
        }
    )


def create_locations_result(*thermostats: dict[str, Any]) -> dict[str, Any]:
    """Create a successful GetLocations result holding the given thermostats."""
    return {
        "Result": "Success",
        "Locations": {
            "LocationInfo": [
                {
                    "LocationID": 501,
                    "Name": "Home",
                    "Thermostats": {"ThermostatInfo": list(thermostats)},
                }
            ]
        },
    }


@pytest.fixture
def raw_thermostat() -> dict[str, Any]:
    """Fixture providing a Fahrenheit thermostat in regular heat."""
    return create_raw_thermostat()


@pytest.fixture
def sample_login_response() -> str:
    """Fixture providing a successful AuthenticateUserLogin response."""
    return create_soap_response(
        "AuthenticateUserLogin",
        {"Result": "Success", "SessionID": SESSION_ID},
    )


@pytest.fixture
def sample_locations_response(raw_thermostat: dict[str, Any]) -> str:
    """Fixture providing a successful GetLocations response."""
    return create_soap_response(
        "GetLocations", create_locations_result(raw_thermostat)
    )


@pytest.fixture
def sample_change_response() -> str:
    """Fixture providing an accepted ChangeThermostatUI response."""
    return create_soap_response(
        "ChangeThermostatUI", {"Result": "Success", "CommTaskID": 7001}
    )


@pytest.fixture
def sample_comm_task_response() -> str:
    """Fixture providing a GetCommTaskState response."""
    return create_soap_response(
        "GetCommTaskState", {"Result": "Success", "State": "Succeeded"}
    )


@pytest.fixture
def sample_thermostat_response(raw_thermostat: dict[str, Any]) -> str:
    """Fixture providing a successful GetThermostat response."""
    return create_soap_response(
        "GetThermostat", {"Result": "Success", "Thermostat": raw_thermostat}
    )
