"""Data models for the Total Connect Comfort integration."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class TccThermostat:
    """Normalized thermostat state consumed by the accessory layer.

    Temperatures are in Celsius. Humidity is passed through from the
    vendor, including the 128 "sensor absent" placeholder. ``device`` is
    the raw vendor payload the record was derived from.
    """

    thermostat_id: int | str | None
    name: str | None = None
    model: str | None = None
    current_temperature: float | None = None
    target_temperature: float | None = None
    heating_threshold_temperature: float | None = None
    cooling_threshold_temperature: float | None = None
    outside_temperature: float | None = None
    current_heating_cooling_state: int = 0
    target_heating_cooling_state: int = 0
    target_heating_cooling_state_valid_values: list[int] = field(default_factory=list)
    target_temperature_heat_min_value: float | None = None
    target_temperature_heat_max_value: float | None = None
    target_temperature_cool_min_value: float | None = None
    target_temperature_cool_max_value: float | None = None
    inside_humidity: int | float | None = None
    outside_humidity: int | float | None = None
    device: dict[str, Any] = field(default_factory=dict, repr=False)
    last_physical_heat_mode: int | None = None


@dataclass(slots=True)
class TccDesiredState:
    """Requested change for a single thermostat."""

    thermostat_id: int | str
    target_temperature: float | None = None
    target_heating_cooling: int | None = None
    heating_threshold_temperature: float | None = None
    cooling_threshold_temperature: float | None = None
    last_physical_heat_mode: int | None = None
