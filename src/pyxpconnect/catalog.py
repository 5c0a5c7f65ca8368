"""Well-known X-Plane datarefs and commands."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .datarefs import DataRefElement, StringDataRefElement, XPlaneCommand


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """Static description of a dataref; ``create`` builds a fresh element."""

    path: str
    description: str
    units: str = ""
    frequency: int = 5
    string_length: Optional[int] = None

    def create(self) -> Union[DataRefElement, StringDataRefElement]:
        if self.string_length is not None:
            return StringDataRefElement(
                dataref=self.path,
                length=self.string_length,
                frequency=self.frequency,
                description=self.description,
            )
        return DataRefElement(
            dataref=self.path,
            frequency=self.frequency,
            description=self.description,
            units=self.units,
        )


_ENTRIES: List[CatalogEntry] = [
    CatalogEntry(
        "sim/cockpit2/gauges/indicators/airspeed_kts_pilot",
        "Indicated airspeed, pilot side",
        "knots",
    ),
    CatalogEntry(
        "sim/cockpit2/gauges/indicators/altitude_ft_pilot",
        "Indicated altitude, pilot side",
        "feet",
    ),
    CatalogEntry(
        "sim/cockpit2/gauges/indicators/heading_electric_deg_mag_pilot",
        "Magnetic heading, pilot side",
        "degrees",
    ),
    CatalogEntry(
        "sim/cockpit2/gauges/indicators/vvi_fpm_pilot",
        "Vertical speed, pilot side",
        "feet/minute",
    ),
    CatalogEntry("sim/flightmodel/position/latitude", "Aircraft latitude", "degrees", 1),
    CatalogEntry("sim/flightmodel/position/longitude", "Aircraft longitude", "degrees", 1),
    CatalogEntry("sim/cockpit/radios/com1_freq_hz", "COM1 frequency", "10Hz", 1),
    CatalogEntry("sim/cockpit2/controls/parking_brake_ratio", "Parking brake", "ratio", 1),
    CatalogEntry("sim/time/zulu_time_sec", "Zulu time", "seconds", 1),
    CatalogEntry(
        "sim/aircraft/view/acf_tailnum",
        "Aircraft tail number",
        frequency=1,
        string_length=40,
    ),
    CatalogEntry(
        "sim/aircraft/view/acf_ICAO",
        "Aircraft ICAO type designator",
        frequency=1,
        string_length=40,
    ),
]

CATALOG: Dict[str, CatalogEntry] = {entry.path: entry for entry in _ENTRIES}

PAUSE_TOGGLE = XPlaneCommand("sim/operation/pause_toggle", "Toggle simulator pause")
LANDING_GEAR_TOGGLE = XPlaneCommand("sim/flight_controls/landing_gear_toggle", "Toggle landing gear")
FLAPS_DOWN = XPlaneCommand("sim/flight_controls/flaps_down", "Flaps down a notch")
FLAPS_UP = XPlaneCommand("sim/flight_controls/flaps_up", "Flaps up a notch")
LANDING_LIGHTS_TOGGLE = XPlaneCommand("sim/lights/landing_lights_toggle", "Toggle landing lights")

COMMANDS: Dict[str, XPlaneCommand] = {
    command.command: command
    for command in (PAUSE_TOGGLE, LANDING_GEAR_TOGGLE, FLAPS_DOWN, FLAPS_UP, LANDING_LIGHTS_TOGGLE)
}


def find_dataref(path: str) -> Optional[CatalogEntry]:
    return CATALOG.get(path)


def create_dataref(path: str) -> Union[DataRefElement, StringDataRefElement]:
    """Build an element for a catalogued path, or a plain numeric one."""

    entry = CATALOG.get(path)
    if entry is None:
        return DataRefElement(dataref=path)
    return entry.create()


__all__ = [
    "CATALOG",
    "COMMANDS",
    "CatalogEntry",
    "FLAPS_DOWN",
    "FLAPS_UP",
    "LANDING_GEAR_TOGGLE",
    "LANDING_LIGHTS_TOGGLE",
    "PAUSE_TOGGLE",
    "create_dataref",
    "find_dataref",
]
