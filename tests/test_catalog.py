from __future__ import annotations

from pyxpconnect.catalog import CATALOG, COMMANDS, PAUSE_TOGGLE, create_dataref, find_dataref
from pyxpconnect.datarefs import DataRefElement, StringDataRefElement


def test_catalog_entries_build_fresh_elements() -> None:
    first = create_dataref("sim/cockpit2/gauges/indicators/airspeed_kts_pilot")
    second = create_dataref("sim/cockpit2/gauges/indicators/airspeed_kts_pilot")

    assert isinstance(first, DataRefElement)
    assert first is not second
    assert first.units == "knots"
    assert first.frequency == 5


def test_string_entries_build_string_elements() -> None:
    element = create_dataref("sim/aircraft/view/acf_tailnum")

    assert isinstance(element, StringDataRefElement)
    assert len(element.elements) == 40


def test_unknown_paths_fall_back_to_numeric_elements() -> None:
    element = create_dataref("sim/custom/value")

    assert type(element) is DataRefElement
    assert element.frequency is None
    assert find_dataref("sim/custom/value") is None


def test_commands_are_indexed_by_name() -> None:
    assert COMMANDS["sim/operation/pause_toggle"] is PAUSE_TOGGLE
    assert str(PAUSE_TOGGLE) == "sim/operation/pause_toggle"
    assert all(path == entry.path for path, entry in CATALOG.items())
