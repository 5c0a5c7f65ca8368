"""Loopback tests running the connector against the simulator stub."""
from __future__ import annotations

import socket
import threading
import time
from typing import Callable, Iterator, List

import pytest

from pyxpconnect.configuration import ConnectorConfig
from pyxpconnect.connector import XPlaneConnector
from pyxpconnect.datarefs import DataRefElement, StringDataRefElement
from pyxpconnect.protocol import HEADER_CMND, HEADER_DREF, HEADER_RREF
from pyxpconnect.simulator import SimulatorStub


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def stub() -> Iterator[SimulatorStub]:
    simulator = SimulatorStub(
        stream_interval=0.02,
        values={
            "sim/cockpit2/gauges/indicators/airspeed_kts_pilot": 120.5,
            "sim/aircraft/view/acf_tailnum": "N12345",
        },
    )
    with simulator.running():
        yield simulator


@pytest.fixture
def connector(stub: SimulatorStub) -> Iterator[XPlaneConnector]:
    config = ConnectorConfig(
        ip="127.0.0.1",
        port=stub.port,
        check_interval=0.1,
        max_dataref_age=2.0,
        receive_timeout=0.1,
    )
    client = XPlaneConnector(config)
    with client.lifecycle():
        yield client


def test_subscribed_values_stream_back(connector: XPlaneConnector, stub: SimulatorStub) -> None:
    received = threading.Event()
    element = DataRefElement("sim/cockpit2/gauges/indicators/airspeed_kts_pilot")

    connector.subscribe(element, frequency=20, on_change=lambda source, value: received.set())

    assert received.wait(timeout=5.0)
    assert element.value == pytest.approx(120.5)
    requests = stub.requests(HEADER_RREF)
    assert requests[0].frequency == 20
    assert requests[0].dataref_id == element.id


def test_value_changes_are_observed(connector: XPlaneConnector, stub: SimulatorStub) -> None:
    values: List[float] = []
    element = DataRefElement("sim/flightmodel/position/elevation")
    stub.set_value(element.dataref, 10.0)
    connector.subscribe(element, frequency=20, on_change=lambda source, value: values.append(value))
    assert _wait_for(lambda: 10.0 in values)

    stub.set_value(element.dataref, 11.0)

    assert _wait_for(lambda: 11.0 in values)


def test_dataref_write_reaches_simulator(connector: XPlaneConnector, stub: SimulatorStub) -> None:
    connector.set_dataref_value("sim/cockpit/switches/parking_brake", 1)
    connector.set_dataref_value("sim/aircraft/view/acf_tailnum", "D-ABCD")
    connector.send_command("sim/operation/pause_toggle")

    assert _wait_for(lambda: stub.get_value("sim/aircraft/view/acf_tailnum") == "D-ABCD")
    assert stub.get_value("sim/cockpit/switches/parking_brake") == pytest.approx(1.0)
    assert len(stub.requests(HEADER_DREF)) == 2
    assert _wait_for(lambda: [item.text for item in stub.requests(HEADER_CMND)] == ["sim/operation/pause_toggle"])


def test_string_dataref_is_reconstructed(connector: XPlaneConnector) -> None:
    complete = threading.Event()
    element = StringDataRefElement(dataref="sim/aircraft/view/acf_tailnum", length=8)

    def _on_text(source: StringDataRefElement, text: str) -> None:
        if source.is_complete:
            complete.set()

    connector.subscribe_string(element, frequency=20, on_change=_on_text)

    assert complete.wait(timeout=5.0)
    assert element.value == "N12345"


def test_unsubscribe_stops_simulator_stream(connector: XPlaneConnector, stub: SimulatorStub) -> None:
    received = threading.Event()
    element = DataRefElement("sim/cockpit2/gauges/indicators/airspeed_kts_pilot")
    connector.subscribe(element, frequency=20, on_change=lambda source, value: received.set())
    assert received.wait(timeout=5.0)

    assert connector.unsubscribe(element.dataref)

    assert _wait_for(lambda: stub.subscribed_paths() == [])


def test_malformed_frame_is_reported_and_discarded(connector: XPlaneConnector) -> None:
    messages: List[str] = []
    reported = threading.Event()

    def _on_log(message: str) -> None:
        messages.append(message)
        if "Discarding malformed frame" in message:
            reported.set()

    connector.register_log_listener(_on_log)
    element = connector.subscribe(DataRefElement("sim/unused"))
    local = connector.local_endpoint
    assert local is not None

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
        sender.sendto(b"RREF," + b"\x01\x00\x00\x00\x00\x00", ("127.0.0.1", local[1]))

    assert reported.wait(timeout=5.0)
    assert element.value is None
    assert connector.is_running


def test_stop_sends_cancellations(stub: SimulatorStub) -> None:
    config = ConnectorConfig(ip="127.0.0.1", port=stub.port, check_interval=0.1, receive_timeout=0.1)
    client = XPlaneConnector(config)
    client.start()
    received = threading.Event()
    client.subscribe(
        DataRefElement("sim/cockpit2/gauges/indicators/airspeed_kts_pilot"),
        frequency=20,
        on_change=lambda source, value: received.set(),
    )
    assert received.wait(timeout=5.0)

    client.stop(timeout=2.0)

    assert _wait_for(lambda: stub.subscribed_paths() == [])
    cancels = [item for item in stub.requests(HEADER_RREF) if item.frequency == 0]
    assert [item.path for item in cancels] == ["sim/cockpit2/gauges/indicators/airspeed_kts_pilot"]
