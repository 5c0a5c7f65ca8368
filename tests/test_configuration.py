from __future__ import annotations

import json
from pathlib import Path

import pytest

from pyxpconnect.configuration import (
    ConfigurationError,
    ConnectorConfig,
    DataRefSubscription,
    load_configuration,
)


def test_defaults_target_local_simulator() -> None:
    config = ConnectorConfig()

    assert config.endpoint == ("127.0.0.1", 49000)
    assert config.check_interval == 1.0
    assert config.max_dataref_age == 5.0
    assert config.default_frequency == 1
    assert config.datarefs == []


def test_from_dict_reads_sections() -> None:
    config = ConnectorConfig.from_dict(
        {
            "target": {"ip": "192.168.1.20", "port": 49001, "local_port": 49010},
            "refresh": {"check_interval": 0.5, "max_dataref_age": 3, "default_frequency": 2},
            "datarefs": [
                "sim/flightmodel/position/elevation@10",
                {"path": "sim/aircraft/view/acf_tailnum", "string_length": 40, "description": "Tail"},
            ],
        }
    )

    assert config.endpoint == ("192.168.1.20", 49001)
    assert config.local_port == 49010
    assert (config.check_interval, config.max_dataref_age, config.default_frequency) == (0.5, 3.0, 2)
    first, second = config.datarefs
    assert (first.path, first.frequency, first.is_string) == ("sim/flightmodel/position/elevation", 10, False)
    assert (second.string_length, second.description, second.is_string) == (40, "Tail", True)


def test_to_dict_round_trips() -> None:
    config = ConnectorConfig(ip="10.0.0.5", datarefs=[DataRefSubscription("sim/x", frequency=4)])

    assert ConnectorConfig.from_dict(config.to_dict()) == config


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"target": {"ip": "not-an-ip"}}, "valid IP"),
        ({"target": {"port": 70000}}, "port"),
        ({"target": {"port": "abc"}}, "integer"),
        ({"refresh": {"check_interval": 0}}, "check_interval"),
        ({"refresh": {"default_frequency": 0}}, "default_frequency"),
        ({"datarefs": {"path": "sim/x"}}, "list"),
        ({"datarefs": [{"frequency": 2}]}, "Missing dataref field"),
        ({"datarefs": ["sim/x@fast"]}, "invalid frequency"),
        ({"datarefs": [{"path": "sim/x", "string_length": 0}]}, "string_length"),
    ],
)
def test_invalid_configuration_is_rejected(payload, message) -> None:
    with pytest.raises(ConfigurationError, match=message):
        ConnectorConfig.from_dict(payload)


def test_subscription_shorthand_without_frequency() -> None:
    subscription = DataRefSubscription.parse("sim/x")

    assert subscription.frequency is None
    assert subscription.to_dict() == {"path": "sim/x"}


def test_environment_overrides_target() -> None:
    config = ConnectorConfig().apply_environment(
        {"PYXPCONNECT_IP": "10.1.1.1", "PYXPCONNECT_PORT": "49005"}
    )

    assert config.endpoint == ("10.1.1.1", 49005)


def test_environment_with_invalid_port_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ConnectorConfig().apply_environment({"PYXPCONNECT_PORT": "0"})


def test_load_configuration_from_json(tmp_path: Path) -> None:
    path = tmp_path / "connector.json"
    path.write_text(json.dumps({"target": {"port": 49002}, "datarefs": ["sim/x@3"]}), encoding="utf-8")

    config = load_configuration(path)

    assert config.port == 49002
    assert config.datarefs[0].frequency == 3


def test_load_configuration_from_yaml(tmp_path: Path) -> None:
    pytest.importorskip("yaml")
    path = tmp_path / "connector.yaml"
    path.write_text("target:\n  ip: 127.0.0.2\ndatarefs:\n  - sim/x@2\n", encoding="utf-8")

    config = load_configuration(path)

    assert config.ip == "127.0.0.2"
    assert config.datarefs[0].path == "sim/x"
