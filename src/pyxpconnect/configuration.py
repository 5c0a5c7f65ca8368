"""Configuration models for connector sessions."""
from __future__ import annotations

import ipaddress
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_IP = "127.0.0.1"
DEFAULT_PORT = 49000

ENV_IP = "PYXPCONNECT_IP"
ENV_PORT = "PYXPCONNECT_PORT"


class ConfigurationError(ValueError):
    """Raised when configuration data is invalid."""


def _parse_port(value: Any, *, name: str, allow_zero: bool = False) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'.") from exc
    lower = 0 if allow_zero else 1
    if port < lower or port > 65535:
        raise ConfigurationError(f"{name} {port} is outside the valid UDP port range.")
    return port


def _parse_positive_float(value: Any, *, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got '{value}'.") from exc
    if number <= 0:
        raise ConfigurationError(f"{name} must be greater than zero.")
    return number


def _parse_ip(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise ConfigurationError("ip cannot be empty.")
    try:
        ipaddress.ip_address(text)
    except ValueError as exc:
        raise ConfigurationError(f"'{text}' is not a valid IP address.") from exc
    return text


@dataclass(slots=True)
class DataRefSubscription:
    """A dataref the CLI should subscribe to on start-up."""

    path: str
    frequency: Optional[int] = None
    string_length: Optional[int] = None
    description: str = ""

    @property
    def is_string(self) -> bool:
        return self.string_length is not None

    @classmethod
    def from_dict(cls, raw: Any) -> "DataRefSubscription":
        if isinstance(raw, str):
            return cls.parse(raw)
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Dataref entry must be an object or string, got {raw!r}.")
        try:
            path = str(raw["path"]).strip()
        except KeyError as exc:
            raise ConfigurationError(f"Missing dataref field: {exc.args[0]}") from exc
        if not path:
            raise ConfigurationError("Dataref path cannot be empty.")
        frequency = raw.get("frequency")
        if frequency is not None:
            try:
                frequency = int(frequency)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Dataref '{path}' has invalid frequency '{frequency}'."
                ) from exc
            if frequency < 1:
                raise ConfigurationError(f"Dataref '{path}' frequency must be at least 1.")
        string_length = raw.get("string_length")
        if string_length is not None:
            try:
                string_length = int(string_length)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Dataref '{path}' has invalid string_length '{string_length}'."
                ) from exc
            if string_length < 1:
                raise ConfigurationError(f"Dataref '{path}' string_length must be at least 1.")
        return cls(
            path=path,
            frequency=frequency,
            string_length=string_length,
            description=str(raw.get("description") or ""),
        )

    @classmethod
    def parse(cls, text: str) -> "DataRefSubscription":
        """Parse the ``path@frequency`` shorthand."""

        path, _, frequency = text.strip().partition("@")
        raw: Dict[str, Any] = {"path": path}
        if frequency:
            raw["frequency"] = frequency
        return cls.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": self.path}
        if self.frequency is not None:
            payload["frequency"] = self.frequency
        if self.string_length is not None:
            payload["string_length"] = self.string_length
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class ConnectorConfig:
    """Connection and refresh settings for an :class:`XPlaneConnector`.

    Intervals are in seconds. ``default_frequency`` is the update rate used
    for datarefs that do not request one of their own.
    """

    ip: str = DEFAULT_IP
    port: int = DEFAULT_PORT
    local_port: int = 0
    check_interval: float = 1.0
    max_dataref_age: float = 5.0
    default_frequency: int = 1
    receive_timeout: float = 0.5
    datarefs: List[DataRefSubscription] = field(default_factory=list)

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self.ip, self.port)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ConnectorConfig":
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Configuration must be an object at the top level.")
        target = raw.get("target") or {}
        if not isinstance(target, Mapping):
            raise ConfigurationError("'target' must be an object.")
        refresh = raw.get("refresh") or {}
        if not isinstance(refresh, Mapping):
            raise ConfigurationError("'refresh' must be an object.")
        default_frequency = refresh.get("default_frequency", 1)
        try:
            default_frequency = int(default_frequency)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"default_frequency must be an integer, got '{default_frequency}'."
            ) from exc
        if default_frequency < 1:
            raise ConfigurationError("default_frequency must be at least 1.")
        datarefs_raw = raw.get("datarefs", [])
        if not isinstance(datarefs_raw, list):
            raise ConfigurationError("'datarefs' must be a list.")
        return cls(
            ip=_parse_ip(target.get("ip", DEFAULT_IP)),
            port=_parse_port(target.get("port", DEFAULT_PORT), name="port"),
            local_port=_parse_port(target.get("local_port", 0), name="local_port", allow_zero=True),
            check_interval=_parse_positive_float(
                refresh.get("check_interval", 1.0), name="check_interval"
            ),
            max_dataref_age=_parse_positive_float(
                refresh.get("max_dataref_age", 5.0), name="max_dataref_age"
            ),
            default_frequency=default_frequency,
            receive_timeout=_parse_positive_float(
                refresh.get("receive_timeout", 0.5), name="receive_timeout"
            ),
            datarefs=[DataRefSubscription.from_dict(entry) for entry in datarefs_raw],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": {"ip": self.ip, "port": self.port, "local_port": self.local_port},
            "refresh": {
                "check_interval": self.check_interval,
                "max_dataref_age": self.max_dataref_age,
                "default_frequency": self.default_frequency,
                "receive_timeout": self.receive_timeout,
            },
            "datarefs": [entry.to_dict() for entry in self.datarefs],
        }

    def apply_environment(self, environ: Optional[Mapping[str, str]] = None) -> "ConnectorConfig":
        """Override the target endpoint from ``PYXPCONNECT_IP``/``PYXPCONNECT_PORT``."""

        env = os.environ if environ is None else environ
        if env.get(ENV_IP):
            self.ip = _parse_ip(env[ENV_IP])
        if env.get(ENV_PORT):
            self.port = _parse_port(env[ENV_PORT], name=ENV_PORT)
        return self


def load_configuration(path: Path) -> ConnectorConfig:
    """Read a JSON (or, with PyYAML installed, YAML) configuration file."""

    text = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        try:  # pragma: no cover - optional dependency
            import yaml  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ConfigurationError(
                f"{path} is not valid JSON and PyYAML is not installed."
            ) from exc
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc
    return ConnectorConfig.from_dict(payload)


__all__ = [
    "ConfigurationError",
    "ConnectorConfig",
    "DEFAULT_IP",
    "DEFAULT_PORT",
    "DataRefSubscription",
    "load_configuration",
]
