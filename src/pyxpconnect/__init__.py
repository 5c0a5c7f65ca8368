"""pyxpconnect - a client for the X-Plane UDP dataref protocol."""

from .catalog import CATALOG, COMMANDS, CatalogEntry, create_dataref, find_dataref
from .configuration import ConfigurationError, ConnectorConfig, DataRefSubscription, load_configuration
from .connector import ConnectorError, ConnectorState, TransportError, XPlaneConnector
from .datagram import Datagram, DatagramOverflowError
from .datarefs import CharacterDataRefElement, DataRefElement, StringDataRefElement, XPlaneCommand
from .protocol import FrameDecodeError
from .simulator import SimulatorStub

__all__ = [
    "CATALOG",
    "COMMANDS",
    "CatalogEntry",
    "CharacterDataRefElement",
    "ConfigurationError",
    "ConnectorConfig",
    "ConnectorError",
    "ConnectorState",
    "DataRefElement",
    "DataRefSubscription",
    "Datagram",
    "DatagramOverflowError",
    "FrameDecodeError",
    "SimulatorStub",
    "StringDataRefElement",
    "TransportError",
    "XPlaneCommand",
    "XPlaneConnector",
    "create_dataref",
    "find_dataref",
    "load_configuration",
]
