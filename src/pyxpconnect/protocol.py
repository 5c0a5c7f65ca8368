"""Message builders and frame decoding for the X-Plane UDP protocol."""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Tuple, Union

from .datagram import DREF_LENGTH, RREF_LENGTH, Datagram

HEADER_RREF: str = "RREF"
HEADER_DREF: str = "DREF"
HEADER_CMND: str = "CMND"
HEADER_QUIT: str = "QUIT"
HEADER_FAIL: str = "FAIL"
HEADER_RECO: str = "RECO"

# 4 header characters plus a separator byte ("\0" outbound, "," from X-Plane)
HEADER_SIZE: int = 5
PAIR_SIZE: int = 8

# header, frequency and id precede the path, which needs its terminator
MAX_RREF_PATH_BYTES: int = RREF_LENGTH - HEADER_SIZE - 8 - 1

_PAIR: struct.Struct = struct.Struct("<if")


class FrameDecodeError(ValueError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(self, message: str, *, length: int, remainder: int = 0) -> None:
        super().__init__(message)
        self.length = length
        self.remainder = remainder


@dataclass(slots=True)
class RrefResponse:
    """Decoded inbound frame; ``values`` is empty for non-RREF traffic."""

    header: str
    values: List[Tuple[int, float]] = field(default_factory=list)

    @property
    def is_rref(self) -> bool:
        return self.header == HEADER_RREF


def build_rref_request(frequency: int, dataref_id: int, path: str) -> Datagram:
    """Request (or cancel, with ``frequency`` 0) a dataref stream."""

    datagram = Datagram()
    datagram.add_text(HEADER_RREF)
    datagram.add_int(frequency)
    datagram.add_int(dataref_id)
    datagram.add_text(path)
    return datagram.fill_to(RREF_LENGTH)


def build_dref_write(path: str, value: Union[float, str]) -> Datagram:
    datagram = Datagram()
    datagram.add_text(HEADER_DREF)
    if isinstance(value, str):
        datagram.add_text(value)
    else:
        datagram.add_float(float(value))
    datagram.add_text(path)
    return datagram.fill_to(DREF_LENGTH)


def build_command(command: str) -> Datagram:
    return Datagram().add_text(HEADER_CMND).add_text(command)


def build_quit() -> Datagram:
    return Datagram().add_text(HEADER_QUIT)


def build_fail(system: Union[int, str]) -> Datagram:
    return Datagram().add_text(HEADER_FAIL).add_text(str(system))


def build_recover(system: Union[int, str]) -> Datagram:
    return Datagram().add_text(HEADER_RECO).add_text(str(system))


def _read_header(data: bytes) -> str:
    if len(data) < HEADER_SIZE:
        raise FrameDecodeError(
            f"Frame of {len(data)} bytes is too small for a header",
            length=len(data),
        )
    return data[:4].decode("ascii", errors="replace")


def decode_rref_response(data: bytes) -> RrefResponse:
    """Decode an inbound frame into ``(id, value)`` pairs.

    Frames with another header are returned without values. An ``RREF`` body
    must be an exact multiple of the pair size; a truncated body is rejected
    as a whole.
    """

    header = _read_header(data)
    if header != HEADER_RREF:
        return RrefResponse(header=header)
    body = memoryview(data)[HEADER_SIZE:]
    remainder = len(body) % PAIR_SIZE
    if remainder:
        raise FrameDecodeError(
            f"RREF frame body of {len(body)} bytes leaves {remainder} dangling bytes",
            length=len(data),
            remainder=remainder,
        )
    values = list(_PAIR.iter_unpack(body))
    return RrefResponse(header=header, values=values)


def encode_rref_response(values: List[Tuple[int, float]]) -> bytes:
    """Build an ``RREF`` frame the way the simulator streams it."""

    return b"RREF," + b"".join(_PAIR.pack(dataref_id, value) for dataref_id, value in values)


# ----------------------------------------------------------------------
# Request decoding, used by the simulator stub
# ----------------------------------------------------------------------


@dataclass(slots=True)
class InboundRequest:
    """A request datagram as seen by the simulator side."""

    header: str
    path: Optional[str] = None
    frequency: Optional[int] = None
    dataref_id: Optional[int] = None
    value: Optional[float] = None
    text: Optional[str] = None

    _RREF_FIELDS: ClassVar[struct.Struct] = struct.Struct("<ii")
    _FLOAT: ClassVar[struct.Struct] = struct.Struct("<f")


def _cstring(data: bytes, offset: int) -> Tuple[str, int]:
    end = data.find(b"\x00", offset)
    if end < 0:
        end = len(data)
    return data[offset:end].decode("utf-8", errors="replace"), end + 1


def _is_printable(text: str) -> bool:
    return bool(text) and text.isprintable()


def decode_request(data: bytes) -> InboundRequest:
    """Decode an outbound message built by this module."""

    header = _read_header(data)
    if header == HEADER_RREF:
        if len(data) < HEADER_SIZE + InboundRequest._RREF_FIELDS.size:
            raise FrameDecodeError("RREF request is truncated", length=len(data))
        frequency, dataref_id = InboundRequest._RREF_FIELDS.unpack_from(data, HEADER_SIZE)
        path, _ = _cstring(data, HEADER_SIZE + InboundRequest._RREF_FIELDS.size)
        return InboundRequest(header=header, path=path, frequency=frequency, dataref_id=dataref_id)
    if header == HEADER_DREF:
        if len(data) < HEADER_SIZE + InboundRequest._FLOAT.size:
            raise FrameDecodeError("DREF request is truncated", length=len(data))
        text, offset = _cstring(data, HEADER_SIZE)
        path, _ = _cstring(data, offset)
        # string writes are two terminated strings; float writes start with raw bytes
        if _is_printable(text) and _is_printable(path):
            return InboundRequest(header=header, path=path, text=text)
        (value,) = InboundRequest._FLOAT.unpack_from(data, HEADER_SIZE)
        path, _ = _cstring(data, HEADER_SIZE + InboundRequest._FLOAT.size)
        return InboundRequest(header=header, path=path, value=value)
    if header in (HEADER_CMND, HEADER_FAIL, HEADER_RECO):
        text, _ = _cstring(data, HEADER_SIZE)
        return InboundRequest(header=header, text=text)
    return InboundRequest(header=header)


__all__ = [
    "FrameDecodeError",
    "HEADER_CMND",
    "HEADER_DREF",
    "HEADER_FAIL",
    "HEADER_QUIT",
    "HEADER_RECO",
    "HEADER_RREF",
    "InboundRequest",
    "MAX_RREF_PATH_BYTES",
    "RrefResponse",
    "build_command",
    "build_dref_write",
    "build_fail",
    "build_quit",
    "build_recover",
    "build_rref_request",
    "decode_request",
    "decode_rref_response",
    "encode_rref_response",
]
