"""Outbound datagram builder for the X-Plane UDP protocol."""
from __future__ import annotations

import struct
from typing import ClassVar, Union

RREF_LENGTH: int = 413
DREF_LENGTH: int = 509


class DatagramOverflowError(ValueError):
    """Raised when a datagram already exceeds its padding target."""


class Datagram:
    """Append-only byte buffer with little-endian field encoders.

    The wire format is not self-describing: the order and number of fields is
    entirely up to the caller building a given message.
    """

    _INT: ClassVar[struct.Struct] = struct.Struct("<i")
    _FLOAT: ClassVar[struct.Struct] = struct.Struct("<f")

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def cursor(self) -> int:
        return len(self._buffer)

    def add(self, value: Union[str, int, float]) -> "Datagram":
        # bool is an int subclass but has no meaning on the wire
        if isinstance(value, bool):
            raise TypeError("Boolean values cannot be encoded; use int or float.")
        if isinstance(value, str):
            return self.add_text(value)
        if isinstance(value, int):
            return self.add_int(value)
        if isinstance(value, float):
            return self.add_float(value)
        raise TypeError(f"Unsupported datagram field type {type(value).__name__}")

    def add_text(self, text: str) -> "Datagram":
        """Append UTF-8 text followed by a single zero terminator."""

        self._buffer.extend(text.encode("utf-8"))
        self._buffer.append(0)
        return self

    def add_int(self, value: int) -> "Datagram":
        self._buffer.extend(self._INT.pack(value))
        return self

    def add_float(self, value: float) -> "Datagram":
        self._buffer.extend(self._FLOAT.pack(value))
        return self

    def fill_to(self, length: int) -> "Datagram":
        """Pad the buffer with zero bytes up to ``length``."""

        current = len(self._buffer)
        if current > length:
            raise DatagramOverflowError(
                f"Datagram is {current} bytes, larger than the {length} byte target"
            )
        self._buffer.extend(b"\x00" * (length - current))
        return self

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return f"Datagram(length={len(self._buffer)})"


__all__ = [
    "DREF_LENGTH",
    "Datagram",
    "DatagramOverflowError",
    "RREF_LENGTH",
]
