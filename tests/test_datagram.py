import struct

import pytest

from pyxpconnect.datagram import DREF_LENGTH, RREF_LENGTH, Datagram, DatagramOverflowError
from pyxpconnect.protocol import build_dref_write, build_rref_request


def test_text_fields_are_zero_terminated() -> None:
    datagram = Datagram().add("RREF").add("sim/x")

    assert datagram.to_bytes() == b"RREF\x00sim/x\x00"
    assert len(datagram) == 11
    assert datagram.cursor == 11


def test_numbers_are_little_endian() -> None:
    datagram = Datagram().add(5).add(1.5).add(-2)

    assert datagram.to_bytes() == struct.pack("<ifi", 5, 1.5, -2)


def test_booleans_are_rejected() -> None:
    with pytest.raises(TypeError):
        Datagram().add(True)


def test_fill_to_pads_with_zero_bytes() -> None:
    datagram = Datagram().add("QUIT").fill_to(12)

    assert datagram.to_bytes() == b"QUIT" + b"\x00" * 8


def test_fill_to_rejects_oversized_buffer() -> None:
    datagram = Datagram().add("x" * 20)

    with pytest.raises(DatagramOverflowError):
        datagram.fill_to(10)


def test_dref_write_is_exactly_509_bytes() -> None:
    datagram = build_dref_write("sim/test", 42.0)

    assert len(datagram) == DREF_LENGTH == 509
    payload = datagram.to_bytes()
    assert payload[:5] == b"DREF\x00"
    assert struct.unpack_from("<f", payload, 5)[0] == 42.0
    assert payload[9:18] == b"sim/test\x00"


def test_rref_request_is_exactly_413_bytes() -> None:
    payload = build_rref_request(5, 3, "sim/x").to_bytes()

    assert len(payload) == RREF_LENGTH == 413
    assert struct.unpack_from("<ii", payload, 5) == (5, 3)
    assert payload[13:19] == b"sim/x\x00"
    assert set(payload[19:]) == {0}
