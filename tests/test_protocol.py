from __future__ import annotations

import struct

import pytest

from pyxpconnect.protocol import (
    HEADER_CMND,
    HEADER_DREF,
    HEADER_FAIL,
    HEADER_QUIT,
    HEADER_RECO,
    HEADER_RREF,
    FrameDecodeError,
    build_command,
    build_dref_write,
    build_fail,
    build_quit,
    build_recover,
    build_rref_request,
    decode_request,
    decode_rref_response,
    encode_rref_response,
)


def test_control_messages_use_natural_length() -> None:
    assert build_command("sim/operation/pause_toggle").to_bytes() == b"CMND\x00sim/operation/pause_toggle\x00"
    assert build_quit().to_bytes() == b"QUIT\x00"
    assert build_fail(12).to_bytes() == b"FAIL\x0012\x00"
    assert build_recover("12").to_bytes() == b"RECO\x0012\x00"


def test_string_dref_write_carries_two_strings() -> None:
    payload = build_dref_write("sim/aircraft/view/acf_tailnum", "N12345").to_bytes()

    assert len(payload) == 509
    assert payload.startswith(b"DREF\x00N12345\x00sim/aircraft/view/acf_tailnum\x00")


def test_decode_rref_response_reads_pairs() -> None:
    frame = b"RREF," + struct.pack("<ifif", 3, 1.5, 7, -2.0)

    response = decode_rref_response(frame)

    assert response.is_rref
    assert response.values == [(3, 1.5), (7, -2.0)]


def test_decode_rref_response_accepts_zero_separator_and_empty_body() -> None:
    response = decode_rref_response(b"RREF\x00")

    assert response.is_rref
    assert response.values == []


def test_decode_ignores_other_headers() -> None:
    response = decode_rref_response(b"BECN\x00" + b"\x01" * 16)

    assert not response.is_rref
    assert response.values == []


def test_truncated_pair_is_rejected_with_details() -> None:
    frame = b"RREF," + struct.pack("<if", 3, 1.5) + b"\x01\x02\x03"

    with pytest.raises(FrameDecodeError) as excinfo:
        decode_rref_response(frame)

    assert excinfo.value.length == len(frame)
    assert excinfo.value.remainder == 3


def test_frame_shorter_than_header_is_rejected() -> None:
    with pytest.raises(FrameDecodeError):
        decode_rref_response(b"RRE")


def test_encode_rref_response_matches_simulator_layout() -> None:
    frame = encode_rref_response([(3, 1.5)])

    assert frame == b"RREF," + struct.pack("<if", 3, 1.5)
    assert decode_rref_response(frame).values == [(3, 1.5)]


def test_decode_request_recovers_rref_fields() -> None:
    request = decode_request(build_rref_request(5, 3, "sim/x").to_bytes())

    assert request.header == HEADER_RREF
    assert (request.frequency, request.dataref_id, request.path) == (5, 3, "sim/x")


def test_decode_request_distinguishes_dref_forms() -> None:
    numeric = decode_request(build_dref_write("sim/test", 42.0).to_bytes())
    text = decode_request(build_dref_write("sim/aircraft/view/acf_tailnum", "N12345").to_bytes())

    assert numeric.header == HEADER_DREF
    assert (numeric.path, numeric.value, numeric.text) == ("sim/test", 42.0, None)
    assert (text.path, text.text, text.value) == ("sim/aircraft/view/acf_tailnum", "N12345", None)


def test_decode_request_reads_control_messages() -> None:
    assert decode_request(build_command("sim/x").to_bytes()).text == "sim/x"
    assert decode_request(build_fail(4).to_bytes()).header == HEADER_FAIL
    assert decode_request(build_recover(4).to_bytes()).header == HEADER_RECO
    assert decode_request(build_quit().to_bytes()).header == HEADER_QUIT
    assert decode_request(build_command("a").to_bytes()).header == HEADER_CMND
