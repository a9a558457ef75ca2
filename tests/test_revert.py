"""Tests for revert reason decoding."""

from __future__ import annotations

import pytest
from eth_abi import encode as abi_encode

from ethguard.exceptions import DecodingError, NoRevertReason
from ethguard.revert import ERROR_SELECTOR, decode_revert, encode_revert


def test_decodes_error_string() -> None:
    payload = ERROR_SELECTOR + abi_encode(["string"], ["insufficient balance"])

    assert decode_revert(payload) == "insufficient balance"


def test_accepts_hex_string_payload() -> None:
    assert decode_revert("0x" + encode_revert("paused").hex()) == "paused"


def test_empty_reason() -> None:
    assert decode_revert(encode_revert("")) == ""


@pytest.mark.parametrize(
    "payload",
    [
        b"",
        b"\x08\xc3",
        bytes.fromhex("4e487b71") + abi_encode(["uint256"], [0x11]),  # Panic(uint256)
        b"\xde\xad\xbe\xef" + abi_encode(["string"], ["custom"]),
    ],
)
def test_other_prefixes_have_no_reason(payload: bytes) -> None:
    with pytest.raises(NoRevertReason):
        decode_revert(payload)


def test_malformed_body_is_decoding_error() -> None:
    with pytest.raises(DecodingError) as excinfo:
        decode_revert(ERROR_SELECTOR + b"\x00" * 3)

    assert excinfo.value.method == "Error"
