"""Decoding of Solidity ``Error(string)`` revert payloads."""

from __future__ import annotations

from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi import exceptions as abi_exceptions

from .codec import SELECTOR_SIZE, to_bytes
from .exceptions import DecodingError, NoRevertReason

# keccak256("Error(string)")[:4]
ERROR_SELECTOR = bytes.fromhex("08c379a0")


def decode_revert(payload: Any) -> str:
    """Return the reason string carried by a revert payload.

    Raises :class:`NoRevertReason` when the payload does not start with the
    ``Error(string)`` selector and :class:`DecodingError` when it does but the
    remainder is not a valid string encoding.
    """

    data = to_bytes(payload)
    if len(data) < SELECTOR_SIZE or data[:SELECTOR_SIZE] != ERROR_SELECTOR:
        raise NoRevertReason("No revert reason", details={"prefix": data[:SELECTOR_SIZE].hex()})

    try:
        (reason,) = abi_decode(["string"], data[SELECTOR_SIZE:])
    except (abi_exceptions.DecodingError, ValueError) as exc:
        raise DecodingError(
            "Failed to unpack revert reason", method="Error", details={"error": str(exc)}
        ) from exc
    return reason


def encode_revert(reason: str) -> bytes:
    """Build an ``Error(string)`` payload; the inverse of :func:`decode_revert`."""

    return ERROR_SELECTOR + abi_encode(["string"], [reason])
