"""Small conversion helpers shared across ethguard."""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from hexbytes import HexBytes

from .exceptions import ValidationError

HASH_SIZE = 32


def tx_id_to_hash(tx_id: int) -> str:
    """Render an integer transaction id as a 32-byte 0x hash."""
    if tx_id < 0 or tx_id >= 2 ** (8 * HASH_SIZE):
        raise ValidationError("Transaction id does not fit in 32 bytes", field="tx_id", value=tx_id)
    return "0x" + tx_id.to_bytes(HASH_SIZE, "big").hex()


def tx_hash_to_id(tx_hash: str) -> int:
    """Inverse of :func:`tx_id_to_hash`."""
    try:
        return int.from_bytes(HexBytes(tx_hash), "big")
    except ValueError as exc:
        raise ValidationError("Invalid transaction hash", field="tx_hash", value=tx_hash) from exc


def hex_to_str(value: str) -> str:
    """Decode a 0x hex string into UTF-8 text (``0x65746869`` -> ``ethi``)."""
    try:
        return bytes(HexBytes(value)).decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError("Value is not hex-encoded text", field="value", value=value) from exc


def str_to_hex(value: str) -> str:
    return "0x" + value.encode("utf-8").hex()


def scale_units(amount: int, exponent: int) -> Decimal:
    """Scale an integer amount of base units down by ``10 ** exponent``."""
    if exponent < 0:
        raise ValidationError("Exponent cannot be negative", field="exponent", value=exponent)
    return Decimal(amount).scaleb(-exponent)


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt
