"""Transaction signing and sender recovery."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, cast

import rlp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_account.typed_transactions import TypedTransaction
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from .codec import to_bytes
from .exceptions import DecodingError, SigningError, UnsupportedTransactionType
from .types import SignedTransaction, TxType, UnsignedTransaction

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """Anything that can sign transactions for a fixed address."""

    @property
    def address(self) -> str: ...

    def sign(self, unsigned: UnsignedTransaction) -> SignedTransaction: ...


class LocalSigner:
    """Sign transactions with an in-memory private key."""

    def __init__(self, private_key: str) -> None:
        try:
            self._account = cast(LocalAccount, Account.from_key(private_key))
        except Exception as exc:
            # The key itself must never end up in the error details.
            raise SigningError(
                "Failed to derive signer account from provided private key",
                details={"error": type(exc).__name__},
            ) from exc

    def __repr__(self) -> str:
        return f"LocalSigner({self.address})"

    @property
    def address(self) -> ChecksumAddress:
        return self._account.address

    def sign(self, unsigned: UnsignedTransaction) -> SignedTransaction:
        try:
            signed = self._account.sign_transaction(unsigned.as_dict())
        except Exception as exc:
            raise SigningError(
                "Failed to sign transaction",
                details={"nonce": unsigned.nonce, "error": str(exc)},
            ) from exc
        tx_hash = HexBytes(signed.hash).to_0x_hex()
        logger.debug("Signed transaction nonce=%s hash=%s", unsigned.nonce, tx_hash)
        return SignedTransaction(
            unsigned=unsigned,
            raw=bytes(signed.raw_transaction),
            tx_hash=tx_hash,
        )


# ----------------------------------------------------------------------
# Sender recovery
# ----------------------------------------------------------------------
SigningHash = tuple[bytes, tuple[int, int, int]]

_ACCESS_LIST_FIELDS = ("chainId", "nonce", "gasPrice", "gas", "to", "value", "data", "accessList")
_DYNAMIC_FEE_FIELDS = (
    "chainId",
    "nonce",
    "maxPriorityFeePerGas",
    "maxFeePerGas",
    "gas",
    "to",
    "value",
    "data",
    "accessList",
)


def _int(tx: Mapping[str, Any], key: str, default: int | None = None) -> int:
    value = tx.get(key, default)
    if value is None:
        raise DecodingError(f"Transaction is missing field {key!r}")
    if isinstance(value, str):
        return int(value, 16)
    if isinstance(value, bytes | bytearray):
        return int.from_bytes(value, "big")
    return int(value)


def _payload(tx: Mapping[str, Any]) -> bytes:
    return to_bytes(tx.get("input", tx.get("data")))


def _recipient(tx: Mapping[str, Any]) -> str | None:
    to = tx.get("to")
    if not to:
        return None
    return to_checksum_address(to)


def transaction_type(tx: Mapping[str, Any]) -> int:
    return _int(tx, "type", 0)


def _legacy_signing_hash(tx: Mapping[str, Any]) -> SigningHash:
    v = _int(tx, "v")
    to = _recipient(tx)
    fields: list[Any] = [
        _int(tx, "nonce"),
        _int(tx, "gasPrice"),
        _int(tx, "gas"),
        bytes.fromhex(to[2:]) if to else b"",
        _int(tx, "value", 0),
        _payload(tx),
    ]
    if v in (27, 28):
        recovery = v - 27
    else:
        chain_id = (v - 35) // 2
        recovery = v - 35 - 2 * chain_id
        fields.extend([chain_id, 0, 0])
    return keccak(rlp.encode(fields)), (recovery, _int(tx, "r"), _int(tx, "s"))


def _typed_signing_hash(
    tx_type: TxType, field_names: tuple[str, ...]
) -> Callable[[Mapping[str, Any]], SigningHash]:
    def signing_hash(tx: Mapping[str, Any]) -> SigningHash:
        source = dict(tx)
        source["data"] = "0x" + _payload(tx).hex()
        source["to"] = _recipient(tx) or b""
        source["accessList"] = [
            {
                "address": to_checksum_address(entry["address"]),
                "storageKeys": [HexBytes(key).to_0x_hex() for key in entry["storageKeys"]],
            }
            for entry in tx.get("accessList") or []
        ]

        fields: dict[str, Any] = {"type": int(tx_type)}
        for name in field_names:
            if name in source and source[name] is not None:
                fields[name] = source[name]
        try:
            typed = TypedTransaction.from_dict(fields)
        except (TypeError, ValueError) as exc:
            raise DecodingError(
                "Malformed typed transaction", details={"type": int(tx_type), "error": str(exc)}
            ) from exc

        y_parity = tx.get("yParity", tx.get("v"))
        vrs = (_int({"v": y_parity}, "v"), _int(tx, "r"), _int(tx, "s"))
        return typed.hash(), vrs

    return signing_hash


_SIGNING_HASHES: dict[int, Callable[[Mapping[str, Any]], SigningHash]] = {
    TxType.LEGACY: _legacy_signing_hash,
    TxType.ACCESS_LIST: _typed_signing_hash(TxType.ACCESS_LIST, _ACCESS_LIST_FIELDS),
    TxType.DYNAMIC_FEE: _typed_signing_hash(TxType.DYNAMIC_FEE, _DYNAMIC_FEE_FIELDS),
}


def recover_sender(tx: Mapping[str, Any]) -> ChecksumAddress:
    """Recover the checksummed sender of a signed transaction.

    The signing hash depends on the envelope: EIP-155 (or pre-155) for legacy
    transactions, EIP-2930 for access-list and EIP-1559 for dynamic-fee ones.
    """

    tx_type = transaction_type(tx)
    signing_hash = _SIGNING_HASHES.get(tx_type)
    if signing_hash is None:
        raise UnsupportedTransactionType(tx_type)

    msg_hash, vrs = signing_hash(tx)
    try:
        public_key = keys.Signature(vrs=vrs).recover_public_key_from_msg_hash(msg_hash)
    except (BadSignature, KeyValidationError) as exc:
        raise DecodingError(
            "Failed to recover transaction sender",
            details={"type": tx_type, "error": str(exc)},
        ) from exc
    return public_key.to_checksum_address()
