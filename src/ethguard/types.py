"""Type definitions and data models for ethguard."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from hexbytes import HexBytes


class TxType(IntEnum):
    """Transaction envelope types understood by the signer and the fetcher."""

    LEGACY = 0
    ACCESS_LIST = 1
    DYNAMIC_FEE = 2


class WriteStatus(Enum):
    """Terminal states of a contract write."""

    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


Address = str  # 0x-prefixed, checksummed where it matters
Wei = int


@dataclass(frozen=True)
class CallRequest:
    """A contract method invocation: target, method name and arguments."""

    to: Address
    method: str
    args: tuple[Any, ...] = ()
    value: Wei = 0

    @classmethod
    def of(cls, to: Address, method: str, *args: Any, value: Wei = 0) -> CallRequest:
        return cls(to=to, method=method, args=tuple(args), value=value)


@dataclass(frozen=True)
class UnsignedTransaction:
    """One submission attempt before signing.

    Fee changes produce a new instance through :meth:`with_bumped_fee`; the
    nonce never changes for the lifetime of a submission.
    """

    nonce: int
    to: Address
    value: Wei
    gas: int
    gas_price: Wei
    data: bytes
    chain_id: int
    tx_type: TxType = TxType.LEGACY
    max_priority_fee_per_gas: Wei | None = None

    def with_bumped_fee(self, factor: int = 2) -> UnsignedTransaction:
        priority = self.max_priority_fee_per_gas
        return replace(
            self,
            gas_price=self.gas_price * factor,
            max_priority_fee_per_gas=priority * factor if priority is not None else None,
        )

    def as_dict(self) -> dict[str, Any]:
        """Return the transaction in the field layout eth-account signs."""

        tx: dict[str, Any] = {
            "nonce": self.nonce,
            "to": self.to,
            "value": self.value,
            "gas": self.gas,
            "data": HexBytes(self.data),
            "chainId": self.chain_id,
        }
        if self.tx_type == TxType.DYNAMIC_FEE:
            tx["type"] = int(TxType.DYNAMIC_FEE)
            tx["maxFeePerGas"] = self.gas_price
            tx["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas or 0
        else:
            tx["gasPrice"] = self.gas_price
        return tx


@dataclass(frozen=True)
class SignedTransaction:
    """An unsigned transaction together with its serialised signed form."""

    unsigned: UnsignedTransaction
    raw: bytes
    tx_hash: str

    @property
    def nonce(self) -> int:
        return self.unsigned.nonce

    @property
    def gas_price(self) -> Wei:
        return self.unsigned.gas_price


@dataclass(frozen=True)
class Receipt:
    """Minimal projection of a transaction receipt."""

    tx_hash: str
    success: bool
    block_number: int | None = None
    gas_used: int | None = None
    raw: Any = None


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a confirmed write."""

    tx_hash: str
    status: WriteStatus
    receipt: Receipt | None = None
    attempts: tuple[SignedTransaction, ...] = ()


@dataclass(frozen=True)
class BlockHeaderView:
    """Normalised block header used for cross-source comparison."""

    number: int
    hash: str
    parent_hash: str
    timestamp: int | None = None

    @property
    def time(self) -> datetime | None:
        if self.timestamp is None:
            return None
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class TransactionView:
    """A protocol-matching transaction lifted out of a block."""

    data: Any
    sender: Address
    to: Address
    position: int
    tx_hash: str = ""
    tx_type: int = 0


@dataclass(frozen=True)
class BlockView:
    """A consistent block and the transactions that matched the protocol."""

    header: BlockHeaderView
    transactions: tuple[TransactionView, ...] = field(default_factory=tuple)

    @property
    def positions(self) -> Sequence[int]:
        return [tx.position for tx in self.transactions]
