"""Multi-source block fetcher with cross-source consistency checks."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from eth_utils import to_checksum_address
from hexbytes import HexBytes

from .codec import to_bytes
from .connections import BlockId, ChainPort
from .exceptions import (
    BlockInconsistency,
    CallError,
    DecodingError,
    UnsupportedTransactionType,
    ValidationError,
)
from .parser import ProtocolParser
from .signing import recover_sender
from .types import BlockHeaderView, BlockView, TransactionView

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.lower()
    return HexBytes(value).to_0x_hex()


def _number(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16)
    return int(value)


def header_from_block(block: Mapping[str, Any]) -> BlockHeaderView:
    timestamp = block.get("timestamp")
    return BlockHeaderView(
        number=_number(block["number"]),
        hash=_hex(block.get("hash")),
        parent_hash=_hex(block.get("parentHash")),
        timestamp=_number(timestamp) if timestamp is not None else None,
    )


def _summary(block: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "number": _number(block["number"]),
        "hash": _hex(block.get("hash")),
        "tx_count": len(block.get("transactions") or []),
    }


class BlockFetcher:
    """Fetch a block from every source and trust it only when they all agree.

    Sources are queried one after another in configured order; the first
    error or the first divergence aborts the fetch. Index 0 is the primary
    source used for height and header lookups.

    A matching transaction whose type has no sender recovery (blob or
    set-code transactions) raises :class:`UnsupportedTransactionType` and
    aborts the block as well.
    """

    def __init__(
        self,
        sources: Sequence[ChainPort],
        parser: ProtocolParser | None = None,
        *,
        sender_recoverer: Callable[[Mapping[str, Any]], str] = recover_sender,
    ) -> None:
        if not sources:
            raise ValidationError("At least one block source is required", field="sources")
        self._sources = tuple(sources)
        self._parser = parser
        self._recover_sender = sender_recoverer

    @property
    def primary(self) -> ChainPort:
        return self._sources[0]

    def current_height(self) -> int:
        return self._from_source(0, "block_number", lambda port: port.block_number())

    def header_at(self, height: int | None = None) -> BlockHeaderView:
        """Return the primary source's header at ``height``, or the latest one."""

        block_id: BlockId = "latest" if height is None else height
        block = self._from_source(
            0, "get_block", lambda port: port.get_block(block_id, full=False)
        )
        return header_from_block(block)

    def fetch_block(self, height: int) -> BlockView:
        if self._parser is None:
            raise ValidationError("A protocol parser is required to fetch blocks", field="parser")
        reference: Mapping[str, Any] | None = None

        for index in range(len(self._sources)):
            block = self._from_source(
                index, "get_block", lambda port: port.get_block(height, full=True)
            )
            if reference is not None:
                self._compare(index, reference, block)
            reference = block

        assert reference is not None
        header = header_from_block(reference)
        transactions = self._protocol_transactions(header, reference.get("transactions") or [])
        logger.debug(
            "Fetched block %s hash=%s with %s protocol transaction(s)",
            header.number,
            header.hash,
            len(transactions),
        )
        return BlockView(header=header, transactions=tuple(transactions))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _from_source(
        self,
        index: int,
        operation: str,
        func: Callable[[ChainPort], Any],
    ) -> Any:
        port = self._sources[index]
        try:
            return func(port)
        except Exception as exc:
            raise CallError(
                f"{operation} failed on source {index}",
                operation=operation,
                endpoint=port.endpoint,
                details={"source_index": index, "error": str(exc)},
            ) from exc

    @staticmethod
    def _compare(index: int, reference: Mapping[str, Any], block: Mapping[str, Any]) -> None:
        previous = _summary(reference)
        current = _summary(block)
        if previous["hash"] == current["hash"] and previous["tx_count"] == current["tx_count"]:
            return
        logger.warning(
            "Block inconsistency at source %s: number=%s hash=%s tx_count=%s "
            "vs number=%s hash=%s tx_count=%s",
            index,
            previous["number"],
            previous["hash"],
            previous["tx_count"],
            current["number"],
            current["hash"],
            current["tx_count"],
        )
        raise BlockInconsistency(index, previous, current)

    def _protocol_transactions(
        self,
        header: BlockHeaderView,
        transactions: Sequence[Any],
    ) -> list[TransactionView]:
        parser = self._parser
        assert parser is not None
        views: list[TransactionView] = []
        for position, tx in enumerate(transactions):
            if not isinstance(tx, Mapping):
                raise DecodingError(
                    "Block was fetched without full transaction objects",
                    details={"block": header.number, "position": position},
                )
            payload = to_bytes(tx.get("input", tx.get("data")))
            if not parser.check_format(payload):
                continue

            try:
                data = parser.parse(payload)
            except Exception as exc:
                logger.debug(
                    "Dropping transaction %s in block %s: %s", position, header.number, exc
                )
                continue

            views.append(self._view(header, position, tx, data))
        return views

    def _view(
        self,
        header: BlockHeaderView,
        position: int,
        tx: Mapping[str, Any],
        data: Any,
    ) -> TransactionView:
        try:
            sender = self._recover_sender(tx)
        except UnsupportedTransactionType:
            raise
        except DecodingError as exc:
            raise DecodingError(
                f"Failed to recover sender of transaction {position} in block {header.number}",
                details={"block": header.number, "position": position, "error": exc.message},
            ) from exc

        to = tx.get("to")
        return TransactionView(
            data=data,
            sender=sender,
            to=_checksum_or_zero(to),
            position=position,
            tx_hash=_hex(tx.get("hash")),
            tx_type=_number(tx.get("type", 0)),
        )


def _checksum_or_zero(address: Any) -> str:
    if not address:
        return ZERO_ADDRESS
    return to_checksum_address(address)
