"""Tests for the multi-source block fetcher."""

from __future__ import annotations

from typing import Any

import pytest
from eth_utils import to_checksum_address

from ethguard.exceptions import (
    BlockInconsistency,
    CallError,
    DecodingError,
    ParseError,
    UnsupportedTransactionType,
    ValidationError,
)
from ethguard.fetcher import ZERO_ADDRESS, BlockFetcher
from ethguard.types import BlockView

PREFIX = b"\xaa\xbb"
CONTRACT = to_checksum_address("0x" + "12" * 20)


class PrefixParser:
    """Matches payloads with a fixed prefix.

    ``\\xff`` after the prefix fails with ``ParseError``, ``\\xfe`` with a plain ``ValueError``.
    """

    def __init__(self) -> None:
        self.parsed: list[bytes] = []

    def check_format(self, payload: bytes) -> bool:
        return payload.startswith(PREFIX)

    def parse(self, payload: bytes) -> Any:
        self.parsed.append(payload)
        body = payload[len(PREFIX) :]
        if body.startswith(b"\xff"):
            raise ParseError("unsupported action")
        if body.startswith(b"\xfe"):
            raise ValueError("bad body")
        return {"body": body.hex()}


class DummySource:
    def __init__(self, endpoint: str, blocks: dict[Any, Any] | None = None) -> None:
        self.endpoint = endpoint
        self.blocks = blocks or {}
        self.requests: list[tuple[Any, bool]] = []
        self.height = 0

    def get_block(self, height: Any, full: bool = True) -> Any:
        self.requests.append((height, full))
        block = self.blocks.get(height)
        if isinstance(block, Exception):
            raise block
        if block is None:
            raise ValueError(f"block {height} not found")
        return block

    def block_number(self) -> int:
        return self.height


def _tx(index: int, payload: bytes, *, to: str | None = CONTRACT) -> dict[str, Any]:
    return {
        "hash": bytes([index]) * 32,
        "from": to_checksum_address("0x" + f"{index + 1:02x}" * 20),
        "to": to,
        "input": payload,
        "type": 2,
    }


def _block(
    number: int = 100, block_hash: bytes = b"\x01" * 32, txs: list[Any] | None = None
) -> dict[str, Any]:
    return {
        "number": number,
        "hash": block_hash,
        "parentHash": b"\x00" * 32,
        "timestamp": 1_700_000_000,
        "transactions": txs if txs is not None else [],
    }


def _fetcher(sources: list[DummySource], parser: Any = None) -> BlockFetcher:
    return BlockFetcher(
        sources,  # type: ignore[arg-type]
        parser if parser is not None else PrefixParser(),
        sender_recoverer=lambda tx: tx["from"],
    )


def test_agreeing_sources_produce_block_view() -> None:
    txs = [_tx(0, PREFIX + b"\x01"), _tx(1, b"\x00\x00"), _tx(2, PREFIX + b"\x02")]
    sources = [
        DummySource("http://a", {100: _block(txs=txs)}),
        DummySource("http://b", {100: _block(txs=txs)}),
    ]

    view = _fetcher(sources).fetch_block(100)

    assert isinstance(view, BlockView)
    assert view.header.number == 100
    assert view.header.hash == "0x" + "01" * 32
    assert view.header.parent_hash == "0x" + "00" * 32
    assert view.positions == [0, 2]
    assert [tx.data for tx in view.transactions] == [{"body": "01"}, {"body": "02"}]
    first = view.transactions[0]
    assert first.sender == txs[0]["from"]
    assert first.to == CONTRACT
    assert first.tx_hash == "0x" + "00" * 32
    assert first.tx_type == 2
    for source in sources:
        assert source.requests == [(100, True)]


def test_hash_mismatch_names_diverging_source() -> None:
    sources = [
        DummySource("http://a", {100: _block()}),
        DummySource("http://b", {100: _block(block_hash=b"\x02" * 32)}),
    ]

    with pytest.raises(BlockInconsistency) as excinfo:
        _fetcher(sources).fetch_block(100)

    err = excinfo.value
    assert err.source_index == 1
    assert err.reference == {"number": 100, "hash": "0x" + "01" * 32, "tx_count": 0}
    assert err.current == {"number": 100, "hash": "0x" + "02" * 32, "tx_count": 0}


def test_tx_count_mismatch_at_third_source() -> None:
    txs = [_tx(0, PREFIX)]
    sources = [
        DummySource("http://a", {7: _block(7, txs=txs)}),
        DummySource("http://b", {7: _block(7, txs=txs)}),
        DummySource("http://c", {7: _block(7, txs=[])}),
    ]

    with pytest.raises(BlockInconsistency) as excinfo:
        _fetcher(sources).fetch_block(7)

    assert excinfo.value.source_index == 2
    assert excinfo.value.reference["tx_count"] == 1
    assert excinfo.value.current["tx_count"] == 0


def test_source_error_aborts_fetch() -> None:
    third = DummySource("http://c", {5: _block(5)})
    sources = [
        DummySource("http://a", {5: _block(5)}),
        DummySource("http://b", {5: ConnectionError("502 bad gateway")}),
        third,
    ]

    with pytest.raises(CallError) as excinfo:
        _fetcher(sources).fetch_block(5)

    err = excinfo.value
    assert err.endpoint == "http://b"
    assert err.details["source_index"] == 1
    assert isinstance(err.__cause__, ConnectionError)
    assert third.requests == []


def test_parse_failure_drops_only_that_transaction() -> None:
    txs = [_tx(0, PREFIX + b"\xff"), _tx(1, PREFIX + b"\x05")]
    sources = [DummySource("http://a", {1: _block(1, txs=txs)})]

    view = _fetcher(sources).fetch_block(1)

    assert view.positions == [1]


def test_unexpected_parser_error_drops_only_that_transaction() -> None:
    txs = [_tx(0, PREFIX + b"\x01"), _tx(1, PREFIX + b"\xfe"), _tx(2, PREFIX + b"\x02")]
    sources = [DummySource("http://a", {100: _block(txs=txs)})]

    view = _fetcher(sources).fetch_block(100)

    assert view.positions == [0, 2]


def test_contract_creation_has_zero_recipient() -> None:
    sources = [DummySource("http://a", {1: _block(1, txs=[_tx(0, PREFIX, to=None)])})]

    view = _fetcher(sources).fetch_block(1)

    assert view.transactions[0].to == ZERO_ADDRESS


def test_sender_recovery_failure_aborts_block() -> None:
    def broken(tx: Any) -> str:
        raise DecodingError("bad signature")

    sources = [DummySource("http://a", {1: _block(1, txs=[_tx(0, PREFIX)])})]
    fetcher = BlockFetcher(
        sources, PrefixParser(), sender_recoverer=broken  # type: ignore[arg-type]
    )

    with pytest.raises(DecodingError) as excinfo:
        fetcher.fetch_block(1)

    assert excinfo.value.details["position"] == 0


def test_blob_transaction_aborts_block() -> None:
    blob = {**_tx(0, PREFIX), "type": 3}
    sources = [DummySource("http://a", {1: _block(1, txs=[blob])})]
    fetcher = BlockFetcher(sources, PrefixParser())  # type: ignore[arg-type]

    with pytest.raises(UnsupportedTransactionType) as excinfo:
        fetcher.fetch_block(1)

    assert excinfo.value.tx_type == 3


def test_non_matching_transactions_skip_sender_recovery() -> None:
    recovered: list[Any] = []

    def recover(tx: Any) -> str:
        recovered.append(tx)
        return tx["from"]

    txs = [_tx(0, b"\x01"), _tx(1, PREFIX)]
    sources = [DummySource("http://a", {1: _block(1, txs=txs)})]
    fetcher = BlockFetcher(
        sources, PrefixParser(), sender_recoverer=recover  # type: ignore[arg-type]
    )

    fetcher.fetch_block(1)

    assert recovered == [txs[1]]


class TestHeaders:
    def test_current_height_uses_primary_only(self) -> None:
        primary, secondary = DummySource("http://a"), DummySource("http://b")
        primary.height, secondary.height = 42, 99

        assert _fetcher([primary, secondary]).current_height() == 42

    def test_header_at_none_is_latest(self) -> None:
        primary = DummySource("http://a", {"latest": _block(55)})

        header = _fetcher([primary]).header_at()

        assert header.number == 55
        assert primary.requests == [("latest", False)]
        assert header.time is not None and header.time.year == 2023

    def test_header_at_zero_is_genesis(self) -> None:
        primary = DummySource("http://a", {0: _block(0)})

        assert _fetcher([primary]).header_at(0).number == 0
        assert primary.requests == [(0, False)]

    def test_header_error_is_wrapped(self) -> None:
        primary = DummySource("http://a")

        with pytest.raises(CallError) as excinfo:
            _fetcher([primary]).header_at(3)

        assert excinfo.value.operation == "get_block"


def test_fetch_requires_parser() -> None:
    fetcher = BlockFetcher([DummySource("http://a", {1: _block(1)})])  # type: ignore[list-item]

    with pytest.raises(ValidationError):
        fetcher.fetch_block(1)


def test_fetcher_requires_sources() -> None:
    with pytest.raises(ValidationError):
        BlockFetcher([], PrefixParser())
