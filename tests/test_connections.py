"""Tests for the web3-backed RPC port and the endpoint pool."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from hexbytes import HexBytes
from web3.exceptions import ContractLogicError, TransactionNotFound

from ethguard.connections import EndpointPool, Web3Port, build_ports, receipt_from_mapping
from ethguard.exceptions import NetworkError, ValidationError
from ethguard.revert import encode_revert

TARGET = "0x" + "ab" * 20


class DummyEth:
    def __init__(self) -> None:
        self.calls: list[tuple[dict[str, Any], Any]] = []
        self.call_error: Exception | None = None
        self.receipt: Any = None
        self.chain_id_reads = 0

    def call(self, tx: dict[str, Any], block: Any) -> bytes:
        self.calls.append((tx, block))
        if self.call_error is not None:
            raise self.call_error
        return HexBytes("0x2a")

    def get_transaction_receipt(self, tx_hash: HexBytes) -> Any:
        if self.receipt is None:
            raise TransactionNotFound(f"Transaction with hash: {tx_hash!r} not found.")
        return self.receipt

    def get_block(self, height: Any, full_transactions: bool = False) -> Any:
        return {"number": 1, "gasLimit": 30_000_000, "full": full_transactions}

    @property
    def chain_id(self) -> int:
        self.chain_id_reads += 1
        return 998


def _port(eth: DummyEth, *, connected: bool = True) -> Web3Port:
    port = Web3Port("http://node", request_timeout=1.0)
    web3 = SimpleNamespace(eth=eth, is_connected=lambda: connected)
    port._web3 = web3  # type: ignore[assignment]
    return port


class TestWeb3Port:
    def test_call_params_are_checksummed(self) -> None:
        eth = DummyEth()

        result = _port(eth).call(TARGET, b"\x01", sender=TARGET, gas=10, value=3, block=5)

        assert result == b"\x2a"
        tx, block = eth.calls[0]
        assert block == 5
        assert tx["to"] == tx["from"] != TARGET
        assert tx["to"].lower() == TARGET
        assert tx["data"] == HexBytes(b"\x01")
        assert tx["gas"] == 10
        assert tx["value"] == 3
        assert "gasPrice" not in tx

    def test_simulate_returns_revert_payload(self) -> None:
        eth = DummyEth()
        payload = encode_revert("insufficient balance")
        eth.call_error = ContractLogicError("execution reverted", data="0x" + payload.hex())

        assert _port(eth).simulate(TARGET, b"") == payload

    def test_simulate_without_revert_data(self) -> None:
        eth = DummyEth()
        eth.call_error = ContractLogicError("execution reverted", data=None)

        assert _port(eth).simulate(TARGET, b"") == b""

    def test_missing_receipt_is_none(self) -> None:
        assert _port(DummyEth()).get_receipt("0x" + "00" * 32) is None

    def test_receipt_projection(self) -> None:
        eth = DummyEth()
        eth.receipt = {
            "transactionHash": HexBytes("0x" + "cd" * 32),
            "status": 0,
            "blockNumber": 9,
            "gasUsed": 21_000,
        }

        receipt = _port(eth).get_receipt("0x" + "cd" * 32)

        assert receipt is not None
        assert receipt.tx_hash == "0x" + "cd" * 32
        assert receipt.success is False
        assert receipt.block_number == 9

    def test_latest_gas_limit(self) -> None:
        assert _port(DummyEth()).latest_gas_limit() == 30_000_000

    def test_chain_id_is_cached(self) -> None:
        eth = DummyEth()
        port = _port(eth)

        assert port.chain_id() == port.chain_id() == 998
        assert eth.chain_id_reads == 1

    def test_ensure_connected(self) -> None:
        with pytest.raises(NetworkError) as excinfo:
            _port(DummyEth(), connected=False).ensure_connected()

        assert excinfo.value.endpoint == "http://node"


def test_receipt_from_hex_status() -> None:
    receipt = receipt_from_mapping({"transactionHash": "0x01", "status": "0x1"})

    assert receipt.success is True
    assert receipt.tx_hash == "0x01"


class TestEndpointPool:
    def test_round_robin(self) -> None:
        ports = [SimpleNamespace(endpoint=name) for name in ("a", "b", "c")]
        pool = EndpointPool(ports)  # type: ignore[arg-type]

        picked = [pool.next().endpoint for _ in range(7)]

        assert picked == ["a", "b", "c", "a", "b", "c", "a"]
        assert pool.primary.endpoint == "a"
        assert len(pool) == 3

    def test_empty_pool_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EndpointPool([])


def test_build_ports_share_session() -> None:
    ports = build_ports(["http://a", "http://b"], request_timeout=2.0)

    assert [port.endpoint for port in ports] == ["http://a", "http://b"]
