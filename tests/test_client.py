"""Tests for the ChainClient facade."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeClock
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address

from ethguard.client import ChainClient
from ethguard.codec import AbiCodec
from ethguard.config import ClientConfig, RetryPolicy
from ethguard.exceptions import NetworkError, ValidationError
from ethguard.types import CallRequest

TOKEN = to_checksum_address("0x" + "ab" * 20)
OWNER = to_checksum_address("0x" + "cd" * 20)


class StubPort:
    def __init__(self, endpoint: str, chain_id: int = 998) -> None:
        self.endpoint = endpoint
        self._chain_id = chain_id
        self.connected = True
        self.calls = 0

    def ensure_connected(self) -> None:
        if not self.connected:
            raise NetworkError("Unable to connect to RPC endpoint", endpoint=self.endpoint)

    def chain_id(self) -> int:
        return self._chain_id

    def call(self, to: str, data: bytes, **kwargs: Any) -> bytes:
        self.calls += 1
        return abi_encode(["uint256"], [11])

    def block_number(self) -> int:
        return 321

    def get_block(self, height: Any, full: bool = True) -> Any:
        return {"number": 321, "hash": b"\x01" * 32, "parentHash": b"\x00" * 32}


def _client(ports: list[StubPort], **kwargs: Any) -> ChainClient:
    config = kwargs.pop(
        "config",
        ClientConfig(endpoints=[port.endpoint for port in ports], retry=RetryPolicy(retry_count=0)),
    )
    return ChainClient(config, ports=ports, clock=FakeClock(), **kwargs)  # type: ignore[arg-type]


def test_connect_checks_every_endpoint() -> None:
    client = _client([StubPort("http://a"), StubPort("http://b")])

    client.connect()

    assert client.is_connected()
    assert client.chain_id == 998


def test_connect_rejects_mixed_chains() -> None:
    client = _client([StubPort("http://a"), StubPort("http://b", chain_id=1)])

    with pytest.raises(ValidationError) as excinfo:
        client.connect()

    assert excinfo.value.field == "chain_id"
    assert excinfo.value.details["endpoint"] == "http://b"
    assert not client.is_connected()


def test_connect_rejects_unexpected_chain() -> None:
    ports = [StubPort("http://a")]
    config = ClientConfig(endpoints=["http://a"], chain_id=1)

    with pytest.raises(ValidationError):
        _client(ports, config=config).connect()


def test_unreachable_endpoint() -> None:
    port = StubPort("http://a")
    port.connected = False

    with pytest.raises(NetworkError):
        _client([port]).connect()


def test_reads_rotate_over_endpoints(token_codec: AbiCodec) -> None:
    ports = [StubPort("http://a"), StubPort("http://b")]
    client = _client(ports, codec=token_codec)

    for _ in range(4):
        assert client.read(CallRequest.of(TOKEN, "balanceOf", OWNER)) == 11

    assert [port.calls for port in ports] == [2, 2]


def test_read_requires_codec() -> None:
    with pytest.raises(ValidationError) as excinfo:
        _client([StubPort("http://a")]).read(CallRequest.of(TOKEN, "balanceOf", OWNER))

    assert excinfo.value.field == "codec"


def test_heights_without_parser() -> None:
    client = _client([StubPort("http://a")])

    assert client.current_height() == 321
    assert client.header_at().number == 321
    with pytest.raises(ValidationError):
        client.fetch_block(321)


def test_invalid_config_fails_construction() -> None:
    with pytest.raises(ValidationError):
        ChainClient(
            ClientConfig(endpoints=[]), ports=[StubPort("http://a")]  # type: ignore[list-item]
        )
