"""Chain RPC port: the narrow node interface the engines are written against."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import requests
from hexbytes import HexBytes
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from .exceptions import NetworkError, ValidationError
from .types import Receipt

logger = logging.getLogger(__name__)

BlockId = int | str


class ChainPort(Protocol):
    """Operations the engines need from a single RPC endpoint."""

    endpoint: str

    def call(
        self,
        to: str,
        data: bytes,
        *,
        sender: str | None = None,
        gas: int | None = None,
        gas_price: int | None = None,
        value: int = 0,
        block: BlockId = "latest",
    ) -> bytes: ...

    def simulate(
        self,
        to: str,
        data: bytes,
        *,
        sender: str | None = None,
        gas: int | None = None,
        gas_price: int | None = None,
        value: int = 0,
        block: BlockId = "latest",
    ) -> bytes: ...

    def estimate_gas(self, sender: str, to: str, data: bytes, value: int = 0) -> int: ...

    def gas_price(self) -> int: ...

    def max_priority_fee(self) -> int: ...

    def get_nonce(self, address: str, block: BlockId = "pending") -> int: ...

    def send_raw_transaction(self, raw: bytes) -> bytes: ...

    def get_receipt(self, tx_hash: str) -> Receipt | None: ...

    def get_block(self, height: BlockId, full: bool = True) -> Mapping[str, Any]: ...

    def latest_gas_limit(self) -> int: ...

    def block_number(self) -> int: ...

    def chain_id(self) -> int: ...


def receipt_from_mapping(raw: Mapping[str, Any]) -> Receipt:
    """Project a node receipt onto :class:`Receipt`."""

    tx_hash = raw.get("transactionHash")
    if isinstance(tx_hash, bytes | bytearray):
        tx_hash = HexBytes(tx_hash).to_0x_hex()
    status = raw.get("status")
    if isinstance(status, str):
        status = int(status, 16)
    return Receipt(
        tx_hash=str(tx_hash),
        success=status == 1,
        block_number=raw.get("blockNumber"),
        gas_used=raw.get("gasUsed"),
        raw=raw,
    )


class Web3Port:
    """:class:`ChainPort` backed by a web3 HTTP provider."""

    def __init__(
        self,
        endpoint: str,
        *,
        request_timeout: float,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        # Attempts are counted by the engines, so web3's own retry layer is off.
        provider = HTTPProvider(
            endpoint,
            request_kwargs={"timeout": request_timeout},
            session=session,
            exception_retry_configuration=None,
        )
        self._web3 = Web3(provider)
        self._chain_id: int | None = None

    def __repr__(self) -> str:
        return f"Web3Port({self.endpoint!r})"

    @property
    def web3(self) -> Web3:
        return self._web3

    def is_connected(self) -> bool:
        return self._web3.is_connected()

    def ensure_connected(self) -> None:
        if not self.is_connected():
            raise NetworkError("Unable to connect to RPC endpoint", endpoint=self.endpoint)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def call(
        self,
        to: str,
        data: bytes,
        *,
        sender: str | None = None,
        gas: int | None = None,
        gas_price: int | None = None,
        value: int = 0,
        block: BlockId = "latest",
    ) -> bytes:
        tx = self._call_params(to, data, sender=sender, gas=gas, gas_price=gas_price, value=value)
        return bytes(self._web3.eth.call(tx, block))  # type: ignore[arg-type]

    def simulate(
        self,
        to: str,
        data: bytes,
        *,
        sender: str | None = None,
        gas: int | None = None,
        gas_price: int | None = None,
        value: int = 0,
        block: BlockId = "latest",
    ) -> bytes:
        try:
            return self.call(
                to, data, sender=sender, gas=gas, gas_price=gas_price, value=value, block=block
            )
        except ContractLogicError as exc:
            if isinstance(exc.data, str) and exc.data.startswith("0x"):
                return bytes(HexBytes(exc.data))
            return b""

    def estimate_gas(self, sender: str, to: str, data: bytes, value: int = 0) -> int:
        tx = self._call_params(to, data, sender=sender, value=value)
        return int(self._web3.eth.estimate_gas(tx))  # type: ignore[arg-type]

    def gas_price(self) -> int:
        return int(self._web3.eth.gas_price)

    def max_priority_fee(self) -> int:
        return int(self._web3.eth.max_priority_fee)

    def get_nonce(self, address: str, block: BlockId = "pending") -> int:
        checksum = Web3.to_checksum_address(address)
        return int(self._web3.eth.get_transaction_count(checksum, block))  # type: ignore[arg-type]

    def get_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            raw = self._web3.eth.get_transaction_receipt(HexBytes(tx_hash))
        except TransactionNotFound:
            return None
        if raw is None:
            return None
        return receipt_from_mapping(raw)

    def get_block(self, height: BlockId, full: bool = True) -> Mapping[str, Any]:
        return self._web3.eth.get_block(height, full_transactions=full)  # type: ignore[arg-type]

    def latest_gas_limit(self) -> int:
        return int(self.get_block("latest", full=False)["gasLimit"])

    def block_number(self) -> int:
        return int(self._web3.eth.block_number)

    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self._web3.eth.chain_id)
        return self._chain_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def send_raw_transaction(self, raw: bytes) -> bytes:
        return bytes(self._web3.eth.send_raw_transaction(raw))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _call_params(
        to: str,
        data: bytes,
        *,
        sender: str | None = None,
        gas: int | None = None,
        gas_price: int | None = None,
        value: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"to": Web3.to_checksum_address(to), "data": HexBytes(data)}
        if sender is not None:
            params["from"] = Web3.to_checksum_address(sender)
        if gas is not None:
            params["gas"] = gas
        if gas_price is not None:
            params["gasPrice"] = gas_price
        if value:
            params["value"] = value
        return params


class EndpointPool:
    """Round-robin selection over equivalent ports."""

    def __init__(self, ports: Sequence[ChainPort]) -> None:
        if not ports:
            raise ValidationError("Endpoint pool requires at least one port", field="ports")
        self._ports = tuple(ports)
        # next() on itertools.count is atomic under the GIL.
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._ports)

    @property
    def ports(self) -> tuple[ChainPort, ...]:
        return self._ports

    @property
    def primary(self) -> ChainPort:
        return self._ports[0]

    def next(self) -> ChainPort:
        return self._ports[next(self._counter) % len(self._ports)]


def build_ports(
    endpoints: Sequence[str],
    *,
    request_timeout: float,
    session: requests.Session | None = None,
) -> list[Web3Port]:
    """Create one :class:`Web3Port` per endpoint sharing a single HTTP session."""

    session = session or requests.Session()
    ports = [Web3Port(url, request_timeout=request_timeout, session=session) for url in endpoints]
    for port in ports:
        logger.debug("Configured RPC endpoint %s", port.endpoint)
    return ports
