"""High level client wiring configuration, RPC ports and the engines together."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any

import requests

from .codec import AbiCodec
from .config import ClientConfig
from .connections import ChainPort, EndpointPool, build_ports
from .exceptions import NetworkError, ValidationError
from .fetcher import BlockFetcher
from .parser import ProtocolParser
from .reader import ContractReader
from .retry import Clock, SystemClock
from .signing import Signer
from .types import BlockHeaderView, BlockView, CallRequest, WriteResult
from .writer import ContractWriter

logger = logging.getLogger(__name__)


class ChainClient:
    """Reads, writes and consistent block fetches against a set of endpoints.

    The first endpoint is the primary: writes, heights and headers go there.
    Reads rotate over every endpoint and block fetches query all of them.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        codec: AbiCodec | None = None,
        signer: Signer | None = None,
        parser: ProtocolParser | None = None,
        clock: Clock | None = None,
        ports: Sequence[ChainPort] | None = None,
    ) -> None:
        self._config = config.validated()
        self._codec = codec
        self._signer = signer
        self._clock = clock or SystemClock()

        self._session: requests.Session | None = None
        if ports is None:
            self._session = requests.Session()
            ports = build_ports(
                self._config.endpoints,
                request_timeout=self._config.request_timeout,
                session=self._session,
            )
        self._pool = EndpointPool(ports)
        self._fetcher = BlockFetcher(self._pool.ports, parser)
        self._reader: ContractReader | None = None
        self._writer: ContractWriter | None = None
        self._connected = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def signer(self) -> Signer | None:
        return self._signer

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Check every endpoint is reachable and serves the expected chain."""

        try:
            for port in self._pool.ports:
                ensure_connected = getattr(port, "ensure_connected", None)
                if ensure_connected is not None:
                    ensure_connected()
            expected = self._config.chain_id
            for index, port in enumerate(self._pool.ports):
                chain_id = port.chain_id()
                if expected is None:
                    expected = chain_id
                elif chain_id != expected:
                    raise ValidationError(
                        f"Endpoint {index} serves chain {chain_id}, expected {expected}",
                        field="chain_id",
                        value=chain_id,
                        details={"endpoint": port.endpoint},
                    )
            self._connected = True
            logger.info("Connected to %s endpoint(s) on chain %s", len(self._pool), expected)
        except (ValidationError, NetworkError):
            self.disconnect()
            raise
        except Exception as exc:
            self.disconnect()
            raise NetworkError(
                "Failed to initialise RPC connections",
                endpoint=self._config.primary_endpoint,
                details={"error": str(exc)},
            ) from exc

    def disconnect(self) -> None:
        if self._session is not None:
            self._session.close()
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    @property
    def chain_id(self) -> int:
        if self._config.chain_id is not None:
            return self._config.chain_id
        return self._pool.primary.chain_id()

    # ------------------------------------------------------------------
    # Engines
    # ------------------------------------------------------------------
    def _require_codec(self) -> AbiCodec:
        if self._codec is None:
            raise ValidationError("An ABI codec is required for contract calls", field="codec")
        return self._codec

    @property
    def reader(self) -> ContractReader:
        if self._reader is None:
            self._reader = ContractReader(
                self._pool,
                self._require_codec(),
                retry=self._config.retry,
                clock=self._clock,
            )
        return self._reader

    @property
    def writer(self) -> ContractWriter:
        if self._writer is None:
            self._writer = ContractWriter(
                self._pool.primary,
                self._require_codec(),
                signer=self._signer,
                retry=self._config.retry,
                config=self._config.write,
                chain_id=self._config.chain_id,
                clock=self._clock,
            )
        return self._writer

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def read(self, request: CallRequest, *, cancel: threading.Event | None = None) -> Any:
        return self.reader.read(request, cancel=cancel)

    def write(
        self,
        request: CallRequest,
        signer: Signer | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> WriteResult:
        return self.writer.write(request, signer, cancel=cancel)

    def fetch_block(self, height: int) -> BlockView:
        return self._fetcher.fetch_block(height)

    def current_height(self) -> int:
        return self._fetcher.current_height()

    def header_at(self, height: int | None = None) -> BlockHeaderView:
        return self._fetcher.header_at(height)
