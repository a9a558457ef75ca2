"""Read engine: bounded-retry contract calls with decoded results."""

from __future__ import annotations

import logging
import threading
from typing import Any

from .codec import AbiCodec
from .config import RetryPolicy
from .connections import ChainPort, EndpointPool
from .retry import Clock, SystemClock, retry_call
from .types import CallRequest

logger = logging.getLogger(__name__)


class ContractReader:
    """Execute read-only contract calls across a pool of equivalent endpoints.

    Each attempt takes the next endpoint from the pool, so a retry after a
    node failure naturally lands on a different node when more than one is
    configured.
    """

    def __init__(
        self,
        pool: EndpointPool | ChainPort,
        codec: AbiCodec,
        *,
        retry: RetryPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._pool = pool if isinstance(pool, EndpointPool) else EndpointPool([pool])
        self._codec = codec
        self._retry = retry or RetryPolicy()
        self._clock = clock or SystemClock()

    @property
    def codec(self) -> AbiCodec:
        return self._codec

    def read(
        self,
        request: CallRequest,
        *,
        retry_count: int | None = None,
        block: int | str = "latest",
        cancel: threading.Event | None = None,
    ) -> Any:
        """Call ``request.method`` on ``request.to`` and decode the result.

        Raises :class:`EncodingError` before any network traffic when the
        method is unknown or the arguments do not fit, :class:`CallError` once
        every attempt failed, and :class:`DecodingError` when the returned
        bytes cannot be unpacked (never retried).
        """

        call_data = self._codec.encode_call(request.method, request.args)
        policy = self._retry
        if retry_count is not None:
            policy = RetryPolicy(retry_count=retry_count, backoff_step=policy.backoff_step)

        last_endpoint: list[str] = []

        def attempt() -> bytes:
            port = self._pool.next()
            last_endpoint[:] = [port.endpoint]
            return port.call(request.to, call_data, value=request.value, block=block)

        result = retry_call(
            attempt,
            policy=policy,
            clock=self._clock,
            cancel=cancel,
            operation=f"read {request.method}",
            endpoint=lambda: last_endpoint[0] if last_endpoint else None,
        )
        logger.debug("Read %s on %s returned %s byte(s)", request.method, request.to, len(result))
        return self._codec.decode_result(request.method, result)

