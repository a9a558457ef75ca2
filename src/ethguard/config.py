"""Configuration containers for ethguard engines."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .exceptions import ValidationError
from .types import TxType

DEFAULT_RETRY_COUNT = 3
DEFAULT_BACKOFF_STEP = 0.2
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_CONFIRMATION_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_FEE_BUMP_FACTOR = 2
DEFAULT_UNDERPRICED_MARKERS = ("underpriced",)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with linearly growing delays between attempts."""

    retry_count: int = DEFAULT_RETRY_COUNT
    backoff_step: float = DEFAULT_BACKOFF_STEP

    def __post_init__(self) -> None:
        if self.retry_count < 0:
            raise ValidationError(
                "Retry count cannot be negative", field="retry_count", value=self.retry_count
            )
        if self.backoff_step < 0:
            raise ValidationError(
                "Backoff step cannot be negative", field="backoff_step", value=self.backoff_step
            )

    @property
    def attempts(self) -> int:
        return self.retry_count + 1


@dataclass(frozen=True)
class WriteConfig:
    """Policy knobs for the write engine."""

    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fee_bump_factor: int = DEFAULT_FEE_BUMP_FACTOR
    tx_type: TxType = TxType.LEGACY
    underpriced_markers: tuple[str, ...] = DEFAULT_UNDERPRICED_MARKERS
    check_nonce_on_escalation: bool = True

    def __post_init__(self) -> None:
        if self.confirmation_timeout <= 0:
            raise ValidationError(
                "Confirmation timeout must be positive",
                field="confirmation_timeout",
                value=self.confirmation_timeout,
            )
        if self.poll_interval <= 0:
            raise ValidationError(
                "Poll interval must be positive",
                field="poll_interval",
                value=self.poll_interval,
            )
        if self.fee_bump_factor < 2:
            raise ValidationError(
                "Fee bump factor must be at least 2",
                field="fee_bump_factor",
                value=self.fee_bump_factor,
            )


@dataclass(frozen=True)
class ClientConfig:
    """Aggregated configuration used to construct a :class:`ChainClient`."""

    endpoints: Sequence[str]
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    write: WriteConfig = field(default_factory=WriteConfig)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    chain_id: int | None = None

    def validated(self) -> ClientConfig:
        """Return a copy with normalised endpoints, raising on invalid values."""

        endpoints = tuple(url.strip() for url in self.endpoints if url and url.strip())
        if not endpoints:
            raise ValidationError(
                "At least one RPC endpoint is required", field="endpoints", value=self.endpoints
            )
        if self.request_timeout <= 0:
            raise ValidationError(
                "Request timeout must be positive",
                field="request_timeout",
                value=self.request_timeout,
            )

        return ClientConfig(
            endpoints=endpoints,
            retry=self.retry,
            write=self.write,
            request_timeout=self.request_timeout,
            chain_id=self.chain_id,
        )

    @property
    def primary_endpoint(self) -> str:
        return self.endpoints[0]
