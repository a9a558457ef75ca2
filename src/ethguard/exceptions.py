"""Exception hierarchy for the ethguard reliability layer."""

from typing import Any

from .types import WriteStatus


class EthGuardError(Exception):
    """Base exception for all ethguard errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(EthGuardError):
    """Raised when configuration or input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class NetworkError(EthGuardError):
    """Raised when an RPC endpoint cannot be reached."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class EncodingError(EthGuardError):
    """Raised when a method call cannot be packed into call data."""

    def __init__(self, message: str, method: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.method = method


class DecodingError(EthGuardError):
    """Raised when returned bytes cannot be unpacked into typed values."""

    def __init__(self, message: str, method: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.method = method


class UnsupportedTransactionType(DecodingError):
    """Raised when sender recovery meets a transaction type it has no scheme for."""

    def __init__(self, tx_type: int, details: dict | None = None):
        super().__init__(f"Unsupported transaction type: {tx_type}", details=details)
        self.tx_type = tx_type


class CallError(EthGuardError):
    """Raised when a node or transport failure survives every retry attempt."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        endpoint: str | None = None,
        attempts: int = 1,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.endpoint = endpoint
        self.attempts = attempts


class SigningError(EthGuardError):
    """Raised when a transaction cannot be signed."""


class Underpriced(EthGuardError):
    """Raised internally when the node rejects a broadcast for its fee."""


class BroadcastError(EthGuardError):
    """Raised when a transaction was never accepted by the network."""

    status = WriteStatus.FAILED

    def __init__(self, message: str, attempts: int = 1, details: dict | None = None):
        super().__init__(message, details)
        self.attempts = attempts


class ConfirmationTimeout(EthGuardError):
    """Raised when no receipt shows up before the confirmation deadline."""

    status = WriteStatus.TIMED_OUT

    def __init__(self, tx_hash: str, timeout: float, details: dict | None = None):
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout}s", details=details
        )
        self.tx_hash = tx_hash
        self.timeout = timeout


class TransactionReverted(EthGuardError):
    """Raised when a mined transaction failed during execution."""

    status = WriteStatus.REVERTED

    def __init__(self, tx_hash: str, reason: str | None = None, details: dict | None = None):
        if reason:
            message = f"Contract execution failed: {reason}"
        else:
            message = "Contract execution failed"
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.reason = reason


class OperationCancelled(EthGuardError):
    """Raised when the caller's cancellation signal interrupts a wait."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        tx_hash: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.tx_hash = tx_hash


class NoRevertReason(EthGuardError):
    """Raised when a payload does not carry an Error(string) revert."""


class BlockInconsistency(EthGuardError):
    """Raised when two sources disagree on the same block height."""

    def __init__(
        self,
        source_index: int,
        reference: dict[str, Any],
        current: dict[str, Any],
    ):
        super().__init__(
            f"Block inconsistency detected at source index {source_index}",
            details={"source_index": source_index, "reference": reference, "current": current},
        )
        self.source_index = source_index
        self.reference = reference
        self.current = current


class ParseError(EthGuardError):
    """Raised by protocol parsers when a payload cannot be interpreted."""


class NoEventSignature(DecodingError):
    """Raised when a log carries no topics to match against."""


class EventSignatureMismatch(DecodingError):
    """Raised when topic0 of a log does not belong to the requested event."""


class InvalidStartBlock(ValidationError):
    """Raised when a block range starts at height zero."""


class OverlappingRanges(ValidationError):
    """Raised when two block ranges share a start height."""
