"""Bounded retry with linear backoff, shared by the read and write engines."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol, TypeVar

from .config import RetryPolicy
from .exceptions import CallError, EthGuardError, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock(Protocol):
    """Time source used for deadlines and waits."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None: ...


class SystemClock:
    """Wall clock that sleeps on the cancellation event so waits end promptly."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        if cancel is None:
            if seconds > 0:
                time.sleep(seconds)
            return
        if cancel.wait(max(seconds, 0.0)):
            raise OperationCancelled()


def ensure_not_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled()


def linear_backoff(attempt: int, step: float) -> float:
    """Delay to wait after the 0-indexed ``attempt`` before trying again."""

    return (attempt + 1) * step


def retry_call(
    func: Callable[[], T],
    *,
    policy: RetryPolicy,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    fatal: type[BaseException] | tuple[type[BaseException], ...] = EthGuardError,
    clock: Clock | None = None,
    cancel: threading.Event | None = None,
    operation: str = "call",
    endpoint: Callable[[], str | None] | None = None,
) -> T:
    """Run ``func`` up to ``policy.attempts`` times.

    Exceptions that are not instances of ``retry_on``, or that are instances
    of ``fatal``, propagate at once.
    Retryable failures wait ``linear_backoff`` between attempts, never before
    the first one, and surface as :class:`CallError` once attempts run out.
    """

    clock = clock or SystemClock()
    attempts = policy.attempts
    last_error: BaseException | None = None

    for attempt in range(attempts):
        ensure_not_cancelled(cancel)
        try:
            return func()
        except retry_on as exc:
            if isinstance(exc, fatal):
                raise
            last_error = exc
            if attempt + 1 >= attempts:
                break
            delay = linear_backoff(attempt, policy.backoff_step)
            logger.warning(
                "%s failed (attempt %s/%s), retrying in %.2fs: %s",
                operation,
                attempt + 1,
                attempts,
                delay,
                exc,
            )
            clock.sleep(delay, cancel)

    raise CallError(
        f"{operation} failed after {attempts} attempt(s)",
        operation=operation,
        endpoint=endpoint() if endpoint else None,
        attempts=attempts,
        details={"error": str(last_error)},
    ) from last_error
