"""Write engine: build, sign, broadcast and confirm contract transactions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from .codec import AbiCodec
from .config import RetryPolicy, WriteConfig
from .connections import ChainPort
from .exceptions import (
    BroadcastError,
    ConfirmationTimeout,
    DecodingError,
    EthGuardError,
    NoRevertReason,
    OperationCancelled,
    SigningError,
    TransactionReverted,
    Underpriced,
    ValidationError,
)
from .retry import Clock, SystemClock, ensure_not_cancelled, linear_backoff, retry_call
from .revert import decode_revert
from .signing import Signer
from .types import (
    CallRequest,
    Receipt,
    SignedTransaction,
    TxType,
    UnsignedTransaction,
    WriteResult,
    WriteStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContractWriter:
    """Submit state-changing contract calls and wait for their outcome.

    A submission moves through building, signing, broadcasting and
    confirming. The nonce is read once and kept for every broadcast attempt;
    only the fee changes when the node reports the transaction as
    underpriced.
    """

    def __init__(
        self,
        port: ChainPort,
        codec: AbiCodec,
        *,
        signer: Signer | None = None,
        retry: RetryPolicy | None = None,
        config: WriteConfig | None = None,
        chain_id: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._port = port
        self._codec = codec
        self._signer = signer
        self._retry = retry or RetryPolicy()
        self._config = config or WriteConfig()
        self._chain_id = chain_id
        self._clock = clock or SystemClock()

    @property
    def config(self) -> WriteConfig:
        return self._config

    def write(
        self,
        request: CallRequest,
        signer: Signer | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> WriteResult:
        """Send ``request`` as a transaction and return once it is mined.

        Raises :class:`BroadcastError` when no attempt was accepted,
        :class:`ConfirmationTimeout` when the deadline passed without a
        receipt and :class:`TransactionReverted` when the transaction was
        mined but failed.
        """

        signer = signer or self._signer
        if signer is None:
            raise ValidationError("A signer is required to send transactions", field="signer")

        ensure_not_cancelled(cancel)
        unsigned = self.build(request, signer.address, cancel=cancel)
        attempts = self.broadcast(unsigned, signer, cancel=cancel)
        accepted = attempts[-1]

        receipt = self.wait_for_receipt(accepted.tx_hash, cancel=cancel)
        if not receipt.success:
            reason = self.revert_reason(request, accepted, signer.address)
            logger.info("Transaction %s reverted: %s", accepted.tx_hash, reason or "no reason")
            raise TransactionReverted(
                accepted.tx_hash,
                reason,
                details={
                    "method": request.method,
                    "block_number": receipt.block_number,
                    "gas_used": receipt.gas_used,
                },
            )

        logger.info(
            "Transaction confirmed hash=%s block=%s attempts=%s",
            accepted.tx_hash,
            receipt.block_number,
            len(attempts),
        )
        return WriteResult(
            tx_hash=accepted.tx_hash,
            status=WriteStatus.CONFIRMED,
            receipt=receipt,
            attempts=tuple(attempts),
        )

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def build(
        self,
        request: CallRequest,
        sender: str,
        *,
        cancel: threading.Event | None = None,
    ) -> UnsignedTransaction:
        data = self._codec.encode_call(request.method, request.args)
        nonce = self._node_read(
            "get_nonce", lambda: self._port.get_nonce(sender, "pending"), cancel
        )
        gas = self._estimate_gas(sender, request, data, cancel)
        gas_price = self._node_read("gas_price", self._port.gas_price, cancel)
        chain_id = self._chain_id
        if chain_id is None:
            chain_id = self._node_read("chain_id", self._port.chain_id, cancel)

        tx_type = TxType(self._config.tx_type)
        priority_fee = None
        if tx_type == TxType.DYNAMIC_FEE:
            priority_fee = self._node_read("max_priority_fee", self._port.max_priority_fee, cancel)
            priority_fee = min(priority_fee, gas_price)
        elif tx_type != TxType.LEGACY:
            raise ValidationError(
                "Only legacy and dynamic-fee transactions can be sent",
                field="tx_type",
                value=int(tx_type),
            )

        unsigned = UnsignedTransaction(
            nonce=nonce,
            to=request.to,
            value=request.value,
            gas=gas,
            gas_price=gas_price,
            data=data,
            chain_id=chain_id,
            tx_type=tx_type,
            max_priority_fee_per_gas=priority_fee,
        )
        logger.debug(
            "Built %s transaction nonce=%s gas=%s gas_price=%s",
            request.method,
            nonce,
            gas,
            gas_price,
        )
        return unsigned

    def _estimate_gas(
        self,
        sender: str,
        request: CallRequest,
        data: bytes,
        cancel: threading.Event | None,
    ) -> int:
        try:
            return self._port.estimate_gas(sender, request.to, data, request.value)
        except Exception as exc:
            # Estimation reverts or errors must not abort the write.
            gas_limit = self._node_read("latest_gas_limit", self._port.latest_gas_limit, cancel)
            logger.warning(
                "Gas estimation for %s failed (%s); falling back to block gas limit %s",
                request.method,
                exc,
                gas_limit,
            )
            return gas_limit

    def _node_read(
        self,
        operation: str,
        func: Callable[[], T],
        cancel: threading.Event | None,
    ) -> T:
        return retry_call(
            func,
            policy=self._retry,
            clock=self._clock,
            cancel=cancel,
            operation=operation,
            endpoint=lambda: self._port.endpoint,
        )

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------
    def broadcast(
        self,
        unsigned: UnsignedTransaction,
        signer: Signer,
        *,
        cancel: threading.Event | None = None,
    ) -> list[SignedTransaction]:
        """Sign and send ``unsigned``, escalating the fee while underpriced.

        Returns every signed attempt in order; the last one is the attempt
        the node accepted.
        """

        attempts: list[SignedTransaction] = []
        total = self._retry.attempts
        current = unsigned
        last_error: Underpriced | None = None

        for attempt in range(total):
            ensure_not_cancelled(cancel)
            signed = self._sign(signer, current)
            attempts.append(signed)
            try:
                self._send(signed, len(attempts))
            except Underpriced as exc:
                last_error = exc
            else:
                logger.info(
                    "Transaction broadcast hash=%s nonce=%s gas_price=%s",
                    signed.tx_hash,
                    signed.nonce,
                    signed.gas_price,
                )
                return attempts

            if attempt + 1 >= total:
                break

            delay = linear_backoff(attempt, self._retry.backoff_step)
            self._clock.sleep(delay, cancel)
            if self._config.check_nonce_on_escalation:
                self._ensure_nonce_unused(signer.address, current.nonce, len(attempts))

            current = current.with_bumped_fee(self._config.fee_bump_factor)
            logger.info(
                "Transaction underpriced, escalating gas price %s -> %s (nonce=%s)",
                signed.gas_price,
                current.gas_price,
                current.nonce,
            )

        raise BroadcastError(
            f"Transaction still underpriced after {total} attempt(s)",
            attempts=len(attempts),
            details={
                "nonce": unsigned.nonce,
                "gas_price": attempts[-1].gas_price,
                "error": str(last_error),
            },
        ) from last_error

    def _sign(self, signer: Signer, unsigned: UnsignedTransaction) -> SignedTransaction:
        try:
            return signer.sign(unsigned)
        except SigningError:
            raise
        except Exception as exc:
            raise SigningError(
                "Failed to sign transaction",
                details={"nonce": unsigned.nonce, "error": str(exc)},
            ) from exc

    def _send(self, signed: SignedTransaction, attempts: int) -> None:
        try:
            self._port.send_raw_transaction(signed.raw)
        except Exception as exc:
            if self._is_underpriced(exc):
                raise Underpriced(str(exc), details={"gas_price": signed.gas_price}) from exc
            raise BroadcastError(
                "Failed to broadcast transaction",
                attempts=attempts,
                details={
                    "tx_hash": signed.tx_hash,
                    "nonce": signed.nonce,
                    "endpoint": self._port.endpoint,
                    "error": str(exc),
                },
            ) from exc

    def _is_underpriced(self, exc: BaseException) -> bool:
        message = str(exc).lower()
        return any(marker in message for marker in self._config.underpriced_markers)

    def _ensure_nonce_unused(self, sender: str, nonce: int, attempts: int) -> None:
        try:
            latest = self._port.get_nonce(sender, "latest")
        except Exception as exc:
            logger.warning("Nonce check before fee escalation failed: %s", exc)
            return
        if latest > nonce:
            raise BroadcastError(
                f"Nonce {nonce} was consumed while escalating the fee",
                attempts=attempts,
                details={"nonce": nonce, "latest_nonce": latest, "nonce_consumed": True},
            )

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------
    def wait_for_receipt(
        self,
        tx_hash: str,
        *,
        cancel: threading.Event | None = None,
    ) -> Receipt:
        """Poll for the receipt of ``tx_hash`` until the confirmation deadline.

        No lookup is issued once the deadline has passed and every wait is
        clipped to the time remaining.
        """

        timeout = self._config.confirmation_timeout
        interval = self._config.poll_interval
        deadline = self._clock.monotonic() + timeout
        last_error: Exception | None = None
        polls = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(tx_hash=tx_hash)
            if self._clock.monotonic() >= deadline:
                break

            polls += 1
            try:
                receipt = self._port.get_receipt(tx_hash)
            except Exception as exc:
                last_error = exc
                logger.warning("Receipt lookup for %s failed: %s", tx_hash, exc)
                receipt = None
            if receipt is not None:
                return receipt

            remaining = deadline - self._clock.monotonic()
            if remaining <= 0:
                break
            try:
                self._clock.sleep(min(interval, remaining), cancel)
            except OperationCancelled as exc:
                raise OperationCancelled(tx_hash=tx_hash) from exc

        raise ConfirmationTimeout(
            tx_hash,
            timeout,
            details={
                "polls": polls,
                "last_error": str(last_error) if last_error is not None else None,
            },
        )

    def revert_reason(
        self,
        request: CallRequest,
        signed: SignedTransaction,
        sender: str,
    ) -> str | None:
        """Replay the call read-only and decode its ``Error(string)`` payload."""

        unsigned = signed.unsigned
        try:
            payload = self._port.simulate(
                request.to,
                unsigned.data,
                sender=sender,
                gas=unsigned.gas,
                gas_price=unsigned.gas_price,
                value=unsigned.value,
                block="latest",
            )
        except EthGuardError:
            raise
        except Exception as exc:
            logger.warning("Revert simulation for %s failed: %s", signed.tx_hash, exc)
            return None

        try:
            return decode_revert(payload)
        except NoRevertReason:
            return None
        except DecodingError as exc:
            logger.debug("Undecodable revert payload for %s: %s", signed.tx_hash, exc)
            return None
