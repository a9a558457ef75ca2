"""Pluggable protocol parsers used by the block fetcher."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol

from .codec import SELECTOR_SIZE, AbiCodec, to_bytes
from .exceptions import DecodingError, EncodingError, ParseError, ValidationError

logger = logging.getLogger(__name__)

CallHandler = Callable[[dict[str, Any]], Any]
LogHandler = Callable[[dict[str, Any]], Any]


class ProtocolParser(Protocol):
    """Recognise and decode the transactions of one protocol.

    ``parse`` should raise :class:`ParseError` for payloads it cannot handle;
    the block fetcher drops a transaction whose parse fails with any error.
    """

    def check_format(self, payload: bytes) -> bool: ...

    def parse(self, payload: bytes) -> Any: ...


class SelectorParser:
    """Dispatch call data to handlers keyed by their 4-byte method selector.

    Handlers are registered by method name and resolved to selectors once,
    so matching a payload is a single dictionary lookup.
    """

    def __init__(
        self,
        codec: AbiCodec,
        handlers: Mapping[str, CallHandler] | None = None,
    ) -> None:
        self._codec = codec
        self._handlers: dict[bytes, tuple[str, CallHandler]] = {}
        for method, handler in (handlers or {}).items():
            self.register(method, handler)

    def register(self, method: str, handler: CallHandler) -> SelectorParser:
        try:
            selector = self._codec.selector(method)
        except EncodingError as exc:
            raise ValidationError(
                f"Cannot register handler for unknown method {method}",
                field="method",
                value=method,
            ) from exc
        self._handlers[selector] = (method, handler)
        return self

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(method for method, _ in self._handlers.values())

    def check_format(self, payload: bytes) -> bool:
        data = to_bytes(payload)
        return len(data) >= SELECTOR_SIZE and data[:SELECTOR_SIZE] in self._handlers

    def parse(self, payload: bytes) -> Any:
        data = to_bytes(payload)
        entry = self._handlers.get(data[:SELECTOR_SIZE])
        if entry is None:
            raise ParseError(
                "Payload does not match a registered method",
                details={"selector": data[:SELECTOR_SIZE].hex()},
            )
        method, handler = entry

        try:
            _, args = self._codec.decode_call(data)
        except DecodingError as exc:
            raise ParseError(
                f"Failed to decode call data for {method}",
                details={"method": method, "error": str(exc)},
            ) from exc

        try:
            return handler(args)
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(
                f"Handler for {method} failed",
                details={"method": method, "error": str(exc)},
            ) from exc


class EventDispatcher:
    """Decode logs with handlers keyed by the event signature topic."""

    def __init__(
        self,
        codec: AbiCodec,
        handlers: Mapping[str, LogHandler] | None = None,
    ) -> None:
        self._codec = codec
        self._handlers: dict[bytes, tuple[str, LogHandler]] = {}
        for event, handler in (handlers or {}).items():
            self.register(event, handler)

    def register(self, event: str, handler: LogHandler) -> EventDispatcher:
        try:
            topic = self._codec.event_topic(event)
        except DecodingError as exc:
            raise ValidationError(
                f"Cannot register handler for unknown event {event}",
                field="event",
                value=event,
            ) from exc
        self._handlers[topic] = (event, handler)
        return self

    def parse_log(self, log: Mapping[str, Any]) -> Any:
        topics = log.get("topics") or []
        if not topics:
            raise ParseError("Log has no event signature")
        entry = self._handlers.get(to_bytes(topics[0]))
        if entry is None:
            raise ParseError("Log does not match a registered event")
        event, handler = entry

        try:
            fields = self._codec.decode_event(event, log)
        except DecodingError as exc:
            raise ParseError(
                f"Failed to decode log for {event}",
                details={"event": event, "error": str(exc)},
            ) from exc
        try:
            return handler(fields)
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(
                f"Handler for {event} failed",
                details={"event": event, "error": str(exc)},
            ) from exc

    def parse_logs(self, logs: Iterable[Mapping[str, Any]]) -> list[Any]:
        """Decode every log with a registered handler, skipping the rest."""

        parsed: list[Any] = []
        for index, log in enumerate(logs):
            try:
                parsed.append(self.parse_log(log))
            except ParseError as exc:
                logger.debug("Skipping log %s: %s", index, exc)
        return parsed
