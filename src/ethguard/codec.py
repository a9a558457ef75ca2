"""ABI codec: packs calls, unpacks results, matches selectors and decodes logs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi import exceptions as abi_exceptions
from eth_utils import (
    event_abi_to_log_topic,
    function_abi_to_4byte_selector,
    get_abi_input_types,
    get_abi_output_types,
    to_checksum_address,
)
from hexbytes import HexBytes

from .exceptions import (
    DecodingError,
    EncodingError,
    EventSignatureMismatch,
    NoEventSignature,
)

_ENCODE_ERRORS = (abi_exceptions.EncodingError, TypeError, ValueError, OverflowError)
_DECODE_ERRORS = (abi_exceptions.DecodingError, TypeError, ValueError, OverflowError)

SELECTOR_SIZE = 4


def to_bytes(value: Any) -> bytes:
    """Coerce hex strings, HexBytes and bytearrays to plain bytes."""

    if value is None:
        return b""
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    return bytes(HexBytes(value))


class AbiCodec:
    """Codec over a JSON ABI.

    Functions and events are indexed by name and by selector/topic when the
    codec is built; overloaded names resolve to their first ABI entry.
    """

    def __init__(self, abi: Sequence[Mapping[str, Any]]) -> None:
        self._functions: dict[str, Mapping[str, Any]] = {}
        self._events: dict[str, Mapping[str, Any]] = {}
        self._selectors: dict[str, bytes] = {}
        self._by_selector: dict[bytes, str] = {}
        self._topics: dict[str, bytes] = {}
        self._by_topic: dict[bytes, str] = {}

        for entry in abi:
            kind = entry.get("type", "function")
            name = entry.get("name")
            if not name:
                continue
            if kind == "function" and name not in self._functions:
                selector = function_abi_to_4byte_selector(entry)  # type: ignore[arg-type]
                self._functions[name] = entry
                self._selectors[name] = selector
                self._by_selector.setdefault(selector, name)
            elif kind == "event" and name not in self._events:
                topic = event_abi_to_log_topic(entry)  # type: ignore[arg-type]
                self._events[name] = entry
                self._topics[name] = topic
                self._by_topic.setdefault(topic, name)

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------
    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._functions)

    def selector(self, method: str) -> bytes:
        try:
            return self._selectors[method]
        except KeyError:
            raise EncodingError(f"Method {method} not found in ABI", method=method) from None

    def method_for(self, data: Any) -> str | None:
        payload = to_bytes(data)
        if len(payload) < SELECTOR_SIZE:
            return None
        return self._by_selector.get(payload[:SELECTOR_SIZE])

    def has_selector(self, data: Any) -> bool:
        return self.method_for(data) is not None

    def encode_call(self, method: str, args: Sequence[Any] = ()) -> bytes:
        selector = self.selector(method)
        input_types = get_abi_input_types(self._functions[method])  # type: ignore[arg-type]
        if len(input_types) != len(args):
            raise EncodingError(
                f"Method {method} expects {len(input_types)} argument(s), got {len(args)}",
                method=method,
                details={"types": input_types},
            )
        try:
            encoded = abi_encode(input_types, list(args)) if input_types else b""
        except _ENCODE_ERRORS as exc:
            raise EncodingError(
                f"Failed to pack arguments for {method}",
                method=method,
                details={"types": input_types, "error": str(exc)},
            ) from exc
        return selector + encoded

    def decode_result(self, method: str, data: Any) -> Any:
        """Unpack return data; one output is unwrapped, none yields ``None``."""

        if method not in self._functions:
            raise DecodingError(f"Method {method} not found in ABI", method=method)
        output_types = get_abi_output_types(self._functions[method])  # type: ignore[arg-type]
        if not output_types:
            return None
        try:
            decoded = abi_decode(output_types, to_bytes(data))
        except _DECODE_ERRORS as exc:
            raise DecodingError(
                f"Failed to unpack result of {method}",
                method=method,
                details={"types": output_types, "error": str(exc)},
            ) from exc
        decoded = _checksum_values(output_types, decoded)
        if len(decoded) == 1:
            return decoded[0]
        return decoded

    def decode_call(self, data: Any) -> tuple[str, dict[str, Any]]:
        """Split call data into the method name and its named arguments."""

        payload = to_bytes(data)
        method = self.method_for(payload)
        if method is None:
            raise DecodingError(
                "Call data does not match any known selector",
                details={"selector": payload[:SELECTOR_SIZE].hex()},
            )
        inputs = self._functions[method].get("inputs", [])
        input_types = get_abi_input_types(self._functions[method])  # type: ignore[arg-type]
        try:
            values = abi_decode(input_types, payload[SELECTOR_SIZE:]) if input_types else ()
        except _DECODE_ERRORS as exc:
            raise DecodingError(
                f"Failed to unpack call data for {method}",
                method=method,
                details={"error": str(exc)},
            ) from exc
        return method, _name_values(inputs, _checksum_values(input_types, values))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    @property
    def events(self) -> tuple[str, ...]:
        return tuple(self._events)

    def event_topic(self, name: str) -> bytes:
        try:
            return self._topics[name]
        except KeyError:
            raise DecodingError(f"Event {name} not found in ABI", method=name) from None

    def event_for(self, topic: Any) -> str | None:
        return self._by_topic.get(to_bytes(topic))

    def decode_event(self, name: str, log: Mapping[str, Any]) -> dict[str, Any]:
        """Decode a log into a dict of named event fields."""

        expected = self.event_topic(name)
        topics = [to_bytes(topic) for topic in log.get("topics") or []]
        if not topics:
            raise NoEventSignature("Log has no event signature", method=name)
        if topics[0] != expected:
            raise EventSignatureMismatch(
                f"Log topic does not match event {name}",
                method=name,
                details={"expected": expected.hex(), "actual": topics[0].hex()},
            )

        inputs = self._events[name].get("inputs", [])
        indexed = [item for item in inputs if item.get("indexed")]
        plain = [item for item in inputs if not item.get("indexed")]

        if len(topics) - 1 != len(indexed):
            raise DecodingError(
                f"Log for {name} carries {len(topics) - 1} indexed topic(s), "
                f"expected {len(indexed)}",
                method=name,
            )

        result: dict[str, Any] = {}
        try:
            for item, topic in zip(indexed, topics[1:]):
                if _is_dynamic(item["type"]):
                    # Dynamic indexed values are stored as their keccak hash.
                    result[item["name"]] = topic
                else:
                    (value,) = abi_decode([item["type"]], topic)
                    result[item["name"]] = _checksum_value(item["type"], value)

            data = to_bytes(log.get("data"))
            if plain:
                plain_types = [item["type"] for item in plain]
                values = abi_decode(plain_types, data)
                result.update(_name_values(plain, _checksum_values(plain_types, values)))
        except _DECODE_ERRORS as exc:
            raise DecodingError(
                f"Failed to unpack log for {name}", method=name, details={"error": str(exc)}
            ) from exc
        return result


def _name_values(inputs: Sequence[Mapping[str, Any]], values: Sequence[Any]) -> dict[str, Any]:
    named: dict[str, Any] = {}
    for index, (item, value) in enumerate(zip(inputs, values)):
        named[item.get("name") or f"arg{index}"] = value
    return named


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("(")


def _checksum_values(abi_types: Sequence[str], values: Sequence[Any]) -> tuple[Any, ...]:
    return tuple(_checksum_value(abi_type, value) for abi_type, value in zip(abi_types, values))


def _checksum_value(abi_type: str, value: Any) -> Any:
    """Return ``value`` with every ``address`` inside it in checksum form."""

    if abi_type.endswith("]"):
        item_type = abi_type[: abi_type.rindex("[")]
        return tuple(_checksum_value(item_type, item) for item in value)
    if abi_type.startswith("("):
        return _checksum_values(_tuple_components(abi_type), value)
    if abi_type == "address":
        return to_checksum_address(value)
    return value


def _tuple_components(abi_type: str) -> list[str]:
    components: list[str] = []
    depth = 0
    start = 1
    for index, char in enumerate(abi_type[1:-1], start=1):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            components.append(abi_type[start:index])
            start = index + 1
    components.append(abi_type[start:-1])
    return [component for component in components if component]
