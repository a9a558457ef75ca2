"""Selection of height-dependent parameters by block range."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from .exceptions import InvalidStartBlock, OverlappingRanges

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BlockRange(Generic[T]):
    """Value that applies from ``start_block`` (inclusive) onwards."""

    start_block: int
    data: T


class BlockRangeSelector(Generic[T]):
    """Pick the entry with the greatest start height not above a block height.

    Heights below every range resolve to ``default``; that is a valid result,
    not an error.
    """

    def __init__(self, ranges: Iterable[BlockRange[T]] = (), default: T | None = None) -> None:
        self._ranges: list[BlockRange[T]] = []
        self._default = default
        for block_range in ranges:
            self.add_range(block_range)

    def __len__(self) -> int:
        return len(self._ranges)

    @property
    def ranges(self) -> tuple[BlockRange[T], ...]:
        return tuple(self._ranges)

    def add_range(self, block_range: BlockRange[T]) -> None:
        if block_range.start_block <= 0:
            raise InvalidStartBlock(
                "Start block must be greater than 0",
                field="start_block",
                value=block_range.start_block,
            )
        candidate = sorted([*self._ranges, block_range], key=lambda r: r.start_block, reverse=True)
        for previous, current in zip(candidate, candidate[1:]):
            if previous.start_block == current.start_block:
                raise OverlappingRanges(
                    f"Multiple ranges start at block {current.start_block}",
                    field="start_block",
                    value=current.start_block,
                )
        self._ranges = candidate

    def lookup(self, height: int) -> T | None:
        for block_range in self._ranges:
            if height >= block_range.start_block:
                return block_range.data
        return self._default

    def handle(self, height: int, handler: Callable[[T | None], R]) -> R:
        return handler(self.lookup(height))
