"""Tests for block range selection."""

from __future__ import annotations

import pytest

from ethguard.exceptions import InvalidStartBlock, OverlappingRanges
from ethguard.ranges import BlockRange, BlockRangeSelector


@pytest.fixture()
def selector() -> BlockRangeSelector[str]:
    return BlockRangeSelector(
        [BlockRange(3000, "V2"), BlockRange(2000, "V1"), BlockRange(4000, "V3")]
    )


@pytest.mark.parametrize(
    ("height", "expected"),
    [(1000, None), (1999, None), (2000, "V1"), (2500, "V1"), (3000, "V2"), (5000, "V3")],
)
def test_lookup(selector: BlockRangeSelector[str], height: int, expected: str | None) -> None:
    assert selector.lookup(height) == expected


def test_ranges_are_kept_in_descending_order(selector: BlockRangeSelector[str]) -> None:
    assert [r.start_block for r in selector.ranges] == [4000, 3000, 2000]
    assert len(selector) == 3


def test_default_for_heights_below_every_range() -> None:
    selector = BlockRangeSelector([BlockRange(10, 5)], default=0)

    assert selector.lookup(9) == 0
    assert selector.lookup(10) == 5


def test_duplicate_start_is_rejected() -> None:
    with pytest.raises(OverlappingRanges) as excinfo:
        BlockRangeSelector([BlockRange(2000, "V1"), BlockRange(2000, "V2")])

    assert excinfo.value.value == 2000


def test_zero_start_is_rejected() -> None:
    with pytest.raises(InvalidStartBlock):
        BlockRangeSelector([BlockRange(0, "V1")])


def test_failed_add_leaves_selector_unchanged(selector: BlockRangeSelector[str]) -> None:
    with pytest.raises(OverlappingRanges):
        selector.add_range(BlockRange(3000, "dup"))

    assert selector.lookup(3500) == "V2"
    assert len(selector) == 3


def test_handle_passes_selected_value() -> None:
    seen: list[str | None] = []
    selector = BlockRangeSelector([BlockRange(100, "router-v1")])

    selector.handle(150, seen.append)
    selector.handle(50, seen.append)

    assert seen == ["router-v1", None]
