"""Tests for the coordinate value types."""

from __future__ import annotations

import pytest

from sheetwriter.modules.templating.geometry import (
    Area,
    ColRange,
    RepeatDirection,
    RepeatExpansionInfo,
    RepeatRegionSpec,
    RowRange,
    column_index,
    column_letter,
)


@pytest.mark.parametrize(
    "letters, index",
    [("A", 0), ("B", 1), ("Z", 25), ("AA", 26), ("AB", 27), ("xfd", 16383)],
)
def test_column_conversion_round_trips(letters, index):
    assert column_index(letters) == index
    assert column_letter(index) == letters.upper()


def test_spans_validate_bounds():
    with pytest.raises(ValueError):
        RowRange(3, 2)
    with pytest.raises(ValueError):
        ColRange(-1, 4)

    rows = RowRange(2, 4)
    assert rows.count == 3
    assert rows.contains(2) and rows.contains(4)
    assert not rows.contains(5)
    assert list(rows) == [2, 3, 4]
    assert rows.overlaps(RowRange(4, 9))
    assert not rows.overlaps(RowRange(5, 9))


def test_area_from_reference_is_zero_based():
    area = Area.from_reference("B3:D5")

    assert area == Area(2, 4, 1, 3)
    assert area.row_count == 3
    assert area.col_count == 3
    assert area.to_reference() == "B3:D5"


def test_area_from_reference_accepts_single_cells_and_sheet_prefixes():
    assert Area.from_reference("'My Sheet'!$C$7") == Area(6, 6, 2, 2)
    assert Area(6, 6, 2, 2).to_reference() == "C7"


def test_area_from_reference_rejects_whole_columns():
    with pytest.raises(ValueError):
        Area.from_reference("A:A")


def test_area_span_and_footprint_follow_direction():
    area = Area(2, 4, 1, 3)

    assert area.span(RepeatDirection.DOWN) == RowRange(2, 4)
    assert area.footprint(RepeatDirection.DOWN) == ColRange(1, 3)
    assert area.span(RepeatDirection.RIGHT) == ColRange(1, 3)
    assert area.footprint(RepeatDirection.RIGHT) == RowRange(2, 4)


def test_repeat_direction_parse():
    assert RepeatDirection.parse("RIGHT") is RepeatDirection.RIGHT
    assert RepeatDirection.parse(RepeatDirection.DOWN) is RepeatDirection.DOWN
    with pytest.raises(ValueError):
        RepeatDirection.parse("sideways")


def test_expansion_info_amounts():
    info = RepeatExpansionInfo(5, 7, 0, 10, item_count=4)

    assert info.template_span_count == 3
    assert info.expansion_amount == 9
    assert info.expanded_total == 12


def test_expansion_info_treats_empty_collection_as_single_item():
    info = RepeatExpansionInfo(2, 2, 0, 3, item_count=0)

    assert info.item_count == 1
    assert info.expansion_amount == 0


def test_expansion_info_right_uses_columns():
    info = RepeatExpansionInfo(5, 5, 1, 2, item_count=3, direction="right")

    assert info.direction is RepeatDirection.RIGHT
    assert info.span == ColRange(1, 2)
    assert info.footprint == RowRange(5, 5)
    assert info.expansion_amount == 4


def test_expansion_info_from_spec():
    spec = RepeatRegionSpec("items", "item", Area.from_reference("A3:C3"))
    info = RepeatExpansionInfo.from_spec(spec, 5)

    assert info.area == Area(2, 2, 0, 2)
    assert info.collection_name == "items"
    assert info.expanded_total == 5
