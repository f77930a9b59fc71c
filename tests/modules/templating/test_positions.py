"""Tests for the template to rendered position mapping."""

from __future__ import annotations

import pytest

from sheetwriter.modules.templating.geometry import (
    Area,
    ColRange,
    RepeatDirection,
    RepeatExpansionInfo,
    RepeatRegionSpec,
)
from sheetwriter.modules.templating.positions import (
    PositionCalculator,
    PositionModel,
    group_expansions,
    resolve_endpoint,
    shift_index,
)


def _down(start_row, end_row, start_col, end_col, count, name=None):
    return RepeatExpansionInfo(start_row, end_row, start_col, end_col, count, collection_name=name)


def test_groups_with_identical_spans_take_the_largest_expansion():
    depts = _down(2, 2, 0, 2, 3, "depts")
    products = _down(2, 2, 4, 6, 5, "products")

    groups = group_expansions([depts, products], RepeatDirection.DOWN)

    assert len(groups) == 1
    assert groups[0].expansion == 4
    assert groups[0].expanded_total == 5
    assert shift_index(10, groups) == 14


def test_groups_filter_by_cross_axis_footprint():
    depts = _down(2, 2, 0, 2, 3)
    products = _down(2, 2, 4, 6, 5)

    assert shift_index(10, group_expansions([depts, products], RepeatDirection.DOWN, ColRange(0, 2))) == 12
    assert shift_index(10, group_expansions([depts, products], RepeatDirection.DOWN, ColRange(8, 9))) == 10


def test_single_item_groups_are_dropped():
    assert group_expansions([_down(2, 4, 0, 3, 1)], RepeatDirection.DOWN) == []


def test_resolve_endpoint_stretches_end_inside_template():
    groups = group_expansions([_down(2, 3, 0, 2, 3)], RepeatDirection.DOWN)

    assert resolve_endpoint(2, groups, is_end=False) == 2
    assert resolve_endpoint(3, groups, is_end=True) == 7
    assert resolve_endpoint(1, groups, is_end=True) == 1
    assert resolve_endpoint(5, groups, is_end=False) == 9


def test_cumulative_offsets_across_groups():
    groups = group_expansions([_down(2, 2, 0, 5, 3), _down(5, 5, 0, 5, 4)], RepeatDirection.DOWN)

    assert resolve_endpoint(5, groups, is_end=True) == 10
    assert resolve_endpoint(5, groups, is_end=False) == 7
    assert shift_index(10, groups) == 15


def test_position_model_final_position_is_column_aware():
    model = PositionModel([_down(2, 2, 0, 2, 5)])

    assert model.final_position(6, 1) == (10, 1)
    assert model.final_position(6, 4) == (6, 4)
    assert model.final_position(2, 0) == (2, 0)
    assert model.row_growth == 4
    assert model.col_growth == 0


def test_position_model_right_repeats_move_columns():
    model = PositionModel([RepeatExpansionInfo(4, 4, 1, 2, 3, direction=RepeatDirection.RIGHT)])

    assert model.final_col(5, rows=(4, 4)) == 9
    assert model.final_col(5, rows=(10, 20)) == 5
    assert model.final_position(4, 3) == (4, 7)


def test_resolve_range_expands_ranges_over_templates():
    model = PositionModel([_down(2, 3, 0, 2, 3)])

    assert model.resolve_range(1, 0, 3, 0) == (1, 0, 7, 0)
    assert model.resolve_range(5, 0, 6, 2) == (9, 0, 10, 2)


def test_expanded_area_and_item_position():
    info = _down(2, 3, 0, 2, 3)
    model = PositionModel([info])

    assert model.expanded_area(info) == Area(2, 7, 0, 2)
    assert model.item_position(info, 2, 3, 1) == (7, 1)
    with pytest.raises(IndexError):
        model.item_position(info, 3, 2, 0)
    with pytest.raises(ValueError):
        model.item_position(info, 0, 9, 0)


def test_identity_when_every_collection_has_one_item():
    model = PositionModel([_down(2, 2, 0, 2, 1), _down(6, 7, 0, 2, 0)])

    assert model.is_identity
    assert model.final_position(20, 1) == (20, 1)
    assert model.resolve_range(2, 0, 7, 2) == (2, 0, 7, 2)


def test_calculator_resolves_collection_sizes():
    specs = [
        RepeatRegionSpec("employees", "e", Area.from_reference("A2:B2")),
        RepeatRegionSpec("missing", "m", Area.from_reference("A9:B9")),
    ]

    model = PositionCalculator().calculate(specs, {"employees": 5})

    counts = {info.collection_name: info.item_count for info in model.expansions}
    assert counts == {"employees": 5, "missing": 1}
    assert model.final_row(9, cols=(0, 1)) == 13


def test_expansions_by_sheet():
    specs = {"Report": [RepeatRegionSpec("rows", "r", Area.from_reference("A3:C3"))], "Empty": []}

    result = PositionCalculator().expansions_by_sheet(specs, {"rows": 5})

    assert result["Empty"] == []
    assert [info.expanded_total for info in result["Report"]] == [5]
