"""Map template coordinates to rendered coordinates once repeats expand."""

from __future__ import annotations

import logging
import sys
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from .geometry import (
    Area,
    ColRange,
    RepeatDirection,
    RepeatExpansionInfo,
    RepeatRegionSpec,
    RowRange,
    Span,
)

logger = logging.getLogger(__name__)

_UNBOUNDED = sys.maxsize


@dataclass(frozen=True)
class ExpansionGroup:
    """Repeats sharing one template span along their direction.

    Independent collections laid out side by side share the same physical
    rows (or columns), so the group inserts the largest expansion of its
    members rather than the sum.
    """

    start: int
    end: int
    expansion: int
    expanded_total: int
    members: tuple[RepeatExpansionInfo, ...]

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end


def as_span(value, span_type=ColRange) -> Span | None:
    """Coerce ``value`` (span, ``range``, ``(start, end)`` or ``None``) to a span."""

    if value is None or isinstance(value, Span):
        return value
    if isinstance(value, range):
        if not value:
            raise ValueError("Empty footprint")
        return span_type(value.start, value.stop - 1)
    start, end = value
    return span_type(start, end if end is not None else _UNBOUNDED)


def group_expansions(
    expansions: Iterable[RepeatExpansionInfo],
    direction: RepeatDirection,
    footprint=None,
) -> list[ExpansionGroup]:
    """Group ``expansions`` along ``direction`` in ascending template order.

    Only repeats whose cross-axis footprint intersects ``footprint`` take part.
    Groups that insert nothing are left out.
    """

    footprint = as_span(footprint)
    buckets: dict[tuple[int, int], list[RepeatExpansionInfo]] = defaultdict(list)
    for info in expansions:
        if info.direction is not direction:
            continue
        if footprint is not None and not info.footprint.overlaps(footprint):
            continue
        span = info.span
        buckets[(span.start, span.end)].append(info)

    groups: list[ExpansionGroup] = []
    for (start, end), members in sorted(buckets.items()):
        expansion = max(member.expansion_amount for member in members)
        if not expansion:
            continue
        groups.append(
            ExpansionGroup(
                start=start,
                end=end,
                expansion=expansion,
                expanded_total=max(member.expanded_total for member in members),
                members=tuple(members),
            )
        )
    return groups


def shift_index(index: int, groups: Sequence[ExpansionGroup]) -> int:
    """Shift ``index`` past every group that ends strictly before it."""

    return index + sum(group.expansion for group in groups if index > group.end)


def resolve_endpoint(index: int, groups: Sequence[ExpansionGroup], is_end: bool) -> int:
    """Resolve one endpoint of a range.

    Endpoints after a group shift by its expansion. An end endpoint inside a
    group's template span stretches to the last row (or column) of the
    expanded block so a range over the template covers every item.
    """

    offset = 0
    for group in groups:
        if index > group.end:
            offset += group.expansion
            continue
        if is_end and index >= group.start:
            return group.start + offset + group.expanded_total - 1
        break
    return index + offset


class PositionModel:
    """Template-space to rendered-space mapping for one sheet."""

    def __init__(self, expansions: Iterable[RepeatExpansionInfo] = ()):
        self._expansions = tuple(
            sorted(
                expansions,
                key=lambda info: (
                    info.direction.value,
                    info.span.start,
                    info.span.end,
                    info.footprint.start,
                ),
            )
        )

    def __repr__(self) -> str:
        return f"PositionModel({list(self._expansions)!r})"

    @property
    def expansions(self) -> tuple[RepeatExpansionInfo, ...]:
        return self._expansions

    @property
    def is_identity(self) -> bool:
        return all(info.expansion_amount == 0 for info in self._expansions)

    def groups(self, direction: RepeatDirection, footprint=None) -> list[ExpansionGroup]:
        return group_expansions(self._expansions, direction, footprint)

    def expansions_for_area(self, area: Area) -> list[RepeatExpansionInfo]:
        return [info for info in self._expansions if info.area == area]

    def final_row(self, row: int, cols=None) -> int:
        return shift_index(row, self.groups(RepeatDirection.DOWN, as_span(cols, ColRange)))

    def final_col(self, col: int, rows=None) -> int:
        return shift_index(col, self.groups(RepeatDirection.RIGHT, as_span(rows, RowRange)))

    def final_position(self, row: int, col: int) -> tuple[int, int]:
        """Rendered position of template cell ``(row, col)``.

        Cells inside a repeat's template area resolve to the first item's copy.
        """

        return (
            self.final_row(row, ColRange(col, col)),
            self.final_col(col, RowRange(row, row)),
        )

    def resolve_range(
        self, start_row: int, start_col: int, end_row: int, end_col: int
    ) -> tuple[int, int, int, int]:
        cols = ColRange(min(start_col, end_col), max(start_col, end_col))
        rows = RowRange(min(start_row, end_row), max(start_row, end_row))
        row_groups = self.groups(RepeatDirection.DOWN, cols)
        col_groups = self.groups(RepeatDirection.RIGHT, rows)
        return (
            resolve_endpoint(start_row, row_groups, is_end=False),
            resolve_endpoint(start_col, col_groups, is_end=False),
            resolve_endpoint(end_row, row_groups, is_end=True),
            resolve_endpoint(end_col, col_groups, is_end=True),
        )

    def expanded_area(self, info: RepeatExpansionInfo) -> Area:
        """The rendered block occupied by every item of ``info``."""

        start_row, start_col = self.final_position(info.template_start_row, info.template_start_col)
        if info.direction is RepeatDirection.DOWN:
            return Area(
                start_row,
                start_row + info.expanded_total - 1,
                start_col,
                start_col + info.template_col_count - 1,
            )
        return Area(
            start_row,
            start_row + info.template_row_count - 1,
            start_col,
            start_col + info.expanded_total - 1,
        )

    def item_position(
        self, info: RepeatExpansionInfo, item_index: int, row: int, col: int
    ) -> tuple[int, int]:
        """Rendered position of template cell ``(row, col)`` for item ``item_index``."""

        if not 0 <= item_index < info.item_count:
            raise IndexError(f"Item {item_index} outside collection of {info.item_count}")
        if not info.area.contains(row, col):
            raise ValueError(f"Cell ({row}, {col}) is outside repeat area {info.area.to_reference()}")
        final_row, final_col = self.final_position(row, col)
        if info.direction is RepeatDirection.DOWN:
            return final_row + item_index * info.template_row_count, final_col
        return final_row, final_col + item_index * info.template_col_count

    @property
    def row_growth(self) -> int:
        return sum(group.expansion for group in self.groups(RepeatDirection.DOWN))

    @property
    def col_growth(self) -> int:
        return sum(group.expansion for group in self.groups(RepeatDirection.RIGHT))


class PositionCalculator:
    """Resolve repeat declarations against collection sizes."""

    def calculate(
        self,
        specs: Iterable[RepeatRegionSpec],
        sizes: Mapping[str, int],
    ) -> PositionModel:
        expansions = []
        for spec in specs:
            size = sizes.get(spec.collection_name)
            if size is None:
                logger.debug(
                    "No size for collection %s; rendering a single item",
                    spec.collection_name,
                )
                size = 0
            expansions.append(RepeatExpansionInfo.from_spec(spec, size))
        return PositionModel(expansions)

    def expansions_by_sheet(
        self,
        specs_by_sheet: Mapping[str, Iterable[RepeatRegionSpec]],
        sizes: Mapping[str, int],
    ) -> dict[str, list[RepeatExpansionInfo]]:
        """Resolve every sheet's repeats, keyed by sheet name.

        This is the shape expected by the chart restore and direct chart
        adjustment steps.
        """

        return {
            sheet_name: list(self.calculate(specs, sizes).expansions)
            for sheet_name, specs in specs_by_sheet.items()
        }
