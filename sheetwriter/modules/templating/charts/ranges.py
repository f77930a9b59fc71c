"""Chart series ranges and drawing anchors under repeat expansion.

Chart references differ from cell formulas in two ways: they never raise on
partial overlap, and a single cell inside a repeat is promoted to a range over
the whole expanded block. Spreadsheet writers collapse a one-row range such as
``$A$7:$A$7`` into ``$A$7``, and the promotion reverses that collapse.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Sequence

from ..geometry import ColRange, RepeatDirection, RepeatExpansionInfo, RowRange
from ..positions import as_span, group_expansions, resolve_endpoint, shift_index
from ..references import Reference, iter_references, replace_references

logger = logging.getLogger(__name__)

_CHART_FORMULA_RE = re.compile(r"<(?P<prefix>(?:[A-Za-z_][\w.-]*:)?)f>(?P<formula>[^<]+)</(?P=prefix)f>")


def shift_row(row: int, col_footprint, expansions: Sequence[RepeatExpansionInfo]) -> int:
    """Shift a 0-based anchor row past DOWN repeats sharing its columns."""

    groups = group_expansions(expansions, RepeatDirection.DOWN, as_span(col_footprint, ColRange))
    return shift_index(row, groups)


def shift_col(col: int, row_footprint, expansions: Sequence[RepeatExpansionInfo]) -> int:
    """Shift a 0-based anchor column past RIGHT repeats sharing its rows."""

    groups = group_expansions(expansions, RepeatDirection.RIGHT, as_span(row_footprint, RowRange))
    return shift_index(col, groups)


def shift_anchor(
    from_cell: tuple[int, int],
    to_cell: tuple[int, int] | None,
    expansions: Sequence[RepeatExpansionInfo],
) -> tuple[tuple[int, int], tuple[int, int] | None]:
    """Shift an anchor given as ``(row, col)`` markers.

    Both markers move together; the anchor's own template footprint decides
    which repeats apply. ``to_cell`` is ``None`` for one-cell anchors.
    """

    if not expansions:
        return from_cell, to_cell
    last = to_cell if to_cell is not None else from_cell
    cols = ColRange(min(from_cell[1], last[1]), max(from_cell[1], last[1]))
    rows = RowRange(min(from_cell[0], last[0]), max(from_cell[0], last[0]))

    def move(cell: tuple[int, int]) -> tuple[int, int]:
        return shift_row(cell[0], cols, expansions), shift_col(cell[1], rows, expansions)

    return move(from_cell), move(to_cell) if to_cell is not None else None


def _promote_single_cell(reference: Reference, expansions: Sequence[RepeatExpansionInfo]) -> str | None:
    cell = reference.start
    row_groups = group_expansions(expansions, RepeatDirection.DOWN, ColRange(cell.col, cell.col))
    col_groups = group_expansions(expansions, RepeatDirection.RIGHT, RowRange(cell.row, cell.row))

    if any(group.contains(cell.row) for group in row_groups):
        start = cell.moved(
            row=resolve_endpoint(cell.row, row_groups, is_end=False),
            col=shift_index(cell.col, col_groups),
        )
        end = start.moved(row=resolve_endpoint(cell.row, row_groups, is_end=True))
        return reference.render(start, end)

    if any(group.contains(cell.col) for group in col_groups):
        start = cell.moved(
            row=shift_index(cell.row, row_groups),
            col=resolve_endpoint(cell.col, col_groups, is_end=False),
        )
        end = start.moved(col=resolve_endpoint(cell.col, col_groups, is_end=True))
        return reference.render(start, end)

    row = shift_index(cell.row, row_groups)
    col = shift_index(cell.col, col_groups)
    if (row, col) == (cell.row, cell.col):
        return None
    return reference.render(cell.moved(row=row, col=col))


def _adjust_range(reference: Reference, expansions: Sequence[RepeatExpansionInfo]) -> str | None:
    start, end = reference.corners()
    row_groups = group_expansions(expansions, RepeatDirection.DOWN, reference.cols)
    col_groups = group_expansions(expansions, RepeatDirection.RIGHT, reference.rows)
    new_start = start.moved(
        row=resolve_endpoint(start.row, row_groups, is_end=False),
        col=resolve_endpoint(start.col, col_groups, is_end=False),
    )
    new_end = end.moved(
        row=resolve_endpoint(end.row, row_groups, is_end=True),
        col=resolve_endpoint(end.col, col_groups, is_end=True),
    )
    if new_start == start and new_end == end:
        return None
    return reference.render(new_start, new_end)


def adjust_formula(
    formula: str,
    current_sheet_name: str | None,
    expansions: Sequence[RepeatExpansionInfo],
) -> str:
    """Rewrite the references of one chart series formula."""

    if not formula or not expansions:
        return formula

    def rewrite(reference: Reference) -> str | None:
        if not reference.targets_sheet(current_sheet_name):
            return None
        if reference.is_range:
            return _adjust_range(reference, expansions)
        return _promote_single_cell(reference, expansions)

    return replace_references(formula, rewrite)


def adjust_chart_xml(xml: str, sheet_name: str | None, expansions: Sequence[RepeatExpansionInfo]) -> str:
    """Rewrite every ``<f>``/``<c:f>`` formula in a chart part."""

    if not expansions:
        return xml

    def substitute(match: re.Match) -> str:
        formula = html.unescape(match.group("formula"))
        adjusted = adjust_formula(formula, sheet_name, expansions)
        if adjusted == formula:
            return match.group(0)
        prefix = match.group("prefix")
        return f"<{prefix}f>{html.escape(adjusted, quote=False)}</{prefix}f>"

    return _CHART_FORMULA_RE.sub(substitute, xml)


def first_formula_sheet(xml: str) -> str | None:
    """Sheet named by the first formula in a chart part, if it is qualified."""

    match = _CHART_FORMULA_RE.search(xml)
    if match is None:
        return None
    reference = next(iter_references(html.unescape(match.group("formula"))), None)
    return reference.sheet_name if reference is not None else None
