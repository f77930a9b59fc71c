"""Chart and anchor adjustment on the openpyxl object model (direct mode)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence

from openpyxl.utils.cell import coordinate_from_string

from ..geometry import RepeatExpansionInfo, column_index, column_letter
from .ranges import adjust_formula, shift_anchor

logger = logging.getLogger(__name__)

# Series attributes holding a data source, each with reference children that
# carry the ``f`` formula text.
_SERIES_SOURCES = ("tx", "cat", "val", "xVal", "yVal", "bubbleSize")
_SOURCE_REFERENCES = ("strRef", "numRef", "multiLvlStrRef")


@dataclass
class FormulaSlot:
    """One formula-bearing reference of a chart series."""

    owner: object
    label: str

    def get(self) -> str | None:
        return getattr(self.owner, "f", None)

    def set(self, formula: str) -> None:
        self.owner.f = formula

    def adjust(self, sheet_name: str, expansions: Sequence[RepeatExpansionInfo]) -> bool:
        formula = self.get()
        if not formula:
            return False
        adjusted = adjust_formula(formula, sheet_name, expansions)
        if adjusted == formula:
            return False
        self.set(adjusted)
        logger.debug("Adjusted chart %s %r -> %r", self.label, formula, adjusted)
        return True


def _iter_plots(chart) -> Iterator[object]:
    plots = getattr(chart, "_charts", None) or [chart]
    seen: set[int] = set()
    for plot in plots:
        if id(plot) in seen:
            continue
        seen.add(id(plot))
        yield plot


def collect_formula_slots(chart) -> list[FormulaSlot]:
    """Every formula slot across all plots and series of ``chart``."""

    slots: list[FormulaSlot] = []
    for plot in _iter_plots(chart):
        for index, series in enumerate(getattr(plot, "series", None) or []):
            for source_name in _SERIES_SOURCES:
                source = getattr(series, source_name, None)
                if source is None:
                    continue
                for reference_name in _SOURCE_REFERENCES:
                    reference = getattr(source, reference_name, None)
                    if reference is not None and hasattr(reference, "f"):
                        slots.append(FormulaSlot(reference, f"series[{index}].{source_name}.{reference_name}"))
    return slots


def adjust_charts_in_sheet(
    worksheet,
    expansions: Sequence[RepeatExpansionInfo],
    sheet_name: str | None = None,
) -> int:
    """Rewrite the series formulas of every chart on ``worksheet``.

    Returns the number of formulas changed.
    """

    if not expansions:
        return 0
    name = sheet_name or worksheet.title
    changed = 0
    for chart in getattr(worksheet, "_charts", []):
        for slot in collect_formula_slots(chart):
            if slot.adjust(name, expansions):
                changed += 1
    return changed


def _shift_string_anchor(anchor: str, expansions: Sequence[RepeatExpansionInfo]) -> str:
    letters, row = coordinate_from_string(anchor)
    (new_row, new_col), _ = shift_anchor((row - 1, column_index(letters)), None, expansions)
    return f"{column_letter(new_col)}{new_row + 1}"


def _shift_anchor_object(anchor, expansions: Sequence[RepeatExpansionInfo]) -> bool:
    start = getattr(anchor, "_from", None)
    if start is None:
        # Absolute anchors are positioned in EMUs, not cells.
        return False
    end = getattr(anchor, "to", None)
    (from_row, from_col), to_cell = shift_anchor(
        (start.row, start.col),
        (end.row, end.col) if end is not None else None,
        expansions,
    )
    moved = (from_row, from_col) != (start.row, start.col)
    start.row, start.col = from_row, from_col
    if end is not None and to_cell is not None:
        moved = moved or to_cell != (end.row, end.col)
        end.row, end.col = to_cell
    return moved


def adjust_anchors_in_sheet(worksheet, expansions: Sequence[RepeatExpansionInfo]) -> int:
    """Shift chart and image anchors on ``worksheet``; returns how many moved."""

    if not expansions:
        return 0
    moved = 0
    drawables = list(getattr(worksheet, "_charts", [])) + list(getattr(worksheet, "_images", []))
    for drawable in drawables:
        anchor = getattr(drawable, "anchor", None)
        if anchor is None:
            continue
        if isinstance(anchor, str):
            shifted = _shift_string_anchor(anchor, expansions)
            if shifted != anchor:
                drawable.anchor = shifted
                moved += 1
        elif _shift_anchor_object(anchor, expansions):
            moved += 1
    return moved


def adjust_workbook(workbook, expansions_by_sheet: Mapping[str, Sequence[RepeatExpansionInfo]]) -> None:
    """Apply chart formula and anchor adjustment to every sheet with repeats."""

    for sheet_name, expansions in expansions_by_sheet.items():
        if not expansions or sheet_name not in workbook.sheetnames:
            continue
        worksheet = workbook[sheet_name]
        formulas = adjust_charts_in_sheet(worksheet, expansions, sheet_name)
        anchors = adjust_anchors_in_sheet(worksheet, expansions)
        logger.debug(
            "Sheet %s: %s chart formulas and %s anchors adjusted",
            sheet_name,
            formulas,
            anchors,
        )
