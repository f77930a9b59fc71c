"""Tests for chart adjustment on openpyxl workbooks (direct generation)."""

from __future__ import annotations

from openpyxl import Workbook
from openpyxl.chart import BarChart, LineChart, Reference
from openpyxl.drawing.spreadsheet_drawing import AnchorMarker, OneCellAnchor, TwoCellAnchor

from sheetwriter.modules.templating.charts.objects import (
    adjust_anchors_in_sheet,
    adjust_charts_in_sheet,
    adjust_workbook,
    collect_formula_slots,
)
from sheetwriter.modules.templating.geometry import RepeatExpansionInfo

# Template row 7 (0-based 6) repeated for five items across columns A-K.
EXPANSIONS = [RepeatExpansionInfo(6, 6, 0, 10, 5)]


def _plain(formula):
    return formula.replace("'", "")


def _sales_workbook(anchor="E10"):
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Data"
    worksheet["A6"] = "Month"
    worksheet["B6"] = "Sales"
    worksheet["A7"] = "${row.month}"
    worksheet["B7"] = "${row.sales}"

    chart = BarChart()
    chart.add_data(Reference(worksheet, min_col=2, min_row=6, max_row=7), titles_from_data=True)
    chart.set_categories(Reference(worksheet, min_col=1, min_row=7, max_row=7))
    worksheet.add_chart(chart, anchor)
    return workbook, worksheet, chart


def test_collect_formula_slots_covers_every_series_source():
    _, _, chart = _sales_workbook()

    slots = collect_formula_slots(chart)

    assert sorted(slot.label for slot in slots) == [
        "series[0].cat.numRef",
        "series[0].tx.strRef",
        "series[0].val.numRef",
    ]


def test_collect_formula_slots_includes_combined_plots():
    _, worksheet, chart = _sales_workbook()
    line = LineChart()
    line.add_data(Reference(worksheet, min_col=2, min_row=7, max_row=7))
    chart += line

    assert len(collect_formula_slots(chart)) == 4


def test_adjust_charts_in_sheet_expands_series():
    _, worksheet, chart = _sales_workbook()
    title = chart.series[0].tx.strRef.f

    changed = adjust_charts_in_sheet(worksheet, EXPANSIONS)

    series = chart.series[0]
    assert changed == 2
    assert _plain(series.val.numRef.f) == "Data!$B$7:$B$11"
    assert _plain(series.cat.numRef.f) == "Data!$A$7:$A$11"
    assert series.tx.strRef.f == title


def test_adjust_charts_in_sheet_without_expansions_is_noop():
    _, worksheet, chart = _sales_workbook()
    before = chart.series[0].val.numRef.f

    assert adjust_charts_in_sheet(worksheet, []) == 0
    assert chart.series[0].val.numRef.f == before


def test_adjust_anchors_moves_string_anchor():
    _, worksheet, chart = _sales_workbook("E10")

    assert adjust_anchors_in_sheet(worksheet, EXPANSIONS) == 1
    assert chart.anchor == "E14"


def test_adjust_anchors_leaves_anchor_above_repeat():
    _, worksheet, chart = _sales_workbook("E2")

    assert adjust_anchors_in_sheet(worksheet, EXPANSIONS) == 0
    assert chart.anchor == "E2"


def test_adjust_anchors_moves_two_cell_anchor():
    _, worksheet, chart = _sales_workbook()
    anchor = TwoCellAnchor()
    anchor._from = AnchorMarker(col=4, row=9)
    anchor.to = AnchorMarker(col=10, row=20)
    chart.anchor = anchor

    assert adjust_anchors_in_sheet(worksheet, EXPANSIONS) == 1
    assert (anchor._from.row, anchor._from.col) == (13, 4)
    assert (anchor.to.row, anchor.to.col) == (24, 10)


def test_adjust_anchors_moves_one_cell_anchor():
    _, worksheet, chart = _sales_workbook()
    anchor = OneCellAnchor()
    anchor._from = AnchorMarker(col=2, row=8)
    chart.anchor = anchor

    assert adjust_anchors_in_sheet(worksheet, EXPANSIONS) == 1
    assert anchor._from.row == 12


def test_adjust_workbook_only_touches_listed_sheets():
    workbook, _, chart = _sales_workbook()
    other = workbook.create_sheet("Other")
    other_chart = BarChart()
    other_chart.add_data(Reference(other, min_col=1, min_row=7, max_row=7))
    other.add_chart(other_chart, "D10")
    other_formula = other_chart.series[0].val.numRef.f

    adjust_workbook(workbook, {"Data": EXPANSIONS, "Missing": EXPANSIONS})

    assert _plain(chart.series[0].val.numRef.f) == "Data!$B$7:$B$11"
    assert other_chart.series[0].val.numRef.f == other_formula
    assert other_chart.anchor == "D10"
