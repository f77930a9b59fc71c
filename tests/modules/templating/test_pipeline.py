"""Tests for generation-mode dispatch of chart reconciliation."""

from __future__ import annotations

import io
import zipfile

from openpyxl import Workbook
from openpyxl.chart import BarChart, Reference

from sheetwriter.modules.templating import ChartReconciler, EngineSettings, GenerationMode
from sheetwriter.modules.templating.geometry import RepeatExpansionInfo

EXPANSIONS = {"Data": [RepeatExpansionInfo(2, 2, 0, 2, 5)]}


def _workbook():
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Data"
    worksheet["B3"] = "${row.sales}"
    chart = BarChart()
    chart.add_data(Reference(worksheet, min_col=2, min_row=3, max_row=3))
    worksheet.add_chart(chart, "A10")
    return workbook, chart


def _saved(workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _names(data: bytes) -> set[str]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return set(archive.namelist())


def test_streaming_mode_extracts_and_restores():
    reconciler = ChartReconciler(EngineSettings(generation_mode=GenerationMode.STREAMING))
    template = _saved(_workbook()[0])

    chart_info, stripped = reconciler.begin(template)
    restored = reconciler.finish(stripped, chart_info, repeat_expansions=EXPANSIONS)

    assert chart_info is not None
    assert "xl/charts/chart1.xml" not in _names(stripped)
    assert "xl/charts/chart1.xml" in _names(restored)


def test_direct_mode_passes_packages_through():
    reconciler = ChartReconciler(EngineSettings(generation_mode=GenerationMode.DIRECT))
    template = _saved(_workbook()[0])

    chart_info, stripped = reconciler.begin(template)

    assert chart_info is None
    assert stripped is template
    assert reconciler.finish(b"generated", None) == b"generated"


def test_direct_mode_adjusts_workbook_charts():
    workbook, chart = _workbook()

    ChartReconciler(EngineSettings(generation_mode=GenerationMode.DIRECT)).adjust_workbook(workbook, EXPANSIONS)

    assert chart.series[0].val.numRef.f.replace("'", "").endswith("!$B$3:$B$7")
    assert chart.anchor == "A14"


def test_streaming_mode_leaves_workbook_alone():
    workbook, chart = _workbook()
    before = chart.series[0].val.numRef.f

    ChartReconciler().adjust_workbook(workbook, EXPANSIONS)

    assert chart.series[0].val.numRef.f == before
    assert chart.anchor == "A10"
