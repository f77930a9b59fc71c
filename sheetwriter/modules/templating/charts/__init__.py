from .drawings import calculate_rid_mapping, classify_anchors, merge_drawing_rels_xml, merge_drawing_xml
from .objects import adjust_workbook
from .processor import ChartInfo, ChartProcessor, RestoreReport
from .ranges import adjust_chart_xml, adjust_formula, shift_anchor, shift_col, shift_row

__all__ = [
    "ChartInfo",
    "ChartProcessor",
    "RestoreReport",
    "adjust_chart_xml",
    "adjust_formula",
    "adjust_workbook",
    "calculate_rid_mapping",
    "classify_anchors",
    "merge_drawing_rels_xml",
    "merge_drawing_xml",
    "shift_anchor",
    "shift_col",
    "shift_row",
]
