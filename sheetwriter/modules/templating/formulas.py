"""Rewrite cell formulas against the rendered geometry."""

from __future__ import annotations

import logging

from .errors import TemplateProcessingException
from .geometry import Area, RepeatDirection, RepeatExpansionInfo, RowRange
from .positions import PositionModel
from .references import CellToken, Reference, replace_references

logger = logging.getLogger(__name__)


def _inside_region(info: RepeatExpansionInfo, cell: CellToken, reference: Reference) -> bool:
    if info.direction is RepeatDirection.DOWN:
        return info.rows.contains(cell.row) and info.cols.overlaps(reference.cols)
    return info.cols.contains(cell.col) and info.rows.overlaps(reference.rows)


def _straddle_error(formula: str, reference: Reference, area: Area) -> TemplateProcessingException:
    return TemplateProcessingException(
        f"Range {reference.text} in formula {formula!r} only partly overlaps repeat area "
        f"{area.to_reference()}; extend it to cover the whole area or move it outside.",
        formula=formula,
        reference=reference.text,
    )


class FormulaAdjuster:
    """Reference rewriting for formulas copied into the rendered sheet.

    Only reference text changes; nothing is evaluated. Cross-sheet references
    are left alone, string literals are never touched and ``$`` markers are
    preserved exactly as written.
    """

    @staticmethod
    def adjust_for_row_expansion(
        formula: str,
        template_rows: RowRange,
        row_offset: int,
        sheet_name: str | None = None,
    ) -> str:
        """Shift references below ``template_rows`` down by ``row_offset``."""

        if not formula or not row_offset:
            return formula

        def rewrite(reference: Reference) -> str | None:
            if not reference.targets_sheet(sheet_name):
                return None
            start, end = reference.start, reference.last
            if reference.is_range and template_rows.contains(start.row) != template_rows.contains(end.row):
                raise TemplateProcessingException(
                    f"Range {reference.text} in formula {formula!r} crosses the repeat boundary "
                    f"at rows {template_rows.start + 1}-{template_rows.end + 1}.",
                    formula=formula,
                    reference=reference.text,
                )
            moved = [
                cell.moved(row=cell.row + row_offset) if cell.row > template_rows.end else cell
                for cell in (start, end)
            ]
            if moved[0] == start and moved[1] == end:
                return None
            return reference.render(moved[0], moved[1] if reference.is_range else None)

        return replace_references(formula, rewrite)

    @staticmethod
    def adjust_for_repeat_index(
        formula: str,
        item_index: int,
        direction: RepeatDirection = RepeatDirection.DOWN,
        step: int = 1,
        sheet_name: str | None = None,
    ) -> str:
        """Stamp the copy of a template formula for item ``item_index``.

        Relative row tokens (relative column tokens for ``RIGHT``) advance by
        ``item_index * step``. Absolute tokens keep pointing at the fixed
        template cell, e.g. a header.
        """

        offset = item_index * step
        if not formula or not offset:
            return formula
        direction = RepeatDirection.parse(direction)

        def advance(cell: CellToken) -> CellToken:
            if direction is RepeatDirection.DOWN:
                return cell if cell.row_absolute else cell.moved(row=cell.row + offset)
            return cell if cell.col_absolute else cell.moved(col=cell.col + offset)

        def rewrite(reference: Reference) -> str | None:
            if not reference.targets_sheet(sheet_name):
                return None
            start = advance(reference.start)
            end = advance(reference.end) if reference.end is not None else None
            if start == reference.start and end == reference.end:
                return None
            return reference.render(start, end)

        return replace_references(formula, rewrite)

    @staticmethod
    def adjust_refs_outside_repeat(
        formula: str,
        repeat_area: Area | None,
        positions: PositionModel,
        sheet_name: str | None = None,
    ) -> str:
        """Map references that point outside ``repeat_area`` to rendered space.

        ``repeat_area`` is the template area of the repeat holding the formula
        cell, or ``None`` for a cell outside every repeat. References entirely
        inside it are left for :meth:`adjust_for_repeat_index`. Any range with
        exactly one endpoint inside a repeat region raises
        :class:`TemplateProcessingException`.

        Pass ``sheet_name`` whenever the formula may qualify references with
        its own sheet; without it such references are left unchanged.
        """

        if not formula:
            return formula

        own_regions = positions.expansions_for_area(repeat_area) if repeat_area is not None else []
        if repeat_area is not None and not own_regions:
            own_regions = [
                RepeatExpansionInfo(
                    repeat_area.start_row,
                    repeat_area.end_row,
                    repeat_area.start_col,
                    repeat_area.end_col,
                    item_count=1,
                )
            ]

        def rewrite(reference: Reference) -> str | None:
            if not reference.targets_sheet(sheet_name):
                return None
            start, end = reference.corners()

            for info in own_regions:
                inside = (_inside_region(info, start, reference), _inside_region(info, end, reference))
                if all(inside):
                    return None
                if any(inside):
                    raise _straddle_error(formula, reference, info.area)

            if reference.is_range:
                for info in positions.expansions:
                    if info.area == repeat_area:
                        continue
                    if _inside_region(info, start, reference) != _inside_region(info, end, reference):
                        raise _straddle_error(formula, reference, info.area)
                start_row, start_col, end_row, end_col = positions.resolve_range(
                    start.row, start.col, end.row, end.col
                )
                new_start = start.moved(row=start_row, col=start_col)
                new_end = end.moved(row=end_row, col=end_col)
                if new_start == start and new_end == end:
                    return None
                return reference.render(new_start, new_end)

            row, col = positions.final_position(start.row, start.col)
            if (row, col) == (start.row, start.col):
                return None
            return reference.render(start.moved(row=row, col=col))

        adjusted = replace_references(formula, rewrite)
        if adjusted != formula:
            logger.debug("Adjusted formula %r -> %r", formula, adjusted)
        return adjusted
