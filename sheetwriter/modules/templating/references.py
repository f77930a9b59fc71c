"""Locate and rewrite A1-style cell references inside formula text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Iterator

from .geometry import ColRange, RowRange, column_index, column_letter

logger = logging.getLogger(__name__)

_STRING_LITERAL_RE = re.compile(r'"(?:[^"]|"")*"')
_REFERENCE_RE = re.compile(
    r"(?<![\w.$'!\]])"
    r"(?P<sheet>(?:'(?:[^']|'')+'|[\w.]+)!)?"
    r"(?P<col1_abs>\$?)(?P<col1>[A-Za-z]{1,3})(?P<row1_abs>\$?)(?P<row1>\d+)"
    r"(?::(?P<col2_abs>\$?)(?P<col2>[A-Za-z]{1,3})(?P<row2_abs>\$?)(?P<row2>\d+))?"
    r"(?![\w(!$\[])"
)


def normalise_sheet_name(sheet_part: str | None) -> str | None:
    """Return the bare sheet name from a ``Sheet!`` or ``'My Sheet'!`` prefix."""

    if not sheet_part:
        return None
    stripped = sheet_part.strip()
    if stripped.endswith("!"):
        stripped = stripped[:-1]
    if stripped.startswith("'") and stripped.endswith("'") and len(stripped) >= 2:
        stripped = stripped[1:-1].replace("''", "'")
    return stripped or None


@dataclass(frozen=True)
class CellToken:
    """One ``[$]Col[$]Row`` endpoint; ``row`` and ``col`` are 0-based."""

    row: int
    col: int
    row_absolute: bool = False
    col_absolute: bool = False
    col_text: str | None = None

    def moved(self, row: int | None = None, col: int | None = None) -> "CellToken":
        return replace(
            self,
            row=self.row if row is None else row,
            col=self.col if col is None else col,
        )

    def render(self) -> str:
        letters = self.col_text
        if letters is None or column_index(letters) != self.col:
            letters = column_letter(self.col)
        return (
            f"{'$' if self.col_absolute else ''}{letters}"
            f"{'$' if self.row_absolute else ''}{self.row + 1}"
        )


@dataclass(frozen=True)
class Reference:
    """A single cell or rectangular range reference found in a formula."""

    text: str
    sheet_part: str | None
    start: CellToken
    end: CellToken | None = None

    @property
    def sheet_name(self) -> str | None:
        return normalise_sheet_name(self.sheet_part)

    @property
    def is_range(self) -> bool:
        return self.end is not None

    @property
    def last(self) -> CellToken:
        return self.end if self.end is not None else self.start

    @property
    def rows(self) -> RowRange:
        low, high = sorted((self.start.row, self.last.row))
        return RowRange(low, high)

    @property
    def cols(self) -> ColRange:
        low, high = sorted((self.start.col, self.last.col))
        return ColRange(low, high)

    def corners(self) -> tuple[CellToken, CellToken]:
        """Top-left and bottom-right endpoints, whichever order they were written in."""

        rows, cols = self.rows, self.cols
        return (
            self.start.moved(row=rows.start, col=cols.start),
            self.last.moved(row=rows.end, col=cols.end),
        )

    def targets_sheet(self, sheet_name: str | None) -> bool:
        """Whether the reference points at ``sheet_name``.

        Unqualified references always target the sheet holding the formula. A
        qualified reference only matches when the current sheet is known, so
        callers rewriting formulas that may name their own sheet must pass it.
        """

        qualified = self.sheet_name
        if qualified is None:
            return True
        if sheet_name is None:
            logger.debug("Leaving %s alone: the sheet holding the formula is unknown", self.text)
            return False
        return qualified == sheet_name

    def render(self, start: CellToken, end: CellToken | None = None) -> str:
        body = start.render()
        if end is not None:
            body = f"{body}:{end.render()}"
        return f"{self.sheet_part or ''}{body}"


def _cell_from_match(match: re.Match, suffix: str) -> CellToken:
    letters = match.group(f"col{suffix}")
    return CellToken(
        row=int(match.group(f"row{suffix}")) - 1,
        col=column_index(letters),
        row_absolute=bool(match.group(f"row{suffix}_abs")),
        col_absolute=bool(match.group(f"col{suffix}_abs")),
        col_text=letters,
    )


def _reference_from_match(match: re.Match) -> Reference | None:
    try:
        start = _cell_from_match(match, "1")
        end = _cell_from_match(match, "2") if match.group("col2") else None
    except ValueError:
        # Column letters beyond XFD or a row of 0 are not cell references.
        return None
    if start.row < 0 or (end is not None and end.row < 0):
        return None
    return Reference(text=match.group(0), sheet_part=match.group("sheet"), start=start, end=end)


def _code_segments(formula: str) -> Iterator[tuple[str, bool]]:
    """Yield ``(segment, is_code)`` pairs, separating out string literals."""

    position = 0
    for literal in _STRING_LITERAL_RE.finditer(formula):
        if literal.start() > position:
            yield formula[position : literal.start()], True
        yield literal.group(0), False
        position = literal.end()
    if position < len(formula):
        yield formula[position:], True


def iter_references(formula: str) -> Iterator[Reference]:
    if not formula:
        return
    for segment, is_code in _code_segments(formula):
        if not is_code:
            continue
        for match in _REFERENCE_RE.finditer(segment):
            reference = _reference_from_match(match)
            if reference is not None:
                yield reference


def replace_references(formula: str, rewrite: Callable[[Reference], str | None]) -> str:
    """Return ``formula`` with every reference passed through ``rewrite``.

    ``rewrite`` returns the replacement text, or ``None`` to keep the original.
    """

    if not formula:
        return formula

    def substitute(match: re.Match) -> str:
        reference = _reference_from_match(match)
        if reference is None:
            return match.group(0)
        replacement = rewrite(reference)
        return match.group(0) if replacement is None else replacement

    pieces = []
    for segment, is_code in _code_segments(formula):
        pieces.append(_REFERENCE_RE.sub(substitute, segment) if is_code else segment)
    return "".join(pieces)
