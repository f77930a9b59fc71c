"""Coordinate value types shared by the expansion engine.

All coordinates are 0-based and inclusive. A1 notation is only used at the
edges (parsing repeat areas and rendering references).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from openpyxl.utils import column_index_from_string, get_column_letter, range_boundaries


def column_index(letters: str) -> int:
    """Return the 0-based index for column ``letters`` (``"A"`` -> 0)."""

    return column_index_from_string(letters.upper()) - 1


def column_letter(index: int) -> str:
    """Return the column letters for 0-based ``index`` (0 -> ``"A"``)."""

    return get_column_letter(index + 1)


class RepeatDirection(str, Enum):
    DOWN = "down"
    RIGHT = "right"

    @classmethod
    def parse(cls, value) -> "RepeatDirection":
        if isinstance(value, cls):
            return value
        normalised = str(value or "").strip().lower()
        for direction in cls:
            if direction.value == normalised:
                return direction
        raise ValueError(f"Unknown repeat direction: {value!r}")


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"{type(self).__name__} cannot start before 0: {self.start}")
        if self.end < self.start:
            raise ValueError(f"{type(self).__name__} end {self.end} precedes start {self.start}")

    @property
    def count(self) -> int:
        return self.end - self.start + 1

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def overlaps(self, other: "Span") -> bool:
        return self.start <= other.end and other.start <= self.end

    def __iter__(self):
        return iter(range(self.start, self.end + 1))


class RowRange(Span):
    """Inclusive span of rows."""


class ColRange(Span):
    """Inclusive span of columns."""


@dataclass(frozen=True)
class Area:
    start_row: int
    end_row: int
    start_col: int
    end_col: int

    def __post_init__(self):
        # Validates both axes.
        RowRange(self.start_row, self.end_row)
        ColRange(self.start_col, self.end_col)

    @classmethod
    def from_reference(cls, reference: str) -> "Area":
        """Parse an A1 range such as ``"B3:D5"`` (or a single cell)."""

        cleaned = reference.strip()
        if "!" in cleaned:
            cleaned = cleaned.rsplit("!", 1)[1]
        min_col, min_row, max_col, max_row = range_boundaries(cleaned.replace("$", ""))
        if None in (min_col, min_row, max_col, max_row):
            raise ValueError(f"Repeat areas must be bounded cell ranges: {reference!r}")
        return cls(min_row - 1, max_row - 1, min_col - 1, max_col - 1)

    def to_reference(self) -> str:
        start = f"{column_letter(self.start_col)}{self.start_row + 1}"
        end = f"{column_letter(self.end_col)}{self.end_row + 1}"
        return start if start == end else f"{start}:{end}"

    @property
    def rows(self) -> RowRange:
        return RowRange(self.start_row, self.end_row)

    @property
    def cols(self) -> ColRange:
        return ColRange(self.start_col, self.end_col)

    @property
    def row_count(self) -> int:
        return self.end_row - self.start_row + 1

    @property
    def col_count(self) -> int:
        return self.end_col - self.start_col + 1

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row <= self.end_row and self.start_col <= col <= self.end_col

    def span(self, direction: RepeatDirection) -> Span:
        """The span along which ``direction`` repeats the area."""

        return self.rows if direction is RepeatDirection.DOWN else self.cols

    def footprint(self, direction: RepeatDirection) -> Span:
        """The span across ``direction``; it does not move when the area repeats."""

        return self.cols if direction is RepeatDirection.DOWN else self.rows


@dataclass(frozen=True)
class RepeatRegionSpec:
    collection_name: str
    item_variable_name: str
    area: Area
    direction: RepeatDirection = RepeatDirection.DOWN


@dataclass(frozen=True)
class RepeatExpansionInfo:
    """A repeat region resolved against the size of its collection."""

    template_start_row: int
    template_end_row: int
    template_start_col: int
    template_end_col: int
    item_count: int
    direction: RepeatDirection = RepeatDirection.DOWN
    collection_name: str | None = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "item_count", max(1, int(self.item_count)))
        object.__setattr__(self, "direction", RepeatDirection.parse(self.direction))

    @classmethod
    def from_spec(cls, spec: RepeatRegionSpec, item_count: int) -> "RepeatExpansionInfo":
        return cls(
            template_start_row=spec.area.start_row,
            template_end_row=spec.area.end_row,
            template_start_col=spec.area.start_col,
            template_end_col=spec.area.end_col,
            item_count=item_count,
            direction=spec.direction,
            collection_name=spec.collection_name,
        )

    @property
    def area(self) -> Area:
        return Area(
            self.template_start_row,
            self.template_end_row,
            self.template_start_col,
            self.template_end_col,
        )

    @property
    def rows(self) -> RowRange:
        return RowRange(self.template_start_row, self.template_end_row)

    @property
    def cols(self) -> ColRange:
        return ColRange(self.template_start_col, self.template_end_col)

    @property
    def template_row_count(self) -> int:
        return self.template_end_row - self.template_start_row + 1

    @property
    def template_col_count(self) -> int:
        return self.template_end_col - self.template_start_col + 1

    @property
    def template_span_count(self) -> int:
        if self.direction is RepeatDirection.DOWN:
            return self.template_row_count
        return self.template_col_count

    @property
    def span(self) -> Span:
        return self.area.span(self.direction)

    @property
    def footprint(self) -> Span:
        return self.area.footprint(self.direction)

    @property
    def expansion_amount(self) -> int:
        return (self.item_count - 1) * self.template_span_count

    @property
    def expanded_total(self) -> int:
        return self.item_count * self.template_span_count
