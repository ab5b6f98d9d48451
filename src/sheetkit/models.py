"""Pydantic data models for the canonical workbook representation.

The model has three collections: sheet metadata in declaration order, the
non-empty cells, and the merged ranges.  Cells are a closed tagged union on
``data_type`` -- each variant only carries the fields that make sense for
it, so a text cell can never hold a formula and a formula cell always pairs
its cached result with the authored expression.

Field-level rules (address derivation, canonical values) are enforced here;
cross-entity invariants live in :mod:`sheetkit.validation`.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

from sheetkit import address as codec
from sheetkit.errors import ErrorRecord, SheetkitError
from sheetkit.formats import SourceFormat, TargetFormat
from sheetkit.normalizer import ERROR_TOKENS, is_canonical_number, parse_temporal

_SURROGATE_RE = re.compile("[\ud800-\udfff]")


def _encodable(value):
    match = _SURROGATE_RE.search(value) if isinstance(value, str) else None
    if match is not None:
        raise ValueError(
            f"Text holds a lone surrogate U+{ord(match.group()):04X} at offset {match.start()}"
        )
    return value


# Text that can be written as UTF-8.
UnicodeText = Annotated[str, BeforeValidator(_encodable)]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DataType(str, Enum):
    """Closed set of cell value types."""

    TEXT = "Text"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    ERROR = "Error"
    FORMULA_RESULT = "FormulaResult"


# ---------------------------------------------------------------------------
# Sheets and merges
# ---------------------------------------------------------------------------


class SheetMetadata(BaseModel):
    """A named tab, its 0-based position, and its visibility."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: UnicodeText = Field(min_length=1)
    index: int = Field(ge=0)
    hidden: bool = False


class MergedRange(BaseModel):
    """A rectangular block of cells anchored at ``start``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet: UnicodeText
    start: str
    end: str

    @model_validator(mode="after")
    def _check_corners(self) -> MergedRange:
        try:
            (start_row, start_col), (end_row, end_col) = self.corners()
        except SheetkitError as exc:
            raise ValueError(str(exc)) from exc
        if start_row > end_row or start_col > end_col:
            raise ValueError(
                f"Merged range {self.start}:{self.end} has its start below or right of its end"
            )
        return self

    def corners(self) -> tuple[tuple[int, int], tuple[int, int]]:
        """Return ``((start_row, start_col), (end_row, end_col))``."""
        return codec.decode_range(self.ref)

    def bounds(self) -> tuple[int, int, int, int]:
        """Return ``(min_row, min_col, max_row, max_col)``."""
        (start_row, start_col), (end_row, end_col) = self.corners()
        return start_row, start_col, end_row, end_col

    @property
    def ref(self) -> str:
        return f"{self.start}:{self.end}"


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


class _CellBase(BaseModel):
    """Fields shared by every cell variant."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet: UnicodeText
    address: str = ""
    row: int = Field(ge=1)
    col: int = Field(ge=1)
    value: UnicodeText

    @model_validator(mode="before")
    @classmethod
    def _derive_address(cls, data):
        if isinstance(data, dict) and not data.get("address"):
            row, col = data.get("row"), data.get("col")
            max_rows, max_cols = codec.GRID_LIMITS[SourceFormat.XLSX]
            if (
                isinstance(row, int)
                and isinstance(col, int)
                and 1 <= row <= max_rows
                and 1 <= col <= max_cols
            ):
                data = {**data, "address": codec.encode(row, col)}
        return data

    @model_validator(mode="after")
    def _check_address(self):
        try:
            expected = codec.encode(self.row, self.col)
        except SheetkitError as exc:
            raise ValueError(str(exc)) from exc
        if self.address != expected:
            raise ValueError(
                f"Address {self.address!r} does not match row {self.row}, col {self.col} "
                f"(expected {expected!r})"
            )
        return self

    @property
    def key(self) -> tuple[str, int, int]:
        return self.sheet, self.row, self.col


class TextCell(_CellBase):
    data_type: Literal["Text"] = "Text"

    @field_validator("value")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if value == "":
            raise ValueError("Empty text cells are not materialized")
        return value


class NumberCell(_CellBase):
    data_type: Literal["Number"] = "Number"

    @field_validator("value")
    @classmethod
    def _canonical(cls, value: str) -> str:
        if not is_canonical_number(value):
            raise ValueError(f"Number value {value!r} is not in canonical form")
        return value


class BooleanCell(_CellBase):
    data_type: Literal["Boolean"] = "Boolean"

    @field_validator("value")
    @classmethod
    def _token(cls, value: str) -> str:
        if value not in ("TRUE", "FALSE"):
            raise ValueError(f"Boolean value must be 'TRUE' or 'FALSE', got {value!r}")
        return value


class DateCell(_CellBase):
    data_type: Literal["Date"] = "Date"

    @field_validator("value")
    @classmethod
    def _iso(cls, value: str) -> str:
        parse_temporal(value)
        return value


class ErrorCell(_CellBase):
    data_type: Literal["Error"] = "Error"

    @field_validator("value")
    @classmethod
    def _token(cls, value: str) -> str:
        if value not in ERROR_TOKENS:
            raise ValueError(f"Unknown error token {value!r}")
        return value


class FormulaResultCell(_CellBase):
    """A formula cell: cached result in ``value``, authored text in ``formula``.

    ``value`` is empty when the source never cached a result.
    """

    data_type: Literal["FormulaResult"] = "FormulaResult"
    formula: UnicodeText = Field(min_length=1)


def formula_of(cell: CellData) -> str | None:
    """Return the authored formula of *cell*, or None for non-formula cells."""
    if isinstance(cell, FormulaResultCell):
        return cell.formula
    return None


CellData = Annotated[
    Union[TextCell, NumberCell, BooleanCell, DateCell, ErrorCell, FormulaResultCell],
    Field(discriminator="data_type"),
]

_CELL_CLASSES: dict[DataType, type[_CellBase]] = {
    DataType.TEXT: TextCell,
    DataType.NUMBER: NumberCell,
    DataType.BOOLEAN: BooleanCell,
    DataType.DATE: DateCell,
    DataType.ERROR: ErrorCell,
    DataType.FORMULA_RESULT: FormulaResultCell,
}


def make_cell(
    sheet: str,
    row: int,
    col: int,
    data_type: DataType | str,
    value: str,
    formula: str | None = None,
) -> CellData:
    """Build the cell variant matching *data_type*."""
    data_type = DataType(data_type)
    cell_cls = _CELL_CLASSES[data_type]
    fields: dict = {
        "sheet": sheet,
        "row": row,
        "col": col,
        "data_type": data_type.value,
        "value": value,
    }
    if formula is not None:
        fields["formula"] = formula
    return cell_cls.model_validate(fields)


# ---------------------------------------------------------------------------
# Workbook
# ---------------------------------------------------------------------------


class Workbook(BaseModel):
    """Root aggregate: sheets, non-empty cells, and merged ranges."""

    model_config = ConfigDict(extra="forbid")

    sheets: list[SheetMetadata] = []
    cells: list[CellData] = []
    merged_ranges: list[MergedRange] = []

    def sheet_names(self) -> list[str]:
        return [sheet.name for sheet in self.sheets]

    def sorted_cells(self) -> list[CellData]:
        """Cells ordered by (sheet name, row, column)."""
        return sorted(self.cells, key=lambda cell: cell.key)

    def sorted_merges(self) -> list[MergedRange]:
        """Merges ordered by (sheet name, start row, start column, end row, end column)."""
        return sorted(self.merged_ranges, key=lambda merge: (merge.sheet, *merge.bounds()))

    def cells_for(self, sheet: str) -> list[CellData]:
        return [cell for cell in self.cells if cell.sheet == sheet]

    def merges_for(self, sheet: str) -> list[MergedRange]:
        return [merge for merge in self.merged_ranges if merge.sheet == sheet]

    def canonical(self) -> Workbook:
        """Return a copy whose cells and merges are in serialization order."""
        return Workbook(
            sheets=list(self.sheets),
            cells=self.sorted_cells(),
            merged_ranges=self.sorted_merges(),
        )


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class ConversionResult(BaseModel):
    """Outcome of :meth:`SheetConverter.convert`.

    Exactly one of ``output`` and ``error`` is set.  ``output`` is never a
    partial document.  The formats are None only when a format hint was
    not recognized.
    """

    source_format: SourceFormat | None = None
    target_format: TargetFormat | None = None
    parser_version: str | None = None
    output: bytes | None = None
    content_type: str | None = None
    error: ErrorRecord | None = None
    sheet_count: int = 0
    cell_count: int = 0
    merged_range_count: int = 0
    processing_time_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class ReconstructionResult(BaseModel):
    """Outcome of :meth:`SheetConverter.reconstruct`."""

    document_format: TargetFormat | None = None
    parser_version: str | None = None
    output: bytes | None = None
    error: ErrorRecord | None = None
    sheet_count: int = 0
    cell_count: int = 0
    processing_time_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "BooleanCell",
    "CellData",
    "ConversionResult",
    "DataType",
    "DateCell",
    "ErrorCell",
    "FormulaResultCell",
    "MergedRange",
    "NumberCell",
    "ReconstructionResult",
    "SheetMetadata",
    "TextCell",
    "Workbook",
    "formula_of",
    "make_cell",
]
