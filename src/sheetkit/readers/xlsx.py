"""Modern zip-based workbook reader built on openpyxl.

The workbook is opened twice: once with formulas (to capture the authored
expression and the declared cell types) and once with ``data_only=True``
(to capture the cached result of every formula).  Both views are needed
because openpyxl exposes either the formula or its result, never both.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from io import BytesIO

import openpyxl
from openpyxl.cell.cell import MergedCell
from openpyxl.worksheet.formula import ArrayFormula, DataTableFormula
from openpyxl.worksheet.worksheet import Worksheet

from sheetkit import address as codec
from sheetkit.config import SheetkitConfig
from sheetkit.errors import (
    CellReadError,
    ContainerCorruptError,
    SheetkitError,
    UnsupportedConstructError,
)
from sheetkit.events import LoggingEventSink
from sheetkit.formats import SourceFormat
from sheetkit.models import (
    CellData,
    DataType,
    MergedRange,
    SheetMetadata,
    Workbook,
    make_cell,
)
from sheetkit.normalizer import (
    normalize_boolean,
    normalize_error,
    normalize_number,
    normalize_temporal,
)
from sheetkit.protocols import EventSink
from sheetkit.readers.base import finalize, map_sheets, preflight

logger = logging.getLogger("sheetkit")

_SECONDS_PER_DAY = 86_400


def canonical_value(value, data_type: str) -> tuple[DataType, str]:
    """Map an openpyxl cell value onto ``(DataType, canonical string)``.

    *data_type* is openpyxl's one-letter cell type (``'e'`` marks errors,
    which openpyxl otherwise hands over as plain strings).

    Raises:
        ValueError: The value has no canonical form.
        TypeError: The value is of a type the model does not cover.
    """
    if data_type == "e":
        return DataType.ERROR, normalize_error(str(value))
    if isinstance(value, bool):
        return DataType.BOOLEAN, normalize_boolean(value)
    if isinstance(value, (int, float)):
        return DataType.NUMBER, normalize_number(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return DataType.DATE, normalize_temporal(value)
    if isinstance(value, dt.timedelta):
        # Duration formats: keep the underlying serial (days).
        return DataType.NUMBER, normalize_number(value.total_seconds() / _SECONDS_PER_DAY)
    if isinstance(value, str):
        return DataType.TEXT, value
    raise TypeError(f"Unsupported cell value type {type(value).__name__}")


class XlsxReader:
    """Parse ``.xlsx`` bytes into a :class:`~sheetkit.models.Workbook`.

    Satisfies :class:`~sheetkit.protocols.FormatReader`.

    Parameters
    ----------
    config:
        Pipeline configuration (size limit, per-sheet workers).
    events:
        Sink receiving ``parse.*`` events.
    """

    source_format = SourceFormat.XLSX

    def __init__(
        self,
        config: SheetkitConfig | None = None,
        events: EventSink | None = None,
    ) -> None:
        self._config = config or SheetkitConfig()
        self._events = events or LoggingEventSink()

    def parse(self, data: bytes) -> Workbook:
        start = time.monotonic()
        preflight(data, self.source_format, self._config)
        self._events.record("parse.start", source_format=self.source_format.value, size_bytes=len(data))

        formulas_wb, values_wb = self._open(data)
        self._reject_unsupported(formulas_wb)

        pairs = [
            (index, ws, values_wb[ws.title])
            for index, ws in enumerate(formulas_wb.worksheets)
        ]
        sheet_results = map_sheets(self._read_sheet, pairs, self._config.sheet_workers)

        workbook = Workbook(
            sheets=[meta for meta, _cells, _merges in sheet_results],
            cells=[cell for _meta, cells, _merges in sheet_results for cell in cells],
            merged_ranges=[m for _meta, _cells, merges in sheet_results for m in merges],
        )
        workbook = finalize(workbook, self.source_format)

        self._events.record(
            "parse.complete",
            source_format=self.source_format.value,
            sheets=len(workbook.sheets),
            cells=len(workbook.cells),
            merged_ranges=len(workbook.merged_ranges),
            duration=round(time.monotonic() - start, 3),
        )
        return workbook

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open(self, data: bytes) -> tuple[openpyxl.Workbook, openpyxl.Workbook]:
        try:
            formulas_wb = openpyxl.load_workbook(BytesIO(data), data_only=False)
            values_wb = openpyxl.load_workbook(BytesIO(data), data_only=True)
        except Exception as exc:
            raise ContainerCorruptError(f"Cannot open xlsx container: {exc}") from exc
        return formulas_wb, values_wb

    def _reject_unsupported(self, wb: openpyxl.Workbook) -> None:
        external_links = getattr(wb, "_external_links", [])
        if external_links:
            raise UnsupportedConstructError(
                f"Workbook declares {len(external_links)} external link(s)"
            )
        if wb.chartsheets:
            names = ", ".join(f"'{cs.title}'" for cs in wb.chartsheets)
            raise UnsupportedConstructError(f"Chart sheets are not supported: {names}")

    def _read_sheet(
        self, item: tuple[int, Worksheet, Worksheet]
    ) -> tuple[SheetMetadata, list[CellData], list[MergedRange]]:
        index, ws, values_ws = item
        name = ws.title
        meta = SheetMetadata(name=name, index=index, hidden=ws.sheet_state != "visible")

        cells: list[CellData] = []
        for row in ws.iter_rows():
            for cell in row:
                if isinstance(cell, MergedCell):
                    continue
                parsed = self._read_cell(name, cell, values_ws)
                if parsed is not None:
                    cells.append(parsed)

        merges = [
            MergedRange(
                sheet=name,
                start=codec.encode(rng.min_row, rng.min_col, self.source_format),
                end=codec.encode(rng.max_row, rng.max_col, self.source_format),
            )
            for rng in ws.merged_cells.ranges
        ]

        self._events.record(
            "parse.sheet",
            sheet=name,
            index=index,
            hidden=meta.hidden,
            cells=len(cells),
            merged_ranges=len(merges),
        )
        return meta, cells, merges

    def _read_cell(self, sheet: str, cell, values_ws: Worksheet) -> CellData | None:
        value = cell.value
        address = cell.coordinate
        if isinstance(value, (ArrayFormula, DataTableFormula)):
            raise UnsupportedConstructError(
                f"Array and data-table formulas are not supported ('{sheet}'!{address})"
            )
        try:
            codec.check_bounds(cell.row, cell.column, self.source_format)
            if cell.data_type == "f":
                cached = values_ws.cell(row=cell.row, column=cell.column)
                result = ""
                if cached.value is not None:
                    _kind, result = canonical_value(cached.value, cached.data_type)
                return make_cell(
                    sheet, cell.row, cell.column, DataType.FORMULA_RESULT, result, formula=value
                )
            if value is None or value == "":
                return None
            data_type, text = canonical_value(value, cell.data_type)
            return make_cell(sheet, cell.row, cell.column, data_type, text)
        except (SheetkitError, ValueError, TypeError) as exc:
            if self._config.log_sample_data:
                logger.debug("sheetkit | unreadable cell '%s'!%s | value=%r", sheet, address, value)
            raise CellReadError(sheet, address, str(exc)) from exc
