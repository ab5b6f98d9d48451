"""Legacy binary (BIFF/OLE2) workbook reader built on xlrd.

xlrd never exposes formula text, so formula cells surface as their cached
values.  ``formatting_info=True`` is required for xlrd to report merged
ranges.
"""

from __future__ import annotations

import datetime as dt
import logging
import time

import xlrd  # type: ignore[import-untyped]
from xlrd import XLRDError  # type: ignore[import-untyped]

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


def _cell_value(cell, datemode: int) -> tuple[DataType, str] | None:
    """Convert an xlrd cell into ``(DataType, canonical string)``.

    Returns None for empty and blank cells.
    """
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if cell.ctype == xlrd.XL_CELL_TEXT:
        if cell.value == "":
            return None
        return DataType.TEXT, cell.value
    if cell.ctype == xlrd.XL_CELL_NUMBER:
        return DataType.NUMBER, normalize_number(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        moment = xlrd.xldate_as_datetime(cell.value, datemode)
        if 0 <= cell.value < 1:
            return DataType.DATE, normalize_temporal(moment.time())
        return DataType.DATE, normalize_temporal(moment)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return DataType.BOOLEAN, normalize_boolean(bool(cell.value))
    if cell.ctype == xlrd.XL_CELL_ERROR:
        text = xlrd.error_text_from_code.get(cell.value)
        if text is None:
            raise ValueError(f"Unknown error code {cell.value!r}")
        return DataType.ERROR, normalize_error(text)
    raise TypeError(f"Unsupported cell type {cell.ctype!r}")


class XlsReader:
    """Parse ``.xls`` bytes into a :class:`~sheetkit.models.Workbook`."""

    source_format = SourceFormat.XLS

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

        book = self._open(data)
        items = [(index, sheet, book.datemode) for index, sheet in enumerate(book.sheets())]
        sheet_results = map_sheets(self._read_sheet, items, self._config.sheet_workers)

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

    def _open(self, data: bytes):
        try:
            return xlrd.open_workbook(file_contents=data, formatting_info=True)
        except XLRDError as exc:
            if "encrypt" in str(exc).lower():
                raise UnsupportedConstructError(f"Workbook is encrypted: {exc}") from exc
            raise ContainerCorruptError(f"Cannot open xls container: {exc}") from exc
        except Exception as exc:
            raise ContainerCorruptError(f"Cannot open xls container: {exc}") from exc

    def _read_sheet(self, item) -> tuple[SheetMetadata, list[CellData], list[MergedRange]]:
        index, sheet, datemode = item
        name = sheet.name
        meta = SheetMetadata(name=name, index=index, hidden=sheet.visibility != 0)

        cells: list[CellData] = []
        for row_idx in range(sheet.nrows):
            for col_idx in range(sheet.ncols):
                row, col = row_idx + 1, col_idx + 1
                cell = sheet.cell(row_idx, col_idx)
                try:
                    converted = _cell_value(cell, datemode)
                    if converted is None:
                        continue
                    data_type, value = converted
                    cells.append(make_cell(name, row, col, data_type, value))
                except (SheetkitError, ValueError, TypeError) as exc:
                    address = codec.column_letter(col) + str(row)
                    if self._config.log_sample_data:
                        logger.debug(
                            "sheetkit | unreadable cell '%s'!%s | value=%r", name, address, cell.value
                        )
                    raise CellReadError(name, address, str(exc)) from exc

        # xlrd reports (rlo, rhi, clo, chi) with exclusive upper bounds.
        merges = [
            MergedRange(
                sheet=name,
                start=codec.encode(rlo + 1, clo + 1, self.source_format),
                end=codec.encode(rhi, chi, self.source_format),
            )
            for rlo, rhi, clo, chi in sheet.merged_cells
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
