"""Delimited-text reader.

A CSV file becomes a single visible sheet (named by
``SheetkitConfig.csv_sheet_name``) holding only Text and Number cells.
Empty fields are never materialized.
"""

from __future__ import annotations

import csv
import io
import logging
import time

from sheetkit import address as codec
from sheetkit.config import SheetkitConfig
from sheetkit.errors import (
    CellReadError,
    ContainerCorruptError,
    SheetkitError,
    TypeInferenceError,
)
from sheetkit.events import LoggingEventSink
from sheetkit.formats import SourceFormat
from sheetkit.models import CellData, SheetMetadata, Workbook, make_cell
from sheetkit.normalizer import infer_csv_cell
from sheetkit.protocols import EventSink
from sheetkit.readers.base import finalize, preflight

logger = logging.getLogger("sheetkit")


class CsvReader:
    """Parse delimited text into a one-sheet :class:`~sheetkit.models.Workbook`.

    Fields that look numeric but do not follow the strict number grammar
    stay Text; with ``strict_types`` enabled they raise
    :class:`~sheetkit.errors.TypeInferenceError` instead.
    """

    source_format = SourceFormat.CSV

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

        try:
            text = data.decode(self._config.csv_encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            raise ContainerCorruptError(
                f"Cannot decode delimited text as {self._config.csv_encoding}: {exc}"
            ) from exc

        name = self._config.csv_sheet_name
        cells: list[CellData] = []
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self._config.csv_delimiter)
        try:
            for row_idx, record in enumerate(reader, start=1):
                for col_idx, field in enumerate(record, start=1):
                    if field == "":
                        continue
                    cells.append(self._read_field(name, row_idx, col_idx, field))
        except csv.Error as exc:
            raise ContainerCorruptError(
                f"Malformed delimited text near line {reader.line_num}: {exc}"
            ) from exc

        workbook = finalize(
            Workbook(sheets=[SheetMetadata(name=name, index=0)], cells=cells),
            self.source_format,
        )
        self._events.record("parse.sheet", sheet=name, index=0, hidden=False, cells=len(cells), merged_ranges=0)
        self._events.record(
            "parse.complete",
            source_format=self.source_format.value,
            sheets=1,
            cells=len(cells),
            merged_ranges=0,
            duration=round(time.monotonic() - start, 3),
        )
        return workbook

    def _read_field(self, sheet: str, row: int, col: int, field: str) -> CellData:
        try:
            address = codec.encode(row, col, self.source_format)
        except SheetkitError as exc:
            raise CellReadError(sheet, f"R{row}C{col}", str(exc)) from exc
        try:
            data_type, value = infer_csv_cell(field, strict=self._config.strict_types)
        except TypeInferenceError as exc:
            raise TypeInferenceError(
                f"Cannot type cell '{sheet}'!{address}: {exc.message}"
            ) from exc
        try:
            return make_cell(sheet, row, col, data_type, value)
        except ValueError as exc:
            if self._config.log_sample_data:
                logger.debug("sheetkit | unreadable cell '%s'!%s | value=%r", sheet, address, field)
            raise CellReadError(sheet, address, str(exc)) from exc
