"""Format readers: container bytes in, canonical :class:`Workbook` out."""

from __future__ import annotations

from sheetkit.config import SheetkitConfig
from sheetkit.formats import SourceFormat
from sheetkit.protocols import EventSink, FormatReader
from sheetkit.readers.delimited import CsvReader
from sheetkit.readers.xls import XlsReader
from sheetkit.readers.xlsx import XlsxReader

_READERS: dict[SourceFormat, type] = {
    SourceFormat.XLSX: XlsxReader,
    SourceFormat.XLS: XlsReader,
    SourceFormat.CSV: CsvReader,
}


def get_reader(
    source_format: SourceFormat | str,
    config: SheetkitConfig | None = None,
    events: EventSink | None = None,
) -> FormatReader:
    """Return the reader for *source_format*."""
    return _READERS[SourceFormat(source_format)](config=config, events=events)


__all__ = ["CsvReader", "XlsReader", "XlsxReader", "get_reader"]
