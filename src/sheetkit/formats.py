"""Source and target format enumerations."""

from __future__ import annotations

from enum import Enum

_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ZIP_MAGIC = b"PK\x03\x04"


class SourceFormat(str, Enum):
    """Container kinds a workbook can be read from."""

    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"

    @classmethod
    def from_filename(cls, filename: str) -> SourceFormat:
        """Pick a source format from a file name.

        ``.csv`` maps to CSV and ``.xls`` to the legacy container; every
        other name is treated as a modern workbook.
        """
        lowered = filename.lower()
        if lowered.endswith(".csv"):
            return cls.CSV
        if lowered.endswith(".xls"):
            return cls.XLS
        return cls.XLSX

    @classmethod
    def sniff(cls, data: bytes) -> SourceFormat:
        """Guess the source format from leading magic bytes."""
        if data.startswith(_ZIP_MAGIC):
            return cls.XLSX
        if data.startswith(_OLE2_MAGIC):
            return cls.XLS
        return cls.CSV

    @property
    def magic(self) -> bytes | None:
        """Magic bytes every container of this kind starts with, if any."""
        if self is SourceFormat.XLSX:
            return _ZIP_MAGIC
        if self is SourceFormat.XLS:
            return _OLE2_MAGIC
        return None


class TargetFormat(str, Enum):
    """Interchange formats a workbook can be serialized to."""

    JSON = "json"
    YAML = "yaml"
    XML = "xml"
    SQL = "sql"

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self]


_CONTENT_TYPES = {
    TargetFormat.JSON: "application/json",
    TargetFormat.YAML: "application/x-yaml",
    TargetFormat.XML: "application/xml",
    TargetFormat.SQL: "text/plain",
}
