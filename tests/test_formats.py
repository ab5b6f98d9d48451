"""Tests for sheetkit.formats -- source detection and content types."""

from __future__ import annotations

import pytest

from sheetkit.formats import SourceFormat, TargetFormat

OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@pytest.mark.unit
class TestSourceFormat:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("report.csv", SourceFormat.CSV),
            ("REPORT.CSV", SourceFormat.CSV),
            ("legacy.xls", SourceFormat.XLS),
            ("book.xlsx", SourceFormat.XLSX),
            ("macro.xlsm", SourceFormat.XLSX),
            ("no_extension", SourceFormat.XLSX),
        ],
    )
    def test_from_filename(self, filename: str, expected: SourceFormat) -> None:
        assert SourceFormat.from_filename(filename) is expected

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"PK\x03\x04rest", SourceFormat.XLSX),
            (OLE2_MAGIC + b"\x00" * 8, SourceFormat.XLS),
            (b"a,b\n1,2\n", SourceFormat.CSV),
            (b"", SourceFormat.CSV),
        ],
    )
    def test_sniff(self, data: bytes, expected: SourceFormat) -> None:
        assert SourceFormat.sniff(data) is expected

    def test_magic(self) -> None:
        assert SourceFormat.XLSX.magic == b"PK\x03\x04"
        assert SourceFormat.XLS.magic == OLE2_MAGIC
        assert SourceFormat.CSV.magic is None

    def test_sniff_agrees_with_magic(self) -> None:
        for fmt in (SourceFormat.XLSX, SourceFormat.XLS):
            assert SourceFormat.sniff(fmt.magic) is fmt


@pytest.mark.unit
class TestTargetFormat:
    def test_content_types(self) -> None:
        assert {fmt.value: fmt.content_type for fmt in TargetFormat} == {
            "json": "application/json",
            "yaml": "application/x-yaml",
            "xml": "application/xml",
            "sql": "text/plain",
        }

    def test_string_values(self) -> None:
        assert TargetFormat("yaml") is TargetFormat.YAML
        with pytest.raises(ValueError):
            TargetFormat("toml")
