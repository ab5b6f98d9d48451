"""Tests for sheetkit.router -- the SheetConverter orchestrator."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from sheetkit.config import SheetkitConfig
from sheetkit.errors import ErrorKind
from sheetkit.events import RecordingEventSink
from sheetkit.formats import SourceFormat, TargetFormat
from sheetkit.models import Workbook
from sheetkit.readers.xlsx import XlsxReader
from sheetkit.router import SheetConverter
from sheetkit.serializers import JsonCodec, YamlCodec, get_serializer

CSV_BYTES = b"Region,Units\nNorth,12\nSouth,7.5\n"


@pytest.fixture()
def converter(events: RecordingEventSink) -> SheetConverter:
    return SheetConverter(events=events)


class TestConvertHappyPath:
    @pytest.mark.parametrize(
        ("target", "content_type"),
        [
            ("json", "application/json"),
            ("yaml", "application/x-yaml"),
            ("xml", "application/xml"),
            ("sql", "text/plain"),
        ],
    )
    def test_csv_to_every_target(self, converter: SheetConverter, target: str, content_type: str) -> None:
        result = converter.convert(CSV_BYTES, "csv", target)

        assert result.ok
        assert result.error is None
        assert result.content_type == content_type
        assert result.output
        assert result.source_format is SourceFormat.CSV
        assert result.target_format is TargetFormat(target)
        assert result.sheet_count == 1
        assert result.cell_count == 6
        assert result.merged_range_count == 0
        assert result.processing_time_seconds >= 0

    def test_xlsx_to_json(self, converter: SheetConverter, make_xlsx) -> None:
        def build(wb):
            ws = wb.create_sheet("Sales")
            ws["A1"] = 100
            ws["B2"] = "Quarterly"
            ws.merge_cells("B2:D4")
            wb.create_sheet("Archive").sheet_state = "hidden"

        result = converter.convert(make_xlsx(build), SourceFormat.XLSX, TargetFormat.JSON)

        assert result.ok
        doc = json.loads(result.output)
        assert doc["sheets"] == [
            {"name": "Sales", "index": 0, "hidden": False},
            {"name": "Archive", "index": 1, "hidden": True},
        ]
        assert doc["merged_ranges"] == [{"sheet": "Sales", "start": "B2", "end": "D4"}]
        assert result.merged_range_count == 1

    def test_config_is_passed_to_readers(self, events: RecordingEventSink) -> None:
        converter = SheetConverter(SheetkitConfig(csv_delimiter=";", csv_sheet_name="Data"), events)
        result = converter.convert(b"a;1\n", "csv", "json")
        doc = json.loads(result.output)
        assert doc["sheets"][0]["name"] == "Data"
        assert [c["value"] for c in doc["cells"]] == ["a", "1"]

    def test_success_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="sheetkit"):
            SheetConverter().convert(CSV_BYTES, "csv", "json")
        assert "sheetkit | convert | source=csv | target=json | sheets=1 | cells=6" in caplog.text

    def test_events_in_order(self, converter: SheetConverter, events: RecordingEventSink) -> None:
        converter.convert(CSV_BYTES, "csv", "json")
        assert events.names() == ["parse.start", "parse.sheet", "parse.complete", "serialize.complete"]

    def test_parser_version_is_recorded(self, events: RecordingEventSink) -> None:
        converter = SheetConverter(SheetkitConfig(parser_version="sheetkit:9.9.9"), events)
        assert converter.convert(CSV_BYTES, "csv", "json").parser_version == "sheetkit:9.9.9"
        assert converter.convert(b"", "csv", "json").parser_version == "sheetkit:9.9.9"

    def test_xlsx_line_separators_to_yaml(self, converter: SheetConverter, make_xlsx) -> None:
        text = "x\x85y\u2028z"

        def build(wb):
            wb.create_sheet("S")["A1"] = text

        result = converter.convert(make_xlsx(build), "xlsx", "yaml")
        assert YamlCodec().deserialize(result.output).cells[0].value == text


class TestConvertFailClosed:
    def test_unreadable_cell(self, converter: SheetConverter, make_xlsx, events: RecordingEventSink) -> None:
        def build(wb):
            ws = wb.create_sheet("Sales")
            ws["A1"] = "#SPILL!"
            ws["A1"].data_type = "e"

        result = converter.convert(make_xlsx(build), "xlsx", "json")

        assert not result.ok
        assert result.output is None
        assert result.content_type is None
        assert result.error.kind is ErrorKind.CELL_READ
        assert "Sales" in result.error.message
        assert "A1" in result.error.message
        assert events.events[-1] == (
            "conversion.failed",
            {"operation": "convert", "kind": "CellReadError", "source_format": "xlsx", "target_format": "json"},
        )

    def test_corrupt_container(self, converter: SheetConverter) -> None:
        result = converter.convert(b"PK\x03\x04 truncated", "xlsx", "yaml")
        assert result.output is None
        assert result.error.kind is ErrorKind.CONTAINER_CORRUPT
        assert result.error.details

    def test_strict_csv(self, events: RecordingEventSink) -> None:
        converter = SheetConverter(SheetkitConfig(strict_types=True), events)
        result = converter.convert(b'amount\n"1,234"\n', "csv", "json")
        assert result.error.kind is ErrorKind.TYPE_INFERENCE
        assert "'Sheet1'!A2" in result.error.message

    def test_unexpected_parser_failure_is_wrapped(self, converter: SheetConverter, make_xlsx) -> None:
        data = make_xlsx(lambda wb: wb.create_sheet("S"))
        with patch.object(XlsxReader, "parse", side_effect=RuntimeError("boom")):
            result = converter.convert(data, "xlsx", "json")
        assert result.error.kind is ErrorKind.CONTAINER_CORRUPT
        assert "boom" in result.error.message
        assert result.error.details == ["RuntimeError: boom"]

    @pytest.mark.parametrize(
        ("source", "target", "message"),
        [
            ("pdf", "json", "Unknown source format 'pdf'"),
            ("csv", "toml", "Unknown target format 'toml'"),
        ],
    )
    def test_unknown_format_hint(
        self, converter: SheetConverter, events: RecordingEventSink, source: str, target: str, message: str
    ) -> None:
        result = converter.convert(CSV_BYTES, source, target)
        assert result.output is None
        assert result.error.kind is ErrorKind.VALIDATION
        assert message in result.error.message
        assert events.events[-1] == (
            "conversion.failed",
            {"operation": "convert", "kind": "ValidationError", "source_format": source, "target_format": target},
        )

    def test_unknown_hint_keeps_the_known_format(self, converter: SheetConverter) -> None:
        result = converter.convert(CSV_BYTES, "pdf", "json")
        assert result.source_format is None
        assert result.target_format is TargetFormat.JSON

    def test_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="sheetkit"):
            SheetConverter().convert(b"", "csv", "json")
        assert "sheetkit | convert | code=ContainerCorruptError" in caplog.text


class TestConvertFile:
    def test_format_from_extension(self, converter: SheetConverter, tmp_path: Path) -> None:
        path = tmp_path / "report.CSV"
        path.write_bytes(CSV_BYTES)
        result = converter.convert_file(str(path), "json")
        assert result.ok
        assert result.source_format is SourceFormat.CSV

    def test_explicit_source_format(self, converter: SheetConverter, tmp_path: Path) -> None:
        path = tmp_path / "export.txt"
        path.write_bytes(CSV_BYTES)
        result = converter.convert_file(str(path), "json", source_format="csv")
        assert result.ok

    def test_extensionless_file_is_sniffed(self, converter: SheetConverter, tmp_path: Path, make_xlsx) -> None:
        path = tmp_path / "download"
        path.write_bytes(make_xlsx(lambda wb: wb.create_sheet("S")))
        result = converter.convert_file(str(path), "json")
        assert result.ok
        assert result.source_format is SourceFormat.XLSX

    def test_extensionless_text_is_csv(self, converter: SheetConverter, tmp_path: Path) -> None:
        path = tmp_path / "export"
        path.write_bytes(CSV_BYTES)
        assert converter.convert_file(str(path), "json").source_format is SourceFormat.CSV

    def test_missing_file(self, converter: SheetConverter, tmp_path: Path, events: RecordingEventSink) -> None:
        result = converter.convert_file(str(tmp_path / "missing.xlsx"), "json")
        assert result.output is None
        assert result.source_format is SourceFormat.XLSX
        assert result.error.kind is ErrorKind.CONTAINER_CORRUPT
        assert result.error.details[0].startswith("FileNotFoundError")
        assert events.names() == ["conversion.failed"]


class TestReconstruct:
    @pytest.mark.parametrize("document_format", ["json", "yaml", "xml", "sql"])
    def test_round_trip_through_every_format(
        self, converter: SheetConverter, scenario_workbook: Workbook, document_format: str
    ) -> None:
        document = get_serializer(document_format).serialize(scenario_workbook)
        result = converter.reconstruct(document, document_format)

        assert result.ok
        assert result.sheet_count == 2
        assert result.cell_count == 2
        assert XlsxReader().parse(result.output) == scenario_workbook

    def test_document_survives_a_full_cycle(self, converter: SheetConverter, typed_workbook: Workbook) -> None:
        document = JsonCodec().serialize(typed_workbook)
        rebuilt = converter.reconstruct(document, "json")
        again = converter.convert(rebuilt.output, "xlsx", "json")
        assert again.output == document

    def test_invalid_document(self, converter: SheetConverter, events: RecordingEventSink) -> None:
        result = converter.reconstruct(b'{"sheets": []}', "json")
        assert result.output is None
        assert result.error.kind is ErrorKind.VALIDATION
        assert events.events[-1][1] == {
            "operation": "reconstruct",
            "kind": "ValidationError",
            "document_format": "json",
        }

    def test_unknown_document_format(self, converter: SheetConverter) -> None:
        result = converter.reconstruct(b"{}", "toml")
        assert result.document_format is None
        assert result.error.kind is ErrorKind.VALIDATION
        assert "Unknown document format 'toml'" in result.error.message

    def test_lone_surrogate_document(self, converter: SheetConverter) -> None:
        document = (
            b'{"sheets": [{"name": "S", "index": 0, "hidden": false}], "cells": [{"sheet": "S",'
            b' "address": "A1", "row": 1, "col": 1, "data_type": "Text", "value": "\\ud800"}],'
            b' "merged_ranges": []}'
        )
        result = converter.reconstruct(document, "json")
        assert result.error.kind is ErrorKind.VALIDATION
        assert "lone surrogate" in result.error.message

    def test_unbuildable_workbook(self, converter: SheetConverter) -> None:
        document = b'{"sheets": [{"name": "A", "index": 0, "hidden": true}], "cells": [], "merged_ranges": []}'
        result = converter.reconstruct(document, "json")
        assert result.error.kind is ErrorKind.RECONSTRUCTION

    def test_unexpected_engine_failure_is_wrapped(
        self, converter: SheetConverter, scenario_workbook: Workbook
    ) -> None:
        document = JsonCodec().serialize(scenario_workbook)
        with patch.object(converter._engine, "reconstruct", side_effect=KeyError("part")):
            result = converter.reconstruct(document, "json")
        assert result.error.kind is ErrorKind.RECONSTRUCTION


class TestAsync:
    @pytest.mark.asyncio
    async def test_aconvert(self, converter: SheetConverter) -> None:
        result = await converter.aconvert(CSV_BYTES, "csv", "xml")
        assert result.ok
        assert result.output.startswith(b"<?xml")

    @pytest.mark.asyncio
    async def test_aconvert_failure(self, converter: SheetConverter) -> None:
        result = await converter.aconvert(b"", "xls", "json")
        assert result.error.kind is ErrorKind.CONTAINER_CORRUPT

    @pytest.mark.asyncio
    async def test_areconstruct(self, converter: SheetConverter, scenario_workbook: Workbook) -> None:
        result = await converter.areconstruct(JsonCodec().serialize(scenario_workbook), "json")
        assert result.ok
        assert XlsxReader().parse(result.output) == scenario_workbook
