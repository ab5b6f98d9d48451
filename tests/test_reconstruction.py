"""Tests for sheetkit.reconstruction -- rebuilding .xlsx containers."""

from __future__ import annotations

import zipfile
from io import BytesIO

import openpyxl
import pytest

from sheetkit.errors import ReconstructionError
from sheetkit.models import DataType, MergedRange, SheetMetadata, Workbook, make_cell
from sheetkit.readers.xlsx import XlsxReader
from sheetkit.reconstruction import ReconstructionEngine, _cached_value


def _one_sheet(*cells, merges=(), name: str = "S") -> Workbook:
    return Workbook(
        sheets=[SheetMetadata(name=name, index=0)],
        cells=list(cells),
        merged_ranges=list(merges),
    )


@pytest.mark.unit
class TestCachedValue:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("200", (None, "200")),
            ("0.1", (None, "0.1")),
            ("TRUE", ("b", "1")),
            ("FALSE", ("b", "0")),
            ("#REF!", ("e", "#REF!")),
            ("hello", ("str", "hello")),
            ("007", ("str", "007")),
            ("2024-01-15", ("str", "2024-01-15")),
        ],
    )
    def test_inferred_kind(self, value: str, expected) -> None:
        assert _cached_value(value) == expected


@pytest.mark.integration
class TestRoundTrip:
    def test_scenario(self, scenario_workbook: Workbook) -> None:
        data = ReconstructionEngine().reconstruct(scenario_workbook)
        assert XlsxReader().parse(data) == scenario_workbook

    def test_scenario_as_seen_by_openpyxl(self, scenario_workbook: Workbook) -> None:
        data = ReconstructionEngine().reconstruct(scenario_workbook)
        formulas = openpyxl.load_workbook(BytesIO(data))
        values = openpyxl.load_workbook(BytesIO(data), data_only=True)

        assert formulas.sheetnames == ["Sales", "Archive"]
        assert formulas["Archive"].sheet_state == "hidden"
        assert formulas["Sales"]["B1"].value == "=A1*2"
        assert values["Sales"]["B1"].value == 200
        assert [str(r) for r in formulas["Sales"].merged_cells.ranges] == ["B2:D4"]

    def test_typed(self, typed_workbook: Workbook) -> None:
        data = ReconstructionEngine().reconstruct(typed_workbook)
        assert XlsxReader().parse(data) == typed_workbook

    def test_number_text_is_exact(self) -> None:
        values = ["0.1", "123456789.123456", "1e-07", "-0.5", "9007199254740993", "1.7976931348623157e+308"]
        wb = _one_sheet(
            *(make_cell("S", row, 1, DataType.NUMBER, v) for row, v in enumerate(values, start=1))
        )
        restored = XlsxReader().parse(ReconstructionEngine().reconstruct(wb))
        assert [c.value for c in restored.cells] == values

    def test_cached_value_kinds(self) -> None:
        wb = _one_sheet(
            make_cell("S", 1, 1, DataType.FORMULA_RESULT, "TRUE", formula="=1=1"),
            make_cell("S", 1, 2, DataType.FORMULA_RESULT, "#DIV/0!", formula="=1/0"),
            make_cell("S", 1, 3, DataType.FORMULA_RESULT, "2.5", formula="=5/2"),
            make_cell("S", 1, 4, DataType.FORMULA_RESULT, "", formula="=NOW()"),
        )
        restored = XlsxReader().parse(ReconstructionEngine().reconstruct(wb))
        assert restored == wb

    def test_time_of_day(self) -> None:
        wb = _one_sheet(make_cell("S", 1, 1, DataType.DATE, "10:30:00"))
        assert XlsxReader().parse(ReconstructionEngine().reconstruct(wb)) == wb

    def test_text_that_looks_like_other_types(self) -> None:
        wb = _one_sheet(
            make_cell("S", 1, 1, DataType.TEXT, "=SUM(A2:A3)"),
            make_cell("S", 1, 2, DataType.TEXT, "#N/A"),
            make_cell("S", 1, 3, DataType.TEXT, "42"),
            make_cell("S", 1, 4, DataType.TEXT, "TRUE"),
        )
        restored = XlsxReader().parse(ReconstructionEngine().reconstruct(wb))
        assert restored == wb

    def test_first_visible_sheet_is_active(self) -> None:
        wb = Workbook(
            sheets=[
                SheetMetadata(name="Hidden", index=0, hidden=True),
                SheetMetadata(name="Shown", index=1),
            ]
        )
        book = openpyxl.load_workbook(BytesIO(ReconstructionEngine().reconstruct(wb)))
        assert book.active.title == "Shown"

    def test_untouched_parts_copied(self, scenario_workbook: Workbook) -> None:
        data = ReconstructionEngine().reconstruct(scenario_workbook)
        with zipfile.ZipFile(BytesIO(data)) as zf:
            assert zf.testzip() is None
            assert "xl/workbook.xml" in zf.namelist()

    def test_events(self, events, scenario_workbook: Workbook) -> None:
        ReconstructionEngine(events).reconstruct(scenario_workbook)
        assert events.names() == ["reconstruct.complete"]
        assert events.events[0][1]["sheets"] == 2


@pytest.mark.unit
class TestReconstructionErrors:
    def test_no_sheets(self) -> None:
        with pytest.raises(ReconstructionError, match="no sheets"):
            ReconstructionEngine().reconstruct(Workbook())

    def test_all_hidden(self) -> None:
        wb = Workbook(sheets=[SheetMetadata(name="A", index=0, hidden=True)])
        with pytest.raises(ReconstructionError, match="at least one must be visible"):
            ReconstructionEngine().reconstruct(wb)

    def test_invariant_violation(self) -> None:
        wb = Workbook(
            sheets=[SheetMetadata(name="A", index=0)],
            cells=[make_cell("B", 1, 1, DataType.TEXT, "orphan")],
        )
        with pytest.raises(ReconstructionError, match="unknown sheet 'B'") as excinfo:
            ReconstructionEngine().reconstruct(wb)
        assert excinfo.value.details

    @pytest.mark.parametrize("formula", ["=", "SUM(A1:A2)"])
    def test_malformed_formula(self, formula: str) -> None:
        wb = _one_sheet(make_cell("S", 1, 1, DataType.FORMULA_RESULT, "1", formula=formula))
        with pytest.raises(ReconstructionError, match="must start with '='"):
            ReconstructionEngine().reconstruct(wb)

    def test_value_under_merge(self) -> None:
        wb = _one_sheet(
            make_cell("S", 3, 3, DataType.TEXT, "covered"),
            merges=[MergedRange(sheet="S", start="B2", end="D4")],
        )
        with pytest.raises(ReconstructionError, match="inside a merged range"):
            ReconstructionEngine().reconstruct(wb)

    def test_unstorable_sheet_name(self) -> None:
        wb = _one_sheet(name="Q1/Q2")
        with pytest.raises(ReconstructionError):
            ReconstructionEngine().reconstruct(wb)

    def test_control_characters(self) -> None:
        wb = _one_sheet(make_cell("S", 1, 1, DataType.TEXT, "bell\x07"))
        with pytest.raises(ReconstructionError, match="Cannot store"):
            ReconstructionEngine().reconstruct(wb)
