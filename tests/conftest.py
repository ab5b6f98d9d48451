"""Shared test fixtures for sheetkit tests.

Provides a default config, a recording event sink, the canonical
"Sales / Archive" workbook, and factories that build real ``.xlsx`` bytes
with openpyxl.
"""

from __future__ import annotations

from io import BytesIO
from typing import Callable

import openpyxl
import pytest

from sheetkit.config import SheetkitConfig
from sheetkit.events import RecordingEventSink
from sheetkit.models import DataType, MergedRange, SheetMetadata, Workbook, make_cell


@pytest.fixture()
def default_config() -> SheetkitConfig:
    """Return a SheetkitConfig with all defaults."""
    return SheetkitConfig()


@pytest.fixture()
def events() -> RecordingEventSink:
    """Return an in-memory event sink."""
    return RecordingEventSink()


def build_scenario_workbook() -> Workbook:
    """Sales (visible) with a number, a formula and a merge; Archive hidden and empty."""
    return Workbook(
        sheets=[
            SheetMetadata(name="Sales", index=0, hidden=False),
            SheetMetadata(name="Archive", index=1, hidden=True),
        ],
        cells=[
            make_cell("Sales", 1, 1, DataType.NUMBER, "100"),
            make_cell("Sales", 1, 2, DataType.FORMULA_RESULT, "200", formula="=A1*2"),
        ],
        merged_ranges=[MergedRange(sheet="Sales", start="B2", end="D4")],
    )


def build_typed_workbook() -> Workbook:
    """One sheet covering every cell variant."""
    return Workbook(
        sheets=[SheetMetadata(name="Types", index=0)],
        cells=[
            make_cell("Types", 1, 1, DataType.TEXT, "hello world"),
            make_cell("Types", 1, 2, DataType.NUMBER, "3.14159265358979"),
            make_cell("Types", 1, 3, DataType.BOOLEAN, "TRUE"),
            make_cell("Types", 1, 4, DataType.DATE, "2024-01-15"),
            make_cell("Types", 1, 5, DataType.ERROR, "#DIV/0!"),
            make_cell("Types", 2, 1, DataType.FORMULA_RESULT, "hello", formula='=LOWER("HELLO")'),
            make_cell("Types", 2, 2, DataType.BOOLEAN, "FALSE"),
            make_cell("Types", 2, 3, DataType.DATE, "2024-01-15T13:45:30"),
            make_cell("Types", 2, 4, DataType.NUMBER, "-42"),
            make_cell("Types", 2, 5, DataType.TEXT, "=not a formula"),
        ],
    )


@pytest.fixture()
def scenario_workbook() -> Workbook:
    return build_scenario_workbook()


@pytest.fixture()
def typed_workbook() -> Workbook:
    return build_typed_workbook()


@pytest.fixture()
def make_xlsx() -> Callable[[Callable[[openpyxl.Workbook], None]], bytes]:
    """Factory: populate a fresh openpyxl workbook and return its bytes.

    The builder receives a workbook whose default sheet has been removed.
    """

    def _make(build: Callable[[openpyxl.Workbook], None]) -> bytes:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        build(wb)
        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    return _make
