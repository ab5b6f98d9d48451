"""Rebuild an ``.xlsx`` container from a canonical workbook.

openpyxl writes the structure (sheet order, visibility, typed values,
formulas, merges).  It cannot store the cached result of a formula and
formats numbers with 16 significant digits, so a second pass patches the
worksheet parts inside the zip: formula cells get their cached ``<v>`` and
number cells get their exact canonical text.  Every other part is copied
byte-for-byte.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
import zipfile
from io import BytesIO
from xml.etree import ElementTree as ET

import openpyxl
from openpyxl.utils.exceptions import IllegalCharacterError

from sheetkit.errors import ReconstructionError
from sheetkit.events import LoggingEventSink
from sheetkit.models import (
    BooleanCell,
    CellData,
    DateCell,
    ErrorCell,
    FormulaResultCell,
    NumberCell,
    TextCell,
    Workbook,
)
from sheetkit.normalizer import (
    ERROR_TOKENS,
    is_canonical_number,
    parse_boolean,
    parse_number,
    parse_temporal,
)
from sheetkit.protocols import EventSink
from sheetkit.validation import cells_under_merges, find_violations

logger = logging.getLogger("sheetkit")

NS = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
}

# ElementTree renames unregistered namespaces to ns0, ns1, ...
ET.register_namespace("", NS["main"])
ET.register_namespace("r", NS["r"])


class ReconstructionEngine:
    """Turn a :class:`~sheetkit.models.Workbook` into ``.xlsx`` bytes."""

    def __init__(self, events: EventSink | None = None) -> None:
        self._events = events or LoggingEventSink()

    def reconstruct(self, workbook: Workbook) -> bytes:
        """Write *workbook* as an ``.xlsx`` container.

        Raises:
            ReconstructionError: The workbook breaks an invariant or holds
                something the container cannot represent.
        """
        start = time.monotonic()
        self._check(workbook)

        try:
            book = self._build(workbook)
            buffer = BytesIO()
            book.save(buffer)
        except (ValueError, TypeError, IllegalCharacterError) as exc:
            raise ReconstructionError(f"Cannot store workbook content: {exc}") from exc

        output = _patch_cached_values(buffer.getvalue(), _value_patches(workbook))
        self._events.record(
            "reconstruct.complete",
            sheets=len(workbook.sheets),
            cells=len(workbook.cells),
            merged_ranges=len(workbook.merged_ranges),
            size_bytes=len(output),
            duration=round(time.monotonic() - start, 3),
        )
        return output

    def _check(self, workbook: Workbook) -> None:
        violations = find_violations(workbook)
        if violations:
            raise ReconstructionError(
                f"Workbook violates invariants: {violations[0]}", details=violations
            )
        if not workbook.sheets:
            raise ReconstructionError("Workbook has no sheets")
        if all(sheet.hidden for sheet in workbook.sheets):
            raise ReconstructionError("Every sheet is hidden; at least one must be visible")
        for cell in workbook.cells:
            if isinstance(cell, FormulaResultCell) and (
                not cell.formula.startswith("=") or len(cell.formula) < 2
            ):
                raise ReconstructionError(
                    f"Formula in '{cell.sheet}'!{cell.address} must start with '=' "
                    f"and have a body, got {cell.formula!r}"
                )
        hidden = cells_under_merges(workbook)
        if hidden:
            raise ReconstructionError(
                f"Cell {hidden[0]} holds a value inside a merged range", details=hidden
            )

    def _build(self, workbook: Workbook) -> openpyxl.Workbook:
        book = openpyxl.Workbook()
        book.remove(book.active)

        for sheet in workbook.sheets:
            ws = book.create_sheet(title=sheet.name)
            if ws.title != sheet.name:
                raise ReconstructionError(
                    f"Sheet name {sheet.name!r} cannot be stored (became {ws.title!r})"
                )
            if sheet.hidden:
                ws.sheet_state = "hidden"

        for cell in workbook.cells:
            _write_cell(book[cell.sheet], cell)

        for sheet in workbook.sheets:
            ws = book[sheet.name]
            for merge in workbook.merges_for(sheet.name):
                ws.merge_cells(merge.ref)

        book.active = next(i for i, sheet in enumerate(workbook.sheets) if not sheet.hidden)
        return book


def _write_cell(ws, cell: CellData) -> None:
    target = ws.cell(row=cell.row, column=cell.col)
    if isinstance(cell, TextCell):
        target.value = cell.value
        # Keeps "=..." and "#N/A"-looking text from turning into formulas or errors.
        target.data_type = "s"
    elif isinstance(cell, NumberCell):
        target.value = parse_number(cell.value)
    elif isinstance(cell, BooleanCell):
        target.value = parse_boolean(cell.value)
    elif isinstance(cell, DateCell):
        moment = parse_temporal(cell.value)
        target.value = moment
        if isinstance(moment, dt.time):
            target.number_format = "hh:mm:ss"
    elif isinstance(cell, ErrorCell):
        target.value = cell.value
        target.data_type = "e"
    elif isinstance(cell, FormulaResultCell):
        target.value = cell.formula
        target.data_type = "f"


def _value_patches(workbook: Workbook) -> dict[str, dict[str, tuple[str | None, str]]]:
    """Per sheet, map addresses to the ``(t attribute, <v> text)`` to write."""
    patches: dict[str, dict[str, tuple[str | None, str]]] = {}
    for cell in workbook.cells:
        if isinstance(cell, NumberCell):
            patches.setdefault(cell.sheet, {})[cell.address] = (None, cell.value)
        elif isinstance(cell, FormulaResultCell) and cell.value != "":
            patches.setdefault(cell.sheet, {})[cell.address] = _cached_value(cell.value)
    return patches


def _cached_value(value: str) -> tuple[str | None, str]:
    if is_canonical_number(value):
        return None, value
    if value in ("TRUE", "FALSE"):
        return "b", "1" if value == "TRUE" else "0"
    if value in ERROR_TOKENS:
        return "e", value
    return "str", value


def _sheet_part_paths(zf: zipfile.ZipFile) -> dict[str, str]:
    """Map sheet names to worksheet part paths via the workbook relationships."""
    workbook_root = ET.fromstring(zf.read("xl/workbook.xml"))
    rels_root = ET.fromstring(zf.read("xl/_rels/workbook.xml.rels"))

    targets = {
        rel.get("Id"): rel.get("Target", "")
        for rel in rels_root.findall(f"{{{NS['rel']}}}Relationship")
    }
    paths: dict[str, str] = {}
    for sheet in workbook_root.iter(f"{{{NS['main']}}}sheet"):
        target = targets.get(sheet.get(f"{{{NS['r']}}}id"), "")
        paths[sheet.get("name")] = target[1:] if target.startswith("/") else f"xl/{target}"
    return paths


def _patch_sheet(xml_bytes: bytes, patches: dict[str, tuple[str | None, str]]) -> bytes:
    root = ET.fromstring(xml_bytes)
    main = NS["main"]
    remaining = dict(patches)
    for cell_el in root.iter(f"{{{main}}}c"):
        ref = cell_el.get("r")
        if ref not in remaining:
            continue
        kind, text = remaining.pop(ref)
        if kind is None:
            cell_el.attrib.pop("t", None)
        else:
            cell_el.set("t", kind)
        v_el = cell_el.find(f"{{{main}}}v")
        if v_el is None:
            v_el = ET.SubElement(cell_el, f"{{{main}}}v")
        v_el.text = text
    if remaining:
        raise ReconstructionError(
            f"Cells missing from written worksheet: {', '.join(sorted(remaining))}"
        )
    return ET.tostring(root, encoding="UTF-8", xml_declaration=True)


def _patch_cached_values(
    data: bytes, patches: dict[str, dict[str, tuple[str | None, str]]]
) -> bytes:
    if not patches:
        return data
    with zipfile.ZipFile(BytesIO(data)) as zin:
        part_paths = _sheet_part_paths(zin)
        replaced = {
            part_paths[sheet]: _patch_sheet(zin.read(part_paths[sheet]), sheet_patches)
            for sheet, sheet_patches in patches.items()
        }
        out = BytesIO()
        with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as zout:
            for item in zin.infolist():
                zout.writestr(item, replaced.get(item.filename, zin.read(item.filename)))
    logger.debug("sheetkit | patched cached values | parts=%d", len(replaced))
    return out.getvalue()
