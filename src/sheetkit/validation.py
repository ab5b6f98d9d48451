"""Cross-entity workbook invariants.

:func:`find_violations` lists every broken invariant as a readable reason.
Deserializers turn a non-empty list into a ``ValidationError``; the
reconstruction engine turns it into a ``ReconstructionError``.  Neither
repairs anything.
"""

from __future__ import annotations

from collections import defaultdict

from sheetkit.address import GRID_LIMITS
from sheetkit.formats import SourceFormat
from sheetkit.models import MergedRange, Workbook


def find_violations(
    workbook: Workbook, source_format: SourceFormat = SourceFormat.XLSX
) -> list[str]:
    """Return a description of every invariant *workbook* violates."""
    violations: list[str] = []
    violations.extend(_check_sheets(workbook))
    known = set(workbook.sheet_names())
    violations.extend(_check_cells(workbook, known, source_format))
    violations.extend(_check_merges(workbook, known, source_format))
    return violations


def _check_sheets(workbook: Workbook) -> list[str]:
    violations: list[str] = []
    for position, sheet in enumerate(workbook.sheets):
        if sheet.index != position:
            violations.append(
                f"Sheet '{sheet.name}' has index {sheet.index} but is declared at position {position}"
            )
    seen: set[str] = set()
    for sheet in workbook.sheets:
        if sheet.name in seen:
            violations.append(f"Duplicate sheet name '{sheet.name}'")
        seen.add(sheet.name)
    return violations


def _check_cells(
    workbook: Workbook, known: set[str], source_format: SourceFormat
) -> list[str]:
    violations: list[str] = []
    max_rows, max_cols = GRID_LIMITS[source_format]
    seen: set[tuple[str, int, int]] = set()
    for cell in workbook.cells:
        if cell.sheet not in known:
            violations.append(f"Cell {cell.address} references unknown sheet '{cell.sheet}'")
        if cell.row > max_rows or cell.col > max_cols:
            violations.append(
                f"Cell '{cell.sheet}'!{cell.address} lies outside the "
                f"{max_rows}x{max_cols} grid"
            )
        if cell.key in seen:
            violations.append(f"Duplicate cell '{cell.sheet}'!{cell.address}")
        seen.add(cell.key)
    return violations


def _check_merges(
    workbook: Workbook, known: set[str], source_format: SourceFormat
) -> list[str]:
    violations: list[str] = []
    max_rows, max_cols = GRID_LIMITS[source_format]
    by_sheet: dict[str, list[MergedRange]] = defaultdict(list)
    for merge in workbook.merged_ranges:
        if merge.sheet not in known:
            violations.append(f"Merged range {merge.ref} references unknown sheet '{merge.sheet}'")
        _min_row, _min_col, end_row, end_col = merge.bounds()
        if end_row > max_rows or end_col > max_cols:
            violations.append(
                f"Merged range '{merge.sheet}'!{merge.ref} lies outside the "
                f"{max_rows}x{max_cols} grid"
            )
        by_sheet[merge.sheet].append(merge)

    for sheet, merges in by_sheet.items():
        ordered = sorted(merges, key=lambda m: m.bounds())
        for i, first in enumerate(ordered):
            top, left, bottom, right = first.bounds()
            for second in ordered[i + 1 :]:
                other_top, other_left, other_bottom, other_right = second.bounds()
                if other_top > bottom:
                    break
                if other_left <= right and left <= other_right:
                    violations.append(
                        f"Merged ranges {first.ref} and {second.ref} overlap on sheet '{sheet}'"
                    )
    return violations


def cells_under_merges(workbook: Workbook) -> list[str]:
    """Return ``'Sheet'!A1`` labels of cells hidden inside a merge (not its anchor)."""
    hidden: list[str] = []
    for merge in workbook.merged_ranges:
        top, left, bottom, right = merge.bounds()
        for cell in workbook.cells_for(merge.sheet):
            if (cell.row, cell.col) == (top, left):
                continue
            if top <= cell.row <= bottom and left <= cell.col <= right:
                hidden.append(f"'{cell.sheet}'!{cell.address}")
    return hidden
