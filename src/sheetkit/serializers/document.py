"""The plain-data document tree shared by every interchange format.

``to_document`` flattens a workbook into dicts and lists with a fixed key
order; ``from_document`` validates such a tree back into a
:class:`~sheetkit.models.Workbook`, running the cross-entity invariant
checks.  Every failure on the way back in is a
:class:`~sheetkit.errors.ValidationError`.
"""

from __future__ import annotations

from typing import Any

import pydantic

from sheetkit.errors import ValidationError
from sheetkit.models import Workbook, formula_of
from sheetkit.validation import find_violations

DOCUMENT_KEYS = ("sheets", "cells", "merged_ranges")


def to_document(workbook: Workbook) -> dict[str, Any]:
    """Return the canonical, deterministically ordered document tree."""
    cells = []
    for cell in workbook.sorted_cells():
        entry: dict[str, Any] = {
            "sheet": cell.sheet,
            "address": cell.address,
            "row": cell.row,
            "col": cell.col,
            "data_type": cell.data_type,
            "value": cell.value,
        }
        formula = formula_of(cell)
        if formula is not None:
            entry["formula"] = formula
        cells.append(entry)

    return {
        "sheets": [
            {"name": sheet.name, "index": sheet.index, "hidden": sheet.hidden}
            for sheet in workbook.sheets
        ],
        "cells": cells,
        "merged_ranges": [
            {"sheet": merge.sheet, "start": merge.start, "end": merge.end}
            for merge in workbook.sorted_merges()
        ],
    }


def from_document(document: Any) -> Workbook:
    """Validate a parsed document tree into a workbook.

    Raises:
        ValidationError: The tree has the wrong shape, a field is invalid,
            or the workbook breaks a cross-entity invariant.
    """
    if not isinstance(document, dict):
        raise ValidationError(
            f"Document root must be a mapping, got {type(document).__name__}"
        )
    missing = [key for key in DOCUMENT_KEYS if key not in document]
    if missing:
        raise ValidationError(f"Document is missing required keys: {', '.join(missing)}")
    extra = sorted(str(key) for key in document if key not in DOCUMENT_KEYS)
    if extra:
        raise ValidationError(f"Document has unknown keys: {', '.join(extra)}")

    try:
        workbook = Workbook.model_validate(document)
    except pydantic.ValidationError as exc:
        details = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        raise ValidationError(
            f"Document does not match the workbook schema: {details[0]}",
            details=details,
        ) from exc

    violations = find_violations(workbook)
    if violations:
        raise ValidationError(
            f"Document violates workbook invariants: {violations[0]}",
            details=violations,
        )
    return workbook
