"""Cell-reference codec.

Converts 1-based ``(row, col)`` pairs to and from letter-then-digit notation
(``"B2"``).  Columns use bijective base-26: there is no zero digit, so
``1 -> "A"``, ``26 -> "Z"``, ``27 -> "AA"``.  Every operation is bounded by
the grid of a :class:`~sheetkit.formats.SourceFormat`.
"""

from __future__ import annotations

import re

from sheetkit.errors import AddressFormatError, AddressRangeError
from sheetkit.formats import SourceFormat

# (max_rows, max_cols) per container kind.  Delimited text is imported
# into the modern grid.
GRID_LIMITS: dict[SourceFormat, tuple[int, int]] = {
    SourceFormat.XLSX: (1_048_576, 16_384),
    SourceFormat.XLS: (65_536, 256),
    SourceFormat.CSV: (1_048_576, 16_384),
}

_ADDRESS_RE = re.compile(r"^([A-Z]+)([1-9][0-9]*)$")
_SPLIT_RE = re.compile(r"^([A-Za-z]*)([0-9]*)$")


def check_bounds(
    row: int, col: int, source_format: SourceFormat = SourceFormat.XLSX
) -> None:
    """Raise :class:`AddressRangeError` if ``(row, col)`` is off the grid."""
    max_rows, max_cols = GRID_LIMITS[source_format]
    if not 1 <= row <= max_rows:
        raise AddressRangeError(
            f"Row {row} outside 1..{max_rows} for {source_format.value}"
        )
    if not 1 <= col <= max_cols:
        raise AddressRangeError(
            f"Column {col} outside 1..{max_cols} for {source_format.value}"
        )


def column_letter(col: int) -> str:
    """Convert a 1-based column number to letters. 1=A, 26=Z, 27=AA."""
    if col < 1:
        raise AddressRangeError(f"Column {col} must be >= 1")
    letters = ""
    while col > 0:
        col, rem = divmod(col - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def column_index(letters: str) -> int:
    """Convert upper-case column letters to a 1-based column number."""
    if not letters or not letters.isascii() or not letters.isupper() or not letters.isalpha():
        raise AddressFormatError(f"Invalid column letters: {letters!r}")
    result = 0
    for char in letters:
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result


def encode(row: int, col: int, source_format: SourceFormat = SourceFormat.XLSX) -> str:
    """Encode a bounded ``(row, col)`` pair as a cell reference."""
    check_bounds(row, col, source_format)
    return f"{column_letter(col)}{row}"


def decode(address: str, source_format: SourceFormat = SourceFormat.XLSX) -> tuple[int, int]:
    """Decode a cell reference into ``(row, col)``.

    Raises:
        AddressFormatError: The reference is not ``LETTERS`` followed by a
            row number without leading zeros.
        AddressRangeError: The decoded pair is outside the grid.
    """
    if not isinstance(address, str):
        raise AddressFormatError(f"Cell reference must be a string, got {type(address).__name__}")
    match = _ADDRESS_RE.match(address)
    if match is None:
        raise AddressFormatError(_describe_malformed(address))
    col = column_index(match.group(1))
    row = int(match.group(2))
    check_bounds(row, col, source_format)
    return row, col


def decode_range(
    ref: str, source_format: SourceFormat = SourceFormat.XLSX
) -> tuple[tuple[int, int], tuple[int, int]]:
    """Decode ``"B2:D4"`` into its two corners.  A bare ``"B2"`` is a 1x1 range."""
    parts = ref.split(":")
    if len(parts) == 1:
        corner = decode(parts[0], source_format)
        return corner, corner
    if len(parts) != 2:
        raise AddressFormatError(f"Invalid range reference: {ref!r}")
    return decode(parts[0], source_format), decode(parts[1], source_format)


def _describe_malformed(address: str) -> str:
    split = _SPLIT_RE.match(address)
    if split is None:
        return f"Invalid cell reference {address!r}: expected letters followed by digits"
    letters, digits = split.groups()
    if not letters:
        return f"Invalid cell reference {address!r}: missing column letters"
    if not digits:
        return f"Invalid cell reference {address!r}: missing row number"
    if letters != letters.upper():
        return f"Invalid cell reference {address!r}: column letters must be upper case"
    return f"Invalid cell reference {address!r}: row number has a leading zero"
