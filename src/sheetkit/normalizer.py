"""Canonical string forms for typed cell values.

Every reader funnels resolved values through this module so that the
``value`` string of a cell re-parses to the same typed value on every run:

* numbers use the shortest representation that round-trips a double,
* booleans are ``TRUE`` / ``FALSE``,
* dates and times are naive ISO-8601,
* errors map to one fixed token per error class,
* text and formula text are never touched.

:func:`infer_csv_cell` holds the delimited-text classification heuristics.
"""

from __future__ import annotations

import datetime as dt
import math
import re
import sys

from sheetkit.errors import TypeInferenceError

ERROR_TOKENS: tuple[str, ...] = (
    "#NULL!",
    "#DIV/0!",
    "#VALUE!",
    "#REF!",
    "#NAME?",
    "#NUM!",
    "#N/A",
)

BOOLEAN_TOKENS = {True: "TRUE", False: "FALSE"}

# Doubles represent every integer up to 2**53 exactly.
_EXACT_INT_LIMIT = 2**53

# Spreadsheet applications keep at most 15 significant digits.
_MAX_SIGNIFICANT_DIGITS = 15

_INT_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")
_STRICT_NUMBER_RE = re.compile(
    r"^[+-]?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?$|^[+-]?\.[0-9]+([eE][+-]?[0-9]+)?$"
)
# Anything that a reader might mistake for a number: digits mixed with
# separators, signs, currency and percent marks.
_NUMERIC_LOOKING_RE = re.compile(r"^\s*[+\-$€£(]*\s*[0-9][0-9,.\s]*[%)]?\s*$")
_NON_FINITE = {"nan", "+nan", "-nan", "inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"}


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def normalize_number(value: int | float) -> str:
    """Render a number in canonical form.

    Integers are written verbatim.  Floats holding an exactly representable
    integer drop their fraction; all other floats use ``repr``, which is the
    shortest string that parses back to the same double.

    Raises:
        TypeError: *value* is a bool or not a number.
        ValueError: *value* is NaN or infinite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected a number, got {type(value).__name__}")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"Non-finite number {value!r} has no spreadsheet form")
    if value.is_integer() and abs(value) < _EXACT_INT_LIMIT:
        return str(int(value))
    return repr(value)


def parse_number(text: str) -> int | float:
    """Inverse of :func:`normalize_number`."""
    if _INT_RE.match(text):
        return int(text)
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"Non-finite number {text!r}")
    return number


def is_canonical_number(text: str) -> bool:
    """Return True if *text* is exactly what :func:`normalize_number` emits."""
    try:
        return normalize_number(parse_number(text)) == text
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Booleans
# ---------------------------------------------------------------------------


def normalize_boolean(value: bool) -> str:
    if not isinstance(value, bool):
        raise TypeError(f"Expected a bool, got {type(value).__name__}")
    return BOOLEAN_TOKENS[value]


def parse_boolean(text: str) -> bool:
    if text == "TRUE":
        return True
    if text == "FALSE":
        return False
    raise ValueError(f"Boolean value must be 'TRUE' or 'FALSE', got {text!r}")


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------


def normalize_temporal(value: dt.datetime | dt.date | dt.time) -> str:
    """Render a date, datetime, or time as naive ISO-8601.

    A datetime at exactly midnight is written date-only, matching how
    spreadsheets store plain dates.  Aware values are converted to UTC
    first, then made naive.
    """
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, dt.time):
        if value.tzinfo is not None:
            value = value.replace(tzinfo=None)
        return value.isoformat()
    raise TypeError(f"Expected a date, datetime or time, got {type(value).__name__}")


def parse_temporal(text: str) -> dt.datetime | dt.date | dt.time:
    """Inverse of :func:`normalize_temporal`.

    Raises:
        ValueError: *text* is not a canonical ISO-8601 date, datetime or time.
    """
    if "T" in text:
        parsed: dt.datetime | dt.date | dt.time = dt.datetime.fromisoformat(text)
    elif ":" in text:
        parsed = dt.time.fromisoformat(text)
    else:
        parsed = dt.date.fromisoformat(text)
    if getattr(parsed, "tzinfo", None) is not None or normalize_temporal(parsed) != text:
        raise ValueError(f"Not a canonical ISO-8601 value: {text!r}")
    return parsed


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def normalize_error(token: str) -> str:
    """Map an error literal onto its canonical token (case-insensitive)."""
    candidate = token.strip().upper()
    for known in ERROR_TOKENS:
        if candidate == known:
            return known
    raise ValueError(f"Unknown error token {token!r}")


# ---------------------------------------------------------------------------
# Delimited-text inference
# ---------------------------------------------------------------------------


def infer_csv_cell(field: str, strict: bool = False) -> tuple[str, str]:
    """Classify one delimited-text field as ``Number`` or ``Text``.

    Returns:
        ``(data_type, value)`` where *value* is canonical for the type.

    Raises:
        TypeInferenceError: *strict* is set and the field looks numeric but
            does not follow the strict number grammar (thousands
            separators, padding, leading zeros, currency or percent marks,
            more than 15 significant digits, non-finite values).
    """
    reason = _ambiguity(field)
    if reason is None and _STRICT_NUMBER_RE.match(field):
        return "Number", normalize_number(_coerce(field))
    if reason is None:
        return "Text", field
    if strict:
        raise TypeInferenceError(f"Field {field!r} is ambiguous: {reason}")
    return "Text", field


def _ambiguity(field: str) -> str | None:
    """Return why a numeric-looking field cannot be classified, or None."""
    if field.strip().lower() in _NON_FINITE:
        return "non-finite number"
    if _STRICT_NUMBER_RE.match(field):
        mantissa = re.split(r"[eE]", field)[0]
        digits = mantissa.lstrip("+-").replace(".", "").lstrip("0")
        if len(digits) > _MAX_SIGNIFICANT_DIGITS:
            return f"more than {_MAX_SIGNIFICANT_DIGITS} significant digits"
        if not math.isfinite(float(field)):
            return "number overflows a double"
        if digits and abs(float(field)) < sys.float_info.min:
            return "number underflows a double"
        return None
    if not _NUMERIC_LOOKING_RE.match(field):
        return None
    if field != field.strip():
        return "surrounding whitespace"
    if "," in field:
        return "thousands or decimal comma separator"
    if any(mark in field for mark in "$€£%()"):
        return "currency, percent or accounting marks"
    stripped = field.lstrip("+-")
    if len(stripped) > 1 and stripped.startswith("0") and stripped[1].isdigit():
        return "leading zeros"
    return "not a plain decimal number"


def _coerce(field: str) -> int | float:
    if _INT_RE.match(field.lstrip("+")):
        return int(field.lstrip("+"))
    return float(field)
