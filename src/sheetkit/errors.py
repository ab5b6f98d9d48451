"""Error kinds, structured error record, and exception taxonomy for sheetkit.

``ErrorKind`` names every failure class a conversion can report.  Each
exception carries its kind and can be flattened into an ``ErrorRecord`` --
the ``{kind, message, details}`` shape returned to callers by
:class:`~sheetkit.router.SheetConverter`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Stable error kinds.

    Values are the public taxonomy names so they can be matched on by
    callers and used as metric labels without translation.
    """

    CONTAINER_CORRUPT = "ContainerCorruptError"
    UNSUPPORTED_CONSTRUCT = "UnsupportedConstructError"
    CELL_READ = "CellReadError"
    ADDRESS_FORMAT = "AddressFormatError"
    ADDRESS_RANGE = "AddressRangeError"
    TYPE_INFERENCE = "TypeInferenceError"
    VALIDATION = "ValidationError"
    RECONSTRUCTION = "ReconstructionError"


class ErrorRecord(BaseModel):
    """Structured error handed back to the caller.

    ``details`` carries auxiliary diagnostics, most importantly the chain
    of nested causes, outermost first.
    """

    kind: ErrorKind
    message: str
    details: list[str] = []


class SheetkitError(Exception):
    """Base class for every error raised by sheetkit."""

    kind: ErrorKind

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def to_record(self) -> ErrorRecord:
        """Flatten this error and its cause chain into an ``ErrorRecord``."""
        details = list(self.details)
        cause = self.__cause__
        while cause is not None:
            details.append(f"{type(cause).__name__}: {cause}")
            cause = cause.__cause__
        return ErrorRecord(kind=self.kind, message=self.message, details=details)


class ContainerCorruptError(SheetkitError):
    """The source byte stream is unreadable or malformed."""

    kind = ErrorKind.CONTAINER_CORRUPT


class UnsupportedConstructError(SheetkitError):
    """The source uses a feature outside the canonical model."""

    kind = ErrorKind.UNSUPPORTED_CONSTRUCT


class CellReadError(SheetkitError):
    """A single cell could not be typed or decoded.

    Aborts the whole parse; the message always names the sheet and address.
    """

    kind = ErrorKind.CELL_READ

    def __init__(self, sheet: str, address: str, cause: str) -> None:
        super().__init__(f"Cannot read cell '{sheet}'!{address}: {cause}")
        self.sheet = sheet
        self.address = address
        self.cause = cause


class AddressFormatError(SheetkitError):
    """A cell reference is not valid letter-then-digit notation."""

    kind = ErrorKind.ADDRESS_FORMAT


class AddressRangeError(SheetkitError):
    """A row/column pair lies outside the format's grid."""

    kind = ErrorKind.ADDRESS_RANGE


class TypeInferenceError(SheetkitError):
    """A delimited-text field could not be classified in strict mode."""

    kind = ErrorKind.TYPE_INFERENCE


class ValidationError(SheetkitError):
    """A structured document or workbook violates the model's invariants."""

    kind = ErrorKind.VALIDATION

    def __init__(self, reason: str, details: list[str] | None = None) -> None:
        super().__init__(reason, details)
        self.reason = reason


class ReconstructionError(SheetkitError):
    """A workbook cannot be rebuilt into a container."""

    kind = ErrorKind.RECONSTRUCTION

    def __init__(self, reason: str, details: list[str] | None = None) -> None:
        super().__init__(reason, details)
        self.reason = reason
