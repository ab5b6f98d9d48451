"""Capability protocols for sheetkit.

Defines the structural-subtyping interfaces that readers, codecs, and
event sinks must satisfy.  All protocols are ``@runtime_checkable`` so
callers can optionally verify conformance with ``isinstance`` checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sheetkit.models import Workbook


@runtime_checkable
class FormatReader(Protocol):
    """Parses one kind of source container into a workbook."""

    def parse(self, data: bytes) -> Workbook:
        """Parse the complete container held in *data*."""
        ...


@runtime_checkable
class WorkbookSerializer(Protocol):
    """Renders a workbook into one interchange format."""

    def serialize(self, workbook: Workbook) -> bytes:
        """Return the deterministic encoding of *workbook*."""
        ...


@runtime_checkable
class WorkbookDeserializer(Protocol):
    """Parses one interchange format back into a workbook."""

    def deserialize(self, data: bytes) -> Workbook:
        """Return the validated workbook encoded in *data*."""
        ...


@runtime_checkable
class EventSink(Protocol):
    """Receives named events with key/value context."""

    def record(self, event: str, **context: Any) -> None:
        """Record *event* with its context."""
        ...
