"""SheetConverter -- orchestrator and public API for sheetkit.

Forward flow:

1. Pick the :class:`FormatReader` for the source container.
2. Parse the bytes into a canonical :class:`Workbook`.
3. Serialize the workbook into the requested interchange format.

Reverse flow:

1. Deserialize an interchange document into a :class:`Workbook`.
2. Rebuild an ``.xlsx`` container via :class:`ReconstructionEngine`.

The converter enforces **fail-closed** semantics: any error returns a
result carrying an :class:`ErrorRecord` and no output bytes.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from enum import Enum
from typing import TypeVar

from sheetkit.config import SheetkitConfig
from sheetkit.errors import (
    ContainerCorruptError,
    ReconstructionError,
    SheetkitError,
    ValidationError,
)
from sheetkit.events import LoggingEventSink
from sheetkit.formats import SourceFormat, TargetFormat
from sheetkit.models import ConversionResult, ReconstructionResult
from sheetkit.protocols import EventSink
from sheetkit.readers import get_reader
from sheetkit.reconstruction import ReconstructionEngine
from sheetkit.serializers import get_deserializer, get_serializer

logger = logging.getLogger("sheetkit")

FormatT = TypeVar("FormatT", SourceFormat, TargetFormat)


def _coerce(enum_cls: type[FormatT], value, role: str) -> FormatT:
    """Turn a format hint into *enum_cls*, failing with ``ValidationError``."""
    try:
        return enum_cls(value)
    except ValueError as exc:
        supported = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Unknown {role} format {value!r}; expected one of: {supported}"
        ) from exc


def _known(enum_cls: type[FormatT], value) -> FormatT | None:
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _hint(known: Enum | None, raw) -> str:
    return known.value if known is not None else str(raw)


class SheetConverter:
    """Top-level entry point for spreadsheet conversion.

    Parameters
    ----------
    config:
        Pipeline configuration.  Uses defaults when *None*.
    events:
        Sink receiving pipeline events.  Defaults to
        :class:`~sheetkit.events.LoggingEventSink`.
    """

    def __init__(
        self,
        config: SheetkitConfig | None = None,
        events: EventSink | None = None,
    ) -> None:
        self._config = config or SheetkitConfig()
        self._events = events or LoggingEventSink()
        self._engine = ReconstructionEngine(events=self._events)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert(
        self,
        data: bytes,
        source_format: SourceFormat | str,
        target_format: TargetFormat | str,
    ) -> ConversionResult:
        """Parse a spreadsheet container and serialize it.

        Returns
        -------
        ConversionResult
            Output bytes and content type on success; an error record and
            no output on failure.  An unknown format hint is a
            ``ValidationError`` failure.
        """
        overall_start = time.monotonic()
        source = _known(SourceFormat, source_format)
        target = _known(TargetFormat, target_format)
        try:
            source = _coerce(SourceFormat, source_format, "source")
            target = _coerce(TargetFormat, target_format, "target")
            reader = get_reader(source, self._config, self._events)
            serializer = get_serializer(target, self._config, self._events)
            try:
                workbook = reader.parse(data)
            except SheetkitError:
                raise
            except Exception as exc:
                raise ContainerCorruptError(
                    f"Failed to parse {source.value} container: {exc}"
                ) from exc
            output = serializer.serialize(workbook)
        except SheetkitError as exc:
            elapsed = time.monotonic() - overall_start
            self._report_failure(
                exc,
                "convert",
                source_format=_hint(source, source_format),
                target_format=_hint(target, target_format),
            )
            return ConversionResult(
                source_format=source,
                target_format=target,
                parser_version=self._config.parser_version,
                error=exc.to_record(),
                processing_time_seconds=elapsed,
            )

        elapsed = time.monotonic() - overall_start
        logger.info(
            "sheetkit | convert | source=%s | target=%s | sheets=%d | cells=%d | bytes=%d | time=%.3fs",
            source.value,
            target.value,
            len(workbook.sheets),
            len(workbook.cells),
            len(output),
            elapsed,
        )
        return ConversionResult(
            source_format=source,
            target_format=target,
            parser_version=self._config.parser_version,
            output=output,
            content_type=target.content_type,
            sheet_count=len(workbook.sheets),
            cell_count=len(workbook.cells),
            merged_range_count=len(workbook.merged_ranges),
            processing_time_seconds=elapsed,
        )

    def convert_file(
        self,
        file_path: str,
        target_format: TargetFormat | str,
        source_format: SourceFormat | str | None = None,
    ) -> ConversionResult:
        """Convert a file on disk.

        Unless given explicitly, the source format is taken from the file
        name (``.csv``, ``.xls``, any other extension is treated as
        ``.xlsx``).  A name without an extension is sniffed from its
        leading bytes.
        """
        file_name = os.path.basename(file_path)
        has_extension = bool(os.path.splitext(file_name)[1])
        try:
            with open(file_path, "rb") as fh:
                data = fh.read()
        except OSError as exc:
            err = ContainerCorruptError(f"Cannot read file {file_path}: {exc}")
            err.__cause__ = exc
            self._report_failure(err, "convert", file=file_name)
            if source_format is None and has_extension:
                source_format = SourceFormat.from_filename(file_name)
            return ConversionResult(
                source_format=_known(SourceFormat, source_format),
                target_format=_known(TargetFormat, target_format),
                parser_version=self._config.parser_version,
                error=err.to_record(),
            )
        if source_format is None:
            if has_extension:
                source_format = SourceFormat.from_filename(file_name)
            else:
                source_format = SourceFormat.sniff(data)
        return self.convert(data, source_format, target_format)

    def reconstruct(
        self,
        document: bytes,
        document_format: TargetFormat | str,
    ) -> ReconstructionResult:
        """Parse an interchange document and rebuild an ``.xlsx`` container."""
        overall_start = time.monotonic()
        fmt = _known(TargetFormat, document_format)
        try:
            fmt = _coerce(TargetFormat, document_format, "document")
            deserializer = get_deserializer(fmt, self._config, self._events)
            workbook = deserializer.deserialize(document)
            try:
                output = self._engine.reconstruct(workbook)
            except SheetkitError:
                raise
            except Exception as exc:
                raise ReconstructionError(f"Failed to write workbook: {exc}") from exc
        except SheetkitError as exc:
            elapsed = time.monotonic() - overall_start
            self._report_failure(
                exc, "reconstruct", document_format=_hint(fmt, document_format)
            )
            return ReconstructionResult(
                document_format=fmt,
                parser_version=self._config.parser_version,
                error=exc.to_record(),
                processing_time_seconds=elapsed,
            )

        elapsed = time.monotonic() - overall_start
        logger.info(
            "sheetkit | reconstruct | format=%s | sheets=%d | cells=%d | bytes=%d | time=%.3fs",
            fmt.value,
            len(workbook.sheets),
            len(workbook.cells),
            len(output),
            elapsed,
        )
        return ReconstructionResult(
            document_format=fmt,
            parser_version=self._config.parser_version,
            output=output,
            sheet_count=len(workbook.sheets),
            cell_count=len(workbook.cells),
            processing_time_seconds=elapsed,
        )

    async def aconvert(
        self,
        data: bytes,
        source_format: SourceFormat | str,
        target_format: TargetFormat | str,
    ) -> ConversionResult:
        """Async wrapper around :meth:`convert`.

        Offloads the synchronous ``convert()`` call to a thread via
        ``asyncio.to_thread()``.
        """
        return await asyncio.to_thread(self.convert, data, source_format, target_format)

    async def areconstruct(
        self,
        document: bytes,
        document_format: TargetFormat | str,
    ) -> ReconstructionResult:
        """Async wrapper around :meth:`reconstruct`."""
        return await asyncio.to_thread(self.reconstruct, document, document_format)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _report_failure(self, exc: SheetkitError, operation: str, **context) -> None:
        logger.error(
            "sheetkit | %s | code=%s | detail=%s",
            operation,
            exc.kind.value,
            exc.message,
        )
        self._events.record(
            "conversion.failed",
            operation=operation,
            kind=exc.kind.value,
            **context,
        )
