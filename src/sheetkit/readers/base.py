"""Helpers shared by the format readers.

Pre-flight checks on the raw bytes, the optional per-sheet thread pool, and
the final invariant gate every parsed workbook passes through.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence, TypeVar

from sheetkit.config import SheetkitConfig
from sheetkit.errors import ContainerCorruptError, UnsupportedConstructError, ValidationError
from sheetkit.formats import SourceFormat
from sheetkit.models import Workbook
from sheetkit.validation import find_violations

logger = logging.getLogger("sheetkit")

T = TypeVar("T")
R = TypeVar("R")


def preflight(data: bytes, source_format: SourceFormat, config: SheetkitConfig) -> None:
    """Reject empty, oversized, or mislabelled input before parsing.

    Raises:
        ContainerCorruptError: The bytes cannot be a container of
            *source_format*.
        UnsupportedConstructError: An ``.xlsx`` arrives wrapped in an OLE2
            compound file, which is how encrypted workbooks are stored.
    """
    if not data:
        raise ContainerCorruptError(f"Input is empty (0 bytes); expected {source_format.value}")

    max_bytes = config.max_file_size_mb * 1024 * 1024
    if len(data) > max_bytes:
        raise ContainerCorruptError(
            f"Input size {len(data)} bytes exceeds limit of "
            f"{max_bytes} bytes ({config.max_file_size_mb} MB)"
        )

    if source_format is SourceFormat.XLSX and data.startswith(SourceFormat.XLS.magic):
        raise UnsupportedConstructError(
            "Workbook is encrypted or password-protected (OLE2 container where xlsx was expected)"
        )

    magic = source_format.magic
    if magic is not None and not data.startswith(magic):
        raise ContainerCorruptError(
            f"Input does not start with the {source_format.value} signature "
            f"(found {data[:8]!r})"
        )


def map_sheets(
    func: Callable[[T], R], items: Sequence[T], workers: int
) -> list[R]:
    """Apply *func* to every sheet item, optionally on a thread pool.

    Results come back in input order.  When several sheets fail, the
    failure of the earliest sheet is raised.
    """
    if workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    results: dict[int, R] = {}
    failures: dict[int, BaseException] = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_index = {executor.submit(func, item): idx for idx, item in enumerate(items)}
        for future in as_completed(future_to_index):
            idx = future_to_index[future]
            exc = future.exception()
            if exc is not None:
                failures[idx] = exc
            else:
                results[idx] = future.result()

    if failures:
        raise failures[min(failures)]
    return [results[idx] for idx in range(len(items))]


def finalize(workbook: Workbook, source_format: SourceFormat) -> Workbook:
    """Gate a freshly parsed workbook on the model invariants.

    Malformed sources (for example overlapping merge declarations) are
    reported, never repaired.
    """
    violations = find_violations(workbook, source_format)
    if violations:
        raise ValidationError(
            f"Parsed {source_format.value} workbook is invalid: {violations[0]}",
            details=violations,
        )
    return workbook
