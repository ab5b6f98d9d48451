"""sheetkit -- Lossless spreadsheet conversion.

Reads ``.xlsx``, ``.xls`` and ``.csv`` containers into a canonical workbook
model, serializes it to JSON, YAML, XML or SQL, and rebuilds ``.xlsx``
containers from those documents.

Public API re-exports for convenient access.
"""

from sheetkit.config import SheetkitConfig
from sheetkit.errors import (
    AddressFormatError,
    AddressRangeError,
    CellReadError,
    ContainerCorruptError,
    ErrorKind,
    ErrorRecord,
    ReconstructionError,
    SheetkitError,
    TypeInferenceError,
    UnsupportedConstructError,
    ValidationError,
)
from sheetkit.events import LoggingEventSink, NullEventSink, RecordingEventSink
from sheetkit.formats import SourceFormat, TargetFormat
from sheetkit.models import (
    CellData,
    ConversionResult,
    DataType,
    MergedRange,
    ReconstructionResult,
    SheetMetadata,
    Workbook,
    make_cell,
)
from sheetkit.protocols import EventSink, FormatReader, WorkbookDeserializer, WorkbookSerializer
from sheetkit.readers import get_reader
from sheetkit.reconstruction import ReconstructionEngine
from sheetkit.router import SheetConverter
from sheetkit.serializers import get_deserializer, get_serializer

__all__ = [
    "SheetConverter",
    "SheetkitConfig",
    "SourceFormat",
    "TargetFormat",
    "Workbook",
    "SheetMetadata",
    "MergedRange",
    "CellData",
    "DataType",
    "make_cell",
    "ConversionResult",
    "ReconstructionResult",
    "ReconstructionEngine",
    "get_reader",
    "get_serializer",
    "get_deserializer",
    "FormatReader",
    "WorkbookSerializer",
    "WorkbookDeserializer",
    "EventSink",
    "LoggingEventSink",
    "NullEventSink",
    "RecordingEventSink",
    "ErrorKind",
    "ErrorRecord",
    "SheetkitError",
    "ContainerCorruptError",
    "UnsupportedConstructError",
    "CellReadError",
    "AddressFormatError",
    "AddressRangeError",
    "TypeInferenceError",
    "ValidationError",
    "ReconstructionError",
]
