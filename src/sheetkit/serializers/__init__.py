"""Interchange codecs: workbook to document bytes and back."""

from __future__ import annotations

from sheetkit.config import SheetkitConfig
from sheetkit.formats import TargetFormat
from sheetkit.protocols import EventSink, WorkbookDeserializer, WorkbookSerializer
from sheetkit.serializers.markup import JsonCodec, XmlCodec, YamlCodec
from sheetkit.serializers.relational import SqlCodec


def _codec(
    target_format: TargetFormat | str,
    config: SheetkitConfig | None,
    events: EventSink | None,
):
    target_format = TargetFormat(target_format)
    config = config or SheetkitConfig()
    if target_format is TargetFormat.JSON:
        return JsonCodec(events=events, indent=config.json_indent)
    if target_format is TargetFormat.YAML:
        return YamlCodec(events=events)
    if target_format is TargetFormat.XML:
        return XmlCodec(events=events)
    return SqlCodec(events=events)


def get_serializer(
    target_format: TargetFormat | str,
    config: SheetkitConfig | None = None,
    events: EventSink | None = None,
) -> WorkbookSerializer:
    """Return the encoder for *target_format*."""
    return _codec(target_format, config, events)


def get_deserializer(
    target_format: TargetFormat | str,
    config: SheetkitConfig | None = None,
    events: EventSink | None = None,
) -> WorkbookDeserializer:
    """Return the decoder for *target_format*."""
    return _codec(target_format, config, events)


__all__ = [
    "JsonCodec",
    "SqlCodec",
    "XmlCodec",
    "YamlCodec",
    "get_deserializer",
    "get_serializer",
]
