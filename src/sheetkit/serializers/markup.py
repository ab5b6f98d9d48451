"""Tree-shaped interchange formats: JSON, YAML, and XML.

All three render the same document tree (see
:mod:`sheetkit.serializers.document`).  Output is deterministic: identical
workbooks always produce identical bytes.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import xml.etree.ElementTree as ET
from typing import Any

import yaml

from sheetkit.errors import ValidationError
from sheetkit.events import LoggingEventSink
from sheetkit.formats import TargetFormat
from sheetkit.models import Workbook
from sheetkit.protocols import EventSink
from sheetkit.serializers.document import from_document, to_document

# Characters XML 1.0 cannot carry verbatim in element content.  Carriage
# returns are legal but normalized away by conforming parsers.
_XML_UNSAFE_RE = re.compile("[\x00-\x08\x0b-\x1f\ud800-\udfff\ufffe\uffff]")

# YAML readers fold these into line breaks inside plain and single-quoted
# scalars; only the double-quoted style escapes them.
_YAML_LINE_SEPARATORS = ("\x85", "\u2028", "\u2029")


class _Codec:
    """Common plumbing: event emission around encode/decode."""

    target_format: TargetFormat

    def __init__(self, events: EventSink | None = None) -> None:
        self._events = events or LoggingEventSink()

    def serialize(self, workbook: Workbook) -> bytes:
        output = self._encode(to_document(workbook))
        self._events.record(
            "serialize.complete",
            target_format=self.target_format.value,
            cells=len(workbook.cells),
            size_bytes=len(output),
        )
        return output

    def deserialize(self, data: bytes) -> Workbook:
        workbook = from_document(self._decode(data))
        self._events.record(
            "deserialize.complete",
            target_format=self.target_format.value,
            sheets=len(workbook.sheets),
            cells=len(workbook.cells),
        )
        return workbook

    def _encode(self, document: dict[str, Any]) -> bytes:
        raise NotImplementedError

    def _decode(self, data: bytes) -> Any:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class JsonCodec(_Codec):
    """UTF-8 JSON with a configurable indent and a trailing newline."""

    target_format = TargetFormat.JSON

    def __init__(self, events: EventSink | None = None, indent: int = 2) -> None:
        super().__init__(events)
        self._indent = indent

    def _encode(self, document: dict[str, Any]) -> bytes:
        return (json.dumps(document, indent=self._indent, ensure_ascii=False) + "\n").encode("utf-8")

    def _decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Malformed JSON document: {exc}") from exc


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class _DocumentDumper(yaml.SafeDumper):
    """SafeDumper that double-quotes text holding Unicode line separators."""


def _represent_text(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if any(separator in data for separator in _YAML_LINE_SEPARATORS):
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style='"')
    return dumper.represent_str(data)


_DocumentDumper.add_representer(str, _represent_text)


class YamlCodec(_Codec):
    """Block-style YAML from a safe dumper, in insertion order."""

    target_format = TargetFormat.YAML

    def _encode(self, document: dict[str, Any]) -> bytes:
        text = yaml.dump(
            document,
            Dumper=_DocumentDumper,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        return text.encode("utf-8")

    def _decode(self, data: bytes) -> Any:
        try:
            return yaml.safe_load(data.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as exc:
            raise ValidationError(f"Malformed YAML document: {exc}") from exc


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def reject_entity_declarations(data: bytes) -> None:
    """Refuse documents declaring entities or a DOCTYPE internal subset.

    Raises:
        ValidationError: An ``<!ENTITY`` declaration or a ``<!DOCTYPE``
            with an internal subset is present.
    """
    raw_upper = data.upper()
    if b"<!ENTITY" in raw_upper:
        raise ValidationError(
            "XML document contains an <!ENTITY declaration (potential entity expansion attack)"
        )
    if b"<!DOCTYPE" in raw_upper:
        doctype_pos = raw_upper.find(b"<!DOCTYPE")
        bracket_pos = data.find(b"[", doctype_pos)
        close_pos = data.find(b">", doctype_pos)
        if bracket_pos != -1 and (close_pos == -1 or bracket_pos < close_pos):
            raise ValidationError(
                "XML document contains a <!DOCTYPE with an internal subset"
            )


def _text_element(parent: ET.Element, tag: str, text: str) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if _XML_UNSAFE_RE.search(text):
        element.set("encoding", "base64")
        element.text = base64.b64encode(text.encode("utf-8", "surrogatepass")).decode("ascii")
    else:
        element.text = text
    return element


def _read_text(element: ET.Element) -> str:
    encoding = element.get("encoding")
    text = element.text or ""
    if encoding is None:
        return text
    if encoding != "base64":
        raise ValidationError(f"<{element.tag}> has unsupported encoding {encoding!r}")
    try:
        return base64.b64decode(text.strip(), validate=True).decode("utf-8", "surrogatepass")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValidationError(f"<{element.tag}> holds invalid base64 text: {exc}") from exc


def _child_text(element: ET.Element, tag: str, required: bool = True) -> str | None:
    child = element.find(tag)
    if child is None:
        if required:
            raise ValidationError(f"<{element.tag}> is missing its <{tag}> child")
        return None
    return _read_text(child)


def _int_attr(element: ET.Element, name: str) -> int:
    raw = element.get(name)
    if raw is None:
        raise ValidationError(f"<{element.tag}> is missing attribute {name!r}")
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"<{element.tag}> attribute {name}={raw!r} is not an integer") from exc


def _bool_attr(element: ET.Element, name: str) -> bool:
    raw = element.get(name, "false")
    if raw not in ("true", "false"):
        raise ValidationError(f"<{element.tag}> attribute {name}={raw!r} must be 'true' or 'false'")
    return raw == "true"


def _section(root: ET.Element, tag: str, item_tag: str) -> list[ET.Element]:
    section = root.find(tag)
    if section is None:
        raise ValidationError(f"<workbook> is missing its <{tag}> section")
    items = list(section)
    for item in items:
        if item.tag != item_tag:
            raise ValidationError(f"Unexpected <{item.tag}> inside <{tag}>")
    return items


class XmlCodec(_Codec):
    """XML with attributes for coordinates and child elements for free text.

    Layout::

        <workbook>
          <sheets><sheet index="0" hidden="false"><name>Sales</name></sheet></sheets>
          <cells>
            <cell address="A1" row="1" col="1" data_type="Text">
              <sheet>Sales</sheet><value>Region</value>
            </cell>
          </cells>
          <merged_ranges>
            <merged_range start="A1" end="B1"><sheet>Sales</sheet></merged_range>
          </merged_ranges>
        </workbook>

    Text XML 1.0 cannot hold verbatim is written base64 with
    ``encoding="base64"`` on its element.
    """

    target_format = TargetFormat.XML

    def _encode(self, document: dict[str, Any]) -> bytes:
        root = ET.Element("workbook")

        sheets = ET.SubElement(root, "sheets")
        for sheet in document["sheets"]:
            element = ET.SubElement(
                sheets,
                "sheet",
                index=str(sheet["index"]),
                hidden="true" if sheet["hidden"] else "false",
            )
            _text_element(element, "name", sheet["name"])

        cells = ET.SubElement(root, "cells")
        for cell in document["cells"]:
            element = ET.SubElement(
                cells,
                "cell",
                address=cell["address"],
                row=str(cell["row"]),
                col=str(cell["col"]),
                data_type=cell["data_type"],
            )
            _text_element(element, "sheet", cell["sheet"])
            _text_element(element, "value", cell["value"])
            if "formula" in cell:
                _text_element(element, "formula", cell["formula"])

        merges = ET.SubElement(root, "merged_ranges")
        for merge in document["merged_ranges"]:
            element = ET.SubElement(merges, "merged_range", start=merge["start"], end=merge["end"])
            _text_element(element, "sheet", merge["sheet"])

        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="utf-8", xml_declaration=True) + b"\n"

    def _decode(self, data: bytes) -> Any:
        reject_entity_declarations(data)
        try:
            root = ET.fromstring(data)  # noqa: S314
        except ET.ParseError as exc:
            raise ValidationError(f"Malformed XML document: {exc}") from exc
        if root.tag != "workbook":
            raise ValidationError(f"XML root must be <workbook>, got <{root.tag}>")

        document: dict[str, Any] = {"sheets": [], "cells": [], "merged_ranges": []}
        for element in _section(root, "sheets", "sheet"):
            document["sheets"].append(
                {
                    "name": _child_text(element, "name"),
                    "index": _int_attr(element, "index"),
                    "hidden": _bool_attr(element, "hidden"),
                }
            )
        for element in _section(root, "cells", "cell"):
            entry: dict[str, Any] = {
                "sheet": _child_text(element, "sheet"),
                "address": element.get("address", ""),
                "row": _int_attr(element, "row"),
                "col": _int_attr(element, "col"),
                "data_type": element.get("data_type"),
                "value": _child_text(element, "value"),
            }
            formula = _child_text(element, "formula", required=False)
            if formula is not None:
                entry["formula"] = formula
            document["cells"].append(entry)
        for element in _section(root, "merged_ranges", "merged_range"):
            document["merged_ranges"].append(
                {
                    "sheet": _child_text(element, "sheet"),
                    "start": element.get("start"),
                    "end": element.get("end"),
                }
            )
        return document
