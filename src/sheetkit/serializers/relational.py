"""Relational interchange format: an SQLite dump script.

The workbook is loaded into a private in-memory database and dumped as one
transaction of ``CREATE TABLE`` and ``INSERT`` statements.  Text is written
as a quoted literal, or as a hex blob cast back to TEXT when it holds NUL
characters, so cell text never becomes SQL.

Tables::

    sheets("name" TEXT, "index" INTEGER, "hidden" INTEGER)
    cell_data("sheet", "address", "row", "col", "data_type", "value", "formula")
    merged_ranges("sheet", "start", "end")

``cell_data.value`` is always TEXT (the canonical string) and
``cell_data.formula`` is NULL for non-formula cells.
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from typing import Any, Iterator

import pandas as pd

from sheetkit.errors import ValidationError
from sheetkit.events import LoggingEventSink
from sheetkit.formats import TargetFormat
from sheetkit.models import Workbook
from sheetkit.protocols import EventSink
from sheetkit.serializers.document import from_document, to_document

SCHEMA: dict[str, str] = {
    "sheets": (
        'CREATE TABLE "sheets" ('
        '"name" TEXT NOT NULL, "index" INTEGER NOT NULL, "hidden" INTEGER NOT NULL)'
    ),
    "cell_data": (
        'CREATE TABLE "cell_data" ('
        '"sheet" TEXT NOT NULL, "address" TEXT NOT NULL, '
        '"row" INTEGER NOT NULL, "col" INTEGER NOT NULL, '
        '"data_type" TEXT NOT NULL, "value" TEXT NOT NULL, "formula" TEXT)'
    ),
    "merged_ranges": (
        'CREATE TABLE "merged_ranges" ('
        '"sheet" TEXT NOT NULL, "start" TEXT NOT NULL, "end" TEXT NOT NULL)'
    ),
}

COLUMNS: dict[str, list[str]] = {
    "sheets": ["name", "index", "hidden"],
    "cell_data": ["sheet", "address", "row", "col", "data_type", "value", "formula"],
    "merged_ranges": ["sheet", "start", "end"],
}

_DENIED_ACTIONS = {sqlite3.SQLITE_ATTACH, sqlite3.SQLITE_DETACH}


def _authorizer(action: int, arg1, arg2, db_name, trigger) -> int:
    if action in _DENIED_ACTIONS:
        return sqlite3.SQLITE_DENY
    return sqlite3.SQLITE_OK


def _literal(value: Any) -> str:
    """Render one stored value as an SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, int):
        return str(value)
    # SQLite quote() stops at an embedded NUL.
    if "\x00" in value:
        return f"CAST(X'{value.encode('utf-8').hex().upper()}' AS TEXT)"
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _dump(conn: sqlite3.Connection) -> Iterator[str]:
    yield "BEGIN TRANSACTION;"
    for table, ddl in SCHEMA.items():
        yield f"{ddl};"
        column_list = ", ".join(f'"{name}"' for name in COLUMNS[table])
        for row in conn.execute(f'SELECT {column_list} FROM "{table}" ORDER BY rowid'):
            yield f'INSERT INTO "{table}" VALUES({",".join(_literal(value) for value in row)});'
    yield "COMMIT;"


def _native(value: Any) -> Any:
    """Unbox numpy scalars handed back by pandas."""
    if hasattr(value, "item"):
        return value.item()
    return value


class SqlCodec:
    """Encode workbooks as SQLite dump scripts and load them back."""

    target_format = TargetFormat.SQL

    def __init__(self, events: EventSink | None = None) -> None:
        self._events = events or LoggingEventSink()

    def serialize(self, workbook: Workbook) -> bytes:
        document = to_document(workbook)
        rows = {
            "sheets": [
                {**sheet, "hidden": int(sheet["hidden"])} for sheet in document["sheets"]
            ],
            "cell_data": [
                {**cell, "formula": cell.get("formula")} for cell in document["cells"]
            ],
            "merged_ranges": document["merged_ranges"],
        }

        with closing(sqlite3.connect(":memory:")) as conn:
            for table, ddl in SCHEMA.items():
                conn.execute(ddl)
                if rows[table]:
                    frame = pd.DataFrame(rows[table], columns=COLUMNS[table])
                    frame.to_sql(table, conn, if_exists="append", index=False)
            conn.commit()
            script = "\n".join(_dump(conn)) + "\n"

        output = script.encode("utf-8")
        self._events.record(
            "serialize.complete",
            target_format=self.target_format.value,
            cells=len(workbook.cells),
            size_bytes=len(output),
        )
        return output

    def deserialize(self, data: bytes) -> Workbook:
        try:
            script = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"SQL script is not valid UTF-8: {exc}") from exc

        with closing(sqlite3.connect(":memory:")) as conn:
            conn.set_authorizer(_authorizer)
            try:
                conn.executescript(script)
            except (sqlite3.Error, ValueError) as exc:
                raise ValidationError(f"SQL script failed to execute: {exc}") from exc
            document = self._read_document(conn)

        workbook = from_document(document)
        self._events.record(
            "deserialize.complete",
            target_format=self.target_format.value,
            sheets=len(workbook.sheets),
            cells=len(workbook.cells),
        )
        return workbook

    def _read_document(self, conn: sqlite3.Connection) -> dict[str, Any]:
        present = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        missing = [table for table in SCHEMA if table not in present]
        if missing:
            raise ValidationError(f"SQL script does not create table(s): {', '.join(missing)}")

        frames: dict[str, pd.DataFrame] = {}
        for table, columns in COLUMNS.items():
            column_list = ", ".join(f'"{name}"' for name in columns)
            query = f'SELECT {column_list} FROM "{table}" ORDER BY rowid'
            try:
                frames[table] = pd.read_sql_query(query, conn)
            except (sqlite3.Error, pd.errors.DatabaseError) as exc:
                raise ValidationError(f"Cannot read table '{table}': {exc}") from exc

        cells = []
        for record in frames["cell_data"].to_dict(orient="records"):
            cell = {key: _native(value) for key, value in record.items()}
            formula = cell.pop("formula")
            if formula is not None and not pd.isna(formula):
                cell["formula"] = formula
            cells.append(cell)

        return {
            "sheets": [
                {key: _native(value) for key, value in record.items()}
                for record in frames["sheets"].to_dict(orient="records")
            ],
            "cells": cells,
            "merged_ranges": [
                {key: _native(value) for key, value in record.items()}
                for record in frames["merged_ranges"].to_dict(orient="records")
            ],
        }
