"""Event sinks satisfying :class:`~sheetkit.protocols.EventSink`.

Callers pass a sink into readers, codecs, and the router instead of the
library holding process-wide state.  ``LoggingEventSink`` is the default
and writes through the ``sheetkit`` logger.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("sheetkit")


class LoggingEventSink:
    """Forward events to a :mod:`logging` logger as pipe-delimited lines."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.DEBUG) -> None:
        self._logger = log or logger
        self._level = level

    def record(self, event: str, **context: Any) -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        parts = [f"event={event}"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        self._logger.log(self._level, "sheetkit | %s", " | ".join(parts))


class NullEventSink:
    """Discard every event."""

    def record(self, event: str, **context: Any) -> None:
        return None


class RecordingEventSink:
    """Keep events in memory as ``(event, context)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def record(self, event: str, **context: Any) -> None:
        self.events.append((event, dict(context)))

    def names(self) -> list[str]:
        return [name for name, _context in self.events]
