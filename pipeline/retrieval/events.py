"""
Structured retrieval events. The retrieval pipeline reports diagnostics through an
injected EventSink instead of logging directly, so observability stays out of control flow.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

RETRIEVAL_LOGGER_NAME = "sheetrag.retrieval"


class EventSink(Protocol):
    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        ...


class LoggingEventSink:
    """Writes each event as one JSON line (sorted keys) on a stdlib logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(RETRIEVAL_LOGGER_NAME)

    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        payload = {"event": event, **fields}
        self._logger.log(level, "%s", json.dumps(payload, sort_keys=True, default=str))


@dataclass(frozen=True)
class RecordedEvent:
    event: str
    level: int
    fields: dict[str, Any] = field(default_factory=dict)


class RecordingEventSink:
    """Keeps events in memory, optionally forwarding them to another sink."""

    def __init__(self, forward_to: EventSink | None = None) -> None:
        self.events: list[RecordedEvent] = []
        self._forward_to = forward_to

    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append(RecordedEvent(event=event, level=level, fields=dict(fields)))
        if self._forward_to is not None:
            self._forward_to.emit(event, level, **fields)

    def named(self, event: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.event == event]
