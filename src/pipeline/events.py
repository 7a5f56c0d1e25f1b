# src/pipeline/events.py — v1
"""Progress events emitted by the runner to pluggable sinks.

Sinks are observers only: a sink that raises is logged and ignored, it
never affects the run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field

from previewflow.core.models import utc_now

logger = logging.getLogger(__name__)

EventType = Literal[
    "run_started",
    "phase_started",
    "phase_completed",
    "phase_failed",
    "phase_skipped",
    "run_halted",
    "run_finished",
]


class ProgressEvent(BaseModel):
    """One progress notification."""

    type: EventType
    run_id: str
    phase: str | None = None
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class BaseEventSink(ABC):
    """Receiver of progress events."""

    @abstractmethod
    def emit(self, event: ProgressEvent) -> None:
        """Handle one event."""


class LoggingEventSink(BaseEventSink):
    """Forward events to the logger."""

    def __init__(self, name: str = __name__) -> None:
        self._logger = logging.getLogger(name)

    def emit(self, event: ProgressEvent) -> None:
        level = logging.WARNING if event.type in ("phase_failed", "run_halted") else logging.INFO
        where = f"[{event.phase}] " if event.phase else ""
        self._logger.log(level, "%s%s %s", where, event.type, event.message)


class JsonlEventSink(BaseEventSink):
    """Append events as JSON lines (events.jsonl in the run dir)."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def emit(self, event: ProgressEvent) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")


class EventPublisher:
    """Fan events out to every sink, swallowing sink failures."""

    def __init__(self, sinks: Iterable[BaseEventSink] = ()) -> None:
        self._sinks = list(sinks)

    def add_sink(self, sink: BaseEventSink) -> None:
        self._sinks.append(sink)

    def publish(self, event: ProgressEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as e:
                logger.warning("Event sink %s failed: %s", type(sink).__name__, e)
