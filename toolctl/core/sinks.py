"""Event sinks: consumers of the tool event stream.

The runner produces events; sinks decide what to do with them, so rendering
can change without touching the runner.

  ConsoleEventSink  human-readable terminal output (default)
  JsonEventSink     NDJSON passthrough for scripting (``--json``)
"""
from __future__ import annotations

import json
import sys
from typing import Optional, Protocol, TextIO

from .protocol import (
    LOG_LEVELS,
    ErrorEvent,
    LogEvent,
    ResultEvent,
    StartedEvent,
    event_to_json,
)

_LOG_LEVEL_ORDER = {level: i for i, level in enumerate(LOG_LEVELS)}

LOG_ICONS = {
    "debug": "▪",
    "info": "ℹ",
    "warn": "⚠",
    "error": "✖",
}


class EventSink(Protocol):
    def emit(self, event) -> None: ...

    def flush(self) -> None:
        """Called once after the event stream ends, success or failure."""


class ConsoleEventSink:
    """Pretty-prints events.

    started -> ``▶ <toolId>`` (+ meta)      out
    log     -> level icon + message         out (debug/info), err (warn/error)
    result  -> ``✓ Done`` + JSON payload    out
    error   -> ``✗ <message> [code]`` + hint err
    """

    def __init__(
        self,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        timestamps: bool = False,
        min_log_level: str = "info",
    ):
        if min_log_level not in _LOG_LEVEL_ORDER:
            raise ValueError(f"min_log_level must be one of {', '.join(LOG_LEVELS)}")
        self._out = out
        self._err = err
        self.timestamps = timestamps
        self.min_log_level = min_log_level

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err or sys.stderr

    def emit(self, event) -> None:
        if isinstance(event, StartedEvent):
            self._on_started(event)
        elif isinstance(event, LogEvent):
            self._on_log(event)
        elif isinstance(event, ResultEvent):
            self._on_result(event)
        elif isinstance(event, ErrorEvent):
            self._on_error(event)
        else:
            raise TypeError(f"unhandled event variant: {type(event).__name__}")

    def flush(self) -> None:
        self.out.flush()
        self.err.flush()

    def _on_started(self, event: StartedEvent):
        meta = event.payload.meta
        suffix = f" ({json.dumps(meta, ensure_ascii=False)})" if meta else ""
        self.out.write(f"▶ {event.tool_id}{suffix}\n")

    def _on_log(self, event: LogEvent):
        p = event.payload
        if _LOG_LEVEL_ORDER[p.level] < _LOG_LEVEL_ORDER[self.min_log_level]:
            return
        prefix = f"[{event.timestamp}] " if self.timestamps else ""
        data = f"  {json.dumps(p.data, ensure_ascii=False)}" if "data" in p.model_fields_set else ""
        line = f"{prefix}{LOG_ICONS[p.level]} {p.message}{data}\n"
        stream = self.err if p.level in ("warn", "error") else self.out
        stream.write(line)

    def _on_result(self, event: ResultEvent):
        self.out.write("✓ Done\n")
        payload = event.payload
        if payload is not None and payload != {} and payload != []:
            self.out.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")

    def _on_error(self, event: ErrorEvent):
        p = event.payload
        code = f" [{p.code}]" if p.code else ""
        self.err.write(f"✗ {p.message}{code}\n")
        if p.recoverable:
            self.err.write("  Hint: check your config or input and try again.\n")
        else:
            self.err.write("  This looks like a bug. Please report it.\n")


class JsonEventSink:
    """Writes each event as one raw NDJSON line; no formatting, no filtering."""

    def __init__(self, out: Optional[TextIO] = None):
        self._out = out

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    def emit(self, event) -> None:
        self.out.write(event_to_json(event) + "\n")

    def flush(self) -> None:
        self.out.flush()


def create_event_sink(json_mode: bool, **console_options) -> EventSink:
    """Pick the sink for the CLI flags; console options are ignored in JSON mode."""
    if json_mode:
        return JsonEventSink(out=console_options.get("out"))
    return ConsoleEventSink(**console_options)


__all__ = ["EventSink", "ConsoleEventSink", "JsonEventSink", "create_event_sink", "LOG_ICONS"]
