"""Tool Protocol v1: the contract between the orchestrator and a tool process.

stdin   <- one JSON ToolRequest, then closed
stdout  -> newline-delimited JSON, exactly one ToolEvent per line
stderr  -> unstructured text, forwarded verbatim
exit       0 success, 1 expected failure (error event emitted first), >=2 crash

Every event shares the envelope ``{type, timestamp, toolId, payload}``; the
payload shape depends on ``type``. Unknown envelope fields are kept so a
passthrough consumer can re-serialize the event unmodified.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

PROTOCOL_VERSION = 1

EXIT_SUCCESS = 0
EXIT_EXPECTED_FAILURE = 1
EXIT_CRASH_MIN = 2

# Codes carried by events the runner synthesizes itself
CODE_TIMEOUT = "RUNNER_TIMEOUT"
CODE_MAX_OUTPUT_BYTES = "RUNNER_MAX_OUTPUT_BYTES"
CODE_MAX_EVENTS = "RUNNER_MAX_EVENTS"
CODE_TOOL_CRASH = "TOOL_CRASH"

EVENT_TYPES = ("started", "log", "result", "error")
LOG_LEVELS = ("debug", "info", "warn", "error")
LogLevel = Literal["debug", "info", "warn", "error"]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Request (stdin)
# ---------------------------------------------------------------------------

class RunContext(BaseModel):
    """Everything a tool gets to know about its environment.

    ``config`` holds only the keys the manifest declared in requiredConfig,
    flattened to ``{dotted-key: value}``; never the whole config document.
    """

    model_config = ConfigDict(populate_by_name=True)

    tool_id: str = Field(alias="toolId")
    config: Dict[str, Any] = Field(default_factory=dict)
    workspace_root: str = Field(alias="workspaceRoot")


class ToolRequest(BaseModel):
    context: RunContext
    input: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Events (stdout)
# ---------------------------------------------------------------------------

class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    timestamp: str
    tool_id: str = Field(alias="toolId")


class StartedPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    meta: Optional[Dict[str, Any]] = None


class LogPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    level: LogLevel
    message: str
    data: Any = None


class ErrorPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    code: Optional[str] = None
    # True: user can fix it (config, input). False: defect, report it.
    recoverable: bool = False


class StartedEvent(_Envelope):
    type: Literal["started"]
    payload: StartedPayload


class LogEvent(_Envelope):
    type: Literal["log"]
    payload: LogPayload


class ResultEvent(_Envelope):
    type: Literal["result"]
    payload: Any


class ErrorEvent(_Envelope):
    type: Literal["error"]
    payload: ErrorPayload


ToolEvent = Annotated[
    Union[StartedEvent, LogEvent, ResultEvent, ErrorEvent],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(ToolEvent)


class MalformedLineError(ValueError):
    """A stdout line that is not a valid protocol event."""


def _has_envelope(obj: Any) -> bool:
    return (
        isinstance(obj, dict)
        and isinstance(obj.get("type"), str)
        and isinstance(obj.get("timestamp"), str)
        and isinstance(obj.get("toolId"), str)
        and "payload" in obj
    )


def parse_event(obj: Any):
    """Validate an already-decoded object as a ToolEvent."""
    if not _has_envelope(obj):
        raise MalformedLineError("unexpected stdout shape (need type, timestamp, toolId, payload)")
    if obj["type"] not in EVENT_TYPES:
        raise MalformedLineError(f"unknown event type {obj['type']!r}")
    try:
        return _EVENT_ADAPTER.validate_python(obj)
    except ValidationError as e:
        raise MalformedLineError(f"invalid {obj['type']} event: {e.errors()[0].get('msg')}") from e
    except RecursionError as e:
        raise MalformedLineError(f"invalid {obj['type']} event: payload nested too deeply") from e


def parse_event_line(line: str):
    """Parse one NDJSON line; raises MalformedLineError on anything but a valid event."""
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedLineError(f"malformed NDJSON ({e.msg})") from e
    except RecursionError as e:
        raise MalformedLineError("malformed NDJSON (nested too deeply)") from e
    return parse_event(obj)


def event_to_dict(event) -> Dict[str, Any]:
    return event.model_dump(by_alias=True, exclude_unset=True, mode="json")


def event_to_json(event) -> str:
    return json.dumps(event_to_dict(event), ensure_ascii=False)


def make_error_event(tool_id: str, message: str, code: Optional[str] = None, recoverable: bool = False) -> ErrorEvent:
    return ErrorEvent(
        type="error",
        timestamp=now_iso(),
        tool_id=tool_id,
        payload=ErrorPayload(message=message, code=code, recoverable=recoverable),
    )


__all__ = [
    "PROTOCOL_VERSION",
    "EXIT_SUCCESS",
    "EXIT_EXPECTED_FAILURE",
    "EXIT_CRASH_MIN",
    "CODE_TIMEOUT",
    "CODE_MAX_OUTPUT_BYTES",
    "CODE_MAX_EVENTS",
    "CODE_TOOL_CRASH",
    "LOG_LEVELS",
    "RunContext",
    "ToolRequest",
    "StartedEvent",
    "LogEvent",
    "ResultEvent",
    "ErrorEvent",
    "ToolEvent",
    "MalformedLineError",
    "parse_event",
    "parse_event_line",
    "event_to_dict",
    "event_to_json",
    "make_error_event",
    "now_iso",
]
