"""Child-side helper for writing Tool Protocol v1 tools in Python.

Subclass ToolBase, set ``tool_id`` and implement ``execute``::

    class Hello(ToolBase):
        tool_id = "hello-world"

        def execute(self, context, input):
            self.log("info", "working")
            return {"message": "hi"}

    if __name__ == "__main__":
        sys.exit(Hello().main())

Exit codes follow the protocol: 0 success, 1 ToolFailure or bad request,
2 anything unexpected.
"""
from __future__ import annotations
from typing import Any, Dict, Optional, TextIO
import json
import sys

from pydantic import ValidationError

from .protocol import (
    EXIT_CRASH_MIN,
    EXIT_EXPECTED_FAILURE,
    EXIT_SUCCESS,
    RunContext,
    ToolRequest,
    now_iso,
)


class ToolFailure(Exception):
    """Expected, reportable failure raised from ``execute``."""

    def __init__(self, message: str, code: Optional[str] = None, recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable


class ToolBase:
    tool_id: str = ""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    # Protocol helpers ------------------------------------------------
    def emit(self, type: str, payload: Any):
        event = {"type": type, "timestamp": now_iso(), "toolId": self.tool_id, "payload": payload}
        self._stdout.write(json.dumps(event, ensure_ascii=False) + "\n")
        self._stdout.flush()

    def started(self, meta: Optional[Dict[str, Any]] = None):
        self.emit("started", {"meta": meta} if meta else {})

    def log(self, level: str, message: str, data: Any = None):
        payload: Dict[str, Any] = {"level": level, "message": message}
        if data is not None:
            payload["data"] = data
        self.emit("log", payload)

    def result(self, payload: Any):
        self.emit("result", payload)

    def error(self, message: str, code: Optional[str] = None, recoverable: bool = True):
        self.emit("error", {"message": message, "code": code, "recoverable": recoverable})

    def read_request(self) -> ToolRequest:
        """Read stdin to EOF and parse it as a ToolRequest."""
        return ToolRequest.model_validate_json(self._stdin.read())

    # Lifecycle -------------------------------------------------------
    def execute(self, context: RunContext, input: Dict[str, Any]) -> Any:  # pragma: no cover - base
        raise NotImplementedError

    def main(self) -> int:
        self.started()
        try:
            request = self.read_request()
        except ValidationError as e:
            self.error(f"Failed to parse ToolRequest from stdin: {e.errors()[0].get('msg')}", "INVALID_REQUEST", False)
            return EXIT_EXPECTED_FAILURE
        try:
            payload = self.execute(request.context, request.input)
        except ToolFailure as e:
            self.error(e.message, e.code, e.recoverable)
            return EXIT_EXPECTED_FAILURE
        except Exception as e:  # noqa: BLE001
            self.error(f"Unhandled error: {e}", "UNHANDLED_ERROR", False)
            return EXIT_CRASH_MIN
        self.result(payload)
        return EXIT_SUCCESS


__all__ = ["ToolBase", "ToolFailure"]
