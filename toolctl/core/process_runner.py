"""Process runner: executes a tool as a child process and streams its events.

The child speaks Tool Protocol v1 (see ``protocol``). Its pipes are push
sources serviced by daemon threads, while the caller pulls events one at a
time from a ``ToolRun`` iterator. Every producer (stdout pump, timeout
timer, exit handler) pushes tagged items into a single FIFO queue which the
consumer drains in arrival order; the queue is the only synchronization
point visible to the caller.

Guardrails (each independently enforced, first one wins):
  - timeout_ms:       SIGTERM after N ms
  - max_output_bytes: SIGTERM once stdout exceeds N bytes
  - max_events:       SIGTERM when event N+1 arrives (that event is dropped)

Each one terminates the child and inserts one synthetic, non-recoverable
``error`` event. Malformed stdout lines are dropped with a warning on the
diagnostic stream; they never abort the run.
"""
from __future__ import annotations

import os
import queue
import shutil
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

from .errors import NotImplementedRuntimeError, RunnerError, RunnerGuardrailError
from .logging import core_logger, summarize_for_log
from .manifest import RUNTIME_PROCESS, ResolvedTool
from .protocol import (
    CODE_MAX_EVENTS,
    CODE_MAX_OUTPUT_BYTES,
    CODE_TIMEOUT,
    CODE_TOOL_CRASH,
    EXIT_CRASH_MIN,
    EXIT_SUCCESS,
    ErrorEvent,
    MalformedLineError,
    RunContext,
    ToolRequest,
    make_error_event,
    parse_event_line,
)

GUARDRAIL_TIMEOUT = "timeout"
GUARDRAIL_MAX_OUTPUT_BYTES = "maxOutputBytes"
GUARDRAIL_MAX_EVENTS = "maxEvents"

_CHUNK_SIZE = 64 * 1024
# Grace period before an abandoned child is killed outright
_KILL_GRACE_S = 3.0
_STDERR_DRAIN_TIMEOUT_S = 2.0

_EVENT = "event"
_DONE = "done"
_ERROR = "error"


@dataclass
class RunnerOptions:
    timeout_ms: int = 30_000
    max_output_bytes: int = 10 * 1024 * 1024
    max_events: int = 10_000

    def __post_init__(self):
        for name in ("timeout_ms", "max_output_bytes", "max_events"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"RunnerOptions.{name} must be a positive integer, got {value!r}")


def build_command(tool: ResolvedTool) -> List[str]:
    """argv for a tool entry: python scripts via this interpreter, files directly, else PATH lookup."""
    entry_path = tool.entry_path
    if entry_path.suffix == ".py":
        return [sys.executable, str(entry_path)]
    if entry_path.is_file():
        return [str(entry_path)]
    found = shutil.which(tool.manifest.entry)
    return [found or str(entry_path)]


class _Diagnostics:
    """Thread-safe writer for the orchestrator's diagnostic stream."""

    def __init__(self, stream: Optional[BinaryIO]):
        self._stream = stream
        self._lock = threading.Lock()

    def write(self, data: bytes):
        with self._lock:
            stream = self._stream
            if stream is None:
                # Resolve late so redirected sys.stderr (tests, pagers) is honored
                text_stream = sys.stderr
                binary = getattr(text_stream, "buffer", None)
                if binary is None:
                    text_stream.write(data.decode("utf-8", errors="replace"))
                    text_stream.flush()
                    return
                stream = binary
            stream.write(data)
            stream.flush()

    def warn(self, tool_id: str, message: str):
        self.write(f"[runner:{tool_id}] {message}\n".encode("utf-8", errors="replace"))


class ToolRun:
    """One execution of a tool, consumed as an iterator of ToolEvents.

    The child is spawned lazily on the first ``next()``. Iterating to the end
    is equivalent to waiting for the child to exit; afterwards ``exit_code``
    holds its return code (negative when killed by a signal) and
    ``guardrail`` names the guardrail that fired, if any. Closing the run
    early terminates a still-running child.
    """

    def __init__(
        self,
        tool: ResolvedTool,
        request: ToolRequest,
        options: RunnerOptions,
        diagnostics: _Diagnostics,
    ):
        self.tool = tool
        self.tool_id = tool.manifest.id
        self.options = options
        self._request_bytes = request.to_json().encode("utf-8")
        self._cwd = request.context.workspace_root or None
        self._diag = diagnostics

        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._timer: Optional[threading.Timer] = None
        self._threads: Dict[str, threading.Thread] = {}
        self._started = False
        self._finished = False

        # Guardrail state, mutated only under self._lock
        self.guardrail: Optional[str] = None
        self.bytes_read = 0
        self.events_emitted = 0
        self._line_buffer = b""
        self._saw_error_event = False

        self.exit_code: Optional[int] = None

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------
    def __iter__(self):
        return self

    def __next__(self):
        if self._finished:
            raise StopIteration
        if not self._started:
            self._start()
        kind, value = self._queue.get()
        if kind == _EVENT:
            return value
        self._finished = True
        self._cleanup()
        if kind == _ERROR:
            raise value
        raise StopIteration

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def guardrail_hit(self) -> bool:
        return self.guardrail is not None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def close(self):
        """Stop consuming. A child that is still running is terminated, then killed after a grace period."""
        self._finished = True
        proc = self._proc
        if proc is not None and proc.poll() is None:
            core_logger.debug(f"run closed early; terminating tool_id={self.tool_id} pid={proc.pid}")
            self._terminate()
            try:
                proc.wait(timeout=_KILL_GRACE_S)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        self._cleanup()

    def raise_for_guardrail(self):
        if self.guardrail is not None:
            raise RunnerGuardrailError(f"Tool {self.tool_id} stopped by guardrail {self.guardrail}", self.guardrail)

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------
    def _start(self):
        self._started = True
        cmd = build_command(self.tool)
        env = dict(os.environ)
        env["PYTHONUNBUFFERED"] = "1"
        core_logger.debug(f"spawn tool_id={self.tool_id} cmd={' '.join(cmd)} cwd={self._cwd}")
        try:
            self._proc = subprocess.Popen(
                cmd,
                cwd=self._cwd,
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self._finished = True
            raise RunnerError(f"Failed to spawn tool {self.tool_id} at {self.tool.entry_path}: {e}") from e

        self._timer = threading.Timer(self.options.timeout_ms / 1000.0, self._on_timeout)
        self._timer.daemon = True
        self._timer.start()

        for name, target in (
            ("stdin", self._write_request),
            ("stderr", self._pump_stderr),
            ("stdout", self._pump_stdout),
        ):
            t = threading.Thread(target=target, name=f"toolctl-{self.tool_id}-{name}", daemon=True)
            self._threads[name] = t
            t.start()

    def _push(self, kind: str, value: Any = None):
        self._queue.put((kind, value))

    def _terminate(self):
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------
    def _write_request(self):
        stdin = self._proc.stdin
        try:
            stdin.write(self._request_bytes)
            stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            # Child died or stopped reading; its exit is reported by the stdout pump
            if not self.guardrail_hit and not self._finished:
                self._diag.warn(self.tool_id, f"stdin write error: {e}")
        finally:
            try:
                stdin.close()
            except (BrokenPipeError, OSError):
                pass

    def _pump_stderr(self):
        stderr = self._proc.stderr
        try:
            while True:
                chunk = stderr.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                self._diag.write(chunk)
        except (OSError, ValueError) as e:
            if not self._finished:
                core_logger.warning(f"stderr read failed tool_id={self.tool_id}: {e}")

    def _pump_stdout(self):
        stdout = self._proc.stdout
        try:
            while True:
                chunk = stdout.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                self._on_stdout_chunk(chunk)
            self._flush_line_buffer()
        except (OSError, ValueError) as e:
            self._abort(RunnerError(f"Stream error for {self.tool_id}: {e}"))
            return
        except Exception as e:  # noqa: BLE001
            core_logger.exception(f"stdout reader failed tool_id={self.tool_id}")
            self._abort(RunnerError(f"stdout reader for {self.tool_id} failed: {e!r}"))
            return
        code = self._proc.wait()
        if self._timer is not None:
            self._timer.cancel()
        stderr_thread = self._threads.get("stderr")
        if stderr_thread is not None:
            stderr_thread.join(_STDERR_DRAIN_TIMEOUT_S)
        self._on_exit(code)

    def _abort(self, error: RunnerError):
        """Terminal path for a failed stdout reader: stop the child and end the sequence with ``error``."""
        if self._timer is not None:
            self._timer.cancel()
        if self._proc.poll() is None:
            self._terminate()
            try:
                self.exit_code = self._proc.wait(timeout=_KILL_GRACE_S)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self.exit_code = self._proc.wait()
        else:
            self.exit_code = self._proc.returncode
        if not self._finished:
            self._push(_ERROR, error)

    def _on_stdout_chunk(self, chunk: bytes):
        with self._lock:
            if self.guardrail_hit:
                # keep draining so the child never blocks on a full pipe
                return
            self.bytes_read += len(chunk)
            if self.bytes_read > self.options.max_output_bytes:
                self._trip(
                    GUARDRAIL_MAX_OUTPUT_BYTES,
                    f"Tool stdout exceeded maxOutputBytes limit ({self.options.max_output_bytes} bytes)",
                    CODE_MAX_OUTPUT_BYTES,
                )
                return
            lines = (self._line_buffer + chunk).split(b"\n")
            self._line_buffer = lines.pop()
            for raw in lines:
                if self.guardrail_hit:
                    break
                self._handle_line(raw)

    def _flush_line_buffer(self):
        with self._lock:
            raw, self._line_buffer = self._line_buffer, b""
            if not self.guardrail_hit:
                self._handle_line(raw)

    def _handle_line(self, raw: bytes):
        """Parse one complete stdout line. Caller holds self._lock."""
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        try:
            event = parse_event_line(line)
        except MalformedLineError as e:
            self._diag.warn(self.tool_id, f"{e}: {line[:500]}")
            return
        if self.events_emitted >= self.options.max_events:
            self._trip(
                GUARDRAIL_MAX_EVENTS,
                f"Tool exceeded maxEvents limit ({self.options.max_events} events)",
                CODE_MAX_EVENTS,
            )
            return
        self.events_emitted += 1
        if isinstance(event, ErrorEvent):
            self._saw_error_event = True
        self._push(_EVENT, event)

    def _on_timeout(self):
        with self._lock:
            if self.guardrail_hit or self._proc.poll() is not None:
                return
            self._trip(
                GUARDRAIL_TIMEOUT,
                f"Tool exceeded timeout of {self.options.timeout_ms}ms",
                CODE_TIMEOUT,
            )

    def _trip(self, guardrail: str, message: str, code: str):
        """Fire a guardrail. Caller holds self._lock; only the first call has any effect."""
        if self.guardrail_hit:
            return
        self.guardrail = guardrail
        core_logger.warning(f"guardrail {guardrail} hit tool_id={self.tool_id}: {message}")
        self._terminate()
        self._push(_EVENT, make_error_event(self.tool_id, message, code))

    def _on_exit(self, code: int):
        with self._lock:
            self.exit_code = code
            core_logger.debug(f"tool exited tool_id={self.tool_id} code={code} events={self.events_emitted}")
            if not self.guardrail_hit:
                if code >= EXIT_CRASH_MIN:
                    self._push(_EVENT, make_error_event(self.tool_id, f"Tool crashed with exit code {code}", CODE_TOOL_CRASH))
                elif code < 0:
                    self._push(
                        _EVENT,
                        make_error_event(self.tool_id, f"Tool was terminated by signal {-code}", CODE_TOOL_CRASH),
                    )
                elif code == EXIT_SUCCESS and self._saw_error_event:
                    self._diag.warn(self.tool_id, "protocol violation: error event emitted but tool exited with code 0")
                    core_logger.warning(f"protocol violation tool_id={self.tool_id}: error event followed by exit 0")
            self._push(_DONE, code)

    def _cleanup(self):
        if self._timer is not None:
            self._timer.cancel()
        proc = self._proc
        if proc is None:
            return
        for t in self._threads.values():
            if t is not threading.current_thread():
                t.join(_STDERR_DRAIN_TIMEOUT_S)
        if any(t.is_alive() for t in self._threads.values()):
            # a grandchild still holds a pipe open; leave the streams to the pumps
            return
        for stream in (proc.stdout, proc.stderr):
            if stream is not None and not stream.closed:
                try:
                    stream.close()
                except OSError:
                    pass


class ProcessRunner:
    """Runner for the ``process`` runtime: spawn the entry point, stream Tool Protocol v1."""

    def __init__(self, diagnostics: Optional[BinaryIO] = None):
        # None -> the orchestrator's own stderr, resolved at write time
        self._diagnostics = _Diagnostics(diagnostics)

    def run(
        self,
        tool: ResolvedTool,
        context: RunContext,
        input: Optional[Dict[str, Any]] = None,
        options: Optional[RunnerOptions] = None,
    ) -> ToolRun:
        if tool.manifest.runtime != RUNTIME_PROCESS:
            raise NotImplementedRuntimeError(tool.manifest.runtime)
        request = ToolRequest(context=context, input=input or {})
        core_logger.debug(f"run tool_id={tool.id} input={summarize_for_log(request.input)}")
        return ToolRun(tool, request, options or RunnerOptions(), self._diagnostics)


__all__ = [
    "GUARDRAIL_TIMEOUT",
    "GUARDRAIL_MAX_OUTPUT_BYTES",
    "GUARDRAIL_MAX_EVENTS",
    "RunnerOptions",
    "ToolRun",
    "ProcessRunner",
    "build_command",
]
