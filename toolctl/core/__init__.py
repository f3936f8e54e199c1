"""Core framework components for toolctl.

Modules:
  manifest: Parse and validate tool descriptors (manifest.json).
  loader: Filesystem discovery of descriptors into a sorted catalog.
  registry: In-memory catalog keyed by tool id.
  config_store: Two-layer (global + project) configuration.
  protocol: Tool Protocol v1 request/event models.
  process_runner: Run a tool as a subprocess and stream its events.
  sinks: Render the event stream (console or NDJSON).
  tool_manager: Composition root tying the above together.
  tool_base: Child-side helper for writing tools in Python.
"""

from .registry import ToolRegistry  # noqa: F401
