"""
toolctl

A personal tool orchestrator: discovers self-describing tools, resolves a
layered configuration and runs a chosen tool as a subprocess that streams
structured events back over Tool Protocol v1.
"""

from .core.config_store import ConfigDocument, ConfigStore
from .core.errors import ToolctlError
from .core.loader import DiscoveryResult, discover_tools
from .core.manifest import ResolvedTool, ToolManifest
from .core.process_runner import ProcessRunner, RunnerOptions, ToolRun
from .core.protocol import RunContext, ToolRequest
from .core.registry import ToolRegistry
from .core.sinks import ConsoleEventSink, JsonEventSink, create_event_sink
from .core.tool_manager import ToolManager, get_runner

__version__ = "0.1.0"

__all__ = [
    "ConfigDocument",
    "ConfigStore",
    "ToolctlError",
    "DiscoveryResult",
    "discover_tools",
    "ResolvedTool",
    "ToolManifest",
    "ProcessRunner",
    "RunnerOptions",
    "ToolRun",
    "RunContext",
    "ToolRequest",
    "ToolRegistry",
    "ConsoleEventSink",
    "JsonEventSink",
    "create_event_sink",
    "ToolManager",
    "get_runner",
]
