"""ToolManager: wires discovery -> lookup -> config slice -> runner -> sink.

Nothing here is cached between invocations; manifests and config are read
fresh for every run and the resolved configuration is passed down
explicitly through the RunContext.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional

from .config_store import ConfigDocument, ConfigStore
from .errors import NotImplementedRuntimeError, ToolNotFoundError
from .loader import DiscoveryResult, discover_tools
from .logging import core_logger
from .manifest import RUNTIME_PROCESS, ResolvedTool, ToolManifest
from .process_runner import ProcessRunner, RunnerOptions
from .protocol import EXIT_SUCCESS, ErrorEvent, RunContext
from .sinks import EventSink


def get_runner(manifest: ToolManifest, diagnostics=None) -> ProcessRunner:
    """Runner for a manifest's runtime; declared-but-unsupported runtimes raise."""
    if manifest.runtime == RUNTIME_PROCESS:
        return ProcessRunner(diagnostics=diagnostics)
    raise NotImplementedRuntimeError(manifest.runtime)


class ToolManager:
    def __init__(
        self,
        tools_root: Path | str,
        config_store: Optional[ConfigStore] = None,
        workspace_root: Path | str | None = None,
        diagnostics=None,
    ):
        self.tools_root = Path(tools_root)
        self.config_store = config_store or ConfigStore()
        self.workspace_root = Path(workspace_root) if workspace_root else Path.cwd()
        self._diagnostics = diagnostics

    def discover(self) -> DiscoveryResult:
        return discover_tools(self.tools_root)

    def resolve(self, tool_id: str, discovery: Optional[DiscoveryResult] = None) -> ResolvedTool:
        discovery = discovery or self.discover()
        tool = discovery.get(tool_id)
        if tool is None:
            known = ", ".join(discovery.ids()) or "(none)"
            raise ToolNotFoundError(f'Unknown tool: "{tool_id}". Available: {known}')
        return tool

    def build_context(self, tool: ResolvedTool, document: ConfigDocument) -> RunContext:
        keys = tool.manifest.required_config
        missing = self.config_store.missing_keys(document, keys)
        if missing:
            core_logger.warning(f"tool_id={tool.id} missing required config keys: {', '.join(missing)}")
        return RunContext(
            tool_id=tool.id,
            config=self.config_store.extract(document, keys),
            workspace_root=str(self.workspace_root.resolve()),
        )

    def run(
        self,
        tool_id: str,
        input: Optional[Dict[str, Any]],
        sink: EventSink,
        options: Optional[RunnerOptions] = None,
        cwd: Path | str | None = None,
        discovery: Optional[DiscoveryResult] = None,
    ) -> int:
        """Run a tool to completion, streaming its events into ``sink``.

        Returns 0 when the tool exited 0 without emitting an error event, 1
        otherwise. Config, lookup and runner errors propagate.
        """
        document = self.config_store.load(cwd or self.workspace_root)
        tool = self.resolve(tool_id, discovery)
        runner = get_runner(tool.manifest, diagnostics=self._diagnostics)
        context = self.build_context(tool, document)

        saw_error = False
        try:
            with runner.run(tool, context, input, options) as run:
                for event in run:
                    if isinstance(event, ErrorEvent):
                        saw_error = True
                    sink.emit(event)
        finally:
            sink.flush()
        core_logger.debug(f"run finished tool_id={tool_id} exit_code={run.exit_code} guardrail={run.guardrail}")
        if saw_error or run.exit_code != EXIT_SUCCESS:
            return 1
        return 0


__all__ = ["ToolManager", "get_runner"]
