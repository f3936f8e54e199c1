"""Filesystem discovery of tool descriptors."""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import DiscoveryError, ManifestError, RegistrationError
from .logging import core_logger
from .manifest import MANIFEST_FILENAME, ResolvedTool, load_manifest
from .registry import ToolRegistry


@dataclass
class DiscoveryIssue:
    file: str
    message: str


@dataclass
class DiscoveryResult:
    tools: List[ResolvedTool] = field(default_factory=list)
    # Descriptors that failed to load or validate; non-fatal
    errors: List[DiscoveryIssue] = field(default_factory=list)

    def get(self, tool_id: str) -> Optional[ResolvedTool]:
        for tool in self.tools:
            if tool.id == tool_id:
                return tool
        return None

    def ids(self) -> List[str]:
        return [t.id for t in self.tools]


def discover_tools(root: Path | str) -> DiscoveryResult:
    """Scan ``root`` recursively for descriptor files.

    Expected layout is ``<root>/<category>/<tool>/manifest.json`` but any depth
    works. A missing root yields an empty result; a root that exists but is
    not a directory raises DiscoveryError. Bad descriptors are collected in
    ``errors`` and never block the rest.
    """
    root = Path(root)
    if not root.exists():
        core_logger.debug(f"tools root {root} does not exist; empty catalog")
        return DiscoveryResult()
    if not root.is_dir():
        raise DiscoveryError(f"Tools root is not a directory: {root}")

    registry = ToolRegistry()
    errors: List[DiscoveryIssue] = []
    for path in sorted(p for p in root.rglob(MANIFEST_FILENAME) if p.is_file()):
        try:
            registry.register(load_manifest(path))
        except (ManifestError, RegistrationError) as e:
            core_logger.debug(f"skipping descriptor {path}: {e}")
            errors.append(DiscoveryIssue(file=str(path), message=str(e)))
    core_logger.debug(f"discovered {len(registry)} tool(s) under {root} ({len(errors)} invalid)")
    return DiscoveryResult(tools=registry.list(), errors=errors)


__all__ = ["discover_tools", "DiscoveryResult", "DiscoveryIssue"]
