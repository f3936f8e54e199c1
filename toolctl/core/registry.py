"""In-memory tool catalog keyed by id."""
from __future__ import annotations
from typing import Dict, List
import threading

from .errors import RegistrationError
from .manifest import ResolvedTool


class ToolRegistry:
    def __init__(self):
        self._lock = threading.RLock()
        self._tools: Dict[str, ResolvedTool] = {}

    def register(self, tool: ResolvedTool):
        with self._lock:
            existing = self._tools.get(tool.id)
            if existing is not None:
                raise RegistrationError(f"Duplicate tool id: {tool.id} (already defined in {existing.manifest_path})")
            self._tools[tool.id] = tool

    def list(self) -> List[ResolvedTool]:
        """All tools sorted by id."""
        with self._lock:
            return [self._tools[k] for k in sorted(self._tools)]

    def __len__(self) -> int:
        return len(self._tools)


__all__ = ["ToolRegistry"]
