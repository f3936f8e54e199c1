import io
import json
import textwrap
from pathlib import Path

import pytest

from toolctl.core.manifest import load_manifest
from toolctl.core.protocol import RunContext

FIXTURES = Path(__file__).resolve().parent / "fixtures"
FIXTURE_TOOLS = FIXTURES / "tools"

# Prepended to every generated tool script
PRELUDE = '''\
import json, sys, time

def emit(type_, payload, tool_id="__TOOL_ID__"):
    sys.stdout.write(json.dumps({"type": type_, "timestamp": "2024-01-01T00:00:00.000Z", "toolId": tool_id, "payload": payload}) + "\\n")
    sys.stdout.flush()

'''


def write_manifest(tool_dir: Path, **overrides) -> Path:
    data = {
        "schemaVersion": 1,
        "id": tool_dir.name,
        "version": "0.1.0",
        "name": tool_dir.name.title(),
        "description": f"{tool_dir.name} test tool",
        "runtime": "process",
        "entry": "main.py",
    }
    data.update(overrides)
    tool_dir.mkdir(parents=True, exist_ok=True)
    path = tool_dir / "manifest.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def tools_root(tmp_path: Path) -> Path:
    root = tmp_path / "tools"
    root.mkdir()
    return root


@pytest.fixture
def make_tool(tools_root: Path):
    """Create ``<tools_root>/<tool_id>/`` with a manifest and a python script body."""

    def _make(script: str, tool_id: str = "t", **manifest_overrides):
        tool_dir = tools_root / tool_id
        path = write_manifest(tool_dir, id=tool_id, **manifest_overrides)
        body = PRELUDE.replace("__TOOL_ID__", tool_id) + textwrap.dedent(script)
        (tool_dir / "main.py").write_text(body, encoding="utf-8")
        return load_manifest(path)

    return _make


@pytest.fixture
def context(tmp_path: Path) -> RunContext:
    return RunContext(tool_id="t", config={}, workspace_root=str(tmp_path))


@pytest.fixture
def diag() -> io.BytesIO:
    return io.BytesIO()
