"""Tool descriptor (manifest.json) parsing and validation.

A descriptor is externally authored JSON, so nothing about its shape is
trusted until it has been checked. Validation runs in a fixed order so the
first reported problem is the most actionable one:

1. root is a JSON object
2. ``schemaVersion`` matches MANIFEST_VERSION (tells the user what to upgrade)
3. required string fields are present
4. ``runtime`` is a known runtime
5. ``id`` is kebab-case
6. optional list fields hold strings
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

from .errors import ManifestError

MANIFEST_FILENAME = "manifest.json"
MANIFEST_VERSION = 1

RUNTIME_PROCESS = "process"
# Declared so descriptors validate, but not executed yet.
UNIMPLEMENTED_RUNTIMES = ("node", "dotnet", "powershell")
VALID_RUNTIMES = (RUNTIME_PROCESS,) + UNIMPLEMENTED_RUNTIMES

REQUIRED_FIELDS = ("id", "version", "name", "description", "runtime", "entry")
ID_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


@dataclass(frozen=True)
class ToolManifest:
    schema_version: int
    id: str
    version: str
    name: str
    description: str
    runtime: str
    entry: str
    required_config: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedTool:
    """A validated manifest plus the absolute paths derived from it."""

    manifest: ToolManifest
    dir: Path
    entry_path: Path
    manifest_path: Path = field(compare=False)

    @property
    def id(self) -> str:
        return self.manifest.id


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return {dict: "object", list: "array", str: "string", bool: "boolean"}.get(type(value), type(value).__name__)


def _string_list(obj: Dict[str, Any], key: str, fail) -> Tuple[str, ...]:
    value = obj.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        fail(f'field "{key}" must be an array of strings')
    return tuple(value)


def validate_manifest(raw: Any, file_path: Path | str) -> ToolManifest:
    """Validate parsed JSON against the manifest shape; raise ManifestError otherwise."""

    def fail(msg: str):
        raise ManifestError(f"Invalid manifest at {file_path}: {msg}")

    if not isinstance(raw, dict):
        fail("root must be a JSON object")

    version = raw.get("schemaVersion")
    # bool is an int subclass and 1.0 == 1; only the integer 1 is accepted
    if isinstance(version, bool) or not isinstance(version, int) or version != MANIFEST_VERSION:
        fail(
            f"unsupported schemaVersion: {version}. Expected {MANIFEST_VERSION}. "
            "Update the tool or the orchestrator."
        )

    for key in REQUIRED_FIELDS:
        if key not in raw:
            fail(f'field "{key}" is missing')
        if not isinstance(raw[key], str):
            fail(f'field "{key}" must be a string, got {_type_name(raw[key])}')

    if raw["runtime"] not in VALID_RUNTIMES:
        fail(f'unknown runtime "{raw["runtime"]}". Valid: {", ".join(VALID_RUNTIMES)}')

    if not ID_PATTERN.match(raw["id"]):
        fail(f'field "id" value "{raw["id"]}" must be kebab-case (e.g. "my-tool")')

    return ToolManifest(
        schema_version=version,
        id=raw["id"],
        version=raw["version"],
        name=raw["name"],
        description=raw["description"],
        runtime=raw["runtime"],
        entry=raw["entry"],
        required_config=_string_list(raw, "requiredConfig", fail),
        tags=_string_list(raw, "tags", fail),
    )


def load_manifest(manifest_path: Path) -> ResolvedTool:
    """Load and validate a single descriptor file."""
    manifest_path = Path(manifest_path).resolve()
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError(f"Cannot read manifest at {manifest_path}: {e}") from e
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise ManifestError(f"Invalid JSON in manifest {manifest_path}: {e}") from e
    manifest = validate_manifest(data, manifest_path)
    tool_dir = manifest_path.parent
    return ResolvedTool(
        manifest=manifest,
        dir=tool_dir,
        entry_path=(tool_dir / manifest.entry).resolve(),
        manifest_path=manifest_path,
    )


__all__ = [
    "MANIFEST_FILENAME",
    "MANIFEST_VERSION",
    "RUNTIME_PROCESS",
    "UNIMPLEMENTED_RUNTIMES",
    "VALID_RUNTIMES",
    "ToolManifest",
    "ResolvedTool",
    "validate_manifest",
    "load_manifest",
]
