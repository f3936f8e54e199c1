"""Layered configuration: a required global layer and an optional project layer.

Layers:
  1. Global:  ``$TOOLCTL_HOME/config.json`` (``~/.toolctl`` by default), required
  2. Project: ``<cwd>/.toolctl/config.json``, optional, merged over global

Either layer may be written as ``config.yaml``/``config.yml`` instead; JSON
wins when several files exist. Each layer is version-checked on its own
before the deep merge. Project values win; keys absent from one layer pass
through from the other.
"""
from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigError
from .logging import core_logger

CONFIG_VERSION = 1
CONFIG_FILENAMES = ("config.json", "config.yaml", "config.yml")
PROJECT_DIRNAME = ".toolctl"

CONFIG_TEMPLATE: Dict[str, Any] = {
    "schemaVersion": CONFIG_VERSION,
    "tools": {},
}


class ConfigDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(alias="schemaVersion")
    # tool-section name -> free-form section
    tools: Dict[str, Any] = Field(default_factory=dict)


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Merge ``overlay`` into ``base`` in place: dicts recurse, anything else is replaced."""
    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)
            continue
        base[key] = deepcopy(overlay_value)
    return base


def merge_documents(global_doc: ConfigDocument, project_doc: ConfigDocument) -> ConfigDocument:
    tools = _deep_merge(deepcopy(global_doc.tools), project_doc.tools)
    return ConfigDocument(schema_version=CONFIG_VERSION, tools=tools)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _read_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _find_layer(directory: Path) -> Optional[Path]:
    for fname in CONFIG_FILENAMES:
        p = directory / fname
        if p.is_file():
            return p
    return None


def _lookup(tools: Mapping[str, Any], dotted_key: str):
    """Walk ``dotted_key`` through nested mappings; returns (found, value)."""
    value: Any = tools
    for part in dotted_key.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return False, None
        value = value[part]
    return True, value


class ConfigStore:
    def __init__(self, home: Path | str | None = None):
        if home is None:
            home = os.getenv("TOOLCTL_HOME") or (Path.home() / ".toolctl")
        self.home = Path(home)

    @property
    def global_path(self) -> Path:
        """Path of the existing global layer, or the default JSON path if none exists."""
        return _find_layer(self.home) or self.home / CONFIG_FILENAMES[0]

    def project_dir(self, cwd: Path | str | None = None) -> Path:
        return Path(cwd or Path.cwd()) / PROJECT_DIRNAME

    def exists(self) -> bool:
        return _find_layer(self.home) is not None

    def initialize(self) -> Path:
        """Write the template global config if absent. Never overwrites user edits."""
        self.home.mkdir(parents=True, exist_ok=True)
        existing = _find_layer(self.home)
        if existing is not None:
            return existing
        path = self.home / CONFIG_FILENAMES[0]
        path.write_text(json.dumps(CONFIG_TEMPLATE, indent=2) + "\n", encoding="utf-8")
        core_logger.info(f"config template written to {path}")
        return path

    def load(self, cwd: Path | str | None = None) -> ConfigDocument:
        global_file = _find_layer(self.home)
        if global_file is None:
            raise ConfigError(
                f"Global config not found at {self.home / CONFIG_FILENAMES[0]}. Run 'toolctl init' to create it."
            )
        document = self._load_layer(global_file, "global")

        project_file = _find_layer(self.project_dir(cwd))
        if project_file is not None:
            core_logger.debug(f"merging project config {project_file}")
            document = merge_documents(document, self._load_layer(project_file, "project"))
        return document

    def extract(self, document: ConfigDocument, keys: Iterable[str]) -> Dict[str, Any]:
        """Flat ``{dotted-key: value}`` slice of the tool sections.

        A key whose path does not resolve is left out of the result; whether
        that is fatal is up to the caller.

        Example: ``extract(doc, ["azdo.token"])`` -> ``{"azdo.token": "pat-xxx"}``
        """
        result: Dict[str, Any] = {}
        for key in keys:
            found, value = _lookup(document.tools, key)
            if found:
                result[key] = value
        return result

    def missing_keys(self, document: ConfigDocument, keys: Iterable[str]) -> List[str]:
        return [k for k in keys if not _lookup(document.tools, k)[0]]

    def _load_layer(self, path: Path, layer: str) -> ConfigDocument:
        reader = _read_yaml if path.suffix in (".yml", ".yaml") else _read_json
        try:
            raw = reader(path)
        except OSError as e:
            raise ConfigError(f"Cannot read {layer} config at {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"{layer} config at {path} is not valid UTF-8: {e}") from e
        except (json.JSONDecodeError, yaml.YAMLError, RecursionError) as e:
            raise ConfigError(f"Invalid {path.suffix.lstrip('.').upper()} in {layer} config at {path}: {e}") from e
        return self._validate(raw, path, layer)

    def _validate(self, raw: Any, path: Path, layer: str) -> ConfigDocument:
        if not isinstance(raw, dict):
            raise ConfigError(f"{layer} config at {path}: root must be an object")
        version = raw.get("schemaVersion")
        if isinstance(version, bool) or not isinstance(version, int) or version != CONFIG_VERSION:
            raise ConfigError(
                f"{layer} config at {path}: unsupported schemaVersion: {version}. "
                f"Expected {CONFIG_VERSION}. Update the file by hand, or delete it and run 'toolctl init'."
            )
        tools = raw.get("tools", {})
        if tools is None:
            tools = {}
        if not isinstance(tools, dict):
            raise ConfigError(f"{layer} config at {path}: \"tools\" must be an object")
        return ConfigDocument(schema_version=version, tools=tools)


__all__ = [
    "CONFIG_VERSION",
    "CONFIG_TEMPLATE",
    "ConfigDocument",
    "ConfigStore",
    "merge_documents",
]
