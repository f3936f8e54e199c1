import json

import pytest

from toolctl.core.config_store import CONFIG_TEMPLATE, ConfigDocument, ConfigStore, merge_documents
from toolctl.core.errors import ConfigError


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def home(tmp_path):
    return tmp_path / "home"


@pytest.fixture
def project(tmp_path):
    p = tmp_path / "project"
    p.mkdir()
    return p


def test_home_defaults_to_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TOOLCTL_HOME", str(tmp_path / "h"))
    assert ConfigStore().home == tmp_path / "h"


def test_missing_global_config(home, project):
    store = ConfigStore(home)
    assert not store.exists()
    with pytest.raises(ConfigError) as exc:
        store.load(project)
    assert "toolctl init" in str(exc.value)
    assert exc.value.code == "CONFIG_ERROR"


def test_initialize_writes_template_once(home):
    store = ConfigStore(home)
    path = store.initialize()
    assert path == home / "config.json"
    assert json.loads(path.read_text(encoding="utf-8")) == CONFIG_TEMPLATE

    path.write_text(json.dumps({"schemaVersion": 1, "tools": {"a": {"b": 1}}}), encoding="utf-8")
    assert store.initialize() == path
    assert json.loads(path.read_text(encoding="utf-8"))["tools"] == {"a": {"b": 1}}


def test_load_global_only(home, project):
    _write_json(home / "config.json", {"schemaVersion": 1, "tools": {"azdo": {"org": "acme"}}})
    doc = ConfigStore(home).load(project)
    assert doc.schema_version == 1
    assert doc.tools == {"azdo": {"org": "acme"}}


def test_project_layer_deep_merges(home, project):
    _write_json(
        home / "config.json",
        {
            "schemaVersion": 1,
            "tools": {
                "azdo": {"org": "acme", "token": "global", "opts": {"retries": 3, "verbose": False}},
                "jira": {"url": "https://jira"},
            },
        },
    )
    _write_json(
        project / ".toolctl" / "config.json",
        {"schemaVersion": 1, "tools": {"azdo": {"token": "project", "opts": {"verbose": True}}, "new": {"x": 1}}},
    )
    doc = ConfigStore(home).load(project)
    assert doc.tools == {
        "azdo": {"org": "acme", "token": "project", "opts": {"retries": 3, "verbose": True}},
        "jira": {"url": "https://jira"},
        "new": {"x": 1},
    }


def test_non_mapping_overlay_replaces(home, project):
    _write_json(home / "config.json", {"schemaVersion": 1, "tools": {"a": {"list": [1, 2], "obj": {"k": 1}}}})
    _write_json(project / ".toolctl" / "config.json", {"schemaVersion": 1, "tools": {"a": {"list": [3], "obj": "flat"}}})
    doc = ConfigStore(home).load(project)
    assert doc.tools == {"a": {"list": [3], "obj": "flat"}}


def test_merge_documents_does_not_mutate_inputs():
    g = ConfigDocument(schema_version=1, tools={"a": {"b": 1}})
    p = ConfigDocument(schema_version=1, tools={"a": {"c": 2}})
    merged = merge_documents(g, p)
    assert merged.tools == {"a": {"b": 1, "c": 2}}
    assert g.tools == {"a": {"b": 1}}
    assert p.tools == {"a": {"c": 2}}


def test_yaml_layers(home, project):
    (home).mkdir(parents=True)
    (home / "config.yaml").write_text("schemaVersion: 1\ntools:\n  svc:\n    token: abc\n    port: 8080\n", encoding="utf-8")
    (project / ".toolctl").mkdir()
    (project / ".toolctl" / "config.yml").write_text("schemaVersion: 1\ntools:\n  svc:\n    port: 9090\n", encoding="utf-8")
    store = ConfigStore(home)
    assert store.exists()
    assert store.global_path == home / "config.yaml"
    doc = store.load(project)
    assert doc.tools == {"svc": {"token": "abc", "port": 9090}}


def test_json_wins_over_yaml(home, project):
    _write_json(home / "config.json", {"schemaVersion": 1, "tools": {"src": {"v": "json"}}})
    (home / "config.yaml").write_text("schemaVersion: 1\ntools:\n  src:\n    v: yaml\n", encoding="utf-8")
    assert ConfigStore(home).load(project).tools["src"]["v"] == "json"


@pytest.mark.parametrize("layer", ["global", "project"])
def test_version_mismatch_names_layer(home, project, layer):
    global_version = 2 if layer == "global" else 1
    _write_json(home / "config.json", {"schemaVersion": global_version, "tools": {}})
    _write_json(project / ".toolctl" / "config.json", {"schemaVersion": 5, "tools": {}})
    with pytest.raises(ConfigError) as exc:
        ConfigStore(home).load(project)
    msg = str(exc.value)
    assert msg.startswith(f"{layer} config at")
    assert "unsupported schemaVersion" in msg


def test_invalid_json_is_config_error(home, project):
    home.mkdir()
    (home / "config.json").write_text("{oops", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON in global config"):
        ConfigStore(home).load(project)


@pytest.mark.parametrize("fname", ["config.json", "config.yaml"])
def test_undecodable_layer_is_config_error(home, project, fname):
    home.mkdir()
    (home / fname).write_bytes(b'{"schemaVersion": 1, "tools": {"a": "\xff"}}')
    with pytest.raises(ConfigError) as exc:
        ConfigStore(home).load(project)
    assert "not valid UTF-8" in str(exc.value)
    assert fname in str(exc.value)


def test_invalid_yaml_is_config_error(home, project):
    home.mkdir()
    (home / "config.yaml").write_text("schemaVersion: [1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML in global config"):
        ConfigStore(home).load(project)


@pytest.mark.parametrize("raw", [[1, 2], {"schemaVersion": 1, "tools": []}, {"tools": {}}, {"schemaVersion": 1.0, "tools": {}}])
def test_malformed_documents(home, project, raw):
    _write_json(home / "config.json", raw)
    with pytest.raises(ConfigError):
        ConfigStore(home).load(project)


def test_tools_section_optional(home, project):
    _write_json(home / "config.json", {"schemaVersion": 1})
    assert ConfigStore(home).load(project).tools == {}


def test_extract_is_flat_and_minimal():
    doc = ConfigDocument(
        schema_version=1,
        tools={"azdo": {"org": "acme", "token": "pat-xxx", "nested": {"deep": [1]}}, "other": {"secret": "s"}},
    )
    store = ConfigStore("/unused")
    assert store.extract(doc, ["azdo.token", "azdo.nested.deep"]) == {"azdo.token": "pat-xxx", "azdo.nested.deep": [1]}
    # a whole section is addressable, siblings never leak
    assert store.extract(doc, ["other"]) == {"other": {"secret": "s"}}
    assert store.extract(doc, []) == {}


def test_extract_omits_missing_keys():
    doc = ConfigDocument(schema_version=1, tools={"azdo": {"org": "acme", "token": None}})
    store = ConfigStore("/unused")
    keys = ["azdo.org", "azdo.missing", "nope.x", "azdo.org.deeper", "azdo.token"]
    assert store.extract(doc, keys) == {"azdo.org": "acme", "azdo.token": None}
    assert store.missing_keys(doc, keys) == ["azdo.missing", "nope.x", "azdo.org.deeper"]
