import json
import shutil

import pytest

from toolctl.cli import build_parser, main

from conftest import FIXTURE_TOOLS


@pytest.fixture
def home(tmp_path, monkeypatch):
    h = tmp_path / "home"
    monkeypatch.setenv("TOOLCTL_HOME", str(h))
    return h


@pytest.fixture
def configured(home):
    home.mkdir()
    (home / "config.json").write_text(
        json.dumps({"schemaVersion": 1, "tools": {"echo": {"greeting": "hi"}}}), encoding="utf-8"
    )
    return home


def test_cli_parser_defaults():
    parser = build_parser()
    args = parser.parse_args(["run", "echo"])
    assert args.command == "run"
    assert args.json_mode is False
    assert args.timeout_ms == 30000
    assert args.min_log_level == "info"


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_list(capsys, tmp_path):
    tools = tmp_path / "tools"
    shutil.copytree(FIXTURE_TOOLS, tools)
    bad = tools / "bad"
    bad.mkdir()
    (bad / "manifest.json").write_text("{}", encoding="utf-8")
    assert main(["list", "--tools-dir", str(tools)]) == 0
    captured = capsys.readouterr()
    assert "echo" in captured.out
    assert "1 tool found." in captured.out
    assert "[warn] skipping invalid manifest" in captured.err


def test_list_env_tools_dir(capsys, monkeypatch):
    monkeypatch.setenv("TOOLCTL_TOOLS_DIR", str(FIXTURE_TOOLS))
    assert main(["list"]) == 0
    assert "echo" in capsys.readouterr().out


def test_list_empty(capsys, tmp_path):
    assert main(["list", "--tools-dir", str(tmp_path / "none")]) == 0
    assert "No tools found." in capsys.readouterr().out


def test_init_is_idempotent(capsys, home):
    assert main(["init"]) == 0
    assert (home / "config.json").is_file()
    assert "initialised" in capsys.readouterr().out
    assert main(["init"]) == 0
    assert "already exists" in capsys.readouterr().out


def test_run_without_config_initializes_and_fails(capsys, home):
    assert main(["run", "echo", "--tools-dir", str(FIXTURE_TOOLS)]) == 1
    assert (home / "config.json").is_file()
    assert "Config initialised" in capsys.readouterr().err


def test_run_console(capsys, configured, tmp_path):
    code = main(
        ["run", "echo", "--tools-dir", str(FIXTURE_TOOLS), "--workspace", str(tmp_path), "--input", '{"name": "Ada"}']
    )
    assert code == 0
    out = capsys.readouterr().out
    assert "▶ echo" in out
    assert "ℹ greeting Ada" in out
    assert "✓ Done" in out
    assert '"echo.greeting": "hi"' in out


def test_run_json(capsys, configured, tmp_path):
    input_file = tmp_path / "input.json"
    input_file.write_text('{"name": "Bob"}', encoding="utf-8")
    code = main(
        ["run", "echo", "--json", "--tools-dir", str(FIXTURE_TOOLS), "--workspace", str(tmp_path), "--input", f"@{input_file}"]
    )
    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    events = [json.loads(line) for line in lines]
    assert [e["type"] for e in events] == ["started", "log", "result"]
    assert events[-1]["payload"]["message"] == "Hello, Bob!"


def test_run_unknown_tool(capsys, configured):
    assert main(["run", "ghost", "--tools-dir", str(FIXTURE_TOOLS)]) == 1
    assert 'ToolNotFoundError: Unknown tool: "ghost"' in capsys.readouterr().err


@pytest.mark.parametrize("raw", ["[1, 2]", "{broken"])
def test_run_bad_input(capsys, configured, raw):
    assert main(["run", "echo", "--tools-dir", str(FIXTURE_TOOLS), "--input", raw]) == 1
    assert "Invalid --input" in capsys.readouterr().err


def test_run_rejects_non_positive_guardrail(capsys, configured):
    assert main(["run", "echo", "--tools-dir", str(FIXTURE_TOOLS), "--max-events", "0"]) == 1
    assert "max_events" in capsys.readouterr().err
