"""CLI entrypoint for toolctl."""
from __future__ import annotations
import argparse
import json
import os
import sys
from pathlib import Path

from .core.config_store import ConfigStore
from .core.errors import ToolctlError
from .core.loader import DiscoveryResult, discover_tools
from .core.logging import configure as configure_logging
from .core.process_runner import RunnerOptions
from .core.protocol import LOG_LEVELS
from .core.sinks import create_event_sink
from .core.tool_manager import ToolManager

_DEFAULTS = RunnerOptions()


def _default_tools_dir() -> str:
    return os.getenv("TOOLCTL_TOOLS_DIR") or str(Path.cwd() / "tools")


def build_parser():
    p = argparse.ArgumentParser(prog="toolctl", description="Personal tool orchestrator")
    p.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper, help="Orchestrator log level")
    p.add_argument("--log-dir", help="Directory to write log file (toolctl.log). If not set, only stderr is used.")
    sub = p.add_subparsers(dest="command")

    ls = sub.add_parser("list", help="List available tools")
    ls.add_argument("--tools-dir", default=None, help="Tools root (default: $TOOLCTL_TOOLS_DIR or ./tools)")

    run = sub.add_parser("run", help="Run a tool")
    run.add_argument("tool_id")
    run.add_argument("--json", action="store_true", dest="json_mode", help="Passthrough raw NDJSON output")
    run.add_argument("--input", default=None, help="Tool input as a JSON object, or @path to a JSON file")
    run.add_argument("--tools-dir", default=None, help="Tools root (default: $TOOLCTL_TOOLS_DIR or ./tools)")
    run.add_argument("--workspace", default=None, help="Workspace root handed to the tool (default: cwd)")
    run.add_argument("--timeout-ms", type=int, default=_DEFAULTS.timeout_ms)
    run.add_argument("--max-output-bytes", type=int, default=_DEFAULTS.max_output_bytes)
    run.add_argument("--max-events", type=int, default=_DEFAULTS.max_events)
    run.add_argument("--min-log-level", choices=list(LOG_LEVELS), default="info", help="Hide tool log events below this level")
    run.add_argument("--timestamps", action="store_true", help="Prefix tool log lines with their timestamp")

    sub.add_parser("init", help="Create the global config template if missing")
    return p


def _parse_input(raw: str | None) -> dict:
    if not raw:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("--input must be a JSON object")
    return value


def _render_list(result: DiscoveryResult, tools_root: str, out=None, err=None):
    out = out or sys.stdout
    err = err or sys.stderr
    for issue in result.errors:
        err.write(f"[warn] skipping invalid manifest: {issue.file}\n       {issue.message}\n")
    if not result.tools:
        out.write(f"No tools found.\n\nExpected manifests in: {tools_root}\n")
        return
    rows = [(t.manifest.id, t.manifest.version, t.manifest.runtime, t.manifest.description) for t in result.tools]
    id_w = max(4, *(len(r[0]) for r in rows))
    ver_w = max(7, *(len(r[1]) for r in rows))
    rt_w = max(7, *(len(r[2]) for r in rows))
    header = f"{'ID':<{id_w}}  {'VERSION':<{ver_w}}  {'RUNTIME':<{rt_w}}  DESCRIPTION"
    out.write(f"\n{header}\n{'-' * (len(header) + 4)}\n")
    for tid, ver, rt, desc in rows:
        out.write(f"{tid:<{id_w}}  {ver:<{ver_w}}  {rt:<{rt_w}}  {desc}\n")
    n = len(rows)
    out.write(f"\n{n} tool{'' if n == 1 else 's'} found.\n\n")


def cmd_list(args) -> int:
    tools_root = args.tools_dir or _default_tools_dir()
    try:
        result = discover_tools(tools_root)
    except ToolctlError as e:
        print(f"Discovery error: {e}", file=sys.stderr)
        return 1
    _render_list(result, tools_root)
    return 0


def cmd_init(_args) -> int:
    store = ConfigStore()
    existed = store.exists()
    path = store.initialize()
    print(f"Config {'already exists' if existed else 'initialised'} at {path}")
    return 0


def cmd_run(args) -> int:
    try:
        tool_input = _parse_input(args.input)
    except (OSError, ValueError) as e:
        print(f"Invalid --input: {e}", file=sys.stderr)
        return 1

    store = ConfigStore()
    if not store.exists():
        path = store.initialize()
        print(
            f"Config initialised at {path}\nFill in your settings and run 'toolctl run {args.tool_id}' again.",
            file=sys.stderr,
        )
        return 1

    try:
        options = RunnerOptions(
            timeout_ms=args.timeout_ms,
            max_output_bytes=args.max_output_bytes,
            max_events=args.max_events,
        )
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    manager = ToolManager(
        tools_root=args.tools_dir or _default_tools_dir(),
        config_store=store,
        workspace_root=args.workspace,
    )
    sink = create_event_sink(args.json_mode, timestamps=args.timestamps, min_log_level=args.min_log_level)
    try:
        discovery = manager.discover()
        for issue in discovery.errors:
            sys.stderr.write(f"[warn] skipping invalid manifest: {issue.file}\n       {issue.message}\n")
        return manager.run(args.tool_id, tool_input, sink, options=options, discovery=discovery)
    except ToolctlError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1


COMMANDS = {"list": cmd_list, "run": cmd_run, "init": cmd_init}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command not in COMMANDS:
        parser.print_help()
        return 1
    if args.log_level or args.log_dir:
        configure_logging(level=args.log_level, log_dir=args.log_dir)
    return COMMANDS[args.command](args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
