"""Entry point for the healthmon CLI."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import inspect
import logging
import pkgutil
import sys
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import load_config_file, settings
from .core.engine import Engine, RunResult
from .core.plugin import Capability, Injector, PluginKind
from .errors import HealthmonError
from .scheduler import CycleScheduler, parse_duration

console = Console()
logger = logging.getLogger(__name__)


def parse_plugin_arg(value: str) -> tuple[str, dict[str, Any]]:
    """Split ``name=key:val,key2:val2`` into the reference and its options.

    Only the first ``:`` of each pair separates key from value, so URLs work
    as values.
    """
    reference, _, raw_options = value.partition("=")
    options: dict[str, Any] = {}
    for pair in filter(None, (p.strip() for p in raw_options.split(","))):
        key, sep, val = pair.partition(":")
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected key:value, got {pair!r} in {value!r}")
        options[key.strip()] = val.strip()
    if not reference:
        raise argparse.ArgumentTypeError(f"Missing plugin name in {value!r}")
    return reference, options


def build_engine(args: argparse.Namespace) -> Engine:
    """Register plugins from the command line, falling back to the config file."""
    engine = Engine()
    if args.module or args.reporter:
        for reference, options in args.module:
            engine.use(reference, options)
        for reference, options in args.reporter:
            engine.reporter(reference, options)
    else:
        engine.load_from_config(load_config_file(args.config or settings.config_file))

    if args.json and "json" not in engine.plugins.reporters:
        engine.reporter("json")
    if not len(engine.plugins.reporters):
        engine.reporter("text")
    return engine


def print_reports(result: RunResult, headers: bool = True) -> None:
    for reporter_id, error in result.reporter_errors.items():
        console.print(f"[bold red]Reporter {reporter_id} failed:[/bold red] {error}")

    show_headers = headers and len(result.reports) > 1
    for reporter_id, report in result.reports.items():
        if show_headers:
            console.rule(f"[bold]{reporter_id}")
        if isinstance(report, str):
            console.out(report, highlight=False)
        else:
            console.print(report)


async def run_cycles(engine: Engine, scheduler: CycleScheduler) -> list[RunResult]:
    try:
        return await scheduler.run()
    finally:
        await engine.shutdown()


def run_command(args: argparse.Namespace) -> int:
    try:
        engine = build_engine(args)
        pause = parse_duration(args.pause or settings.loop_pause)
    except (HealthmonError, ValueError) as e:
        console.print(Panel(str(e), title="healthmon", style="bold red"))
        return 1

    produced_output = False

    def on_result(result: RunResult) -> None:
        nonlocal produced_output
        produced_output = produced_output or bool(result.reports)
        print_reports(result, headers=not args.no_headers)

    scheduler = CycleScheduler(engine, times=args.loop, pause=pause, on_result=on_result)
    try:
        asyncio.run(run_cycles(engine, scheduler))
    except HealthmonError as e:
        console.print(Panel(str(e), title="healthmon", style="bold red"))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted after %d cycles", scheduler.run_count)

    if not produced_output:
        console.print("[yellow]No reporter produced any output[/yellow]")
        return 1
    return 0


def describe_builtins(kind: PluginKind) -> list[dict[str, Any]]:
    """Import each built-in plugin of ``kind`` and describe its capabilities + options."""
    package = importlib.import_module(kind.package)
    rows = []
    for info in sorted(pkgutil.iter_modules(package.__path__), key=lambda i: i.name):
        impl = importlib.import_module(f"{kind.package}.{info.name}")
        capabilities = Capability.detect(impl)
        options: list[str] = []
        config = getattr(impl, "config", None)
        if config is not None and not inspect.iscoroutinefunction(config):
            schema = config(Injector(engine=None, id=info.name, options={}, state={}))
            if schema is not None:
                options = [field["name"] for field in schema.describe()]
        rows.append({
            "name": info.name,
            "summary": (inspect.getdoc(impl) or "").split("\n", 1)[0],
            "capabilities": capabilities.names(),
            "options": options,
        })
    return rows


def list_command(args: argparse.Namespace) -> int:
    for kind in (PluginKind.MODULE, PluginKind.REPORTER):
        table = Table(title=f"{kind.value.capitalize()}s", title_justify="left")
        table.add_column("Name", style="bold cyan")
        table.add_column("Description")
        table.add_column("Functions", style="green")
        table.add_column("Options", style="dim")
        for row in describe_builtins(kind):
            table.add_row(row["name"], row["summary"], ", ".join(row["capabilities"]), ", ".join(row["options"]))
        console.print(table)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="healthmon", description="Pluggable server health checks")
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Run health checks and print reports")
    run_parser.add_argument(
        "-m", "--module", action="append", default=[], type=parse_plugin_arg, metavar="MOD[=k:v,...]",
        help="Module to run (repeatable); disables the config file",
    )
    run_parser.add_argument(
        "-r", "--reporter", action="append", default=[], type=parse_plugin_arg, metavar="REP[=k:v,...]",
        help="Reporter to use (repeatable); defaults to text",
    )
    run_parser.add_argument("-j", "--json", action="store_true", help="Add the JSON reporter")
    run_parser.add_argument("-l", "--loop", type=int, default=1, metavar="N", help="Number of cycles, 0 = forever")
    run_parser.add_argument("-p", "--pause", metavar="DURATION", help="Pause between cycles, e.g. 30s or 5m")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    run_parser.add_argument("--config", metavar="PATH", help="YAML config file (default from settings)")
    run_parser.add_argument("--no-headers", action="store_true", help="Do not print reporter headers")

    sub.add_parser("list", help="List built-in modules and reporters")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else getattr(logging, settings.log_level.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command == "run":
        sys.exit(run_command(args))
    elif args.command == "list":
        sys.exit(list_command(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
