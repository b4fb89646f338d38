"""CLI tools: bugops run, bugops jobs, bugops init."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from importlib import metadata
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from bugops.config import ConfigLoadError, ConfigManager, OperatorConfig
from bugops.errors import StartupError

app = typer.Typer(
    name="bugops",
    help="bugops: scheduled tracker reports and bug housekeeping driven from chat.",
)
console = Console()

TEMPLATE = Path(__file__).resolve().parents[1] / "templates" / "bugops.yaml"


def _load_config(config: str) -> OperatorConfig:
    try:
        return ConfigManager.load(config_path=config or None).get()
    except (ConfigLoadError, ValidationError) as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(2) from exc


def init_config_command(path: str = ".", force: bool = False) -> Path:
    """Create bugops.yaml from the packaged template."""
    target_dir = Path(path).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)
    output_path = target_dir / "bugops.yaml"
    if output_path.exists() and not force:
        raise FileExistsError(f"Config already exists: {output_path}")
    output_path.write_text(TEMPLATE.read_text(encoding="utf-8"), encoding="utf-8")
    console.print(f"[green]Created[/green] {output_path}")
    return output_path


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing bugops.yaml"),
) -> None:
    """Generate a default bugops.yaml in the target directory."""
    try:
        init_config_command(path=path, force=force)
    except FileExistsError as exc:
        console.print(f"[red]{exc}[/red] (use --force to overwrite)")
        raise typer.Exit(1) from exc


@app.command("jobs")
def jobs_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
) -> None:
    """List controllers, reports and schedules from the configuration."""
    from bugops.jobs.controllers import CONTROLLER_TYPES
    from bugops.jobs.reports import BUILTIN_REPORTS

    cfg = _load_config(config)
    disabled = set(cfg.effective_disabled_jobs())
    console.print("[bold]Controllers[/bold]")
    for controller_type in CONTROLLER_TYPES:
        marker = " [yellow](disabled)[/yellow]" if controller_type.name in disabled else ""
        console.print(f"  {controller_type.name}{marker}")
    console.print("[bold]Reports[/bold]")
    for name in sorted(BUILTIN_REPORTS):
        console.print(f"  {name}")
    console.print("[bold]Schedules[/bold]")
    for entry in cfg.schedules:
        when = ", ".join(entry.when) or "manual only"
        for report in entry.reports:
            marker = "" if report in BUILTIN_REPORTS else " [red](unknown)[/red]"
            console.print(f"  {escape(report)}@{escape(entry.channel)} {escape(f'[{when}]')}{marker}")


@app.command("run")
def run_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    user: str = typer.Option("console", "--user", help="Chat user name for console commands"),
) -> None:
    """Run the operator; chat commands are read from stdin."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    cfg = _load_config(config)
    try:
        asyncio.run(_serve(cfg, user=user))
    except StartupError as exc:
        console.print(f"[red]Startup failed:[/red] {exc}")
        raise typer.Exit(1) from exc


async def _serve(cfg: OperatorConfig, *, user: str) -> None:
    from bugops.chat.console import ConsoleListener, ConsoleTransport
    from bugops.operator import Operator
    from bugops.store import FileConfigStore
    from bugops.tracker.client import RestTrackerClient

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, shutdown.set)

    tracker = RestTrackerClient(
        cfg.tracker.endpoint,
        api_key=cfg.credentials.api_key.get_secret_value(),
        username=cfg.credentials.username,
        password=cfg.credentials.password.get_secret_value(),
        timeout_seconds=cfg.tracker.timeout_seconds,
    )
    transport = ConsoleTransport()
    operator = Operator(
        cfg,
        tracker=tracker,
        transport=transport,
        store=FileConfigStore(cfg.store_path),
        listener=ConsoleListener(transport, user=user),
    )
    try:
        await operator.run(shutdown)
    finally:
        await tracker.aclose()


def _version() -> str:
    try:
        return metadata.version("bugops")
    except metadata.PackageNotFoundError:
        return "unknown"


@app.command("version")
def version_command() -> None:
    """Print the installed version."""
    console.print(f"bugops {_version()}")


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
