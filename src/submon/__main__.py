"""CLI entry point for submon."""

import logging
import re
from collections.abc import Collection
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from typer.core import TyperGroup

from submon import __version__
from submon.config import (
    FORMAT_ALIASES,
    Config,
    OutputFormat,
    SortKey,
    config_to_dict,
    display_config_warnings,
    load_config,
    save_config,
)
from submon.subagent_monitor import run_subagent_monitor
from submon.utils import coerce_choice, parse_positive_number
from submon.xdg_paths import get_config_file_path

WATCH_FLAGS = ("--watch", "-w")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")


def split_watch_interval(args: list[str], commands: Collection[str] = ()) -> list[str]:
    """Rewrite ``--watch N`` as ``--watch --interval N``.

    The token after a watch flag is taken as its interval when it is a
    number, or any other word that is not an option or a sub-command name.
    ``--watch=N`` is split the same way.

    Args:
        args: Raw command-line tokens.
        commands: Sub-command names that must never be consumed.

    Returns:
        The rewritten tokens.
    """
    result: list[str] = []
    i = 0
    while i < len(args):
        token = args[i]
        i += 1
        if token == "--":
            result.extend(args[i - 1 :])
            break
        if token.startswith("--watch="):
            result.extend(["--watch", "--interval", token.partition("=")[2]])
            continue
        result.append(token)
        if token in WATCH_FLAGS and i < len(args):
            value = args[i]
            if _NUMBER_RE.fullmatch(value) or (not value.startswith("-") and value not in commands):
                result.extend(["--interval", value])
                i += 1
    return result


class MonitorGroup(TyperGroup):
    """Root command group that accepts an interval right after ``--watch``."""

    def parse_args(self, ctx: typer.Context, args: list[str]) -> list[str]:
        return super().parse_args(ctx, split_watch_interval(args, self.commands))


app = typer.Typer(
    name="submon",
    help="Monitor active OpenClaw subagents.",
    no_args_is_help=False,
    cls=MonitorGroup,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"submon {__version__}")
        raise typer.Exit()


def configure_logging(debug: bool) -> None:
    """Route log records to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=debug)],
        force=True,
    )


def resolve_config(
    base: Config,
    output_format: str | None = None,
    interval: str | None = None,
    alert_long: str | None = None,
    sort: str | None = None,
    filter_model: str | None = None,
) -> Config:
    """Apply command-line values over the loaded config.

    Unknown or non-numeric values fall back to the loaded setting rather
    than failing.

    Args:
        base: Config loaded from file and environment.
        output_format: --format value.
        interval: --interval value.
        alert_long: --alert-long value.
        sort: --sort value.
        filter_model: --filter-model value.

    Returns:
        The effective Config.
    """
    update: dict[str, object] = {
        "format": coerce_choice(output_format, OutputFormat, base.format, FORMAT_ALIASES),
        "watch_interval": parse_positive_number(interval, base.watch_interval),
        "alert_long": parse_positive_number(alert_long, base.alert_long),
        "sort": coerce_choice(sort, SortKey, base.sort),
    }
    if filter_model is not None:
        update["filter_model"] = filter_model.strip() or None
    return base.model_copy(update=update)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    output_format: Annotated[
        str | None,
        typer.Option("--format", "-f", help="Output format: table, json or compact."),
    ] = None,
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Refresh continuously; an optional value sets the interval."),
    ] = False,
    interval: Annotated[
        str | None,
        typer.Option("--interval", "-i", help="Watch refresh interval in seconds (default: 5)."),
    ] = None,
    alert_long: Annotated[
        str | None,
        typer.Option("--alert-long", "-a", help="Alert when a subagent runs longer than this many minutes."),
    ] = None,
    sort: Annotated[
        str | None,
        typer.Option("--sort", "-s", help="Sort order: time, model or label."),
    ] = None,
    filter_model: Annotated[
        str | None,
        typer.Option("--filter-model", "-m", help="Only show one model family (opus, sonnet, codex, haiku)."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-D", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version."),
    ] = None,
) -> None:
    """Show active subagents with runtime, estimated progress and model.

    Defaults can be set in the config file or with the SUBAGENT_MONITOR_FORMAT,
    SUBAGENT_MONITOR_ALERT_LONG and SUBAGENT_MONITOR_WATCH_INTERVAL
    environment variables; flags win over both.

    Examples:
        submon                          # Table of active subagents
        submon -f json                  # Machine-readable snapshot
        submon -f compact --watch 10    # Compact view, refresh every 10s
        submon -m opus --sort label     # Only Opus agents, by label
        submon -a 5                     # Alert on agents running over 5 minutes
    """
    if ctx.invoked_subcommand is not None:
        return

    configure_logging(debug)

    base, warnings = load_config(config_path)
    if warnings:
        display_config_warnings(warnings, err_console)

    config = resolve_config(base, output_format, interval, alert_long, sort, filter_model)
    run_subagent_monitor(config, watch=watch, console=console, err_console=err_console)


@app.command()
def init_config(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Write a default config file."""
    path = config_path or get_config_file_path()
    if path.exists() and not force:
        err_console.print(f"[red]Error:[/] Config already exists: {path} (use --force to overwrite)")
        raise typer.Exit(1)

    save_config(Config(), path)
    console.print(f"[green]✓[/] Config written to {path}")


config_app = typer.Typer(
    name="config",
    help="Configuration management commands.",
)
app.add_typer(config_app, name="config")


@config_app.command("validate")
def config_validate(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
) -> None:
    """Validate the config file and environment and report warnings."""
    _config, warnings = load_config(config_path, strict=True)

    if warnings:
        display_config_warnings(warnings, err_console)
        raise typer.Exit(1)

    console.print("[green]✓[/] Configuration is valid.")


@config_app.command("show")
def config_show(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
) -> None:
    """Show effective merged configuration."""
    config, warnings = load_config(config_path)

    if warnings:
        display_config_warnings(warnings, err_console)

    dumped = yaml.dump(config_to_dict(config), default_flow_style=False, sort_keys=False)
    console.print(dumped, markup=False, emoji=False)


if __name__ == "__main__":
    app()
