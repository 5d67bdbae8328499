"""Renderers for subagent snapshots."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console, Group, RenderableType
from rich.table import Table
from rich.text import Text

from submon.config import OutputFormat
from submon.utils import format_duration, truncate

if TYPE_CHECKING:
    from submon.subagent_monitor import Snapshot, Subagent

EMPTY_MESSAGE = "📭 No active subagents."
PROGRESS_PLACEHOLDER = "Running…"
LABEL_MAX_LEN = 16
MODEL_NAME_MAX_LEN = 12


def _capitalize_first(word: str) -> str:
    return word[:1].upper() + word[1:]


def _progress_cell(agent: Subagent) -> str:
    if agent.progress_pct is None:
        return f"{agent.progress_glyph} {PROGRESS_PLACEHOLDER}"
    return f"{agent.progress_glyph} ~{agent.progress_pct}%"


def render_structured(snapshot: Snapshot) -> str:
    """Render a snapshot as indented JSON.

    Every entry carries all computed fields, with ``progress_pct`` as null
    when the estimate is unknown.
    """
    return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)


def build_summary_line(snapshot: Snapshot) -> Text:
    """Build the one-line total and per-family summary."""
    counts = snapshot.by_model
    text = Text()
    text.append(f"📊 {snapshot.total} active subagent(s)", style="bold")
    text.append(" • ", style="dim")
    text.append(f"🎭 {counts.get('opus', 0)} Opus")
    text.append(" • ", style="dim")
    text.append(f"🎯 {counts.get('sonnet', 0)} Sonnet")
    text.append(" • ", style="dim")
    text.append(f"🔧 {counts.get('codex', 0)} Codex")
    return text


def build_agent_table(agents: list[Subagent]) -> Table:
    """Build a bordered table of subagents.

    Args:
        agents: Agents in display order.

    Returns:
        Rich Table with one row per agent.
    """
    table = Table(
        box=box.SQUARE,
        show_header=True,
        header_style="bold magenta",
        border_style="dim",
    )

    table.add_column("🏷️  Label", no_wrap=True)
    table.add_column("🤖 Model", no_wrap=True)
    table.add_column("📈 Progress", no_wrap=True)
    table.add_column("⏱️  Time", no_wrap=True)
    table.add_column("Status", no_wrap=True)

    for agent in agents:
        table.add_row(
            Text(truncate(agent.label, LABEL_MAX_LEN), style="cyan"),
            Text(f"{agent.model_glyph} {truncate(agent.model_friendly, MODEL_NAME_MAX_LEN)}"),
            Text(_progress_cell(agent)),
            Text(f"{agent.runtime_glyph} {format_duration(agent.runtime_sec)}"),
            Text(f"{agent.status_glyph} {_capitalize_first(agent.status)}"),
        )

    return table


def build_table_view(snapshot: Snapshot) -> RenderableType:
    """Build the tabular view: table plus summary, or the empty message."""
    if snapshot.total == 0:
        return Text(EMPTY_MESSAGE, style="yellow")
    return Group(build_agent_table(snapshot.subagents), Text(""), build_summary_line(snapshot))


def format_compact_line(agent: Subagent) -> str:
    """Format one agent as a single compact line."""
    if agent.progress_pct is None:
        progress = PROGRESS_PLACEHOLDER
    else:
        progress = f"{agent.progress_glyph} {agent.progress_pct}%"
    return (
        f"{agent.status_glyph} {agent.label} [{agent.model_glyph} {agent.model_friendly}] "
        f"{progress} {agent.runtime_glyph} {format_duration(agent.runtime_sec)}"
    )


def build_compact_view(snapshot: Snapshot) -> Text:
    """Build the compact view: one line per agent, separator and total."""
    if snapshot.total == 0:
        return Text(EMPTY_MESSAGE, style="yellow")

    text = Text()
    for agent in snapshot.subagents:
        text.append(format_compact_line(agent))
        text.append("\n")
    text.append("---\n", style="dim")
    text.append(f"📊 {snapshot.total} active", style="bold")
    return text


def render_snapshot(snapshot: Snapshot, output_format: OutputFormat, console: Console) -> None:
    """Print a snapshot in the selected format.

    Args:
        snapshot: The cycle's snapshot.
        output_format: Which view to print.
        console: Rich console to output to.
    """
    match output_format:
        case OutputFormat.JSON:
            # console.out skips markup and highlighting so the JSON stays intact
            console.out(render_structured(snapshot), highlight=False)
        case OutputFormat.COMPACT:
            console.print(build_compact_view(snapshot), soft_wrap=True)
        case _:
            console.print(build_table_view(snapshot))
