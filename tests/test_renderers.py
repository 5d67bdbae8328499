"""Tests for renderers module."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from io import StringIO
from typing import Any

from rich.console import Console
from rich.text import Text

from submon.config import OutputFormat
from submon.renderers import (
    EMPTY_MESSAGE,
    build_compact_view,
    build_summary_line,
    build_table_view,
    format_compact_line,
    render_snapshot,
    render_structured,
)
from submon.subagent_monitor import Snapshot, build_snapshot

NOW = 1_800_000_000
TIMESTAMP = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


def _session(name: str, runtime: int | None, model: str, **extra: Any) -> dict[str, Any]:
    record: dict[str, Any] = {"key": f"agent:main:subagent:{name}", "label": name, "model": model}
    if runtime is not None:
        record["startedAt"] = NOW - runtime
    record.update(extra)
    return record


def _snapshot(*raw: dict[str, Any]) -> Snapshot:
    return build_snapshot(list(raw), now=NOW, timestamp=TIMESTAMP)


def _render(renderable: object) -> str:
    output = StringIO()
    console = Console(file=output, width=160, no_color=True)
    console.print(renderable)
    return output.getvalue()


class TestStructured:
    """Tests for render_structured."""

    def test_shape(self) -> None:
        snapshot = _snapshot(
            _session("alpha", 450, "anthropic/claude-opus-4-6"),
            _session("beta", None, "claude-sonnet-4-5", status="waiting"),
        )
        data = json.loads(render_structured(snapshot))

        assert data["timestamp"] == "2026-10-19T12:00:00Z"
        assert data["total"] == 2
        assert data["by_model"] == {"opus": 1, "sonnet": 1, "codex": 0, "other": 0}

        alpha, beta = data["subagents"]
        assert alpha == {
            "label": "alpha",
            "model": "anthropic/claude-opus-4-6",
            "model_alias": "opus",
            "model_friendly": "Opus 4.6",
            "progress_pct": 50,
            "runtime_sec": 450,
            "status": "running",
            "session_key": "agent:main:subagent:alpha",
            "emoji": {"status": "✅", "model": "🎭", "progress": "🟡", "runtime": "⏳"},
        }
        assert beta["progress_pct"] is None
        assert beta["status"] == "waiting"
        assert beta["emoji"]["progress"] == "🔄"

    def test_glyphs_not_escaped(self) -> None:
        snapshot = _snapshot(_session("alpha", 10, "claude-opus-4-6"))
        assert "🎭" in render_structured(snapshot)

    def test_empty(self) -> None:
        data = json.loads(render_structured(_snapshot()))
        assert data["total"] == 0
        assert data["subagents"] == []
        assert data["by_model"] == {"opus": 0, "sonnet": 0, "codex": 0, "other": 0}


class TestTableView:
    """Tests for build_table_view."""

    def test_empty_message(self) -> None:
        view = build_table_view(_snapshot())
        assert isinstance(view, Text)
        assert view.plain == EMPTY_MESSAGE

    def test_rows(self) -> None:
        snapshot = _snapshot(
            _session("alpha", 450, "anthropic/claude-opus-4-6"),
            _session("beta", None, "claude-sonnet-4-5", status="waiting"),
        )
        output = _render(build_table_view(snapshot))

        assert "┌" in output
        assert "alpha" in output
        assert "Opus 4.6" in output
        assert "~50%" in output
        assert "7m30s" in output
        assert "Running" in output
        assert "Running…" in output
        assert "Waiting" in output

    def test_truncation(self) -> None:
        """Labels are cut to 16 characters and model names to 12."""
        snapshot = _snapshot(_session("a-very-long-label-name", 30, "vendor/custom-model-name"))
        output = _render(build_table_view(snapshot))
        assert "a-very-long-labe" in output
        assert "a-very-long-label" not in output
        assert "vendor/custo" in output
        assert "vendor/custom" not in output

    def test_summary_line(self) -> None:
        snapshot = _snapshot(
            _session("o", 10, "claude-opus-4-6"),
            _session("s", 10, "claude-sonnet-4-5"),
            _session("h", 10, "claude-haiku-4-5"),
        )
        summary = build_summary_line(snapshot).plain
        assert summary == "📊 3 active subagent(s) • 🎭 1 Opus • 🎯 1 Sonnet • 🔧 0 Codex"
        assert summary in _render(build_table_view(snapshot))


class TestCompactView:
    """Tests for build_compact_view and format_compact_line."""

    def test_line_with_progress(self) -> None:
        snapshot = _snapshot(_session("alpha", 450, "anthropic/claude-opus-4-6"))
        assert format_compact_line(snapshot.subagents[0]) == "✅ alpha [🎭 Opus 4.6] 🟡 50% ⏳ 7m30s"

    def test_line_without_progress(self) -> None:
        snapshot = _snapshot(_session("beta", None, "claude-sonnet-4-5"))
        assert format_compact_line(snapshot.subagents[0]) == "✅ beta [🎯 Sonnet 4.5] Running… ⚡ 0s"

    def test_view(self) -> None:
        snapshot = _snapshot(
            _session("alpha", 4000, "gpt-5-codex", status="error"),
            _session("beta", 45, "claude-haiku-4-5"),
        )
        lines = build_compact_view(snapshot).plain.splitlines()
        assert lines == [
            "❌ alpha [🔧 Codex] 🟠 95% ⚠️ 1h6m40s",
            "✅ beta [🪶 claude-haiku-4-5] 🟢 5% ⚡ 45s",
            "---",
            "📊 2 active",
        ]

    def test_empty_message(self) -> None:
        assert build_compact_view(_snapshot()).plain == EMPTY_MESSAGE


class TestRenderSnapshot:
    """Tests for render_snapshot dispatch."""

    def _output(self, snapshot: Snapshot, output_format: OutputFormat) -> str:
        output = StringIO()
        render_snapshot(snapshot, output_format, Console(file=output, width=160, no_color=True))
        return output.getvalue()

    def test_json(self) -> None:
        snapshot = _snapshot(_session("alpha", 10, "claude-opus-4-6"))
        data = json.loads(self._output(snapshot, OutputFormat.JSON))
        assert data["subagents"][0]["label"] == "alpha"

    def test_compact(self) -> None:
        snapshot = _snapshot(_session("alpha", 10, "claude-opus-4-6"))
        assert "📊 1 active" in self._output(snapshot, OutputFormat.COMPACT)

    def test_table(self) -> None:
        snapshot = _snapshot(_session("alpha", 10, "claude-opus-4-6"))
        assert "active subagent(s)" in self._output(snapshot, OutputFormat.TABLE)

    def test_empty_in_every_format(self) -> None:
        """Zero subagents is a normal outcome for all formats."""
        snapshot = _snapshot()
        assert "No active subagents" in self._output(snapshot, OutputFormat.TABLE)
        assert "No active subagents" in self._output(snapshot, OutputFormat.COMPACT)
        assert json.loads(self._output(snapshot, OutputFormat.JSON))["total"] == 0
