"""Polling monitor for active subagent sessions."""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Any, cast

from rich.console import Console

from submon.config import Config, OutputFormat, ProgressConfig, SortKey
from submon.renderers import render_snapshot
from submon.session_source import RawSession, fetch_sessions, select_subagent_sessions

logger = logging.getLogger(__name__)

LABEL_KEY_MAX_LEN = 20
MILLISECONDS_THRESHOLD = 10**12


class ModelAlias(StrEnum):
    """Coarse model family of a subagent."""

    OPUS = "opus"
    SONNET = "sonnet"
    CODEX = "codex"
    HAIKU = "haiku"
    OTHER = "other"


# Checked in order: the first family found in the model string wins
_ALIAS_PRIORITY = (ModelAlias.OPUS, ModelAlias.SONNET, ModelAlias.CODEX, ModelAlias.HAIKU)

SUMMARY_FAMILIES = ("opus", "sonnet", "codex")

# Most specific first
_FRIENDLY_MODEL_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"opus-4-6|opus-4\.6", re.IGNORECASE), "Opus 4.6"),
    (re.compile(r"opus-4-5|opus-4\.5", re.IGNORECASE), "Opus 4.5"),
    (re.compile(r"opus", re.IGNORECASE), "Opus"),
    (re.compile(r"sonnet-4-6|sonnet-4\.6", re.IGNORECASE), "Sonnet 4.6"),
    (re.compile(r"sonnet-4-5|sonnet-4\.5", re.IGNORECASE), "Sonnet 4.5"),
    (re.compile(r"sonnet", re.IGNORECASE), "Sonnet"),
    (re.compile(r"codex", re.IGNORECASE), "Codex"),
]

_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})[.,]\d+")
_NUMERIC_RE = re.compile(r"\d+(\.\d+)?")


class StatusKind(Enum):
    """Display category of a raw status string."""

    RUNNING = "running"
    WAITING = "waiting"
    FAILED = "failed"
    DONE = "done"
    TRANSITIONAL = "transitional"


def classify_status(status: str) -> StatusKind:
    """Map a raw status string onto its display category."""
    match status:
        case "running":
            return StatusKind.RUNNING
        case "waiting":
            return StatusKind.WAITING
        case "error" | "failed":
            return StatusKind.FAILED
        case "done" | "completed":
            return StatusKind.DONE
        case _:
            return StatusKind.TRANSITIONAL


def status_glyph(kind: StatusKind) -> str:
    """Get the display symbol for a status category."""
    match kind:
        case StatusKind.RUNNING:
            return "✅"
        case StatusKind.WAITING:
            return "⏸️"
        case StatusKind.FAILED:
            return "❌"
        case StatusKind.DONE:
            return "✔️"
        case StatusKind.TRANSITIONAL:
            return "🔄"


def model_glyph(alias: ModelAlias) -> str:
    """Get the display symbol for a model family."""
    match alias:
        case ModelAlias.OPUS:
            return "🎭"
        case ModelAlias.SONNET:
            return "🎯"
        case ModelAlias.CODEX:
            return "🔧"
        case ModelAlias.HAIKU:
            return "🪶"
        case ModelAlias.OTHER:
            return "🤖"


def progress_glyph(progress_pct: int | None) -> str:
    """Get the display symbol for a progress bucket."""
    match progress_pct:
        case None:
            return "🔄"
        case int() if progress_pct <= 33:
            return "🟢"
        case int() if progress_pct <= 66:
            return "🟡"
        case int() if progress_pct < 100:
            return "🟠"
        case _:
            return "✅"


def runtime_glyph(runtime_sec: int) -> str:
    """Get the display symbol for a runtime bucket."""
    if runtime_sec < 60:
        return "⚡"
    if runtime_sec < 300:
        return "⏱️"
    if runtime_sec < 900:
        return "⏳"
    return "⚠️"


@dataclass(frozen=True)
class Subagent:
    """View model of one active subagent, rebuilt every refresh cycle."""

    label: str
    model_raw: str
    session_key: str
    started_at: int  # epoch seconds, 0 when unknown
    status: str
    runtime_sec: int
    model_alias: ModelAlias
    model_friendly: str
    progress_pct: int | None  # heuristic estimate, None when unknown

    @property
    def status_kind(self) -> StatusKind:
        return classify_status(self.status)

    @property
    def status_glyph(self) -> str:
        return status_glyph(self.status_kind)

    @property
    def model_glyph(self) -> str:
        return model_glyph(self.model_alias)

    @property
    def progress_glyph(self) -> str:
        return progress_glyph(self.progress_pct)

    @property
    def runtime_glyph(self) -> str:
        return runtime_glyph(self.runtime_sec)

    @property
    def glyphs(self) -> dict[str, str]:
        """All four display symbols keyed by what they describe."""
        return {
            "status": self.status_glyph,
            "model": self.model_glyph,
            "progress": self.progress_glyph,
            "runtime": self.runtime_glyph,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the structured output entry."""
        return {
            "label": self.label,
            "model": self.model_raw,
            "model_alias": self.model_alias.value,
            "model_friendly": self.model_friendly,
            "progress_pct": self.progress_pct,
            "runtime_sec": self.runtime_sec,
            "status": self.status,
            "session_key": self.session_key,
            "emoji": self.glyphs,
        }


def _empty_counts() -> dict[str, int]:
    return {"opus": 0, "sonnet": 0, "codex": 0, "other": 0}


def _empty_subagents() -> list[Subagent]:
    return []


@dataclass
class Snapshot:
    """Result of one refresh cycle."""

    timestamp: datetime
    total: int = 0
    by_model: dict[str, int] = field(default_factory=_empty_counts)
    subagents: list[Subagent] = field(default_factory=_empty_subagents)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the structured output shape."""
        return {
            "timestamp": self.timestamp.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "total": self.total,
            "by_model": dict(self.by_model),
            "subagents": [agent.to_dict() for agent in self.subagents],
        }


def _normalize_epoch(value: float) -> int:
    if not math.isfinite(value) or value <= 0:
        return 0
    if value > MILLISECONDS_THRESHOLD:
        value /= 1000
    return int(value)


def parse_started_at(value: object) -> int:
    """Resolve a start time into epoch seconds.

    Numbers are epoch seconds (values that can only be epoch milliseconds are
    scaled down). Strings are ISO-8601; any sub-second fraction is dropped and
    a missing zone means UTC.

    Args:
        value: Raw ``startedAt`` value.

    Returns:
        Epoch seconds, or 0 when the value is missing or unparseable.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int | float):
        return _normalize_epoch(float(value))
    if not isinstance(value, str):
        return 0

    text = value.strip()
    if not text:
        return 0
    if _NUMERIC_RE.fullmatch(text):
        return _normalize_epoch(float(text))

    text = _FRACTION_RE.sub(r"\1", text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable start time %r", value)
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return _normalize_epoch(parsed.timestamp())


def compute_runtime(started_at: int, now: int) -> int:
    """Seconds elapsed since started_at, never negative.

    Args:
        started_at: Epoch seconds, 0 when unknown.
        now: Current epoch seconds.

    Returns:
        Elapsed whole seconds; 0 for an unknown or future start.
    """
    if started_at <= 0:
        return 0
    runtime = now - started_at
    if runtime < 0:
        logger.debug("Start time %d is in the future (now=%d); clamping runtime to 0", started_at, now)
        return 0
    return runtime


def classify_model(model_raw: str) -> ModelAlias:
    """Derive the model family from a model identifier."""
    lowered = model_raw.lower()
    for alias in _ALIAS_PRIORITY:
        if alias.value in lowered:
            return alias
    return ModelAlias.OTHER


def friendly_model_name(model_raw: str) -> str:
    """Get a human-readable model name, falling back to the raw identifier."""
    for pattern, name in _FRIENDLY_MODEL_RULES:
        if pattern.search(model_raw):
            return name
    return model_raw


def estimate_progress(runtime_sec: int, nominal_duration: int = 900, cap: int = 95) -> int | None:
    """Estimate completion from elapsed time alone.

    This is a heuristic, not a measurement: progress ramps linearly over
    nominal_duration seconds and is held at cap so a running task never
    looks finished.

    Args:
        runtime_sec: Elapsed seconds.
        nominal_duration: Assumed total duration in seconds.
        cap: Highest percentage reported.

    Returns:
        Percentage in [0, cap], or None when the runtime is unknown.
    """
    if runtime_sec <= 0 or nominal_duration <= 0:
        return None
    return math.floor(min(runtime_sec * 100 / nominal_duration, cap))


def _label_from_key(session_key: str) -> str:
    return session_key.split(":")[-1][:LABEL_KEY_MAX_LEN]


def _text_field(raw: RawSession, name: str) -> str:
    value = raw.get(name)
    if value is None or value == "":
        return ""
    return str(value)


def enrich_session(
    raw: RawSession,
    now: int,
    nominal_duration: int = 900,
    cap: int = 95,
) -> Subagent:
    """Build the view model for one raw session record.

    Args:
        raw: Session record from the listing.
        now: Current epoch seconds.
        nominal_duration: Progress heuristic duration in seconds.
        cap: Progress heuristic ceiling.

    Returns:
        The enriched Subagent.
    """
    session_key = _text_field(raw, "key")
    label = _text_field(raw, "label") or _label_from_key(session_key)
    model_raw = _text_field(raw, "model") or "unknown"
    status = _text_field(raw, "status") or "running"

    started_value = raw.get("startedAt")
    if started_value is None:
        started_value = raw.get("createdAt")
    started_at = parse_started_at(started_value)
    runtime_sec = compute_runtime(started_at, now)

    return Subagent(
        label=label,
        model_raw=model_raw,
        session_key=session_key,
        started_at=started_at,
        status=status,
        runtime_sec=runtime_sec,
        model_alias=classify_model(model_raw),
        model_friendly=friendly_model_name(model_raw),
        progress_pct=estimate_progress(runtime_sec, nominal_duration, cap),
    )


def enrich_sessions(
    raw_sessions: object,
    now: int | None = None,
    progress: ProgressConfig | None = None,
) -> list[Subagent]:
    """Enrich a batch of raw sessions, skipping records that cannot be used.

    Args:
        raw_sessions: Listing to enrich; anything but a list yields nothing.
        now: Current epoch seconds. Uses the wall clock if None.
        progress: Progress heuristic parameters.

    Returns:
        Subagents in listing order.
    """
    if not isinstance(raw_sessions, list):
        return []
    current = int(time.time()) if now is None else now
    params = progress or ProgressConfig()

    agents: list[Subagent] = []
    for item in cast(list[Any], raw_sessions):
        if not isinstance(item, dict):
            logger.debug("Skipping non-object session record: %r", item)
            continue
        try:
            agents.append(enrich_session(cast(RawSession, item), current, params.nominal_duration, params.cap))
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug("Skipping malformed session record %r: %s", item.get("key"), e)
    return agents


def filter_by_model(agents: list[Subagent], model_filter: str | None) -> list[Subagent]:
    """Keep only agents of one model family.

    Args:
        agents: Agents to filter.
        model_filter: Alias to keep; None or empty keeps everything.

    Returns:
        Matching agents. An unknown alias matches nothing.
    """
    if not model_filter:
        return list(agents)
    return [a for a in agents if a.model_alias.value == model_filter]


def sort_subagents(agents: list[Subagent], sort_key: SortKey = SortKey.TIME) -> list[Subagent]:
    """Order agents; ties keep their input order."""
    match sort_key:
        case SortKey.TIME:
            return sorted(agents, key=lambda a: -a.runtime_sec)
        case SortKey.MODEL:
            return sorted(agents, key=lambda a: a.model_alias.value)
        case SortKey.LABEL:
            return sorted(agents, key=lambda a: a.label)


def count_by_model(agents: list[Subagent]) -> dict[str, int]:
    """Count agents per summary family.

    Only opus, sonnet and codex are reported separately; every other alias,
    haiku included, is folded into ``other``.
    """
    counts = _empty_counts()
    for agent in agents:
        family = agent.model_alias.value
        counts[family if family in SUMMARY_FAMILIES else "other"] += 1
    return counts


def build_snapshot(
    raw_sessions: object,
    model_filter: str | None = None,
    sort_key: SortKey = SortKey.TIME,
    now: int | None = None,
    progress: ProgressConfig | None = None,
    timestamp: datetime | None = None,
) -> Snapshot:
    """Run enrichment, filtering, sorting and aggregation for one cycle.

    Args:
        raw_sessions: Subagent session records.
        model_filter: Optional alias to restrict output to.
        sort_key: Sort order.
        now: Current epoch seconds. Uses the wall clock if None.
        progress: Progress heuristic parameters.
        timestamp: Snapshot time. Uses the current UTC time if None.

    Returns:
        The cycle's Snapshot.
    """
    agents = enrich_sessions(raw_sessions, now=now, progress=progress)
    agents = sort_subagents(filter_by_model(agents, model_filter), sort_key)
    return Snapshot(
        timestamp=timestamp or datetime.now(tz=UTC),
        total=len(agents),
        by_model=count_by_model(agents),
        subagents=agents,
    )


def find_long_running(agents: list[Subagent], threshold_minutes: float) -> list[Subagent]:
    """Agents whose runtime is strictly above the threshold."""
    threshold_sec = threshold_minutes * 60
    return [a for a in agents if a.runtime_sec > threshold_sec]


def format_alerts(alerted: list[Subagent], threshold_minutes: float) -> list[str]:
    """Format alert lines for long-running agents.

    Args:
        alerted: Agents over the threshold.
        threshold_minutes: Threshold used, for the header.

    Returns:
        Header plus one line per agent, or an empty list.
    """
    if not alerted:
        return []
    lines = [f"🚨 ALERT: {len(alerted)} subagent(s) running longer than {threshold_minutes:g}min:"]
    lines.extend(f"  ⚠️  {a.label} [{a.model_friendly}] running for {a.runtime_sec}s" for a in alerted)
    return lines


def render_alerts(agents: list[Subagent], threshold_minutes: float, console: Console) -> list[Subagent]:
    """Print alerts for agents over the threshold.

    Args:
        agents: The rendered agents.
        threshold_minutes: Alert threshold in minutes.
        console: Rich console to output to.

    Returns:
        The alerted agents.
    """
    alerted = find_long_running(agents, threshold_minutes)
    lines = format_alerts(alerted, threshold_minutes)
    if lines:
        console.print()
        console.print(lines[0], style="bold red", markup=False, highlight=False, emoji=False)
        for line in lines[1:]:
            console.print(line, style="red", markup=False, highlight=False, emoji=False)
    return alerted


def default_fetcher(config: Config) -> Callable[[], list[RawSession]]:
    """Build the session fetcher described by the config."""

    def fetch() -> list[RawSession]:
        return fetch_sessions(config.source.command, config.source.timeout)

    return fetch


def run_cycle(
    config: Config,
    console: Console,
    fetch: Callable[[], object] | None = None,
    err_console: Console | None = None,
    now: int | None = None,
) -> Snapshot:
    """Fetch, build, render and alert once.

    Alerts go to err_console in JSON mode so stdout stays parseable.

    Args:
        config: Effective configuration.
        console: Console for the rendered view.
        fetch: Session fetcher. Uses the configured command if None.
        err_console: Console for alerts in JSON mode.
        now: Current epoch seconds. Uses the wall clock if None.

    Returns:
        The rendered Snapshot.
    """
    fetcher = fetch or default_fetcher(config)
    raw = select_subagent_sessions(fetcher(), config.source.key_pattern)
    snapshot = build_snapshot(raw, config.filter_model, config.sort, now=now, progress=config.progress)

    render_snapshot(snapshot, config.format, console)

    alert_console = console
    if config.format == OutputFormat.JSON and err_console is not None:
        alert_console = err_console
    render_alerts(snapshot.subagents, config.alert_long, alert_console)
    return snapshot


class RefreshLoop:
    """Repeats an action at a fixed interval until stopped.

    The wait between cycles is on a threading.Event, so ``stop()`` from
    another thread (or from the action itself) ends the loop promptly.
    """

    def __init__(
        self,
        action: Callable[[], object],
        interval: float,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.action = action
        self.interval = interval
        self._stop_event = stop_event or threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to end after the current cycle."""
        self._stop_event.set()

    def run(self, max_cycles: int | None = None) -> int:
        """Run cycles until stopped or max_cycles is reached.

        A failing cycle is logged and the next one runs as usual.

        Args:
            max_cycles: Optional upper bound on cycles. None runs forever.

        Returns:
            Number of cycles run.
        """
        cycles = 0
        while not self._stop_event.is_set():
            try:
                self.action()
            except Exception:
                logger.exception("Refresh cycle failed")
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if self._stop_event.wait(self.interval):
                break
        return cycles


def run_subagent_monitor(
    config: Config,
    watch: bool = False,
    console: Console | None = None,
    err_console: Console | None = None,
    fetch: Callable[[], object] | None = None,
    max_cycles: int | None = None,
) -> None:
    """Render the subagent view once, or repeatedly in watch mode.

    Args:
        config: Effective configuration.
        watch: Whether to refresh every ``config.watch_interval`` seconds.
        console: Console for output. A new one is created if None.
        err_console: Console for alerts in JSON mode.
        fetch: Session fetcher. Uses the configured command if None.
        max_cycles: Optional bound on watch cycles.
    """
    console = console or Console()

    if not watch:
        run_cycle(config, console, fetch=fetch, err_console=err_console)
        return

    def cycle() -> None:
        console.clear()
        clock = datetime.now(tz=UTC).astimezone().strftime("%H:%M:%S")
        console.print(
            f"🔍 Subagent Monitor (refresh: {config.watch_interval:g}s) — {clock}",
            style="bold cyan",
            markup=False,
            highlight=False,
            emoji=False,
        )
        console.print()
        run_cycle(config, console, fetch=fetch, err_console=err_console)

    try:
        RefreshLoop(cycle, config.watch_interval).run(max_cycles=max_cycles)
    except KeyboardInterrupt:
        console.print("\n[dim]Monitor stopped.[/]")
