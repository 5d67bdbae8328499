"""Configuration management for submon."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, ValidationError, field_validator
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from submon.utils import parse_positive_number
from submon.xdg_paths import get_config_file_path

ENV_FORMAT = "SUBAGENT_MONITOR_FORMAT"
ENV_ALERT_LONG = "SUBAGENT_MONITOR_ALERT_LONG"
ENV_WATCH_INTERVAL = "SUBAGENT_MONITOR_WATCH_INTERVAL"

DEFAULT_SOURCE_COMMAND = ["openclaw", "sessions", "list", "--json"]


class OutputFormat(StrEnum):
    """Available output formats."""

    TABLE = "table"  # Bordered table with summary line
    JSON = "json"  # Machine-readable snapshot
    COMPACT = "compact"  # One line per subagent


FORMAT_ALIASES: dict[str, OutputFormat] = {
    "tabular": OutputFormat.TABLE,
    "structured": OutputFormat.JSON,
}


class SortKey(StrEnum):
    """Sort orders for the subagent list."""

    TIME = "time"  # Longest-running first
    MODEL = "model"  # By model alias
    LABEL = "label"  # By label


class ProgressConfig(BaseModel):
    """Parameters of the time-based progress heuristic."""

    nominal_duration: int = 900  # seconds a typical subagent needs
    cap: int = 95  # never show a running task as complete


class SourceConfig(BaseModel):
    """Configuration for the session listing command."""

    command: list[str] = list(DEFAULT_SOURCE_COMMAND)
    timeout: float | None = None  # seconds; None waits indefinitely
    key_pattern: str = "subagent"


@dataclass
class ConfigWarning:
    """A config validation warning."""

    file: str
    field_name: str
    message: str
    value: object = field(default=None, repr=False)


class Config(BaseModel):
    """Configuration settings for submon."""

    format: OutputFormat = OutputFormat.TABLE
    alert_long: float = 10.0  # minutes
    watch_interval: float = 5.0  # seconds
    sort: SortKey = SortKey.TIME
    filter_model: str | None = None

    source: SourceConfig = SourceConfig()
    progress: ProgressConfig = ProgressConfig()

    @field_validator("format", mode="before")
    @classmethod
    def _resolve_format_alias(cls, value: object) -> object:
        if isinstance(value, str):
            return FORMAT_ALIASES.get(value.strip().lower(), value.strip().lower())
        return value

    @field_validator("alert_long", "watch_interval")
    @classmethod
    def _require_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Recursively merge override dict into base dict.

    For nested dicts, merges recursively. For all other types, override wins.

    Args:
        base: The base dictionary.
        override: The dictionary with overriding values.

    Returns:
        A new merged dictionary.
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)  # type: ignore[arg-type]
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> tuple[dict[str, object], list[ConfigWarning]]:
    """Load a YAML file and return its contents as a dict with warnings.

    Args:
        path: Path to the YAML file.

    Returns:
        Tuple of (parsed dict, list of warnings). Empty dict on missing/invalid.
    """
    if not path.exists():
        return {}, []
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        if not isinstance(raw, dict):
            return {}, []
        return cast(dict[str, object], raw), []
    except yaml.YAMLError as e:
        return {}, [
            ConfigWarning(
                file=str(path),
                field_name="(file)",
                message=f"YAML parse error: {e}",
                value=None,
            )
        ]
    except OSError as e:
        return {}, [
            ConfigWarning(
                file=str(path),
                field_name="(file)",
                message=f"File read error: {e}",
                value=None,
            )
        ]


def _env_overrides(environ: Mapping[str, str]) -> tuple[dict[str, object], list[ConfigWarning]]:
    """Collect config overrides from SUBAGENT_MONITOR_* environment variables.

    Invalid values are reported and skipped so the lower layers still apply.

    Args:
        environ: Environment mapping to read.

    Returns:
        Tuple of (override dict, list of warnings).
    """
    overrides: dict[str, object] = {}
    warnings: list[ConfigWarning] = []

    raw_format = environ.get(ENV_FORMAT)
    if raw_format:
        key = raw_format.strip().lower()
        if key in FORMAT_ALIASES or key in {f.value for f in OutputFormat}:
            overrides["format"] = key
        else:
            warnings.append(ConfigWarning(ENV_FORMAT, "format", "unknown output format", raw_format))

    for env_name, field_name in ((ENV_ALERT_LONG, "alert_long"), (ENV_WATCH_INTERVAL, "watch_interval")):
        raw_value = environ.get(env_name)
        if not raw_value:
            continue
        number = parse_positive_number(raw_value, default=0.0)
        if number > 0:
            overrides[field_name] = number
        else:
            warnings.append(ConfigWarning(env_name, field_name, "expected a positive number", raw_value))

    return overrides, warnings


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    strict: bool = False,
) -> tuple[Config, list[ConfigWarning]]:
    """Load configuration with layered merging.

    Loading order (last value wins via deep merge):
    1. User config (~/.config/submon/config.yaml) - base
    2. SUBAGENT_MONITOR_* environment variables - overrides

    Command-line flags are applied on top of the result by the CLI.

    Args:
        config_path: Optional path to user config file. Uses default if None.
        environ: Environment mapping. Uses os.environ if None.
        strict: If True, do not attempt partial recovery on validation errors.

    Returns:
        Tuple of (loaded Config, list of ConfigWarnings).
    """
    warnings: list[ConfigWarning] = []

    user_config, user_warnings = _load_yaml_file(config_path or get_config_file_path())
    warnings.extend(user_warnings)

    env_config, env_warnings = _env_overrides(os.environ if environ is None else environ)
    warnings.extend(env_warnings)

    merged = _deep_merge(user_config, env_config)

    try:
        return Config.model_validate(merged), warnings
    except ValidationError as e:
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            warnings.append(
                ConfigWarning(
                    file="merged config",
                    field_name=field_path,
                    message=error["msg"],
                    value=error.get("input"),
                )
            )

        if strict:
            return Config(), warnings

        # Attempt partial recovery: remove bad fields and retry
        for error in e.errors():
            if error["loc"]:
                merged.pop(str(error["loc"][0]), None)
        try:
            return Config.model_validate(merged), warnings
        except ValidationError:
            return Config(), warnings


def display_config_warnings(warnings: list[ConfigWarning], console: Console) -> None:
    """Display config warnings using Rich formatting.

    Args:
        warnings: List of warnings to display.
        console: Rich console to output to.
    """
    if not warnings:
        return

    text = Text()
    for i, warning in enumerate(warnings):
        if i > 0:
            text.append("\n")
        text.append(f"  {warning.file}", style="dim")
        text.append(": ", style="dim")
        text.append(warning.field_name, style="bold")
        text.append(f": {warning.message}", style="yellow")
        if warning.value is not None:
            text.append(f" (got: {warning.value!r})", style="dim")

    console.print(Panel(text, title="[yellow]Config Warnings[/]", border_style="yellow"))


def config_to_dict(config: Config) -> dict[str, object]:
    """Dump a config to plain YAML-safe values."""
    return cast(dict[str, object], config.model_dump(mode="json"))


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to YAML file.

    Args:
        config: The configuration to save.
        config_path: Optional path to config file. Uses default if None.
    """
    path = config_path or get_config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        yaml.dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
