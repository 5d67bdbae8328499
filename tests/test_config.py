"""Tests for submon.config module."""

from pathlib import Path

import yaml

from submon.config import (
    DEFAULT_SOURCE_COMMAND,
    ENV_ALERT_LONG,
    ENV_FORMAT,
    ENV_WATCH_INTERVAL,
    Config,
    ConfigWarning,
    OutputFormat,
    ProgressConfig,
    SortKey,
    SourceConfig,
    _deep_merge,
    _env_overrides,
    _load_yaml_file,
    display_config_warnings,
    load_config,
    save_config,
)


def _write_yaml(path: Path, data: object) -> Path:
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


class TestConfig:
    """Tests for Config model."""

    def test_default_values(self) -> None:
        """Should have correct default values."""
        config = Config()
        assert config.format == OutputFormat.TABLE
        assert config.alert_long == 10.0
        assert config.watch_interval == 5.0
        assert config.sort == SortKey.TIME
        assert config.filter_model is None

    def test_source_defaults(self) -> None:
        source = SourceConfig()
        assert source.command == DEFAULT_SOURCE_COMMAND
        assert source.timeout is None
        assert source.key_pattern == "subagent"

    def test_progress_defaults(self) -> None:
        progress = ProgressConfig()
        assert progress.nominal_duration == 900
        assert progress.cap == 95

    def test_format_aliases(self) -> None:
        """Should accept the descriptive format names."""
        assert Config.model_validate({"format": "structured"}).format == OutputFormat.JSON
        assert Config.model_validate({"format": "tabular"}).format == OutputFormat.TABLE
        assert Config.model_validate({"format": "COMPACT"}).format == OutputFormat.COMPACT


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_flat_merge(self) -> None:
        base: dict[str, object] = {"format": "table", "alert_long": 10}
        override: dict[str, object] = {"alert_long": 3}
        assert _deep_merge(base, override) == {"format": "table", "alert_long": 3}

    def test_nested_merge(self) -> None:
        base: dict[str, object] = {"source": {"timeout": 5, "key_pattern": "subagent"}}
        override: dict[str, object] = {"source": {"timeout": 10}}
        assert _deep_merge(base, override) == {"source": {"timeout": 10, "key_pattern": "subagent"}}


class TestLoadYamlFile:
    """Tests for _load_yaml_file function."""

    def test_missing_file(self, tmp_path: Path) -> None:
        data, warnings = _load_yaml_file(tmp_path / "missing.yaml")
        assert data == {}
        assert warnings == []

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Should report parse errors as warnings."""
        path = tmp_path / "config.yaml"
        path.write_text("format: [unclosed\n", encoding="utf-8")
        data, warnings = _load_yaml_file(path)
        assert data == {}
        assert len(warnings) == 1
        assert "YAML parse error" in warnings[0].message

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "config.yaml", ["a", "b"])
        data, warnings = _load_yaml_file(path)
        assert data == {}
        assert warnings == []


class TestEnvOverrides:
    """Tests for _env_overrides function."""

    def test_all_variables(self) -> None:
        overrides, warnings = _env_overrides({ENV_FORMAT: "json", ENV_ALERT_LONG: "3", ENV_WATCH_INTERVAL: "2.5"})
        assert overrides == {"format": "json", "alert_long": 3.0, "watch_interval": 2.5}
        assert warnings == []

    def test_invalid_values_warn(self) -> None:
        """Should skip and report values that cannot be used."""
        overrides, warnings = _env_overrides({ENV_FORMAT: "xml", ENV_ALERT_LONG: "soon", ENV_WATCH_INTERVAL: "0"})
        assert overrides == {}
        assert {w.field_name for w in warnings} == {"format", "alert_long", "watch_interval"}

    def test_empty_values_ignored(self) -> None:
        overrides, warnings = _env_overrides({ENV_FORMAT: "", ENV_ALERT_LONG: ""})
        assert overrides == {}
        assert warnings == []


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults_without_file_or_env(self, tmp_path: Path) -> None:
        config, warnings = load_config(tmp_path / "missing.yaml", environ={})
        assert config == Config()
        assert warnings == []

    def test_yaml_values(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path / "config.yaml",
            {"format": "compact", "sort": "label", "source": {"timeout": 15}, "progress": {"nominal_duration": 600}},
        )
        config, warnings = load_config(path, environ={})
        assert warnings == []
        assert config.format == OutputFormat.COMPACT
        assert config.sort == SortKey.LABEL
        assert config.source.timeout == 15
        assert config.source.command == DEFAULT_SOURCE_COMMAND
        assert config.progress.nominal_duration == 600

    def test_env_overrides_yaml(self, tmp_path: Path) -> None:
        """Environment variables should win over the config file."""
        path = _write_yaml(tmp_path / "config.yaml", {"format": "compact", "alert_long": 20})
        config, _warnings = load_config(path, environ={ENV_FORMAT: "json", ENV_WATCH_INTERVAL: "7"})
        assert config.format == OutputFormat.JSON
        assert config.alert_long == 20
        assert config.watch_interval == 7

    def test_invalid_env_keeps_yaml_value(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "config.yaml", {"alert_long": 20})
        config, warnings = load_config(path, environ={ENV_ALERT_LONG: "abc"})
        assert config.alert_long == 20
        assert len(warnings) == 1

    def test_partial_recovery(self, tmp_path: Path) -> None:
        """Should drop invalid fields and keep the valid ones."""
        path = _write_yaml(tmp_path / "config.yaml", {"sort": "size", "alert_long": 3})
        config, warnings = load_config(path, environ={})
        assert config.sort == SortKey.TIME
        assert config.alert_long == 3
        assert any(w.field_name == "sort" for w in warnings)

    def test_non_positive_threshold_rejected(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "config.yaml", {"alert_long": -1})
        config, warnings = load_config(path, environ={})
        assert config.alert_long == 10.0
        assert any(w.field_name == "alert_long" for w in warnings)

    def test_strict_returns_defaults(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "config.yaml", {"sort": "size", "alert_long": 3})
        config, warnings = load_config(path, environ={}, strict=True)
        assert config == Config()
        assert warnings


class TestSaveConfig:
    """Tests for save_config function."""

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "config.yaml"
        save_config(Config(format=OutputFormat.COMPACT, alert_long=15), path)

        assert path.exists()
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["format"] == "compact"
        assert data["source"]["command"] == DEFAULT_SOURCE_COMMAND

        config, warnings = load_config(path, environ={})
        assert warnings == []
        assert config.format == OutputFormat.COMPACT
        assert config.alert_long == 15


class TestDisplayConfigWarnings:
    """Tests for display_config_warnings function."""

    def test_no_warnings_no_output(self) -> None:
        from io import StringIO

        from rich.console import Console

        output = StringIO()
        display_config_warnings([], Console(file=output, no_color=True))
        assert output.getvalue() == ""

    def test_displays_warnings(self) -> None:
        """Should display warnings in a panel."""
        from io import StringIO

        from rich.console import Console

        output = StringIO()
        warnings = [ConfigWarning(file=ENV_FORMAT, field_name="format", message="unknown output format", value="xml")]
        display_config_warnings(warnings, Console(file=output, no_color=True, width=120))
        result = output.getvalue()
        assert "Config Warnings" in result
        assert ENV_FORMAT in result
        assert "unknown output format" in result
