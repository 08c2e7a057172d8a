"""Unit tests for configuration loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from core.core_config import (
    CONFIG_PATH_ENV,
    MAX_CONFIG_SIZE,
    build_config,
    find_config_path,
    load_config,
    resolve_env_vars,
)
from core.exceptions import ConfigurationError
from core.models.track_models import AppConfig, LogLevel

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test in an empty cwd without CONFIG_PATH or a .env file."""
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)


class TestResolveEnvVars:
    """Tests for resolve_env_vars."""

    def test_exact_placeholder(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECONCILER_DB", "/data/library.db")
        assert resolve_env_vars("${RECONCILER_DB}") == "/data/library.db"

    def test_unset_placeholder_becomes_empty(self) -> None:
        assert resolve_env_vars("${RECONCILER_SURELY_UNSET}") == ""

    def test_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_ROOT", "/var/log")
        data = {"logging": {"dir": "$LOG_ROOT/reconciler"}, "list": ["${LOG_ROOT}", 3]}
        assert resolve_env_vars(data) == {"logging": {"dir": "/var/log/reconciler"}, "list": ["/var/log", 3]}

    def test_tilde_expansion(self) -> None:
        resolved = resolve_env_vars("~/Music/library.db")
        assert isinstance(resolved, str)
        assert not resolved.startswith("~")

    def test_non_strings_pass_through(self) -> None:
        assert resolve_env_vars(42) == 42
        assert resolve_env_vars(None) is None


class TestFindConfigPath:
    """Tests for config file discovery."""

    def test_no_file_means_none(self) -> None:
        assert find_config_path() is None

    def test_cwd_config_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("{}", encoding="utf-8")
        assert find_config_path() == tmp_path / "config.yaml"

    def test_env_var_wins_over_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "config.yaml").write_text("{}", encoding="utf-8")
        other = tmp_path / "other.yml"
        other.write_text("{}", encoding="utf-8")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(other))
        assert find_config_path() == other

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            find_config_path(str(tmp_path / "missing.yaml"))
        assert exc_info.value.config_path == str(tmp_path / "missing.yaml")


class TestBuildConfig:
    """Tests for build_config validation."""

    def test_empty_data_gives_defaults(self) -> None:
        assert build_config(None) == AppConfig()

    def test_non_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="not a mapping"):
            build_config(["a", "b"])

    def test_validation_errors_are_listed(self) -> None:
        data = {"reconciliation": {"min_score": 2.0}, "catalog": {"requests_per_window": 0}}
        with pytest.raises(ConfigurationError) as exc_info:
            build_config(data, "config.yaml")

        message = str(exc_info.value)
        assert message.startswith("Configuration validation failed:")
        assert "reconciliation.min_score" in message
        assert "catalog.requests_per_window" in message
        assert exc_info.value.config_path == "config.yaml"

    def test_inconsistent_duration_thresholds(self) -> None:
        data = {"matching": {"duration_tolerance_seconds": 30, "duration_cutoff_seconds": 10}}
        with pytest.raises(ConfigurationError, match="duration_cutoff_seconds"):
            build_config(data)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self) -> None:
        assert load_config() == AppConfig()

    def test_loads_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "database_path: /data/library.db\n"
            "logging:\n  levels:\n    console: DEBUG\n"
            "reconciliation:\n  max_candidates: 6\n",
            encoding="utf-8",
        )

        config = load_config(str(path))

        assert config.database_path == "/data/library.db"
        assert config.logging.levels.console is LogLevel.DEBUG
        assert config.reconciliation.max_candidates == 6
        assert config.catalog.max_retries == 0

    def test_wrong_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ConfigurationError, match=".yaml or .yml"):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("catalog: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(path))

    def test_oversized_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("#" * (MAX_CONFIG_SIZE + 1), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="too large"):
            load_config(str(path))
