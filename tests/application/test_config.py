import pytest
from pydantic import ValidationError

from cadence.application.config import AppConfig, resolve_config


def test_defaults(mock_home):
    config = resolve_config()
    assert config.target_retention == 0.9
    assert config.min_records_for_optimization == 20
    assert config.parameter_cache_ttl_seconds == 0.0
    assert config.backend == "sqlite"
    assert config.database_path == mock_home / ".local/share/cadence/history.db"


def test_env_overrides_and_clamping(mock_home, monkeypatch):
    monkeypatch.setenv("CADENCE_TARGET_RETENTION", "1.5")
    monkeypatch.setenv("CADENCE_BACKEND", "memory")
    config = resolve_config()
    assert config.target_retention == 0.99
    assert config.backend == "memory"


def test_toml_file_is_read_and_env_wins(mock_home, monkeypatch):
    toml = mock_home / "config.toml"
    toml.write_text("target_retention = 0.8\nhistory_limit = 200\n")
    monkeypatch.setattr("cadence.application.config.CONFIG_FILES", [toml])

    config = resolve_config()
    assert config.target_retention == 0.8
    assert config.history_limit == 200

    monkeypatch.setenv("CADENCE_HISTORY_LIMIT", "300")
    assert resolve_config().history_limit == 300


def test_cli_overrides_win_and_none_is_ignored(mock_home, monkeypatch):
    monkeypatch.setenv("CADENCE_TARGET_RETENTION", "0.85")
    config = resolve_config({"target_retention": 0.7, "history_limit": None})
    assert config.target_retention == 0.7
    assert config.history_limit == 1000


def test_nan_retention_falls_back_to_default(mock_home):
    assert AppConfig(target_retention=float("nan")).target_retention == 0.9


def test_user_fit_minimum_cannot_drop_below_twenty(mock_home):
    with pytest.raises(ValidationError):
        AppConfig(min_records_for_optimization=5)


def test_database_path_expands_user(mock_home):
    config = AppConfig(database_path="~/data/cadence.db")
    assert config.database_path == (mock_home / "data/cadence.db").resolve()


def test_retired_logging_keys_are_ignored(mock_home, monkeypatch):
    toml = mock_home / "config.toml"
    toml.write_text('log_dir = "~/logs"\nverbose = 3\n')
    monkeypatch.setattr("cadence.application.config.CONFIG_FILES", [toml])

    dumped = resolve_config().model_dump()
    assert "log_dir" not in dumped
    assert "verbose" not in dumped
