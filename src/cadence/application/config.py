from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cadence.domain.constants import (
    DEFAULT_TARGET_RETENTION,
    HISTORY_FETCH_LIMIT,
    MAX_TARGET_RETENTION,
    MIN_RECORDS_FOR_USER_FIT,
    MIN_TARGET_RETENTION,
    USER_FIT_LEARNING_RATE,
    USER_FIT_MAX_ITERATIONS,
    USER_FIT_MIN_ERROR,
)

CONFIG_FILES = [
    Path.home() / ".config/cadence/config.toml",
    Path.home() / ".cadence.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for cadence.
    Supports loading from:
    1. Environment variables (CADENCE_*)
    2. Config file (~/.config/cadence/config.toml or ~/.cadence.toml)
    3. Manual overrides (CLI / HTTP)
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        extra="ignore",
    )

    # Scheduling
    target_retention: float = DEFAULT_TARGET_RETENTION
    history_limit: int = Field(default=HISTORY_FETCH_LIMIT, ge=1)

    # Optimizer
    min_records_for_optimization: int = Field(default=MIN_RECORDS_FOR_USER_FIT, ge=MIN_RECORDS_FOR_USER_FIT)
    optimizer_max_iterations: int = Field(default=USER_FIT_MAX_ITERATIONS, ge=0)
    optimizer_learning_rate: float = Field(default=USER_FIT_LEARNING_RATE, gt=0)
    optimizer_min_error: float = Field(default=USER_FIT_MIN_ERROR, ge=0)

    # Per-user parameter cache. 0 disables caching (full refit on every attempt).
    parameter_cache_ttl_seconds: float = Field(default=0.0, ge=0)
    parameter_refit_after: int = Field(default=50, ge=1)

    # Storage
    backend: Literal["memory", "sqlite"] = "sqlite"
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/cadence/history.db"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins; CLI overrides and env take precedence over it.
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("target_retention", mode="after")
    @classmethod
    def clamp_target_retention(cls, v: float) -> float:
        if v != v:  # NaN
            return DEFAULT_TARGET_RETENTION
        return max(MIN_TARGET_RETENTION, min(MAX_TARGET_RETENTION, v))

    @field_validator("database_path", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cadence/config.toml (if exists)
    3. Environment variables (CADENCE_*)
    4. cli_overrides (non-None values only)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
