"""Configuration management for the scheduler."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(RuntimeError):
    """Raised when the global config document cannot be loaded."""


class SchedulerSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    config_dir: Path = Field(default=Path("~/.config/ocdc"), validation_alias="OCDC_CONFIG_DIR")
    data_dir: Path = Field(default=Path("~/.local/share/ocdc"), validation_alias="OCDC_DATA_DIR")
    repos_file_override: Path | None = Field(default=None, validation_alias="OCDC_REPOS_FILE")
    config_file_override: Path | None = Field(default=None, validation_alias="OCDC_CONFIG_FILE")
    clones_dir_override: Path | None = Field(default=None, validation_alias="OCDC_CLONES_DIR")
    lock_timeout: float = Field(default=10.0, validation_alias="OCDC_LOCK_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="OCDC_LOG_LEVEL")
    tmux_path: str | None = Field(default=None, validation_alias="OCDC_TMUX_PATH")
    gh_path: str | None = Field(default=None, validation_alias="OCDC_GH_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "OCDC_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("lock_timeout")
    @classmethod
    def _validate_lock_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("OCDC_LOCK_TIMEOUT must be > 0")
        return value

    @property
    def repos_file(self) -> Path:
        return self.repos_file_override or self.config_dir / "repos.yaml"

    @property
    def config_file(self) -> Path:
        return self.config_file_override or self.config_dir / "config.json"

    @property
    def clones_dir(self) -> Path:
        return self.clones_dir_override or self.data_dir / "clones"

    @property
    def poll_state_dir(self) -> Path:
        return self.data_dir / "poll-state"

    @property
    def wip_state_file(self) -> Path:
        return self.poll_state_dir / "wip-state.json"

    @property
    def error_state_file(self) -> Path:
        return self.poll_state_dir / "processed.json"


class SelfIterationConfig(BaseModel):
    enabled: bool = False
    ready_label: str = "ocdc:ready"
    dry_run: bool = False


class GlobalWipLimits(BaseModel):
    global_max: int = Field(default=5, ge=0)


class GlobalConfig(BaseModel):
    """Process-wide settings from ``config.json``, separate from the repos file."""

    self_iteration: SelfIterationConfig = Field(default_factory=SelfIterationConfig)
    wip_limits: GlobalWipLimits = Field(default_factory=GlobalWipLimits)


def load_global_config(path: Path) -> GlobalConfig:
    """Load ``path``; a missing file yields the defaults."""

    path = Path(path)
    if not path.exists():
        return GlobalConfig()
    try:
        document = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse JSON in {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ConfigError(f"Expected an object at the top of {path}")
    try:
        return GlobalConfig.model_validate(document)
    except ValidationError as exc:
        raise ConfigError(f"Global config validation error in {path}: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """Return cached settings instance."""

    settings = SchedulerSettings()
    settings.config_dir = settings.config_dir.expanduser().resolve()
    settings.data_dir = settings.data_dir.expanduser().resolve()
    for name in ("repos_file_override", "config_file_override", "clones_dir_override"):
        value = getattr(settings, name)
        if value is not None:
            setattr(settings, name, value.expanduser().resolve())
    return settings


__all__ = [
    "ConfigError",
    "GlobalConfig",
    "SchedulerSettings",
    "get_settings",
    "load_global_config",
]
