"""Configuration management for the auto-update bot."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AutoUpdateSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    github_token: str | None = Field(default=None, validation_alias="GITHUB_TOKEN")
    github_app_id: int | None = Field(default=None, validation_alias="GITHUB_APP_ID")
    github_private_key_path: Path | None = Field(
        default=None, validation_alias="GITHUB_PRIVATE_KEY_PATH"
    )
    github_api_url: str = Field(default="https://api.github.com", validation_alias="GITHUB_API_URL")
    policy_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("policies"),), validation_alias="AUTOUPDATE_POLICY_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="AUTOUPDATE_LOG_LEVEL")
    grace_period: float = Field(default=10.0, validation_alias="AUTOUPDATE_GRACE_PERIOD")
    dch_path: str | None = Field(default=None, validation_alias="DCH_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "AUTOUPDATE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("policy_paths", mode="before")
    @classmethod
    def _parse_policy_paths(cls, value):
        if value is None or value == "":
            return (Path("policies"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("policies"),)
        raise TypeError("AUTOUPDATE_POLICY_PATHS must be a list of paths or a path-separated string")

    @field_validator("grace_period")
    @classmethod
    def _validate_grace_period(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("AUTOUPDATE_GRACE_PERIOD must be > 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> AutoUpdateSettings:
    """Return cached settings instance."""

    settings = AutoUpdateSettings()
    settings.policy_paths = tuple(path.expanduser().resolve() for path in settings.policy_paths)
    if settings.github_private_key_path is not None:
        settings.github_private_key_path = settings.github_private_key_path.expanduser().resolve()
    return settings


__all__ = ["AutoUpdateSettings", "get_settings"]
