"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


class ApiConfig(BaseModel):
    base_url: str = "http://localhost:5000/api"
    token: Optional[str] = None
    timeout: float = 10.0


class WebhookConfig(BaseModel):
    health_timeout: float = Field(default=5.0, ge=5.0, le=10.0)
    send_timeout: float = 10.0


class AuthConfig(BaseModel):
    max_attempts: int = 3
    retry_delay: float = 2.0
    request_timeout: float = 5.0


class ReportsConfig(BaseModel):
    direct_limit: int = 100
    per_sid_limit: int = 50
    page_size: int = 10
    page_sizes: list[int] = Field(default_factory=lambda: [5, 10, 25, 50])

    @model_validator(mode="after")
    def _page_size_offered(self) -> ReportsConfig:
        if not self.page_sizes or any(size < 1 for size in self.page_sizes):
            raise ValueError("page_sizes must be positive")
        if self.page_size not in self.page_sizes:
            raise ValueError(f"page_size {self.page_size} is not one of {self.page_sizes}")
        return self


class MetricFamilyConfig(BaseModel):
    primary: str
    secondary: str


def _default_families() -> dict[str, MetricFamilyConfig]:
    return {
        "usage": MetricFamilyConfig(primary="voice-minutes", secondary="conversations"),
    }


class AnalyticsConfig(BaseModel):
    ranges: list[int] = Field(default_factory=lambda: [7, 30])
    default_range: int = 7
    families: dict[str, MetricFamilyConfig] = Field(default_factory=_default_families)

    @field_validator("ranges")
    @classmethod
    def _ranges_not_empty(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("at least one analytics range is required")
        return sorted(set(value))

    @model_validator(mode="after")
    def _default_range_offered(self) -> AnalyticsConfig:
        if self.default_range not in self.ranges:
            raise ValueError(f"default_range {self.default_range} is not one of {self.ranges}")
        return self


class StorageConfig(BaseModel):
    backend: str = "rest"  # "rest" | "sqlite"
    db_path: str = "./data/bot_console.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    api: ApiConfig = Field(default_factory=ApiConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    reports: ReportsConfig = Field(default_factory=ReportsConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
