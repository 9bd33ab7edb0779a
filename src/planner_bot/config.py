"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AIConfig(BaseModel):
    backend: str = "openrouter"  # "openrouter" | "anthropic"
    model: str = "anthropic/claude-3.5-haiku"
    max_tokens: int = 2048
    temperature: float = 0.7
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_backoff: float = 1.0  # seconds, doubled after each retry
    rate_limit_per_hour: Optional[int] = None
    include_examples: bool = True
    # Cents per 1K tokens (Claude Haiku list price by default)
    input_cost_per_1k: float = 0.1
    output_cost_per_1k: float = 0.5


class AssistantConfig(BaseModel):
    app_name: str = "Plannerinator"
    language: Literal["it", "en"] = "it"
    timezone: str = "Europe/Rome"


class OpenRouterConfig(BaseModel):
    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    app_url: str = "https://plannerinator.com"
    app_title: str = "Plannerinator AI Assistant"
    timeout: int = 60


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    timeout: int = 120


class StorageConfig(BaseModel):
    db_path: str = "./data/planner_bot.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    ai: AIConfig = Field(default_factory=AIConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    openrouter: Optional[OpenRouterConfig] = None
    anthropic: Optional[AnthropicConfig] = None
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

    # data_dir may be referenced by other values, e.g. storage.db_path
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(raw_data.get("data_dir", "./data"))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
