"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ComposerConfig(BaseSettings):
    """Engine limits and defaults."""
    model_config = SettingsConfigDict(env_prefix="COMPOSER_", extra="ignore")

    max_steps: int = 50
    max_depth: int = 50  # Maximum number of execution levels
    max_parallel_branches: int = 10  # Wider levels are flagged, not rejected
    default_max_parallel: int = 5
    default_retry_count: int = 3
    retry_backoff_ms: int = 1000  # Linear: base * (attempt + 1)
    log_level: str = "INFO"

    @field_validator("max_steps", "max_depth", "max_parallel_branches", "default_max_parallel", "default_retry_count")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1, got {v}")
        return v

    @field_validator("retry_backoff_ms")
    @classmethod
    def validate_backoff(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retry_backoff_ms must be >= 0, got {v}")
        if v > 60_000:
            logger.warning(
                f"retry_backoff_ms is very high ({v}). "
                "Retried steps will stall their level for a long time."
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"log_level must be a standard logging level, got '{v}'")
        return level


def load_config(config_path: Path = Path("tool-composer.yaml")) -> ComposerConfig:
    """Load composer configuration from a YAML file.

    Missing files fall back to defaults (plus COMPOSER_* environment overrides).
    """
    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}. Using default configuration.")
        return ComposerConfig()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return ComposerConfig(**expand_env_vars(data))


def expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` strings from the environment.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "steps[0].static_args.token")
    """
    if isinstance(data, dict):
        return {k: expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used."
            )
            return data
        return value
    return data
