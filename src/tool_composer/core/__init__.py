"""Core configuration."""

from .config import ComposerConfig, expand_env_vars, load_config

__all__ = [
    "ComposerConfig",
    "expand_env_vars",
    "load_config",
]
