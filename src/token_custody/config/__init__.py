"""Configuration loading (env vars, YAML, defaults)."""

from token_custody.config.settings import AppConfig

__all__ = ["AppConfig"]
