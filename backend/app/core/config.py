"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and provides helpers to load the YAML file holding
the external predictor budgets (timeouts and concurrency).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    # Database connection URL
    db_url: str = "sqlite:///./smartmandi.db"

    # External predictor process: ``<python_executable> <model_script> <operation>``
    python_executable: str = "python"
    model_script: str = "python/model_service.py"

    config_dir: str = "configs"
    cors_origins: str = ""
    log_level: str = "INFO"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass(frozen=True)
class PredictorConfig:
    """Time and concurrency budgets for the external predictor."""

    pricing_timeout_seconds: float = 30.0
    demand_timeout_seconds: float = 60.0
    mapping_timeout_seconds: float = 5.0
    max_concurrent_predictions: int = 4

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "PredictorConfig":
        defaults = cls()
        values: Dict[str, Any] = {}
        for name in (
            "pricing_timeout_seconds",
            "demand_timeout_seconds",
            "mapping_timeout_seconds",
        ):
            raw = data.get(name)
            value = float(raw) if raw is not None else getattr(defaults, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive")
            values[name] = value
        limit = data.get("max_concurrent_predictions")
        # 0 disables the limiter
        values["max_concurrent_predictions"] = (
            max(int(limit), 0) if limit is not None else defaults.max_concurrent_predictions
        )
        return cls(**values)


def load_predictor_config(config_dir: str | None = None) -> PredictorConfig:
    """Read the ``predictor`` block of ``settings.yaml`` with defaults."""

    root = config_dir or get_settings().config_dir
    settings = load_yaml(os.path.join(root, "settings.yaml"))
    block = settings.get("predictor") if isinstance(settings, dict) else None
    return PredictorConfig.from_mapping(block if isinstance(block, dict) else {})
