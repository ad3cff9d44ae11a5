"""Configuration settings and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from httpmitm.matching import DEFAULT_TIMES, MOCK_SCHEME, UNLIMITED_TIMES


class MitmSettings(BaseSettings):
    """Configuration for httpmitm transports."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPMITM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mock_scheme: str = MOCK_SCHEME
    default_times: int = DEFAULT_TIMES
    default_origin_scheme: str = "http"
    passthrough_timeout: float = 30.0
    verify_ssl: bool = True
    testdata_dir: str = "testdata"
    log_level: str = "WARNING"

    @field_validator("mock_scheme", mode="before")
    @classmethod
    def validate_mock_scheme(cls, v: str) -> str:
        v = str(v).lower()
        if not v.isalnum():
            raise ValueError("mock_scheme must be alphanumeric, e.g. 'mitm'")
        if v in ("http", "https"):
            raise ValueError("mock_scheme must differ from the real schemes http and https")
        return v

    @field_validator("default_origin_scheme", mode="before")
    @classmethod
    def validate_origin_scheme(cls, v: str) -> str:
        v = str(v).lower()
        if v not in ("http", "https"):
            raise ValueError("default_origin_scheme must be 'http' or 'https'")
        return v

    @field_validator("default_times")
    @classmethod
    def validate_default_times(cls, v: int) -> int:
        if v < 0 and v != UNLIMITED_TIMES:
            raise ValueError(f"default_times must be >= 0 or {UNLIMITED_TIMES} for unlimited")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = str(v).upper()
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid:
            raise ValueError(f"Invalid log level: {v}. Valid: {sorted(valid)}")
        return v


def load_config(config_path: str | Path | None = None) -> MitmSettings:
    """Load configuration from file and environment.

    Priority: env vars > config file > defaults
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        # shared project files nest settings under an "httpmitm" section
        if isinstance(config_data.get("httpmitm"), dict):
            config_data = config_data["httpmitm"]

    config_data.update(_get_env_overrides())

    return MitmSettings(**config_data)


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    env_mappings = {
        "HTTPMITM_MOCK_SCHEME": "mock_scheme",
        "HTTPMITM_DEFAULT_TIMES": ("default_times", int),
        "HTTPMITM_PASSTHROUGH_TIMEOUT": ("passthrough_timeout", float),
        "HTTPMITM_VERIFY_SSL": ("verify_ssl", lambda x: x.lower() in ("true", "1", "yes")),
        "HTTPMITM_TESTDATA_DIR": "testdata_dir",
        "HTTPMITM_LOG_LEVEL": "log_level",
    }

    for env_key, config_key in env_mappings.items():
        value = os.environ.get(env_key)
        if value is not None:
            if isinstance(config_key, tuple):
                key, converter = config_key
                overrides[key] = converter(value)
            else:
                overrides[config_key] = value

    return overrides
