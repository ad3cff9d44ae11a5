"""Configuration management for httpmitm."""

from httpmitm.config.settings import MitmSettings, load_config

__all__ = [
    "MitmSettings",
    "load_config",
]
