"""Configuration utilities for Sitehook."""

from .loader import (
    Config,
    LoggingSettings,
    MissingSettingError,
    ServiceSettings,
    SiteSettings,
    load_config,
)

__all__ = [
    "Config",
    "LoggingSettings",
    "MissingSettingError",
    "ServiceSettings",
    "SiteSettings",
    "load_config",
]
