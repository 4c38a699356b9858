"""Configuration package."""

from getanswer.config.settings import (
    AppSettings,
    CreditSettings,
    GeminiSettings,
    Settings,
    StorageSettings,
    VisionSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CreditSettings",
    "GeminiSettings",
    "Settings",
    "StorageSettings",
    "VisionSettings",
    "get_settings",
    "validate_all_settings",
]
