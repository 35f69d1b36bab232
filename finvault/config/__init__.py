"""Configuration package."""

from finvault.config.settings import (
    AppSettings,
    Settings,
    StorageSettings,
    VaultSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "Settings",
    "StorageSettings",
    "VaultSettings",
    "get_settings",
    "validate_all_settings",
]
