"""Configuration package."""

from extrato.config.settings import (
    FirestoreSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    ImportSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "FirestoreSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "ImportSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
