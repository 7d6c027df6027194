"""
Configuration Management for Extrato

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here: one settings class per external
service plus the tunables of the import pipeline. Every group is loaded
lazily so a partially configured environment (e.g. tests without
credentials) still works for the parts that need nothing external.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to the Firebase service account credentials JSON"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="Google Cloud project id (taken from the credentials if omitted)"
    )


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=8192,
        ge=100,
        le=32768,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit log configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    audit_sheet_name: str = Field(
        default="ImportAudit",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ImportSettings(BaseSettings):
    """
    Tunables of the statement import pipeline.

    Defaults reproduce the behaviour users already know from the app;
    they are settings so tests and deployments can adjust them.
    """

    model_config = SettingsConfigDict(
        env_prefix="IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Duplicate detection
    duplicate_window_days: int = Field(
        default=5,
        ge=0,
        le=60,
        description="Slack (in days) around the batch's date range when loading history"
    )

    # Installment / recurrence expansion
    max_repeat_count: int = Field(
        default=60,
        ge=1,
        le=60,
        description="Upper bound on generated instances for one transaction"
    )

    # Defaults for entities created during an import
    new_card_limit: float = Field(
        default=1000.0,
        ge=0,
        description="Limit of a credit card created by the resolver"
    )
    new_card_closing_day: int = Field(default=1, ge=1, le=31)
    new_card_due_day: int = Field(default=10, ge=1, le=31)
    default_account_type: str = Field(default="Corrente")
    default_account_color: str = Field(default="#21C25E")
    default_card_color: str = Field(default="#64748b")

    # Statement parsing
    closing_day_offset: int = Field(
        default=7,
        ge=0,
        le=28,
        description="Days between closing and due date when the statement omits closing"
    )
    line_break_threshold: float = Field(
        default=5.0,
        gt=0,
        description="Vertical jump (PDF points) that starts a new text line"
    )
    min_description_length: int = Field(default=3, ge=1)

    # Validation thresholds
    max_reasonable_amount: float = Field(
        default=1_000_000.0,
        description="Amounts above this are flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How far in the future a non-installment transaction may be dated"
    )
    old_date_tolerance_days: int = Field(
        default=730,
        description="Dates older than this are flagged as suspicious"
    )

    # Invariant checking
    verify_balances: bool = Field(
        default=False,
        description="Recompute touched account balances after every commit"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def imports(self) -> ImportSettings:
        return ImportSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus "<name>_error"
    entries describing what is missing. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("firestore", "gemini", "google_sheets", "imports"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
