"""
Configuration Management for GetAnswer

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Credit prices, storage location and external service keys are all read
from the environment (or a .env file) and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CreditSettings(BaseSettings):
    """Credit ledger and pricing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CREDITS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_balance: int = Field(
        default=10,
        ge=0,
        description="Starting balance for a ledger with no stored balance"
    )
    inference_cost: int = Field(
        default=2,
        ge=1,
        description="Credits charged immediately before each AI answer"
    )
    extraction_cost: int = Field(
        default=1,
        ge=1,
        description="Credits charged before text extraction (metered variant only)"
    )
    meter_extraction: bool = Field(
        default=False,
        description="Charge extraction_cost before every text extraction"
    )
    max_transactions: int = Field(
        default=500,
        ge=10,
        description="Transactions kept in the log before the oldest are folded away"
    )
    inference_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Optional deadline for the AI answer; expiry counts as a failed inference"
    )


class StorageSettings(BaseSettings):
    """Local key-value storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_path: str = Field(
        default="getanswer_data.json",
        description="Path to the JSON document holding credits and history"
    )
    max_history_items: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Completed queries kept in history (newest first)"
    )

    @field_validator('data_path')
    @classmethod
    def validate_data_path(cls, v: str) -> str:
        """Reject a data path whose parent is an existing regular file."""
        parent = Path(v).expanduser().parent
        if parent.exists() and not parent.is_dir():
            raise ValueError(f"Storage parent is not a directory: {parent}")
        return v


class VisionSettings(BaseSettings):
    """Google Cloud Vision text extraction configuration."""

    model_config = SettingsConfigDict(
        env_prefix="VISION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Google Cloud Vision API key"
    )
    language_hints: str = Field(
        default="",
        description="Comma-separated language hints passed to text detection"
    )
    max_image_dimension: int = Field(
        default=2048,
        ge=256,
        le=8192,
        description="Longest image side (pixels) sent for text detection"
    )

    @property
    def language_hints_list(self) -> list[str]:
        """Get language hints as a list."""
        return [hint.strip() for hint in self.language_hints.split(",") if hint.strip()]


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.0-flash-lite",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )
    max_question_chars: int = Field(
        default=4000,
        ge=100,
        description="Extracted text longer than this is truncated before inference"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily so the ledger works without API keys

    @property
    def credits(self) -> CreditSettings:
        return CreditSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def vision(self) -> VisionSettings:
        return VisionSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for each invalid section.
    """
    results = {}
    settings = get_settings()

    for name in ("credits", "storage", "vision", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
