"""
Configuration Management for finvault

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Key-derivation parameters in particular are only DEFAULTS for new vaults:
an existing vault always uses the iteration count recorded in its metadata.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VaultSettings(BaseSettings):
    """Key derivation, cipher and storage-key configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINVAULT_VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    kdf_iterations: int = Field(
        default=200_000,
        ge=1_000,
        description="PBKDF2 iteration count recorded into NEW vaults"
    )
    min_pin_length: int = Field(
        default=4,
        ge=4,
        description="Minimum PIN length in characters"
    )
    salt_bytes: int = Field(
        default=16,
        ge=16,
        le=64,
        description="Random salt size for new vaults"
    )
    nonce_bytes: int = Field(
        default=12,
        ge=12,
        le=16,
        description="AES-GCM nonce size"
    )
    verify_pin_on_unlock: bool = Field(
        default=True,
        description="Check the stored PIN verifier before attempting decryption"
    )

    # Storage keys (kept compatible with vaults written by earlier versions)
    meta_key: str = Field(default="lf_meta_v1")
    vault_key: str = Field(default="lf_vault_v1")
    plain_key: str = Field(default="lf_vault_plain_v1")
    pin_lock_key: str = Field(default="lf_pinlock_enabled")


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINVAULT_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(
        default=Path.home() / ".finvault",
        description="Directory holding the vault store and audit trail"
    )
    store_filename: str = Field(
        default="store.json",
        description="Key-value store file inside data_dir"
    )
    audit_filename: str = Field(
        default="audit.jsonl",
        description="Append-only audit trail inside data_dir"
    )
    audit_enabled: bool = Field(
        default=True,
        description="Persist audit events next to the store"
    )

    @field_validator("store_filename", "audit_filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Filenames must stay inside data_dir."""
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError(f"Invalid filename: {v!r}")
        return v

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_filename

    @property
    def audit_path(self) -> Path:
        return self.data_dir / self.audit_filename


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for local structured logs"
    )

    # Validation thresholds
    max_amount: Decimal = Field(
        default=Decimal("1000000000000"),
        gt=0,
        description="Largest amount accepted for a single entry (sanity check)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def vault(self) -> VaultSettings:
        return VaultSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("vault", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
