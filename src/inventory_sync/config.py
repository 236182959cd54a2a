"""
Inventory Sync Configuration System.

This module provides a type-safe configuration system using Pydantic.
Settings can be loaded from:
1. Environment variables (prefixed with INVENTORY_SYNC_)
2. Config file (TOML or JSON)
3. CLI arguments (highest priority)

Example usage:
    from inventory_sync.config import Settings

    # Load from environment
    settings = Settings()

    # Or with explicit values
    settings = Settings(
        store_url="https://shop.example.com",
        consumer_key="ck_...",
        consumer_secret="cs_...",
    )
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogOptions(BaseModel):
    """Options for talking to the remote catalog API."""

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Read timeout for a single catalog request",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request on rate limiting or transport errors",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay between attempts (multiplied by attempt number)",
    )
    variations_per_page: int = Field(
        default=100,
        ge=1,
        le=100,
        description="per_page value for variation fetches",
    )
    publish_only: bool = Field(
        default=True,
        description="Send status=publish with product and variation fetches",
    )
    query_string_auth: bool = Field(
        default=False,
        description="Send credentials as query parameters instead of basic auth",
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify the store's TLS certificate",
    )


class SyncOptions(BaseModel):
    """Options controlling sync behavior."""

    page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Top-level products fetched per continue step",
    )
    initial_estimate: int = Field(
        default=5000,
        ge=1,
        description="Coarse catalog size used before the real size is known",
    )
    max_duration_minutes: int = Field(
        default=60,
        ge=1,
        description="In-progress runs older than this are discarded",
    )

    # Stall policy
    max_stall_pages: int = Field(
        default=10,
        ge=1,
        description="Consecutive unchanged pages before the stall policy applies",
    )
    stall_threshold_fraction: float = Field(
        default=0.9,
        gt=0,
        le=1.0,
        description="Fraction of the estimated total that must be processed "
        "before a stall ends the run. Full pages keep the estimate at 1.2x the "
        "processed count, so values above about 0.83 leave the policy inactive "
        "except on catalogs of a dozen items or fewer",
    )

    page_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Extra attempts for a page fetch that returned an error",
    )
    default_low_stock_threshold: int = Field(
        default=5,
        ge=0,
        description="Low stock threshold given to newly imported items",
    )
    state_file: Path = Field(
        default=Path(".inventory-sync-state.json"),
        description="Path to state file used by the CLI",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class DatabaseConfig(BaseModel):
    """Local inventory database configuration."""

    path: Path = Field(
        default=Path("inventory.db"),
        description="Path to the SQLite inventory database",
    )


class Settings(BaseSettings):
    """
    Main settings class for Inventory Sync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (INVENTORY_SYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        # From environment
        export INVENTORY_SYNC_STORE_URL="https://shop.example.com"
        export INVENTORY_SYNC_CONSUMER_SECRET="cs_..."
        settings = Settings()

        # From config file
        settings = Settings.from_file("config.toml")
    """

    model_config = SettingsConfigDict(
        env_prefix="INVENTORY_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Catalog credentials
    store_url: str = Field(
        default="",
        description="Base URL of the store, without /wp-json",
    )
    consumer_key: str = Field(
        default="",
        description="REST API consumer key",
    )
    consumer_secret: SecretStr = Field(
        default=SecretStr(""),
        description="REST API consumer secret",
    )
    api_version: str = Field(
        default="wc/v3",
        description="REST API namespace under /wp-json",
    )

    # Nested configs
    catalog: CatalogOptions = Field(default_factory=CatalogOptions)
    sync: SyncOptions = Field(default_factory=SyncOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @field_validator("consumer_secret", mode="before")
    @classmethod
    def validate_secret(cls, v: Any) -> SecretStr:
        """Handle the secret from various sources."""
        if isinstance(v, SecretStr):
            return v
        if isinstance(v, str):
            return SecretStr(v)
        return SecretStr("")

    @field_validator("store_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def from_file(cls, path: Path | str) -> "Settings":
        """Load settings from a TOML or JSON config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)

    def to_file(self, path: Path | str) -> None:
        """Save current settings to a config file."""
        path = Path(path)
        data = self.model_dump(mode="json", exclude_none=True)

        # Mask sensitive data
        if "consumer_secret" in data:
            data["consumer_secret"] = "***REDACTED***"

        if path.suffix in (".toml", ".tml"):
            lines = []
            for key, value in data.items():
                if not isinstance(value, dict):
                    lines.append(f"{key} = {json.dumps(value)}")
            for key, value in data.items():
                if isinstance(value, dict):
                    lines.append(f"\n[{key}]")
                    for k, v in value.items():
                        lines.append(f"{k} = {json.dumps(v)}")
            path.write_text("\n".join(lines) + "\n")
        else:
            path.write_text(json.dumps(data, indent=2))

    @property
    def api_base_url(self) -> str:
        """Base URL for catalog endpoints."""
        return f"{self.store_url}/wp-json/{self.api_version}"

    def validate_credentials(self) -> list[str]:
        """Validate that required credentials are present. Returns list of errors."""
        errors = []
        if not self.store_url:
            errors.append("store_url is required")
        if not self.consumer_key:
            errors.append("consumer_key is required")
        if not self.consumer_secret.get_secret_value():
            errors.append("consumer_secret is required")
        return errors


def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
