"""
Configuration management for modswitch.

This module provides centralized configuration using Pydantic settings
with support for environment variables and .env files.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []


class ModswitchSettings(BaseSettings):
    """modswitch configuration settings."""

    # Application
    app_name: str = "modswitch"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)

    # Registry
    registry_path: str = Field(default="", description="Path to the module registry file (YAML or JSON)")

    # Access info cache
    cache_ttl_seconds: int = Field(default=300, description="Time to live for resolved module status entries in seconds")
    cache_stale_threshold: float = Field(default=0.8, description="Fraction of the TTL after which an entry is served stale and refreshed in the background")
    cache_stale_while_revalidate: bool = Field(default=True, description="Serve stale entries while a background refresh runs")
    cache_max_entries: int = Field(default=1000, description="Maximum number of cached (workspace, user) entries")

    # Authorization
    privileged_roles: list[str] = Field(default=["root"], description="Roles that see every module as active and available")

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_structured: bool = Field(default=False, description="Emit JSON log records")
    log_file: str = Field(default="", description="Optional log file path")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="MODSWITCH_",
        extra="ignore",
    )

    def get_registry_path(self) -> Path | None:
        """Get registry path as Path object."""
        if self.registry_path:
            return Path(self.registry_path).expanduser().resolve()
        return None

    def get_log_file_path(self) -> Path | None:
        """Get log file path as Path object."""
        if not self.log_file:
            return None
        path = Path(self.log_file).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def validate_settings(self) -> ValidationResult:
        """Validate settings and return status information."""
        status = ValidationResult()

        registry_path = self.get_registry_path()
        if registry_path and not registry_path.exists():
            status.errors.append(f"Registry path does not exist: {registry_path}")
            status.valid = False

        if self.cache_ttl_seconds < 1:
            status.errors.append("Cache TTL must be at least 1 second")
            status.valid = False

        if not (0.0 < self.cache_stale_threshold <= 1.0):
            status.errors.append("Cache stale threshold must be within (0.0, 1.0]")
            status.valid = False

        if self.cache_max_entries < 1:
            status.errors.append("Cache max entries must be at least 1")
            status.valid = False

        if not self.privileged_roles:
            status.warnings.append("No privileged roles configured; no actor bypasses module checks")

        return status

    def get_cache_config(self) -> dict[str, Any]:
        """Get cache configuration as a structured dictionary."""
        return {
            "ttl_seconds": self.cache_ttl_seconds,
            "stale_threshold": self.cache_stale_threshold,
            "stale_while_revalidate": self.cache_stale_while_revalidate,
            "max_entries": self.cache_max_entries,
        }


# Global settings instance
settings = ModswitchSettings()


def get_settings() -> ModswitchSettings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> ModswitchSettings:
    """Reload settings from environment and return new instance."""
    global settings
    settings = ModswitchSettings()
    return settings
