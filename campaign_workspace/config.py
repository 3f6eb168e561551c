"""
Configuration management for Campaign Workspace.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Campaign Workspace")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of origins allowed by CORS.",
    )

    # Metadata store
    database_url: str = Field(default="sqlite:///./campaign_workspace.db")

    # Object store
    storage_url: str = Field(
        default="file://./storage",
        description="file:///path for the local backend, http(s)://host for a storage REST API.",
    )
    storage_service_key: Optional[str] = Field(default=None)
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL public object links are built from (filesystem backend).",
    )
    input_bucket: str = Field(default="campaign-files")
    output_bucket: str = Field(default="campaign-outputs")
    storage_timeout_seconds: float = Field(default=30.0)
    storage_cache_control: str = Field(default="3600")
    confirm_attempts: int = Field(default=5, ge=1)
    confirm_interval_seconds: float = Field(default=0.2, ge=0)

    # Source dereferencing
    fetch_timeout_seconds: float = Field(default=30.0)

    # Retries for idempotent reads
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_strategy: str = Field(default="exponential")
    retry_backoff_base_seconds: float = Field(default=0.5, ge=0)

    # External auth service
    auth_url: Optional[str] = Field(
        default=None,
        description="Auth service base URL; GET {auth_url}/user resolves a bearer token.",
    )
    auth_api_key: Optional[str] = Field(default=None)
    auth_timeout_seconds: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
