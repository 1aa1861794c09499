"""
Application settings and configuration management.

This module handles environment variables and application configuration
using Pydantic settings management for type safety and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    No setting is required: without METRICS_API_URL the pipeline runs
    entirely on the deterministic fallback source.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Metrics Source
    metrics_api_url: Optional[str] = Field(default=None, alias="METRICS_API_URL")
    request_timeout_seconds: float = Field(default=30.0, gt=0, alias="REQUEST_TIMEOUT_SECONDS")
    max_concurrent_requests: int = Field(default=5, ge=1, alias="MAX_CONCURRENT_REQUESTS")
    max_competitors: int = Field(default=5, ge=1, le=5, alias="MAX_COMPETITORS")

    # Output Settings
    output_dir: Path = Field(default=Path("outputs/reports"), alias="OUTPUT_DIR")
    report_format: Literal["json", "markdown", "html", "csv"] = Field(
        default="json",
        alias="REPORT_FORMAT"
    )

    @field_validator("output_dir", mode="before")
    @classmethod
    def validate_directories(cls, v: str | Path) -> Path:
        """Ensure directories exist."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("metrics_api_url", mode="before")
    @classmethod
    def validate_metrics_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank values as unset and require an http(s) scheme."""
        if v is None or not str(v).strip():
            return None
        v = str(v).strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("METRICS_API_URL must start with http:// or https://")
        return v

    @property
    def remote_enabled(self) -> bool:
        """Whether a remote metrics endpoint is configured."""
        return self.metrics_api_url is not None

    def get_metrics_provider(self) -> str:
        """Describe which metrics source the pipeline will use."""
        if self.remote_enabled:
            return "remote+fallback"
        return "fallback"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
