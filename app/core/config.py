"""Application configuration and settings."""

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AnyHttpUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from app.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = Field(default="statement-dispatch")
    service_version: str = Field(default="1.0.0")
    port: int = Field(default=8000)
    host: str = Field(default="0.0.0.0")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # MongoDB Configuration
    mongodb_uri: str = Field(..., min_length=1)
    mongodb_database: Optional[str] = Field(default=None)
    mongodb_connect_timeout_ms: int = Field(default=5000)
    store_bind_attempts: int = Field(default=3)

    customer_collection: str = Field(default="PartyCode")
    statement_collection: str = Field(default="Statement")
    report_section_collection: str = Field(default="ReportSection")
    request_collection: str = Field(default="WhatsAppRequest")

    # Render Service
    render_service_url: AnyHttpUrl = Field(default="http://localhost:3000")
    render_endpoint: str = Field(default="/api/statement-excel/pdf")
    render_timeout_seconds: int = Field(default=30)

    # WhatsApp Gateway
    whatsapp_gateway_url: AnyHttpUrl = Field(default="http://localhost:3001")
    whatsapp_gateway_token: Optional[str] = Field(default=None)
    whatsapp_gateway_timeout_seconds: int = Field(default=30)
    webhook_token: Optional[str] = Field(default=None)

    # Circuit Breaker Configuration
    circuit_breaker_failure_threshold: int = Field(default=5)
    circuit_breaker_timeout_seconds: int = Field(default=60)

    # Dispatch
    dispatch_workers: int = Field(default=1)
    dispatch_queue_size: int = Field(default=100)
    dispatch_drain_timeout_seconds: float = Field(default=30.0)

    # Fulfillment
    business_name: str = Field(default="Sanjivan Medico Traders")
    scratch_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))

    @field_validator("dispatch_workers", "dispatch_queue_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Dispatch workers and queue size must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings(**overrides) -> Settings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: If a required setting (MONGODB_URI) is missing or
            any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(missing)}",
            fields=missing,
        ) from e


@lru_cache()
def get_settings() -> Settings:
    """Get application settings."""
    return load_settings()
