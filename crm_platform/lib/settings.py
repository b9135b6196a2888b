"""
Application settings loaded from environment variables.
Uses pydantic-settings for validation and .env file support.
"""
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./crm_platform.db",
        description="SQLAlchemy connection string"
    )
    storage_backend: Literal["memory", "sql"] = Field(
        default="sql",
        description="Customer store backing: in-memory maps or SQL tables"
    )

    # OpenAI (natural-language segment rules)
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key for rule generation"
    )
    openai_model: str = Field(default="gpt-4o", description="Chat model for rule generation")

    # Delivery vendor simulation
    delivery_success_rate: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Probability that a simulated delivery succeeds"
    )
    delivery_min_latency_ms: int = Field(default=1000, ge=0, description="Minimum vendor latency")
    delivery_max_latency_ms: int = Field(default=4000, ge=0, description="Maximum vendor latency (exclusive)")
    dispatch_jitter_ms: int = Field(
        default=5000,
        ge=0,
        description="Upper bound of the random delay applied to each delivery job"
    )
    delivery_batch_size: int = Field(
        default=100,
        ge=1,
        description="Deliveries released per batch for large audiences"
    )
    delivery_batch_pause_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between delivery batches"
    )
    receipt_callback_url: str = Field(
        default="",
        description="Delivery receipt endpoint; empty means in-process reconciliation"
    )

    # Campaign finalizer job
    finalizer_enabled: bool = Field(default=True, description="Run the campaign finalizer sweep")
    finalizer_interval_seconds: int = Field(
        default=30,
        ge=1,
        description="Seconds between finalizer sweeps"
    )

    # Application
    app_name: str = Field(default="CRM Platform", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    log_json: bool = Field(default=True, description="Emit one JSON object per log line")


# Global settings instance
settings = Settings()
