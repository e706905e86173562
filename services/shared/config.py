"""Shared configuration management for the invoice lifecycle engine.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-lifecycle-engine",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Extraction provider configuration
    extraction_provider: Literal["gemini", "ollama"] = Field(
        default="gemini",
        description="Extraction provider: gemini (cloud API), ollama (self-hosted vision LLM)",
    )

    # Gemini configuration (for extraction_provider="gemini")
    gemini_api_key: str = Field(
        default="",
        description="Gemini API key (use env var APP_GEMINI_API_KEY)",
    )
    gemini_endpoint: str = Field(
        default=(
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-2.0-flash:generateContent"
        ),
        description="Gemini generateContent endpoint URL",
    )

    # Ollama configuration (for extraction_provider="ollama")
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="llava:7b",
        description="Vision-capable Ollama model used for extraction",
    )

    # Generation parameters shared by all providers
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_max_output_tokens: int = Field(default=2048, gt=0)
    llm_top_p: float = Field(default=0.8, ge=0.0, le=1.0)
    llm_top_k: int = Field(default=40, gt=0)
    llm_connect_timeout: float = Field(
        default=30.0,
        description="Connect timeout in seconds for language model calls",
    )
    llm_read_timeout: float = Field(
        default=60.0,
        description="Read timeout in seconds for language model calls",
    )
    extraction_max_bytes: int = Field(
        default=4 * 1024 * 1024,
        description="Largest document sent to the model (payload is base64-inflated)",
    )

    # Upload validation
    upload_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted invoice upload",
    )

    # Storage configuration
    storage_backend: Literal["local", "minio"] = Field(
        default="local",
        description="File storage backend: local (disk), minio (S3-compatible)",
    )
    upload_dir: str = Field(
        default="./uploads",
        description="Root directory for the local storage backend",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoices",
        description="Bucket name for invoice files",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )

    # Duplicate detection service
    duplicate_check_enabled: bool = Field(
        default=True,
        description="Screen uploads against the duplicate detection service",
    )
    duplicate_check_url: str = Field(
        default="http://duplicate-check-service:8081",
        description="Base URL of the duplicate detection service",
    )
    duplicate_connect_timeout: float = Field(default=30.0)
    duplicate_read_timeout: float = Field(default=60.0)
    duplicate_rejection_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence at or above which a detected duplicate is rejected",
    )
    temporary_id_threshold: int = Field(
        default=100_000_000,
        description="Ids above this value denote not-yet-persisted invoices",
    )

    # Line items
    strict_product_lookup: bool = Field(
        default=False,
        description="Fail when a requested product id does not resolve instead of skipping it",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
