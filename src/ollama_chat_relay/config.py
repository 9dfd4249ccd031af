"""Application configuration using Pydantic settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model-serving backend
    ollama_base_url: str = Field(
        "http://localhost:11434", alias="OLLAMA_BASE_URL",
        description="Base URL of the Ollama backend that serves models.",
    )
    ollama_timeout: float = Field(
        30.0, alias="OLLAMA_TIMEOUT",
        description="Timeout in seconds for bounded backend calls (list, delete, info, generate). Streaming calls have none.",
    )

    # Request limits
    max_body_bytes: int = Field(
        52_428_800, alias="MAX_BODY_BYTES",
        description="Max request body size accepted by the server. Default: 50 MB.",
    )
    max_image_bytes: int = Field(
        10_485_760, alias="MAX_IMAGE_BYTES",
        description="Max size of an uploaded image for analysis. Default: 10 MB.",
    )

    # Client-side consumer
    relay_api_url: str = Field(
        "http://localhost:3001/api", alias="RELAY_API_URL",
        description="Base URL of the relay API, used by RelayClient.",
    )
    relay_client_timeout: float = Field(
        30.0, alias="RELAY_CLIENT_TIMEOUT",
        description="Timeout in seconds for ordinary RelayClient requests.",
    )
    relay_analyze_timeout: float = Field(
        60.0, alias="RELAY_ANALYZE_TIMEOUT",
        description="Timeout in seconds for image analysis requests made by RelayClient.",
    )

    # Server
    host: str = Field(
        "0.0.0.0", alias="HOST",
        description="Host address to bind the aiohttp server to.",
    )
    port: int = Field(
        3001, alias="PORT",
        description="Port number for the aiohttp server.",
    )

    # Logging
    log_level: str = Field(
        "INFO", alias="LOG_LEVEL",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL.",
    )
    log_file: str = Field(
        "", alias="LOG_FILE",
        description="Path to log file for file-based logging with rotation. Empty = console only.",
    )
    log_file_max_bytes: int = Field(
        10_485_760, alias="LOG_FILE_MAX_BYTES",
        description="Max size in bytes per log file before rotation. Default: 10 MB.",
    )
    log_file_backup_count: int = Field(
        5, alias="LOG_FILE_BACKUP_COUNT",
        description="Number of rotated backup log files to keep.",
    )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
