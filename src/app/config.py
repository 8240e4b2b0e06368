"""Configuration management using Pydantic settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "GEOIMPORT"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Upload limits
    max_upload_bytes: int = 50 * 1024 * 1024   # 50 MiB

    # Chunked parser
    parse_batch_size: int = Field(default=100, ge=1)   # placemarks per yield
    parse_time_budget: Optional[float] = None          # seconds, None = no budget

    # Persistence service (assignments / imported data)
    persistence_base_url: str = "http://localhost:5000"
    persistence_timeout: float = 30.0


settings = Settings()
