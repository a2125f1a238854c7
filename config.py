"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (and `.env`)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "production"] = Field(default="development")

    # MongoDB
    database_url: Optional[str] = Field(default=None)
    database_name: Optional[str] = Field(default=None)

    # Static vendor directory served at /api/vendors
    vendors_file: str = Field(default="data/vendors.json")

    # HTTP
    port: int = Field(default=8000)
    cors_origins: List[str] = Field(default=["*"])

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # Marketplace rules
    loyalty_points_per_order: int = Field(default=10, ge=0)
    default_supplier_rating: float = Field(default=4.5, ge=0, le=5)
    list_limit: int = Field(default=100, ge=1)


@lru_cache
def get_settings() -> Settings:
    return Settings()
