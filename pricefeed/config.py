"""
Configuration settings for the price feed pipeline.

Uses Pydantic Settings to load environment variables for database connections,
logging, HTTP fetch behavior, the partial-failure policy, and cache freshness.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("pricefeed", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Source fetching
    fetch_timeout_ms: int = Field(5000, alias="FETCH_TIMEOUT_MS")
    fetch_max_attempts: int = Field(3, alias="FETCH_MAX_ATTEMPTS")
    fetch_retry_base_delay_ms: int = Field(1000, alias="FETCH_RETRY_BASE_DELAY_MS")
    http_user_agent: str = Field("pricefeed/0.1", alias="HTTP_USER_AGENT")

    # Run policy
    fetch_failure_threshold: float = Field(0.5, alias="FETCH_FAILURE_THRESHOLD")
    min_active_sources: int = Field(3, alias="MIN_ACTIVE_SOURCES")
    default_unit: str = Field("IRR", alias="DEFAULT_UNIT")

    # Read path
    cache_ttl_seconds: int = Field(300, alias="CACHE_TTL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
