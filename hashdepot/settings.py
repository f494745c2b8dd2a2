# -*- coding: utf-8 -*-
"""Service configuration and logging setup.

Settings are read from ``HASHDEPOT_*`` environment variables, falling back to
a ``.env`` file in the working directory:

  HASHDEPOT_STORAGE_URL      PyFilesystem2 URL of the backend (``mem://``)
  HASHDEPOT_MAX_OBJECT_SIZE  Largest accepted object in bytes
  HASHDEPOT_ALGORITHM        256-bit ``hashlib`` algorithm (``sha256``)
  HASHDEPOT_INGEST_TIMEOUT   Seconds allowed to receive an object
  HASHDEPOT_LOG_LEVEL        Root log level
"""

import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hashdepot.guard import DEFAULT_MAX_OBJECT_SIZE
from hashdepot.verify import DEFAULT_ALGORITHM, check_algorithm


class Settings(BaseSettings):
    """Settings shared by the HTTP app and the ingestion pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="HASHDEPOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_url: str = Field(default="mem://", description="Storage backend URL")
    max_object_size: int = Field(default=DEFAULT_MAX_OBJECT_SIZE, ge=0)
    algorithm: str = Field(default=DEFAULT_ALGORITHM, description="Digest algorithm")
    depth: int = Field(default=4, ge=0, description="Shard folder depth")
    width: int = Field(default=1, ge=1, description="Shard folder width")
    chunk_size: int = Field(default=64 * 1024, gt=0)
    spool_size: int = Field(default=8 * 1024 * 1024, ge=0)
    ingest_timeout: Optional[float] = Field(default=None, gt=0)

    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        return check_algorithm(value)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a concise format."""
    level = getattr(logging, str(level).upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
        return

    logging.basicConfig(level=level)
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)
