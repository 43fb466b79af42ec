"""LLM connection settings and logging setup."""

import sys
from typing import Optional

from loguru import logger
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """LLM connection settings from environment or direct initialization."""

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEPA_API_KEY", "OPENAI_API_KEY", "API_KEY", "api_key"),
    )
    model: str = "default"
    temperature: float = 0.7
    base_url: Optional[str] = None
    request_timeout: float = Field(
        default=60.0,
        gt=0.0,
        validation_alias=AliasChoices("GEPA_REQUEST_TIMEOUT", "request_timeout"),
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("GEPA_MAX_RETRIES", "max_retries"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("GEPA_LOG_LEVEL", "log_level"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


def get_settings() -> Settings:
    """Load settings from environment."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Replace loguru's default sink with a stderr sink at the given level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or get_settings().log_level).upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
