"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flow_engine.parser.validation import (
    DEFAULT_MAX_QUERY_COUNT,
    DEFAULT_MAX_SQL_SIZE_BYTES,
    ValidationLimits,
)
from flow_engine.sql_toolkit import Dialect

logger = logging.getLogger(__name__)

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class FlowEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Settings read from ``SQLFLOW_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="SQLFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: FlowEnv = FlowEnv.DEV
    debug: bool = False

    # Parsing
    default_dialect: Dialect = Dialect.MYSQL
    max_sql_size_bytes: int = DEFAULT_MAX_SQL_SIZE_BYTES
    max_query_count: int = DEFAULT_MAX_QUERY_COUNT
    max_expression_depth: int = 12
    max_details: int = 10

    # Lineage
    include_external: bool = True
    include_columns: bool = True

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator(
        "max_sql_size_bytes", "max_query_count", "max_expression_depth", "max_details"
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("default_dialect", mode="before")
    @classmethod
    def parse_dialect(cls, v: object) -> object:
        if isinstance(v, str) and not isinstance(v, Dialect):
            return Dialect.from_name(v)
        return v

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level: {v}")
        return level

    def validation_limits(self) -> ValidationLimits:
        return ValidationLimits(
            max_sql_size_bytes=self.max_sql_size_bytes,
            max_query_count=self.max_query_count,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
