"""Centralized configuration management using Pydantic Settings.

This module provides type-safe configuration with environment variable support,
validation, and clear defaults for the MongoDB MCP server. It is the single
source of truth for the default connection target and the default read-only
policy consumed by the connection manager.

Configuration can be overridden via environment variables (e.g.,
MONGODB_MCP_CONNECTION_STRING) and is validated at startup.

Example:
    >>> from src.config.settings import settings
    >>> settings.validate_configuration()
    >>> settings.mongodb_read_only
    True
"""

import logging
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file (if present)
    3. Class defaults (lowest priority)

    All settings can be overridden via environment variables using uppercase
    names (e.g., MONGODB_READ_ONLY=false).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # MongoDB Configuration
    # ========================================================================

    mongodb_mcp_connection_string: str | None = Field(
        default=None,
        description=(
            "Default MongoDB connection string used when connect() is called without "
            "an explicit target. Format: mongodb://[username:password@]host[:port][/database][?options]"
        ),
    )

    mongodb_mcp_default_database: str | None = Field(
        default=None,
        description="Database used by tools when no database name is given",
    )

    mongodb_read_only: bool = Field(
        default=True,
        description=(
            "Default read-only policy for new connections. When enabled, write "
            "operations and $out/$merge aggregation stages are rejected"
        ),
    )

    mongodb_auto_connect: bool = Field(
        default=False,
        description="Connect to the configured connection string when the server starts",
    )

    mongodb_timeout: int = Field(
        default=30,
        description="Server selection and connect timeout in seconds",
        ge=1,
        le=300,
    )

    mongodb_min_pool_size: int = Field(
        default=0,
        description="Minimum number of connections to maintain in the connection pool",
        ge=0,
    )

    mongodb_max_pool_size: int = Field(
        default=50,
        description="Maximum number of connections allowed in the connection pool",
        ge=1,
    )

    # ========================================================================
    # Result Limits
    # ========================================================================

    result_limit: int = Field(
        default=10,
        description="Default number of documents returned by find when no limit is given",
        ge=1,
    )

    max_result_limit: int = Field(
        default=1000,
        description="Upper bound on documents returned in memory by find",
        ge=1,
    )

    aggregate_result_limit: int = Field(
        default=1000,
        description="$limit appended to aggregation pipelines returned in memory",
        ge=1,
    )

    # ========================================================================
    # MCP Server Configuration
    # ========================================================================

    mcp_server_name: str = Field(
        default="mongodb-mcp",
        description="Name announced by the MCP server",
    )

    # ========================================================================
    # Logging Configuration
    # ========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for application logs. DEBUG provides most detail",
    )

    # ========================================================================
    # Field Validators
    # ========================================================================

    @field_validator("mongodb_mcp_connection_string", "mongodb_mcp_default_database")
    @classmethod
    def blank_as_none(cls, value: str | None) -> str | None:
        """Treat empty or whitespace-only values as unset."""
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("mongodb_max_pool_size")
    @classmethod
    def validate_pool_sizes(cls, max_size: int, info) -> int:
        """Validate that min pool size does not exceed max pool size.

        Raises:
            ValueError: If mongodb_min_pool_size > mongodb_max_pool_size
        """
        if "mongodb_min_pool_size" in info.data:
            min_size = info.data["mongodb_min_pool_size"]
            if min_size > max_size:
                raise ValueError(
                    f"mongodb_min_pool_size ({min_size}) cannot exceed "
                    f"mongodb_max_pool_size ({max_size})"
                )
        return max_size

    # ========================================================================
    # Helper Properties
    # ========================================================================

    @property
    def mongodb_connection_string(self) -> str | None:
        """Default connection target, or None when nothing is configured."""
        return self.mongodb_mcp_connection_string

    @property
    def has_connection_string(self) -> bool:
        return self.mongodb_mcp_connection_string is not None

    def client_options(self) -> dict[str, Any]:
        """Driver options derived from settings, passed to the Motor client."""
        return {
            "serverSelectionTimeoutMS": self.mongodb_timeout * 1000,
            "connectTimeoutMS": self.mongodb_timeout * 1000,
            "minPoolSize": self.mongodb_min_pool_size,
            "maxPoolSize": self.mongodb_max_pool_size,
        }

    def redacted(self) -> dict[str, Any]:
        """Settings summary safe to log or return from tools.

        The connection string can carry credentials and is never included.
        """
        return {
            "has_connection_string": self.has_connection_string,
            "default_database": self.mongodb_mcp_default_database,
            "read_only": self.mongodb_read_only,
            "auto_connect": self.mongodb_auto_connect,
            "timeout_seconds": self.mongodb_timeout,
            "log_level": self.log_level,
        }

    def validate_configuration(self) -> None:
        """Validate settings that cannot be expressed as field constraints.

        Logs a warning instead of failing when no connection string is set:
        the connect tool can still receive one explicitly.

        Raises:
            ValueError: If auto-connect is enabled without a connection string
        """
        if self.mongodb_auto_connect and not self.has_connection_string:
            raise ValueError(
                "MONGODB_AUTO_CONNECT is enabled but MONGODB_MCP_CONNECTION_STRING is not set"
            )

        if not self.has_connection_string:
            logger.warning(
                "MONGODB_MCP_CONNECTION_STRING is not set; connect() will require "
                "an explicit connection string"
            )

        logger.debug(f"Configuration validated: {self.redacted()}")


settings = Settings()
