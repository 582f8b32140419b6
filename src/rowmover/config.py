"""Configuration management using YAML and Pydantic."""

import os
import re
import warnings
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from rowmover.exceptions import ConfigurationError

DEFAULT_CHUNK_SIZE = 512

# asyncpg binds at most 32767 arguments per query; a chunk binds its ids plus
# the audit value.
MAX_CHUNK_SIZE = 32766


def _substitute_env_vars(value: str) -> str:
    """Substitute environment variables in string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with environment variables substituted
    """
    pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_value = os.getenv(var_name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        raise ValueError(f"Environment variable {var_name} not set and no default provided")

    return re.sub(pattern, replacer, value)


def _substitute_env_in_dict(data: Any) -> Any:
    """Recursively substitute environment variables in a parsed YAML document."""
    if isinstance(data, dict):
        return {key: _substitute_env_in_dict(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_in_dict(item) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data)
    return data


class TransactionScope(StrEnum):
    """Transaction boundary for bulk moves."""

    PER_CALL = "per_call"  # all chunks commit or roll back together
    PER_CHUNK = "per_chunk"  # each chunk commits on its own


class DatabaseConfig(BaseModel):
    """Database configuration."""

    name: str = Field(description="Database name")
    host: str = Field(description="Database host")
    port: int = Field(default=5432, description="Database port", gt=0, lt=65536)
    user: str = Field(description="Database user")
    password_env: Optional[str] = Field(
        default=None,
        description="Environment variable name containing database password (preferred)",
    )
    password: Optional[str] = Field(
        default=None,
        description="Database password (development only - use password_env in production)",
    )
    connection_pool_size: int = Field(
        default=5,
        description="Maximum connections in the pool",
        gt=0,
        le=50,
    )
    command_timeout: float = Field(
        default=60,
        description="Client-side timeout (seconds) for a single command",
        gt=0,
    )
    application_name: str = Field(
        default="rowmover",
        description="application_name reported to PostgreSQL",
    )

    @model_validator(mode="after")
    def validate_password_source(self) -> "DatabaseConfig":
        """Validate that exactly one password source is provided."""
        if not self.password_env and not self.password:
            raise ValueError(
                "Either 'password_env' or 'password' must be provided. "
                "Use 'password_env' for production (recommended) or 'password' for development only."
            )
        if self.password_env and self.password:
            raise ValueError(
                "Cannot specify both 'password_env' and 'password'. "
                "Use 'password_env' for production (recommended) or 'password' for development only."
            )
        return self

    def get_password(self) -> str:
        """Get password from environment variable or config file.

        Returns:
            Database password

        Raises:
            ValueError: If password cannot be retrieved
        """
        if self.password_env:
            password = os.getenv(self.password_env)
            if not password:
                raise ValueError(f"Environment variable {self.password_env} not set")
            return password
        elif self.password:
            warnings.warn(
                f"Using password from config file for database '{self.name}'. "
                f"This is not recommended for production. Use 'password_env' instead.",
                UserWarning,
                stacklevel=2,
            )
            return self.password
        else:
            raise ValueError("No password source configured")


class MoverDefaults(BaseModel):
    """Defaults applied to every move."""

    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        description="Ids per bulk statement",
        gt=0,
        le=MAX_CHUNK_SIZE,
    )
    transaction_scope: TransactionScope = Field(
        default=TransactionScope.PER_CALL,
        description="Transaction boundary for bulk moves (per_call, per_chunk)",
    )
    statement_timeout_seconds: int = Field(
        default=1800,
        description="SET LOCAL statement_timeout for each move transaction (0 disables)",
        ge=0,
    )

    @field_validator("transaction_scope", mode="before")
    @classmethod
    def normalize_scope(cls, v: Any) -> Any:
        """Accept 'PER_CHUNK', 'per-chunk' and similar spellings."""
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v


class MonitoringConfig(BaseModel):
    """Monitoring and metrics configuration."""

    metrics_enabled: bool = Field(
        default=False,
        description="Enable Prometheus metrics",
    )
    metrics_port: int = Field(
        default=8000,
        description="Port for Prometheus metrics endpoint",
        gt=0,
        lt=65536,
    )


class RowMoverConfig(BaseModel):
    """Root configuration model."""

    version: str = Field(description="Configuration version")
    database: DatabaseConfig = Field(description="Database holding source and archive tables")
    defaults: MoverDefaults = Field(default_factory=MoverDefaults, description="Move defaults")
    monitoring: MonitoringConfig = Field(
        default_factory=MonitoringConfig,
        description="Monitoring and metrics configuration",
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate configuration version."""
        if v != "1.0":
            raise ValueError(f"Unsupported configuration version: {v}")
        return v


def load_config(config_path: Path) -> RowMoverConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated configuration object

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    context = {"config_path": str(config_path)}
    try:
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            f"Configuration file not found: {config_path}", context=context
        ) from None
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in configuration file: {e}", context=context
        ) from e

    if not raw_config:
        raise ConfigurationError("Configuration file is empty", context=context)

    try:
        config_data = _substitute_env_in_dict(raw_config)
        return RowMoverConfig.model_validate(config_data)
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}", context=context
        ) from e
