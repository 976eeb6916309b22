"""
Configuration management for arbor.

Uses Pydantic for validation and pydantic-settings for environment variable support.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration.

    Supports SQLite, PostgreSQL, and MySQL backends.

    For SQLite:
        - Only `path` is required (":memory:" for an in-memory database)
        - Environment variable: DB_PATH

    For PostgreSQL/MySQL:
        - Set `type` to "postgresql" or "mysql"
        - Set `host`, `database`, `user`, `password`
        - Optional: `port`, `ssl_mode`
        - Environment variables: DB_TYPE, DB_HOST, DB_DATABASE, DB_USER, DB_PASSWORD, etc.
    """

    model_config = SettingsConfigDict(env_prefix="DB_")

    # Database type selection
    type: str = Field(default="sqlite", description="Database type: sqlite, postgresql, mysql")

    # SQLite configuration
    path: str = Field(default="data/arbor.db", description="Database file path (SQLite)")

    # PostgreSQL/MySQL configuration
    host: str | None = Field(default=None, description="Database host (PostgreSQL/MySQL)")
    port: int | None = Field(default=None, description="Database port (default: 5432 for PostgreSQL, 3306 for MySQL)")
    database: str | None = Field(default=None, description="Database name (PostgreSQL/MySQL)")
    user: str | None = Field(default=None, description="Database user (PostgreSQL/MySQL)")
    password: str | None = Field(default=None, description="Database password (PostgreSQL/MySQL)")
    ssl_mode: str | None = Field(default=None, description="SSL mode: prefer/require (PostgreSQL), preferred/required (MySQL)")

    # Common settings
    echo: bool = Field(default=False, description="Echo SQL statements through SQLAlchemy")
    pool_size: int = Field(default=5, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=10, ge=0, description="Max overflow connections")
    log_queries: bool = Field(default=False, description="Keep an in-memory log of executed statements")

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        """Normalize database type name."""
        v = v.lower().strip()
        if v in ("postgres", "pgsql"):
            return "postgresql"
        if v == "mariadb":
            return "mysql"
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Validate database type."""
        valid_types = ["sqlite", "postgresql", "mysql"]
        if v not in valid_types:
            raise ValueError(f"Invalid database type: {v!r}. Must be one of {valid_types}")
        return v

    @field_validator("path")
    @classmethod
    def ensure_directory_exists(cls, v: str) -> str:
        """Ensure the database directory exists."""
        if v != ":memory:" and not v.startswith("sqlite://"):
            Path(v).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        """Validate port number."""
        if v is not None and not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("ssl_mode")
    @classmethod
    def validate_ssl_mode(cls, v: str | None) -> str | None:
        """Validate SSL mode."""
        if v is None:
            return None

        v = v.lower()
        valid_pg_modes = ["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]
        valid_mysql_modes = ["disabled", "preferred", "required", "verify_ca", "verify_identity"]

        if v not in valid_pg_modes and v not in valid_mysql_modes:
            raise ValueError(
                f"Invalid ssl_mode: {v!r}. "
                f"PostgreSQL: {valid_pg_modes}, MySQL: {valid_mysql_modes}"
            )
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Log format"
    )

    # File logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_path: str = Field(default="logs/arbor.log", description="Log file path")
    rotation: str = Field(default="100 MB", description="Log rotation size")
    retention: str = Field(default="30 days", description="Log retention period")

    # Console logging
    console_enabled: bool = Field(default=True, description="Enable console logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v


class RecordConfig(BaseSettings):
    """Active record defaults."""

    model_config = SettingsConfigDict(env_prefix="RECORD_")

    date_format: str = Field(default="%Y-%m-%d %H:%M:%S", description="strftime format for timestamp columns")
    per_page: int = Field(default=15, ge=1, le=1000, description="Default page size for paginate()")


class MigrationConfig(BaseSettings):
    """Migration runner configuration."""

    model_config = SettingsConfigDict(env_prefix="MIGRATION_")

    table: str = Field(default="migrations", description="Table recording executed migrations")
    path: str = Field(default="database/migrations", description="Directory holding migration modules")

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Validate the repository table name."""
        v = v.strip()
        if not v:
            raise ValueError("Migration table name must not be empty")
        return v


class Config(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ARBOR_",
        case_sensitive=False,
    )

    version: str = Field(default="0.1.0", description="Package version")
    debug: bool = Field(default=False, description="Debug mode")

    # Sub-configurations
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    record: RecordConfig = Field(default_factory=RecordConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)


# Global configuration instance
_config: Optional[Config] = None

_NESTED_CONFIGS: dict[str, type[BaseSettings]] = {
    "database": DatabaseConfig,
    "logging": LoggingConfig,
    "record": RecordConfig,
    "migration": MigrationConfig,
}


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Optional[Config]) -> None:
    """Replace the global configuration instance.

    Args:
        config: New configuration, or None to rebuild lazily from the environment
    """
    global _config
    _config = config


def load_config_from_yaml(yaml_path: str) -> Config:
    """Load configuration from a YAML file.

    Values loaded from YAML take precedence over environment variables.

    Args:
        yaml_path: Path to the YAML configuration file.

    Returns:
        Config instance loaded from the file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    import yaml

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with yaml_file.open("r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    main_config = {}
    for key, value in config_dict.items():
        if key not in _NESTED_CONFIGS:
            main_config[key] = value

    for key, config_class in _NESTED_CONFIGS.items():
        main_config[key] = config_class(**(config_dict.get(key) or {}))

    return Config(**main_config)
