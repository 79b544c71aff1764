"""Configuration management for the Library Management MCP Server.

Settings are read from ``LIBRARY_``-prefixed environment variables (and an
optional ``.env`` file). The database connection string also honours the
conventional ``DATABASE_URL`` variable so the server can share a connection
string with other tooling.
"""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


class ServerConfig(BaseSettings):
    """MCP server configuration.

    Covers protocol metadata (name and version sent in the handshake),
    transport selection, the database connection and the backup location.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-management",
        description="MCP server name used in protocol handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_url: str = Field(
        default="sqlite:///data/library.db",
        description="SQLAlchemy database URL",
        validation_alias=AliasChoices("DATABASE_URL", "LIBRARY_DATABASE_URL"),
        repr=False,  # may embed credentials
    )

    database_echo: bool = Field(
        default=False,
        description="Echo generated SQL to the log",
    )

    # === Backup Configuration ===

    backup_dir: Path = Field(
        default=Path("backups"),
        description="Directory where SQL dumps are written",
    )

    backup_timeout_seconds: int = Field(
        default=300,
        description="Maximum runtime of an external dump/restore command",
        ge=1,
    )

    # === Transport Configuration ===

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    http_host: str = Field(
        default="127.0.0.1",
        description="HTTP server host for Streamable HTTP transport",
    )

    http_port: int = Field(
        default=8080,
        description="HTTP server port for Streamable HTTP transport",
        ge=1024,
        le=65535,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging for protocol messages",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    enable_tracing: bool = Field(
        default=True,
        description="Configure logfire when the server starts",
    )

    # === Validation Methods ===

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        """Validate server name length (clients use it for routing)."""
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Reject connection strings SQLAlchemy cannot parse."""
        try:
            make_url(v)
        except Exception as e:
            raise ValueError(f"Invalid database URL: {e}") from e
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug or self.log_level == "DEBUG"

    @property
    def server_info(self) -> dict[str, str]:
        """Server information sent during the MCP handshake."""
        return {
            "name": self.server_name,
            "version": self.server_version,
            "transport": self.transport,
        }

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def sqlite_path(self) -> Path | None:
        """File path of a SQLite database, or None for in-memory/other backends."""
        if not self.is_sqlite:
            return None
        database = make_url(self.database_url).database
        if not database or database == ":memory:":
            return None
        return Path(database)


# === Global Configuration Instance ===


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
