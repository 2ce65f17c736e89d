"""
Connection and behaviour settings for portadb.

:class:`DatabaseSettings` is a pydantic-settings model: every field can be
set in code, through ``PORTADB_*`` environment variables, or in a ``.env``
file. The dialect decides how the rest is interpreted. For SQLite only
``database`` (a file path or ``:memory:``) matters; MySQL and PostgreSQL
use host/port/credentials and fall back to the dialect's default port.

Examples:
    >>> from portadb.settings import DatabaseSettings
    >>> s = DatabaseSettings(dialect="postgresql", database="app", username="svc")
    >>> s.resolved_port
    5432
    >>> s.connection_url().render_as_string(hide_password=True)
    'postgresql+psycopg://svc@localhost:5432/app'

Tags:
    settings, configuration, pydantic, environment, portadb
"""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

from portadb.dialect import Dialect, DialectDescriptor, SchemaSyncMode, get_dialect


class DatabaseSettings(BaseSettings):
    """Settings for one database connection.

    Fields
    ──────
    dialect           : sqlite | mysql | postgresql (``postgres`` accepted)
    database          : SQLite file path, or database name for servers
    host, port        : Server address; port defaults per dialect
    username/password : Server credentials
    url               : Full SQLAlchemy URL, overrides the fields above
    echo              : Log every SQL statement through SQLAlchemy
    busy_timeout_ms   : SQLite busy timeout (the only wait this layer bounds)
    schema_sync       : none | create | update; defaults to the dialect's mode
    migrations_table  : Name of the migration ledger table
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTADB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    dialect: Dialect = Field(default=Dialect.SQLITE)
    database: str = Field(default="portadb.db")
    host: str = Field(default="localhost")
    port: int | None = Field(default=None, ge=1, le=65535)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    url: str | None = Field(default=None, description="Explicit SQLAlchemy URL")
    echo: bool = Field(default=False)

    # ── SQLite tuning ────────────────────────────────────────────
    busy_timeout_ms: int = Field(default=5000, ge=0)

    # ── Schema ───────────────────────────────────────────────────
    schema_sync: SchemaSyncMode | None = Field(default=None)
    migrations_table: str = Field(default="portadb_migrations", min_length=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("dialect", mode="before")
    @classmethod
    def _normalize_dialect(cls, value: object) -> object:
        if isinstance(value, str):
            return get_dialect(value).dialect
        return value

    @property
    def descriptor(self) -> DialectDescriptor:
        return get_dialect(self.dialect)

    @property
    def resolved_port(self) -> int | None:
        """Configured port, or the dialect default (``None`` for SQLite)."""
        return self.port or self.descriptor.default_port

    @property
    def resolved_schema_sync(self) -> SchemaSyncMode:
        return self.schema_sync or self.descriptor.schema_sync_mode

    def connection_url(self) -> URL:
        """SQLAlchemy URL for this configuration."""
        if self.url:
            return make_url(self.url)
        return self.descriptor.url(self)


__all__ = ["DatabaseSettings"]
