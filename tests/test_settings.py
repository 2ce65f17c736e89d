"""Tests for DatabaseSettings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from portadb.dialect import Dialect, SchemaSyncMode
from portadb.settings import DatabaseSettings


class TestDefaults:
    def test_defaults(self):
        s = DatabaseSettings(_env_file=None)
        assert s.dialect is Dialect.SQLITE
        assert s.database == "portadb.db"
        assert s.busy_timeout_ms == 5000
        assert s.migrations_table == "portadb_migrations"
        assert s.resolved_schema_sync is SchemaSyncMode.UPDATE
        assert s.resolved_port is None

    def test_server_port_defaults(self):
        assert DatabaseSettings(_env_file=None, dialect="mysql").resolved_port == 3306
        assert DatabaseSettings(_env_file=None, dialect="postgres").resolved_port == 5432


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PORTADB_DIALECT", "postgresql")
        monkeypatch.setenv("PORTADB_DATABASE", "app")
        monkeypatch.setenv("PORTADB_SCHEMA_SYNC", "none")
        s = DatabaseSettings(_env_file=None)
        assert s.dialect is Dialect.POSTGRESQL
        assert s.database == "app"
        assert s.resolved_schema_sync is SchemaSyncMode.NONE

    def test_rejects_bad_port(self):
        with pytest.raises(PydanticValidationError):
            DatabaseSettings(_env_file=None, port=70000)

    def test_rejects_unknown_dialect(self):
        with pytest.raises((PydanticValidationError, ValueError)):
            DatabaseSettings(_env_file=None, dialect="oracle")


class TestConnectionURL:
    def test_explicit_url_overrides(self):
        s = DatabaseSettings(_env_file=None, url="sqlite+pysqlite:///:memory:")
        assert s.connection_url().database == ":memory:"

    def test_password_hidden_when_rendered(self):
        s = DatabaseSettings(
            _env_file=None, dialect="postgresql", database="app", username="svc", password="pw"
        )
        rendered = s.connection_url().render_as_string(hide_password=True)
        assert "pw" not in rendered
        assert rendered.startswith("postgresql+psycopg://svc:")
        assert "localhost:5432/app" in rendered
