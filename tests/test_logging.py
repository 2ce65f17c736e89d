"""Tests for portadb logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from portadb.logging import LogContext, configure_logging, get_logger


class TestConfigureLogging:
    def teardown_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    def test_json_output_includes_service_and_context(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.INFO)
        configure_logging(level="INFO", json_format=True, service="portadb-test", add_timestamp=False)
        with LogContext(migration_id="0001"):
            get_logger("portadb.test").info("migration.applied", description="seed")

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["event"] == "migration.applied"
        assert payload["service"] == "portadb-test"
        assert payload["migration_id"] == "0001"
        assert payload["description"] == "seed"
        assert payload["level"] == "info"

    def test_context_is_unbound_on_exit(self):
        with LogContext(migration_id="0002"):
            assert structlog.contextvars.get_contextvars()["migration_id"] == "0002"
        assert "migration_id" not in structlog.contextvars.get_contextvars()

    def test_level_filters(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="WARNING", json_format=True)
        get_logger("portadb.test").info("schema.table_created", table="x")
        assert not any("schema.table_created" in r.getMessage() for r in caplog.records)
