"""
Shared pytest fixtures for portadb tests.

This module provides:
- In-memory and file-backed SQLite settings
- A SessionManager that is always closed on teardown
- The ``Account`` entity and an initialized provider wired to it
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Generator

import pytest

from portadb import (
    DatabaseProvider,
    DatabaseSettings,
    EntityDescriptor,
    FieldDescriptor,
    FieldType,
    SessionManager,
)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark everything without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Entities
# =============================================================================


@dataclass
class Account:
    uuid: uuid.UUID
    name: str | None = None


ACCOUNT = EntityDescriptor(
    "Account",
    [
        FieldDescriptor("uuid", FieldType.UUID, primary_key=True),
        FieldDescriptor("name", FieldType.STRING),
    ],
    model=Account,
)

PROFILE = EntityDescriptor(
    "Profile",
    [
        FieldDescriptor("id", FieldType.LONG, primary_key=True),
        FieldDescriptor("email", FieldType.STRING),
        FieldDescriptor("age", FieldType.INTEGER),
        FieldDescriptor("active", FieldType.BOOLEAN),
        FieldDescriptor("joined_at", FieldType.TIMESTAMP),
    ],
    table_name="profiles",
)


# =============================================================================
# Settings / Manager / Provider
# =============================================================================


@pytest.fixture()
def settings() -> DatabaseSettings:
    """In-memory SQLite settings that ignore the environment's .env file."""
    return DatabaseSettings(_env_file=None, dialect="sqlite", database=":memory:")


@pytest.fixture()
def file_settings(tmp_path: Path) -> DatabaseSettings:
    """File-backed SQLite settings; survives close_factory()."""
    return DatabaseSettings(_env_file=None, dialect="sqlite", database=str(tmp_path / "portadb.db"))


@pytest.fixture()
def manager(settings: DatabaseSettings) -> Generator[SessionManager, None, None]:
    m = SessionManager(settings)
    yield m
    m.close_factory()


@pytest.fixture()
def file_manager(file_settings: DatabaseSettings) -> Generator[SessionManager, None, None]:
    m = SessionManager(file_settings)
    yield m
    m.close_factory()


@pytest.fixture()
def provider(manager: SessionManager) -> DatabaseProvider:
    """Initialized provider with Account and Profile registered."""
    p = DatabaseProvider(manager)
    p.register_entity(ACCOUNT)
    p.register_entity(PROFILE)
    p.initialize()
    return p


@pytest.fixture()
def account() -> EntityDescriptor:
    return ACCOUNT


@pytest.fixture()
def profile() -> EntityDescriptor:
    return PROFILE
