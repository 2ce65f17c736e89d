"""Tests for entity descriptors and the registry."""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Uuid

from portadb.entities import EntityDescriptor, EntityRegistry, FieldDescriptor, FieldType
from portadb.errors import ConfigError, EntityNotRegisteredError, FieldNotFoundError, SchemaError


class TestFieldType:
    @pytest.mark.parametrize(
        "field_type, column_type",
        [
            (FieldType.STRING, String),
            (FieldType.UUID, Uuid),
            (FieldType.INTEGER, Integer),
            (FieldType.LONG, BigInteger),
            (FieldType.BOOLEAN, Boolean),
            (FieldType.TIMESTAMP, DateTime),
        ],
    )
    def test_column_types(self, field_type, column_type):
        assert isinstance(field_type.column_type(), column_type)


class TestEntityDescriptor:
    def test_table_name_defaults_to_name(self, account):
        assert account.table_name == "Account"

    def test_rejects_duplicate_fields(self):
        with pytest.raises(SchemaError):
            EntityDescriptor("X", [FieldDescriptor("a", FieldType.STRING)] * 2)

    def test_rejects_two_primary_keys(self):
        with pytest.raises(SchemaError):
            EntityDescriptor(
                "X",
                [
                    FieldDescriptor("a", FieldType.LONG, primary_key=True),
                    FieldDescriptor("b", FieldType.LONG, primary_key=True),
                ],
            )

    def test_rejects_no_fields(self):
        with pytest.raises(SchemaError):
            EntityDescriptor("X", [])

    def test_flagged_primary_key(self, account):
        assert account.primary_key_field().name == "uuid"

    @pytest.mark.parametrize("names, expected", [(["name", "uuid", "id"], "uuid"), (["name", "id"], "id")])
    def test_primary_key_fallback(self, names, expected):
        entity = EntityDescriptor("X", [FieldDescriptor(n, FieldType.STRING) for n in names])
        assert entity.primary_key_field().name == expected

    def test_no_primary_key(self):
        entity = EntityDescriptor("X", [FieldDescriptor("name", FieldType.STRING)])
        with pytest.raises(FieldNotFoundError):
            entity.primary_key_field()

    def test_build_with_model(self, account):
        row = account.build({"uuid": None, "name": "alice"})
        assert row.name == "alice"

    def test_build_without_model(self, profile):
        assert profile.build({"id": 1, "email": "a"}) == {"id": 1, "email": "a"}

    def test_values_of_mapping_rejects_unknown(self, profile):
        with pytest.raises(FieldNotFoundError):
            profile.values_of({"id": 1, "password": "x"})

    def test_values_of_object(self, account):
        obj = account.build({"uuid": None, "name": "bob"})
        assert account.values_of(obj) == {"uuid": None, "name": "bob"}


class TestEntityRegistry:
    def test_register_and_resolve(self, account):
        registry = EntityRegistry()
        registry.register(account)
        descriptor, table = registry.resolve("Account")
        assert descriptor is account
        assert table.name == "Account"
        assert "Account" in registry
        assert len(registry) == 1

    def test_same_descriptor_twice_is_noop(self, account):
        registry = EntityRegistry()
        registry.register(account)
        registry.register(account)
        assert len(registry) == 1

    def test_conflicting_name(self, account):
        registry = EntityRegistry()
        registry.register(account)
        with pytest.raises(ConfigError):
            registry.register(EntityDescriptor("Account", [FieldDescriptor("id", FieldType.LONG)]))

    def test_frozen_rejects_registration(self, account):
        registry = EntityRegistry()
        registry.freeze()
        with pytest.raises(ConfigError):
            registry.register(account)
        registry.unfreeze()
        registry.register(account)

    def test_unknown_entity(self):
        with pytest.raises(EntityNotRegisteredError):
            EntityRegistry().resolve("Ghost")
