"""Tests for QueryExecutor reads and writes, through the provider façade."""

from __future__ import annotations

import uuid
from datetime import datetime

import pytest

from portadb import DatabaseProvider, FindOptions, Gte, Lt, Or
from portadb.errors import (
    EntityNotRegisteredError,
    FieldNotFoundError,
    MalformedPredicateError,
    QueryError,
    TypeConversionError,
    ValidationError,
)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def people(provider: DatabaseProvider) -> DatabaseProvider:
    provider.bulk_create(
        "Profile",
        [
            {"id": 1, "email": "ann@x", "age": 31, "active": True, "joined_at": "2024-01-01T00:00:00"},
            {"id": 2, "email": "bob@x", "age": 17, "active": False},
            {"id": 3, "email": "cid@x", "age": 45, "active": "1"},
            {"id": 4, "email": None, "age": 20, "active": "false"},
        ],
    )
    return provider


# ── Account scenario ──────────────────────────────────────────────────


class TestAccountScenario:
    def test_create_then_find(self, provider: DatabaseProvider):
        key = uuid.uuid4()
        provider.create("Account", {"uuid": key, "name": "alice"})

        found = provider.find_by_pk("Account", key)
        assert found is not None
        assert found.uuid == key
        assert found.name == "alice"

        assert provider.find_one("Account", {"name": "bob"}) is None

    def test_find_by_pk_accepts_string_key(self, provider: DatabaseProvider):
        key = uuid.uuid4()
        provider.create("Account", {"uuid": key, "name": "alice"})
        assert provider.find_by_pk("Account", str(key)).name == "alice"

    def test_round_trip_where_equals_values(self, provider: DatabaseProvider):
        values = {"uuid": uuid.uuid4(), "name": "carol"}
        provider.create("Account", values)
        rows = provider.find_all("Account", values)
        assert [(r.uuid, r.name) for r in rows] == [(values["uuid"], "carol")]


# ── Reads ─────────────────────────────────────────────────────────────


class TestFind:
    def test_find_all_without_where(self, people: DatabaseProvider):
        assert len(people.find_all("Profile")) == 4

    def test_coerced_equality(self, people: DatabaseProvider):
        rows = people.find_all("Profile", {"active": "true"})
        assert sorted(r["id"] for r in rows) == [1, 3]

    def test_null_equality(self, people: DatabaseProvider):
        assert [r["id"] for r in people.find_all("Profile", {"email": None})] == [4]

    def test_find_one_limits_to_one(self, people: DatabaseProvider):
        row = people.find_one("Profile", FindOptions({"active": False}).set_limit(50))
        assert row is not None
        assert row["active"] is False

    def test_find_one_not_found(self, people: DatabaseProvider):
        assert people.find_one("Profile", {"email": "zed@x"}) is None

    def test_all_null_or_matches_nothing(self, people: DatabaseProvider):
        assert people.find_all("Profile", Or({"email": None, "age": None})) == []

    def test_or_list_form(self, people: DatabaseProvider):
        rows = people.find_all("Profile", Or([{"age": 31, "active": True}, {"email": "bob@x"}]))
        assert sorted(r["id"] for r in rows) == [1, 2]

    def test_operator_key_with_fields(self, people: DatabaseProvider):
        rows = people.find_all("Profile", {"active": True, "$": Gte("age", 40)})
        assert [r["id"] for r in rows] == [3]

    def test_composed_nodes(self, people: DatabaseProvider):
        rows = people.find_all("Profile", Gte("age", 18) & Lt("age", 40))
        assert sorted(r["id"] for r in rows) == [1, 4]

    def test_limit_and_skip(self, people: DatabaseProvider):
        page = people.find_all("Profile", FindOptions().set_limit(2).set_skip(1))
        assert len(page) == 2

    def test_projection_validated_but_rows_complete(self, people: DatabaseProvider):
        rows = people.find_all("Profile", FindOptions({"id": 1}).select(["email"]))
        assert set(rows[0]) == {"id", "email", "age", "active", "joined_at"}
        with pytest.raises(FieldNotFoundError):
            people.find_all("Profile", FindOptions().select(["password"]))

    def test_timestamp_round_trip(self, people: DatabaseProvider):
        assert people.find_by_pk("Profile", 1)["joined_at"] == datetime(2024, 1, 1)

    def test_field_finders(self, people: DatabaseProvider):
        assert people.find_by_field("Profile", "email", "cid@x")["id"] == 3
        assert len(people.find_all_by_field("Profile", "active", "0")) == 2
        assert people.find_by_fields("Profile", {"age": "17", "active": False})["id"] == 2

    def test_count(self, people: DatabaseProvider):
        assert people.count("Profile") == 4
        assert people.count("Profile", {"active": True}) == 2


class TestFindErrors:
    def test_unknown_entity(self, provider: DatabaseProvider):
        with pytest.raises(EntityNotRegisteredError):
            provider.find_all("Ghost")

    def test_unknown_field(self, provider: DatabaseProvider):
        with pytest.raises(FieldNotFoundError):
            provider.find_all("Profile", {"password": "x"})

    def test_nested_operator_key_misuse(self, provider: DatabaseProvider):
        with pytest.raises(MalformedPredicateError):
            provider.find_all("Account", Or({"$": 5, "name": "a"}))

    def test_bad_value_leaves_no_transaction(self, provider: DatabaseProvider):
        with pytest.raises(TypeConversionError):
            provider.find_all("Profile", {"age": "old"})
        assert provider.manager.in_transaction is False

    def test_reads_close_their_transaction(self, people: DatabaseProvider):
        people.find_all("Profile")
        assert people.manager.in_transaction is False


# ── Writes ────────────────────────────────────────────────────────────


class TestWrites:
    def test_create_coerces(self, provider: DatabaseProvider):
        created = provider.create("Profile", {"id": "9", "age": "40", "active": "1"})
        assert created == {"id": 9, "email": None, "age": 40, "active": True, "joined_at": None}

    def test_duplicate_key_is_query_error(self, provider: DatabaseProvider):
        provider.create("Profile", {"id": 1})
        with pytest.raises(QueryError) as exc_info:
            provider.create("Profile", {"id": 1})
        assert exc_info.value.__cause__ is not None
        assert exc_info.value.context.entity == "Profile"
        assert provider.manager.in_transaction is False

    def test_bulk_create_is_atomic(self, provider: DatabaseProvider):
        with pytest.raises(QueryError):
            provider.bulk_create("Profile", [{"id": 1}, {"id": 1}])
        assert provider.count("Profile") == 0

    def test_save_inserts_then_updates(self, provider: DatabaseProvider):
        provider.save("Profile", {"id": 5, "email": "old@x"})
        provider.save("Profile", {"id": 5, "email": "new@x"})
        rows = provider.find_all("Profile")
        assert [(r["id"], r["email"]) for r in rows] == [(5, "new@x")]

    def test_destroy(self, people: DatabaseProvider):
        assert people.destroy("Profile", {"id": 2}) == 1
        assert people.destroy("Profile", {"id": 2}) == 0
        assert people.find_by_pk("Profile", 2) is None

    def test_destroy_requires_key(self, provider: DatabaseProvider):
        with pytest.raises(ValidationError):
            provider.destroy("Profile", {"email": "a"})

    def test_destroy_model_instance(self, provider: DatabaseProvider):
        account = provider.create("Account", {"uuid": uuid.uuid4(), "name": "zoe"})
        assert provider.destroy("Account", account) == 1

    def test_bulk_update(self, people: DatabaseProvider):
        assert people.bulk_update("Profile", {"active": False}, {"age": "99"}) == 2
        assert sorted(r["id"] for r in people.find_all("Profile", {"age": 99})) == [2, 4]

    def test_upsert_updates_existing(self, people: DatabaseProvider):
        row = people.upsert("Profile", {"id": 77, "age": 32, "email": None}, {"email": "ann@x"})
        assert row["id"] == 1
        assert row["age"] == 32
        assert row["email"] == "ann@x"
        assert people.find_by_pk("Profile", 1)["age"] == 32

    def test_upsert_creates_missing(self, people: DatabaseProvider):
        people.upsert("Profile", {"id": 8, "email": "new@x"}, {"email": "new@x"})
        assert people.find_by_pk("Profile", 8)["email"] == "new@x"

    def test_find_or_create(self, provider: DatabaseProvider):
        first = provider.find_or_create("Profile", {"email": "a@x"}, {"id": 11, "age": 3})
        second = provider.find_or_create("Profile", {"email": "a@x"}, {"id": 12})
        assert first["id"] == second["id"] == 11
        assert provider.count("Profile") == 1

    def test_find_or_create_rejects_operator_where(self, provider: DatabaseProvider):
        with pytest.raises(MalformedPredicateError):
            provider.find_or_create("Profile", {"$": Gte("age", 1)}, {"id": 1})
