"""Tests for the migration runner and ledger."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import text

from portadb.errors import ConfigError, MigrationFailureError
from portadb.migrations import (
    AddColumnMigration,
    Migration,
    MigrationResult,
    MigrationRunner,
    SQLMigration,
)
from portadb.session import SessionManager


# ── Helpers ───────────────────────────────────────────────────────────


class Recording(Migration):
    """Appends its id to a shared journal; optionally declines or fails."""

    def __init__(self, id: str, journal: list[str], *, run: bool = True, fail: bool = False):
        self.id = id
        self.description = f"recording {id}"
        self.journal = journal
        self.run = run
        self.fail = fail

    def should_run(self, session) -> bool:
        return self.run

    def execute(self, session) -> None:
        if self.fail:
            raise RuntimeError(f"{self.id} exploded")
        session.execute(text("INSERT INTO journal (name) VALUES (:name)"), {"name": self.id})
        self.journal.append(self.id)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def session(manager: SessionManager):
    s = manager.get_session()
    s.execute(text("CREATE TABLE journal (name VARCHAR(50))"))
    s.commit()
    return s


@pytest.fixture()
def runner() -> MigrationRunner:
    return MigrationRunner()


def journal_rows(session) -> list[str]:
    rows = [r[0] for r in session.execute(text("SELECT name FROM journal ORDER BY rowid"))]
    session.commit()
    return rows


def ledger_ids(runner: MigrationRunner, session) -> list[str]:
    ids = [r.id for r in runner.applied_records(session)]
    session.commit()
    return ids


# ── MigrationResult ───────────────────────────────────────────────────


class TestMigrationResult:
    def test_empty_result_is_success(self):
        r = MigrationResult()
        assert r.success is True
        assert r.applied == [] and r.skipped == [] and r.declined == []

    def test_failures_make_it_unsuccessful(self):
        r = MigrationResult(failures={"m": MigrationFailureError("m", "boom")})
        assert r.success is False
        assert r.errors == {"m": "boom"}


# ── Registration ──────────────────────────────────────────────────────


class TestRegistration:
    def test_register_preserves_order(self, runner: MigrationRunner):
        journal: list[str] = []
        runner.register_all([Recording("m1", journal), Recording("m2", journal)])
        assert [m.id for m in runner.migrations] == ["m1", "m2"]

    def test_duplicate_id_rejected(self, runner: MigrationRunner):
        runner.register(Recording("m1", []))
        with pytest.raises(ConfigError):
            runner.register(Recording("m1", []))

    def test_missing_id_rejected(self, runner: MigrationRunner):
        with pytest.raises(ConfigError):
            runner.register(SQLMigration("", "SELECT 1"))

    def test_clear(self, runner: MigrationRunner):
        runner.register(Recording("m1", []))
        runner.clear()
        assert runner.migrations == ()


# ── Run ───────────────────────────────────────────────────────────────


class TestRun:
    def test_creates_ledger(self, runner: MigrationRunner, session):
        runner.run(session)
        assert session.execute(text("SELECT COUNT(*) FROM portadb_migrations")).scalar_one() == 0
        session.commit()

    def test_applies_in_order(self, runner: MigrationRunner, session):
        journal: list[str] = []
        runner.register_all([Recording(f"m{i}", journal) for i in (1, 2, 3)])
        result = runner.run(session)
        assert result.applied == ["m1", "m2", "m3"]
        assert journal == ["m1", "m2", "m3"]
        assert journal_rows(session) == ["m1", "m2", "m3"]
        assert ledger_ids(runner, session) == ["m1", "m2", "m3"]

    def test_idempotent(self, runner: MigrationRunner, session):
        journal: list[str] = []
        runner.register_all([Recording("m1", journal), Recording("m2", journal)])
        runner.run(session)
        second = runner.run(session)
        assert journal == ["m1", "m2"]
        assert second.applied == []
        assert second.skipped == ["m1", "m2"]
        assert ledger_ids(runner, session) == ["m1", "m2"]

    def test_declined_migration_skipped_in_order(self, runner: MigrationRunner, session):
        journal: list[str] = []
        runner.register_all(
            [Recording("m1", journal), Recording("m2", journal, run=False), Recording("m3", journal)]
        )
        result = runner.run(session)
        assert journal == ["m1", "m3"]
        assert result.declined == ["m2"]
        assert ledger_ids(runner, session) == ["m1", "m3"]

    def test_failure_is_isolated(self, runner: MigrationRunner, session):
        journal: list[str] = []
        runner.register_all(
            [Recording("m1", journal), Recording("m2", journal, fail=True), Recording("m3", journal)]
        )
        result = runner.run(session)

        assert result.applied == ["m1", "m3"]
        assert list(result.failures) == ["m2"]
        failure = result.failures["m2"]
        assert isinstance(failure, MigrationFailureError)
        assert isinstance(failure.__cause__, RuntimeError)
        assert journal_rows(session) == ["m1", "m3"]
        assert ledger_ids(runner, session) == ["m1", "m3"]

    def test_failed_migration_retried_next_run(self, runner: MigrationRunner, session):
        journal: list[str] = []
        flaky = Recording("m1", journal, fail=True)
        runner.register(flaky)
        assert runner.run(session).success is False
        flaky.fail = False
        assert runner.run(session).applied == ["m1"]

    def test_ledger_records_description_and_time(self, runner: MigrationRunner, session):
        runner.register(Recording("m1", []))
        runner.run(session)
        (record,) = runner.applied_records(session)
        session.commit()
        assert record.description == "recording m1"
        assert isinstance(record.executed_at, datetime)

    def test_pending(self, runner: MigrationRunner, session):
        journal: list[str] = []
        runner.register(Recording("m1", journal))
        runner.run(session)
        runner.register(Recording("m2", journal))
        assert runner.pending(session) == ["m2"]
        assert runner.is_applied(session, "m1") is True
        session.commit()

    def test_custom_ledger_table(self, session):
        runner = MigrationRunner("schema_history")
        runner.register(Recording("m1", []))
        runner.run(session)
        assert session.execute(text("SELECT id FROM schema_history")).scalar_one() == "m1"
        session.commit()


# ── Stock migrations ──────────────────────────────────────────────────


class TestStockMigrations:
    def test_sql_migration(self, runner: MigrationRunner, session):
        runner.register(SQLMigration("seed", ["INSERT INTO journal (name) VALUES ('seeded')"]))
        runner.run(session)
        assert journal_rows(session) == ["seeded"]

    def test_sql_migration_when_predicate(self, runner: MigrationRunner, session):
        runner.register(SQLMigration("never", "INSERT INTO journal (name) VALUES ('x')", when=lambda s: False))
        assert runner.run(session).declined == ["never"]

    def test_add_column_migration_runs_once(self, runner: MigrationRunner, session):
        runner.register(AddColumnMigration("add_note", "journal", "note", "VARCHAR(255)"))
        assert runner.run(session).applied == ["add_note"]

        again = MigrationRunner("other_ledger")
        again.register(AddColumnMigration("add_note", "journal", "note", "VARCHAR(255)"))
        assert again.run(session).declined == ["add_note"]
