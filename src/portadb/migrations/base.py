"""Migration contract and the two stock migration kinds."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from portadb.schema import add_column, column_exists, table_exists


class Migration(ABC):
    """One versioned schema or data change.

    Subclasses set ``id`` (unique, stable, recorded in the ledger) and
    ``description``, and implement :meth:`execute`. The session passed in
    is the shared session; the runner owns begin/commit/rollback, so a
    migration must not commit on its own.

    Example::

        class AddEmail(Migration):
            id = "0002_add_email"
            description = "Add accounts.email"

            def execute(self, session):
                session.execute(text("ALTER TABLE accounts ADD COLUMN email VARCHAR(255)"))
    """

    id: str = ""
    description: str = ""

    def should_run(self, session: Session) -> bool:  # noqa: ARG002
        """Extra precondition checked after the ledger; ``False`` declines the run."""
        return True

    @abstractmethod
    def execute(self, session: Session) -> None:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class SQLMigration(Migration):
    """Runs a fixed list of SQL statements.

    Args:
        id: Ledger id.
        statements: SQL strings, executed in order.
        description: Human-readable summary.
        when: Optional ``should_run`` predicate taking the session.
    """

    def __init__(
        self,
        id: str,
        statements: Sequence[str] | str,
        description: str = "",
        *,
        when: Callable[[Session], bool] | None = None,
    ):
        self.id = id
        self.description = description
        self.statements = [statements] if isinstance(statements, str) else list(statements)
        self._when = when

    def should_run(self, session: Session) -> bool:
        return self._when(session) if self._when is not None else True

    def execute(self, session: Session) -> None:
        for statement in self.statements:
            session.execute(text(statement))


class AddColumnMigration(Migration):
    """Adds one column, and only when the table exists without it."""

    def __init__(self, id: str, table: str, column: str, column_type: str, description: str = ""):
        self.id = id
        self.table = table
        self.column = column
        self.column_type = column_type
        self.description = description or f"Add column {table}.{column}"

    def should_run(self, session: Session) -> bool:
        return table_exists(session, self.table) and not column_exists(session, self.table, self.column)

    def execute(self, session: Session) -> None:
        add_column(session, self.table, self.column, self.column_type)


__all__ = ["Migration", "SQLMigration", "AddColumnMigration"]
