"""
Structured error types for portadb.

Every failure the persistence layer surfaces is a :class:`PortaError`
subclass carrying a category, a retry hint, structured context and the
chained underlying exception. Callers of ``find``/``create``/``destroy``
see the specific kind; migration failures are contained by the runner and
only show up in logs and in the ledger.

Manifesto:
    - **Typed hierarchy:** One class per failure kind, never bare ``Exception``
    - **Request-scoped:** Compile and coercion errors fail the single request
    - **Chained causes:** Driver errors are wrapped, never swallowed
    - **Loggable:** ``to_dict()`` feeds structlog key/value output

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                         PortaError                             │
        │        (category, retryable, context, cause)                   │
        ├───────────────────────────────────────────────────────────────┤
        │  ConfigError                 ValidationError      DatabaseError│
        │   ProviderNotInitialized      FieldNotFound        QueryError  │
        │   EntityNotRegistered         TypeConversion       Transaction │
        │   DriverUnavailable           MalformedPredicate   Migration   │
        │   SchemaError                                      Connection  │
        └───────────────────────────────────────────────────────────────┘

Examples:
    >>> err = TypeConversionError("age", "abc", "integer")
    >>> err.field, err.value
    ('age', 'abc')
    >>> err.category.value
    'VALIDATION'

Tags:
    error-handling, exception-hierarchy, portadb
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    DATABASE = "DATABASE"         # Connection, statement, transaction
    VALIDATION = "VALIDATION"     # Predicates, coercion, unknown fields
    CONFIG = "CONFIG"             # Settings, registration, drivers
    MIGRATION = "MIGRATION"       # Ledger and migration bodies
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only non-``None`` fields end up in :meth:`to_dict`; anything that has
    no dedicated slot goes into ``metadata``.
    """

    entity: str | None = None
    table: str | None = None
    field_name: str | None = None
    dialect: str | None = None
    migration_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "table", "field_name", "dialect", "migration_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PortaError(Exception):
    """
    Base exception for all portadb errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance. When ``cause`` is given it is chained
    as ``__cause__`` so tracebacks keep the driver-level exception.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PortaError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("Unable to find rows").with_context(
                entity="Account", table="accounts"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(PortaError):
    """
    Configuration or registration error.

    Never retryable - the calling code or settings must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ProviderNotInitializedError(ConfigError):
    """A session was requested before the provider was initialized."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Provider not initialized. Call DatabaseProvider.initialize() first."
        )


class EntityNotRegisteredError(ConfigError):
    """The entity is not known to the registry."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"Entity not registered: {entity}")
        self.context.entity = entity


class DriverUnavailableError(ConfigError):
    """The database client library for a dialect cannot be imported."""

    def __init__(self, dialect: str, module: str, extra: str | None = None):
        self.dialect = dialect
        self.module = module
        hint = f" Install with: pip install portadb[{extra}]" if extra else ""
        super().__init__(f"Driver module {module!r} is required for {dialect}.{hint}")
        self.context.dialect = dialect


class SchemaError(ConfigError):
    """An entity descriptor is inconsistent (duplicate fields, several keys...)."""

    pass


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(PortaError):
    """
    Request validation error.

    Raised before anything reaches the database; never retryable.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        if field is not None:
            self.context.field_name = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class FieldNotFoundError(ValidationError):
    """A predicate, projection or coercion references an unknown field."""

    def __init__(self, entity: str, field: str):
        self.entity = entity
        super().__init__(f"Field not found: {entity}.{field}", field=field)
        self.context.entity = entity


class TypeConversionError(ValidationError):
    """A value cannot be coerced to the semantic type of its field."""

    def __init__(
        self,
        field: str,
        value: Any,
        target: str,
        *,
        cause: BaseException | None = None,
    ):
        self.target = target
        super().__init__(
            f"Cannot convert {value!r} to {target} for field {field!r}",
            field=field,
            value=value,
            cause=cause,
        )


class MalformedPredicateError(ValidationError):
    """Misuse of the reserved operator key or an unusable operator node."""

    pass


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(PortaError):
    """Database statement or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class DatabaseConnectionError(DatabaseError):
    """Failed to open the physical connection."""

    default_retryable = True


class QueryError(DatabaseError):
    """A statement failed while executing against the shared session."""

    pass


class TransactionFailureError(DatabaseError):
    """Commit or rollback failed; the session was rolled back best-effort."""

    pass


class MigrationFailureError(DatabaseError):
    """A migration body or its ledger append failed and was rolled back."""

    default_category = ErrorCategory.MIGRATION

    def __init__(self, migration_id: str, message: str, *, cause: BaseException | None = None):
        self.migration_id = migration_id
        super().__init__(message, cause=cause)
        self.context.migration_id = migration_id


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, PortaError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PortaError",
    # Config
    "ConfigError",
    "ProviderNotInitializedError",
    "EntityNotRegisteredError",
    "DriverUnavailableError",
    "SchemaError",
    # Validation
    "ValidationError",
    "FieldNotFoundError",
    "TypeConversionError",
    "MalformedPredicateError",
    # Database
    "DatabaseError",
    "DatabaseConnectionError",
    "QueryError",
    "TransactionFailureError",
    "MigrationFailureError",
    # Utilities
    "is_retryable",
]
