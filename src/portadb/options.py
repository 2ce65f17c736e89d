"""Find options: criteria, projection, limit and skip for one query."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from portadb.errors import MalformedPredicateError, ValidationError
from portadb.predicates import OPERATOR_KEY, Op


class FindOptions:
    """Options for ``find_all`` / ``find_one``.

    ``where`` is a mapping of field to value, or a single operator node
    (stored as ``{"$": node}``). An empty ``where`` matches every row.

    Example:
        >>> opts = FindOptions.by("name", "alice").set_limit(10).set_skip(20)
        >>> opts.where, opts.limit, opts.skip
        ({'name': 'alice'}, 10, 20)
    """

    def __init__(
        self,
        where: Mapping[str, Any] | Op | None = None,
        *,
        attributes: Sequence[str] | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ):
        self.where: dict[str, Any] = self._normalize_where(where)
        self.attributes: list[str] | None = None
        self.limit: int | None = None
        self.skip: int | None = None

        if attributes is not None:
            self.select(attributes)
        self.set_limit(limit)
        self.set_skip(skip)

    @staticmethod
    def _normalize_where(where: Mapping[str, Any] | Op | None) -> dict[str, Any]:
        if where is None:
            return {}
        if isinstance(where, Op):
            return {OPERATOR_KEY: where}
        if not isinstance(where, Mapping):
            raise MalformedPredicateError(
                f"where must be a mapping or an operator node, got {type(where).__name__}",
                value=where,
            )
        if OPERATOR_KEY in where and not isinstance(where[OPERATOR_KEY], Op):
            raise MalformedPredicateError(
                f"The '{OPERATOR_KEY}' key is reserved for operator nodes",
                field=OPERATOR_KEY,
                value=where[OPERATOR_KEY],
            )
        return dict(where)

    # -- Constructors ------------------------------------------------------

    @classmethod
    def of(cls, where: Mapping[str, Any] | Op | None = None) -> FindOptions:
        return cls(where)

    @classmethod
    def by(cls, field: str, value: Any) -> FindOptions:
        """Single-field equality."""
        return cls({field: value})

    # -- Fluent setters ----------------------------------------------------

    def select(self, attributes: Sequence[str] | None) -> FindOptions:
        if isinstance(attributes, str):
            attributes = [attributes]
        self.attributes = list(attributes) if attributes is not None else None
        return self

    def set_limit(self, limit: int | None) -> FindOptions:
        if limit is not None and limit < 0:
            raise ValidationError("limit must be >= 0", field="limit", value=limit)
        self.limit = limit
        return self

    def set_skip(self, skip: int | None) -> FindOptions:
        if skip is not None and skip < 0:
            raise ValidationError("skip must be >= 0", field="skip", value=skip)
        self.skip = skip
        return self

    def copy(self) -> FindOptions:
        return FindOptions(
            dict(self.where),
            attributes=self.attributes,
            limit=self.limit,
            skip=self.skip,
        )

    def __repr__(self) -> str:
        return (
            f"FindOptions(where={self.where!r}, attributes={self.attributes!r}, "
            f"limit={self.limit!r}, skip={self.skip!r})"
        )


def as_options(value: FindOptions | Mapping[str, Any] | Op | None) -> FindOptions:
    """Accept options, a bare ``where`` mapping or node, or ``None``."""
    if isinstance(value, FindOptions):
        return value
    return FindOptions(value)


__all__ = ["FindOptions", "as_options"]
