"""Composable predicate nodes for ``where`` clauses.

A ``where`` is usually a plain mapping of field to value, read as an AND
of equalities. Anything else is expressed with operator nodes, either
placed under the reserved ``"$"`` key of the mapping or passed directly
as the whole ``where``::

    {"name": "alice"}                                 name = 'alice'
    {"active": True, "$": Or({"name": "a", "email": "b"})}
                                                      active AND (name = a OR email = b)
    Or([{"name": "a", "active": True}, {"name": "b"}])
                                                      (name = a AND active) OR name = b
    Gte("age", 18) & ~Eq("name", "bob")               age >= 18 AND NOT name = bob

Nodes only describe the filter. ``portadb.compiler`` turns them into
SQLAlchemy expressions against an entity's table, coercing every value to
the field's semantic type on the way.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Union

from portadb.errors import MalformedPredicateError

OPERATOR_KEY = "$"


def _check_operator_key(term: Any) -> None:
    if isinstance(term, Mapping) and OPERATOR_KEY in term and not isinstance(term[OPERATOR_KEY], Op):
        raise MalformedPredicateError(
            f"The '{OPERATOR_KEY}' key is reserved for operator nodes",
            field=OPERATOR_KEY,
            value=term[OPERATOR_KEY],
        )


class OpType(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    EQ = "EQ"
    NEQ = "NEQ"
    GT = "GT"
    LT = "LT"
    GTE = "GTE"
    LTE = "LTE"


class Op:
    """Base class of every predicate node.

    Nodes are immutable and compose with ``&`` (AND), ``|`` (OR) and
    ``~`` (NOT).
    """

    type: OpType

    __slots__ = ()

    def __and__(self, other: Term) -> And:
        left = self.terms if isinstance(self, And) else (self,)
        right = other.terms if isinstance(other, And) else (other,)
        return And(*left, *right)

    def __or__(self, other: Term) -> Or:
        left = self.terms if isinstance(self, Or) and self.mapping is None else (self,)
        right = other.terms if isinstance(other, Or) and other.mapping is None else (other,)
        return Or(*left, *right)

    def __invert__(self) -> Op:
        if isinstance(self, Not):
            return self.term if isinstance(self.term, Op) else And(self.term)
        return Not(self)


Term = Union[Op, Mapping[str, Any]]


# =============================================================================
# Field comparisons
# =============================================================================


class Comparison(Op):
    """``field <op> value``; the value is coerced to the field type when compiled."""

    __slots__ = ("field", "value")

    def __init__(self, field: str, value: Any):
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "value", value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self.field, self.value) == (other.field, other.value)

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.field, repr(self.value)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.field!r}, {self.value!r})"


class Eq(Comparison):
    __slots__ = ()
    type = OpType.EQ


class Ne(Comparison):
    __slots__ = ()
    type = OpType.NEQ


class Gt(Comparison):
    __slots__ = ()
    type = OpType.GT


class Gte(Comparison):
    __slots__ = ()
    type = OpType.GTE


class Lt(Comparison):
    __slots__ = ()
    type = OpType.LT


class Lte(Comparison):
    __slots__ = ()
    type = OpType.LTE


# =============================================================================
# Logical nodes
# =============================================================================


class _Logical(Op):
    __slots__ = ("terms",)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash((type(self).__name__, repr(self._key())))

    def _key(self) -> tuple:
        return tuple(dict(t) if isinstance(t, Mapping) else t for t in self.terms)


class And(_Logical):
    """Conjunction. Mappings among the terms are ANDs of equalities.

    ``And()`` with no terms matches every row.
    """

    __slots__ = ()
    type = OpType.AND

    def __init__(self, *terms: Term):
        for term in terms:
            _check_operator_key(term)
        object.__setattr__(self, "terms", tuple(terms))

    def __repr__(self) -> str:
        return f"And({', '.join(repr(t) for t in self.terms)})"


class Or(_Logical):
    """Disjunction, in one of three forms.

    ``Or({"a": 1, "b": 2})``
        Map form: ``a = 1 OR b = 2``. Entries whose value is ``None``, or
        coerces to ``None``, are skipped.
    ``Or([{"a": 1, "b": 2}, {"c": 3}])``
        List form: each map is ANDed, the maps are ORed:
        ``(a = 1 AND b = 2) OR c = 3``. Empty maps are skipped.
    ``Or(node, node, ...)``
        Node form, also what ``a | b`` builds.

    Whatever survives the skipping, an empty ``Or`` matches no rows.
    """

    __slots__ = ("mapping",)
    type = OpType.OR

    def __init__(self, *terms: Term | Sequence[Term]):
        mapping: dict[str, Any] | None = None
        if len(terms) == 1 and isinstance(terms[0], Mapping):
            mapping = dict(terms[0])
            flat: tuple = ()
        elif len(terms) == 1 and isinstance(terms[0], Sequence) and not isinstance(terms[0], str):
            flat = tuple(terms[0])
        else:
            flat = tuple(terms)
        _check_operator_key(mapping)
        for term in flat:
            _check_operator_key(term)
        object.__setattr__(self, "mapping", mapping)
        object.__setattr__(self, "terms", flat)

    def _key(self) -> tuple:
        return (self.mapping, super()._key())

    def __repr__(self) -> str:
        if self.mapping is not None:
            return f"Or({self.mapping!r})"
        return f"Or({list(self.terms)!r})"


class Not(_Logical):
    """Negation of one node or mapping."""

    __slots__ = ()
    type = OpType.NOT

    def __init__(self, term: Term):
        _check_operator_key(term)
        object.__setattr__(self, "terms", (term,))

    @property
    def term(self) -> Term:
        return self.terms[0]

    def __repr__(self) -> str:
        return f"Not({self.term!r})"


def is_node(value: Any) -> bool:
    return isinstance(value, Op)


__all__ = [
    "OPERATOR_KEY",
    "OpType",
    "Op",
    "Term",
    "Comparison",
    "Eq",
    "Ne",
    "Gt",
    "Gte",
    "Lt",
    "Lte",
    "And",
    "Or",
    "Not",
    "is_node",
]
