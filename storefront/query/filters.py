"""Declarative filters compiled to SQLAlchemy criteria.

A ``where`` is a mapping from field or relation names to conditions::

    {
        "merchant_id": merchant.id,                     # equality
        "category_id": None,                            # IS NULL
        "price": NumberFilter(gte=10_000, lt=50_000),
        "name": StringFilter(contains="kaos", mode=QueryMode.INSENSITIVE),
        "variants": Some({"stock": NumberFilter(gt=0)}),
        "merchant": {"status": "active"},
        "OR": [{"has_variant": True}, {"discount": NumberFilter(gt=0)}],
    }

Nothing here executes caller code; every key is resolved against the
model's mapper and unknown names raise ``InvalidQueryError``.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union

from sqlalchemy import and_, false, func, inspect, not_, or_, true
from sqlalchemy.orm import RelationshipProperty
from sqlalchemy.sql.elements import ColumnElement

from storefront.domain.exceptions import InvalidQueryError

COMBINATORS = ("AND", "OR", "NOT")


class QueryMode(str, Enum):
    """String comparison mode."""

    DEFAULT = "default"
    INSENSITIVE = "insensitive"


# ============================================================================
# Scalar Filters
# ============================================================================


@dataclass
class ScalarFilter:
    """Common base of the per-type filters.

    ``is_null`` checks nullability; ``not_`` negates a value or a nested
    filter of the same type.
    """

    is_null: bool | None = None

    def compile(self, column: Any) -> ColumnElement[bool]:
        clauses = self._clauses(column)
        if self.is_null is True:
            clauses.append(column.is_(None))
        elif self.is_null is False:
            clauses.append(column.is_not(None))
        negated = getattr(self, "not_", None)
        if isinstance(negated, ScalarFilter):
            clauses.append(not_(negated.compile(column)))
        elif negated is not None:
            clauses.append(self._differs(column, negated))
        return and_(true(), *clauses)

    def _clauses(self, column: Any) -> list[ColumnElement[bool]]:
        return []

    def _differs(self, column: Any, value: Any) -> ColumnElement[bool]:
        return column != value


@dataclass
class NumberFilter(ScalarFilter):
    """Filter for integer, decimal and float columns."""

    equals: int | float | Decimal | None = None
    in_: Sequence[int | float | Decimal] | None = None
    not_in: Sequence[int | float | Decimal] | None = None
    lt: int | float | Decimal | None = None
    lte: int | float | Decimal | None = None
    gt: int | float | Decimal | None = None
    gte: int | float | Decimal | None = None
    not_: Union[int, float, Decimal, "NumberFilter", None] = None

    def _clauses(self, column: Any) -> list[ColumnElement[bool]]:
        return _comparisons(self, column)


@dataclass
class DateTimeFilter(ScalarFilter):
    """Filter for datetime columns."""

    equals: datetime | None = None
    in_: Sequence[datetime] | None = None
    not_in: Sequence[datetime] | None = None
    lt: datetime | None = None
    lte: datetime | None = None
    gt: datetime | None = None
    gte: datetime | None = None
    not_: Union[datetime, "DateTimeFilter", None] = None

    def _clauses(self, column: Any) -> list[ColumnElement[bool]]:
        return _comparisons(self, column)


@dataclass
class BoolFilter(ScalarFilter):
    """Filter for boolean columns."""

    equals: bool | None = None
    not_: Union[bool, "BoolFilter", None] = None

    def _clauses(self, column: Any) -> list[ColumnElement[bool]]:
        if self.equals is None:
            return []
        return [column == self.equals]


@dataclass
class StringFilter(ScalarFilter):
    """Filter for text columns.

    With ``mode=QueryMode.INSENSITIVE`` every comparison ignores case.
    """

    equals: str | None = None
    in_: Sequence[str] | None = None
    not_in: Sequence[str] | None = None
    lt: str | None = None
    lte: str | None = None
    gt: str | None = None
    gte: str | None = None
    contains: str | None = None
    starts_with: str | None = None
    ends_with: str | None = None
    mode: QueryMode = QueryMode.DEFAULT
    not_: Union[str, "StringFilter", None] = None

    def _clauses(self, column: Any) -> list[ColumnElement[bool]]:
        insensitive = self.mode == QueryMode.INSENSITIVE
        target = func.lower(column) if insensitive else column

        def fold(value: str) -> str:
            return value.lower() if insensitive else value

        clauses = _comparisons(self, target, fold)
        if self.contains is not None:
            clauses.append(
                column.icontains(self.contains, autoescape=True)
                if insensitive
                else column.contains(self.contains, autoescape=True)
            )
        if self.starts_with is not None:
            clauses.append(
                column.istartswith(self.starts_with, autoescape=True)
                if insensitive
                else column.startswith(self.starts_with, autoescape=True)
            )
        if self.ends_with is not None:
            clauses.append(
                column.iendswith(self.ends_with, autoescape=True)
                if insensitive
                else column.endswith(self.ends_with, autoescape=True)
            )
        return clauses

    def _differs(self, column: Any, value: Any) -> ColumnElement[bool]:
        if self.mode == QueryMode.INSENSITIVE:
            return func.lower(column) != value.lower()
        return column != value


def _comparisons(flt: Any, column: Any, fold: Any = None) -> list[ColumnElement[bool]]:
    fold = fold or (lambda value: value)
    clauses: list[ColumnElement[bool]] = []
    if flt.equals is not None:
        clauses.append(column == fold(flt.equals))
    if flt.in_ is not None:
        clauses.append(column.in_([fold(v) for v in flt.in_]))
    if flt.not_in is not None:
        clauses.append(column.not_in([fold(v) for v in flt.not_in]))
    if flt.lt is not None:
        clauses.append(column < fold(flt.lt))
    if flt.lte is not None:
        clauses.append(column <= fold(flt.lte))
    if flt.gt is not None:
        clauses.append(column > fold(flt.gt))
    if flt.gte is not None:
        clauses.append(column >= fold(flt.gte))
    return clauses


# ============================================================================
# Relation Filters
# ============================================================================


@dataclass
class Some:
    """At least one related row matches (to-many relations)."""

    where: Mapping[str, Any]


@dataclass
class Every:
    """All related rows match; vacuously true with no related rows."""

    where: Mapping[str, Any]


@dataclass
class NoneOf:
    """No related row matches (to-many relations)."""

    where: Mapping[str, Any]


@dataclass
class Is:
    """The related row exists and matches (to-one relations)."""

    where: Mapping[str, Any]


@dataclass
class IsNot:
    """The related row is missing or does not match (to-one relations)."""

    where: Mapping[str, Any]


Where = Mapping[str, Any]


# ============================================================================
# Compilation
# ============================================================================


def compile_where(model: type, where: Where | None) -> ColumnElement[bool]:
    """Compile a where mapping into a boolean SQL expression.

    Args:
        model: Mapped class the filter applies to.
        where: Filter mapping (may be empty or None).

    Returns:
        SQLAlchemy boolean clause.

    Raises:
        InvalidQueryError: If a key is not a column, relation or combinator.
    """
    if not where:
        return true()
    if not isinstance(where, Mapping):
        raise InvalidQueryError(
            f"where for {model.__name__} must be a mapping",
            details={"entity": model.__name__},
        )

    mapper = inspect(model)
    clauses: list[ColumnElement[bool]] = []
    for key, condition in where.items():
        if key in COMBINATORS:
            clauses.append(_compile_combinator(model, key, condition))
        elif key in mapper.relationships:
            clauses.append(_compile_relation(model, mapper.relationships[key], condition))
        elif key in mapper.column_attrs:
            clauses.append(compile_condition(getattr(model, key), condition))
        else:
            raise InvalidQueryError(
                f"Unknown field '{key}' for {model.__name__}",
                details={"entity": model.__name__, "field": key},
            )
    return and_(true(), *clauses)


def compile_condition(column: Any, condition: Any) -> ColumnElement[bool]:
    """Compile the condition on a single column or SQL expression.

    Args:
        column: Column attribute or expression.
        condition: Plain value, None, or a ScalarFilter.

    Returns:
        SQLAlchemy boolean clause.
    """
    if isinstance(condition, ScalarFilter):
        return condition.compile(column)
    if condition is None:
        return column.is_(None)
    if isinstance(condition, (Mapping, Some, Every, NoneOf, Is, IsNot)):
        raise InvalidQueryError(
            f"Relation filter used on scalar field '{getattr(column, 'key', column)}'",
        )
    return column == condition


def _compile_combinator(model: type, key: str, condition: Any) -> ColumnElement[bool]:
    items = as_list(condition)
    compiled = [compile_where(model, item) for item in items]
    if key == "AND":
        return and_(true(), *compiled)
    if key == "OR":
        return or_(false(), *compiled)
    return and_(true(), *(not_(clause) for clause in compiled))


def _compile_relation(
    model: type,
    rel: RelationshipProperty,
    condition: Any,
) -> ColumnElement[bool]:
    attr = getattr(model, rel.key)
    target = rel.mapper.class_

    if rel.uselist:
        if isinstance(condition, Some):
            return attr.any(compile_where(target, condition.where))
        if isinstance(condition, Every):
            # A NULL predicate counts as a mismatch.
            matched = func.coalesce(compile_where(target, condition.where), false())
            return not_(attr.any(not_(matched)))
        if isinstance(condition, NoneOf):
            return not_(attr.any(compile_where(target, condition.where)))
        raise InvalidQueryError(
            f"Relation '{rel.key}' of {model.__name__} needs Some, Every or NoneOf",
            details={"entity": model.__name__, "relation": rel.key},
        )

    if condition is None:
        return attr == None  # noqa: E711
    if isinstance(condition, Is):
        return attr.has(compile_where(target, condition.where))
    if isinstance(condition, IsNot):
        return not_(attr.has(compile_where(target, condition.where)))
    if isinstance(condition, Mapping):
        return attr.has(compile_where(target, condition))
    raise InvalidQueryError(
        f"Relation '{rel.key}' of {model.__name__} needs a mapping, Is, IsNot or None",
        details={"entity": model.__name__, "relation": rel.key},
    )


def as_list(condition: Any) -> list[Any]:
    if isinstance(condition, Mapping):
        return [condition]
    if isinstance(condition, Sequence) and not isinstance(condition, str):
        return list(condition)
    raise InvalidQueryError("AND, OR and NOT take a mapping or a list of mappings")
