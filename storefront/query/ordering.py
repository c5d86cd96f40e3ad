"""Ordering and keyset predicates.

Orderings resolve against the model's mapper: plain columns, dotted paths
through to-one relations (``"merchant.name"``) and row counts of to-many
relations (``OrderBy.count("products")``). Null placement is always
rendered explicitly so SQLite and PostgreSQL sort identically.
"""

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from sqlalchemy import and_, false, func, inspect, or_, select
from sqlalchemy.sql.elements import ColumnElement

from storefront.domain.exceptions import InvalidQueryError


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class NullsOrder(str, Enum):
    """Where NULL values are placed."""

    FIRST = "first"
    LAST = "last"


@dataclass(frozen=True)
class OrderBy:
    """One ordering term.

    Attributes:
        field: Column name, dotted to-one path, or to-many relation name.
        direction: Sort direction.
        nulls: Null placement; defaults to last for ascending, first for
            descending.
        relation_count: Order by the number of related rows of ``field``.
        aggregate: Group-by only; order by this aggregate of ``field``
            ("_count", "_avg", "_sum", "_min", "_max").
    """

    field: str
    direction: SortOrder = SortOrder.ASC
    nulls: NullsOrder | None = None
    relation_count: bool = False
    aggregate: str | None = None

    @classmethod
    def count(cls, relation: str, direction: SortOrder = SortOrder.ASC) -> "OrderBy":
        """Order by the number of rows in a to-many relation."""
        return cls(relation, direction, relation_count=True)

    @property
    def ascending(self) -> bool:
        return self.direction == SortOrder.ASC

    @property
    def effective_nulls(self) -> NullsOrder:
        if self.nulls is not None:
            return self.nulls
        return NullsOrder.LAST if self.ascending else NullsOrder.FIRST

    def reversed(self) -> "OrderBy":
        """The same term sorted the opposite way, nulls included."""
        flipped = SortOrder.DESC if self.ascending else SortOrder.ASC
        nulls = NullsOrder.FIRST if self.effective_nulls == NullsOrder.LAST else NullsOrder.LAST
        return replace(self, direction=flipped, nulls=nulls)


def resolve_expression(model: type, order: OrderBy) -> ColumnElement[Any]:
    """Resolve an ordering term to a SQL expression on ``model``.

    Raises:
        InvalidQueryError: If the field cannot be resolved.
    """
    if order.relation_count:
        return relation_count_expression(model, order.field)
    return field_expression(model, order.field)


def field_expression(model: type, path: str) -> ColumnElement[Any]:
    """Resolve a column name or dotted to-one path to an expression."""
    mapper = inspect(model)
    head, _, rest = path.partition(".")
    if not rest:
        if head not in mapper.column_attrs:
            raise InvalidQueryError(
                f"Unknown field '{head}' for {model.__name__}",
                details={"entity": model.__name__, "field": head},
            )
        return getattr(model, head)

    rel = mapper.relationships.get(head)
    if rel is None or rel.uselist:
        raise InvalidQueryError(
            f"'{head}' is not a to-one relation of {model.__name__}",
            details={"entity": model.__name__, "field": path},
        )
    target = rel.mapper.class_
    local, remote = rel.local_remote_pairs[0]
    return (
        select(field_expression(target, rest))
        .where(remote == local)
        .correlate(model)
        .scalar_subquery()
    )


def relation_count_expression(model: type, relation: str) -> ColumnElement[int]:
    """Correlated count of rows in a to-many relation."""
    rel = inspect(model).relationships.get(relation)
    if rel is None or not rel.uselist:
        raise InvalidQueryError(
            f"'{relation}' is not a to-many relation of {model.__name__}",
            details={"entity": model.__name__, "relation": relation},
        )
    local, remote = rel.local_remote_pairs[0]
    return (
        select(func.count())
        .select_from(rel.mapper.class_)
        .where(remote == local)
        .correlate(model)
        .scalar_subquery()
    )


def order_clause(expression: ColumnElement[Any], order: OrderBy) -> Any:
    """Render one ordering term with explicit null placement."""
    clause = expression.asc() if order.ascending else expression.desc()
    if order.effective_nulls == NullsOrder.FIRST:
        return clause.nulls_first()
    return clause.nulls_last()


def with_tiebreaker(model: type, orders: Sequence[OrderBy]) -> list[OrderBy]:
    """Append the primary key so the ordering is total."""
    terms = list(orders)
    if not any(o.field == "id" and not o.relation_count for o in terms):
        terms.append(OrderBy("id"))
    return terms


def keyset_predicate(
    terms: Sequence[tuple[ColumnElement[Any], OrderBy]],
    values: Sequence[Any],
) -> ColumnElement[bool]:
    """Rows positioned at or after the cursor row.

    ``terms`` must form a total ordering (see ``with_tiebreaker``) and
    ``values`` are the cursor row's values for each term.
    """
    alternatives: list[ColumnElement[bool]] = []
    for index, (expression, order) in enumerate(terms):
        prefix = [_same(e, v) for (e, _), v in zip(terms[:index], values[:index])]
        alternatives.append(and_(*prefix, _after(expression, order, values[index])))
    alternatives.append(and_(*[_same(e, v) for (e, _), v in zip(terms, values)]))
    return or_(*alternatives)


def _same(expression: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    if value is None:
        return expression.is_(None)
    return expression == value


def _after(expression: ColumnElement[Any], order: OrderBy, value: Any) -> ColumnElement[bool]:
    nulls_last = order.effective_nulls == NullsOrder.LAST
    if value is None:
        return false() if nulls_last else expression.is_not(None)
    beyond = expression > value if order.ascending else expression < value
    if nulls_last:
        return or_(beyond, expression.is_(None))
    return beyond
