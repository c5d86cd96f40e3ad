"""Row reads: filtering, ordering, offset and cursor pagination.

Cursor pages are keyset queries: the cursor row's ordering values are
read first and the page starts at that position, so re-running a query
with the same cursor yields the same rows as long as nothing was written
in between.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from storefront.domain.exceptions import InvalidQueryError
from storefront.query.filters import compile_where
from storefront.query.includes import load_includes
from storefront.query.options import FindManyOptions, UniqueKey
from storefront.query.ordering import (
    keyset_predicate,
    order_clause,
    resolve_expression,
    with_tiebreaker,
)


def unique_criteria(
    model: type,
    key: UniqueKey,
    unique_fields: Sequence[str],
) -> ColumnElement[bool]:
    """Build the WHERE clause selecting one row by a unique key.

    Args:
        model: Mapped class.
        key: An id string or a single-entry mapping on a unique field.
        unique_fields: Fields of ``model`` that are unique.

    Raises:
        InvalidQueryError: If the key is not exactly one unique field.
    """
    if isinstance(key, str):
        key = {"id": key}
    if not isinstance(key, Mapping) or len(key) != 1:
        raise InvalidQueryError(
            f"{model.__name__} unique key must name exactly one of {list(unique_fields)}",
            details={"entity": model.__name__},
        )
    (field, value), = key.items()
    if field not in unique_fields:
        raise InvalidQueryError(
            f"'{field}' is not a unique field of {model.__name__}",
            details={"entity": model.__name__, "field": field, "unique": list(unique_fields)},
        )
    if value is None:
        raise InvalidQueryError(
            f"Unique key '{field}' of {model.__name__} must not be None",
            details={"entity": model.__name__, "field": field},
        )
    return getattr(model, field) == value


async def fetch_many(
    session: AsyncSession,
    model: type,
    options: FindManyOptions,
    unique_fields: Sequence[str] = ("id",),
) -> list[Any]:
    """Run a find-many query and load requested relations.

    Args:
        session: Active session.
        model: Mapped class to read.
        options: Filter, include, ordering and pagination options.
        unique_fields: Fields accepted as cursor keys.

    Returns:
        Matching rows in order.
    """
    if options.skip < 0:
        raise InvalidQueryError("skip must not be negative")

    criteria = compile_where(model, options.where)
    orders = list(options.order_by)
    backwards = options.take is not None and options.take < 0
    if orders or options.cursor is not None or backwards:
        orders = with_tiebreaker(model, orders)
    if backwards:
        orders = [order.reversed() for order in orders]

    terms = [(resolve_expression(model, order), order) for order in orders]
    stmt = select(model).where(criteria)

    if options.cursor is not None:
        cursor_stmt = select(*(expression for expression, _ in terms)).where(
            unique_criteria(model, options.cursor, unique_fields)
        )
        cursor_row = (await session.execute(cursor_stmt)).first()
        if cursor_row is None:
            return []
        stmt = stmt.where(keyset_predicate(terms, list(cursor_row)))

    if terms:
        stmt = stmt.order_by(*(order_clause(expression, order) for expression, order in terms))
    if options.skip:
        stmt = stmt.offset(options.skip)
    if options.take is not None:
        stmt = stmt.limit(abs(options.take))

    rows = list((await session.execute(stmt)).scalars().all())
    if backwards:
        rows.reverse()

    await load_includes(session, model, rows, options.include)
    return rows
