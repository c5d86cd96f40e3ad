"""Aggregation and grouping.

Statistics are computed in SQL; rows are never materialized. Results only
contain what was requested, so a missing key means "not computed" while a
``None`` value means "computed over nothing".
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import Float, Integer, Numeric, and_, false, func, inspect, not_, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from storefront.domain.exceptions import InvalidGroupByError, InvalidQueryError
from storefront.query.filters import COMBINATORS, as_list, compile_condition, compile_where
from storefront.query.options import AggregateOptions, GroupByOptions
from storefront.query.ordering import OrderBy, order_clause, resolve_expression, with_tiebreaker

ALL = "_all"
AGGREGATES = ("_count", "_min", "_max", "_sum", "_avg")
_FUNCTIONS = {
    "_count": func.count,
    "_min": func.min,
    "_max": func.max,
    "_sum": func.sum,
    "_avg": func.avg,
}


def requested_aggregates(options: AggregateOptions | GroupByOptions) -> dict[str, list[str]]:
    """Map each requested aggregate to its field list."""
    requested: dict[str, list[str]] = {}
    if options.count is True:
        requested["_count"] = [ALL]
    elif options.count:
        requested["_count"] = list(options.count)
    for name, fields in (
        ("_min", options.min),
        ("_max", options.max),
        ("_sum", options.sum),
        ("_avg", options.avg),
    ):
        if fields:
            requested[name] = list(fields)
    return requested


def _check_fields(model: type, requested: Mapping[str, Sequence[str]]) -> None:
    columns = inspect(model).column_attrs
    for name, fields in requested.items():
        for field in fields:
            if name == "_count" and field == ALL:
                continue
            if field not in columns:
                raise InvalidQueryError(
                    f"Unknown field '{field}' for {model.__name__}",
                    details={"entity": model.__name__, "field": field},
                )
            if name in ("_sum", "_avg") and not _is_numeric(getattr(model, field)):
                raise InvalidQueryError(
                    f"{name} needs a numeric field, '{field}' is not",
                    details={"entity": model.__name__, "field": field},
                )


def _is_numeric(column: Any) -> bool:
    return isinstance(column.type, (Integer, Numeric, Float))


def _aggregate_column(name: str, field: str, source: Any) -> ColumnElement[Any]:
    if name == "_count":
        return func.count() if field == ALL else func.count(source[field])
    return _FUNCTIONS[name](source[field])


def _label(name: str, field: str) -> str:
    return f"{name}__{field}"


def _unpack(row: Mapping[str, Any], requested: Mapping[str, Sequence[str]]) -> dict[str, Any]:
    return {
        name: {field: row[_label(name, field)] for field in fields}
        for name, fields in requested.items()
    }


# ============================================================================
# Aggregate
# ============================================================================


async def aggregate(
    session: AsyncSession,
    model: type,
    options: AggregateOptions,
) -> dict[str, dict[str, Any]]:
    """Compute the requested aggregates over the filtered rows.

    Returns:
        Mapping like ``{"_count": {"_all": 3}, "_avg": {"price": Decimal(...)}}``.
    """
    requested = requested_aggregates(options)
    if not requested:
        raise InvalidQueryError("aggregate needs at least one of count, min, max, sum, avg")
    _check_fields(model, requested)

    if options.skip < 0:
        raise InvalidQueryError("skip must not be negative")

    orders = list(options.order_by)
    backwards = options.take is not None and options.take < 0
    if backwards:
        orders = [order.reversed() for order in with_tiebreaker(model, orders)]

    rows = select(model).where(compile_where(model, options.where))
    if orders:
        rows = rows.order_by(*(order_clause(resolve_expression(model, o), o) for o in orders))
    if options.skip:
        rows = rows.offset(options.skip)
    if options.take is not None:
        rows = rows.limit(abs(options.take))
    window = rows.subquery()

    stmt = select(
        *(
            _aggregate_column(name, field, window.c).label(_label(name, field))
            for name, fields in requested.items()
            for field in fields
        )
    ).select_from(window)
    row = (await session.execute(stmt)).mappings().one()
    return _unpack(row, requested)


# ============================================================================
# Group By
# ============================================================================


def validate_group_by(model: type, options: GroupByOptions) -> None:
    """Check field coverage of a group-by request.

    Raises:
        InvalidGroupByError: On empty ``by``, or ordering/having fields not
            covered by ``by``.
    """
    by = list(options.by)
    if not by:
        raise InvalidGroupByError("by must not be empty")

    columns = inspect(model).column_attrs
    unknown = [field for field in by if field not in columns]
    if unknown:
        raise InvalidGroupByError(f"Cannot group by unknown fields {unknown}", fields=unknown)

    if options.skip < 0 or (options.take is not None and options.take < 0):
        raise InvalidGroupByError("take and skip must not be negative for grouped rows")

    paginated = options.take is not None or bool(options.skip)
    for order in options.order_by:
        if order.relation_count:
            raise InvalidGroupByError("Relation counts cannot order grouped rows", fields=[order.field])
        if order.aggregate is not None:
            _check_aggregate_order(model, order)
        if order.field in by or (order.aggregate == "_count" and order.field == ALL):
            continue
        if paginated:
            raise InvalidGroupByError(
                "Every field used for order_by must be included in by when take or skip is set",
                fields=[order.field],
            )
        if order.aggregate is None:
            raise InvalidGroupByError(
                f"Ordering by '{order.field}' needs it in by or an aggregate",
                fields=[order.field],
            )

    missing = [field for field in _having_fields(options.having) if field not in by]
    if missing:
        raise InvalidGroupByError(
            f"Every field used in having must be included in by, missing {missing}",
            fields=missing,
        )


def _check_aggregate_order(model: type, order: OrderBy) -> None:
    if order.aggregate not in AGGREGATES:
        raise InvalidGroupByError(
            f"Unknown aggregate '{order.aggregate}' in order_by",
            fields=[order.field],
        )
    if order.field == ALL and order.aggregate == "_count":
        return
    if order.field not in inspect(model).column_attrs:
        raise InvalidGroupByError(
            f"Cannot order by {order.aggregate} of unknown field '{order.field}'",
            fields=[order.field],
        )
    if order.aggregate in ("_sum", "_avg") and not _is_numeric(getattr(model, order.field)):
        raise InvalidGroupByError(
            f"{order.aggregate} needs a numeric field, '{order.field}' is not",
            fields=[order.field],
        )


def _having_fields(having: Mapping[str, Any] | None) -> list[str]:
    if not having:
        return []
    fields: list[str] = []
    for key, condition in having.items():
        if key in COMBINATORS:
            items = as_list(condition)
            for item in items:
                fields.extend(_having_fields(item))
        elif key != "_count":
            fields.append(key)
    return fields


def compile_having(model: type, having: Mapping[str, Any] | None) -> ColumnElement[bool]:
    """Compile a having mapping over grouped values.

    Keys are grouping fields, ``"_count"`` (rows per group) or a
    combinator. A field's condition is a plain value or scalar filter on
    the field itself, or a mapping of aggregate name to condition::

        {"merchant_id": {"_count": NumberFilter(gt=2)}, "_count": NumberFilter(lte=10)}
    """
    if not having:
        return true()
    clauses: list[ColumnElement[bool]] = []
    for key, condition in having.items():
        if key in COMBINATORS:
            items = as_list(condition)
            compiled = [compile_having(model, item) for item in items]
            if key == "AND":
                clauses.append(and_(true(), *compiled))
            elif key == "OR":
                clauses.append(or_(false(), *compiled))
            else:
                clauses.append(and_(true(), *(not_(c) for c in compiled)))
        elif key == "_count":
            clauses.append(compile_condition(func.count(), condition))
        elif isinstance(condition, Mapping):
            column = getattr(model, key)
            for name, inner in condition.items():
                if name not in AGGREGATES:
                    raise InvalidQueryError(f"Unknown aggregate '{name}' in having")
                expression = func.count(column) if name == "_count" else _FUNCTIONS[name](column)
                clauses.append(compile_condition(expression, inner))
        else:
            clauses.append(compile_condition(getattr(model, key), condition))
    return and_(true(), *clauses)


def _group_order(model: type, order: OrderBy) -> Any:
    if order.aggregate is None:
        return order_clause(resolve_expression(model, order), order)
    if order.aggregate not in AGGREGATES:
        raise InvalidQueryError(f"Unknown aggregate '{order.aggregate}' in order_by")
    if order.aggregate == "_count":
        expression = func.count() if order.field == ALL else func.count(getattr(model, order.field))
    else:
        expression = _FUNCTIONS[order.aggregate](getattr(model, order.field))
    return order_clause(expression, order)


async def group_by(
    session: AsyncSession,
    model: type,
    options: GroupByOptions,
) -> list[dict[str, Any]]:
    """Group filtered rows and attach the requested aggregates.

    Returns:
        One mapping per group, e.g.
        ``{"merchant_id": "...", "_count": {"_all": 3}}``.
    """
    validate_group_by(model, options)
    requested = requested_aggregates(options)
    _check_fields(model, requested)

    by_columns = [getattr(model, field) for field in options.by]
    source = {field: getattr(model, field) for field in inspect(model).column_attrs.keys()}
    stmt = (
        select(
            *by_columns,
            *(
                _aggregate_column(name, field, source).label(_label(name, field))
                for name, fields in requested.items()
                for field in fields
            ),
        )
        .where(compile_where(model, options.where))
        .group_by(*by_columns)
    )
    if options.having:
        stmt = stmt.having(compile_having(model, options.having))
    if options.order_by:
        stmt = stmt.order_by(*(_group_order(model, o) for o in options.order_by))
    if options.skip:
        stmt = stmt.offset(options.skip)
    if options.take is not None:
        stmt = stmt.limit(options.take)

    groups = []
    for row in (await session.execute(stmt)).mappings().all():
        group = {field: row[field] for field in options.by}
        group.update(_unpack(row, requested))
        groups.append(group)
    return groups
