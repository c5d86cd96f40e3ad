"""Eager loading of requested relations.

Relations are loaded with one query per relation per nesting level
(``IN`` over the parent keys) and attached without marking the parents
dirty. Per-parent pagination of to-many relations uses ``row_number()``
partitioned by the foreign key.
"""

from collections import defaultdict
from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.orm.attributes import set_committed_value

from storefront.domain.exceptions import InvalidQueryError
from storefront.query.filters import compile_where
from storefront.query.options import Include, IncludeSpec
from storefront.query.ordering import order_clause, resolve_expression, with_tiebreaker

COUNT_KEY = "_count"


async def load_includes(
    session: AsyncSession,
    model: type,
    instances: Sequence[Any],
    spec: IncludeSpec | None,
) -> None:
    """Load the relations named in ``spec`` onto ``instances``.

    Args:
        session: Session the instances were loaded with.
        model: Mapped class of the instances.
        instances: Parent rows.
        spec: Relation name -> True | Include, plus optional "_count".

    Raises:
        InvalidQueryError: If a relation is unknown or options are invalid.
    """
    if not spec or not instances:
        return

    relationships = inspect(model).relationships
    for name, option in spec.items():
        if name == COUNT_KEY:
            await _load_counts(session, model, instances, option)
            continue
        rel = relationships.get(name)
        if rel is None:
            raise InvalidQueryError(
                f"Unknown relation '{name}' for {model.__name__}",
                details={"entity": model.__name__, "relation": name},
            )
        if option is False:
            continue
        include = option if isinstance(option, Include) else Include()
        if rel.uselist:
            await _load_to_many(session, rel, instances, include)
        else:
            await _load_to_one(session, rel, instances, include)


async def _load_to_many(
    session: AsyncSession,
    rel: Any,
    instances: Sequence[Any],
    include: Include,
) -> None:
    if include.take is not None and include.take < 0:
        raise InvalidQueryError("Include take must not be negative", details={"relation": rel.key})

    target = rel.mapper.class_
    local, remote = rel.local_remote_pairs[0]
    local_key = rel.parent.get_property_by_column(local).key
    remote_key = rel.mapper.get_property_by_column(remote).key
    keys = list({getattr(instance, local_key) for instance in instances})

    orders = with_tiebreaker(target, include.order_by)
    position = func.row_number().over(
        partition_by=getattr(target, remote_key),
        order_by=[order_clause(resolve_expression(target, o), o) for o in orders],
    ).label("position")
    ranked = (
        select(target, position)
        .where(getattr(target, remote_key).in_(keys))
        .where(compile_where(target, include.where))
        .subquery()
    )
    row = aliased(target, ranked)
    stmt = select(row).where(ranked.c.position > include.skip)
    if include.take is not None:
        stmt = stmt.where(ranked.c.position <= include.skip + include.take)
    stmt = stmt.order_by(ranked.c.position)

    children = (await session.execute(stmt)).scalars().all()
    grouped: dict[Any, list[Any]] = defaultdict(list)
    for child in children:
        grouped[getattr(child, remote_key)].append(child)
    for instance in instances:
        set_committed_value(instance, rel.key, grouped.get(getattr(instance, local_key), []))

    await load_includes(session, target, children, include.include)


async def _load_to_one(
    session: AsyncSession,
    rel: Any,
    instances: Sequence[Any],
    include: Include,
) -> None:
    if include.where or include.order_by or include.take is not None or include.skip:
        raise InvalidQueryError(
            f"Relation '{rel.key}' is to-one; only nested include is allowed",
            details={"relation": rel.key},
        )

    target = rel.mapper.class_
    local, remote = rel.local_remote_pairs[0]
    local_key = rel.parent.get_property_by_column(local).key
    remote_key = rel.mapper.get_property_by_column(remote).key
    keys = list({getattr(instance, local_key) for instance in instances} - {None})

    related: dict[Any, Any] = {}
    if keys:
        stmt = select(target).where(getattr(target, remote_key).in_(keys))
        for item in (await session.execute(stmt)).scalars().all():
            related[getattr(item, remote_key)] = item
    for instance in instances:
        set_committed_value(instance, rel.key, related.get(getattr(instance, local_key)))

    await load_includes(session, target, list(related.values()), include.include)


async def _load_counts(
    session: AsyncSession,
    model: type,
    instances: Sequence[Any],
    relations: Any,
) -> None:
    if isinstance(relations, str) or not isinstance(relations, Sequence):
        raise InvalidQueryError("_count takes a list of relation names")

    relationships = inspect(model).relationships
    counts: dict[str, dict[Any, int]] = {}
    for name in relations:
        rel = relationships.get(name)
        if rel is None or not rel.uselist:
            raise InvalidQueryError(
                f"'{name}' is not a to-many relation of {model.__name__}",
                details={"entity": model.__name__, "relation": name},
            )
        local, remote = rel.local_remote_pairs[0]
        local_key = rel.parent.get_property_by_column(local).key
        keys = list({getattr(instance, local_key) for instance in instances})
        stmt = (
            select(remote, func.count())
            .where(remote.in_(keys))
            .group_by(remote)
        )
        counts[name] = {key: total for key, total in (await session.execute(stmt)).all()}

    for instance in instances:
        local_counts = dict(instance.relation_counts)
        for name in relations:
            rel = relationships[name]
            local_key = rel.parent.get_property_by_column(rel.local_remote_pairs[0][0]).key
            local_counts[name] = counts[name].get(getattr(instance, local_key), 0)
        instance.__dict__["_relation_counts"] = local_counts
