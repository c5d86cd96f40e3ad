"""Typed request structures for store reads.

Each read operation takes one options object instead of a free-form
argument bag, so the accepted knobs are explicit and checkable.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from storefront.query.filters import Where
from storefront.query.ordering import OrderBy

# Unique key of a row: its id, or a single-entry mapping on a unique field.
UniqueKey = Union[str, Mapping[str, Any]]


@dataclass
class Include:
    """Options for eagerly loading one relation.

    Filtering, ordering and pagination only apply to to-many relations,
    and pagination is applied per parent row.

    Attributes:
        where: Filter on the related rows.
        order_by: Ordering of the related rows.
        take: Maximum related rows per parent (non-negative).
        skip: Related rows to skip per parent.
        include: Nested relations to load on the related rows.
    """

    where: Where | None = None
    order_by: Sequence[OrderBy] = ()
    take: int | None = None
    skip: int = 0
    include: "IncludeSpec | None" = None


# Relation name -> True | Include. The "_count" key takes to-many relation
# names whose row counts are exposed as ``relation_counts``.
IncludeSpec = Mapping[str, Union[bool, Include, Sequence[str]]]


@dataclass
class FindManyOptions:
    """Options for ``find_many``, ``find_first`` and ``iterate``.

    Attributes:
        where: Row filter.
        include: Relations to eagerly load.
        order_by: Ordering terms.
        cursor: Unique key of the row the page starts from (inclusive).
        take: Number of rows; negative reads backwards from the cursor
            (or from the end) while still returning rows in order.
        skip: Rows to skip after the cursor, or from the start.
    """

    where: Where | None = None
    include: IncludeSpec | None = None
    order_by: Sequence[OrderBy] = ()
    cursor: UniqueKey | None = None
    take: int | None = None
    skip: int = 0


@dataclass
class AggregateOptions:
    """Options for ``aggregate``.

    ``count`` is True (row count only) or a list of fields, where
    ``"_all"`` is the row count and other names count non-null values.
    ``sum`` and ``avg`` take numeric fields; ``min`` and ``max`` take any
    comparable field.
    """

    where: Where | None = None
    order_by: Sequence[OrderBy] = ()
    take: int | None = None
    skip: int = 0
    count: bool | Sequence[str] = False
    min: Sequence[str] = ()
    max: Sequence[str] = ()
    sum: Sequence[str] = ()
    avg: Sequence[str] = ()


@dataclass
class GroupByOptions:
    """Options for ``group_by``.

    Attributes:
        by: Grouping fields (must not be empty).
        where: Filter applied to rows before grouping.
        having: Filter over grouped values, see ``compile_having``.
        order_by: Ordering of groups.
        take: Maximum groups.
        skip: Groups to skip.
    """

    by: Sequence[str] = field(default_factory=list)
    where: Where | None = None
    having: Where | None = None
    order_by: Sequence[OrderBy] = ()
    take: int | None = None
    skip: int = 0
    count: bool | Sequence[str] = False
    min: Sequence[str] = ()
    max: Sequence[str] = ()
    sum: Sequence[str] = ()
    avg: Sequence[str] = ()
