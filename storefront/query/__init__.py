"""Query layer.

Declarative filters, ordering, cursor pagination, relation inclusion and
aggregation shared by every catalog store.
"""

from storefront.query.filters import (
    BoolFilter,
    DateTimeFilter,
    Every,
    Is,
    IsNot,
    NoneOf,
    NumberFilter,
    QueryMode,
    Some,
    StringFilter,
    Where,
)
from storefront.query.options import (
    AggregateOptions,
    FindManyOptions,
    GroupByOptions,
    Include,
    IncludeSpec,
    UniqueKey,
)
from storefront.query.ordering import NullsOrder, OrderBy, SortOrder

__all__ = [
    # Filters
    "BoolFilter",
    "DateTimeFilter",
    "Every",
    "Is",
    "IsNot",
    "NoneOf",
    "NumberFilter",
    "QueryMode",
    "Some",
    "StringFilter",
    "Where",
    # Options
    "AggregateOptions",
    "FindManyOptions",
    "GroupByOptions",
    "Include",
    "IncludeSpec",
    "UniqueKey",
    # Ordering
    "NullsOrder",
    "OrderBy",
    "SortOrder",
]
