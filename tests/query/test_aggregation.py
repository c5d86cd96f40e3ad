"""Tests for aggregate and group_by."""

import pytest

from storefront.catalog import Catalog, User
from storefront.domain.exceptions import InvalidGroupByError, InvalidQueryError
from storefront.query import AggregateOptions, GroupByOptions, NumberFilter, OrderBy, SortOrder


class TestAggregate:
    """Tests for aggregate."""

    @pytest.mark.asyncio
    async def test_count_all(self, catalog: Catalog, shop) -> None:
        """Should count all rows."""
        result = await catalog.products.aggregate(AggregateOptions(count=True))
        assert result == {"_count": {"_all": 5}}

    @pytest.mark.asyncio
    async def test_count_respects_filter(self, catalog: Catalog, shop) -> None:
        """Should count only matching rows, including none."""
        result = await catalog.products.aggregate(
            AggregateOptions(where={"price": NumberFilter(gte=150000)}, count=True)
        )
        assert result == {"_count": {"_all": 3}}

        result = await catalog.products.aggregate(
            AggregateOptions(where={"price": NumberFilter(gt=10**9)}, count=True)
        )
        assert result == {"_count": {"_all": 0}}

    @pytest.mark.asyncio
    async def test_statistics(self, catalog: Catalog, shop) -> None:
        """Should compute min, max, sum and avg and omit the rest."""
        result = await catalog.products.aggregate(
            AggregateOptions(min=["price"], max=["price"], sum=["price"], avg=["price"])
        )

        assert set(result) == {"_min", "_max", "_sum", "_avg"}
        assert float(result["_min"]["price"]) == 40000
        assert float(result["_max"]["price"]) == 300000
        assert float(result["_sum"]["price"]) == 740000
        assert float(result["_avg"]["price"]) == pytest.approx(148000)

    @pytest.mark.asyncio
    async def test_count_of_field_skips_nulls(self, catalog: Catalog, shop) -> None:
        """Should count only non-null values of a field."""
        result = await catalog.products.aggregate(AggregateOptions(count=["_all", "discount"]))
        assert result == {"_count": {"_all": 5, "discount": 2}}

    @pytest.mark.asyncio
    async def test_avg_over_nothing_is_none(self, catalog: Catalog, shop) -> None:
        """Should return None, not zero, when no rows match."""
        result = await catalog.products.aggregate(
            AggregateOptions(
                where={"price": NumberFilter(gt=1_000_000)},
                count=True,
                avg=["price"],
                sum=["price"],
            )
        )
        assert result == {"_count": {"_all": 0}, "_avg": {"price": None}, "_sum": {"price": None}}

    @pytest.mark.asyncio
    async def test_window(self, catalog: Catalog, shop) -> None:
        """Should aggregate over the ordered, paginated window."""
        result = await catalog.products.aggregate(
            AggregateOptions(order_by=[OrderBy("price")], take=2, sum=["price"])
        )
        assert float(result["_sum"]["price"]) == 90000

    @pytest.mark.asyncio
    async def test_window_from_the_end(self, catalog: Catalog, shop) -> None:
        """Should aggregate the last rows for a negative take."""
        result = await catalog.products.aggregate(
            AggregateOptions(order_by=[OrderBy("price")], take=-2, count=True, sum=["price"])
        )
        assert result["_count"] == {"_all": 2}
        assert float(result["_sum"]["price"]) == 500000

        result = await catalog.products.aggregate(AggregateOptions(take=2, skip=1, count=True))
        assert result == {"_count": {"_all": 2}}

    @pytest.mark.asyncio
    async def test_negative_skip(self, catalog: Catalog) -> None:
        """Should refuse a negative skip."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.aggregate(AggregateOptions(count=True, skip=-1))

    @pytest.mark.asyncio
    async def test_sum_needs_numeric_field(self, catalog: Catalog) -> None:
        """Should refuse summing text."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.aggregate(AggregateOptions(sum=["name"]))

    @pytest.mark.asyncio
    async def test_nothing_requested(self, catalog: Catalog) -> None:
        """Should refuse an aggregate without any statistic."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.aggregate(AggregateOptions())


class TestGroupBy:
    """Tests for group_by."""

    @pytest.mark.asyncio
    async def test_products_per_merchant(self, catalog: Catalog, user: User) -> None:
        """Should return one row per merchant with its product count."""
        small = await catalog.merchants.create({"user_id": user.id, "name": "Kecil"})
        large = await catalog.merchants.create({"user_id": user.id, "name": "Besar"})
        rows = [{"merchant_id": small.id, "name": f"S{i}", "price": 1000} for i in range(3)]
        rows += [{"merchant_id": large.id, "name": f"L{i}", "price": 2000} for i in range(5)]
        await catalog.products.create_many(rows)

        groups = await catalog.products.group_by(GroupByOptions(by=["merchant_id"], count=True))

        counts = {group["merchant_id"]: group["_count"]["_all"] for group in groups}
        assert counts == {small.id: 3, large.id: 5}

    @pytest.mark.asyncio
    async def test_having_and_aggregate_order(self, catalog: Catalog, shop) -> None:
        """Should filter groups and sort them by an aggregate."""
        groups = await catalog.products.group_by(
            GroupByOptions(
                by=["merchant_id"],
                having={"_count": NumberFilter(gte=2)},
                order_by=[OrderBy("price", SortOrder.DESC, aggregate="_sum")],
                count=True,
                sum=["price"],
            )
        )

        assert [g["merchant_id"] for g in groups] == [
            shop.merchants["A"].id,
            shop.merchants["B"].id,
        ]
        assert float(groups[0]["_sum"]["price"]) == 500000

        groups = await catalog.products.group_by(
            GroupByOptions(by=["merchant_id"], having={"_count": NumberFilter(gt=2)}, count=True)
        )
        assert [g["merchant_id"] for g in groups] == [shop.merchants["A"].id]

    @pytest.mark.asyncio
    async def test_having_on_grouped_field_aggregate(self, catalog: Catalog, shop) -> None:
        """Should accept aggregates of grouping fields in having."""
        groups = await catalog.products.group_by(
            GroupByOptions(
                by=["category_id"],
                having={"category_id": {"_count": NumberFilter(gte=2)}},
                count=True,
            )
        )
        assert len(groups) == 1
        assert groups[0]["_count"]["_all"] == 2

    @pytest.mark.asyncio
    async def test_null_group_avg(self, catalog: Catalog, shop) -> None:
        """Should return None for averages of all-null groups."""
        groups = await catalog.products.group_by(
            GroupByOptions(
                by=["merchant_id"],
                where={"discount": None},
                avg=["discount"],
                order_by=[OrderBy("merchant_id")],
            )
        )
        assert [g["_avg"]["discount"] for g in groups] == [None, None]

    @pytest.mark.asyncio
    async def test_empty_by(self, catalog: Catalog) -> None:
        """Should refuse grouping by nothing."""
        with pytest.raises(InvalidGroupByError, match="by must not be empty"):
            await catalog.products.group_by(GroupByOptions(by=[], count=True))

    @pytest.mark.asyncio
    async def test_order_outside_by_with_take(self, catalog: Catalog) -> None:
        """Should refuse ordering by fields outside by when paginating."""
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], order_by=[OrderBy("price")], take=1)
            )

    @pytest.mark.asyncio
    async def test_having_outside_by(self, catalog: Catalog) -> None:
        """Should refuse having on fields outside by."""
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], having={"price": NumberFilter(gt=0)})
            )

    @pytest.mark.asyncio
    async def test_aggregate_order_on_unknown_field(self, catalog: Catalog) -> None:
        """Should refuse ordering by an aggregate of an unknown field."""
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], order_by=[OrderBy("bogus", aggregate="_avg")])
            )
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], order_by=[OrderBy("price", aggregate="_median")])
            )
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], order_by=[OrderBy("name", aggregate="_sum")])
            )

    @pytest.mark.asyncio
    async def test_count_all_ordering(self, catalog: Catalog, shop) -> None:
        """Should order groups by their row count."""
        groups = await catalog.products.group_by(
            GroupByOptions(
                by=["merchant_id"],
                order_by=[OrderBy("_all", aggregate="_count")],
                count=True,
            )
        )
        assert [g["_count"]["_all"] for g in groups] == [2, 3]

    @pytest.mark.asyncio
    async def test_negative_pagination(self, catalog: Catalog) -> None:
        """Should refuse negative take and skip on groups."""
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(GroupByOptions(by=["merchant_id"], take=-1))
        with pytest.raises(InvalidGroupByError):
            await catalog.products.group_by(GroupByOptions(by=["merchant_id"], skip=-2))

    @pytest.mark.asyncio
    async def test_having_combinator_needs_mappings(self, catalog: Catalog) -> None:
        """Should refuse a bare string under AND, OR or NOT."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.group_by(
                GroupByOptions(by=["merchant_id"], having={"OR": "merchant_id"}, count=True)
            )
