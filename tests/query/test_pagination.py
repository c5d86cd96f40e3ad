"""Tests for ordering, offset pagination and cursor pagination."""

import pytest

from storefront.catalog import Catalog
from storefront.domain.exceptions import InvalidQueryError
from storefront.query import FindManyOptions, NullsOrder, OrderBy, SortOrder

BY_PRICE = [OrderBy("price")]


class TestOrdering:
    """Tests for order_by terms."""

    @pytest.mark.asyncio
    async def test_order_by_price(self, catalog: Catalog, keys) -> None:
        """Should sort ascending and descending."""
        rows = await catalog.products.find_many(FindManyOptions(order_by=BY_PRICE))
        assert keys(rows) == ["B2", "A1", "A2", "B1", "A3"]

        rows = await catalog.products.find_many(
            FindManyOptions(order_by=[OrderBy("price", SortOrder.DESC)])
        )
        assert keys(rows) == ["A3", "B1", "A2", "A1", "B2"]

    @pytest.mark.asyncio
    async def test_nulls_default_last_ascending(self, catalog: Catalog, keys) -> None:
        """Should put nulls last when ascending unless asked otherwise."""
        order = [OrderBy("discount"), OrderBy("price")]
        rows = await catalog.products.find_many(FindManyOptions(order_by=order))
        assert keys(rows) == ["A1", "B1", "B2", "A2", "A3"]

        order = [OrderBy("discount", nulls=NullsOrder.FIRST), OrderBy("price")]
        rows = await catalog.products.find_many(FindManyOptions(order_by=order))
        assert keys(rows) == ["B2", "A2", "A3", "A1", "B1"]

    @pytest.mark.asyncio
    async def test_order_by_related_field(self, catalog: Catalog, keys) -> None:
        """Should sort by a field of a to-one relation."""
        order = [OrderBy("merchant.name", SortOrder.DESC), OrderBy("price")]
        rows = await catalog.products.find_many(FindManyOptions(order_by=order))
        assert keys(rows) == ["B2", "B1", "A1", "A2", "A3"]

    @pytest.mark.asyncio
    async def test_order_by_relation_count(self, catalog: Catalog, shop) -> None:
        """Should sort merchants by how many products they list."""
        merchants = await catalog.merchants.find_many(
            FindManyOptions(order_by=[OrderBy.count("products", SortOrder.DESC)])
        )
        assert [m.name for m in merchants] == ["Toko A", "Toko B"]

        merchants = await catalog.merchants.find_many(
            FindManyOptions(order_by=[OrderBy.count("products")])
        )
        assert [m.name for m in merchants] == ["Toko B", "Toko A"]

    @pytest.mark.asyncio
    async def test_unknown_order_field(self, catalog: Catalog) -> None:
        """Should reject unknown ordering fields."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.find_many(FindManyOptions(order_by=[OrderBy("rating")]))


class TestOffsetPagination:
    """Tests for skip and take."""

    @pytest.mark.asyncio
    async def test_skip_and_take(self, catalog: Catalog, keys) -> None:
        """Should return the requested window."""
        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, skip=1, take=2)
        )
        assert keys(rows) == ["A1", "A2"]

    @pytest.mark.asyncio
    async def test_negative_take_reads_from_the_end(self, catalog: Catalog, keys) -> None:
        """Should return the last rows, still in order."""
        rows = await catalog.products.find_many(FindManyOptions(order_by=BY_PRICE, take=-2))
        assert keys(rows) == ["B1", "A3"]

    @pytest.mark.asyncio
    async def test_negative_skip_rejected(self, catalog: Catalog) -> None:
        """Should reject a negative skip."""
        with pytest.raises(InvalidQueryError):
            await catalog.products.find_many(FindManyOptions(skip=-1))


class TestCursorPagination:
    """Tests for cursor pages."""

    @pytest.mark.asyncio
    async def test_forward_from_cursor(self, catalog: Catalog, shop, keys) -> None:
        """Should start at the cursor row, inclusive."""
        cursor = shop.products["A2"].id
        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, cursor=cursor, take=2)
        )
        assert keys(rows) == ["A2", "B1"]

        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, cursor=cursor, skip=1, take=2)
        )
        assert keys(rows) == ["B1", "A3"]

    @pytest.mark.asyncio
    async def test_backward_from_cursor(self, catalog: Catalog, shop, keys) -> None:
        """Should read rows before the cursor and return them in order."""
        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, cursor=shop.products["A2"].id, take=-2)
        )
        assert keys(rows) == ["A1", "A2"]

        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, cursor=shop.products["A2"].id, skip=1, take=-5)
        )
        assert keys(rows) == ["B2", "A1"]

    @pytest.mark.asyncio
    async def test_cursor_with_nulls(self, catalog: Catalog, shop, keys) -> None:
        """Should page across null values without losing rows."""
        order = [OrderBy("discount")]
        first = await catalog.products.find_many(FindManyOptions(order_by=order, take=3))
        rest = await catalog.products.find_many(
            FindManyOptions(order_by=order, cursor=first[-1].id, skip=1, take=10)
        )
        seen = keys(first) + keys(rest)
        assert sorted(seen) == ["A1", "A2", "A3", "B1", "B2"]
        assert seen[:2] == ["A1", "B1"]

    @pytest.mark.asyncio
    async def test_same_cursor_same_page(self, catalog: Catalog, shop, keys) -> None:
        """Should be restartable from a cursor."""
        options = FindManyOptions(order_by=BY_PRICE, cursor=shop.products["A1"].id, take=3)
        first = await catalog.products.find_many(options)
        second = await catalog.products.find_many(options)
        assert keys(first) == keys(second)

    @pytest.mark.asyncio
    async def test_unknown_cursor_returns_nothing(self, catalog: Catalog, shop) -> None:
        """Should return an empty page for a cursor that matches no row."""
        rows = await catalog.products.find_many(
            FindManyOptions(order_by=BY_PRICE, cursor="missing", take=2)
        )
        assert rows == []

    @pytest.mark.asyncio
    async def test_pages_over_ties_cover_every_row(self, catalog: Catalog) -> None:
        """Should visit each row once when ordering values repeat."""
        await catalog.colours.create_many({"name": name} for name in ["Merah"] * 4 + ["Biru"] * 3)
        order = [OrderBy("name")]

        seen: list[str] = []
        page = await catalog.colours.find_many(FindManyOptions(order_by=order, take=2))
        while page:
            seen.extend(colour.id for colour in page)
            page = await catalog.colours.find_many(
                FindManyOptions(order_by=order, cursor=page[-1].id, skip=1, take=2)
            )

        assert len(seen) == 7
        assert len(set(seen)) == 7
