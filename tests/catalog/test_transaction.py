"""Tests for units of work and connection failures."""

import asyncio
from pathlib import Path

import pytest

from storefront.catalog import Catalog, IsolationLevel, TransactionOptions, User
from storefront.domain.exceptions import (
    ConnectionFailureError,
    ConstraintViolationError,
    TransactionClosedError,
    TransactionTimeoutError,
)
from storefront.infrastructure.database import create_engine


class TestTransaction:
    """Tests for Catalog.transaction."""

    @pytest.mark.asyncio
    async def test_commit_makes_writes_visible(self, catalog: Catalog) -> None:
        """Should persist every write of the scope on exit."""
        async with catalog.transaction() as tx:
            user = await catalog.users.create({"username": "dewi", "fullname": "Dewi"}, tx=tx)
            await catalog.merchants.create({"user_id": user.id, "name": "Toko Dewi"}, tx=tx)

        assert await catalog.users.count() == 1
        assert await catalog.merchants.count() == 1

    @pytest.mark.asyncio
    async def test_read_your_own_writes_but_isolated(self, catalog: Catalog) -> None:
        """Should see uncommitted writes inside and hide them outside."""
        async with catalog.transaction() as tx:
            await catalog.users.create({"username": "eka", "fullname": "Eka"}, tx=tx)

            inside = await catalog.users.find_unique({"username": "eka"}, tx=tx)
            outside = await catalog.users.find_unique({"username": "eka"})

            assert inside is not None
            assert outside is None

        assert await catalog.users.find_unique({"username": "eka"}) is not None

    @pytest.mark.asyncio
    async def test_error_rolls_back_everything(self, catalog: Catalog, user: User) -> None:
        """Should discard all writes when the scope raises."""
        with pytest.raises(ConstraintViolationError):
            async with catalog.transaction() as tx:
                await catalog.users.create({"username": "fajar", "fullname": "Fajar"}, tx=tx)
                await catalog.users.create({"username": "alice", "fullname": "Dup"}, tx=tx)

        assert await catalog.users.find_unique({"username": "fajar"}) is None

    @pytest.mark.asyncio
    async def test_failed_write_leaves_scope_usable(self, catalog: Catalog, user: User) -> None:
        """Should keep earlier writes when a caught failure is recovered."""
        async with catalog.transaction() as tx:
            await catalog.users.create({"username": "gita", "fullname": "Gita"}, tx=tx)
            with pytest.raises(ConstraintViolationError):
                await catalog.users.create({"username": "alice", "fullname": "Dup"}, tx=tx)
            await catalog.users.create({"username": "hadi", "fullname": "Hadi"}, tx=tx)

        assert await catalog.users.count() == 3

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, catalog: Catalog) -> None:
        """Should abort a scope that runs past its timeout."""
        with pytest.raises(TransactionTimeoutError) as exc_info:
            async with catalog.transaction(TransactionOptions(timeout=0.2)) as tx:
                await catalog.users.create({"username": "indra", "fullname": "Indra"}, tx=tx)
                await asyncio.sleep(1)

        assert exc_info.value.details["phase"] == "timeout"
        assert await catalog.users.count() == 0

    @pytest.mark.asyncio
    async def test_closed_unit_of_work(self, catalog: Catalog) -> None:
        """Should refuse operations after the scope ended."""
        async with catalog.transaction() as tx:
            pass

        assert tx.closed
        with pytest.raises(TransactionClosedError):
            await catalog.users.create({"username": "joko", "fullname": "Joko"}, tx=tx)

    @pytest.mark.asyncio
    async def test_isolation_level_option(self, catalog: Catalog) -> None:
        """Should accept an explicit isolation level."""
        options = TransactionOptions(isolation_level=IsolationLevel.SERIALIZABLE)
        async with catalog.transaction(options) as tx:
            await catalog.colours.create({"name": "Ungu"}, tx=tx)

        assert await catalog.colours.count() == 1

    def test_default_options(self) -> None:
        """Should default to 2s max wait and 5s timeout."""
        options = TransactionOptions()
        assert options.max_wait == 2.0
        assert options.timeout == 5.0
        assert options.isolation_level is None


class TestConnectionFailure:
    """Tests for an unreachable database."""

    @pytest.fixture
    def unreachable(self, tmp_path: Path) -> Catalog:
        """Create a catalog whose database file cannot be opened."""
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'catalog.db'}")
        return Catalog.from_engine(engine)

    @pytest.mark.asyncio
    async def test_store_operation(self, unreachable: Catalog) -> None:
        """Should raise ConnectionFailure from a store operation."""
        with pytest.raises(ConnectionFailureError):
            await unreachable.users.count()

    @pytest.mark.asyncio
    async def test_open_transaction(self, unreachable: Catalog) -> None:
        """Should raise ConnectionFailure when opening a unit of work."""
        with pytest.raises(ConnectionFailureError):
            async with unreachable.transaction():
                pass
