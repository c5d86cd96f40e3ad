"""Shared fixtures for catalog tests.

Every test gets its own file-backed SQLite database.
"""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from storefront.catalog import Catalog, Category, Colour, Merchant, Product, Size, User
from storefront.infrastructure.database import create_engine, create_tables


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create an engine on a fresh database with all tables."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def catalog(engine: AsyncEngine) -> Catalog:
    """Create a catalog on the test database."""
    return Catalog.from_engine(engine)


@pytest_asyncio.fixture
async def user(catalog: Catalog) -> User:
    """Create a user."""
    return await catalog.users.create(
        {"username": "alice", "fullname": "Alice Wijaya", "email": "alice@example.com"}
    )


@pytest_asyncio.fixture
async def merchant(catalog: Catalog, user: User) -> Merchant:
    """Create a merchant owned by ``user``."""
    return await catalog.merchants.create({"user_id": user.id, "name": "Toko Alice"})


@pytest_asyncio.fixture
async def category(catalog: Catalog) -> Category:
    """Create a category."""
    return await catalog.categories.create({"name": "Pakaian", "type": "Kaos"})


@pytest_asyncio.fixture
async def colour(catalog: Catalog) -> Colour:
    """Create a colour."""
    return await catalog.colours.create({"name": "Hitam", "hex": "#000000"})


@pytest_asyncio.fixture
async def size(catalog: Catalog) -> Size:
    """Create a size."""
    return await catalog.sizes.create({"name": "M", "length": 65, "height": 45, "width": 35})


@pytest_asyncio.fixture
async def product(catalog: Catalog, merchant: Merchant, category: Category) -> Product:
    """Create a product in ``category``."""
    return await catalog.products.create(
        {
            "merchant_id": merchant.id,
            "category_id": category.id,
            "name": "Kaos Polos",
            "price": 75000,
        }
    )
