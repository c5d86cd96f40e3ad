"""Per-entity stores and the catalog facade.

Example usage:
    catalog = Catalog.from_engine(engine)

    async with catalog.transaction() as tx:
        user = await catalog.users.create({"username": "alice", "fullname": "Alice"}, tx=tx)
        await catalog.merchants.create({"user_id": user.id, "name": "Alice's"}, tx=tx)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from storefront.catalog.models import Category, Colour, Merchant, Product, Size, User, Variant
from storefront.catalog.schemas import (
    CategoryCreate,
    CategoryUpdate,
    ColourCreate,
    ColourUpdate,
    MerchantCreate,
    MerchantUpdate,
    ProductCreate,
    ProductUpdate,
    SizeCreate,
    SizeUpdate,
    UserCreate,
    UserUpdate,
    VariantCreate,
    VariantUpdate,
)
from storefront.catalog.store import EntityStore
from storefront.catalog.transaction import TransactionOptions, UnitOfWork, open_transaction
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import create_session_factory


class UserStore(EntityStore[User]):
    model = User
    create_schema = UserCreate
    update_schema = UserUpdate
    unique_fields = ("id", "username", "email")


class MerchantStore(EntityStore[Merchant]):
    model = Merchant
    create_schema = MerchantCreate
    update_schema = MerchantUpdate


class CategoryStore(EntityStore[Category]):
    model = Category
    create_schema = CategoryCreate
    update_schema = CategoryUpdate


class ColourStore(EntityStore[Colour]):
    model = Colour
    create_schema = ColourCreate
    update_schema = ColourUpdate


class SizeStore(EntityStore[Size]):
    model = Size
    create_schema = SizeCreate
    update_schema = SizeUpdate


class ProductStore(EntityStore[Product]):
    model = Product
    create_schema = ProductCreate
    update_schema = ProductUpdate


class VariantStore(EntityStore[Variant]):
    model = Variant
    create_schema = VariantCreate
    update_schema = VariantUpdate
    unique_fields = ("id", "sku")


class Catalog:
    """Entry point bundling one store per entity over a shared session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize catalog.

        Args:
            session_factory: Factory producing sessions on the catalog database.
        """
        self.session_factory = session_factory
        self.users = UserStore(session_factory)
        self.merchants = MerchantStore(session_factory)
        self.categories = CategoryStore(session_factory)
        self.colours = ColourStore(session_factory)
        self.sizes = SizeStore(session_factory)
        self.products = ProductStore(session_factory)
        self.variants = VariantStore(session_factory)

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "Catalog":
        """Create a catalog on an already-built engine."""
        return cls(create_session_factory(engine))

    @asynccontextmanager
    async def transaction(
        self,
        options: TransactionOptions | None = None,
    ) -> AsyncIterator[UnitOfWork]:
        """Open a unit of work.

        Args:
            options: Isolation and limits; defaults come from settings.

        Yields:
            Unit of work to pass as ``tx=`` into store operations.
        """
        if options is None:
            options = TransactionOptions(
                max_wait=settings.transaction_max_wait,
                timeout=settings.transaction_timeout,
            )
        async with open_transaction(self.session_factory, options) as unit:
            yield unit
