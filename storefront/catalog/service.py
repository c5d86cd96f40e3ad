"""Catalog service for merchant and product workflows.

High-level service that combines store operations with the business
rules of the catalog: products always have at least one variant, and
``has_variant`` tracks whether more than one remains.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog

from storefront.catalog.models import Merchant, Product, User, Variant
from storefront.catalog.store import EntityStore
from storefront.catalog.stores import Catalog
from storefront.catalog.transaction import UnitOfWork
from storefront.domain.exceptions import ConstraintViolationError, InvalidQueryError, NotFoundError
from storefront.infrastructure.config import settings
from storefront.query import FindManyOptions, Include, OrderBy, QueryMode, StringFilter, Where

T = TypeVar("T")

logger = structlog.get_logger()

MAX_PAGE_SIZE = 50
DEFAULT_MERCHANT_TYPE = "Merchant"

USER_INCLUDE = {"merchants": True}
MERCHANT_INCLUDE = {"user": True, "products": True}
VARIANT_INCLUDE = {"colour": True, "size": True}
PRODUCT_INCLUDE = {
    "merchant": True,
    "category": True,
    "variants": Include(order_by=[OrderBy("created_at")], include=VARIANT_INCLUDE),
}


def default_sku(product_name: str) -> str:
    """Generate the SKU of a product's default variant, e.g. ``KAO-1F3A9C0B``."""
    return f"{product_name[:3].upper()}-{uuid4().hex[:8].upper()}"


@dataclass
class PaginationParams:
    """Pagination parameters.

    Attributes:
        page: Page number (1-indexed).
        page_size: Items per page, at most 50.
    """

    page: int = 1
    page_size: int = field(default_factory=lambda: settings.default_page_size)

    def __post_init__(self) -> None:
        if self.page < 1:
            raise InvalidQueryError("Page number must be at least 1", details={"page": self.page})
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise InvalidQueryError(
                f"Page size must be between 1 and {MAX_PAGE_SIZE}",
                details={"page_size": self.page_size},
            )

    @property
    def offset(self) -> int:
        """Calculate offset from page number."""
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        """Get limit (alias for page_size)."""
        return self.page_size


@dataclass
class PaginatedResult(Generic[T]):
    """Paginated result container.

    Attributes:
        items: List of items.
        total: Total count.
        page: Current page.
        page_size: Items per page.
    """

    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        """Calculate total pages."""
        return (self.total + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        """Check if there's a previous page."""
        return self.page > 1


@dataclass
class VariantChanges:
    """Variant edits applied together with a product update.

    Attributes:
        create: New variants (product_id is filled in).
        update: Partial updates, each carrying the variant ``id``.
        delete: Ids of variants to remove.
    """

    create: Sequence[Mapping[str, Any]] = ()
    update: Sequence[Mapping[str, Any]] = ()
    delete: Sequence[str] = ()


class CatalogService:
    """Service for catalog workflows.

    Example usage:
        service = CatalogService(Catalog.from_engine(engine))

        product = await service.create_product(
            {"merchant_id": merchant.id, "name": "Kaos Polos", "price": 75000},
            variants=[{"sku": "KAOS-M-BLK", "stock": 10}],
        )
        page = await service.search_products("kaos", PaginationParams(page=1))
    """

    def __init__(self, catalog: Catalog) -> None:
        """Initialize service with a catalog.

        Args:
            catalog: Catalog providing the entity stores.
        """
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def list_users(self, pagination: PaginationParams | None = None) -> PaginatedResult[User]:
        """List users ordered by username, with their merchants."""
        return await self._paginate(
            self.catalog.users,
            pagination,
            order_by=[OrderBy("username")],
            include=USER_INCLUDE,
        )

    async def list_merchants(
        self,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Merchant]:
        """List merchants ordered by name, with owner and products."""
        return await self._paginate(
            self.catalog.merchants,
            pagination,
            order_by=[OrderBy("name")],
            include=MERCHANT_INCLUDE,
        )

    async def list_products(
        self,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Product]:
        """List products ordered by name, with merchant, category and variants."""
        return await self._paginate(
            self.catalog.products,
            pagination,
            order_by=[OrderBy("name")],
            include=PRODUCT_INCLUDE,
        )

    async def products_by_category(
        self,
        category_id: str,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Product]:
        """List the products of one category.

        Raises:
            NotFoundError: If the category does not exist.
        """
        await self.catalog.categories.find_unique_or_raise(category_id)
        return await self._paginate(
            self.catalog.products,
            pagination,
            where={"category_id": category_id},
            order_by=[OrderBy("name")],
            include=PRODUCT_INCLUDE,
        )

    async def search_products(
        self,
        name: str,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Product]:
        """Find products whose name contains ``name``, ignoring case."""
        if not name or not name.strip():
            raise InvalidQueryError("Search term is required")
        return await self._paginate(
            self.catalog.products,
            pagination,
            where={"name": StringFilter(contains=name.strip(), mode=QueryMode.INSENSITIVE)},
            order_by=[OrderBy("name")],
            include=PRODUCT_INCLUDE,
        )

    # ------------------------------------------------------------------
    # Merchants
    # ------------------------------------------------------------------

    async def register_merchant(self, user_id: str, data: Mapping[str, Any]) -> Merchant:
        """Create a merchant owned by ``user_id``.

        A blank ``email`` defaults to the name without whitespace at
        ``mail.com`` and a blank ``type`` to ``"Merchant"``.
        """
        values = {**data, "user_id": user_id}
        name = str(values.get("name") or "")
        if not str(values.get("email") or "").strip():
            values["email"] = f"{''.join(name.lower().split())}@mail.com"
        if not str(values.get("type") or "").strip():
            values["type"] = DEFAULT_MERCHANT_TYPE
        merchant = await self.catalog.merchants.create(
            values,
            include={"user": True},
        )
        logger.info("Merchant registered", merchant_id=merchant.id, user_id=user_id)
        return merchant

    async def merchant_owned_by_user(self, merchant_id: str, user_id: str) -> Merchant | None:
        """Get the merchant if it exists and belongs to the user."""
        return await self.catalog.merchants.find_first(
            FindManyOptions(where={"id": merchant_id, "user_id": user_id}, include={"user": True})
        )

    async def product_owned_by_user(self, product_id: str, user_id: str) -> Product | None:
        """Get the product if it exists and its merchant belongs to the user."""
        return await self.catalog.products.find_first(
            FindManyOptions(
                where={"id": product_id, "merchant": {"user_id": user_id}},
                include=PRODUCT_INCLUDE,
            )
        )

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_product(self, product_id: str) -> Product | None:
        """Get a product with merchant, category and variants."""
        return await self.catalog.products.find_unique(product_id, include=PRODUCT_INCLUDE)

    async def create_product(
        self,
        data: Mapping[str, Any],
        variants: Sequence[Mapping[str, Any]] | None = None,
    ) -> Product:
        """Create a product together with its variants.

        A product created without variants gets one default variant with
        zero stock so it is always purchasable as a unit.

        Args:
            data: Product fields.
            variants: Variant fields; ``product_id`` is filled in.

        Returns:
            The created product with relations loaded.
        """
        async with self.catalog.transaction() as tx:
            product = await self.catalog.products.create(
                {**data, "has_variant": bool(variants)},
                tx=tx,
            )
            if variants:
                for variant in variants:
                    await self.catalog.variants.create({**variant, "product_id": product.id}, tx=tx)
            else:
                await self.catalog.variants.create(self._default_variant(product), tx=tx)

        logger.info("Product created", product_id=product.id, variants=len(variants or ()) or 1)
        return await self.catalog.products.find_unique_or_raise(product.id, include=PRODUCT_INCLUDE)

    async def update_product(
        self,
        product_id: str,
        data: Mapping[str, Any],
        changes: VariantChanges | None = None,
    ) -> Product:
        """Update a product and apply variant changes in one transaction.

        Afterwards ``has_variant`` is true when more than one variant
        remains; if none remain a default variant is created.

        Raises:
            NotFoundError: If the product, or a variant to update, is missing.
        """
        async with self.catalog.transaction() as tx:
            product = await self.catalog.products.update(product_id, data, tx=tx)
            if changes is not None:
                for variant in changes.create:
                    await self.catalog.variants.create({**variant, "product_id": product_id}, tx=tx)
                for variant in changes.update:
                    values = dict(variant)
                    variant_id = values.pop("id")
                    await self._variant_of(product_id, variant_id, tx)
                    await self.catalog.variants.update(variant_id, values, tx=tx)
                if changes.delete:
                    await self.catalog.variants.delete_many(
                        {"id": StringFilter(in_=list(changes.delete)), "product_id": product_id},
                        tx=tx,
                    )
            await self._sync_has_variant(product, tx)

        logger.info("Product updated", product_id=product_id)
        return await self.catalog.products.find_unique_or_raise(product_id, include=PRODUCT_INCLUDE)

    async def delete_product(self, product_id: str) -> Product:
        """Delete a product; its variants are removed with it."""
        product = await self.catalog.products.delete(product_id)
        logger.info("Product deleted", product_id=product_id)
        return product

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    async def get_product_variants(self, product_id: str) -> list[Variant]:
        """List a product's variants with colour and size.

        Raises:
            NotFoundError: If the product does not exist.
        """
        await self.catalog.products.find_unique_or_raise(product_id)
        return await self.catalog.variants.find_many(
            FindManyOptions(
                where={"product_id": product_id},
                include=VARIANT_INCLUDE,
                order_by=[OrderBy("created_at"), OrderBy("id")],
            )
        )

    async def add_product_variant(self, product_id: str, data: Mapping[str, Any]) -> Variant:
        """Add a variant to a product and refresh ``has_variant``."""
        async with self.catalog.transaction() as tx:
            product = await self.catalog.products.find_unique_or_raise(product_id, tx=tx)
            variant = await self.catalog.variants.create(
                {**data, "product_id": product_id},
                include=VARIANT_INCLUDE,
                tx=tx,
            )
            await self._sync_has_variant(product, tx)
        logger.info("Variant added", product_id=product_id, variant_id=variant.id)
        return variant

    async def update_product_variant(
        self,
        product_id: str,
        variant_id: str,
        data: Mapping[str, Any],
    ) -> Variant:
        """Update one of a product's variants.

        Raises:
            NotFoundError: If the variant does not belong to the product.
        """
        async with self.catalog.transaction() as tx:
            await self._variant_of(product_id, variant_id, tx)
            variant = await self.catalog.variants.update(
                variant_id,
                {key: value for key, value in data.items() if key != "product_id"},
                include=VARIANT_INCLUDE,
                tx=tx,
            )
        return variant

    async def delete_product_variant(self, product_id: str, variant_id: str) -> dict[str, Any]:
        """Remove one of a product's variants.

        Returns:
            Deleted variant id, remaining variant count and the new
            ``has_variant`` flag.

        Raises:
            NotFoundError: If the product is missing or the variant is not its own.
            ConstraintViolationError: If it is the product's last variant.
        """
        async with self.catalog.transaction() as tx:
            product = await self.catalog.products.find_unique_or_raise(product_id, tx=tx)
            await self._variant_of(product_id, variant_id, tx)
            remaining = await self.catalog.variants.count({"product_id": product_id}, tx=tx)
            if remaining <= 1:
                raise ConstraintViolationError(
                    "Variant",
                    "restrict",
                    "Cannot delete the last variant of a product",
                    details={"product_id": product_id, "variant_id": variant_id},
                )
            await self.catalog.variants.delete(variant_id, tx=tx)
            has_variant = await self._sync_has_variant(product, tx)

        logger.info("Variant deleted", product_id=product_id, variant_id=variant_id)
        return {
            "deleted_variant_id": variant_id,
            "remaining_variant_count": remaining - 1,
            "product_has_variant": has_variant,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _paginate(
        self,
        store: EntityStore,
        pagination: PaginationParams | None,
        *,
        where: Where | None = None,
        order_by: Sequence[OrderBy] = (),
        include: Mapping[str, Any] | None = None,
    ) -> PaginatedResult:
        pagination = pagination or PaginationParams()
        async with self.catalog.transaction() as tx:
            total = await store.count(where, tx=tx)
            items = await store.find_many(
                FindManyOptions(
                    where=where,
                    include=include,
                    order_by=[*order_by, OrderBy("id")],
                    skip=pagination.offset,
                    take=pagination.limit,
                ),
                tx=tx,
            )
        return PaginatedResult(items=items, total=total, page=pagination.page, page_size=pagination.page_size)

    async def _variant_of(self, product_id: str, variant_id: str, tx: UnitOfWork) -> Variant:
        variant = await self.catalog.variants.find_first(
            FindManyOptions(where={"id": variant_id, "product_id": product_id}),
            tx=tx,
        )
        if variant is None:
            raise NotFoundError("Variant", {"id": variant_id, "product_id": product_id})
        return variant

    async def _sync_has_variant(self, product: Product, tx: UnitOfWork) -> bool:
        remaining = await self.catalog.variants.count({"product_id": product.id}, tx=tx)
        if remaining == 0:
            await self.catalog.variants.create(self._default_variant(product), tx=tx)
        has_variant = remaining > 1
        await self.catalog.products.update(product.id, {"has_variant": has_variant}, tx=tx)
        return has_variant

    def _default_variant(self, product: Product) -> dict[str, Any]:
        return {"product_id": product.id, "sku": default_sku(product.name), "stock": 0}
