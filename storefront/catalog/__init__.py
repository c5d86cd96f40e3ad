"""Storefront catalog.

Data model, entity stores, unit of work and the merchant/product
workflows built on them.
"""

from storefront.catalog.models import Category, Colour, Merchant, Product, Size, User, Variant
from storefront.catalog.seed import seed_reference_data
from storefront.catalog.service import (
    CatalogService,
    PaginatedResult,
    PaginationParams,
    VariantChanges,
)
from storefront.catalog.store import EntityStore
from storefront.catalog.stores import (
    Catalog,
    CategoryStore,
    ColourStore,
    MerchantStore,
    ProductStore,
    SizeStore,
    UserStore,
    VariantStore,
)
from storefront.catalog.transaction import IsolationLevel, TransactionOptions, UnitOfWork

__all__ = [
    # Models
    "Category",
    "Colour",
    "Merchant",
    "Product",
    "Size",
    "User",
    "Variant",
    # Stores
    "Catalog",
    "CategoryStore",
    "ColourStore",
    "EntityStore",
    "MerchantStore",
    "ProductStore",
    "SizeStore",
    "UserStore",
    "VariantStore",
    # Transactions
    "IsolationLevel",
    "TransactionOptions",
    "UnitOfWork",
    # Service
    "CatalogService",
    "PaginatedResult",
    "PaginationParams",
    "VariantChanges",
    # Seeding
    "seed_reference_data",
]
