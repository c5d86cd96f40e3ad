"""Fixture catalog shared by query tests.

Two merchants with five products:

    Toko A (alice): Kaos Merah 50000 (discount 5000), Kemeja Putih 150000,
                    Jaket Hitam 300000 (no category, no variants)
    Toko B (budi):  Celana Jeans 200000 (discount 10000), kaos polos 40000
"""

from collections.abc import Callable
from dataclasses import dataclass

import pytest
import pytest_asyncio

from storefront.catalog import Catalog, Merchant, Product


@dataclass
class Shop:
    """Rows created for query tests, keyed by short names."""

    merchants: dict[str, Merchant]
    products: dict[str, Product]


@pytest_asyncio.fixture
async def shop(catalog: Catalog) -> Shop:
    """Create the fixture catalog."""
    alice = await catalog.users.create({"username": "alice", "fullname": "Alice"})
    budi = await catalog.users.create({"username": "budi", "fullname": "Budi"})
    toko_a = await catalog.merchants.create({"user_id": alice.id, "name": "Toko A"})
    toko_b = await catalog.merchants.create({"user_id": budi.id, "name": "Toko B"})

    kaos = await catalog.categories.create({"name": "Pakaian", "type": "Kaos"})
    kemeja = await catalog.categories.create({"name": "Pakaian", "type": "Kemeja"})
    celana = await catalog.categories.create({"name": "Pakaian", "type": "Celana"})

    async def product(merchant: Merchant, name: str, price: int, **extra) -> Product:
        return await catalog.products.create(
            {"merchant_id": merchant.id, "name": name, "price": price, **extra}
        )

    products = {
        "A1": await product(toko_a, "Kaos Merah", 50000, discount=5000, category_id=kaos.id),
        "A2": await product(toko_a, "Kemeja Putih", 150000, category_id=kemeja.id),
        "A3": await product(toko_a, "Jaket Hitam", 300000),
        "B1": await product(toko_b, "Celana Jeans", 200000, discount=10000, category_id=celana.id),
        "B2": await product(toko_b, "kaos polos", 40000, category_id=kaos.id),
    }

    await catalog.variants.create_many(
        [
            {"product_id": products["A1"].id, "sku": "A1-S", "stock": 5},
            {"product_id": products["A1"].id, "sku": "A1-M", "stock": 0},
            {"product_id": products["A2"].id, "sku": "A2-M", "stock": 3},
            {"product_id": products["B1"].id, "sku": "B1-L", "stock": 7},
            {"product_id": products["B2"].id, "sku": "B2-S", "stock": 0},
        ]
    )
    return Shop(merchants={"A": toko_a, "B": toko_b}, products=products)


@pytest.fixture
def keys(shop: Shop) -> Callable[[list[Product]], list[str]]:
    """Map product rows back to their fixture keys, preserving order."""
    by_id = {product.id: key for key, product in shop.products.items()}

    def lookup(rows: list[Product]) -> list[str]:
        return [by_id[row.id] for row in rows]

    return lookup
