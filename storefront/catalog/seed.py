"""Reference data for categories, colours and sizes.

Each table is seeded only while it is empty, so running the seeder
again is harmless.
"""

from typing import Any

import structlog

from storefront.catalog.store import EntityStore
from storefront.catalog.stores import Catalog

logger = structlog.get_logger()

CATEGORIES: list[dict[str, Any]] = [
    {"name": "Pakaian", "type": "Baju"},
    {"name": "Pakaian", "type": "Celana"},
    {"name": "Pakaian", "type": "Jaket"},
    {"name": "Pakaian", "type": "Kemeja"},
    {"name": "Pakaian", "type": "Kaos"},
    {"name": "Pakaian", "type": "Dress"},
    {"name": "Pakaian", "type": "Rok"},
    {"name": "Pakaian", "type": "Sweater"},
    {"name": "Pakaian", "type": "Hoodie"},
    {"name": "Pakaian", "type": "Jas"},
    {"name": "Elektronik", "type": "Gadget"},
    {"name": "Elektronik", "type": "Laptop"},
    {"name": "Elektronik", "type": "Komputer"},
    {"name": "Elektronik", "type": "TV"},
    {"name": "Elektronik", "type": "Speaker"},
    {"name": "Elektronik", "type": "Headphone"},
    {"name": "Elektronik", "type": "Kamera"},
    {"name": "Elektronik", "type": "Drone"},
    {"name": "Olahraga", "type": "Sepak Bola"},
    {"name": "Olahraga", "type": "Basket"},
    {"name": "Olahraga", "type": "Tenis"},
    {"name": "Olahraga", "type": "Renang"},
    {"name": "Olahraga", "type": "Yoga"},
    {"name": "Olahraga", "type": "Bulu Tangkis"},
    {"name": "Otomotif", "type": "Mobil"},
    {"name": "Otomotif", "type": "Motor"},
    {"name": "Otomotif", "type": "Sepeda"},
]

COLOURS: list[dict[str, Any]] = [
    {"name": "Merah", "hex": "#FF0000"},
    {"name": "Biru", "hex": "#0000FF"},
    {"name": "Hitam", "hex": "#000000"},
    {"name": "Putih", "hex": "#FFFFFF"},
    {"name": "Hijau", "hex": "#00FF00"},
    {"name": "Kuning", "hex": "#FFFF00"},
    {"name": "Ungu", "hex": "#800080"},
    {"name": "Oranye", "hex": "#FFA500"},
    {"name": "Merah Muda", "hex": "#FFC0CB"},
    {"name": "Coklat", "hex": "#A52A2A"},
    {"name": "Abu-abu", "hex": "#808080"},
    {"name": "Cyan", "hex": "#00FFFF"},
    {"name": "Magenta", "hex": "#FF00FF"},
    {"name": "Emas", "hex": "#FFD700"},
    {"name": "Perak", "hex": "#C0C0C0"},
    {"name": "Marun", "hex": "#800000"},
    {"name": "Navy", "hex": "#000080"},
    {"name": "Hijau Tua", "hex": "#006400"},
    {"name": "Turquoise", "hex": "#40E0D0"},
    {"name": "Lavender", "hex": "#E6E6FA"},
]

SIZES: list[dict[str, Any]] = [
    {"name": "S", "length": 60, "height": 40, "width": 30},
    {"name": "M", "length": 65, "height": 45, "width": 35},
    {"name": "L", "length": 70, "height": 50, "width": 40},
    {"name": "XL", "length": 75, "height": 55, "width": 45},
]


async def _seed_table(store: EntityStore, rows: list[dict[str, Any]]) -> int:
    if await store.count() > 0:
        logger.info("Reference table already seeded", entity=store.entity)
        return 0
    return await store.create_many(rows)


async def seed_reference_data(catalog: Catalog) -> dict[str, int]:
    """Load the default categories, colours and sizes.

    Args:
        catalog: Catalog to seed.

    Returns:
        Rows created per table.
    """
    result = {
        "categories": await _seed_table(catalog.categories, CATEGORIES),
        "colours": await _seed_table(catalog.colours, COLOURS),
        "sizes": await _seed_table(catalog.sizes, SIZES),
    }
    logger.info("Reference data seeded", **result)
    return result
