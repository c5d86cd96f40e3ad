#!/usr/bin/env python3
"""Seed catalog reference data script.

Creates the catalog tables if needed and loads the default categories,
colours and sizes.

Usage:
    python scripts/seed_catalog.py
    python scripts/seed_catalog.py --database-url sqlite+aiosqlite:///./catalog.db
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.catalog import Catalog, seed_reference_data
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import create_engine, create_tables, get_engine
from storefront.infrastructure.logging import configure_logging


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Seed catalog reference data",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: DATABASE_URL from settings)",
    )
    parser.add_argument(
        "--no-create-tables",
        action="store_true",
        help="Don't create missing tables before seeding",
    )

    args = parser.parse_args()
    configure_logging(settings)

    print("=" * 60)
    print("Storefront Catalog Seeder")
    print("=" * 60)

    if args.database_url:
        engine = create_engine(args.database_url, echo=settings.debug)
    else:
        engine = get_engine()
    try:
        if not args.no_create_tables:
            print("Creating database tables...")
            await create_tables(engine)
            print("Tables ready.")
            print()

        result = await seed_reference_data(Catalog.from_engine(engine))
        print(f"  ✓ Categories: {result['categories']}")
        print(f"  ✓ Colours: {result['colours']}")
        print(f"  ✓ Sizes: {result['sizes']}")
    finally:
        await engine.dispose()

    print("=" * 60)
    print("Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
