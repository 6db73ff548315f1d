r"""backend\app\seed.py

Command line entrypoint that seeds the catalog from the market dataset::

    python -m backend.app.seed Dataset_CSV_Files/demand_forecasting_data.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .core.config import get_settings
from .core.database import Database
from .core.errors import CatalogUnavailable
from .services.catalog_service import CatalogService
from .services.seeding import seed_catalog

LOGGER = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed products and cities from the market dataset.")
    parser.add_argument("dataset", help="CSV (or sibling .parquet) with product_id, product, category, city")
    parser.add_argument("--db-url", default=None, help="Database URL (defaults to DB_URL)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    database = Database(args.db_url or get_settings().db_url)
    try:
        database.create_all()
        counts = seed_catalog(CatalogService(database), args.dataset)
    except (FileNotFoundError, ValueError, CatalogUnavailable) as exc:
        LOGGER.error("Seeding failed: %s", exc)
        return 1
    finally:
        database.dispose()

    print(
        f"Products: {counts['products_inserted']} inserted of {counts['products_found']} found; "
        f"cities: {counts['cities_inserted']} inserted of {counts['cities_found']} found"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
