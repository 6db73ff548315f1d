"""Seed the catalog (products and cities) from the market dataset."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from ..models.schemas import ProductRecord
from .catalog_service import CatalogService
from .io_utils import load_market_dataset

LOGGER = logging.getLogger(__name__)

PRODUCT_COLUMNS = ["product_id", "product", "category"]
CITY_COLUMN = "city"


def unique_products(frame: pd.DataFrame) -> List[ProductRecord]:
    """First occurrence of every non-empty ``product_id``, in file order."""

    products = frame[PRODUCT_COLUMNS].copy()
    products = products[products["product_id"].astype(str).str.len() > 0]
    products = products.drop_duplicates(subset="product_id", keep="first")
    return [
        ProductRecord(
            product_id=row.product_id,
            product_name=row.product or None,
            category=row.category or None,
        )
        for row in products.itertuples(index=False)
    ]


def unique_cities(frame: pd.DataFrame) -> List[str]:
    cities = frame[CITY_COLUMN].astype(str).str.strip()
    return [city for city in pd.unique(cities) if city]


def seed_catalog(catalog: CatalogService, dataset_path: str | Path) -> Dict[str, int]:
    """Insert products and cities missing from the catalog; return counts."""

    frame = load_market_dataset(dataset_path)
    counts = {"products_found": 0, "products_inserted": 0, "cities_found": 0, "cities_inserted": 0}

    if set(PRODUCT_COLUMNS).issubset(frame.columns):
        products = unique_products(frame)
        counts["products_found"] = len(products)
        counts["products_inserted"] = catalog.add_products(products)
    else:
        LOGGER.warning("Dataset %s has no product columns %s", dataset_path, PRODUCT_COLUMNS)

    if CITY_COLUMN in frame.columns:
        cities = unique_cities(frame)
        counts["cities_found"] = len(cities)
        counts["cities_inserted"] = catalog.add_cities(cities)
    else:
        LOGGER.warning("Dataset %s has no %r column", dataset_path, CITY_COLUMN)

    LOGGER.info("Seeding finished: %s", counts)
    return counts
