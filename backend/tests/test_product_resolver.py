from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Iterable

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.core.database import Database
from backend.app.core.errors import CatalogUnavailable
from backend.app.models.schemas import ProductRecord, ProductReference
from backend.app.services.catalog_service import CatalogService
from backend.app.services.product_resolver import ProductResolver

CATALOG = [
    ProductRecord(product_id="P1", product_name="Tomato", category="Vegetables", current_price=40.0),
    ProductRecord(product_id="P2", product_name="Onion", category="Vegetables", stock_level=120.0),
    ProductRecord(product_id="P3", product_name="Banana", category="Fruits"),
]


class _StubCatalog:
    def __init__(self, products: Iterable[ProductRecord]) -> None:
        self.products = {product.product_id: product for product in products}
        self.name_lookups: list[list[str]] = []

    def find_by_ids(self, product_ids) -> Dict[str, ProductRecord]:
        return {pid: self.products[pid] for pid in product_ids if pid in self.products}

    def find_by_names(self, names) -> Dict[str, ProductRecord]:
        self.name_lookups.append(list(names))
        index = {p.product_name.lower(): p for p in self.products.values()}
        keys = [name.strip().lower() for name in names]
        return {key: index[key] for key in keys if key in index}


class _BrokenCatalog:
    def find_by_ids(self, product_ids):
        raise CatalogUnavailable("Product catalog is unavailable.")

    def find_by_names(self, names):
        raise CatalogUnavailable("Product catalog is unavailable.")


def _refs(*items) -> list[ProductReference]:
    return [ProductReference.model_validate(item) for item in items]


def test_order_is_preserved_and_unknown_entries_dropped() -> None:
    resolver = ProductResolver(_StubCatalog(CATALOG))

    resolved = resolver.resolve(
        _refs({"product_name": "onion"}, "Durian", {"product_id": "P1"}, {"product_id": "P1"})
    )

    assert [product.product_id for product in resolved] == ["P2", "P1", "P1"]
    assert resolved[0].product_name == "Onion"


def test_identifier_wins_over_name() -> None:
    resolver = ProductResolver(_StubCatalog(CATALOG))

    resolved = resolver.resolve(_refs({"product_id": "P3", "product_name": "Tomato"}))

    assert [product.product_id for product in resolved] == ["P3"]


def test_name_lookup_is_skipped_for_identifier_hits() -> None:
    catalog = _StubCatalog(CATALOG)
    ProductResolver(catalog).resolve(_refs({"product_id": "P1", "product_name": "Tomato"}))
    assert catalog.name_lookups == []


def test_bare_string_resolves_by_identifier_or_name() -> None:
    resolver = ProductResolver(_StubCatalog(CATALOG))
    resolved = resolver.resolve(_refs("P2", "banana"))
    assert [product.product_id for product in resolved] == ["P2", "P3"]


def test_supplied_values_override_catalog_values() -> None:
    resolver = ProductResolver(_StubCatalog(CATALOG))

    supplied, stored = resolver.resolve(
        _refs(
            {"product_id": "P1", "current_price": 55.0, "days_left": 2},
            {"product_id": "P1"},
        )
    )

    assert supplied.current_price == 55.0
    assert supplied.days_left == 2.0
    assert stored.current_price == 40.0
    # zero in the catalog means unknown
    assert stored.days_left is None
    assert "days_left" not in stored.to_payload()


def test_everything_unresolved_returns_empty_list() -> None:
    resolver = ProductResolver(_StubCatalog(CATALOG))
    assert resolver.resolve(_refs("Durian", {"product_id": "X-404"})) == []


def test_catalog_failure_is_not_an_empty_result() -> None:
    resolver = ProductResolver(_BrokenCatalog())
    with pytest.raises(CatalogUnavailable):
        resolver.resolve(_refs("P1"))


def test_reference_without_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProductReference.model_validate({"current_price": 10})


def test_sql_catalog_matches_names_case_insensitively(tmp_path: Path) -> None:
    database = Database(f"sqlite:///{tmp_path / 'catalog.db'}")
    database.create_all()
    catalog = CatalogService(database)
    catalog.add_products(CATALOG)

    resolved = ProductResolver(catalog).resolve(_refs({"product": "  TOMATO "}, {"product_id": "P3"}))

    assert [product.product_id for product in resolved] == ["P1", "P3"]
    assert resolved[0].category == "Vegetables"
    database.dispose()
