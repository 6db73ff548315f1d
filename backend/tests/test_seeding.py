from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app import seed
from backend.app.core.database import Database
from backend.app.core.errors import CatalogUnavailable
from backend.app.services.catalog_service import CatalogService
from backend.app.services.io_utils import load_market_dataset
from backend.app.services.seeding import seed_catalog, unique_products

ROWS = [
    {"product_id": "P1", "product": " Tomato ", "category": "Vegetables", "city": "Pune", "units": "12"},
    {"product_id": "P1", "product": "Tomato", "category": "Vegetables", "city": "Delhi", "units": "9"},
    {"product_id": "P2", "product": "Banana", "category": "Fruits", "city": "Pune", "units": "30"},
    {"product_id": "", "product": "Ghost", "category": "Fruits", "city": " ", "units": "0"},
]


def _write_dataset(tmp_path: Path) -> Path:
    path = tmp_path / "market.csv"
    pd.DataFrame(ROWS).to_csv(path, index=False)
    return path


def _catalog(tmp_path: Path) -> CatalogService:
    database = Database(f"sqlite:///{tmp_path / 'seed.db'}")
    database.create_all()
    return CatalogService(database)


def test_seed_inserts_unique_products_and_cities(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)

    counts = seed_catalog(catalog, _write_dataset(tmp_path))

    assert counts == {
        "products_found": 2,
        "products_inserted": 2,
        "cities_found": 2,
        "cities_inserted": 2,
    }
    tomato = catalog.get_product("P1")
    assert tomato is not None
    assert tomato.product_name == "Tomato"
    assert [city.name for city in catalog.list_cities()] == ["Delhi", "Pune"]


def test_seed_skips_existing_rows(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)
    dataset = _write_dataset(tmp_path)
    seed_catalog(catalog, dataset)

    counts = seed_catalog(catalog, dataset)

    assert counts["products_inserted"] == 0
    assert counts["cities_inserted"] == 0


def test_loader_strips_text_and_checks_columns(tmp_path: Path) -> None:
    dataset = _write_dataset(tmp_path)

    frame = load_market_dataset(dataset, columns=["product_id", "product"])

    assert list(frame.columns) == ["product_id", "product"]
    assert frame.loc[0, "product"] == "Tomato"
    with pytest.raises(ValueError):
        load_market_dataset(dataset, columns=["product_id", "price"])


def test_loader_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_market_dataset(tmp_path / "absent.csv")


def test_seed_command(tmp_path: Path, capsys) -> None:
    dataset = _write_dataset(tmp_path)
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    assert seed.main([str(dataset), "--db-url", db_url]) == 0
    assert "Products: 2 inserted of 2 found" in capsys.readouterr().out
    assert seed.main([str(tmp_path / "absent.csv"), "--db-url", db_url]) == 1


def test_parquet_nulls_are_stored_as_missing(tmp_path: Path) -> None:
    pd.DataFrame(
        {
            "product_id": ["P1", "P2"],
            "product": ["Tomato", None],
            "category": [None, "Vegetables"],
            "city": ["Pune", None],
        }
    ).to_parquet(tmp_path / "market.parquet", index=False)
    catalog = _catalog(tmp_path)

    counts = seed_catalog(catalog, tmp_path / "market.csv")

    assert counts["products_inserted"] == 2
    assert counts["cities_found"] == 1
    tomato = catalog.get_product("P1")
    unnamed = catalog.get_product("P2")
    assert tomato.product_name == "Tomato"
    assert tomato.category is None
    assert unnamed.product_name is None
    assert unnamed.category == "Vegetables"
    assert [city.name for city in catalog.list_cities()] == ["Pune"]


def test_inserts_without_schema_raise_catalog_unavailable(tmp_path: Path) -> None:
    catalog = CatalogService(Database(f"sqlite:///{tmp_path / 'empty.db'}"))

    with pytest.raises(CatalogUnavailable):
        catalog.add_products(unique_products(pd.DataFrame(ROWS)))
    with pytest.raises(CatalogUnavailable):
        catalog.add_cities(["Pune"])


def test_seed_command_reports_database_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(seed.Database, "create_all", lambda self: None)

    code = seed.main([str(_write_dataset(tmp_path)), "--db-url", f"sqlite:///{tmp_path / 'cli.db'}"])

    assert code == 1
