from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.api.v1 import products
from backend.app.core.database import Database
from backend.app.main import app
from backend.app.models.schemas import ProductRecord
from backend.app.services.catalog_service import CatalogService

client = TestClient(app)


def _install(monkeypatch, tmp_path: Path) -> CatalogService:
    database = Database(f"sqlite:///{tmp_path / 'catalog.db'}")
    database.create_all()
    catalog = CatalogService(database)
    catalog.add_products(
        [
            ProductRecord(product_id="P1", product_name="Tomato", category="Vegetables"),
            ProductRecord(product_id="P2", product_name="Cherry Tomato", category="Vegetables"),
            ProductRecord(product_id="P3", product_name="Banana", category="Fruits"),
        ]
    )
    catalog.add_cities(["Pune", "Delhi", "Pune"])
    monkeypatch.setattr(products, "_catalog_service", catalog)
    return catalog


def test_list_products_with_search(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, tmp_path)

    response = client.get("/api/v1/products", params={"search": "tomato"})

    assert response.status_code == 200
    payload = response.json()
    assert [item["product_id"] for item in payload["data"]] == ["P2", "P1"]
    assert payload["pagination"]["total_records"] == 2


def test_list_products_by_category(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, tmp_path)

    response = client.get("/api/v1/products", params={"category": "Fruits"})

    assert [item["product_name"] for item in response.json()["data"]] == ["Banana"]


def test_cities_are_listed_once(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, tmp_path)

    response = client.get("/api/v1/products/cities")

    assert response.status_code == 200
    assert response.json()["data"] == ["Delhi", "Pune"]


def test_get_product(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, tmp_path)

    found = client.get("/api/v1/products/P3")
    missing = client.get("/api/v1/products/P404")

    assert found.status_code == 200
    assert found.json()["data"]["category"] == "Fruits"
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "not_found"
