r"""backend\app\api\v1\products.py"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from ...core.database import get_database
from ...core.errors import NotFoundError
from ...services.catalog_service import CatalogService
from ...services.recommendation_store import paginate

router = APIRouter()
_catalog_service = CatalogService(get_database())


@router.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = Query(None, description="Case-insensitive name fragment"),
    limit: int = Query(100, ge=1, le=1000),
    page: int = Query(1, ge=1),
) -> Dict[str, Any]:
    products, total = _catalog_service.list_products(
        category=category, search=search, limit=limit, page=page
    )
    return {
        "success": True,
        "data": [product.model_dump() for product in products],
        "pagination": paginate(total, limit, page).model_dump(),
    }


@router.get("/products/cities")
def list_cities() -> Dict[str, Any]:
    cities = _catalog_service.list_cities()
    return {"success": True, "data": [city.name for city in cities], "total": len(cities)}


@router.get("/products/{product_id}")
def get_product(product_id: str) -> Dict[str, Any]:
    product = _catalog_service.get_product(product_id)
    if product is None:
        raise NotFoundError(f"Product '{product_id}' was not found.")
    return {"success": True, "data": product.model_dump()}
