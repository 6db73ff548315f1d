r"""backend\app\api\v1\pricing.py

Routes for dynamic price recommendations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Query, Response

from ...core.errors import NotFoundError
from ...core.observability import MODEL_USED_HEADER
from ...models import schemas
from ...services.analytics_service import AnalyticsService
from ...services.orchestrator import get_orchestrator
from ...services.recommendation_store import RecommendationFilter, paginate

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_orchestrator = get_orchestrator()
_store = _orchestrator.store
_analytics_service = AnalyticsService(_store)


@router.get("/pricing")
def list_recommendations(
    product_id: Optional[str] = None,
    category: Optional[str] = None,
    is_applied: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    page: int = Query(1, ge=1),
) -> Dict[str, Any]:
    """Return stored recommendations, newest first."""

    filters = RecommendationFilter(
        product_id=product_id,
        category=category,
        is_applied=is_applied,
        start_date=start_date,
        end_date=end_date,
    )
    records, total = _store.list_price_recommendations(filters, limit=limit, page=page)
    return {
        "success": True,
        "data": [record.model_dump(mode="json") for record in records],
        "pagination": paginate(total, limit, page).model_dump(),
    }


@router.post("/pricing/recommend", response_model=schemas.GenerationResponse, response_model_exclude_none=True)
async def recommend_prices(body: schemas.PricingRequest, response: Response) -> schemas.GenerationResponse:
    """Generate price recommendations, falling back to rule-based pricing."""

    LOGGER.info("Price recommendation request received for %d products", len(body.products))
    result = await _orchestrator.recommend_prices(body.products)
    response.headers[MODEL_USED_HEADER] = result.model_version
    return schemas.GenerationResponse(
        data=result.data,
        count=result.count,
        message=result.message,
        note=result.note,
    )


@router.patch("/pricing/{recommendation_id}/apply")
def apply_recommendation(recommendation_id: int) -> Dict[str, Any]:
    """Mark a recommendation as applied."""

    record = _store.apply_recommendation(recommendation_id)
    if record is None:
        raise NotFoundError("Recommendation not found", {"recommendation_id": recommendation_id})
    LOGGER.info("Price recommendation %s applied for product %s", recommendation_id, record.product_id)
    return {
        "success": True,
        "data": record.model_dump(mode="json"),
        "message": "Price recommendation applied successfully",
    }


@router.get("/pricing/analytics")
def pricing_analytics(
    category: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    group_by: Literal["category", "product"] = "category",
) -> Dict[str, Any]:
    filters = RecommendationFilter(category=category, start_date=start_date, end_date=end_date)
    analytics = _analytics_service.pricing_analytics(filters, group_by=group_by)
    return {
        "success": True,
        "data": analytics,
        "group_by": group_by,
        "total_groups": len(analytics),
    }


@router.get("/pricing/optimization-summary")
def optimization_summary(
    category: Optional[str] = None,
    days: int = Query(7, ge=1, le=365),
) -> Dict[str, Any]:
    summary = _analytics_service.optimization_summary(category=category, days=days)
    return {
        "success": True,
        "data": summary,
        "period_days": days,
        "category": category or "all",
    }
