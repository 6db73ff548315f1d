"""Routes for demand forecasting."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Response

from ...core.observability import MODEL_USED_HEADER
from ...models import schemas
from ...services.analytics_service import AnalyticsService
from ...services.orchestrator import get_orchestrator
from ...services.recommendation_store import ForecastFilter, paginate

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_orchestrator = get_orchestrator()
_store = _orchestrator.store
_analytics_service = AnalyticsService(_store)


@router.get("/demand")
def list_forecasts(
    product_id: Optional[str] = None,
    city: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=1000),
    page: int = Query(1, ge=1),
) -> Dict[str, Any]:
    """Return stored forecasts, latest forecast date first."""

    filters = ForecastFilter(
        product_id=product_id,
        city=city,
        category=category,
        start_date=start_date,
        end_date=end_date,
    )
    records, total = _store.list_demand_forecasts(filters, limit=limit, page=page)
    return {
        "success": True,
        "data": [record.model_dump(mode="json") for record in records],
        "pagination": paginate(total, limit, page).model_dump(),
    }


@router.post("/demand/predict", response_model=schemas.GenerationResponse, response_model_exclude_none=True)
async def predict_demand(body: schemas.DemandRequest, response: Response) -> schemas.GenerationResponse:
    """Generate demand forecasts with the external predictor.

    There is no fallback: predictor failures are returned as server errors.
    """

    LOGGER.info(
        "Demand forecast request received for %d products horizon=%s cities=%s",
        len(body.products),
        body.forecast_days,
        body.cities,
    )
    result = await _orchestrator.forecast_demand(body.products, body.forecast_days, body.cities)
    response.headers[MODEL_USED_HEADER] = result.model_version
    return schemas.GenerationResponse(data=result.data, count=result.count, message=result.message)


@router.get("/demand/analytics")
def demand_analytics(
    category: Optional[str] = None,
    city: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Dict[str, Any]:
    filters = ForecastFilter(city=city, category=category, start_date=start_date, end_date=end_date)
    analytics = _analytics_service.demand_analytics(filters)
    return {
        "success": True,
        "data": analytics,
        "group_by": "category_with_days",
        "total_groups": len(analytics),
    }


@router.delete("/demand/cleanup")
def cleanup_forecasts(days_old: int = Query(30, ge=0)) -> Dict[str, Any]:
    """Delete forecasts created more than ``days_old`` days ago."""

    deleted = _store.delete_forecasts_older_than(days_old)
    return {
        "success": True,
        "message": f"Deleted {deleted} old forecast records",
        "deleted_count": deleted,
    }
