"""Rule-based price recommendations used when the predictor is unusable."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..models.schemas import PriceRecommendationRecord
from .product_resolver import ResolvedProduct

FALLBACK_MODEL_VERSION = "fallback-1.0"
FALLBACK_CONFIDENCE = 0.75
VALIDITY_WINDOW = timedelta(hours=24)

DEFAULT_CURRENT_PRICE = 25.0
DEFAULT_STOCK_LEVEL = 100.0
DEFAULT_DEMAND_SCORE = 50.0
DEFAULT_DAYS_LEFT = 7.0

REASON_OPTIMAL = "Current price is optimal"
REASON_HIGH_DEMAND = "High demand detected - price increase recommended"
REASON_LOW_DEMAND = "Low demand - price reduction to boost sales"
REASON_LOW_STOCK = "Low stock levels - price increase to manage demand"
REASON_HIGH_STOCK = "High inventory levels - price reduction to clear stock"
REASON_EXPIRY_URGENT = "Product nearing expiry - urgent price reduction"
REASON_EXPIRY = "Product nearing expiry - price reduction to clear stock"

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def weekday_name(moment: datetime) -> str:
    return _WEEKDAYS[moment.weekday()]


def season_for(moment: datetime) -> str:
    """Return the (northern hemisphere) season of ``moment``."""

    month = moment.month
    if 3 <= month <= 5:
        return "Spring"
    if 6 <= month <= 8:
        return "Summer"
    if 9 <= month <= 11:
        return "Autumn"
    return "Winter"


def _finite_or(value: Optional[float], default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def price_multiplier(demand_score: float, stock_level: float, days_left: float) -> tuple[float, str]:
    """Apply the demand, stock and expiry rules in order.

    Every rule that fires scales the multiplier and replaces the reason, so
    the reason of the last applicable rule is the one reported.
    """

    multiplier = 1.0
    reason = REASON_OPTIMAL

    if demand_score > 70:
        multiplier *= 1.05
        reason = REASON_HIGH_DEMAND
    elif demand_score < 30:
        multiplier *= 0.95
        reason = REASON_LOW_DEMAND

    if stock_level < 50:
        multiplier *= 1.03
        reason = REASON_LOW_STOCK
    elif stock_level > 200:
        multiplier *= 0.97
        reason = REASON_HIGH_STOCK

    if days_left <= 2:
        multiplier *= 0.80
        reason = REASON_EXPIRY_URGENT
    elif days_left <= 5:
        multiplier *= 0.90
        reason = REASON_EXPIRY

    return multiplier, reason


def recommend(product: ResolvedProduct, now: Optional[datetime] = None) -> PriceRecommendationRecord:
    """Return a deterministic price recommendation for ``product``.

    Missing or non-finite inputs take the documented defaults and a
    non-positive current price is replaced by the default price, so the
    result is always finite.
    """

    moment = now or datetime.now(timezone.utc)

    current_price = _finite_or(product.current_price, DEFAULT_CURRENT_PRICE)
    if current_price <= 0:
        current_price = DEFAULT_CURRENT_PRICE
    stock_level = _finite_or(product.stock_level, DEFAULT_STOCK_LEVEL)
    demand_score = _finite_or(product.demand_score, DEFAULT_DEMAND_SCORE)
    days_left = _finite_or(product.days_left, DEFAULT_DAYS_LEFT)

    multiplier, reason = price_multiplier(demand_score, stock_level, days_left)
    recommended = current_price * multiplier
    if not math.isfinite(recommended):
        # overflow near the float limit
        recommended = current_price
    change_pct = (recommended - current_price) / current_price * 100.0

    return PriceRecommendationRecord(
        product_id=product.product_id,
        product_name=product.product_name,
        category=product.category,
        current_price=current_price,
        recommended_price=round(recommended, 2),
        price_change_percentage=round(change_pct, 2),
        demand_score=demand_score,
        stock_level=stock_level,
        days_left=days_left,
        weekday=product.weekday or weekday_name(moment),
        season=product.season or season_for(moment),
        confidence_score=FALLBACK_CONFIDENCE,
        recommendation_reason=reason,
        model_version=FALLBACK_MODEL_VERSION,
        created_at=moment,
        valid_until=moment + VALIDITY_WINDOW,
        is_applied=False,
    )
