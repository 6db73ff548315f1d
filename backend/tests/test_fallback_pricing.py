from __future__ import annotations

import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services import fallback_pricing
from backend.app.services.product_resolver import ResolvedProduct

# Monday in July
NOW = datetime(2024, 7, 15, 10, 30, tzinfo=timezone.utc)


def _product(**overrides) -> ResolvedProduct:
    values = {
        "product_id": "P1",
        "product_name": "Tomato",
        "category": "Vegetables",
        "current_price": 40.0,
        "stock_level": 100.0,
        "demand_score": 50.0,
        "days_left": 7.0,
    }
    values.update(overrides)
    return ResolvedProduct(**values)


def test_expiring_low_stock_high_demand_scenario() -> None:
    product = _product(current_price=40.0, stock_level=30.0, demand_score=80.0, days_left=1.0)

    record = fallback_pricing.recommend(product, NOW)

    assert record.recommended_price == pytest.approx(34.61)
    assert record.price_change_percentage == pytest.approx(-13.48)
    assert record.recommendation_reason == fallback_pricing.REASON_EXPIRY_URGENT
    assert record.confidence_score == 0.75
    assert record.model_version == "fallback-1.0"
    assert record.is_applied is False
    assert record.valid_until - record.created_at == timedelta(hours=24)
    assert record.weekday == "Monday"
    assert record.season == "Summer"


@pytest.mark.parametrize(
    ("demand", "stock", "days", "expected", "reason"),
    [
        (70, 100, 7, 1.0, fallback_pricing.REASON_OPTIMAL),
        (71, 100, 7, 1.05, fallback_pricing.REASON_HIGH_DEMAND),
        (30, 100, 7, 1.0, fallback_pricing.REASON_OPTIMAL),
        (29, 100, 7, 0.95, fallback_pricing.REASON_LOW_DEMAND),
        (50, 50, 7, 1.0, fallback_pricing.REASON_OPTIMAL),
        (50, 49, 7, 1.03, fallback_pricing.REASON_LOW_STOCK),
        (50, 200, 7, 1.0, fallback_pricing.REASON_OPTIMAL),
        (50, 201, 7, 0.97, fallback_pricing.REASON_HIGH_STOCK),
        (50, 100, 2, 0.80, fallback_pricing.REASON_EXPIRY_URGENT),
        (50, 100, 5, 0.90, fallback_pricing.REASON_EXPIRY),
        (50, 100, 6, 1.0, fallback_pricing.REASON_OPTIMAL),
    ],
)
def test_rule_boundaries(demand, stock, days, expected, reason) -> None:
    multiplier, chosen = fallback_pricing.price_multiplier(demand, stock, days)
    assert multiplier == pytest.approx(expected)
    assert chosen == reason


def test_last_applicable_rule_sets_reason() -> None:
    multiplier, reason = fallback_pricing.price_multiplier(80, 300, 7)
    assert multiplier == pytest.approx(1.05 * 0.97)
    assert reason == fallback_pricing.REASON_HIGH_STOCK


def test_missing_inputs_use_defaults() -> None:
    product = ResolvedProduct(product_id="P9", product_name="Okra", category="Vegetables")

    record = fallback_pricing.recommend(product, NOW)

    assert record.current_price == 25.0
    assert record.recommended_price == 25.0
    assert record.price_change_percentage == 0.0
    assert record.stock_level == 100.0
    assert record.demand_score == 50.0
    assert record.days_left == 7.0
    assert record.recommendation_reason == fallback_pricing.REASON_OPTIMAL


@pytest.mark.parametrize("price", [0.0, -3.0])
def test_non_positive_price_is_replaced(price) -> None:
    record = fallback_pricing.recommend(_product(current_price=price), NOW)
    assert record.current_price == 25.0
    assert math.isfinite(record.price_change_percentage)


def test_non_finite_inputs_never_leak() -> None:
    product = _product(current_price=float("nan"), stock_level=float("inf"), demand_score=float("nan"))

    record = fallback_pricing.recommend(product, NOW)

    for value in (record.recommended_price, record.price_change_percentage, record.current_price):
        assert math.isfinite(value)


def test_same_input_same_output() -> None:
    product = _product(demand_score=90.0, stock_level=250.0, days_left=4.0)
    first = fallback_pricing.recommend(product, NOW)
    second = fallback_pricing.recommend(product, NOW)
    assert first.model_dump() == second.model_dump()


def test_supplied_weekday_and_season_are_kept() -> None:
    record = fallback_pricing.recommend(_product(weekday="Sunday", season="Monsoon"), NOW)
    assert record.weekday == "Sunday"
    assert record.season == "Monsoon"


@pytest.mark.parametrize(
    ("month", "season"),
    [(1, "Winter"), (4, "Spring"), (8, "Summer"), (10, "Autumn"), (12, "Winter")],
)
def test_season_for(month, season) -> None:
    assert fallback_pricing.season_for(datetime(2024, month, 10)) == season
