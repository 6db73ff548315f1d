"""Aggregate views over stored recommendations and forecasts."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .recommendation_store import ForecastFilter, RecommendationFilter, RecommendationStore

LOGGER = logging.getLogger(__name__)

GROUP_COLUMNS = {"category": "category", "product": "product_id"}

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    # ``to_dict`` keeps numpy scalars; round-trip through ``item`` for JSON.
    cleaned = frame.replace({np.nan: None})
    return [
        {key: (value.item() if hasattr(value, "item") else value) for key, value in row.items()}
        for row in cleaned.to_dict(orient="records")
    ]


class AnalyticsService:
    """Pricing and demand analytics computed with pandas."""

    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    def pricing_analytics(
        self, filters: RecommendationFilter, group_by: str = "category"
    ) -> List[Dict[str, Any]]:
        """Per-group totals, averages and application rate, largest group first."""

        column = GROUP_COLUMNS.get(group_by, "category")
        frame = pd.DataFrame(self.store.recommendation_rows(filters))
        if frame.empty:
            return []

        frame[column] = frame[column].fillna("Uncategorized")
        frame["is_applied"] = frame["is_applied"].astype(bool).astype(int)
        grouped = frame.groupby(column, dropna=False).agg(
            total_recommendations=("product_id", "size"),
            applied_recommendations=("is_applied", "sum"),
            avg_price_change=("price_change_percentage", "mean"),
            avg_current_price=("current_price", "mean"),
            avg_recommended_price=("recommended_price", "mean"),
            avg_confidence=("confidence_score", "mean"),
        )
        grouped["application_rate"] = np.where(
            grouped["total_recommendations"] > 0,
            grouped["applied_recommendations"] / grouped["total_recommendations"].clip(lower=1),
            0.0,
        )
        grouped = grouped.sort_values("total_recommendations", ascending=False, kind="stable")
        result = grouped.reset_index().rename(columns={column: "_id"})
        return _records(result)

    def optimization_summary(self, category: Optional[str] = None, days: int = 7) -> Dict[str, Any]:
        """Summarise the direction of recommended price changes over ``days``."""

        start = datetime.now(timezone.utc) - timedelta(days=days)
        frame = pd.DataFrame(
            self.store.recommendation_rows(RecommendationFilter(category=category, start_date=start))
        )
        if frame.empty:
            return {
                "total_products": 0,
                "products_with_increase": 0,
                "products_with_decrease": 0,
                "products_no_change": 0,
                "avg_price_change": 0.0,
                "max_price_increase": 0.0,
                "max_price_decrease": 0.0,
                "total_applied": 0,
                "application_rate": 0.0,
            }

        change = frame["price_change_percentage"].astype(float)
        total = int(len(frame))
        applied = int(frame["is_applied"].astype(bool).sum())
        return {
            "total_products": total,
            "products_with_increase": int((change > 0).sum()),
            "products_with_decrease": int((change < 0).sum()),
            "products_no_change": int((change == 0).sum()),
            "avg_price_change": float(change.mean()),
            "max_price_increase": float(change.max()),
            "max_price_decrease": float(change.min()),
            "total_applied": applied,
            "application_rate": applied / total,
        }

    # ------------------------------------------------------------------
    def demand_analytics(self, filters: ForecastFilter) -> List[Dict[str, Any]]:
        """Per-category totals with a day-of-week breakdown."""

        frame = pd.DataFrame(self.store.forecast_rows(filters))
        if frame.empty:
            return []

        frame["category"] = frame["category"].fillna("Uncategorized")
        frame["day_of_week"] = frame["day_of_week"].fillna("Unknown")
        daily = (
            frame.groupby(["category", "day_of_week"])
            .agg(
                predicted_units=("predicted_units", "sum"),
                forecast_count=("predicted_units", "size"),
                avg_confidence=("confidence_score", "mean"),
            )
            .reset_index()
        )

        analytics: List[Dict[str, Any]] = []
        for category, group in daily.groupby("category"):
            total_units = float(group["predicted_units"].sum())
            total_forecasts = int(group["forecast_count"].sum())
            ordered = group.assign(
                _order=group["day_of_week"].map(
                    lambda day: DAY_ORDER.index(day) if day in DAY_ORDER else len(DAY_ORDER)
                )
            ).sort_values("_order")
            daily_predictions = {
                row["day_of_week"]: {
                    "predicted_units": float(row["predicted_units"]),
                    "forecast_count": int(row["forecast_count"]),
                    "avg_confidence": (
                        None if pd.isna(row["avg_confidence"]) else float(row["avg_confidence"])
                    ),
                }
                for _, row in ordered.iterrows()
            }
            analytics.append(
                {
                    "_id": category,
                    "total_predicted_units": total_units,
                    "total_forecasts": total_forecasts,
                    "average_predicted_units": total_units / total_forecasts if total_forecasts else 0.0,
                    "daily_predictions": daily_predictions,
                }
            )

        analytics.sort(key=lambda item: item["total_predicted_units"], reverse=True)
        return analytics
