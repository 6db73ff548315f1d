r"""backend\app\services\recommendation_store.py

Persistence for price recommendations and demand forecasts.

Rows are only ever inserted, with the single exception of the
``is_applied`` flag on a price recommendation, which the apply action
flips.  Every database error is re-raised as ``PersistenceFailure`` so
callers can decide whether it is fatal.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from ..core.database import Database
from ..core.errors import PersistenceFailure
from ..models.entities import DemandForecast, PriceRecommendation
from ..models.schemas import DemandForecastRecord, Pagination, PriceRecommendationRecord

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationFilter:
    product_id: Optional[str] = None
    category: Optional[str] = None
    is_applied: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass(frozen=True)
class ForecastFilter:
    product_id: Optional[str] = None
    city: Optional[str] = None
    category: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


def paginate(total: int, limit: int, page: int) -> Pagination:
    return Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
        total_records=total,
        limit=limit,
    )


def _recommendation_conditions(filters: RecommendationFilter) -> list:
    conditions = []
    if filters.product_id:
        conditions.append(PriceRecommendation.product_id == filters.product_id)
    if filters.category:
        conditions.append(PriceRecommendation.category == filters.category)
    if filters.is_applied is not None:
        conditions.append(PriceRecommendation.is_applied.is_(filters.is_applied))
    if filters.start_date:
        conditions.append(PriceRecommendation.created_at >= filters.start_date)
    if filters.end_date:
        conditions.append(PriceRecommendation.created_at <= filters.end_date)
    return conditions


def _forecast_conditions(filters: ForecastFilter) -> list:
    conditions = []
    if filters.product_id:
        conditions.append(DemandForecast.product_id == filters.product_id)
    if filters.city:
        conditions.append(DemandForecast.city == filters.city)
    if filters.category:
        conditions.append(DemandForecast.category == filters.category)
    if filters.start_date:
        conditions.append(DemandForecast.forecast_date >= filters.start_date)
    if filters.end_date:
        conditions.append(DemandForecast.forecast_date <= filters.end_date)
    return conditions


class RecommendationStore:
    """SQLAlchemy-backed store for pipeline output."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # ------------------------------------------------------------------
    def save_price_recommendations(self, records: Sequence[PriceRecommendationRecord]) -> int:
        if not records:
            return 0
        now = datetime.now(timezone.utc)
        rows = []
        for record in records:
            values = record.model_dump(exclude={"id"})
            values["created_at"] = values.get("created_at") or now
            rows.append(PriceRecommendation(**values))
        try:
            with self.database.session() as session:
                session.add_all(rows)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(
                "Failed to save price recommendations.", {"count": len(rows)}
            ) from exc
        LOGGER.info("Saved %d price recommendations", len(rows))
        return len(rows)

    def save_demand_forecasts(self, records: Sequence[DemandForecastRecord]) -> int:
        if not records:
            return 0
        now = datetime.now(timezone.utc)
        rows = []
        for record in records:
            values = record.model_dump(exclude={"id"})
            values["created_at"] = values.get("created_at") or now
            rows.append(DemandForecast(**values))
        try:
            with self.database.session() as session:
                session.add_all(rows)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(
                "Failed to save demand forecasts.", {"count": len(rows)}
            ) from exc
        LOGGER.info("Saved %d demand forecasts", len(rows))
        return len(rows)

    # ------------------------------------------------------------------
    def apply_recommendation(self, recommendation_id: int) -> Optional[PriceRecommendationRecord]:
        """Mark a recommendation as applied; ``None`` when it does not exist."""

        try:
            with self.database.session() as session:
                row = session.get(PriceRecommendation, recommendation_id)
                if row is None:
                    return None
                row.is_applied = True
                session.flush()
                return PriceRecommendationRecord.model_validate(row)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to apply price recommendation.") from exc

    # ------------------------------------------------------------------
    def list_price_recommendations(
        self, filters: RecommendationFilter, limit: int = 100, page: int = 1
    ) -> Tuple[List[PriceRecommendationRecord], int]:
        conditions = _recommendation_conditions(filters)
        stmt = select(PriceRecommendation).where(*conditions)
        count_stmt = select(func.count(PriceRecommendation.id)).where(*conditions)
        try:
            with self.database.session() as session:
                total = int(session.scalar(count_stmt) or 0)
                rows = session.scalars(
                    stmt.order_by(PriceRecommendation.created_at.desc(), PriceRecommendation.id.desc())
                    .limit(limit)
                    .offset((page - 1) * limit)
                ).all()
                return [PriceRecommendationRecord.model_validate(row) for row in rows], total
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to fetch price recommendations.") from exc

    def list_demand_forecasts(
        self, filters: ForecastFilter, limit: int = 100, page: int = 1
    ) -> Tuple[List[DemandForecastRecord], int]:
        conditions = _forecast_conditions(filters)
        stmt = select(DemandForecast).where(*conditions)
        count_stmt = select(func.count(DemandForecast.id)).where(*conditions)
        try:
            with self.database.session() as session:
                total = int(session.scalar(count_stmt) or 0)
                rows = session.scalars(
                    stmt.order_by(DemandForecast.forecast_date.desc(), DemandForecast.id.desc())
                    .limit(limit)
                    .offset((page - 1) * limit)
                ).all()
                return [DemandForecastRecord.model_validate(row) for row in rows], total
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to fetch demand forecasts.") from exc

    # ------------------------------------------------------------------
    def recommendation_rows(self, filters: RecommendationFilter) -> List[Dict[str, Any]]:
        """Return the analytics columns of every matching recommendation."""

        columns = (
            PriceRecommendation.product_id,
            PriceRecommendation.category,
            PriceRecommendation.current_price,
            PriceRecommendation.recommended_price,
            PriceRecommendation.price_change_percentage,
            PriceRecommendation.confidence_score,
            PriceRecommendation.is_applied,
        )
        stmt = select(*columns).where(*_recommendation_conditions(filters))
        try:
            with self.database.session() as session:
                return [dict(row._mapping) for row in session.execute(stmt)]
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to read price recommendations.") from exc

    def forecast_rows(self, filters: ForecastFilter) -> List[Dict[str, Any]]:
        columns = (
            DemandForecast.category,
            DemandForecast.day_of_week,
            DemandForecast.predicted_units,
            DemandForecast.confidence_score,
        )
        stmt = select(*columns).where(*_forecast_conditions(filters))
        try:
            with self.database.session() as session:
                return [dict(row._mapping) for row in session.execute(stmt)]
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to read demand forecasts.") from exc

    # ------------------------------------------------------------------
    def delete_forecasts_older_than(self, days_old: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        try:
            with self.database.session() as session:
                result = session.execute(
                    delete(DemandForecast).where(DemandForecast.created_at < cutoff)
                )
                deleted = int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to clean up demand forecasts.") from exc
        LOGGER.info("Deleted %d forecasts created before %s", deleted, cutoff.isoformat())
        return deleted
