r"""backend\app\models\entities.py

SQLAlchemy models for the market data the service persists.

Field names are the contract shared with the listing and analytics
endpoints: products and cities form the catalog, while demand forecasts and
price recommendations are written by the recommendation pipeline.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Product(Base):
    """Canonical catalog entry."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    current_price: Mapped[float] = mapped_column(Float, default=0.0)
    stock_level: Mapped[float] = mapped_column(Float, default=0.0)
    days_left: Mapped[float] = mapped_column(Float, default=0.0)
    demand_score: Mapped[float] = mapped_column(Float, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class City(Base):
    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class DemandForecast(Base):
    """Predicted unit volume for one product, city and day."""

    __tablename__ = "demand_forecasts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[Optional[str]] = mapped_column(String(120), index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    forecast_date: Mapped[date] = mapped_column(Date, index=True)
    predicted_units: Mapped[float] = mapped_column(Float)
    day_of_week: Mapped[Optional[str]] = mapped_column(String(16))
    confidence_score: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )


class PriceRecommendation(Base):
    """Recommended price for a product; only ``is_applied`` changes after insert."""

    __tablename__ = "price_recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    current_price: Mapped[float] = mapped_column(Float)
    recommended_price: Mapped[float] = mapped_column(Float)
    price_change_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    demand_score: Mapped[Optional[float]] = mapped_column(Float)
    stock_level: Mapped[Optional[float]] = mapped_column(Float)
    days_left: Mapped[Optional[float]] = mapped_column(Float)
    weekday: Mapped[Optional[str]] = mapped_column(String(16))
    season: Mapped[Optional[str]] = mapped_column(String(16))
    confidence_score: Mapped[float] = mapped_column(Float)
    recommendation_reason: Mapped[Optional[str]] = mapped_column(Text)
    model_version: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_applied: Mapped[bool] = mapped_column(Boolean, default=False)
