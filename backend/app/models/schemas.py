r"""backend\app\models\schemas.py

Pydantic models used throughout the API.

These models serve as both request payload validators and response
serialisation schemas.  Using typed models ensures that clients, the
external predictor and the database agree on the structure of the data
being exchanged.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIN_FORECAST_DAYS = 1
MAX_FORECAST_DAYS = 90
DEFAULT_FORECAST_DAYS = 7


class ProductReference(BaseModel):
    """A product as supplied by a client: by identifier or by name."""

    model_config = ConfigDict(extra="ignore")

    product_id: Optional[str] = Field(None, description="Catalog identifier")
    product_name: Optional[str] = Field(None, description="Free-text product name")
    current_price: Optional[float] = None
    stock_level: Optional[float] = None
    demand_score: Optional[float] = None
    days_left: Optional[float] = Field(None, description="Days until spoilage")
    weekday: Optional[str] = None
    season: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_values(cls, value: Any) -> Any:
        # A bare string is treated as an identifier-or-name lookup key.
        if isinstance(value, str):
            return {"product_id": value, "product_name": value}
        if isinstance(value, dict) and "product_name" not in value and "product" in value:
            value = {**value, "product_name": value["product"]}
        return value

    @model_validator(mode="after")
    def _require_key(self) -> "ProductReference":
        if not (self.product_id or "").strip() and not (self.product_name or "").strip():
            raise ValueError("each product needs a product_id or a product_name")
        return self


class PricingRequest(BaseModel):
    """Body of ``POST /pricing/recommend``."""

    products: List[ProductReference] = Field(default_factory=list)


class DemandRequest(BaseModel):
    """Body of ``POST /demand/predict``."""

    products: List[ProductReference] = Field(default_factory=list)
    forecast_days: int = Field(
        DEFAULT_FORECAST_DAYS,
        ge=MIN_FORECAST_DAYS,
        le=MAX_FORECAST_DAYS,
        description="Forecast horizon in days",
    )
    cities: Optional[List[str]] = Field(None, description="Cities to forecast for")

    @field_validator("cities")
    @classmethod
    def _strip_cities(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        cleaned = [city.strip() for city in value if city and city.strip()]
        return cleaned or None


class PriceRecommendationRecord(BaseModel):
    """A price recommendation as produced by the predictor or the fallback."""

    model_config = ConfigDict(extra="ignore", from_attributes=True, protected_namespaces=())

    id: Optional[int] = None
    product_id: str
    product_name: Optional[str] = None
    category: Optional[str] = None
    current_price: float
    recommended_price: float
    price_change_percentage: float = 0.0
    demand_score: Optional[float] = None
    stock_level: Optional[float] = None
    days_left: Optional[float] = None
    weekday: Optional[str] = None
    season: Optional[str] = None
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    recommendation_reason: Optional[str] = None
    model_version: str = "external"
    created_at: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_applied: bool = False


class DemandForecastRecord(BaseModel):
    """A single demand prediction returned by the predictor."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: Optional[int] = None
    product_id: str
    product_name: Optional[str] = None
    city: Optional[str] = None
    category: Optional[str] = None
    forecast_date: date
    predicted_units: float
    day_of_week: Optional[str] = None
    confidence_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    created_at: Optional[datetime] = None

    @field_validator("forecast_date", mode="before")
    @classmethod
    def _date_from_timestamp(cls, value: Any) -> Any:
        # The predictor emits ISO timestamps; keep only the calendar day.
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value


class ProductRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: Optional[str] = None
    category: Optional[str] = None
    current_price: float = 0.0
    stock_level: float = 0.0
    days_left: float = 0.0
    demand_score: float = 0.0
    is_active: bool = True


class CityRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    is_active: bool = True


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    limit: int


class GenerationResponse(BaseModel):
    """Envelope returned by the recommendation and forecast generators."""

    success: bool = True
    data: Dict[str, Any]
    count: int = Field(..., description="Number of items produced")
    message: str
    note: Optional[str] = None
