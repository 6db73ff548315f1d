r"""backend\app\services\orchestrator.py

Coordinate one batch request for price recommendations or demand forecasts.

A request moves through ``MAPPING -> PREDICTING`` and then either persists
the external predictor's answer or, for pricing only, falls back to the
rule-based engine before persisting and responding.  Persistence is best
effort: failures are logged and never change the response.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..core.config import PredictorConfig, get_settings, load_predictor_config
from ..core.database import get_database
from ..core.errors import (
    CatalogUnavailable,
    PersistenceFailure,
    PredictorError,
    PredictorParseFailure,
    PredictorProcessFailure,
    PredictorStartFailure,
    PredictorTimeout,
    ValidationError,
)
from ..core.observability import FALLBACK_RECOMMENDATIONS
from ..models.schemas import DemandForecastRecord, PriceRecommendationRecord, ProductReference
from . import fallback_pricing
from .catalog_service import CatalogService
from .prediction_gateway import (
    Operation,
    ParseFailure,
    PredictionGateway,
    PredictionOutcome,
    ProcessFailure,
    StartFailure,
    SubprocessPredictionGateway,
    Success,
    Timeout,
)
from .product_resolver import ProductResolver, ResolvedProduct
from .recommendation_store import RecommendationStore

LOGGER = logging.getLogger(__name__)

FALLBACK_NOTE = "Generated using fallback pricing algorithm"


class Stage(str, Enum):
    MAPPING = "mapping"
    PREDICTING = "predicting"
    PERSISTING_SUCCESS = "persisting_success"
    FALLING_BACK = "falling_back"
    PERSISTING_FALLBACK = "persisting_fallback"
    RESPONDING = "responding"


@dataclass(frozen=True)
class PredictionRequest:
    """Immutable input to one predictor invocation."""

    operation: Operation
    products: Tuple[ResolvedProduct, ...]
    forecast_days: Optional[int] = None
    cities: Optional[Tuple[str, ...]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"products": [p.to_payload() for p in self.products]}
        if self.operation is Operation.PREDICT_DEMAND:
            payload["forecast_days"] = self.forecast_days
            payload["cities"] = list(self.cities) if self.cities else None
        return payload


@dataclass
class PipelineResult:
    """What the API layer turns into a response."""

    data: Dict[str, Any]
    count: int
    message: str
    model_version: str
    note: Optional[str] = None
    fallback_used: bool = False
    stages: List[Stage] = field(default_factory=list)


def outcome_error(outcome: PredictionOutcome) -> PredictorError:
    """Translate a non-success outcome into the matching error."""

    if isinstance(outcome, Timeout):
        return PredictorTimeout(
            f"Model prediction exceeded the time limit ({outcome.deadline_seconds:g}s).",
            {"deadline_seconds": outcome.deadline_seconds},
        )
    if isinstance(outcome, ProcessFailure):
        return PredictorProcessFailure(
            f"Model prediction failed with exit code {outcome.exit_code}: {outcome.stderr.strip()}"[:2000],
            {"exit_code": outcome.exit_code},
        )
    if isinstance(outcome, ParseFailure):
        return PredictorParseFailure(
            "Failed to parse model response.",
            {"reason": outcome.reason, "raw_output": outcome.raw_output[-2000:]},
        )
    if isinstance(outcome, StartFailure):
        return PredictorStartFailure(f"Failed to start the model process: {outcome.cause}")
    raise TypeError(f"not a failure outcome: {outcome!r}")


def _reported_count(payload: Dict[str, Any], key: str, default: int) -> int:
    try:
        return int(payload.get(key, default))
    except (TypeError, ValueError):
        return default


class _Trace:
    def __init__(self, operation: Operation) -> None:
        self.request_id = uuid.uuid4().hex[:12]
        self.operation = operation
        self.stages: List[Stage] = []

    def enter(self, stage: Stage) -> None:
        self.stages.append(stage)
        LOGGER.debug("[%s] %s -> %s", self.request_id, self.operation.value, stage.value)


class RecommendationOrchestrator:
    """Run the map -> predict -> persist (-> fallback) pipeline."""

    def __init__(
        self,
        resolver: ProductResolver,
        gateway: PredictionGateway,
        store: RecommendationStore,
        config: PredictorConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.resolver = resolver
        self.gateway = gateway
        self.store = store
        self.config = config or PredictorConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    async def _map(self, references: Sequence[ProductReference], trace: _Trace) -> List[ResolvedProduct]:
        trace.enter(Stage.MAPPING)
        if not references:
            raise ValidationError("Products array is required")
        try:
            resolved = await asyncio.wait_for(
                asyncio.to_thread(self.resolver.resolve, list(references)),
                timeout=self.config.mapping_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            LOGGER.error(
                "[%s] Product mapping exceeded %.1fs", trace.request_id, self.config.mapping_timeout_seconds
            )
            raise CatalogUnavailable("Product mapping timed out.") from exc
        if not resolved:
            raise ValidationError("No valid products found after mapping")
        return resolved

    def _enrich(self, products: Sequence[ResolvedProduct], now: datetime) -> Tuple[ResolvedProduct, ...]:
        weekday = fallback_pricing.weekday_name(now)
        season = fallback_pricing.season_for(now)
        return tuple(
            replace(product, weekday=product.weekday or weekday, season=product.season or season)
            for product in products
        )

    # ------------------------------------------------------------------
    async def recommend_prices(self, references: Sequence[ProductReference]) -> PipelineResult:
        """Price recommendations from the predictor, or from the fallback rules."""

        trace = _Trace(Operation.PREDICT_PRICING)
        resolved = await self._map(references, trace)
        now = self.clock()
        request = PredictionRequest(
            operation=Operation.PREDICT_PRICING,
            products=self._enrich(resolved, now),
        )

        trace.enter(Stage.PREDICTING)
        outcome = await self.gateway.invoke(
            request.operation, request.to_payload(), self.config.pricing_timeout_seconds
        )

        if isinstance(outcome, Success):
            records = self._parse_recommendations(outcome.payload, trace)
            if records is not None:
                trace.enter(Stage.PERSISTING_SUCCESS)
                self._persist(self.store.save_price_recommendations, records, trace)
                count = _reported_count(outcome.payload, "total_recommendations", len(records))
                trace.enter(Stage.RESPONDING)
                return PipelineResult(
                    data=outcome.payload,
                    count=count,
                    message=f"Generated {count} price recommendations",
                    model_version=self._model_version(records),
                    stages=trace.stages,
                )
        else:
            LOGGER.warning(
                "[%s] Predictor outcome %s; using fallback pricing logic",
                trace.request_id,
                outcome.kind,
            )

        trace.enter(Stage.FALLING_BACK)
        fallback = [fallback_pricing.recommend(product, now) for product in request.products]
        FALLBACK_RECOMMENDATIONS.inc(len(fallback))

        trace.enter(Stage.PERSISTING_FALLBACK)
        self._persist(self.store.save_price_recommendations, fallback, trace)

        trace.enter(Stage.RESPONDING)
        return PipelineResult(
            data={
                "success": True,
                "recommendations": [record.model_dump(mode="json") for record in fallback],
                "total_recommendations": len(fallback),
            },
            count=len(fallback),
            message=f"Generated {len(fallback)} price recommendations using fallback logic",
            model_version=fallback_pricing.FALLBACK_MODEL_VERSION,
            note=FALLBACK_NOTE,
            fallback_used=True,
            stages=trace.stages,
        )

    async def forecast_demand(
        self,
        references: Sequence[ProductReference],
        forecast_days: int,
        cities: Optional[Sequence[str]] = None,
    ) -> PipelineResult:
        """Demand forecasts from the predictor; any failure is raised."""

        trace = _Trace(Operation.PREDICT_DEMAND)
        resolved = await self._map(references, trace)
        request = PredictionRequest(
            operation=Operation.PREDICT_DEMAND,
            products=tuple(resolved),
            forecast_days=forecast_days,
            cities=tuple(cities) if cities else None,
        )

        trace.enter(Stage.PREDICTING)
        outcome = await self.gateway.invoke(
            request.operation, request.to_payload(), self.config.demand_timeout_seconds
        )
        if not isinstance(outcome, Success):
            LOGGER.error("[%s] Demand prediction failed: %s", trace.request_id, outcome.kind)
            raise outcome_error(outcome)

        predictions = outcome.payload.get("predictions") or []
        if not isinstance(predictions, list):
            raise PredictorParseFailure("Model response 'predictions' is not a list.")
        records: List[DemandForecastRecord] = []
        for index, item in enumerate(predictions):
            try:
                records.append(DemandForecastRecord.model_validate(item))
            except PydanticValidationError as exc:
                LOGGER.error(
                    "[%s] Skipping invalid prediction %d: %s", trace.request_id, index + 1, exc
                )

        trace.enter(Stage.PERSISTING_SUCCESS)
        if records:
            self._persist(self.store.save_demand_forecasts, records, trace)
        else:
            LOGGER.info("[%s] No predictions to save", trace.request_id)

        count = _reported_count(outcome.payload, "total_predictions", len(predictions))
        trace.enter(Stage.RESPONDING)
        return PipelineResult(
            data=outcome.payload,
            count=count,
            message=f"Generated {count} demand forecasts",
            model_version=str(outcome.payload.get("model_version", "external")),
            stages=trace.stages,
        )

    # ------------------------------------------------------------------
    def _parse_recommendations(
        self, payload: Dict[str, Any], trace: _Trace
    ) -> Optional[List[PriceRecommendationRecord]]:
        """Validate the predictor's recommendations; ``None`` means unusable."""

        raw = payload.get("recommendations")
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            LOGGER.error("[%s] Predictor recommendations are not a list", trace.request_id)
            return None
        try:
            return [PriceRecommendationRecord.model_validate(item) for item in raw]
        except PydanticValidationError as exc:
            LOGGER.error("[%s] Malformed predictor recommendations: %s", trace.request_id, exc)
            return None

    @staticmethod
    def _model_version(records: Sequence[PriceRecommendationRecord]) -> str:
        versions = sorted({record.model_version for record in records})
        return ",".join(versions) if versions else "external"

    def _persist(self, save: Callable[[Sequence[Any]], int], records: Sequence[Any], trace: _Trace) -> None:
        try:
            save(records)
        except PersistenceFailure as exc:
            LOGGER.warning(
                "[%s] Database not available, continuing without saving: %s",
                trace.request_id,
                exc.message,
            )


@lru_cache(maxsize=None)
def get_orchestrator() -> RecommendationOrchestrator:
    """Return the process-wide orchestrator wired from ``Settings``.

    Shared by the pricing and demand routes, and so is its predictor limiter.
    """

    settings = get_settings()
    config = load_predictor_config(settings.config_dir)
    database = get_database()
    return RecommendationOrchestrator(
        resolver=ProductResolver(CatalogService(database)),
        gateway=SubprocessPredictionGateway(
            settings.python_executable,
            settings.model_script,
            max_concurrent=config.max_concurrent_predictions,
        ),
        store=RecommendationStore(database),
        config=config,
    )
