r"""backend\app\services\product_resolver.py

Map client product references onto canonical catalog records.

References may name a product by identifier or by free text.  Identifier
matches win; otherwise the name is compared case-insensitively against the
canonical product names.  References that match nothing are dropped, and
the output keeps the input order (duplicates included).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..models.schemas import ProductRecord, ProductReference

LOGGER = logging.getLogger(__name__)


class ProductCatalog(Protocol):
    def find_by_ids(self, product_ids: Sequence[str]) -> Dict[str, ProductRecord]: ...

    def find_by_names(self, names: Sequence[str]) -> Dict[str, ProductRecord]: ...


@dataclass(frozen=True)
class ResolvedProduct:
    """A reference bound to its canonical catalog entry."""

    product_id: str
    product_name: str
    category: str
    current_price: Optional[float] = None
    stock_level: Optional[float] = None
    demand_score: Optional[float] = None
    days_left: Optional[float] = None
    weekday: Optional[str] = None
    season: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _prefer(supplied: Optional[float], stored: Optional[float]) -> Optional[float]:
    if supplied is not None:
        return supplied
    # The catalog stores 0 for "unknown".
    if stored is not None and stored > 0:
        return float(stored)
    return None


def _bind(reference: ProductReference, product: ProductRecord) -> ResolvedProduct:
    return ResolvedProduct(
        product_id=product.product_id,
        product_name=product.product_name or product.product_id,
        category=product.category or "Uncategorized",
        current_price=_prefer(reference.current_price, product.current_price),
        stock_level=_prefer(reference.stock_level, product.stock_level),
        demand_score=_prefer(reference.demand_score, product.demand_score),
        days_left=_prefer(reference.days_left, product.days_left),
        weekday=reference.weekday,
        season=reference.season,
    )


class ProductResolver:
    """Resolve product references against a catalog."""

    def __init__(self, catalog: ProductCatalog) -> None:
        self.catalog = catalog

    def resolve(self, references: Sequence[ProductReference]) -> List[ResolvedProduct]:
        """Return the resolved references in input order.

        Raises ``CatalogUnavailable`` (from the catalog) when the lookup
        itself fails, which is distinct from an empty result.
        """

        if not references:
            return []

        ids = [ref.product_id.strip() for ref in references if ref.product_id and ref.product_id.strip()]
        by_id = self.catalog.find_by_ids(ids) if ids else {}

        unmatched_names = [
            ref.product_name
            for ref in references
            if ref.product_name
            and ref.product_name.strip()
            and (ref.product_id or "").strip() not in by_id
        ]
        by_name = self.catalog.find_by_names(unmatched_names) if unmatched_names else {}

        resolved: List[ResolvedProduct] = []
        for ref in references:
            product = by_id.get((ref.product_id or "").strip())
            if product is None and ref.product_name:
                product = by_name.get(ref.product_name.strip().lower())
            if product is None:
                LOGGER.info(
                    "Dropping unresolved product reference id=%r name=%r",
                    ref.product_id,
                    ref.product_name,
                )
                continue
            resolved.append(_bind(ref, product))

        LOGGER.info("Resolved %d of %d product references", len(resolved), len(references))
        return resolved
