r"""backend\app\services\catalog_service.py

Read and seed access to the product and city catalog."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..core.database import Database
from ..core.errors import CatalogUnavailable
from ..models.entities import City, Product
from ..models.schemas import CityRecord, ProductRecord

LOGGER = logging.getLogger(__name__)


def _normalise_name(name: str) -> str:
    return name.strip().lower()


class CatalogService:
    """Lookups against the canonical product catalog."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # ------------------------------------------------------------------
    def find_by_ids(self, product_ids: Iterable[str]) -> Dict[str, ProductRecord]:
        wanted = sorted({pid.strip() for pid in product_ids if pid and pid.strip()})
        if not wanted:
            return {}
        stmt = select(Product).where(Product.product_id.in_(wanted), Product.is_active.is_(True))
        try:
            with self.database.session() as session:
                rows = session.scalars(stmt).all()
                return {row.product_id: ProductRecord.model_validate(row) for row in rows}
        except SQLAlchemyError as exc:
            LOGGER.exception("Catalog lookup by id failed")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc

    def find_by_names(self, names: Iterable[str]) -> Dict[str, ProductRecord]:
        """Return active products keyed by their normalised (lower-case) name."""

        wanted = sorted({_normalise_name(name) for name in names if name and name.strip()})
        if not wanted:
            return {}
        stmt = (
            select(Product)
            .where(func.lower(func.trim(Product.product_name)).in_(wanted), Product.is_active.is_(True))
            .order_by(Product.product_id)
        )
        matches: Dict[str, ProductRecord] = {}
        try:
            with self.database.session() as session:
                for row in session.scalars(stmt):
                    key = _normalise_name(row.product_name or "")
                    # Several products may share a name; the lowest id wins.
                    matches.setdefault(key, ProductRecord.model_validate(row))
        except SQLAlchemyError as exc:
            LOGGER.exception("Catalog lookup by name failed")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc
        return matches

    # ------------------------------------------------------------------
    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        try:
            with self.database.session() as session:
                row = session.scalar(select(Product).where(Product.product_id == product_id))
                return ProductRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise CatalogUnavailable("Product catalog is unavailable.") from exc

    def list_products(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
        page: int = 1,
    ) -> Tuple[List[ProductRecord], int]:
        stmt = select(Product).where(Product.is_active.is_(True))
        if category:
            stmt = stmt.where(Product.category == category)
        if search:
            stmt = stmt.where(func.lower(Product.product_name).contains(search.lower()))
        try:
            with self.database.session() as session:
                total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
                rows = session.scalars(
                    stmt.order_by(Product.product_name, Product.product_id)
                    .limit(limit)
                    .offset((page - 1) * limit)
                ).all()
                return [ProductRecord.model_validate(row) for row in rows], int(total)
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to list products")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc

    def list_cities(self) -> List[CityRecord]:
        stmt = select(City).where(City.is_active.is_(True)).order_by(City.name)
        try:
            with self.database.session() as session:
                return [CityRecord.model_validate(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to list cities")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc

    # ------------------------------------------------------------------
    def add_products(self, products: Sequence[ProductRecord]) -> int:
        """Insert products whose ``product_id`` is not stored yet."""

        if not products:
            return 0
        try:
            with self.database.session() as session:
                existing = set(session.scalars(select(Product.product_id)))
                fresh = []
                for product in products:
                    if product.product_id in existing:
                        continue
                    existing.add(product.product_id)
                    fresh.append(Product(**product.model_dump()))
                session.add_all(fresh)
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to insert products")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc
        LOGGER.info("Inserted %d of %d products", len(fresh), len(products))
        return len(fresh)

    def add_cities(self, names: Iterable[str]) -> int:
        try:
            with self.database.session() as session:
                existing = set(session.scalars(select(City.name)))
                fresh = []
                for name in names:
                    name = name.strip()
                    if not name or name in existing:
                        continue
                    existing.add(name)
                    fresh.append(City(name=name, is_active=True))
                session.add_all(fresh)
        except SQLAlchemyError as exc:
            LOGGER.exception("Failed to insert cities")
            raise CatalogUnavailable("Product catalog is unavailable.") from exc
        LOGGER.info("Inserted %d cities", len(fresh))
        return len(fresh)
