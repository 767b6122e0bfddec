"""
Metric Store — persisted latest snapshot per (shop, variant).

Read-many / write-occasional. Writes are upserts keyed by
(shop_domain, variant_id) committed in one transaction, so a sync's
snapshot becomes visible all at once and repeated syncs are idempotent.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InventoryMetric
from inventory.types import SalesWindow, VariantMetric

logger = structlog.get_logger()


def row_to_metric(row: InventoryMetric) -> VariantMetric:
    return VariantMetric(
        id=row.variant_id,
        sku=row.sku,
        product_name=row.name,
        variant_title=row.variant_title or "",
        available=row.available,
        unit_cost=row.unit_cost,
        sales=SalesWindow(
            sales_30d=row.sales_30d,
            sales_60d=row.sales_60d,
            sales_90d=row.sales_90d,
        ),
        last_calculated=row.last_calculated,
    )


def _apply(row: InventoryMetric, metric: VariantMetric, calculated_at: datetime) -> None:
    row.sku = metric.sku
    row.name = metric.product_name
    row.variant_title = metric.variant_title
    row.available = metric.available
    row.unit_cost = metric.unit_cost
    row.sales_30d = metric.sales.sales_30d
    row.sales_60d = metric.sales.sales_60d
    row.sales_90d = metric.sales.sales_90d
    row.last_calculated = calculated_at


class MetricStore:
    """inventory_metrics table access for one request's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def query(
        self,
        shop_domain: str,
        max_age_minutes: float | None = None,
        now: datetime | None = None,
    ) -> list[VariantMetric]:
        """
        Stored metrics for a shop, newest first.

        With `max_age_minutes`, only rows calculated inside that window are
        returned (a window of 0 or less matches nothing); without it,
        whatever is stored, however stale.
        """
        stmt = select(InventoryMetric).where(InventoryMetric.shop_domain == shop_domain)
        if max_age_minutes is not None:
            if max_age_minutes <= 0:
                return []
            since = (now or datetime.utcnow()) - timedelta(minutes=max_age_minutes)
            stmt = stmt.where(InventoryMetric.last_calculated >= since)
        stmt = stmt.order_by(InventoryMetric.last_calculated.desc(), InventoryMetric.variant_id)

        result = await self.db.execute(stmt)
        return [row_to_metric(row) for row in result.scalars().all()]

    async def upsert(
        self,
        shop_domain: str,
        metrics: Sequence[VariantMetric],
        calculated_at: datetime | None = None,
    ) -> int:
        """Insert or overwrite every metric, stamped with one calculation time."""
        calculated_at = calculated_at or datetime.utcnow()
        try:
            result = await self.db.execute(
                select(InventoryMetric).where(InventoryMetric.shop_domain == shop_domain)
            )
            existing = {row.variant_id: row for row in result.scalars().all()}

            for metric in metrics:
                row = existing.get(metric.id)
                if row is None:
                    row = InventoryMetric(shop_domain=shop_domain, variant_id=metric.id)
                    self.db.add(row)
                    existing[metric.id] = row
                _apply(row, metric, calculated_at)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("metrics.store.upserted", shop=shop_domain, variants=len(metrics))
        return len(metrics)

    async def last_updated(self, shop_domain: str) -> datetime | None:
        result = await self.db.execute(
            select(func.max(InventoryMetric.last_calculated)).where(InventoryMetric.shop_domain == shop_domain)
        )
        return result.scalar_one_or_none()
