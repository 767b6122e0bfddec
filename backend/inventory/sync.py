"""
Variant Metrics Sync — fallback chain in front of the metric store.

get_variant_metrics() answers from the first source that works:
  1. fresh snapshot (younger than the cache window)
  2. live fetch from the upstream source, merged and persisted
  3. stale snapshot, whatever its age
  4. synthetic sample catalog

Every call records exactly one sync_logs entry. Upstream failures,
timeouts, empty merges and store outages are absorbed here and never
reach callers. Cache and stale serves are logged under the `cache`
scope so they don't count as a recalculation.
"""

import asyncio
import math
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta

import structlog

from core.config import Settings, get_settings
from integrations.base import PaginationResult, VariantSource, paginate
from inventory.baseline import sample_metrics
from inventory.errors import EmptyMergeError, SourceUnavailableError
from inventory.metrics_store import MetricStore
from inventory.sync_log import CALCULATION_SCOPES, SyncLogSink, SyncLogStatus, SyncScope
from inventory.types import UNKNOWN_PRODUCT, UNKNOWN_SKU, OrderLine, SalesWindow, VariantInventory, VariantMetric

logger = structlog.get_logger()

# One in-flight live refresh per shop within a process
_shop_locks: dict[str, asyncio.Lock] = {}


def _shop_lock(shop_domain: str) -> asyncio.Lock:
    lock = _shop_locks.get(shop_domain)
    if lock is None:
        lock = _shop_locks[shop_domain] = asyncio.Lock()
    return lock


# ── Pure helpers ──────────────────────────────────────────────────────────


def bucket_order_sales(lines: Iterable[OrderLine], now: datetime) -> dict[str, SalesWindow]:
    """
    Sum order-line quantities into trailing 30/60/90-day buckets per variant.

    A line `age_days` old (whole days, floored) counts toward every window
    it falls inside; lines older than 90 days are ignored.
    """
    totals: dict[str, list[int]] = {}
    for line in lines:
        age_days = math.floor((now - line.created_at).total_seconds() / 86400)
        if age_days > 90:
            continue
        bucket = totals.setdefault(line.variant_id, [0, 0, 0])
        if age_days <= 30:
            bucket[0] += line.quantity
        if age_days <= 60:
            bucket[1] += line.quantity
        bucket[2] += line.quantity

    return {
        variant_id: SalesWindow(sales_30d=s30, sales_60d=s60, sales_90d=s90)
        for variant_id, (s30, s60, s90) in totals.items()
    }


def merge_variant_metrics(
    inventory: Sequence[VariantInventory],
    sales: dict[str, SalesWindow],
    calculated_at: datetime | None = None,
) -> list[VariantMetric]:
    """
    Join inventory and sales over the union of variant ids.

    Inventory order is kept; variants that only appear in sales follow.
    Missing inventory means nothing on hand; missing sales means zero buckets.
    """
    inventory_by_id = {item.id: item for item in inventory}
    ids = list(inventory_by_id)
    ids.extend(variant_id for variant_id in sales if variant_id not in inventory_by_id)

    merged: list[VariantMetric] = []
    for variant_id in ids:
        item = inventory_by_id.get(variant_id)
        merged.append(
            VariantMetric(
                id=variant_id,
                sku=item.sku if item else UNKNOWN_SKU,
                product_name=item.product_name if item else UNKNOWN_PRODUCT,
                variant_title=item.variant_title if item else "",
                available=item.available if item else 0,
                unit_cost=item.unit_cost if item else None,
                sales=sales.get(variant_id, SalesWindow()),
                last_calculated=calculated_at,
            )
        )
    return merged


# ── Orchestrator ──────────────────────────────────────────────────────────


class VariantMetricsSync:
    """Serves variant metrics for a shop through the fallback chain."""

    def __init__(
        self,
        store: MetricStore,
        source: VariantSource | None,
        sync_log: SyncLogSink,
        *,
        cache_max_minutes: float = 30,
        inventory_page_limit: int = 10,
        orders_page_limit: int = 5,
        lookback_days: int = 90,
        timeout_seconds: float = 60.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.source = source
        self.sync_log = sync_log
        self.cache_max_minutes = cache_max_minutes
        self.inventory_page_limit = inventory_page_limit
        self.orders_page_limit = orders_page_limit
        self.lookback_days = lookback_days
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        store: MetricStore,
        source: VariantSource | None,
        sync_log: SyncLogSink,
        settings: Settings | None = None,
    ) -> "VariantMetricsSync":
        settings = settings or get_settings()
        return cls(
            store,
            source,
            sync_log,
            cache_max_minutes=settings.metrics_cache_max_minutes,
            inventory_page_limit=settings.inventory_page_limit,
            orders_page_limit=settings.orders_page_limit,
            lookback_days=settings.orders_lookback_days,
            timeout_seconds=settings.sync_timeout_seconds,
        )

    async def get_variant_metrics(self, shop_domain: str) -> list[VariantMetric]:
        fresh = await self._fresh(shop_domain)
        if fresh:
            return fresh

        async with _shop_lock(shop_domain):
            # Another request may have refreshed while we waited
            fresh = await self._fresh(shop_domain)
            if fresh:
                return fresh
            return await self._refresh(shop_domain)

    async def _query_store(self, shop_domain: str, **filters) -> list[VariantMetric]:
        """Store read that treats an unreachable store as an empty one."""
        try:
            return await self.store.query(shop_domain, **filters)
        except Exception as exc:
            logger.error(
                "sync.variant_metrics.store_unavailable",
                shop=shop_domain,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return []

    async def _fresh(self, shop_domain: str) -> list[VariantMetric]:
        metrics = await self._query_store(shop_domain, max_age_minutes=self.cache_max_minutes, now=self.clock())
        if metrics:
            logger.debug("sync.variant_metrics.cache_hit", shop=shop_domain, variants=len(metrics))
            await self.sync_log.append(
                shop_domain, SyncScope.CACHE, SyncLogStatus.SUCCESS, f"Cache hit: {len(metrics)} variants"
            )
        return metrics

    async def _refresh(self, shop_domain: str) -> list[VariantMetric]:
        now = self.clock()
        logger.info("sync.variant_metrics.started", shop=shop_domain)
        try:
            metrics, notes = await asyncio.wait_for(self._fetch_and_merge(shop_domain, now), self.timeout_seconds)
            await self.store.upsert(shop_domain, metrics, calculated_at=now)
        except asyncio.TimeoutError:
            reason = f"Live refresh timed out after {self.timeout_seconds:g}s"
            logger.warning("sync.variant_metrics.timeout", shop=shop_domain, timeout=self.timeout_seconds)
            return await self._fallback(shop_domain, reason)
        except Exception as exc:
            logger.warning(
                "sync.variant_metrics.live_failed",
                shop=shop_domain,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return await self._fallback(shop_domain, str(exc) or type(exc).__name__)

        message = f"Variants: {len(metrics)}"
        if notes:
            message = f"{message} ({'; '.join(notes)})"
        await self.sync_log.append(shop_domain, SyncScope.INVENTORY, SyncLogStatus.SUCCESS, message)
        logger.info("sync.variant_metrics.completed", shop=shop_domain, variants=len(metrics))
        return metrics

    async def _fetch_and_merge(self, shop_domain: str, now: datetime) -> tuple[list[VariantMetric], list[str]]:
        if self.source is None:
            raise SourceUnavailableError("No source configured for shop")

        source = self.source
        since = (now - timedelta(days=self.lookback_days)).date()
        inventory_result, orders_result = await asyncio.gather(
            paginate(source.fetch_inventory_page, self.inventory_page_limit),
            paginate(lambda cursor: source.fetch_orders_page(cursor, since), self.orders_page_limit),
            return_exceptions=True,
        )

        failures = [result for result in (inventory_result, orders_result) if isinstance(result, BaseException)]
        for failure in failures:
            if not isinstance(failure, Exception):
                raise failure
        if failures:
            raise SourceUnavailableError("; ".join(str(failure) or type(failure).__name__ for failure in failures))

        notes = self._guard_notes(shop_domain, inventory=inventory_result, orders=orders_result)
        sales = bucket_order_sales(orders_result.records, now)
        metrics = merge_variant_metrics(inventory_result.records, sales, calculated_at=now)
        if not metrics:
            raise EmptyMergeError("Source returned no variants and no sales")
        return metrics, notes

    def _guard_notes(self, shop_domain: str, **results: PaginationResult) -> list[str]:
        notes = []
        for name, result in results.items():
            if result.guard_hit:
                logger.error("sync.variant_metrics.page_guard_hit", shop=shop_domain, fetch=name, pages=result.pages)
                notes.append(f"{name} page guard hit after {result.pages} pages, partial data")
        return notes

    async def _fallback(self, shop_domain: str, reason: str) -> list[VariantMetric]:
        stale = await self._query_store(shop_domain)
        if stale:
            await self.sync_log.append(
                shop_domain,
                SyncScope.CACHE,
                SyncLogStatus.SUCCESS,
                f"Served stale cache ({len(stale)} variants): {reason}",
            )
            return stale

        await self.sync_log.append(
            shop_domain, SyncScope.INVENTORY, SyncLogStatus.FAILURE, f"Fallback to sample: {reason}"
        )
        return sample_metrics(self.clock())

    # ── Queued jobs ─────────────────────────────────────────────────────

    async def request_sync(self, shop_domain: str, scope: SyncScope | str = SyncScope.SYNC) -> uuid.UUID:
        job_id = await self.sync_log.request(shop_domain, scope)
        logger.info("sync.job.queued", shop=shop_domain, scope=str(getattr(scope, "value", scope)), job_id=str(job_id))
        return job_id

    async def perform_sync(self, shop_domain: str, job_id: uuid.UUID) -> list[VariantMetric]:
        """Run a queued job and resolve its pending row."""
        try:
            metrics = await self.get_variant_metrics(shop_domain)
        except Exception as exc:
            await self.sync_log.resolve(job_id, SyncLogStatus.FAILURE, exc)
            logger.error("sync.job.failed", shop=shop_domain, job_id=str(job_id), error=str(exc))
            raise

        await self.sync_log.resolve(job_id, SyncLogStatus.SUCCESS, "sync completed")
        logger.info("sync.job.completed", shop=shop_domain, job_id=str(job_id), variants=len(metrics))
        return metrics

    async def last_sync_timestamp(self, shop_domain: str) -> datetime | None:
        return await self.sync_log.last_at(shop_domain, CALCULATION_SCOPES, SyncLogStatus.SUCCESS)
