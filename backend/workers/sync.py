"""
Metrics Sync Workers — background refresh of per-shop variant metrics.

Workers:
  1. refresh_variant_metrics: queue + run one sync job for a shop
  2. dispatch_shop_refreshes: fan out refresh_variant_metrics to every known shop
"""

import uuid

import structlog
from sqlalchemy import select, union

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def run_sync_job(
    db,
    *,
    shop_domain: str,
    source=None,
    job_id: uuid.UUID | None = None,
) -> dict:
    """
    Worker-path sync: request a job row (unless one was queued by the
    caller), run the fallback chain and resolve the row.
    """
    from inventory.metrics_store import MetricStore
    from inventory.sync import VariantMetricsSync
    from inventory.sync_log import SyncLogSink

    sync = VariantMetricsSync.from_settings(MetricStore(db), source, SyncLogSink(db))
    if job_id is None:
        job_id = await sync.request_sync(shop_domain)

    metrics = await sync.perform_sync(shop_domain, job_id)
    return {
        "status": "success",
        "shop_domain": shop_domain,
        "job_id": str(job_id),
        "variants": len(metrics),
        "sample": any(metric.is_sample for metric in metrics),
    }


async def list_known_shops(db) -> list[str]:
    """Shops that have either a stored snapshot or saved settings."""
    from db.models import InventoryMetric, ShopSetting

    result = await db.execute(
        union(
            select(InventoryMetric.shop_domain),
            select(ShopSetting.shop_domain),
        )
    )
    return sorted(row[0] for row in result.all())


@celery_app.task(
    name="workers.sync.refresh_variant_metrics",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    acks_late=True,
)
def refresh_variant_metrics(self, shop_domain: str, job_id: str | None = None):
    """
    Refresh variant metrics for one shop.

    Flow:
      1. Build the Shopify source (skipped when no Admin token is configured)
      2. Queue a pending sync_logs row, unless `job_id` points at one
      3. Run the fallback chain (fresh cache → live → stale → sample)
      4. Resolve the row to success / failure
    """
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    run_id = self.request.id or "manual"
    logger.info("sync.metrics.started", shop=shop_domain, run_id=run_id)

    async def _sync():
        from api.deps import get_variant_source
        from core.config import get_settings

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                return await run_sync_job(
                    db,
                    shop_domain=shop_domain,
                    source=get_variant_source(shop_domain),
                    job_id=uuid.UUID(job_id) if job_id else None,
                )
        finally:
            await engine.dispose()

    try:
        summary = asyncio.run(_sync())
    except Exception as exc:
        logger.error("sync.metrics.failed", shop=shop_domain, run_id=run_id, error=str(exc))
        raise self.retry(exc=exc)

    logger.info("sync.metrics.completed", shop=shop_domain, variants=summary["variants"], sample=summary["sample"])
    return summary


@celery_app.task(name="workers.sync.dispatch_shop_refreshes")
def dispatch_shop_refreshes():
    """Queue refresh_variant_metrics for every shop we have data or settings for."""
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    async def _list():
        from core.config import get_settings

        engine = create_async_engine(get_settings().database_url)
        try:
            async with async_sessionmaker(engine, class_=AsyncSession)() as db:
                return await list_known_shops(db)
        finally:
            await engine.dispose()

    shops = asyncio.run(_list())
    for shop_domain in shops:
        refresh_variant_metrics.delay(shop_domain)

    logger.info("sync.metrics.dispatched", shops=len(shops))
    return {"status": "dispatched", "shops": shops}
