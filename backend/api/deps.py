"""
Inventory Radar API Dependencies

Dependency injection for DB sessions, the upstream source and the
metrics sync orchestrator. Shop identity comes from the path.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal
from integrations.base import SourceType, VariantSource, get_source
from inventory.metrics_store import MetricStore
from inventory.settings import SettingsProvider
from inventory.sync import VariantMetricsSync
from inventory.sync_log import SyncLogSink


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_variant_source(shop: str) -> VariantSource | None:
    """Shopify adapter for the shop, or None when no Admin token is configured."""
    settings = get_settings()
    if not settings.shopify_admin_token:
        return None
    return get_source(SourceType.SHOPIFY, shop_domain=shop)


def get_sync_log(db: AsyncSession = Depends(get_db)) -> SyncLogSink:
    return SyncLogSink(db)


def get_settings_provider(db: AsyncSession = Depends(get_db)) -> SettingsProvider:
    return SettingsProvider(db)


def get_metrics_sync(
    db: AsyncSession = Depends(get_db),
    source: VariantSource | None = Depends(get_variant_source),
    sync_log: SyncLogSink = Depends(get_sync_log),
) -> VariantMetricsSync:
    return VariantMetricsSync.from_settings(MetricStore(db), source, sync_log)
