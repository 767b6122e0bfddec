"""
Metrics Router — variant metrics, risk reports and per-shop settings.

Every read goes through VariantMetricsSync, so these endpoints always
answer with data (fresh, stale or sample) even when Shopify is down.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel

from api.deps import get_metrics_sync, get_settings_provider, get_sync_log, get_variant_source
from core.config import get_settings
from integrations.base import VariantSource
from inventory.errors import SettingsValidationError
from inventory.reporting import (
    DashboardPayload,
    DigestPreview,
    Location,
    OverstockPayload,
    ReplenishmentPayload,
    VariantDetail,
    build_dashboard,
    build_digest_preview,
    build_digest_status,
    build_overstock,
    build_replenishment,
    build_variant_detail,
    format_currency,
    resolve_locations,
)
from inventory.settings import SettingsProvider, parse_settings
from inventory.sync import VariantMetricsSync
from inventory.sync_log import SyncLogSink, SyncLogStatus, SyncScope
from inventory.thresholds import ThresholdSettings
from inventory.types import VariantMetric

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/metrics/{shop}", tags=["metrics"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class VariantMetricResponse(BaseModel):
    id: str
    sku: str
    product_name: str
    variant_title: str
    available: int
    unit_cost: float | None
    sales_30d: int
    sales_60d: int
    sales_90d: int
    last_calculated: datetime | None
    is_sample: bool


class SyncJobResponse(BaseModel):
    job_id: UUID
    status: str
    message: str | None
    variants: int
    last_sync: datetime | None


class SyncLogResponse(BaseModel):
    scope: str
    status: str
    message: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SyncStatusResponse(BaseModel):
    last_sync: datetime | None
    recent: list[SyncLogResponse]


class SettingsResponse(BaseModel):
    saved: bool
    shortage_threshold_days: float
    overstock_threshold_days: float
    mild_overstock_threshold_days: float
    safety_days: float
    lead_time_days: float
    history_window_days: int
    target_coverage_days: float
    digest_frequency: str
    digest_send_hour: int
    digest_daily_enabled: bool
    digest_weekly_enabled: bool
    email_recipients: str
    slack_webhook: str
    slack_enabled: bool
    locations: list[Location]


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _to_response(metric: VariantMetric) -> VariantMetricResponse:
    return VariantMetricResponse(
        id=metric.id,
        sku=metric.sku,
        product_name=metric.product_name,
        variant_title=metric.variant_title,
        available=metric.available,
        unit_cost=metric.unit_cost,
        sales_30d=metric.sales.sales_30d,
        sales_60d=metric.sales.sales_60d,
        sales_90d=metric.sales.sales_90d,
        last_calculated=metric.last_calculated,
        is_sample=metric.is_sample,
    )


def _settings_response(
    thresholds: ThresholdSettings,
    locations: list[Location],
    saved: bool,
) -> SettingsResponse:
    return SettingsResponse(
        saved=saved,
        shortage_threshold_days=thresholds.shortage_threshold_days,
        overstock_threshold_days=thresholds.overstock_threshold_days,
        mild_overstock_threshold_days=thresholds.mild_overstock_threshold_days,
        safety_days=thresholds.safety_days,
        lead_time_days=thresholds.lead_time_days,
        history_window_days=thresholds.history_window_days,
        target_coverage_days=thresholds.target_coverage_days,
        digest_frequency=thresholds.digest_frequency,
        digest_send_hour=thresholds.digest_send_hour,
        digest_daily_enabled=thresholds.digest_daily_enabled,
        digest_weekly_enabled=thresholds.digest_weekly_enabled,
        email_recipients=thresholds.email_recipients,
        slack_webhook=thresholds.slack_webhook,
        slack_enabled=thresholds.slack_enabled,
        locations=locations,
    )


async def _load_locations(
    shop: str,
    source: VariantSource | None,
    provider: SettingsProvider,
) -> list[Location]:
    fetched: list[dict] = []
    if source is not None:
        try:
            fetched = await source.fetch_locations()
        except Exception as exc:
            logger.warning("metrics.locations.fallback", shop=shop, error=str(exc))
    return resolve_locations(fetched, await provider.saved_locations(shop))


def _last_calculated(metrics: list[VariantMetric]) -> datetime | None:
    stamps = [metric.last_calculated for metric in metrics if metric.last_calculated is not None]
    return max(stamps) if stamps else None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/variants", response_model=list[VariantMetricResponse])
async def list_variant_metrics(
    shop: str,
    sync: VariantMetricsSync = Depends(get_metrics_sync),
):
    """Merged inventory + sales snapshot for every variant of the shop."""
    metrics = await sync.get_variant_metrics(shop)
    return [_to_response(metric) for metric in metrics]


@router.get("/dashboard", response_model=DashboardPayload)
async def get_dashboard(
    shop: str,
    budget: float | None = Query(None, gt=0),
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    provider: SettingsProvider = Depends(get_settings_provider),
    sync_log: SyncLogSink = Depends(get_sync_log),
    source: VariantSource | None = Depends(get_variant_source),
):
    metrics = await sync.get_variant_metrics(shop)
    thresholds = await provider.read_or_default(shop)
    digest = build_digest_status(
        thresholds,
        last_success=await sync_log.last_at(shop, [SyncScope.DIGEST], SyncLogStatus.SUCCESS),
        last_failure=await sync_log.last_at(shop, [SyncScope.DIGEST], SyncLogStatus.FAILURE),
        last_error=await sync_log.last_message(shop, SyncScope.DIGEST, SyncLogStatus.FAILURE),
    )
    return build_dashboard(
        metrics,
        thresholds,
        budget=budget or get_settings().default_budget,
        locations=await _load_locations(shop, source, provider),
        digest=digest,
        last_calculated=await sync.last_sync_timestamp(shop) or _last_calculated(metrics),
    )


@router.get("/replenishment", response_model=ReplenishmentPayload)
async def get_replenishment(
    shop: str,
    budget: float | None = Query(None, gt=0),
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    provider: SettingsProvider = Depends(get_settings_provider),
    sync_log: SyncLogSink = Depends(get_sync_log),
    source: VariantSource | None = Depends(get_variant_source),
):
    """30-day reorder table plus a budget plan over the shortage candidates."""
    metrics = await sync.get_variant_metrics(shop)
    thresholds = await provider.read_or_default(shop)
    payload = build_replenishment(
        metrics,
        thresholds,
        budget=budget or get_settings().default_budget,
        locations=await _load_locations(shop, source, provider),
    )
    if budget is not None:
        plan = payload.budget_plan
        await sync_log.append(
            shop,
            SyncScope.BUDGET_PLAN,
            SyncLogStatus.SUCCESS,
            f"Budget {format_currency(plan.budget)}: {len(plan.picks)} picks, used {format_currency(plan.used_amount)}",
        )
    return payload


@router.get("/overstock", response_model=OverstockPayload)
async def get_overstock(
    shop: str,
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    provider: SettingsProvider = Depends(get_settings_provider),
):
    metrics = await sync.get_variant_metrics(shop)
    thresholds = await provider.read_or_default(shop)
    return build_overstock(metrics, thresholds, last_calculated=_last_calculated(metrics))


@router.get("/digest/preview", response_model=DigestPreview)
async def get_digest_preview(
    shop: str,
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    provider: SettingsProvider = Depends(get_settings_provider),
    sync_log: SyncLogSink = Depends(get_sync_log),
):
    """What the periodic digest would contain right now. Nothing is sent."""
    metrics = await sync.get_variant_metrics(shop)
    thresholds = await provider.read_or_default(shop)
    preview = build_digest_preview(metrics, thresholds, generated_at=datetime.utcnow())
    await sync_log.append(
        shop,
        SyncScope.DIGEST,
        SyncLogStatus.SUCCESS,
        f"Preview: {preview.summary.shortage_count} shortage / {preview.summary.overstock_count} overstock",
    )
    return preview


@router.get("/variants/{variant_id:path}", response_model=VariantDetail)
async def get_variant_detail(
    shop: str,
    variant_id: str,
    sync: VariantMetricsSync = Depends(get_metrics_sync),
):
    """
    Velocity and coverage across windows.

    Looks up by variant id, then SKU; an unknown key resolves to the first
    variant. The metrics list is never empty (the sample catalog backs it).
    """
    metrics = await sync.get_variant_metrics(shop)
    return build_variant_detail(metrics, variant_id)


@router.post("/sync", response_model=SyncJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_sync(
    shop: str,
    scope: SyncScope = Query(SyncScope.SYNC),
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    sync_log: SyncLogSink = Depends(get_sync_log),
):
    """Queue a sync job and run it in-request."""
    job_id = await sync.request_sync(shop, scope)
    metrics = await sync.perform_sync(shop, job_id)
    job = await sync_log.get(job_id)
    return SyncJobResponse(
        job_id=job_id,
        status=job.status if job else SyncLogStatus.SUCCESS.value,
        message=job.message if job else None,
        variants=len(metrics),
        last_sync=await sync.last_sync_timestamp(shop),
    )


@router.get("/sync", response_model=SyncStatusResponse)
async def get_sync_status(
    shop: str,
    limit: int = Query(20, ge=1, le=200),
    sync: VariantMetricsSync = Depends(get_metrics_sync),
    sync_log: SyncLogSink = Depends(get_sync_log),
):
    return SyncStatusResponse(
        last_sync=await sync.last_sync_timestamp(shop),
        recent=[SyncLogResponse.model_validate(entry) for entry in await sync_log.recent(shop, limit)],
    )


@router.get("/settings", response_model=SettingsResponse)
async def get_shop_settings(
    shop: str,
    provider: SettingsProvider = Depends(get_settings_provider),
    source: VariantSource | None = Depends(get_variant_source),
):
    saved = await provider.read(shop)
    return _settings_response(
        saved or ThresholdSettings(),
        await _load_locations(shop, source, provider),
        saved=saved is not None,
    )


@router.put("/settings", response_model=SettingsResponse)
async def update_shop_settings(
    shop: str,
    payload: dict[str, Any] = Body(...),
    provider: SettingsProvider = Depends(get_settings_provider),
    source: VariantSource | None = Depends(get_variant_source),
):
    try:
        form = parse_settings(payload)
    except SettingsValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)

    thresholds = await provider.save(shop, form)
    return _settings_response(thresholds, await _load_locations(shop, source, provider), saved=True)
