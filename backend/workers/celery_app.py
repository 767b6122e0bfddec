"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "inventory_radar",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.sync"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.sync.*": {"queue": "sync"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Fans out one refresh per known shop, aligned with the metrics cache window.
    beat_schedule={
        "refresh-variant-metrics-30m": {
            "task": "workers.sync.dispatch_shop_refreshes",
            "schedule": crontab(minute="*/30"),
            "options": {"queue": "sync"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"])
