"""
Inventory Radar Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
Per-shop business thresholds live in the shop_settings table
(see inventory.settings), not here.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Inventory Radar"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./inventory_radar.db"
    database_echo: bool = False

    # Redis (Celery broker / result backend)
    redis_url: str = "redis://localhost:6379/0"

    # Shopify Admin API
    shopify_api_version: str = "2024-10"
    shopify_admin_token: str = ""
    shopify_request_timeout_seconds: float = 20.0

    # ── Variant metrics pipeline ─────────────────────────────────────
    # Snapshot younger than this is served without touching Shopify
    metrics_cache_max_minutes: int = Field(30, gt=0)
    inventory_page_size: int = 50
    inventory_page_limit: int = 10
    orders_page_size: int = 80
    orders_page_limit: int = 5
    orders_lookback_days: int = 90
    # Upper bound for one live refresh (both fetches + merge)
    sync_timeout_seconds: float = 60.0

    # Replenishment budget used when the caller does not pass one
    default_budget: float = 18000.0

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_runtime_guardrails(settings)
    return settings


def _enforce_runtime_guardrails(settings: Settings) -> None:
    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if not settings.shopify_admin_token:
        raise ValueError("Refusing to start without SHOPIFY_ADMIN_TOKEN outside local/dev/test")
