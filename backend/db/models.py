"""
Inventory Radar Database Models

3 tables backing the variant metrics pipeline.
Every table is scoped by shop_domain (one Shopify shop per tenant).

Tables:
  1. inventory_metrics  - Latest computed snapshot per (shop, variant), upserted on sync
  2. sync_logs          - Append-only audit trail of sync / export / digest attempts
  3. shop_settings      - Per-shop thresholds and digest preferences
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from db.session import Base

SYNC_LOG_MESSAGE_MAX_LENGTH = 500

# ─── 1. Inventory Metrics ──────────────────────────────────────────────────


class InventoryMetric(Base):
    """Last computed snapshot for one variant of one shop.

    Overwritten in place on every successful refresh; no history is kept.
    """

    __tablename__ = "inventory_metrics"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    shop_domain = Column(String(255), nullable=False)
    variant_id = Column(String(255), nullable=False)  # gid://shopify/ProductVariant/...
    sku = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    variant_title = Column(String(500), nullable=False, default="")
    available = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Float)
    sales_30d = Column(Integer, nullable=False, default=0)
    sales_60d = Column(Integer, nullable=False, default=0)
    sales_90d = Column(Integer, nullable=False, default=0)
    last_calculated = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("shop_domain", "variant_id", name="uq_inventory_metric_shop_variant"),
        Index("ix_inventory_metrics_shop_calculated", "shop_domain", "last_calculated"),
    )


# ─── 2. Sync Logs ──────────────────────────────────────────────────────────


class SyncLog(Base):
    """Audit record for one sync / export / digest attempt.

    Rows are append-only; the only mutation is a queued job moving from
    'pending' to 'success' or 'failure'.
    """

    __tablename__ = "sync_logs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    shop_domain = Column(String(255), nullable=False)
    scope = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'success', 'failure')", name="ck_sync_log_status"),
        Index("ix_sync_logs_shop_created", "shop_domain", "created_at"),
    )


# ─── 3. Shop Settings ──────────────────────────────────────────────────────


class ShopSetting(Base):
    """Per-shop thresholds. Missing row (or NULL column) means 'use defaults'."""

    __tablename__ = "shop_settings"

    shop_domain = Column(String(255), primary_key=True)
    shortage_threshold_days = Column(Float)
    overstock_threshold_days = Column(Float)
    mild_overstock_threshold_days = Column(Float)
    safety_days = Column(Float)
    lead_time_days = Column(Float)
    history_window_days = Column(Integer)
    digest_frequency = Column(String(10))  # daily, weekly, off
    digest_send_hour = Column(Integer)
    digest_daily_enabled = Column(Boolean)
    digest_weekly_enabled = Column(Boolean)
    email_recipients = Column(Text)
    slack_webhook = Column(String(500))
    slack_enabled = Column(Boolean)
    locations = Column(JSON)  # [{"id": ..., "selected": bool}]
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "digest_frequency IS NULL OR digest_frequency IN ('daily', 'weekly', 'off')",
            name="ck_shop_setting_digest_frequency",
        ),
    )
