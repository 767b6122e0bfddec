"""
Sync Log Sink — operational audit trail in the sync_logs table.

append() must never raise: a broken audit write is reported through
structlog and swallowed so it can't take down a metrics request.
Queued jobs are the one exception to append-only: request() writes a
'pending' row and resolve() moves it to 'success' or 'failure' once.
"""

import json
import uuid
from collections.abc import Iterable
from datetime import datetime
from enum import Enum

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import SYNC_LOG_MESSAGE_MAX_LENGTH, SyncLog

logger = structlog.get_logger()


class SyncScope(str, Enum):
    """Operation kinds recorded in the audit trail."""

    SYNC = "sync"
    INVENTORY = "inventory"
    CACHE = "cache"
    ORDERS = "orders"
    DIGEST = "digest"
    SYNC_REPLENISHMENT = "sync-replenishment"
    SYNC_OVERSTOCK = "sync-overstock"
    EXPORT_REPLENISHMENT = "export-replenishment"
    EXPORT_OVERSTOCK = "export-overstock"
    BUDGET_PLAN = "budget-plan"


class SyncLogStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


# Scopes whose success means "metrics were recalculated". Job rows (sync)
# and cache serves are excluded: they can resolve without a recalculation.
CALCULATION_SCOPES = (
    SyncScope.INVENTORY,
    SyncScope.SYNC_REPLENISHMENT,
    SyncScope.SYNC_OVERSTOCK,
)


def normalize_message(message: object) -> str | None:
    """Flatten any message payload to text no longer than the column allows."""
    if message is None:
        return None
    if isinstance(message, BaseException):
        text = str(message) or type(message).__name__
    elif isinstance(message, str):
        text = message
    elif isinstance(message, (dict, list)):
        text = json.dumps(message, default=str)
    else:
        text = str(message)
    return text[:SYNC_LOG_MESSAGE_MAX_LENGTH]


class SyncLogSink:
    """Writes SyncLogEntry rows through the request's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        shop_domain: str,
        scope: SyncScope | str,
        status: SyncLogStatus | str,
        message: object = None,
    ) -> None:
        scope_value = getattr(scope, "value", scope)
        status_value = getattr(status, "value", status)
        try:
            self.db.add(
                SyncLog(
                    shop_domain=shop_domain,
                    scope=SyncScope(scope_value).value,
                    status=SyncLogStatus(status_value).value,
                    message=normalize_message(message),
                    created_at=datetime.utcnow(),
                )
            )
            await self.db.commit()
        except Exception as exc:
            logger.warning(
                "sync_log.append_failed",
                shop=shop_domain,
                scope=scope_value,
                status=status_value,
                error=str(exc),
            )
            try:
                await self.db.rollback()
            except Exception as rollback_exc:
                logger.warning("sync_log.rollback_failed", shop=shop_domain, error=str(rollback_exc))

    async def request(self, shop_domain: str, scope: SyncScope | str = SyncScope.INVENTORY) -> uuid.UUID:
        """Queue a job row in 'pending' state and return its id."""
        job = SyncLog(
            shop_domain=shop_domain,
            scope=SyncScope(scope).value,
            status=SyncLogStatus.PENDING.value,
            message="queued",
            created_at=datetime.utcnow(),
        )
        self.db.add(job)
        await self.db.commit()
        return job.id

    async def resolve(
        self,
        job_id: uuid.UUID,
        status: SyncLogStatus | str,
        message: object = None,
    ) -> bool:
        """
        Move a pending job to its final state.

        Returns False when the job doesn't exist or has already been resolved.
        """
        status = SyncLogStatus(status)
        if status == SyncLogStatus.PENDING:
            raise ValueError("A job can only be resolved to success or failure")

        job = await self.db.get(SyncLog, job_id)
        if job is None or job.status != SyncLogStatus.PENDING.value:
            return False

        job.status = status.value
        job.message = normalize_message(message)
        await self.db.commit()
        return True

    async def get(self, job_id: uuid.UUID) -> SyncLog | None:
        return await self.db.get(SyncLog, job_id)

    async def last_at(
        self,
        shop_domain: str,
        scopes: Iterable[SyncScope | str] = CALCULATION_SCOPES,
        status: SyncLogStatus | str = SyncLogStatus.SUCCESS,
    ) -> datetime | None:
        """Timestamp of the newest matching entry, or None."""
        result = await self.db.execute(
            select(func.max(SyncLog.created_at)).where(
                SyncLog.shop_domain == shop_domain,
                SyncLog.scope.in_([SyncScope(scope).value for scope in scopes]),
                SyncLog.status == SyncLogStatus(status).value,
            )
        )
        return result.scalar_one_or_none()

    async def last_message(
        self,
        shop_domain: str,
        scope: SyncScope | str,
        status: SyncLogStatus | str = SyncLogStatus.FAILURE,
    ) -> str | None:
        result = await self.db.execute(
            select(SyncLog.message)
            .where(
                SyncLog.shop_domain == shop_domain,
                SyncLog.scope == SyncScope(scope).value,
                SyncLog.status == SyncLogStatus(status).value,
            )
            .order_by(SyncLog.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def recent(self, shop_domain: str, limit: int = 20) -> list[SyncLog]:
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.shop_domain == shop_domain)
            .order_by(SyncLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
