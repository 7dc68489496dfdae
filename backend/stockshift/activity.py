"""Best-effort audit trail of reconciliation decisions."""
from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockshift.metrics import ACTIVITY_WRITE_FAILURES_TOTAL
from stockshift.models.activity import ActivityAction, ActivityLog

logger = logging.getLogger(__name__)


class ActivityRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        shop_id: int,
        product_id: str,
        product_title: str | None,
        action: ActivityAction,
        detail: str | None = None,
    ) -> bool:
        """Append one record. Failures are logged and swallowed; returns False on failure."""
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    ActivityLog(
                        shop_id=shop_id,
                        product_id=product_id,
                        product_title=product_title,
                        action=ActivityAction(action).value,
                        detail=detail,
                    )
                )
            return True
        except Exception as exc:
            ACTIVITY_WRITE_FAILURES_TOTAL.inc()
            logger.error(
                "Failed to record activity %s for product %s: %s",
                getattr(action, "value", action),
                product_id,
                exc,
            )
            return False

    async def recent(self, shop_id: int, limit: int = 50) -> list[ActivityLog]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(ActivityLog)
                .where(ActivityLog.shop_id == shop_id)
                .order_by(desc(ActivityLog.created_at), desc(ActivityLog.id))
                .limit(limit)
            )
            return list(rows.scalars().all())
