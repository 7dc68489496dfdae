"""Full-sync worker.

Beat fans out one task per enabled shop; each task sweeps that shop's
catalog through the reconciliation core.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from stockshift.celery_app import celery
from stockshift.db import build_engine, build_session_factory
from stockshift.reconcile import FullSyncResult, SyncOrchestrator
from stockshift.shop_service import list_enabled_domains

logger = logging.getLogger(__name__)


@celery.task(name="stockshift.workers.sync.run_scheduled_sync")
def run_scheduled_sync() -> int:
    """Celery Beat task to fan out full syncs."""
    domains = asyncio.run(_enabled_domains())
    for domain in domains:
        logger.info("Scheduling full sync for %s", domain)
        celery.send_task(
            "stockshift.workers.sync.run_shop_sync",
            args=[domain],
            queue="sync",
            routing_key="sync",
        )
    return len(domains)


async def _enabled_domains() -> list[str]:
    engine = build_engine(pooled=False)
    try:
        async with build_session_factory(engine)() as session:
            return await list_enabled_domains(session)
    finally:
        await engine.dispose()


async def _full_sync(shop_domain: str) -> FullSyncResult:
    engine = build_engine(pooled=False)
    try:
        return await SyncOrchestrator(build_session_factory(engine)).run_full_sync(shop_domain)
    finally:
        await engine.dispose()


@celery.task(name="stockshift.workers.sync.run_shop_sync")
def run_shop_sync(shop_domain: str) -> dict[str, Any]:
    result = asyncio.run(_full_sync(shop_domain))
    logger.info(
        "Full sync for %s: %s",
        shop_domain,
        result.message,
        extra={"shop": shop_domain, "processed": result.processed_count, "failed": result.failed_count},
    )
    return asdict(result)
