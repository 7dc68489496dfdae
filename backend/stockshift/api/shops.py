"""Admin API — shop settings, collection rules, sync triggers and the dashboard.

Authentication happens upstream; these routes trust the `{shop}` path.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from stockshift.config import settings
from stockshift.db import get_session
from stockshift.models.snapshot import SnapshotAction
from stockshift.reconcile import SyncOrchestrator
from stockshift.schemas.shop_config import CollectionRuleUpsert, ShopConfig, ShopSettingsUpdate
from stockshift.shop_service import (
    delete_collection_rule,
    get_or_create_shop,
    to_config,
    update_settings,
    upsert_collection_rule,
)
from stockshift.shopify_client import CatalogError

router = APIRouter(prefix="/api/shops", tags=["shops"])
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator


class ActivityItem(BaseModel):
    id: int
    product_id: str
    product_title: str | None
    action: str
    detail: str | None
    created_at: datetime


class DashboardResponse(BaseModel):
    shop: str
    enabled: bool
    pushed_count: int
    hidden_count: int
    recent_activity: list[ActivityItem]


def _activity_item(row: Any) -> ActivityItem:
    return ActivityItem(
        id=row.id,
        product_id=row.product_id,
        product_title=row.product_title,
        action=str(row.action),
        detail=row.detail,
        created_at=row.created_at,
    )


@router.get("/{shop}/settings")
async def read_settings(shop: str, db: AsyncSession = Depends(get_session)) -> ShopConfig:
    record = await get_or_create_shop(db, shop)
    await db.commit()
    return to_config(record)


@router.put("/{shop}/settings")
async def save_settings(
    shop: str,
    payload: ShopSettingsUpdate,
    db: AsyncSession = Depends(get_session),
) -> ShopConfig:
    record = await update_settings(db, shop, payload)
    await db.commit()
    logger.info("Settings saved for %s", shop, extra={"shop": shop, **payload.model_dump(mode="json")})
    return to_config(record)


@router.put("/{shop}/rules/{collection_id:path}")
async def save_collection_rule(
    shop: str,
    collection_id: str,
    payload: CollectionRuleUpsert,
    db: AsyncSession = Depends(get_session),
) -> ShopConfig:
    if not collection_id.strip():
        raise HTTPException(status_code=400, detail="Collection and behavior are required")
    record = await get_or_create_shop(db, shop)
    await upsert_collection_rule(
        db,
        record,
        collection_id=collection_id,
        behavior=payload.behavior,
        collection_title=payload.collection_title,
    )
    await db.commit()
    return to_config(record)


@router.delete("/{shop}/rules/{collection_id:path}")
async def remove_collection_rule(
    shop: str,
    collection_id: str,
    db: AsyncSession = Depends(get_session),
) -> ShopConfig:
    record = await get_or_create_shop(db, shop)
    removed = await delete_collection_rule(db, record, collection_id)
    await db.commit()
    if not removed:
        raise HTTPException(status_code=404, detail="Collection rule not found")
    return to_config(record)


@router.post("/{shop}/sync")
async def trigger_full_sync(
    shop: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = await orchestrator.run_full_sync(shop)
    return asdict(result)


@router.post("/{shop}/restore-hidden")
async def trigger_restore_hidden(
    shop: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        result = await orchestrator.restore_all_hidden(shop)
    except CatalogError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return asdict(result)


@router.get("/{shop}/dashboard")
async def read_dashboard(
    shop: str,
    db: AsyncSession = Depends(get_session),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DashboardResponse:
    record = await get_or_create_shop(db, shop)
    await db.commit()
    counts = await orchestrator.store.count_active_by_action(record.id)
    recent = await orchestrator.activity.recent(record.id, limit=20)
    return DashboardResponse(
        shop=record.domain,
        enabled=record.enabled,
        pushed_count=counts[SnapshotAction.PUSHED_TO_END],
        hidden_count=counts[SnapshotAction.HIDDEN],
        recent_activity=[_activity_item(row) for row in recent],
    )


@router.get("/{shop}/activity")
async def read_activity(
    shop: str,
    limit: int = settings.ACTIVITY_FEED_LIMIT,
    db: AsyncSession = Depends(get_session),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> list[ActivityItem]:
    record = await get_or_create_shop(db, shop)
    await db.commit()
    rows = await orchestrator.activity.recent(record.id, limit=max(1, min(limit, 500)))
    return [_activity_item(row) for row in rows]
