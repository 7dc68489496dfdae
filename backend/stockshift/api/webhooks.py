"""Webhook intake — dispatches platform notifications to the reconciliation core.

HMAC verification is done by the ingress in front of this service.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stockshift.api.shops import get_orchestrator
from stockshift.db import get_session
from stockshift.reconcile import SyncOrchestrator
from stockshift.shop_service import purge_shop

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

ACKNOWLEDGED_TOPICS = {
    "APP_SCOPES_UPDATE",
    "CUSTOMERS_DATA_REQUEST",
    "CUSTOMERS_REDACT",
}
PURGE_TOPICS = {"APP_UNINSTALLED", "SHOP_REDACT"}


def normalize_topic(topic: str) -> str:
    """`inventory_levels/update` and `INVENTORY_LEVELS_UPDATE` name the same topic."""
    return str(topic or "").strip().upper().replace("/", "_")


def inventory_item_id_from(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    raw = payload.get("inventory_item_id")
    if raw is None or raw == "":
        return None
    return str(raw)


@router.post("")
async def receive_webhook(
    request: Request,
    background: BackgroundTasks,
    x_shopify_topic: str = Header(...),
    x_shopify_shop_domain: str = Header(...),
    db: AsyncSession = Depends(get_session),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, str]:
    topic = normalize_topic(x_shopify_topic)
    shop = x_shopify_shop_domain.strip()
    logger.info("Received %s webhook for %s", topic, shop)

    if topic == "INVENTORY_LEVELS_UPDATE":
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON payload")
        inventory_item_id = inventory_item_id_from(payload)
        if inventory_item_id is None:
            return {"status": "ignored"}
        background.add_task(orchestrator.evaluate_and_reconcile_one, shop, inventory_item_id)
        return {"status": "accepted"}

    if topic in PURGE_TOPICS:
        await purge_shop(db, shop)
        await db.commit()
        return {"status": "purged"}

    if topic in ACKNOWLEDGED_TOPICS:
        return {"status": "ok"}

    raise HTTPException(status_code=404, detail="Unhandled webhook topic")
