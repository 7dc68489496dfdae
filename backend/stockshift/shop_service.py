"""Shop configuration persistence helpers.

Centralizes reads and writes of `shops` and `collection_rules`. Helpers take
the caller's session and never commit; the caller owns the unit of work.
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockshift.models.activity import ActivityLog
from stockshift.models.shop import Behavior, CollectionRule, Shop
from stockshift.models.snapshot import ProductSnapshot
from stockshift.schemas.shop_config import ShopConfig, ShopSettingsUpdate

logger = logging.getLogger(__name__)


async def get_shop(session: AsyncSession, domain: str) -> Shop | None:
    return (await session.execute(select(Shop).where(Shop.domain == domain))).scalar()


async def get_or_create_shop(session: AsyncSession, domain: str) -> Shop:
    """Load the shop row, creating it with defaults on first sight.

    Call this first in a unit of work: a concurrent insert of the same
    domain rolls the session back before re-reading the winner's row.
    """
    shop = await get_shop(session, domain)
    if shop is not None:
        return shop

    shop = Shop(
        domain=domain,
        enabled=True,
        default_behavior=Behavior.PUSH_TO_END.value,
        apply_to_all=True,
        collection_rules=[],
    )
    session.add(shop)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        shop = await get_shop(session, domain)
        if shop is None:
            raise
        return shop
    logger.info("Created shop record for %s", domain)
    return shop


def to_config(shop: Shop) -> ShopConfig:
    return ShopConfig.model_validate(shop)


async def update_settings(session: AsyncSession, domain: str, update: ShopSettingsUpdate) -> Shop:
    shop = await get_or_create_shop(session, domain)
    shop.enabled = update.enabled
    shop.default_behavior = Behavior(update.default_behavior).value
    shop.apply_to_all = update.apply_to_all
    await session.flush()
    return shop


async def upsert_collection_rule(
    session: AsyncSession,
    shop: Shop,
    *,
    collection_id: str,
    behavior: Behavior,
    collection_title: str | None = None,
) -> CollectionRule:
    rule = (
        await session.execute(
            select(CollectionRule).where(
                CollectionRule.shop_id == shop.id,
                CollectionRule.collection_id == collection_id,
            )
        )
    ).scalar()
    if rule is None:
        rule = CollectionRule(
            shop_id=shop.id,
            collection_id=collection_id,
            collection_title=collection_title or "Unknown",
            behavior=Behavior(behavior).value,
        )
        session.add(rule)
    else:
        rule.behavior = Behavior(behavior).value
        if collection_title:
            rule.collection_title = collection_title
    await session.flush()
    await session.refresh(shop, attribute_names=["collection_rules"])
    return rule


async def delete_collection_rule(session: AsyncSession, shop: Shop, collection_id: str) -> bool:
    """Remove a rule so the collection falls back to the shop default."""
    result = await session.execute(
        delete(CollectionRule).where(
            CollectionRule.shop_id == shop.id,
            CollectionRule.collection_id == collection_id,
        )
    )
    await session.refresh(shop, attribute_names=["collection_rules"])
    return bool(result.rowcount)


async def purge_shop(session: AsyncSession, domain: str) -> bool:
    """Delete a shop and everything recorded for it (uninstall / shop redact)."""
    shop = await get_shop(session, domain)
    if shop is None:
        return False
    await session.execute(delete(ActivityLog).where(ActivityLog.shop_id == shop.id))
    await session.execute(delete(ProductSnapshot).where(ProductSnapshot.shop_id == shop.id))
    await session.execute(delete(CollectionRule).where(CollectionRule.shop_id == shop.id))
    await session.execute(delete(Shop).where(Shop.id == shop.id))
    logger.info("Purged shop data for %s", domain)
    return True


async def list_enabled_domains(session: AsyncSession) -> list[str]:
    rows = await session.execute(select(Shop.domain).where(Shop.enabled.is_(True)).order_by(Shop.id))
    return [row for row in rows.scalars().all()]
