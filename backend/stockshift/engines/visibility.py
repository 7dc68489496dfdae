"""Hide an out-of-stock product from every sales channel, and re-publish it."""
from __future__ import annotations

import logging

from stockshift.engines.results import ActionResult, ChannelResult
from stockshift.metrics import ACTIONS_TOTAL
from stockshift.models.snapshot import PublicationScope, SnapshotAction
from stockshift.shopify_client import ShopifyCatalog
from stockshift.snapshot_store import SnapshotKey, SnapshotStore

logger = logging.getLogger(__name__)

HIDDEN = SnapshotAction.HIDDEN


async def hide_product(
    catalog: ShopifyCatalog,
    store: SnapshotStore,
    *,
    shop_id: int,
    product_id: str,
) -> ActionResult:
    publications = await catalog.fetch_product_publications(product_id)
    if publications is None:
        return ActionResult(True, "Product no longer exists")

    published = [p for p in publications if p.is_published]
    if not published:
        return ActionResult(True, "Product already unpublished from all channels")

    channels: list[ChannelResult] = []
    for publication in published:
        await store.upsert_active(
            SnapshotKey(shop_id, product_id, PublicationScope(publication.publication_id), HIDDEN)
        )
        errors = await catalog.unpublish(product_id, publication.publication_id)
        channels.append(
            ChannelResult(
                publication_id=publication.publication_id,
                name=publication.name,
                success=not errors,
                errors=[e.message for e in errors],
            )
        )
        ACTIONS_TOTAL.labels(action=HIDDEN.value, operation="apply", outcome="ok" if not errors else "failed").inc()
        if errors:
            logger.warning("Unpublish of %s from %s rejected: %s", product_id, publication.name, errors)

    success = all(c.success for c in channels)
    reason = None
    if not success:
        reason = "; ".join(f"{c.name}: {', '.join(c.errors)}" for c in channels if not c.success)
    return ActionResult(success, reason, changed=any(c.success for c in channels), channels=channels)


async def restore_visibility(
    catalog: ShopifyCatalog,
    store: SnapshotStore,
    *,
    shop_id: int,
    product_id: str,
) -> ActionResult:
    snapshots = await store.find_active(shop_id, product_id, action=HIDDEN)
    if not snapshots:
        return ActionResult(True, "No hidden snapshots to restore")

    if await catalog.fetch_product_title(product_id) is None:
        for snapshot in snapshots:
            await store.mark_restored(snapshot.id)
        return ActionResult(True, "Product no longer exists, snapshots cleared", changed=True)

    channels: list[ChannelResult] = []
    for snapshot in snapshots:
        publication_id = snapshot.scope_id
        errors = await catalog.publish(product_id, publication_id)
        if not errors:
            await store.mark_restored(snapshot.id)
        else:
            logger.warning("Re-publish of %s to %s rejected: %s", product_id, publication_id, errors)
        ACTIONS_TOTAL.labels(action=HIDDEN.value, operation="restore", outcome="ok" if not errors else "failed").inc()
        channels.append(
            ChannelResult(
                publication_id=publication_id,
                name=publication_id,
                success=not errors,
                errors=[e.message for e in errors],
            )
        )

    success = all(c.success for c in channels)
    reason = None
    if not success:
        reason = "; ".join(f"{c.publication_id}: {', '.join(c.errors)}" for c in channels if not c.success)
    return ActionResult(success, reason, changed=any(c.success for c in channels), channels=channels)
