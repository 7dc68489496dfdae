"""Push an out-of-stock product to the end of a collection, and put it back.

"End of collection" only exists for MANUAL ordering. A collection on any
other sort mode is switched to MANUAL by the first product pushed into
it; the prior mode is remembered on that product's snapshot, copied onto
every later snapshot in the same collection, and written back when the
last of them is restored.
"""
from __future__ import annotations

import logging

from stockshift.engines.results import ActionResult
from stockshift.metrics import ACTIONS_TOTAL, SORT_ORDER_SWITCHES_TOTAL
from stockshift.models.snapshot import CollectionScope, ProductSnapshot, SnapshotAction
from stockshift.schemas.catalog import MANUAL_SORT_ORDER, join_user_errors
from stockshift.shopify_client import ShopifyCatalog
from stockshift.snapshot_store import SnapshotKey, SnapshotStore

logger = logging.getLogger(__name__)

PUSHED = SnapshotAction.PUSHED_TO_END


def _done(operation: str, result: ActionResult) -> ActionResult:
    outcome = "ok" if result.success else "failed"
    ACTIONS_TOTAL.labels(action=PUSHED.value, operation=operation, outcome=outcome).inc()
    return result


async def push_to_end(
    catalog: ShopifyCatalog,
    store: SnapshotStore,
    *,
    shop_id: int,
    product_id: str,
    collection_id: str,
) -> ActionResult:
    scope = CollectionScope(collection_id)

    ordering = await catalog.fetch_collection_ordering(collection_id)
    if ordering is None:
        return _done("apply", ActionResult(False, "Collection not found"))
    if ordering.index_of(product_id) == -1:
        return _done("apply", ActionResult(False, "Product not in collection"))

    inherited = await store.first_active_in_scope(shop_id, scope, PUSHED)
    remembered_order = inherited.original_scope_order if inherited is not None else None

    if not ordering.is_manual and inherited is None:
        prior_order = ordering.sort_order
        errors = await catalog.update_collection_sort_order(collection_id, MANUAL_SORT_ORDER)
        if errors:
            return _done("apply", ActionResult(False, f"Could not switch to manual order: {join_user_errors(errors)}"))
        SORT_ORDER_SWITCHES_TOTAL.labels(direction="to_manual").inc()
        logger.info("Switched collection %s from %s to MANUAL", collection_id, prior_order)
        remembered_order = prior_order

        # The switch freezes the current order; that is the baseline.
        ordering = await catalog.fetch_collection_ordering(collection_id)
        if ordering is None:
            return _done("apply", ActionResult(False, "Collection not found"))

    current_index = ordering.index_of(product_id)
    if current_index == -1:
        return _done("apply", ActionResult(False, "Product not in collection"))

    snapshot, created = await store.upsert_active(
        SnapshotKey(shop_id, product_id, scope, PUSHED),
        original_position=current_index,
        original_scope_order=remembered_order,
    )

    last_index = len(ordering.product_ids) - 1
    if current_index == last_index:
        return _done("apply", ActionResult(True, "Product already at end", changed=created))

    errors = await catalog.move_product(collection_id, product_id, last_index)
    if errors:
        # The snapshot stays ACTIVE so a later pass retries from the recorded position.
        return _done("apply", ActionResult(False, join_user_errors(errors), changed=created))

    logger.info(
        "Pushed %s to end of %s (from %s, snapshot %s)",
        product_id,
        collection_id,
        current_index,
        snapshot.id,
    )
    return _done("apply", ActionResult(True, changed=True))


async def _release_sort_order(
    catalog: ShopifyCatalog,
    store: SnapshotStore,
    *,
    shop_id: int,
    collection_id: str,
    snapshot: ProductSnapshot,
) -> None:
    if not snapshot.original_scope_order:
        return
    remaining = await store.count_active(shop_id, CollectionScope(collection_id), PUSHED)
    if remaining:
        return
    errors = await catalog.update_collection_sort_order(collection_id, snapshot.original_scope_order)
    if errors:
        logger.warning(
            "Could not restore sort order %s on %s: %s",
            snapshot.original_scope_order,
            collection_id,
            join_user_errors(errors),
        )
        return
    SORT_ORDER_SWITCHES_TOTAL.labels(direction="to_original").inc()
    logger.info("Restored collection %s sort order to %s", collection_id, snapshot.original_scope_order)


async def restore_position(
    catalog: ShopifyCatalog,
    store: SnapshotStore,
    *,
    shop_id: int,
    product_id: str,
    collection_id: str,
) -> ActionResult:
    active = await store.find_active(shop_id, product_id, CollectionScope(collection_id), PUSHED)
    if not active:
        return ActionResult(True, "No active snapshot")
    snapshot = active[0]

    try:
        ordering = await catalog.fetch_collection_ordering(collection_id)
        current_index = ordering.index_of(product_id) if ordering is not None else -1

        if current_index == -1:
            await store.mark_restored(snapshot.id)
            return _done("restore", ActionResult(True, "Product no longer in collection, snapshot cleared", changed=True))

        target = min(snapshot.original_position or 0, len(ordering.product_ids) - 1)
        errors = await catalog.move_product(collection_id, product_id, target)
        if errors:
            return _done("restore", ActionResult(False, join_user_errors(errors)))

        await store.mark_restored(snapshot.id)
        logger.info("Restored %s in %s to position %s", product_id, collection_id, target)
        return _done("restore", ActionResult(True, changed=True))
    finally:
        await _release_sort_order(
            catalog,
            store,
            shop_id=shop_id,
            collection_id=collection_id,
            snapshot=snapshot,
        )
