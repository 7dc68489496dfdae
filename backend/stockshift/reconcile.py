"""Sync orchestrator — moves each product from its applied state to its desired state.

Two entry points drive the same per-product pass:

- `evaluate_and_reconcile_one` for an inventory-level notification;
- `run_full_sync` for a sweep of the whole catalog.

A pass reads the product's ACTIVE snapshots (applied), resolves what the
shop configuration asks for (desired), looks the pair up in
`state_engine.TRANSITIONS` and runs the restores before the applies.
Passes for the same product are serialized through the orchestrator's
lease table; reorders inside one collection queue on a per-collection lock.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockshift.activity import ActivityRecorder
from stockshift.behavior import DesiredPlan, desired_plan
from stockshift.config import settings
from stockshift.engines.reorder import push_to_end, restore_position
from stockshift.engines.visibility import hide_product, restore_visibility
from stockshift.inventory import InventoryStatus, evaluate_product, resolve_inventory_item
from stockshift.leases import KeyedLocks, LeaseTable
from stockshift.metrics import (
    FULL_SYNC_DURATION_SECONDS,
    FULL_SYNC_PRODUCTS_TOTAL,
    LEASE_CONTENTION_TOTAL,
    RECONCILE_FAILURES_TOTAL,
    RECONCILE_PASSES_TOTAL,
)
from stockshift.models.activity import ActivityAction
from stockshift.models.shop import Shop
from stockshift.models.snapshot import ProductSnapshot, ScopeKind, SnapshotAction
from stockshift.schemas.catalog import ProductNode
from stockshift.schemas.shop_config import ShopConfig
from stockshift.shop_service import get_or_create_shop, to_config
from stockshift.shopify_client import CatalogError, ShopifyCatalog
from stockshift.snapshot_store import SnapshotStore
from stockshift.state_engine import ProductState, plan_transition

logger = logging.getLogger(__name__)

PUSHED = SnapshotAction.PUSHED_TO_END
HIDDEN = SnapshotAction.HIDDEN

CatalogFactory = Callable[[Shop], ShopifyCatalog]


def default_catalog_factory(shop: Shop) -> ShopifyCatalog:
    if not shop.access_token:
        raise CatalogError(f"No Admin API access token stored for {shop.domain}")
    return ShopifyCatalog(shop.domain, shop.access_token)


@dataclass(slots=True)
class ReconcileOutcome:
    product_id: str
    state: ProductState | None = None
    success: bool = True
    skipped: bool = False
    restored: frozenset[SnapshotAction] = frozenset()
    applied: frozenset[SnapshotAction] = frozenset()
    error: str | None = None


@dataclass(slots=True)
class FullSyncResult:
    processed_count: int
    message: str
    failed_count: int = 0
    cancelled: bool = False


@dataclass(slots=True)
class RestoreResult:
    restored_count: int
    message: str
    failed_product_ids: list[str] = field(default_factory=list)


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog_factory: CatalogFactory = default_catalog_factory,
        *,
        leases: LeaseTable | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._catalog_factory = catalog_factory
        self.store = SnapshotStore(session_factory)
        self.activity = ActivityRecorder(session_factory)
        self.leases = leases if leases is not None else LeaseTable(settings.LEASE_COOLDOWN_S)
        self.collection_locks = KeyedLocks()
        self._concurrency = max(1, concurrency or settings.SYNC_CONCURRENCY)

    async def _load_shop(self, domain: str) -> Shop:
        async with self._session_factory() as session:
            shop = await get_or_create_shop(session, domain)
            await session.commit()
            return shop

    # ── Entry points ──

    async def evaluate_and_reconcile_one(
        self,
        shop_domain: str,
        inventory_item_id: str | int,
    ) -> ReconcileOutcome | None:
        """Reconcile the product owning one inventory item.

        Returns None when the shop is disabled or the item resolves to no
        product; never raises.
        """
        try:
            shop = await self._load_shop(shop_domain)
            if not shop.enabled:
                logger.info("Shop %s is disabled; ignoring inventory item %s", shop_domain, inventory_item_id)
                return None
            config = to_config(shop)
            async with self._catalog_factory(shop) as catalog:
                status = await resolve_inventory_item(catalog, inventory_item_id)
                if status is None:
                    return None
                return await self._reconcile_leased(catalog, config, status, trigger="notification")
        except Exception as exc:
            RECONCILE_FAILURES_TOTAL.labels(trigger="notification", error_class=type(exc).__name__).inc()
            logger.error(
                "Inventory update for %s item %s failed: %s",
                shop_domain,
                inventory_item_id,
                exc,
            )
            return None

    async def run_full_sync(
        self,
        shop_domain: str,
        cancel_event: asyncio.Event | None = None,
    ) -> FullSyncResult:
        """Evaluate and reconcile every product of the shop.

        Products inside one page run concurrently (bounded); `cancel_event`
        is honoured between pages only.
        """
        shop = await self._load_shop(shop_domain)
        if not shop.enabled:
            return FullSyncResult(0, "App is disabled")
        config = to_config(shop)

        processed = 0
        failed = 0
        started = time.perf_counter()
        semaphore = asyncio.Semaphore(self._concurrency)
        try:
            async with self._catalog_factory(shop) as catalog:
                async for page in catalog.iter_product_pages():
                    outcomes = await asyncio.gather(
                        *(self._sync_one(catalog, config, node, semaphore) for node in page.products)
                    )
                    processed += len(outcomes)
                    failed += sum(1 for o in outcomes if not o.success)
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info("Full sync for %s cancelled after %s products", shop_domain, processed)
                        return FullSyncResult(
                            processed,
                            f"Cancelled after {processed} products",
                            failed_count=failed,
                            cancelled=True,
                        )
        except CatalogError as exc:
            logger.error("Full sync for %s stopped after %s products: %s", shop_domain, processed, exc)
            return FullSyncResult(processed, f"Stopped after {processed} products: {exc}", failed_count=failed)
        finally:
            FULL_SYNC_DURATION_SECONDS.observe(time.perf_counter() - started)

        logger.info(
            "Full sync for %s processed %s products (%s failed)",
            shop_domain,
            processed,
            failed,
        )
        return FullSyncResult(processed, f"Processed {processed} products", failed_count=failed)

    async def restore_all_hidden(self, shop_domain: str) -> RestoreResult:
        """Re-publish every product this shop currently holds hidden."""
        shop = await self._load_shop(shop_domain)
        snapshots = await self.store.list_active(shop.id, HIDDEN)
        if not snapshots:
            return RestoreResult(0, "No hidden products to restore")

        product_ids = list(dict.fromkeys(s.product_id for s in snapshots))
        restored = 0
        failed: list[str] = []
        async with self._catalog_factory(shop) as catalog:
            for product_id in product_ids:
                async with self.leases.hold((shop.id, product_id)) as acquired:
                    if not acquired:
                        LEASE_CONTENTION_TOTAL.labels(trigger="restore_all_hidden").inc()
                        failed.append(product_id)
                        continue
                    try:
                        result = await restore_visibility(catalog, self.store, shop_id=shop.id, product_id=product_id)
                        title = await catalog.fetch_product_title(product_id) or product_id
                    except Exception as exc:
                        logger.error("Restoring visibility of %s failed: %s", product_id, exc)
                        failed.append(product_id)
                        continue

                if result.channels:
                    await self.activity.record(
                        shop.id,
                        product_id,
                        title,
                        ActivityAction.RESTORED_VISIBILITY,
                        f"Re-published to {len(result.channels)} channel(s)",
                    )
                if result.success:
                    restored += 1
                else:
                    failed.append(product_id)

        return RestoreResult(restored, f"Restored {restored} hidden products", failed_product_ids=failed)

    # ── Per-product pass ──

    async def _sync_one(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        node: ProductNode,
        semaphore: asyncio.Semaphore,
    ) -> ReconcileOutcome:
        async with semaphore:
            try:
                status = await evaluate_product(catalog, node.id, node.title, first_page=node.variants)
            except Exception as exc:
                FULL_SYNC_PRODUCTS_TOTAL.labels(outcome="failed").inc()
                logger.error("Evaluating %s failed: %s", node.id, exc)
                return ReconcileOutcome(node.id, success=False, error=str(exc))
            if status is None:
                FULL_SYNC_PRODUCTS_TOTAL.labels(outcome="vanished").inc()
                return ReconcileOutcome(node.id, skipped=True)

            outcome = await self._reconcile_leased(catalog, config, status, trigger="full_sync")
            FULL_SYNC_PRODUCTS_TOTAL.labels(outcome="ok" if outcome.success else "failed").inc()
            return outcome

    async def _reconcile_leased(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        status: InventoryStatus,
        *,
        trigger: str,
    ) -> ReconcileOutcome:
        async with self.leases.hold((config.id, status.product_id)) as acquired:
            if not acquired:
                LEASE_CONTENTION_TOTAL.labels(trigger=trigger).inc()
                logger.info("Skipping duplicate %s pass for %s", trigger, status.product_id)
                return ReconcileOutcome(status.product_id, skipped=True)
            try:
                return await self.reconcile_product(catalog, config, status)
            except Exception as exc:
                RECONCILE_FAILURES_TOTAL.labels(trigger=trigger, error_class=type(exc).__name__).inc()
                logger.error("Reconciling %s failed: %s", status.product_id, exc)
                return ReconcileOutcome(status.product_id, success=False, error=str(exc))

    async def reconcile_product(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        status: InventoryStatus,
    ) -> ReconcileOutcome:
        """One reconciliation pass; the caller holds the product lease."""
        applied_snapshots = await self.store.find_active(config.id, status.product_id)
        applied = frozenset(SnapshotAction(s.action) for s in applied_snapshots)

        plan: DesiredPlan | None = None
        desired: frozenset[SnapshotAction] = frozenset()
        if status.is_fully_out_of_stock:
            collections = await catalog.fetch_product_collections(status.product_id)
            plan = desired_plan(config, collections)
            desired = plan.actions

        transition = plan_transition(
            out_of_stock=status.is_fully_out_of_stock,
            desired=desired,
            applied=applied,
        )
        RECONCILE_PASSES_TOTAL.labels(state=transition.state.value).inc()
        if transition.state != ProductState.IN_STOCK_NO_SNAPSHOT:
            logger.info(
                "Product %s is %s (desired=%s applied=%s)",
                status.product_id,
                transition.state.value,
                sorted(a.value for a in desired),
                sorted(a.value for a in applied),
            )

        success = True
        if PUSHED in transition.restore:
            success &= await self._restore_positions(catalog, config, status, applied_snapshots)
        if HIDDEN in transition.restore:
            success &= await self._restore_visibility(catalog, config, status)
        first_apply = transition.state == ProductState.OUT_OF_STOCK_NO_SNAPSHOT
        if plan is not None and (plan.actions or first_apply):
            success &= await self._apply(
                catalog,
                config,
                status,
                plan,
                fresh=transition.apply,
                log_skips=first_apply or bool(transition.apply),
            )

        return ReconcileOutcome(
            status.product_id,
            state=transition.state,
            success=success,
            restored=transition.restore,
            applied=transition.apply,
        )

    async def _apply(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        status: InventoryStatus,
        plan: DesiredPlan,
        *,
        fresh: frozenset[SnapshotAction],
        log_skips: bool,
    ) -> bool:
        """Drive every desired action of `plan` to completion.

        Actions outside `fresh` already have an ACTIVE snapshot; they are
        driven again so a move or unpublish rejected on an earlier pass is
        retried from that snapshot. Such re-drives reach the activity log
        only when they changed something or failed.
        """
        record = self.activity.record
        shop_id, product_id, title = config.id, status.product_id, status.title

        if log_skips:
            for collection in plan.skipped:
                await record(shop_id, product_id, title, ActivityAction.SKIPPED, f"Excluded collection: {collection.title}")

        success = True
        if PUSHED in plan.actions:
            announce = PUSHED in fresh
            for collection in plan.push_targets:
                async with self.collection_locks.hold((shop_id, collection.id)):
                    result = await push_to_end(
                        catalog,
                        self.store,
                        shop_id=shop_id,
                        product_id=product_id,
                        collection_id=collection.id,
                    )
                if not result.success:
                    success = False
                    await record(
                        shop_id,
                        product_id,
                        title,
                        ActivityAction.FAILED,
                        f"Failed in {collection.title}: {result.reason}",
                    )
                elif announce or result.changed:
                    detail = f"Pushed to end of {collection.title}"
                    if result.reason:
                        detail = f"{collection.title}: {result.reason}"
                    await record(shop_id, product_id, title, ActivityAction.DEPRIORITIZED, detail)

        if HIDDEN in plan.actions:
            result = await hide_product(catalog, self.store, shop_id=shop_id, product_id=product_id)
            if not result.success:
                success = False
                await record(shop_id, product_id, title, ActivityAction.FAILED, f"Failed to hide: {result.reason}")
            elif result.changed:
                suffix = "" if plan.hide_source is not None else " (no collections)"
                await record(shop_id, product_id, title, ActivityAction.HIDDEN, f"Hidden from storefront{suffix}")
            elif HIDDEN in fresh:
                await record(shop_id, product_id, title, ActivityAction.SKIPPED, result.reason)

        return success

    async def _restore_positions(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        status: InventoryStatus,
        applied_snapshots: list[ProductSnapshot],
    ) -> bool:
        success = True
        for snapshot in applied_snapshots:
            if snapshot.action != PUSHED.value or snapshot.scope_kind != ScopeKind.COLLECTION.value:
                continue
            async with self.collection_locks.hold((config.id, snapshot.scope_id)):
                result = await restore_position(
                    catalog,
                    self.store,
                    shop_id=config.id,
                    product_id=status.product_id,
                    collection_id=snapshot.scope_id,
                )
            if result.success:
                await self.activity.record(
                    config.id,
                    status.product_id,
                    status.title,
                    ActivityAction.RESTORED_POSITION,
                    result.reason or f"Restored in collection {snapshot.scope_id}",
                )
            else:
                success = False
                await self.activity.record(
                    config.id,
                    status.product_id,
                    status.title,
                    ActivityAction.FAILED,
                    f"Failed to restore position in {snapshot.scope_id}: {result.reason}",
                )
        return success

    async def _restore_visibility(
        self,
        catalog: ShopifyCatalog,
        config: ShopConfig,
        status: InventoryStatus,
    ) -> bool:
        result = await restore_visibility(catalog, self.store, shop_id=config.id, product_id=status.product_id)
        if result.success:
            detail = f"Re-published to {len(result.channels)} channel(s)" if result.channels else result.reason
            await self.activity.record(
                config.id,
                status.product_id,
                status.title,
                ActivityAction.RESTORED_VISIBILITY,
                detail,
            )
        else:
            await self.activity.record(
                config.id,
                status.product_id,
                status.title,
                ActivityAction.FAILED,
                f"Failed to restore visibility: {result.reason}",
            )
        return result.success
