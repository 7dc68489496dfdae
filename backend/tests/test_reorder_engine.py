from __future__ import annotations

from conftest import FakeCatalog, create_shop, run_with_db

from stockshift.engines.reorder import push_to_end, restore_position
from stockshift.models.snapshot import CollectionScope, SnapshotAction
from stockshift.snapshot_store import SnapshotStore

PUSHED = SnapshotAction.PUSHED_TO_END


def _catalog(sort_order: str = "MANUAL") -> FakeCatalog:
    catalog = FakeCatalog()
    for pid in ("a", "b", "c", "d"):
        catalog.add_product(pid, [0])
    catalog.add_collection("c1", ["a", "b", "c", "d"], sort_order=sort_order)
    return catalog


def test_push_then_restore_returns_to_original_index() -> None:
    catalog = _catalog()

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        pushed = await push_to_end(catalog, store, shop_id=shop_id, product_id="b", collection_id="c1")
        assert pushed.success and pushed.changed
        assert catalog.order("c1") == ["a", "c", "d", "b"]
        [snapshot] = await store.find_active(shop_id, "b")
        assert snapshot.original_position == 1
        assert snapshot.original_scope_order is None

        restored = await restore_position(catalog, store, shop_id=shop_id, product_id="b", collection_id="c1")
        assert restored.success
        assert catalog.order("c1") == ["a", "b", "c", "d"]
        assert await store.find_active(shop_id, "b") == []
        assert catalog.count("sort_order") == 0

    run_with_db(scenario)


def test_repeated_push_keeps_first_snapshot_and_skips_move() -> None:
    catalog = _catalog()

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        again = await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")

        assert again.success
        assert again.reason == "Product already at end"
        assert again.changed is False
        assert catalog.count("move") == 1
        [snapshot] = await store.find_active(shop_id, "a")
        assert snapshot.original_position == 0

    run_with_db(scenario)


def test_non_manual_collection_switches_once_and_is_released_by_last_restore() -> None:
    catalog = _catalog(sort_order="BEST_SELLING")

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        await push_to_end(catalog, store, shop_id=shop_id, product_id="b", collection_id="c1")
        assert catalog.collections["c1"].sort_order == "MANUAL"
        assert catalog.count("sort_order") == 1
        for snapshot in await store.list_active(shop_id):
            assert snapshot.original_scope_order == "BEST_SELLING"

        await restore_position(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        assert catalog.collections["c1"].sort_order == "MANUAL"

        await restore_position(catalog, store, shop_id=shop_id, product_id="b", collection_id="c1")
        assert catalog.collections["c1"].sort_order == "BEST_SELLING"
        assert await store.count_active(shop_id, CollectionScope("c1"), PUSHED) == 0

    run_with_db(scenario)


def test_product_not_in_collection_fails_without_switching_sort_order() -> None:
    catalog = _catalog(sort_order="TITLE")
    catalog.add_product("x", [0])

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        result = await push_to_end(catalog, store, shop_id=shop_id, product_id="x", collection_id="c1")
        assert result.success is False
        assert result.reason == "Product not in collection"
        assert catalog.count("sort_order") == 0
        assert await store.find_active(shop_id, "x") == []

        missing = await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="gone")
        assert missing.reason == "Collection not found"

    run_with_db(scenario)


def test_failed_move_keeps_snapshot() -> None:
    catalog = _catalog()
    catalog.move_errors.add(("c1", "a"))

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        result = await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        assert result.success is False
        assert "Move rejected" in result.reason
        assert len(await store.find_active(shop_id, "a")) == 1

    run_with_db(scenario)


def test_restore_clamps_to_shrunken_collection() -> None:
    catalog = _catalog()

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        await push_to_end(catalog, store, shop_id=shop_id, product_id="c", collection_id="c1")
        catalog.collections["c1"].product_ids = ["d", "c"]

        result = await restore_position(catalog, store, shop_id=shop_id, product_id="c", collection_id="c1")
        assert result.success
        assert catalog.order("c1") == ["d", "c"]
        assert catalog.calls[-1] == ("move", "c1", "c", 1)

    run_with_db(scenario)


def test_restore_when_product_left_collection_clears_snapshot() -> None:
    catalog = _catalog()

    async def scenario(factory):
        shop_id = await create_shop(factory)
        store = SnapshotStore(factory)

        await push_to_end(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        catalog.collections["c1"].product_ids.remove("a")

        result = await restore_position(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        assert result.success
        assert await store.find_active(shop_id, "a") == []

        noop = await restore_position(catalog, store, shop_id=shop_id, product_id="a", collection_id="c1")
        assert noop.reason == "No active snapshot"

    run_with_db(scenario)
