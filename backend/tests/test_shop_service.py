from __future__ import annotations

from conftest import run_with_db

from stockshift.models.shop import Behavior
from stockshift.schemas.shop_config import ShopSettingsUpdate
from stockshift.shop_service import (
    delete_collection_rule,
    get_or_create_shop,
    get_shop,
    list_enabled_domains,
    purge_shop,
    to_config,
    update_settings,
    upsert_collection_rule,
)
from stockshift.snapshot_store import SnapshotKey, SnapshotStore
from stockshift.models.snapshot import CollectionScope, SnapshotAction


def test_first_sight_creates_defaults() -> None:
    async def scenario(factory):
        async with factory() as session:
            shop = await get_or_create_shop(session, "new.myshopify.com")
            await session.commit()
            config = to_config(shop)
        assert config.enabled is True
        assert config.default_behavior == Behavior.PUSH_TO_END
        assert config.apply_to_all is True
        assert config.collection_rules == ()

    run_with_db(scenario)


def test_rules_upsert_and_delete() -> None:
    async def scenario(factory):
        async with factory() as session:
            shop = await get_or_create_shop(session, "demo.myshopify.com")
            await upsert_collection_rule(session, shop, collection_id="c1", behavior=Behavior.HIDE, collection_title="Sale")
            await upsert_collection_rule(session, shop, collection_id="c1", behavior=Behavior.EXCLUDE)
            await session.commit()
            config = to_config(shop)
            assert [(r.collection_id, r.collection_title, r.behavior) for r in config.collection_rules] == [
                ("c1", "Sale", Behavior.EXCLUDE)
            ]

            assert await delete_collection_rule(session, shop, "c1") is True
            assert await delete_collection_rule(session, shop, "c1") is False
            await session.commit()
            assert to_config(shop).collection_rules == ()

    run_with_db(scenario)


def test_settings_update_and_enabled_listing() -> None:
    async def scenario(factory):
        async with factory() as session:
            await get_or_create_shop(session, "a.myshopify.com")
            await update_settings(
                session,
                "b.myshopify.com",
                ShopSettingsUpdate(enabled=False, default_behavior=Behavior.HIDE, apply_to_all=False),
            )
            await session.commit()
            assert await list_enabled_domains(session) == ["a.myshopify.com"]
            config = to_config(await get_shop(session, "b.myshopify.com"))
            assert (config.enabled, config.default_behavior, config.apply_to_all) == (False, Behavior.HIDE, False)

    run_with_db(scenario)


def test_purge_removes_shop_and_snapshots() -> None:
    async def scenario(factory):
        async with factory() as session:
            shop = await get_or_create_shop(session, "gone.myshopify.com")
            await session.commit()
            shop_id = shop.id

        store = SnapshotStore(factory)
        await store.upsert_active(SnapshotKey(shop_id, "p1", CollectionScope("c1"), SnapshotAction.PUSHED_TO_END))

        async with factory() as session:
            assert await purge_shop(session, "gone.myshopify.com") is True
            await session.commit()
            assert await get_shop(session, "gone.myshopify.com") is None
            assert await purge_shop(session, "gone.myshopify.com") is False

        assert await store.list_active(shop_id) == []

    run_with_db(scenario)
