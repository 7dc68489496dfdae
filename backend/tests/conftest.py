from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockshift.db import build_engine, build_session_factory, create_all
from stockshift.models.shop import Behavior, CollectionRule, Shop
from stockshift.schemas.catalog import (
    MANUAL_SORT_ORDER,
    CollectionOrdering,
    CollectionRef,
    ProductNode,
    ProductPage,
    PublicationState,
    UserError,
    VariantPage,
)


@dataclass
class FakeCollection:
    title: str
    sort_order: str
    product_ids: list[str]


@dataclass
class FakeProduct:
    title: str
    quantities: list[int]
    # publication id -> published?
    publications: dict[str, bool] = field(default_factory=dict)


class FakeCatalog:
    """In-memory stand-in for ShopifyCatalog with call recording and error injection."""

    def __init__(self, *, page_size: int = 2) -> None:
        self.page_size = page_size
        self.products: dict[str, FakeProduct] = {}
        self.collections: dict[str, FakeCollection] = {}
        self.publication_names: dict[str, str] = {}
        self.inventory_items: dict[str, str] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.move_errors: set[tuple[str, str]] = set()
        self.sort_order_errors: set[str] = set()
        self.publish_errors: set[tuple[str, str]] = set()
        self.unpublish_errors: set[tuple[str, str]] = set()
        self.raise_on: dict[str, Exception] = {}

    # ── Fixture builders ──

    def add_product(self, product_id: str, quantities: list[int], title: str | None = None) -> str:
        self.products[product_id] = FakeProduct(title or product_id, list(quantities))
        self.inventory_items[f"item-{product_id}"] = product_id
        return product_id

    def add_collection(self, collection_id: str, product_ids: list[str], sort_order: str = MANUAL_SORT_ORDER, title: str | None = None) -> str:
        self.collections[collection_id] = FakeCollection(title or collection_id, sort_order, list(product_ids))
        return collection_id

    def add_publication(self, product_id: str, publication_id: str, name: str | None = None, published: bool = True) -> None:
        self.publication_names[publication_id] = name or publication_id
        self.products[product_id].publications[publication_id] = published

    def set_stock(self, product_id: str, quantities: list[int]) -> None:
        self.products[product_id].quantities = list(quantities)

    def order(self, collection_id: str) -> list[str]:
        return list(self.collections[collection_id].product_ids)

    def published(self, product_id: str) -> dict[str, bool]:
        return dict(self.products[product_id].publications)

    def count(self, op: str) -> int:
        return sum(1 for c in self.calls if c[0] == op)

    def _record(self, op: str, *args: Any) -> None:
        self.calls.append((op, *args))
        if op in self.raise_on:
            raise self.raise_on[op]

    # ── Catalog protocol ──

    async def __aenter__(self) -> FakeCatalog:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def _variant_page(self, product: FakeProduct, offset: int) -> VariantPage:
        chunk = product.quantities[offset : offset + self.page_size]
        has_next = offset + self.page_size < len(product.quantities)
        return VariantPage(chunk, end_cursor=str(offset + self.page_size) if has_next else None, has_next_page=has_next)

    async def iter_product_pages(self):
        ids = list(self.products)
        for offset in range(0, len(ids), self.page_size):
            self._record("products", offset)
            chunk = ids[offset : offset + self.page_size]
            yield ProductPage(
                products=[
                    ProductNode(pid, self.products[pid].title, self._variant_page(self.products[pid], 0))
                    for pid in chunk
                ],
                has_next_page=offset + self.page_size < len(ids),
            )

    async def fetch_variant_page(self, product_id: str, cursor: str | None = None) -> VariantPage | None:
        self._record("variants", product_id, cursor)
        product = self.products.get(product_id)
        if product is None:
            return None
        return self._variant_page(product, int(cursor or 0))

    async def find_product_by_inventory_item(self, inventory_item_id):
        self._record("inventory_item", inventory_item_id)
        product_id = self.inventory_items.get(str(inventory_item_id))
        if product_id is None or product_id not in self.products:
            return None
        return product_id, self.products[product_id].title

    async def fetch_product_title(self, product_id: str) -> str | None:
        self._record("title", product_id)
        product = self.products.get(product_id)
        return product.title if product is not None else None

    async def fetch_product_collections(self, product_id: str) -> list[CollectionRef]:
        self._record("product_collections", product_id)
        return [
            CollectionRef(cid, c.title, c.sort_order)
            for cid, c in self.collections.items()
            if product_id in c.product_ids
        ]

    async def fetch_collection_ordering(self, collection_id: str) -> CollectionOrdering | None:
        self._record("ordering", collection_id)
        collection = self.collections.get(collection_id)
        if collection is None:
            return None
        return CollectionOrdering(collection_id, collection.sort_order, list(collection.product_ids))

    async def fetch_product_publications(self, product_id: str) -> list[PublicationState] | None:
        self._record("publications", product_id)
        product = self.products.get(product_id)
        if product is None:
            return None
        return [
            PublicationState(pid, self.publication_names.get(pid, pid), published)
            for pid, published in product.publications.items()
        ]

    async def move_product(self, collection_id: str, product_id: str, new_position: int) -> list[UserError]:
        self._record("move", collection_id, product_id, new_position)
        if (collection_id, product_id) in self.move_errors:
            return [UserError("Move rejected")]
        ids = self.collections[collection_id].product_ids
        ids.remove(product_id)
        ids.insert(new_position, product_id)
        return []

    async def update_collection_sort_order(self, collection_id: str, sort_order: str) -> list[UserError]:
        self._record("sort_order", collection_id, sort_order)
        if collection_id in self.sort_order_errors:
            return [UserError("Sort order locked")]
        self.collections[collection_id].sort_order = sort_order
        return []

    async def publish(self, product_id: str, publication_id: str) -> list[UserError]:
        self._record("publish", product_id, publication_id)
        if (product_id, publication_id) in self.publish_errors:
            return [UserError("Publish rejected")]
        self.products[product_id].publications[publication_id] = True
        return []

    async def unpublish(self, product_id: str, publication_id: str) -> list[UserError]:
        self._record("unpublish", product_id, publication_id)
        if (product_id, publication_id) in self.unpublish_errors:
            return [UserError("Unpublish rejected")]
        self.products[product_id].publications[publication_id] = False
        return []


SessionFactory = async_sessionmaker[AsyncSession]


def run_with_db(scenario: Callable[[SessionFactory], Awaitable[Any]]) -> Any:
    """Run one async scenario against a fresh in-memory database, in a single event loop."""

    async def _run() -> Any:
        engine = build_engine("sqlite+aiosqlite://")
        await create_all(engine)
        factory = build_session_factory(engine)
        try:
            return await scenario(factory)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


async def create_shop(
    factory: SessionFactory,
    domain: str = "demo.myshopify.com",
    *,
    enabled: bool = True,
    default_behavior: Behavior = Behavior.PUSH_TO_END,
    apply_to_all: bool = True,
    rules: dict[str, Behavior] | None = None,
    access_token: str | None = "shpat_test",
) -> int:
    async with factory() as session, session.begin():
        shop = Shop(
            domain=domain,
            enabled=enabled,
            default_behavior=default_behavior.value,
            apply_to_all=apply_to_all,
            access_token=access_token,
            collection_rules=[
                CollectionRule(collection_id=cid, collection_title=cid, behavior=behavior.value)
                for cid, behavior in (rules or {}).items()
            ],
        )
        session.add(shop)
        await session.flush()
        return shop.id


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()
