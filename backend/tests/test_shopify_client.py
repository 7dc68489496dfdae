from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from stockshift.shopify_client import CatalogError, ShopifyCatalog, inventory_item_gid


def _catalog(handler, **kwargs) -> ShopifyCatalog:
    return ShopifyCatalog("demo.myshopify.com", "shpat_x", transport=httpx.MockTransport(handler), **kwargs)


def test_inventory_item_gid() -> None:
    assert inventory_item_gid(42) == "gid://shopify/InventoryItem/42"
    assert inventory_item_gid("gid://shopify/InventoryItem/7") == "gid://shopify/InventoryItem/7"


def test_collection_ordering_follows_cursors() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/admin/api/2025-01/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == "shpat_x"
        variables = json.loads(request.content)["variables"]
        seen.append(variables)
        if variables["cursor"] is None:
            nodes, info = [{"id": "p1"}, {"id": "p2"}], {"hasNextPage": True, "endCursor": "c2"}
        else:
            nodes, info = [{"id": "p3"}], {"hasNextPage": False, "endCursor": None}
        return httpx.Response(
            200,
            json={"data": {"collection": {"id": "c1", "sortOrder": "BEST_SELLING", "products": {"nodes": nodes, "pageInfo": info}}}},
        )

    async def scenario():
        async with _catalog(handler, collection_products_page_size=2, api_version="2025-01") as catalog:
            return await catalog.fetch_collection_ordering("c1")

    ordering = asyncio.run(scenario())
    assert ordering.product_ids == ["p1", "p2", "p3"]
    assert ordering.is_manual is False
    assert [v["cursor"] for v in seen] == [None, "c2"]
    assert seen[0]["first"] == 2


def test_missing_collection_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"collection": None}})

    async def scenario():
        async with _catalog(handler) as catalog:
            return await catalog.fetch_collection_ordering("gone")

    assert asyncio.run(scenario()) is None


def test_mutation_user_errors_are_returned() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["variables"]["moves"] == [{"id": "p1", "newPosition": "4"}]
        return httpx.Response(
            200,
            json={"data": {"collectionReorderProducts": {"job": None, "userErrors": [{"field": ["moves"], "message": "Collection is not manually sorted"}]}}},
        )

    async def scenario():
        async with _catalog(handler) as catalog:
            return await catalog.move_product("c1", "p1", 4)

    [error] = asyncio.run(scenario())
    assert error.message == "Collection is not manually sorted"
    assert error.field == ["moves"]


def test_top_level_graphql_errors_raise() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

    async def scenario():
        async with _catalog(handler) as catalog:
            await catalog.fetch_product_title("p1")

    with pytest.raises(CatalogError, match="Throttled"):
        asyncio.run(scenario())


def test_http_failure_raises_catalog_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    async def scenario():
        async with _catalog(handler) as catalog:
            await catalog.fetch_product_title("p1")

    with pytest.raises(CatalogError):
        asyncio.run(scenario())


def test_publications_and_inventory_item_lookup() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        if "inventoryItem" in query:
            product = {"id": "p1", "title": "Shirt"}
            return httpx.Response(200, json={"data": {"inventoryItem": {"id": "i", "variant": {"id": "v", "product": product}}}})
        return httpx.Response(
            200,
            json={
                "data": {
                    "product": {
                        "id": "p1",
                        "resourcePublicationsV2": {
                            "nodes": [
                                {"isPublished": True, "publication": {"id": "online", "name": "Online Store"}},
                                {"isPublished": False, "publication": {"id": "pos", "name": "Point of Sale"}},
                            ],
                            "pageInfo": {"hasNextPage": False, "endCursor": None},
                        },
                    }
                }
            },
        )

    async def scenario():
        async with _catalog(handler) as catalog:
            return await catalog.find_product_by_inventory_item(9), await catalog.fetch_product_publications("p1")

    found, publications = asyncio.run(scenario())
    assert found == ("p1", "Shirt")
    assert [(p.publication_id, p.is_published) for p in publications] == [("online", True), ("pos", False)]


def test_collection_deleted_between_pages_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        variables = json.loads(request.content)["variables"]
        if variables["cursor"] is None:
            products = {"nodes": [{"id": "p1"}], "pageInfo": {"hasNextPage": True, "endCursor": "c1"}}
            return httpx.Response(200, json={"data": {"collection": {"id": "c1", "sortOrder": "MANUAL", "products": products}}})
        return httpx.Response(200, json={"data": {"collection": None}})

    async def scenario():
        async with _catalog(handler, collection_products_page_size=1) as catalog:
            return await catalog.fetch_collection_ordering("c1")

    assert asyncio.run(scenario()) is None
