"""Async Shopify Admin GraphQL client for the catalog reads and mutations the core needs.

Every list read follows `pageInfo.endCursor` until `hasNextPage` is false.
Mutations return their `userErrors`; transport and top-level GraphQL
failures raise `CatalogError`.
"""
from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator

import httpx

from stockshift.config import settings
from stockshift.metrics import CATALOG_LATENCY_SECONDS, CATALOG_REQUESTS_TOTAL
from stockshift.schemas.catalog import (
    CollectionOrdering,
    CollectionRef,
    ProductNode,
    ProductPage,
    PublicationState,
    UserError,
    VariantPage,
)

logger = logging.getLogger(__name__)

INVENTORY_ITEM_GID_PREFIX = "gid://shopify/InventoryItem/"


class CatalogError(Exception):
    """The catalog API could not be reached or answered with top-level errors."""


def inventory_item_gid(inventory_item_id: str | int) -> str:
    raw = str(inventory_item_id).strip()
    if raw.startswith("gid://"):
        return raw
    return f"{INVENTORY_ITEM_GID_PREFIX}{raw}"


PRODUCTS_QUERY = """
query getProducts($first: Int!, $cursor: String, $variantsFirst: Int!) {
  products(first: $first, after: $cursor) {
    pageInfo { hasNextPage endCursor }
    nodes {
      id
      title
      variants(first: $variantsFirst) {
        pageInfo { hasNextPage endCursor }
        nodes { id inventoryQuantity }
      }
    }
  }
}
"""

PRODUCT_VARIANTS_QUERY = """
query getProductVariants($id: ID!, $first: Int!, $cursor: String) {
  product(id: $id) {
    id
    variants(first: $first, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes { id inventoryQuantity }
    }
  }
}
"""

INVENTORY_ITEM_QUERY = """
query getInventoryItem($id: ID!) {
  inventoryItem(id: $id) {
    id
    variant {
      id
      product { id title }
    }
  }
}
"""

PRODUCT_TITLE_QUERY = """
query getProductTitle($id: ID!) {
  product(id: $id) { id title }
}
"""

PRODUCT_COLLECTIONS_QUERY = """
query getProductCollections($id: ID!, $first: Int!, $cursor: String) {
  product(id: $id) {
    collections(first: $first, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes { id title sortOrder }
    }
  }
}
"""

COLLECTION_PRODUCTS_QUERY = """
query getCollectionProducts($id: ID!, $first: Int!, $cursor: String) {
  collection(id: $id) {
    id
    sortOrder
    products(first: $first, after: $cursor, sortKey: COLLECTION_DEFAULT) {
      pageInfo { hasNextPage endCursor }
      nodes { id }
    }
  }
}
"""

PRODUCT_PUBLICATIONS_QUERY = """
query getProductPublications($id: ID!, $first: Int!, $cursor: String) {
  product(id: $id) {
    id
    resourcePublicationsV2(first: $first, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes {
        isPublished
        publication { id name }
      }
    }
  }
}
"""

REORDER_MUTATION = """
mutation reorderProducts($id: ID!, $moves: [MoveInput!]!) {
  collectionReorderProducts(id: $id, moves: $moves) {
    job { id done }
    userErrors { field message }
  }
}
"""

COLLECTION_SORT_ORDER_MUTATION = """
mutation updateCollectionSortOrder($input: CollectionInput!) {
  collectionUpdate(input: $input) {
    collection { id sortOrder }
    userErrors { field message }
  }
}
"""

PUBLISH_MUTATION = """
mutation publishProduct($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""

UNPUBLISH_MUTATION = """
mutation unpublishProduct($id: ID!, $input: [PublicationInput!]!) {
  publishableUnpublish(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""


def _variant_page(connection: dict[str, Any] | None) -> VariantPage:
    connection = connection or {}
    page_info = connection.get("pageInfo") or {}
    quantities = [int(v.get("inventoryQuantity") or 0) for v in connection.get("nodes") or []]
    return VariantPage(
        quantities=quantities,
        end_cursor=page_info.get("endCursor"),
        has_next_page=bool(page_info.get("hasNextPage")),
    )


def _user_errors(payload: dict[str, Any] | None) -> list[UserError]:
    rows = (payload or {}).get("userErrors") or []
    return [UserError(message=str(e.get("message") or ""), field=e.get("field")) for e in rows]


class ShopifyCatalog:
    """Catalog API bound to one shop's Admin API credentials."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        product_page_size: int | None = None,
        variant_page_size: int | None = None,
        collection_page_size: int | None = None,
        collection_products_page_size: int | None = None,
        publication_page_size: int | None = None,
    ) -> None:
        version = api_version or settings.SHOPIFY_API_VERSION
        timeout = timeout_s or settings.SHOPIFY_TIMEOUT_S
        self.shop_domain = shop_domain
        self.product_page_size = product_page_size or settings.PRODUCT_PAGE_SIZE
        self.variant_page_size = variant_page_size or settings.VARIANT_PAGE_SIZE
        self.collection_page_size = collection_page_size or settings.COLLECTION_PAGE_SIZE
        self.collection_products_page_size = (
            collection_products_page_size or settings.COLLECTION_PRODUCTS_PAGE_SIZE
        )
        self.publication_page_size = publication_page_size or settings.PUBLICATION_PAGE_SIZE
        self._client = httpx.AsyncClient(
            base_url=f"https://{shop_domain}/admin/api/{version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> ShopifyCatalog:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _execute(self, operation: str, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            resp = await self._client.post("/graphql.json", json={"query": query, "variables": variables})
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            CATALOG_REQUESTS_TOTAL.labels(operation=operation, outcome="transport_error").inc()
            raise CatalogError(f"{operation} failed for {self.shop_domain}: {exc}") from exc
        finally:
            CATALOG_LATENCY_SECONDS.labels(operation=operation).observe(time.perf_counter() - started)

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            CATALOG_REQUESTS_TOTAL.labels(operation=operation, outcome="graphql_error").inc()
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise CatalogError(f"{operation} rejected for {self.shop_domain}: {messages}")

        CATALOG_REQUESTS_TOTAL.labels(operation=operation, outcome="ok").inc()
        return (payload or {}).get("data") or {}

    # ── Reads ──

    async def iter_product_pages(self) -> AsyncIterator[ProductPage]:
        cursor: str | None = None
        while True:
            data = await self._execute(
                "products",
                PRODUCTS_QUERY,
                {"first": self.product_page_size, "cursor": cursor, "variantsFirst": self.variant_page_size},
            )
            connection = data.get("products")
            if not connection:
                return
            page_info = connection.get("pageInfo") or {}
            page = ProductPage(
                products=[
                    ProductNode(
                        id=node["id"],
                        title=node.get("title") or node["id"],
                        variants=_variant_page(node.get("variants")),
                    )
                    for node in connection.get("nodes") or []
                ],
                end_cursor=page_info.get("endCursor"),
                has_next_page=bool(page_info.get("hasNextPage")),
            )
            yield page
            if not page.has_next_page:
                return
            cursor = page.end_cursor

    async def fetch_variant_page(self, product_id: str, cursor: str | None = None) -> VariantPage | None:
        data = await self._execute(
            "product_variants",
            PRODUCT_VARIANTS_QUERY,
            {"id": product_id, "first": self.variant_page_size, "cursor": cursor},
        )
        product = data.get("product")
        if not product:
            return None
        return _variant_page(product.get("variants"))

    async def find_product_by_inventory_item(self, inventory_item_id: str | int) -> tuple[str, str] | None:
        data = await self._execute(
            "inventory_item",
            INVENTORY_ITEM_QUERY,
            {"id": inventory_item_gid(inventory_item_id)},
        )
        product = (((data.get("inventoryItem") or {}).get("variant")) or {}).get("product")
        if not product:
            return None
        return product["id"], product.get("title") or product["id"]

    async def fetch_product_title(self, product_id: str) -> str | None:
        data = await self._execute("product_title", PRODUCT_TITLE_QUERY, {"id": product_id})
        product = data.get("product")
        if not product:
            return None
        return product.get("title") or product_id

    async def fetch_product_collections(self, product_id: str) -> list[CollectionRef]:
        collections: list[CollectionRef] = []
        cursor: str | None = None
        while True:
            data = await self._execute(
                "product_collections",
                PRODUCT_COLLECTIONS_QUERY,
                {"id": product_id, "first": self.collection_page_size, "cursor": cursor},
            )
            connection = (data.get("product") or {}).get("collections")
            if not connection:
                return collections
            for node in connection.get("nodes") or []:
                collections.append(
                    CollectionRef(id=node["id"], title=node.get("title") or node["id"], sort_order=node.get("sortOrder"))
                )
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return collections
            cursor = page_info.get("endCursor")

    async def fetch_collection_ordering(self, collection_id: str) -> CollectionOrdering | None:
        ordering: CollectionOrdering | None = None
        cursor: str | None = None
        while True:
            data = await self._execute(
                "collection_products",
                COLLECTION_PRODUCTS_QUERY,
                {"id": collection_id, "first": self.collection_products_page_size, "cursor": cursor},
            )
            collection = data.get("collection")
            if not collection:
                # Deleted mid-pagination counts as deleted.
                return None
            if ordering is None:
                ordering = CollectionOrdering(
                    id=collection["id"],
                    sort_order=str(collection.get("sortOrder") or ""),
                    product_ids=[],
                )
            connection = collection.get("products") or {}
            ordering.product_ids.extend(node["id"] for node in connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return ordering
            cursor = page_info.get("endCursor")

    async def fetch_product_publications(self, product_id: str) -> list[PublicationState] | None:
        """Publication memberships, or None when the product no longer exists."""
        publications: list[PublicationState] = []
        cursor: str | None = None
        while True:
            data = await self._execute(
                "product_publications",
                PRODUCT_PUBLICATIONS_QUERY,
                {"id": product_id, "first": self.publication_page_size, "cursor": cursor},
            )
            product = data.get("product")
            if not product:
                return None
            connection = product.get("resourcePublicationsV2") or {}
            for node in connection.get("nodes") or []:
                publication = node.get("publication") or {}
                publications.append(
                    PublicationState(
                        publication_id=publication["id"],
                        name=publication.get("name") or publication["id"],
                        is_published=bool(node.get("isPublished")),
                    )
                )
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return publications
            cursor = page_info.get("endCursor")

    # ── Mutations ──

    async def move_product(self, collection_id: str, product_id: str, new_position: int) -> list[UserError]:
        data = await self._execute(
            "collection_reorder",
            REORDER_MUTATION,
            {"id": collection_id, "moves": [{"id": product_id, "newPosition": str(new_position)}]},
        )
        return _user_errors(data.get("collectionReorderProducts"))

    async def update_collection_sort_order(self, collection_id: str, sort_order: str) -> list[UserError]:
        data = await self._execute(
            "collection_sort_order",
            COLLECTION_SORT_ORDER_MUTATION,
            {"input": {"id": collection_id, "sortOrder": sort_order}},
        )
        return _user_errors(data.get("collectionUpdate"))

    async def publish(self, product_id: str, publication_id: str) -> list[UserError]:
        data = await self._execute(
            "publish",
            PUBLISH_MUTATION,
            {"id": product_id, "input": [{"publicationId": publication_id}]},
        )
        return _user_errors(data.get("publishablePublish"))

    async def unpublish(self, product_id: str, publication_id: str) -> list[UserError]:
        data = await self._execute(
            "unpublish",
            UNPUBLISH_MUTATION,
            {"id": product_id, "input": [{"publicationId": publication_id}]},
        )
        return _user_errors(data.get("publishableUnpublish"))
