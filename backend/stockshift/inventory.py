"""Inventory state evaluation — is every variant of a product sold out?"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from stockshift.schemas.catalog import VariantPage

logger = logging.getLogger(__name__)


class VariantSource(Protocol):
    async def fetch_variant_page(self, product_id: str, cursor: str | None = None) -> VariantPage | None: ...

    async def find_product_by_inventory_item(self, inventory_item_id: str | int) -> tuple[str, str] | None: ...


@dataclass(slots=True)
class InventoryStatus:
    product_id: str
    title: str
    variant_count: int
    is_fully_out_of_stock: bool


def is_fully_out_of_stock(quantities: Iterable[int]) -> bool:
    """True only when there is at least one variant and none has stock left.

    A product without variants is never considered out of stock.
    """
    seen = False
    for quantity in quantities:
        seen = True
        if quantity > 0:
            return False
    return seen


async def collect_variant_quantities(
    catalog: VariantSource,
    product_id: str,
    first_page: VariantPage | None = None,
) -> list[int] | None:
    """Every variant quantity of a product, following cursors until exhausted.

    `first_page` lets a caller that already listed the product (full sync)
    skip the first request. Returns None when the product no longer exists.
    """
    page = first_page
    if page is None:
        page = await catalog.fetch_variant_page(product_id)
        if page is None:
            return None

    quantities = list(page.quantities)
    while page.has_next_page:
        page = await catalog.fetch_variant_page(product_id, page.end_cursor)
        if page is None:
            logger.warning("Product %s disappeared while paging variants", product_id)
            return None
        quantities.extend(page.quantities)
    return quantities


async def evaluate_product(
    catalog: VariantSource,
    product_id: str,
    title: str,
    first_page: VariantPage | None = None,
) -> InventoryStatus | None:
    quantities = await collect_variant_quantities(catalog, product_id, first_page)
    if quantities is None:
        return None
    return InventoryStatus(
        product_id=product_id,
        title=title,
        variant_count=len(quantities),
        is_fully_out_of_stock=is_fully_out_of_stock(quantities),
    )


async def resolve_inventory_item(
    catalog: VariantSource,
    inventory_item_id: str | int,
) -> InventoryStatus | None:
    """Map an inventory-level notification to its parent product's stock status."""
    found = await catalog.find_product_by_inventory_item(inventory_item_id)
    if found is None:
        logger.info("Inventory item %s has no parent product", inventory_item_id)
        return None
    product_id, title = found
    return await evaluate_product(catalog, product_id, title)
