"""Plain value types returned by the remote catalog client."""
from __future__ import annotations

from dataclasses import dataclass, field


MANUAL_SORT_ORDER = "MANUAL"


@dataclass(slots=True)
class UserError:
    """Field-level error reported by a catalog mutation."""

    message: str
    field: list[str] | None = None


def join_user_errors(errors: list[UserError]) -> str:
    return ", ".join(e.message for e in errors)


@dataclass(slots=True)
class VariantPage:
    quantities: list[int]
    end_cursor: str | None = None
    has_next_page: bool = False


@dataclass(slots=True)
class ProductNode:
    id: str
    title: str
    variants: VariantPage = field(default_factory=lambda: VariantPage(quantities=[]))


@dataclass(slots=True)
class ProductPage:
    products: list[ProductNode]
    end_cursor: str | None = None
    has_next_page: bool = False


@dataclass(slots=True)
class CollectionRef:
    id: str
    title: str
    sort_order: str | None = None


@dataclass(slots=True)
class CollectionOrdering:
    """A collection's current product order and sort mode."""

    id: str
    sort_order: str
    product_ids: list[str]

    @property
    def is_manual(self) -> bool:
        return self.sort_order == MANUAL_SORT_ORDER

    def index_of(self, product_id: str) -> int:
        try:
            return self.product_ids.index(product_id)
        except ValueError:
            return -1


@dataclass(slots=True)
class PublicationState:
    publication_id: str
    name: str
    is_published: bool
