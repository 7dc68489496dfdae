"""ProductSnapshot model — the undo record for one applied corrective action."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Union

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stockshift.db import Base


class SnapshotAction(str, enum.Enum):
    PUSHED_TO_END = "PUSHED_TO_END"
    HIDDEN = "HIDDEN"


class SnapshotStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RESTORED = "RESTORED"


class ScopeKind(str, enum.Enum):
    COLLECTION = "COLLECTION"
    PUBLICATION = "PUBLICATION"


@dataclass(frozen=True, slots=True)
class CollectionScope:
    """Positional actions are relative to one collection."""

    id: str
    kind: ClassVar[ScopeKind] = ScopeKind.COLLECTION


@dataclass(frozen=True, slots=True)
class PublicationScope:
    """Visibility actions are relative to one sales channel publication."""

    id: str
    kind: ClassVar[ScopeKind] = ScopeKind.PUBLICATION


Scope = Union[CollectionScope, PublicationScope]


def scope_from_columns(kind: ScopeKind | str, scope_id: str) -> Scope:
    if ScopeKind(kind) == ScopeKind.COLLECTION:
        return CollectionScope(scope_id)
    return PublicationScope(scope_id)


class ProductSnapshot(Base):
    """What was applied to a product, and what it overrode.

    At most one ACTIVE row exists per (shop, product, scope, action); the
    unique constraint includes `status` so a single RESTORED row may sit
    beside it until the next restore clears it.
    """

    __tablename__ = "product_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "shop_id",
            "product_id",
            "scope_kind",
            "scope_id",
            "action",
            "status",
            name="uq_product_snapshots_key_status",
        ),
        Index("ix_product_snapshots_shop_product", "shop_id", "product_id"),
        Index("ix_product_snapshots_scope", "shop_id", "scope_kind", "scope_id", "action", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    scope_kind: Mapped[ScopeKind] = mapped_column(String(32), nullable=False)
    scope_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[SnapshotAction] = mapped_column(String(32), nullable=False)
    status: Mapped[SnapshotStatus] = mapped_column(
        String(16), default=SnapshotStatus.ACTIVE, nullable=False
    )
    original_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_scope_order: Mapped[str | None] = mapped_column(
        String(64), nullable=True, comment="Collection sort order before it was forced to MANUAL"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    restored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def scope(self) -> Scope:
        return scope_from_columns(self.scope_kind, self.scope_id)

    def __repr__(self) -> str:
        return (
            f"<ProductSnapshot id={self.id} product={self.product_id!r} "
            f"{self.scope_kind}:{self.scope_id} {self.action} {self.status}>"
        )
