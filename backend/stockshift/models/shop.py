"""Shop configuration and CollectionRule models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockshift.db import Base


class Behavior(str, enum.Enum):
    """Corrective action configured for out-of-stock products."""

    PUSH_TO_END = "PUSH_TO_END"
    HIDE = "HIDE"
    EXCLUDE = "EXCLUDE"


class Shop(Base):
    """One merchant store and its global reconciliation settings."""

    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    default_behavior: Mapped[Behavior] = mapped_column(
        String(32), default=Behavior.PUSH_TO_END, nullable=False
    )
    apply_to_all: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    access_token: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Admin API token, written by the auth layer"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    collection_rules: Mapped[list[CollectionRule]] = relationship(
        back_populates="shop",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="CollectionRule.id",
    )

    def __repr__(self) -> str:
        return f"<Shop id={self.id} domain={self.domain!r} enabled={self.enabled}>"


class CollectionRule(Base):
    """Per-collection override of the shop default behavior."""

    __tablename__ = "collection_rules"
    __table_args__ = (
        UniqueConstraint("shop_id", "collection_id", name="uq_collection_rules_shop_collection"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    collection_id: Mapped[str] = mapped_column(String(255), nullable=False)
    collection_title: Mapped[str] = mapped_column(String(512), default="Unknown", nullable=False)
    behavior: Mapped[Behavior] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    shop: Mapped[Shop] = relationship(back_populates="collection_rules")

    def __repr__(self) -> str:
        return f"<CollectionRule shop={self.shop_id} collection={self.collection_id!r} behavior={self.behavior}>"
