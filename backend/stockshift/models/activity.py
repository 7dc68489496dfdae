"""ActivityLog model — append-only audit trail of reconciliation decisions."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockshift.db import Base


class ActivityAction(str, enum.Enum):
    DEPRIORITIZED = "DEPRIORITIZED"
    HIDDEN = "HIDDEN"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    RESTORED_POSITION = "RESTORED_POSITION"
    RESTORED_VISIBILITY = "RESTORED_VISIBILITY"


class ActivityLog(Base):
    __tablename__ = "activity_log"
    __table_args__ = (Index("ix_activity_log_shop_created", "shop_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    product_title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    action: Mapped[ActivityAction] = mapped_column(String(32), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} product={self.product_id!r} action={self.action}>"
