"""Durable record of applied corrective actions and what they overrode.

Each public call opens its own session and transaction, so calls for
different keys never share a transaction or block one another.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockshift.models.snapshot import (
    ProductSnapshot,
    Scope,
    SnapshotAction,
    SnapshotStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotKey:
    shop_id: int
    product_id: str
    scope: Scope
    action: SnapshotAction


def _key_clause(key: SnapshotKey, status: SnapshotStatus):
    return (
        ProductSnapshot.shop_id == key.shop_id,
        ProductSnapshot.product_id == key.product_id,
        ProductSnapshot.scope_kind == key.scope.kind.value,
        ProductSnapshot.scope_id == key.scope.id,
        ProductSnapshot.action == SnapshotAction(key.action).value,
        ProductSnapshot.status == status.value,
    )


def _scope_clause(scope: Scope):
    return (
        ProductSnapshot.scope_kind == scope.kind.value,
        ProductSnapshot.scope_id == scope.id,
    )


class SnapshotStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_active(
        self,
        key: SnapshotKey,
        *,
        original_position: int | None = None,
        original_scope_order: str | None = None,
    ) -> tuple[ProductSnapshot, bool]:
        """Create the ACTIVE snapshot for `key` unless one already exists.

        Returns `(snapshot, created)`. An existing ACTIVE row is authoritative
        and is never overwritten, which keeps the original position of the
        first apply across retries.
        """
        try:
            async with self._session_factory() as session, session.begin():
                existing = (
                    await session.execute(select(ProductSnapshot).where(*_key_clause(key, SnapshotStatus.ACTIVE)))
                ).scalar()
                if existing is not None:
                    return existing, False

                row = ProductSnapshot(
                    shop_id=key.shop_id,
                    product_id=key.product_id,
                    scope_kind=key.scope.kind.value,
                    scope_id=key.scope.id,
                    action=SnapshotAction(key.action).value,
                    status=SnapshotStatus.ACTIVE.value,
                    original_position=original_position,
                    original_scope_order=original_scope_order,
                    created_at=datetime.now(timezone.utc),
                )
                session.add(row)
                await session.flush()
                return row, True
        except IntegrityError:
            # A concurrent writer inserted the same ACTIVE key first.
            logger.info("Snapshot key conflict for %s; using existing ACTIVE row", key)
            async with self._session_factory() as session:
                existing = (
                    await session.execute(select(ProductSnapshot).where(*_key_clause(key, SnapshotStatus.ACTIVE)))
                ).scalar()
            if existing is None:
                raise
            return existing, False

    async def mark_restored(self, snapshot_id: int) -> bool:
        """Flip one ACTIVE snapshot to RESTORED, clearing any stale RESTORED twin first."""
        async with self._session_factory() as session, session.begin():
            row = await session.get(ProductSnapshot, snapshot_id)
            if row is None or row.status != SnapshotStatus.ACTIVE.value:
                return False

            key = SnapshotKey(row.shop_id, row.product_id, row.scope, SnapshotAction(row.action))
            await session.execute(delete(ProductSnapshot).where(*_key_clause(key, SnapshotStatus.RESTORED)))
            row.status = SnapshotStatus.RESTORED.value
            row.restored_at = datetime.now(timezone.utc)
            return True

    async def find_active(
        self,
        shop_id: int,
        product_id: str,
        scope: Scope | None = None,
        action: SnapshotAction | None = None,
    ) -> list[ProductSnapshot]:
        stmt = select(ProductSnapshot).where(
            ProductSnapshot.shop_id == shop_id,
            ProductSnapshot.product_id == product_id,
            ProductSnapshot.status == SnapshotStatus.ACTIVE.value,
        )
        if scope is not None:
            stmt = stmt.where(*_scope_clause(scope))
        if action is not None:
            stmt = stmt.where(ProductSnapshot.action == SnapshotAction(action).value)
        async with self._session_factory() as session:
            return list((await session.execute(stmt.order_by(ProductSnapshot.id))).scalars().all())

    async def count_active(self, shop_id: int, scope: Scope, action: SnapshotAction) -> int:
        """ACTIVE snapshots of any product that still depend on `scope`."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(ProductSnapshot.id)).where(
                    ProductSnapshot.shop_id == shop_id,
                    *_scope_clause(scope),
                    ProductSnapshot.action == SnapshotAction(action).value,
                    ProductSnapshot.status == SnapshotStatus.ACTIVE.value,
                )
            )
            return int(result.scalar() or 0)

    async def first_active_in_scope(
        self,
        shop_id: int,
        scope: Scope,
        action: SnapshotAction,
    ) -> ProductSnapshot | None:
        async with self._session_factory() as session:
            return (
                await session.execute(
                    select(ProductSnapshot)
                    .where(
                        ProductSnapshot.shop_id == shop_id,
                        *_scope_clause(scope),
                        ProductSnapshot.action == SnapshotAction(action).value,
                        ProductSnapshot.status == SnapshotStatus.ACTIVE.value,
                    )
                    .order_by(ProductSnapshot.created_at.asc(), ProductSnapshot.id.asc())
                    .limit(1)
                )
            ).scalar()

    async def list_active(self, shop_id: int, action: SnapshotAction | None = None) -> list[ProductSnapshot]:
        stmt = select(ProductSnapshot).where(
            ProductSnapshot.shop_id == shop_id,
            ProductSnapshot.status == SnapshotStatus.ACTIVE.value,
        )
        if action is not None:
            stmt = stmt.where(ProductSnapshot.action == SnapshotAction(action).value)
        async with self._session_factory() as session:
            return list((await session.execute(stmt.order_by(ProductSnapshot.id))).scalars().all())

    async def count_active_by_action(self, shop_id: int) -> dict[SnapshotAction, int]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(ProductSnapshot.action, func.count(ProductSnapshot.id))
                    .where(
                        ProductSnapshot.shop_id == shop_id,
                        ProductSnapshot.status == SnapshotStatus.ACTIVE.value,
                    )
                    .group_by(ProductSnapshot.action)
                )
            ).all()
        counts = {action: 0 for action in SnapshotAction}
        for action, count in rows:
            counts[SnapshotAction(action)] = int(count)
        return counts
