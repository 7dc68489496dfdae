"""Per-key guards owned by the orchestrator, never module state.

- `LeaseTable`: per-product leases. A lease is held for one pass and, once
  released, stays blocked for a short cooldown so duplicate
  near-simultaneous notifications are dropped.
- `KeyedLocks`: per-collection locks that queue concurrent reorders.
"""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Hashable


@dataclass(slots=True)
class _Lease:
    # None while held; monotonic deadline once released into cooldown.
    expires_at: float | None = None


class LeaseTable:
    def __init__(self, cooldown_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._leases: dict[Hashable, _Lease] = {}

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, lease in self._leases.items()
            if lease.expires_at is not None and lease.expires_at <= now
        ]
        for key in expired:
            del self._leases[key]

    def try_acquire(self, key: Hashable) -> bool:
        now = self._clock()
        self._sweep(now)
        if key in self._leases:
            return False
        self._leases[key] = _Lease()
        return True

    def release(self, key: Hashable) -> None:
        lease = self._leases.get(key)
        if lease is None or lease.expires_at is not None:
            return
        if self._cooldown_s <= 0:
            del self._leases[key]
            return
        lease.expires_at = self._clock() + self._cooldown_s

    def is_blocked(self, key: Hashable) -> bool:
        self._sweep(self._clock())
        return key in self._leases

    def __len__(self) -> int:
        return len(self._leases)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[bool]:
        """Yield whether the lease was acquired; release on exit if it was."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


class KeyedLocks:
    """One `asyncio.Lock` per key, dropped once nobody holds or awaits it.

    Unlike a lease this queues contenders: every product pushed into a
    collection must run, one at a time, so the sort-mode switch and the
    baseline order are read after the previous move landed.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
