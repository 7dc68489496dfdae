"""Per-product reconciliation state machine.

Every combination of (stock status, desired action types, applied action
types) is listed in `TRANSITIONS`, so adding an action type forces the
table to be revisited instead of silently falling through a cascade of
conditionals.
"""
from __future__ import annotations

import enum
from typing import NamedTuple

from stockshift.models.snapshot import SnapshotAction


class ProductState(str, enum.Enum):
    IN_STOCK_NO_SNAPSHOT = "IN_STOCK_NO_SNAPSHOT"
    IN_STOCK_HAS_SNAPSHOT = "IN_STOCK_HAS_SNAPSHOT"
    OUT_OF_STOCK_NO_SNAPSHOT = "OUT_OF_STOCK_NO_SNAPSHOT"
    OUT_OF_STOCK_HAS_MATCHING_SNAPSHOT = "OUT_OF_STOCK_HAS_MATCHING_SNAPSHOT"
    OUT_OF_STOCK_HAS_STALE_SNAPSHOT = "OUT_OF_STOCK_HAS_STALE_SNAPSHOT"


ActionSet = frozenset[SnapshotAction]


class Transition(NamedTuple):
    state: ProductState
    restore: ActionSet
    apply: ActionSet


NONE: ActionSet = frozenset()
PUSH: ActionSet = frozenset({SnapshotAction.PUSHED_TO_END})
HIDE: ActionSet = frozenset({SnapshotAction.HIDDEN})
BOTH: ActionSet = PUSH | HIDE

_S = ProductState

# (out_of_stock, desired, applied) -> Transition(state, restore, apply)
# Restores always run before applies.
TRANSITIONS: dict[tuple[bool, ActionSet, ActionSet], Transition] = {
    # ── In stock: nothing is desired, everything applied is undone ──
    (False, NONE, NONE): Transition(_S.IN_STOCK_NO_SNAPSHOT, NONE, NONE),
    (False, NONE, PUSH): Transition(_S.IN_STOCK_HAS_SNAPSHOT, PUSH, NONE),
    (False, NONE, HIDE): Transition(_S.IN_STOCK_HAS_SNAPSHOT, HIDE, NONE),
    (False, NONE, BOTH): Transition(_S.IN_STOCK_HAS_SNAPSHOT, BOTH, NONE),
    # ── Out of stock, nothing applied yet ──
    (True, NONE, NONE): Transition(_S.OUT_OF_STOCK_NO_SNAPSHOT, NONE, NONE),
    (True, PUSH, NONE): Transition(_S.OUT_OF_STOCK_NO_SNAPSHOT, NONE, PUSH),
    (True, HIDE, NONE): Transition(_S.OUT_OF_STOCK_NO_SNAPSHOT, NONE, HIDE),
    (True, BOTH, NONE): Transition(_S.OUT_OF_STOCK_NO_SNAPSHOT, NONE, BOTH),
    # ── Out of stock, applied matches desired ──
    (True, PUSH, PUSH): Transition(_S.OUT_OF_STOCK_HAS_MATCHING_SNAPSHOT, NONE, NONE),
    (True, HIDE, HIDE): Transition(_S.OUT_OF_STOCK_HAS_MATCHING_SNAPSHOT, NONE, NONE),
    (True, BOTH, BOTH): Transition(_S.OUT_OF_STOCK_HAS_MATCHING_SNAPSHOT, NONE, NONE),
    # ── Out of stock, configuration changed since the last apply ──
    (True, NONE, PUSH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, PUSH, NONE),
    (True, NONE, HIDE): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, HIDE, NONE),
    (True, NONE, BOTH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, BOTH, NONE),
    (True, PUSH, HIDE): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, HIDE, PUSH),
    (True, HIDE, PUSH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, PUSH, HIDE),
    (True, PUSH, BOTH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, HIDE, NONE),
    (True, HIDE, BOTH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, PUSH, NONE),
    (True, BOTH, PUSH): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, NONE, HIDE),
    (True, BOTH, HIDE): Transition(_S.OUT_OF_STOCK_HAS_STALE_SNAPSHOT, NONE, PUSH),
}


def plan_transition(
    *,
    out_of_stock: bool,
    desired: ActionSet,
    applied: ActionSet,
) -> Transition:
    """Look up the transition for one product; in-stock products desire nothing."""
    key = (out_of_stock, frozenset(desired) if out_of_stock else NONE, frozenset(applied))
    try:
        return TRANSITIONS[key]
    except KeyError:
        raise ValueError(f"No transition for out_of_stock={out_of_stock} desired={desired} applied={applied}") from None
