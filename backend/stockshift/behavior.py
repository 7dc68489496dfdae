"""Behavior resolution — which corrective action applies where.

Pure functions only: no I/O, so every reconciliation decision can be
tested against plain configuration objects.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from stockshift.models.shop import Behavior
from stockshift.models.snapshot import SnapshotAction
from stockshift.schemas.catalog import CollectionRef
from stockshift.schemas.shop_config import CollectionRuleConfig, ShopConfig


def resolve_behavior(
    config: ShopConfig,
    rules: Iterable[CollectionRuleConfig],
    collection_id: Optional[str],
) -> Behavior:
    """Effective behavior for one collection, or for "no collection" (None)."""
    if not config.enabled:
        return Behavior.EXCLUDE

    if collection_id is not None:
        for rule in rules:
            if rule.collection_id == collection_id:
                return Behavior(rule.behavior)

    if config.apply_to_all:
        return Behavior(config.default_behavior)

    return Behavior.EXCLUDE


@dataclass(slots=True)
class DesiredPlan:
    """What should be applied to an out-of-stock product right now."""

    push_targets: list[CollectionRef] = field(default_factory=list)
    hide: bool = False
    hide_source: CollectionRef | None = None
    skipped: list[CollectionRef] = field(default_factory=list)

    @property
    def actions(self) -> frozenset[SnapshotAction]:
        actions: set[SnapshotAction] = set()
        if self.push_targets:
            actions.add(SnapshotAction.PUSHED_TO_END)
        if self.hide:
            actions.add(SnapshotAction.HIDDEN)
        return frozenset(actions)


def desired_plan(config: ShopConfig, collections: list[CollectionRef]) -> DesiredPlan:
    """Fold `resolve_behavior` over every collection the product belongs to.

    HIDE is product-wide: scanning stops at the first collection resolving
    to HIDE, collections after it are not consulted. A product in no
    collection resolves with the "no collection" key, where only HIDE is
    actionable.
    """
    rules = config.collection_rules
    plan = DesiredPlan()

    if not collections:
        if resolve_behavior(config, rules, None) == Behavior.HIDE:
            plan.hide = True
        return plan

    for collection in collections:
        behavior = resolve_behavior(config, rules, collection.id)
        if behavior == Behavior.EXCLUDE:
            plan.skipped.append(collection)
        elif behavior == Behavior.PUSH_TO_END:
            plan.push_targets.append(collection)
        elif behavior == Behavior.HIDE:
            plan.hide = True
            plan.hide_source = collection
            break

    return plan
