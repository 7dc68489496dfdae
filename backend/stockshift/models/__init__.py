"""Models package — re-export all ORM classes for metadata creation."""
from stockshift.models.shop import Behavior, CollectionRule, Shop  # noqa: F401
from stockshift.models.snapshot import (  # noqa: F401
    CollectionScope,
    ProductSnapshot,
    PublicationScope,
    Scope,
    ScopeKind,
    SnapshotAction,
    SnapshotStatus,
)
from stockshift.models.activity import ActivityAction, ActivityLog  # noqa: F401
