"""Shop configuration DTOs shared by the resolver, the config service and the API."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockshift.models.shop import Behavior


class CollectionRuleConfig(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    collection_id: str
    collection_title: str = "Unknown"
    behavior: Behavior

    @field_validator("collection_id")
    @classmethod
    def validate_collection_id(cls, v: str) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("collection_id must not be empty")
        return v


class ShopConfig(BaseModel):
    """Read-only view of a shop's settings as the reconciliation core sees them."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int | None = None
    domain: str
    enabled: bool = True
    default_behavior: Behavior = Behavior.PUSH_TO_END
    apply_to_all: bool = True
    collection_rules: tuple[CollectionRuleConfig, ...] = Field(default_factory=tuple)

    @field_validator("default_behavior")
    @classmethod
    def validate_default_behavior(cls, v: Behavior) -> Behavior:
        if v == Behavior.EXCLUDE:
            raise ValueError("default_behavior must be PUSH_TO_END or HIDE")
        return v


class ShopSettingsUpdate(BaseModel):
    enabled: bool
    default_behavior: Behavior
    apply_to_all: bool

    @field_validator("default_behavior")
    @classmethod
    def validate_default_behavior(cls, v: Behavior) -> Behavior:
        if v == Behavior.EXCLUDE:
            raise ValueError("default_behavior must be PUSH_TO_END or HIDE")
        return v


class CollectionRuleUpsert(BaseModel):
    collection_title: str = "Unknown"
    behavior: Behavior
