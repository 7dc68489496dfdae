"""Outcome types shared by the reorder and visibility engines."""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ActionResult:
    success: bool
    reason: str | None = None
    changed: bool = False
    channels: list[ChannelResult] = field(default_factory=list)


@dataclass(slots=True)
class ChannelResult:
    publication_id: str
    name: str
    success: bool
    errors: list[str] = field(default_factory=list)
