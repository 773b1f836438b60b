"""Interfaces of the collaborators the ranking engine consumes.

The engine never owns items, visibility rules or engagement counters. It
reads them through these protocols and writes only scores.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Annotated, Any, Protocol, runtime_checkable

from pydantic import Field

from feedrank.data_model import ItemKind, StrictBaseModel
from feedrank.ranker.models import RankingSignals


class ChangedItem(StrictBaseModel):
    """Item reference returned by a changed-items listing."""

    id: Annotated[str, Field(min_length=1)]
    created_at: datetime
    owner_id: str | None = None


class Attribution(StrictBaseModel):
    """Context through which a card surfaced (collection, curator, ...)."""

    context_type: str
    context_id: str
    label: str | None = None


class DisplayItem(StrictBaseModel):
    """Display data for one feed item."""

    kind: ItemKind
    id: Annotated[str, Field(min_length=1)]
    title: str = ""
    canonical_url: str | None = None
    thumbnail_url: str | None = None
    owner_id: str | None = None
    created_at: datetime | None = None
    upvotes_count: int = 0
    saves_count: int = 0
    comments_count: int = 0
    visits_count: int = 0
    attributions: tuple[Attribution, ...] = ()


@runtime_checkable
class SignalSource(Protocol):
    """Source of current engagement signals."""

    def get_signals(self, kind: ItemKind, item_id: str) -> RankingSignals:
        """Fetch current counts and age for one item."""
        ...


@runtime_checkable
class ItemStore(Protocol):
    """Owner of items and their visibility rules."""

    def list_changed_items(self, kind: ItemKind, since: datetime) -> list[ChangedItem]:
        """List visible items created or mutated at or after ``since``."""
        ...

    def list_recent_visible(self, kind: ItemKind, limit: int) -> list[str]:
        """List ids of the most recently created visible items."""
        ...

    def hydrate(self, kind: ItemKind, ids: Sequence[str]) -> list[DisplayItem]:
        """Fetch display data; ids that are gone or hidden are omitted."""
        ...


@runtime_checkable
class ConfigStore(Protocol):
    """Key/value store for tunable ranking configuration."""

    def get_config_value(self, key: str) -> Any:
        """Return the stored value, or None when absent."""
        ...
