"""JSON snapshot catalog acting as signal source and item store.

The catalog file holds one list per kind::

    {
      "cards": [
        {
          "id": "card-1",
          "created_at": "2026-01-14T12:00:00Z",
          "owner_id": "user-9",
          "title": "Paper",
          "canonical_url": "https://example.com/paper",
          "signals": {"upvotes_count": 50, "saves_count": 30},
          "attributions": [{"context_type": "collection", "context_id": "c-1"}]
        }
      ],
      "collections": []
    }

Hidden items (``visible: false``) are never listed or hydrated, but still
answer signal fetches.
"""

import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

import structlog
from pydantic import ConfigDict, Field, ValidationError

from feedrank.data_model import ItemKind, StrictBaseModel
from feedrank.ranker.models import RankingSignals
from feedrank.sources.errors import ItemStoreUnavailableError, SignalFetchError
from feedrank.sources.protocols import Attribution, ChangedItem, DisplayItem


logger = structlog.get_logger()

SECONDS_PER_HOUR = 3600.0


class CatalogSignals(StrictBaseModel):
    """Stored engagement counters (age is derived from ``created_at``)."""

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    upvotes_count: Annotated[int, Field(ge=0)] = 0
    saves_count: Annotated[int, Field(ge=0)] = 0
    comments_count: Annotated[int, Field(ge=0)] = 0
    visits_count: Annotated[int, Field(ge=0)] = 0
    creator_quality: Annotated[float | None, Field(ge=0.0, le=100.0)] = None
    promotion_boost: Annotated[float, Field(ge=0.0)] = 0.0
    abuse_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 1.0


class CatalogItem(StrictBaseModel):
    """One card or collection in the snapshot."""

    id: Annotated[str, Field(min_length=1)]
    created_at: datetime
    updated_at: datetime | None = None
    owner_id: str | None = None
    visible: bool = True
    title: str = ""
    canonical_url: str | None = None
    thumbnail_url: str | None = None
    signals: CatalogSignals = Field(default_factory=CatalogSignals)
    attributions: tuple[Attribution, ...] = ()


class CatalogFile(StrictBaseModel):
    """Root of a snapshot file."""

    cards: list[CatalogItem] = Field(default_factory=list)
    collections: list[CatalogItem] = Field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SnapshotCatalog:
    """Read-only catalog of cards and collections loaded from JSON."""

    def __init__(
        self,
        catalog: CatalogFile,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the catalog.

        Args:
            catalog: Parsed snapshot.
            clock: Returns the current time; used to derive item age.
        """
        self._clock = clock or (lambda: datetime.now(UTC))
        self._items: dict[ItemKind, dict[str, CatalogItem]] = {
            ItemKind.CARD: {item.id: item for item in catalog.cards},
            ItemKind.COLLECTION: {item.id: item for item in catalog.collections},
        }
        self._log = logger.bind(component="sources", subcomponent="snapshot")

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        clock: Callable[[], datetime] | None = None,
    ) -> "SnapshotCatalog":
        """Build a catalog from an already-decoded mapping.

        Raises:
            ItemStoreUnavailableError: If the mapping is not a valid snapshot.
        """
        try:
            catalog = CatalogFile.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid catalog snapshot: {e.error_count()} validation errors"
            raise ItemStoreUnavailableError(msg) from e
        return cls(catalog, clock=clock)

    @classmethod
    def from_path(
        cls,
        path: Path,
        clock: Callable[[], datetime] | None = None,
    ) -> "SnapshotCatalog":
        """Load a catalog from a JSON file.

        Raises:
            ItemStoreUnavailableError: If the file cannot be read or parsed.
        """
        try:
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Cannot read catalog {path}: {e}"
            raise ItemStoreUnavailableError(msg) from e

        if not isinstance(data, dict):
            msg = f"Catalog {path} must contain a JSON object"
            raise ItemStoreUnavailableError(msg)

        catalog = cls.from_dict(data, clock=clock)
        logger.info(
            "catalog_loaded",
            component="sources",
            path=str(path),
            cards=len(catalog._items[ItemKind.CARD]),
            collections=len(catalog._items[ItemKind.COLLECTION]),
        )
        return catalog

    def _visible(self, kind: ItemKind) -> list[CatalogItem]:
        return [item for item in self._items[ItemKind(kind)].values() if item.visible]

    # ===== SignalSource =====

    def get_signals(self, kind: ItemKind, item_id: str) -> RankingSignals:
        """Fetch signals for one item.

        Raises:
            SignalFetchError: If the item is unknown.
        """
        item = self._items[ItemKind(kind)].get(item_id)
        if item is None:
            raise SignalFetchError(kind, item_id, "item not found")

        age_seconds = (self._clock() - _as_utc(item.created_at)).total_seconds()
        return RankingSignals(
            **item.signals.model_dump(),
            age_hours=max(age_seconds / SECONDS_PER_HOUR, 0.0),
        )

    # ===== ItemStore =====

    def list_changed_items(self, kind: ItemKind, since: datetime) -> list[ChangedItem]:
        """List visible items created or updated at or after ``since``."""
        since = _as_utc(since)
        changed = [
            item
            for item in self._visible(kind)
            if _as_utc(item.created_at) >= since
            or (item.updated_at is not None and _as_utc(item.updated_at) >= since)
        ]
        changed.sort(key=lambda item: item.id)
        return [
            ChangedItem(id=item.id, created_at=item.created_at, owner_id=item.owner_id)
            for item in changed
        ]

    def list_recent_visible(self, kind: ItemKind, limit: int) -> list[str]:
        """List ids of the newest visible items, newest first."""
        if limit <= 0:
            return []
        items = sorted(
            self._visible(kind),
            key=lambda item: (_as_utc(item.created_at), item.id),
            reverse=True,
        )
        return [item.id for item in items[:limit]]

    def hydrate(self, kind: ItemKind, ids: Sequence[str]) -> list[DisplayItem]:
        """Fetch display data in the order requested, skipping hidden ids."""
        kind = ItemKind(kind)
        items = self._items[kind]
        hydrated: list[DisplayItem] = []
        for item_id in ids:
            item = items.get(item_id)
            if item is None or not item.visible:
                continue
            hydrated.append(
                DisplayItem(
                    kind=kind,
                    id=item.id,
                    title=item.title,
                    canonical_url=item.canonical_url,
                    thumbnail_url=item.thumbnail_url,
                    owner_id=item.owner_id,
                    created_at=item.created_at,
                    upvotes_count=item.signals.upvotes_count,
                    saves_count=item.signals.saves_count,
                    comments_count=item.signals.comments_count,
                    visits_count=item.signals.visits_count,
                    attributions=item.attributions,
                )
            )
        return hydrated
