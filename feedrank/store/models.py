"""Data models for the ranking store."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import Field

from feedrank.data_model import ItemKind, StrictBaseModel


class EventType(str, Enum):
    """Engagement events that can change an item's ranking."""

    UPVOTE = "upvote"
    UNVOTE = "unvote"
    SAVE = "save"
    UNSAVE = "unsave"
    COMMENT = "comment"
    VISIT = "visit"
    PROMOTION = "promotion"


class RankingScore(StrictBaseModel):
    """Persisted score row, one per (item_kind, item_id).

    ``norm_score`` stays None until a normalization pass covers the row.
    ``last_event_at`` is only set by delta updates.
    """

    item_kind: ItemKind
    item_id: Annotated[str, Field(min_length=1)]
    raw_score: float
    norm_score: float | None = None
    last_raw_updated: datetime
    last_norm_updated: datetime | None = None
    last_event_at: datetime | None = None


class RankingStats(StrictBaseModel):
    """Audit record of one normalization pass."""

    item_kind: ItemKind
    window_start: datetime
    window_end: datetime
    mean_raw_score: float
    stddev_raw_score: Annotated[float, Field(ge=0.0)]
    item_count: Annotated[int, Field(ge=0)]
    computed_at: datetime | None = None


class RankingEvent(StrictBaseModel):
    """Logged engagement event."""

    event_id: int | None = None
    item_kind: ItemKind
    item_id: Annotated[str, Field(min_length=1)]
    event_type: EventType
    occurred_at: datetime


class RankedViewEntry(StrictBaseModel):
    """Row of the precomputed ranked view."""

    item_kind: ItemKind
    item_id: str
    norm_score: float
    raw_score: float
    last_event_at: datetime | None = None
    rank_position: Annotated[int, Field(ge=1)]
    refreshed_at: datetime
