"""Data models for composed feed pages."""

from datetime import datetime
from typing import Annotated

from pydantic import Field

from feedrank.data_model import ItemKind, StrictBaseModel
from feedrank.sources.protocols import Attribution, DisplayItem


class FeedEntry(StrictBaseModel):
    """One hydrated item in a feed, annotated with its ranking.

    Entries that came from the recency fallback carry ``score=0`` and no
    ``last_event_at``; ``ranked`` tells them apart from a genuine zero.
    """

    kind: ItemKind
    item_id: str
    score: float
    last_event_at: datetime | None = None
    ranked: bool = True
    item: DisplayItem
    attributions: tuple[Attribution, ...] = ()


class FeedPage(StrictBaseModel):
    """A page of the composed feed.

    Attributes:
        feed: Entries for the requested page.
        total: Entry count after deduplication, before paging.
        degraded_kinds: Kinds dropped because their fetch timed out.
        fallback_kinds: Kinds served by recency instead of ranking.
    """

    feed: tuple[FeedEntry, ...] = ()
    total: Annotated[int, Field(ge=0)] = 0
    degraded_kinds: tuple[ItemKind, ...] = ()
    fallback_kinds: tuple[ItemKind, ...] = ()
