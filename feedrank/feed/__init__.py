"""Feed composition: ranking-ordered, mixed and deduplicated pages."""

from feedrank.feed.composer import FeedComposer, allocate_counts, resolve_kinds
from feedrank.feed.dedup import card_identity, dedupe_cards
from feedrank.feed.models import FeedEntry, FeedPage
from feedrank.feed.ordering import SCORE_TIE_EPSILON, compare_entries, sort_entries
from feedrank.feed.url import canonicalize_url


__all__ = [
    "SCORE_TIE_EPSILON",
    "FeedComposer",
    "FeedEntry",
    "FeedPage",
    "allocate_counts",
    "canonicalize_url",
    "card_identity",
    "compare_entries",
    "dedupe_cards",
    "resolve_kinds",
    "sort_entries",
]
