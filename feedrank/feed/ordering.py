"""Feed ordering rule.

Scores closer than ``SCORE_TIE_EPSILON`` are a tie. Ties go to the most
recently engaged item, and items with no engagement event sort after
items with one. Remaining ties go to the newest item, then kind and
item_id make the order total.
"""

from collections.abc import Iterable
from functools import cmp_to_key

from feedrank.feed.models import FeedEntry


SCORE_TIE_EPSILON = 1e-6


def compare_entries(a: FeedEntry, b: FeedEntry) -> int:
    """Three-way comparison; negative when ``a`` ranks before ``b``."""
    if abs(a.score - b.score) >= SCORE_TIE_EPSILON:
        return -1 if a.score > b.score else 1

    if a.last_event_at != b.last_event_at:
        if a.last_event_at is None:
            return 1
        if b.last_event_at is None:
            return -1
        return -1 if a.last_event_at > b.last_event_at else 1

    a_created = a.item.created_at
    b_created = b.item.created_at
    if a_created != b_created:
        if a_created is None:
            return 1
        if b_created is None:
            return -1
        return -1 if a_created > b_created else 1

    a_key = (a.kind.value, a.item_id)
    b_key = (b.kind.value, b.item_id)
    if a_key == b_key:
        return 0
    return -1 if a_key < b_key else 1


def sort_entries(entries: Iterable[FeedEntry]) -> list[FeedEntry]:
    """Sort entries best first."""
    return sorted(entries, key=cmp_to_key(compare_entries))
