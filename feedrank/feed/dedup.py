"""Deduplication of cards that point at the same resource."""

from collections.abc import Sequence

from feedrank.data_model import ItemKind
from feedrank.feed.models import FeedEntry
from feedrank.feed.url import canonicalize_url
from feedrank.sources.protocols import Attribution


def card_identity(entry: FeedEntry) -> str:
    """Canonical identity of a card: its canonical URL, else its id."""
    url = entry.item.canonical_url
    if url:
        canonical = canonicalize_url(url)
        if canonical:
            return canonical
    return f"id:{entry.item_id}"


def _merge_attributions(
    kept: tuple[Attribution, ...], extra: tuple[Attribution, ...]
) -> tuple[Attribution, ...]:
    merged = list(kept)
    for attribution in extra:
        if attribution not in merged:
            merged.append(attribution)
    return tuple(merged)


def dedupe_cards(entries: Sequence[FeedEntry]) -> list[FeedEntry]:
    """Collapse duplicate cards into their first occurrence.

    ``entries`` must already be sorted. The kept card takes the maximum
    score of its duplicates and the union of their attributions. Other
    kinds pass through untouched.

    Args:
        entries: Sorted feed entries.

    Returns:
        Entries with duplicates removed, in input order of the kept items.
    """
    result: list[FeedEntry] = []
    kept_index: dict[str, int] = {}

    for entry in entries:
        if entry.kind != ItemKind.CARD:
            result.append(entry)
            continue

        identity = card_identity(entry)
        index = kept_index.get(identity)
        if index is None:
            kept_index[identity] = len(result)
            result.append(entry)
            continue

        kept = result[index]
        result[index] = kept.model_copy(
            update={
                "score": max(kept.score, entry.score),
                "attributions": _merge_attributions(
                    kept.attributions, entry.attributions
                ),
            }
        )

    return result
