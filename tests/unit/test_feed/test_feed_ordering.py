"""Unit tests for feed ordering."""

from datetime import datetime, timedelta

import pytest

from feedrank.data_model import ItemKind
from feedrank.feed import FeedEntry, compare_entries, sort_entries
from feedrank.sources import DisplayItem
from tests.helpers.time import FIXED_NOW


def _make_entry(
    item_id: str,
    score: float,
    kind: ItemKind = ItemKind.CARD,
    last_event_at: datetime | None = None,
    created_at: datetime | None = FIXED_NOW,
) -> FeedEntry:
    return FeedEntry(
        kind=kind,
        item_id=item_id,
        score=score,
        last_event_at=last_event_at,
        item=DisplayItem(kind=kind, id=item_id, created_at=created_at),
    )


def _ids(entries: list[FeedEntry]) -> list[str]:
    return [entry.item_id for entry in entries]


class TestSortEntries:
    """Tests for the feed ordering rule."""

    @pytest.mark.unit
    def test_higher_score_first(self) -> None:
        """Entries sort by score descending."""
        entries = [_make_entry("low", 0.1), _make_entry("high", 2.0), _make_entry("mid", 1.0)]
        assert _ids(sort_entries(entries)) == ["high", "mid", "low"]

    @pytest.mark.unit
    def test_scores_within_epsilon_tie(self) -> None:
        """Nearly equal scores fall through to the event time."""
        entries = [
            _make_entry("a", 1.0, last_event_at=FIXED_NOW - timedelta(hours=1)),
            _make_entry("b", 1.0 + 1e-9, last_event_at=FIXED_NOW),
        ]
        assert _ids(sort_entries(entries)) == ["b", "a"]

    @pytest.mark.unit
    def test_entries_without_events_sort_last(self) -> None:
        """On a score tie, an entry with no event ranks after one with an event."""
        entries = [
            _make_entry("no-event", 1.0),
            _make_entry("old-event", 1.0, last_event_at=FIXED_NOW - timedelta(days=3)),
        ]
        assert _ids(sort_entries(entries)) == ["old-event", "no-event"]

    @pytest.mark.unit
    def test_newest_item_breaks_remaining_ties(self) -> None:
        """Equal score and no events order by creation time, newest first."""
        entries = [
            _make_entry("older", 0.0, created_at=FIXED_NOW - timedelta(hours=5)),
            _make_entry("undated", 0.0, created_at=None),
            _make_entry("newer", 0.0, created_at=FIXED_NOW),
        ]
        assert _ids(sort_entries(entries)) == ["newer", "older", "undated"]

    @pytest.mark.unit
    def test_total_order_on_identity(self) -> None:
        """Fully tied entries order by kind then id."""
        entries = [
            _make_entry("b", 1.0, kind=ItemKind.COLLECTION),
            _make_entry("b", 1.0),
            _make_entry("a", 1.0),
        ]
        result = sort_entries(entries)
        assert [(e.kind, e.item_id) for e in result] == [
            (ItemKind.CARD, "a"),
            (ItemKind.CARD, "b"),
            (ItemKind.COLLECTION, "b"),
        ]

    @pytest.mark.unit
    def test_compare_is_antisymmetric(self) -> None:
        """Swapping arguments flips the sign."""
        a = _make_entry("a", 2.0)
        b = _make_entry("b", 1.0)
        assert compare_entries(a, b) < 0
        assert compare_entries(b, a) > 0
        assert compare_entries(a, a) == 0

    @pytest.mark.unit
    def test_negative_scores(self) -> None:
        """Normalized scores below zero still order correctly."""
        entries = [_make_entry("neg", -1.5), _make_entry("zero", 0.0)]
        assert _ids(sort_entries(entries)) == ["zero", "neg"]
