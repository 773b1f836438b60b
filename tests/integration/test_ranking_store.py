"""Integration tests for the SQLite ranking store."""

import sqlite3
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from feedrank.data_model import ItemKind
from feedrank.store import (
    EventType,
    RankingStats,
    RankingStore,
    StoreMetrics,
)
from feedrank.store.errors import ConnectionError as StoreConnectionError
from feedrank.store.migrations import CURRENT_VERSION
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "ranking.sqlite"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[RankingStore]:
    """Create a connected ranking store."""
    StoreMetrics.reset()
    store = RankingStore(temp_db_path, run_id="test-run-001")
    store.connect()
    yield store
    store.close()


def _make_stats(
    kind: ItemKind = ItemKind.CARD,
    window_end: datetime = FIXED_NOW,
    mean: float = 5.0,
    stddev: float = 2.0,
    count: int = 3,
) -> RankingStats:
    return RankingStats(
        item_kind=kind,
        window_start=window_end - timedelta(days=7),
        window_end=window_end,
        mean_raw_score=mean,
        stddev_raw_score=stddev,
        item_count=count,
    )


def _seed_normalized(
    store: RankingStore, kind: ItemKind, norm_scores: dict[str, float]
) -> None:
    for item_id in norm_scores:
        store.upsert_raw_score(kind, item_id, 1.0, updated_at=FIXED_NOW)
    store.apply_normalization(
        _make_stats(kind=kind), norm_scores, normalized_at=FIXED_NOW
    )


@pytest.mark.integration
class TestRankingStoreConnection:
    """Tests for connection and setup."""

    def test_connect_creates_database(self, temp_db_path: Path) -> None:
        """Test connecting creates the database file."""
        store = RankingStore(temp_db_path)
        assert not temp_db_path.exists()

        store.connect()
        assert temp_db_path.exists()
        store.close()

    def test_connect_creates_parent_dirs(self, tmp_path: Path) -> None:
        """Test connecting creates parent directories."""
        nested = tmp_path / "a" / "b" / "ranking.sqlite"
        with RankingStore(nested):
            assert nested.exists()

    def test_context_manager(self, temp_db_path: Path) -> None:
        """Test store works as context manager."""
        with RankingStore(temp_db_path) as store:
            assert store.is_connected
            assert store.get_schema_version() == CURRENT_VERSION

        assert not store.is_connected

    def test_in_memory_database(self) -> None:
        """Test the :memory: path works without touching disk."""
        with RankingStore(":memory:") as store:
            store.upsert_raw_score(ItemKind.CARD, "c1", 1.0)
            assert store.get_score(ItemKind.CARD, "c1") is not None

    def test_operations_require_connection(self, temp_db_path: Path) -> None:
        """Test using a closed store raises a connection error."""
        store = RankingStore(temp_db_path)
        with pytest.raises(StoreConnectionError):
            store.get_score(ItemKind.CARD, "c1")

    def test_reopen_keeps_data(self, temp_db_path: Path) -> None:
        """Test data survives close and reopen."""
        with RankingStore(temp_db_path) as store:
            store.upsert_raw_score(ItemKind.CARD, "c1", 3.5)
        with RankingStore(temp_db_path) as store:
            score = store.get_score(ItemKind.CARD, "c1")
            assert score is not None
            assert score.raw_score == 3.5


@pytest.mark.integration
class TestRawScoreUpsert:
    """Tests for raw score persistence."""

    def test_insert_leaves_norm_null(self, store: RankingStore) -> None:
        """Test a first upsert has no normalized score yet."""
        score = store.upsert_raw_score(
            ItemKind.CARD, "c1", 4.2, updated_at=FIXED_NOW
        )

        assert score.raw_score == 4.2
        assert score.norm_score is None
        assert score.last_raw_updated == FIXED_NOW
        assert score.last_event_at is None

    def test_upsert_preserves_norm_score(self, store: RankingStore) -> None:
        """Test updating the raw score keeps the existing norm score."""
        _seed_normalized(store, ItemKind.CARD, {"c1": 1.5})

        later = FIXED_NOW + timedelta(hours=1)
        score = store.upsert_raw_score(ItemKind.CARD, "c1", 9.0, updated_at=later)

        assert score.raw_score == 9.0
        assert score.norm_score == 1.5
        assert score.last_raw_updated == later

    def test_event_time_kept_when_absent(self, store: RankingStore) -> None:
        """Test a full recompute upsert does not clear last_event_at."""
        event_at = FIXED_NOW - timedelta(minutes=5)
        store.upsert_raw_score(ItemKind.CARD, "c1", 1.0, event_at=event_at)
        score = store.upsert_raw_score(ItemKind.CARD, "c1", 2.0)

        assert score.last_event_at == event_at

    def test_kinds_are_separate_keys(self, store: RankingStore) -> None:
        """Test the same id under two kinds is two rows."""
        store.upsert_raw_score(ItemKind.CARD, "x", 1.0)
        store.upsert_raw_score(ItemKind.COLLECTION, "x", 2.0)

        card = store.get_score(ItemKind.CARD, "x")
        collection = store.get_score(ItemKind.COLLECTION, "x")
        assert card is not None
        assert collection is not None
        assert card.raw_score == 1.0
        assert collection.raw_score == 2.0

    def test_last_raw_updated(self, store: RankingStore) -> None:
        """Test reading back the last raw update time."""
        assert store.get_last_raw_updated(ItemKind.CARD, "c1") is None
        store.upsert_raw_score(ItemKind.CARD, "c1", 1.0, updated_at=FIXED_NOW)
        assert store.get_last_raw_updated(ItemKind.CARD, "c1") == FIXED_NOW

    def test_list_updated_since(self, store: RankingStore) -> None:
        """Test the window query filters by raw update time and kind."""
        store.upsert_raw_score(
            ItemKind.CARD, "old", 1.0, updated_at=FIXED_NOW - timedelta(days=10)
        )
        store.upsert_raw_score(ItemKind.CARD, "new", 2.0, updated_at=FIXED_NOW)
        store.upsert_raw_score(ItemKind.COLLECTION, "other", 3.0, updated_at=FIXED_NOW)

        rows = store.list_scores_updated_since(
            ItemKind.CARD, FIXED_NOW - timedelta(days=7)
        )

        assert [row.item_id for row in rows] == ["new"]

    def test_upsert_metrics(self, store: RankingStore) -> None:
        """Test upserts are counted."""
        store.upsert_raw_score(ItemKind.CARD, "c1", 1.0)
        store.upsert_raw_score(ItemKind.CARD, "c1", 2.0)
        assert StoreMetrics.get_instance().score_upserts_total == 2


@pytest.mark.integration
class TestNormalization:
    """Tests for the normalization unit of work."""

    def test_apply_writes_stats_and_scores(self, store: RankingStore) -> None:
        """Test stats and norm scores land together."""
        store.upsert_raw_score(ItemKind.CARD, "a", 3.0, updated_at=FIXED_NOW)
        store.upsert_raw_score(ItemKind.CARD, "b", 7.0, updated_at=FIXED_NOW)

        updated = store.apply_normalization(
            _make_stats(mean=5.0, stddev=2.0, count=2),
            {"a": -1.0, "b": 1.0},
            normalized_at=FIXED_NOW,
        )

        assert updated == 2
        a = store.get_score(ItemKind.CARD, "a")
        assert a is not None
        assert a.norm_score == -1.0
        assert a.last_norm_updated == FIXED_NOW
        stats = store.list_recent_stats(ItemKind.CARD)
        assert len(stats) == 1
        assert stats[0].mean_raw_score == 5.0
        assert stats[0].item_count == 2

    def test_stats_upsert_same_window(self, store: RankingStore) -> None:
        """Test rerunning the same window replaces its stats row."""
        store.apply_normalization(_make_stats(mean=1.0), {})
        store.apply_normalization(_make_stats(mean=2.0), {})

        stats = store.list_recent_stats(ItemKind.CARD)
        assert len(stats) == 1
        assert stats[0].mean_raw_score == 2.0

    def test_unknown_ids_are_not_created(self, store: RankingStore) -> None:
        """Test normalization only updates existing rows."""
        updated = store.apply_normalization(_make_stats(), {"ghost": 1.0})
        assert updated == 0
        assert store.get_score(ItemKind.CARD, "ghost") is None

    def test_recent_stats_newest_first(self, store: RankingStore) -> None:
        """Test audit rows list by window end descending."""
        store.apply_normalization(_make_stats(window_end=FIXED_NOW), {})
        store.apply_normalization(
            _make_stats(window_end=FIXED_NOW + timedelta(hours=1)), {}
        )
        store.apply_normalization(
            _make_stats(kind=ItemKind.COLLECTION, window_end=FIXED_NOW), {}
        )

        card_stats = store.list_recent_stats(ItemKind.CARD)
        assert [s.window_end for s in card_stats] == [
            FIXED_NOW + timedelta(hours=1),
            FIXED_NOW,
        ]
        assert len(store.list_recent_stats()) == 3


@pytest.mark.integration
class TestTopRanked:
    """Tests for ranked reads."""

    def test_orders_by_norm_score(self, store: RankingStore) -> None:
        """Test rows come back by normalized score descending."""
        _seed_normalized(store, ItemKind.CARD, {"a": 0.5, "b": 2.0, "c": -1.0})

        rows = store.top_ranked(ItemKind.CARD, 10)

        assert [row.item_id for row in rows] == ["b", "a", "c"]

    def test_excludes_unnormalized(self, store: RankingStore) -> None:
        """Test rows without a norm score never rank."""
        _seed_normalized(store, ItemKind.CARD, {"a": 0.5})
        store.upsert_raw_score(ItemKind.CARD, "fresh", 99.0)

        rows = store.top_ranked(ItemKind.CARD, 10)

        assert [row.item_id for row in rows] == ["a"]

    def test_ties_break_by_recent_event(self, store: RankingStore) -> None:
        """Test equal norm scores order by latest event, nulls last."""
        _seed_normalized(store, ItemKind.CARD, {"none": 1.0, "old": 1.0, "new": 1.0})
        store.upsert_raw_score(
            ItemKind.CARD, "old", 1.0,
            updated_at=FIXED_NOW, event_at=FIXED_NOW - timedelta(hours=2),
        )
        store.upsert_raw_score(
            ItemKind.CARD, "new", 1.0,
            updated_at=FIXED_NOW, event_at=FIXED_NOW - timedelta(minutes=1),
        )

        rows = store.top_ranked(ItemKind.CARD, 10)

        assert [row.item_id for row in rows] == ["new", "old", "none"]

    def test_limit(self, store: RankingStore) -> None:
        """Test limit caps the rows and zero yields none."""
        _seed_normalized(store, ItemKind.CARD, {"a": 3.0, "b": 2.0, "c": 1.0})

        assert len(store.top_ranked(ItemKind.CARD, 2)) == 2
        assert store.top_ranked(ItemKind.CARD, 0) == []

    def test_list_top_scores_across_kinds(self, store: RankingStore) -> None:
        """Test the operator listing mixes kinds by norm score."""
        _seed_normalized(store, ItemKind.CARD, {"c": 1.0})
        _seed_normalized(store, ItemKind.COLLECTION, {"s": 2.0})

        rows = store.list_top_scores()

        assert [(row.item_kind, row.item_id) for row in rows] == [
            (ItemKind.COLLECTION, "s"),
            (ItemKind.CARD, "c"),
        ]


@pytest.mark.integration
class TestConfigTable:
    """Tests for tunable config persistence."""

    def test_missing_key(self, store: RankingStore) -> None:
        """Test an absent key reads as None."""
        assert store.get_config_value("card_half_life_hours") is None

    def test_round_trip_json_values(self, store: RankingStore) -> None:
        """Test values are stored as JSON and decoded on read."""
        store.set_config_value("card_weights", {"w_u": 1.5})
        store.set_config_value("card_half_life_hours", 24)

        assert store.get_config_value("card_weights") == {"w_u": 1.5}
        assert store.list_config() == {
            "card_half_life_hours": 24,
            "card_weights": {"w_u": 1.5},
        }

    def test_set_overwrites(self, store: RankingStore) -> None:
        """Test setting a key twice keeps the last value."""
        store.set_config_value("promotion_multiplier", 0.5)
        store.set_config_value("promotion_multiplier", 0.8)
        assert store.get_config_value("promotion_multiplier") == 0.8

    def test_list_skips_undecodable_rows(
        self, store: RankingStore, temp_db_path: Path
    ) -> None:
        """Test a hand-edited row that is not JSON is left out of the listing."""
        store.set_config_value("promotion_multiplier", 0.5)
        with sqlite3.connect(temp_db_path) as conn:
            conn.execute(
                "INSERT INTO ranking_config (config_key, config_value, updated_at) "
                "VALUES (?, ?, ?)",
                ("card_half_life_hours", "{not json", FIXED_NOW.isoformat()),
            )

        assert store.list_config() == {"promotion_multiplier": 0.5}


@pytest.mark.integration
class TestEventsAndView:
    """Tests for the event log and the ranked view."""

    def test_record_and_list_events(self, store: RankingStore) -> None:
        """Test events list newest first per item."""
        store.record_event(ItemKind.CARD, "c1", EventType.UPVOTE, FIXED_NOW)
        store.record_event(
            ItemKind.CARD, "c1", EventType.SAVE, FIXED_NOW + timedelta(seconds=1)
        )
        store.record_event(ItemKind.CARD, "c2", EventType.VISIT, FIXED_NOW)

        events = store.list_events(ItemKind.CARD, "c1")

        assert [e.event_type for e in events] == [EventType.SAVE, EventType.UPVOTE]
        assert all(e.event_id is not None for e in events)
        assert StoreMetrics.get_instance().events_logged_total == 3

    def test_refresh_view_ranks_per_kind(self, store: RankingStore) -> None:
        """Test the view assigns rank positions within each kind."""
        _seed_normalized(store, ItemKind.CARD, {"a": 0.1, "b": 0.9})
        _seed_normalized(store, ItemKind.COLLECTION, {"s": 0.5})
        store.upsert_raw_score(ItemKind.CARD, "unnormalized", 5.0)

        rows = store.refresh_ranked_view(FIXED_NOW)

        assert rows == 3
        cards = store.list_ranked_view(ItemKind.CARD)
        assert [(e.item_id, e.rank_position) for e in cards] == [("b", 1), ("a", 2)]
        collections = store.list_ranked_view(ItemKind.COLLECTION)
        assert collections[0].rank_position == 1
        assert collections[0].refreshed_at == FIXED_NOW

    def test_refresh_replaces_previous_view(self, store: RankingStore) -> None:
        """Test a refresh rebuilds the view from scratch."""
        _seed_normalized(store, ItemKind.CARD, {"a": 0.1, "b": 0.9})
        store.refresh_ranked_view(FIXED_NOW)
        store.apply_normalization(
            _make_stats(window_end=FIXED_NOW + timedelta(hours=1)),
            {"a": 2.0},
        )

        store.refresh_ranked_view(FIXED_NOW + timedelta(hours=1))

        cards = store.list_ranked_view(ItemKind.CARD)
        assert [e.item_id for e in cards] == ["a", "b"]
        assert store.get_table_counts()["ranked_view"] == 2

    def test_view_paging(self, store: RankingStore) -> None:
        """Test limit and offset page through the view."""
        _seed_normalized(store, ItemKind.CARD, {"a": 3.0, "b": 2.0, "c": 1.0})
        store.refresh_ranked_view(FIXED_NOW)

        page = store.list_ranked_view(ItemKind.CARD, limit=1, offset=1)

        assert [e.item_id for e in page] == ["b"]

    def test_table_counts(self, store: RankingStore) -> None:
        """Test row counts cover every ranking table."""
        store.upsert_raw_score(ItemKind.CARD, "c1", 1.0)
        counts = store.get_table_counts()

        assert counts["ranking_scores"] == 1
        assert set(counts) == {
            "ranking_scores",
            "ranking_stats",
            "ranking_config",
            "ranking_events",
            "ranked_view",
        }


def test_timestamps_are_utc_aware(store: RankingStore) -> None:
    """Test naive timestamps are stored and read back as UTC."""
    naive = datetime(2026, 1, 15, 12, 0, 0)  # noqa: DTZ001
    score = store.upsert_raw_score(ItemKind.CARD, "c1", 1.0, updated_at=naive)
    assert score.last_raw_updated == naive.replace(tzinfo=UTC)
