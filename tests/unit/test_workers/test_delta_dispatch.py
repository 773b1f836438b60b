"""Unit tests for DeltaDispatcher, RankingEventLogger and ViewRefresher."""

import sqlite3
from collections.abc import Generator
from unittest.mock import MagicMock

import pytest

from feedrank.data_model import ItemKind
from feedrank.store import EventType, RankingStore, StoreMetrics
from feedrank.workers import (
    DeltaDispatcher,
    DeltaOutcome,
    DeltaRecomputeError,
    DeltaStatus,
    RankingEventLogger,
    ViewRefresher,
)
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def store() -> Generator[RankingStore]:
    """Create an in-memory ranking store."""
    StoreMetrics.reset()
    with RankingStore(":memory:") as store:
        yield store


def _make_worker(error: Exception | None = None) -> MagicMock:
    worker = MagicMock()
    if error is not None:
        worker.recompute.side_effect = error
    else:
        worker.recompute.side_effect = lambda kind, item_id, event_at=None: DeltaOutcome(
            kind=kind, item_id=item_id, status=DeltaStatus.ACCEPTED, raw_score=1.0
        )
    return worker


class TestDeltaDispatcher:
    """Tests for background delta dispatch."""

    @pytest.mark.unit
    def test_submit_runs_worker(self) -> None:
        """Submitted deltas run on the pool and resolve to outcomes."""
        worker = _make_worker()
        with DeltaDispatcher(worker, max_workers=2) as dispatcher:
            future = dispatcher.submit("card", "c1", event_at=FIXED_NOW)
            assert future is not None
            outcome = future.result(timeout=5)

        assert outcome.status == DeltaStatus.ACCEPTED
        worker.recompute.assert_called_once_with(ItemKind.CARD, "c1", FIXED_NOW)

    @pytest.mark.unit
    def test_failure_reported_not_raised(self) -> None:
        """A failing delta reaches on_error and the failure counter."""
        error = DeltaRecomputeError(ItemKind.CARD, "c1", "boom")
        on_error = MagicMock()
        dispatcher = DeltaDispatcher(_make_worker(error), on_error=on_error)

        future = dispatcher.submit(ItemKind.CARD, "c1")
        dispatcher.shutdown(wait=True)

        assert future is not None
        assert future.exception() is error
        assert dispatcher.failed_count == 1
        on_error.assert_called_once_with(ItemKind.CARD, "c1", error)

    @pytest.mark.unit
    def test_failing_callback_is_contained(self) -> None:
        """An error callback that raises does not escape."""
        on_error = MagicMock(side_effect=RuntimeError("callback broke"))
        dispatcher = DeltaDispatcher(
            _make_worker(RuntimeError("boom")), on_error=on_error
        )

        dispatcher.submit(ItemKind.CARD, "c1")
        dispatcher.shutdown(wait=True)

        assert dispatcher.failed_count == 1
        on_error.assert_called_once()

    @pytest.mark.unit
    def test_closed_dispatcher_rejects(self) -> None:
        """After shutdown, submit returns None instead of raising."""
        worker = _make_worker()
        dispatcher = DeltaDispatcher(worker)
        dispatcher.shutdown()

        assert dispatcher.submit(ItemKind.CARD, "c1") is None
        worker.recompute.assert_not_called()

    @pytest.mark.unit
    def test_invalid_kind_rejected(self) -> None:
        """Unknown kinds are dropped without raising."""
        worker = _make_worker()
        with DeltaDispatcher(worker) as dispatcher:
            assert dispatcher.submit("deck", "c1") is None
        worker.recompute.assert_not_called()


class TestRankingEventLogger:
    """Tests for event logging."""

    @pytest.mark.unit
    def test_records_and_dispatches(self, store: RankingStore) -> None:
        """An event is stored and a delta is scheduled."""
        dispatcher = MagicMock()
        events = RankingEventLogger(store, dispatcher)

        assert events.log_event("card", "c1", "upvote", FIXED_NOW)

        logged = store.list_events(ItemKind.CARD, "c1")
        assert [e.event_type for e in logged] == [EventType.UPVOTE]
        dispatcher.submit.assert_called_once_with(
            ItemKind.CARD, "c1", event_at=FIXED_NOW
        )

    @pytest.mark.unit
    def test_legacy_kind(self, store: RankingStore) -> None:
        """The legacy kind alias is accepted."""
        events = RankingEventLogger(store)
        assert events.log_event("stack", "s1", EventType.SAVE)
        assert len(store.list_events(ItemKind.COLLECTION, "s1")) == 1

    @pytest.mark.unit
    def test_disabled(self, store: RankingStore) -> None:
        """A disabled logger records and schedules nothing."""
        dispatcher = MagicMock()
        events = RankingEventLogger(store, dispatcher, enabled=False)

        assert not events.log_event(ItemKind.CARD, "c1", EventType.VISIT)
        assert store.get_table_counts()["ranking_events"] == 0
        dispatcher.submit.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.parametrize(("kind", "event_type"), [("deck", "upvote"), ("card", "like")])
    def test_invalid_input_rejected(
        self, store: RankingStore, kind: str, event_type: str
    ) -> None:
        """Unknown kinds or event types return False without raising."""
        dispatcher = MagicMock()
        events = RankingEventLogger(store, dispatcher)

        assert not events.log_event(kind, "c1", event_type)
        dispatcher.submit.assert_not_called()

    @pytest.mark.unit
    def test_store_failure_still_dispatches(self) -> None:
        """A failed write is reported but the delta still runs."""
        store = MagicMock()
        store.record_event.side_effect = sqlite3.OperationalError("locked")
        dispatcher = MagicMock()

        recorded = RankingEventLogger(store, dispatcher).log_event(
            ItemKind.CARD, "c1", EventType.COMMENT, FIXED_NOW
        )

        assert not recorded
        dispatcher.submit.assert_called_once()


class TestViewRefresher:
    """Tests for best-effort view refresh."""

    @pytest.mark.unit
    def test_refresh_success(self, store: RankingStore) -> None:
        """A healthy store refreshes."""
        assert ViewRefresher(store).refresh(FIXED_NOW)
        assert StoreMetrics.get_instance().view_refreshes_total == 1

    @pytest.mark.unit
    def test_refresh_failure_swallowed(self) -> None:
        """A failing refresh returns False."""
        store = MagicMock()
        store.refresh_ranked_view.side_effect = sqlite3.OperationalError("locked")
        assert not ViewRefresher(store).refresh(FIXED_NOW)
