"""Ranking service facade: the operations callers outside the engine use."""

import threading
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from datetime import UTC, datetime

import structlog

from feedrank.config import load_ranking_config
from feedrank.data_model import ItemKind
from feedrank.feed import FeedComposer, FeedPage, resolve_kinds
from feedrank.feed.composer import DEFAULT_FEED_LIMIT, KindFilter
from feedrank.settings import AppSettings
from feedrank.sources.protocols import ConfigStore, ItemStore, SignalSource
from feedrank.store import EventType, RankingStats, RankingStore
from feedrank.workers import (
    DeltaDispatcher,
    DeltaOutcome,
    DeltaRecomputeWorker,
    FullRecomputeWorker,
    RankingEventLogger,
    RecomputeReport,
    ViewRefresher,
    WindowNormalizer,
)
from feedrank.workers.dispatcher import ErrorCallback
from feedrank.workers.recompute import DEFAULT_CHANGED_SINCE_DAYS


logger = structlog.get_logger()


class RankingService:
    """Wires the workers and the feed composer around one ranking store.

    Owns a background delta dispatcher; call ``close`` (or use it as a
    context manager) to drain it.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: RankingStore,
        item_store: ItemStore,
        signal_source: SignalSource,
        config_store: ConfigStore | None = None,
        settings: AppSettings | None = None,
        on_delta_error: ErrorCallback | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Connected ranking store.
            item_store: Item store collaborator.
            signal_source: Signal source collaborator.
            config_store: Tunable config store (None uses defaults).
            settings: Process settings (defaults when None).
            on_delta_error: Error channel for background deltas.
            clock: Returns the current time.
        """
        self._settings = settings or AppSettings()
        self._store = store
        self._item_store = item_store
        self._signal_source = signal_source
        self._config_store = config_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component="service")

        self._delta_worker = DeltaRecomputeWorker(
            store,
            signal_source,
            config_store=config_store,
            debounce_seconds=self._settings.debounce_seconds,
            clock=self._clock,
        )
        self._dispatcher = DeltaDispatcher(
            self._delta_worker,
            max_workers=self._settings.delta_max_workers,
            on_error=on_delta_error,
        )
        self._event_logger = RankingEventLogger(
            store,
            self._dispatcher,
            enabled=self._settings.ranking_events_enabled,
        )
        self._composer = FeedComposer(
            store,
            item_store,
            kind_timeout_seconds=self._settings.feed_kind_timeout_seconds,
        )
        self._view_refresher = ViewRefresher(store)
        self._normalizer = WindowNormalizer(store, clock=self._clock)

    def _recompute_worker(self, run_id: str) -> FullRecomputeWorker:
        return FullRecomputeWorker(
            self._store,
            self._item_store,
            self._signal_source,
            config_store=self._config_store,
            run_id=run_id,
            max_workers=self._settings.recompute_max_workers,
            clock=self._clock,
        )

    def trigger_full_recompute(
        self,
        kind: KindFilter = None,
        changed_since_days: float = DEFAULT_CHANGED_SINCE_DAYS,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> RecomputeReport:
        """Recompute one kind, or cards then collections.

        Unless ``dry_run``, the precomputed view is refreshed afterwards.

        Args:
            kind: One kind, or None/"both" for every kind.
            changed_since_days: Only items created or changed this recently.
            dry_run: Compute scores without writing anything.
            cancel_event: Set to stop at the next batch boundary.

        Returns:
            Combined RecomputeReport.
        """
        run_id = str(uuid.uuid4())
        worker = self._recompute_worker(run_id)

        report: RecomputeReport | None = None
        for item_kind in resolve_kinds(kind):
            kind_report = worker.run(
                item_kind,
                changed_since_days=changed_since_days,
                dry_run=dry_run,
                cancel_event=cancel_event,
            )
            report = kind_report if report is None else report.merge(kind_report)
            if kind_report.cancelled:
                break

        if report is None:
            msg = "No item kinds to recompute"
            raise ValueError(msg)

        if not dry_run:
            self.refresh_precomputed_view()

        self._log.info(
            "full_recompute_complete",
            run_id=run_id,
            kinds=[k.value for k in report.kinds],
            processed=report.processed,
            failed=report.failed,
            fatal=report.has_fatal_error,
        )
        return report

    def normalize(self, kind: ItemKind) -> RankingStats | None:
        """Run only the normalization pass for one kind.

        Raises:
            sqlite3.Error: If the normalization transaction fails.
        """
        config = load_ranking_config(self._config_store)
        return self._normalizer.normalize(ItemKind.parse(kind), config, self._clock())

    def trigger_delta_recompute(
        self,
        kind: ItemKind,
        item_id: str,
        event_at: datetime | None = None,
    ) -> "Future[DeltaOutcome] | None":
        """Schedule a background delta recompute; never raises."""
        return self._dispatcher.submit(kind, item_id, event_at=event_at)

    def recompute_delta_now(
        self,
        kind: ItemKind,
        item_id: str,
        debounce_seconds: float | None = None,
    ) -> DeltaOutcome:
        """Run a delta recompute in the calling thread.

        Raises:
            DeltaRecomputeError: If the recompute fails.
        """
        return self._delta_worker.recompute(
            ItemKind.parse(kind), item_id, debounce_seconds=debounce_seconds
        )

    def log_event(
        self,
        kind: ItemKind | str,
        item_id: str,
        event_type: EventType | str,
        occurred_at: datetime | None = None,
    ) -> bool:
        """Record an engagement event and schedule its delta; never raises."""
        return self._event_logger.log_event(kind, item_id, event_type, occurred_at)

    def get_feed(
        self,
        kind_filter: KindFilter = None,
        mix_ratios: Mapping[ItemKind | str, float] | None = None,
        limit: int = DEFAULT_FEED_LIMIT,
        offset: int = 0,
    ) -> FeedPage:
        """Compose one feed page."""
        return self._composer.compose(
            kind_filter=kind_filter,
            mix_ratios=mix_ratios,
            limit=limit,
            offset=offset,
        )

    def refresh_precomputed_view(self) -> bool:
        """Rebuild the ranked view; failures are logged, never raised."""
        return self._view_refresher.refresh(self._clock())

    def close(self) -> None:
        """Drain pending deltas and stop the dispatcher."""
        self._dispatcher.shutdown(wait=True)

    def __enter__(self) -> "RankingService":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()
