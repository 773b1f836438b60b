"""Full recompute worker with batch processing and failure isolation."""

import threading
import time
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Annotated

import structlog
from pydantic import Field

from feedrank.config import RankingConfig, load_ranking_config
from feedrank.data_model import ItemKind, StrictBaseModel
from feedrank.observability import log_context
from feedrank.ranker import RankerMetrics, compute_raw_score
from feedrank.sources.protocols import ConfigStore, ItemStore, SignalSource
from feedrank.store import RankingStats, RankingStore
from feedrank.workers.normalize import WindowNormalizer
from feedrank.workers.state_machine import RecomputeState, RecomputeStateMachine


logger = structlog.get_logger()

# Items per batch; bounds memory and is where cancellation is checked
BATCH_SIZE = 1000

DEFAULT_CHANGED_SINCE_DAYS = 30
FATAL_PREFIX = "Fatal: "

EARLIEST_SINCE = datetime.min.replace(tzinfo=UTC)


def changed_since(now: datetime, days: float) -> datetime:
    """Start of the change window, clamped to the earliest datetime."""
    try:
        return now - timedelta(days=days)
    except OverflowError:
        return EARLIEST_SINCE


class RecomputeReport(StrictBaseModel):
    """Outcome of one or more full recompute runs.

    ``errors`` holds ``"<kind> <item_id>: <message>"`` per failed item and
    ``"Fatal: <message>"`` for errors that aborted a run or its
    normalization pass.
    """

    kinds: tuple[ItemKind, ...]
    processed: Annotated[int, Field(ge=0)] = 0
    succeeded: Annotated[int, Field(ge=0)] = 0
    failed: Annotated[int, Field(ge=0)] = 0
    errors: tuple[str, ...] = ()
    dry_run: bool = False
    cancelled: bool = False
    normalized: bool = False
    stats: tuple[RankingStats, ...] = ()
    final_states: dict[str, str] = Field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def has_fatal_error(self) -> bool:
        """Check whether any run recorded a fatal error."""
        return any(error.startswith(FATAL_PREFIX) for error in self.errors)

    def merge(self, other: "RecomputeReport") -> "RecomputeReport":
        """Combine two reports (e.g. cards then collections).

        Args:
            other: Report of a later run.

        Returns:
            A new report with summed counts and concatenated errors.
        """
        return RecomputeReport(
            kinds=self.kinds + other.kinds,
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            errors=self.errors + other.errors,
            dry_run=self.dry_run or other.dry_run,
            cancelled=self.cancelled or other.cancelled,
            normalized=self.normalized and other.normalized,
            stats=self.stats + other.stats,
            final_states={**self.final_states, **other.final_states},
            duration_ms=self.duration_ms + other.duration_ms,
        )


@dataclass(frozen=True)
class ItemOutcome:
    """Result of scoring a single item."""

    item_id: str
    raw_score: float | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if the item was scored."""
        return self.error is None


class FullRecomputeWorker:
    """Recomputes raw scores for every recently changed item of a kind.

    Provides:
    - Fixed-size batches with cancellation checked between batches
    - Per-item failure isolation (one item failing never aborts the run)
    - Optional parallel scoring within a batch
    - A normalization pass over the trailing window after scoring
    """

    def __init__(  # noqa: PLR0913
        self,
        store: RankingStore,
        item_store: ItemStore,
        signal_source: SignalSource,
        config_store: ConfigStore | None = None,
        run_id: str | None = None,
        max_workers: int = 1,
        batch_size: int = BATCH_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Ranking store for score persistence.
            item_store: Source of changed items.
            signal_source: Source of engagement signals.
            config_store: Tunable config store (None uses defaults).
            run_id: Unique run identifier (generated when None).
            max_workers: Parallel scorers per batch; <= 1 is sequential.
            batch_size: Items per batch.
            clock: Returns the current time.
        """
        if batch_size < 1:
            msg = f"batch_size must be >= 1, got {batch_size}"
            raise ValueError(msg)

        self._store = store
        self._item_store = item_store
        self._signal_source = signal_source
        self._config_store = config_store
        self._run_id = run_id or str(uuid.uuid4())
        self._max_workers = max_workers
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(UTC))
        self._normalizer = WindowNormalizer(store, clock=self._clock)
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="workers", subcomponent="recompute")

    @property
    def run_id(self) -> str:
        """Get the run ID."""
        return self._run_id

    def run(
        self,
        kind: ItemKind,
        changed_since_days: float = DEFAULT_CHANGED_SINCE_DAYS,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> RecomputeReport:
        """Recompute raw scores for one kind, then normalize its window.

        Never raises for item-level or setup failures; they are reported.

        Args:
            kind: Item kind to recompute.
            changed_since_days: Only items created or changed this recently.
            dry_run: Compute scores without persisting or normalizing.
            cancel_event: Set to stop at the next batch boundary.

        Returns:
            RecomputeReport for this kind.

        Raises:
            ValueError: If ``changed_since_days`` is negative or NaN.
        """
        if not changed_since_days >= 0:
            msg = f"changed_since_days must be >= 0, got {changed_since_days}"
            raise ValueError(msg)

        kind = ItemKind.parse(kind)
        with log_context(run_id=self._run_id, kind=kind.value):
            return self._run(kind, changed_since_days, dry_run, cancel_event)

    def _run(
        self,
        kind: ItemKind,
        changed_since_days: float,
        dry_run: bool,
        cancel_event: threading.Event | None,
    ) -> RecomputeReport:
        start_time = time.perf_counter()
        log = self._log.bind(kind=kind.value, dry_run=dry_run)
        state = RecomputeStateMachine(self._run_id, kind.value)
        self._metrics.record_recompute_run(kind.value)

        config = load_ranking_config(self._config_store, run_id=self._run_id)
        now = self._clock()

        log.info(
            "recompute_started",
            changed_since_days=changed_since_days,
            config_checksum=config.compute_checksum(),
            max_workers=self._max_workers,
        )

        processed = 0
        succeeded = 0
        errors: list[str] = []
        cancelled = False
        normalized = False
        stats: list[RankingStats] = []

        def report() -> RecomputeReport:
            duration_ms = (time.perf_counter() - start_time) * 1000
            return RecomputeReport(
                kinds=(kind,),
                processed=processed,
                succeeded=succeeded,
                failed=processed - succeeded,
                errors=tuple(errors),
                dry_run=dry_run,
                cancelled=cancelled,
                normalized=normalized,
                stats=tuple(stats),
                final_states={kind.value: state.state.name},
                duration_ms=round(duration_ms, 2),
            )

        state.transition(RecomputeState.LISTING)
        since = changed_since(now, changed_since_days)
        try:
            item_ids = [
                item.id for item in self._item_store.list_changed_items(kind, since)
            ]
        except Exception as e:  # noqa: BLE001
            log.error("recompute_listing_failed", error=str(e), exc_info=True)
            errors.append(f"{FATAL_PREFIX}{e}")
            state.transition(RecomputeState.FINISHED_FAILURE)
            return report()

        log.info("recompute_items_listed", item_count=len(item_ids))
        state.transition(RecomputeState.SCORING)

        for batch_start in range(0, len(item_ids), self._batch_size):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                log.warning(
                    "recompute_cancelled",
                    processed=processed,
                    remaining=len(item_ids) - batch_start,
                )
                break

            batch = item_ids[batch_start : batch_start + self._batch_size]
            for outcome in self._process_batch(kind, batch, config, now, dry_run):
                processed += 1
                self._metrics.record_item_result(
                    success=outcome.success, score=outcome.raw_score
                )
                if outcome.success:
                    succeeded += 1
                elif outcome.error is not None:
                    errors.append(outcome.error)

            log.debug(
                "recompute_batch_complete",
                batch_start=batch_start,
                batch_size=len(batch),
                processed=processed,
            )

        if cancelled:
            state.transition(RecomputeState.CANCELLED)
            return report()

        if not dry_run and succeeded > 0:
            state.transition(RecomputeState.NORMALIZING)
            try:
                window_stats = self.normalize_window(kind, config, now)
            except Exception as e:  # noqa: BLE001
                log.error("normalization_failed", error=str(e), exc_info=True)
                errors.append(f"{FATAL_PREFIX}normalization failed: {e}")
                state.transition(RecomputeState.FINISHED_FAILURE)
                return report()
            if window_stats is not None:
                normalized = True
                stats.append(window_stats)

        state.transition(RecomputeState.FINISHED_SUCCESS)
        result = report()

        log.info(
            "recompute_complete",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            normalized=result.normalized,
            duration_ms=result.duration_ms,
        )
        return result

    def _process_batch(
        self,
        kind: ItemKind,
        item_ids: Sequence[str],
        config: RankingConfig,
        now: datetime,
        dry_run: bool,
    ) -> list[ItemOutcome]:
        """Score one batch, sequentially or on a thread pool.

        Returns:
            Outcomes in the batch's item order.
        """
        if self._max_workers <= 1:
            return [
                self._score_item(kind, item_id, config, now, dry_run)
                for item_id in item_ids
            ]

        outcomes: dict[str, ItemOutcome] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            future_to_item = {
                executor.submit(
                    self._score_item, kind, item_id, config, now, dry_run
                ): item_id
                for item_id in item_ids
            }

            for future in as_completed(future_to_item):
                item_id = future_to_item[future]
                try:
                    outcomes[item_id] = future.result()
                except Exception as e:  # noqa: BLE001
                    outcomes[item_id] = ItemOutcome(
                        item_id=item_id, error=f"{kind.value} {item_id}: {e}"
                    )

        return [outcomes[item_id] for item_id in item_ids]

    def _score_item(
        self,
        kind: ItemKind,
        item_id: str,
        config: RankingConfig,
        now: datetime,
        dry_run: bool,
    ) -> ItemOutcome:
        """Fetch signals, score and upsert one item, capturing any failure."""
        try:
            signals = self._signal_source.get_signals(kind, item_id)
            raw_score = compute_raw_score(kind, signals, config)
            if not dry_run:
                self._store.upsert_raw_score(kind, item_id, raw_score, updated_at=now)
        except Exception as e:  # noqa: BLE001
            self._log.warning(
                "item_recompute_failed",
                kind=kind.value,
                item_id=item_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ItemOutcome(item_id=item_id, error=f"{kind.value} {item_id}: {e}")

        return ItemOutcome(item_id=item_id, raw_score=raw_score)

    def normalize_window(
        self,
        kind: ItemKind,
        config: RankingConfig,
        now: datetime | None = None,
    ) -> RankingStats | None:
        """Recompute z-scores for every item scored within the window.

        Args:
            kind: Item kind.
            config: Ranking configuration (supplies the window length).
            now: Window end (defaults to the worker clock).

        Returns:
            The persisted window statistics, or None for an empty window.
        """
        return self._normalizer.normalize(kind, config, now or self._clock())
