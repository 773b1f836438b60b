"""Single-item delta recompute triggered by engagement events."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog

from feedrank.config import load_ranking_config
from feedrank.data_model import ItemKind
from feedrank.ranker import RankerMetrics, compute_raw_score
from feedrank.sources.protocols import ConfigStore, SignalSource
from feedrank.store import RankingStore
from feedrank.workers.errors import DeltaRecomputeError


logger = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 5.0


class DeltaStatus(str, Enum):
    """What a delta recompute did."""

    ACCEPTED = "accepted"
    DEBOUNCED = "debounced"


@dataclass(frozen=True)
class DeltaOutcome:
    """Result of one delta recompute.

    Attributes:
        kind: Item kind.
        item_id: Item identifier.
        status: Whether a new score was written.
        raw_score: The new raw score (accepted only).
    """

    kind: ItemKind
    item_id: str
    status: DeltaStatus
    raw_score: float | None = None


class DeltaRecomputeWorker:
    """Recomputes one item's raw score after an engagement event.

    Deltas arriving within the debounce window of the previous raw update
    are dropped, not queued; the next accepted delta or full recompute
    picks up the latest signals. ``norm_score`` is never touched here.
    Failures are logged and raised as DeltaRecomputeError; there is no
    internal retry.
    """

    def __init__(
        self,
        store: RankingStore,
        signal_source: SignalSource,
        config_store: ConfigStore | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Ranking store for score persistence.
            signal_source: Source of engagement signals.
            config_store: Tunable config store (None uses defaults).
            debounce_seconds: Default minimum gap between accepted deltas.
            clock: Returns the current time.
        """
        self._store = store
        self._signal_source = signal_source
        self._config_store = config_store
        self._debounce_seconds = debounce_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="workers", subcomponent="delta")

    def recompute(
        self,
        kind: ItemKind,
        item_id: str,
        event_at: datetime | None = None,
        debounce_seconds: float | None = None,
    ) -> DeltaOutcome:
        """Recompute and persist one item's raw score.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            event_at: Time of the triggering event (defaults to now).
            debounce_seconds: Override of the worker's debounce window.

        Returns:
            DeltaOutcome describing what happened.

        Raises:
            DeltaRecomputeError: If config, signal fetch or persistence fails.
        """
        kind = ItemKind.parse(kind)
        debounce = (
            self._debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        log = self._log.bind(kind=kind.value, item_id=item_id)

        try:
            config = load_ranking_config(self._config_store)
            now = self._clock()

            last_updated = self._store.get_last_raw_updated(kind, item_id)
            if last_updated is not None:
                elapsed = (now - last_updated).total_seconds()
                if elapsed < debounce:
                    self._metrics.record_delta_debounced()
                    log.debug(
                        "delta_debounced",
                        elapsed_seconds=round(elapsed, 3),
                        debounce_seconds=debounce,
                    )
                    return DeltaOutcome(
                        kind=kind, item_id=item_id, status=DeltaStatus.DEBOUNCED
                    )

            signals = self._signal_source.get_signals(kind, item_id)
            raw_score = compute_raw_score(kind, signals, config)
            self._store.upsert_raw_score(
                kind,
                item_id,
                raw_score,
                updated_at=now,
                event_at=event_at or now,
            )
        except Exception as e:
            self._metrics.record_delta_failed()
            log.error(
                "delta_recompute_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DeltaRecomputeError(kind, item_id, str(e)) from e

        self._metrics.record_delta_accepted(raw_score)
        log.info("delta_recompute_complete", raw_score=round(raw_score, 6))
        return DeltaOutcome(
            kind=kind,
            item_id=item_id,
            status=DeltaStatus.ACCEPTED,
            raw_score=raw_score,
        )
