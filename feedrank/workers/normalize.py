"""Normalization pass: z-scores over a kind's trailing window."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from feedrank.config import RankingConfig
from feedrank.data_model import ItemKind
from feedrank.ranker import RankerMetrics, compute_stats, normalize_score
from feedrank.store import RankingStats, RankingStore


logger = structlog.get_logger()


class WindowNormalizer:
    """Recomputes normalized scores for every item in a kind's window.

    The pass is a single unit of work: the audit stats row and every
    normalized score are written in one transaction, and any persistence
    error propagates to the caller.
    """

    def __init__(
        self,
        store: RankingStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the normalizer.

        Args:
            store: Ranking store holding raw scores.
            clock: Returns the current time.
        """
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = RankerMetrics.get_instance()
        self._log = logger.bind(component="workers", subcomponent="normalize")

    def normalize(
        self,
        kind: ItemKind,
        config: RankingConfig,
        now: datetime | None = None,
    ) -> RankingStats | None:
        """Normalize every score whose raw value was written in the window.

        Args:
            kind: Item kind.
            config: Ranking configuration (supplies the window length).
            now: Window end (defaults to the clock).

        Returns:
            The persisted window statistics, or None for an empty window.
        """
        kind = ItemKind(kind)
        now = now or self._clock()
        window_start = now - timedelta(days=config.normalization_window_days)
        log = self._log.bind(kind=kind.value)

        rows = self._store.list_scores_updated_since(kind, window_start)
        if not rows:
            log.info(
                "normalization_skipped_empty_window",
                window_days=config.normalization_window_days,
            )
            return None

        score_stats = compute_stats([row.raw_score for row in rows])
        norm_scores = {
            row.item_id: normalize_score(
                row.raw_score, score_stats.mean, score_stats.stddev
            )
            for row in rows
        }
        window_stats = RankingStats(
            item_kind=kind,
            window_start=window_start,
            window_end=now,
            mean_raw_score=score_stats.mean,
            stddev_raw_score=score_stats.stddev,
            item_count=score_stats.count,
            computed_at=now,
        )

        updated = self._store.apply_normalization(window_stats, norm_scores, now)
        self._metrics.record_normalization()

        log.info(
            "normalization_complete",
            item_count=score_stats.count,
            mean=round(score_stats.mean, 6),
            stddev=round(score_stats.stddev, 6),
            rows_updated=updated,
        )
        return window_stats
