"""Metrics collection for ranking workers and the feed composer."""

from collections import Counter, deque
from dataclasses import dataclass, field
from threading import Lock

from feedrank.ranker.constants import SCORE_PERCENTILES, SCORE_SAMPLE_SIZE


# Module-level singleton state (proper pattern for thread-safe singleton)
_metrics_instance: "RankerMetrics | None" = None
_metrics_lock: Lock = Lock()


@dataclass
class RankerMetrics:
    """Thread-safe metrics for ranking operations.

    Attributes:
        items_processed: Items visited by full recomputes.
        items_succeeded: Items whose raw score was computed (and persisted).
        items_failed: Items that failed in full recomputes.
        recompute_runs: Full recompute runs by kind.
        normalization_passes: Normalization passes that wrote scores.
        deltas_accepted: Delta recomputes that persisted a new score.
        deltas_debounced: Delta recomputes skipped by the debounce guard.
        deltas_failed: Delta recomputes that raised.
        feed_requests: Feed pages composed.
        feed_fallbacks: Recency fallbacks by kind.
        feed_timeouts: Per-kind subrequest timeouts by kind.
        score_values: Most recent raw scores for percentile calculation,
            capped at ``SCORE_SAMPLE_SIZE``.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    items_processed: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    recompute_runs: Counter[str] = field(default_factory=Counter)
    normalization_passes: int = 0
    deltas_accepted: int = 0
    deltas_debounced: int = 0
    deltas_failed: int = 0
    feed_requests: int = 0
    feed_fallbacks: Counter[str] = field(default_factory=Counter)
    feed_timeouts: Counter[str] = field(default_factory=Counter)
    score_values: deque[float] = field(
        default_factory=lambda: deque(maxlen=SCORE_SAMPLE_SIZE)
    )

    @classmethod
    def get_instance(cls) -> "RankerMetrics":
        """Get the singleton instance (thread-safe).

        Returns:
            The shared RankerMetrics instance.
        """
        global _metrics_instance  # noqa: PLW0603
        if _metrics_instance is None:
            with _metrics_lock:
                if _metrics_instance is None:
                    _metrics_instance = cls()
        return _metrics_instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (for testing)."""
        global _metrics_instance  # noqa: PLW0603
        with _metrics_lock:
            _metrics_instance = None

    def record_recompute_run(self, kind: str) -> None:
        """Record the start of a full recompute for a kind."""
        with self._lock:
            self.recompute_runs[kind] += 1

    def record_item_result(self, *, success: bool, score: float | None = None) -> None:
        """Record the outcome of one item in a full recompute.

        Args:
            success: Whether the item's score was computed.
            score: The computed raw score, if any.
        """
        with self._lock:
            self.items_processed += 1
            if success:
                self.items_succeeded += 1
                if score is not None:
                    self.score_values.append(score)
            else:
                self.items_failed += 1

    def record_normalization(self) -> None:
        """Record a completed normalization pass."""
        with self._lock:
            self.normalization_passes += 1

    def record_delta_accepted(self, score: float) -> None:
        """Record a persisted delta recompute."""
        with self._lock:
            self.deltas_accepted += 1
            self.score_values.append(score)

    def record_delta_debounced(self) -> None:
        """Record a delta recompute dropped by the debounce guard."""
        with self._lock:
            self.deltas_debounced += 1

    def record_delta_failed(self) -> None:
        """Record a failed delta recompute."""
        with self._lock:
            self.deltas_failed += 1

    def record_feed_request(self) -> None:
        """Record a composed feed page."""
        with self._lock:
            self.feed_requests += 1

    def record_feed_fallback(self, kind: str) -> None:
        """Record a recency fallback for a kind."""
        with self._lock:
            self.feed_fallbacks[kind] += 1

    def record_feed_timeout(self, kind: str) -> None:
        """Record a per-kind feed subrequest timeout."""
        with self._lock:
            self.feed_timeouts[kind] += 1

    def get_score_percentiles(self) -> dict[str, float]:
        """Calculate score percentiles (p50/p90/p99).

        Returns:
            Dictionary with p50, p90, p99 values.
        """
        with self._lock:
            sorted_scores = sorted(self.score_values)

        if not sorted_scores:
            return {f"p{p}": 0.0 for p in SCORE_PERCENTILES}

        n = len(sorted_scores)

        def percentile(p: float) -> float:
            idx = int(p * n / 100)
            return sorted_scores[min(idx, n - 1)]

        return {f"p{p}": percentile(p) for p in SCORE_PERCENTILES}

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            data: dict[str, object] = {
                "items_processed": self.items_processed,
                "items_succeeded": self.items_succeeded,
                "items_failed": self.items_failed,
                "recompute_runs": dict(self.recompute_runs),
                "normalization_passes": self.normalization_passes,
                "deltas_accepted": self.deltas_accepted,
                "deltas_debounced": self.deltas_debounced,
                "deltas_failed": self.deltas_failed,
                "feed_requests": self.feed_requests,
                "feed_fallbacks": dict(self.feed_fallbacks),
                "feed_timeouts": dict(self.feed_timeouts),
            }
        data["score_percentiles"] = self.get_score_percentiles()
        return data
