"""Metrics collection for the ranking store."""

from dataclasses import dataclass, field
from threading import Lock
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for ranking store operations.

    Attributes:
        score_upserts_total: Raw score upserts (full and delta).
        norm_updates_total: Rows whose norm_score was written.
        stats_writes_total: Normalization audit rows written.
        events_logged_total: Engagement events appended.
        view_refreshes_total: Successful ranked view rebuilds.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of committed transactions.
        db_tx_failures: Number of rolled back transactions.
    """

    score_upserts_total: int = 0
    norm_updates_total: int = 0
    stats_writes_total: int = 0
    events_logged_total: int = 0
    view_refreshes_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    db_tx_failures: int = 0

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_score_upsert(self) -> None:
        """Record a raw score upsert."""
        with self._lock:
            self.score_upserts_total += 1

    def record_norm_updates(self, count: int) -> None:
        """Record normalized score writes.

        Args:
            count: Number of rows updated.
        """
        with self._lock:
            self.norm_updates_total += count

    def record_stats_write(self) -> None:
        """Record a normalization audit row."""
        with self._lock:
            self.stats_writes_total += 1

    def record_event_logged(self) -> None:
        """Record an appended engagement event."""
        with self._lock:
            self.events_logged_total += 1

    def record_view_refresh(self) -> None:
        """Record a ranked view rebuild."""
        with self._lock:
            self.view_refreshes_total += 1

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    def record_tx_failure(self) -> None:
        """Record a rolled back transaction."""
        with self._lock:
            self.db_tx_failures += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "score_upserts_total": self.score_upserts_total,
            "norm_updates_total": self.norm_updates_total,
            "stats_writes_total": self.stats_writes_total,
            "events_logged_total": self.events_logged_total,
            "view_refreshes_total": self.view_refreshes_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "db_tx_failures": self.db_tx_failures,
        }

    @property
    def avg_tx_duration_ms(self) -> float:
        """Calculate average transaction duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
