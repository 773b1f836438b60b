"""SQLite store for ranking scores, window statistics and engagement events.

This module provides persistent storage for:
- Per-item raw and normalized scores with idempotent upserts
- Normalization audit rows (window mean / stddev)
- Tunable ranking configuration
- The engagement event log and the precomputed ranked view
"""

from feedrank.store.errors import ConnectionError, MigrationError, StateStoreError
from feedrank.store.metrics import StoreMetrics
from feedrank.store.models import (
    EventType,
    RankedViewEntry,
    RankingEvent,
    RankingScore,
    RankingStats,
)
from feedrank.store.store import RankingStore, from_db_timestamp, to_db_timestamp


__all__ = [
    # Errors
    "ConnectionError",
    "MigrationError",
    "StateStoreError",
    # Metrics
    "StoreMetrics",
    # Models
    "EventType",
    "RankedViewEntry",
    "RankingEvent",
    "RankingScore",
    "RankingStats",
    # Store
    "RankingStore",
    "from_db_timestamp",
    "to_db_timestamp",
]
