"""SQLite ranking store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from feedrank.data_model import ItemKind
from feedrank.store.errors import ConnectionError as StoreConnectionError
from feedrank.store.errors import StateStoreError
from feedrank.store.metrics import StoreMetrics, TransactionContext
from feedrank.store.migrations import CURRENT_VERSION, MigrationManager
from feedrank.store.models import (
    EventType,
    RankedViewEntry,
    RankingEvent,
    RankingScore,
    RankingStats,
)


logger = structlog.get_logger()

MEMORY_DB = ":memory:"

# Ranked read order: norm desc, most recent event first (nulls last), then freshest
_RANKED_ORDER_SQL = """
    norm_score DESC,
    last_event_at IS NULL,
    last_event_at DESC,
    last_raw_updated DESC,
    item_id
"""


def to_db_timestamp(value: datetime) -> str:
    """Serialize a timestamp so lexical order equals chronological order.

    Naive datetimes are taken to be UTC.

    Args:
        value: Timestamp to serialize.

    Returns:
        UTC ISO-8601 string with microsecond precision.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp.

    Args:
        value: Stored ISO-8601 string or None.

    Returns:
        Timezone-aware datetime, or None.
    """
    if value is None:
        return None
    return datetime.fromisoformat(value)


class RankingStore:
    """SQLite store for ranking scores, statistics, config and events.

    Every write is an idempotent upsert keyed by natural identity, so
    concurrent writers need no locking beyond SQLite's own; the worst
    case under a race is last write wins on a single row. The shared
    connection is serialized with a re-entrant lock so worker threads
    can use one store instance.
    """

    def __init__(
        self,
        db_path: Path | str,
        run_id: str | None = None,
    ) -> None:
        """Initialize the ranking store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            run_id: Optional run ID for logging context.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def run_id(self) -> str:
        """Get the current run ID."""
        return self._run_id

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        Enables WAL mode for file-backed databases.
        """
        if self._conn is not None:
            return

        in_memory = str(self._db_path) == MEMORY_DB
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        if not in_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "RankingStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            self._log.debug("transaction_started", tx_id=tx_id, op=operation)

            try:
                yield ctx
                conn.commit()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._metrics.record_tx_duration(duration_ms)

                self._log.debug(
                    "transaction_complete",
                    tx_id=tx_id,
                    op=operation,
                    affected_rows=ctx.affected_rows,
                    duration_ms=round(duration_ms, 2),
                )

            except Exception:
                conn.rollback()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._metrics.record_tx_failure()

                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    duration_ms=round(duration_ms, 2),
                )
                raise

    # ===== Ranking Scores =====

    def upsert_raw_score(
        self,
        kind: ItemKind,
        item_id: str,
        raw_score: float,
        *,
        updated_at: datetime | None = None,
        event_at: datetime | None = None,
    ) -> RankingScore:
        """Insert or update an item's raw score.

        Only ``raw_score``, ``last_raw_updated`` and, when given,
        ``last_event_at`` change; an existing ``norm_score`` is preserved.
        Safe to retry.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            raw_score: Newly computed raw score.
            updated_at: Timestamp of the computation (defaults to now).
            event_at: Engagement event time (delta updates only).

        Returns:
            The stored RankingScore row.
        """
        updated_at = updated_at or datetime.now(UTC)
        event_iso = to_db_timestamp(event_at) if event_at is not None else None

        with self._transaction("upsert_raw_score") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO ranking_scores (
                    item_kind, item_id, raw_score, norm_score,
                    last_raw_updated, last_norm_updated, last_event_at
                ) VALUES (?, ?, ?, NULL, ?, NULL, ?)
                ON CONFLICT(item_kind, item_id) DO UPDATE SET
                    raw_score = excluded.raw_score,
                    last_raw_updated = excluded.last_raw_updated,
                    last_event_at = COALESCE(
                        excluded.last_event_at, ranking_scores.last_event_at
                    )
                """,
                (
                    ItemKind(kind).value,
                    item_id,
                    raw_score,
                    to_db_timestamp(updated_at),
                    event_iso,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)
            self._metrics.record_score_upsert()

        stored = self.get_score(kind, item_id)
        if stored is None:
            msg = f"Score row vanished after upsert: {kind} {item_id}"
            raise StateStoreError(msg)
        return stored

    def get_score(self, kind: ItemKind, item_id: str) -> RankingScore | None:
        """Get an item's score row.

        Args:
            kind: Item kind.
            item_id: Item identifier.

        Returns:
            The RankingScore, or None if the item was never scored.
        """
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT * FROM ranking_scores WHERE item_kind = ? AND item_id = ?",
                (ItemKind(kind).value, item_id),
            ).fetchone()

        if row is None:
            return None
        return self._row_to_score(row)

    def get_last_raw_updated(self, kind: ItemKind, item_id: str) -> datetime | None:
        """Get when an item's raw score was last written.

        Args:
            kind: Item kind.
            item_id: Item identifier.

        Returns:
            Timestamp of the last raw update, or None if never scored.
        """
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                """
                SELECT last_raw_updated FROM ranking_scores
                WHERE item_kind = ? AND item_id = ?
                """,
                (ItemKind(kind).value, item_id),
            ).fetchone()

        if row is None:
            return None
        return from_db_timestamp(row["last_raw_updated"])

    def list_scores_updated_since(
        self, kind: ItemKind, since: datetime
    ) -> list[RankingScore]:
        """Get score rows whose raw score was written at or after a time.

        Args:
            kind: Item kind.
            since: Window start.

        Returns:
            Score rows in the window.
        """
        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                """
                SELECT * FROM ranking_scores
                WHERE item_kind = ? AND last_raw_updated >= ?
                ORDER BY item_id
                """,
                (ItemKind(kind).value, to_db_timestamp(since)),
            ).fetchall()

        return [self._row_to_score(row) for row in rows]

    def apply_normalization(
        self,
        stats: RankingStats,
        norm_scores: Mapping[str, float],
        normalized_at: datetime | None = None,
    ) -> int:
        """Persist a normalization pass as a single unit of work.

        Writes the audit stats row and every normalized score in one
        transaction; any failure rolls back the whole pass.

        Args:
            stats: Window statistics (upserted by kind and window bounds).
            norm_scores: Mapping of item_id to normalized score.
            normalized_at: Timestamp of the pass (defaults to now).

        Returns:
            Number of score rows updated.
        """
        normalized_at = normalized_at or datetime.now(UTC)
        normalized_iso = to_db_timestamp(normalized_at)
        kind_value = ItemKind(stats.item_kind).value

        with self._transaction("apply_normalization") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO ranking_stats (
                    item_kind, window_start, window_end, mean_raw_score,
                    stddev_raw_score, item_count, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(item_kind, window_start, window_end) DO UPDATE SET
                    mean_raw_score = excluded.mean_raw_score,
                    stddev_raw_score = excluded.stddev_raw_score,
                    item_count = excluded.item_count,
                    computed_at = excluded.computed_at
                """,
                (
                    kind_value,
                    to_db_timestamp(stats.window_start),
                    to_db_timestamp(stats.window_end),
                    stats.mean_raw_score,
                    stats.stddev_raw_score,
                    stats.item_count,
                    normalized_iso,
                ),
            )
            ctx.add_affected_rows(1)
            self._metrics.record_stats_write()

            updated = 0
            for item_id, norm_score in norm_scores.items():
                cursor = conn.execute(
                    """
                    UPDATE ranking_scores
                    SET norm_score = ?, last_norm_updated = ?
                    WHERE item_kind = ? AND item_id = ?
                    """,
                    (norm_score, normalized_iso, kind_value, item_id),
                )
                updated += cursor.rowcount
            ctx.add_affected_rows(updated)

        self._metrics.record_norm_updates(updated)
        return updated

    def top_ranked(self, kind: ItemKind, limit: int) -> list[RankingScore]:
        """Get the top normalized items of a kind.

        Rows with a NULL ``norm_score`` are excluded. Ties on norm score
        break by most recent engagement event (items without one last),
        then by freshest raw update.

        Args:
            kind: Item kind.
            limit: Maximum rows.

        Returns:
            Ordered score rows.
        """
        if limit <= 0:
            return []

        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                f"""
                SELECT * FROM ranking_scores
                WHERE item_kind = ? AND norm_score IS NOT NULL
                ORDER BY {_RANKED_ORDER_SQL}
                LIMIT ?
                """,  # noqa: S608
                (ItemKind(kind).value, limit),
            ).fetchall()

        return [self._row_to_score(row) for row in rows]

    def list_top_scores(
        self, kind: ItemKind | None = None, limit: int = 100
    ) -> list[RankingScore]:
        """Get top normalized rows across kinds for operator review.

        Args:
            kind: Optional kind filter.
            limit: Maximum rows.

        Returns:
            Rows ordered by norm_score descending.
        """
        if kind is not None:
            return self.top_ranked(kind, limit)

        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                f"""
                SELECT * FROM ranking_scores
                WHERE norm_score IS NOT NULL
                ORDER BY {_RANKED_ORDER_SQL}
                LIMIT ?
                """,  # noqa: S608
                (limit,),
            ).fetchall()

        return [self._row_to_score(row) for row in rows]

    def _row_to_score(self, row: sqlite3.Row) -> RankingScore:
        """Convert a database row to a RankingScore.

        Args:
            row: Database row.

        Returns:
            RankingScore instance.
        """
        return RankingScore(
            item_kind=ItemKind(row["item_kind"]),
            item_id=row["item_id"],
            raw_score=row["raw_score"],
            norm_score=row["norm_score"],
            last_raw_updated=datetime.fromisoformat(row["last_raw_updated"]),
            last_norm_updated=from_db_timestamp(row["last_norm_updated"]),
            last_event_at=from_db_timestamp(row["last_event_at"]),
        )

    # ===== Statistics =====

    def list_recent_stats(
        self, kind: ItemKind | None = None, limit: int = 10
    ) -> list[RankingStats]:
        """Get the most recent normalization audit rows.

        Args:
            kind: Optional kind filter.
            limit: Maximum rows.

        Returns:
            Stats rows ordered by window end descending.
        """
        query = "SELECT * FROM ranking_stats"
        params: list[Any] = []
        if kind is not None:
            query += " WHERE item_kind = ?"
            params.append(ItemKind(kind).value)
        query += " ORDER BY window_end DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(query, params).fetchall()

        return [
            RankingStats(
                item_kind=ItemKind(row["item_kind"]),
                window_start=datetime.fromisoformat(row["window_start"]),
                window_end=datetime.fromisoformat(row["window_end"]),
                mean_raw_score=row["mean_raw_score"],
                stddev_raw_score=row["stddev_raw_score"],
                item_count=row["item_count"],
                computed_at=from_db_timestamp(row["computed_at"]),
            )
            for row in rows
        ]

    # ===== Config =====

    def get_config_value(self, key: str) -> Any:
        """Get a tunable config value.

        Args:
            key: Config key.

        Returns:
            Decoded JSON value, or None if absent.
        """
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT config_value FROM ranking_config WHERE config_key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None
        return json.loads(row["config_value"])

    def set_config_value(self, key: str, value: Any) -> None:
        """Set a tunable config value.

        Args:
            key: Config key.
            value: JSON-serializable value.
        """
        with self._transaction("set_config_value") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO ranking_config (config_key, config_value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), to_db_timestamp(datetime.now(UTC))),
            )
            ctx.add_affected_rows(1)

        self._log.info("config_value_set", key=key)

    def list_config(self) -> dict[str, Any]:
        """Get every stored config key and value.

        Rows whose value is not valid JSON are logged and skipped.

        Returns:
            Mapping of config key to decoded value.
        """
        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                "SELECT config_key, config_value FROM ranking_config ORDER BY config_key"
            ).fetchall()

        values: dict[str, Any] = {}
        for row in rows:
            try:
                values[row["config_key"]] = json.loads(row["config_value"])
            except json.JSONDecodeError as e:
                self._log.warning(
                    "config_value_undecodable", key=row["config_key"], error=str(e)
                )
        return values

    # ===== Events =====

    def record_event(
        self,
        kind: ItemKind,
        item_id: str,
        event_type: EventType,
        occurred_at: datetime | None = None,
    ) -> RankingEvent:
        """Append an engagement event.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            event_type: What happened.
            occurred_at: Event time (defaults to now).

        Returns:
            The stored event.
        """
        occurred_at = occurred_at or datetime.now(UTC)

        with self._transaction("record_event") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO ranking_events (item_kind, item_id, event_type, occurred_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    ItemKind(kind).value,
                    item_id,
                    EventType(event_type).value,
                    to_db_timestamp(occurred_at),
                ),
            )
            ctx.add_affected_rows(1)
            event_id = cursor.lastrowid

        self._metrics.record_event_logged()
        return RankingEvent(
            event_id=event_id,
            item_kind=kind,
            item_id=item_id,
            event_type=event_type,
            occurred_at=occurred_at,
        )

    def list_events(
        self, kind: ItemKind, item_id: str, limit: int = 100
    ) -> list[RankingEvent]:
        """Get an item's most recent engagement events.

        Args:
            kind: Item kind.
            item_id: Item identifier.
            limit: Maximum rows.

        Returns:
            Events ordered newest first.
        """
        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(
                """
                SELECT * FROM ranking_events
                WHERE item_kind = ? AND item_id = ?
                ORDER BY occurred_at DESC, event_id DESC
                LIMIT ?
                """,
                (ItemKind(kind).value, item_id, limit),
            ).fetchall()

        return [
            RankingEvent(
                event_id=row["event_id"],
                item_kind=ItemKind(row["item_kind"]),
                item_id=row["item_id"],
                event_type=EventType(row["event_type"]),
                occurred_at=datetime.fromisoformat(row["occurred_at"]),
            )
            for row in rows
        ]

    # ===== Ranked View =====

    def refresh_ranked_view(self, refreshed_at: datetime | None = None) -> int:
        """Rebuild the precomputed ranked view from current scores.

        Args:
            refreshed_at: Refresh timestamp (defaults to now).

        Returns:
            Number of rows in the rebuilt view.
        """
        refreshed_at = refreshed_at or datetime.now(UTC)

        with self._transaction("refresh_ranked_view") as ctx:
            conn = self._ensure_connected()
            conn.execute("DELETE FROM ranked_view")
            cursor = conn.execute(
                f"""
                INSERT INTO ranked_view (
                    item_kind, item_id, norm_score, raw_score,
                    last_event_at, rank_position, refreshed_at
                )
                SELECT
                    item_kind, item_id, norm_score, raw_score, last_event_at,
                    ROW_NUMBER() OVER (
                        PARTITION BY item_kind ORDER BY {_RANKED_ORDER_SQL}
                    ),
                    ?
                FROM ranking_scores
                WHERE norm_score IS NOT NULL
                """,  # noqa: S608
                (to_db_timestamp(refreshed_at),),
            )
            rows = cursor.rowcount
            ctx.add_affected_rows(rows)

        self._metrics.record_view_refresh()
        return rows

    def list_ranked_view(
        self,
        kind: ItemKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RankedViewEntry]:
        """Page through the precomputed ranked view.

        Args:
            kind: Optional kind filter.
            limit: Page size.
            offset: Rows to skip.

        Returns:
            View rows in rank order.
        """
        query = "SELECT * FROM ranked_view"
        params: list[Any] = []
        if kind is not None:
            query += " WHERE item_kind = ? ORDER BY rank_position"
            params.append(ItemKind(kind).value)
        else:
            query += " ORDER BY norm_score DESC, rank_position, item_kind, item_id"
        query += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(query, params).fetchall()

        return [
            RankedViewEntry(
                item_kind=ItemKind(row["item_kind"]),
                item_id=row["item_id"],
                norm_score=row["norm_score"],
                raw_score=row["raw_score"],
                last_event_at=from_db_timestamp(row["last_event_at"]),
                rank_position=row["rank_position"],
                refreshed_at=datetime.fromisoformat(row["refreshed_at"]),
            )
            for row in rows
        ]

    # ===== Stats =====

    def get_table_counts(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        counts: dict[str, int] = {}
        with self._lock:
            conn = self._ensure_connected()
            for table in (
                "ranking_scores",
                "ranking_stats",
                "ranking_config",
                "ranking_events",
                "ranked_view",
            ):
                cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
                counts[table] = cursor.fetchone()[0]
        return counts

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        with self._lock:
            conn = self._ensure_connected()
            return MigrationManager(conn).get_current_version()
