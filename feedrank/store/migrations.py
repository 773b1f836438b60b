"""SQLite schema migrations for the ranking store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from feedrank.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Ranking scores, window statistics and tunable config",
        up_sql="""
-- One score row per ranked item; norm_score is NULL until normalized
CREATE TABLE IF NOT EXISTS ranking_scores (
    item_kind TEXT NOT NULL,
    item_id TEXT NOT NULL,
    raw_score REAL NOT NULL,
    norm_score REAL,
    last_raw_updated TEXT NOT NULL,
    last_norm_updated TEXT,
    last_event_at TEXT,
    PRIMARY KEY (item_kind, item_id)
);
CREATE INDEX IF NOT EXISTS idx_scores_kind_norm
    ON ranking_scores(item_kind, norm_score);
CREATE INDEX IF NOT EXISTS idx_scores_kind_raw_updated
    ON ranking_scores(item_kind, last_raw_updated);

-- Audit trail of normalization passes
CREATE TABLE IF NOT EXISTS ranking_stats (
    item_kind TEXT NOT NULL,
    window_start TEXT NOT NULL,
    window_end TEXT NOT NULL,
    mean_raw_score REAL NOT NULL,
    stddev_raw_score REAL NOT NULL,
    item_count INTEGER NOT NULL,
    computed_at TEXT NOT NULL,
    PRIMARY KEY (item_kind, window_start, window_end)
);
CREATE INDEX IF NOT EXISTS idx_stats_window_end ON ranking_stats(window_end);

-- Tunable ranking configuration (JSON-encoded values)
CREATE TABLE IF NOT EXISTS ranking_config (
    config_key TEXT PRIMARY KEY,
    config_value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
""",
        down_sql="""
DROP TABLE IF EXISTS ranking_config;
DROP INDEX IF EXISTS idx_stats_window_end;
DROP TABLE IF EXISTS ranking_stats;
DROP INDEX IF EXISTS idx_scores_kind_raw_updated;
DROP INDEX IF EXISTS idx_scores_kind_norm;
DROP TABLE IF EXISTS ranking_scores;
""",
    ),
    Migration(
        version=2,
        description="Engagement event log and precomputed ranked view",
        up_sql="""
-- Append-only engagement events
CREATE TABLE IF NOT EXISTS ranking_events (
    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_kind TEXT NOT NULL,
    item_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    occurred_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_item
    ON ranking_events(item_kind, item_id);
CREATE INDEX IF NOT EXISTS idx_events_occurred_at
    ON ranking_events(occurred_at);

-- Read-optimized snapshot of normalized scores, rebuilt on refresh
CREATE TABLE IF NOT EXISTS ranked_view (
    item_kind TEXT NOT NULL,
    item_id TEXT NOT NULL,
    norm_score REAL NOT NULL,
    raw_score REAL NOT NULL,
    last_event_at TEXT,
    rank_position INTEGER NOT NULL,
    refreshed_at TEXT NOT NULL,
    PRIMARY KEY (item_kind, item_id)
);
CREATE INDEX IF NOT EXISTS idx_view_kind_rank
    ON ranked_view(item_kind, rank_position);
CREATE INDEX IF NOT EXISTS idx_view_norm ON ranked_view(norm_score);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_view_norm;
DROP INDEX IF EXISTS idx_view_kind_rank;
DROP TABLE IF EXISTS ranked_view;
DROP INDEX IF EXISTS idx_events_occurred_at;
DROP INDEX IF EXISTS idx_events_item;
DROP TABLE IF EXISTS ranking_events;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration fails to apply.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.info("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
                applied.append(migration.version)
                self._log.info("migration_applied", version=migration.version)

            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is invalid.
            MigrationError: If a rollback fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        rolled_back: list[int] = []
        by_version = {m.version: m for m in MIGRATIONS}

        while (current := self.get_current_version()) > target_version:
            migration = by_version.get(current)
            if migration is None:
                break

            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
                rolled_back.append(migration.version)
                self._log.info("migration_rolled_back", version=migration.version)

            except sqlite3.Error as e:
                self._log.error(
                    "rollback_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return rolled_back

    def get_applied_migrations(self) -> list[dict[str, str | int]]:
        """Get list of applied migrations.

        Returns:
            List of dicts with version, applied_at, and description.
        """
        self.ensure_version_table()
        cursor = self._conn.execute(
            """
            SELECT version, applied_at, description
            FROM schema_version
            ORDER BY version
            """
        )
        return [
            {
                "version": row[0],
                "applied_at": row[1],
                "description": row[2],
            }
            for row in cursor.fetchall()
        ]
