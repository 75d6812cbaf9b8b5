"""SQLite schema migrations for the item store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from marketfeed.store.errors import MigrationError


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
        description="Initial schema with markets table",
        up_sql="""
CREATE TABLE IF NOT EXISTS markets (
    item_id TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    external_id TEXT NOT NULL,
    question TEXT NOT NULL,
    yes_price REAL,
    no_price REAL,
    volume REAL NOT NULL DEFAULT 0,
    liquidity REAL NOT NULL DEFAULT 0,
    price_change_24h REAL NOT NULL DEFAULT 0,
    mention_score REAL NOT NULL DEFAULT 0,
    end_date TEXT,
    tags_json TEXT NOT NULL DEFAULT '[]',
    content_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (source, external_id)
);
CREATE INDEX IF NOT EXISTS idx_markets_end_date ON markets(end_date);
CREATE INDEX IF NOT EXISTS idx_markets_updated ON markets(updated_at, item_id);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_markets_updated;
DROP INDEX IF EXISTS idx_markets_end_date;
DROP TABLE IF EXISTS markets;
""",
    ),
    Migration(
        version=2,
        description="Add eligibility switch and derived score columns",
        up_sql="""
ALTER TABLE markets ADD COLUMN eligible INTEGER NOT NULL DEFAULT 1;
ALTER TABLE markets ADD COLUMN confidence REAL;
ALTER TABLE markets ADD COLUMN trend_score REAL;
ALTER TABLE markets ADD COLUMN scored_at TEXT;
CREATE INDEX IF NOT EXISTS idx_markets_eligible ON markets(eligible);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_markets_eligible;
ALTER TABLE markets DROP COLUMN scored_at;
ALTER TABLE markets DROP COLUMN trend_score;
ALTER TABLE markets DROP COLUMN confidence;
ALTER TABLE markets DROP COLUMN eligible;
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

    # SQL for schema version tracking table
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
            MigrationError: If a migration fails.
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
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is invalid.
            MigrationError: If a rollback script fails.
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
            except sqlite3.Error as e:
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            rolled_back.append(migration.version)

        return rolled_back
