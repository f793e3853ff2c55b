"""
Centralized SQLite Schema Initialization.

Defines the canonical schema for the SessionKeeper local database and
provides a single entry-point -- :func:`initialize_schema` -- that creates
all required tables idempotently.  A ``schema_version`` table tracks
applied migrations so schema changes can be rolled forward without data
loss.

Migration Strategy
~~~~~~~~~~~~~~~~~~
- **Fresh databases** (version 0): all tables are created in one shot from
  :data:`_TABLE_DEFINITIONS`.
- **Existing databases** (version N > 0): only incremental migrations
  registered in :data:`_MIGRATIONS` are executed.
- The entire upgrade (migrations + version bump) is wrapped in a single
  SQLite transaction.  On failure the database rolls back to version N
  and the next startup retries.

Adding a New Migration
~~~~~~~~~~~~~~~~~~~~~~
1. Bump :data:`CURRENT_SCHEMA_VERSION`.
2. Update the relevant DDL in :data:`_TABLE_DEFINITIONS` (for fresh installs).
3. Write a ``_migrate_vN_to_vN+1()`` function (guard with
   ``PRAGMA table_info`` checks or ``IF NOT EXISTS`` for idempotency).
4. Register the function in :data:`_MIGRATIONS`.

Usage::

    from sessionkeeper.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="sessionkeeper.schema"))
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from sessionkeeper.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

# ---------------------------------------------------------------------------
# DDL statements for every table in the local database.
# ---------------------------------------------------------------------------
_TABLE_DEFINITIONS: list[str] = [
    # -- single-row version tracker -------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- app_settings (key-value; holds the session marker) -------------------
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- profiles (read cache mirroring the Supabase profiles table) ----------
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        display_name TEXT NOT NULL DEFAULT '',
        email TEXT NOT NULL DEFAULT '',
        verified INTEGER NOT NULL DEFAULT 0 CHECK (verified IN (0, 1)),
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_profiles_verified ON profiles(verified)",
    "CREATE INDEX IF NOT EXISTS idx_profiles_display_name ON profiles(display_name)",
]


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker to *version*.

    Does **not** commit; version updates must be atomic with the schema
    changes they describe.
    """
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Execute every DDL statement in :data:`_TABLE_DEFINITIONS`.

    Only used for fresh databases.  Does **not** commit.
    """
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info(
        "All %d schema statements applied successfully.", len(_TABLE_DEFINITIONS),
    )


# ---------------------------------------------------------------------------
# Migration registry: maps *target* version to its migration function.
# ---------------------------------------------------------------------------

MigrationFunc = Callable[[sqlite3.Connection, StructuredLogger], None]

_MIGRATIONS: dict[int, MigrationFunc] = {}


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    """Run registered migrations for versions in ``(from_version, to_version]``.

    Executed in ascending version order.  Does **not** commit.
    """
    versions_to_apply: list[int] = sorted(
        v for v in _MIGRATIONS if from_version < v <= to_version
    )

    if not versions_to_apply:
        logger.info("No incremental migrations to apply.")
        return

    logger.info(
        "Applying %d migration(s): %s",
        len(versions_to_apply),
        " → ".join(str(v) for v in versions_to_apply),
    )
    for version in versions_to_apply:
        logger.info("Running migration to version %d …", version)
        _MIGRATIONS[version](conn, logger)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Workflow:
        1. Guarantee the ``schema_version`` table exists (separate commit).
        2. Read the stored version number (``0`` for a fresh database).
        3. Return immediately when already current.
        4. Otherwise create all tables (fresh) or run incremental
           migrations (existing), bump the version and commit, all in one
           transaction.  On failure everything is rolled back.

    Safe to call on every startup.

    Args:
        conn: An open SQLite connection.
        logger: A :class:`~sessionkeeper.logger.StructuredLogger` instance.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info(
        "Upgrading schema from version %d to %d …", current, CURRENT_SCHEMA_VERSION,
    )

    try:
        if current == 0:
            _create_all_tables(conn, logger)
        else:
            _run_incremental_migrations(conn, logger, current, CURRENT_SCHEMA_VERSION)

        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error("Schema migration failed; rolled back to version %d.", current)
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
