"""
Database Abstraction Layer.

Owns the two storage connections SessionKeeper uses:

- **SQLite (local)**: always available.  Holds the ``app_settings``
  key-value table (session marker and the persisted Supabase auth
  session), a read cache of ``profiles``, and the ``audit_log``.

- **Supabase (cloud)**: the async client backing both the credential
  provider (Supabase Auth) and the durable profile store (PostgREST
  ``profiles`` table).  Optional: without credentials the application runs
  offline and every Supabase access raises ``RuntimeError``.

The Supabase client is attached after the local schema exists, because
its auth session is persisted through a storage adapter that writes to
SQLite.  This module only manages the raw connections; it contains no
query logic.

Usage (dependency injection at app startup)::

    db = DatabaseManager(sqlite_path=config.SQLITE_PATH, logger=log)
    initialize_schema(db.sqlite, log)
    await db.connect_supabase(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        storage=session_store,
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions
from supabase_auth import AsyncSupportedStorage

from sessionkeeper.logger import StructuredLogger


class DatabaseManager:
    """Manages the local SQLite connection and the optional Supabase client.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the local SQLite database file, or
        ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    supabase:
        An already-created async Supabase client, or ``None`` until
        :meth:`connect_supabase` is called (offline mode).
    """

    def __init__(
        self,
        sqlite_path: Path | str,
        logger: StructuredLogger,
        supabase: Optional[AsyncClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._supabase: Optional[AsyncClient] = supabase
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)
        self._closed: bool = False

    async def connect_supabase(
        self,
        supabase_url: str,
        supabase_key: str,
        storage: AsyncSupportedStorage,
    ) -> bool:
        """Create the async Supabase client with a persistent auth *storage*.

        The signed-in session (access and refresh tokens) is written to
        *storage*, so a later process can pick it up again through
        ``auth.get_session()``.  Credential format errors and unexpected
        client failures are logged and leave the manager offline.

        Returns ``True`` when the client was created.
        """
        if not (supabase_url and supabase_key):
            self._logger.warning(
                "Supabase credentials not configured; running in offline mode."
            )
            return False

        options = AsyncClientOptions(storage=storage, persist_session=True)
        try:
            self._supabase = await acreate_client(supabase_url, supabase_key, options=options)
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Supabase credential format error: %s. Running in offline mode.",
                exc,
            )
            return False
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialization failure: %s. "
                "Running in offline mode.",
                exc,
                exc_info=True,
            )
            return False

        self._logger.info("Supabase client initialized with persistent auth storage.")
        return True

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> AsyncClient:
        """Return the async Supabase client.

        Raises
        ------
        RuntimeError
            If no client was created (offline mode).  Adapters catch this
            and translate it into their own failure type.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "The application is running in offline mode."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the SQLite connection."""
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock to hold around any SQLite write followed by ``commit()``::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._closed:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._closed = True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path | str) -> sqlite3.Connection:
        """Open (or create) the SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory,
            re-raised with a message that names the path.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process.  Please check file permissions and try again."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
