"""
Local Session Persistence.

``SessionStore`` keeps session state that must survive a restart in the
``app_settings`` key-value table of the local SQLite database.  It holds
two kinds of entries:

- the **session marker**: identity of the last signed-in account, written
  on sign-in, cleared on sign-out and read once at startup to decide
  whether restoration is worth attempting;
- the **Supabase auth session**: the serialized access/refresh token pair
  the Supabase client stores under its own key.  ``SessionStore`` is the
  client's ``AsyncSupportedStorage``, so ``auth.get_session()`` in a new
  process finds the session the previous process signed in with.

The marker is a hint, not a credential.  Restoration still requires the
provider to accept the persisted session.

Schema (see ``sessionkeeper.schema``)::

    CREATE TABLE IF NOT EXISTS app_settings (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

from __future__ import annotations

from typing import Optional

from supabase_auth import AsyncSupportedStorage

from sessionkeeper.database import DatabaseManager
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.services.base_service import BaseService

_UPSERT_SQL: str = """
    INSERT INTO app_settings (key, value)
    VALUES (?, ?)
    ON CONFLICT(key) DO UPDATE SET
        value      = excluded.value,
        updated_at = CURRENT_TIMESTAMP
"""
_DELETE_SQL: str = "DELETE FROM app_settings WHERE key = ?"


class SessionStore(BaseService, AsyncSupportedStorage):
    """Restart-safe session state over ``app_settings``.

    The synchronous ``get`` / ``set`` / ``remove`` calls serve the session
    marker; the ``*_item`` coroutines serve the Supabase auth client.
    Failures degrade (``None`` / ``False``) and are logged, never raised.

    Parameters
    ----------
    db:
        ``DatabaseManager`` whose schema has been initialised.
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db

    # ------------------------------------------------------------------
    # Session marker
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Value stored under *key*, or ``None`` if absent or unreadable."""
        try:
            row = self._db.sqlite.execute(
                "SELECT value FROM app_settings WHERE key = ?", (key,),
            ).fetchone()
        except Exception as exc:
            self._logger.warning("Session entry %s unreadable: %s", key, exc)
            return None
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> bool:
        return self._write(_UPSERT_SQL, (key, value), key, "stored")

    def remove(self, key: str) -> bool:
        """Delete *key*; removing an absent key counts as success."""
        return self._write(_DELETE_SQL, (key,), key, "cleared")

    # ------------------------------------------------------------------
    # Supabase auth storage
    # ------------------------------------------------------------------

    async def get_item(self, key: str) -> Optional[str]:
        return self.get(key)

    async def set_item(self, key: str, value: str) -> None:
        # Failure is logged by set(); the in-memory session stays usable.
        self.set(key, value)

    async def remove_item(self, key: str) -> None:
        self.remove(key)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _write(self, sql: str, params: tuple[str, ...], key: str, verb: str) -> bool:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(sql, params)
                self._db.sqlite.commit()
        except Exception as exc:
            self._logger.error("Session entry %s could not be %s: %s", key, verb, exc)
            return False
        self._logger.debug("Session entry %s %s.", key, verb)
        return True
