"""
Base Repository.

Provides shared infrastructure for repositories:
- DatabaseManager reference (Supabase + SQLite)
- Logger reference
- Convenience properties for accessing clients
- The Supabase-first, SQLite-fallback read pattern
"""

from __future__ import annotations

import sqlite3
from typing import Awaitable, Callable, Optional, TypeVar

from supabase import AsyncClient

from sessionkeeper.database import DatabaseManager
from sessionkeeper.exceptions import PersistenceFailure
from sessionkeeper.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> AsyncClient:
        """Returns the async Supabase client (raises ``RuntimeError`` offline)."""
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the SQLite connection for local cache operations."""
        return self._db.sqlite

    async def _read_with_fallback(
        self,
        supabase_op: Callable[[], Awaitable[Optional[T]]],
        sqlite_op: Callable[[], Optional[T]],
        *,
        operation_name: str,
        on_supabase_success: Optional[Callable[[T], None]] = None,
    ) -> Optional[T]:
        """Execute a read with Supabase-first, SQLite-fallback semantics.

        Execution order:
        1. Await ``supabase_op()``.  On success, optionally invoke
           ``on_supabase_success`` (cache warming), then return its value,
           which may be ``None`` for "not found".
        2. If Supabase raised, call ``sqlite_op()`` and return its value.
        3. If SQLite also raised, raise ``PersistenceFailure``.

        A ``None`` from a reachable Supabase is authoritative and is not
        second-guessed by the local cache.

        Not intended for write paths.
        """
        try:
            result = await supabase_op()
        except Exception as exc:
            self._logger.warning(
                "Supabase unavailable for %s: %s", operation_name, exc,
            )
        else:
            if result is not None and on_supabase_success is not None:
                try:
                    on_supabase_success(result)
                except Exception as cache_exc:
                    self._logger.warning(
                        "Post-Supabase callback failed for %s: %s",
                        operation_name,
                        cache_exc,
                    )
            return result

        try:
            return sqlite_op()
        except sqlite3.Error as sqlite_exc:
            self._logger.error(
                "SQLite fallback also failed for %s: %s",
                operation_name,
                sqlite_exc,
            )
            raise PersistenceFailure(
                "The profile store is unreachable. Please try again later.",
                original_error=sqlite_exc,
            ) from sqlite_exc
