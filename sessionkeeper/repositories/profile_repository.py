"""
Profile Repository.

The durable profile store: user records in the Supabase ``profiles``
table, keyed by the provider-assigned identity, with a local SQLite read
cache for offline lookups.

Writes must reach Supabase; a failed write raises ``PersistenceFailure``
and is never silently queued.  Reads try Supabase first and fall back to
the local cache.
"""

from __future__ import annotations

import sqlite3
from typing import Awaitable, Callable, Optional

from sessionkeeper.database import DatabaseManager
from sessionkeeper.exceptions import PersistenceFailure
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.enums import AuthErrorCode
from sessionkeeper.models.profile import UserProfile
from sessionkeeper.repositories.base_repository import BaseRepository

_COLUMNS: str = "id, display_name, email, verified"

# Characters with meaning in PostgREST filter / LIKE syntax.
_SEARCH_STRIP: str = ",()*%\\"


class ProfileRepository(BaseRepository):
    """Data access layer for ``UserProfile`` records.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager``.
    logger:
        Structured logger instance.
    remote_table:
        Name of the Supabase table holding profiles.
    """

    TABLE = "profiles"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        remote_table: str = "profiles",
    ) -> None:
        super().__init__(db, logger)
        self._remote_table = remote_table

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, profile: UserProfile) -> None:
        """Insert or replace *profile*; the secret is never written."""
        try:
            await (
                self.supabase.table(self._remote_table)
                .upsert(profile.to_record())
                .execute()
            )
        except Exception as exc:
            self._logger.error("Failed to save profile %s: %s", profile.id, exc)
            raise PersistenceFailure(
                "Your profile could not be saved. Please try again.",
                original_error=exc,
            ) from exc

        self._cache_to_sqlite(profile)
        self._logger.info("Profile saved: %s", profile.id)

    async def update_verification(self, user_id: str, verified: bool) -> None:
        """Set the stored verification flag for *user_id*."""
        try:
            response = await (
                self.supabase.table(self._remote_table)
                .update({"verified": verified})
                .eq("id", user_id)
                .execute()
            )
        except Exception as exc:
            self._logger.error(
                "Failed to update verification for %s: %s", user_id, exc,
            )
            raise PersistenceFailure(
                "Your verification status could not be updated.",
                original_error=exc,
            ) from exc

        if not response.data:
            raise PersistenceFailure(
                "No profile exists for this account.",
                error_code=AuthErrorCode.PROFILE_NOT_FOUND,
            )

        for row in response.data:
            self._cache_to_sqlite(UserProfile.from_record(row))
        self._logger.info(
            "Verification flag for %s set to %s.", user_id, verified,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch(self, user_id: str) -> UserProfile:
        """Fetch one profile by identity.

        Raises:
            PersistenceFailure: ``PROFILE_NOT_FOUND`` when no record exists,
                ``PERSISTENCE_ERROR`` when neither store is reachable.
        """
        async def _supabase() -> Optional[UserProfile]:
            response = await (
                self.supabase.table(self._remote_table)
                .select(_COLUMNS)
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
            if response is None or not response.data:
                return None
            return UserProfile.from_record(response.data)

        def _sqlite() -> Optional[UserProfile]:
            row = self.sqlite.execute(
                f"SELECT {_COLUMNS} FROM {self.TABLE} WHERE id = ?", (user_id,)
            ).fetchone()
            return UserProfile.from_record(row) if row else None

        profile = await self._read_with_fallback(
            _supabase,
            _sqlite,
            operation_name="fetch (profiles)",
            on_supabase_success=self._cache_to_sqlite,
        )
        if profile is None:
            raise PersistenceFailure(
                "No profile exists for this account.",
                error_code=AuthErrorCode.PROFILE_NOT_FOUND,
            )
        return profile

    async def query_by_verification(self, verified: bool) -> list[UserProfile]:
        """All profiles whose verification flag equals *verified*."""
        async def _supabase() -> list[UserProfile]:
            response = await (
                self.supabase.table(self._remote_table)
                .select(_COLUMNS)
                .eq("verified", verified)
                .order("display_name")
                .execute()
            )
            return [UserProfile.from_record(row) for row in response.data]

        def _sqlite() -> list[UserProfile]:
            rows = self.sqlite.execute(
                f"SELECT {_COLUMNS} FROM {self.TABLE} "
                "WHERE verified = ? ORDER BY display_name",
                (int(verified),),
            ).fetchall()
            return [UserProfile.from_record(row) for row in rows]

        return await self._read_list(_supabase, _sqlite, "query_by_verification (profiles)")

    async def search(self, text: str) -> list[UserProfile]:
        """Case-insensitive substring match on display name or email.

        Filter-syntax characters are stripped from *text*; a query that is
        blank afterwards matches nothing.
        """
        term = text.strip()
        for char in _SEARCH_STRIP:
            term = term.replace(char, "")
        if not term:
            return []

        async def _supabase() -> list[UserProfile]:
            response = await (
                self.supabase.table(self._remote_table)
                .select(_COLUMNS)
                .or_(f"display_name.ilike.*{term}*,email.ilike.*{term}*")
                .order("display_name")
                .execute()
            )
            return [UserProfile.from_record(row) for row in response.data]

        def _sqlite() -> list[UserProfile]:
            pattern = f"%{term}%"
            rows = self.sqlite.execute(
                f"SELECT {_COLUMNS} FROM {self.TABLE} "
                "WHERE display_name LIKE ? OR email LIKE ? ORDER BY display_name",
                (pattern, pattern),
            ).fetchall()
            return [UserProfile.from_record(row) for row in rows]

        return await self._read_list(_supabase, _sqlite, "search (profiles)")

    async def fetch_all(self) -> list[UserProfile]:
        """Every profile, ordered by display name."""
        async def _supabase() -> list[UserProfile]:
            response = await (
                self.supabase.table(self._remote_table)
                .select(_COLUMNS)
                .order("display_name")
                .execute()
            )
            return [UserProfile.from_record(row) for row in response.data]

        def _sqlite() -> list[UserProfile]:
            rows = self.sqlite.execute(
                f"SELECT {_COLUMNS} FROM {self.TABLE} ORDER BY display_name"
            ).fetchall()
            return [UserProfile.from_record(row) for row in rows]

        return await self._read_list(_supabase, _sqlite, "fetch_all (profiles)")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _read_list(
        self,
        supabase_op: Callable[[], Awaitable[list[UserProfile]]],
        sqlite_op: Callable[[], list[UserProfile]],
        operation_name: str,
    ) -> list[UserProfile]:
        profiles = await self._read_with_fallback(
            supabase_op,
            sqlite_op,
            operation_name=operation_name,
            on_supabase_success=lambda rows: [self._cache_to_sqlite(p) for p in rows],
        )
        return profiles or []

    def _cache_to_sqlite(self, profile: UserProfile) -> None:
        """Write *profile* to the local read cache.

        Exceptions are logged but not raised so that a local cache failure
        never masks a successful Supabase operation.
        """
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE} (id, display_name, email, verified, updated_at)
                    VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(id) DO UPDATE SET
                        display_name = excluded.display_name,
                        email        = excluded.email,
                        verified     = excluded.verified,
                        updated_at   = CURRENT_TIMESTAMP
                    """,
                    (profile.id, profile.display_name, profile.email, int(profile.verified)),
                )
                self.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to cache profile %s to SQLite (non-fatal): %s",
                profile.id,
                exc,
            )
