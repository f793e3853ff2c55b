"""
SessionKeeper Entry Point.

Bootstraps the dependency graph via constructor injection, initialises the
local SQLite schema, and attempts to restore the previous session.  Every
subsystem is wired here; there are no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import sys
import traceback

from sessionkeeper.config import get_config
from sessionkeeper.database import DatabaseManager
from sessionkeeper.logger import StructuredLogger, get_logger
from sessionkeeper.schema import initialize_schema
from sessionkeeper.services import create_services


async def main() -> None:
    """Wire dependencies and restore the stored session, if any."""
    logger: StructuredLogger = get_logger("sessionkeeper")
    logger.info("Starting SessionKeeper...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Local database and schema (idempotent)
    # ------------------------------------------------------------------
    db = DatabaseManager(sqlite_path=config.SQLITE_PATH, logger=logger.child("database"))

    try:
        initialize_schema(db.sqlite, logger.child("schema"))

        # --------------------------------------------------------------
        # 3. Service container
        # --------------------------------------------------------------
        services = create_services(db=db, config=config, logger=logger)
        controller = services["auth_controller"]
        bridge = services["state_observer"]

        # --------------------------------------------------------------
        # 4. Supabase client; its auth session persists via SessionStore
        # --------------------------------------------------------------
        if config.supabase_enabled:
            await db.connect_supabase(
                supabase_url=config.SUPABASE_URL,
                supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
                storage=services["session_store"],
            )
        if not db.is_online:
            logger.warning(
                "Offline: restoration will report a network error if a "
                "session marker is present.",
            )

        # --------------------------------------------------------------
        # 5. Restoration
        # --------------------------------------------------------------
        await bridge.start()
        await bridge.drain()

        state = controller.state
        logger.info(
            "Session phase: %s (authenticated=%s, observing=%s).",
            state.phase.value,
            state.is_authenticated,
            bridge.is_observing,
            extra={"event": "STARTUP_COMPLETE"},
        )
        await bridge.stop()
    finally:
        db.close()
        logger.info("SessionKeeper shut down.")


def _show_fatal_error(exc: BaseException) -> None:
    """Write the fatal error and its traceback to stderr."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(1)
