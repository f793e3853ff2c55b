"""
Application Configuration.

Pydantic Settings model for the SessionKeeper application.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (credential provider + profile store) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    PROFILES_TABLE: str = "profiles"

    # --- Redirect targets embedded in outbound auth emails ---
    PASSWORD_RESET_REDIRECT_URL: str = ""
    EMAIL_REDIRECT_URL: str = ""

    # --- Local storage ---
    SQLITE_PATH: Path = Path("sessionkeeper_local.db")
    SESSION_MARKER_KEY: str = "user_session_id"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "sessionkeeper.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a log line explaining why the app is offline.
        """
        _log = logging.getLogger("sessionkeeper.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "Supabase is not configured: sign-in, sign-up and profile "
                "writes will fail until SUPABASE_URL and SUPABASE_ANON_KEY are set."
            )

        return self

    @property
    def supabase_enabled(self) -> bool:
        """``True`` when both Supabase URL and key are present."""
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value())


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path stays lock-free while
    first initialisation remains thread-safe.  Prefer constructor injection
    of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
