from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for convenient imports:
    from sessionkeeper.models import UserProfile, SessionState, AuthResult
"""

from sessionkeeper.models.enums import AuthErrorCode, AuthPhase, Outcome
from sessionkeeper.models.profile import ProviderIdentity, UserProfile
from sessionkeeper.models.auth_models import (
    SUPABASE_ERROR_MAP,
    AuthResult,
    SessionState,
)

__all__ = [
    "AuthErrorCode",
    "AuthPhase",
    "Outcome",
    "ProviderIdentity",
    "UserProfile",
    "SUPABASE_ERROR_MAP",
    "AuthResult",
    "SessionState",
]
